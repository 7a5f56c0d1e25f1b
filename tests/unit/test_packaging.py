# tests/unit/test_packaging.py — v1
"""Tests for pyproject.toml — package metadata stays in sync with src/."""

from __future__ import annotations

import re
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
PYPROJECT = (ROOT / "pyproject.toml").read_text(encoding="utf-8")


def test_no_readme_pointing_at_internal_docs():
    match = re.search(r'^readme\s*=\s*"([^"]+)"', PYPROJECT, re.MULTILINE)
    if match:
        assert (ROOT / match.group(1)).exists()
        assert match.group(1) not in {"SPEC_FULL.md", "spec.md", "DESIGN.md"}


def test_declared_subpackages_exist():
    declared = re.findall(r'"previewflow\.(\w+)"', PYPROJECT)
    assert declared
    for name in declared:
        assert (ROOT / "src" / name).is_dir(), name

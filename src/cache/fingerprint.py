# src/cache/fingerprint.py — v1
"""Content fingerprints used as cache validity keys.

A fingerprint is a SHA-256 over the relative path and content hash of
every input file, plus any extra strings (commands, check names) that
change what the cached work would produce. Timestamps never enter it,
so a fresh checkout of identical sources still hits.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Collection, Iterable, Iterator, Sequence

logger = logging.getLogger(__name__)

DEFAULT_IGNORE: frozenset[str] = frozenset({
    ".git",
    ".previewflow-cache",
    "__pycache__",
    "dist",
    "logs",
    "node_modules",
    "temp",
})

_CHUNK = 1 << 16


def compute_fingerprint(
    kind: str,
    paths: Iterable[Path],
    root: Path | None = None,
    extra: Sequence[str] = (),
    ignore: Collection[str] = DEFAULT_IGNORE,
) -> str:
    """Fingerprint a set of files and directories.

    Args:
        kind: Namespace mixed into the hash ("validation", "build:admin").
        paths: Files or directories; directories are walked recursively.
        root: Paths are hashed relative to this when they lie under it.
        extra: Additional strings that invalidate the fingerprint.
        ignore: Directory or file names skipped while walking.

    Returns:
        Hex SHA-256 digest.
    """
    digest = hashlib.sha256(kind.encode("utf-8"))
    for value in extra:
        digest.update(b"\x00extra\x00" + value.encode("utf-8"))

    for path in sorted({Path(p) for p in paths}, key=str):
        if not path.exists():
            digest.update(f"\x00missing\x00{_relative(path, root)}".encode("utf-8"))
            continue
        for file in _walk(path, ignore):
            digest.update(f"\x00file\x00{_relative(file, root)}\x00".encode("utf-8"))
            digest.update(file_hash(file).encode("ascii"))
    return digest.hexdigest()


def file_hash(path: Path) -> str:
    """SHA-256 of one file's bytes; unreadable files hash their error."""
    h = hashlib.sha256()
    try:
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK), b""):
                h.update(chunk)
    except OSError as e:
        logger.debug("Could not read %s for fingerprint: %s", path, e)
        h.update(f"unreadable:{e.errno}".encode("utf-8"))
    return h.hexdigest()


def _walk(path: Path, ignore: Collection[str]) -> Iterator[Path]:
    if path.is_file():
        yield path
        return
    for child in sorted(path.iterdir(), key=lambda p: p.name):
        if child.name in ignore or child.is_symlink():
            continue
        if child.is_dir():
            yield from _walk(child, ignore)
        elif child.is_file():
            yield child


def _relative(path: Path, root: Path | None) -> str:
    if root is not None:
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            pass
    return path.as_posix()

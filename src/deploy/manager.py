# src/deploy/manager.py — v1
"""Deploy built packages to a preview channel.

Flow of one deploy() call:
    resolve channel id -> deploy every artifact -> classify each response
    -> on quota: aggressive reclaim, then one more attempt -> extract URLs
    (falling back to recent log files) -> persist URLs.

Quota recovery goes through the shared with_retry combinator with a
two-attempt budget, so at most one recovery cycle happens per call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from previewflow.channels.reclaimer import ChannelReclaimer
from previewflow.core.errors import DeploymentError, QuotaExceededError
from previewflow.core.models import PhaseName
from previewflow.core.retry import RetryExhausted, RetryPolicy, with_retry
from previewflow.deploy.channel_id import generate_channel_id
from previewflow.deploy.classifier import classify_deploy_response
from previewflow.deploy.models import (
    DeployArtifact,
    DeploymentResult,
    DeployOutcome,
    PreviewUrls,
)
from previewflow.deploy.url_extractor import extract_urls, find_urls_in_log_files
from previewflow.hosting.base_provider import BaseHostingProvider
from previewflow.logging.context import step_context
from previewflow.pipeline.state import RunContext
from previewflow.storage import layout
from previewflow.storage.preview_urls import append_preview_log, save_preview_urls
from previewflow.vcs.base_vcs import (
    DEFAULT_BRANCH,
    DEFAULT_COMMIT_MESSAGE,
    BaseVCS,
    CommitMessageSource,
    PullRequestSource,
)

logger = logging.getLogger(__name__)

PHASE = PhaseName.DEPLOY


class DeploymentManager:
    """Channel deploys with classification and one-shot quota recovery.

    Args:
        provider: Hosting provider.
        vcs: VCS collaborator; commit message and PR number are used when
            it implements the optional protocols.
        reclaimer: Used for aggressive cleanup on quota errors. Without one
            a quota error fails immediately.
        run_dir: Run temp dir (deploy.log, preview-urls.json).
        logs_dir: Persistent logs dir (preview-<channel>.log).
        dry_run: Resolve the channel id but skip provider calls.
        sleep: Injectable sleep used between attempts.
    """

    def __init__(
        self,
        provider: BaseHostingProvider,
        vcs: BaseVCS,
        reclaimer: ChannelReclaimer | None,
        run_dir: Path,
        logs_dir: Path,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._vcs = vcs
        self._commit_source = vcs if isinstance(vcs, CommitMessageSource) else None
        self._pr_source = vcs if isinstance(vcs, PullRequestSource) else None
        self._reclaimer = reclaimer
        self._run_dir = run_dir
        self._logs_dir = logs_dir
        self._dry_run = dry_run
        self._sleep = sleep

    async def resolve_channel_id(self, now_ms: int | None = None) -> str:
        """Channel id for the current checkout: `pr-<n>` or branch + time."""
        try:
            branch = await self._vcs.get_current_branch()
        except Exception as e:
            logger.warning("Could not read branch (%s), using '%s'", e, DEFAULT_BRANCH)
            branch = DEFAULT_BRANCH

        pr_number = None
        if self._pr_source is not None:
            try:
                pr_number = await self._pr_source.get_pull_request_number()
            except Exception as e:
                logger.warning("Could not read pull request number: %s", e)
        return generate_channel_id(branch, pr_number, now_ms)

    async def _commit_message(self) -> str:
        if self._commit_source is None:
            return DEFAULT_COMMIT_MESSAGE
        try:
            return await self._commit_source.get_latest_commit_message() or DEFAULT_COMMIT_MESSAGE
        except Exception as e:
            logger.warning("Could not read commit message: %s", e)
            return DEFAULT_COMMIT_MESSAGE

    async def deploy(
        self, artifacts: Sequence[DeployArtifact], context: RunContext
    ) -> DeploymentResult:
        """Deploy every artifact to one preview channel.

        Provider rejections are returned, not raised: the result carries
        the error and a concrete next action.
        """
        start = time.monotonic()
        channel_id = await self.resolve_channel_id()
        context.channel_id = channel_id
        context.record_step("resolve-channel", PHASE, True, _elapsed_ms(start))
        logger.info("Deploying %d artifact(s) to channel %s", len(artifacts), channel_id)

        if self._dry_run:
            context.record_warning(
                f"Dry run: deploy to {channel_id} skipped", PHASE, severity="info"
            )
            return DeploymentResult(
                success=True, channel_id=channel_id, outcome=DeployOutcome.SUCCESS
            )

        message = await self._commit_message()
        outputs: list[str] = []
        state = {"attempts": 0, "recovered": False}
        sites = [a.site for a in artifacts]

        async def attempt(n: int) -> DeployOutcome:
            state["attempts"] = n
            worst = DeployOutcome.SUCCESS
            for artifact in artifacts:
                step = f"deploy:{artifact.site}"
                step_start = time.monotonic()
                with step_context(step):
                    response = await self._provider.deploy_to_channel(
                        artifact.site, channel_id, artifact.path, message
                    )
                outcome = classify_deploy_response(response)
                outputs.append(f"=== {artifact.site} (attempt {n}) ===\n{response.raw_output}")
                duration = _elapsed_ms(step_start)

                if outcome is DeployOutcome.QUOTA_EXCEEDED:
                    error = f"Channel quota exceeded on {artifact.site}"
                    context.record_step(step, PHASE, False, duration, error)
                    raise QuotaExceededError(error, step=step)
                if outcome is DeployOutcome.FAILURE:
                    error = response.error or f"Deploy to {artifact.site} failed"
                    context.record_step(step, PHASE, False, duration, error)
                    raise DeploymentError(error, step=step)
                if outcome is DeployOutcome.BENIGN:
                    context.record_warning(
                        "Deprecation warning in deploy output ignored",
                        PHASE, step, severity="info",
                    )
                    worst = DeployOutcome.BENIGN
                context.record_step(step, PHASE, True, duration)
            return worst

        async def recover(n: int, error: BaseException) -> None:
            state["recovered"] = True
            if self._reclaimer is None:
                raise error
            summary = await self._reclaimer.reclaim_aggressively(
                sites, context, PHASE, protect=[channel_id]
            )
            context.record_warning(
                f"Channel quota exceeded; reclaimed {summary.total_deleted} channel(s) before retrying",
                PHASE,
            )

        policy = RetryPolicy(
            max_attempts=2 if self._reclaimer is not None else 1,
            is_retryable=lambda e: isinstance(e, QuotaExceededError),
        )

        try:
            outcome = await with_retry(
                attempt, policy, name="deploy", on_retry=recover, sleep=self._sleep
            )
        except RetryExhausted as e:
            self._write_deploy_log(outputs)
            return DeploymentResult(
                success=False,
                channel_id=channel_id,
                raw_output="\n".join(outputs),
                quota_exceeded=True,
                error=str(e.last_error),
                guidance=QuotaExceededError.default_suggestion,
                attempts=state["attempts"],
                recovery_attempted=state["recovered"],
                outcome=DeployOutcome.QUOTA_EXCEEDED,
            )
        except DeploymentError as e:
            self._write_deploy_log(outputs)
            return DeploymentResult(
                success=False,
                channel_id=channel_id,
                raw_output="\n".join(outputs),
                error=e.message,
                guidance=e.suggestion.replace("<channel-id>", channel_id) if e.suggestion else None,
                attempts=state["attempts"],
                recovery_attempted=state["recovered"],
                outcome=DeployOutcome.FAILURE,
            )

        raw_output = "\n".join(outputs)
        self._write_deploy_log(outputs)
        urls = self._resolve_urls(raw_output, artifacts, channel_id, context)
        context.preview_urls = urls

        return DeploymentResult(
            success=True,
            channel_id=channel_id,
            urls=urls.urls,
            raw_output=raw_output,
            attempts=state["attempts"],
            recovery_attempted=state["recovered"],
            is_fallback=urls.is_fallback,
            outcome=outcome,
        )

    def _resolve_urls(
        self,
        raw_output: str,
        artifacts: Sequence[DeployArtifact],
        channel_id: str,
        context: RunContext,
    ) -> PreviewUrls:
        roles = [a.role for a in artifacts]
        site_roles = {a.site: a.role for a in artifacts}
        urls = extract_urls(raw_output, roles, site_roles=site_roles).model_copy(
            update={"channel_id": channel_id}
        )
        if urls.empty:
            fallback = find_urls_in_log_files(
                layout.fallback_log_candidates(self._logs_dir), roles, site_roles
            )
            if fallback is not None:
                context.record_warning(
                    "No preview URLs in deploy output; using URLs recovered from recent logs",
                    PHASE, "extract-urls",
                )
                urls = fallback.model_copy(update={"channel_id": channel_id})
            else:
                context.record_warning(
                    "No preview URLs found in deploy output or recent logs",
                    PHASE, "extract-urls",
                )
                return urls

        try:
            save_preview_urls(self._run_dir, urls)
            if not urls.is_fallback:
                append_preview_log(self._logs_dir, channel_id, urls)
        except OSError as e:
            context.record_warning(f"Could not persist preview URLs: {e}", PHASE, "extract-urls")
        return urls

    def _write_deploy_log(self, outputs: Sequence[str]) -> None:
        path = layout.deploy_log_path(self._run_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(outputs) + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write %s: %s", path, e)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

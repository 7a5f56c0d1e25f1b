# src/channels/reclaimer.py — v1
"""Quota-aware preview channel garbage collector.

For each site: list channels, order them newest first (creation time,
falling back to update time), keep the first K and delete the rest. The
live channel is never a candidate, and neither is any protected channel
(the one the current run just deployed to). Sites are processed in
parallel and so are deletions within a site; a failed deletion is
recorded and never aborts the pass. Whenever deletion ran,
remaining == keep_count + protected + failed, where protected counts
protected channels outside the newest K.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Collection, Sequence

from previewflow.channels.models import ReclaimMode, ReclaimSummary, SiteReclaimResult
from previewflow.core.models import PhaseName
from previewflow.hosting.base_provider import BaseHostingProvider
from previewflow.hosting.models import LIVE_CHANNEL_ID, Channel
from previewflow.logging.context import step_context
from previewflow.pipeline.state import RunContext

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def order_newest_first(channels: Sequence[Channel]) -> list[Channel]:
    """Sort channels newest first; channels without timestamps sort last."""
    return sorted(channels, key=lambda c: c.sort_time or _EPOCH, reverse=True)


class ChannelReclaimer:
    """Delete stale preview channels, keeping the newest K per site.

    Args:
        provider: Hosting provider used to list and delete channels.
        aggressive_keep_count: K used by reclaim_aggressively().
        dry_run: Report what would be deleted without deleting.
    """

    def __init__(
        self,
        provider: BaseHostingProvider,
        aggressive_keep_count: int = 3,
        dry_run: bool = False,
    ) -> None:
        if aggressive_keep_count < 1:
            raise ValueError("aggressive_keep_count must be >= 1")
        self._provider = provider
        self._aggressive_keep_count = aggressive_keep_count
        self._dry_run = dry_run

    @property
    def aggressive_keep_count(self) -> int:
        return self._aggressive_keep_count

    async def reclaim(
        self,
        sites: Sequence[str],
        keep_count: int,
        threshold: int | None = None,
        context: RunContext | None = None,
        phase: PhaseName = PhaseName.CLEANUP,
        mode: ReclaimMode = "routine",
        protect: Collection[str] = (),
    ) -> ReclaimSummary:
        """Reclaim channels on every site.

        Args:
            sites: Hosting sites to process.
            keep_count: Newest channels to keep per site (>= 1).
            threshold: Only clean a site whose channel count exceeds this;
                None always cleans.
            context: Run context receiving steps and warnings.
            phase: Phase the steps are recorded under.
            mode: Label stored on the summary.
            protect: Channel ids never deleted, kept on top of the newest K.
        """
        if keep_count < 1:
            raise ValueError("keep_count must be >= 1")

        start = time.monotonic()
        outcomes = await asyncio.gather(
            *(self._reclaim_site(site, keep_count, threshold, protect) for site in sites),
            return_exceptions=True,
        )

        summary = ReclaimSummary(mode=mode, keep_count=keep_count, threshold=threshold)
        for site, outcome in zip(sites, outcomes):
            if isinstance(outcome, BaseException):
                outcome = SiteReclaimResult(site=site, keep_count=keep_count, error=str(outcome))
            summary.sites[site] = outcome
        summary.duration_ms = int((time.monotonic() - start) * 1000)

        if context is not None:
            _record(context, summary, phase)

        logger.info(
            "Channel reclaim (%s): %d deleted, %d failed across %d site(s)",
            mode, summary.total_deleted, summary.total_failed, len(sites),
        )
        return summary

    async def reclaim_aggressively(
        self,
        sites: Sequence[str],
        context: RunContext | None = None,
        phase: PhaseName = PhaseName.DEPLOY,
        protect: Collection[str] = (),
    ) -> ReclaimSummary:
        """Free quota now: keep only the aggressive K, ignoring the threshold."""
        logger.warning(
            "Aggressive channel cleanup, keeping %d per site", self._aggressive_keep_count
        )
        return await self.reclaim(
            sites,
            keep_count=self._aggressive_keep_count,
            threshold=None,
            context=context,
            phase=phase,
            mode="aggressive",
            protect=protect,
        )

    async def _reclaim_site(
        self,
        site: str,
        keep_count: int,
        threshold: int | None,
        protect: Collection[str] = (),
    ) -> SiteReclaimResult:
        with step_context(f"reclaim:{site}"):
            return await self._sweep_site(site, keep_count, threshold, protect)

    async def _sweep_site(
        self,
        site: str,
        keep_count: int,
        threshold: int | None,
        protect: Collection[str],
    ) -> SiteReclaimResult:
        result = SiteReclaimResult(site=site, keep_count=keep_count, dry_run=self._dry_run)
        try:
            listed = await self._provider.list_channels(site)
        except Exception as e:
            logger.warning("Could not list channels for %s: %s", site, e)
            result.error = f"list failed: {e}"
            return result

        channels = order_newest_first([c for c in listed if c.id != LIVE_CHANNEL_ID])
        result.found = len(channels)

        if threshold is not None and result.found <= threshold:
            result.skipped = True
            result.skip_reason = f"{result.found} channel(s) <= threshold {threshold}"
            result.kept = [c.id for c in channels]
            logger.debug("Skipping %s: %s", site, result.skip_reason)
            return result

        keep, stale = channels[:keep_count], channels[keep_count:]
        spared = [c for c in stale if c.id in protect]
        if spared:
            stale = [c for c in stale if c.id not in protect]
            logger.info("%s: keeping protected channel(s) %s", site, ", ".join(c.id for c in spared))
        result.kept = [c.id for c in keep + spared]
        if not stale:
            return result

        if self._dry_run:
            logger.info("[dry-run] Would delete %d channel(s) on %s", len(stale), site)
            result.deleted = [c.id for c in stale]
            return result

        responses = await asyncio.gather(
            *(self._provider.delete_channel(site, c.id) for c in stale),
            return_exceptions=True,
        )
        for channel, response in zip(stale, responses):
            if isinstance(response, BaseException):
                result.failed[channel.id] = str(response)
            elif response.success:
                result.deleted.append(channel.id)
            else:
                result.failed[channel.id] = response.error or "delete failed"

        if result.failed:
            logger.warning(
                "%s: %d channel deletion(s) failed", site, len(result.failed)
            )
        return result


def _record(context: RunContext, summary: ReclaimSummary, phase: PhaseName) -> None:
    for site, result in summary.sites.items():
        step = f"reclaim:{site}"
        if result.error:
            context.record_step(step, phase, False, summary.duration_ms, result.error)
            continue
        context.record_step(step, phase, True, summary.duration_ms)
        for channel_id, error in result.failed.items():
            context.record_warning(
                f"Failed to delete channel {channel_id}: {error}", phase, step
            )

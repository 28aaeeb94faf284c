"""Coordinated, lease-guarded refresh of many channels at once."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiddos.cache.syncer import ChannelSyncer
from kiddos.db import crud
from kiddos.db.models import utcnow
from kiddos.errors import CatalogError, QuotaExceeded, RefreshAlreadyRunning

logger = logging.getLogger(__name__)


@dataclass
class ChannelFailure:
    """A channel whose refresh failed, with the reason."""

    channel_id: str
    message: str


@dataclass
class BatchResult:
    """Aggregated outcome of refreshing a set of channels."""

    succeeded: int = 0
    failed: int = 0
    videos_added: int = 0
    errors: list[ChannelFailure] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


class RefreshCoordinator:
    """Runs ChannelSyncer over many channels concurrently.

    Only one coordinated refresh runs at a time across every process
    sharing the database: the refresh_in_progress setting acts as a lease
    that is taken with a single conditional UPDATE, renewed while the batch
    runs and released by its owner on exit. A lease not renewed within
    lease_max_age is treated as abandoned and may be taken over.

    Per-channel failures never abort the batch; they are collected into the
    BatchResult instead.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        syncer: ChannelSyncer,
        *,
        concurrency: int = 4,
        lease_max_age: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._sessionmaker = sessionmaker
        self._syncer = syncer
        self._concurrency = max(concurrency, 1)
        self._lease_max_age = lease_max_age
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()
        self._background: asyncio.Task | None = None

    @property
    def background_task(self) -> asyncio.Task | None:
        """The most recent background refresh task started by this process."""
        return self._background

    async def is_refreshing(self) -> bool:
        """Check whether any process currently holds the refresh lease."""
        async with self._sessionmaker() as db:
            return await crud.is_refresh_in_progress(
                db, self._clock(), self._lease_max_age
            )

    @asynccontextmanager
    async def refresh_lease(self) -> AsyncIterator[str]:
        """Hold the refresh lease for the duration of the block.

        The lease is renewed in the background at a third of lease_max_age,
        so a long but healthy refresh is never mistaken for an abandoned
        one. On exit it is released only if this holder still owns it.

        Yields:
            The owner token of the lease

        Raises:
            RefreshAlreadyRunning: If another refresh holds the lease
        """
        async with self._sessionmaker() as db:
            token = await crud.try_acquire_refresh_lease(
                db, self._clock(), self._lease_max_age
            )
        if token is None:
            raise RefreshAlreadyRunning()

        renewal = asyncio.create_task(
            self._renew_lease(token), name="refresh-lease-renewal"
        )
        try:
            yield token
        finally:
            renewal.cancel()
            await asyncio.gather(renewal, return_exceptions=True)
            # Shielded so a cancelled refresh still clears the flag
            await asyncio.shield(self._release_lease(token))

    async def _renew_lease(self, token: str) -> None:
        interval = self._lease_max_age.total_seconds() / 3
        while True:
            await asyncio.sleep(interval)
            try:
                async with self._sessionmaker() as db:
                    renewed = await crud.renew_refresh_lease(db, token, self._clock())
            except SQLAlchemyError:
                logger.warning("Could not renew the refresh lease", exc_info=True)
                continue
            if not renewed:
                logger.warning("Refresh lease was taken over by another refresh")
                return

    async def _release_lease(self, token: str) -> None:
        async with self._sessionmaker() as db:
            released = await crud.release_refresh_lease(db, token)
        if not released:
            logger.warning("Refresh lease already taken over; left in place")

    async def refresh_all(
        self, channel_ids: Iterable[str], force: bool = False
    ) -> BatchResult:
        """Refresh every given channel, at most `concurrency` at a time.

        Args:
            channel_ids: Channels to refresh; duplicates are ignored
            force: Caller intent only (manual vs. stale-triggered refresh);
                channels are refreshed unconditionally either way

        Returns:
            BatchResult with per-channel failures in `errors`

        Raises:
            RefreshAlreadyRunning: If another refresh holds the lease
        """
        ids = list(dict.fromkeys(channel_ids))
        if not ids:
            return BatchResult()

        async with self.refresh_lease():
            logger.info(f"Refreshing {len(ids)} channels (force={force})")
            result = await self._fan_out(ids)

        logger.info(
            f"Refresh complete: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.videos_added} videos"
        )
        return result

    async def _fan_out(self, ids: list[str]) -> BatchResult:
        semaphore = asyncio.Semaphore(self._concurrency)
        quota_message: str | None = None

        async def worker(channel_id: str) -> int:
            nonlocal quota_message
            async with semaphore:
                # Once the quota is gone, further calls only burn more of it
                if quota_message is not None:
                    raise QuotaExceeded(f"Skipped: {quota_message}")
                try:
                    return await self._syncer.sync(channel_id)
                except QuotaExceeded as exc:
                    quota_message = quota_message or exc.message
                    raise

        outcomes = await asyncio.gather(
            *(worker(channel_id) for channel_id in ids), return_exceptions=True
        )

        result = BatchResult()
        for channel_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                if isinstance(outcome, CatalogError):
                    message = outcome.message
                else:
                    message = str(outcome) or outcome.__class__.__name__
                    logger.error(
                        f"Unexpected error refreshing channel {channel_id}",
                        exc_info=outcome,
                    )
                result.errors.append(ChannelFailure(channel_id, message))
            else:
                result.succeeded += 1
                result.videos_added += outcome
        return result

    def trigger_background_refresh(self) -> asyncio.Task | None:
        """Start refreshing the whole catalog without waiting for it.

        The task outlives the request that triggered it; its outcome is
        only logged.

        Returns:
            The spawned task, or None if a background refresh started by this
            process is still running
        """
        if self._background is not None and not self._background.done():
            return None

        task = asyncio.create_task(self._refresh_catalog(), name="catalog-refresh")
        self._background = task
        self._tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    async def _refresh_catalog(self) -> BatchResult | None:
        async with self._sessionmaker() as db:
            channel_ids = await crud.list_channel_ids(db)
        if not channel_ids:
            return None

        logger.info(f"Background refresh of {len(channel_ids)} channels starting")
        try:
            return await self.refresh_all(channel_ids, force=True)
        except RefreshAlreadyRunning:
            logger.info("Background refresh skipped: a refresh is already running")
            return None

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Background refresh cancelled")
            return
        if exc := task.exception():
            logger.error("Background refresh failed", exc_info=exc)

    async def shutdown(self) -> None:
        """Cancel and wait for outstanding background refreshes."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

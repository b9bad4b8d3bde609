"""High level orchestration of one fetch-merge-persist cycle."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from .config import RateStatus, SyncSettings
from .github_client import TransportError
from .merger import merge_records
from .models import RepositoryRecord, Snapshot, format_timestamp
from .rate_limiter import RateLimiter, has_headroom
from .store import CorruptSnapshotError, SnapshotStore, derive_watermark

LOGGER = logging.getLogger(__name__)


class RepositorySource(Protocol):
    async def fetch_page(self, page: int, page_size: int | None = None) -> list[dict[str, Any]]: ...

    async def rate_limit(self) -> dict[str, Any]: ...


class MalformedPageError(ValueError):
    """Raised when a page holds an item that is not a repository payload."""


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    PAYLOAD = "payload"
    PERSISTENCE = "persistence"


@dataclass(slots=True)
class SyncSkipped:
    reason: str
    rate: RateStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "skipped": True,
            "reason": self.reason,
            "rate": self.rate.to_dict() if self.rate else None,
        }


@dataclass(slots=True)
class SyncSucceeded:
    fetched_count: int
    merged_count: int
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "skipped": False,
            "count": self.fetched_count,
            "merged_count": self.merged_count,
            "last_updated": format_timestamp(self.last_updated),
        }


@dataclass(slots=True)
class SyncFailed:
    kind: FailureKind
    cause: BaseException

    def to_dict(self) -> dict[str, Any]:
        return {"skipped": False, "error": self.kind.value, "details": str(self.cause)}


SyncOutcome = SyncSkipped | SyncSucceeded | SyncFailed


class SnapshotSyncer:
    """Fetches the user's repositories and merges them into the snapshot.

    At most one cycle runs at a time; a trigger that arrives while a cycle is
    in flight is answered with :class:`SyncSkipped`.
    """

    def __init__(
        self,
        client: RepositorySource,
        store: SnapshotStore,
        settings: SyncSettings,
        *,
        page_size: int = 100,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._settings = settings
        self._page_size = page_size
        self._rate_limiter = rate_limiter or RateLimiter(client)
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def sync(self, *, full: bool = False) -> SyncOutcome:
        """Run one cycle. ``full`` ignores the prior snapshot and re-lists everything."""

        if self._lock.locked():
            LOGGER.info("Sync requested while another cycle is running; ignoring")
            return SyncSkipped(reason="Sync already in progress")
        async with self._lock:
            return await self._run_cycle(full)

    async def _run_cycle(self, full: bool) -> SyncOutcome:
        rate = await self._rate_limiter.check_quota()
        if not has_headroom(rate, self._settings.rate_limit_buffer):
            LOGGER.warning(
                "Skipping sync: %s of %s requests remaining is below the %.0f%% buffer",
                rate.remaining if rate else None,
                rate.limit if rate else None,
                self._settings.rate_limit_buffer * 100,
            )
            return SyncSkipped(reason="Rate limit buffer reached", rate=rate)

        prior = None if full else await self._load_prior()
        watermark = derive_watermark(prior)
        LOGGER.info(
            "Starting sync (prior=%s, watermark=%s)",
            prior.total_count if prior else None,
            watermark.isoformat() if watermark else None,
        )

        try:
            fetched = await self._paginate(watermark)
        except TransportError as exc:
            LOGGER.warning("Sync aborted while paginating: %s", exc)
            return SyncFailed(kind=FailureKind.TRANSPORT, cause=exc)
        except MalformedPageError as exc:
            LOGGER.warning("Sync aborted on a malformed page: %s (cause: %r)", exc, exc.__cause__)
            return SyncFailed(kind=FailureKind.PAYLOAD, cause=exc)

        merged = merge_records(prior.repositories if prior else [], fetched, watermark)
        snapshot = Snapshot.build(merged)
        try:
            await asyncio.to_thread(self._store.write, snapshot)
        except OSError as exc:
            LOGGER.error("Could not persist snapshot to %s: %s", self._store.path, exc)
            return SyncFailed(kind=FailureKind.PERSISTENCE, cause=exc)

        LOGGER.info("Sync finished: fetched %s, snapshot holds %s", len(fetched), snapshot.total_count)
        return SyncSucceeded(
            fetched_count=len(fetched),
            merged_count=snapshot.total_count,
            last_updated=snapshot.last_updated,
        )

    async def _load_prior(self) -> Snapshot | None:
        try:
            return await asyncio.to_thread(self._store.read)
        except CorruptSnapshotError as exc:
            LOGGER.error("Discarding unreadable snapshot: %s (cause: %r)", exc, exc.__cause__)
            return None

    async def _paginate(self, watermark: datetime | None) -> list[RepositoryRecord]:
        fetched: list[RepositoryRecord] = []
        page = 1
        while True:
            items = await self._client.fetch_page(page, self._page_size)
            try:
                records = [RepositoryRecord.from_api(item) for item in items]
            except (KeyError, TypeError, ValueError) as exc:
                raise MalformedPageError(f"Unexpected repository payload on page {page}") from exc
            fetched.extend(records)

            if watermark is not None and records:
                oldest = records[-1].activity_at
                if oldest is not None and oldest < watermark:
                    LOGGER.debug("Page %s reaches past the watermark; stopping", page)
                    break
            if len(items) < self._page_size:
                break
            page += 1
        return fetched


__all__ = [
    "SnapshotSyncer",
    "SyncOutcome",
    "SyncSkipped",
    "SyncSucceeded",
    "SyncFailed",
    "FailureKind",
    "MalformedPageError",
]

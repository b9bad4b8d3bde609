"""Helpers for respecting GitHub's REST rate limit before a sync."""

from __future__ import annotations

import logging
from typing import Protocol

from .config import RateStatus
from .github_client import TransportError

LOGGER = logging.getLogger(__name__)


class RateLimitSource(Protocol):
    async def rate_limit(self) -> dict: ...


class RateLimiter:
    """Reads the core quota from GitHub and decides whether a sync may start."""

    def __init__(self, client: RateLimitSource) -> None:
        self._client = client

    async def check_quota(self) -> RateStatus | None:
        """Return the current core rate limit, or ``None`` when it is unknown."""

        try:
            payload = await self._client.rate_limit()
        except TransportError as exc:
            LOGGER.warning("Could not read GitHub rate limit: %s", exc)
            return None

        try:
            core = payload["resources"]["core"]
            return RateStatus(
                limit=int(core["limit"]),
                remaining=int(core["remaining"]),
                reset=int(core["reset"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Unexpected rate limit payload: %r", exc)
            return None


def has_headroom(status: RateStatus | None, buffer: float) -> bool:
    """Whether at least ``buffer`` of the quota remains.

    An unknown status or ceiling lets the sync proceed.
    """

    if status is None:
        return True
    headroom = status.headroom
    if headroom is None:
        return True
    return headroom >= buffer


__all__ = ["RateLimiter", "has_headroom"]

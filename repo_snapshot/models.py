"""Domain models for the repository snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable


UTC = timezone.utc


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning ``None`` when it cannot be read.

    Naive values (including plain dates) are taken to be UTC.
    """

    if not value or not isinstance(value, str):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _unique_topics(topics: Iterable[Any] | None) -> list[str]:
    seen: dict[str, None] = {}
    for topic in topics or ():
        if isinstance(topic, str):
            seen.setdefault(topic, None)
    return list(seen)


@dataclass(slots=True)
class RepositoryRecord:
    """Normalized representation of a GitHub repository."""

    id: int | str
    name: str = ""
    full_name: str = ""
    description: str | None = None
    language: str | None = None
    topics: list[str] = field(default_factory=list)
    updated_at: str | None = None
    pushed_at: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    size: int = 0
    private: bool = False
    fork: bool = False
    archived: bool = False
    disabled: bool = False
    visibility: str | None = None
    html_url: str | None = None
    clone_url: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "RepositoryRecord":
        """Convert a REST ``/repos`` item into a :class:`RepositoryRecord`."""

        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            full_name=payload.get("full_name") or "",
            description=payload.get("description"),
            language=payload.get("language"),
            topics=_unique_topics(payload.get("topics")),
            updated_at=payload.get("updated_at"),
            pushed_at=payload.get("pushed_at"),
            stargazers_count=payload.get("stargazers_count") or 0,
            forks_count=payload.get("forks_count") or 0,
            size=payload.get("size") or 0,
            private=bool(payload.get("private", False)),
            fork=bool(payload.get("fork", False)),
            archived=bool(payload.get("archived", False)),
            disabled=bool(payload.get("disabled", False)),
            visibility=payload.get("visibility"),
            html_url=payload.get("html_url"),
            clone_url=payload.get("clone_url"),
        )

    # Persisted records use the same field names as the API.
    from_dict = from_api

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "full_name": self.full_name,
            "description": self.description,
            "language": self.language,
            "stargazers_count": self.stargazers_count,
            "forks_count": self.forks_count,
            "updated_at": self.updated_at,
            "pushed_at": self.pushed_at,
            "size": self.size,
            "private": self.private,
            "fork": self.fork,
            "html_url": self.html_url,
            "clone_url": self.clone_url,
            "topics": list(self.topics),
            "archived": self.archived,
            "disabled": self.disabled,
            "visibility": self.visibility,
        }

    @property
    def activity_at(self) -> datetime | None:
        """Last update time, falling back to the last push."""

        return parse_timestamp(self.updated_at) or parse_timestamp(self.pushed_at)


@dataclass(slots=True)
class Snapshot:
    """The full persisted set of repositories plus freshness metadata."""

    repositories: list[RepositoryRecord]
    last_updated: datetime

    @classmethod
    def build(cls, records: Iterable[RepositoryRecord], now: datetime | None = None) -> "Snapshot":
        return cls(repositories=list(records), last_updated=now or datetime.now(tz=UTC))

    @property
    def total_count(self) -> int:
        return len(self.repositories)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repositories": [record.to_dict() for record in self.repositories],
            "last_updated": format_timestamp(self.last_updated),
            "total_count": self.total_count,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Snapshot":
        """Load a persisted snapshot document.

        Raises ``ValueError`` when the document does not have the expected shape.
        """

        if not isinstance(payload, dict):
            raise ValueError("snapshot document must be a JSON object")
        repositories = payload.get("repositories")
        if not isinstance(repositories, list):
            raise ValueError("snapshot 'repositories' must be a list")
        last_updated = parse_timestamp(payload.get("last_updated"))
        if last_updated is None:
            raise ValueError(f"snapshot 'last_updated' is not a timestamp: {payload.get('last_updated')!r}")

        records: list[RepositoryRecord] = []
        for index, item in enumerate(repositories):
            if not isinstance(item, dict) or "id" not in item:
                raise ValueError(f"snapshot repository #{index} has no identity")
            records.append(RepositoryRecord.from_dict(item))
        return cls(repositories=records, last_updated=last_updated)


__all__ = ["RepositoryRecord", "Snapshot", "parse_timestamp", "format_timestamp", "UTC"]

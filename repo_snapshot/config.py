"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PositiveInt


UTC = timezone.utc

DEFAULT_INTERVAL_SECONDS = 2 * 60 * 60


class GitHubSettings(BaseModel):
    """Configuration options for the GitHub REST API."""

    token: str | None = Field(default=None, description="Personal access token or GitHub Actions token.")
    username: str = Field(default="AswinBarath", min_length=1, description="Account whose repositories are synced.")
    api_url: str = Field(default="https://api.github.com")
    page_size: PositiveInt = Field(default=100, le=100, description="Number of repositories fetched per page.")
    request_timeout: float = Field(default=30.0, ge=1.0, description="Timeout for a single HTTP request in seconds.")
    user_agent: str = Field(default="repo-snapshot")


class SyncSettings(BaseModel):
    """Tunable parameters for the sync cycle."""

    interval_seconds: float = Field(
        default=DEFAULT_INTERVAL_SECONDS, gt=0, description="Delay between scheduled sync cycles."
    )
    rate_limit_buffer: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Minimum fraction of the rate limit that must remain before a sync runs.",
    )


class StorageSettings(BaseModel):
    """Where the snapshot lives on disk."""

    data_file: Path = Field(default=Path("data") / "repos.json")


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: PositiveInt = 3000
    static_dir: Path | None = Field(default=Path("public"), description="Directory served at '/', if present.")


class AppConfig(BaseModel):
    """Root configuration container."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, overrides: dict[str, Any] | None = None) -> "AppConfig":
        """Construct a configuration object from environment variables."""

        env = env if env is not None else os.environ
        overrides = overrides or {}

        github = GitHubSettings(
            token=overrides.get("github_token") or env.get("GITHUB_TOKEN") or env.get("GH_TOKEN"),
            username=overrides.get("github_username") or env.get("GITHUB_USERNAME") or "AswinBarath",
            api_url=overrides.get("github_api_url") or env.get("GITHUB_API_URL") or "https://api.github.com",
            page_size=int(overrides.get("github_page_size") or env.get("GITHUB_PAGE_SIZE", 100)),
            request_timeout=float(overrides.get("github_request_timeout") or env.get("GITHUB_REQUEST_TIMEOUT", 30.0)),
        )

        sync = SyncSettings(
            interval_seconds=overrides.get("sync_interval_seconds")
            or _interval_from_env(env)
            or DEFAULT_INTERVAL_SECONDS,
            rate_limit_buffer=float(
                overrides.get("rate_limit_buffer")
                if overrides.get("rate_limit_buffer") is not None
                else env.get("RATE_LIMIT_BUFFER", 0.2)
            ),
        )

        storage = StorageSettings(
            data_file=Path(overrides.get("data_file") or env.get("DATA_FILE") or Path("data") / "repos.json"),
        )

        static_dir = overrides.get("static_dir") or env.get("SERVER_STATIC_DIR") or "public"
        server = ServerSettings(
            host=overrides.get("host") or env.get("HOST") or "0.0.0.0",
            port=int(overrides.get("port") or env.get("PORT", 3000)),
            static_dir=Path(static_dir),
        )

        return cls(github=github, sync=sync, storage=storage, server=server)


def _interval_from_env(env: dict[str, str]) -> float | None:
    # UPDATE_INTERVAL_MS is kept for deployments configured in milliseconds.
    if value := env.get("SYNC_INTERVAL_SECONDS"):
        return float(value)
    if value := env.get("UPDATE_INTERVAL_MS"):
        return float(value) / 1000.0
    return None


@dataclass(slots=True)
class RateStatus:
    """Snapshot of GitHub's core rate limit state."""

    limit: int
    remaining: int
    reset: int

    @property
    def headroom(self) -> float | None:
        if self.limit <= 0:
            return None
        return self.remaining / self.limit

    def to_dict(self) -> dict[str, int]:
        return {"limit": self.limit, "remaining": self.remaining, "reset": self.reset}


__all__ = [
    "AppConfig",
    "GitHubSettings",
    "SyncSettings",
    "StorageSettings",
    "ServerSettings",
    "RateStatus",
    "UTC",
]

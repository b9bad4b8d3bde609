"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from repo_snapshot.config import GitHubSettings, SyncSettings
from repo_snapshot.github_client import GitHubRestClient
from repo_snapshot.store import SnapshotStore
from repo_snapshot.syncer import SnapshotSyncer


def repo(repo_id: int, updated_at: str, **extra: Any) -> dict[str, Any]:
    """A minimal REST repository payload."""

    payload = {
        "id": repo_id,
        "name": f"repo-{repo_id}",
        "full_name": f"octocat/repo-{repo_id}",
        "updated_at": updated_at,
        "pushed_at": updated_at,
        "stargazers_count": repo_id,
        "topics": [],
    }
    payload.update(extra)
    return payload


class FakeGitHub:
    """In-memory stand-in for the parts of the REST API the syncer uses."""

    def __init__(self, repos: list[dict[str, Any]] | None = None, *, limit: int = 5000, remaining: int = 5000) -> None:
        self.repos = list(repos or [])
        self.limit = limit
        self.remaining = remaining
        self.requests: list[httpx.Request] = []
        self.fail_pages: set[int] = set()
        self.rate_limit_status = 200

    @property
    def page_requests(self) -> list[int]:
        return [int(r.url.params["page"]) for r in self.requests if r.url.path.endswith("/repos")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/rate_limit":
            if self.rate_limit_status != 200:
                return httpx.Response(self.rate_limit_status, json={"message": "boom"})
            core = {"limit": self.limit, "remaining": self.remaining, "reset": 1_700_000_000}
            return httpx.Response(200, json={"resources": {"core": core}, "rate": core})
        if request.url.path.endswith("/repos"):
            page = int(request.url.params["page"])
            per_page = int(request.url.params["per_page"])
            if page in self.fail_pages:
                return httpx.Response(502, json={"message": "Server Error"})
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.repos[start : start + per_page])
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self, settings: GitHubSettings | None = None) -> GitHubRestClient:
        transport = httpx.MockTransport(self.handler)
        return GitHubRestClient(settings or GitHubSettings(username="octocat"), httpx.AsyncClient(transport=transport))


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "data" / "repos.json")


@pytest.fixture
def make_syncer(store):
    def factory(github: FakeGitHub, *, page_size: int = 100, buffer: float = 0.2) -> SnapshotSyncer:
        return SnapshotSyncer(
            github.client(),
            store,
            SyncSettings(rate_limit_buffer=buffer),
            page_size=page_size,
        )

    return factory


def write_snapshot(path, repositories: list[dict[str, Any]], last_updated: str = "2024-01-06T00:00:00.000Z") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {"repositories": repositories, "last_updated": last_updated, "total_count": len(repositories)}
    path.write_text(json.dumps(document), encoding="utf-8")

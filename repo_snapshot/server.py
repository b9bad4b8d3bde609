"""FastAPI app serving the cached snapshot."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import AppConfig
from .github_client import GitHubRestClient
from .rate_limiter import RateLimiter
from .scheduler import SyncScheduler
from .store import CorruptSnapshotError, SnapshotStore
from .syncer import SnapshotSyncer, SyncFailed

LOGGER = logging.getLogger(__name__)


def create_app(config: AppConfig, client: GitHubRestClient | None = None) -> FastAPI:
    """Build the app. ``client`` is owned by the caller when given."""

    github = client or GitHubRestClient(config.github)
    store = SnapshotStore(config.storage.data_file)
    rate_limiter = RateLimiter(github)
    syncer = SnapshotSyncer(
        github,
        store,
        config.sync,
        page_size=config.github.page_size,
        rate_limiter=rate_limiter,
    )
    scheduler = SyncScheduler(syncer, config.sync.interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not store.exists():
            LOGGER.info("No snapshot at %s; running initial sync", store.path)
            try:
                outcome = await syncer.sync()
            except Exception:
                LOGGER.exception("Initial fetch failed")
            else:
                if isinstance(outcome, SyncFailed):
                    LOGGER.warning("Initial fetch failed: %s", outcome.cause)
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            if client is None:
                await github.close()

    app = FastAPI(title="repo-snapshot", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.store = store
    app.state.syncer = syncer
    app.state.scheduler = scheduler

    @app.get("/api/repos")
    async def get_repos():
        try:
            snapshot = await asyncio.to_thread(store.read)
        except CorruptSnapshotError as exc:
            LOGGER.error("Failed reading cache: %s", exc)
            return JSONResponse(status_code=500, content={"error": "Failed reading cache", "details": str(exc)})
        if snapshot is None:
            return JSONResponse(status_code=404, content={"error": "Cache not found. Run initial fetch."})
        return snapshot.to_dict()

    @app.get("/api/status")
    async def get_status():
        rate = await rate_limiter.check_quota()
        try:
            snapshot = await asyncio.to_thread(store.read)
        except CorruptSnapshotError as exc:
            LOGGER.error("Failed reading cache: %s", exc)
            snapshot = None
        cache_info = None
        if snapshot is not None:
            document = snapshot.to_dict()
            cache_info = {"last_updated": document["last_updated"], "total_count": document["total_count"]}
        return {
            "rate": rate.to_dict() if rate else None,
            "cacheInfo": cache_info,
            "syncing": syncer.running,
        }

    @app.post("/internal/update")
    async def trigger_update():
        outcome = await syncer.sync()
        if isinstance(outcome, SyncFailed):
            return JSONResponse(
                status_code=500,
                content={"error": "Update failed", "kind": outcome.kind.value, "details": str(outcome.cause)},
            )
        return {"status": "ok", **outcome.to_dict()}

    static_dir = config.server.static_dir
    if static_dir is not None and static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


__all__ = ["create_app"]

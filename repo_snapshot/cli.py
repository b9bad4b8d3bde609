"""Command line interface for the repository snapshot service."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import AppConfig
from .github_client import GitHubRestClient
from .rate_limiter import RateLimiter
from .store import CorruptSnapshotError, SnapshotStore
from .syncer import SnapshotSyncer, SyncFailed, SyncSkipped

app = typer.Typer(add_completion=False)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _load_config(
    username: Optional[str] = None,
    github_token: Optional[str] = None,
    data_file: Optional[Path] = None,
) -> AppConfig:
    overrides = {}
    if username:
        overrides["github_username"] = username
    if github_token:
        overrides["github_token"] = github_token
    if data_file:
        overrides["data_file"] = data_file
    return AppConfig.from_env(overrides=overrides)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind"),
    port: Optional[int] = typer.Option(None, help="Port to bind"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Serve the snapshot over HTTP and keep it fresh in the background."""

    import uvicorn

    from .server import create_app

    configure_logging(log_level)
    config = AppConfig.from_env()
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=log_level.lower(),
    )


@app.command("sync")
def sync(
    full: bool = typer.Option(False, "--full", help="Ignore the existing snapshot and re-list every repository"),
    username: Optional[str] = typer.Option(None, help="GitHub account to sync"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    data_file: Optional[Path] = typer.Option(None, dir_okay=False, help="Snapshot file"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Run a single sync cycle and write the snapshot."""

    configure_logging(log_level)
    config = _load_config(username, github_token, data_file)

    async def runner():
        async with GitHubRestClient(config.github) as client:
            store = SnapshotStore(config.storage.data_file)
            syncer = SnapshotSyncer(client, store, config.sync, page_size=config.github.page_size)
            return await syncer.sync(full=full)

    outcome = asyncio.run(runner())
    if isinstance(outcome, SyncFailed):
        typer.echo(f"Sync failed ({outcome.kind.value}): {outcome.cause}", err=True)
        raise typer.Exit(code=1)
    if isinstance(outcome, SyncSkipped):
        typer.echo(f"Sync skipped: {outcome.reason}")
        return
    typer.echo(
        f"Fetched {outcome.fetched_count} repositories; snapshot at {config.storage.data_file} "
        f"holds {outcome.merged_count}."
    )


@app.command("status")
def status(
    data_file: Optional[Path] = typer.Option(None, dir_okay=False, help="Snapshot file"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Print the current rate limit and snapshot freshness."""

    configure_logging(log_level)
    config = _load_config(data_file=data_file)

    async def runner():
        async with GitHubRestClient(config.github) as client:
            return await RateLimiter(client).check_quota()

    rate = asyncio.run(runner())
    try:
        snapshot = SnapshotStore(config.storage.data_file).read()
    except CorruptSnapshotError as exc:
        typer.echo(f"Snapshot is unreadable: {exc}", err=True)
        snapshot = None

    cache_info = None
    if snapshot is not None:
        document = snapshot.to_dict()
        cache_info = {"last_updated": document["last_updated"], "total_count": document["total_count"]}
    typer.echo(json.dumps({"rate": rate.to_dict() if rate else None, "cacheInfo": cache_info}, indent=2))


__all__ = ["app"]

"""Tests for the fetch-merge-persist cycle."""

from __future__ import annotations

import asyncio
import json
import logging
import os

import pytest

from repo_snapshot.syncer import FailureKind, SyncFailed, SyncSkipped, SyncSucceeded

from conftest import FakeGitHub, repo, write_snapshot


def _ids(store) -> dict:
    return {record.id: record for record in store.read().repositories}


def test_incremental_sync_merges_into_prior_snapshot(store, make_syncer):
    write_snapshot(store.path, [repo(1, "2024-01-01"), repo(2, "2024-01-05")])
    github = FakeGitHub([repo(2, "2024-02-01"), repo(3, "2024-01-10")])

    outcome = asyncio.run(make_syncer(github).sync())

    assert isinstance(outcome, SyncSucceeded)
    assert outcome.fetched_count == 2
    assert outcome.merged_count == 3
    records = _ids(store)
    assert set(records) == {1, 2, 3}
    assert records[1].updated_at == "2024-01-01"
    assert records[2].updated_at == "2024-02-01"
    assert json.loads(store.path.read_text(encoding="utf-8"))["total_count"] == 3
    assert github.page_requests == [1]


def test_sync_twice_without_remote_changes_is_idempotent(store, make_syncer):
    github = FakeGitHub([repo(i, f"2024-01-{30 - i:02d}") for i in range(1, 6)])
    syncer = make_syncer(github, page_size=2)

    asyncio.run(syncer.sync())
    first = [record.to_dict() for record in store.read().repositories]
    asyncio.run(syncer.sync())
    second = [record.to_dict() for record in store.read().repositories]

    assert sorted(first, key=lambda item: item["id"]) == sorted(second, key=lambda item: item["id"])


def test_pagination_stops_once_page_is_older_than_watermark(store, make_syncer):
    write_snapshot(store.path, [repo(10, "2024-01-05")])
    github = FakeGitHub(
        [
            repo(1, "2024-03-01"),
            repo(2, "2024-01-04"),
            repo(3, "2024-01-03"),
            repo(4, "2024-01-02"),
            repo(5, "2024-01-01"),
            repo(6, "2023-12-31"),
        ]
    )

    outcome = asyncio.run(make_syncer(github, page_size=2).sync())

    assert github.page_requests == [1]
    assert outcome.fetched_count == 2
    assert set(_ids(store)) == {1, 2, 10}


def test_pagination_continues_while_page_is_not_older_than_watermark(store, make_syncer):
    write_snapshot(store.path, [repo(10, "2024-01-05")])
    github = FakeGitHub(
        [
            repo(1, "2024-03-01"),
            repo(2, "2024-01-05"),
            repo(3, "2024-01-04"),
            repo(4, "2024-01-03"),
            repo(5, "2024-01-02"),
        ]
    )

    asyncio.run(make_syncer(github, page_size=2).sync())

    assert github.page_requests == [1, 2]


def test_first_sync_walks_every_page(store, make_syncer):
    github = FakeGitHub([repo(i, f"2024-01-{30 - i:02d}") for i in range(1, 6)])

    outcome = asyncio.run(make_syncer(github, page_size=2).sync())

    assert github.page_requests == [1, 2, 3]
    assert outcome.merged_count == 5


def test_exact_multiple_of_page_size_requests_empty_final_page(store, make_syncer):
    github = FakeGitHub([repo(i, "2024-01-01") for i in range(1, 5)])

    outcome = asyncio.run(make_syncer(github, page_size=2).sync())

    assert github.page_requests == [1, 2, 3]
    assert outcome.merged_count == 4


def test_low_quota_skips_without_fetching(store, make_syncer):
    write_snapshot(store.path, [repo(1, "2024-01-01")])
    before = store.path.read_bytes()
    github = FakeGitHub([repo(2, "2024-02-01")], limit=60, remaining=5)

    outcome = asyncio.run(make_syncer(github).sync())

    assert isinstance(outcome, SyncSkipped)
    assert outcome.rate.remaining == 5
    assert outcome.to_dict()["skipped"] is True
    assert github.page_requests == []
    assert store.path.read_bytes() == before


def test_unknown_quota_proceeds(store, make_syncer):
    github = FakeGitHub([repo(1, "2024-01-01")])
    github.rate_limit_status = 503

    outcome = asyncio.run(make_syncer(github).sync())

    assert isinstance(outcome, SyncSucceeded)


def test_transport_failure_preserves_prior_snapshot(store, make_syncer):
    write_snapshot(store.path, [repo(1, "2024-01-01")])
    before = store.path.read_bytes()
    github = FakeGitHub([repo(i, "2024-02-01") for i in range(2, 6)])
    github.fail_pages = {2}

    outcome = asyncio.run(make_syncer(github, page_size=2).sync())

    assert isinstance(outcome, SyncFailed)
    assert outcome.kind is FailureKind.TRANSPORT
    assert outcome.cause.status_code == 502
    assert store.path.read_bytes() == before


def test_write_failure_reports_persistence_error(store, make_syncer, monkeypatch):
    write_snapshot(store.path, [repo(1, "2024-01-01")])
    before = store.path.read_bytes()
    github = FakeGitHub([repo(2, "2024-02-01")])

    def boom(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(os, "replace", boom)
    outcome = asyncio.run(make_syncer(github).sync())
    monkeypatch.undo()

    assert isinstance(outcome, SyncFailed)
    assert outcome.kind is FailureKind.PERSISTENCE
    assert store.path.read_bytes() == before


def test_corrupt_snapshot_is_logged_and_replaced(store, make_syncer, caplog):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("not json", encoding="utf-8")
    github = FakeGitHub([repo(1, "2024-01-01"), repo(2, "2024-01-02")])

    with caplog.at_level(logging.ERROR):
        outcome = asyncio.run(make_syncer(github).sync())

    assert isinstance(outcome, SyncSucceeded)
    assert set(_ids(store)) == {1, 2}
    assert "unreadable snapshot" in caplog.text


def test_full_sync_ignores_prior_snapshot(store, make_syncer):
    write_snapshot(store.path, [repo(1, "2024-01-01"), repo(2, "2024-01-05")])
    github = FakeGitHub([repo(2, "2024-02-01"), repo(3, "2024-01-10")])

    outcome = asyncio.run(make_syncer(github).sync(full=True))

    assert outcome.merged_count == 2
    assert set(_ids(store)) == {2, 3}


def test_empty_remote_without_prior_writes_empty_snapshot(store, make_syncer):
    outcome = asyncio.run(make_syncer(FakeGitHub([])).sync())

    assert outcome.merged_count == 0
    assert json.loads(store.path.read_text(encoding="utf-8"))["total_count"] == 0


def test_concurrent_trigger_is_rejected(store, make_syncer):
    github = FakeGitHub([repo(1, "2024-01-01")])
    syncer = make_syncer(github)
    release = asyncio.Event()
    original_fetch = syncer._client.fetch_page

    async def slow_fetch(page, page_size=None):
        await release.wait()
        return await original_fetch(page, page_size)

    syncer._client.fetch_page = slow_fetch

    async def scenario():
        first = asyncio.create_task(syncer.sync())
        while not syncer.running:
            await asyncio.sleep(0)
        second = await syncer.sync()
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert isinstance(first, SyncSucceeded)
    assert isinstance(second, SyncSkipped)
    assert second.reason == "Sync already in progress"
    assert github.page_requests == [1]


@pytest.mark.parametrize(
    "bad_item",
    [{"name": "no-id"}, "octocat/repo-2", {"id": 2, "topics": 5}],
)
def test_malformed_page_reports_payload_failure(store, make_syncer, bad_item):
    write_snapshot(store.path, [repo(1, "2024-01-01")])
    before = store.path.read_bytes()
    github = FakeGitHub([repo(3, "2024-02-01"), bad_item])

    outcome = asyncio.run(make_syncer(github).sync())

    assert isinstance(outcome, SyncFailed)
    assert outcome.kind is FailureKind.PAYLOAD
    assert isinstance(outcome.cause.__cause__, (KeyError, TypeError))
    assert outcome.to_dict()["error"] == "payload"
    assert store.path.read_bytes() == before

"""Identity-keyed reconciliation of fetched repositories with a prior snapshot."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from .models import RepositoryRecord


def merge_records(
    prior: Sequence[RepositoryRecord],
    fresh: Sequence[RepositoryRecord],
    watermark: datetime | None,
) -> list[RepositoryRecord]:
    """Right-biased union of ``prior`` and ``fresh`` keyed on repository id.

    Without prior records or a watermark the fetch was a full listing, so the
    fresh records replace the snapshot outright.
    """

    if not prior or watermark is None:
        return _dedupe(fresh)

    merged: dict[int | str, RepositoryRecord] = {record.id: record for record in prior}
    for record in fresh:
        merged[record.id] = record
    return list(merged.values())


def _dedupe(records: Sequence[RepositoryRecord]) -> list[RepositoryRecord]:
    # A repository updated mid-sync can shift across a page boundary and show up twice.
    return list({record.id: record for record in records}.values())


__all__ = ["merge_records"]

"""Persistence layer for the repository snapshot."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from datetime import datetime
from pathlib import Path

from .models import Snapshot

LOGGER = logging.getLogger(__name__)


class CorruptSnapshotError(RuntimeError):
    """Raised when the snapshot file exists but cannot be loaded."""


class SnapshotStore:
    """Reads and atomically replaces a single JSON snapshot file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def read(self) -> Snapshot | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise CorruptSnapshotError(f"Could not read snapshot {self._path}") from exc

        try:
            return Snapshot.from_dict(json.loads(text))
        except (TypeError, ValueError) as exc:
            raise CorruptSnapshotError(f"Snapshot {self._path} is not valid: {exc}") from exc

    def write(self, snapshot: Snapshot) -> None:
        """Replace the snapshot file in one step.

        The document is written to a temporary sibling and renamed over the
        target, so readers see either the old file or the new one.
        """

        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(snapshot.to_dict(), indent=2)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, self._file_mode())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        LOGGER.debug("Wrote snapshot with %s repositories to %s", snapshot.total_count, self._path)

    def _file_mode(self) -> int:
        # mkstemp creates 0600 files; keep the existing mode or fall back to the umask default.
        try:
            return stat.S_IMODE(self._path.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask


def derive_watermark(snapshot: Snapshot | None) -> datetime | None:
    """Latest activity timestamp across the snapshot's repositories."""

    if snapshot is None:
        return None
    timestamps = [ts for ts in (record.activity_at for record in snapshot.repositories) if ts is not None]
    return max(timestamps, default=None)


__all__ = ["SnapshotStore", "CorruptSnapshotError", "derive_watermark"]

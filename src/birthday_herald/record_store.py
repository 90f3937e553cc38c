from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

from birthday_herald.date_logic import InvalidDateError, make_date, validate_utc_offset
from birthday_herald.models import BirthdayRecord, Snapshot

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class StoreError(Exception):
    pass


class CorruptedStoreError(StoreError):
    def __init__(self, path: Path, backup_path: Path) -> None:
        super().__init__(f"Birthday store {path} is unreadable; backed up to {backup_path}")
        self.path = path
        self.backup_path = backup_path


class TransientIOError(StoreError):
    pass


def backup_path_for(path: Path) -> Path:
    return path.with_name(f"{path.name}.bak")


def _record_from_json(row: dict[str, Any]) -> BirthdayRecord:
    if not isinstance(row, dict):
        raise TypeError("entry must be an object")

    day = int(row["day"])
    month = int(row["month"])
    year = int(row["year"]) if row.get("year") is not None else None
    make_date(day, month, year)

    last_announcement = row.get("last_announcement")
    return BirthdayRecord(
        owner_id=int(row["user_id"]),
        community_id=int(row["guild_id"]),
        display_name=str(row["name"]),
        birth_month=month,
        birth_day=day,
        birth_year=year,
        utc_offset_hours=validate_utc_offset(int(row.get("utc_offset", 0))),
        last_announced=date.fromisoformat(last_announcement) if last_announcement else None,
    )


def _record_to_json(record: BirthdayRecord) -> dict[str, Any]:
    return {
        "user_id": record.owner_id,
        "guild_id": record.community_id,
        "name": record.display_name,
        "day": record.birth_day,
        "month": record.birth_month,
        "year": record.birth_year,
        "utc_offset": record.utc_offset_hours,
        "last_announcement": record.last_announced.isoformat() if record.last_announced else None,
    }


def parse_snapshot(data: Any) -> Snapshot:
    if not isinstance(data, dict):
        raise TypeError("store document must be an object")

    entries = data.get("entries", [])
    channels = data.get("server_channels", {})
    if not isinstance(entries, list) or not isinstance(channels, dict):
        raise TypeError("entries must be a list and server_channels an object")

    records = [_record_from_json(row) for row in entries]
    targets = {int(guild_id): int(channel_id) for guild_id, channel_id in channels.items()}
    return Snapshot(records=records, announcement_targets=targets)


def render_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "entries": [_record_to_json(record) for record in snapshot.records],
        "server_channels": {
            str(guild_id): channel_id
            for guild_id, channel_id in sorted(snapshot.announcement_targets.items())
        },
    }


class RecordStore:
    """Single JSON document holding every birthday record and announcement target.

    All mutation goes through :meth:`transact`, which holds one lock across
    the read, the mutation and the write so concurrent callers can never
    lose each other's updates.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read_snapshot(self) -> Snapshot:
        with self._lock:
            return self._read_unlocked()

    def write_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._write_unlocked(snapshot)

    def transact(self, mutator: Callable[[Snapshot], T]) -> T:
        with self._lock:
            snapshot = self._read_unlocked()
            result = mutator(snapshot)
            self._write_unlocked(snapshot)
            return result

    def _read_unlocked(self) -> Snapshot:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return Snapshot()
        except OSError as exc:
            raise TransientIOError(f"Could not read {self._path}: {exc}") from exc

        try:
            return self._parse(raw)
        except CorruptedStoreError as exc:
            LOGGER.warning("%s; continuing with an empty store", exc)
            return Snapshot(recovered_from=exc.backup_path)

    def _parse(self, raw: bytes) -> Snapshot:
        try:
            return parse_snapshot(json.loads(raw.decode("utf-8")))
        except (ValueError, TypeError, KeyError, InvalidDateError) as exc:
            backup = backup_path_for(self._path)
            try:
                shutil.copyfile(self._path, backup)
            except OSError as copy_exc:
                # The next write would destroy the only copy.
                raise TransientIOError(
                    f"Could not back up corrupted store {self._path}: {copy_exc}"
                ) from copy_exc
            raise CorruptedStoreError(self._path, backup) from exc

    def _write_unlocked(self, snapshot: Snapshot) -> None:
        payload = render_snapshot(snapshot)
        temp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as temp_file:
                temp_name = temp_file.name
                json.dump(payload, temp_file, indent=2)
                temp_file.write("\n")
                temp_file.flush()
                os.fsync(temp_file.fileno())

            os.replace(temp_name, self._path)
        except OSError as exc:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)
            raise TransientIOError(f"Could not write {self._path}: {exc}") from exc

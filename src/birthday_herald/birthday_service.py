from __future__ import annotations

import logging
from datetime import date

from birthday_herald.date_logic import make_date, next_occurrence, validate_utc_offset
from birthday_herald.models import BirthdayRecord, Snapshot
from birthday_herald.record_store import RecordStore

LOGGER = logging.getLogger(__name__)


class BirthdayService:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def set_birthday(
        self,
        owner_id: int,
        community_id: int,
        display_name: str,
        day: int,
        month: int,
        year: int | None = None,
        utc_offset_hours: int = 0,
    ) -> BirthdayRecord:
        """Create or replace the birthday of ``owner_id`` in ``community_id``.

        Raises InvalidDateError before touching the store when the date or
        offset is out of range. The replacement starts with no announcement
        recorded, so a corrected date can still be announced this year.
        """
        make_date(day, month, year)
        validate_utc_offset(utc_offset_hours)
        name = display_name.strip()
        if not name:
            raise ValueError("display name must not be empty")

        record = BirthdayRecord(
            owner_id=owner_id,
            community_id=community_id,
            display_name=name,
            birth_month=month,
            birth_day=day,
            birth_year=year,
            utc_offset_hours=utc_offset_hours,
            last_announced=None,
        )

        def upsert(snapshot: Snapshot) -> None:
            snapshot.records = [
                existing for existing in snapshot.records if existing.key() != record.key()
            ]
            snapshot.records.append(record)

        self._store.transact(upsert)
        LOGGER.info("Stored birthday for user %s in community %s", owner_id, community_id)
        return record

    def get_birthday(self, owner_id: int, community_id: int) -> BirthdayRecord | None:
        return self._store.read_snapshot().find(owner_id, community_id)

    def list_birthdays(self, community_id: int, today: date) -> list[BirthdayRecord]:
        records = [
            record
            for record in self._store.read_snapshot().records
            if record.community_id == community_id
        ]
        records.sort(
            key=lambda record: (
                next_occurrence(record.birth_month, record.birth_day, today),
                record.display_name.lower(),
            )
        )
        return records

    def set_announcement_target(self, community_id: int, destination: int) -> None:
        def assign(snapshot: Snapshot) -> None:
            snapshot.announcement_targets[community_id] = destination

        self._store.transact(assign)
        LOGGER.info("Announcements for community %s now go to %s", community_id, destination)

    def get_announcement_target(self, community_id: int) -> int | None:
        return self._store.read_snapshot().announcement_targets.get(community_id)

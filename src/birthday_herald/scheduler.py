from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone

from birthday_herald.date_logic import age_on, occurrence_due_on
from birthday_herald.models import Announcement, BirthdayRecord, Snapshot
from birthday_herald.record_store import RecordStore, StoreError

LOGGER = logging.getLogger(__name__)

AnnounceCallback = Callable[[Announcement], Awaitable[bool]]


class SchedulerState(enum.Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"


def due_occurrence(record: BirthdayRecord, today_utc: date) -> date | None:
    """Local birthday being celebrated on ``today_utc``, unless already announced this year."""
    if record.last_announced_year == today_utc.year:
        return None
    return occurrence_due_on(
        record.birth_month, record.birth_day, record.utc_offset_hours, today_utc
    )


class AnnouncementScheduler:
    """Announces birthdays that are due, at most once per UTC year.

    A sweep decides what is due and advances ``last_announced`` inside a
    single store transaction. Posting happens afterwards, outside the lock;
    if the write fails nothing is posted and the same records stay due for
    the next tick.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        announce: AnnounceCallback,
    ) -> None:
        self._store = store
        self._announce = announce
        self.state = SchedulerState.IDLE

    def sweep(self, now: datetime) -> list[Announcement]:
        today_utc = now.astimezone(timezone.utc).date()

        def mark_due(snapshot: Snapshot) -> list[Announcement]:
            if snapshot.recovered_from is not None:
                LOGGER.warning(
                    "Sweeping a reset birthday store; earlier records are in %s",
                    snapshot.recovered_from,
                )
            announcements: list[Announcement] = []
            for record in snapshot.records:
                occurrence = due_occurrence(record, today_utc)
                if occurrence is None:
                    continue

                # Marked even without a target so the record is not retried all year.
                record.last_announced = today_utc
                destination = snapshot.announcement_targets.get(record.community_id)
                if destination is None:
                    LOGGER.info(
                        "Birthday of user %s is due but community %s has no announcement chat",
                        record.owner_id,
                        record.community_id,
                    )
                    continue

                announcements.append(
                    Announcement(
                        owner_id=record.owner_id,
                        community_id=record.community_id,
                        display_name=record.display_name,
                        destination=destination,
                        occurrence=occurrence,
                        turning_age=age_on(
                            record.birth_year, record.birth_month, record.birth_day, occurrence
                        ),
                    )
                )
            return announcements

        self.state = SchedulerState.SWEEPING
        try:
            return self._store.transact(mark_due)
        finally:
            self.state = SchedulerState.IDLE

    async def tick(self, now: datetime | None = None) -> int:
        if now is None:
            now = datetime.now(timezone.utc)

        try:
            due = await asyncio.to_thread(self.sweep, now)
        except StoreError:
            LOGGER.warning("Birthday sweep aborted; retrying next tick", exc_info=True)
            return 0

        sent_count = 0
        for announcement in due:
            if await self._announce(announcement):
                sent_count += 1

        if due:
            LOGGER.info(
                "Posted %s of %s birthday announcements for %s",
                sent_count,
                len(due),
                now.astimezone(timezone.utc).date().isoformat(),
            )
        return sent_count

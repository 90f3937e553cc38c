import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest

from birthday_herald.main import scheduled_announcement_callback
from birthday_herald.models import Announcement
from birthday_herald.record_store import RecordStore
from birthday_herald.scheduler import AnnouncementScheduler


@dataclass
class FakeApplication:
    bot_data: dict


@dataclass
class FakeContext:
    application: FakeApplication


@dataclass
class RecordingAnnouncer:
    delivered: list[Announcement] = field(default_factory=list)

    async def announce(self, announcement: Announcement) -> bool:
        self.delivered.append(announcement)
        return True


class ExplodingScheduler:
    def __init__(self) -> None:
        self.calls = 0

    async def tick(self, now: datetime | None = None) -> int:
        self.calls += 1
        raise OverflowError("date value out of range")


def _context(scheduler) -> FakeContext:
    return FakeContext(application=FakeApplication(bot_data={"scheduler": scheduler}))


def test_callback_runs_a_tick(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "birthdays.json")
    scheduler = AnnouncementScheduler(store=store, announce=RecordingAnnouncer().announce)

    asyncio.run(scheduled_announcement_callback(_context(scheduler)))

    assert store.path.exists()


def test_callback_survives_unexpected_errors(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = ExplodingScheduler()
    context = _context(scheduler)

    with caplog.at_level(logging.ERROR):
        asyncio.run(scheduled_announcement_callback(context))
        asyncio.run(scheduled_announcement_callback(context))

    assert scheduler.calls == 2
    assert "Birthday announcement tick failed" in caplog.text


def test_callback_recovers_from_out_of_range_offset_in_store(tmp_path: Path) -> None:
    path = tmp_path / "birthdays.json"
    path.write_text(
        json.dumps(
            {
                "entries": [
                    {"user_id": 1, "guild_id": 10, "name": "x", "day": 15, "month": 6, "utc_offset": 10**9}
                ],
                "server_channels": {"10": 555},
            }
        ),
        encoding="utf-8",
    )
    announcer = RecordingAnnouncer()
    scheduler = AnnouncementScheduler(store=RecordStore(path), announce=announcer.announce)

    asyncio.run(scheduled_announcement_callback(_context(scheduler)))

    assert announcer.delivered == []
    assert (tmp_path / "birthdays.json.bak").exists()
    assert json.loads(path.read_text(encoding="utf-8")) == {"entries": [], "server_channels": {}}

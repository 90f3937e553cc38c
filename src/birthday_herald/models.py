from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path


@dataclass
class BirthdayRecord:
    owner_id: int
    community_id: int
    display_name: str
    birth_month: int
    birth_day: int
    birth_year: int | None
    utc_offset_hours: int = 0
    last_announced: date | None = None

    @property
    def last_announced_year(self) -> int | None:
        if self.last_announced is None:
            return None
        return self.last_announced.year

    def key(self) -> tuple[int, int]:
        return self.owner_id, self.community_id


@dataclass
class Snapshot:
    records: list[BirthdayRecord] = field(default_factory=list)
    announcement_targets: dict[int, int] = field(default_factory=dict)
    # Set when the on-disk document was unreadable and has been backed up.
    recovered_from: Path | None = None

    def find(self, owner_id: int, community_id: int) -> BirthdayRecord | None:
        for record in self.records:
            if record.owner_id == owner_id and record.community_id == community_id:
                return record
        return None


@dataclass(frozen=True)
class Announcement:
    owner_id: int
    community_id: int
    display_name: str
    destination: int
    occurrence: date
    turning_age: int | None

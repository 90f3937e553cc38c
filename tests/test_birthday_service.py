import threading
from datetime import date
from pathlib import Path

import pytest

from birthday_herald.birthday_service import BirthdayService
from birthday_herald.date_logic import InvalidDateError
from birthday_herald.record_store import RecordStore


def _service(tmp_path: Path) -> BirthdayService:
    return BirthdayService(RecordStore(tmp_path / "birthdays.json"))


def test_set_and_get_birthday(tmp_path: Path) -> None:
    service = _service(tmp_path)

    service.set_birthday(1, 10, "  Alice ", day=14, month=3, year=1990, utc_offset_hours=2)
    record = service.get_birthday(1, 10)

    assert record is not None
    assert record.display_name == "Alice"
    assert (record.birth_day, record.birth_month, record.birth_year) == (14, 3, 1990)
    assert record.utc_offset_hours == 2
    assert record.last_announced_year is None


def test_get_birthday_unknown_pair_returns_none(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.set_birthday(1, 10, "Alice", day=14, month=3)

    assert service.get_birthday(1, 11) is None
    assert service.get_birthday(2, 10) is None


def test_upsert_same_pair_keeps_single_latest_record(tmp_path: Path) -> None:
    service = _service(tmp_path)

    service.set_birthday(1, 10, "Alice", day=14, month=3)
    service.set_birthday(1, 10, "Alice B", day=15, month=4, year=1991)

    records = service.list_birthdays(10, date(2026, 1, 1))
    assert len(records) == 1
    assert records[0].display_name == "Alice B"
    assert (records[0].birth_day, records[0].birth_month, records[0].birth_year) == (15, 4, 1991)


def test_upsert_resets_last_announcement(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "birthdays.json")
    service = BirthdayService(store)
    service.set_birthday(1, 10, "Alice", day=14, month=3)

    def mark(snapshot) -> None:
        snapshot.records[0].last_announced = date(2026, 3, 14)

    store.transact(mark)
    service.set_birthday(1, 10, "Alice", day=15, month=3)

    assert service.get_birthday(1, 10).last_announced is None


def test_same_owner_in_other_community_is_independent(tmp_path: Path) -> None:
    service = _service(tmp_path)

    service.set_birthday(1, 10, "Alice", day=14, month=3)
    service.set_birthday(1, 20, "Alice", day=1, month=1)
    service.set_birthday(1, 10, "Alice", day=20, month=3)

    assert service.get_birthday(1, 10).birth_day == 20
    assert service.get_birthday(1, 20).birth_day == 1


def test_other_owner_in_same_community_is_untouched(tmp_path: Path) -> None:
    service = _service(tmp_path)

    service.set_birthday(1, 10, "Alice", day=14, month=3)
    service.set_birthday(2, 10, "Bob", day=1, month=1)
    service.set_birthday(1, 10, "Alice", day=20, month=3)

    assert service.get_birthday(2, 10).display_name == "Bob"


def test_invalid_date_is_rejected_without_writing(tmp_path: Path) -> None:
    service = _service(tmp_path)

    with pytest.raises(InvalidDateError):
        service.set_birthday(1, 10, "Alice", day=30, month=2)
    with pytest.raises(InvalidDateError):
        service.set_birthday(1, 10, "Alice", day=29, month=2, year=2023)
    with pytest.raises(InvalidDateError):
        service.set_birthday(1, 10, "Alice", day=1, month=1, utc_offset_hours=20)

    assert not (tmp_path / "birthdays.json").exists()


def test_blank_display_name_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _service(tmp_path).set_birthday(1, 10, "   ", day=1, month=1)


def test_concurrent_upserts_for_different_owners_both_persist(tmp_path: Path) -> None:
    service = _service(tmp_path)
    barrier = threading.Barrier(2)

    def upsert(owner_id: int) -> None:
        barrier.wait()
        service.set_birthday(owner_id, 10, f"User {owner_id}", day=owner_id, month=5)

    threads = [threading.Thread(target=upsert, args=(owner_id,)) for owner_id in (1, 2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert service.get_birthday(1, 10) is not None
    assert service.get_birthday(2, 10) is not None


def test_announcement_target_last_write_wins(tmp_path: Path) -> None:
    service = _service(tmp_path)

    assert service.get_announcement_target(10) is None
    service.set_announcement_target(10, 100)
    service.set_announcement_target(10, 200)
    service.set_announcement_target(20, 300)

    assert service.get_announcement_target(10) == 200
    assert service.get_announcement_target(20) == 300


def test_list_birthdays_sorted_by_next_occurrence(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.set_birthday(1, 10, "January", day=5, month=1)
    service.set_birthday(2, 10, "July", day=5, month=7)
    service.set_birthday(3, 10, "March", day=5, month=3)
    service.set_birthday(4, 20, "Elsewhere", day=6, month=3)

    names = [record.display_name for record in service.list_birthdays(10, date(2026, 3, 1))]

    assert names == ["March", "July", "January"]

import asyncio
import datetime as dt

import pytest

from guestlist.ledger import GuestLedger, GuestRecord, RecordNotFoundError, load_window

MONDAY = dt.date(2025, 6, 16)
TUESDAY = dt.date(2025, 6, 17)


def make_guest(name, visit_date=MONDAY, floors=(2, 3), **kwargs):
    return GuestRecord(name=name, visit_date=visit_date, floors=floors, **kwargs)


class ListStore:
    def __init__(self, records):
        self.records = records
        self.queries = []

    async def query(self, start, end):
        self.queries.append((start, end))
        return [r for r in self.records if start <= r.visit_date <= end]


def test_add_guest_creates_bucket_and_appends():
    ledger = GuestLedger()
    ledger.add_guest(make_guest("Ada")).add_guest(make_guest("Ben"))

    assert ledger.dates() == [MONDAY]
    assert [g.name for g in ledger.guests_on("2025-06-16")] == ["Ada", "Ben"]
    assert len(ledger) == 2


def test_remove_last_guest_removes_date():
    ledger = GuestLedger().add_guest(make_guest("Ada"))

    removed = ledger.remove_guest(MONDAY, 0)

    assert removed.name == "Ada"
    assert MONDAY not in ledger
    assert ledger.dates() == []
    assert ledger.guests_on(MONDAY) == []

    ledger.add_guest(make_guest("Ben"))
    assert MONDAY in ledger


def test_no_empty_buckets_after_mixed_operations():
    ledger = GuestLedger()
    for name, day in [("a", MONDAY), ("b", TUESDAY), ("c", MONDAY), ("d", TUESDAY)]:
        ledger.add_guest(make_guest(name, day))
    ledger.remove_guest(TUESDAY, 1)
    ledger.remove_guest(MONDAY, 0)
    ledger.remove_guest(TUESDAY, 0)

    assert all(ledger.as_dict().values())
    assert ledger.dates() == [MONDAY]
    assert [g.name for g in ledger] == ["c"]


@pytest.mark.parametrize("day, index", [(TUESDAY, 0), (MONDAY, 1), (MONDAY, -1)])
def test_missing_record_raises(day, index):
    ledger = GuestLedger().add_guest(make_guest("Ada"))

    with pytest.raises(RecordNotFoundError):
        ledger.remove_guest(day, index)
    with pytest.raises(RecordNotFoundError):
        ledger.set_checked_in(day, index, True)
    assert len(ledger) == 1


def test_set_checked_in_only_touches_flag():
    guest = make_guest("Ada", organization="ACME", estimated_arrival="09:00:00")
    ledger = GuestLedger().add_guest(guest)

    previous = ledger.set_checked_in(MONDAY, 0, True)

    assert previous is False
    assert ledger.get(MONDAY, 0) is guest
    assert guest.checked_in is True
    assert guest.organization == "ACME"
    assert guest.floors == (2, 3)


def test_replace_window_keeps_days_outside_window():
    ledger = GuestLedger()
    ledger.add_guest(make_guest("stale", MONDAY))
    ledger.add_guest(make_guest("outside", TUESDAY))

    ledger.replace_window(MONDAY, MONDAY, [make_guest("fresh", MONDAY), make_guest("ignored", TUESDAY)])

    assert [g.name for g in ledger.guests_on(MONDAY)] == ["fresh"]
    assert [g.name for g in ledger.guests_on(TUESDAY)] == ["outside"]


def test_replace_window_drops_days_that_became_empty():
    ledger = GuestLedger().add_guest(make_guest("gone", MONDAY))

    ledger.replace_window(MONDAY, TUESDAY, [])

    assert ledger.dates() == []


def test_load_window_groups_by_date():
    store = ListStore([make_guest("a", MONDAY), make_guest("b", TUESDAY), make_guest("c", MONDAY)])

    ledger = asyncio.run(load_window(store, "2025-06-16", "2025-06-17"))

    assert store.queries == [(MONDAY, TUESDAY)]
    assert [g.name for g in ledger.guests_on(MONDAY)] == ["a", "c"]
    assert [g.name for g in ledger.guests_on(TUESDAY)] == ["b"]


def test_load_window_rejects_reversed_window():
    with pytest.raises(ValueError):
        asyncio.run(load_window(ListStore([]), TUESDAY, MONDAY))

"""Guest records and the date-keyed ledger that holds the loaded window."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator

from .parsing import normalize_visit_date

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .store import GuestStore

logger = logging.getLogger(__name__)


class RecordNotFoundError(LookupError):
    """Raised when a date/index pair no longer points at a ledger record."""


@dataclass(slots=True)
class Creator:
    """Profile of the user who scheduled a guest."""

    id: str
    email: str | None = None
    full_name: str | None = None
    username: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "Guest Manager"


@dataclass(slots=True)
class GuestRecord:
    name: str
    visit_date: dt.date
    floors: tuple[int, ...]
    organization: str | None = None
    estimated_arrival: str | None = None
    checked_in: bool = False
    id: str | None = None
    created_by: str | None = None
    created_at: dt.datetime | None = None
    creator: Creator | None = None


@dataclass(slots=True)
class GuestDraft:
    """A scheduler's submission, shared by every visit date it fans out to."""

    name: str
    floors: tuple[int, ...]
    organization: str | None = None
    estimated_arrival: str | None = None
    created_by: str | None = None

    def for_date(self, visit_date: dt.date) -> GuestRecord:
        return GuestRecord(
            name=self.name,
            visit_date=visit_date,
            floors=self.floors,
            organization=self.organization,
            estimated_arrival=self.estimated_arrival,
            created_by=self.created_by,
        )


@dataclass
class GuestLedger:
    """Guest records grouped by visit date.

    A date is present only while it has at least one guest; removing the last
    guest of a day removes the day.
    """

    _days: dict[dt.date, list[GuestRecord]] = field(default_factory=dict)

    def __len__(self) -> int:
        return sum(len(records) for records in self._days.values())

    def __contains__(self, visit_date: object) -> bool:
        try:
            key = normalize_visit_date(visit_date)  # type: ignore[arg-type]
        except ValueError:
            return False
        return key in self._days

    def __iter__(self) -> Iterator[GuestRecord]:
        for visit_date in self.dates():
            yield from self._days[visit_date]

    def dates(self) -> list[dt.date]:
        return sorted(self._days)

    def guests_on(self, visit_date: str | dt.date) -> list[GuestRecord]:
        return list(self._days.get(normalize_visit_date(visit_date), ()))

    def as_dict(self) -> dict[dt.date, list[GuestRecord]]:
        return {visit_date: list(self._days[visit_date]) for visit_date in self.dates()}

    def get(self, visit_date: str | dt.date, index: int) -> GuestRecord:
        key = normalize_visit_date(visit_date)
        records = self._days.get(key)
        if not records or index < 0 or index >= len(records):
            raise RecordNotFoundError(f"No guest at index {index} on {key.isoformat()}")
        return records[index]

    def add_guest(self, record: GuestRecord) -> GuestLedger:
        self._days.setdefault(record.visit_date, []).append(record)
        return self

    def remove_guest(self, visit_date: str | dt.date, index: int) -> GuestRecord:
        key = normalize_visit_date(visit_date)
        record = self.get(key, index)
        records = self._days[key]
        del records[index]
        if not records:
            del self._days[key]
        return record

    def set_checked_in(self, visit_date: str | dt.date, index: int, value: bool) -> bool:
        """Set the check-in flag in place and return the previous value."""

        record = self.get(visit_date, index)
        previous = record.checked_in
        record.checked_in = value
        return previous

    def replace_window(
        self, start: dt.date, end: dt.date, records: Iterable[GuestRecord]
    ) -> GuestLedger:
        """Replace every day in ``[start, end]`` with ``records``.

        Days outside the window are left alone; records dated outside it are
        ignored.
        """

        for visit_date in [d for d in self._days if start <= d <= end]:
            del self._days[visit_date]
        for record in records:
            if start <= record.visit_date <= end:
                self.add_guest(record)
        return self


async def load_window(
    store: "GuestStore",
    start: str | dt.date,
    end: str | dt.date,
    ledger: GuestLedger | None = None,
) -> GuestLedger:
    """Read ``[start, end]`` from ``store`` into ``ledger`` (or a new ledger)."""

    start, end = normalize_visit_date(start), normalize_visit_date(end)
    if start > end:
        raise ValueError(f"Window start {start} is after end {end}")
    records = await store.query(start, end)
    logger.debug("Loaded %s guests for %s..%s", len(records), start, end)
    target = ledger if ledger is not None else GuestLedger()
    return target.replace_window(start, end, records)


__all__ = [
    "Creator",
    "GuestDraft",
    "GuestLedger",
    "GuestRecord",
    "RecordNotFoundError",
    "load_window",
]

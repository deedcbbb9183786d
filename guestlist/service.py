"""The guest session: one writer that owns the ledger and talks to the store.

Local state is changed first and the store is written afterwards. Only a
failed check-in write is undone locally; failed creations and deletions are
reported and left for the next reload to reconcile. Arrival notifications run
as background tasks so a slow mail server never holds up a check-in.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Iterable

from .ledger import GuestDraft, GuestLedger, GuestRecord, load_window
from .notifications import NotificationError, Notifier
from .parsing import normalize_arrival, normalize_visit_date, parse_floor_access
from .store import GuestStore, StoreError

logger = logging.getLogger(__name__)

FLOOR_HINT = 'Please enter valid floor numbers (e.g. "1,3,5" or "2-4,7").'


class GuestValidationError(ValueError):
    """Raised for submissions rejected before any store call."""


@dataclass(slots=True)
class ScheduleResult:
    total: int
    records: list[GuestRecord] = field(default_factory=list)
    failures: dict[dt.date, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.records)

    @property
    def complete(self) -> bool:
        return self.success_count == self.total


class GuestSession:
    def __init__(
        self,
        store: GuestStore,
        notifier: Notifier | None = None,
        ledger: GuestLedger | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.ledger = ledger if ledger is not None else GuestLedger()
        self._notifications: set[asyncio.Task[None]] = set()

    async def reload(self, start: str | dt.date, end: str | dt.date) -> GuestLedger:
        return await load_window(self.store, start, end, self.ledger)

    async def schedule_guest(
        self, draft: GuestDraft, visit_dates: Iterable[str | dt.date]
    ) -> ScheduleResult:
        """Create one record per visit date.

        Each date is an independent store write. Dates that fail are counted
        in the result; dates that succeeded are kept.
        """

        dates = self._validate(draft, visit_dates)
        result = ScheduleResult(total=len(dates))
        for visit_date in dates:
            try:
                saved = await self.store.insert(draft.for_date(visit_date))
            except StoreError as exc:
                logger.warning("Could not schedule %s on %s: %s", draft.name, visit_date, exc)
                result.failures[visit_date] = str(exc)
                continue
            self.ledger.add_guest(saved)
            result.records.append(saved)

        if result.complete:
            logger.info("Scheduled %s on %s date(s)", draft.name, result.total)
        else:
            logger.warning(
                "Scheduled %s on %s of %s date(s)", draft.name, result.success_count, result.total
            )
        return result

    async def schedule_guest_text(
        self,
        name: str,
        floor_text: str,
        visit_dates: Iterable[str | dt.date],
        *,
        organization: str | None = None,
        estimated_arrival: str | None = None,
        created_by: str | None = None,
    ) -> ScheduleResult:
        if not floor_text or not floor_text.strip():
            raise GuestValidationError("Floor access is required")
        try:
            arrival = normalize_arrival(estimated_arrival)
        except ValueError as exc:
            raise GuestValidationError(str(exc)) from exc
        draft = GuestDraft(
            name=(name or "").strip(),
            floors=tuple(parse_floor_access(floor_text)),
            organization=(organization or "").strip() or None,
            estimated_arrival=arrival,
            created_by=created_by,
        )
        return await self.schedule_guest(draft, visit_dates)

    async def delete_guest(self, visit_date: str | dt.date, index: int) -> GuestRecord:
        record = self.ledger.remove_guest(visit_date, index)
        if record.id is not None:
            await self.store.delete(record.id)
        logger.info("Deleted guest %s from %s", record.name, record.visit_date)
        return record

    async def set_checked_in(self, visit_date: str | dt.date, index: int, value: bool) -> GuestRecord:
        record = self.ledger.get(visit_date, index)
        previous = self.ledger.set_checked_in(visit_date, index, value)
        if record.id is not None:
            try:
                await self.store.update(record.id, {"checked_in": value})
            except StoreError:
                record.checked_in = previous
                raise
        logger.info("Guest %s checked %s", record.name, "in" if value else "out")

        if value and record.id is not None and self.notifier is not None:
            task = asyncio.create_task(self._notify_arrival(record))
            self._notifications.add(task)
            task.add_done_callback(self._notifications.discard)
        return record

    async def wait_for_notifications(self) -> None:
        """Wait until every arrival notification started so far has finished."""

        while self._notifications:
            await asyncio.gather(*list(self._notifications))

    async def _notify_arrival(self, record: GuestRecord) -> None:
        try:
            await self.notifier.notify_arrival(record.id)
        except (NotificationError, StoreError):
            logger.warning("Arrival notification for %s failed", record.name, exc_info=True)
        except Exception:
            logger.exception("Unexpected error notifying arrival of %s", record.name)

    async def toggle_check_in(self, visit_date: str | dt.date, index: int) -> GuestRecord:
        record = self.ledger.get(visit_date, index)
        return await self.set_checked_in(visit_date, index, not record.checked_in)

    def _validate(self, draft: GuestDraft, visit_dates: Iterable[str | dt.date]) -> list[dt.date]:
        if not draft.name or not draft.name.strip():
            raise GuestValidationError("Guest name is required")
        if not draft.floors:
            raise GuestValidationError(FLOOR_HINT)
        try:
            dates = sorted({normalize_visit_date(d) for d in visit_dates})
        except ValueError as exc:
            raise GuestValidationError(str(exc)) from exc
        if not dates:
            raise GuestValidationError("Select at least one visit date")
        return dates


__all__ = ["GuestSession", "GuestValidationError", "ScheduleResult"]

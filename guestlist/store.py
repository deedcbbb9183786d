"""Guest store adapters.

The ledger and the session only see :class:`GuestStore`. Two adapters exist:
a SQLAlchemy store for a local database and a REST store for a hosted
PostgREST-style backend. Both hand back :class:`~guestlist.ledger.GuestRecord`
values with the scheduling user's profile already resolved.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Protocol

import httpx
from pydantic import TypeAdapter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .config import get_baas_key, get_baas_service_key, get_baas_url, get_store_backend
from .database import SessionLocal, session_scope
from .ledger import Creator, GuestRecord
from .models import Guest
from .parsing import coerce_floors, normalize_visit_date

logger = logging.getLogger(__name__)

GUEST_SELECT = "*,creator:profiles!created_by(id,email,full_name,username)"
REFUSED_STATUSES = frozenset({401, 403})
TIMESTAMP = TypeAdapter(dt.datetime)


class StoreError(RuntimeError):
    """Raised when the guest store cannot complete a read or write."""


class StoreConflict(StoreError):
    """Raised when a write collides with a unique column."""


class GuestStore(Protocol):
    async def insert(self, record: GuestRecord) -> GuestRecord: ...

    async def update(self, guest_id: str, patch: dict[str, Any]) -> None: ...

    async def delete(self, guest_id: str) -> None: ...

    async def query(self, start: dt.date, end: dt.date) -> list[GuestRecord]: ...

    async def get(self, guest_id: str) -> GuestRecord | None: ...


def record_from_model(entry: Guest) -> GuestRecord:
    creator = None
    if entry.creator is not None:
        creator = Creator(
            id=entry.creator.id,
            email=entry.creator.email,
            full_name=entry.creator.full_name,
            username=entry.creator.username,
        )
    return GuestRecord(
        id=entry.id,
        name=entry.name,
        organization=entry.organization,
        estimated_arrival=entry.estimated_arrival,
        visit_date=entry.visit_date,
        floors=coerce_floors(entry.floors),
        checked_in=bool(entry.checked_in),
        created_by=entry.created_by,
        created_at=entry.created_at,
        creator=creator,
    )


def record_from_row(row: dict[str, Any]) -> GuestRecord:
    """Convert a row returned by the REST backend into a guest record."""

    creator = None
    joined = row.get("creator")
    if isinstance(joined, dict) and joined.get("id") is not None:
        creator = Creator(
            id=str(joined["id"]),
            email=joined.get("email"),
            full_name=joined.get("full_name"),
            username=joined.get("username"),
        )
    created_at = row.get("created_at")
    return GuestRecord(
        id=str(row["id"]) if row.get("id") is not None else None,
        name=row["name"],
        organization=row.get("organization"),
        estimated_arrival=row.get("estimated_arrival"),
        visit_date=normalize_visit_date(row["visit_date"]),
        floors=coerce_floors(row.get("floors")),
        checked_in=bool(row.get("checked_in")),
        created_by=row.get("created_by"),
        created_at=TIMESTAMP.validate_python(created_at) if created_at else None,
        creator=creator,
    )


def row_from_record(record: GuestRecord) -> dict[str, Any]:
    return {
        "name": record.name,
        "organization": record.organization,
        "estimated_arrival": record.estimated_arrival,
        "visit_date": record.visit_date.isoformat(),
        "floors": list(record.floors),
        "checked_in": record.checked_in,
        "created_by": record.created_by,
    }


class SqlGuestStore:
    """Guest store backed by the local SQLAlchemy database."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    async def insert(self, record: GuestRecord) -> GuestRecord:
        try:
            with session_scope(self.session_factory) as session:
                entry = crud.insert_guest(session, record)
                session.refresh(entry)
                return record_from_model(entry)
        except SQLAlchemyError as exc:
            logger.exception("Failed to insert guest %s", record.name)
            raise StoreError("Failed to save guest") from exc

    async def update(self, guest_id: str, patch: dict[str, Any]) -> None:
        try:
            with session_scope(self.session_factory) as session:
                if "checked_in" in patch:
                    entry = crud.set_checked_in(session, guest_id, bool(patch["checked_in"]))
                    if entry is None:
                        raise StoreError(f"Guest {guest_id} no longer exists")
        except SQLAlchemyError as exc:
            logger.exception("Failed to update guest %s", guest_id)
            raise StoreError("Failed to update guest") from exc

    async def delete(self, guest_id: str) -> None:
        try:
            with session_scope(self.session_factory) as session:
                if not crud.delete_guest(session, guest_id):
                    logger.debug("Guest %s was already deleted", guest_id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete guest %s", guest_id)
            raise StoreError("Failed to delete guest") from exc

    async def query(self, start: dt.date, end: dt.date) -> list[GuestRecord]:
        try:
            with session_scope(self.session_factory) as session:
                return [record_from_model(entry) for entry in crud.list_guests(session, start=start, end=end)]
        except SQLAlchemyError as exc:
            logger.exception("Failed to load guests for %s..%s", start, end)
            raise StoreError("Failed to load guests") from exc

    async def get(self, guest_id: str) -> GuestRecord | None:
        try:
            with session_scope(self.session_factory) as session:
                entry = crud.get_guest(session, guest_id)
                return record_from_model(entry) if entry is not None else None
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load guest") from exc


class RestTable:
    """One table of a hosted PostgREST endpoint.

    Parameters
    ----------
    base_url:
        Project URL; rows live under ``/rest/v1/<table>``.
    api_key:
        Key used for every request.
    service_key:
        Optional elevated key. When the backend refuses a request made with
        ``api_key`` (401/403) it is retried once with this key.
    client:
        Optional shared HTTPX client, useful for testing.
    """

    table = ""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        service_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        table: str | None = None,
    ) -> None:
        self.table = table or self.table
        self.url = f"{base_url.rstrip('/')}/rest/v1/{self.table}"
        self.api_key = api_key
        self.service_key = service_key
        self._client = client

    async def _rows(self, method: str, **kwargs: Any) -> list[dict[str, Any]]:
        response = await self._request(method, **kwargs)
        try:
            rows = response.json()
        except ValueError as exc:
            logger.error("Unreadable %s response from %s", method, self.url)
            raise StoreError(f"Store returned an unreadable response: {method}") from exc
        if not isinstance(rows, list):
            raise StoreError(f"Store returned an unexpected response: {method}")
        return rows

    async def _request(
        self,
        method: str,
        *,
        params: Any = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        keys = [self.api_key]
        if self.service_key:
            keys.append(self.service_key)

        try:
            async with self._session() as client:
                for attempt, key in enumerate(keys):
                    logger.debug("%s %s", method, self.url)
                    response = await client.request(
                        method, self.url, params=params, json=json, headers=self._headers(key, prefer)
                    )
                    if response.status_code in REFUSED_STATUSES and attempt + 1 < len(keys):
                        logger.warning(
                            "Store refused %s with status %s; retrying with service key",
                            method,
                            response.status_code,
                        )
                        continue
                    if response.status_code == 409:
                        raise StoreConflict(f"{self.table} row conflicts with an existing row")
                    response.raise_for_status()
                    return response
        except httpx.HTTPError as exc:
            logger.exception("HTTP error during %s %s", method, self.url)
            raise StoreError(f"Store request failed: {method} {self.table}") from exc
        raise StoreError(f"Store request failed: {method} {self.table}")  # pragma: no cover

    def _headers(self, key: str, prefer: str | None) -> dict[str, str]:
        headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=30.0) as client:
            yield client


class RestGuestStore(RestTable):
    """Guest store backed by the ``guests`` table of a hosted PostgREST endpoint."""

    table = "guests"

    async def insert(self, record: GuestRecord) -> GuestRecord:
        rows = await self._rows("POST", json=row_from_record(record), prefer="return=representation")
        if not rows:
            raise StoreError("Store returned no row for inserted guest")
        return self._records(rows[:1])[0]

    async def update(self, guest_id: str, patch: dict[str, Any]) -> None:
        rows = await self._rows(
            "PATCH",
            params={"id": f"eq.{guest_id}"},
            json=patch,
            prefer="return=representation",
        )
        if not rows:
            raise StoreError(f"Guest {guest_id} no longer exists")

    async def delete(self, guest_id: str) -> None:
        await self._request("DELETE", params={"id": f"eq.{guest_id}"})

    async def query(self, start: dt.date, end: dt.date) -> list[GuestRecord]:
        params = [
            ("select", GUEST_SELECT),
            ("visit_date", f"gte.{start.isoformat()}"),
            ("visit_date", f"lte.{end.isoformat()}"),
            ("order", "visit_date.asc,created_at.asc"),
        ]
        return self._records(await self._rows("GET", params=params))

    async def get(self, guest_id: str) -> GuestRecord | None:
        params = {"select": GUEST_SELECT, "id": f"eq.{guest_id}"}
        rows = await self._rows("GET", params=params)
        return self._records(rows[:1])[0] if rows else None

    def _records(self, rows: list[dict[str, Any]]) -> list[GuestRecord]:
        try:
            return [record_from_row(row) for row in rows]
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Malformed guest row from %s: %s", self.url, exc)
            raise StoreError("Store returned a malformed guest row") from exc


def build_store() -> GuestStore:
    """Return the guest store selected by ``GUESTLIST_STORE``."""

    if use_rest_backend():
        return RestGuestStore(*rest_credentials(), service_key=get_baas_service_key())
    return SqlGuestStore()


def use_rest_backend() -> bool:
    backend = get_store_backend()
    if backend not in ("sql", "rest"):
        raise RuntimeError(f"Unknown store backend: {backend!r}")
    return backend == "rest"


def rest_credentials() -> tuple[str, str]:
    url, key = get_baas_url(), get_baas_key()
    if not url or not key:
        raise RuntimeError("GUESTLIST_BAAS_URL and GUESTLIST_BAAS_KEY are required for the rest store")
    return url, key


__all__ = [
    "GuestStore",
    "RestGuestStore",
    "RestTable",
    "SqlGuestStore",
    "StoreConflict",
    "StoreError",
    "build_store",
    "record_from_row",
]

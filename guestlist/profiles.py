"""Staff profiles: who may use the service and at which access level.

Profiles live next to the guests, in whichever backend ``GUESTLIST_STORE``
selects, so the ``created_by`` id written on a guest always resolves to its
scheduling user in the same backend.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .config import get_baas_service_key
from .database import SessionLocal, session_scope
from .models import Profile
from .roles import AccessLevel
from .store import TIMESTAMP, RestTable, StoreConflict, StoreError, rest_credentials, use_rest_backend

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,email,full_name,username,access_level,approved,created_at"


@dataclass(slots=True)
class StaffProfile:
    id: str
    email: str | None
    full_name: str | None = None
    username: str | None = None
    access_level: str = AccessLevel.USER.value
    approved: bool = False
    created_at: dt.datetime | None = None

    @property
    def level(self) -> AccessLevel:
        return AccessLevel.parse(self.access_level)


class ProfileStore(Protocol):
    async def get(self, profile_id: str) -> StaffProfile | None: ...

    async def list_profiles(self) -> list[StaffProfile]: ...

    async def create(
        self,
        *,
        email: str,
        full_name: str | None,
        username: str | None,
        access_level: AccessLevel = AccessLevel.USER,
    ) -> StaffProfile: ...

    async def update(self, profile_id: str, changes: dict[str, Any]) -> StaffProfile | None: ...


def profile_from_model(entry: Profile) -> StaffProfile:
    return StaffProfile(
        id=entry.id,
        email=entry.email,
        full_name=entry.full_name,
        username=entry.username,
        access_level=entry.access_level,
        approved=bool(entry.approved),
        created_at=entry.created_at,
    )


def profile_from_row(row: dict[str, Any]) -> StaffProfile:
    created_at = row.get("created_at")
    return StaffProfile(
        id=str(row["id"]),
        email=row.get("email"),
        full_name=row.get("full_name"),
        username=row.get("username"),
        access_level=row.get("access_level") or AccessLevel.USER.value,
        approved=bool(row.get("approved")),
        created_at=TIMESTAMP.validate_python(created_at) if created_at else None,
    )


class SqlProfileStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    async def get(self, profile_id: str) -> StaffProfile | None:
        try:
            with session_scope(self.session_factory) as session:
                entry = crud.get_profile(session, profile_id)
                return profile_from_model(entry) if entry is not None else None
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load profile") from exc

    async def list_profiles(self) -> list[StaffProfile]:
        try:
            with session_scope(self.session_factory) as session:
                return [profile_from_model(entry) for entry in crud.list_profiles(session)]
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load profiles") from exc

    async def create(
        self,
        *,
        email: str,
        full_name: str | None,
        username: str | None,
        access_level: AccessLevel = AccessLevel.USER,
    ) -> StaffProfile:
        try:
            with session_scope(self.session_factory) as session:
                entry = crud.create_profile(
                    session,
                    email=email,
                    full_name=full_name,
                    username=username,
                    access_level=access_level,
                )
                session.refresh(entry)
                return profile_from_model(entry)
        except IntegrityError as exc:
            raise StoreConflict("Email or username is already registered") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to create profile for %s", email)
            raise StoreError("Failed to create profile") from exc

    async def update(self, profile_id: str, changes: dict[str, Any]) -> StaffProfile | None:
        try:
            with session_scope(self.session_factory) as session:
                entry = None
                if "access_level" in changes:
                    entry = crud.update_access_level(
                        session, profile_id, AccessLevel.parse(changes["access_level"])
                    )
                if "approved" in changes:
                    entry = crud.set_approved(session, profile_id, bool(changes["approved"]))
                if entry is None:
                    return None
                session.flush()
                session.refresh(entry)
                return profile_from_model(entry)
        except SQLAlchemyError as exc:
            logger.exception("Failed to update profile %s", profile_id)
            raise StoreError("Failed to update profile") from exc


class RestProfileStore(RestTable):
    """Profiles read from the hosted ``profiles`` table that guests join to."""

    table = "profiles"

    async def get(self, profile_id: str) -> StaffProfile | None:
        rows = await self._rows("GET", params={"select": PROFILE_COLUMNS, "id": f"eq.{profile_id}"})
        return self._profiles(rows[:1])[0] if rows else None

    async def list_profiles(self) -> list[StaffProfile]:
        rows = await self._rows("GET", params={"select": PROFILE_COLUMNS, "order": "created_at.desc"})
        return self._profiles(rows)

    async def create(
        self,
        *,
        email: str,
        full_name: str | None,
        username: str | None,
        access_level: AccessLevel = AccessLevel.USER,
    ) -> StaffProfile:
        row = {
            "id": str(uuid.uuid4()),
            "email": email,
            "full_name": full_name,
            "username": username,
            "access_level": access_level.value,
            "approved": False,
        }
        rows = await self._rows("POST", json=row, prefer="return=representation")
        if not rows:
            raise StoreError("Store returned no row for the new profile")
        return self._profiles(rows[:1])[0]

    async def update(self, profile_id: str, changes: dict[str, Any]) -> StaffProfile | None:
        patch = dict(changes)
        if "access_level" in patch:
            patch["access_level"] = AccessLevel.parse(patch["access_level"]).value
        rows = await self._rows(
            "PATCH",
            params={"id": f"eq.{profile_id}"},
            json=patch,
            prefer="return=representation",
        )
        return self._profiles(rows[:1])[0] if rows else None

    def _profiles(self, rows: list[dict[str, Any]]) -> list[StaffProfile]:
        try:
            return [profile_from_row(row) for row in rows]
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError("Store returned a malformed profile row") from exc


def build_profile_store() -> ProfileStore:
    """Return the profile store that lives beside the guest store."""

    if use_rest_backend():
        return RestProfileStore(*rest_credentials(), service_key=get_baas_service_key())
    return SqlProfileStore()


__all__ = [
    "ProfileStore",
    "RestProfileStore",
    "SqlProfileStore",
    "StaffProfile",
    "build_profile_store",
]

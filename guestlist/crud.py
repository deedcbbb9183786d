from __future__ import annotations

import datetime as dt

from sqlalchemy import select
from sqlalchemy.orm import Session

from .ledger import GuestRecord
from .models import Guest, Profile
from .roles import AccessLevel


def insert_guest(session: Session, record: GuestRecord) -> Guest:
    entry = Guest(
        name=record.name,
        organization=record.organization,
        estimated_arrival=record.estimated_arrival,
        visit_date=record.visit_date,
        floors=list(record.floors),
        checked_in=record.checked_in,
        created_by=record.created_by,
    )
    session.add(entry)
    session.flush()
    return entry


def get_guest(session: Session, guest_id: str) -> Guest | None:
    return session.get(Guest, guest_id)


def set_checked_in(session: Session, guest_id: str, value: bool) -> Guest | None:
    entry = session.get(Guest, guest_id)
    if entry is not None:
        entry.checked_in = value
    return entry


def delete_guest(session: Session, guest_id: str) -> bool:
    entry = session.get(Guest, guest_id)
    if entry is None:
        return False
    session.delete(entry)
    return True


def list_guests(session: Session, *, start: dt.date, end: dt.date) -> list[Guest]:
    stmt = (
        select(Guest)
        .where(Guest.visit_date >= start, Guest.visit_date <= end)
        .order_by(Guest.visit_date.asc(), Guest.created_at.asc())
    )
    return list(session.scalars(stmt))


def get_profile(session: Session, profile_id: str) -> Profile | None:
    return session.get(Profile, profile_id)


def create_profile(
    session: Session,
    *,
    email: str | None,
    full_name: str | None = None,
    username: str | None = None,
    access_level: AccessLevel = AccessLevel.USER,
    approved: bool = False,
) -> Profile:
    profile = Profile(
        email=email,
        full_name=full_name,
        username=username,
        access_level=access_level.value,
        approved=approved,
    )
    session.add(profile)
    session.flush()
    return profile


def list_profiles(session: Session) -> list[Profile]:
    stmt = select(Profile).order_by(Profile.created_at.desc())
    return list(session.scalars(stmt))


def update_access_level(session: Session, profile_id: str, level: AccessLevel) -> Profile | None:
    profile = session.get(Profile, profile_id)
    if profile is not None:
        profile.access_level = level.value
    return profile


def set_approved(session: Session, profile_id: str, approved: bool) -> Profile | None:
    profile = session.get(Profile, profile_id)
    if profile is not None:
        profile.approved = approved
    return profile

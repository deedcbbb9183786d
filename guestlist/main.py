from __future__ import annotations

import datetime as dt
from functools import lru_cache

from fastapi import Depends, FastAPI, Header, HTTPException, Response

from .config import get_building_access_code, get_email_settings
from .database import ENGINE, Base
from .ledger import GuestRecord, RecordNotFoundError
from .notifications import ArrivalRejected, NotificationError, build_notifier, check_arrival, send_arrival_email
from .profiles import ProfileStore, StaffProfile, build_profile_store
from .roles import CAN_CHECK_IN, CAN_MANAGE_USERS, CAN_SCHEDULE, CAN_VIEW_GUESTS, AccessLevel
from .schemas import (
    ApprovalUpdate,
    ArrivalRequest,
    ArrivalResponse,
    CheckInUpdate,
    GuestCreate,
    GuestSchema,
    HealthResponse,
    ProfileSchema,
    RoleUpdate,
    ScheduleResponse,
    SignupRequest,
)
from .service import GuestSession, GuestValidationError
from .store import StoreConflict, StoreError, build_store

MAX_WINDOW_DAYS = 92
DEFAULT_WINDOW_DAYS = 7

Base.metadata.create_all(bind=ENGINE)

app = FastAPI(title="Building Guest List")


@lru_cache(maxsize=1)
def get_guest_session() -> GuestSession:
    store = build_store()
    return GuestSession(store, notifier=build_notifier(store))


@lru_cache(maxsize=1)
def get_profile_store() -> ProfileStore:
    return build_profile_store()


async def current_profile(
    x_user_id: str | None = Header(default=None),
    profiles: ProfileStore = Depends(get_profile_store),
) -> StaffProfile:
    try:
        profile = await profiles.get(x_user_id) if x_user_id else None
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if profile is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    if not profile.approved:
        raise HTTPException(status_code=403, detail="Account pending approval")
    return profile


def require_level(level: AccessLevel):
    def _check(profile: StaffProfile = Depends(current_profile)) -> StaffProfile:
        if not profile.level.allows(level):
            raise HTTPException(status_code=403, detail=f"Requires {level.value} access")
        return profile

    return _check


def _guest(record: GuestRecord) -> GuestSchema:
    return GuestSchema.model_validate(record)


async def _load_date(guests: GuestSession, visit_date: dt.date, *, force: bool = False) -> None:
    # Index routes address the list a client last read; only fill in dates
    # this process has not loaded yet.
    if not force and visit_date in guests.ledger:
        return
    try:
        await guests.reload(visit_date, visit_date)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="OK", timestamp=dt.datetime.now(dt.timezone.utc))


@app.post("/api/auth/signup", response_model=ProfileSchema, status_code=201)
async def api_signup(payload: SignupRequest, profiles: ProfileStore = Depends(get_profile_store)):
    access_code = get_building_access_code()
    if access_code is None:
        raise HTTPException(status_code=403, detail="Sign-up is closed")
    if payload.access_code != access_code:
        raise HTTPException(status_code=401, detail="Invalid building access code.")
    try:
        return await profiles.create(
            email=payload.email.strip().lower(),
            full_name=payload.full_name.strip(),
            username=payload.username,
            access_level=payload.access_level,
        )
    except StoreConflict as exc:
        raise HTTPException(status_code=409, detail="Email or username already registered") from exc
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/api/guests", response_model=dict[dt.date, list[GuestSchema]])
async def api_guest_window(
    start: dt.date | None = None,
    end: dt.date | None = None,
    guests: GuestSession = Depends(get_guest_session),
    _profile: StaffProfile = Depends(require_level(CAN_VIEW_GUESTS)),
):
    start = start or dt.date.today()
    end = end or start + dt.timedelta(days=DEFAULT_WINDOW_DAYS - 1)
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")
    end = min(end, start + dt.timedelta(days=MAX_WINDOW_DAYS - 1))
    try:
        ledger = await guests.reload(start, end)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        visit_date: [_guest(record) for record in ledger.guests_on(visit_date)]
        for visit_date in ledger.dates()
        if start <= visit_date <= end
    }


@app.get("/api/guests/{visit_date}", response_model=list[GuestSchema])
async def api_guests_on(
    visit_date: dt.date,
    guests: GuestSession = Depends(get_guest_session),
    _profile: StaffProfile = Depends(require_level(CAN_VIEW_GUESTS)),
):
    await _load_date(guests, visit_date, force=True)
    return [_guest(record) for record in guests.ledger.guests_on(visit_date)]


@app.post("/api/guests", response_model=ScheduleResponse)
async def api_schedule_guest(
    payload: GuestCreate,
    guests: GuestSession = Depends(get_guest_session),
    profile: StaffProfile = Depends(require_level(CAN_SCHEDULE)),
):
    try:
        result = await guests.schedule_guest_text(
            payload.name,
            payload.floors,
            payload.visit_dates,
            organization=payload.organization,
            estimated_arrival=payload.estimated_arrival,
            created_by=profile.id,
        )
    except GuestValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if result.success_count == 0:
        raise HTTPException(status_code=502, detail="Failed to schedule guest on any date")
    return ScheduleResponse(
        success_count=result.success_count,
        total=result.total,
        guests=[_guest(record) for record in result.records],
        failed_dates=sorted(result.failures),
    )


@app.delete("/api/guests/{visit_date}/{index}", status_code=204)
async def api_delete_guest(
    visit_date: dt.date,
    index: int,
    guests: GuestSession = Depends(get_guest_session),
    _profile: StaffProfile = Depends(require_level(CAN_SCHEDULE)),
):
    await _load_date(guests, visit_date)
    try:
        await guests.delete_guest(visit_date, index)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return Response(status_code=204)


@app.put("/api/guests/{visit_date}/{index}/check-in", response_model=GuestSchema)
async def api_check_in(
    visit_date: dt.date,
    index: int,
    payload: CheckInUpdate,
    guests: GuestSession = Depends(get_guest_session),
    _profile: StaffProfile = Depends(require_level(CAN_CHECK_IN)),
):
    await _load_date(guests, visit_date)
    try:
        record = await guests.set_checked_in(visit_date, index, payload.checked_in)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return _guest(record)


@app.post("/api/notifications/guest-arrival", response_model=ArrivalResponse)
async def api_guest_arrival(
    payload: ArrivalRequest,
    guests: GuestSession = Depends(get_guest_session),
    _profile: StaffProfile = Depends(require_level(CAN_CHECK_IN)),
):
    try:
        guest = await guests.store.get(payload.guest_id)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if guest is None:
        raise HTTPException(status_code=404, detail="Guest not found")
    try:
        creator = check_arrival(guest)
    except ArrivalRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        message_id = await send_arrival_email(guest, creator, get_email_settings())
    except NotificationError as exc:
        # The check-in itself stands; only the email is reported as failed.
        return ArrivalResponse(
            success=True,
            message="Guest checked in successfully, but email notification failed",
            guest_name=guest.name,
            creator_email=creator.email,
            email_error=str(exc),
        )
    return ArrivalResponse(
        success=True,
        message="Guest arrival notification sent successfully",
        guest_name=guest.name,
        creator_email=creator.email,
        message_id=message_id,
    )


@app.get("/api/users", response_model=list[ProfileSchema])
async def api_users(
    profiles: ProfileStore = Depends(get_profile_store),
    _profile: StaffProfile = Depends(require_level(CAN_MANAGE_USERS)),
):
    try:
        return await profiles.list_profiles()
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


async def _update_profile(profiles: ProfileStore, profile_id: str, changes: dict) -> StaffProfile:
    try:
        profile = await profiles.update(profile_id, changes)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@app.put("/api/users/{profile_id}/role", response_model=ProfileSchema)
async def api_update_role(
    profile_id: str,
    payload: RoleUpdate,
    profiles: ProfileStore = Depends(get_profile_store),
    _profile: StaffProfile = Depends(require_level(CAN_MANAGE_USERS)),
):
    return await _update_profile(profiles, profile_id, {"access_level": payload.access_level})


@app.put("/api/users/{profile_id}/approval", response_model=ProfileSchema)
async def api_update_approval(
    profile_id: str,
    payload: ApprovalUpdate,
    profiles: ProfileStore = Depends(get_profile_store),
    _profile: StaffProfile = Depends(require_level(CAN_MANAGE_USERS)),
):
    return await _update_profile(profiles, profile_id, {"approved": payload.approved})

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, field_validator

from .parsing import widest_range
from .roles import AccessLevel

# Upper bound on the floors one range token may grant.
MAX_FLOOR_SPAN = 500


class CreatorSchema(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    username: str | None = None

    class Config:
        from_attributes = True


class GuestSchema(BaseModel):
    id: str | None
    name: str
    organization: str | None
    estimated_arrival: str | None
    visit_date: dt.date
    floors: list[int]
    checked_in: bool
    created_by: str | None
    created_at: dt.datetime | None
    creator: CreatorSchema | None = None

    class Config:
        from_attributes = True


class GuestCreate(BaseModel):
    name: str
    floors: str = Field(description='Floor access text, e.g. "1,3,5" or "2-4,7"')
    visit_dates: list[dt.date]
    organization: str | None = None
    estimated_arrival: str | None = None

    @field_validator("floors")
    @classmethod
    def _bounded_ranges(cls, value: str) -> str:
        if widest_range(value) > MAX_FLOOR_SPAN:
            raise ValueError(f"Floor ranges may span at most {MAX_FLOOR_SPAN} floors")
        return value


class ScheduleResponse(BaseModel):
    success_count: int
    total: int
    guests: list[GuestSchema]
    failed_dates: list[dt.date] = []


class CheckInUpdate(BaseModel):
    checked_in: bool


class ArrivalRequest(BaseModel):
    guest_id: str


class ArrivalResponse(BaseModel):
    success: bool
    message: str
    guest_name: str
    creator_email: str | None
    message_id: str | None = None
    email_error: str | None = None


class ProfileSchema(BaseModel):
    id: str
    email: str | None
    full_name: str | None
    username: str | None
    access_level: AccessLevel
    approved: bool
    created_at: dt.datetime | None

    class Config:
        from_attributes = True


class RoleUpdate(BaseModel):
    access_level: AccessLevel


class ApprovalUpdate(BaseModel):
    approved: bool


class HealthResponse(BaseModel):
    status: str
    timestamp: dt.datetime


class SignupRequest(BaseModel):
    email: str = Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    full_name: str = Field(min_length=1)
    username: str = Field(min_length=3, pattern=r"^[A-Za-z0-9_]+$")
    access_level: AccessLevel = AccessLevel.USER
    access_code: str

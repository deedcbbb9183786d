from __future__ import annotations

import enum


class AccessLevel(str, enum.Enum):
    """Access levels assigned to staff profiles, lowest first."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return list(AccessLevel).index(self)

    def allows(self, required: "AccessLevel") -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value: str | None) -> "AccessLevel":
        """Return the level for ``value``; unknown or missing values are plain users."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.USER


# Front desk and security staff are approved users.
CAN_VIEW_GUESTS = AccessLevel.USER
CAN_CHECK_IN = AccessLevel.USER
CAN_SCHEDULE = AccessLevel.MANAGER
CAN_MANAGE_USERS = AccessLevel.ADMIN

"""Guest arrival notifications.

Once a check-in is stored, the scheduling user is emailed. Either this
process sends the email itself (:class:`EmailArrivalNotifier`) or it asks a
separate notification server to do it (:class:`ArrivalNotifier`).
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

import httpx

from .config import EmailSettings, get_email_settings, get_notify_url, get_notify_user
from .ledger import Creator, GuestRecord
from .parsing import format_arrival, format_floors, format_visit_date

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .store import GuestStore

logger = logging.getLogger(__name__)

ARRIVAL_PATH = "/api/notifications/guest-arrival"


class NotificationError(RuntimeError):
    """Raised when an arrival notification cannot be delivered."""


class ArrivalRejected(NotificationError):
    """Raised when a guest is not eligible for an arrival email."""


@dataclass(slots=True)
class Delivery:
    guest: GuestRecord
    creator: Creator
    message_id: str


class Notifier(Protocol):
    async def notify_arrival(self, guest_id: str) -> None: ...


class ArrivalNotifier:
    """Client for a notification server's guest-arrival endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        user_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}{ARRIVAL_PATH}"
        self.headers = {"X-User-Id": user_id} if user_id else {}
        self._client = client

    async def notify_arrival(self, guest_id: str) -> None:
        close_client = False
        if self._client is None:
            client = httpx.AsyncClient(timeout=30.0)
            close_client = True
        else:
            client = self._client

        try:
            logger.debug("Posting arrival of guest %s to %s", guest_id, self.url)
            response = await client.post(self.url, json={"guest_id": guest_id}, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Arrival notification for guest {guest_id} failed") from exc
        finally:
            if close_client:
                await client.aclose()


class EmailArrivalNotifier:
    """Looks the guest up in ``store`` and emails its creator directly."""

    def __init__(self, store: "GuestStore", settings: EmailSettings) -> None:
        self.store = store
        self.settings = settings

    async def notify_arrival(self, guest_id: str) -> None:
        guest = await self.store.get(guest_id)
        if guest is None:
            raise ArrivalRejected(f"Guest {guest_id} not found")
        await deliver_arrival(guest, self.settings)


def build_arrival_message(guest: GuestRecord, creator: Creator, sender: str | None) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = f"Your guest has arrived - {guest.name}"
    message["From"] = sender or ""
    message["To"] = creator.email or ""
    message.set_content(
        "\n".join(
            [
                f"Hello {creator.display_name},",
                "",
                "Your guest has arrived and checked in:",
                "",
                f"Guest Name: {guest.name}",
                f"Organization: {guest.organization or 'Not specified'}",
                f"Visit Date: {format_visit_date(guest.visit_date)}",
                f"Estimated Arrival: {format_arrival(guest.estimated_arrival)}",
                f"Floor Access: {format_floors(guest.floors)}",
                "Status: CHECKED IN",
            ]
        )
    )
    return message


def check_arrival(guest: GuestRecord) -> Creator:
    """Return the creator to notify, or raise :class:`ArrivalRejected`."""

    if not guest.checked_in:
        raise ArrivalRejected("Guest is not checked in")
    if guest.creator is None or not guest.creator.email:
        raise ArrivalRejected("No email address found for guest creator")
    return guest.creator


async def deliver_arrival(guest: GuestRecord, settings: EmailSettings) -> Delivery:
    creator = check_arrival(guest)
    message_id = await send_arrival_email(guest, creator, settings)
    return Delivery(guest=guest, creator=creator, message_id=message_id)


async def send_arrival_email(guest: GuestRecord, creator: Creator, settings: EmailSettings) -> str:
    """Send the arrival email to ``creator`` and return the message id."""

    if not settings.configured:
        raise NotificationError("Email transport is not configured (EMAIL_USER and EMAIL_PASS)")

    message = build_arrival_message(guest, creator, settings.sender)
    message_id = f"<guest-{guest.id}@guestlist>"
    message["Message-ID"] = message_id

    def _send() -> None:
        with smtplib.SMTP(settings.host, settings.port, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(settings.user, settings.password)
            smtp.send_message(message)

    try:
        await asyncio.to_thread(_send)
    except OSError as exc:
        logger.exception("Failed to send arrival email for guest %s", guest.id)
        raise NotificationError(str(exc) or "Failed to send email") from exc
    logger.info("Sent arrival email for %s to %s", guest.name, creator.email)
    return message_id


def build_notifier(store: "GuestStore") -> Notifier:
    """Use the notification server when one is configured, else send email here."""

    url = get_notify_url()
    if url:
        return ArrivalNotifier(url, user_id=get_notify_user())
    return EmailArrivalNotifier(store, get_email_settings())

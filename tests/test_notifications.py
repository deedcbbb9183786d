import asyncio
import datetime as dt
import json

import httpx
import pytest

from guestlist.config import EmailSettings
from guestlist.ledger import Creator, GuestRecord
from guestlist.notifications import (
    ArrivalNotifier,
    ArrivalRejected,
    EmailArrivalNotifier,
    NotificationError,
    build_arrival_message,
    check_arrival,
    send_arrival_email,
)

CREATOR = Creator(id="u-1", email="grace@example.com", full_name="Grace Hopper", username="grace")
UNCONFIGURED = EmailSettings(host="smtp.example", port=587, user=None, password=None, sender=None)


def guest(**kwargs):
    values = dict(
        id="g-1",
        name="Ada Lovelace",
        visit_date=dt.date(2025, 6, 16),
        floors=(2, 3, 7),
        organization=None,
        estimated_arrival="14:30:00",
        checked_in=True,
        creator=CREATOR,
    )
    values.update(kwargs)
    return GuestRecord(**values)


def test_arrival_message_content():
    message = build_arrival_message(guest(), CREATOR, "desk@example.com")
    body = message.get_content()

    assert message["Subject"] == "Your guest has arrived - Ada Lovelace"
    assert message["To"] == "grace@example.com"
    assert "Hello Grace Hopper," in body
    assert "Organization: Not specified" in body
    assert "Visit Date: Monday, June 16, 2025" in body
    assert "Estimated Arrival: 2:30 PM" in body
    assert "Floor Access: 2, 3, 7" in body


def test_greeting_falls_back_to_username():
    creator = Creator(id="u-2", email="x@example.com", username="xavier")
    body = build_arrival_message(guest(creator=creator), creator, None).get_content()

    assert "Hello xavier," in body


def test_check_arrival_requires_check_in_and_creator_email():
    assert check_arrival(guest()) is CREATOR
    with pytest.raises(ArrivalRejected, match="not checked in"):
        check_arrival(guest(checked_in=False))
    with pytest.raises(ArrivalRejected, match="No email"):
        check_arrival(guest(creator=Creator(id="u-3")))


def test_send_without_smtp_credentials_fails():
    with pytest.raises(NotificationError):
        asyncio.run(send_arrival_email(guest(), CREATOR, UNCONFIGURED))


def test_arrival_notifier_posts_guest_id():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = ArrivalNotifier("https://notify.example/", user_id="svc", client=client)
    asyncio.run(notifier.notify_arrival("g-1"))

    assert seen[0].url == "https://notify.example/api/notifications/guest-arrival"
    assert seen[0].headers["X-User-Id"] == "svc"
    assert json.loads(seen[0].content) == {"guest_id": "g-1"}


def test_arrival_notifier_wraps_http_errors():
    def handler(request):
        return httpx.Response(500)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with pytest.raises(NotificationError):
        asyncio.run(ArrivalNotifier("https://notify.example", client=client).notify_arrival("g-1"))


def test_email_notifier_rejects_unknown_guest():
    class EmptyStore:
        async def get(self, guest_id):
            return None

    with pytest.raises(ArrivalRejected):
        asyncio.run(EmailArrivalNotifier(EmptyStore(), UNCONFIGURED).notify_arrival("g-1"))

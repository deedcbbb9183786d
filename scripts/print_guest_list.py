from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import logging

from guestlist.config import get_log_level
from guestlist.database import ENGINE, Base
from guestlist.ledger import load_window
from guestlist.parsing import format_arrival, format_floors, format_visit_date
from guestlist.store import StoreError, build_store

log_level = getattr(logging, get_log_level(), logging.INFO)
logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(message)s")

Base.metadata.create_all(bind=ENGINE)


async def main(day: dt.date) -> None:
    try:
        ledger = await load_window(build_store(), day, day)
    except StoreError as exc:
        logging.error("Failed to load guest list: %s", exc)
        raise SystemExit(1) from exc

    guests = ledger.guests_on(day)
    print(format_visit_date(day).upper())
    if not guests:
        print("No guests scheduled for this date.")
        return
    for guest in guests:
        status = "IN " if guest.checked_in else "   "
        host = guest.creator.display_name if guest.creator else "-"
        print(
            f"{status} {guest.name:<30} {format_floors(guest.floors):<20} "
            f"{format_arrival(guest.estimated_arrival):<14} guest of {host}"
        )
    logging.info("Printed %s guests for %s", len(guests), day.isoformat())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print the front-desk guest list for a day.")
    parser.add_argument("date", nargs="?", type=dt.date.fromisoformat, default=dt.date.today())
    args = parser.parse_args()
    asyncio.run(main(args.date))

#!/usr/bin/env python3
"""
Seed script for a demo boat club.

  • 3 boats (one needs approval, one blocked)
  • 8 members plus one applicant, one admin and one super admin
  • work appointments across the current club year
  • a few reservations in the next two weeks

Wipes every collection first. Uses DATABASE_URL from .env.
"""

import random
from datetime import datetime, timedelta

from dotenv import load_dotenv
load_dotenv()

import auth
import db
import models
import workhours
from intervals import now_local

# ── sample data ───────────────────────────────────────────────────────────────

PASSWORD = "Rudern2026!"

MEMBERS = [
    # (email, display name, roles, fees paid)
    ("vorstand@example.org",  "Greta Vorstand",   [models.SUPERADMIN], True),
    ("kasse@example.org",     "Jonas Kassenwart", [models.ADMIN],      True),
    ("anna@example.org",      "Anna Becker",      [models.MEMBER],     True),
    ("ben@example.org",       "Ben Hoffmann",     [models.MEMBER],     True),
    ("clara@example.org",     "Clara Wagner",     [models.MEMBER],     False),
    ("david@example.org",     "David Schulz",     [models.MEMBER],     True),
    ("eva@example.org",       "Eva Richter",      [models.MEMBER],     True),
    ("felix@example.org",     "Felix Krause",     [models.MEMBER],     True),
    ("hanna@example.org",     "Hanna Neumann",    [models.MEMBER],     True),
    ("ida@example.org",       "Ida Zimmermann",   [models.MEMBER],     True),
    ("bewerber@example.org",  "Paul Bewerber",    [models.APPLICANT],  False),
]

BOATS = [
    # (name, bootswart email, requires approval, blocked, color)
    ("Möwe",     "anna@example.org", True,  False, "#1976d2"),
    ("Kormoran", "ben@example.org",  False, False, "#2e7d32"),
    ("Albatros", None,               False, True,  "#c62828"),
]

WORK_TITLES = [
    "Hull cleaning", "Boathouse spring cleanup", "Varnishing oars",
    "Dock repairs", "Winter storage", "Trailer maintenance", "Rigging check",
]

rng = random.Random(42)   # reproducible


def _at(day: datetime, hour: int) -> datetime:
    return day.replace(hour=hour, minute=0, second=0, microsecond=0)


# ── seed steps ────────────────────────────────────────────────────────────────

def clear_all():
    for collection in (models.BOAT_RESERVATIONS, models.WORK_APPOINTMENTS,
                       models.BOATS, models.USERS, models.SYSTEM_CONFIG):
        ids = [d["id"] for d in db.get_documents(collection)]
        db.delete_documents(collection, ids)


def seed_users() -> dict:
    pw = auth.hash_password(PASSWORD)
    users = {}
    for email, name, roles, fees_paid in MEMBERS:
        user_id = models.create_user(email, name, pw, roles=roles, fees_paid=fees_paid)
        users[email] = models.get_user_by_id(user_id)
    print(f"  {len(users)} users created")
    return users


def seed_boats(users: dict) -> list:
    boats = []
    for name, bootswart, requires_approval, blocked, color in BOATS:
        boat_id = models.create_boat(
            name, f"Club boat {name}", users[bootswart]["id"] if bootswart else None,
            requires_approval=requires_approval, blocked=blocked, color=color,
        )
        boats.append(models.get_boat(boat_id))
    print(f"  {len(boats)} boats created")
    return boats


def seed_work(users: dict, boats: list, now: datetime) -> int:
    members = [u for u in users.values() if models.has_access(u)]
    count = 0
    for week in range(-30, 8, 2):
        day = now + timedelta(weeks=week, days=rng.randint(0, 6))
        start = _at(day, rng.choice([8, 9, 10, 13]))
        end = start + timedelta(hours=rng.choice([2, 3, 4, 5]))
        participants = []
        for user in rng.sample(members, rng.randint(2, 5)):
            if end < now:
                status = rng.choice([workhours.CONFIRMED] * 4 + [workhours.PENDING, workhours.DECLINED])
            else:
                status = rng.choice([workhours.CONFIRMED, workhours.PENDING])
            participants.append(models.new_participant(user, status))
        boat = rng.choice(boats + [None])
        models.create_work_appointment(
            rng.choice(WORK_TITLES), "Please bring gloves.", start, end,
            boat_id=boat["id"] if boat else None, max_participants=6,
            supplies=["gloves", "sandpaper"], participants=participants,
        )
        count += 1

    # one self-logged entry waiting for confirmation
    eva = users["eva@example.org"]
    day = _at(now - timedelta(days=10), 14)
    models.create_private_work_hours(eva, day, day + timedelta(hours=3),
                                     title="Sanded the Möwe", boat_id=boats[0]["id"])
    print(f"  {count + 1} work appointments created")
    return count + 1


def seed_reservations(users: dict, boats: list, now: datetime) -> int:
    count = 0
    bookable = [b for b in boats if not b["blocked"]]
    for offset in range(1, 15, 3):
        user = users[rng.choice(["anna@example.org", "ben@example.org", "david@example.org"])]
        boat = bookable[offset % len(bookable)]
        start = _at(now + timedelta(days=offset), 9)
        models.create_reservation(boat, user, start, start + timedelta(hours=4),
                                  title=f"Outing on the {boat['name']}")
        count += 1
    print(f"  {count} reservations created")
    return count


def seed_club():
    now = now_local()
    db.init_schema()
    clear_all()
    models.save_system_config(20, 1, 1, {"enable_member_creation": True})
    users = seed_users()
    boats = seed_boats(users)
    seed_work(users, boats, now)
    seed_reservations(users, boats, now)


if __name__ == "__main__":
    print("Seeding demo boat club …")
    seed_club()
    print(f"\nDone. All accounts use the password {PASSWORD!r}.")

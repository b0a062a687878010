"""
Work-hour accounting for club members.

Every member owes a number of communal work hours per club year. The club
year starts on a configurable month/day (the "year change date"). This
module turns a snapshot of users and work appointments into per-member
totals:

  completed  confirmed participation whose end lies in the past
  upcoming   pending participation, or confirmed participation not yet over
  declined   participation a manager declined

Durations are milliseconds, summed over each member's own participant
interval (their start/end override when set, else the appointment window).

Everything here is a pure function of its inputs; fetching lives in models.py.
"""

import logging
from datetime import datetime

from intervals import duration_ms

log = logging.getLogger(__name__)

PENDING   = "pending"
CONFIRMED = "confirmed"
DECLINED  = "declined"

PARTICIPANT_STATUSES = (PENDING, CONFIRMED, DECLINED)


# ---------------------------------------------------------------------------
# Fiscal year
# ---------------------------------------------------------------------------

def effective_fiscal_start(year_change_date, now: datetime) -> datetime:
    """
    Start of the club year that contains `now`.

    Only month and day of `year_change_date` are used (the stored year is a
    sentinel). The boundary is placed in now's calendar year; if that is
    still ahead of `now`, the previous year's boundary applies.
    """
    month, day = year_change_date.month, year_change_date.day
    start = _month_day(now.year, month, day)
    if start > now:
        start = _month_day(now.year - 1, month, day)
    return start


def _month_day(year: int, month: int, day: int) -> datetime:
    # Feb 29 boundary in a non-leap year falls back to Feb 28
    try:
        return datetime(year, month, day)
    except ValueError:
        return datetime(year, month, day - 1)


# ---------------------------------------------------------------------------
# Participant helpers
# ---------------------------------------------------------------------------

def participant_for(appointment: dict, user_id: str) -> dict | None:
    """Return the participant entry for user_id, or None."""
    for p in appointment.get("participants") or []:
        if p.get("user_id") == user_id:
            return p
    return None


def participant_interval(appointment: dict, participant: dict) -> tuple[datetime, datetime]:
    """A participant's worked interval: their own override, else the appointment's."""
    start = participant.get("start_time") or appointment["start_time"]
    end = participant.get("end_time") or appointment["end_time"]
    return start, end


def participant_duration(appointment: dict, participant: dict) -> int:
    start, end = participant_interval(appointment, participant)
    return duration_ms(start, end)


def classify(participant: dict, appointment: dict, now: datetime) -> str | None:
    """
    Bucket name ('completed' | 'upcoming' | 'declined') for one participation,
    or None when the status is not one we know.
    """
    status = participant.get("status")
    if status == DECLINED:
        return "declined"
    if status == PENDING:
        return "upcoming"
    if status == CONFIRMED:
        _, end = participant_interval(appointment, participant)
        return "completed" if end < now else "upcoming"
    return None


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def empty_hours(user: dict) -> dict:
    return {
        "user": user,
        "completed_duration": 0,
        "upcoming_duration": 0,
        "declined_duration": 0,
        "appointments": {"completed": [], "upcoming": [], "declined": []},
    }


def in_fiscal_year(appointments: list, cutoff: datetime) -> list:
    """Appointments ending on or after the fiscal-year start."""
    return [a for a in appointments if a["end_time"] >= cutoff]


def hours_for_user(user: dict, appointments: list, now: datetime) -> dict:
    """Work-hour record for a single user over an already cut-off appointment list."""
    hours = empty_hours(user)
    for apt in appointments:
        participant = participant_for(apt, user["id"])
        if participant is None:
            continue
        bucket = classify(participant, apt, now)
        if bucket is None:
            log.warning("Unknown participant status %r on appointment %s for user %s",
                        participant.get("status"), apt.get("id"), user["id"])
            continue
        hours["appointments"][bucket].append(apt)
        hours[f"{bucket}_duration"] += participant_duration(apt, participant)
    return hours


def aggregate(users: list, appointments: list, now: datetime, fiscal_cutoff) -> list:
    """
    Compute one work-hour record per user, in the order users were given.

    `fiscal_cutoff` is the configured year change date (month/day relevant);
    appointments ending before the resulting club-year start are ignored even
    if the caller passed them in. Users without any participation still get a
    zeroed record.
    """
    cutoff = effective_fiscal_start(fiscal_cutoff, now)
    current = in_fiscal_year(appointments, cutoff)
    return [hours_for_user(user, current, now) for user in users]


def find_hours(all_hours: list, user_id: str) -> dict | None:
    for h in all_hours:
        if h["user"]["id"] == user_id:
            return h
    return None

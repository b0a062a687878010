"""
Status badges for work hours.

Two views share one set of states:
  - item status: one member's participation in one appointment
  - overall status: a member's standing for the club year

STATUS_DISPLAY maps each state to (item label, overall label, color). The
roster reuses REJECTED as "Needs review" when a member still has pending
participations; it is a prompt for the managers, not a rejection.
"""

from datetime import datetime

from intervals import MS_PER_HOUR, duration_ms
from workhours import CONFIRMED, DECLINED, PENDING, participant_for, participant_interval

OPEN     = "OPEN"
PLANNED  = "PLANNED"
DONE     = "DONE"
REJECTED = "REJECTED"
PAUSED   = "PAUSED"

STATUS_DISPLAY = {
    OPEN:     ("Unconfirmed", "Open",         "warning"),
    PLANNED:  ("Planned",     "Planned",      "info"),
    DONE:     ("Confirmed",   "Fulfilled",    "success"),
    REJECTED: ("Declined",    "Needs review", "error"),
    PAUSED:   ("Suspended",   "Suspended",    "success"),
}


def item_status(participant_status: str, is_past_end: bool) -> str:
    if participant_status == CONFIRMED and is_past_end:
        return DONE
    if participant_status == PENDING:
        return OPEN
    if participant_status == DECLINED:
        return REJECTED
    return PLANNED


def overall_status(skip_hours: bool, completed: int, upcoming: int,
                   threshold_ms: int, has_pending: bool = False) -> str:
    """First match wins: suspended, fulfilled, needs review, planned, open."""
    if skip_hours:
        return PAUSED
    if completed >= threshold_ms:
        return DONE
    if has_pending:
        return REJECTED
    if completed + upcoming >= threshold_ms:
        return PLANNED
    return OPEN


def has_pending_in_upcoming(hours: dict) -> bool:
    """True if any participant of the member's upcoming appointments is still pending."""
    return any(p.get("status") == PENDING
               for apt in hours["appointments"]["upcoming"]
               for p in apt.get("participants") or [])


def badge(status: str, overall: bool) -> dict:
    item_label, overall_label, color = STATUS_DISPLAY[status]
    return {"status": status, "label": overall_label if overall else item_label, "color": color}


# ---------------------------------------------------------------------------
# View records
# ---------------------------------------------------------------------------

def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 100.0
    return part / whole * 100


def appointment_rows(hours: dict, now: datetime, buckets=("completed", "upcoming", "declined")) -> list:
    """One row per participation of the member, newest appointment first."""
    user_id = hours["user"]["id"]
    rows = []
    for bucket in buckets:
        for apt in hours["appointments"][bucket]:
            participant = participant_for(apt, user_id)
            if participant is None:
                continue
            start, end = participant_interval(apt, participant)
            rows.append({
                "appointment_id": apt.get("id"),
                "title":          apt.get("title", ""),
                "boat_id":        apt.get("boat_id"),
                "private":        bool(apt.get("private")),
                "start_time":     start,
                "end_time":       end,
                "duration":       duration_ms(start, end),
                "participant_status": participant.get("status"),
                **badge(item_status(participant.get("status"), end < now), overall=False),
                "_sort": apt["start_time"],
            })
    rows.sort(key=lambda r: r["_sort"], reverse=True)
    for r in rows:
        del r["_sort"]
    return rows


def personal_view(hours: dict, threshold_hours: float, now: datetime) -> dict:
    """Summary for the member's own work-hours page."""
    required = int(threshold_hours * MS_PER_HOUR)
    completed = hours["completed_duration"]
    upcoming = hours["upcoming_duration"]
    status = overall_status(bool(hours["user"].get("skip_hours")), completed, upcoming, required)
    return {
        "completed_duration": completed,
        "upcoming_duration":  upcoming,
        "declined_duration":  hours["declined_duration"],
        "required_duration":  required,
        "outstanding_duration": required - completed - upcoming,
        "progress_completed": min(100.0, _percent(completed, required)),
        "progress_planned":   min(100.0, _percent(completed + upcoming, required)),
        **badge(status, overall=True),
        "appointments": appointment_rows(hours, now),
    }


def roster_row(hours: dict, threshold_hours: float, now: datetime) -> dict:
    """One line of the managers' member table."""
    required = int(threshold_hours * MS_PER_HOUR)
    user = hours["user"]
    completed = hours["completed_duration"]
    upcoming = hours["upcoming_duration"]
    status = overall_status(bool(user.get("skip_hours")), completed, upcoming, required,
                            has_pending=has_pending_in_upcoming(hours))
    return {
        "user_id":      user["id"],
        "display_name": user.get("display_name", ""),
        "completed_duration": completed,
        "upcoming_duration":  upcoming,
        "remaining_duration": max(0, required - completed - upcoming),
        "progress":     round(_percent(completed, required)),
        **badge(status, overall=True),
        "appointments": appointment_rows(hours, now, buckets=("completed", "upcoming")),
    }

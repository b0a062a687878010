"""
Boat reservation rules: overlap detection, initial status, validation.

The same overlap filter serves two purposes:
  - without a boat id it yields every reservation touching the requested
    window, used to mark boats as already reserved in the selection list
  - with a boat id it is the hard check before a reservation is saved

The check and the subsequent write are separate store calls, so two
members submitting at the same moment can still double-book a boat.
"""

from datetime import datetime

from intervals import overlaps

PENDING  = "pending"
APPROVED = "approved"
REJECTED = "rejected"

RESERVATION_STATUSES = (PENDING, APPROVED, REJECTED)

MSG_UNKNOWN_BOAT = "Please select a boat."
MSG_BLOCKED      = "This boat is currently blocked and cannot be reserved."
MSG_END_BEFORE   = "End time must be after start time."
MSG_CONFLICT     = "This boat is already reserved for the selected period."


def find_overlaps(candidate_start: datetime, candidate_end: datetime,
                  existing: list, boat_id: str = None, exclude_id: str = None) -> list:
    """
    Reservations from `existing` whose interval touches the candidate window.
    `exclude_id` drops the reservation being edited; `boat_id` narrows the
    result to one boat.
    """
    hits = [r for r in existing
            if overlaps(candidate_start, candidate_end, r["start_time"], r["end_time"])]
    if exclude_id:
        hits = [r for r in hits if r.get("id") != exclude_id]
    if boat_id:
        hits = [r for r in hits if r.get("boat_id") == boat_id]
    return hits


def reserved_boat_ids(candidate_start: datetime, candidate_end: datetime,
                      existing: list, exclude_id: str = None) -> set:
    """Boats that already have a reservation in the window."""
    return {r["boat_id"] for r in find_overlaps(candidate_start, candidate_end,
                                                existing, exclude_id=exclude_id)}


def initial_status(boat: dict, user_id: str) -> str:
    """Approved right away unless the boat needs approval and the requester isn't its bootswart."""
    if boat.get("requires_approval") and boat.get("bootswart") != user_id:
        return PENDING
    return APPROVED


def validate_reservation(boat: dict | None, start_dt: datetime, end_dt: datetime,
                         existing: list, exclude_id: str = None) -> str | None:
    """
    Check the rules for creating or moving a reservation.
    Returns an error string on failure, or None if valid.

    Rules enforced:
      1. The boat must exist
      2. The boat must not be blocked
      3. Start must not be after end (zero-length windows are allowed)
      4. No overlap with another reservation on the same boat
    """
    if not boat:
        return MSG_UNKNOWN_BOAT
    if boat.get("blocked"):
        return MSG_BLOCKED
    if start_dt > end_dt:
        return MSG_END_BEFORE
    if find_overlaps(start_dt, end_dt, existing, boat_id=boat["id"], exclude_id=exclude_id):
        return MSG_CONFLICT
    return None


def can_decide(boat: dict | None, user_id: str, is_admin: bool) -> bool:
    """Admins and the boat's bootswart may approve, reject or cancel any reservation on it."""
    if is_admin:
        return True
    return bool(boat and boat.get("bootswart") and boat["bootswart"] == user_id)


def can_edit(reservation: dict, boat: dict | None, user_id: str, is_admin: bool) -> bool:
    """
    Owners may move their own reservation, except on approval-required boats
    where only the bootswart or an admin can.
    """
    if reservation["user_id"] != user_id:
        return False
    if boat and boat.get("requires_approval"):
        return can_decide(boat, user_id, is_admin)
    return True

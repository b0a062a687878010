"""
Data access for the boat club.
Collection queries and write flows; the rules themselves live in
workhours.py, eligibility.py, reservations.py and work_status.py.
"""

import logging
from datetime import datetime

import db
import reservations
import workhours
from intervals import now_local, parse_datetime

log = logging.getLogger(__name__)

USERS             = "users"
BOATS             = "boats"
WORK_APPOINTMENTS = "workAppointments"
BOAT_RESERVATIONS = "boatReservations"
SYSTEM_CONFIG     = "systemConfig"

SUPERADMIN = "SUPERADMIN"
ADMIN      = "ADMIN"
MEMBER     = "MEMBER"
APPLICANT  = "APPLICANT"
ROLES = (SUPERADMIN, ADMIN, MEMBER, APPLICANT)

CONFIG_ID = "default"
SENTINEL_YEAR = 2000

DEFAULT_SYSTEM_CONFIG = {
    "id": CONFIG_ID,
    "work_hour_threshold": 25,
    "year_change_date": datetime(SENTINEL_YEAR, 1, 1),
    "feature_flags": {"enable_member_creation": False},
}


# ---------------------------------------------------------------------------
# System config
# ---------------------------------------------------------------------------

def get_system_config() -> dict:
    """The singleton config document, filled up with defaults."""
    config = dict(DEFAULT_SYSTEM_CONFIG)
    config["feature_flags"] = dict(DEFAULT_SYSTEM_CONFIG["feature_flags"])
    doc = db.get_document(SYSTEM_CONFIG, CONFIG_ID)
    if doc:
        flags = doc.pop("feature_flags", None) or {}
        config.update({k: v for k, v in doc.items() if v is not None})
        config["feature_flags"].update(flags)
    return config


def ensure_system_config(is_super_admin: bool) -> dict:
    """
    Return the config. A missing document is created on first access,
    but only when a super admin is the one asking.
    """
    doc = db.get_document(SYSTEM_CONFIG, CONFIG_ID)
    if doc is None and is_super_admin:
        log.info("Creating default system config")
        db.set_document(SYSTEM_CONFIG, CONFIG_ID,
                        {**DEFAULT_SYSTEM_CONFIG, "created_at": now_local(), "updated_at": now_local()})
    return get_system_config()


def save_system_config(work_hour_threshold: int, month: int, day: int,
                       feature_flags: dict | None = None) -> dict:
    """Store the settings. Only month/day of the year change date are kept."""
    if work_hour_threshold < 0:
        raise ValueError("Work hour threshold cannot be negative.")
    year_change = datetime(SENTINEL_YEAR, month, day)   # raises ValueError on bad dates
    current = get_system_config()
    flags = dict(current.get("feature_flags") or {})
    flags.update(feature_flags or {})
    config = {
        "id": CONFIG_ID,
        "work_hour_threshold": work_hour_threshold,
        "year_change_date": year_change,
        "feature_flags": flags,
        "created_at": current.get("created_at") or now_local(),
        "updated_at": now_local(),
    }
    db.set_document(SYSTEM_CONFIG, CONFIG_ID, config)
    log.info("System config saved: threshold=%s year_change=%02d-%02d",
             work_hour_threshold, month, day)
    return config


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_all_users() -> list:
    return sorted(db.get_documents(USERS), key=lambda u: (u.get("display_name") or "").lower())


def get_user_by_id(user_id: str):
    if not user_id:
        return None
    return db.get_document(USERS, user_id)


def get_user_by_email(email: str):
    rows = db.get_documents(USERS, [("email", "eq", email.strip().lower())])
    return rows[0] if rows else None


def create_user(email: str, display_name: str, password_hash: str,
                roles: list | None = None, fees_paid: bool = False) -> str:
    now = now_local()
    return db.add_document(USERS, {
        "email": email.strip().lower(),
        "display_name": display_name,
        "password_hash": password_hash,
        "roles": list(roles) if roles is not None else [APPLICANT],
        "fees_paid": fees_paid,
        "deactivated": False,
        "skip_hours": False,
        "created_at": now,
        "updated_at": now,
    })


def touch_last_login(user_id: str):
    db.update_document(USERS, user_id, {"last_login_at": now_local()})


def update_member(user_id: str, display_name: str, roles: list,
                  fees_paid: bool, skip_hours: bool):
    """Admin edit of a member. APPLICANT is dropped once a member is edited."""
    unknown = [r for r in roles if r not in ROLES]
    if unknown:
        raise ValueError(f"Unknown role(s): {', '.join(unknown)}")
    db.update_document(USERS, user_id, {
        "display_name": display_name,
        "roles": [r for r in roles if r != APPLICANT],
        "fees_paid": fees_paid,
        "skip_hours": skip_hours,
        "updated_at": now_local(),
    })


def _delete_user_reservations(user_id: str) -> int:
    rows = db.get_documents(BOAT_RESERVATIONS, [("user_id", "eq", user_id)])
    db.delete_documents(BOAT_RESERVATIONS, [r["id"] for r in rows])
    return len(rows)


def deactivate_user(user_id: str, by_user_id: str):
    """Mark deactivated, strip all roles and drop the member's reservations."""
    db.update_document(USERS, user_id, {
        "deactivated": True,
        "deactivated_at": now_local(),
        "deactivated_by": by_user_id,
        "roles": [],
    })
    removed = _delete_user_reservations(user_id)
    log.info("User %s deactivated by %s (%d reservation(s) removed)", user_id, by_user_id, removed)


def activate_user(user_id: str):
    db.update_document(USERS, user_id, {
        "deactivated": False,
        "deactivated_at": None,
        "deactivated_by": None,
        "roles": [MEMBER],
    })
    log.info("User %s reactivated", user_id)


def delete_user(user_id: str):
    db.delete_document(USERS, user_id)
    removed = _delete_user_reservations(user_id)
    log.info("User %s deleted (%d reservation(s) removed)", user_id, removed)


def has_access(user: dict | None) -> bool:
    """Applicants and users without any role stay locked out."""
    roles = (user or {}).get("roles") or []
    return bool(roles) and APPLICANT not in roles


# ---------------------------------------------------------------------------
# Boats
# ---------------------------------------------------------------------------

BOAT_FIELDS = ("name", "description", "bootswart", "requires_approval", "blocked", "color")


def get_all_boats() -> list:
    return sorted(db.get_documents(BOATS), key=lambda b: (b.get("name") or "").lower())


def get_boat(boat_id: str):
    if not boat_id:
        return None
    return db.get_document(BOATS, boat_id)


def find_boat(boats: list, boat_id: str):
    return next((b for b in boats if b["id"] == boat_id), None) if boat_id else None


def create_boat(name: str, description: str = "", bootswart: str = None,
                requires_approval: bool = True, blocked: bool = False,
                color: str = "#1976d2") -> str:
    now = now_local()
    return db.add_document(BOATS, {
        "name": name,
        "description": description,
        "bootswart": bootswart or None,
        "requires_approval": requires_approval,
        "blocked": blocked,
        "color": color,
        "created_at": now,
        "updated_at": now,
    })


def update_boat(boat_id: str, fields: dict):
    changes = {k: v for k, v in fields.items() if k in BOAT_FIELDS}
    if "bootswart" in changes:
        changes["bootswart"] = changes["bootswart"] or None
    changes["updated_at"] = now_local()
    db.update_document(BOATS, boat_id, changes)


def delete_boat(boat_id: str):
    db.delete_document(BOATS, boat_id)


def is_bootswart(boats: list, user_id: str, boat_id: str = None) -> bool:
    """Whether user_id manages the given boat, or any boat when boat_id is None."""
    if not user_id:
        return False
    if boat_id is None:
        return any(b.get("bootswart") == user_id for b in boats)
    boat = find_boat(boats, boat_id)
    return bool(boat and boat.get("bootswart") == user_id)


# ---------------------------------------------------------------------------
# Work appointments
# ---------------------------------------------------------------------------

APPOINTMENT_FIELDS = ("title", "description", "start_time", "end_time", "boat_id",
                      "max_participants", "supplies")


def get_work_appointments(since: datetime = None) -> list:
    """Appointments ending at or after `since` (all of them when None)."""
    filters = [("end_time", "gte", since)] if since else None
    rows = db.get_documents(WORK_APPOINTMENTS, filters)
    return sorted(rows, key=lambda a: a["start_time"])


def get_work_appointment(appointment_id: str):
    return db.get_document(WORK_APPOINTMENTS, appointment_id)


def new_participant(user: dict, status: str = workhours.PENDING,
                    start_time: datetime = None, end_time: datetime = None) -> dict:
    now = now_local()
    participant = {
        "user_id": user["id"],
        "user_name": user.get("display_name", ""),
        "status": status,
        "created_at": now,
        "updated_at": now,
    }
    if start_time:
        participant["start_time"] = start_time
    if end_time:
        participant["end_time"] = end_time
    return participant


def create_work_appointment(title: str, description: str, start_time: datetime,
                            end_time: datetime, boat_id: str = None,
                            max_participants: int = None, supplies: list = None,
                            participants: list = None, private: bool = False) -> str:
    now = now_local()
    data = {
        "title": title,
        "description": description or "",
        "start_time": start_time,
        "end_time": end_time,
        "boat_id": boat_id or None,
        "participants": participants or [],
        "supplies": supplies or [],
        "private": private,
        "created_at": now,
        "updated_at": now,
    }
    if max_participants:
        data["max_participants"] = max_participants
    return db.add_document(WORK_APPOINTMENTS, data)


def update_work_appointment(appointment_id: str, fields: dict):
    changes = {k: v for k, v in fields.items() if k in APPOINTMENT_FIELDS}
    changes["updated_at"] = now_local()
    db.update_document(WORK_APPOINTMENTS, appointment_id, changes)


def delete_work_appointment(appointment_id: str):
    """Participants are embedded, so they go with the appointment."""
    db.delete_document(WORK_APPOINTMENTS, appointment_id)


def join_work_appointment(appointment: dict, user: dict, auto_confirm: bool = False) -> str | None:
    """
    Add the user as a participant. Returns an error string, or None on success.
    Managers (auto_confirm) join confirmed and are not held to max_participants.
    """
    if workhours.participant_for(appointment, user["id"]):
        return "You are already signed up for this appointment."
    if appointment.get("private"):
        return "Private work hours cannot be joined."
    limit = appointment.get("max_participants")
    if limit and not auto_confirm and len(appointment.get("participants") or []) >= limit:
        return "This appointment is already full."
    status = workhours.CONFIRMED if auto_confirm else workhours.PENDING
    db.array_union(WORK_APPOINTMENTS, appointment["id"], "participants",
                   [new_participant(user, status)])
    return None


def leave_work_appointment(appointment: dict, user_id: str) -> bool:
    participant = workhours.participant_for(appointment, user_id)
    if not participant:
        return False
    db.array_remove(WORK_APPOINTMENTS, appointment["id"], "participants", [participant])
    return True


def _replace_participant(appointment: dict, user_id: str, changes: dict) -> bool:
    found = False
    updated = []
    for p in appointment.get("participants") or []:
        if p.get("user_id") == user_id:
            p = {**p, **changes, "updated_at": now_local()}
            found = True
        updated.append(p)
    if found:
        db.update_document(WORK_APPOINTMENTS, appointment["id"], {"participants": updated})
    return found


def set_participant_status(appointment: dict, user_id: str, status: str) -> bool:
    """Confirm or decline one participant. Returns False if the user isn't on the appointment."""
    if status not in (workhours.CONFIRMED, workhours.DECLINED):
        raise ValueError(f"Invalid participant status: {status}")
    ok = _replace_participant(appointment, user_id, {"status": status})
    if ok:
        log.info("Participant %s on appointment %s set to %s", user_id, appointment["id"], status)
    return ok


def set_participant_times(appointment: dict, user_id: str,
                          start_time: datetime = None, end_time: datetime = None) -> str | None:
    """Override one participant's worked interval. Returns an error string or None."""
    participant = workhours.participant_for(appointment, user_id)
    if not participant:
        return "That member is not part of this appointment."
    changes = {}
    if start_time:
        changes["start_time"] = start_time
    if end_time:
        changes["end_time"] = end_time
    start, end = workhours.participant_interval(appointment, {**participant, **changes})
    if end < start:
        return "End time must be after start time."
    _replace_participant(appointment, user_id, changes)
    return None


def create_private_work_hours(user: dict, start_time: datetime, end_time: datetime,
                              title: str = "", description: str = "", boat_id: str = None,
                              auto_confirm: bool = False) -> str:
    """Self-logged hours: a private single-participant appointment."""
    status = workhours.CONFIRMED if auto_confirm else workhours.PENDING
    participant = new_participant(user, status, start_time, end_time)
    return create_work_appointment(
        title or f"Private work hours for {user.get('display_name', '')}",
        description, start_time, end_time, boat_id=boat_id, max_participants=1,
        participants=[participant], private=True,
    )


def import_work_hours(rows: list, title: str, description: str = "", boat_id: str = None) -> str:
    """
    Create one appointment from already-parsed rows of
    {user_identifier, start_time, end_time}. Members are matched by email or
    display name; every imported participation is confirmed. Nothing is
    written if any row fails.
    """
    if not title or not rows:
        raise ValueError("A title and at least one row are required.")
    users = get_all_users()
    participants = []
    for index, row in enumerate(rows, start=1):
        ident = str(row.get("user_identifier") or "").strip()
        user = next((u for u in users
                     if ident and (u.get("email") == ident.lower() or u.get("display_name") == ident)),
                    None)
        if not user:
            raise ValueError(f"User not found: {ident or '(empty)'} (row {index})")
        try:
            start = _as_datetime(row.get("start_time"))
            end = _as_datetime(row.get("end_time"))
        except ValueError:
            raise ValueError(f"Invalid start or end time in row {index}")
        participants.append(new_participant(user, workhours.CONFIRMED, start, end))

    appointment_id = create_work_appointment(
        title, description,
        min(p["start_time"] for p in participants),
        max(p["end_time"] for p in participants),
        boat_id=boat_id, participants=participants,
    )
    log.info("Imported %d work-hour row(s) into appointment %s", len(participants), appointment_id)
    return appointment_id


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return parse_datetime(value)


# ---------------------------------------------------------------------------
# Work hours
# ---------------------------------------------------------------------------

def load_work_hours(system_config: dict, user: dict = None, now: datetime = None) -> list:
    """
    Fetch users and this club year's appointments and aggregate them.
    Pass `user` to compute a single member. Store failures raise db.FetchError.
    """
    now = now or now_local()
    cutoff = workhours.effective_fiscal_start(system_config["year_change_date"], now)
    users = [user] if user else get_all_users()
    appointments = get_work_appointments(since=cutoff)
    return workhours.aggregate(users, appointments, now, system_config["year_change_date"])


# ---------------------------------------------------------------------------
# Boat reservations
# ---------------------------------------------------------------------------

def get_reservations_range(start: datetime, end: datetime) -> list:
    """Reservations touching [start, end], in start order."""
    rows = db.query(BOAT_RESERVATIONS, [
        ("start_time", "lte", end),
        ("end_time", "gte", start),
    ])
    return sorted(rows, key=lambda r: r["start_time"])


def get_reservation(res_id: str):
    return db.get_document(BOAT_RESERVATIONS, res_id)


def get_reservations_for_user(user_id: str) -> list:
    rows = db.get_documents(BOAT_RESERVATIONS, [("user_id", "eq", user_id)])
    return sorted(rows, key=lambda r: r["start_time"])


def create_reservation(boat: dict, user: dict, start_time: datetime, end_time: datetime,
                       title: str = "", description: str = "") -> tuple[str, str]:
    """Insert a reservation. Call reservations.validate_reservation first. Returns (id, status)."""
    status = reservations.initial_status(boat, user["id"])
    now = now_local()
    res_id = db.add_document(BOAT_RESERVATIONS, {
        "boat_id": boat["id"],
        "user_id": user["id"],
        "user_name": user.get("display_name", ""),
        "title": title or f"Reservation by {user.get('display_name', '')}",
        "description": description or "",
        "start_time": start_time,
        "end_time": end_time,
        "status": status,
        "created_at": now,
        "updated_at": now,
    })
    log.info("Reservation %s created for boat %s by %s (%s)", res_id, boat["id"], user["id"], status)
    return res_id, status


def update_reservation(res_id: str, start_time: datetime, end_time: datetime,
                       title: str = None, description: str = None):
    changes = {"start_time": start_time, "end_time": end_time, "updated_at": now_local()}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    db.update_document(BOAT_RESERVATIONS, res_id, changes)


def set_reservation_status(res_id: str, status: str):
    if status not in (reservations.APPROVED, reservations.REJECTED):
        raise ValueError(f"Invalid reservation status: {status}")
    db.update_document(BOAT_RESERVATIONS, res_id, {"status": status, "updated_at": now_local()})
    log.info("Reservation %s set to %s", res_id, status)


def cancel_reservation(res_id: str):
    db.delete_document(BOAT_RESERVATIONS, res_id)
    log.info("Reservation %s cancelled", res_id)

"""
Reservation eligibility.

A member may reserve boats only when membership fees are paid, the account
is active and the required work hours for the current club year are
already completed. Planned (upcoming) hours do not count here, unlike the
"on track" badge on the work-hours page. skip_hours is not consulted either;
it only affects the status badge (see work_status.py).
"""

import logging
import math

import db
import models
from intervals import MS_PER_HOUR, MS_PER_MINUTE, format_duration

log = logging.getLogger(__name__)

REASON_FEES_UNPAID      = "fees unpaid"
REASON_DEACTIVATED      = "account deactivated"
REASON_HOURS_UNAVAILABLE = "hours unavailable"
REASON_SIGN_IN          = "please sign in"


def hours_short_reason(remaining_ms: int) -> str:
    # any gap, however small, shows as at least a minute
    minutes = math.ceil(remaining_ms / MS_PER_MINUTE)
    return f"hours short by {format_duration(minutes * MS_PER_MINUTE)}"


def evaluate(user: dict, hours: dict | None, threshold_hours: float,
             fetch_failed: bool = False) -> dict:
    """
    Return {"eligible": bool, "reasons": [...]}.

    Reasons are appended in a fixed order (fees, deactivation, hours, fetch
    error) and the caller shows them in that order.
    """
    reasons = []

    if not user.get("fees_paid"):
        reasons.append(REASON_FEES_UNPAID)
    if user.get("deactivated"):
        reasons.append(REASON_DEACTIVATED)

    completed = hours["completed_duration"] if hours else 0
    remaining = threshold_hours * MS_PER_HOUR - completed
    if remaining > 0:
        reasons.append(hours_short_reason(remaining))

    if fetch_failed:
        reasons.append(REASON_HOURS_UNAVAILABLE)

    return {"eligible": not reasons, "reasons": reasons}


def member_eligibility(ctx: dict, now=None) -> dict:
    """
    Eligibility of the session's user. Fetches that user's work hours for
    the current club year; a failed fetch degrades to the 'hours
    unavailable' reason instead of raising.
    """
    user = ctx.get("user")
    if not user:
        return {"eligible": False, "reasons": [REASON_SIGN_IN], "hours": None}

    config = ctx["system_config"]
    hours = None
    fetch_failed = False
    try:
        all_hours = models.load_work_hours(config, user=user, now=now)
        hours = all_hours[0] if all_hours else None
    except db.FetchError as exc:
        log.error("Could not load work hours for user %s: %s", user["id"], exc)
        fetch_failed = True

    result = evaluate(user, hours, config["work_hour_threshold"], fetch_failed=fetch_failed)
    result["hours"] = hours
    return result

#!/usr/bin/env python3
"""
Work-hours report. Run weekly via cron.

Logs every member's standing for the current club year so the board can
see at a glance who still owes hours and which participations are waiting
for a bootswart to confirm them.

Cron entry (Mondays at 7 AM):
  0 7 * * 1 /usr/bin/python3 /srv/boatclub/hours_report.py >> /var/log/boatclub-hours.log 2>&1
"""

import os
import logging

APP_DIR = os.path.dirname(os.path.abspath(__file__))
os.chdir(APP_DIR)

from dotenv import load_dotenv
load_dotenv()

import db
import models
import work_status
import workhours
from intervals import format_duration, now_local

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger(__name__)


def build_report(system_config: dict, users: list, appointments: list, now) -> list:
    """Roster rows for members with access, lowest progress first."""
    members = [u for u in users if models.has_access(u)]
    all_hours = workhours.aggregate(members, appointments, now, system_config["year_change_date"])
    rows = [work_status.roster_row(h, system_config["work_hour_threshold"], now) for h in all_hours]
    rows.sort(key=lambda r: (r["progress"], r["display_name"].lower()))
    return rows


def main() -> int:
    now = now_local()
    log.info("Work-hours report starting")

    try:
        config = models.get_system_config()
        cutoff = workhours.effective_fiscal_start(config["year_change_date"], now)
        users = models.get_all_users()
        appointments = models.get_work_appointments(since=cutoff)
    except db.FetchError as exc:
        log.error("Could not load data: %s", exc)
        return 1

    rows = build_report(config, users, appointments, now)
    if not rows:
        log.info("No active members, nothing to report")
        return 0

    log.info("Club year since %s, %d member(s), %sh required",
             cutoff.date(), len(rows), config["work_hour_threshold"])

    open_count = 0
    for row in rows:
        log.info("%-30s %-12s done %-8s planned %-8s missing %s",
                 row["display_name"], row["label"],
                 format_duration(row["completed_duration"]),
                 format_duration(row["upcoming_duration"]),
                 format_duration(row["remaining_duration"]))
        if row["status"] in (work_status.OPEN, work_status.REJECTED):
            open_count += 1

    log.info("Work-hours report complete: %d of %d member(s) need attention",
             open_count, len(rows))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Boat Club Manager: members, boats, boat reservations and work hours.
JSON API over the club's document store.
"""

import logging
import os
import secrets
from datetime import date, datetime

from dotenv import load_dotenv
load_dotenv()

from flask import Flask, request, jsonify, abort
from flask.json.provider import DefaultJSONProvider
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import auth
import db
import eligibility
import models
import reservations
import work_status
import workhours
from intervals import MS_PER_HOUR, now_local, overlaps, parse_datetime

log = logging.getLogger(__name__)


class ClubJSONProvider(DefaultJSONProvider):
    """ISO-8601 datetimes instead of Flask's HTTP-date format."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _body() -> dict:
    return request.get_json(silent=True) or {}


def _bad(message: str, **extra):
    return jsonify({"ok": False, "error": message, **extra}), 400


def _public_user(user: dict | None) -> dict | None:
    if not user:
        return None
    return {k: v for k, v in user.items() if k != "password_hash"}


def _range_args() -> tuple[datetime, datetime]:
    """start/end query args; aborts with 400 when missing or malformed."""
    try:
        start = parse_datetime(request.args["start"])
        end = parse_datetime(request.args["end"])
    except (KeyError, ValueError):
        abort(400, description="Query parameters 'start' and 'end' must be ISO date-times.")
    return start, end


def _times_from(body: dict, required: bool = True) -> tuple:
    """Parse start_time/end_time from a JSON body. Raises ValueError."""
    start = body.get("start_time")
    end = body.get("end_time")
    if required and (not start or not end):
        raise ValueError("Start and end time are required.")
    return (parse_datetime(start) if start else None,
            parse_datetime(end) if end else None)


def _text(body: dict, key: str, default: str = "") -> str:
    """Stripped string field; JSON null counts as missing."""
    return (body.get(key) or default).strip()


def _appointment_extras(body: dict) -> dict:
    """max_participants/supplies from a JSON body, coerced. Raises ValueError."""
    extras = {}
    if "max_participants" in body:
        raw = body["max_participants"]
        try:
            limit = int(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            raise ValueError("Maximum participants must be a whole number.")
        if limit is not None and limit < 1:
            raise ValueError("Maximum participants must be at least 1.")
        extras["max_participants"] = limit
    if "supplies" in body:
        supplies = body["supplies"] or []
        if not isinstance(supplies, list):
            raise ValueError("Supplies must be a list.")
        extras["supplies"] = [str(s) for s in supplies]
    return extras


def _year_change(config: dict) -> dict:
    ycd = config["year_change_date"]
    return {"month": ycd.month, "day": ycd.day}


def _visible(appointment: dict, user_id: str) -> bool:
    """Private work hours are only shown to their participant."""
    if not appointment.get("private"):
        return True
    return workhours.participant_for(appointment, user_id) is not None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    app = Flask(__name__)
    app.secret_key = os.environ["SECRET_KEY"]
    app.json = ClubJSONProvider(app)

    prefix = os.environ.get("APP_PREFIX", "/")
    app.config["APPLICATION_ROOT"] = prefix
    app.config["PREFERRED_URL_SCHEME"] = "https"
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = os.environ.get("SESSION_COOKIE_SECURE", "true").lower() == "true"

    # Trust the reverse proxy (nginx) for host/scheme/prefix headers
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"ok": False, "error": e.description}), e.code

    @app.errorhandler(db.FetchError)
    def fetch_failed(e):
        log.error("Store request failed on %s %s: %s", request.method, request.path, e)
        message = "permission denied" if e.permission_denied else "fetch failed"
        return jsonify({"ok": False, "error": message}), 503

    register_routes(app)
    register_work_routes(app)
    return app


# ---------------------------------------------------------------------------
# Club routes
# ---------------------------------------------------------------------------

def register_routes(app: Flask):

    # -- Auth ------------------------------------------------------------

    @app.route("/login", methods=["POST"])
    def login():
        body = _body()
        user = auth.authenticate(_text(body, "email"), body.get("password") or "")
        if not user:
            log.info("Failed login for %s", body.get("email"))
            return jsonify({"ok": False, "error": "Invalid email or password."}), 401
        auth.login_user(user)
        return jsonify({"ok": True, "user": _public_user(user), "access": models.has_access(user)})

    @app.route("/signup", methods=["POST"])
    def signup():
        body = _body()
        try:
            user = auth.sign_up(body.get("email", ""), body.get("password", ""),
                                body.get("display_name", ""))
        except ValueError as e:
            return _bad(str(e))
        auth.login_user(user)
        return jsonify({"ok": True, "user": _public_user(user), "access": False}), 201

    @app.route("/logout", methods=["POST"])
    def logout():
        auth.logout_user()
        return jsonify({"ok": True})

    @app.route("/api/me")
    @auth.login_required
    def me():
        ctx = auth.current_context()
        user = ctx["user"]
        data = {
            "user":             _public_user(user),
            "access":           models.has_access(user),
            "is_admin":         ctx["is_admin"],
            "is_super_admin":   ctx["is_super_admin"],
            "is_any_bootswart": ctx["is_any_bootswart"],
        }
        if data["access"]:
            result = eligibility.member_eligibility(ctx)
            data["can_reserve"] = result["eligible"]
            data["missing_requirements"] = result["reasons"]
        return jsonify(data)

    # -- Settings --------------------------------------------------------

    @app.route("/api/settings")
    @auth.member_required
    def get_settings():
        config = auth.current_context()["system_config"]
        return jsonify({
            "work_hour_threshold": config["work_hour_threshold"],
            "year_change":         _year_change(config),
            "feature_flags":       config.get("feature_flags") or {},
        })

    @app.route("/api/settings", methods=["PUT"])
    @auth.admin_required
    def save_settings():
        body = _body()
        try:
            threshold = int(body["work_hour_threshold"])
            month = int(body["year_change_month"])
            day = int(body["year_change_day"])
            config = models.save_system_config(threshold, month, day, body.get("feature_flags"))
        except (KeyError, TypeError, ValueError) as e:
            return _bad(f"Invalid settings: {e}")
        return jsonify({"ok": True, "work_hour_threshold": config["work_hour_threshold"],
                        "year_change": _year_change(config)})

    # -- Members ---------------------------------------------------------

    @app.route("/api/members")
    @auth.manager_required
    def list_members():
        return jsonify([_public_user(u) for u in models.get_all_users()])

    @app.route("/api/members", methods=["POST"])
    @auth.admin_required
    def create_member():
        ctx = auth.current_context()
        if not (ctx["system_config"].get("feature_flags") or {}).get("enable_member_creation"):
            abort(403, description="Member creation is disabled.")
        body = _body()
        email = _text(body, "email").lower()
        display_name = _text(body, "display_name")
        password = body.get("password", "")
        if not email or not display_name:
            return _bad("Email and name are required.")
        if models.get_user_by_email(email):
            return _bad("That email address is already registered.")
        roles = body.get("roles") or [models.MEMBER]
        if any(r not in models.ROLES for r in roles):
            return _bad("Unknown role.")
        pw_hash = auth.hash_password(password or secrets.token_urlsafe(32))
        new_id = models.create_user(email, display_name, pw_hash, roles=roles,
                                    fees_paid=bool(body.get("fees_paid")))
        log.info("Member %s created by %s", new_id, ctx["user"]["id"])
        return jsonify({"ok": True, "id": new_id}), 201

    @app.route("/api/members/<user_id>", methods=["PUT"])
    @auth.admin_required
    def update_member(user_id: str):
        target = models.get_user_by_id(user_id)
        if not target:
            abort(404)
        body = _body()
        try:
            models.update_member(
                user_id,
                _text(body, "display_name", target.get("display_name") or ""),
                body.get("roles", target.get("roles") or []),
                bool(body.get("fees_paid", target.get("fees_paid"))),
                bool(body.get("skip_hours", target.get("skip_hours"))),
            )
        except ValueError as e:
            return _bad(str(e))
        return jsonify({"ok": True, "user": _public_user(models.get_user_by_id(user_id))})

    @app.route("/api/members/<user_id>/deactivate", methods=["POST"])
    @auth.admin_required
    def deactivate_member(user_id: str):
        me = auth.current_context()["user"]
        if user_id == me["id"]:
            return _bad("You cannot deactivate your own account.")
        if not models.get_user_by_id(user_id):
            abort(404)
        models.deactivate_user(user_id, me["id"])
        return jsonify({"ok": True})

    @app.route("/api/members/<user_id>/activate", methods=["POST"])
    @auth.admin_required
    def activate_member(user_id: str):
        if not models.get_user_by_id(user_id):
            abort(404)
        models.activate_user(user_id)
        return jsonify({"ok": True})

    @app.route("/api/members/<user_id>", methods=["DELETE"])
    @auth.superadmin_required
    def delete_member(user_id: str):
        if user_id == auth.current_context()["user"]["id"]:
            return _bad("You cannot delete your own account.")
        if not models.get_user_by_id(user_id):
            abort(404)
        models.delete_user(user_id)
        return jsonify({"ok": True})

    # -- Boats -----------------------------------------------------------

    @app.route("/api/boats")
    @auth.member_required
    def list_boats():
        return jsonify(auth.current_context()["boats"])

    @app.route("/api/boats", methods=["POST"])
    @auth.admin_required
    def create_boat():
        body = _body()
        name = _text(body, "name")
        if not name:
            return _bad("Boat name is required.")
        boat_id = models.create_boat(
            name, body.get("description", ""), body.get("bootswart"),
            requires_approval=bool(body.get("requires_approval", True)),
            blocked=bool(body.get("blocked", False)),
            color=body.get("color") or "#1976d2",
        )
        return jsonify({"ok": True, "id": boat_id}), 201

    @app.route("/api/boats/<boat_id>", methods=["PUT"])
    @auth.member_required
    def update_boat(boat_id: str):
        ctx = auth.current_context()
        if not models.find_boat(ctx["boats"], boat_id):
            abort(404)
        if not auth.can_manage_boat(ctx, boat_id):
            abort(403)
        fields = _body()
        if not ctx["is_admin"]:
            # a bootswart cannot hand the boat to someone else
            fields.pop("bootswart", None)
        models.update_boat(boat_id, fields)
        return jsonify({"ok": True, "boat": models.get_boat(boat_id)})

    @app.route("/api/boats/<boat_id>", methods=["DELETE"])
    @auth.admin_required
    def delete_boat(boat_id: str):
        if not models.get_boat(boat_id):
            abort(404)
        models.delete_boat(boat_id)
        return jsonify({"ok": True})

    # -- Reservations ----------------------------------------------------

    @app.route("/api/reservations")
    @auth.member_required
    def list_reservations():
        """Calendar feed for the requested range."""
        ctx = auth.current_context()
        start, end = _range_args()
        rows = models.get_reservations_range(start, end)
        out = []
        for row in rows:
            boat = models.find_boat(ctx["boats"], row["boat_id"])
            out.append({
                **row,
                "boat_name":  boat["name"] if boat else "(removed boat)",
                "boat_color": boat["color"] if boat else "#9e9e9e",
                "mine":       row["user_id"] == ctx["user"]["id"],
            })
        return jsonify(out)

    @app.route("/api/reservations/availability")
    @auth.member_required
    def reservation_availability():
        """Which boats are already taken in a window, for the boat picker."""
        ctx = auth.current_context()
        start, end = _range_args()
        existing = models.get_reservations_range(start, end)
        taken = reservations.reserved_boat_ids(start, end, existing,
                                               exclude_id=request.args.get("exclude"))
        return jsonify({
            "reserved_boat_ids": sorted(taken),
            "boats": [{"id": b["id"], "name": b["name"],
                       "reserved": b["id"] in taken, "blocked": bool(b.get("blocked"))}
                      for b in ctx["boats"]],
        })

    @app.route("/api/reservations", methods=["POST"])
    @auth.member_required
    def create_reservation():
        ctx = auth.current_context()
        check = eligibility.member_eligibility(ctx)
        if not check["eligible"]:
            return _bad("You are not allowed to reserve boats right now.", reasons=check["reasons"])

        body = _body()
        try:
            start_dt, end_dt = _times_from(body)
        except ValueError as e:
            return _bad(str(e))
        boat = models.find_boat(ctx["boats"], body.get("boat_id"))
        existing = models.get_reservations_range(start_dt, end_dt)
        err = reservations.validate_reservation(boat, start_dt, end_dt, existing)
        if err:
            log.info("Reservation rejected for %s: %s", ctx["user"]["id"], err)
            return _bad(err)

        res_id, status = models.create_reservation(boat, ctx["user"], start_dt, end_dt,
                                                   title=_text(body, "title"),
                                                   description=body.get("description", ""))
        return jsonify({"ok": True, "id": res_id, "status": status}), 201

    @app.route("/api/reservations/<res_id>", methods=["PUT"])
    @auth.member_required
    def update_reservation(res_id: str):
        ctx = auth.current_context()
        res = models.get_reservation(res_id)
        if not res:
            abort(404)
        boat = models.find_boat(ctx["boats"], res["boat_id"])
        if not reservations.can_edit(res, boat, ctx["user"]["id"], ctx["is_admin"]):
            abort(403)

        body = _body()
        try:
            start_dt, end_dt = _times_from(body)
        except ValueError as e:
            return _bad(str(e))
        existing = models.get_reservations_range(start_dt, end_dt)
        err = reservations.validate_reservation(boat, start_dt, end_dt, existing, exclude_id=res_id)
        if err:
            return _bad(err)
        models.update_reservation(res_id, start_dt, end_dt,
                                  title=body.get("title"), description=body.get("description"))
        return jsonify({"ok": True})

    @app.route("/api/reservations/<res_id>/status", methods=["POST"])
    @auth.member_required
    def decide_reservation(res_id: str):
        ctx = auth.current_context()
        res = models.get_reservation(res_id)
        if not res:
            abort(404)
        boat = models.find_boat(ctx["boats"], res["boat_id"])
        if not reservations.can_decide(boat, ctx["user"]["id"], ctx["is_admin"]):
            abort(403)
        try:
            models.set_reservation_status(res_id, _body().get("status", ""))
        except ValueError as e:
            return _bad(str(e))
        return jsonify({"ok": True})

    @app.route("/api/reservations/<res_id>", methods=["DELETE"])
    @auth.member_required
    def cancel_reservation(res_id: str):
        ctx = auth.current_context()
        res = models.get_reservation(res_id)
        if not res:
            abort(404)
        boat = models.find_boat(ctx["boats"], res["boat_id"])
        is_owner = res["user_id"] == ctx["user"]["id"]
        if not is_owner and not reservations.can_decide(boat, ctx["user"]["id"], ctx["is_admin"]):
            abort(403)
        models.cancel_reservation(res_id)
        return jsonify({"ok": True})


# ---------------------------------------------------------------------------
# Work appointment and work-hour routes
# ---------------------------------------------------------------------------

def register_work_routes(app: Flask):

    def _appointment_or_404(appointment_id: str) -> dict:
        apt = models.get_work_appointment(appointment_id)
        if not apt:
            abort(404)
        return apt

    # -- Appointments ----------------------------------------------------

    @app.route("/api/work-appointments")
    @auth.member_required
    def list_work_appointments():
        ctx = auth.current_context()
        user_id = ctx["user"]["id"]
        if "start" in request.args or "end" in request.args:
            start, end = _range_args()
            rows = [a for a in models.get_work_appointments(since=start)
                    if overlaps(start, end, a["start_time"], a["end_time"])]
        else:
            cutoff = workhours.effective_fiscal_start(ctx["system_config"]["year_change_date"],
                                                      now_local())
            rows = models.get_work_appointments(since=cutoff)
        rows = [a for a in rows if _visible(a, user_id)]
        return jsonify([{**a, "can_edit": auth.can_manage_boat(ctx, a.get("boat_id"))} for a in rows])

    @app.route("/api/work-appointments", methods=["POST"])
    @auth.member_required
    def create_work_appointment():
        ctx = auth.current_context()
        body = _body()
        boat_id = body.get("boat_id") or None
        if not auth.can_manage_boat(ctx, boat_id):
            abort(403)
        title = _text(body, "title")
        if not title:
            return _bad("Title is required.")
        try:
            start_dt, end_dt = _times_from(body)
            extras = _appointment_extras(body)
        except ValueError as e:
            return _bad(str(e))
        if end_dt < start_dt:
            return _bad("End time must be after start time.")
        apt_id = models.create_work_appointment(
            title, body.get("description") or "", start_dt, end_dt,
            boat_id=boat_id, max_participants=extras.get("max_participants"),
            supplies=extras.get("supplies"),
        )
        return jsonify({"ok": True, "id": apt_id}), 201

    @app.route("/api/work-appointments/<appointment_id>", methods=["PUT"])
    @auth.member_required
    def update_work_appointment(appointment_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        if not auth.can_manage_boat(ctx, apt.get("boat_id")):
            abort(403)
        body = _body()
        fields = {k: str(body[k] or "").strip() for k in ("title", "description") if k in body}
        if fields.get("title") == "":
            return _bad("Title is required.")
        if "boat_id" in body:
            if not auth.can_manage_boat(ctx, body["boat_id"] or None):
                abort(403)
            fields["boat_id"] = body["boat_id"] or None
        try:
            start_dt, end_dt = _times_from(body, required=False)
            fields.update(_appointment_extras(body))
        except ValueError as e:
            return _bad(str(e))
        start_dt = start_dt or apt["start_time"]
        end_dt = end_dt or apt["end_time"]
        if end_dt < start_dt:
            return _bad("End time must be after start time.")
        fields["start_time"], fields["end_time"] = start_dt, end_dt
        models.update_work_appointment(appointment_id, fields)
        return jsonify({"ok": True})

    @app.route("/api/work-appointments/<appointment_id>", methods=["DELETE"])
    @auth.member_required
    def delete_work_appointment(appointment_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        is_own_private = apt.get("private") and workhours.participant_for(apt, ctx["user"]["id"])
        if not (auth.can_manage_boat(ctx, apt.get("boat_id")) or is_own_private):
            abort(403)
        models.delete_work_appointment(appointment_id)
        return jsonify({"ok": True})

    @app.route("/api/work-appointments/<appointment_id>/join", methods=["POST"])
    @auth.member_required
    def join_work_appointment(appointment_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        err = models.join_work_appointment(apt, ctx["user"],
                                           auto_confirm=auth.can_manage_boat(ctx, apt.get("boat_id")))
        if err:
            return _bad(err)
        return jsonify({"ok": True})

    @app.route("/api/work-appointments/<appointment_id>/leave", methods=["POST"])
    @auth.member_required
    def leave_work_appointment(appointment_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        if not models.leave_work_appointment(apt, ctx["user"]["id"]):
            return _bad("You are not signed up for this appointment.")
        return jsonify({"ok": True})

    @app.route("/api/work-appointments/<appointment_id>/participants/<user_id>/status",
               methods=["POST"])
    @auth.member_required
    def set_participant_status(appointment_id: str, user_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        if not auth.can_manage_boat(ctx, apt.get("boat_id")):
            abort(403)
        try:
            found = models.set_participant_status(apt, user_id, _body().get("status", ""))
        except ValueError as e:
            return _bad(str(e))
        if not found:
            abort(404)
        return jsonify({"ok": True})

    @app.route("/api/work-appointments/<appointment_id>/participants/<user_id>/times",
               methods=["PUT"])
    @auth.member_required
    def set_participant_times(appointment_id: str, user_id: str):
        ctx = auth.current_context()
        apt = _appointment_or_404(appointment_id)
        participant = workhours.participant_for(apt, user_id)
        if not participant:
            abort(404)
        own_unconfirmed = (user_id == ctx["user"]["id"]
                           and participant.get("status") != workhours.CONFIRMED)
        if not (auth.can_manage_boat(ctx, apt.get("boat_id")) or own_unconfirmed):
            abort(403)
        try:
            start_dt, end_dt = _times_from(_body(), required=False)
        except ValueError as e:
            return _bad(str(e))
        err = models.set_participant_times(apt, user_id, start_dt, end_dt)
        if err:
            return _bad(err)
        return jsonify({"ok": True})

    # -- Work hours ------------------------------------------------------

    @app.route("/api/work-hours/me")
    @auth.member_required
    def my_work_hours():
        ctx = auth.current_context()
        config = ctx["system_config"]
        now = now_local()
        all_hours = models.load_work_hours(config, user=ctx["user"], now=now)
        hours = all_hours[0] if all_hours else workhours.empty_hours(ctx["user"])
        return jsonify(work_status.personal_view(hours, config["work_hour_threshold"], now))

    @app.route("/api/work-hours")
    @auth.manager_required
    def work_hours_roster():
        config = auth.current_context()["system_config"]
        now = now_local()
        rows = [work_status.roster_row(h, config["work_hour_threshold"], now)
                for h in models.load_work_hours(config, now=now)]
        return jsonify({
            "required_duration": int(config["work_hour_threshold"] * MS_PER_HOUR),
            "members": rows,
        })

    @app.route("/api/work-hours/private", methods=["POST"])
    @auth.member_required
    def log_private_work_hours():
        ctx = auth.current_context()
        body = _body()
        try:
            start_dt, end_dt = _times_from(body)
        except ValueError as e:
            return _bad(str(e))
        if end_dt < start_dt:
            return _bad("End time must be after start time.")
        boat_id = body.get("boat_id") or None
        if boat_id and not models.find_boat(ctx["boats"], boat_id):
            return _bad("Unknown boat.")
        # admins and the boat's bootswart confirm their own hours directly
        auto_confirm = auth.can_manage_boat(ctx, boat_id)
        apt_id = models.create_private_work_hours(
            ctx["user"], start_dt, end_dt,
            title=_text(body, "title"), description=body.get("description", ""),
            boat_id=boat_id, auto_confirm=auto_confirm,
        )
        return jsonify({"ok": True, "id": apt_id,
                        "status": workhours.CONFIRMED if auto_confirm else workhours.PENDING}), 201

    @app.route("/api/work-hours/import", methods=["POST"])
    @auth.manager_required
    def import_work_hours():
        body = _body()
        try:
            apt_id = models.import_work_hours(
                body.get("rows") or [], _text(body, "title"),
                body.get("description", ""), body.get("boat_id") or None,
            )
        except ValueError as e:
            return _bad(str(e))
        return jsonify({"ok": True, "id": apt_id}), 201


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, port=5210)

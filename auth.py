"""
Authentication helpers for the boat club.
Session-based auth with bcrypt password hashing.
No Flask-Login dependency.

Route handlers never read the signed-in member from module state. They ask
for current_context(), a plain dict built once per request, and hand it to
the domain functions that need it.
"""

import logging
from functools import wraps

import bcrypt
from flask import session, abort, g

import models

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Password utilities
# ---------------------------------------------------------------------------

def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def check_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(plain.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

def login_user(user: dict):
    """Store the user id in the Flask session."""
    session.clear()
    session["user_id"] = user["id"]
    session.permanent = True


def logout_user():
    session.clear()
    g.pop("ctx", None)


def current_user() -> dict | None:
    """The signed-in user's document, or None."""
    user_id = session.get("user_id")
    if not user_id:
        return None
    return models.get_user_by_id(user_id)


def build_context(user: dict | None) -> dict:
    """
    Session context handed to domain code: the user plus everything derived
    from it that the rules need (config, boats, role flags).
    """
    if not user:
        return {
            "user": None, "system_config": dict(models.DEFAULT_SYSTEM_CONFIG), "boats": [],
            "is_admin": False, "is_super_admin": False, "is_any_bootswart": False,
        }
    roles = user.get("roles") or []
    is_super_admin = models.SUPERADMIN in roles
    boats = models.get_all_boats()
    # applicants never see the club settings
    if models.has_access(user):
        config = models.ensure_system_config(is_super_admin)
    else:
        config = dict(models.DEFAULT_SYSTEM_CONFIG)
    return {
        "user":             user,
        "system_config":    config,
        "boats":            boats,
        "is_admin":         is_super_admin or models.ADMIN in roles,
        "is_super_admin":   is_super_admin,
        "is_any_bootswart": models.is_bootswart(boats, user["id"]),
    }


def current_context() -> dict:
    """Build the context once per request and cache it on g."""
    if "ctx" not in g:
        g.ctx = build_context(current_user())
    return g.ctx


def can_manage_boat(ctx: dict, boat_id: str | None) -> bool:
    """Admins manage everything; a bootswart manages their own boat only."""
    if ctx["is_admin"]:
        return True
    user = ctx.get("user")
    return bool(boat_id) and models.is_bootswart(ctx["boats"], user and user["id"], boat_id)


# ---------------------------------------------------------------------------
# DB-backed auth
# ---------------------------------------------------------------------------

def authenticate(email: str, password: str) -> dict | None:
    """Return the user if the credentials are valid."""
    user = models.get_user_by_email(email)
    if user and check_password(password, user.get("password_hash")):
        models.touch_last_login(user["id"])
        return user
    return None


def sign_up(email: str, password: str, display_name: str) -> dict:
    """
    Register a new account. New accounts are applicants until an admin
    grants a role. Raises ValueError on invalid input or a taken email.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValueError("Please enter a valid email address.")
    if not password or len(password) < 8:
        raise ValueError("Password must be at least 8 characters.")
    if not (display_name or "").strip():
        raise ValueError("Please enter your name.")
    if models.get_user_by_email(email):
        raise ValueError("That email address is already registered.")
    user_id = models.create_user(email, display_name.strip(), hash_password(password))
    log.info("New applicant registered: %s", email)
    return models.get_user_by_id(user_id)


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------

def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_context()["user"]:
            abort(401)
        return f(*args, **kwargs)
    return decorated


def member_required(f):
    """Signed in, and not an applicant or a user without roles."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user = current_context()["user"]
        if not user:
            abort(401)
        if not models.has_access(user):
            log.warning("Access denied for user %s (roles=%s)", user["id"], user.get("roles"))
            abort(403)
        return f(*args, **kwargs)
    return decorated


def manager_required(f):
    """Admins and anyone who is bootswart of at least one boat."""
    @wraps(f)
    def decorated(*args, **kwargs):
        ctx = current_context()
        if not ctx["user"]:
            abort(401)
        if not models.has_access(ctx["user"]) or not (ctx["is_admin"] or ctx["is_any_bootswart"]):
            abort(403)
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        ctx = current_context()
        if not ctx["user"]:
            abort(401)
        if not ctx["is_admin"] or not models.has_access(ctx["user"]):
            abort(403)
        return f(*args, **kwargs)
    return decorated


def superadmin_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        ctx = current_context()
        if not ctx["user"]:
            abort(401)
        if not ctx["is_super_admin"]:
            abort(403)
        return f(*args, **kwargs)
    return decorated

"""
Document store for the boat club, on top of PostgreSQL.

Every record lives in one table as a JSONB document addressed by
(collection, id). The rest of the app only sees collections, documents
and filters:

  get_documents("workAppointments", [("end_time", "gte", cutoff)])

Filters are (field, operator, value) tuples ANDed together. Operators:
eq ne gt gte lt lte in nin contains array-contains. Comparisons are typed
by the Python value (datetime, bool, number, else text).

Datetimes are stored as ISO strings and turned back into datetimes for the
fields listed in DATETIME_FIELDS, including inside embedded lists.

Connection handling follows the usual pattern: one connection per call,
commit on success, roll back on error.
"""

import json
import logging
import os
import uuid
from contextlib import contextmanager
from datetime import date, datetime

import psycopg2
import psycopg2.errors
import psycopg2.extras

log = logging.getLogger(__name__)

SCHEMA_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.sql")

DATETIME_FIELDS = {
    "start_time", "end_time", "created_at", "updated_at",
    "last_login_at", "deactivated_at", "year_change_date",
}

_COMPARISONS = {"eq": "=", "ne": "<>", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


class FetchError(RuntimeError):
    """The store could not be reached or refused the request."""

    def __init__(self, message: str, permission_denied: bool = False):
        super().__init__(message)
        self.permission_denied = permission_denied


class DocumentNotFound(LookupError):
    """A write targeted a document that does not exist."""


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

def _get_dsn() -> str:
    return os.environ.get("DATABASE_URL", "")


def get_connection():
    """Return a new psycopg2 connection with the club timezone set."""
    dsn = _get_dsn()
    if not dsn:
        raise RuntimeError("No database DSN available. Set DATABASE_URL.")
    conn = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
    with conn.cursor() as cur:
        cur.execute("SET TIME ZONE %s", (os.environ.get("CLUB_TIMEZONE", "Europe/Berlin"),))
    return conn


@contextmanager
def get_db():
    """
    Context manager: yields a connection, commits on success, rolls back on error.
    Driver errors surface as FetchError.
    """
    try:
        conn = get_connection()
    except psycopg2.Error as exc:
        log.error("Database connection failed: %s", exc)
        raise FetchError(str(exc)) from exc
    try:
        yield conn
        conn.commit()
    except psycopg2.Error as exc:
        conn.rollback()
        log.error("Database error: %s", exc)
        raise FetchError(str(exc),
                         permission_denied=isinstance(exc, psycopg2.errors.InsufficientPrivilege)) from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_schema():
    """Create the documents table if it is missing."""
    with open(SCHEMA_FILE) as f:
        ddl = f.read()
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(ddl)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _encode(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_encode(v) for v in value]
    return value


def _decode(value, key: str = None):
    if isinstance(value, dict):
        return {k: _decode(v, k) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    if key in DATETIME_FIELDS and isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def _to_doc(row) -> dict:
    doc = _decode(dict(row["data"]))
    doc["id"] = row["id"]
    return doc


def _dumps(data: dict) -> str:
    body = {k: v for k, v in data.items() if k != "id"}
    return json.dumps(_encode(body))


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _cast(value) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, datetime):
        return "timestamp"
    if isinstance(value, date):
        return "date"
    if isinstance(value, (int, float)):
        return "numeric"
    return "text"


def _build_where(collection: str, filters) -> tuple[str, list]:
    clauses = ["collection = %s"]
    params = [collection]
    for field, op, value in filters or []:
        if op in _COMPARISONS:
            clauses.append(f"(data->>%s)::{_cast(value)} {_COMPARISONS[op]} %s")
            params += [field, _encode(value)]
        elif op in ("in", "nin"):
            values = list(value)
            cast = _cast(values[0]) if values else "text"
            expr = f"(data->>%s)::{cast} = ANY(%s::{cast}[])"
            clauses.append(expr if op == "in" else f"NOT ({expr})")
            params += [field, [_encode(v) for v in values]]
        elif op in ("contains", "array-contains"):
            clauses.append("data->%s @> %s::jsonb")
            params += [field, json.dumps([_encode(value)])]
        else:
            raise ValueError(f"Unsupported operator: {op}")
    return " AND ".join(clauses), params


# ---------------------------------------------------------------------------
# Document operations
# ---------------------------------------------------------------------------

def add_document(collection: str, data: dict) -> str:
    """Insert a new document with a generated id and return the id."""
    doc_id = uuid.uuid4().hex
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s::jsonb)",
                (collection, doc_id, _dumps(data)),
            )
    return doc_id


def get_document(collection: str, doc_id: str) -> dict | None:
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, data FROM documents WHERE collection = %s AND id = %s",
                (collection, doc_id),
            )
            row = cur.fetchone()
    return _to_doc(row) if row else None


def get_documents(collection: str, filters=None) -> list:
    """All documents in a collection matching every filter."""
    where, params = _build_where(collection, filters)
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT id, data FROM documents WHERE {where} ORDER BY id", params)
            rows = cur.fetchall()
    return [_to_doc(r) for r in rows]


query = get_documents


def set_document(collection: str, doc_id: str, data: dict):
    """Create or fully replace a document under a known id."""
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s::jsonb) "
                "ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data",
                (collection, doc_id, _dumps(data)),
            )


def update_document(collection: str, doc_id: str, partial: dict):
    """Shallow-merge `partial` into an existing document."""
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE documents SET data = data || %s::jsonb WHERE collection = %s AND id = %s",
                (_dumps(partial), collection, doc_id),
            )
            if cur.rowcount == 0:
                raise DocumentNotFound(f"{collection}/{doc_id}")


def delete_document(collection: str, doc_id: str):
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM documents WHERE collection = %s AND id = %s",
                        (collection, doc_id))


def delete_documents(collection: str, ids: list):
    """Delete several documents in one transaction."""
    if not ids:
        return
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM documents WHERE collection = %s AND id = ANY(%s)",
                        (collection, list(ids)))


def _modify_array(collection: str, doc_id: str, field: str, elements: list, add: bool):
    encoded = [_encode(e) for e in elements]
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT data FROM documents WHERE collection = %s AND id = %s FOR UPDATE",
                (collection, doc_id),
            )
            row = cur.fetchone()
            if not row:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            current = list(row["data"].get(field) or [])
            if add:
                for e in encoded:
                    if e not in current:
                        current.append(e)
            else:
                current = [x for x in current if x not in encoded]
            cur.execute(
                "UPDATE documents SET data = data || %s::jsonb WHERE collection = %s AND id = %s",
                (json.dumps({field: current}), collection, doc_id),
            )


def array_union(collection: str, doc_id: str, field: str, elements: list):
    """Append elements not already present in the array field (row-locked)."""
    _modify_array(collection, doc_id, field, elements, add=True)


def array_remove(collection: str, doc_id: str, field: str, elements: list):
    """Remove every occurrence of the given elements from the array field (row-locked)."""
    _modify_array(collection, doc_id, field, elements, add=False)

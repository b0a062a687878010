"""Shared fixtures: an in-memory document store patched over db.py, and a Flask client."""

import copy
import itertools
import os

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")
os.environ.setdefault("CLUB_TIMEZONE", "Europe/Berlin")

import db
import models


_OPS = {
    "eq":  lambda a, b: a == b,
    "ne":  lambda a, b: a != b,
    "gt":  lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt":  lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "in":  lambda a, b: a in b,
    "nin": lambda a, b: a not in b,
    "contains":       lambda a, b: isinstance(a, list) and b in a,
    "array-contains": lambda a, b: isinstance(a, list) and b in a,
}


class FakeStore:
    """Dict-backed stand-in for the document table, same call shapes as db.py."""

    def __init__(self):
        self.collections = {}
        self._ids = itertools.count(1)
        self.fail = False

    def _check(self):
        if self.fail:
            raise db.FetchError("store offline")

    def _col(self, collection):
        return self.collections.setdefault(collection, {})

    @staticmethod
    def _out(doc_id, data):
        doc = copy.deepcopy(data)
        doc["id"] = doc_id
        return doc

    def add_document(self, collection, data):
        self._check()
        doc_id = f"{collection[:3]}{next(self._ids)}"
        self._col(collection)[doc_id] = copy.deepcopy({k: v for k, v in data.items() if k != "id"})
        return doc_id

    def get_document(self, collection, doc_id):
        self._check()
        data = self._col(collection).get(doc_id)
        return self._out(doc_id, data) if data is not None else None

    def get_documents(self, collection, filters=None):
        self._check()
        out = []
        for doc_id, data in sorted(self._col(collection).items()):
            matched = True
            for field, op, value in filters or []:
                if op not in _OPS:
                    raise ValueError(f"Unsupported operator: {op}")
                current = data.get(field)
                if current is None or not _OPS[op](current, value):
                    matched = False
                    break
            if matched:
                out.append(self._out(doc_id, data))
        return out

    def set_document(self, collection, doc_id, data):
        self._check()
        self._col(collection)[doc_id] = copy.deepcopy({k: v for k, v in data.items() if k != "id"})

    def update_document(self, collection, doc_id, partial):
        self._check()
        col = self._col(collection)
        if doc_id not in col:
            raise db.DocumentNotFound(f"{collection}/{doc_id}")
        col[doc_id].update(copy.deepcopy({k: v for k, v in partial.items() if k != "id"}))

    def delete_document(self, collection, doc_id):
        self._check()
        self._col(collection).pop(doc_id, None)

    def delete_documents(self, collection, ids):
        self._check()
        for doc_id in ids:
            self._col(collection).pop(doc_id, None)

    def _modify_array(self, collection, doc_id, field, elements, add):
        self._check()
        col = self._col(collection)
        if doc_id not in col:
            raise db.DocumentNotFound(f"{collection}/{doc_id}")
        current = list(col[doc_id].get(field) or [])
        if add:
            current += [copy.deepcopy(e) for e in elements if e not in current]
        else:
            current = [x for x in current if x not in elements]
        col[doc_id][field] = current

    def array_union(self, collection, doc_id, field, elements):
        self._modify_array(collection, doc_id, field, elements, add=True)

    def array_remove(self, collection, doc_id, field, elements):
        self._modify_array(collection, doc_id, field, elements, add=False)


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in ("add_document", "get_document", "get_documents", "set_document",
                 "update_document", "delete_document", "delete_documents",
                 "array_union", "array_remove"):
        monkeypatch.setattr(db, name, getattr(fake, name))
    monkeypatch.setattr(db, "query", fake.get_documents)
    return fake


@pytest.fixture
def flask_app(store):
    import app as app_module
    app_module.app.config["TESTING"] = True
    return app_module.app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


def make_user(display_name, roles=None, fees_paid=True, **extra):
    """Create a user document directly; returns the stored user."""
    email = display_name.lower().replace(" ", ".") + "@example.org"
    user_id = models.create_user(email, display_name, "", roles=roles or [models.MEMBER],
                                 fees_paid=fees_paid)
    if extra:
        db.update_document(models.USERS, user_id, extra)
    return models.get_user_by_id(user_id)


def sign_in(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user["id"]

"""Shared fixtures: config builders and an in-memory stand-in for pymongo collections."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from bson.objectid import ObjectId

import db
from app import boot
from config import Config


class FakeCollection:
    """The handful of pymongo Collection methods the app calls."""

    def __init__(self) -> None:
        self.docs: dict = {}
        self.indexes: list = []

    @staticmethod
    def _matches(doc: dict, query: dict) -> bool:
        return all(doc.get(key) == value for key, value in query.items())

    def create_index(self, key, **kwargs):
        self.indexes.append((key, kwargs))
        return f"{key}_1"

    def find_one(self, query: dict):
        for doc in self.docs.values():
            if self._matches(doc, query):
                return dict(doc)
        return None

    def insert_one(self, doc: dict):
        doc.setdefault("_id", ObjectId())
        self.docs[doc["_id"]] = dict(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def replace_one(self, query: dict, doc: dict, upsert: bool = False):
        for key, existing in list(self.docs.items()):
            if self._matches(existing, query):
                self.docs[key] = dict(doc)
                return SimpleNamespace(matched_count=1)
        if upsert:
            self.docs[doc["_id"]] = dict(doc)
        return SimpleNamespace(matched_count=0)

    def delete_one(self, query: dict):
        for key, existing in list(self.docs.items()):
            if self._matches(existing, query):
                del self.docs[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def make_config():
    def _make(file_config: dict | None = None, **environ: str) -> Config:
        return Config(environ=environ, file_config=file_config or {})

    return _make


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def connected(monkeypatch: pytest.MonkeyPatch, fake_db: FakeDatabase) -> FakeDatabase:
    """Make db.connect succeed against the fake database."""

    def fake_connect(app, uri, timeout_ms):
        app.extensions[db.EXTENSION_KEY] = fake_db
        return fake_db

    monkeypatch.setattr(db, "connect", fake_connect)
    return fake_db


@pytest.fixture
def degraded_app(make_config):
    app, _ = boot(make_config())
    return app


@pytest.fixture
def connected_app(make_config, connected):
    app, _ = boot(make_config(MONGO_URI="mongodb://localhost:27017/app"))
    return app

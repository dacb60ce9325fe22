"""Shared fixtures: an in-memory Mongo, the in-process cache and a frozen clock."""
from datetime import datetime

import mongomock
import pytest

from app import create_app
from api.version_gate import VersionPolicy
from auth.mailer import Mailer
from engine.query import ResultQueryEngine
from engine.registry import CategoryRegistry
from engine.upsert import ResultUpsertEngine
from storage.cache import MemoryCacheStore, ResultCache
from storage.mongo_client import ensure_indexes
from storage.readings import FlatReadingStore, GroupedReadingStore

FROZEN_NOW = datetime(2026, 10, 19, 10, 30)
TODAY = "2026-10-19"

TEST_KEYS = ("md-del-9281", "md-mum-3745", "md-9281")


@pytest.fixture()
def clock():
    return lambda: FROZEN_NOW


@pytest.fixture()
def db():
    database = mongomock.MongoClient().db
    ensure_indexes(database)
    return database


@pytest.fixture()
def cache() -> ResultCache:
    return ResultCache(MemoryCacheStore(max_size=256))


@pytest.fixture()
def grouped(db) -> GroupedReadingStore:
    return GroupedReadingStore(db["results"])


@pytest.fixture()
def flat(db) -> FlatReadingStore:
    return FlatReadingStore(db["resultscrappers"], case_insensitive=True)


@pytest.fixture()
def upsert_engine(grouped, flat, cache) -> ResultUpsertEngine:
    return ResultUpsertEngine(grouped, flat, cache)


@pytest.fixture()
def query_engine(grouped, flat, cache, clock) -> ResultQueryEngine:
    return ResultQueryEngine(grouped, flat, cache, clock=clock)


@pytest.fixture()
def registry(db, cache) -> CategoryRegistry:
    return CategoryRegistry(db["categorykeys"], cache, known_keys=TEST_KEYS)


@pytest.fixture()
def version_policy() -> VersionPolicy:
    return VersionPolicy(
        minimum_required_version="2.0.0",
        latest_version="2.1.0",
        force_update=True,
        apk_url="https://example.com/app-v2.apk",
    )


@pytest.fixture()
def app(db, clock, version_policy):
    flask_app = create_app(
        db=db,
        cache_store=MemoryCacheStore(max_size=256),
        version_policy=version_policy,
        mailer=Mailer(backend="noop"),
        jwt_secret="test-secret",
        clock=clock,
    )
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(app) -> dict:
    token = app.extensions["auth_service"].issue_token("test-user")
    return {"Authorization": f"Bearer {token}"}

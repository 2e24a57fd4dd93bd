from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from pymongo.errors import AutoReconnect

from config import Config
from database import DocumentStore, set_store
from identity import IdentityService
from quotes import QuoteLifecycleManager
from schemas import Identity


class SteppingClock:
    """Returns a later time on every call so ordering by timestamp is deterministic."""

    def __init__(self, start=datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current += timedelta(minutes=1)
        return self.current


class UnreachableDatabase:
    def __getitem__(self, name):
        raise AutoReconnect("connection refused")

    def list_collection_names(self):
        raise AutoReconnect("connection refused")


@pytest.fixture()
def store():
    s = DocumentStore(mongomock.MongoClient()["fencing_test"])
    set_store(s)
    try:
        yield s
    finally:
        set_store(None)


@pytest.fixture()
def broken_store():
    return DocumentStore(UnreachableDatabase())


@pytest.fixture()
def clock():
    return SteppingClock()


@pytest.fixture()
def manager(store, clock):
    return QuoteLifecycleManager(store, now=clock)


@pytest.fixture()
def outbox():
    """Password reset deliveries as (email, token) pairs."""
    return []


@pytest.fixture()
def identity(store, outbox):
    config = Config(MAX_FAILED_LOGINS=3, LOCKOUT_MINUTES=15)
    return IdentityService(store, config, notifier=lambda email, token: outbox.append((email, token)))


@pytest.fixture()
def customer():
    return Identity(id="cust-100", email="asha.r@gmail.com", full_name="Asha R", role="Customer")


@pytest.fixture()
def chain_link(store):
    store.upsert("products", "prod-001", {"name": "Chain Link Fence - Standard", "category": "Chain Link", "base_rate": 85})
    return store.read("products", "prod-001")


@pytest.fixture()
def client(store):
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)

"""Pytest configuration and shared fixtures.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
that separate sessions use separate connections, which the concurrency
tests rely on.
"""

import threading
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from schoolflow.api.main import create_app
from schoolflow.core.approval import ApprovalService, PolicyResolver, RequestStore
from schoolflow.core.approval.store import StoreTransaction
from schoolflow.core.security import create_access_token
from schoolflow.db.base import Base
from schoolflow.db.session import build_engine, build_session_factory
from tests.factories import make_actor


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'schoolflow.db'}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """A session for arranging and inspecting rows directly."""
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def store(session_factory):
    return RequestStore(session_factory)


@pytest.fixture
def resolver():
    return PolicyResolver()


@pytest.fixture
def service(store, resolver):
    return ApprovalService(store, resolver)


@pytest.fixture
def run_in_lockstep(monkeypatch):
    """
    Run callables in parallel threads that all read their request before any writes.
    
    Each thread pauses after reading its request until every thread has
    done so. Returns each call's result, or the exception it raised, in order.
    """
    def _run(*calls):
        all_read = threading.Barrier(len(calls), timeout=10)
        original_get = StoreTransaction.get
        
        def get_then_wait(self, tenant_id, request_id):
            request = original_get(self, tenant_id, request_id)
            all_read.wait()
            return request
        
        outcomes = [None] * len(calls)
        
        def run(index, call):
            try:
                outcomes[index] = call()
            except Exception as e:
                outcomes[index] = e
        
        monkeypatch.setattr(StoreTransaction, "get", get_then_wait)
        try:
            threads = [threading.Thread(target=run, args=(i, call)) for i, call in enumerate(calls)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)
        finally:
            monkeypatch.setattr(StoreTransaction, "get", original_get)
        return outcomes
    return _run


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def school_id():
    return uuid4()


@pytest.fixture
def teacher(school_id):
    return make_actor("teacher", school_id)


@pytest.fixture
def principal(school_id):
    return make_actor("principal", school_id)


@pytest.fixture
def hr(school_id):
    return make_actor("hr", school_id)


@pytest.fixture
def finance(school_id):
    return make_actor("finance", school_id)


@pytest.fixture
def director(school_id):
    return make_actor("school_director", school_id)


@pytest.fixture
def other_school_principal():
    """A principal of a different school."""
    return make_actor("principal")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as client:
        yield client


@pytest.fixture
def auth_headers():
    """Build bearer headers for an actor."""
    def _headers(actor):
        token = create_access_token(actor.actor_id, actor.tenant_id, actor.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers

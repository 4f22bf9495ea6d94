"""Shared fixtures: in-memory SQLite store and a fake HTTP fetcher."""

import pytest
from sqlalchemy.pool import StaticPool

from peptidedb.db.session import build_engine, create_all, make_session_factory
from peptidedb.persist.store import EnrichmentStore

from factories import FakeFetcher


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def store(session):
    return EnrichmentStore(session)


@pytest.fixture
def jurisdictions(store, session):
    ids = store.ensure_jurisdictions()
    session.commit()
    return ids


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()

import os
import sys
from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _ensure_src_on_path() -> None:
    src = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
    if src not in sys.path:
        sys.path.insert(0, src)


_ensure_src_on_path()

from icpminer.persistence.models import Base, SearchQuery, Site  # noqa: E402
from icpminer.persistence.repo import ProgressRepository  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def session_scope(session_factory):
    """Stand-in for persistence.db.get_session bound to the test engine."""

    @contextmanager
    def _scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


@pytest.fixture
def site(session):
    site = Site(id="site-1", user_id="user-1", name="Acme")
    session.add(site)
    session.commit()
    return site


@pytest.fixture
def search_query(session, site):
    query = SearchQuery(id="query-1", site_id=site.id, name="CTOs", query={"role": "CTO", "country": "SG"})
    session.add(query)
    session.commit()
    return query


@pytest.fixture
def store(session):
    return ProgressRepository(session)


@pytest.fixture
def make_profile(session, store, site, search_query):
    """Create a profile with an arbitrary persisted checkpoint."""

    def _make(**fields):
        profile = store.create(
            site_id=fields.pop("site_id", site.id),
            search_query_id=fields.pop("search_query_id", search_query.id),
            name=fields.pop("name", None),
            profile_id=fields.pop("profile_id", None),
        )
        for key, value in fields.items():
            setattr(profile, key, value)
        session.commit()
        return profile

    return _make

"""
Pytest fixtures for testing
"""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from bidscore.infrastructure.db.session import Base
from bidscore.infrastructure.db.models import User, ProjectModel, ProposalModel


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client_user(db_session) -> User:
    user = User(id=1, email="client@example.com", full_name="Client", role="client", is_admin=False)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def reviewer_id(client_user) -> int:
    return client_user.id


@pytest.fixture
def project(db_session, client_user) -> ProjectModel:
    p = ProjectModel(client_id=client_user.id, title="Office renovation", status="open")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def make_proposal(db_session, project):
    """Factory: add a proposal to the default project (or the given one)."""
    def _make(title, status="submitted", submitted_at=None, project_id=None) -> ProposalModel:
        proposal = ProposalModel(
            project_id=project_id or project.id,
            title=title,
            status=status,
            submitted_at=submitted_at or datetime(2026, 3, 1, 12, 0, 0),
        )
        db_session.add(proposal)
        db_session.commit()
        return proposal
    return _make


@pytest.fixture
def standard_criteria():
    return [
        {"name": "Technical", "weight": 30},
        {"name": "Budget", "weight": 25},
        {"name": "Timeline", "weight": 20},
        {"name": "Team", "weight": 25},
    ]

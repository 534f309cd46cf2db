"""Pytest configuration and fixtures."""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from core.db import Base
from core.models import Agent, Inquiry, Property, PropertyStatus


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Settable clock for services that take ``clock=``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def engine():
    """Create a test database engine."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


@pytest.fixture(scope="session")
def tables(engine):
    """Create all tables for testing."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(engine, tables) -> Session:
    """
    Returns a SQLAlchemy session for testing.

    Each test gets a fresh transaction that is rolled back after the test.
    """
    connection = engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-03-01 12:00 UTC."""
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def sample_agent(db_session) -> Agent:
    """Create a sample Agent for testing."""
    agent = Agent(
        full_name="Jane Realtor",
        email="jane.realtor@example.com",
        phone="+15550100",
        is_active=True,
    )
    db_session.add(agent)
    db_session.flush()
    return agent


@pytest.fixture
def sample_property(db_session, sample_agent) -> Property:
    """Create a published Property for testing."""
    prop = Property(
        title="Riverside Cottage",
        city="Springfield",
        price=Decimal("300000.00"),
        status=PropertyStatus.PUBLISHED.value,
        agent_id=sample_agent.id,
    )
    db_session.add(prop)
    db_session.flush()
    return prop


@pytest.fixture
def sample_inquiry(db_session, sample_property) -> Inquiry:
    """Create a NEW Inquiry on the sample property."""
    inquiry = Inquiry(
        property_id=sample_property.id,
        visitor_name="Bob Buyer",
        visitor_email="bob@example.com",
        message="Is the garden south facing?",
        status="NEW",
    )
    db_session.add(inquiry)
    db_session.flush()
    return inquiry


@pytest.fixture
def make_property(db_session):
    """Factory for additional published properties."""

    def _make(title: str, city: str = "Springfield", price: str = "250000") -> Property:
        prop = Property(
            title=title,
            city=city,
            price=Decimal(price),
            status=PropertyStatus.PUBLISHED.value,
        )
        db_session.add(prop)
        db_session.flush()
        return prop

    return _make

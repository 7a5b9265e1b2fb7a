"""Shared fixtures for the Agent Desk test suite."""

import itertools
from datetime import date, datetime, timezone

import pytest

from agentdesk.config import CRMConfig, set_config
from agentdesk.db import create_db_engine, create_session_factory, init_db
from agentdesk.deals import commission_amount
from agentdesk.models import (
    Deal,
    DealSide,
    DealStatus,
    Lead,
    LeadStatus,
    LeadTemperature,
    User,
    UserRole,
)

# Reference point used throughout the tests: mid-June 2026, UTC
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def crm_config():
    """Use a deterministic configuration for every test."""
    config = CRMConfig(environment="test", timezone="UTC", database_url="sqlite://")
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def engine():
    """In-memory SQLite engine with the schema and soft delete guards."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a database session for testing."""
    session = create_session_factory(engine)()
    yield session
    session.close()


def _user(user_id, first, last, role, position):
    return User(
        id=user_id,
        first_name=first,
        last_name=last,
        email=f"{first.lower()}@legacyhomes.example",
        role=role,
        display_order=position,
        created_at=NOW,
    )


@pytest.fixture
def broker(db_session):
    user = _user("broker_1", "Alexander", "Pierce", UserRole.BROKER, 0)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def agent(db_session):
    user = _user("agent_1", "Sarah", "Connor", UserRole.AGENT, 1)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_agent(db_session):
    user = _user("agent_2", "John", "Wick", UserRole.AGENT, 2)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_lead(db_session):
    """Factory for persisted leads with sensible defaults."""
    counter = itertools.count(1)

    def _make(**fields):
        n = next(counter)
        values = dict(
            id=f"lead_{n}",
            first_name="Test",
            last_name=f"Lead{n}",
            email=f"lead{n}@example.com",
            phone="555-0100",
            status=LeadStatus.NEW,
            temperature=LeadTemperature.NORMAL,
            source="Zillow",
            tags=[],
            budget=500_000,
            created_at=NOW,
            updated_at=NOW,
        )
        values.update(fields)
        lead = Lead(**values)
        db_session.add(lead)
        db_session.commit()
        return lead

    return _make


@pytest.fixture
def make_deal(db_session):
    """Factory for persisted deals; the commission follows price and rate."""
    counter = itertools.count(1)

    def _make(**fields):
        n = next(counter)
        values = dict(
            id=f"deal_{n}",
            lead_name=f"Client {n}",
            address=f"{n} Main St",
            status=DealStatus.CLOSED,
            side=DealSide.BUYER,
            sale_price=500_000,
            commission_percentage=3,
            date=date(2026, 3, 1),
            source="Zillow",
        )
        values.update(fields)
        values.setdefault(
            "commission_amount",
            commission_amount(values["sale_price"], values["commission_percentage"]),
        )
        deal = Deal(**values)
        db_session.add(deal)
        db_session.commit()
        return deal

    return _make

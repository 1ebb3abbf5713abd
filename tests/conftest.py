"""Pytest configuration and shared fixtures."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cardflow.clock import FixedClock
from cardflow.database import Base
from cardflow.models import records  # noqa: F401  (registers tables with Base)
from cardflow.models.domain import Actor
from cardflow.services.notifications import NotificationDispatcher
from cardflow.services.state_machine import ApprovalStateMachine

T0 = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)


class RecordingSender:
    """Notification sender double that keeps what it was given."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, message):
        if self.fail:
            raise ConnectionError("SMTP relay unavailable")
        self.sent.append(message)


class StaticDirectory:
    def __init__(self, names):
        self.names = names

    def display_name(self, member_id):
        return self.names.get(member_id)


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # StaticPool keeps one connection so TestClient threads see the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def directory():
    return StaticDirectory({"tm1": "Aisha Rahman", "tm2": "Ben Ong", "tm3": "Chloe Tan"})


@pytest.fixture
def machine(clock, sender, directory):
    return ApprovalStateMachine(
        clock=clock,
        dispatcher=NotificationDispatcher(sender=sender, clock=clock),
        directory=directory,
    )


@pytest.fixture
def author():
    return Actor(id="tm9", name="Sarah Chen", email="sarah.chen@example.com")


@pytest.fixture
def approver():
    return Actor(id="tm1", name="Aisha Rahman", email="aisha@example.com")


@pytest.fixture
def outsider():
    return Actor(id="tm2", name="Ben Ong", email="ben@example.com")


@pytest.fixture
def namesake():
    """Shares the approver's display name but is a different member."""
    return Actor(id="tm7", name="Aisha Rahman", email="aisha.r@example.com")


@pytest.fixture
def draft_card(machine, author):
    """A draft Instagram card created at T0 with tm1 as approver."""
    return machine.create_card(
        project_id="proj_1",
        platform="instagram",
        title="Launch teaser",
        actor=author,
        caption="Something big is coming",
        hashtags=["#launch", " teaser "],
        approvers=["tm1"],
        details="Content card created manually",
    )


@pytest.fixture
def pending_card(machine, clock, draft_card, author):
    """draft_card submitted for approval at T0 + 2h."""
    clock.advance(hours=2)
    return machine.submit_for_approval(draft_card, author).unwrap()

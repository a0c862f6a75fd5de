"""Shared fixtures: in-memory store, channel, state machine and a scripted generation client."""

import threading

import pytest
from loguru import logger

from database.memory import InMemoryDatabase
from models.outreach import Offering
from orchestration.notifications import ChangeNotificationChannel
from orchestration.outreach_state import OutreachStateMachine

OWNER = "owner-a"
OTHER_OWNER = "owner-b"


def prospect_data(**overrides):
    data = {
        "name": "Finance Conseil",
        "sector": "finance",
        "estimated_budget": "500-1000",
        "company_size": "medium",
        "needs": "Automated monthly reporting",
    }
    data.update(overrides)
    return data


class FakeGenerationClient:
    """Generation client whose outcome is scripted by the test."""

    name = "fake"

    def __init__(self, content="Hello, here is a draft.", error=None, gate=None):
        self.content = content
        self.error = error
        self.gate = gate
        self.calls = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def generate(self, prospect, offering):
        with self._lock:
            self.calls.append((prospect.id, offering.id))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.content


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def channel():
    channel = ChangeNotificationChannel(queue_size=100)
    yield channel
    if not channel.closed:
        channel.close()


@pytest.fixture
def machine(db, channel):
    return OutreachStateMachine(db, channel=channel)


@pytest.fixture
def finance_offering(machine):
    return machine.offerings.upsert(Offering(
        owner_id=OWNER,
        name="FinReport AI",
        sector="finance",
        description="Monthly reports from raw ledgers",
        features=["Automated reporting", "Cash-flow forecasts"],
        price=750,
    ))


@pytest.fixture
def prospect(machine, finance_offering):
    return machine.create_prospect(OWNER, prospect_data())


@pytest.fixture
def with_draft(machine, prospect, finance_offering):
    """A prospect holding a fresh draft (PENDING)."""
    snapshot, _ = machine.begin_generation(OWNER, prospect.id)
    return machine.complete_generation(
        OWNER, prospect.id, snapshot, finance_offering, "Draft body"
    )


@pytest.fixture
def log_messages():
    """Loguru messages emitted during the test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)

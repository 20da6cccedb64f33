"""Shared fixtures: a controllable clock, a stub DNS resolver and a contact form."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Set, Tuple

import pytest

from formgate.definition import FormDefinition
from formgate.session import InMemorySessionStore
from formgate.state_machine import FormStateMachine


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class StubResolver:
    """DnsResolver answering from a fixed table and recording every lookup."""

    def __init__(self, records: Dict[str, Set[str]] = None):
        self.records = records or {}
        self.lookups: List[Tuple[str, str]] = []

    def has_record(self, domain: str, rdtype: str) -> bool:
        self.lookups.append((domain, rdtype))
        return rdtype in self.records.get(domain, set())


CONTACT_FORM = {
    "formName": "contact",
    "form": {
        "empty": {"type": "text", "rules": ["empty"]},
        "firstName": {"type": "text", "rules": ["required", "name", "max25"]},
        "email": {"type": "text", "rules": ["required", "email"]},
        "usTelephone": {"type": "text", "rules": ["required", "usTelephone"]},
        "turingbox": {"type": "text", "rules": ["turing"]},
    },
}


def valid_contact_data(machine: FormStateMachine) -> Dict[str, str]:
    """Posted data that passes every rule of CONTACT_FORM."""
    return {
        "empty": "",
        "firstName": "Ann",
        "email": "ann@example.com",
        "usTelephone": "555-0123",
        "turingbox": machine.challenge_text,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return StubResolver({"example.com": {"MX", "A"}})


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def definition():
    return FormDefinition.from_dict(CONTACT_FORM)


@pytest.fixture
def machine(definition, store, resolver, clock):
    return FormStateMachine(
        definition,
        store,
        session_id="sess_001",
        resolver=resolver,
        clock=clock,
        client_address="203.0.113.7",
    )

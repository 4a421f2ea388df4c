"""
conftest.py - Shared pytest fixtures for redeemer tests

Provides common fixtures used across unit, conformance and functional tests:
- A funded asset ledger wired for an OLD -> NEW migration
- An uninitialized migration program on that ledger
- An initialized migration whose window opens at the current ledger time
"""

import pytest

from redeemer import MigrationProgram

from tests.fake_ledger import build_ledger, initialize


@pytest.fixture
def ledger():
    """Funded ledger with OLD (6 decimals) and NEW (9 decimals)."""
    return build_ledger()


@pytest.fixture
def program(ledger):
    """Migration program bound to the ledger, not yet initialized."""
    return MigrationProgram(ledger, verbose=False)


@pytest.fixture
def migration(program):
    """Program with the standard migration initialized; ledger time == start_ts."""
    initialize(program)
    return program

"""
conftest.py - Shared pytest fixtures for sale-ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Bare states for driving apply() directly
- A fake value-transfer primitive
- Hosted ledgers (registered, initialized, pre-sale ready)
"""

import pytest

from ico_ledger import IcoLedger

from tests.fake_payments import FakePayments
from tests.sale_helpers import (
    ADMIN, ALICE, BOB, CAROL, WINDOWED_CONFIG,
    initialized_state, whitelist,
)


@pytest.fixture
def state():
    """Initialized state with the default config (window 0..100)."""
    return initialized_state()


@pytest.fixture
def windowed_state():
    """Initialized state, window [1000, 2000), alice whitelisted."""
    s = initialized_state(WINDOWED_CONFIG)
    whitelist(s, ALICE)
    return s


@pytest.fixture
def payments():
    return FakePayments({ALICE: 10**9, BOB: 10**9, CAROL: 10**9})


@pytest.fixture
def ledger():
    """Host with admin, alice, bob and carol registered; not initialized."""
    lg = IcoLedger("test", verbose=False)
    for key in (ADMIN, ALICE, BOB, CAROL):
        lg.register_account(key)
    return lg


@pytest.fixture
def sale_ledger(ledger):
    """Host initialized with the windowed config at time 0; alice whitelisted."""
    ledger.initialize(ADMIN, WINDOWED_CONFIG)
    ledger.enroll(ADMIN, ALICE)
    ledger.toggle_whitelist(ADMIN, ALICE)
    return ledger

"""
conftest.py - Shared pytest fixtures for custody tests

Provides common fixtures used across unit, conformance and functional tests:
- A quiet chain with funded accounts
- A deployed ReceiverContract and a ContractCaller pointing at it
- A receiver already holding deposits
"""

import pytest
from datetime import datetime

from custody import (
    Chain,
    ReceiverContract, StrictReceiverContract, ContractCaller,
    ETHER, GWEI,
)

from tests.fake_contracts import applied, deploy


@pytest.fixture
def chain():
    """Quiet chain starting at a fixed time."""
    return Chain("test", initial_time=datetime(2025, 1, 1), verbose=False)


@pytest.fixture
def accounts(chain):
    """Owner, alice, bob and carol, each funded with 10 ether."""
    result = {}
    for name in ["owner", "alice", "bob", "carol"]:
        address = chain.create_account(name)
        chain.fund(address, 10 * ETHER)
        result[name] = address
    return result


@pytest.fixture
def owner(accounts):
    return accounts["owner"]


@pytest.fixture
def alice(accounts):
    return accounts["alice"]


@pytest.fixture
def bob(accounts):
    return accounts["bob"]


@pytest.fixture
def carol(accounts):
    return accounts["carol"]


@pytest.fixture
def receiver(chain, owner):
    """ReceiverContract deployed by owner."""
    return deploy(chain, owner, ReceiverContract)


@pytest.fixture
def strict_receiver(chain, owner):
    """StrictReceiverContract deployed by owner."""
    return deploy(chain, owner, StrictReceiverContract)


@pytest.fixture
def relay(chain, owner, receiver):
    """ContractCaller bound to the receiver fixture."""
    return deploy(chain, owner, ContractCaller, receiver)


@pytest.fixture
def funded_receiver(chain, receiver, alice, bob):
    """Receiver where alice deposited 100 gwei and bob 50 gwei."""
    applied(chain.transact(alice, receiver, "deposit", value=100 * GWEI))
    applied(chain.transact(bob, receiver, "deposit", value=50 * GWEI))
    return receiver

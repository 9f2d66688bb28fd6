"""
Conservation Law Conformance Tests

INVARIANT: For every sequence of deposits, internal transfers and relay
operations, at all times:

    Σ_{a ∈ accounts} ledger_balance(a) ≤ pool(receiver)
    Σ_{a ∈ addresses} native_balance(a) = total_issued

Internal transfers redistribute ledger balances without moving value;
deposits grow the pool and the ledger by the same amount.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st
from datetime import datetime
from typing import Dict, List, Tuple

from custody import Chain, ReceiverContract, ContractCaller, ExecuteResult, ETHER


OPERATIONS = ["deposit", "transfer", "relay_deposit", "relay_transfer", "receive"]
ACCOUNT_NAMES = ["alice", "bob", "carol", "dave"]


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

@st.composite
def operation(draw):
    """One operation: (kind, actor index, counterparty index, amount)."""
    return (
        draw(st.sampled_from(OPERATIONS)),
        draw(st.integers(min_value=0, max_value=len(ACCOUNT_NAMES) - 1)),
        draw(st.integers(min_value=0, max_value=len(ACCOUNT_NAMES) - 1)),
        draw(st.integers(min_value=0, max_value=1_000)),
    )


def operation_sequence(max_size: int = 25):
    return st.lists(operation(), min_size=1, max_size=max_size)


# =============================================================================
# SCENARIO HELPERS
# =============================================================================

def build_system(name: str = "test") -> Tuple[Chain, List[str], str, str]:
    """Chain with four funded accounts, a receiver and a relay."""
    chain = Chain(name, initial_time=datetime(2025, 1, 1), verbose=False)
    accounts = []
    for label in ACCOUNT_NAMES:
        address = chain.create_account(label)
        chain.fund(address, ETHER)
        accounts.append(address)
    receiver = chain.deploy(accounts[0], ReceiverContract).contract_address
    relay = chain.deploy(accounts[0], ContractCaller, receiver).contract_address
    return chain, accounts, receiver, relay


def apply_operation(chain: Chain, accounts: List[str], receiver: str, relay: str, op) -> ExecuteResult:
    kind, actor, other, amount = op
    sender, counterparty = accounts[actor], accounts[other]
    if kind == "deposit":
        receipt = chain.transact(sender, receiver, "deposit", value=amount)
    elif kind == "receive":
        receipt = chain.transact(sender, receiver, value=amount)
    elif kind == "transfer":
        receipt = chain.transact(sender, receiver, "internalTransfer", counterparty, amount)
    elif kind == "relay_deposit":
        receipt = chain.transact(sender, relay, "callReceiver", value=amount)
    else:
        receipt = chain.transact(sender, relay, "triggerInternalTransfer", counterparty, amount)
    return receipt.result


def ledger_total(chain: Chain, receiver: str) -> int:
    return sum(chain.get_contract(receiver).balances.values())


# =============================================================================
# CONSERVATION PROPERTY TESTS
# =============================================================================

class TestConservationProperties:
    """Property-based tests for the custody invariants."""

    @given(operation_sequence())
    @settings(max_examples=75, deadline=None)
    def test_ledger_never_exceeds_pool(self, ops):
        """
        PROPERTY: Σ ledger balances ≤ pool after every operation.
        """
        chain, accounts, receiver, relay = build_system()

        for op in ops:
            result = apply_operation(chain, accounts, receiver, relay, op)
            note(f"{op} -> {result}")
            pool = chain.call(receiver, "getBalance")
            assert ledger_total(chain, receiver) <= pool

    @given(operation_sequence())
    @settings(max_examples=50, deadline=None)
    def test_deposits_keep_ledger_equal_to_pool(self, ops):
        """
        PROPERTY: With no payouts, Σ ledger balances = pool = total received.
        """
        chain, accounts, receiver, relay = build_system()

        for op in ops:
            apply_operation(chain, accounts, receiver, relay, op)

        pool = chain.call(receiver, "getBalance")
        assert ledger_total(chain, receiver) == pool
        assert chain.call(receiver, "totalReceived") == pool
        assert chain.get_contract(receiver).custody_report()['surplus'] == 0

    @given(operation_sequence())
    @settings(max_examples=50, deadline=None)
    def test_native_supply_conserved(self, ops):
        """
        PROPERTY: Σ native balances = total issued, whatever succeeds or reverts.
        """
        chain, accounts, receiver, relay = build_system()
        for op in ops:
            apply_operation(chain, accounts, receiver, relay, op)

        result = chain.verify_supply()
        assert result['valid'], f"Conservation violated: {result['discrepancy']}"

    @given(operation_sequence())
    @settings(max_examples=50, deadline=None)
    def test_total_received_is_monotonic(self, ops):
        """
        PROPERTY: totalReceived never decreases.
        """
        chain, accounts, receiver, relay = build_system()
        previous = 0
        for op in ops:
            apply_operation(chain, accounts, receiver, relay, op)
            current = chain.call(receiver, "totalReceived")
            assert current >= previous
            previous = current

    @given(st.lists(st.integers(min_value=1, max_value=10 ** 6), min_size=1, max_size=20))
    @settings(max_examples=30, deadline=None)
    def test_deposits_sum_exactly(self, amounts):
        """
        PROPERTY: N deposits grow the pool and the depositor's balance by their sum.
        """
        chain, accounts, receiver, relay = build_system()
        for amount in amounts:
            chain.transact(accounts[1], receiver, "deposit", value=amount)

        assert chain.call(receiver, "getUserBalance", accounts[1]) == sum(amounts)
        assert chain.call(receiver, "getBalance") == sum(amounts)


class TestConservationExamples:
    """Concrete conservation scenarios."""

    def test_internal_transfer_leaves_pool_and_total(self):
        chain, accounts, receiver, relay = build_system()
        alice, bob = accounts[0], accounts[1]
        chain.transact(alice, receiver, "deposit", value=100)
        chain.transact(alice, receiver, "internalTransfer", bob, 40)

        balances: Dict[str, int] = chain.get_contract(receiver).balances
        assert balances[alice] + balances[bob] == 100
        assert chain.call(receiver, "getBalance") == 100
        assert chain.call(receiver, "totalReceived") == 100

    def test_payouts_break_coverage_visibly(self):
        chain, accounts, receiver, relay = build_system()
        owner, alice = accounts[0], accounts[1]
        chain.transact(alice, receiver, "deposit", value=100)
        chain.transact(owner, receiver, "withdraw", 60)

        report = chain.get_contract(receiver).custody_report()
        assert report['covered'] is False
        assert report['surplus'] == -60
        assert chain.verify_supply()['valid']

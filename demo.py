#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Custody Ledger and Relay Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation  - The chain, accounts, deploying the contract pair
  4-6:  The Ledger  - Deposits, internal transfers, reverts
  7-8:  The Relay   - Forwarding value, spending the relay's balance
  9-10: Custody     - The withdraw gap, strict mode, replay

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime
import sys

from custody import (
    Chain, ReceiverContract, StrictReceiverContract, ContractCaller,
    GWEI, ETHER,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    initial_funding: int = 10 * ETHER
    deposit_gwei: int = 125
    relay_value_gwei: int = 50


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def gwei(value: int) -> str:
    return f"{value / GWEI:,.0f} gwei"


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_chain():
    step_header(1, "The Chain",
        "A Chain holds native balances, contracts and an append-only log.")

    print("""
    Every transaction mines one block. A transaction either APPLIES, or it
    REVERTS and leaves no trace except a consumed nonce and a receipt.
    """)
    wait_for_enter()

    print(">>> chain = Chain('tutorial', initial_time=datetime(2025, 1, 1, 9, 0))")
    chain = Chain("tutorial", initial_time=CONFIG.start_time, verbose=True)
    print(f"Chain:        {chain.name} (id {chain.chain_id})")
    print(f"Block number: {chain.block_number}")
    return chain


def step_02_accounts(chain: Chain):
    step_header(2, "Accounts",
        "Accounts are addresses with native value, issued by fund().")
    wait_for_enter()

    accounts = {}
    for label in ("owner", "alice", "bob"):
        accounts[label] = chain.create_account(label)
        chain.fund(accounts[label], CONFIG.initial_funding)
        print(f"{label:6s} {accounts[label]}  {chain.get_native_balance(accounts[label]) / ETHER:.0f} ETH")

    section_header("Key Insight")
    print(f"""
    Issued so far: {chain.total_issued / ETHER:.0f} ETH.
    verify_supply() checks that every wei is held by exactly one address.
    Valid: {chain.verify_supply()['valid']}
    """)
    return accounts


def step_03_deploy(chain: Chain, accounts: dict):
    step_header(3, "Deploying the Pair",
        "The Receiver is the ledger; the Caller is a relay fixed to one Receiver.")
    wait_for_enter()

    print(">>> chain.deploy(owner, ReceiverContract)")
    receiver = chain.deploy(accounts["owner"], ReceiverContract).contract_address
    print(">>> chain.deploy(owner, ContractCaller, receiver)")
    relay = chain.deploy(accounts["owner"], ContractCaller, receiver).contract_address

    print(f"\nReceiver owner:   {chain.call(receiver, 'owner')}")
    print(f"Relay target:     {chain.call(relay, 'receiver')}")
    return receiver, relay


# ============================================================================
# PHASE 2: THE LEDGER
# ============================================================================

def step_04_deposit(chain: Chain, accounts: dict, receiver: str):
    step_header(4, "Deposit",
        "Attached value joins the pool and is credited to the sender.")
    wait_for_enter()

    value = CONFIG.deposit_gwei * GWEI
    print(f">>> chain.transact(alice, receiver, 'deposit', value={CONFIG.deposit_gwei} * GWEI)")
    chain.transact(accounts["alice"], receiver, "deposit", value=value)

    print(f"Pool:           {gwei(chain.call(receiver, 'getBalance'))}")
    print(f"alice balance:  {gwei(chain.call(receiver, 'getUserBalance', accounts['alice']))}")
    print(f"Total received: {gwei(chain.call(receiver, 'totalReceived'))}")


def step_05_internal_transfer(chain: Chain, accounts: dict, receiver: str):
    step_header(5, "Internal Transfer",
        "Ledger balance moves between accounts; the pool does not change.")
    wait_for_enter()

    print(">>> chain.transact(alice, receiver, 'internalTransfer', bob, 40 gwei)")
    receipt = chain.transact(accounts["alice"], receiver, "internalTransfer", accounts["bob"], 40 * GWEI)

    section_header("Internal calls")
    for trace in receipt.traces[1:]:
        print(f"probe: {trace.sender} -> {trace.to} value={trace.value}")

    print(f"\nalice: {gwei(chain.call(receiver, 'getUserBalance', accounts['alice']))}")
    print(f"bob:   {gwei(chain.call(receiver, 'getUserBalance', accounts['bob']))}")
    print(f"pool:  {gwei(chain.call(receiver, 'getBalance'))}")


def step_06_reverts(chain: Chain, accounts: dict, receiver: str):
    step_header(6, "Reverts",
        "A failed call rolls back every effect, including emitted events.")
    wait_for_enter()

    print(">>> chain.transact(bob, receiver, 'internalTransfer', alice, 1 ETH)")
    receipt = chain.transact(accounts["bob"], receiver, "internalTransfer", accounts["alice"], ETHER)
    print(f"\nsucceeded: {receipt.succeeded}")
    print(f"reason:    {receipt.revert_reason}")

    print("\n>>> chain.transact(bob, receiver, 'withdraw', 1)")
    receipt = chain.transact(accounts["bob"], receiver, "withdraw", 1)
    print(f"\nreason:    {receipt.revert_reason}")


# ============================================================================
# PHASE 3: THE RELAY
# ============================================================================

def step_07_call_receiver(chain: Chain, accounts: dict, receiver: str, relay: str):
    step_header(7, "Forwarding Through the Relay",
        "callReceiver forwards value; the ledger credits the relay, not the caller.")
    wait_for_enter()

    value = CONFIG.relay_value_gwei * GWEI
    print(f">>> chain.transact(bob, relay, 'callReceiver', value={CONFIG.relay_value_gwei} * GWEI)")
    chain.transact(accounts["bob"], relay, "callReceiver", value=value)

    print(f"relay ledger balance: {gwei(chain.call(receiver, 'getUserBalance', relay))}")
    print(f"bob ledger balance:   {gwei(chain.call(receiver, 'getUserBalance', accounts['bob']))}")
    print(f"transferCount:        {chain.call(relay, 'transferCount')}")


def step_08_trigger_transfer(chain: Chain, accounts: dict, receiver: str, relay: str):
    step_header(8, "Spending the Relay's Balance",
        "Anyone can ask the relay to move the ledger balance it owns.")
    wait_for_enter()

    print(">>> chain.transact(alice, relay, 'triggerInternalTransfer', alice, 20 gwei)")
    chain.transact(accounts["alice"], relay, "triggerInternalTransfer", accounts["alice"], 20 * GWEI)

    print(f"relay: {gwei(chain.call(receiver, 'getUserBalance', relay))}")
    print(f"alice: {gwei(chain.call(receiver, 'getUserBalance', accounts['alice']))}")


# ============================================================================
# PHASE 4: CUSTODY
# ============================================================================

def step_09_custody_gap(chain: Chain, accounts: dict, receiver: str):
    step_header(9, "The Custody Gap",
        "The owner can withdraw value that accounts still believe they hold.")
    wait_for_enter()

    pool = chain.call(receiver, "getBalance")
    print(f">>> chain.transact(owner, receiver, 'withdraw', {gwei(pool)})")
    chain.transact(accounts["owner"], receiver, "withdraw", pool)

    report = chain.get_contract(receiver).custody_report()
    print(f"pool:        {gwei(report['pool'])}")
    print(f"liabilities: {gwei(report['liabilities'])}")
    print(f"covered:     {report['covered']}")

    section_header("Strict mode")
    strict = chain.deploy(accounts["owner"], StrictReceiverContract).contract_address
    chain.transact(accounts["alice"], strict, "deposit", value=10 * GWEI)
    receipt = chain.transact(accounts["owner"], strict, "withdraw", GWEI)
    print(f"\nStrict withdraw succeeded: {receipt.succeeded} ({receipt.revert_reason})")


def step_10_replay(chain: Chain, receiver: str):
    step_header(10, "Replay",
        "The transaction log reproduces the same hashes and state.")
    wait_for_enter()

    chain.verbose = False
    replayed = chain.replay()
    print(f"Transactions replayed: {len(replayed.transaction_log)}")
    print(f"Same pool:             {replayed.call(receiver, 'getBalance') == chain.call(receiver, 'getBalance')}")
    print(f"Supply valid:          {replayed.verify_supply()['valid']}")


def main():
    print("=" * 70)
    print("CUSTODY LEDGER AND RELAY - Interactive Tutorial")
    print("=" * 70)

    chain = step_01_chain()
    accounts = step_02_accounts(chain)
    receiver, relay = step_03_deploy(chain, accounts)
    step_04_deposit(chain, accounts, receiver)
    step_05_internal_transfer(chain, accounts, receiver)
    step_06_reverts(chain, accounts, receiver)
    step_07_call_receiver(chain, accounts, receiver, relay)
    step_08_trigger_transfer(chain, accounts, receiver, relay)
    step_09_custody_gap(chain, accounts, receiver)
    step_10_replay(chain, receiver)

    print(f"\n{'='*70}")
    print("""
    Next steps:
      - See examples/relay_session.py for the driver API
      - Run the driver: custody-driver simulate
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()

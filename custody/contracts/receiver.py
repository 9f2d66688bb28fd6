"""
receiver.py - Balance ledger contract

ReceiverContract holds native value in custody and keeps a per-account
ledger of what each depositor is entitled to:

    deposit / receive      credit msg.sender, grow the pool
    internalTransfer       move ledger balance from msg.sender to recipient
    transferWithValue      send pool value out (not gated by the ledger)
    withdraw               owner-only: send pool value to the owner
    getBalance             pool size
    getUserBalance         one account's ledger balance

The pool is the contract's native balance on the Chain; the ledger mapping
is a promise against it. deposit keeps them in step. transferWithValue and
withdraw only look at the pool, so they can leave the ledger uncovered.
custody_report() makes that gap visible; StrictReceiverContract closes it
for the owner's path.

Event order within internalTransfer:
    InternalTransferExecuted(sender, recipient, amount)
    BalanceUpdated(sender, newSenderBalance)
    BalanceUpdated(recipient, newRecipientBalance)
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from ..abi import PAYABLE, VIEW, event, external, receive
from ..core import (
    Address, ChainView, Message, Wei,
    InvalidAmount, InsufficientBalance, InsufficientPool, TransferFailed, Unauthorized,
    checked_add, checked_sub,
)
from .base import Contract


FUNDS_RECEIVED = "FundsReceived"
BALANCE_UPDATED = "BalanceUpdated"
INTERNAL_TRANSFER_EXECUTED = "InternalTransferExecuted"


class ReceiverContract(Contract):
    """
    Custodial ledger with an immutable owner (the deployer).

    strict_withdraw: When True, withdraw() may only take value that is not
        promised to any account (pool - liabilities >= amount). See
        StrictReceiverContract.
    """

    NAME = "ReceiverContract"
    STORAGE = ("owner", "total_received", "balances", "total_liabilities")
    EVENTS = (
        event(FUNDS_RECEIVED, ("sender", "address"), ("amount", "uint256")),
        event(BALANCE_UPDATED, ("account", "address"), ("newBalance", "uint256")),
        event(
            INTERNAL_TRANSFER_EXECUTED,
            ("from", "address"), ("to", "address"), ("amount", "uint256"),
        ),
    )

    strict_withdraw = False

    def __init__(self, chain, address: Address):
        super().__init__(chain, address)
        self.owner: Optional[Address] = None
        self.total_received: Wei = 0
        self.balances: Dict[Address, Wei] = {}
        # Sum of self.balances, kept incrementally
        self.total_liabilities: Wei = 0

    def constructor(self, msg: Message) -> None:
        self.owner = msg.sender

    # ========================================================================
    # DEPOSITS
    # ========================================================================

    @external("deposit", mutability=PAYABLE)
    def deposit(self, msg: Message) -> None:
        """Credit msg.sender with msg.value."""
        if msg.value == 0:
            raise InvalidAmount("Deposit amount must be greater than zero")
        new_balance = self._credit(msg.sender, msg.value)
        self.total_received = checked_add(self.total_received, msg.value)
        self.emit(FUNDS_RECEIVED, msg.sender, msg.value)
        self.emit(BALANCE_UPDATED, msg.sender, new_balance)

    @receive
    def receive(self, msg: Message) -> None:
        self.deposit(msg)

    # ========================================================================
    # TRANSFERS
    # ========================================================================

    @external("internalTransfer", inputs=(("recipient", "address"), ("amount", "uint256")))
    def internal_transfer(self, msg: Message, recipient: Address, amount: Wei) -> None:
        """
        Move ledger balance from msg.sender to recipient.

        The recipient is probed with a zero-value call before any state
        changes; a recipient that cannot take a call fails the transfer.
        No custodial value moves.
        """
        sender = msg.sender
        if self.balances.get(sender, 0) < amount:
            raise InsufficientBalance(
                f"Insufficient balance: {sender} has {self.balances.get(sender, 0)}, needs {amount}"
            )
        if not self.send_value(recipient, 0):
            raise TransferFailed(f"Recipient {recipient} rejected the probe call")

        # A recipient that re-enters during the probe can spend the balance
        # checked above; the debit then underflows and reverts.
        sender_balance = self._debit(sender, amount)
        recipient_balance = self._credit(recipient, amount)

        self.emit(INTERNAL_TRANSFER_EXECUTED, sender, recipient, amount)
        self.emit(BALANCE_UPDATED, sender, sender_balance)
        self.emit(BALANCE_UPDATED, recipient, recipient_balance)

    @external(
        "transferWithValue",
        inputs=(("recipient", "address"), ("amount", "uint256")),
        mutability=PAYABLE,
    )
    def transfer_with_value(self, msg: Message, recipient: Address, amount: Wei) -> None:
        """
        Send amount of pool value to recipient.

        Gated only by the pool size. Any attached value has already joined
        the pool when this runs.
        """
        if self.balance < amount:
            raise InsufficientPool(f"Insufficient pool: holds {self.balance}, needs {amount}")
        if not self.send_value(recipient, amount):
            raise TransferFailed(f"Value transfer of {amount} to {recipient} failed")
        self.emit(INTERNAL_TRANSFER_EXECUTED, self.address, recipient, amount)

    @external("withdraw", inputs=(("amount", "uint256"),))
    def withdraw(self, msg: Message, amount: Wei) -> None:
        """Owner-only: send amount of pool value to the owner."""
        if msg.sender != self.owner:
            raise Unauthorized(f"Only the owner can withdraw, not {msg.sender}")
        if self.balance < amount:
            raise InsufficientPool(f"Insufficient pool: holds {self.balance}, needs {amount}")
        if self.strict_withdraw and self.balance - self.total_liabilities < amount:
            raise InsufficientPool(
                f"Withdrawal of {amount} would uncover account balances "
                f"(pool {self.balance}, liabilities {self.total_liabilities})"
            )
        if not self.send_value(self.owner, amount):
            raise TransferFailed(f"Withdrawal of {amount} to owner failed")

    # ========================================================================
    # READS
    # ========================================================================

    @external("getBalance", outputs=(("", "uint256"),), mutability=VIEW)
    def get_balance(self, msg: Message) -> Wei:
        """Custodial pool size."""
        return self.balance

    @external("getUserBalance", inputs=(("user", "address"),), outputs=(("", "uint256"),), mutability=VIEW)
    def get_user_balance(self, msg: Message, user: Address) -> Wei:
        return self.balances.get(user, 0)

    @external("owner", outputs=(("", "address"),), mutability=VIEW)
    def get_owner(self, msg: Message) -> Address:
        return self.owner

    @external("totalReceived", outputs=(("", "uint256"),), mutability=VIEW)
    def get_total_received(self, msg: Message) -> Wei:
        return self.total_received

    def custody_report(self, view: Optional[ChainView] = None) -> Dict[str, Any]:
        """
        Compare the custodial pool with the balances it has promised.

        Args:
            view: Where to read the pool from (default: the hosting chain)

        Returns:
            Dict with keys:
            - 'pool': Wei - native value held
            - 'liabilities': Wei - sum of ledger balances
            - 'surplus': int - pool minus liabilities (negative when uncovered)
            - 'covered': bool - True if every ledger balance is backed

        Example:
            report = receiver.custody_report()
            assert report['covered'], f"Short by {-report['surplus']}"
        """
        pool = (view if view is not None else self.view).get_native_balance(self.address)
        surplus = pool - self.total_liabilities
        return {
            'pool': pool,
            'liabilities': self.total_liabilities,
            'surplus': surplus,
            'covered': surplus >= 0,
        }

    # ========================================================================
    # BOOKKEEPING
    # ========================================================================

    def _credit(self, account: Address, amount: Wei) -> Wei:
        new_balance = checked_add(self.balances.get(account, 0), amount)
        self.balances[account] = new_balance
        self.total_liabilities = checked_add(self.total_liabilities, amount)
        return new_balance

    def _debit(self, account: Address, amount: Wei) -> Wei:
        new_balance = checked_sub(self.balances.get(account, 0), amount)
        self.balances[account] = new_balance
        self.total_liabilities = checked_sub(self.total_liabilities, amount)
        return new_balance


class StrictReceiverContract(ReceiverContract):
    """ReceiverContract whose owner cannot withdraw value owed to accounts."""

    NAME = "StrictReceiverContract"
    strict_withdraw = True

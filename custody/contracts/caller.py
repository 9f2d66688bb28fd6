"""
caller.py - Relay contract

ContractCaller forwards value and requests to one ReceiverContract, fixed at
construction. Every forwarded call reaches the receiver with the relay as
msg.sender, so the receiver credits and debits the relay's own ledger
account, never the account that called the relay.
"""

from __future__ import annotations
from typing import Optional

from ..abi import PAYABLE, VIEW, Param, event, external, receive
from ..core import (
    Address, Message, Wei,
    CustodyError, ForwardFailed, InvalidAmount,
    checked_add,
)
from .base import Contract


CONTRACT_CALL_MADE = "ContractCallMade"
INTERNAL_TRANSFER = "InternalTransfer"


class ContractCaller(Contract):
    """Relay in front of a ReceiverContract."""

    NAME = "ContractCaller"
    STORAGE = ("receiver", "transfer_count")
    CONSTRUCTOR_INPUTS = (Param("receiverAddress", "address"),)
    EVENTS = (
        event(CONTRACT_CALL_MADE, ("caller", "address"), ("target", "address"), ("value", "uint256")),
        event(INTERNAL_TRANSFER, ("from", "address"), ("to", "address"), ("amount", "uint256")),
    )

    def __init__(self, chain, address: Address):
        super().__init__(chain, address)
        self.receiver: Optional[Address] = None
        self.transfer_count: int = 0

    def constructor(self, msg: Message, receiver_address: Address) -> None:
        self.receiver = receiver_address

    @external("callReceiver", mutability=PAYABLE)
    def call_receiver(self, msg: Message) -> None:
        """Forward msg.value into the receiver's deposit()."""
        if msg.value == 0:
            raise InvalidAmount("Must send value to forward")
        try:
            self.call_contract(self.receiver, "deposit", value=msg.value)
        except CustodyError as exc:
            raise ForwardFailed(f"Forwarding {msg.value} to {self.receiver} failed: {exc}") from exc
        self.transfer_count = checked_add(self.transfer_count, 1)
        self.emit(CONTRACT_CALL_MADE, msg.sender, self.receiver, msg.value)

    @external("triggerInternalTransfer", inputs=(("recipient", "address"), ("amount", "uint256")))
    def trigger_internal_transfer(self, msg: Message, recipient: Address, amount: Wei) -> None:
        """Move amount of the relay's ledger balance to recipient."""
        self.call_contract(self.receiver, "internalTransfer", recipient, amount)
        self.emit(INTERNAL_TRANSFER, self.receiver, recipient, amount)

    @external("getReceiverBalance", outputs=(("", "uint256"),), mutability=VIEW)
    def get_receiver_balance(self, msg: Message) -> Wei:
        return self.call_contract(self.receiver, "getBalance")

    @external("receiver", outputs=(("", "address"),), mutability=VIEW)
    def get_receiver(self, msg: Message) -> Address:
        return self.receiver

    @external("transferCount", outputs=(("", "uint256"),), mutability=VIEW)
    def get_transfer_count(self, msg: Message) -> int:
        return self.transfer_count

    @receive
    def receive(self, msg: Message) -> None:
        pass

"""Contracts hosted by custody.chain.Chain."""

from .base import Contract
from .receiver import (
    ReceiverContract,
    StrictReceiverContract,
    FUNDS_RECEIVED,
    BALANCE_UPDATED,
    INTERNAL_TRANSFER_EXECUTED,
)
from .caller import (
    ContractCaller,
    CONTRACT_CALL_MADE,
    INTERNAL_TRANSFER,
)

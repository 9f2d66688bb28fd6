"""
custody - Custodial ledger and relay contracts

A ReceiverContract holds native value and keeps per-account balances; a
ContractCaller relays value and transfer requests to it. Both run on an
in-process Chain that executes transactions atomically and keeps a full
audit trail.

Usage:
    from custody import Chain, ReceiverContract, ContractCaller, GWEI, ETHER

    chain = Chain("local")
    alice = chain.create_account("alice")
    chain.fund(alice, 10 * ETHER)

    receiver = chain.deploy(alice, ReceiverContract).contract_address
    relay = chain.deploy(alice, ContractCaller, receiver).contract_address

    # Deposit directly, then through the relay
    chain.transact(alice, receiver, "deposit", value=100 * GWEI)
    chain.transact(alice, relay, "callReceiver", value=50 * GWEI)

    chain.call(receiver, "getUserBalance", alice)   # 100 gwei
    chain.call(receiver, "getUserBalance", relay)   # 50 gwei
"""

# Core types
from .core import (
    ChainView,
    Message,
    Event,
    CallTrace,
    Transaction,
    Receipt,
    ExecuteResult,
    TransactionKind,
    CustodyError,
    InvalidAmount,
    InsufficientBalance,
    InsufficientPool,
    TransferFailed,
    ForwardFailed,
    Unauthorized,
    ArithmeticOverflow,
    UnknownFunction,
    NonPayable,
    CallDepthExceeded,
    ChainError,
    UnknownAccount,
    InsufficientFunds,
    DriverError,
    ConfigurationError,
    OperationFailed,
    DeploymentNotFound,
    InvalidDeployment,
    to_address,
    UINT256_MAX,
    ZERO_ADDRESS,
    MAX_CALL_DEPTH,
    GWEI,
    ETHER,
)

# ABI metadata
from .abi import contract_abi, external, receive, event

# Chain
from .chain import Chain

# Contracts
from .contracts import (
    Contract,
    ReceiverContract,
    StrictReceiverContract,
    ContractCaller,
)

# Deployment handoff
from .deployment import DeploymentInfo, DeploymentRecord, CompiledArtifact

# Internal transaction inspection
from .trace import (
    InternalCall,
    internal_calls,
    parse_trace_transaction,
    count_call_opcodes,
    format_internal_calls,
)

__all__ = [
    # Core
    'ChainView', 'Message', 'Event', 'CallTrace', 'Transaction', 'Receipt',
    'ExecuteResult', 'TransactionKind',
    # Exceptions
    'CustodyError', 'InvalidAmount', 'InsufficientBalance', 'InsufficientPool',
    'TransferFailed', 'ForwardFailed', 'Unauthorized', 'ArithmeticOverflow',
    'UnknownFunction', 'NonPayable', 'CallDepthExceeded',
    'ChainError', 'UnknownAccount', 'InsufficientFunds',
    'DriverError', 'ConfigurationError', 'OperationFailed', 'DeploymentNotFound',
    'InvalidDeployment',
    # Helpers and constants
    'to_address', 'UINT256_MAX', 'ZERO_ADDRESS', 'MAX_CALL_DEPTH', 'GWEI', 'ETHER',
    # ABI
    'contract_abi', 'external', 'receive', 'event',
    # Chain and contracts
    'Chain', 'Contract', 'ReceiverContract', 'StrictReceiverContract', 'ContractCaller',
    # Deployment
    'DeploymentInfo', 'DeploymentRecord', 'CompiledArtifact',
    # Trace
    'InternalCall', 'internal_calls', 'parse_trace_transaction',
    'count_call_opcodes', 'format_internal_calls',
]

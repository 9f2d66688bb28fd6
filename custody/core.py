"""
Core types and pure functions for the custody system.

This module provides the foundational data structures and protocols:
1. Protocols: ChainView for read-only access to the execution environment
2. Immutable data structures: Message, Event, CallTrace, Receipt, Transaction
3. Exceptions: CustodyError (reverts), ChainError (rejections), DriverError
4. Type aliases: Address, Wei, Storage
5. Validation helpers: address normalisation and uint256 arithmetic
6. Hashing: deterministic transaction identifiers

All functions in this module are pure. Nothing here mutates chain state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import hashlib
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, Type, runtime_checkable
)

from eth_utils import is_address, keccak, to_checksum_address


# ============================================================================
# CONSTANTS
# ============================================================================

UINT256_MAX = 2 ** 256 - 1

# Source of every issuance performed by Chain.fund().
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Nested message calls deeper than this fail with CallDepthExceeded.
MAX_CALL_DEPTH = 128

GWEI = 10 ** 9
ETHER = 10 ** 18

CALL_TYPE_CALL = "call"
CALL_TYPE_CREATE = "create"
CALL_TYPE_STATICCALL = "staticcall"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# EIP-55 checksummed hex address.
Address = str

# Native currency amount in its smallest unit.
Wei = int

# Snapshot of a contract's persistent fields.
Storage = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ChainView(Protocol):
    """
    Read-only interface to the execution environment.

    Contracts and reporting functions that only need to look at native
    balances or block data take a ChainView. The Chain class implements this
    protocol but also provides the mutation methods.
    """

    @property
    def current_time(self) -> datetime:
        """Return the timestamp the next block will carry."""
        ...

    @property
    def block_number(self) -> int:
        """Return the number of the most recently mined block."""
        ...

    def get_native_balance(self, address: Address) -> Wei:
        """Return the native balance held by an address (0 if unknown)."""
        ...

    def is_contract(self, address: Address) -> bool:
        """Return True if code is deployed at the address."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of an included transaction.

    APPLIED: All state changes were committed and events published.
    REVERTED: Execution failed; every state change was rolled back and no
              events were published. The nonce is still consumed.
    """
    APPLIED = "applied"
    REVERTED = "reverted"


class TransactionKind(Enum):
    """Classification of entries in the chain's transaction log."""
    FUND = "fund"           # Genesis issuance to an account
    DEPLOY = "deploy"       # Contract creation
    CALL = "call"           # Message call or plain value transfer


# ============================================================================
# EXCEPTIONS
# ============================================================================

class CustodyError(Exception):
    """
    Base class for failures raised during execution.

    Raising any CustodyError inside a message call reverts that call and
    everything it did. The message is the revert reason.
    """
    pass


class InvalidAmount(CustodyError):
    """Raised when an operation is attempted with a zero amount."""
    pass


class InsufficientBalance(CustodyError):
    """Raised when a ledger debit exceeds the account's recorded balance."""
    pass


class InsufficientPool(CustodyError):
    """Raised when the custodial pool cannot cover a value transfer."""
    pass


class TransferFailed(CustodyError):
    """Raised when a call to an external recipient does not succeed."""
    pass


class ForwardFailed(CustodyError):
    """Raised when the relay's forwarded call into the ledger fails."""
    pass


class Unauthorized(CustodyError):
    """Raised when a non-owner invokes a privileged operation."""
    pass


class ArithmeticOverflow(CustodyError):
    """Raised when uint256 arithmetic would leave the [0, 2**256 - 1] range."""
    pass


class UnknownFunction(CustodyError):
    """Raised when a call names a function the target does not expose."""
    pass


class NonPayable(CustodyError):
    """Raised when value is attached to a function that cannot accept it."""
    pass


class CallDepthExceeded(CustodyError):
    """Raised when nested message calls exceed MAX_CALL_DEPTH."""
    pass


class ChainError(Exception):
    """Base class for transactions rejected before execution (no receipt)."""
    pass


class UnknownAccount(ChainError):
    """Raised when a transaction is submitted from an unregistered account."""
    pass


class InsufficientFunds(ChainError):
    """Raised when a sender cannot cover the value attached to a transaction."""
    pass


class DriverError(Exception):
    """Base class for failures of the off-chain driver."""
    pass


class ConfigurationError(DriverError):
    """Raised when required driver settings are missing."""
    pass


class OperationFailed(DriverError):
    """Raised when a submitted transaction fails or reverts."""
    pass


class DeploymentNotFound(DriverError):
    """Raised when the deployment handoff file does not exist."""
    pass


class InvalidDeployment(DriverError):
    """Raised when the deployment handoff file cannot be parsed."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def to_address(value: Any) -> Address:
    """
    Normalise an address to its EIP-55 checksummed form.

    Raises:
        ValueError: If the value is not a 20-byte hex address.
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Not a valid address: {value!r}")
    return to_checksum_address(value)


def validate_amount(amount: Any, name: str = "amount") -> Wei:
    """
    Check that a value fits the uint256 ABI type and return it.

    Raises:
        ValueError: If the value is not an int in [0, UINT256_MAX].
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an int, got {type(amount).__name__}")
    if amount < 0 or amount > UINT256_MAX:
        raise ValueError(f"{name} out of uint256 range: {amount}")
    return amount


def checked_add(a: Wei, b: Wei) -> Wei:
    """Add two uint256 values, reverting on overflow."""
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflow(f"uint256 overflow: {a} + {b}")
    return result


def checked_sub(a: Wei, b: Wei) -> Wei:
    """Subtract two uint256 values, reverting on underflow."""
    if b > a:
        raise ArithmeticOverflow(f"uint256 underflow: {a} - {b}")
    return a - b


def derive_address(*parts: Any) -> Address:
    """
    Derive a deterministic address from arbitrary parts.

    The address is the last 20 bytes of keccak256 over the colon-joined
    parts, so the same inputs always yield the same address.
    """
    digest = keccak(text=":".join(str(p) for p in parts))
    return to_checksum_address(digest[-20:])


# ============================================================================
# HASHING
# ============================================================================

def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Addresses are compared case-insensitively; everything else is tagged by
    type so that 1 and "1" never collide.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        if is_address(value):
            return f"A:{value.lower()}"
        return f"S:{value}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, type):
        return f"C:{value.__module__}.{value.__qualname__}"
    return f"R:{repr(value)}"


def compute_tx_hash(
    chain_id: int,
    kind: TransactionKind,
    sender: Address,
    to: Optional[Address],
    method: Optional[str],
    args: Tuple[Any, ...],
    value: Wei,
    nonce: int,
) -> str:
    """
    Compute a deterministic transaction hash.

    The hash covers chain id, sender, nonce and the call content, so two
    chains fed the same transaction sequence produce identical hashes.
    """
    content = "|".join([
        f"chain:{chain_id}",
        f"kind:{kind.value}",
        f"from:{_canonicalize(sender)}",
        f"to:{_canonicalize(to)}",
        f"method:{_canonicalize(method)}",
        f"args:{_canonicalize(args)}",
        f"value:{value}",
        f"nonce:{nonce}",
    ])
    return "0x" + hashlib.sha256(content.encode()).hexdigest()


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Message:
    """
    Call context handed to every contract function.

    Attributes:
        sender: Immediate caller (an EOA or a contract).
        value: Native value attached to this call.
        origin: EOA that signed the enclosing transaction.
    """
    sender: Address
    value: Wei
    origin: Address

    def __post_init__(self):
        if not self.sender:
            raise ValueError("Message sender cannot be empty")
        if self.value < 0:
            raise ValueError(f"Message value cannot be negative, got {self.value}")


@dataclass(frozen=True, slots=True)
class Event:
    """
    A published log entry.

    Attributes:
        address: Contract that emitted the event.
        name: Event name (e.g. "FundsReceived").
        signature: Canonical signature (e.g. "FundsReceived(address,uint256)").
        names: Input names, in declaration order.
        values: Input values, in declaration order.
        block_number: Block that included the transaction.
        transaction_hash: Hash of the emitting transaction.
        log_index: Position of this event within its transaction.
    """
    address: Address
    name: str
    signature: str
    names: Tuple[str, ...]
    values: Tuple[Any, ...]
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def args(self) -> Dict[str, Any]:
        """Event inputs keyed by name."""
        return dict(zip(self.names, self.values))

    @property
    def topic1(self) -> Any:
        """First indexed input."""
        return self.values[0] if self.values else None

    @property
    def topic2(self) -> Any:
        """Second indexed input."""
        return self.values[1] if len(self.values) > 1 else None

    def __repr__(self) -> str:
        rendered = ", ".join(f"{n}={v}" for n, v in zip(self.names, self.values))
        return f"{self.name}({rendered})"


@dataclass(frozen=True, slots=True)
class CallTrace:
    """
    One message call observed during a transaction.

    Traces are recorded in call order; depth 0 is the top-level call.
    A trace with an error was reverted, along with everything below it.
    """
    call_type: str
    sender: Address
    to: Address
    value: Wei
    method: Optional[str]
    selector: str
    depth: int
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    Immutable log record of an accepted transaction - represents FACT.

    Attributes:
        kind: FUND, DEPLOY or CALL
        sender: Signing account (ZERO_ADDRESS for issuance)
        to: Target address (the new contract for DEPLOY)
        method: ABI function name (None for constructor or plain transfer)
        args: Positional call arguments
        value: Native value attached
        nonce: Sender nonce consumed (-1 for issuance)
        transaction_hash: Deterministic hash of the above
        sequence_number: Monotonic position in the chain's log
        block_number: Block that included the transaction (0 for issuance)
        timestamp: Block timestamp
        result: APPLIED or REVERTED
        contract_cls: Contract class for DEPLOY entries
    """
    kind: TransactionKind
    sender: Address
    to: Optional[Address]
    method: Optional[str]
    args: Tuple[Any, ...]
    value: Wei
    nonce: int
    transaction_hash: str
    sequence_number: int
    block_number: int
    timestamp: datetime
    result: ExecuteResult = ExecuteResult.APPLIED
    contract_cls: Optional[Type[Any]] = None


def _boxed(title: str, rows: List[str], footer: Optional[str] = None, width: int = 100) -> str:
    """Render rows inside a box-drawing frame."""
    bar = "─" * width

    def pad(text: str) -> str:
        if len(text) > width:
            return text[:width - 3] + "..."
        return text + " " * (width - len(text))

    lines = ["", f"┌{bar}┐", f"│{pad(' ' + title)}│", f"├{bar}┤"]
    lines.extend(f"│{pad(row)}│" for row in rows)
    if footer:
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' ' + footer)}│")
    lines.append(f"└{bar}┘")
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Outcome of an included transaction.

    Attributes:
        transaction_hash: Hash of the transaction
        block_number: Block that included it
        sequence_number: Position in the chain's transaction log
        sender: Signing account
        to: Target address (None for contract creation)
        method: ABI function name, or None
        value: Native value attached
        result: APPLIED or REVERTED
        events: Published events (empty when reverted)
        traces: Message calls made, in call order
        return_value: Value returned by the top-level call
        error: Revert cause when result is REVERTED
        contract_address: Address of the created contract for deployments
    """
    transaction_hash: str
    block_number: int
    sequence_number: int
    sender: Address
    to: Optional[Address]
    method: Optional[str]
    value: Wei
    result: ExecuteResult
    events: Tuple[Event, ...] = ()
    traces: Tuple[CallTrace, ...] = ()
    return_value: Any = None
    error: Optional[CustodyError] = None
    contract_address: Optional[Address] = None

    @property
    def status(self) -> int:
        """1 on success, 0 on revert (JSON-RPC receipt convention)."""
        return 1 if self.result == ExecuteResult.APPLIED else 0

    @property
    def succeeded(self) -> bool:
        return self.result == ExecuteResult.APPLIED

    @property
    def revert_reason(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__

    def raise_for_error(self) -> None:
        """Re-raise the revert cause, if any."""
        if self.error is not None:
            raise self.error

    def events_named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]

    def __repr__(self) -> str:
        rows = [
            f"   block          : {self.block_number}",
            f"   sequence       : {self.sequence_number}",
            f"   from           : {self.sender}",
            f"   to             : {self.to or self.contract_address}",
            f"   method         : {self.method or '<receive>'}",
            f"   value          : {self.value}",
            f"   events ({len(self.events)}):",
        ]
        rows.extend(f"     [{e.log_index}] {e!r}" for e in self.events)
        rows.append(f"   calls ({len(self.traces)}):")
        for t in self.traces:
            marker = "" if t.succeeded else f"  !! {t.error}"
            rows.append(
                f"     {'  ' * t.depth}{t.call_type} {t.sender} → {t.to} "
                f"{t.method or ''} value={t.value}{marker}"
            )
        if self.succeeded:
            footer = "✓ APPLIED"
        else:
            footer = f"✗ REVERTED: {type(self.error).__name__}: {self.revert_reason}"
        return _boxed(f"Receipt: {self.transaction_hash}", rows, footer)

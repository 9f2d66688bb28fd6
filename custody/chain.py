"""
chain.py - In-process execution environment for custody contracts

The Chain class is the central state manager. It is the only module that
mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements ChainView for read-only access by contracts and reports
    - Holds externally owned accounts, native balances, nonces and contracts
    - Executes each transaction atomically in its own block
    - Snapshots state around every message call, so a failed sub-call
      unwinds exactly its own effects
    - Always logs: every included transaction is recorded with a receipt,
      enabling clone() and replay()

Execution is strictly serialized: a transaction runs to completion (applied
or reverted) before the next one starts, and sub-calls are synchronous.
"""

from __future__ import annotations
import copy
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Type

from .abi import EventSpec, coerce_args
from .contracts.base import Contract
from .core import (
    # Types
    Address, Wei, CallTrace, Event, ExecuteResult, Message, Receipt,
    Transaction, TransactionKind,
    # Constants
    CALL_TYPE_CALL, CALL_TYPE_CREATE, CALL_TYPE_STATICCALL,
    MAX_CALL_DEPTH, ZERO_ADDRESS,
    # Exceptions
    ChainError, CustodyError, CallDepthExceeded, InsufficientFunds,
    NonPayable, TransferFailed, UnknownAccount, UnknownFunction,
    # Helpers
    compute_tx_hash, derive_address, to_address, validate_amount,
)


# Placeholder hash for read-only calls, which are never included.
_CALL_HASH = "0x" + "0" * 64


class _ExecutionFrame:
    """Scratch state of the transaction currently executing."""

    __slots__ = ("transaction_hash", "origin", "block_number", "events", "traces", "depth")

    def __init__(self, transaction_hash: str, origin: Address, block_number: int):
        self.transaction_hash = transaction_hash
        self.origin = origin
        self.block_number = block_number
        self.events: List[Event] = []
        self.traces: List[Optional[CallTrace]] = []
        self.depth = 0


class Chain:
    """
    Serialized execution environment with full audit trail.

    Implements the ChainView protocol.

    Design Principles:
        - Always validates: arguments are checked against the ABI before a
          nonce is consumed; contracts enforce their own rules while running.
        - Always logs: every included transaction, applied or reverted, is
          appended to the transaction log and gets a receipt.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Chain instance.

    Example:
        chain = Chain("local")
        alice = chain.create_account("alice")
        chain.fund(alice, 10 * ETHER)

        receipt = chain.deploy(alice, ReceiverContract)
        receiver = receipt.contract_address
        chain.transact(alice, receiver, "deposit", value=125 * GWEI)
        chain.call(receiver, "getUserBalance", alice)
    """

    def __init__(
        self,
        name: str = "local",
        chain_id: int = 31337,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a chain.

        Args:
            name: Chain identifier
            chain_id: Numeric chain id (part of every transaction hash)
            initial_time: Starting block time (default: 1970-01-01)
            verbose: Print a receipt for every transaction (default: True)
        """
        self.name = name
        self.chain_id = chain_id
        self.verbose = verbose
        self.native_balances: Dict[Address, Wei] = {}
        self.accounts: Set[Address] = set()
        self.labels: Dict[Address, str] = {}
        self.contracts: Dict[Address, Contract] = {}
        self.nonces: Dict[Address, int] = {}
        self.total_issued: Wei = 0
        self.transaction_log: List[Transaction] = []
        self.receipts: Dict[str, Receipt] = {}
        self.logs: List[Event] = []
        self._initial_time: datetime = initial_time or datetime(1970, 1, 1)
        self._current_time: datetime = self._initial_time
        self._block_number: int = 0
        self._next_sequence: int = 0
        self._frame: Optional[_ExecutionFrame] = None

    # ========================================================================
    # ChainView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Timestamp the next block will carry."""
        return self._current_time

    @property
    def block_number(self) -> int:
        """Number of the most recently mined block (0 before any transaction)."""
        return self._block_number

    def get_native_balance(self, address: Address) -> Wei:
        return self.native_balances.get(to_address(address), 0)

    def is_contract(self, address: Address) -> bool:
        return to_address(address) in self.contracts

    def is_registered(self, address: Address) -> bool:
        """Check if an address is a registered externally owned account."""
        return to_address(address) in self.accounts

    def get_contract(self, address: Address) -> Contract:
        """
        Return the contract deployed at an address.

        Raises:
            UnknownAccount: If no contract lives there
        """
        address = to_address(address)
        if address not in self.contracts:
            raise UnknownAccount(f"No contract at {address}")
        return self.contracts[address]

    def list_accounts(self) -> Set[Address]:
        """List all registered externally owned accounts."""
        return self.accounts.copy()

    def nonce_of(self, address: Address) -> int:
        return self.nonces.get(to_address(address), 0)

    def get_receipt(self, transaction_hash: str) -> Receipt:
        if transaction_hash not in self.receipts:
            raise ChainError(f"Unknown transaction {transaction_hash}")
        return self.receipts[transaction_hash]

    def get_logs(
        self,
        address: Optional[Address] = None,
        event: Optional[str] = None,
        topic1: Any = None,
        topic2: Any = None,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> List[Event]:
        """
        Filter published events.

        topic1 and topic2 match the first two (indexed) event inputs;
        addresses compare case-insensitively.

        Example:
            chain.get_logs(address=receiver, event="BalanceUpdated", topic1=alice)
        """
        if address is not None:
            address = to_address(address)

        def _match(value: Any, wanted: Any) -> bool:
            if wanted is None:
                return True
            if isinstance(value, str) and isinstance(wanted, str):
                return value.lower() == wanted.lower()
            return value == wanted

        return [
            e for e in self.logs
            if (address is None or e.address == address)
            and (event is None or e.name == event)
            and _match(e.topic1, topic1)
            and _match(e.topic2, topic2)
            and e.block_number >= from_block
            and (to_block is None or e.block_number <= to_block)
        ]

    def total_supply(self) -> Wei:
        """Sum of native balances across every address."""
        return sum(self.native_balances[a] for a in sorted(self.native_balances))

    def verify_supply(self) -> Dict[str, Any]:
        """
        Verify that native value is conserved.

        Value only enters through fund(); every transfer moves it between
        addresses. The sum of all native balances must equal total issuance.

        Returns:
            Dict with keys:
            - 'valid': bool - True if conservation holds
            - 'total_issued': Wei - value created by fund()
            - 'total_held': Wei - sum of all native balances
            - 'discrepancy': int - total_held minus total_issued

        Example:
            result = chain.verify_supply()
            assert result['valid'], f"Conservation violated: {result['discrepancy']}"
        """
        total_held = self.total_supply()
        return {
            'valid': total_held == self.total_issued,
            'total_issued': self.total_issued,
            'total_held': total_held,
            'discrepancy': total_held - self.total_issued,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the block clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # ACCOUNTS (Mutating)
    # ========================================================================

    def register_account(self, address: Address, label: Optional[str] = None) -> Address:
        """
        Register an externally owned account.

        Args:
            address: Account address (any case; stored checksummed)
            label: Optional human-readable name

        Returns:
            The checksummed address

        Raises:
            ValueError: If the address is already registered or holds a contract
        """
        address = to_address(address)
        if address in self.accounts:
            raise ValueError(f"Account {address} already registered")
        if address in self.contracts:
            raise ValueError(f"Address {address} holds a contract")
        self.accounts.add(address)
        self.native_balances.setdefault(address, 0)
        self.nonces.setdefault(address, 0)
        if label:
            self.labels[address] = label
        return address

    def create_account(self, label: Optional[str] = None) -> Address:
        """Register an account whose address is derived from its label."""
        label = label or f"account{len(self.accounts)}"
        return self.register_account(derive_address("account", label), label)

    def fund(self, address: Address, amount: Wei) -> Transaction:
        """
        Issue native value to an account.

        This is the only way value enters the chain. It is logged (and
        replayed) but does not mine a block.

        Raises:
            UnknownAccount: If the account is not registered
            ValueError: If amount is not a positive uint256
        """
        address = self._require_account(address)
        amount = validate_amount(amount)
        if amount == 0:
            raise ValueError("Funding amount must be positive")
        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            kind=TransactionKind.FUND,
            sender=ZERO_ADDRESS,
            to=address,
            method=None,
            args=(),
            value=amount,
            nonce=-1,
            transaction_hash=compute_tx_hash(
                self.chain_id, TransactionKind.FUND, ZERO_ADDRESS, address, None, (), amount, sequence
            ),
            sequence_number=sequence,
            block_number=self._block_number,
            timestamp=self._current_time,
        )
        self.native_balances[address] = self.native_balances.get(address, 0) + amount
        self.total_issued += amount
        self.transaction_log.append(tx)
        return tx

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def deploy(self, deployer: Address, contract_cls: Type[Contract], *args: Any, value: Wei = 0) -> Receipt:
        """
        Deploy a contract in its own transaction.

        The contract address is derived from the deployer and its nonce.
        On success receipt.contract_address holds it; on revert the contract
        does not exist.

        Raises:
            UnknownAccount: If the deployer is not registered
            InsufficientFunds: If the deployer cannot cover value
            ValueError: If constructor arguments do not match the ABI
        """
        deployer = self._require_account(deployer)
        value = validate_amount(value, "value")
        args = coerce_args(contract_cls.CONSTRUCTOR_INPUTS, tuple(args), f"{contract_cls.NAME} constructor")
        self._check_funds(deployer, value)
        nonce = self._use_nonce(deployer)
        address = derive_address("contract", deployer.lower(), nonce)
        tx_hash = compute_tx_hash(
            self.chain_id, TransactionKind.DEPLOY, deployer, None,
            f"create:{contract_cls.NAME}", args, value, nonce,
        )

        frame = self._open_frame(tx_hash, deployer)
        error: Optional[CustodyError] = None
        try:
            self._create(deployer, address, contract_cls, args, value)
        except CustodyError as exc:
            error = exc
        finally:
            self._frame = None

        return self._finalize(
            frame, TransactionKind.DEPLOY, deployer, address, None, args, value, nonce,
            error=error,
            contract_address=address if error is None else None,
            contract_cls=contract_cls,
        )

    def transact(self, sender: Address, to: Address, method: Optional[str] = None, *args: Any, value: Wei = 0) -> Receipt:
        """
        Submit a transaction and mine it in its own block.

        Args:
            sender: Registered account signing the transaction
            to: Target contract or account
            method: ABI function name, or None for a plain value transfer
            *args: Function arguments
            value: Native value to attach

        Returns:
            Receipt with result APPLIED, or REVERTED plus the error. A
            reverted transaction leaves no state change except the nonce.

        Raises:
            UnknownAccount: If sender is not registered
            InsufficientFunds: If sender cannot cover value
            ValueError: If arguments do not match the ABI
        """
        sender = self._require_account(sender)
        to = to_address(to)
        value = validate_amount(value, "value")
        args = self._coerce_call_args(to, method, args)
        self._check_funds(sender, value)
        nonce = self._use_nonce(sender)
        tx_hash = compute_tx_hash(
            self.chain_id, TransactionKind.CALL, sender, to, method, args, value, nonce
        )

        frame = self._open_frame(tx_hash, sender)
        return_value: Any = None
        error: Optional[CustodyError] = None
        try:
            return_value = self._message_call(sender, to, method, args, value)
        except CustodyError as exc:
            error = exc
        finally:
            self._frame = None

        return self._finalize(
            frame, TransactionKind.CALL, sender, to, method, args, value, nonce,
            return_value=return_value, error=error,
        )

    def call(self, to: Address, method: str, *args: Any, sender: Address = ZERO_ADDRESS, value: Wei = 0) -> Any:
        """
        Execute a function without committing anything (eth_call).

        State is always restored afterwards, and no nonce, block or log
        entry is produced.

        Raises:
            CustodyError: If execution reverts
        """
        to = to_address(to)
        sender = to_address(sender)
        value = validate_amount(value, "value")
        args = self._coerce_call_args(to, method, args)
        if value:
            self._check_funds(sender, value)

        snapshot = self._snapshot()
        self._open_frame(_CALL_HASH, sender)
        try:
            return self._message_call(sender, to, method, args, value, CALL_TYPE_STATICCALL)
        finally:
            self._frame = None
            self._restore(snapshot)

    # ========================================================================
    # CONTRACT-FACING OPERATIONS (used while a transaction executes)
    # ========================================================================

    def invoke(self, sender: Address, to: Address, method: str, *args: Any, value: Wei = 0) -> Any:
        """High-level call from a contract. Failures propagate to the caller."""
        to = to_address(to)
        contract = self.contracts.get(to)
        if contract is not None and method in contract.functions():
            spec, _ = contract.functions()[method]
            args = coerce_args(spec.inputs, tuple(args), spec.signature)
        return self._message_call(sender, to, method, tuple(args), value)

    def send(self, sender: Address, to: Address, value: Wei) -> bool:
        """
        Low-level call with no data from a contract.

        Returns:
            True if the call succeeded, False if it reverted (its effects are
            already unwound)
        """
        try:
            self._message_call(sender, to_address(to), None, (), value)
        except CustodyError:
            return False
        return True

    def emit(self, address: Address, spec: EventSpec, values: Tuple[Any, ...]) -> None:
        """Record an event for the executing transaction."""
        frame = self._require_frame()
        frame.events.append(Event(
            address=address,
            name=spec.name,
            signature=spec.signature,
            names=spec.input_names,
            values=tuple(values),
            block_number=frame.block_number,
            transaction_hash=frame.transaction_hash,
            log_index=len(frame.events),
        ))

    # ========================================================================
    # EXECUTION INTERNALS
    # ========================================================================

    def _require_account(self, address: Address) -> Address:
        address = to_address(address)
        if address not in self.accounts:
            raise UnknownAccount(f"Account {address} not registered")
        return address

    def _require_frame(self) -> _ExecutionFrame:
        if self._frame is None:
            raise ChainError("No transaction is executing")
        return self._frame

    def _check_funds(self, sender: Address, value: Wei) -> None:
        available = self.native_balances.get(sender, 0)
        if available < value:
            raise InsufficientFunds(f"{sender} holds {available}, cannot send {value}")

    def _use_nonce(self, sender: Address) -> int:
        nonce = self.nonces.get(sender, 0)
        self.nonces[sender] = nonce + 1
        return nonce

    def _coerce_call_args(self, to: Address, method: Optional[str], args: Tuple[Any, ...]) -> Tuple[Any, ...]:
        if method is None:
            if args:
                raise ValueError("A plain value transfer takes no arguments")
            return ()
        contract = self.contracts.get(to)
        if contract is None or method not in contract.functions():
            # Unknown functions revert during execution
            return tuple(args)
        spec, _ = contract.functions()[method]
        return coerce_args(spec.inputs, tuple(args), spec.signature)

    def _open_frame(self, transaction_hash: str, origin: Address) -> _ExecutionFrame:
        if self._frame is not None:
            raise ChainError("A transaction is already executing")
        self._frame = _ExecutionFrame(transaction_hash, origin, self._block_number + 1)
        return self._frame

    def _snapshot(self) -> Tuple[Dict[Address, Wei], Dict[Address, Dict[str, Any]]]:
        storages = {addr: c.snapshot_storage() for addr, c in self.contracts.items()}
        return dict(self.native_balances), storages

    def _restore(self, snapshot: Tuple[Dict[Address, Wei], Dict[Address, Dict[str, Any]]]) -> None:
        balances, storages = snapshot
        self.native_balances = dict(balances)
        for addr, storage in storages.items():
            self.contracts[addr].restore_storage(storage)

    def _reserve_trace(self, frame: _ExecutionFrame) -> int:
        frame.traces.append(None)
        return len(frame.traces) - 1

    def _selector_for(self, to: Address, method: Optional[str]) -> str:
        contract = self.contracts.get(to)
        if method is None or contract is None:
            return "0x"
        entry = contract.functions().get(method)
        return entry[0].selector if entry else "0x"

    def _transfer_native(self, sender: Address, to: Address, value: Wei) -> None:
        if value == 0:
            return
        available = self.native_balances.get(sender, 0)
        if available < value:
            raise TransferFailed(f"{sender} holds {available}, cannot send {value}")
        self.native_balances[sender] = available - value
        self.native_balances[to] = self.native_balances.get(to, 0) + value

    def _message_call(
        self,
        sender: Address,
        to: Address,
        method: Optional[str],
        args: Tuple[Any, ...],
        value: Wei,
        call_type: str = CALL_TYPE_CALL,
    ) -> Any:
        """
        Run one message call.

        Value moves before the callee's code runs, in the same unit of
        rollback: if the callee raises, balances, contract storage and the
        events emitted below this call are restored, then the error is
        re-raised to the caller.
        """
        frame = self._require_frame()
        if frame.depth >= MAX_CALL_DEPTH:
            raise CallDepthExceeded(f"Call depth {MAX_CALL_DEPTH} exceeded")

        snapshot = self._snapshot()
        event_mark = len(frame.events)
        trace_index = self._reserve_trace(frame)
        selector = self._selector_for(to, method)
        error: Optional[str] = None
        frame.depth += 1
        try:
            self._transfer_native(sender, to, value)
            return self._dispatch(sender, to, method, args, value)
        except CustodyError as exc:
            self._restore(snapshot)
            del frame.events[event_mark:]
            error = f"{type(exc).__name__}: {exc}"
            raise
        finally:
            frame.depth -= 1
            frame.traces[trace_index] = CallTrace(
                call_type=call_type,
                sender=sender,
                to=to,
                value=value,
                method=method,
                selector=selector,
                depth=frame.depth,
                error=error,
            )

    def _dispatch(self, sender: Address, to: Address, method: Optional[str], args: Tuple[Any, ...], value: Wei) -> Any:
        contract = self.contracts.get(to)
        msg = Message(sender=sender, value=value, origin=self._frame.origin)
        if contract is None:
            if method is not None:
                raise UnknownFunction(f"No contract at {to}")
            return None
        if method is None:
            handler = contract.receive_handler()
            if handler is None:
                raise UnknownFunction(f"{contract.NAME} does not accept plain value transfers")
            return handler(msg)
        spec, handler = contract.resolve(method)
        if value and not spec.payable:
            raise NonPayable(f"{contract.NAME}.{spec.name} is not payable")
        return handler(msg, *args)

    def _create(self, deployer: Address, address: Address, contract_cls: Type[Contract], args: Tuple[Any, ...], value: Wei) -> None:
        frame = self._require_frame()
        snapshot = self._snapshot()
        trace_index = self._reserve_trace(frame)
        error: Optional[str] = None
        contract = contract_cls(self, address)
        self.contracts[address] = contract
        frame.depth += 1
        try:
            if value:
                raise NonPayable(f"{contract_cls.NAME} constructor is not payable")
            contract.constructor(Message(sender=deployer, value=value, origin=frame.origin), *args)
        except CustodyError as exc:
            self.contracts.pop(address, None)
            self._restore(snapshot)
            del frame.events[:]
            error = f"{type(exc).__name__}: {exc}"
            raise
        finally:
            frame.depth -= 1
            frame.traces[trace_index] = CallTrace(
                call_type=CALL_TYPE_CREATE,
                sender=deployer,
                to=address,
                value=value,
                method=None,
                selector="0x",
                depth=frame.depth,
                error=error,
            )

    def _finalize(
        self,
        frame: _ExecutionFrame,
        kind: TransactionKind,
        sender: Address,
        to: Address,
        method: Optional[str],
        args: Tuple[Any, ...],
        value: Wei,
        nonce: int,
        return_value: Any = None,
        error: Optional[CustodyError] = None,
        contract_address: Optional[Address] = None,
        contract_cls: Optional[Type[Contract]] = None,
    ) -> Receipt:
        """Mine the block, commit events and log the transaction."""
        self._block_number = frame.block_number
        sequence = self._next_sequence
        self._next_sequence += 1
        result = ExecuteResult.APPLIED if error is None else ExecuteResult.REVERTED
        events = tuple(frame.events) if error is None else ()
        self.logs.extend(events)

        self.transaction_log.append(Transaction(
            kind=kind,
            sender=sender,
            to=to,
            method=method,
            args=args,
            value=value,
            nonce=nonce,
            transaction_hash=frame.transaction_hash,
            sequence_number=sequence,
            block_number=frame.block_number,
            timestamp=self._current_time,
            result=result,
            contract_cls=contract_cls,
        ))
        receipt = Receipt(
            transaction_hash=frame.transaction_hash,
            block_number=frame.block_number,
            sequence_number=sequence,
            sender=sender,
            to=None if kind == TransactionKind.DEPLOY else to,
            method=method,
            value=value,
            result=result,
            events=events,
            traces=tuple(t for t in frame.traces if t is not None),
            return_value=return_value,
            error=error,
            contract_address=contract_address,
        )
        self.receipts[receipt.transaction_hash] = receipt
        if self.verbose:
            print(repr(receipt))
        return receipt

    # ========================================================================
    # CHAIN OPERATIONS
    # ========================================================================

    def clone(self) -> Chain:
        """
        Create a deep copy of this chain.

        Contracts in the clone are bound to the clone. Logs, receipts and the
        transaction log hold immutable records and are shared.

        Raises:
            ChainError: If called while a transaction is executing
        """
        if self._frame is not None:
            raise ChainError("Cannot clone while a transaction is executing")
        cloned = Chain.__new__(Chain)
        cloned.name = self.name
        cloned.chain_id = self.chain_id
        cloned.verbose = self.verbose
        cloned.native_balances = dict(self.native_balances)
        cloned.accounts = self.accounts.copy()
        cloned.labels = dict(self.labels)
        cloned.nonces = dict(self.nonces)
        cloned.total_issued = self.total_issued
        cloned.transaction_log = list(self.transaction_log)
        cloned.receipts = dict(self.receipts)
        cloned.logs = list(self.logs)
        cloned._initial_time = self._initial_time
        cloned._current_time = self._current_time
        cloned._block_number = self._block_number
        cloned._next_sequence = self._next_sequence
        cloned._frame = None

        # Rebind contracts: every reference to this chain becomes the clone
        memo = {id(self): cloned}
        cloned.contracts = {
            addr: copy.deepcopy(contract, memo) for addr, contract in self.contracts.items()
        }
        return cloned

    def replay(self) -> Chain:
        """
        Build a new chain by re-executing the transaction log.

        Transaction hashes depend only on chain id and content, so a faithful
        replay reproduces every hash and every outcome.

        Raises:
            ChainError: If a replayed transaction diverges from the log
        """
        new_chain = Chain(
            name=f"{self.name}_replayed",
            chain_id=self.chain_id,
            initial_time=self._initial_time,
            verbose=self.verbose,
        )
        for address in sorted(self.accounts):
            new_chain.register_account(address, self.labels.get(address))

        for tx in self.transaction_log:
            if tx.timestamp > new_chain.current_time:
                new_chain.advance_time(tx.timestamp)

            if tx.kind == TransactionKind.FUND:
                replayed_hash = new_chain.fund(tx.to, tx.value).transaction_hash
                replayed_result = ExecuteResult.APPLIED
            elif tx.kind == TransactionKind.DEPLOY:
                receipt = new_chain.deploy(tx.sender, tx.contract_cls, *tx.args, value=tx.value)
                replayed_hash, replayed_result = receipt.transaction_hash, receipt.result
            else:
                receipt = new_chain.transact(tx.sender, tx.to, tx.method, *tx.args, value=tx.value)
                replayed_hash, replayed_result = receipt.transaction_hash, receipt.result

            if replayed_hash != tx.transaction_hash or replayed_result != tx.result:
                raise ChainError(f"Replay diverged at transaction {tx.transaction_hash}")

        return new_chain

"""
base.py - Base class for contracts hosted on a Chain

A contract is a Python object bound to one address on one Chain. It:
    - declares persistent fields in STORAGE (snapshotted around every call)
    - declares events in EVENTS and publishes them with emit()
    - exposes external functions via custody.abi decorators
    - reaches other accounts only through the Chain (call_contract, send_value)

Contract functions receive a Message as their first argument and raise a
CustodyError subclass to revert.
"""

from __future__ import annotations
import copy
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from ..abi import EventSpec, FunctionSpec, Param, collect_functions, find_receive
from ..core import Address, ChainView, Message, Storage, UnknownFunction, Wei

if TYPE_CHECKING:
    from ..chain import Chain


class Contract:
    """
    Base class for contracts.

    Subclasses set:
        NAME: Contract name recorded in deployment artifacts
        STORAGE: Names of persistent attributes
        EVENTS: EventSpec tuple
        CONSTRUCTOR_INPUTS: Param tuple for constructor arguments
    """

    NAME = "Contract"
    STORAGE: Tuple[str, ...] = ()
    EVENTS: Tuple[EventSpec, ...] = ()
    CONSTRUCTOR_INPUTS: Tuple[Param, ...] = ()

    def __init__(self, chain: Chain, address: Address):
        self.chain = chain
        self.address = address

    def constructor(self, msg: Message, *args: Any) -> None:
        """Initialise storage. Runs once, inside the deployment transaction."""
        pass

    # ========================================================================
    # STORAGE
    # ========================================================================

    def snapshot_storage(self) -> Storage:
        return copy.deepcopy({name: getattr(self, name) for name in self.STORAGE})

    def restore_storage(self, storage: Storage) -> None:
        for name, value in storage.items():
            setattr(self, name, value)

    # ========================================================================
    # DISPATCH
    # ========================================================================

    @classmethod
    def functions(cls) -> Dict[str, Tuple[FunctionSpec, str]]:
        return collect_functions(cls)

    def resolve(self, method: str) -> Tuple[FunctionSpec, Callable]:
        """
        Look up an external function by ABI name.

        Raises:
            UnknownFunction: If the contract does not expose it.
        """
        entry = self.functions().get(method)
        if entry is None:
            raise UnknownFunction(f"{self.NAME} has no function {method}")
        spec, attr = entry
        return spec, getattr(self, attr)

    def receive_handler(self) -> Optional[Callable]:
        attr = find_receive(type(self))
        return getattr(self, attr) if attr else None

    @classmethod
    def event_spec(cls, name: str) -> EventSpec:
        for spec in cls.EVENTS:
            if spec.name == name:
                return spec
        raise KeyError(f"{cls.NAME} does not declare event {name}")

    # ========================================================================
    # ENVIRONMENT ACCESS
    # ========================================================================

    @property
    def view(self) -> ChainView:
        """Read-only access to the hosting chain."""
        return self.chain

    @property
    def balance(self) -> Wei:
        """Native value held at this contract's address."""
        return self.view.get_native_balance(self.address)

    def emit(self, name: str, *values: Any) -> None:
        spec = self.event_spec(name)
        if len(values) != len(spec.inputs):
            raise ValueError(f"{name} expects {len(spec.inputs)} values, got {len(values)}")
        self.chain.emit(self.address, spec, values)

    def call_contract(self, to: Address, method: str, *args: Any, value: Wei = 0) -> Any:
        """High-level call: a failure in the callee propagates to the caller."""
        return self.chain.invoke(self.address, to, method, *args, value=value)

    def send_value(self, to: Address, value: Wei) -> bool:
        """Low-level call with no data: returns False instead of raising."""
        return self.chain.send(self.address, to, value)

    def __repr__(self) -> str:
        return f"{self.NAME}({self.address})"

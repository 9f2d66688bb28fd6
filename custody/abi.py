"""
abi.py - Contract interface metadata

Contract classes describe their public surface with:
    - external(): decorator attaching a FunctionSpec to a method
    - receive: decorator marking the plain value-transfer handler
    - event(): EventSpec factory (the first two inputs are indexed)

contract_abi() renders that metadata as Solidity-compatible JSON ABI, which
is what the deployment artifact stores and what web3 clients consume.
Selectors and topics use the same keccak derivation as the EVM.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
)

from .core import to_address, validate_amount


PAYABLE = "payable"
NONPAYABLE = "nonpayable"
VIEW = "view"

# Number of leading event inputs marked indexed.
INDEXED_INPUTS = 2

SUPPORTED_TYPES = ("address", "uint256")


@dataclass(frozen=True, slots=True)
class Param:
    """A named, typed ABI input or output."""
    name: str
    type: str
    indexed: bool = False

    def __post_init__(self):
        if self.type not in SUPPORTED_TYPES:
            raise ValueError(f"Unsupported ABI type: {self.type}")

    def to_abi(self, with_indexed: bool = False) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"internalType": self.type, "name": self.name, "type": self.type}
        if with_indexed:
            entry["indexed"] = self.indexed
        return entry


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    """ABI description of an external function."""
    name: str
    inputs: Tuple[Param, ...] = ()
    outputs: Tuple[Param, ...] = ()
    mutability: str = NONPAYABLE

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(self.signature).hex()

    @property
    def payable(self) -> bool:
        return self.mutability == PAYABLE

    @property
    def is_view(self) -> bool:
        return self.mutability == VIEW

    def to_abi(self) -> Dict[str, Any]:
        return {
            "inputs": [p.to_abi() for p in self.inputs],
            "name": self.name,
            "outputs": [p.to_abi() for p in self.outputs],
            "stateMutability": self.mutability,
            "type": "function",
        }


@dataclass(frozen=True, slots=True)
class EventSpec:
    """ABI description of an event."""
    name: str
    inputs: Tuple[Param, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def topic(self) -> str:
        return "0x" + event_signature_to_log_topic(self.signature).hex()

    @property
    def input_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.inputs)

    def to_abi(self) -> Dict[str, Any]:
        return {
            "anonymous": False,
            "inputs": [p.to_abi(with_indexed=True) for p in self.inputs],
            "name": self.name,
            "type": "event",
        }


def event(name: str, *inputs: Tuple[str, str]) -> EventSpec:
    """Build an EventSpec whose first two inputs are indexed."""
    return EventSpec(
        name=name,
        inputs=tuple(
            Param(n, t, indexed=i < INDEXED_INPUTS) for i, (n, t) in enumerate(inputs)
        ),
    )


def external(
    name: str,
    inputs: Tuple[Tuple[str, str], ...] = (),
    outputs: Tuple[Tuple[str, str], ...] = (),
    mutability: str = NONPAYABLE,
) -> Callable:
    """
    Mark a contract method as an external ABI function.

    Example:
        @external("getUserBalance", inputs=(("user", "address"),),
                  outputs=(("", "uint256"),), mutability=VIEW)
        def get_user_balance(self, msg, user): ...
    """
    if mutability not in (PAYABLE, NONPAYABLE, VIEW):
        raise ValueError(f"Unknown state mutability: {mutability}")
    spec = FunctionSpec(
        name=name,
        inputs=tuple(Param(n, t) for n, t in inputs),
        outputs=tuple(Param(n, t) for n, t in outputs),
        mutability=mutability,
    )

    def decorator(fn: Callable) -> Callable:
        fn.__abi__ = spec
        return fn

    return decorator


def receive(fn: Callable) -> Callable:
    """Mark a contract method as the handler for plain value transfers."""
    fn.__abi_receive__ = True
    return fn


def collect_functions(cls: type) -> Dict[str, Tuple[FunctionSpec, str]]:
    """
    Map ABI function names to (spec, attribute name) for a contract class.

    Raises:
        ValueError: If two methods declare the same ABI name.
    """
    functions: Dict[str, Tuple[FunctionSpec, str]] = {}
    for attr in dir(cls):
        member = getattr(cls, attr, None)
        spec = getattr(member, "__abi__", None)
        if isinstance(spec, FunctionSpec):
            if spec.name in functions:
                raise ValueError(f"{cls.__name__} declares {spec.name} twice")
            functions[spec.name] = (spec, attr)
    return functions


def find_receive(cls: type) -> Optional[str]:
    """Return the attribute name of the receive handler, if any."""
    for attr in dir(cls):
        member = getattr(cls, attr, None)
        if getattr(member, "__abi_receive__", False):
            return attr
    return None


def coerce_args(inputs: Tuple[Param, ...], args: Tuple[Any, ...], name: str = "") -> Tuple[Any, ...]:
    """
    Validate positional arguments against ABI inputs.

    Addresses are normalised to checksum form; uint256 values must be ints
    in range. This mirrors ABI encoding, so it fails before execution.

    Raises:
        ValueError: On arity or type mismatch.
    """
    if len(args) != len(inputs):
        raise ValueError(f"{name or 'call'} expects {len(inputs)} arguments, got {len(args)}")
    coerced = []
    for p, value in zip(inputs, args):
        if p.type == "address":
            coerced.append(to_address(value))
        else:
            coerced.append(validate_amount(value, p.name or "value"))
    return tuple(coerced)


def contract_abi(cls: type) -> List[Dict[str, Any]]:
    """
    Render the JSON ABI for a contract class.

    Order: constructor, functions (by name), receive, events (by name).
    """
    abi: List[Dict[str, Any]] = []
    constructor_inputs = getattr(cls, "CONSTRUCTOR_INPUTS", ())
    abi.append({
        "inputs": [p.to_abi() for p in constructor_inputs],
        "stateMutability": NONPAYABLE,
        "type": "constructor",
    })
    for _, (spec, _) in sorted(collect_functions(cls).items()):
        abi.append(spec.to_abi())
    if find_receive(cls):
        abi.append({"stateMutability": PAYABLE, "type": "receive"})
    for spec in sorted(getattr(cls, "EVENTS", ()), key=lambda e: e.name):
        abi.append(spec.to_abi())
    return abi

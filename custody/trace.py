"""
trace.py - Internal transaction inspection

Internal transactions are the message calls a transaction makes from one
contract to another (the relay's forwarded deposit, the ledger's probe
call, a payout). Three sources are supported:

    internal_calls(receipt)          simulated Chain receipts
    parse_trace_transaction(result)  Parity/OpenEthereum trace_transaction
    count_call_opcodes(result)       Geth debug_traceTransaction structLogs

Geth struct logs only expose opcodes, so that path yields a count rather
than decoded calls.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from eth_utils import to_checksum_address

from .core import Address, Receipt, Wei


CALL_OPCODES = ("CALL", "CALLCODE", "DELEGATECALL", "STATICCALL")


@dataclass(frozen=True, slots=True)
class InternalCall:
    """A contract-initiated message call."""
    sender: Address
    to: Address
    value: Wei
    call_type: str
    input: str
    depth: int
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def internal_calls(receipt: Receipt) -> List[InternalCall]:
    """Calls below the top-level call of a simulated transaction."""
    return [
        InternalCall(
            sender=t.sender,
            to=t.to,
            value=t.value,
            call_type=t.call_type,
            input=t.selector,
            depth=t.depth,
            error=t.error,
        )
        for t in receipt.traces
        if t.depth > 0
    ]


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16) if str(value).startswith("0x") else int(value)


def parse_trace_transaction(result: Iterable[Dict[str, Any]]) -> List[InternalCall]:
    """
    Decode trace_transaction output.

    Only entries of type "call" are kept. The root entry (empty
    traceAddress) is the transaction itself and is skipped.

    Raises:
        ValueError: If the result is not a list of trace entries
    """
    if not isinstance(result, list):
        raise ValueError(f"trace_transaction result is not a list: {result!r}")

    calls = []
    for entry in result:
        if entry.get("type") != "call":
            continue
        trace_address = entry.get("traceAddress")
        if trace_address is not None and len(trace_address) == 0:
            continue
        action = entry.get("action") or {}
        calls.append(InternalCall(
            sender=to_checksum_address(action["from"]),
            to=to_checksum_address(action["to"]),
            value=_to_int(action.get("value")),
            call_type=action.get("callType", "call"),
            input=action.get("input") or "0x",
            depth=len(trace_address or ()),
            error=entry.get("error"),
        ))
    return calls


def count_call_opcodes(debug_trace: Dict[str, Any]) -> int:
    """Count CALL-family opcodes in debug_traceTransaction struct logs."""
    struct_logs = (debug_trace or {}).get("structLogs")
    if not isinstance(struct_logs, list):
        raise ValueError("debug_traceTransaction result has no structLogs")
    return sum(1 for log in struct_logs if log.get("op") in CALL_OPCODES)


def format_internal_calls(calls: List[InternalCall]) -> List[str]:
    """Render calls for console output."""
    if not calls:
        return ['No internal "call" traces found.']
    lines = [f"Internal CALL traces ({len(calls)}):"]
    for i, call in enumerate(calls, start=1):
        data = call.input if len(call.input) <= 20 else call.input[:20] + "..."
        lines.append(f"#{i}")
        lines.append(f"  From:     {call.sender}")
        lines.append(f"  To:       {call.to}")
        lines.append(f"  Value:    {call.value}")
        lines.append(f"  CallType: {call.call_type}")
        lines.append(f"  Input:    {data}")
        if call.error:
            lines.append(f"  Error:    {call.error}")
    return lines

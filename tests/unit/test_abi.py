"""
Tests for abi.py - contract interface metadata

Tests:
- Function selectors and event topics match the EVM derivation
- contract_abi() output for both custody contracts
- Argument coercion
"""

import pytest

from custody import ReceiverContract, ContractCaller, contract_abi
from custody.abi import (
    PAYABLE, VIEW, NONPAYABLE,
    Param, FunctionSpec, event, coerce_args, collect_functions, find_receive,
)


class TestSpecs:
    """Tests for FunctionSpec and EventSpec."""

    def test_known_selectors(self):
        assert FunctionSpec("deposit", mutability=PAYABLE).selector == "0xd0e30db0"
        assert FunctionSpec("getBalance", mutability=VIEW).selector == "0x12065fe0"

    def test_event_signature_and_indexing(self):
        spec = event("InternalTransferExecuted", ("from", "address"), ("to", "address"), ("amount", "uint256"))
        assert spec.signature == "InternalTransferExecuted(address,address,uint256)"
        assert [p.indexed for p in spec.inputs] == [True, True, False]
        assert spec.topic.startswith("0x") and len(spec.topic) == 66

    def test_unsupported_type_rejected(self):
        with pytest.raises(ValueError):
            Param("flag", "bool")


class TestContractAbi:
    """Tests for contract_abi()."""

    def test_receiver_surface(self):
        abi = contract_abi(ReceiverContract)
        functions = {e["name"]: e for e in abi if e["type"] == "function"}

        assert set(functions) == {
            "deposit", "internalTransfer", "transferWithValue", "getBalance",
            "getUserBalance", "withdraw", "owner", "totalReceived",
        }
        assert functions["deposit"]["stateMutability"] == PAYABLE
        assert functions["transferWithValue"]["stateMutability"] == PAYABLE
        assert functions["withdraw"]["stateMutability"] == NONPAYABLE
        assert functions["getUserBalance"]["stateMutability"] == VIEW
        assert [i["type"] for i in functions["internalTransfer"]["inputs"]] == ["address", "uint256"]
        assert any(e["type"] == "receive" for e in abi)

    def test_receiver_events(self):
        events = {e["name"]: e for e in contract_abi(ReceiverContract) if e["type"] == "event"}
        assert set(events) == {"FundsReceived", "BalanceUpdated", "InternalTransferExecuted"}
        assert [i["indexed"] for i in events["BalanceUpdated"]["inputs"]] == [True, True]

    def test_caller_surface(self):
        abi = contract_abi(ContractCaller)
        assert abi[0] == {
            "inputs": [{"internalType": "address", "name": "receiverAddress", "type": "address"}],
            "stateMutability": NONPAYABLE,
            "type": "constructor",
        }
        names = [e["name"] for e in abi if e["type"] == "function"]
        assert names == sorted(["callReceiver", "getReceiverBalance", "receiver",
                                "transferCount", "triggerInternalTransfer"])
        events = [e["name"] for e in abi if e["type"] == "event"]
        assert events == ["ContractCallMade", "InternalTransfer"]

    def test_function_lookup(self):
        functions = collect_functions(ReceiverContract)
        spec, attr = functions["internalTransfer"]
        assert attr == "internal_transfer"
        assert spec.signature == "internalTransfer(address,uint256)"
        assert find_receive(ReceiverContract) == "receive"


class TestCoerceArgs:
    """Tests for coerce_args()."""

    INPUTS = (Param("recipient", "address"), Param("amount", "uint256"))

    def test_checksums_addresses(self):
        recipient, amount = coerce_args(self.INPUTS, ("0x" + "ab" * 20, 5))
        assert recipient.lower() == "0x" + "ab" * 20
        assert amount == 5

    def test_arity(self):
        with pytest.raises(ValueError, match="expects 2 arguments"):
            coerce_args(self.INPUTS, ("0x" + "ab" * 20,))

    def test_types(self):
        with pytest.raises(ValueError):
            coerce_args(self.INPUTS, (5, "0x" + "ab" * 20))

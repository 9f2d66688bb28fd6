"""
Tests for driver/client.py - Web3Driver against a mocked node

Tests:
- Deployment with consecutive nonces and receiver wiring
- callReceiver / triggerInternalTransfer transaction building
- Gas estimation fallback
- Failed and reverted transactions
- Internal transaction inspection fallbacks
"""

from unittest.mock import MagicMock

import pytest

from custody import (
    ContractCaller, ReceiverContract, contract_abi,
    CompiledArtifact, DeploymentInfo, DeploymentRecord,
    ConfigurationError, OperationFailed, GWEI,
)
from custody.driver import DriverSettings, Web3Driver


# Hardhat / Anvil default account #0
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
RECEIVER = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CALLER = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
TX_HASH = b"\x11" * 32


def mined(status=1, contract_address=None, block=5):
    return {
        "status": status,
        "transactionHash": TX_HASH,
        "blockNumber": block,
        "gasUsed": 21_000,
        "contractAddress": contract_address,
    }


@pytest.fixture
def settings():
    return DriverSettings(
        rpc_url="http://127.0.0.1:8545",
        private_key=PRIVATE_KEY,
        network_name="hardhat",
        _env_file=None,
    )


@pytest.fixture
def web3():
    w3 = MagicMock()
    w3.eth.chain_id = 31337
    w3.eth.gas_price = 1 * GWEI
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = mined()
    return w3


@pytest.fixture
def driver(settings, web3):
    d = Web3Driver(settings, web3=web3)
    d._account = MagicMock(address=DEPLOYER)
    d._account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x02signed")
    return d


@pytest.fixture
def deployment():
    return DeploymentInfo(
        network="hardhat",
        rpc_url="http://127.0.0.1:8545",
        deployer=DEPLOYER,
        receiver=DeploymentRecord("ReceiverContract", RECEIVER, contract_abi(ReceiverContract), "0x01", 1),
        caller=DeploymentRecord("ContractCaller", CALLER, contract_abi(ContractCaller), "0x02", 2),
        timestamp="2025-01-01T00:00:00+00:00",
    )


def contract_function(web3, name):
    fn = getattr(web3.eth.contract.return_value.functions, name).return_value
    fn.estimate_gas.return_value = 50_000
    fn.build_transaction.side_effect = lambda params: dict(params)
    return fn


class TestAccount:
    """Tests for lazy connection and signer."""

    def test_account_from_private_key(self, settings, web3):
        assert Web3Driver(settings, web3=web3).account.address == DEPLOYER

    def test_missing_key(self, web3):
        driver = Web3Driver(DriverSettings(rpc_url="http://x", _env_file=None), web3=web3)
        with pytest.raises(ConfigurationError, match="PRIVATE_KEY"):
            driver.account

    def test_missing_rpc_url(self):
        driver = Web3Driver(DriverSettings(private_key=PRIVATE_KEY, _env_file=None))
        with pytest.raises(ConfigurationError, match="RPC_URL"):
            driver.web3


class TestDeploy:
    """Tests for Web3Driver.deploy()."""

    def test_deploys_pair_with_consecutive_nonces(self, driver, web3):
        factory = web3.eth.contract.return_value
        constructor = factory.constructor.return_value
        constructor.estimate_gas.return_value = 400_000
        constructor.build_transaction.side_effect = lambda params: dict(params)
        web3.eth.wait_for_transaction_receipt.side_effect = [
            mined(contract_address=RECEIVER.lower(), block=1),
            mined(contract_address=CALLER.lower(), block=2),
        ]

        info = driver.deploy(
            CompiledArtifact("ReceiverContract", contract_abi(ReceiverContract), "0x6080"),
            CompiledArtifact("ContractCaller", contract_abi(ContractCaller), "0x6081"),
        )

        assert (info.receiver.address, info.caller.address) == (RECEIVER, CALLER)
        assert (info.receiver.block_number, info.caller.block_number) == (1, 2)
        assert info.network == "hardhat"
        assert info.deployer == DEPLOYER

        web3.eth.get_transaction_count.assert_called_once_with(DEPLOYER, "pending")
        nonces = [c.args[0]["nonce"] for c in constructor.build_transaction.call_args_list]
        assert nonces == [7, 8]
        # The caller is constructed with the receiver's address
        assert factory.constructor.call_args_list[1].args == (RECEIVER,)
        assert web3.eth.contract.call_args_list[1].kwargs["bytecode"] == "0x6081"

    def test_deploy_estimation_fallback(self, driver, web3, settings):
        constructor = web3.eth.contract.return_value.constructor.return_value
        constructor.estimate_gas.side_effect = ValueError("execution reverted")
        constructor.build_transaction.side_effect = lambda params: dict(params)
        web3.eth.wait_for_transaction_receipt.return_value = mined(contract_address=RECEIVER)

        driver.deploy(
            CompiledArtifact("ReceiverContract", [], "0x6080"),
            CompiledArtifact("ContractCaller", [], "0x6081"),
        )
        gas = {c.args[0]["gas"] for c in constructor.build_transaction.call_args_list}
        assert gas == {settings.deploy_gas_limit}


class TestOperations:
    """Tests for state-changing calls."""

    def test_call_receiver_defaults_to_configured_value(self, driver, web3, deployment):
        fn = contract_function(web3, "callReceiver")

        receipt = driver.call_receiver(deployment)

        assert receipt["status"] == 1
        tx = fn.build_transaction.call_args.args[0]
        assert tx["value"] == 125 * GWEI
        assert (tx["from"], tx["nonce"], tx["chainId"], tx["gas"]) == (DEPLOYER, 7, 31337, 50_000)
        web3.eth.contract.assert_called_with(address=CALLER, abi=deployment.caller.abi)
        web3.eth.send_raw_transaction.assert_called_once_with(b"\x02signed")

    def test_call_receiver_explicit_value(self, driver, web3, deployment):
        fn = contract_function(web3, "callReceiver")
        driver.call_receiver(deployment, 3)
        assert fn.build_transaction.call_args.args[0]["value"] == 3

    def test_gas_estimation_fallback(self, driver, web3, deployment, settings):
        fn = contract_function(web3, "callReceiver")
        fn.estimate_gas.side_effect = ValueError("boom")

        driver.call_receiver(deployment)
        assert fn.build_transaction.call_args.args[0]["gas"] == settings.gas_limit

    def test_trigger_internal_transfer(self, driver, web3, deployment):
        contract_function(web3, "triggerInternalTransfer")
        driver.trigger_internal_transfer(deployment, RECEIVER.lower(), 40)

        functions = web3.eth.contract.return_value.functions
        functions.triggerInternalTransfer.assert_called_once_with(RECEIVER, 40)

    def test_reverted_receipt_raises(self, driver, web3, deployment):
        contract_function(web3, "callReceiver")
        web3.eth.wait_for_transaction_receipt.return_value = mined(status=0)

        with pytest.raises(OperationFailed, match="reverted"):
            driver.call_receiver(deployment)

    def test_signed_transaction_from_older_eth_account(self, driver, web3, deployment):
        contract_function(web3, "callReceiver")
        signed = MagicMock(spec=["rawTransaction"])
        signed.rawTransaction = b"\x02legacy"
        driver._account.sign_transaction.return_value = signed

        driver.call_receiver(deployment)
        web3.eth.send_raw_transaction.assert_called_once_with(b"\x02legacy")

    def test_send_failure_raises(self, driver, web3, deployment):
        contract_function(web3, "callReceiver")
        web3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(OperationFailed, match="nonce too low"):
            driver.call_receiver(deployment)

    def test_reads(self, driver, web3, deployment):
        functions = web3.eth.contract.return_value.functions
        functions.getReceiverBalance.return_value.call.return_value = 125
        functions.getUserBalance.return_value.call.return_value = 40

        assert driver.get_receiver_balance(deployment) == 125
        assert driver.get_user_balance(deployment, CALLER.lower()) == 40
        functions.getUserBalance.assert_called_once_with(CALLER)


class TestInspect:
    """Tests for inspect_internal_transactions()."""

    TRACE = [
        {"type": "call", "traceAddress": [],
         "action": {"from": DEPLOYER, "to": CALLER, "value": "0x7d", "input": "0x"}},
        {"type": "call", "traceAddress": [0],
         "action": {"from": CALLER, "to": RECEIVER, "value": "0x7d",
                    "callType": "call", "input": "0xd0e30db0"}},
    ]

    def test_trace_transaction(self, driver, web3):
        web3.provider.make_request.return_value = {"result": self.TRACE}

        report = driver.inspect_internal_transactions("0xabc")

        assert report["method"] == "trace_transaction"
        assert [(c.sender, c.to, c.value) for c in report["calls"]] == [(CALLER, RECEIVER, 125)]
        web3.provider.make_request.assert_called_once_with("trace_transaction", ["0xabc"])

    def test_falls_back_to_debug_trace(self, driver, web3):
        responses = {
            "trace_transaction": {"error": {"code": -32601, "message": "method not found"}},
            "debug_traceTransaction": {"result": {"structLogs": [{"op": "CALL"}, {"op": "SSTORE"}]}},
        }
        web3.provider.make_request.side_effect = lambda method, params: responses[method]

        report = driver.inspect_internal_transactions("0xabc")

        assert report["method"] == "debug_traceTransaction"
        assert report["call_opcodes"] == 1
        assert report["calls"] == []

    def test_no_trace_support(self, driver, web3):
        web3.provider.make_request.return_value = {"error": {"message": "method not found"}}

        report = driver.inspect_internal_transactions("0xabc")
        assert report == {"method": None, "calls": [], "call_opcodes": None}

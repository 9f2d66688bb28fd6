"""Web3 driver for a deployed ReceiverContract / ContractCaller pair.

Signs locally with the configured private key and talks to any JSON-RPC
node. Each operation waits for its receipt; a receipt with status 0 raises
OperationFailed.
"""

import logging
from typing import Any, Callable, Dict, Optional

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception

from ..core import Address, OperationFailed, Wei
from ..deployment import CompiledArtifact, DeploymentInfo, DeploymentRecord
from ..trace import count_call_opcodes, format_internal_calls, parse_trace_transaction
from .config import DriverSettings

logger = logging.getLogger(__name__)


class Web3Driver:
    """Deploy and operate the contract pair through a JSON-RPC node."""

    def __init__(self, settings: DriverSettings, web3: Optional[Web3] = None):
        self.settings = settings
        self._web3 = web3
        self._account = None

    @property
    def web3(self) -> Web3:
        """Lazily connect to RPC_URL."""
        if self._web3 is None:
            self.settings.require("rpc_url")
            self._web3 = Web3(Web3.HTTPProvider(self.settings.rpc_url))
        return self._web3

    @property
    def account(self):
        """Signing account derived from PRIVATE_KEY."""
        if self._account is None:
            self.settings.require("private_key")
            self._account = Account.from_key(self.settings.private_key)
        return self._account

    # ======================
    # Deployment
    # ======================

    def deploy(self, receiver_artifact: CompiledArtifact, caller_artifact: CompiledArtifact) -> DeploymentInfo:
        """Deploy the Receiver, then the Caller pointing at it.

        Both transactions use consecutive nonces taken from the pending
        transaction count.

        Returns:
            DeploymentInfo ready to be saved as the handoff file
        """
        self.settings.require("rpc_url", "private_key")
        deployer = self.account.address
        nonce = self.web3.eth.get_transaction_count(deployer, "pending")
        logger.info(f"Deploying from {deployer} on {self.settings.network_name} (nonce {nonce})")

        receiver = self._deploy_contract(receiver_artifact, nonce)
        caller = self._deploy_contract(caller_artifact, nonce + 1, receiver.address)

        return DeploymentInfo(
            network=self.settings.network_name,
            rpc_url=self.settings.rpc_url,
            deployer=deployer,
            receiver=receiver,
            caller=caller,
            timestamp=DeploymentInfo.now(),
        )

    def _deploy_contract(self, artifact: CompiledArtifact, nonce: int, *args: Any) -> DeploymentRecord:
        factory = self.web3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
        constructor = factory.constructor(*args)
        sender = self.account.address
        label = f"{artifact.contract_name} deployment"

        gas = self._estimate_gas(
            lambda: constructor.estimate_gas({"from": sender}),
            self.settings.deploy_gas_limit,
            label,
        )
        tx = constructor.build_transaction({
            "from": sender,
            "nonce": nonce,
            "chainId": self.web3.eth.chain_id,
            "gas": gas,
            "gasPrice": self.web3.eth.gas_price,
        })
        receipt = self._send(tx, label)
        address = to_checksum_address(receipt["contractAddress"])
        logger.info(f"{artifact.contract_name} deployed at {address}")
        return DeploymentRecord(
            contract_name=artifact.contract_name,
            address=address,
            abi=artifact.abi,
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
        )

    # ======================
    # Operations
    # ======================

    def call_receiver(self, deployment: DeploymentInfo, value_wei: Optional[Wei] = None) -> Dict[str, Any]:
        """Send value through the relay into the ledger (callReceiver)."""
        value = self.settings.call_value_wei if value_wei is None else value_wei
        caller = self._contract(deployment.caller)
        logger.info(f"Calling callReceiver on {deployment.caller.address} with {value} wei")
        return self._transact(caller.functions.callReceiver(), "callReceiver", value=value)

    def trigger_internal_transfer(self, deployment: DeploymentInfo, recipient: Address, amount: Wei) -> Dict[str, Any]:
        """Move part of the relay's ledger balance to recipient."""
        caller = self._contract(deployment.caller)
        recipient = to_checksum_address(recipient)
        logger.info(f"Triggering internal transfer of {amount} to {recipient}")
        return self._transact(
            caller.functions.triggerInternalTransfer(recipient, amount),
            "triggerInternalTransfer",
        )

    def get_receiver_balance(self, deployment: DeploymentInfo) -> Wei:
        """Pool size of the ledger, read through the relay."""
        return self._contract(deployment.caller).functions.getReceiverBalance().call()

    def get_user_balance(self, deployment: DeploymentInfo, user: Address) -> Wei:
        receiver = self._contract(deployment.receiver)
        return receiver.functions.getUserBalance(to_checksum_address(user)).call()

    # ======================
    # Internal transactions
    # ======================

    def inspect_internal_transactions(self, tx_hash: str) -> Dict[str, Any]:
        """List the internal calls of a mined transaction.

        Tries trace_transaction first, then falls back to counting CALL
        opcodes in debug_traceTransaction.

        Returns:
            Dict with keys:
            - 'method': RPC method that answered, or None
            - 'calls': decoded InternalCall list (trace_transaction only)
            - 'call_opcodes': opcode count (debug_traceTransaction only)
        """
        report: Dict[str, Any] = {"method": None, "calls": [], "call_opcodes": None}

        try:
            calls = parse_trace_transaction(self._rpc("trace_transaction", [tx_hash]))
        except Exception as e:
            logger.warning(f"trace_transaction not available or failed: {e}")
        else:
            report.update(method="trace_transaction", calls=calls)
            for line in format_internal_calls(calls):
                logger.info(line)
            return report

        try:
            count = count_call_opcodes(self._rpc("debug_traceTransaction", [tx_hash, {}]))
        except Exception as e:
            logger.warning(f"debug_traceTransaction not available or failed: {e}")
            logger.error(
                "Could not retrieve internal transaction traces from this RPC node. "
                "Make sure it exposes the trace or debug API."
            )
            return report

        report.update(method="debug_traceTransaction", call_opcodes=count)
        logger.info(f"Found {count} EVM CALL-like opcodes in structLogs")
        return report

    # ======================
    # Helpers
    # ======================

    def _contract(self, record: DeploymentRecord):
        return self.web3.eth.contract(address=record.address, abi=record.abi)

    def _rpc(self, method: str, params: list) -> Any:
        response = self.web3.provider.make_request(method, params)
        if response.get("error"):
            raise OperationFailed(f"{method} failed: {response['error']}")
        return response.get("result")

    def _estimate_gas(self, estimate: Callable[[], int], fallback: int, label: str) -> int:
        try:
            return int(estimate())
        except Exception as e:
            logger.warning(f"Gas estimation for {label} failed ({e}); using {fallback}")
            return fallback

    def _transact(self, fn, label: str, value: Wei = 0) -> Dict[str, Any]:
        sender = self.account.address
        params = {"from": sender, "value": value}
        gas = self._estimate_gas(lambda: fn.estimate_gas(params), self.settings.gas_limit, label)
        tx = fn.build_transaction({
            **params,
            "nonce": self.web3.eth.get_transaction_count(sender, "pending"),
            "chainId": self.web3.eth.chain_id,
            "gas": gas,
            "gasPrice": self.web3.eth.gas_price,
        })
        return self._send(tx, label)

    def _send(self, tx: Dict[str, Any], label: str) -> Dict[str, Any]:
        """Sign, broadcast and wait for the receipt."""
        signed_tx = self.account.sign_transaction(tx)
        # eth-account >= 0.13 (web3 7) names it raw_transaction; web3 6 pins older eth-account with rawTransaction
        raw_tx = getattr(signed_tx, "raw_transaction", None) or signed_tx.rawTransaction
        try:
            tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
            logger.info(f"{label} sent: {Web3.to_hex(tx_hash)}")
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)
        except (Web3Exception, ValueError) as e:
            raise OperationFailed(f"{label} failed: {e}") from e

        if receipt["status"] != 1:
            raise OperationFailed(f"{label} reverted in transaction {Web3.to_hex(receipt['transactionHash'])}")
        logger.info(f"{label} mined in block {receipt['blockNumber']} (gas used {receipt.get('gasUsed')})")
        return receipt

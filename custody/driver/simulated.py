"""In-process driver: the Web3Driver operation set against a local Chain."""

import logging
from typing import Any, Dict, Optional

from ..abi import contract_abi
from ..chain import Chain
from ..contracts import ContractCaller, ReceiverContract
from ..core import ETHER, GWEI, Address, ChainError, OperationFailed, Receipt, Wei
from ..deployment import DeploymentInfo, DeploymentRecord
from ..trace import format_internal_calls, internal_calls

logger = logging.getLogger(__name__)

DEFAULT_CALL_VALUE = 125 * GWEI


class SimulatedDriver:
    """Deploy and operate the contract pair on an in-process Chain.

    Args:
        chain: Chain to use (default: a fresh, quiet "simulated" chain)
        deployer: Registered, funded account (default: a new account
            funded with 100 ether)
    """

    def __init__(self, chain: Optional[Chain] = None, deployer: Optional[Address] = None):
        self.chain = chain if chain is not None else Chain("simulated", verbose=False)
        if deployer is None:
            deployer = self.chain.create_account("deployer")
            self.chain.fund(deployer, 100 * ETHER)
        self.deployer = deployer

    def deploy(self) -> DeploymentInfo:
        receiver = self._deploy_contract(ReceiverContract)
        caller = self._deploy_contract(ContractCaller, receiver.address)
        return DeploymentInfo(
            network=self.chain.name,
            rpc_url="in-process",
            deployer=self.deployer,
            receiver=receiver,
            caller=caller,
            timestamp=DeploymentInfo.now(),
        )

    def _deploy_contract(self, contract_cls, *args: Any) -> DeploymentRecord:
        label = f"{contract_cls.NAME} deployment"
        receipt = self._submit(label, self.chain.deploy, self.deployer, contract_cls, *args)
        logger.info(f"{contract_cls.NAME} deployed at {receipt.contract_address}")
        return DeploymentRecord(
            contract_name=contract_cls.NAME,
            address=receipt.contract_address,
            abi=contract_abi(contract_cls),
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
        )

    def call_receiver(self, deployment: DeploymentInfo, value_wei: Wei = DEFAULT_CALL_VALUE,
                      sender: Optional[Address] = None) -> Receipt:
        return self._submit(
            "callReceiver", self.chain.transact,
            sender or self.deployer, deployment.caller.address, "callReceiver", value=value_wei,
        )

    def trigger_internal_transfer(self, deployment: DeploymentInfo, recipient: Address, amount: Wei,
                                  sender: Optional[Address] = None) -> Receipt:
        return self._submit(
            "triggerInternalTransfer", self.chain.transact,
            sender or self.deployer, deployment.caller.address, "triggerInternalTransfer", recipient, amount,
        )

    def get_receiver_balance(self, deployment: DeploymentInfo) -> Wei:
        return self.chain.call(deployment.caller.address, "getReceiverBalance")

    def get_user_balance(self, deployment: DeploymentInfo, user: Address) -> Wei:
        return self.chain.call(deployment.receiver.address, "getUserBalance", user)

    def inspect_internal_transactions(self, tx_hash: str) -> Dict[str, Any]:
        """Same report shape as Web3Driver.inspect_internal_transactions."""
        calls = internal_calls(self.chain.get_receipt(tx_hash))
        for line in format_internal_calls(calls):
            logger.info(line)
        return {"method": "simulated", "calls": calls, "call_opcodes": None}

    def _submit(self, label: str, submit, *args: Any, **kwargs: Any) -> Receipt:
        """Run a chain submission; rejections and reverts raise OperationFailed."""
        try:
            receipt = submit(*args, **kwargs)
        except ChainError as e:
            raise OperationFailed(f"{label} rejected: {e}") from e
        if not receipt.succeeded:
            raise OperationFailed(
                f"{label} reverted in transaction {receipt.transaction_hash}: {receipt.revert_reason}"
            )
        return receipt

#!/usr/bin/env python3
"""Command-line driver for the custody contracts.

Usage:
    custody-driver deploy --receiver-artifact build/ReceiverContract.json \\
                          --caller-artifact build/ContractCaller.json
    custody-driver call-receiver [--value-gwei 125] [--no-trace]
    custody-driver trigger-transfer 0xRecipient 1000
    custody-driver balance [--user 0xAccount]
    custody-driver simulate

Every subcommand except simulate needs RPC_URL and PRIVATE_KEY, read from
the environment or a .env file.
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from web3 import Web3
from web3.exceptions import Web3Exception

from ..core import GWEI, ChainError, ConfigurationError, DriverError
from ..deployment import CompiledArtifact, DeploymentInfo
from .client import Web3Driver
from .config import DriverSettings, get_settings
from .simulated import SimulatedDriver

logger = logging.getLogger(__name__)


def cmd_deploy(args: argparse.Namespace, settings: DriverSettings) -> int:
    settings.require("rpc_url", "private_key")
    receiver_artifact = CompiledArtifact.load(args.receiver_artifact)
    caller_artifact = CompiledArtifact.load(args.caller_artifact)

    deployment = Web3Driver(settings).deploy(receiver_artifact, caller_artifact)
    path = deployment.save(args.deployment or settings.deployment_path)

    logger.info("=" * 60)
    logger.info(f"ReceiverContract: {deployment.receiver.address}")
    logger.info(f"ContractCaller:   {deployment.caller.address}")
    logger.info(f"Deployment info written to {path}")
    return 0


def cmd_call_receiver(args: argparse.Namespace, settings: DriverSettings) -> int:
    settings.require("rpc_url", "private_key")
    deployment = DeploymentInfo.load(args.deployment or settings.deployment_path)
    driver = Web3Driver(settings)

    value_wei = args.value_gwei * GWEI if args.value_gwei is not None else None
    receipt = driver.call_receiver(deployment, value_wei)
    tx_hash = Web3.to_hex(receipt["transactionHash"])
    logger.info(f"callReceiver succeeded: {tx_hash}")

    if not args.no_trace:
        driver.inspect_internal_transactions(tx_hash)
    return 0


def cmd_trigger_transfer(args: argparse.Namespace, settings: DriverSettings) -> int:
    settings.require("rpc_url", "private_key")
    deployment = DeploymentInfo.load(args.deployment or settings.deployment_path)
    receipt = Web3Driver(settings).trigger_internal_transfer(deployment, args.recipient, args.amount)
    logger.info(f"triggerInternalTransfer succeeded in block {receipt['blockNumber']}")
    return 0


def cmd_balance(args: argparse.Namespace, settings: DriverSettings) -> int:
    settings.require("rpc_url")
    deployment = DeploymentInfo.load(args.deployment or settings.deployment_path)
    driver = Web3Driver(settings)
    logger.info(f"Receiver pool: {driver.get_receiver_balance(deployment)} wei")
    if args.user:
        logger.info(f"Ledger balance of {args.user}: {driver.get_user_balance(deployment, args.user)} wei")
    return 0


def cmd_simulate(args: argparse.Namespace, settings: DriverSettings) -> int:
    """Deploy and exercise the pair on an in-process chain."""
    driver = SimulatedDriver()
    deployment = driver.deploy()
    value_wei = (args.value_gwei if args.value_gwei is not None else settings.call_value_gwei) * GWEI

    receipt = driver.call_receiver(deployment, value_wei)
    logger.info(f"callReceiver succeeded: {receipt.transaction_hash}")
    driver.inspect_internal_transactions(receipt.transaction_hash)

    relay = deployment.caller.address
    logger.info(f"Receiver pool:          {driver.get_receiver_balance(deployment)} wei")
    logger.info(f"Relay ledger balance:   {driver.get_user_balance(deployment, relay)} wei")

    recipient = driver.chain.create_account("recipient")
    driver.trigger_internal_transfer(deployment, recipient, value_wei // 2)
    logger.info(f"Recipient ledger balance: {driver.get_user_balance(deployment, recipient)} wei")
    logger.info(f"Relay ledger balance:     {driver.get_user_balance(deployment, relay)} wei")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="custody-driver", description="Custody contract driver")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--deployment", type=str, help="Deployment info file (default: DEPLOYMENT_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Deploy ReceiverContract and ContractCaller")
    deploy.add_argument("--receiver-artifact", required=True, help="Compiled ReceiverContract JSON")
    deploy.add_argument("--caller-artifact", required=True, help="Compiled ContractCaller JSON")
    deploy.set_defaults(handler=cmd_deploy)

    call = sub.add_parser("call-receiver", help="Send value through the relay")
    call.add_argument("--value-gwei", type=int, help="Value to send (default: CALL_VALUE_GWEI)")
    call.add_argument("--no-trace", action="store_true", help="Skip internal transaction inspection")
    call.set_defaults(handler=cmd_call_receiver)

    transfer = sub.add_parser("trigger-transfer", help="Move the relay's ledger balance")
    transfer.add_argument("recipient", help="Recipient address")
    transfer.add_argument("amount", type=int, help="Amount in wei")
    transfer.set_defaults(handler=cmd_trigger_transfer)

    balance = sub.add_parser("balance", help="Show the receiver's pool")
    balance.add_argument("--user", help="Also show this account's ledger balance")
    balance.set_defaults(handler=cmd_balance)

    simulate = sub.add_parser("simulate", help="Run the full flow on an in-process chain")
    simulate.add_argument("--value-gwei", type=int, help="Value to send (default: CALL_VALUE_GWEI)")
    simulate.set_defaults(handler=cmd_simulate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return args.handler(args, get_settings())
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except (DriverError, ChainError) as e:
        logger.error(f"Operation failed: {e}")
        return 1
    except (Web3Exception, ValueError, OSError) as e:
        logger.error(f"Operation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

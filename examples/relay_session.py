"""
Example: A relay session through the driver API.

Deploys the contract pair on an in-process chain, writes the deployment
handoff file, reloads it and drives the same operations a JSON-RPC node
would receive from custody-driver.
"""

import logging
import tempfile
from pathlib import Path

from custody import DeploymentInfo, GWEI
from custody.driver import SimulatedDriver


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s - %(levelname)s - %(message)s")

    print("=" * 80)
    print("RELAY SESSION - Driver Example")
    print("=" * 80)
    print()

    driver = SimulatedDriver()
    deployment = driver.deploy()

    with tempfile.TemporaryDirectory() as workdir:
        path = deployment.save(Path(workdir) / "deployment_info.json")
        print(f"Handoff file written to {path}")
        deployment = DeploymentInfo.load(path)

    print()
    print("Step 1: Forward 125 gwei through the relay")
    print("-" * 80)
    receipt = driver.call_receiver(deployment, 125 * GWEI)
    driver.inspect_internal_transactions(receipt.transaction_hash)

    relay = deployment.caller.address
    print(f"Receiver pool:        {driver.get_receiver_balance(deployment) / GWEI:,.0f} gwei")
    print(f"Relay ledger balance: {driver.get_user_balance(deployment, relay) / GWEI:,.0f} gwei")
    print()

    print("Step 2: Move 100 gwei of the relay's balance to a recipient")
    print("-" * 80)
    recipient = driver.chain.create_account("recipient")
    driver.trigger_internal_transfer(deployment, recipient, 100 * GWEI)
    print(f"Recipient ledger balance: {driver.get_user_balance(deployment, recipient) / GWEI:,.0f} gwei")
    print(f"Relay ledger balance:     {driver.get_user_balance(deployment, relay) / GWEI:,.0f} gwei")
    print()

    report = driver.chain.get_contract(deployment.receiver.address).custody_report()
    print(f"Custody report: {report}")


if __name__ == "__main__":
    main()

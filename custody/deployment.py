"""
deployment.py - Deployment handoff file and compiled artifacts

The deploy step writes a JSON handoff file that later steps read back:

    {
      "envNetwork": "sepolia",
      "rpcUrl": "https://...",
      "deployer": "0x...",
      "receiver": {"contractName", "address", "abi", "transactionHash", "blockNumber"},
      "caller":   {"contractName", "address", "abi", "transactionHash", "blockNumber"},
      "timestamp": "2024-01-01T00:00:00+00:00"
    }

CompiledArtifact reads compiler output for deploying to a real node.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Dict, List, Union

from .core import Address, DeploymentNotFound, InvalidDeployment, to_address


PathLike = Union[str, Path]


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    """One deployed contract."""
    contract_name: str
    address: Address
    abi: List[Dict[str, Any]]
    transaction_hash: str
    block_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contractName": self.contract_name,
            "address": self.address,
            "abi": self.abi,
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DeploymentRecord:
        return cls(
            contract_name=data["contractName"],
            address=to_address(data["address"]),
            abi=list(data.get("abi", [])),
            transaction_hash=data["transactionHash"],
            block_number=int(data["blockNumber"]),
        )


@dataclass(frozen=True, slots=True)
class DeploymentInfo:
    """
    Addresses and ABIs of a deployed ReceiverContract / ContractCaller pair.

    Attributes:
        network: Network label (NETWORK_NAME)
        rpc_url: Node the pair was deployed through
        deployer: Account that signed both deployments
        receiver: ReceiverContract record
        caller: ContractCaller record
        timestamp: ISO-8601 time the deployment finished
    """
    network: str
    rpc_url: str
    deployer: Address
    receiver: DeploymentRecord
    caller: DeploymentRecord
    timestamp: str

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "envNetwork": self.network,
            "rpcUrl": self.rpc_url,
            "deployer": self.deployer,
            "receiver": self.receiver.to_dict(),
            "caller": self.caller.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DeploymentInfo:
        return cls(
            network=data.get("envNetwork", "unknown-network"),
            rpc_url=data.get("rpcUrl", ""),
            deployer=to_address(data["deployer"]),
            receiver=DeploymentRecord.from_dict(data["receiver"]),
            caller=DeploymentRecord.from_dict(data["caller"]),
            timestamp=data.get("timestamp", ""),
        )

    def save(self, path: PathLike) -> Path:
        """Write the handoff file (indented JSON) and return its path."""
        path = Path(path)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: PathLike) -> DeploymentInfo:
        """
        Read a handoff file.

        Raises:
            DeploymentNotFound: If the file does not exist
            InvalidDeployment: If the file is not a complete handoff record
        """
        path = Path(path)
        if not path.exists():
            raise DeploymentNotFound(f"{path} not found. Run the deploy step first.")
        try:
            return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except KeyError as e:
            raise InvalidDeployment(f"{path} is missing key {e}") from e
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidDeployment(f"{path} is malformed: {e}") from e


@dataclass(frozen=True, slots=True)
class CompiledArtifact:
    """ABI and creation bytecode of a compiled contract."""
    contract_name: str
    abi: List[Dict[str, Any]]
    bytecode: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any], contract_name: str = "") -> CompiledArtifact:
        """
        Accept either {"abi", "bytecode"} or the solc standard-JSON shape
        {"abi", "evm": {"bytecode": {"object"}}}.
        """
        if "abi" not in data:
            raise ValueError("Compiled artifact has no abi")
        if "bytecode" in data:
            bytecode = data["bytecode"]
            # Hardhat artifacts nest nothing; some tools wrap it like solc
            if isinstance(bytecode, dict):
                bytecode = bytecode.get("object", "")
        else:
            bytecode = data.get("evm", {}).get("bytecode", {}).get("object", "")
        if not bytecode:
            raise ValueError("Compiled artifact has no bytecode")
        if not bytecode.startswith("0x"):
            bytecode = "0x" + bytecode
        name = data.get("contractName") or contract_name
        return cls(contract_name=name, abi=list(data["abi"]), bytecode=bytecode)

    @classmethod
    def load(cls, path: PathLike) -> CompiledArtifact:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Compiled artifact {path} not found")
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_dict(data, contract_name=path.stem)

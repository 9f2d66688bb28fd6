"""Driver configuration using pydantic-settings.

Values come from the environment or a .env file:

    RPC_URL=https://sepolia.infura.io/v3/...
    PRIVATE_KEY=0x...
    NETWORK_NAME=sepolia
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core import ConfigurationError, GWEI


class DriverSettings(BaseSettings):
    """Driver settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Node
    # ======================
    rpc_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint of the node")
    network_name: str = Field(default="unknown-network", description="Network label recorded at deploy time")

    # ======================
    # Signing
    # ======================
    private_key: Optional[str] = Field(default=None, description="Hex private key of the signing account")

    # ======================
    # Deployment
    # ======================
    deployment_path: str = Field(
        default="deployment_info.json",
        description="Handoff file written by deploy and read by later steps",
    )
    deploy_gas_limit: int = Field(
        default=5_000_000, description="Gas limit used when deployment estimation fails"
    )

    # ======================
    # Calls
    # ======================
    call_value_gwei: int = Field(default=125, description="Value sent with callReceiver, in gwei")
    gas_limit: int = Field(default=300_000, description="Gas limit used when call estimation fails")

    @property
    def call_value_wei(self) -> int:
        return self.call_value_gwei * GWEI

    def require(self, *fields: str) -> None:
        """Raise ConfigurationError naming every listed field that is unset."""
        missing = [name.upper() for name in fields if not getattr(self, name)]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "rpc_url": self.rpc_url or "(not set)",
            "network_name": self.network_name,
            "private_key": "***" if self.private_key else "(not set)",
            "deployment_path": self.deployment_path,
            "call_value_gwei": self.call_value_gwei,
            "gas_limit": self.gas_limit,
            "deploy_gas_limit": self.deploy_gas_limit,
        }


@lru_cache
def get_settings() -> DriverSettings:
    """Get cached settings instance."""
    return DriverSettings()

"""Centralized configuration management for the settlement service and SDK.

Loads all configuration from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load environment variables from .env file
load_dotenv()

DEFAULT_TOKEN_CONFIG_PATH = str(Path(__file__).parent / "data" / "tokens.json")


class Config(BaseSettings):
    """Main configuration class for the settlement service and payment clients."""

    # Chain Configuration
    chain_id: int = Field(default=8453, description="Target chain (Base mainnet)")
    rpc_url: str = Field(default="https://mainnet.base.org", description="EVM RPC endpoint")
    rpc_timeout_seconds: float = Field(default=10.0, description="Timeout for a single RPC call")

    # Payment contract (frozen external interface)
    payment_contract_address: str = Field(
        default="", description="Payment contract that receives approvals and payments"
    )

    # Token registry
    token_config_path: str = Field(default=DEFAULT_TOKEN_CONFIG_PATH)

    # Service URLs and Ports
    settlement_host: str = Field(default="0.0.0.0")
    settlement_port: int = Field(default=4030)
    settlement_url: str = Field(default="http://localhost:4030")

    # Database
    database_path: str = Field(default="./settlement.db")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # Background confirmation
    confirmation_interval_seconds: float = Field(default=5.0)
    confirmation_concurrency: int = Field(default=8)
    pending_timeout_seconds: float = Field(
        default=900.0, description="Age after which an unmined transaction is failed"
    )

    # Client retry policy
    retry_max_attempts: int = Field(default=3)
    retry_base_delay_seconds: float = Field(default=1.5)
    approval_receipt_timeout_seconds: float = Field(
        default=60.0, description="How long the client waits for an approval to be mined before paying"
    )

    # Signers
    embedded_signer_key: str = Field(
        default="", description="Key injected by the hosting runtime for the embedded signer"
    )
    external_signer_url: str = Field(
        default="", description="JSON-RPC endpoint of an EIP-1193 wallet connector"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global config instance
config = Config()


def validate_config_for_service(service: Literal["settlement", "client"]) -> None:
    """Validate that required configuration is present for a specific service.

    Args:
        service: The service name to validate configuration for.

    Raises:
        ValueError: If required configuration is missing.
    """
    errors = []

    if service == "settlement":
        if not config.payment_contract_address:
            errors.append("PAYMENT_CONTRACT_ADDRESS must be set for the settlement service")
        if not config.rpc_url:
            errors.append("RPC_URL must be set for the settlement service")
        if not Path(config.token_config_path).is_file():
            errors.append(f"Token config not found at {config.token_config_path}")

    if service == "client":
        if not config.settlement_url:
            errors.append("SETTLEMENT_URL must be set for payment clients")
        if not config.embedded_signer_key and not config.external_signer_url:
            errors.append("Either EMBEDDED_SIGNER_KEY or EXTERNAL_SIGNER_URL must be set")

    if errors:
        error_msg = f"Configuration errors for {service} service:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Literal, List

from dotenv import load_dotenv

from .constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CACHE_PATH,
    BASE_RPC_URL,
    BASE_CHAIN_ID,
    USDC_BASE,
    USDC_DECIMALS,
    NETWORK_BASE,
    SUPPORTED_NETWORKS,
    HTTP_TIMEOUT_SECONDS,
    CONFIRMATION_TIMEOUT_SECONDS,
)
from .errors import ConfigurationError

AuthMode = Literal["api_key", "x402", "hybrid"]


def usdc_to_minor(amount: str) -> int:
    """Convert a decimal USDC string ("4.25") into minor units (4250000)."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid USDC amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid USDC amount: {amount!r}")
    if value < 0:
        raise ValueError(f"USDC amount must not be negative: {amount!r}")
    return int(value * (10 ** USDC_DECIMALS))


@dataclass
class GatewayConfig:
    """
    Configuration for the Proxies.sx MCP gateway.

    At least one authentication pathway must be provided:
    - api_key, or email + password (account mode)
    - wallet_private_key (x402 pay-per-use mode)
    """

    # Account mode
    api_key: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    api_base_url: str = DEFAULT_API_BASE_URL

    # x402 mode
    wallet_private_key: Optional[str] = None
    preferred_network: str = NETWORK_BASE
    rpc_url: str = BASE_RPC_URL
    chain_id: int = BASE_CHAIN_ID
    token_address: str = USDC_BASE
    session_cache_path: str = DEFAULT_CACHE_PATH

    # Spend limits, decimal USDC strings (e.g. "10" or "2.50")
    max_transaction_usdc: Optional[str] = None
    max_daily_spend_usdc: Optional[str] = None

    # Timeouts
    http_timeout_seconds: float = HTTP_TIMEOUT_SECONDS
    confirmation_timeout_seconds: float = CONFIRMATION_TIMEOUT_SECONDS

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "GatewayConfig":
        """Build a config from environment variables (and a .env file if present)."""
        if dotenv:
            load_dotenv()

        config = cls(
            api_key=os.getenv("PROXIES_API_KEY") or None,
            email=os.getenv("PROXIES_EMAIL") or None,
            password=os.getenv("PROXIES_PASSWORD") or None,
            api_base_url=os.getenv("PROXIES_API_URL") or DEFAULT_API_BASE_URL,
            wallet_private_key=os.getenv("AGENT_WALLET_KEY") or None,
            preferred_network=(os.getenv("PREFERRED_NETWORK") or NETWORK_BASE).lower(),
            rpc_url=os.getenv("BASE_RPC_URL") or BASE_RPC_URL,
            session_cache_path=os.getenv("X402_SESSION_CACHE_PATH") or DEFAULT_CACHE_PATH,
            max_transaction_usdc=os.getenv("X402_MAX_TRANSACTION_USDC") or None,
            max_daily_spend_usdc=os.getenv("X402_MAX_DAILY_SPEND_USDC") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
        )

        if os.getenv("HTTP_TIMEOUT_SECONDS"):
            config.http_timeout_seconds = cls._parse_float("HTTP_TIMEOUT_SECONDS")
        if os.getenv("CONFIRMATION_TIMEOUT_SECONDS"):
            config.confirmation_timeout_seconds = cls._parse_float("CONFIRMATION_TIMEOUT_SECONDS")

        return config

    @staticmethod
    def _parse_float(name: str) -> float:
        raw = os.getenv(name)
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be a number, got {raw!r}")

    @property
    def has_account_credentials(self) -> bool:
        return bool(self.api_key or (self.email and self.password))

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_private_key)

    @property
    def auth_mode(self) -> AuthMode:
        if self.has_account_credentials and self.has_wallet:
            return "hybrid"
        if self.has_wallet:
            return "x402"
        if self.has_account_credentials:
            return "api_key"
        raise ConfigurationError(
            "Authentication required. Set one of:\n"
            "  Mode 1 (API Key):\n"
            "    - PROXIES_API_KEY: Your API key from https://client.proxies.sx/account\n"
            "    - Or PROXIES_EMAIL and PROXIES_PASSWORD: Your login credentials\n"
            "  Mode 2 (x402 Wallet - No API key needed):\n"
            "    - AGENT_WALLET_KEY: Your wallet private key for USDC payments\n"
            "    - Optional: PREFERRED_NETWORK=base or solana (default: base)"
        )

    @property
    def max_transaction_minor(self) -> Optional[int]:
        return usdc_to_minor(self.max_transaction_usdc) if self.max_transaction_usdc else None

    @property
    def max_daily_minor(self) -> Optional[int]:
        return usdc_to_minor(self.max_daily_spend_usdc) if self.max_daily_spend_usdc else None

    def validate(self) -> None:
        """Raise ConfigurationError listing every problem found."""
        errors: List[str] = []

        try:
            self.auth_mode
        except ConfigurationError as e:
            errors.append(e.message)

        if not self.api_base_url or not self.api_base_url.startswith(("http://", "https://")):
            errors.append(f"PROXIES_API_URL must be an http(s) URL, got {self.api_base_url!r}")

        if self.preferred_network not in SUPPORTED_NETWORKS:
            errors.append(
                f"PREFERRED_NETWORK must be one of {', '.join(SUPPORTED_NETWORKS)}, got {self.preferred_network!r}"
            )

        if self.has_wallet and not self.rpc_url.startswith(("http://", "https://")):
            errors.append(f"BASE_RPC_URL must be an http(s) URL, got {self.rpc_url!r}")

        for name, value in (("X402_MAX_TRANSACTION_USDC", self.max_transaction_usdc),
                            ("X402_MAX_DAILY_SPEND_USDC", self.max_daily_spend_usdc)):
            if value:
                try:
                    usdc_to_minor(value)
                except ValueError as e:
                    errors.append(f"{name}: {e}")

        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be positive")
        if self.confirmation_timeout_seconds <= 0:
            errors.append("CONFIRMATION_TIMEOUT_SECONDS must be positive")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

    def describe(self) -> dict:
        """Startup summary without secrets."""
        return {
            "auth_mode": self.auth_mode,
            "api_base_url": self.api_base_url,
            "preferred_network": self.preferred_network,
            "rpc_url": self.rpc_url,
            "session_cache_path": self.session_cache_path,
            "max_transaction_usdc": self.max_transaction_usdc,
            "max_daily_spend_usdc": self.max_daily_spend_usdc,
        }

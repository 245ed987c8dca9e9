"""
Display helpers shared by the tool handlers, and the one place where the
gateway error taxonomy is turned into text.
"""

from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional

from ..errors import (
    ApiClientError,
    CacheIOError,
    ConfigurationError,
    GatewayError,
    InsufficientFunds,
    InvalidRecipientError,
    NotFound,
    OnChainFailure,
    PostPaymentFulfillmentFailure,
    ProtocolViolation,
    SpendLimitExceeded,
    TransportError,
    WalletReadError,
)
from ..logging_config import get_logger
from ..core.models import ProxyCredentials, format_usdc

logger = get_logger(__name__)

RULE = "─" * 40


def format_gb(gb: float) -> str:
    if gb >= 1000:
        return f"{gb / 1000:.2f} TB"
    return f"{gb:.2f} GB"


def format_money(amount: Any, currency: str = "USD") -> str:
    try:
        return f"${float(amount):,.2f} {currency}".rstrip()
    except (TypeError, ValueError):
        return f"{amount} {currency}"


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_expires_in(seconds: Optional[float]) -> str:
    if not seconds:
        return "unknown"
    if seconds > 3600:
        return f"{seconds / 3600:.1f} hours"
    return f"{round(seconds / 60)} minutes"


def connection_lines(proxy: ProxyCredentials):
    return [
        f"HTTP:   {proxy.http_url}",
        f"SOCKS5: {proxy.socks_url}",
    ]


def render_error(error: GatewayError, action: str) -> str:
    """
    Map every error kind to the text a caller sees.
    `action` reads as "Failed to <action>".
    """
    if isinstance(error, PostPaymentFulfillmentFailure):
        return "\n".join([
            f"Failed to {action}: payment was sent but the resource was not delivered.",
            "",
            error.message,
            "",
            f"Transaction hash: {error.tx_hash}",
            "Do NOT retry automatically; that would pay a second time.",
            "Contact support with the transaction hash to reconcile this payment.",
        ])

    if isinstance(error, OnChainFailure):
        lines = [f"Failed to {action}: {error.reason}"]
        if error.kind == OnChainFailure.TIMEOUT:
            lines.append("The payment may still confirm. Check the transaction on a block explorer before retrying.")
        elif error.kind == OnChainFailure.REVERTED:
            lines.append("The transfer reverted on-chain; no USDC was moved.")
        if error.tx_hash:
            lines.append(f"Transaction hash: {error.tx_hash}")
        return "\n".join(lines)

    if isinstance(error, InsufficientFunds):
        lines = [f"Failed to {action}: {error.message}"]
        if error.asset == "USDC":
            lines.extend([
                "",
                f"Required: {format_usdc(error.required)}",
                f"Available: {format_usdc(error.available)}",
                f"Shortfall: {format_usdc(error.shortfall)}",
                "",
                "Send USDC on Base to:",
                error.address,
            ])
        return "\n".join(lines)

    if isinstance(error, SpendLimitExceeded):
        lines = [
            f"Failed to {action}: {error.scope} spend limit exceeded.",
            f"Payment: {format_usdc(error.amount)}",
            f"Limit: {format_usdc(error.limit)}",
        ]
        if error.already_spent:
            lines.append(f"Already spent today: {format_usdc(error.already_spent)}")
        lines.append("No payment was made.")
        return "\n".join(lines)

    if isinstance(error, InvalidRecipientError):
        return (
            f"Failed to {action}: {error.message}. "
            "The selected payment option is not payable from this wallet; no payment was made."
        )

    if isinstance(error, ProtocolViolation):
        return f"Failed to {action}: unexpected server response. {error.message}"

    if isinstance(error, NotFound):
        return f"Failed to {action}: {error.message}"

    if isinstance(error, (TransportError, WalletReadError)):
        return f"Failed to {action}: {error.message}. Please try again."

    if isinstance(error, ApiClientError):
        return f"Failed to {action}: {error.message} (HTTP {error.status_code})"

    if isinstance(error, ConfigurationError):
        return f"Configuration error: {error.message}"

    if isinstance(error, CacheIOError):
        return f"Failed to {action}: {error.message}"

    return f"Failed to {action}: {error.message}"


def handles_errors(action: str) -> Callable:
    """
    Decorator for tool handlers: GatewayError becomes display text and is
    logged; anything else propagates to the transport.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except GatewayError as e:
                severity = "ERROR" if isinstance(e, (PostPaymentFulfillmentFailure, OnChainFailure)) else "WARNING"
                logger.log_error(e, {"tool": f.__name__, "action": action}, severity=severity)
                return render_error(e, action)
        return wrapper
    return decorator

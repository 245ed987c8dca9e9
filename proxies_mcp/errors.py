"""
Error taxonomy for the gateway.

Wallet, cache and payment client raise these; the tool handler layer is the
only place they are caught and turned into display text.
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base class for every failure the gateway reports."""

    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(GatewayError):
    """Missing or malformed key / URL. Fatal at startup."""


class ProtocolViolation(GatewayError):
    """Unexpected status code or malformed body at a defined protocol step."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class InvalidRecipientError(ProtocolViolation):
    """Payment recipient is not a valid address for the wallet's network."""

    def __init__(self, recipient: str):
        self.recipient = recipient
        super().__init__(f"Invalid recipient address: {recipient}")


class InsufficientFunds(GatewayError):
    """Pre-flight balance check failed. Safe to retry after funding."""

    retryable = True

    def __init__(self, required: int, available: int, address: str, asset: str = "USDC", message: Optional[str] = None):
        self.required = required
        self.available = available
        self.address = address
        self.asset = asset
        super().__init__(message or f"Insufficient {asset} balance for {address}")

    @property
    def shortfall(self) -> int:
        return max(self.required - self.available, 0)


class SpendLimitExceeded(GatewayError):
    """A configured per-transaction or daily cap would be exceeded."""

    def __init__(self, amount: int, limit: int, scope: str, already_spent: int = 0):
        self.amount = amount
        self.limit = limit
        self.scope = scope
        self.already_spent = already_spent
        super().__init__(f"{scope} spend limit exceeded")


class OnChainFailure(GatewayError):
    """
    Transfer reverted, was rejected by the node, or confirmation timed out.

    On "timeout" the transaction may still land; the funds state is unknown.
    Never retry automatically.
    """

    REVERTED = "reverted"
    TIMEOUT = "timeout"
    REJECTED = "rejected"

    def __init__(self, reason: str, kind: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.kind = kind
        self.tx_hash = tx_hash
        super().__init__(reason)


class PostPaymentFulfillmentFailure(GatewayError):
    """Payment confirmed on-chain but the server did not grant the resource."""

    def __init__(self, tx_hash: str, status_code: Optional[int], detail: str, network: str = ""):
        self.tx_hash = tx_hash
        self.status_code = status_code
        self.detail = detail
        self.network = network
        status = status_code if status_code is not None else "no response"
        super().__init__(
            f"Payment succeeded but fulfillment failed ({status}): {detail}. "
            f"Transaction hash: {tx_hash}"
        )


class NotFound(GatewayError):
    """Read-path absence."""

    def __init__(self, resource: str, identifier: str = ""):
        self.resource = resource
        self.identifier = identifier
        label = f"{resource} {identifier}".strip()
        super().__init__(f"{label} not found")


class TransportError(GatewayError):
    """HTTP connection failure or timeout before any payment was made."""

    retryable = True


class WalletReadError(GatewayError):
    """Balance, gas or fee read against the RPC node failed."""

    retryable = True


class ApiClientError(GatewayError):
    """Non-2xx response from the account REST API."""

    def __init__(self, message: str, status_code: int, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class CacheIOError(GatewayError):
    """Session cache read/write failure. Never propagated past the cache."""

    def __init__(self, operation: str, path: str, cause: Exception):
        self.operation = operation
        self.path = path
        self.cause = cause
        super().__init__(f"Session cache {operation} failed for {path}: {cause}")

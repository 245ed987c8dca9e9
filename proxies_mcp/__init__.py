from .config import GatewayConfig
from .server import GatewayServer
from .core.payment import PaymentGatedClient, SpendPolicy
from .core.session_cache import SessionCache
from .core.wallet import StablecoinWallet
from .core.x402 import X402
from .contracts import load_abi

__all__ = [
    "GatewayConfig",
    "GatewayServer",
    "PaymentGatedClient",
    "SpendPolicy",
    "SessionCache",
    "StablecoinWallet",
    "X402",
    "load_abi",
]

import os

# Protocol Constants (Default: Base mainnet + Proxies.sx production API)
# These can be overridden by environment variables.

# --- API ---
DEFAULT_API_BASE_URL = os.getenv("PROXIES_API_URL", "https://api.proxies.sx")

# --- NETWORKS ---
NETWORK_BASE = "base"
NETWORK_SOLANA = "solana"
SUPPORTED_NETWORKS = (NETWORK_BASE, NETWORK_SOLANA)

BASE_CHAIN_ID = int(os.getenv("BASE_CHAIN_ID", "8453"))
BASE_RPC_URL = os.getenv("BASE_RPC_URL", "https://mainnet.base.org")

# --- ASSETS ---
USDC_BASE = os.getenv("USDC_BASE", "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913")
USDC_DECIMALS = 6
NATIVE_DECIMALS = 18

# --- PROXY TIERS ---
TIER_SHARED = "shared"
TIER_PRIVATE = "private"

# Advisory rates only; the 402 challenge is the binding price.
PRICING_RATES = {
    TIER_SHARED: {"per_gb": 4.0},
    TIER_PRIVATE: {"per_gb": 8.0},
}

# --- LOCAL STATE ---
DEFAULT_CACHE_PATH = os.path.join(os.path.expanduser("~"), ".proxies-sx", "x402-sessions.json")

# --- TIMEOUTS ---
HTTP_TIMEOUT_SECONDS = 30
CONFIRMATION_TIMEOUT_SECONDS = 60

# --- HEADERS ---
PAYMENT_HEADER = "X-Payment"
SESSION_TOKEN_HEADER = "X-Session-Token"
PAYMENT_SIGNATURE_HEADER = "Payment-Signature"

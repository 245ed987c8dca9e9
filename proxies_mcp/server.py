from typing import Annotated, Literal, Optional, List

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from .api import ApiClient, ProxiesApi, get_auth_token
from .config import GatewayConfig
from .core.payment import PaymentGatedClient, SpendPolicy
from .core.session_cache import SessionCache
from .core.wallet import StablecoinWallet
from .errors import ApiClientError, TransportError
from .logging_config import get_logger
from .tools import AccountToolHandlers, X402SessionToolHandlers, X402ToolHandlers

logger = get_logger(__name__)

SERVER_NAME = "proxies-sx-mcp"

INSTRUCTIONS = (
    "Mobile proxy gateway for Proxies.sx. With a wallet configured, x402_* tools buy "
    "proxies with USDC on Base, pay-per-use, no account needed. With an API key, "
    "account tools manage ports and rotation."
)

Tier = Literal["shared", "private"]
SessionFilter = Literal["active", "expired", "all"]
CountryCode = Annotated[str, Field(min_length=2, max_length=3, description="Country code, e.g. US, GB, DE")]
SessionId = Annotated[Optional[str], Field(description="Session ID; defaults to the most recently purchased active session")]
SessionToken = Annotated[str, Field(description="Session token from the purchase response (starts with x402s_)")]


class GatewayServer:
    """
    Composition root. Builds wallet -> cache -> payment client -> handlers
    and the account API client from one GatewayConfig, then registers the
    resulting tools on a FastMCP instance.

    `wallet` and `api` can be injected (tests, embedding).
    """

    def __init__(
        self,
        config: GatewayConfig,
        wallet: Optional[StablecoinWallet] = None,
        api: Optional[ProxiesApi] = None,
    ):
        self.config = config
        self.config.validate()
        self.auth_mode = config.auth_mode

        self.mcp = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)
        self.tool_names: List[str] = []

        self.api: Optional[ProxiesApi] = None
        self.wallet: Optional[StablecoinWallet] = None
        self.cache: Optional[SessionCache] = None
        self.client: Optional[PaymentGatedClient] = None

        if self.auth_mode in ("api_key", "hybrid"):
            self.api = api or self._build_api()
            if self.api is not None:
                self._register_account_tools(AccountToolHandlers(self.api))
                self._register_session_tools(X402SessionToolHandlers(self.api))

        if self.auth_mode in ("x402", "hybrid"):
            self.wallet = wallet or StablecoinWallet(
                config.wallet_private_key,
                rpc_url=config.rpc_url,
                token_address=config.token_address,
                chain_id=config.chain_id,
                confirmation_timeout=config.confirmation_timeout_seconds,
                request_timeout=config.http_timeout_seconds,
            )
            self.cache = SessionCache(self.wallet.address, config.session_cache_path)
            self.client = PaymentGatedClient(
                self.wallet,
                base_url=config.api_base_url,
                preferred_network=config.preferred_network,
                spend_policy=SpendPolicy(config.max_transaction_minor, config.max_daily_minor),
                timeout=config.http_timeout_seconds,
            )
            self._register_x402_tools(X402ToolHandlers(self.client, self.wallet, self.cache))
            logger.info(f"x402 mode enabled. Wallet: {self.wallet.address}")

        logger.log_service_initialization("GatewayServer", True, {
            **config.describe(),
            "tools": len(self.tool_names),
        })

    def _build_api(self) -> Optional[ProxiesApi]:
        """Account login. In hybrid mode a failure degrades to x402 only."""
        try:
            token, auth_type = get_auth_token(
                self.config.api_base_url,
                api_key=self.config.api_key,
                email=self.config.email,
                password=self.config.password,
            )
        except (ApiClientError, TransportError) as e:
            if self.auth_mode != "hybrid":
                raise
            logger.log_error(e, {"operation": "account_login", "fallback": "x402"}, severity="WARNING")
            return None

        client = ApiClient(token, auth_type, self.config.api_base_url, self.config.http_timeout_seconds)
        return ProxiesApi(client)

    def _tool(self, name: str, description: str):
        self.tool_names.append(name)
        return self.mcp.tool(name=name, description=description)

    def _register_x402_tools(self, h: X402ToolHandlers) -> None:
        @self._tool("x402_get_proxy",
                    "Purchase a mobile proxy with USDC (x402, no account). Pays the amount the server "
                    "requests, then returns HTTP/SOCKS5 credentials. Sessions are cached locally.")
        def x402_get_proxy(
            country: CountryCode,
            duration_hours: Annotated[float, Field(ge=1, le=720, description="Session duration in hours")] = 1,
            traffic_gb: Annotated[float, Field(ge=0.1, le=100, description="Traffic allowance in GB")] = 1,
            tier: Tier = "shared",
            city: Annotated[Optional[str], Field(description="Optional city")] = None,
            carrier: Annotated[Optional[str], Field(description="Optional carrier")] = None,
        ) -> str:
            return h.x402_get_proxy(country, duration_hours, traffic_gb, tier, city, carrier)

        @self._tool("x402_get_pricing",
                    "Estimate the price of a proxy. The amount requested at purchase time is binding.")
        def x402_get_pricing(
            country: Annotated[Optional[str], Field(min_length=2, max_length=3, description="Country code")] = None,
            duration_hours: Annotated[float, Field(ge=1, le=720)] = 1,
            traffic_gb: Annotated[float, Field(ge=0.1, le=100)] = 1,
            tier: Tier = "shared",
        ) -> str:
            return h.x402_get_pricing(country, duration_hours, traffic_gb, tier)

        @self._tool("x402_list_sessions", "List active proxy sessions purchased with this wallet (local cache).")
        def x402_list_sessions() -> str:
            return h.x402_list_sessions()

        @self._tool("x402_check_session", "Show credentials, remaining time and traffic for a purchased session.")
        def x402_check_session(session_id: SessionId = None) -> str:
            return h.x402_check_session(session_id)

        @self._tool("x402_wallet_balance", "Show the payment wallet's USDC and ETH balances and funding address.")
        def x402_wallet_balance() -> str:
            return h.x402_wallet_balance()

        @self._tool("x402_rotate_ip", "Rotate the exit IP of a purchased session. Free.")
        def x402_rotate_ip(session_id: SessionId = None) -> str:
            return h.x402_rotate_ip(session_id)

        @self._tool("x402_list_countries", "List countries where proxies are available.")
        def x402_list_countries() -> str:
            return h.x402_list_countries()

        @self._tool("x402_list_cities", "List cities available in a country.")
        def x402_list_cities(country: CountryCode) -> str:
            return h.x402_list_cities(country)

        @self._tool("x402_list_carriers", "List mobile carriers available in a country.")
        def x402_list_carriers(country: CountryCode) -> str:
            return h.x402_list_carriers(country)

        @self._tool("x402_extend_session", "Pay to extend a purchased session.")
        def x402_extend_session(
            session_id: SessionId = None,
            additional_hours: Annotated[int, Field(ge=1, le=168, description="Hours to add")] = 1,
        ) -> str:
            return h.x402_extend_session(session_id, additional_hours)

        @self._tool("x402_service_status", "Check x402 API health, wallet balance and session counts.")
        def x402_service_status() -> str:
            return h.x402_service_status()

        @self._tool("x402_remote_sessions", "List sessions the server has on record for this wallet.")
        def x402_remote_sessions(status: SessionFilter = "active") -> str:
            return h.x402_remote_sessions(status)

    def _register_account_tools(self, h: AccountToolHandlers) -> None:
        @self._tool("get_account_summary", "Get account balance, slots and traffic.")
        def get_account_summary() -> str:
            return h.get_account_summary()

        @self._tool("get_account_usage", "Get traffic usage breakdown.")
        def get_account_usage() -> str:
            return h.get_account_usage()

        @self._tool("list_ports", "List proxy ports with optional filters.")
        def list_ports(
            type: Optional[Tier] = None,
            status: Optional[Literal["active", "suspended", "expired"]] = None,
            country_id: Optional[str] = None,
            carrier_id: Optional[str] = None,
            limit: Annotated[int, Field(ge=1, le=100)] = 50,
        ) -> str:
            return h.list_ports(type, status, country_id, carrier_id, limit)

        @self._tool("get_port", "Get port details and ready-to-use connection strings.")
        def get_port(port_id: str) -> str:
            return h.get_port(port_id)

        @self._tool("rotate_port", "Rotate a port to a new device/IP if rotation is available.")
        def rotate_port(port_id: str) -> str:
            return h.rotate_port(port_id)

        @self._tool("check_rotation_availability", "Check whether a port can be rotated now.")
        def check_rotation_availability(port_id: str) -> str:
            return h.check_rotation_availability(port_id)

    def _register_session_tools(self, h: X402SessionToolHandlers) -> None:
        @self._tool("get_x402_session", "Get details of an x402 session including all ports.")
        def get_x402_session(session_token: SessionToken) -> str:
            return h.get_x402_session(session_token)

        @self._tool("list_x402_ports", "List ports in an x402 session with connection strings.")
        def list_x402_ports(session_token: SessionToken) -> str:
            return h.list_x402_ports(session_token)

        @self._tool("get_x402_port_status", "Get status and traffic of one port in an x402 session.")
        def get_x402_port_status(session_token: SessionToken, port_id: str) -> str:
            return h.get_x402_port_status(session_token, port_id)

        @self._tool("get_sessions_by_wallet", "List x402 sessions associated with a wallet address.")
        def get_sessions_by_wallet(wallet_address: str, status: SessionFilter = "active") -> str:
            return h.get_sessions_by_wallet(wallet_address, status)

        @self._tool("get_session_status", "Quick status check for a session: traffic and expiry.")
        def get_session_status(session_id: str) -> str:
            return h.get_session_status(session_id)

        @self._tool("replace_x402_port",
                    "Replace an offline port with one on a different device. Free, max 3 per session.")
        def replace_x402_port(
            session_token: SessionToken,
            port_id: Optional[str] = None,
            country: Optional[str] = None,
            city: Optional[str] = None,
            carrier: Optional[str] = None,
        ) -> str:
            return h.replace_x402_port(session_token, port_id, country, city, carrier)

        @self._tool("calculate_x402_topup", "Calculate the cost of adding traffic and/or duration to a session.")
        def calculate_x402_topup(
            session_token: SessionToken,
            add_traffic_gb: Annotated[Optional[float], Field(ge=0.1)] = None,
            add_duration_seconds: Annotated[Optional[int], Field(ge=3600)] = None,
        ) -> str:
            return h.calculate_x402_topup(session_token, add_traffic_gb, add_duration_seconds)

        @self._tool("topup_x402_session",
                    "Top up a session with traffic and/or duration using an existing payment tx hash.")
        def topup_x402_session(
            session_token: SessionToken,
            payment_signature: Annotated[str, Field(description="Blockchain tx hash of the top-up payment")],
            add_traffic_gb: Optional[float] = None,
            add_duration_seconds: Optional[int] = None,
        ) -> str:
            return h.topup_x402_session(session_token, payment_signature, add_traffic_gb, add_duration_seconds)

    def run(self, transport: str = "stdio") -> None:
        logger.info(f"Starting {SERVER_NAME} ({self.auth_mode} mode, {len(self.tool_names)} tools) over {transport}")
        self.mcp.run(transport=transport)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
        if self.api is not None:
            self.api.client.close()

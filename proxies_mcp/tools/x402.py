from typing import Optional, List

from ..constants import TIER_SHARED, PRICING_RATES, USDC_DECIMALS
from ..core.models import CachedSession, ReferenceItem, SessionStatus
from ..core.payment import PaymentGatedClient
from ..core.session_cache import SessionCache
from ..core.wallet import StablecoinWallet
from ..errors import NotFound, ProtocolViolation, TransportError, WalletReadError
from ..logging_config import get_logger
from .formatting import RULE, connection_lines, format_datetime, handles_errors

logger = get_logger(__name__)


class X402ToolHandlers:
    """
    Pay-per-use tools. Argument defaults live here; everything else is
    delegated to the payment client, wallet and session cache.
    """

    def __init__(self, client: PaymentGatedClient, wallet: StablecoinWallet, cache: SessionCache):
        self.client = client
        self.wallet = wallet
        self.cache = cache

    def _resolve_session(self, session_id: Optional[str]) -> Optional[CachedSession]:
        if session_id:
            return self.cache.get_session(session_id)
        return self.cache.get_first_active_session()

    @staticmethod
    def _missing_session(session_id: Optional[str]) -> str:
        if session_id:
            return f"Session not found: {session_id}. Use x402_list_sessions to see available sessions."
        return "No active sessions. Use x402_get_proxy to purchase a new proxy first."

    @handles_errors("purchase proxy")
    def x402_get_proxy(
        self,
        country: str,
        duration_hours: float = 1,
        traffic_gb: float = 1,
        tier: str = TIER_SHARED,
        city: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> str:
        result = self.client.purchase_proxy(
            country=country.upper(),
            duration_hours=duration_hours,
            traffic_gb=traffic_gb,
            tier=tier,
            city=city,
            carrier=carrier,
        )
        session = result.session
        self.cache.add_session_from_purchase(session)

        payment = session.payment
        lines = [
            "Proxy purchased successfully!",
            "",
            "--- Connection Details ---",
            *connection_lines(session.proxy),
            "",
            "--- Session Info ---",
            f"Session ID: {session.id}",
            f"Location: {session.location.display}",
            f"Expires: {format_datetime(session.expires_at)}",
        ]
        if session.traffic:
            lines.append(f"Traffic: {session.traffic.allowed_gb} GB")
        lines.extend([
            "",
            "--- Payment ---",
            f"Amount: ${result.amount_paid} {result.currency}",
            f"Network: {payment.network if payment else result.receipt.network}",
            f"TX Hash: {payment.transaction_hash if payment else result.receipt.transaction_hash}",
            "",
            "--- Usage ---",
            "Environment variables:",
            f"  HTTP_PROXY={session.proxy.http_url}",
            f"  HTTPS_PROXY={session.proxy.http_url}",
        ])
        if session.rotation_url:
            lines.extend(["", f"Rotation URL: {session.rotation_url}"])
        if self.cache.degraded:
            lines.extend(["", "Note: this session could not be saved locally. Keep these credentials."])
        return "\n".join(lines)

    @handles_errors("get pricing")
    def x402_get_pricing(
        self,
        country: Optional[str] = None,
        duration_hours: float = 1,
        traffic_gb: float = 1,
        tier: str = TIER_SHARED,
    ) -> str:
        if country:
            pricing = self.client.get_pricing(country.upper(), duration_hours, traffic_gb, tier)
        else:
            pricing = self.client.calculate_pricing(duration_hours, traffic_gb, tier)

        lines = [
            "x402 Proxy Pricing" + (" (estimate)" if pricing.estimated else ""),
            "",
            f"Tier: {pricing.tier}",
            f"Duration: {pricing.duration_hours:g} hour(s) (free)" if not pricing.time_cost
            else f"Duration: {pricing.duration_hours:g} hour(s) = ${pricing.time_cost:.2f}",
            f"Traffic: {pricing.traffic_gb:g} GB x ${pricing.traffic_rate_per_gb:.2f}/GB = ${pricing.traffic_cost:.2f}",
            RULE,
            f"Total: ${pricing.total_cost:.2f} USDC",
        ]

        try:
            balance = self.wallet.get_balance()
            available = balance.raw / 10 ** USDC_DECIMALS
            hint = f"Your wallet: {balance.formatted}"
            if available >= pricing.total_cost:
                hint += " (sufficient)"
            else:
                hint += f" (need ${pricing.total_cost - available:.2f} more)"
            lines.extend(["", hint])
        except WalletReadError as e:
            logger.debug(f"Balance unavailable for pricing hint: {e}")
            lines.extend(["", "Your wallet: Unable to check balance"])

        lines.extend([
            "",
            "The amount requested by the server at purchase time is the binding price.",
            "",
            "Tier Rates (duration is free):",
        ])
        for tier_name, rates in PRICING_RATES.items():
            lines.append(f"  {tier_name + ':':<9} ${rates['per_gb']:.2f}/GB")
        return "\n".join(lines)

    def x402_list_sessions(self) -> str:
        sessions = self.cache.get_active_sessions()
        if not sessions:
            return "\n".join([
                "No active x402 sessions.",
                "",
                "Use x402_get_proxy to purchase a new proxy.",
                'Example: x402_get_proxy(country="US", duration_hours=1, traffic_gb=1)',
            ])

        lines = [f"Active x402 Sessions ({len(sessions)}):", ""]
        for session in sessions:
            remaining = self.cache.get_time_remaining(session.id)
            lines.extend([
                f"Session: {session.id}",
                f"  Location: {session.location.display}",
                f"  Expires in: {remaining['display'] if remaining else 'Unknown'}",
                f"  HTTP Port: {session.proxy.host}:{session.proxy.http_port}",
                f"  SOCKS Port: {session.proxy.host}:{session.proxy.socks_port}",
                "",
            ])
        lines.append("Use x402_check_session for detailed status.")
        return "\n".join(lines)

    def _fresh_status(self, session_id: str) -> Optional[SessionStatus]:
        try:
            return self.client.get_session_status(session_id)
        except (NotFound, TransportError, ProtocolViolation) as e:
            logger.debug(f"Live status unavailable for {session_id}, showing cached data: {e}")
            return None

    def x402_check_session(self, session_id: Optional[str] = None) -> str:
        session = self._resolve_session(session_id)
        if session is None:
            return self._missing_session(session_id)

        status = self._fresh_status(session.id)
        remaining = self.cache.get_time_remaining(session.id)
        if status:
            state = status.status
        else:
            state = "active" if remaining and remaining["seconds"] > 0 else "expired"

        lines = [
            "Session Status",
            "",
            f"ID: {session.id}",
            f"Status: {state}",
            f"Location: {session.location.display}",
            "",
            "--- Time ---",
            f"Expires: {format_datetime(session.expires_at)}",
            f"Remaining: {remaining['display'] if remaining else 'Unknown'}",
        ]

        if status and status.traffic:
            traffic = status.traffic
            lines.extend([
                "",
                "--- Traffic ---",
                f"Allowed: {traffic.allowed_gb} GB",
                f"Used: {traffic.used_gb or 0.0:.2f} GB",
                f"Remaining: {traffic.effective_remaining_gb:.2f} GB",
                f"Usage: {traffic.effective_percent_used:.1f}%",
            ])

        proxy = session.proxy
        lines.extend([
            "",
            "--- Connection ---",
            *connection_lines(proxy),
            "",
            "--- Credentials ---",
            f"Host: {proxy.host}",
            f"HTTP Port: {proxy.http_port}",
            f"SOCKS Port: {proxy.socks_port}",
            f"Username: {proxy.username}",
            f"Password: {proxy.password}",
        ])
        if session.rotation_url:
            lines.extend(["", "--- Rotation ---", f"URL: {session.rotation_url}"])
        return "\n".join(lines)

    @handles_errors("check balance")
    def x402_wallet_balance(self) -> str:
        info = self.wallet.get_info()
        return "\n".join([
            "x402 Wallet Balance",
            "",
            f"Address: {info['address']}",
            "Network: Base (Ethereum L2)",
            "",
            f"USDC Balance: {info['usdc_balance'].formatted}",
            f"ETH Balance: {info['gas_balance']} (for gas)",
            "",
            "To top up, send USDC on Base network to:",
            info["address"],
        ])

    @handles_errors("rotate IP")
    def x402_rotate_ip(self, session_id: Optional[str] = None) -> str:
        session = self._resolve_session(session_id)
        if session is None:
            return self._missing_session(session_id)
        if not session.rotation_url:
            return f"Rotation URL not available for session {session.id}"

        result = self.client.rotate_ip(session)
        lines = ["IP Rotated Successfully!", "", f"Session: {session.id}"]
        if result.new_ip:
            lines.append(f"New IP: {result.new_ip}")
        if result.carrier:
            lines.append(f"New Device: {result.carrier}")
        lines.extend(["", "Your proxy connection details remain the same."])
        return "\n".join(lines)

    @staticmethod
    def _reference_lines(items: List[ReferenceItem]) -> List[str]:
        return [f"• {item.name}" + (f" ({item.code})" if item.code else "") for item in items if item.is_active]

    @handles_errors("list countries")
    def x402_list_countries(self) -> str:
        countries = [c for c in self.client.get_countries() if c.is_active]
        if not countries:
            return "No countries available at this time."

        lines = [f"Available Countries ({len(countries)}):", "", "Code | Country Name", RULE]
        for country in countries:
            lines.append(f"{(country.code or '').ljust(4)} | {country.name}")
        lines.extend([
            "",
            'Use x402_get_proxy(country="CODE") to purchase a proxy.',
            'Use x402_list_cities(country="CODE") for city options.',
        ])
        return "\n".join(lines)

    @handles_errors("list cities")
    def x402_list_cities(self, country: str) -> str:
        code = country.upper()
        cities = self.client.get_cities(code)
        if not cities:
            return f"No specific cities available for {code}. You can still use x402_get_proxy without specifying a city."
        lines = [f"Available Cities in {code} ({len(cities)}):", ""]
        lines.extend(self._reference_lines(cities))
        lines.extend(["", f'Use x402_get_proxy(country="{code}", city="CITY_NAME") to target a specific city.'])
        return "\n".join(lines)

    @handles_errors("list carriers")
    def x402_list_carriers(self, country: str) -> str:
        code = country.upper()
        carriers = self.client.get_carriers(code)
        if not carriers:
            return f"No specific carriers available for {code}. You can still use x402_get_proxy without specifying a carrier."
        lines = [f"Available Carriers in {code} ({len(carriers)}):", ""]
        lines.extend(self._reference_lines(carriers))
        lines.extend(["", f'Use x402_get_proxy(country="{code}", carrier="CARRIER_NAME") to target a specific carrier.'])
        return "\n".join(lines)

    @handles_errors("extend session")
    def x402_extend_session(self, session_id: Optional[str] = None, additional_hours: int = 1) -> str:
        session = self._resolve_session(session_id)
        if session is None:
            return self._missing_session(session_id)

        extended = self.client.extend_session(session.id, additional_hours)
        lines = [
            "Session Extended Successfully!",
            "",
            f"Session: {session.id}",
            f"Added: {additional_hours} hour(s)",
        ]
        if extended.expires_at:
            self.cache.update_session_expiry(session.id, extended.expires_at)
            lines.append(f"New Expiry: {format_datetime(extended.expires_at)}")
        else:
            lines.append("New Expiry: not reported by server; use x402_check_session to refresh.")
        lines.extend([
            f"TX Hash: {extended.receipt.transaction_hash}",
            "",
            "Your proxy connection details remain the same.",
        ])
        return "\n".join(lines)

    def x402_service_status(self) -> str:
        try:
            health = self.client.get_health()
        except (TransportError, ProtocolViolation) as e:
            logger.log_error(e, {"tool": "x402_service_status"}, severity="WARNING")
            return "\n".join([
                "x402 Service Status",
                "",
                "API Status: ✗ Unable to connect",
                f"Error: {e.message}",
                "",
                "Please check your network connection and try again.",
            ])

        try:
            balance_info = f"Wallet Balance: {self.wallet.get_balance().formatted}"
        except WalletReadError:
            balance_info = "Wallet Balance: Unable to check"

        lines = [
            "x402 Service Status",
            "",
            f"API Status: {'✓ Online' if health.get('status') == 'ok' else '✗ Offline'}",
            f"x402 Enabled: {'✓ Yes' if health.get('enabled') else '✗ No'}",
            balance_info,
            f"Active Sessions: {self.cache.get_active_count()}",
        ]
        expiring = self.cache.get_expiring_soon(30)
        if expiring:
            lines.append(f"Sessions Expiring Soon: {len(expiring)} (within 30 minutes)")
        if self.cache.degraded:
            lines.append(f"Session Cache: degraded ({self.cache.last_error.message})")
        lines.extend([
            "",
            f"Wallet Address: {self.wallet.address}",
            "Network: Base (Ethereum L2)",
        ])
        return "\n".join(lines)

    @handles_errors("list remote sessions")
    def x402_remote_sessions(self, status: str = "active") -> str:
        sessions = self.client.list_sessions(status)
        if not sessions:
            return f"No {status} sessions found for wallet {self.wallet.address}"

        lines = [f"Sessions for {self.wallet.address} ({status}): {len(sessions)}", ""]
        for session in sessions:
            lines.append(f"Session: {session.id}")
            lines.append(f"  Status: {session.status}")
            lines.append(f"  Expires: {format_datetime(session.expires_at)}")
            if session.traffic:
                lines.append(
                    f"  Traffic: {session.traffic.used_gb or 0.0:.2f}/{session.traffic.allowed_gb} GB"
                )
            cached = self.cache.get_session(session.id)
            lines.append(f"  Credentials cached: {'yes' if cached else 'no'}")
            lines.append("")
        return "\n".join(lines).rstrip()

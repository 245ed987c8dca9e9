from typing import Dict, Any, Optional

from ..api import ProxiesApi
from ..errors import NotFound
from .formatting import format_expires_in, handles_errors


def _port_block(port: Dict[str, Any]) -> list:
    return [
        f"## {port.get('displayName') or port.get('id')}",
        "",
        "```",
        f"HTTP:   {port.get('http')}",
        f"SOCKS5: {port.get('socks5')}",
        "```",
        "",
        f"- **Expires in:** {format_expires_in(port.get('expiresInSeconds'))}",
        f"- **Rotation URL:** {port.get('rotationUrl')}",
        "",
    ]


class X402SessionToolHandlers:
    """
    Session management by session token (the x402s_... value returned at
    purchase). These calls never move funds; top-up takes a payment
    signature the caller already obtained.
    """

    def __init__(self, api: ProxiesApi):
        self.api = api

    @handles_errors("fetch session")
    def get_x402_session(self, session_token: str) -> str:
        try:
            session = self.api.x402.get_session(session_token)
        except NotFound:
            return "Session not found or expired. The session token may be invalid."

        allocated = float(session.get("trafficAllocatedGB") or 0)
        used = float(session.get("trafficUsedGB") or 0)
        lines = [
            "# X402 Session Details",
            "",
            f"**Session ID:** {session.get('sessionId')}",
            f"**Wallet:** {session.get('walletAddress')}",
            f"**Network:** {session.get('network')}",
            f"**Tier:** {session.get('tier')}",
            f"**Status:** {'Active' if session.get('isActive') else 'Expired'}",
            "",
            "## Payment",
            f"- **Amount:** ${session.get('amountUSDC')} USDC",
            f"- **TX Hash:** {session.get('txHash')}",
            "",
            "## Traffic",
            f"- **Allocated:** {allocated:g} GB",
            f"- **Used:** {used:g} GB",
            f"- **Remaining:** {allocated - used:.2f} GB",
            "",
            "## Expiration",
            f"- **Expires At:** {session.get('expiresAt')}",
            "",
        ]
        ports = session.get("ports") or []
        if ports:
            lines.extend(["## Ports", ""])
            for port in ports:
                lines.extend(_port_block(port))
        return "\n".join(lines).rstrip()

    @handles_errors("list ports")
    def list_x402_ports(self, session_token: str) -> str:
        ports = self.api.x402.list_ports(session_token)
        if not ports:
            return "No ports found in this session."
        lines = ["# Session Ports", "", f"Total: {len(ports)} port(s)", ""]
        for port in ports:
            lines.extend(_port_block(port))
        return "\n".join(lines).rstrip()

    @handles_errors("fetch port status")
    def get_x402_port_status(self, session_token: str, port_id: str) -> str:
        try:
            port = self.api.x402.get_port_status(session_token, port_id)
        except NotFound:
            return "Port not found or not owned by this session."

        lines = [
            f"# Port Status: {port.get('displayName') or port.get('id')}",
            "",
            f"**Status:** {port.get('status') or 'active'}",
            f"**Expires in:** {format_expires_in(port.get('expiresInSeconds'))}",
            f"**Expires at:** {port.get('expiresAt')}",
            "",
            "## Connection",
            "```",
            f"HTTP:   {port.get('http')}",
            f"SOCKS5: {port.get('socks5')}",
            "```",
            "",
            f"**Rotation URL:** {port.get('rotationUrl')}",
        ]
        traffic = port.get("traffic")
        if traffic:
            lines.extend(["", "## Traffic Usage", f"- **Used:** {traffic.get('usedGB')} GB ({traffic.get('usedBytes', 0):,} bytes)"])
        return "\n".join(lines)

    @handles_errors("fetch sessions")
    def get_sessions_by_wallet(self, wallet_address: str, status: str = "active") -> str:
        try:
            result = self.api.x402.get_sessions_by_wallet(wallet_address, status)
        except NotFound:
            result = {"sessions": []}

        sessions = result.get("sessions") or []
        if not sessions:
            return f"No {status} sessions found for wallet {wallet_address}"

        lines = [
            "# Your X402 Sessions",
            "",
            f"**Wallet:** {wallet_address}",
            f"**Filter:** {status}",
            f"**Total:** {result.get('total', len(sessions))} session(s)",
            "",
        ]
        for session in sessions:
            session_id = str(session.get("sessionId") or session.get("id") or "")
            icon = "🟢" if session.get("isActive", True) else "🔴"
            lines.extend([
                f"## {icon} Session {session_id[-8:]}",
                f"- **ID:** {session_id}",
                f"- **Tier:** {session.get('tier')}",
                f"- **Ports:** {session.get('portCount')}",
                f"- **Amount:** ${session.get('amountUSDC')} USDC",
                f"- **Traffic:** {session.get('trafficUsedGB')}/{session.get('trafficAllocatedGB')} GB",
                f"- **Expires:** {session.get('expiresAt')}",
                f"- **TX:** {session.get('txHash')}",
                "",
            ])
        return "\n".join(lines).rstrip()

    @handles_errors("fetch session status")
    def get_session_status(self, session_id: str) -> str:
        try:
            status = self.api.x402.get_session_status(session_id)
        except NotFound:
            return "Session not found. Check the session ID."

        traffic = status.get("traffic") or {}
        percent = float(traffic.get("percentUsed") or 0)
        filled = min(int(percent // 10), 10)
        bar = "█" * filled + "░" * (10 - filled)
        state = "🟢 Active" if status.get("status") == "active" else "🔴 Expired"
        return "\n".join([
            f"# Session Status: {state}",
            "",
            f"**ID:** {status.get('id', session_id)}",
            f"**Wallet:** {status.get('walletAddress')}",
            f"**Expires:** {status.get('expiresAt')}",
            "",
            "## Traffic Usage",
            f"[{bar}] {percent:.1f}%",
            "",
            f"- **Allowed:** {traffic.get('allowedGB')} GB",
            f"- **Used:** {traffic.get('usedGB')} GB",
            f"- **Remaining:** {traffic.get('remainingGB')} GB",
        ])

    @handles_errors("replace port")
    def replace_x402_port(
        self,
        session_token: str,
        port_id: Optional[str] = None,
        country: Optional[str] = None,
        city: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> str:
        result = self.api.x402.replace_port(session_token, port_id, country, city, carrier)
        proxy = result.get("proxy") or {}
        traffic = result.get("traffic") or {}
        location = result.get("location") or {}
        return "\n".join([
            "# Port Replaced Successfully",
            "",
            "## New Proxy Credentials",
            "```",
            f"HTTP:   {proxy.get('http')}",
            f"SOCKS5: {proxy.get('socks5')}",
            "```",
            "",
            f"**Port ID:** {result.get('portId')}",
            f"**Expires:** {proxy.get('expiresAt')}",
            f"**Rotation URL:** {result.get('rotationUrl')}",
            "",
            "## Traffic",
            f"- **Allocated:** {traffic.get('allocatedGB')} GB",
            f"- **Used:** {traffic.get('usedGB')} GB",
            f"- **Remaining:** {traffic.get('remainingGB')} GB",
            "",
            f"**Location:** {location.get('country')} ({location.get('countryCode')})",
        ])

    @handles_errors("calculate top-up cost")
    def calculate_x402_topup(
        self,
        session_token: str,
        add_traffic_gb: Optional[float] = None,
        add_duration_seconds: Optional[int] = None,
    ) -> str:
        result = self.api.x402.calculate_topup(session_token, add_traffic_gb, add_duration_seconds)
        breakdown = result.get("breakdown") or {}
        total = float(result.get("totalCost") or 0)
        return "\n".join([
            "# Top-Up Cost Calculation",
            "",
            f"**Traffic Cost:** ${result.get('trafficCost')}",
            f"**Duration Cost:** ${result.get('durationCost')} (duration is free)",
            f"**Total Cost:** ${result.get('totalCost')} USDC",
            "",
            "## Breakdown",
            f"- **Add Traffic:** {breakdown.get('addTrafficGB')} GB",
            f"- **Add Duration:** {breakdown.get('addDurationSeconds')} seconds",
            f"- **Traffic Price:** ${breakdown.get('trafficPricePerGB')}/GB",
            f"- **Tier:** {breakdown.get('tier')}",
            "",
            "Send the total amount in USDC, then call topup_x402_session with the tx hash."
            if total > 0 else
            "This is a free duration-only extension. Call topup_x402_session with any string as payment signature.",
        ])

    @handles_errors("top up session")
    def topup_x402_session(
        self,
        session_token: str,
        payment_signature: str,
        add_traffic_gb: Optional[float] = None,
        add_duration_seconds: Optional[int] = None,
    ) -> str:
        result = self.api.x402.topup(session_token, payment_signature, add_traffic_gb, add_duration_seconds)
        payment = result.get("payment") or {}
        lines = [
            "# Session Topped Up Successfully",
            "",
            f"**Session ID:** {result.get('sessionId')}",
            f"**Traffic Allocated:** {result.get('trafficAllocatedGB')} GB",
            f"**New Expiration:** {result.get('expiresAt')}",
            "",
            "## Payment",
            f"- **TX Hash:** {payment.get('txHash')}",
            f"- **Network:** {payment.get('network')}",
            f"- **Amount:** ${payment.get('amountUSDC')} USDC",
        ]
        ports = result.get("ports") or []
        if ports:
            lines.extend(["", "## Updated Ports"])
            lines.extend(f"- **{port.get('id')}** - New expiration: {port.get('expiresAt')}" for port in ports)
        return "\n".join(lines)

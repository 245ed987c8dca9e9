from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from ..api import ProxiesApi
from ..core.models import parse_timestamp
from .formatting import format_gb, format_money, handles_errors


def _location(port: Dict[str, Any], key: str, device_key: str) -> Optional[str]:
    value = port.get(key)
    if not value and isinstance(port.get("device"), dict):
        ref = port["device"].get(device_key)
        if isinstance(ref, dict):
            value = ref.get("name")
    return value


def _relative(value: Any) -> str:
    try:
        when = parse_timestamp(value)
    except (TypeError, ValueError):
        return "-"
    days = round((when - datetime.now(timezone.utc)).total_seconds() / 86400)
    if days > 0:
        return f"in {days} day{'' if days == 1 else 's'}"
    if days < 0:
        return f"{-days} day{'' if days == -1 else 's'} ago"
    return "today"


def format_port_summary(port: Dict[str, Any]) -> str:
    lines = [
        f"Port: {port.get('displayName') or port.get('name')}",
        f"ID: {port.get('_id') or port.get('id')}",
        f"Type: {port.get('slotType', '-')}",
        f"Status: {port.get('status', '-')}{' (suspended)' if port.get('suspended') else ''}",
    ]
    for label, key, device_key in (("Country", "countryName", "countryId"),
                                   ("Carrier", "carrierName", "carrierId"),
                                   ("City", "cityName", "cityId")):
        value = _location(port, key, device_key)
        if value:
            lines.append(f"{label}: {value}")
    lines.extend([
        f"HTTP Port: {port.get('httpPort')}",
        f"SOCKS5 Port: {port.get('socksPort')}",
        f"Server: {port.get('serverIp')}",
    ])
    if port.get("expiresAt"):
        lines.append(f"Expires: {_relative(port['expiresAt'])}")
    return "\n".join(lines)


def format_port_table(ports: List[Dict[str, Any]]) -> str:
    headers = ["Name", "Type", "Status", "Country", "Slot Expires", "Session"]
    rows = []
    for p in ports:
        session_info = "Persistent"
        rotation = p.get("rotationSettings") or {}
        if rotation.get("enabled") and rotation.get("intervalSeconds"):
            session_info = f"{round(rotation['intervalSeconds'] / 60)}m auto"
        rows.append([
            str(p.get("displayName") or p.get("name") or "-"),
            str(p.get("slotType") or "-"),
            str(p.get("status") or "-") + (" (sus)" if p.get("suspended") else ""),
            _location(p, "countryName", "countryId") or "-",
            _relative(p.get("expiresAt")),
            session_info,
        ])

    widths = [max([len(h)] + [len(r[i]) for r in rows]) for i, h in enumerate(headers)]
    lines = [" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))]
    lines.append("-+-".join("-" * w for w in widths))
    for row in rows:
        lines.append(" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)))
    return "\n".join(lines)


def format_account_summary(account: Dict[str, Any]) -> str:
    lines = [f"Balance: {format_money(account.get('balance', 0), account.get('currency', 'USD'))}"]
    for key, title in (("shared", "Shared Resources"), ("private", "Private Resources")):
        pool = account.get(key)
        if not pool:
            continue
        slots = pool.get("slots") or {}
        traffic = pool.get("trafficGB") or {}
        lines.extend([
            "",
            f"{title}:",
            f"  Slots: {slots.get('used', 0)}/{slots.get('total', 0)} ({slots.get('available', 0)} available)",
            f"  Traffic: {format_gb(traffic.get('used', 0))}/{format_gb(traffic.get('total', 0))} "
            f"({format_gb(traffic.get('available', 0))} available)",
        ])
        if pool.get("daysRemaining") is not None:
            lines.append(f"  Expires: {pool['daysRemaining']} days remaining")
    alerts = account.get("alerts") or []
    if alerts:
        lines.extend(["", "Alerts:"])
        lines.extend(f"  - {alert}" for alert in alerts)
    return "\n".join(lines)


class AccountToolHandlers:
    """Tools backed by an authenticated account (API key or JWT)."""

    def __init__(self, api: ProxiesApi):
        self.api = api

    @handles_errors("get account summary")
    def get_account_summary(self) -> str:
        return format_account_summary(self.api.account.get_summary())

    @handles_errors("get traffic breakdown")
    def get_account_usage(self) -> str:
        b = self.api.account.get_traffic_breakdown()
        purchased = float(b.get("purchasedTrafficGB", 0))
        used = float(b.get("trafficUsedGB", 0))
        usage_percent = used / purchased * 100 if purchased > 0 else 0.0
        return "\n".join([
            "Traffic Usage:",
            "",
            f"  Purchased: {format_gb(purchased)}",
            f"  Used: {format_gb(used)}",
            f"  Available: {format_gb(float(b.get('availableTrafficGB', 0)))}",
            f"  Usage: {usage_percent:.1f}%",
            "",
            f"  Price: ${b.get('pricePerGB', '-')}/GB",
            f"  Balance: {format_money(b.get('balance', 0), b.get('currency', 'USD'))}",
        ])

    @handles_errors("list ports")
    def list_ports(
        self,
        port_type: Optional[str] = None,
        status: Optional[str] = None,
        country_id: Optional[str] = None,
        carrier_id: Optional[str] = None,
        limit: int = 50,
    ) -> str:
        result = self.api.ports.list(port_type=port_type, status=status, country_id=country_id,
                                     carrier_id=carrier_id, limit=limit)
        ports = result.get("data") or []
        if not ports:
            return "No ports found matching the criteria."
        return f"Found {result.get('total', len(ports))} ports (showing {len(ports)}):\n\n{format_port_table(ports)}"

    @handles_errors("get port")
    def get_port(self, port_id: str) -> str:
        port = self.api.ports.get(port_id)
        login = f"{port.get('proxyLogin')}:{port.get('proxyPassword')}@{port.get('serverIp')}"
        return "\n".join([
            format_port_summary(port),
            "",
            "Connection Strings (ready to use):",
            f"  HTTP:   http://{login}:{port.get('httpPort')}",
            f"  SOCKS5: socks5://{login}:{port.get('socksPort')}",
        ])

    @handles_errors("rotate port")
    def rotate_port(self, port_id: str) -> str:
        availability = self.api.rotation.can_rotate(port_id)
        if not availability.get("canRotate"):
            lines = [f"Cannot rotate port: {availability.get('reason', 'unknown reason')}"]
            if availability.get("nextAvailableRotation"):
                lines.append(f"Next available rotation: {availability['nextAvailableRotation']}")
            return "\n".join(lines)

        port = self.api.rotation.rotate(port_id)
        return f"Port rotated successfully!\n\nNew device info:\n{format_port_summary(port)}"

    @handles_errors("check rotation availability")
    def check_rotation_availability(self, port_id: str) -> str:
        result = self.api.rotation.can_rotate(port_id)
        if result.get("canRotate"):
            return "Port can be rotated now."
        lines = [f"Cannot rotate: {result.get('reason', 'unknown reason')}"]
        if result.get("cooldownEndsAt"):
            lines.append(f"Cooldown ends at: {result['cooldownEndsAt']}")
        if result.get("nextAvailableRotation"):
            lines.append(f"Next available rotation: {result['nextAvailableRotation']}")
        return "\n".join(lines)

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from ..constants import USDC_DECIMALS


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string ("...Z" allowed) or a unix timestamp in
    milliseconds into an aware UTC datetime.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_usdc(minor_units: int) -> str:
    return f"${minor_units / 10 ** USDC_DECIMALS:.2f} USDC"


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass(frozen=True)
class TransferReceipt:
    """Proof of a confirmed on-chain transfer."""
    transaction_hash: str
    network: str
    amount: int
    recipient: str


@dataclass(frozen=True)
class WalletBalance:
    raw: int
    formatted: str
    network: str


@dataclass(frozen=True)
class FeeEstimate:
    gas: int
    gas_price_wei: int
    cost_wei: int
    formatted: str


@dataclass
class ProxyCredentials:
    host: str
    http_port: int
    socks_port: int
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProxyCredentials":
        return cls(
            host=data["host"],
            http_port=int(data["httpPort"]),
            socks_port=int(data["socksPort"]),
            username=data.get("username", ""),
            password=data.get("password", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "httpPort": self.http_port,
            "socksPort": self.socks_port,
            "username": self.username,
            "password": self.password,
        }

    @property
    def http_url(self) -> str:
        return f"http://{self.username}:{self.password}@{self.host}:{self.http_port}"

    @property
    def socks_url(self) -> str:
        return f"socks5://{self.username}:{self.password}@{self.host}:{self.socks_port}"


@dataclass
class LocationInfo:
    country: str
    country_code: str = ""
    city: Optional[str] = None
    carrier: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationInfo":
        return cls(
            country=data.get("country", ""),
            country_code=data.get("countryCode", ""),
            city=data.get("city"),
            carrier=data.get("carrier"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"country": self.country, "countryCode": self.country_code}
        if self.city is not None:
            data["city"] = self.city
        if self.carrier is not None:
            data["carrier"] = self.carrier
        return data

    @property
    def display(self) -> str:
        return self.country or self.country_code


@dataclass
class TrafficInfo:
    """Traffic allowance. used <= allowed is enforced server-side only."""
    allowed_gb: float
    used_gb: Optional[float] = None
    remaining_gb: Optional[float] = None
    percent_used: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrafficInfo":
        return cls(
            allowed_gb=float(data.get("allowedGB", 0)),
            used_gb=_optional_float(data.get("usedGB")),
            remaining_gb=_optional_float(data.get("remainingGB")),
            percent_used=_optional_float(data.get("percentUsed")),
        )

    @property
    def effective_remaining_gb(self) -> float:
        if self.remaining_gb is not None:
            return self.remaining_gb
        return max(self.allowed_gb - (self.used_gb or 0.0), 0.0)

    @property
    def effective_percent_used(self) -> float:
        if self.percent_used is not None:
            return self.percent_used
        if not self.allowed_gb:
            return 0.0
        return (self.used_gb or 0.0) / self.allowed_gb * 100


@dataclass
class SessionPayment:
    network: str
    transaction_hash: str
    amount_usdc: str = ""
    paid_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionPayment":
        return cls(
            network=data.get("network", ""),
            transaction_hash=data.get("transactionHash", ""),
            amount_usdc=str(data.get("amountUSDC", data.get("amountPaid", ""))),
            paid_at=data.get("paidAt"),
        )


@dataclass
class Session:
    """A purchased proxy session as returned by the resource server."""
    id: str
    status: str
    expires_at: datetime
    proxy: ProxyCredentials
    location: LocationInfo
    traffic: Optional[TrafficInfo] = None
    payment: Optional[SessionPayment] = None
    rotation_url: str = ""
    rotation_token: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            status=data.get("status", "active"),
            expires_at=parse_timestamp(data["expiresAt"]),
            proxy=ProxyCredentials.from_dict(data["proxy"]),
            location=LocationInfo.from_dict(data.get("location") or {}),
            traffic=TrafficInfo.from_dict(data["traffic"]) if data.get("traffic") else None,
            payment=SessionPayment.from_dict(data["payment"]) if data.get("payment") else None,
            rotation_url=data.get("rotationUrl") or "",
            rotation_token=data.get("rotationToken") or "",
        )


@dataclass
class SessionStatus:
    """Live status of a session; never carries credentials."""
    id: str
    status: str
    expires_at: Optional[datetime] = None
    wallet_address: Optional[str] = None
    traffic: Optional[TrafficInfo] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionStatus":
        return cls(
            id=data.get("id", ""),
            status=data.get("status", "active"),
            expires_at=parse_timestamp(data["expiresAt"]) if data.get("expiresAt") else None,
            wallet_address=data.get("walletAddress"),
            traffic=TrafficInfo.from_dict(data["traffic"]) if data.get("traffic") else None,
        )


@dataclass
class CachedSession:
    """The locally persisted subset of a Session."""
    id: str
    proxy: ProxyCredentials
    expires_at: datetime
    location: LocationInfo
    rotation_url: str = ""
    rotation_token: str = ""

    @classmethod
    def from_session(cls, session: Session) -> "CachedSession":
        return cls(
            id=session.id,
            proxy=session.proxy,
            expires_at=session.expires_at,
            location=session.location,
            rotation_url=session.rotation_url,
            rotation_token=session.rotation_token,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedSession":
        return cls(
            id=data["id"],
            proxy=ProxyCredentials.from_dict(data["proxy"]),
            expires_at=parse_timestamp(data["expiresAt"]),
            location=LocationInfo.from_dict(data.get("location") or {}),
            rotation_url=data.get("rotationUrl") or "",
            rotation_token=data.get("rotationToken") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "proxy": self.proxy.to_dict(),
            "expiresAt": format_timestamp(self.expires_at),
            "location": self.location.to_dict(),
            "rotationUrl": self.rotation_url,
            "rotationToken": self.rotation_token,
        }


@dataclass
class PurchaseResult:
    session: Session
    receipt: TransferReceipt
    amount_paid: str = ""
    currency: str = "USDC"


@dataclass
class ExtensionResult:
    session_id: str
    expires_at: Optional[datetime]
    receipt: TransferReceipt
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RotationResult:
    session_id: str
    new_ip: Optional[str] = None
    carrier: Optional[str] = None


@dataclass
class Pricing:
    """
    Price estimate. `estimated` is True when computed locally; the 402
    challenge amount is the only binding price either way.
    """
    tier: str
    traffic_rate_per_gb: float
    total_cost: float
    traffic_gb: float
    duration_hours: float
    traffic_cost: float
    time_cost: float = 0.0
    estimated: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any], duration_hours: float, traffic_gb: float) -> "Pricing":
        breakdown = data.get("breakdown") or {}
        traffic_cost = float(breakdown.get("trafficCost", data.get("totalCost", 0)))
        return cls(
            tier=data.get("tier", "shared"),
            traffic_rate_per_gb=float(data.get("trafficRatePerGB", 0)),
            total_cost=float(data.get("totalCost", traffic_cost)),
            traffic_gb=float(breakdown.get("trafficGB", traffic_gb)),
            duration_hours=float(breakdown.get("durationHours", duration_hours)),
            traffic_cost=traffic_cost,
            time_cost=float(breakdown.get("timeCost", 0)),
            estimated=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReferenceItem:
    """Country, city or carrier from the reference endpoints."""
    name: str
    code: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceItem":
        return cls(
            name=data.get("name", ""),
            code=data.get("code"),
            is_active=data.get("isActive") is not False,
        )


def parse_reference_list(data: Any) -> List[ReferenceItem]:
    if isinstance(data, dict):
        data = data.get("data") or data.get("items") or []
    return [ReferenceItem.from_dict(item) for item in data or []]

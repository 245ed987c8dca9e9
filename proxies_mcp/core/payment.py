import time
from datetime import datetime, timezone, date
from typing import Callable, Dict, Any, List, Optional, Tuple

import requests
from requests.exceptions import RequestException

from ..constants import (
    DEFAULT_API_BASE_URL,
    NETWORK_BASE,
    HTTP_TIMEOUT_SECONDS,
    PAYMENT_HEADER,
    PRICING_RATES,
    TIER_SHARED,
    USDC_DECIMALS,
)
from ..errors import (
    InsufficientFunds,
    NotFound,
    PostPaymentFulfillmentFailure,
    ProtocolViolation,
    SpendLimitExceeded,
    TransportError,
)
from ..logging_config import get_logger
from .models import (
    ExtensionResult,
    Pricing,
    PurchaseResult,
    ReferenceItem,
    RotationResult,
    Session,
    SessionPayment,
    SessionStatus,
    TransferReceipt,
    CachedSession,
    format_usdc,
    parse_reference_list,
    parse_timestamp,
)
from .wallet import StablecoinWallet
from .x402 import X402, PaymentRequirement

logger = get_logger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class SpendPolicy:
    """
    Optional caps on outgoing payments, in USDC minor units.

    Daily totals are kept in memory for the current process and keyed by
    UTC date; only confirmed transfers are recorded.
    """

    def __init__(
        self,
        max_transaction_minor: Optional[int] = None,
        max_daily_minor: Optional[int] = None,
        today: Callable[[], date] = _utc_today,
    ):
        self.max_transaction_minor = max_transaction_minor
        self.max_daily_minor = max_daily_minor
        self._today = today
        self._spent: Dict[date, int] = {}

    def spent_today(self) -> int:
        return self._spent.get(self._today(), 0)

    def check(self, amount_minor: int) -> None:
        if self.max_transaction_minor is not None and amount_minor > self.max_transaction_minor:
            raise SpendLimitExceeded(amount_minor, self.max_transaction_minor, "Per-transaction")
        if self.max_daily_minor is not None:
            spent = self.spent_today()
            if spent + amount_minor > self.max_daily_minor:
                raise SpendLimitExceeded(amount_minor, self.max_daily_minor, "Daily", already_spent=spent)

    def record(self, amount_minor: int) -> None:
        today = self._today()
        self._spent[today] = self._spent.get(today, 0) + amount_minor


class PaymentGatedClient:
    """
    Client for the x402 resource API.

    Purchase flow: request -> expect 402 -> select option -> balance gate ->
    spend policy -> pay on-chain -> resubmit with X-Payment proof -> 2xx.
    Nothing here retries a payment. Any failure after the transfer confirmed
    is raised as PostPaymentFulfillmentFailure carrying the transaction hash.
    """

    def __init__(
        self,
        wallet: StablecoinWallet,
        base_url: str = DEFAULT_API_BASE_URL,
        preferred_network: str = NETWORK_BASE,
        spend_policy: Optional[SpendPolicy] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.wallet = wallet
        self.base_url = base_url.rstrip("/")
        self.preferred_network = preferred_network
        self.spend_policy = spend_policy or SpendPolicy()
        self.timeout = timeout
        self.x402 = X402()

        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "proxies-sx-mcp/1.0",
        })

        logger.log_service_initialization("PaymentGatedClient", True, {
            "base_url": self.base_url,
            "preferred_network": self.preferred_network,
            "timeout": self.timeout,
        })

    # --- HTTP plumbing ---

    def _url(self, path: str) -> str:
        return f"{self.base_url}/v1{path}"

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """Single HTTP call. Connection errors surface as TransportError."""
        start_time = time.time()
        request_details = {"endpoint": url, "method": method}
        try:
            response = self.session.request(method, url, params=params, headers=headers, timeout=self.timeout)
        except RequestException as e:
            logger.log_api_request(False, request_details, None, {
                "type": type(e).__name__,
                "message": str(e),
            })
            raise TransportError(f"Request to {url} failed: {e}")

        logger.log_api_request(True, request_details, {
            "status_code": response.status_code,
            "response_time_ms": int((time.time() - start_time) * 1000),
        })
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @classmethod
    def _error_detail(cls, response: requests.Response) -> str:
        data = cls._json(response)
        if isinstance(data, dict):
            for key in ("message", "error", "detail"):
                if data.get(key):
                    return str(data[key])
        text = (response.text or "").strip()
        return text[:200] if text else "Unknown error"

    @staticmethod
    def _ok(response: requests.Response) -> bool:
        return 200 <= response.status_code < 300

    # --- 402 flow ---

    def _request_challenge(self, method: str, url: str, params: Optional[Dict[str, Any]]) -> PaymentRequirement:
        response = self._send(method, url, params=params)
        if response.status_code != 402:
            raise ProtocolViolation(
                f"Expected 402 Payment Required, got {response.status_code}: {self._error_detail(response)}",
                status_code=response.status_code,
                body=self._json(response),
            )
        return self.x402.parse_payment_required(self._json(response), response.status_code)

    def _pay(self, requirement: PaymentRequirement) -> TransferReceipt:
        option = self.x402.select_option(requirement, self.preferred_network)
        amount = option.max_amount_required

        logger.log_payment_event("option_selected", {
            "network": option.network,
            "amount": amount,
            "pay_to": option.pay_to,
            "resource": option.resource,
            "preferred_network": self.preferred_network,
        })

        if not self.wallet.has_sufficient_balance(amount):
            balance = self.wallet.get_balance()
            raise InsufficientFunds(
                required=amount,
                available=balance.raw,
                address=self.wallet.address,
                message=(
                    f"Insufficient USDC balance. Required: {format_usdc(amount)}, "
                    f"Available: {balance.formatted}. Please top up wallet: {self.wallet.address}"
                ),
            )

        self.spend_policy.check(amount)

        receipt = self.wallet.send_payment(option.pay_to, amount)
        self.spend_policy.record(receipt.amount)
        return receipt

    def _submit_proof(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        receipt: TransferReceipt,
    ) -> Dict[str, Any]:
        headers = {
            PAYMENT_HEADER: self.x402.encode_payment_proof(receipt.transaction_hash, receipt.network, self.wallet.address),
            "Content-Type": "application/json",
        }

        try:
            response = self._send(method, url, params=params, headers=headers)
        except TransportError as e:
            raise self._fulfillment_failure(receipt, None, e.message)

        if not self._ok(response):
            raise self._fulfillment_failure(receipt, response.status_code, self._error_detail(response))

        body = self._json(response)
        if not isinstance(body, dict):
            raise self._fulfillment_failure(receipt, response.status_code, "response body is not a JSON object")
        return body

    def _fulfillment_failure(
        self,
        receipt: TransferReceipt,
        status_code: Optional[int],
        detail: str,
    ) -> PostPaymentFulfillmentFailure:
        error = PostPaymentFulfillmentFailure(receipt.transaction_hash, status_code, detail, receipt.network)
        logger.log_payment_event("fulfillment", {
            "tx_hash": receipt.transaction_hash,
            "network": receipt.network,
            "amount": receipt.amount,
            "status_code": status_code,
            "detail": detail,
        }, success=False)
        return error

    def purchase_resource(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
    ) -> Tuple[Dict[str, Any], TransferReceipt]:
        """
        Run the full challenge/pay/proof sequence against one endpoint.

        Returns the fulfillment body and the transfer receipt.

        Raises:
            TransportError: the challenge request never got a response
            ProtocolViolation: non-402 challenge or malformed requirement
            InsufficientFunds / SpendLimitExceeded: refused before paying
            OnChainFailure: transfer rejected, reverted or unconfirmed
            PostPaymentFulfillmentFailure: paid, but resource not granted
        """
        url = self._url(path)
        requirement = self._request_challenge(method, url, params)
        receipt = self._pay(requirement)
        body = self._submit_proof(method, url, params, receipt)

        logger.log_payment_event("fulfilled", {
            "tx_hash": receipt.transaction_hash,
            "network": receipt.network,
            "amount": receipt.amount,
            "endpoint": url,
        })
        return body, receipt

    def purchase_proxy(
        self,
        country: str,
        duration_hours: float = 1,
        traffic_gb: float = 1,
        tier: Optional[str] = None,
        city: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> PurchaseResult:
        params = {
            "country": country,
            "duration": int(duration_hours * 3600),
            "traffic": traffic_gb,
        }
        if tier:
            params["tier"] = tier
        if city:
            params["city"] = city
        if carrier:
            params["carrier"] = carrier

        body, receipt = self.purchase_resource("/x402/proxy", params)

        try:
            session = Session.from_dict(body["session"])
        except (KeyError, TypeError, ValueError) as e:
            raise self._fulfillment_failure(receipt, 200, f"malformed session in response: {e}")

        payment = body.get("payment") or {}
        if payment:
            session.payment = SessionPayment.from_dict(payment)
            if not session.payment.transaction_hash:
                session.payment.transaction_hash = receipt.transaction_hash
            if not session.payment.network:
                session.payment.network = receipt.network
        elif session.payment is None:
            session.payment = SessionPayment(
                network=receipt.network,
                transaction_hash=receipt.transaction_hash,
                amount_usdc=f"{receipt.amount / 10 ** USDC_DECIMALS:.2f}",
            )

        return PurchaseResult(
            session=session,
            receipt=receipt,
            amount_paid=str(payment.get("amountPaid", session.payment.amount_usdc)),
            currency=payment.get("currency", "USDC"),
        )

    def extend_session(self, session_id: str, additional_hours: int) -> ExtensionResult:
        """Pay to extend an existing session. NotFound is raised before any payment."""
        self.get_session_status(session_id)

        body, receipt = self.purchase_resource(
            f"/x402/sessions/{session_id}/extend",
            {"hours": additional_hours},
            method="POST",
        )

        data = body.get("session") if isinstance(body.get("session"), dict) else body
        expires_at = None
        if data.get("expiresAt"):
            try:
                expires_at = parse_timestamp(data["expiresAt"])
            except ValueError:
                logger.warning(f"Unparseable expiresAt in extension response for {session_id}")

        return ExtensionResult(session_id=session_id, expires_at=expires_at, receipt=receipt, raw=body)

    # --- plain reads ---

    def get_session_status(self, session_id: str) -> SessionStatus:
        response = self._send("GET", self._url(f"/x402/sessions/{session_id}/status"))
        if response.status_code == 404:
            raise NotFound("Session", session_id)
        if not self._ok(response):
            raise ProtocolViolation(
                f"Failed to get session status ({response.status_code}): {self._error_detail(response)}",
                status_code=response.status_code,
            )
        data = self._json(response)
        if not isinstance(data, dict):
            raise ProtocolViolation("Session status response is not a JSON object", response.status_code)
        data.setdefault("id", session_id)
        try:
            return SessionStatus.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolViolation(f"Malformed session status: {e}", response.status_code, data)

    def list_sessions(self, status: str = "active", wallet_address: Optional[str] = None) -> List[SessionStatus]:
        """Remote session index for a wallet. A 404 means no sessions."""
        address = wallet_address or self.wallet.address
        response = self._send("GET", self._url(f"/x402/sessions/wallet/{address}"), params={"status": status})
        if response.status_code == 404:
            return []
        if not self._ok(response):
            raise ProtocolViolation(
                f"Failed to list sessions ({response.status_code}): {self._error_detail(response)}",
                status_code=response.status_code,
            )

        data = self._json(response)
        if isinstance(data, dict):
            data = data.get("sessions") or []
        if not isinstance(data, list):
            raise ProtocolViolation("Session list response is not a list", response.status_code)
        try:
            return [SessionStatus.from_dict(item) for item in data if isinstance(item, dict)]
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolViolation(f"Malformed session list: {e}", response.status_code, data)

    def rotate_ip(self, session: CachedSession) -> RotationResult:
        if not session.rotation_url:
            raise NotFound("Rotation URL for session", session.id)

        response = self._send("GET", session.rotation_url)
        if not self._ok(response):
            raise ProtocolViolation(
                f"Rotation failed ({response.status_code}): {self._error_detail(response)}",
                status_code=response.status_code,
            )

        data = self._json(response) or {}
        device = data.get("newDevice") or {}
        return RotationResult(session_id=session.id, new_ip=data.get("newIp"), carrier=device.get("carrier"))

    def _get_reference(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[ReferenceItem]:
        response = self._send("GET", self._url(path), params=params)
        if response.status_code == 404:
            return []
        if not self._ok(response):
            raise ProtocolViolation(
                f"Failed to fetch {path.strip('/')} ({response.status_code})",
                status_code=response.status_code,
            )
        return parse_reference_list(self._json(response))

    def get_countries(self) -> List[ReferenceItem]:
        return self._get_reference("/countries")

    def get_cities(self, country: str) -> List[ReferenceItem]:
        return self._get_reference("/cities", {"country": country.upper()})

    def get_carriers(self, country: str) -> List[ReferenceItem]:
        return self._get_reference("/carriers", {"country": country.upper()})

    def get_health(self) -> Dict[str, Any]:
        response = self._send("GET", self._url("/x402/health"))
        if not self._ok(response):
            raise ProtocolViolation(f"Health check failed ({response.status_code})", status_code=response.status_code)
        data = self._json(response)
        return data if isinstance(data, dict) else {"status": "ok"}

    # --- pricing ---

    def calculate_pricing(self, duration_hours: float, traffic_gb: float, tier: Optional[str] = None) -> Pricing:
        """Local advisory estimate. Duration is free; only traffic is priced."""
        tier = tier or TIER_SHARED
        rate = PRICING_RATES[tier]["per_gb"]
        traffic_cost = traffic_gb * rate
        return Pricing(
            tier=tier,
            traffic_rate_per_gb=rate,
            total_cost=traffic_cost,
            traffic_gb=traffic_gb,
            duration_hours=duration_hours,
            traffic_cost=traffic_cost,
        )

    def get_pricing(
        self,
        country: str,
        duration_hours: float = 1,
        traffic_gb: float = 1,
        tier: Optional[str] = None,
    ) -> Pricing:
        """Remote pricing when reachable, otherwise the local estimate."""
        params = {
            "country": country,
            "duration": int(duration_hours * 3600),
            "traffic": traffic_gb,
        }
        if tier:
            params["tier"] = tier

        try:
            response = self._send("GET", self._url("/x402/pricing"), params=params)
            data = self._json(response)
            if self._ok(response) and isinstance(data, dict):
                return Pricing.from_dict(data, duration_hours, traffic_gb)
            logger.debug(f"Remote pricing unavailable ({response.status_code}), using local estimate")
        except TransportError as e:
            logger.debug(f"Remote pricing unreachable, using local estimate: {e}")
        except (TypeError, ValueError) as e:
            logger.debug(f"Remote pricing malformed, using local estimate: {e}")

        return self.calculate_pricing(duration_hours, traffic_gb, tier)

    def close(self) -> None:
        self.session.close()

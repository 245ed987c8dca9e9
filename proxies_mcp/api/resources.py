from typing import Dict, Any, List, Optional

from ..constants import SESSION_TOKEN_HEADER, PAYMENT_SIGNATURE_HEADER
from .client import ApiClient


class AccountApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def get_summary(self) -> Dict[str, Any]:
        return self.client.get("/v1/account/summary")

    def get_traffic_breakdown(self) -> Dict[str, Any]:
        return self.client.get("/v1/traffic/balance-breakdown")


class PortsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(
        self,
        port_type: Optional[str] = None,
        status: Optional[str] = None,
        country_id: Optional[str] = None,
        carrier_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Paginated {data, total, page, limit}; a bare list response is wrapped."""
        result = self.client.get("/v1/ports", params={
            "page": page,
            "limit": limit,
            "type": port_type,
            "status": status,
            "countryId": country_id,
            "carrierId": carrier_id,
        })
        if isinstance(result, list):
            return {"data": result, "total": len(result), "page": 1, "limit": limit, "totalPages": 1}
        return result

    def get(self, port_id: str) -> Dict[str, Any]:
        return self.client.get(f"/v1/ports/{port_id}")


class RotationApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def rotate(self, port_id: str) -> Dict[str, Any]:
        return self.client.post(f"/v1/ports/{port_id}/rotate")

    def can_rotate(self, port_id: str) -> Dict[str, Any]:
        return self.client.get(f"/v1/ports/{port_id}/can-rotate")


class X402SessionApi:
    """
    Management endpoints for an x402 session, authorized by the session
    token returned at purchase time rather than by the account token.
    """

    def __init__(self, client: ApiClient):
        self.client = client

    @staticmethod
    def _token(session_token: str) -> Dict[str, str]:
        return {SESSION_TOKEN_HEADER: session_token}

    def get_session(self, session_token: str) -> Dict[str, Any]:
        return self.client.get("/x402/manage/session", headers=self._token(session_token))

    def list_ports(self, session_token: str) -> List[Dict[str, Any]]:
        result = self.client.get("/x402/manage/ports", headers=self._token(session_token))
        if isinstance(result, dict):
            return result.get("ports") or []
        return result

    def get_port_status(self, session_token: str, port_id: str) -> Dict[str, Any]:
        return self.client.get(f"/x402/manage/ports/{port_id}/status", headers=self._token(session_token))

    def get_sessions_by_wallet(self, wallet_address: str, status: str = "active") -> Dict[str, Any]:
        result = self.client.get(f"/v1/x402/sessions/wallet/{wallet_address}", params={"status": status})
        if isinstance(result, list):
            return {"sessions": result, "total": len(result)}
        return result

    def get_session_status(self, session_id: str) -> Dict[str, Any]:
        return self.client.get(f"/v1/x402/sessions/{session_id}/status")

    def replace_port(
        self,
        session_token: str,
        port_id: Optional[str] = None,
        country: Optional[str] = None,
        city: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {k: v for k, v in (("portId", port_id), ("country", country), ("city", city), ("carrier", carrier)) if v}
        return self.client.post("/x402/manage/ports/replace", body, headers=self._token(session_token))

    def calculate_topup(
        self,
        session_token: str,
        add_traffic_gb: Optional[float] = None,
        add_duration_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        return self.client.get(
            "/x402/manage/session/topup/calculate",
            params={"addTrafficGB": add_traffic_gb or None, "addDurationSeconds": add_duration_seconds or None},
            headers=self._token(session_token),
        )

    def topup(
        self,
        session_token: str,
        payment_signature: str,
        add_traffic_gb: Optional[float] = None,
        add_duration_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        body = {}
        if add_traffic_gb:
            body["addTrafficGB"] = add_traffic_gb
        if add_duration_seconds:
            body["addDurationSeconds"] = add_duration_seconds
        headers = self._token(session_token)
        headers[PAYMENT_SIGNATURE_HEADER] = payment_signature
        return self.client.post("/x402/manage/session/topup", body, headers=headers)


class ProxiesApi:
    """Facade grouping the account API resources around one ApiClient."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.account = AccountApi(client)
        self.ports = PortsApi(client)
        self.rotation = RotationApi(client)
        self.x402 = X402SessionApi(client)

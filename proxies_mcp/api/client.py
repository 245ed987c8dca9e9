"""
HTTP client for the Proxies.sx account REST API.

Authenticates with either an API key (X-API-Key) or a JWT obtained from
email/password login (Authorization: Bearer).
"""

import time
from typing import Dict, Any, Optional, Tuple

import requests
from requests.exceptions import RequestException

from ..constants import DEFAULT_API_BASE_URL, HTTP_TIMEOUT_SECONDS
from ..errors import ApiClientError, ConfigurationError, NotFound, TransportError
from ..logging_config import get_logger

logger = get_logger(__name__)

AUTH_API_KEY = "api_key"
AUTH_JWT = "jwt"


class ApiClient:
    """Service for calling the account API with one authentication token."""

    def __init__(
        self,
        token: str,
        auth_type: str = AUTH_API_KEY,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        if not token:
            raise ConfigurationError("Authentication token is required")
        if not base_url:
            raise ConfigurationError("Base URL is required")

        self.base_url = base_url.rstrip("/")
        self.auth_type = auth_type
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "User-Agent": "proxies-sx-mcp/1.0",
        })
        if auth_type == AUTH_API_KEY:
            self.session.headers["X-API-Key"] = token
        else:
            self.session.headers["Authorization"] = f"Bearer {token}"

        logger.log_service_initialization("ApiClient", True, {
            "base_url": self.base_url,
            "auth_type": self.auth_type,
            "timeout": self.timeout,
        })

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make an API request and return the decoded JSON body.

        Raises:
            NotFound: 404
            ApiClientError: any other non-2xx status
            TransportError: connection failure or timeout
        """
        url = f"{self.base_url}{endpoint}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        request_details = {"endpoint": endpoint, "method": method}
        start_time = time.time()

        try:
            response = self.session.request(
                method,
                url,
                params=params or None,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.log_api_request(False, request_details, None, {
                "type": type(e).__name__,
                "message": str(e),
            })
            raise TransportError(f"Request to {endpoint} failed: {e}")

        response_details = {
            "status_code": response.status_code,
            "response_time_ms": int((time.time() - start_time) * 1000),
        }
        self.handle_api_errors(response, endpoint, request_details)
        logger.log_api_request(True, request_details, response_details)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def handle_api_errors(self, response: requests.Response, endpoint: str, request_details: Dict[str, Any]) -> None:
        if 200 <= response.status_code < 300:
            return

        try:
            error_body = response.json()
        except ValueError:
            error_body = {"message": response.text[:200]}

        message = None
        if isinstance(error_body, dict):
            message = error_body.get("message") or error_body.get("error")
        if not message:
            message = f"HTTP {response.status_code}: {response.reason}"

        logger.log_api_request(False, request_details, None, {
            "type": "ApiClientError",
            "message": message,
            "status_code": response.status_code,
        })

        if response.status_code == 404:
            raise NotFound("Resource", endpoint)
        raise ApiClientError(str(message), response.status_code, error_body)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return self.request("GET", endpoint, params=params, headers=headers)

    def post(self, endpoint: str, body: Any = None, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return self.request("POST", endpoint, params=params, body=body, headers=headers)

    def put(self, endpoint: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("PUT", endpoint, params=params, body=body)

    def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("DELETE", endpoint, params=params)

    def close(self) -> None:
        self.session.close()


def login(base_url: str, email: str, password: str, timeout: float = HTTP_TIMEOUT_SECONDS) -> Dict[str, Any]:
    """Exchange email/password for a JWT at /v1/login/signin."""
    url = f"{base_url.rstrip('/')}/v1/login/signin"
    try:
        response = requests.post(url, json={"email": email, "password": password}, timeout=timeout)
    except RequestException as e:
        raise TransportError(f"Login request failed: {e}")

    if response.status_code < 200 or response.status_code >= 300:
        try:
            message = response.json().get("message")
        except (ValueError, AttributeError):
            message = None
        raise ApiClientError(message or f"Login failed with status {response.status_code}", response.status_code)

    data = response.json()
    if not data.get("access_token"):
        raise ApiClientError("Login response did not include an access token", response.status_code, data)
    return data


def get_auth_token(
    base_url: str,
    api_key: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> Tuple[str, str]:
    """Return (token, auth_type). An API key wins over email/password."""
    if api_key:
        return api_key, AUTH_API_KEY

    if email and password:
        result = login(base_url, email, password)
        logger.info("Authenticated with email/password")
        return result["access_token"], AUTH_JWT

    raise ConfigurationError(
        "Authentication required. Provide either:\n"
        "  - PROXIES_API_KEY: Your API key from https://client.proxies.sx/account\n"
        "  - PROXIES_EMAIL and PROXIES_PASSWORD: Your login credentials"
    )

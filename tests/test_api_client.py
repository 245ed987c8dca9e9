import unittest
from unittest.mock import MagicMock, patch

import requests

from proxies_mcp.api import ApiClient, ProxiesApi, get_auth_token, AUTH_API_KEY, AUTH_JWT
from proxies_mcp.constants import PAYMENT_SIGNATURE_HEADER, SESSION_TOKEN_HEADER
from proxies_mcp.errors import ApiClientError, ConfigurationError, NotFound, TransportError
from proxies_mcp.tools import AccountToolHandlers, X402SessionToolHandlers

from factories import fake_response

BASE_URL = "https://api.example.net"


def with_content(response):
    response.content = response.text.encode() if response.text else b""
    response.reason = "Error"
    return response


class TestApiClient(unittest.TestCase):
    def setUp(self):
        self.client = ApiClient("key_123", AUTH_API_KEY, BASE_URL)
        self.client.session = MagicMock()

    def respond(self, *responses):
        self.client.session.request.side_effect = [with_content(r) for r in responses]

    def test_auth_headers(self):
        self.assertEqual(ApiClient("key_123").session.headers["X-API-Key"], "key_123")
        jwt_client = ApiClient("jwt_abc", AUTH_JWT)
        self.assertEqual(jwt_client.session.headers["Authorization"], "Bearer jwt_abc")
        self.assertNotIn("X-API-Key", jwt_client.session.headers)

    def test_missing_token(self):
        with self.assertRaises(ConfigurationError):
            ApiClient("")

    def test_drops_none_params(self):
        self.respond(fake_response(200, {"ok": True}))

        self.assertEqual(self.client.get("/v1/ports", params={"page": 1, "type": None}), {"ok": True})

        call = self.client.session.request.call_args
        self.assertEqual(call.args, ("GET", f"{BASE_URL}/v1/ports"))
        self.assertEqual(call.kwargs["params"], {"page": 1})

    def test_404_is_not_found(self):
        self.respond(fake_response(404, {"message": "Port not found"}))
        with self.assertRaises(NotFound):
            self.client.get("/v1/ports/p1")

    def test_error_status(self):
        self.respond(fake_response(429, {"message": "Too many requests"}))
        with self.assertRaises(ApiClientError) as ctx:
            self.client.post("/v1/ports/p1/rotate")
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.message, "Too many requests")

    def test_transport_error(self):
        self.client.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportError):
            self.client.get("/v1/account/summary")

    def test_empty_body(self):
        self.respond(fake_response(204, text=""))
        self.assertEqual(self.client.delete("/v1/ports/p1"), {})


class TestAuthToken(unittest.TestCase):
    def test_api_key_wins(self):
        self.assertEqual(get_auth_token(BASE_URL, api_key="k", email="a@b.c", password="p"), ("k", AUTH_API_KEY))

    @patch("proxies_mcp.api.client.requests.post")
    def test_login(self, mock_post):
        mock_post.return_value = fake_response(200, {"access_token": "jwt_1"})

        self.assertEqual(get_auth_token(BASE_URL, email="a@b.c", password="p"), ("jwt_1", AUTH_JWT))
        self.assertEqual(mock_post.call_args.args[0], f"{BASE_URL}/v1/login/signin")
        self.assertEqual(mock_post.call_args.kwargs["json"], {"email": "a@b.c", "password": "p"})

    @patch("proxies_mcp.api.client.requests.post")
    def test_login_rejected(self, mock_post):
        mock_post.return_value = fake_response(401, {"message": "Invalid credentials"})
        with self.assertRaises(ApiClientError) as ctx:
            get_auth_token(BASE_URL, email="a@b.c", password="wrong")
        self.assertEqual(ctx.exception.message, "Invalid credentials")

    def test_no_credentials(self):
        with self.assertRaises(ConfigurationError):
            get_auth_token(BASE_URL)


class ResourceTestCase(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.api = ProxiesApi(self.client)


class TestResources(ResourceTestCase):
    def test_ports_list_wraps_bare_list(self):
        self.client.get.return_value = [{"id": "p1"}]
        result = self.api.ports.list(status="active")
        self.assertEqual(result["total"], 1)
        self.assertEqual(self.client.get.call_args.kwargs["params"]["status"], "active")

    def test_session_token_header(self):
        self.client.get.return_value = {"ports": [{"id": "p1"}]}
        self.assertEqual(self.api.x402.list_ports("x402s_abc"), [{"id": "p1"}])
        self.client.get.assert_called_once_with("/x402/manage/ports", headers={SESSION_TOKEN_HEADER: "x402s_abc"})

    def test_topup_sends_payment_signature(self):
        self.client.post.return_value = {}
        self.api.x402.topup("x402s_abc", "0xsig", add_traffic_gb=2)
        endpoint, body = self.client.post.call_args.args
        headers = self.client.post.call_args.kwargs["headers"]
        self.assertEqual(endpoint, "/x402/manage/session/topup")
        self.assertEqual(body, {"addTrafficGB": 2})
        self.assertEqual(headers[PAYMENT_SIGNATURE_HEADER], "0xsig")
        self.assertEqual(headers[SESSION_TOKEN_HEADER], "x402s_abc")

    def test_replace_port_omits_empty_fields(self):
        self.client.post.return_value = {}
        self.api.x402.replace_port("x402s_abc", port_id="p1", country="US")
        self.assertEqual(self.client.post.call_args.args[1], {"portId": "p1", "country": "US"})


class TestAccountTools(ResourceTestCase):
    def setUp(self):
        super().setUp()
        self.tools = AccountToolHandlers(self.api)

    def test_account_summary(self):
        self.client.get.return_value = {
            "balance": 12.5,
            "currency": "USD",
            "shared": {"slots": {"used": 1, "total": 5, "available": 4}, "trafficGB": {"used": 1, "total": 10, "available": 9}},
            "alerts": ["Low traffic"],
        }
        text = self.tools.get_account_summary()
        self.assertIn("Balance: $12.50 USD", text)
        self.assertIn("Slots: 1/5 (4 available)", text)
        self.assertIn("- Low traffic", text)

    def test_list_ports_empty(self):
        self.client.get.return_value = {"data": [], "total": 0}
        self.assertEqual(self.tools.list_ports(), "No ports found matching the criteria.")

    def test_list_ports_table(self):
        self.client.get.return_value = {"data": [{"displayName": "port-1", "slotType": "shared", "status": "active"}], "total": 1}
        text = self.tools.list_ports()
        self.assertIn("Found 1 ports (showing 1):", text)
        self.assertIn("port-1", text)

    def test_get_port_connection_strings(self):
        self.client.get.return_value = {
            "id": "p1", "displayName": "port-1", "proxyLogin": "u", "proxyPassword": "pw",
            "serverIp": "10.0.0.1", "httpPort": 8000, "socksPort": 9000,
        }
        text = self.tools.get_port("p1")
        self.assertIn("http://u:pw@10.0.0.1:8000", text)
        self.assertIn("socks5://u:pw@10.0.0.1:9000", text)

    def test_rotate_unavailable(self):
        self.client.get.return_value = {"canRotate": False, "reason": "Cooldown active"}
        self.assertIn("Cannot rotate port: Cooldown active", self.tools.rotate_port("p1"))
        self.client.post.assert_not_called()

    def test_api_error_becomes_text(self):
        self.client.get.side_effect = ApiClientError("Unauthorized", 401)
        self.assertEqual(self.tools.get_account_usage(), "Failed to get traffic breakdown: Unauthorized (HTTP 401)")


class TestX402SessionTools(ResourceTestCase):
    def setUp(self):
        super().setUp()
        self.tools = X402SessionToolHandlers(self.api)

    def test_unknown_session(self):
        self.client.get.side_effect = NotFound("Resource", "/x402/manage/session")
        self.assertIn("Session not found or expired", self.tools.get_x402_session("x402s_bad"))

    def test_session_status_bar(self):
        self.client.get.return_value = {
            "id": "s1", "status": "active",
            "traffic": {"percentUsed": 45, "allowedGB": 2, "usedGB": 0.9, "remainingGB": 1.1},
        }
        text = self.tools.get_session_status("s1")
        self.assertIn("[████░░░░░░] 45.0%", text)

    def test_free_topup_hint(self):
        self.client.get.return_value = {"totalCost": 0, "trafficCost": 0, "durationCost": 0, "breakdown": {}}
        self.assertIn("free duration-only extension", self.tools.calculate_x402_topup("x402s_abc", add_duration_seconds=3600))


if __name__ == '__main__':
    unittest.main()

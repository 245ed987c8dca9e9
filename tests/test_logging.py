import json
import logging
import unittest

from proxies_mcp.errors import PostPaymentFulfillmentFailure
from proxies_mcp.logging_config import GatewayLogger, StructuredFormatter


class CapturingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.formatter = StructuredFormatter()
        self.lines = []

    def emit(self, record):
        self.lines.append(json.loads(self.format(record)))


class TestStructuredLogging(unittest.TestCase):
    def setUp(self):
        self.handler = CapturingHandler()
        self.stdlib_logger = logging.getLogger("proxies_mcp.tests.logging")
        self.stdlib_logger.addHandler(self.handler)
        self.stdlib_logger.setLevel(logging.DEBUG)
        self.logger = GatewayLogger("proxies_mcp.tests.logging")

    def tearDown(self):
        self.stdlib_logger.removeHandler(self.handler)

    def test_payment_event(self):
        self.logger.log_payment_event("transfer_confirmed", {"tx_hash": "0xabc", "amount": 4000000})

        entry = self.handler.lines[-1]
        self.assertEqual(entry["level"], "INFO")
        self.assertEqual(entry["message"], "Payment transfer_confirmed")
        self.assertEqual(entry["payment_context"]["tx_hash"], "0xabc")
        self.assertEqual(entry["payment_context"]["event_type"], "payment")

    def test_error_with_severity(self):
        error = PostPaymentFulfillmentFailure("0xabc", 500, "boom")
        self.logger.log_error(error, {"tool": "x402_get_proxy"}, severity="WARNING")

        entry = self.handler.lines[-1]
        self.assertEqual(entry["level"], "WARNING")
        self.assertIn("0xabc", entry["context"]["error_message"])
        self.assertEqual(entry["context"]["context"], {"tool": "x402_get_proxy"})

    def test_secrets_are_redacted(self):
        self.logger.log_service_initialization("ApiClient", True, {"api_key": "secret", "base_url": "https://x"})

        details = self.handler.lines[-1]["context"]["details"]
        self.assertEqual(details["api_key"], "***")
        self.assertEqual(details["base_url"], "https://x")

    def test_failed_api_request_is_warning(self):
        self.logger.log_api_request(False, {"endpoint": "/v1/ports", "method": "GET"}, None,
                                    {"type": "ConnectionError", "message": "refused"})

        entry = self.handler.lines[-1]
        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["api_context"]["error"]["message"], "refused")


if __name__ == '__main__':
    unittest.main()

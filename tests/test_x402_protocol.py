import json
import unittest

from hypothesis import given, strategies as st

from proxies_mcp.core.x402 import X402, PaymentOption
from proxies_mcp.errors import ProtocolViolation

from factories import payment_option, payment_required, PAY_TO


class TestParsePaymentRequired(unittest.TestCase):
    def setUp(self):
        self.x402 = X402()

    def test_parses_options_in_server_order(self):
        body = payment_required(payment_option("solana", "5000000", "SoLRecipient"), payment_option("base"))
        requirement = self.x402.parse_payment_required(body)

        self.assertEqual(requirement.x402_version, 1)
        self.assertEqual([o.network for o in requirement.accepts], ["solana", "base"])
        self.assertEqual(requirement.accepts[1].max_amount_required, 4000000)
        self.assertEqual(requirement.accepts[1].pay_to, PAY_TO)

    def test_missing_requirement(self):
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required({"error": "Payment required"})

    def test_non_object_body(self):
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required(None)
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required(["accepts"])

    def test_empty_accepts(self):
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required(payment_required())

    def test_option_without_recipient(self):
        option = payment_option()
        del option["payTo"]
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required(payment_required(option))

    def test_option_with_non_numeric_amount(self):
        with self.assertRaises(ProtocolViolation):
            self.x402.parse_payment_required(payment_required(payment_option(amount="four dollars")))

    def test_negative_amount(self):
        with self.assertRaises(ProtocolViolation):
            PaymentOption.from_dict(payment_option(amount="-1"))

    def test_status_code_is_kept_on_violation(self):
        try:
            self.x402.parse_payment_required({}, status_code=402)
        except ProtocolViolation as e:
            self.assertEqual(e.status_code, 402)
        else:
            self.fail("ProtocolViolation not raised")


class TestSelectOption(unittest.TestCase):
    def setUp(self):
        self.x402 = X402()

    def test_exact_match_wins(self):
        requirement = self.x402.parse_payment_required(
            payment_required(payment_option("solana", pay_to="SoLRecipient"), payment_option("base"))
        )
        self.assertEqual(self.x402.select_option(requirement, "base").network, "base")

    def test_falls_back_to_first_option(self):
        requirement = self.x402.parse_payment_required(
            payment_required(payment_option("base"), payment_option("base-sepolia"))
        )
        self.assertEqual(self.x402.select_option(requirement, "solana").network, "base")

    def test_match_is_exact_not_prefix(self):
        requirement = self.x402.parse_payment_required(
            payment_required(payment_option("base-sepolia"), payment_option("base"))
        )
        self.assertEqual(self.x402.select_option(requirement, "base").network, "base")

    @given(st.lists(st.sampled_from(["base", "solana", "polygon", "base-sepolia"]), min_size=1, max_size=6),
           st.sampled_from(["base", "solana", "arbitrum"]))
    def test_selection_rule(self, networks, preferred):
        requirement = self.x402.parse_payment_required(
            payment_required(*[payment_option(n, pay_to=f"recipient-{i}") for i, n in enumerate(networks)])
        )
        chosen = self.x402.select_option(requirement, preferred)
        if preferred in networks:
            self.assertEqual(chosen.pay_to, f"recipient-{networks.index(preferred)}")
        else:
            self.assertEqual(chosen.pay_to, "recipient-0")


class TestPaymentProof(unittest.TestCase):
    def test_proof_is_json_with_three_fields(self):
        header = X402().encode_payment_proof("0xdead", "base", "0xpayer")
        self.assertEqual(json.loads(header), {"transactionHash": "0xdead", "network": "base", "payer": "0xpayer"})

    def test_proof_keeps_payer_checksum_case(self):
        payer = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        header = X402().encode_payment_proof("0xdead", "base", payer)
        self.assertEqual(json.loads(header)["payer"], payer)


if __name__ == '__main__':
    unittest.main()

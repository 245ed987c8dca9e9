import json
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from ..errors import ProtocolViolation


@dataclass(frozen=True)
class PaymentOption:
    """One acceptable way to pay, as listed in a 402 challenge's `accepts`."""
    scheme: str
    network: str
    chain_id: str
    max_amount_required: int
    resource: str
    description: str
    mime_type: str
    pay_to: str
    max_timeout_seconds: int
    asset: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentOption":
        if not isinstance(data, dict):
            raise ProtocolViolation(f"Malformed payment option: {data!r}")
        try:
            amount = int(str(data["maxAmountRequired"]))
            pay_to = data["payTo"]
            network = data["network"]
        except (KeyError, ValueError, TypeError) as e:
            raise ProtocolViolation(f"Malformed payment option: {e}", body=data)
        if amount < 0 or not pay_to or not network:
            raise ProtocolViolation("Malformed payment option: missing amount, network or recipient", body=data)
        return cls(
            scheme=data.get("scheme", "exact"),
            network=network,
            chain_id=str(data.get("chainId", "")),
            max_amount_required=amount,
            resource=data.get("resource", ""),
            description=data.get("description", ""),
            mime_type=data.get("mimeType", ""),
            pay_to=pay_to,
            max_timeout_seconds=int(data.get("maxTimeoutSeconds") or 0),
            asset=data.get("asset", ""),
        )


@dataclass(frozen=True)
class PaymentRequirement:
    x402_version: int
    accepts: List[PaymentOption]
    output_schema: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class X402:
    """
    x402 utilities: parsing 402 challenges, choosing a payment option and
    encoding the payment proof header.
    """

    def parse_payment_required(self, body: Any, status_code: int = 402) -> PaymentRequirement:
        """
        Extracts the payment requirement from a 402 response body.
        Raises ProtocolViolation if it is absent or lists no options.
        """
        if not isinstance(body, dict):
            raise ProtocolViolation("402 response body is not a JSON object", status_code, body)

        requirement = body.get("paymentRequirement")
        if not isinstance(requirement, dict):
            raise ProtocolViolation("Missing paymentRequirement in 402 response", status_code, body)

        accepts = requirement.get("accepts")
        if not isinstance(accepts, list) or not accepts:
            raise ProtocolViolation("402 response lists no payment options", status_code, body)

        try:
            version = int(requirement.get("x402Version", 1))
        except (TypeError, ValueError):
            raise ProtocolViolation("Invalid x402Version in 402 response", status_code, body)

        return PaymentRequirement(
            x402_version=version,
            accepts=[PaymentOption.from_dict(option) for option in accepts],
            output_schema=requirement.get("outputSchema"),
            extra=requirement.get("extra") or {},
        )

    def select_option(self, requirement: PaymentRequirement, preferred_network: str) -> PaymentOption:
        """
        Exact-match the preferred network, otherwise take the first option
        in server order.
        """
        for option in requirement.accepts:
            if option.network == preferred_network:
                return option
        if requirement.accepts:
            return requirement.accepts[0]
        raise ProtocolViolation("No payment options available in 402 response")

    def encode_payment_proof(self, transaction_hash: str, network: str, payer: str) -> str:
        """
        Encodes the proof-of-payment for the X-Payment header.
        """
        return json.dumps({
            "transactionHash": transaction_hash,
            "network": network,
            "payer": payer,
        })

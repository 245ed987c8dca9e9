"""Shared builders for HTTP responses, wallet doubles and session payloads."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from proxies_mcp.core.models import TransferReceipt, WalletBalance, format_timestamp

WALLET_ADDRESS = "0xAbC0000000000000000000000000000000000001"
PAY_TO = "0x1111111111111111111111111111111111111111"
TX_HASH = "0x" + "ab" * 32


def fake_response(status_code=200, body=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
        response.text = text or ""
    else:
        response.json.return_value = body
        response.text = json.dumps(body)
    return response


def payment_required(*options, version=1):
    return {"paymentRequirement": {"x402Version": version, "accepts": list(options)}}


def payment_option(network="base", amount="4000000", pay_to=PAY_TO):
    return {
        "scheme": "exact",
        "network": network,
        "maxAmountRequired": amount,
        "resource": "/v1/x402/proxy",
        "description": "Mobile proxy",
        "mimeType": "application/json",
        "payTo": pay_to,
        "maxTimeoutSeconds": 300,
        "asset": "USDC",
    }


def session_payload(session_id="sess_1", expires_in=timedelta(hours=1), country_code="US"):
    return {
        "id": session_id,
        "status": "active",
        "expiresAt": format_timestamp(datetime.now(timezone.utc) + expires_in),
        "proxy": {
            "host": "proxy.example.net",
            "httpPort": 8080,
            "socksPort": 1080,
            "username": "user",
            "password": "pass",
        },
        "location": {"country": "United States", "countryCode": country_code},
        "traffic": {"allowedGB": 1},
        "rotationUrl": f"https://api.example.net/rotate/{session_id}",
        "rotationToken": "rot_token",
    }


def purchase_body(session_id="sess_1"):
    return {
        "success": True,
        "session": session_payload(session_id),
        "payment": {"network": "base", "transactionHash": TX_HASH, "amountPaid": "4.00", "currency": "USDC"},
    }


def mock_wallet(balance=10_000_000, tx_hash=TX_HASH, network="base"):
    """Wallet double whose send_payment returns a receipt for whatever it is asked to pay."""
    wallet = MagicMock()
    wallet.address = WALLET_ADDRESS
    wallet.network = network
    wallet.has_sufficient_balance.side_effect = lambda amount: balance >= amount
    wallet.get_balance.return_value = WalletBalance(balance, f"${balance / 1e6:.2f} USDC", network)
    wallet.send_payment.side_effect = lambda recipient, amount: TransferReceipt(tx_hash, network, amount, recipient)
    return wallet

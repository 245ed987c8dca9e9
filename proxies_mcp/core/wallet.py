from decimal import Decimal
from typing import Dict, Any

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from ..constants import (
    BASE_RPC_URL,
    BASE_CHAIN_ID,
    USDC_BASE,
    NATIVE_DECIMALS,
    NETWORK_BASE,
    HTTP_TIMEOUT_SECONDS,
    CONFIRMATION_TIMEOUT_SECONDS,
)
from ..contracts import load_abi
from ..errors import (
    ConfigurationError,
    InsufficientFunds,
    InvalidRecipientError,
    OnChainFailure,
    WalletReadError,
)
from ..logging_config import get_logger
from .models import TransferReceipt, WalletBalance, FeeEstimate, format_usdc

logger = get_logger(__name__)


class StablecoinWallet:
    """
    Holds the agent's signing key for one EVM network and moves a single
    ERC-20 stablecoin (USDC on Base by default).

    send_payment() is the only state-mutating call and it is not idempotent:
    calling it twice sends two payments.
    """

    def __init__(
        self,
        private_key: str,
        rpc_url: str = BASE_RPC_URL,
        token_address: str = USDC_BASE,
        chain_id: int = BASE_CHAIN_ID,
        network: str = NETWORK_BASE,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT_SECONDS,
        request_timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        if not private_key:
            raise ConfigurationError("Wallet private key is required. Set AGENT_WALLET_KEY environment variable.")
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"

        try:
            self.account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid wallet private key: {e}")
        self._private_key = private_key

        self.network = network
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout

        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self.token_address = Web3.to_checksum_address(token_address)
        self.token = self.w3.eth.contract(address=self.token_address, abi=load_abi("ERC20"))

        logger.log_service_initialization("StablecoinWallet", True, {
            "address": self.address,
            "network": self.network,
            "rpc_url": rpc_url,
            "token": self.token_address,
        })

    @property
    def address(self) -> str:
        return self.account.address

    def get_balance(self) -> WalletBalance:
        """USDC balance in minor units plus a display string."""
        try:
            raw = int(self.token.functions.balanceOf(self.address).call())
        except (Web3Exception, ValueError, OSError) as e:
            raise WalletReadError(f"Failed to get balance: {e}")
        return WalletBalance(raw=raw, formatted=format_usdc(raw), network=self.network)

    def get_gas_balance(self) -> str:
        """Native-asset (ETH) balance used to pay network fees, as a display string."""
        try:
            wei = int(self.w3.eth.get_balance(self.address))
        except (Web3Exception, ValueError, OSError) as e:
            raise WalletReadError(f"Failed to get ETH balance: {e}")
        eth = Decimal(wei) / Decimal(10 ** NATIVE_DECIMALS)
        return f"{eth:.6f} ETH"

    def has_sufficient_balance(self, required_minor: int) -> bool:
        return self.get_balance().raw >= int(required_minor)

    def _validate_recipient(self, recipient: str) -> str:
        if not isinstance(recipient, str) or not recipient.startswith("0x") or len(recipient) != 42:
            raise InvalidRecipientError(recipient)
        if not Web3.is_address(recipient):
            raise InvalidRecipientError(recipient)
        return Web3.to_checksum_address(recipient)

    def send_payment(self, recipient: str, amount_minor: int) -> TransferReceipt:
        """
        Transfer `amount_minor` USDC units to `recipient` and wait for one
        confirmation.

        Raises:
            InvalidRecipientError: malformed recipient, nothing sent
            InsufficientFunds: USDC or gas balance too low, nothing sent
            OnChainFailure: rejected, reverted or not confirmed in time
        """
        to = self._validate_recipient(recipient)
        amount = int(amount_minor)

        balance = self.get_balance()
        if balance.raw < amount:
            raise InsufficientFunds(
                required=amount,
                available=balance.raw,
                address=self.address,
                message=(
                    f"Insufficient USDC balance. Required: {format_usdc(amount)}, "
                    f"Available: {balance.formatted}"
                ),
            )

        try:
            nonce = self.w3.eth.get_transaction_count(self.address, "pending")
            tx = self.token.functions.transfer(to, amount).build_transaction({
                "from": self.address,
                "chainId": self.chain_id,
                "nonce": nonce,
            })
            signed_tx = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except (Web3Exception, ValueError, OSError) as e:
            message = str(e)
            if "insufficient funds" in message.lower():
                raise InsufficientFunds(
                    required=0,
                    available=0,
                    address=self.address,
                    asset="ETH",
                    message="Insufficient ETH for gas fees. Please add ETH to your wallet.",
                )
            raise OnChainFailure(f"USDC transfer rejected: {message}", OnChainFailure.REJECTED)

        tx_hex = self.w3.to_hex(tx_hash)
        logger.log_payment_event("transfer_broadcast", {
            "tx_hash": tx_hex,
            "network": self.network,
            "amount": amount,
            "recipient": to,
        })

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)
        except TimeExhausted:
            raise OnChainFailure(
                f"Transaction not confirmed within {self.confirmation_timeout:.0f}s; it may still confirm",
                OnChainFailure.TIMEOUT,
                tx_hash=tx_hex,
            )
        except (Web3Exception, OSError) as e:
            raise OnChainFailure(
                f"Lost contact with RPC while awaiting confirmation: {e}",
                OnChainFailure.TIMEOUT,
                tx_hash=tx_hex,
            )

        if receipt["status"] != 1:
            raise OnChainFailure("Transaction failed on-chain", OnChainFailure.REVERTED, tx_hash=tx_hex)

        transfer = TransferReceipt(
            transaction_hash=tx_hex,
            network=self.network,
            amount=amount,
            recipient=to,
        )
        logger.log_payment_event("transfer_confirmed", {
            "tx_hash": tx_hex,
            "network": self.network,
            "amount": amount,
            "recipient": to,
            "block": receipt.get("blockNumber"),
        })
        return transfer

    def estimate_fee(self, recipient: str, amount_minor: int) -> FeeEstimate:
        """Best-effort gas estimate for a transfer. Display only."""
        to = self._validate_recipient(recipient)
        try:
            gas = int(self.token.functions.transfer(to, int(amount_minor)).estimate_gas({"from": self.address}))
            gas_price = int(self.w3.eth.gas_price)
        except (Web3Exception, ValueError, OSError) as e:
            raise WalletReadError(f"Failed to estimate gas: {e}")
        cost = gas * gas_price
        eth = Decimal(cost) / Decimal(10 ** NATIVE_DECIMALS)
        return FeeEstimate(gas=gas, gas_price_wei=gas_price, cost_wei=cost, formatted=f"{eth:.6f} ETH")

    def get_info(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "network": self.network,
            "usdc_balance": self.get_balance(),
            "gas_balance": self.get_gas_balance(),
        }


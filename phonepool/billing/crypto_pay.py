"""
Crypto Pay Client
=================

Async client for the Crypto Pay API (Telegram CryptoBot).

Every method is a JSON POST to ``/<method>`` with the API token in the
``Crypto-Pay-API-Token`` header; replies use an ``{ok, result, error}``
envelope.

Webhooks are signed: the key is ``HMAC-SHA256("WebAppData", token)`` and
the signature is the hex ``HMAC-SHA256(key, raw_body)``.

Usage:
    client = CryptoPayClient(token="...", testnet=True)
    rates = await client.get_exchange_rates()
    invoice = await client.create_invoice("USDT", "16.20", payload='{"planId": "1week"}')
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from phonepool.errors import PaymentError
from phonepool.utils.logger import get_logger
from phonepool.utils.security import SecureString, hmac_sha256, signatures_match

logger = get_logger(__name__)

MAINNET_URL = "https://pay.crypt.bot/api"
TESTNET_URL = "https://testnet-pay.crypt.bot/api"

SUPPORTED_ASSETS: tuple[str, ...] = ("USDT", "BTC", "TON", "LTC", "ETH")

# Domain-separation label for the webhook signing key
WEBHOOK_KEY_LABEL = b"WebAppData"

SIGNATURE_HEADER = "crypto-pay-api-signature"


@dataclass
class ExchangeRate:
    source: str
    target: str
    rate: str
    is_valid: bool

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ExchangeRate":
        return cls(
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            rate=str(data.get("rate", "0")),
            is_valid=bool(data.get("is_valid", False)),
        )


@dataclass
class Invoice:
    """
    A Crypto Pay invoice.

    Attributes:
        invoice_id: Processor invoice id (stored as a string).
        status: "active", "paid" or "expired".
        asset: Crypto asset ticker.
        amount: Amount in the asset, as a decimal string.
        pay_url: Customer-facing payment link.
        payload: Opaque payload echoed back by the processor.
    """

    invoice_id: str
    status: str
    asset: str
    amount: str
    pay_url: Optional[str] = None
    payload: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Invoice":
        return cls(
            invoice_id=str(data.get("invoice_id")),
            status=str(data.get("status", "")),
            asset=str(data.get("asset", "")),
            amount=str(data.get("amount", "")),
            pay_url=data.get("bot_invoice_url") or data.get("mini_app_invoice_url") or data.get("pay_url"),
            payload=data.get("payload"),
            raw=data,
        )


def compute_signature(token: str, raw_body: bytes) -> str:
    """Hex webhook signature for ``raw_body`` under the API token."""
    key = hmac_sha256(WEBHOOK_KEY_LABEL, token.encode("utf-8"))
    return hmac_sha256(key, raw_body).hex()


class CryptoPayClient:
    """Crypto Pay API client."""

    def __init__(
        self,
        token: str,
        testnet: bool = False,
        bot_username: str = "",
        timeout: float = 30.0,
    ) -> None:
        self._token = SecureString(token)
        self.base_url = TESTNET_URL if testnet else MAINNET_URL
        self.bot_username = bot_username
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info("Crypto Pay client initialized", network="testnet" if testnet else "mainnet")

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Crypto-Pay-API-Token": self._token.get_secret(),
                    "Content-Type": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Call an API method and unwrap the envelope.

        Raises:
            PaymentError: On transport failure or ``ok: false``.
        """
        if not self.enabled:
            raise PaymentError("Crypto Pay is not configured")

        session = await self._get_session()
        try:
            async with session.post(f"{self.base_url}/{method}", json=params or {}) as response:
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Crypto Pay request failed", method=method, error=str(e))
            raise PaymentError(f"Crypto Pay request failed: {e}") from e

        if not isinstance(data, dict) or not data.get("ok"):
            error = (data.get("error") or {}) if isinstance(data, dict) else {}
            name = error.get("name") if isinstance(error, dict) else str(error)
            logger.error("Crypto Pay API error", method=method, error=name)
            raise PaymentError(name or "Crypto Pay API error")
        return data.get("result")

    async def get_exchange_rates(self) -> list[ExchangeRate]:
        result = await self._call("getExchangeRates")
        return [ExchangeRate.from_api(item) for item in result or []]

    async def create_invoice(
        self,
        asset: str,
        amount: str,
        description: Optional[str] = None,
        payload: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> Invoice:
        """
        Create an invoice.

        Args:
            asset: Crypto asset ticker.
            amount: Amount in the asset, as a decimal string.
            description: Shown to the payer.
            payload: Opaque data echoed back on the invoice.
            expires_in: Invoice lifetime in seconds.

        Returns:
            The created invoice.

        Raises:
            PaymentError: If the processor rejects the request.
        """
        params: dict[str, Any] = {"asset": asset, "amount": amount}
        if description:
            params["description"] = description
        if payload:
            params["payload"] = payload
        if expires_in:
            params["expires_in"] = expires_in
        if self.bot_username:
            params["paid_btn_name"] = "callback"
            params["paid_btn_url"] = f"https://t.me/{self.bot_username}"

        invoice = Invoice.from_api(await self._call("createInvoice", params))
        logger.info("Invoice created", invoice_id=invoice.invoice_id, asset=asset, amount=amount)
        return invoice

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        """Fetch one invoice. None if it is unknown or the call failed."""
        try:
            result = await self._call("getInvoices", {"invoice_ids": str(invoice_id)})
        except PaymentError:
            return None
        items = result.get("items") if isinstance(result, dict) else None
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return None
        return Invoice.from_api(items[0])

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Check a webhook signature against the raw request body."""
        if not self.enabled or not signature:
            return False
        expected = compute_signature(self._token.get_secret(), raw_body)
        return signatures_match(expected, signature)

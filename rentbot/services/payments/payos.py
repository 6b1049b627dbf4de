from __future__ import annotations

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp


class PayOSError(RuntimeError):
    pass


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    qr_code: str
    payment_link_id: str | None = None


class PaymentGateway(Protocol):
    async def create_payment_link(self, *, amount: int, order_code: int, description: str) -> CheckoutResult: ...

    async def get_payment_status(self, order_code: int) -> str: ...

    def verify_webhook(self, data: dict[str, Any], signature: str) -> bool: ...


def _sign(payload: str, checksum_key: str) -> str:
    return hmac.new(checksum_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _canonical_value(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (list, dict)):
        return json.dumps(v, separators=(",", ":"), ensure_ascii=False)
    return str(v)


def sign_data(data: dict[str, Any], checksum_key: str) -> str:
    """HMAC-SHA256 over ``k1=v1&k2=v2`` with keys sorted alphabetically."""
    payload = "&".join(f"{k}={_canonical_value(data[k])}" for k in sorted(data))
    return _sign(payload, checksum_key)


def sign_payment_request(
    *, amount: int, cancel_url: str, description: str, order_code: int, return_url: str, checksum_key: str
) -> str:
    return sign_data(
        {
            "amount": amount,
            "cancelUrl": cancel_url,
            "description": description,
            "orderCode": order_code,
            "returnUrl": return_url,
        },
        checksum_key,
    )


def verify_webhook_signature(data: dict[str, Any], signature: str, checksum_key: str) -> bool:
    if not signature or not isinstance(data, dict):
        return False
    return hmac.compare_digest(sign_data(data, checksum_key), signature)


class PayOSClient:
    """Minimal PayOS payment-requests client.

    Docs: https://payos.vn/docs/api/
    """

    def __init__(
        self,
        *,
        client_id: str,
        api_key: str,
        checksum_key: str,
        return_url: str,
        cancel_url: str,
        base_url: str = "https://api-merchant.payos.vn",
        expiry_hours: int = 24,
        timeout_seconds: int = 20,
    ) -> None:
        self._client_id = client_id
        self._api_key = api_key
        self._checksum_key = checksum_key
        self._return_url = return_url
        self._cancel_url = cancel_url
        self._base_url = base_url.rstrip("/")
        self._expiry_hours = expiry_hours
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self._client_id,
            "x-api-key": self._api_key,
            "Content-Type": "application/json",
        }

    def build_payment_request(self, *, amount: int, order_code: int, description: str) -> dict[str, Any]:
        # PayOS caps description at 25 characters
        description = description[:25]
        return {
            "orderCode": int(order_code),
            "amount": int(amount),
            "description": description,
            "cancelUrl": self._cancel_url,
            "returnUrl": self._return_url,
            "expiredAt": int(time.time()) + self._expiry_hours * 3600,
            "signature": sign_payment_request(
                amount=int(amount),
                cancel_url=self._cancel_url,
                description=description,
                order_code=int(order_code),
                return_url=self._return_url,
                checksum_key=self._checksum_key,
            ),
        }

    async def create_payment_link(self, *, amount: int, order_code: int, description: str) -> CheckoutResult:
        url = f"{self._base_url}/v2/payment-requests"
        body = self.build_payment_request(amount=amount, order_code=order_code, description=description)

        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.post(url, json=body, headers=self._headers()) as resp:
                data = await _read_json_best_effort(resp)
                if resp.status >= 400:
                    raise PayOSError(f"PayOS create_payment_link failed: HTTP {resp.status}: {data}")

        if str(data.get("code")) != "00":
            raise PayOSError(f"PayOS create_payment_link rejected: {data.get('code')} {data.get('desc')}")
        payload = data.get("data") or {}
        checkout_url = str(payload.get("checkoutUrl") or "").strip()
        if not checkout_url:
            raise PayOSError(f"PayOS create_payment_link: unexpected response: {data}")
        return CheckoutResult(
            checkout_url=checkout_url,
            qr_code=str(payload.get("qrCode") or checkout_url),
            payment_link_id=str(payload.get("paymentLinkId") or "") or None,
        )

    async def get_payment_status(self, order_code: int) -> str:
        """PAID, PENDING, PROCESSING, CANCELLED or EXPIRED."""
        url = f"{self._base_url}/v2/payment-requests/{int(order_code)}"
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.get(url, headers=self._headers()) as resp:
                data = await _read_json_best_effort(resp)
                if resp.status >= 400:
                    raise PayOSError(f"PayOS get_payment_status failed: HTTP {resp.status}: {data}")

        payload = data.get("data") or {}
        return str(payload.get("status") or "UNKNOWN").strip().upper()

    def verify_webhook(self, data: dict[str, Any], signature: str) -> bool:
        return verify_webhook_signature(data, signature, self._checksum_key)


class MockGateway:
    """Offline gateway: fake checkout links, payments stay PENDING until a signed webhook arrives."""

    def __init__(self, checksum_key: str = "mock-checksum-key", base_url: str = "https://pay.example.com") -> None:
        self.checksum_key = checksum_key
        self._base_url = base_url.rstrip("/")
        self.statuses: dict[int, str] = {}

    async def create_payment_link(self, *, amount: int, order_code: int, description: str) -> CheckoutResult:
        url = f"{self._base_url}/checkout/{int(order_code)}?amount={int(amount)}"
        self.statuses.setdefault(int(order_code), "PENDING")
        return CheckoutResult(checkout_url=url, qr_code=url, payment_link_id=f"mock-{order_code}")

    async def get_payment_status(self, order_code: int) -> str:
        return self.statuses.get(int(order_code), "PENDING")

    def verify_webhook(self, data: dict[str, Any], signature: str) -> bool:
        return verify_webhook_signature(data, signature, self.checksum_key)


async def _read_json_best_effort(resp: aiohttp.ClientResponse) -> dict[str, Any]:
    """Read JSON while staying resilient to broken/missing content-type."""
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError):
        try:
            txt = await resp.text()
        except aiohttp.ClientError:
            txt = ""
        return {"_raw": txt}
    return data if isinstance(data, dict) else {"_raw": data}

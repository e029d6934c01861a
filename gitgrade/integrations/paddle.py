"""Paddle Billing API: transactions + webhook signature (Paddle-Signature: ts=...;h1=...)."""
import hashlib
import hmac
import json
import time
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from gitgrade.core.config import settings
from gitgrade.core.errors import PaymentProviderError

API_URL = "https://api.paddle.com"
SANDBOX_API_URL = "https://sandbox-api.paddle.com"
CHECKOUT_URL = "https://checkout.paddle.com/checkout/custom"
SANDBOX_CHECKOUT_URL = "https://sandbox-checkout.paddle.com/checkout/custom"


class PaddleClient:
    def __init__(self, api_key: str | None = None, sandbox: bool | None = None, timeout: float | None = None):
        self.api_key = settings.paddle_api_key if api_key is None else api_key
        self.sandbox = settings.paddle_sandbox if sandbox is None else sandbox
        self.timeout = timeout or settings.paddle_timeout_seconds

    @property
    def base_url(self) -> str:
        return SANDBOX_API_URL if self.sandbox else API_URL

    @property
    def checkout_url(self) -> str:
        return SANDBOX_CHECKOUT_URL if self.sandbox else CHECKOUT_URL

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        data = json.dumps(body).encode() if body is not None else None
        req = Request(
            f"{self.base_url}{path}",
            data=data,
            method=method,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                result = json.loads(resp.read().decode())
        except HTTPError as e:
            raise PaymentProviderError(f"Paddle API returned HTTP {e.code} for {method} {path}") from e
        except (URLError, OSError, ValueError) as e:
            raise PaymentProviderError(f"Paddle connection error: {str(e)[:80]}") from e
        payload = result.get("data") if isinstance(result, dict) else None
        if not isinstance(payload, dict):
            raise PaymentProviderError(f"Unexpected Paddle response for {method} {path}")
        return payload

    def create_transaction(self, price_id: str, custom_data: dict[str, str]) -> dict[str, Any]:
        return self._request(
            "POST",
            "/transactions",
            {"items": [{"price_id": price_id, "quantity": 1}], "custom_data": custom_data},
        )

    def get_transaction(self, transaction_id: str) -> dict[str, Any]:
        return self._request("GET", f"/transactions/{quote(transaction_id)}")


def _parse_signature_header(header: str) -> tuple[str | None, list[str]]:
    ts = None
    hashes: list[str] = []
    for part in (header or "").split(";"):
        key, _, value = part.strip().partition("=")
        if key == "ts":
            ts = value
        elif key == "h1" and value:
            hashes.append(value)
    return ts, hashes


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """Paddle-Signature header value for payload (used by tests and local replays)."""
    digest = hmac.new(secret.encode(), f"{timestamp}:".encode() + payload, hashlib.sha256).hexdigest()
    return f"ts={timestamp};h1={digest}"


def verify_signature(
    payload: bytes,
    header: str,
    secret: str,
    tolerance_seconds: int = 5,
    now: float | None = None,
) -> bool:
    ts, hashes = _parse_signature_header(header)
    if not ts or not hashes or not ts.isdigit():
        return False
    if tolerance_seconds > 0:
        current = time.time() if now is None else now
        if abs(current - int(ts)) > tolerance_seconds:
            return False
    expected = hmac.new(secret.encode(), f"{ts}:".encode() + payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, h) for h in hashes)

"""Payment provider contract and the Stripe REST implementation."""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib import error as url_error
from urllib import parse as url_parse
from urllib import request as url_request

from ..errors import UpstreamFailure, ValidationFailed

logger = logging.getLogger("billing")

WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentProviderError(UpstreamFailure):
    """Raised when the payment provider cannot be reached or rejects a call."""


class PaymentProvider(Protocol):
    """External payment processor integration.

    Every method returns the provider's JSON object as a plain dictionary.
    """

    def create_checkout_session(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        ...

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, Any]:
        ...

    def list_products(self, *, active: bool = True) -> List[Dict[str, Any]]:
        ...

    def list_prices(self, *, active: bool = True) -> List[Dict[str, Any]]:
        ...

    def list_charges(self, *, customer_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        ...

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        ...


def encode_form(params: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Flatten nested params into the bracketed form keys the provider expects.

    ``{"metadata": {"user_id": "u1"}, "line_items": [{"price": "p"}]}`` becomes
    ``metadata[user_id]=u1`` and ``line_items[0][price]=p``.
    """

    pairs: List[Tuple[str, str]] = []

    def _walk(prefix: str, value: Any) -> None:
        if value is None:
            return
        if isinstance(value, Mapping):
            for key, nested in value.items():
                _walk(f"{prefix}[{key}]" if prefix else str(key), nested)
        elif isinstance(value, (list, tuple)):
            for index, nested in enumerate(value):
                _walk(f"{prefix}[{index}]", nested)
        elif isinstance(value, bool):
            pairs.append((prefix, "true" if value else "false"))
        else:
            pairs.append((prefix, str(value)))

    _walk("", params)
    return pairs


def _parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp: Optional[int] = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def compute_webhook_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    *,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """Raise ``ValidationFailed`` unless ``header`` signs ``payload`` with ``secret``."""

    if not header:
        raise ValidationFailed(message="Missing webhook signature")
    timestamp, signatures = _parse_signature_header(header)
    if timestamp is None or not signatures:
        raise ValidationFailed(message="Malformed webhook signature")

    expected = compute_webhook_signature(secret, timestamp, payload)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise ValidationFailed(message="Invalid webhook signature")

    current = time.time() if now is None else now
    if tolerance > 0 and abs(current - timestamp) > tolerance:
        raise ValidationFailed(message="Webhook signature timestamp outside tolerance")


class StripePaymentProvider:
    """Calls the Stripe REST API directly with form-encoded requests."""

    def __init__(
        self,
        secret_key: str,
        *,
        webhook_secret: str = "",
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 10.0,
        opener=None,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._opener = opener or url_request.urlopen

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self._secret_key:
            raise PaymentProviderError(message="Payment provider is not configured")

        encoded = url_parse.urlencode(encode_form(params or {}), quote_via=url_parse.quote)
        url = f"{self._api_base}/{path.lstrip('/')}"
        data: Optional[bytes] = None
        if method.upper() == "GET":
            if encoded:
                url = f"{url}?{encoded}"
        else:
            data = encoded.encode("utf-8")

        req = url_request.Request(
            url=url,
            method=method.upper(),
            data=data,
            headers={
                "Authorization": f"Bearer {self._secret_key}",
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
        )
        try:
            with self._opener(req, timeout=self._timeout) as resp:
                body = resp.read().decode("utf-8")
        except url_error.HTTPError as http_exc:
            provider_message = ""
            try:
                parsed_error = json.loads(http_exc.read().decode("utf-8") or "{}")
                if isinstance(parsed_error, dict) and isinstance(parsed_error.get("error"), dict):
                    provider_message = str(parsed_error["error"].get("message") or "")
            except (ValueError, OSError):
                provider_message = ""
            logger.error(
                "Stripe %s %s failed status=%s message=%s",
                method.upper(),
                path,
                http_exc.code,
                provider_message,
            )
            raise PaymentProviderError(message="Payment provider request failed") from http_exc
        except url_error.URLError as url_exc:
            logger.error("Stripe %s %s unreachable: %s", method.upper(), path, url_exc.reason)
            raise PaymentProviderError(message="Payment provider unreachable") from url_exc

        try:
            parsed = json.loads(body) if body else {}
        except ValueError as exc:
            raise PaymentProviderError(message="Payment provider returned invalid JSON") from exc
        return parsed if isinstance(parsed, dict) else {}

    def _list(self, path: str, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        payload = self._request("GET", path, params)
        data = payload.get("data")
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def create_checkout_session(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "checkout/sessions", params)

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        return self._request("GET", f"checkout/sessions/{url_parse.quote(session_id, safe='')}")

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"subscriptions/{url_parse.quote(subscription_id, safe='')}")

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "billing_portal/sessions",
            {"customer": customer_id, "return_url": return_url},
        )

    def list_products(self, *, active: bool = True) -> List[Dict[str, Any]]:
        return self._list("products", {"active": active, "expand": ["data.default_price"]})

    def list_prices(self, *, active: bool = True) -> List[Dict[str, Any]]:
        return self._list("prices", {"active": active})

    def list_charges(self, *, customer_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self._list("charges", {"customer": customer_id, "limit": limit})

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if self._webhook_secret:
            verify_webhook_signature(payload, signature, self._webhook_secret)
        else:
            logger.warning("Webhook secret not configured; skipping signature verification")
        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ValidationFailed(message="Invalid webhook payload") from exc
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise ValidationFailed(message="Invalid webhook payload")
        return event


__all__ = [
    "PaymentProvider",
    "PaymentProviderError",
    "StripePaymentProvider",
    "WEBHOOK_TOLERANCE_SECONDS",
    "compute_webhook_signature",
    "encode_form",
    "verify_webhook_signature",
]

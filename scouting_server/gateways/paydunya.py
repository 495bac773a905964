"""PayDunya IPN: HMAC header plus an authoritative re-query of the invoice."""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from scouting_server.gateways.base import (
    CanonicalStatus,
    ConfirmationResult,
    ConfirmingGatewayAdapter,
    to_decimal,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://app.paydunya.com/api/v1"
DEFAULT_CURRENCY = "XOF"


class PayDunyaAdapter(ConfirmingGatewayAdapter):
    name = "paydunya"
    signature_headers = ("x-paydunya-signature", "paydunya-signature")
    status_map = {
        "completed": CanonicalStatus.COMPLETED,
        "failed": CanonicalStatus.FAILED,
        "cancelled": CanonicalStatus.CANCELLED,
        "pending": CanonicalStatus.PENDING,
    }

    def __init__(
        self,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def normalize_status(self, provider_status: str) -> str:
        return str(provider_status).strip().lower()

    def extract_confirmation_token(self, payload: Mapping[str, Any]) -> Optional[str]:
        # PayDunya шлёт токен инвойса под разными именами
        for key in ("invoice_token", "token", "invoice_id", "transaction_id"):
            value = payload.get(key)
            if value:
                return str(value)
        return None

    def summarize(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        summary = super().summarize(payload)
        summary["invoice_token"] = self.extract_confirmation_token(payload)
        return summary

    async def confirm_transaction(self, token: str, api_key: Optional[str]) -> ConfirmationResult:
        if not api_key:
            return ConfirmationResult(verified=False, error="PayDunya API key is not configured")

        url = f"{self.api_base_url}/checkout-invoice/confirm/{token}"
        headers = {"PAYDUNYA-MASTER-KEY": api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            logger.warning("PayDunya confirmation timed out for token %s", token)
            return ConfirmationResult(verified=False, error="timeout")
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response) or f"HTTP {exc.response.status_code}"
            return ConfirmationResult(verified=False, error=message)
        except (httpx.HTTPError, ValueError) as exc:
            return ConfirmationResult(verified=False, error=str(exc) or exc.__class__.__name__)

        if not isinstance(data, dict):
            return ConfirmationResult(verified=False, error="unexpected response body")

        response_code = data.get("response_code")
        if response_code is not None and str(response_code) != "00":
            return ConfirmationResult(
                verified=False,
                raw_data=data,
                error=data.get("response_text") or f"response_code {response_code}",
            )

        invoice = data.get("invoice") or {}
        return ConfirmationResult(
            verified=True,
            status=data.get("status"),
            amount=to_decimal(invoice.get("total_amount")),
            currency=invoice.get("currency") or DEFAULT_CURRENCY,
            raw_data=data,
        )


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("message") or body.get("response_text")
    return None

"""CinetPay notifications: HMAC header, uppercase status vocabulary, no confirm API."""

import hashlib
from typing import Any

from scouting_server.gateways.base import CanonicalStatus, GatewayAdapter


class CinetPayAdapter(GatewayAdapter):
    name = "cinetpay"
    signature_headers = ("x-cinetpay-signature",)
    status_map = {
        "ACCEPTED": CanonicalStatus.COMPLETED,
        "REFUSED": CanonicalStatus.FAILED,
        "PENDING": CanonicalStatus.PENDING,
        "CANCELLED": CanonicalStatus.CANCELLED,
    }

    def normalize_status(self, provider_status: str) -> str:
        return str(provider_status).strip().upper()


def generate_payment_signature(
    amount: Any, currency: str, transaction_id: str, api_key: str, site_id: str
) -> str:
    """Signature sent along with the checkout parameters to CinetPay."""
    raw = f"{site_id}{amount}{currency}{transaction_id}{api_key}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

"""Common contract for payment gateway adapters.

An adapter is stateless apart from its connection settings: it checks the
authenticity of a notification, pulls the identifiers out of it and maps the
provider's status vocabulary onto :class:`CanonicalStatus`. Gateways with a
server-side confirmation API derive from :class:`ConfirmingGatewayAdapter`.
"""

import abc
import enum
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

AMOUNT_TOLERANCE = Decimal("0.01")


class CanonicalStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


@dataclass
class ConfirmationResult:
    verified: bool
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def canonical_json(payload: Mapping[str, Any]) -> str:
    """Compact JSON in the key order the gateway sent it."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def compute_signature(payload: Mapping[str, Any], secret_key: str) -> str:
    return hmac.new(
        secret_key.encode("utf-8"),
        canonical_json(payload).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_hmac_signature(
    payload: Mapping[str, Any], signature: Optional[str], secret_key: Optional[str]
) -> bool:
    if not signature or not secret_key:
        return False
    expected = compute_signature(payload, secret_key)
    return hmac.compare_digest(
        signature.strip().lower().encode("utf-8"), expected.encode("utf-8")
    )


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def amounts_match(
    expected_amount: Any,
    actual_amount: Any,
    expected_currency: Optional[str],
    actual_currency: Optional[str],
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> bool:
    """Amount within ``tolerance`` (relative) and the same currency code."""
    expected = to_decimal(expected_amount)
    actual = to_decimal(actual_amount)
    if expected is None or actual is None:
        return False
    if not expected_currency or not actual_currency:
        return False
    amount_ok = abs(expected - actual) <= abs(expected) * tolerance
    currency_ok = expected_currency.strip().upper() == actual_currency.strip().upper()
    return amount_ok and currency_ok


class GatewayAdapter:
    name: str = ""
    signature_headers: Tuple[str, ...] = ()
    status_map: Dict[str, CanonicalStatus] = {}

    def verify_signature(
        self, payload: Mapping[str, Any], signature: Optional[str], secret_key: Optional[str]
    ) -> bool:
        return verify_hmac_signature(payload, signature, secret_key)

    def map_status(self, provider_status: Optional[str]) -> CanonicalStatus:
        if not provider_status:
            return CanonicalStatus.PENDING
        return self.status_map.get(self.normalize_status(provider_status), CanonicalStatus.PENDING)

    def normalize_status(self, provider_status: str) -> str:
        return str(provider_status).strip()

    def provider_status(self, payload: Mapping[str, Any]) -> Optional[str]:
        status = payload.get("status")
        return str(status) if status is not None else None

    def extract_transaction_id(self, payload: Mapping[str, Any]) -> Optional[str]:
        value = payload.get("transaction_id")
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def extract_confirmation_token(self, payload: Mapping[str, Any]) -> Optional[str]:
        return None

    def summarize(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Fields worth keeping in the audit trail for a manual replay."""
        return {
            "provider": self.name,
            "transaction_id": payload.get("transaction_id"),
            "status": payload.get("status"),
            "amount": payload.get("amount"),
            "currency": payload.get("currency"),
            "payload": dict(payload),
        }


class ConfirmingGatewayAdapter(GatewayAdapter, abc.ABC):
    """Adapter whose gateway can be re-queried for the authoritative outcome."""

    @abc.abstractmethod
    async def confirm_transaction(self, token: str, api_key: Optional[str]) -> ConfirmationResult:
        ...

"""Turns a gateway notification into a durable, exactly-once payment outcome.

One procedure serves every gateway; the adapter supplies verification and the
status vocabulary. The ordering is:

1. audit the receipt (committed on its own);
2. verify the signature (401 on failure);
3. pull out the transaction id (400 when missing);
4. look the payment up;
5. stop on a payment that is no longer pending (duplicate delivery);
6. re-query the gateway when it offers a confirmation API, then check
   amount and currency;
7. apply the outcome. A completion claims the ledger row with a conditional
   UPDATE and, in the same transaction, activates the subscription, links it
   to the payment, grants the subscriber role and writes the invoice;
8. audit the final outcome.

Everything except steps 2 and 3 is acknowledged with HTTP 200 so the gateway
stops retrying. A failure inside the commit unit rolls back, which leaves the
payment pending and safe to replay.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.clock import Clock, system_clock
from scouting_server.gateways.base import (
    CanonicalStatus,
    ConfirmingGatewayAdapter,
    GatewayAdapter,
    amounts_match,
)
from scouting_server.models.payment import WEBHOOK_TERMINAL_STATUSES, Payment, PaymentStatus
from scouting_server.models.user import UserRole
from scouting_server.services import audit_service, payment_service, subscription_service, user_service
from scouting_server.services.subscription_service import DEFAULT_DURATION_DAYS

logger = logging.getLogger(__name__)

MAX_RAW_BODY = 4096

_LEDGER_STATUS = {
    CanonicalStatus.COMPLETED: PaymentStatus.COMPLETED,
    CanonicalStatus.FAILED: PaymentStatus.FAILED,
    CanonicalStatus.CANCELLED: PaymentStatus.CANCELLED,
}


@dataclass
class ActivationNotice:
    user_id: int
    email: str
    expires_at: datetime
    telegram_id: Optional[int] = None


@dataclass
class WebhookResult:
    status_code: int
    success: bool
    message: str
    outcome: str
    transaction_id: Optional[str] = None
    notification: Optional[ActivationNotice] = None

    def body(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


async def process_webhook(
    db: AsyncSession,
    adapter: GatewayAdapter,
    payload: Mapping[str, Any],
    signature: Optional[str],
    *,
    secret_key: Optional[str],
    api_key: Optional[str] = None,
    clock: Clock = system_clock,
    duration_days: int = DEFAULT_DURATION_DAYS,
    trusted: bool = False,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> WebhookResult:
    """Handle one notification from ``adapter``'s gateway.

    ``trusted`` skips the signature check and the gateway re-query; it exists
    for the development-only simulation endpoints.
    """
    provider = adapter.name
    started = time.monotonic()
    payload = dict(payload)

    receipt = adapter.summarize(payload)
    receipt["has_signature"] = bool(signature)
    if trusted:
        receipt["trusted"] = True
    logger.info("%s IPN received: %s", provider, receipt.get("transaction_id"))
    await audit_service.log(
        db,
        f"{provider}_ipn_received",
        metadata=receipt,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    if not trusted:
        if not secret_key:
            logger.error("%s webhook secret key is not configured; rejecting", provider)
        if not adapter.verify_signature(payload, signature, secret_key):
            if not signature:
                reason = "missing"
            elif not secret_key:
                reason = "secret_not_configured"
            else:
                reason = "mismatch"
            logger.warning("Invalid %s webhook signature (%s)", provider, reason)
            await audit_service.log(
                db,
                f"{provider}_signature_invalid",
                metadata={"transaction_id": payload.get("transaction_id"), "reason": reason},
                ip_address=ip_address,
            )
            return WebhookResult(401, False, "Invalid webhook signature", "signature_invalid")

    transaction_id = adapter.extract_transaction_id(payload)
    if not transaction_id:
        logger.error("%s IPN without transaction_id", provider)
        await audit_service.log(
            db, f"{provider}_missing_transaction_id", metadata={"payload": payload}
        )
        return WebhookResult(400, False, "Missing transaction_id", "malformed")

    try:
        result = await _apply(
            db,
            adapter,
            payload,
            transaction_id,
            api_key=api_key,
            clock=clock,
            duration_days=duration_days,
            trusted=trusted,
        )
    except Exception as exc:
        logger.exception("%s IPN processing failed for %s", provider, transaction_id)
        await db.rollback()
        await audit_service.log(
            db,
            f"{provider}_ipn_error",
            metadata={
                "transaction_id": transaction_id,
                "error": str(exc),
                "error_type": exc.__class__.__name__,
            },
        )
        return WebhookResult(200, False, "Error processing payment", "error", transaction_id)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "%s IPN %s for %s processed in %sms", provider, result.outcome, transaction_id, elapsed_ms
    )
    return result


async def reject_malformed(
    db: AsyncSession,
    adapter: GatewayAdapter,
    raw_body: str,
    reason: str,
    *,
    signature: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> WebhookResult:
    """Audit a delivery whose body is not a JSON object and answer 400."""
    provider = adapter.name
    logger.warning("%s IPN with malformed body (%s)", provider, reason)
    await audit_service.log(
        db,
        f"{provider}_ipn_received",
        metadata={
            "provider": provider,
            "raw_body": raw_body[:MAX_RAW_BODY],
            "has_signature": bool(signature),
            "parse_error": reason,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await audit_service.log(
        db, f"{provider}_malformed_payload", metadata={"reason": reason}, ip_address=ip_address
    )
    return WebhookResult(400, False, "Malformed payload", "malformed")


async def _apply(
    db: AsyncSession,
    adapter: GatewayAdapter,
    payload: Dict[str, Any],
    transaction_id: str,
    *,
    api_key: Optional[str],
    clock: Clock,
    duration_days: int,
    trusted: bool,
) -> WebhookResult:
    provider = adapter.name

    payment = await payment_service.find_by_transaction_id(db, transaction_id)
    if payment is None:
        logger.error("Payment not found: %s", transaction_id)
        await audit_service.log(
            db, f"{provider}_payment_not_found", metadata={"transaction_id": transaction_id}
        )
        return WebhookResult(200, False, "Payment not found", "not_found", transaction_id)

    if PaymentStatus(payment.status) in WEBHOOK_TERMINAL_STATUSES:
        return await _record_duplicate(db, provider, payment)

    provider_status = adapter.provider_status(payload)
    raw_response: Dict[str, Any] = dict(payload)

    if isinstance(adapter, ConfirmingGatewayAdapter) and not trusted:
        token = adapter.extract_confirmation_token(payload) or transaction_id
        confirmation = await adapter.confirm_transaction(token, api_key)
        if not confirmation.verified:
            logger.error("%s verification failed for %s: %s", provider, transaction_id, confirmation.error)
            await audit_service.log(
                db,
                f"{provider}_verification_failed",
                user_id=payment.user_id,
                metadata={"transaction_id": transaction_id, "error": confirmation.error},
            )
            return WebhookResult(
                200, False, "Payment verification failed", "verification_failed", transaction_id
            )

        if not amounts_match(
            payment.amount, confirmation.amount, payment.currency, confirmation.currency
        ):
            logger.error(
                "Amount/currency mismatch for %s: expected %s %s, got %s %s",
                transaction_id,
                payment.amount,
                payment.currency,
                confirmation.amount,
                confirmation.currency,
            )
            await audit_service.log(
                db,
                f"{provider}_amount_mismatch",
                user_id=payment.user_id,
                metadata={
                    "transaction_id": transaction_id,
                    "expected_amount": payment.amount,
                    "received_amount": confirmation.amount,
                    "expected_currency": payment.currency,
                    "received_currency": confirmation.currency,
                },
            )
            return WebhookResult(
                200, False, "Amount or currency mismatch", "amount_mismatch", transaction_id
            )

        # The gateway's own answer wins over what the notification claims
        if confirmation.status:
            provider_status = confirmation.status
        raw_response["verification"] = confirmation.raw_data

    canonical = adapter.map_status(provider_status)
    logger.info("%s status mapping: %s -> %s", provider, provider_status, canonical.value)

    if canonical is CanonicalStatus.PENDING:
        await audit_service.log(
            db,
            f"{provider}_payment_pending",
            user_id=payment.user_id,
            metadata={"transaction_id": transaction_id, "provider_status": provider_status},
        )
        return WebhookResult(200, True, "Payment still pending", "pending", transaction_id)

    now = clock.now()
    if canonical is CanonicalStatus.COMPLETED:
        result = await _commit_completion(
            db, provider, payment, raw_response, now=now, duration_days=duration_days
        )
    else:
        result = await _commit_closure(
            db, provider, payment, _LEDGER_STATUS[canonical], raw_response, provider_status
        )

    if result.outcome in ("completed", "failed", "cancelled"):
        await audit_service.log(
            db,
            f"{provider}_ipn_processed",
            user_id=payment.user_id,
            metadata={"transaction_id": transaction_id, "final_status": result.outcome},
        )
    return result


async def _record_duplicate(db: AsyncSession, provider: str, payment: Payment) -> WebhookResult:
    logger.warning(
        "Payment %s already processed (%s); ignoring delivery", payment.transaction_id, payment.status
    )
    await audit_service.log(
        db,
        f"{provider}_duplicate_ipn",
        user_id=payment.user_id,
        metadata={"transaction_id": payment.transaction_id, "current_status": payment.status},
    )
    return WebhookResult(
        200, True, "Payment already processed", "duplicate", payment.transaction_id
    )


async def _commit_completion(
    db: AsyncSession,
    provider: str,
    payment: Payment,
    raw_response: Dict[str, Any],
    *,
    now: datetime,
    duration_days: int,
) -> WebhookResult:
    if not await payment_service.mark_completed(db, payment, raw_response, now=now):
        return await _record_duplicate(db, provider, payment)

    subscription = await subscription_service.ensure_for_user(db, payment.user_id, updated_by=provider)
    subscription = await subscription_service.activate(
        db, subscription.id, duration_days, updated_by=provider, now=now
    )
    await payment_service.link_subscription(db, payment, subscription.id)
    await user_service.assign_role(db, payment.user_id, UserRole.SUBSCRIBER, assigned_by=provider)
    invoice = await payment_service.generate_invoice(db, payment)
    await audit_service.log(
        db,
        f"{provider}_payment_completed",
        user_id=payment.user_id,
        metadata={
            "transaction_id": payment.transaction_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "subscription_id": subscription.id,
            "expires_at": subscription.expires_at,
            "invoice_number": invoice.invoice_number,
        },
        commit=False,
    )
    await db.commit()

    notice = None
    user = await user_service.get_user_by_id(db, payment.user_id)
    if user is not None:
        notice = ActivationNotice(
            user_id=user.id,
            email=user.email,
            expires_at=subscription.expires_at,
            telegram_id=user.telegram_id,
        )
    return WebhookResult(
        200,
        True,
        "Payment processed successfully",
        "completed",
        payment.transaction_id,
        notification=notice,
    )


async def _commit_closure(
    db: AsyncSession,
    provider: str,
    payment: Payment,
    status: PaymentStatus,
    raw_response: Dict[str, Any],
    provider_status: Optional[str],
) -> WebhookResult:
    mark = payment_service.mark_failed if status is PaymentStatus.FAILED else payment_service.mark_cancelled
    if not await mark(db, payment, raw_response):
        return await _record_duplicate(db, provider, payment)

    await audit_service.log(
        db,
        f"{provider}_payment_{status.value}",
        user_id=payment.user_id,
        metadata={"transaction_id": payment.transaction_id, "provider_status": provider_status},
        commit=False,
    )
    await db.commit()
    return WebhookResult(
        200, True, f"Payment {status.value} recorded", status.value, payment.transaction_id
    )


async def repair_unlinked_payments(
    db: AsyncSession,
    *,
    clock: Clock = system_clock,
    duration_days: int = DEFAULT_DURATION_DAYS,
    limit: int = 100,
) -> int:
    """Grant the subscription for completed payments that never got one linked."""
    candidates = [
        (payment.id, payment.transaction_id)
        for payment in await payment_service.find_unlinked_completed(db, limit)
    ]
    repaired = 0
    for payment_id, transaction_id in candidates:
        try:
            payment = await db.get(Payment, payment_id)
            now = clock.now()
            subscription = await subscription_service.ensure_for_user(
                db, payment.user_id, updated_by="system"
            )
            subscription = await subscription_service.activate(
                db, subscription.id, duration_days, updated_by="system", now=now
            )
            await payment_service.link_subscription(db, payment, subscription.id)
            await user_service.assign_role(
                db, payment.user_id, UserRole.SUBSCRIBER, assigned_by="system"
            )
            await payment_service.generate_invoice(db, payment)
            await audit_service.log(
                db,
                "payment_repaired",
                user_id=payment.user_id,
                metadata={"transaction_id": transaction_id, "subscription_id": subscription.id},
                commit=False,
            )
            await db.commit()
            repaired += 1
        except Exception:
            logger.exception("Repair failed for payment %s", transaction_id)
            await db.rollback()
    return repaired

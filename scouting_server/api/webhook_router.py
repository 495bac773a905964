# scouting_server/api/webhook_router.py

import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.telegram import send_subscription_activated
from scouting_server.api.deps import get_db
from scouting_server.config import settings
from scouting_server.gateways.base import GatewayAdapter
from scouting_server.gateways.registry import get_adapter, get_keys
from scouting_server.services.webhook_dispatcher import (
    WebhookResult,
    process_webhook,
    reject_malformed,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _signature(request: Request, adapter: GatewayAdapter) -> Optional[str]:
    for header in adapter.signature_headers:
        value = request.headers.get(header)
        if value:
            return value
    return None


def _respond(result: WebhookResult, background_tasks: BackgroundTasks) -> JSONResponse:
    notice = result.notification
    if notice is not None:
        # Уведомление уходит после ответа шлюзу и не влияет на него
        background_tasks.add_task(
            send_subscription_activated, notice.email, notice.expires_at, notice.telegram_id
        )
    return JSONResponse(status_code=result.status_code, content=result.body())


async def _read_payload(request: Request) -> Tuple[Optional[Dict[str, Any]], str, Optional[str]]:
    """Parse the body ourselves so a broken delivery is still audited."""
    text = (await request.body()).decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return None, text, "invalid_json"
    if not isinstance(payload, dict):
        return None, text, "not_an_object"
    return payload, text, None


async def _handle(
    provider: str,
    payload: Optional[Dict[str, Any]],
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession,
    trusted: bool = False,
    raw_body: str = "",
    parse_error: Optional[str] = None,
) -> JSONResponse:
    adapter = get_adapter(provider)
    signature = None if trusted else _signature(request, adapter)
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")

    if payload is None:
        result = await reject_malformed(
            db,
            adapter,
            raw_body,
            parse_error or "invalid_json",
            signature=signature,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return _respond(result, background_tasks)

    secret_key, api_key = get_keys(provider)
    result = await process_webhook(
        db,
        adapter,
        payload,
        signature,
        secret_key=secret_key,
        api_key=api_key,
        duration_days=settings.subscription_duration_days,
        trusted=trusted,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return _respond(result, background_tasks)


@router.post("/cinetpay")
async def cinetpay_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    payload, raw_body, error = await _read_payload(request)
    return await _handle(
        "cinetpay", payload, request, background_tasks, db, raw_body=raw_body, parse_error=error
    )


@router.post("/paydunya/ipn")
async def paydunya_ipn(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    payload, raw_body, error = await _read_payload(request)
    return await _handle(
        "paydunya", payload, request, background_tasks, db, raw_body=raw_body, parse_error=error
    )


def _ensure_test_mode() -> None:
    if not settings.enable_test_webhooks:
        raise HTTPException(status_code=404, detail="Not found")


@router.get("/test-payment-success")
async def test_payment_success(
    transaction_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Simulate an accepted CinetPay notification (development only)."""
    _ensure_test_mode()
    logger.warning("TEST MODE: simulating CinetPay success for %s", transaction_id)
    payload = {"transaction_id": transaction_id, "status": "ACCEPTED", "test": True}
    return await _handle("cinetpay", payload, request, background_tasks, db, trusted=True)


@router.get("/test-paydunya-success")
async def test_paydunya_success(
    transaction_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Simulate a completed PayDunya IPN (development only)."""
    _ensure_test_mode()
    logger.warning("TEST MODE: simulating PayDunya success for %s", transaction_id)
    payload = {"transaction_id": transaction_id, "status": "completed", "test": True}
    return await _handle("paydunya", payload, request, background_tasks, db, trusted=True)

# scouting_server/api/payment_router.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.api.deps import get_current_user, get_db
from scouting_server.gateways.registry import PROVIDERS
from scouting_server.models.user import User
from scouting_server.services import plan_service
from scouting_server.services.plan_service import UnknownPlanError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class InitiatePaymentRequest(BaseModel):
    plan: str
    provider: str = "cinetpay"


@router.post("/initiate")
async def initiate_payment(
    body: InitiatePaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending payment and return the gateway checkout parameters."""
    if body.provider not in PROVIDERS:
        raise HTTPException(status_code=400, detail=f"Unsupported provider: {body.provider}")
    try:
        result = await plan_service.initiate_payment(db, user.id, body.plan, body.provider)
    except UnknownPlanError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info(
        "Payment %s initiated for user %s via %s", result["transaction_id"], user.id, body.provider
    )
    return result

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.api.deps import get_current_user, get_db
from scouting_server.models.user import User
from scouting_server.services import audit_service, subscription_service
from scouting_server.services.plan_service import PLANS

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans")
async def get_plans():
    return {"plans": [plan.as_dict() for plan in PLANS.values()]}


@router.get("/status")
async def get_status(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    state = await subscription_service.get_status(db, user.id)
    return state.as_dict()


@router.post("/cancel")
async def cancel(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    subscription = await subscription_service.find_by_user_id(db, user.id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="No subscription found")
    subscription = await subscription_service.cancel(db, subscription.id, updated_by="user")
    await audit_service.log(
        db,
        "subscription_cancelled",
        user_id=user.id,
        metadata={"subscription_id": subscription.id, "updated_by": "user"},
        commit=False,
    )
    await db.commit()
    return {"status": subscription.status, "auto_renew": subscription.auto_renew}

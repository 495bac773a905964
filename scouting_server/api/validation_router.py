from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.api.deps import get_current_user, get_db
from scouting_server.models.user import User
from scouting_server.services import subscription_service, validation_service

router = APIRouter(prefix="/validation", tags=["validation"])


class EndpointCheck(BaseModel):
    endpoint: str


@router.post("/access")
async def validate_access(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    decision = await validation_service.validate_access(db, user.id)
    return decision.as_dict()


@router.post("/endpoint")
async def validate_endpoint(
    body: EndpointCheck,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    allowed = await validation_service.can_access_endpoint(db, user.id, body.endpoint)
    return {"endpoint": body.endpoint, "can_access": allowed}


@router.get("/subscription")
async def check_subscription(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    state = await subscription_service.get_status(db, user.id)
    return {
        "is_active": state.is_active,
        "status": state.status.value,
        "expires_at": state.expires_at.isoformat() if state.expires_at else None,
    }

"""Subscription plans and checkout parameters for a new payment."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.config import Settings, settings
from scouting_server.gateways.cinetpay import generate_payment_signature
from scouting_server.models.payment import Payment
from scouting_server.services import payment_service, subscription_service


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price_usd: Decimal
    duration_days: int
    features: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price_usd),
            "currency": "USD",
            "duration": self.duration_days,
            "features": list(self.features),
        }


PLANS: Dict[str, Plan] = {
    "monthly": Plan(
        "monthly",
        "Monthly Plan",
        Decimal("9.99"),
        30,
        ["Access to M3 platform", "Basic scouting tools", "Email support"],
    ),
    "quarterly": Plan(
        "quarterly",
        "Quarterly Plan",
        Decimal("24.99"),
        90,
        ["Access to M3 platform", "Advanced scouting tools", "Priority support", "15% discount"],
    ),
    "annual": Plan(
        "annual",
        "Annual Plan",
        Decimal("89.99"),
        365,
        [
            "Access to M3 platform",
            "Premium scouting tools",
            "Dedicated support",
            "25% discount",
            "Early access to new features",
        ],
    ),
}


class UnknownPlanError(ValueError):
    pass


def get_plan(plan_id: str) -> Plan:
    plan = PLANS.get(plan_id)
    if plan is None:
        raise UnknownPlanError(f"Unknown plan: {plan_id}")
    return plan


def price_in_xof(plan: Plan, rate: int) -> Decimal:
    return (plan.price_usd * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


async def initiate_payment(
    db: AsyncSession,
    user_id: int,
    plan_id: str,
    provider: str,
    config: Optional[Settings] = None,
) -> dict:
    """Create the pending payment and return what the frontend needs to redirect."""
    config = config or settings
    plan = get_plan(plan_id)
    amount = price_in_xof(plan, config.usd_to_xof_rate)
    transaction_id = payment_service.generate_transaction_id()

    payment = await payment_service.create_payment(
        db, user_id, transaction_id, amount, currency="XOF", payment_method=provider
    )
    await subscription_service.ensure_for_user(db, user_id)
    await db.commit()

    return {
        "transaction_id": transaction_id,
        "amount": int(amount),
        "currency": payment.currency,
        "plan": plan.id,
        "provider": provider,
        "gateway": _gateway_config(payment, provider, config),
    }


def _gateway_config(payment: Payment, provider: str, config: Settings) -> dict:
    backend = config.backend_url.rstrip("/")
    frontend = config.frontend_url.rstrip("/")
    if provider == "cinetpay":
        return {
            "apikey": config.cinetpay_api_key,
            "site_id": config.cinetpay_site_id,
            "notify_url": f"{backend}/api/webhooks/cinetpay",
            "return_url": f"{frontend}/payment/success",
            "cancel_url": f"{frontend}/payment/cancel",
            "signature": generate_payment_signature(
                int(payment.amount),
                payment.currency,
                payment.transaction_id,
                config.cinetpay_api_key or "",
                config.cinetpay_site_id or "",
            ),
        }
    return {
        "notify_url": f"{backend}/api/webhooks/paydunya/ipn",
        "return_url": f"{frontend}/payment/success",
        "cancel_url": f"{frontend}/payment/cancel",
    }

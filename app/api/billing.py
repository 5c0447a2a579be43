import logging

from fastapi import APIRouter, HTTPException, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.plan import Plan
from app.models.user import User
from app.integrations.checkout import build_checkout_metadata, build_external_reference
from app.integrations.coinbase_client import coinbase_charge_payload, coinbase_create_charge
from app.integrations.mercadopago_client import mp_create_preference, mp_init_point
from app.schemas.billing import (
    CheckoutOut, PaymentMethod, PlanOut, SelectPlanIn, TopUpIn, TopUpPackOut, UsageOut,
)
from app.services.errors import PlanNotFound
from app.services.ledger import EntitlementLedger
from app.services.settlement import PaymentSettlementHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

# amount_cents -> credits
TOP_UP_PACKS = {
    100: 20,
    300: 70,
    500: 120,
}

async def _checkout(
    *,
    payment_method: PaymentMethod,
    title: str,
    amount_cents: int,
    metadata: dict,
) -> CheckoutOut:
    if payment_method == "crypto":
        status, resp = await coinbase_create_charge(coinbase_charge_payload(
            name="Secret Link Locker",
            description=title,
            amount_cents=amount_cents,
            metadata=metadata,
        ))
        if status not in (200, 201):
            raise HTTPException(502, {"coinbase_status": status, "coinbase_response": resp})
        charge = resp.get("data") or {}
        if not charge.get("id") or not charge.get("hosted_url"):
            raise HTTPException(502, {"coinbase_response": resp})
        return CheckoutOut(
            status="checkout_required",
            provider="coinbase",
            checkout_id=str(charge["id"]),
            checkout_url=charge["hosted_url"],
        )

    # the SDK call is blocking
    status, resp = await run_in_threadpool(
        mp_create_preference,
        title=title,
        amount_cents=amount_cents,
        metadata=metadata,
        external_reference=build_external_reference(metadata),
    )
    if status not in (200, 201):
        raise HTTPException(502, {"mp_status": status, "mp_response": resp})

    preference_id = resp.get("id")
    init_point = mp_init_point(resp)
    if not preference_id or not init_point:
        raise HTTPException(502, {"mp_response": resp})
    return CheckoutOut(
        status="checkout_required",
        provider="mercadopago",
        checkout_id=str(preference_id),
        checkout_url=init_point,
    )

# Display available plans, cheapest first
@router.get("/plans", response_model=list[PlanOut])
def list_plans(db: Session = Depends(get_db)):
    return db.query(Plan).order_by(Plan.price_cents, Plan.id).all()

@router.get("/top-ups", response_model=list[TopUpPackOut])
def list_top_ups():
    return [TopUpPackOut(amount_cents=a, credits=c) for a, c in TOP_UP_PACKS.items()]

# Free plans apply immediately; paid plans go through checkout and the webhook
@router.post("/select-plan", response_model=CheckoutOut)
async def select_plan(
    payload: SelectPlanIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    plan = db.query(Plan).filter(Plan.code == payload.plan_code).first()
    if not plan:
        raise PlanNotFound(payload.plan_code)

    if plan.is_free:
        await run_in_threadpool(PaymentSettlementHandler(db).select_free_plan, user.id, plan.id)
        return CheckoutOut(status="active", plan_code=plan.code)

    metadata = build_checkout_metadata(user.id, "subscription", plan_id=plan.id)
    out = await _checkout(
        payment_method=payload.payment_method,
        title=f"Secret Link Locker - {plan.name} Plan",
        amount_cents=plan.price_cents,
        metadata=metadata,
    )
    out.plan_code = plan.code
    logger.info("checkout_created", extra={"account_id": user.id, "plan_id": plan.id, "kind": "subscription"})
    return out

@router.post("/top-up", response_model=CheckoutOut)
async def top_up(
    payload: TopUpIn,
    user: User = Depends(get_current_user),
):
    credits = TOP_UP_PACKS.get(payload.amount_cents)
    if credits is None:
        raise HTTPException(status_code=400, detail="Unknown top-up amount")

    metadata = build_checkout_metadata(user.id, "top-up", credits=credits)
    out = await _checkout(
        payment_method=payload.payment_method,
        title=f"{credits} link credits",
        amount_cents=payload.amount_cents,
        metadata=metadata,
    )
    logger.info("checkout_created", extra={"account_id": user.id, "credits": credits, "kind": "top-up"})
    return out

# Current plan, quota usage and credit balance
@router.get("/me", response_model=UsageOut)
def my_billing(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return EntitlementLedger(db).usage(user.id)

import json
import logging
from typing import Any

from fastapi import APIRouter, Request, HTTPException, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.integrations.checkout import confirmation_from_metadata, to_cents
from app.integrations.signatures import verify_coinbase_signature
from app.services.errors import NotFound
from app.services.settlement import PaymentSettlementHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coinbase", tags=["coinbase"])


def process_charge(charge: dict[str, Any], db: Session) -> dict[str, Any]:
    charge_id = charge.get("id")
    if not charge_id:
        return {"ok": True, "ignored": "charge_no_id"}

    external_reference = f"coinbase:{charge_id}"
    local_price = (charge.get("pricing") or {}).get("local") or {}
    try:
        confirmation = confirmation_from_metadata(
            charge.get("metadata"),
            external_reference=external_reference,
            amount_cents=to_cents(local_price.get("amount") or 0),
            payment_method="crypto",
        )
    except ValueError as exc:
        logger.warning("coinbase_charge_unmapped", extra={"external_reference": external_reference, "error": str(exc)})
        return {"ok": True, "warning": "Could not map charge to an account"}

    try:
        result = PaymentSettlementHandler(db).settle(confirmation)
    except NotFound as exc:
        logger.warning("coinbase_charge_unknown_target", extra={"external_reference": external_reference, "error": exc.code})
        return {"ok": True, "warning": exc.message}

    return {"ok": True, "settled": result.applied, "duplicate": result.duplicate}


@router.post("/webhook")
async def coinbase_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()

    # the body is the only evidence of payment, so it is never trusted unsigned
    if not settings.coinbase_webhook_secret:
        logger.error("coinbase_webhook_secret_missing", extra={"path": request.url.path})
        raise HTTPException(503, "Webhook secret is not configured")

    ok = verify_coinbase_signature(
        secret=settings.coinbase_webhook_secret,
        signature=request.headers.get("x-cc-webhook-signature", ""),
        raw_body=raw_body,
    )
    if not ok:
        logger.warning("coinbase_signature_invalid", extra={"path": request.url.path})
        raise HTTPException(400, "Invalid signature")

    try:
        body = json.loads(raw_body or b"{}")
    except ValueError:
        raise HTTPException(400, "Invalid JSON body")

    event = body.get("event") or {}
    event_type = event.get("type")
    if event_type != "charge:confirmed":
        return {"ok": True, "ignored": event_type or True}

    return await run_in_threadpool(process_charge, event.get("data") or {}, db)

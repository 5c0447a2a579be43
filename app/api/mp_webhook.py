import logging
from typing import Any

import httpx
from fastapi import APIRouter, Request, HTTPException, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.integrations.checkout import confirmation_from_metadata, to_cents
from app.integrations.signatures import verify_mp_signature
from app.services.errors import NotFound
from app.services.settlement import PaymentSettlementHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mp", tags=["mercado_pago"])

MP_API_BASE = "https://api.mercadopago.com"


async def mp_get_json(path: str) -> dict[str, Any]:
    url = f"{MP_API_BASE}{path}"
    headers = {"Authorization": f"Bearer {settings.mp_access_token}"}
    try:
        async with httpx.AsyncClient(timeout=20) as client:
            r = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise HTTPException(502, {"mp_error": str(exc), "url": url}) from exc
    if r.status_code != 200:
        # keep body as text to avoid json decode surprises
        raise HTTPException(502, {"mp_status": r.status_code, "mp_response": r.text, "url": url})
    return r.json()


async def fetch_payment(payment_id: str) -> dict[str, Any]:
    return await mp_get_json(f"/v1/payments/{payment_id}")


def _maybe_verify_signature(request: Request, data_id: str) -> None:
    """
    Verify the signature only when mp_webhook_secret is configured.
    Sandbox notifications may omit the headers.
    """
    if not settings.mp_webhook_secret:
        return

    x_signature = request.headers.get("x-signature", "")
    x_request_id = request.headers.get("x-request-id", "")
    if not x_signature or not x_request_id:
        logger.warning("mp_signature_headers_missing", extra={"path": request.url.path})
        return

    ok = verify_mp_signature(
        secret=settings.mp_webhook_secret,
        x_signature=x_signature,
        x_request_id=x_request_id,
        data_id=str(data_id),
    )
    if not ok:
        raise HTTPException(401, "Invalid signature")


def process_payment(payment_id: str, payment: dict[str, Any], db: Session) -> dict[str, Any]:
    status = payment.get("status")  # approved / pending / rejected
    if status != "approved":
        # nothing to settle until the payment is approved
        return {"ok": True, "settled": False, "mp_status": status}

    try:
        confirmation = confirmation_from_metadata(
            payment.get("metadata"),
            external_reference=f"mp:{payment_id}",
            amount_cents=to_cents(payment.get("transaction_amount") or 0),
            payment_method="card",
            fallback_reference=str(payment.get("external_reference") or ""),
        )
    except ValueError as exc:
        logger.warning("mp_payment_unmapped", extra={"external_reference": f"mp:{payment_id}", "error": str(exc)})
        return {"ok": True, "warning": "Could not map payment to an account"}

    try:
        result = PaymentSettlementHandler(db).settle(confirmation)
    except NotFound as exc:
        logger.warning("mp_payment_unknown_target", extra={"external_reference": f"mp:{payment_id}", "error": exc.code})
        return {"ok": True, "warning": exc.message}

    return {"ok": True, "settled": result.applied, "duplicate": result.duplicate}


@router.post("/webhook")
async def mp_webhook(request: Request, db: Session = Depends(get_db)):
    try:
        body = await request.json()
    except ValueError:
        body = {}

    mp_type = body.get("type") or request.query_params.get("type") or request.query_params.get("topic")
    data = body.get("data") or {}

    if mp_type != "payment":
        return {"ok": True, "ignored": mp_type or True}

    payment_id = data.get("id") or request.query_params.get("data.id") or request.query_params.get("id")
    if not payment_id:
        return {"ok": True, "ignored": "payment_no_id"}

    _maybe_verify_signature(request, data_id=str(payment_id))

    payment = await fetch_payment(str(payment_id))
    return await run_in_threadpool(process_payment, str(payment_id), payment, db)

"""Metadata we attach to provider checkouts and read back from their webhooks.

Both providers echo ``metadata`` and ``external_reference`` untouched, which is
how a confirmation is mapped back to an account, a plan or a credit pack.
"""

from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from app.services.settlement import PaymentConfirmation


def build_checkout_metadata(
    account_id: int,
    kind: str,
    *,
    plan_id: int | None = None,
    credits: int | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "account_id": account_id,
        "kind": kind,
        "order_id": str(uuid4()),
    }
    if plan_id is not None:
        metadata["plan_id"] = plan_id
    if credits is not None:
        metadata["credits"] = credits
    return metadata


def build_external_reference(metadata: dict[str, Any]) -> str:
    # "acct:1|kind:top-up|credits:20|order:..."
    parts = [f"acct:{metadata['account_id']}", f"kind:{metadata['kind']}"]
    if "plan_id" in metadata:
        parts.append(f"plan:{metadata['plan_id']}")
    if "credits" in metadata:
        parts.append(f"credits:{metadata['credits']}")
    parts.append(f"order:{metadata['order_id']}")
    return "|".join(parts)


def parse_external_reference(external_reference: str) -> dict[str, Any]:
    keys = {"acct": "account_id", "kind": "kind", "plan": "plan_id", "credits": "credits", "order": "order_id"}
    out: dict[str, Any] = {}
    for part in (external_reference or "").split("|"):
        key, sep, value = part.partition(":")
        if sep and key in keys and value:
            out[keys[key]] = value
    return out


def to_cents(amount: Any) -> int:
    try:
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc


def confirmation_from_metadata(
    metadata: dict[str, Any] | None,
    *,
    external_reference: str,
    amount_cents: int,
    payment_method: str,
    fallback_reference: str = "",
) -> PaymentConfirmation:
    """Raises ValueError when the payload cannot be mapped to an account."""
    data = parse_external_reference(fallback_reference)
    data.update({k: v for k, v in (metadata or {}).items() if v is not None})

    if "account_id" not in data or "kind" not in data:
        raise ValueError("payment metadata has no account_id/kind")

    kind = str(data["kind"])
    if kind not in ("subscription", "top-up"):
        raise ValueError(f"unknown payment kind: {kind}")

    plan_id = int(data["plan_id"]) if data.get("plan_id") is not None else None
    credits = int(data["credits"]) if data.get("credits") is not None else None
    if kind == "subscription" and plan_id is None:
        raise ValueError("subscription payment without plan_id")
    if kind == "top-up" and not credits:
        raise ValueError("top-up payment without credits")

    return PaymentConfirmation(
        account_id=int(data["account_id"]),
        kind=kind,
        external_reference=external_reference,
        amount_cents=amount_cents,
        payment_method=payment_method,
        plan_id=plan_id,
        credits_granted=credits,
    )

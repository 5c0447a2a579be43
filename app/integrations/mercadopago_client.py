from typing import Any

import mercadopago
from app.core.config import settings

def mp_sdk() -> mercadopago.SDK:
    if not settings.mp_access_token:
        raise ValueError("Mercado Pago access token is not set in configuration.")
    return mercadopago.SDK(settings.mp_access_token)

def mp_create_preference(
    *,
    title: str,
    amount_cents: int,
    metadata: dict[str, Any],
    external_reference: str,
) -> tuple[int, dict]:
    """
    Creates a Checkout Pro preference and returns (status_code, json).
    The webhook maps the payment back through metadata / external_reference.
    """
    preference_data = {
        "items": [
            {
                "title": title,
                "quantity": 1,
                "unit_price": amount_cents / 100,
                "currency_id": settings.mp_currency,
            }
        ],
        "external_reference": external_reference,
        "metadata": metadata,
        "notification_url": settings.mp_webhook_url,
        "back_urls": {
            "success": f"{settings.app_base_url}/billing/success",
            "failure": f"{settings.app_base_url}/billing/failure",
            "pending": f"{settings.app_base_url}/billing/pending",
        },
        "auto_return": "approved",
    }
    result = mp_sdk().preference().create(preference_data)
    return result.get("status"), (result.get("response") or {})

def mp_init_point(resp: dict) -> str | None:
    # sandbox tokens must be sent to the sandbox checkout
    is_test = (settings.mp_access_token or "").startswith("TEST-")
    if is_test:
        return resp.get("sandbox_init_point") or resp.get("init_point")
    return resp.get("init_point") or resp.get("sandbox_init_point")

import httpx
from app.core.config import settings

COINBASE_API = "https://api.commerce.coinbase.com"
COINBASE_API_VERSION = "2018-03-22"

async def coinbase_create_charge(payload: dict) -> tuple[int, dict]:
    """
    Creates a Coinbase Commerce charge and returns (status_code, json).
    Docs: POST /charges
    """
    headers = {
        "X-CC-Api-Key": settings.coinbase_api_key,
        "X-CC-Version": COINBASE_API_VERSION,
    }
    async with httpx.AsyncClient(timeout=20) as client:
        r = await client.post(f"{COINBASE_API}/charges", json=payload, headers=headers)
    return r.status_code, (r.json() if r.content else {})

def coinbase_charge_payload(*, name: str, description: str, amount_cents: int, metadata: dict) -> dict:
    return {
        "name": name,
        "description": description,
        "pricing_type": "fixed_price",
        "local_price": {"amount": f"{amount_cents / 100:.2f}", "currency": "USD"},
        "metadata": metadata,
        "redirect_url": f"{settings.app_base_url}/billing/success",
        "cancel_url": f"{settings.app_base_url}/billing/failure",
    }

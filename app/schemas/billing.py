from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict

PaymentMethod = Literal["card", "crypto"]

class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    description: str | None
    price_cents: int
    currency: str
    links_quota: int | None  # null = unlimited
    max_expiration_days: int | None
    allows_file_upload: bool

class TopUpPackOut(BaseModel):
    amount_cents: int
    credits: int

class SelectPlanIn(BaseModel):
    plan_code: str
    payment_method: PaymentMethod = "card"

class TopUpIn(BaseModel):
    amount_cents: int
    payment_method: PaymentMethod = "card"

class CheckoutOut(BaseModel):
    status: Literal["active", "checkout_required"]
    plan_code: str | None = None
    provider: str | None = None
    checkout_id: str | None = None
    checkout_url: str | None = None

class UsageOut(BaseModel):
    account_id: int
    plan_code: str | None
    plan_name: str | None
    links_limit: str | None
    links_created_in_cycle: int
    links_remaining: int | None
    credit_balance: int
    billing_cycle_start: datetime | None
    allows_file_upload: bool

from datetime import datetime
from uuid import uuid4

from sqlalchemy import ForeignKey, Enum, String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base
from app.utils.dt import utcnow

class Transaction(Base):
    """Append-only record of a settled payment."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    account_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    amount_cents: Mapped[int] = mapped_column(Integer, default=0)

    kind: Mapped[str] = mapped_column(Enum("subscription", "top-up", name="transaction_kind"))

    # "card" (Mercado Pago) or "crypto" (Coinbase Commerce)
    payment_method: Mapped[str] = mapped_column(String(32))

    status: Mapped[str] = mapped_column(String(16), default="completed")

    # Provider charge/payment id; unique so a redelivered webhook cannot settle twice
    external_reference: Mapped[str] = mapped_column(String(128), unique=True)

    plan_id: Mapped[int | None] = mapped_column(ForeignKey("plans.id"), nullable=True)
    credits_granted: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

from datetime import datetime
from sqlalchemy import ForeignKey, DateTime, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.utils.dt import utcnow

class AccountEntitlement(Base):
    __tablename__ = "account_entitlements"

    # One row per account
    account_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    # NULL until the first plan selection (onboarding incomplete)
    plan_id: Mapped[int | None] = mapped_column(ForeignKey("plans.id"), nullable=True, index=True)

    # Only ever changed through conditional UPDATE statements in the ledger
    links_created_in_cycle: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    credit_balance: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    billing_cycle_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    plan = relationship("Plan")

    __table_args__ = (
        CheckConstraint("links_created_in_cycle >= 0", name="ck_entitlements_links_non_negative"),
        CheckConstraint("credit_balance >= 0", name="ck_entitlements_credits_non_negative"),
    )

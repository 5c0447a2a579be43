from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base
from app.utils.dt import utcnow


@dataclass(frozen=True)
class Unlimited:
    def __str__(self) -> str:
        return "unlimited"


@dataclass(frozen=True)
class Limited:
    count: int

    def __str__(self) -> str:
        return str(self.count)


LinksLimit = Unlimited | Limited


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(primary_key=True)

    # A stable identifier like: "explorer", "creator", "power"
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    name: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Money in minor units; 0 is the free tier
    price_cents: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # NULL = unlimited, 0 = no links at all
    links_quota: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Longest expiration a link on this plan may carry, NULL = no cap
    max_expiration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_plans_price_non_negative"),
        CheckConstraint("links_quota IS NULL OR links_quota >= 0", name="ck_plans_quota_non_negative"),
    )

    @property
    def links_limit(self) -> LinksLimit:
        if self.links_quota is None:
            return Unlimited()
        return Limited(self.links_quota)

    @property
    def is_free(self) -> bool:
        return self.price_cents == 0

    @property
    def allows_file_upload(self) -> bool:
        return self.price_cents > 0

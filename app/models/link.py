from datetime import datetime
from uuid import uuid4

from sqlalchemy import ForeignKey, String, Integer, BigInteger, DateTime, Text, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base
from app.utils.dt import utcnow

class Link(Base):
    __tablename__ = "links"

    # uuid4: 122 random bits, used directly in the public /l/<id> path
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    owner_account_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(255))
    # External URL, or the storage URL of an uploaded file
    target_url: Mapped[str] = mapped_column(Text)

    # bcrypt hash; NULL = unprotected
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # NULL = never expires
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    view_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # Set only for uploaded files
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint("view_count >= 0", name="ck_links_views_non_negative"),
        Index("ix_links_owner_created", "owner_account_id", "created_at"),
    )

    @property
    def is_protected(self) -> bool:
        return self.password_hash is not None

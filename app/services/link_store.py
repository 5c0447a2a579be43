"""Durable record of links and their protection state."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.link import Link
from app.services.errors import Forbidden, LinkNotFound
from app.utils.dt import as_utc_aware, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkStats:
    total_links: int
    total_views: int
    active_links: int
    expired_links: int


class LinkStore:
    def __init__(self, db: Session):
        self.db = db

    def create_link(
        self,
        owner_account_id: int,
        title: str,
        target_url: str,
        password_hash: str | None = None,
        expires_at: datetime | None = None,
        *,
        file_name: str | None = None,
        file_size: int | None = None,
        storage_key: str | None = None,
    ) -> str:
        """Persist a link and return its id. Entitlement is checked by the caller."""
        link = Link(
            id=str(uuid4()),
            owner_account_id=owner_account_id,
            title=title,
            target_url=target_url,
            password_hash=password_hash,
            expires_at=as_utc_aware(expires_at),
            view_count=0,
            file_name=file_name,
            file_size=file_size,
            storage_key=storage_key,
        )
        self.db.add(link)
        self.db.commit()

        logger.info("link_created", extra={"account_id": owner_account_id, "link_id": link.id})
        return link.id

    def get_link(self, link_id: str) -> Link:
        link = self.db.get(Link, link_id, populate_existing=True)
        if link is None:
            raise LinkNotFound(link_id)
        return link

    def record_view(self, link_id: str) -> None:
        # single statement, so simultaneous visitors never lose an increment
        result = self.db.execute(
            update(Link)
            .where(Link.id == link_id)
            .values(view_count=Link.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            raise LinkNotFound(link_id)

    def delete_link(self, link_id: str, requesting_account_id: int) -> str | None:
        """Remove a link owned by the requester.

        Returns the storage key of the uploaded file behind it, if any, so the
        caller can clean up storage.
        """
        link = self.get_link(link_id)
        if link.owner_account_id != requesting_account_id:
            logger.warning(
                "link_delete_forbidden",
                extra={"account_id": requesting_account_id, "link_id": link_id},
            )
            raise Forbidden(link_id)

        storage_key = link.storage_key
        self.db.delete(link)
        self.db.commit()
        logger.info("link_deleted", extra={"account_id": requesting_account_id, "link_id": link_id})
        return storage_key

    def list_links(self, owner_account_id: int) -> list[Link]:
        return list(self.db.scalars(
            select(Link)
            .where(Link.owner_account_id == owner_account_id)
            .order_by(Link.created_at.desc())
        ))

    def link_stats(self, owner_account_id: int) -> LinkStats:
        now = utcnow()
        links = self.list_links(owner_account_id)
        expired = sum(
            1 for link in links
            if link.expires_at is not None and as_utc_aware(link.expires_at) < now
        )
        return LinkStats(
            total_links=len(links),
            total_views=sum(link.view_count or 0 for link in links),
            active_links=len(links) - expired,
            expired_links=expired,
        )

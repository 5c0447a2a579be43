"""End-to-end link creation and removal on behalf of an account owner."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.models.link import Link
from app.services.authorizer import LinkCreationAuthorizer
from app.services.errors import InvalidLinkRequest, TransientFailure
from app.services.ledger import EntitlementLedger, SlotReservation
from app.services.link_store import LinkStore
from app.services.storage import LocalFileStorage, StoredFile, UploadedFile

logger = logging.getLogger(__name__)


class LinkService:
    def __init__(self, db: Session, storage: LocalFileStorage | None = None):
        self.db = db
        self.ledger = EntitlementLedger(db)
        self.authorizer = LinkCreationAuthorizer(db, self.ledger)
        self.store = LinkStore(db)
        self.storage = storage or LocalFileStorage()

    def create_link(
        self,
        account_id: int,
        title: str,
        *,
        target_url: str | None = None,
        upload: UploadedFile | None = None,
        password: str | None = None,
        expires_at: datetime | None = None,
    ) -> Link:
        title = (title or "").strip()
        if not title:
            raise InvalidLinkRequest("Title is required.")
        if (target_url is None) == (upload is None):
            raise InvalidLinkRequest("Provide either a URL or a file.")
        if upload is not None:
            self.storage.check_size(upload.size)

        reservation = self.authorizer.authorize(
            account_id,
            is_upload=upload is not None,
            expires_at=expires_at,
        )

        stored: StoredFile | None = None
        try:
            if upload is not None:
                stored = self.storage.save(upload.data, upload.filename)
                target_url = stored.url
            link_id = self.store.create_link(
                account_id,
                title,
                target_url,
                password_hash=hash_password(password) if password else None,
                expires_at=expires_at,
                file_name=upload.filename if upload else None,
                file_size=upload.size if upload else None,
                storage_key=stored.key if stored else None,
            )
        except (OSError, SQLAlchemyError) as exc:
            logger.exception("link_create_failed", extra={"account_id": account_id})
            self.db.rollback()
            self._compensate(reservation, stored)
            raise TransientFailure() from exc

        return self.store.get_link(link_id)

    def _compensate(self, reservation: SlotReservation, stored: StoredFile | None) -> None:
        try:
            self.ledger.release_link_slot(reservation)
        except SQLAlchemyError:
            logger.exception("link_slot_release_failed", extra={"account_id": reservation.account_id})
        if stored is not None:
            self._remove_file(stored.key)

    def delete_link(self, link_id: str, account_id: int) -> None:
        storage_key = self.store.delete_link(link_id, account_id)
        if storage_key:
            self._remove_file(storage_key)

    def _remove_file(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except (OSError, ValueError):
            logger.warning("file_delete_failed", extra={"storage_key": key}, exc_info=True)

"""State machine a visitor goes through to reach a shared link.

    Loading -> NotFound | Expired | PasswordRequired | Granted

Expiration is checked before the password, so an expired link stays closed
even to someone who knows the password. A view is recorded only on entering
Granted. Every call is a fresh visit; nothing is remembered between calls.
There is no lockout on wrong passwords.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.security import verify_password
from app.services.errors import LinkNotFound
from app.services.link_store import LinkStore
from app.utils.dt import as_utc_aware, utcnow

logger = logging.getLogger(__name__)


class AccessState(str, enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    PASSWORD_REQUIRED = "password_required"
    GRANTED = "granted"


@dataclass(frozen=True)
class AccessResult:
    state: AccessState
    link_id: str
    title: str | None = None
    # only populated when granted
    target_url: str | None = None
    expires_at: datetime | None = None
    password_rejected: bool = False

    @property
    def granted(self) -> bool:
        return self.state is AccessState.GRANTED


class LinkAccessGate:
    def __init__(self, db: Session, store: LinkStore | None = None):
        self.db = db
        self.store = store or LinkStore(db)

    def visit(self, link_id: str, password: str | None = None) -> AccessResult:
        try:
            link = self.store.get_link(link_id)
        except LinkNotFound:
            return AccessResult(AccessState.NOT_FOUND, link_id)

        expires_at = as_utc_aware(link.expires_at)
        if expires_at is not None and expires_at < utcnow():
            logger.info("link_visit_expired", extra={"link_id": link_id})
            return AccessResult(AccessState.EXPIRED, link_id, title=link.title, expires_at=expires_at)

        if link.password_hash is not None:
            if password is None:
                return AccessResult(AccessState.PASSWORD_REQUIRED, link_id, title=link.title, expires_at=expires_at)
            if not verify_password(password, link.password_hash):
                logger.info("link_password_rejected", extra={"link_id": link_id})
                return AccessResult(
                    AccessState.PASSWORD_REQUIRED,
                    link_id,
                    title=link.title,
                    expires_at=expires_at,
                    password_rejected=True,
                )

        title, target_url = link.title, link.target_url
        self.store.record_view(link_id)
        logger.info("link_visit_granted", extra={"link_id": link_id})
        return AccessResult(
            AccessState.GRANTED,
            link_id,
            title=title,
            target_url=target_url,
            expires_at=expires_at,
        )

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.models.plan import Plan
from app.services.errors import (
    EntitlementNotFound,
    InvalidExpiration,
    NoPlanSelected,
    QuotaExhausted,
    UploadNotAllowed,
)
from app.services.ledger import EntitlementLedger, SlotReservation
from app.utils.dt import as_utc_aware, utcnow

logger = logging.getLogger(__name__)


class LinkCreationAuthorizer:
    """Gatekeeper that runs before a link is written to the store."""

    def __init__(self, db: Session, ledger: EntitlementLedger | None = None):
        self.db = db
        self.ledger = ledger or EntitlementLedger(db)

    def authorize(
        self,
        account_id: int,
        *,
        is_upload: bool = False,
        expires_at: datetime | None = None,
    ) -> SlotReservation:
        try:
            ent = self.ledger.get_entitlement(account_id)
        except EntitlementNotFound:
            raise NoPlanSelected() from None

        # cheap rejections first, nothing debited yet
        if is_upload and not ent.plan.allows_file_upload:
            logger.info("upload_not_allowed", extra={"account_id": account_id, "plan_id": ent.plan.id})
            raise UploadNotAllowed(ent.plan.name)
        check_expiration(ent.plan, expires_at)

        try:
            reservation = self.ledger.reserve_link_slot(account_id)
        except EntitlementNotFound:
            raise NoPlanSelected() from None
        except QuotaExhausted:
            logger.info("quota_exhausted", extra={"account_id": account_id})
            raise

        logger.info(
            "link_slot_reserved",
            extra={"account_id": account_id, "funding_source": reservation.funding_source},
        )
        return reservation


def check_expiration(plan: Plan, expires_at: datetime | None, now: datetime | None = None) -> None:
    if expires_at is None:
        return

    now = now or utcnow()
    expires_at = as_utc_aware(expires_at)
    if expires_at <= now:
        raise InvalidExpiration("Expiration date must be in the future.")

    max_days = plan.max_expiration_days
    if max_days is not None and expires_at > now + timedelta(days=max_days):
        raise InvalidExpiration(
            f"Links on the {plan.name} plan can expire at most {max_days} days from now.",
            max_expiration_days=max_days,
        )

"""Entitlement ledger: plan, quota usage and credit balance per account.

Counters are only changed with single conditional UPDATE statements so that
concurrent requests for the same account can never overdraw a slot.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.entitlement import AccountEntitlement
from app.models.plan import Plan, Limited, Unlimited
from app.services.errors import EntitlementNotFound, PlanNotFound, QuotaExhausted
from app.utils.dt import as_utc_aware, utcnow

logger = logging.getLogger(__name__)

FundingSource = Literal["plan", "credit"]


@dataclass(frozen=True)
class Entitlement:
    account_id: int
    plan: Plan
    links_created_in_cycle: int
    credit_balance: int
    billing_cycle_start: datetime | None


@dataclass(frozen=True)
class SlotReservation:
    account_id: int
    funding_source: FundingSource
    # False for unlimited plans, where nothing was debited
    counted: bool = True


class EntitlementLedger:
    def __init__(self, db: Session):
        self.db = db

    def _row(self, account_id: int) -> AccountEntitlement | None:
        # counters move through UPDATE statements, so never trust the identity map
        return self.db.get(AccountEntitlement, account_id, populate_existing=True)

    def get_entitlement(self, account_id: int) -> Entitlement:
        row = self._row(account_id)
        if row is None or row.plan_id is None:
            raise EntitlementNotFound(account_id)
        plan = self.db.get(Plan, row.plan_id)
        if plan is None:
            raise EntitlementNotFound(account_id)
        return Entitlement(
            account_id=account_id,
            plan=plan,
            links_created_in_cycle=row.links_created_in_cycle,
            credit_balance=row.credit_balance,
            billing_cycle_start=as_utc_aware(row.billing_cycle_start),
        )

    def apply_plan_selection(self, account_id: int, plan_id: int, *, commit: bool = True) -> Plan:
        """Point the account at a plan and restart its billing cycle.

        Quota usage is kept: switching plans does not refund links already
        created in the cycle.
        """
        plan = self.db.get(Plan, plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)

        now = utcnow()
        result = self.db.execute(
            update(AccountEntitlement)
            .where(AccountEntitlement.account_id == account_id)
            .values(plan_id=plan.id, billing_cycle_start=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.add(AccountEntitlement(
                account_id=account_id,
                plan_id=plan.id,
                billing_cycle_start=now,
                links_created_in_cycle=0,
                credit_balance=0,
            ))
            self.db.flush()

        if commit:
            self.db.commit()
        logger.info("plan_selected", extra={"account_id": account_id, "plan_id": plan.id})
        return plan

    def reserve_link_slot(self, account_id: int) -> SlotReservation:
        """Take one link slot from the plan quota, falling back to credits."""
        ent = self.get_entitlement(account_id)
        plan_name, limit = ent.plan.name, ent.plan.links_limit

        if isinstance(limit, Unlimited):
            return SlotReservation(account_id, "plan", counted=False)

        if self._take_quota(account_id):
            self.db.commit()
            return SlotReservation(account_id, "plan")

        # the guard reads the current plan; the snapshot may predate a plan switch
        ent = self.get_entitlement(account_id)
        plan_name, limit = ent.plan.name, ent.plan.links_limit
        if isinstance(limit, Unlimited):
            return SlotReservation(account_id, "plan", counted=False)

        if self._take_credit(account_id):
            self.db.commit()
            return SlotReservation(account_id, "credit")

        self.db.rollback()
        raise QuotaExhausted(plan_name, limit.count)

    def _take_quota(self, account_id: int) -> bool:
        quota = (
            select(Plan.links_quota)
            .where(Plan.id == AccountEntitlement.plan_id)
            .correlate(AccountEntitlement)
            .scalar_subquery()
        )
        result = self.db.execute(
            update(AccountEntitlement)
            .where(
                AccountEntitlement.account_id == account_id,
                AccountEntitlement.links_created_in_cycle < quota,
            )
            .values(links_created_in_cycle=AccountEntitlement.links_created_in_cycle + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _take_credit(self, account_id: int) -> bool:
        result = self.db.execute(
            update(AccountEntitlement)
            .where(
                AccountEntitlement.account_id == account_id,
                AccountEntitlement.credit_balance > 0,
            )
            .values(credit_balance=AccountEntitlement.credit_balance - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def release_link_slot(self, reservation: SlotReservation) -> None:
        """Give back a slot taken by reserve_link_slot (creation failed)."""
        if not reservation.counted:
            return

        stmt = update(AccountEntitlement).where(AccountEntitlement.account_id == reservation.account_id)
        if reservation.funding_source == "plan":
            stmt = stmt.where(AccountEntitlement.links_created_in_cycle > 0).values(
                links_created_in_cycle=AccountEntitlement.links_created_in_cycle - 1
            )
        else:
            stmt = stmt.values(credit_balance=AccountEntitlement.credit_balance + 1)

        self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.commit()
        logger.info(
            "link_slot_released",
            extra={"account_id": reservation.account_id, "funding_source": reservation.funding_source},
        )

    def add_credits(self, account_id: int, credits: int, *, commit: bool = True) -> None:
        if credits <= 0:
            raise ValueError("credits must be positive")

        result = self.db.execute(
            update(AccountEntitlement)
            .where(AccountEntitlement.account_id == account_id)
            .values(credit_balance=AccountEntitlement.credit_balance + credits)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # top-up before any plan was picked
            self.db.add(AccountEntitlement(
                account_id=account_id,
                plan_id=None,
                links_created_in_cycle=0,
                credit_balance=credits,
            ))
            self.db.flush()

        if commit:
            self.db.commit()
        logger.info("credits_added", extra={"account_id": account_id, "credits": credits})

    def usage(self, account_id: int) -> dict[str, Any]:
        row = self._row(account_id)
        plan = self.db.get(Plan, row.plan_id) if row and row.plan_id else None
        links_created = row.links_created_in_cycle if row else 0

        links_remaining = None
        if plan is not None and isinstance(plan.links_limit, Limited):
            links_remaining = max(plan.links_limit.count - links_created, 0)

        return {
            "account_id": account_id,
            "plan_code": plan.code if plan else None,
            "plan_name": plan.name if plan else None,
            "links_limit": str(plan.links_limit) if plan else None,
            "links_created_in_cycle": links_created,
            "links_remaining": links_remaining,
            "credit_balance": row.credit_balance if row else 0,
            "billing_cycle_start": as_utc_aware(row.billing_cycle_start) if row else None,
            "allows_file_upload": plan.allows_file_upload if plan else False,
        }

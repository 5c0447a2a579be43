"""Turns confirmed payments into ledger changes, exactly once per confirmation.

The Transaction row and the ledger mutation are written in one database
transaction. The unique constraint on ``external_reference`` makes a
redelivered confirmation fail as a whole instead of crediting twice.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Literal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.plan import Plan
from app.models.transaction import Transaction
from app.models.user import User
from app.services.errors import AccountNotFound, PaymentRequired, PlanNotFound, TransientFailure
from app.services.ledger import EntitlementLedger

logger = logging.getLogger(__name__)

PaymentKind = Literal["subscription", "top-up"]


@dataclass(frozen=True)
class PaymentConfirmation:
    """Provider-neutral payment confirmation handed over by a webhook."""

    account_id: int
    kind: PaymentKind
    external_reference: str
    amount_cents: int
    payment_method: str
    plan_id: int | None = None
    credits_granted: int | None = None


@dataclass(frozen=True)
class SettlementResult:
    applied: bool
    transaction_id: str | None = None
    duplicate: bool = False


class PaymentSettlementHandler:
    def __init__(self, db: Session, ledger: EntitlementLedger | None = None):
        self.db = db
        self.ledger = ledger or EntitlementLedger(db)

    def settle(self, confirmation: PaymentConfirmation) -> SettlementResult:
        if confirmation.kind == "subscription":
            if confirmation.plan_id is None:
                raise ValueError("subscription confirmation without plan_id")
            return self.settle_subscription(
                confirmation.account_id,
                confirmation.plan_id,
                confirmation.external_reference,
                amount_cents=confirmation.amount_cents,
                payment_method=confirmation.payment_method,
            )
        if confirmation.credits_granted is None:
            raise ValueError("top-up confirmation without credits")
        return self.settle_top_up(
            confirmation.account_id,
            confirmation.credits_granted,
            confirmation.amount_cents,
            confirmation.external_reference,
            payment_method=confirmation.payment_method,
        )

    def settle_subscription(
        self,
        account_id: int,
        plan_id: int,
        external_reference: str,
        *,
        amount_cents: int = 0,
        payment_method: str = "card",
    ) -> SettlementResult:
        existing = self._find(external_reference)
        if existing is not None:
            return self._duplicate(existing)

        self._require_account(account_id)
        plan = self.db.get(Plan, plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)

        txn = Transaction(
            account_id=account_id,
            amount_cents=amount_cents,
            kind="subscription",
            payment_method=payment_method,
            status="completed",
            external_reference=external_reference,
            plan_id=plan.id,
        )
        return self._apply(txn, lambda: self.ledger.apply_plan_selection(account_id, plan.id, commit=False))

    def settle_top_up(
        self,
        account_id: int,
        credits_granted: int,
        amount_cents: int,
        external_reference: str,
        *,
        payment_method: str = "card",
    ) -> SettlementResult:
        if credits_granted <= 0:
            raise ValueError("credits_granted must be positive")

        existing = self._find(external_reference)
        if existing is not None:
            return self._duplicate(existing)

        self._require_account(account_id)
        txn = Transaction(
            account_id=account_id,
            amount_cents=amount_cents,
            kind="top-up",
            payment_method=payment_method,
            status="completed",
            external_reference=external_reference,
            credits_granted=credits_granted,
        )
        return self._apply(txn, lambda: self.ledger.add_credits(account_id, credits_granted, commit=False))

    def select_free_plan(self, account_id: int, plan_id: int) -> Plan:
        """Free plans skip checkout: no money moved, so no Transaction."""
        plan = self.db.get(Plan, plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)
        if not plan.is_free:
            raise PaymentRequired(plan.name)
        return self.ledger.apply_plan_selection(account_id, plan.id)

    def _find(self, external_reference: str) -> Transaction | None:
        return self.db.scalars(
            select(Transaction).where(Transaction.external_reference == external_reference)
        ).first()

    def _require_account(self, account_id: int) -> None:
        if self.db.get(User, account_id) is None:
            raise AccountNotFound(account_id)

    def _duplicate(self, existing: Transaction) -> SettlementResult:
        logger.info(
            "settlement_duplicate",
            extra={"account_id": existing.account_id, "external_reference": existing.external_reference},
        )
        return SettlementResult(applied=False, transaction_id=existing.id, duplicate=True)

    def _apply(self, txn: Transaction, mutate: Callable[[], object]) -> SettlementResult:
        external_reference = txn.external_reference
        try:
            # the insert goes first so a concurrent duplicate trips the unique constraint
            self.db.add(txn)
            self.db.flush()
            mutate()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            existing = self._find(external_reference)
            if existing is not None:
                return self._duplicate(existing)
            logger.exception("settlement_failed", extra={"external_reference": external_reference})
            raise TransientFailure() from exc

        logger.info(
            "settlement_applied",
            extra={
                "account_id": txn.account_id,
                "external_reference": external_reference,
                "kind": txn.kind,
                "payment_method": txn.payment_method,
            },
        )
        return SettlementResult(applied=True, transaction_id=txn.id)

import pytest
from sqlalchemy import func, select

from app.models.entitlement import AccountEntitlement
from app.models.transaction import Transaction
from app.services.errors import AccountNotFound, PaymentRequired, PlanNotFound
from app.services.ledger import EntitlementLedger
from app.services.settlement import PaymentConfirmation, PaymentSettlementHandler


def _transactions(db, **filters) -> int:
    stmt = select(func.count()).select_from(Transaction)
    for key, value in filters.items():
        stmt = stmt.where(getattr(Transaction, key) == value)
    return db.scalar(stmt)


def _row(db, account_id) -> AccountEntitlement:
    return db.get(AccountEntitlement, account_id, populate_existing=True)


def test_free_plan_selection_writes_no_transaction(db_session, plans, make_account):
    user = make_account()

    PaymentSettlementHandler(db_session).select_free_plan(user.id, plans["explorer"].id)

    ent = EntitlementLedger(db_session).get_entitlement(user.id)
    assert ent.plan.code == "explorer"
    assert ent.billing_cycle_start is not None
    assert _transactions(db_session) == 0


def test_paid_plan_cannot_be_selected_for_free(db_session, plans, make_account):
    user = make_account()
    with pytest.raises(PaymentRequired):
        PaymentSettlementHandler(db_session).select_free_plan(user.id, plans["power"].id)
    assert _row(db_session, user.id) is None


def test_subscription_redelivery_is_applied_once(db_session, plans, make_account):
    user = make_account(plans["explorer"], links_created=2)
    handler = PaymentSettlementHandler(db_session)

    first = handler.settle_subscription(user.id, plans["creator"].id, "abc", amount_cents=500)
    second = handler.settle_subscription(user.id, plans["creator"].id, "abc", amount_cents=500)

    assert first.applied is True
    assert second.applied is False
    assert second.duplicate is True
    assert second.transaction_id == first.transaction_id
    assert _transactions(db_session, external_reference="abc") == 1

    row = _row(db_session, user.id)
    assert row.plan_id == plans["creator"].id
    assert row.links_created_in_cycle == 2

    txn = db_session.get(Transaction, first.transaction_id)
    assert txn.kind == "subscription"
    assert txn.status == "completed"
    assert txn.plan_id == plans["creator"].id


def test_top_up_redelivery_credits_once(db_session, plans, make_account):
    user = make_account(plans["explorer"], credits=1)
    handler = PaymentSettlementHandler(db_session)

    handler.settle_top_up(user.id, 20, 100, "cb-1", payment_method="crypto")
    handler.settle_top_up(user.id, 20, 100, "cb-1", payment_method="crypto")

    assert _row(db_session, user.id).credit_balance == 21
    assert _transactions(db_session, external_reference="cb-1", kind="top-up") == 1


def test_distinct_references_both_apply(db_session, plans, make_account):
    user = make_account(plans["explorer"])
    handler = PaymentSettlementHandler(db_session)

    handler.settle_top_up(user.id, 20, 100, "mp:1")
    handler.settle_top_up(user.id, 70, 300, "mp:2")

    assert _row(db_session, user.id).credit_balance == 90


def test_top_up_before_any_plan(db_session, make_account):
    user = make_account()
    PaymentSettlementHandler(db_session).settle_top_up(user.id, 70, 300, "mp:9")

    row = _row(db_session, user.id)
    assert row.plan_id is None
    assert row.credit_balance == 70


def test_reference_already_recorded_elsewhere_counts_as_duplicate(db_session, plans, make_account):
    # a concurrent request committed the same reference between check and insert
    user = make_account(plans["explorer"])
    handler = PaymentSettlementHandler(db_session)
    handler.settle_top_up(user.id, 20, 100, "race")

    original_find = handler._find
    calls = {"n": 0}

    def find_after_first_miss(ref):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return original_find(ref)

    handler._find = find_after_first_miss
    result = handler.settle_top_up(user.id, 20, 100, "race")

    assert result.duplicate is True
    assert _row(db_session, user.id).credit_balance == 20


def test_unknown_account_or_plan(db_session, plans, make_account):
    handler = PaymentSettlementHandler(db_session)
    with pytest.raises(AccountNotFound):
        handler.settle_top_up(4242, 20, 100, "ghost")

    user = make_account()
    with pytest.raises(PlanNotFound):
        handler.settle_subscription(user.id, 999, "ghost-plan")
    assert _transactions(db_session) == 0


def test_settle_dispatches_on_kind(db_session, plans, make_account):
    user = make_account()
    handler = PaymentSettlementHandler(db_session)

    handler.settle(PaymentConfirmation(
        account_id=user.id, kind="subscription", external_reference="s-1",
        amount_cents=1500, payment_method="card", plan_id=plans["power"].id,
    ))
    handler.settle(PaymentConfirmation(
        account_id=user.id, kind="top-up", external_reference="t-1",
        amount_cents=500, payment_method="crypto", credits_granted=120,
    ))

    row = _row(db_session, user.id)
    assert row.plan_id == plans["power"].id
    assert row.credit_balance == 120

    with pytest.raises(ValueError):
        handler.settle(PaymentConfirmation(
            account_id=user.id, kind="top-up", external_reference="t-2",
            amount_cents=500, payment_method="card",
        ))

from datetime import timedelta

import pytest

from app.core.security import hash_password
from app.services.access_gate import AccessState, LinkAccessGate
from app.services.link_store import LinkStore
from app.utils.dt import utcnow


@pytest.fixture()
def owner(make_account):
    return make_account()


def _views(db, link_id) -> int:
    return LinkStore(db).get_link(link_id).view_count


def test_missing_link(db_session):
    result = LinkAccessGate(db_session).visit("nope")
    assert result.state is AccessState.NOT_FOUND
    assert result.target_url is None


def test_unprotected_link_is_granted_and_counted_once(db_session, owner):
    link_id = LinkStore(db_session).create_link(owner.id, "Open", "https://example.com/open")

    result = LinkAccessGate(db_session).visit(link_id)

    assert result.granted
    assert result.target_url == "https://example.com/open"
    assert _views(db_session, link_id) == 1


def test_each_visit_counts(db_session, owner):
    link_id = LinkStore(db_session).create_link(owner.id, "Open", "https://example.com/open")
    gate = LinkAccessGate(db_session)
    for _ in range(3):
        gate.visit(link_id)
    assert _views(db_session, link_id) == 3


def test_password_flow(db_session, owner):
    link_id = LinkStore(db_session).create_link(
        owner.id, "Secret", "https://example.com/secret", password_hash=hash_password("secret123"),
    )
    gate = LinkAccessGate(db_session)

    first = gate.visit(link_id)
    assert first.state is AccessState.PASSWORD_REQUIRED
    assert first.password_rejected is False
    assert first.target_url is None

    wrong = gate.visit(link_id, password="hunter2")
    assert wrong.state is AccessState.PASSWORD_REQUIRED
    assert wrong.password_rejected is True
    assert wrong.target_url is None
    assert _views(db_session, link_id) == 0

    right = gate.visit(link_id, password="secret123")
    assert right.state is AccessState.GRANTED
    assert right.target_url == "https://example.com/secret"
    assert _views(db_session, link_id) == 1


def test_authentication_is_not_remembered_between_visits(db_session, owner):
    link_id = LinkStore(db_session).create_link(
        owner.id, "Secret", "https://example.com/secret", password_hash=hash_password("secret123"),
    )
    gate = LinkAccessGate(db_session)
    assert gate.visit(link_id, password="secret123").granted
    assert gate.visit(link_id).state is AccessState.PASSWORD_REQUIRED


def test_expired_link_without_password(db_session, owner):
    link_id = LinkStore(db_session).create_link(
        owner.id, "Old", "https://example.com/old", expires_at=utcnow() - timedelta(days=1),
    )

    result = LinkAccessGate(db_session).visit(link_id)

    assert result.state is AccessState.EXPIRED
    assert result.target_url is None
    assert _views(db_session, link_id) == 0


def test_expiration_dominates_correct_password(db_session, owner):
    link_id = LinkStore(db_session).create_link(
        owner.id,
        "Old secret",
        "https://example.com/old",
        password_hash=hash_password("secret123"),
        expires_at=utcnow() - timedelta(minutes=1),
    )

    result = LinkAccessGate(db_session).visit(link_id, password="secret123")

    assert result.state is AccessState.EXPIRED
    assert _views(db_session, link_id) == 0


def test_future_expiration_is_granted(db_session, owner):
    link_id = LinkStore(db_session).create_link(
        owner.id, "Soon", "https://example.com/soon", expires_at=utcnow() + timedelta(days=1),
    )
    assert LinkAccessGate(db_session).visit(link_id).granted

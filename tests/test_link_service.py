from datetime import timedelta

import pytest

from app.models.entitlement import AccountEntitlement
from app.services.access_gate import LinkAccessGate
from app.services.errors import (
    FileTooLarge,
    InvalidLinkRequest,
    QuotaExhausted,
    TransientFailure,
    UploadNotAllowed,
)
from app.services.links import LinkService
from app.services.link_store import LinkStore
from app.services.storage import LocalFileStorage, UploadedFile
from app.utils.dt import utcnow


class BrokenStorage(LocalFileStorage):
    def save(self, data, filename):
        raise OSError("disk full")


@pytest.fixture()
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "files", public_base_url="http://testserver", max_bytes=1024)


def _counters(db, account_id) -> tuple[int, int]:
    row = db.get(AccountEntitlement, account_id, populate_existing=True)
    return row.links_created_in_cycle, row.credit_balance


def test_explorer_creates_five_links_then_stops(db_session, plans, make_account, storage):
    user = make_account(plans["explorer"])
    service = LinkService(db_session, storage)

    for i in range(5):
        service.create_link(user.id, f"link {i}", target_url="https://example.com")

    with pytest.raises(QuotaExhausted):
        service.create_link(user.id, "one too many", target_url="https://example.com")
    assert len(LinkStore(db_session).list_links(user.id)) == 5


def test_password_is_stored_hashed(db_session, plans, make_account, storage):
    user = make_account(plans["explorer"])
    link = LinkService(db_session, storage).create_link(
        user.id, "Secret", target_url="https://example.com", password="secret123",
    )

    assert link.password_hash is not None
    assert link.password_hash != "secret123"
    assert LinkAccessGate(db_session).visit(link.id, password="secret123").granted


def test_upload_is_stored_and_linked(db_session, plans, make_account, storage):
    user = make_account(plans["creator"])
    link = LinkService(db_session, storage).create_link(
        user.id, "Report", upload=UploadedFile("q3 report.pdf", b"%PDF-1.4"),
    )

    assert link.file_name == "q3 report.pdf"
    assert link.file_size == 8
    assert link.target_url == f"http://testserver/files/{link.storage_key}"
    assert (storage.root / link.storage_key).read_bytes() == b"%PDF-1.4"


def test_upload_on_free_plan_is_refused(db_session, plans, make_account, storage):
    user = make_account(plans["explorer"])
    with pytest.raises(UploadNotAllowed):
        LinkService(db_session, storage).create_link(user.id, "Report", upload=UploadedFile("a.txt", b"hi"))
    assert _counters(db_session, user.id) == (0, 0)


def test_oversized_upload_is_refused_before_debit(db_session, plans, make_account, storage):
    user = make_account(plans["creator"])
    with pytest.raises(FileTooLarge):
        LinkService(db_session, storage).create_link(user.id, "Big", upload=UploadedFile("a.bin", b"x" * 2048))
    assert _counters(db_session, user.id) == (0, 0)


def test_storage_failure_gives_the_credit_back(db_session, plans, make_account, tmp_path):
    user = make_account(plans["creator"], links_created=50, credits=1)
    service = LinkService(db_session, BrokenStorage(tmp_path))

    with pytest.raises(TransientFailure):
        service.create_link(user.id, "Report", upload=UploadedFile("a.txt", b"hi"))

    assert _counters(db_session, user.id) == (50, 1)
    assert LinkStore(db_session).list_links(user.id) == []


def test_storage_failure_gives_the_quota_slot_back(db_session, plans, make_account, tmp_path):
    user = make_account(plans["creator"], links_created=3)
    with pytest.raises(TransientFailure):
        LinkService(db_session, BrokenStorage(tmp_path)).create_link(
            user.id, "Report", upload=UploadedFile("a.txt", b"hi"),
        )
    assert _counters(db_session, user.id) == (3, 0)


def test_request_must_have_exactly_one_target(db_session, plans, make_account, storage):
    user = make_account(plans["creator"])
    service = LinkService(db_session, storage)

    with pytest.raises(InvalidLinkRequest):
        service.create_link(user.id, "Nothing")
    with pytest.raises(InvalidLinkRequest):
        service.create_link(
            user.id, "Both", target_url="https://example.com", upload=UploadedFile("a.txt", b"hi"),
        )
    with pytest.raises(InvalidLinkRequest):
        service.create_link(user.id, "   ", target_url="https://example.com")
    assert _counters(db_session, user.id) == (0, 0)


def test_expiration_is_persisted(db_session, plans, make_account, storage):
    user = make_account(plans["explorer"])
    expires_at = utcnow() + timedelta(days=2)
    link = LinkService(db_session, storage).create_link(
        user.id, "Soon", target_url="https://example.com", expires_at=expires_at,
    )
    assert abs((LinkStore(db_session).get_link(link.id).expires_at.replace(tzinfo=None)
                - expires_at.replace(tzinfo=None)).total_seconds()) < 1


def test_delete_removes_the_stored_file(db_session, plans, make_account, storage):
    user = make_account(plans["creator"])
    service = LinkService(db_session, storage)
    link = service.create_link(user.id, "Report", upload=UploadedFile("a.txt", b"hi"))
    path = storage.root / link.storage_key

    service.delete_link(link.id, user.id)

    assert not path.exists()


def test_delete_survives_a_missing_file(db_session, plans, make_account, storage):
    user = make_account(plans["creator"])
    service = LinkService(db_session, storage)
    link = service.create_link(user.id, "Report", upload=UploadedFile("a.txt", b"hi"))
    (storage.root / link.storage_key).unlink()

    service.delete_link(link.id, user.id)
    assert LinkStore(db_session).list_links(user.id) == []


def test_storage_rejects_path_tricks(storage):
    with pytest.raises(ValueError):
        storage.delete("../etc/passwd")
    stored = storage.save(b"data", "../../evil name.txt")
    assert "/" not in stored.key
    assert stored.key.endswith("evil_name.txt")

import pytest

from automation.errors import RecordStateError
from automation.models import (
    AttemptAction,
    AttemptStatus,
    CipherBundle,
    EncryptedPayment,
    ErrorDetail,
    FailureOutcome,
    SuccessOutcome,
)
from automation.store import SqliteAuditStore


@pytest.fixture
def store():
    s = SqliteAuditStore(":memory:")
    yield s
    s.close()


def _payload() -> EncryptedPayment:
    return EncryptedPayment(
        card_number=CipherBundle(ciphertext="aa" * 32, iv="bb" * 16),
        cvv=CipherBundle(ciphertext="cc" * 16, iv="dd" * 16),
        expiry_month="12",
        expiry_year="2027",
    )


def _failure(message: str = "Element not found") -> FailureOutcome:
    return FailureOutcome(
        error_message=message,
        error_detail=ErrorDetail(code="ELEMENT_NOT_FOUND", message=message, stage="navigate-to-billing"),
        diagnostic_capture_path="logs/screenshots/error_screenshot_1.png",
        duration_ms=1200,
    )


def test_pending_record_starts_without_outcome(store):
    record_id = store.create_pending_record("u1", AttemptAction.ADD_CARD, "1111", "Jane Doe")
    record = store.get_record(record_id)

    assert record.status is AttemptStatus.PENDING
    assert record.card_last_four == "1111"
    assert record.encrypted_payload is None
    assert record.error_message is None
    assert not record.is_terminal


def test_finalize_success_keeps_payload(store):
    record_id = store.create_pending_record("u1", AttemptAction.ADD_CARD, "1111", "Jane Doe")
    record = store.finalize_record(
        record_id,
        SuccessOutcome(encrypted_payload=_payload(), diagnostic_capture_path="a.png", duration_ms=42),
    )

    assert record.status is AttemptStatus.SUCCESS
    assert record.encrypted_payload == _payload()
    assert record.duration_ms == 42
    assert record.updated_at is not None
    assert "encrypted_payload" not in record.public_dict()


def test_finalize_failure_keeps_error_detail(store):
    record_id = store.create_pending_record("u1", AttemptAction.UPDATE_CARD)
    record = store.finalize_record(record_id, _failure())

    assert record.status is AttemptStatus.FAILED
    assert record.error_message == "Element not found"
    assert record.error_detail.stage == "navigate-to-billing"
    assert record.encrypted_payload is None


def test_record_is_finalized_at_most_once(store):
    record_id = store.create_pending_record("u1", AttemptAction.ADD_CARD)
    store.finalize_record(record_id, _failure())

    with pytest.raises(RecordStateError, match="already failed"):
        store.finalize_record(
            record_id,
            SuccessOutcome(encrypted_payload=_payload(), duration_ms=1),
        )
    assert store.get_record(record_id).status is AttemptStatus.FAILED


def test_finalize_unknown_record(store):
    with pytest.raises(RecordStateError, match="does not exist"):
        store.finalize_record("missing", _failure())


def test_listing_is_newest_first_and_paginated(store):
    ids = [store.create_pending_record("u1", AttemptAction.ADD_CARD, f"{i:04d}") for i in range(12)]
    store.create_pending_record("u2", AttemptAction.ADD_CARD)

    first = store.list_records("u1", page=1, page_size=5)
    third = store.list_records("u1", page=3, page_size=5)

    assert first.total == 12
    assert first.total_pages == 3
    assert [r.record_id for r in first.data] == list(reversed(ids))[:5]
    assert [r.record_id for r in third.data] == list(reversed(ids))[10:]


def test_listing_redacts_payload(store):
    record_id = store.create_pending_record("u1", AttemptAction.ADD_CARD)
    store.finalize_record(record_id, SuccessOutcome(encrypted_payload=_payload(), duration_ms=5))

    listed = store.list_records("u1").data[0]

    assert listed.status is AttemptStatus.SUCCESS
    assert listed.encrypted_payload is None
    assert store.get_record(record_id).encrypted_payload is not None


def test_listing_clamps_bounds(store):
    store.create_pending_record("u1", AttemptAction.ADD_CARD)

    result = store.list_records("u1", page=0, page_size=1000)

    assert result.page == 1
    assert result.page_size == 100
    assert len(result.data) == 1


def test_file_backed_store_persists(tmp_path):
    path = tmp_path / "db" / "audit.db"
    first = SqliteAuditStore(path)
    record_id = first.create_pending_record("u1", AttemptAction.ADD_CARD)
    first.close()

    second = SqliteAuditStore(path)
    try:
        assert second.get_record(record_id).subject_id == "u1"
    finally:
        second.close()


def test_finalize_reports_record_missing_after_update(store, monkeypatch):
    record_id = store.create_pending_record("u1", AttemptAction.ADD_CARD)
    monkeypatch.setattr(store, "get_record", lambda rid: None)

    with pytest.raises(RecordStateError, match="disappeared"):
        store.finalize_record(record_id, _failure())

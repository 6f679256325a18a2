from __future__ import annotations

import pytest

from automation.errors import ElementNotFound, IdentityNotFound
from automation.models import (
    AttemptAction,
    AttemptRecord,
    AttemptStatus,
    CipherBundle,
    EncryptedPayment,
    RecordPage,
)
from web import app as app_module

BODY = {
    "subject_id": "u1",
    "card_number": "4111111111111111",
    "card_holder": "Jane Doe",
    "expiry_month": "07",
    "expiry_year": "2027",
    "cvv": "123",
    "postal_code": "94105",
}


def _record() -> AttemptRecord:
    bundle = CipherBundle(ciphertext="00" * 16, iv="11" * 16)
    return AttemptRecord(
        record_id="rec1",
        subject_id="u1",
        action=AttemptAction.ADD_CARD,
        status=AttemptStatus.SUCCESS,
        card_last_four="1111",
        encrypted_payload=EncryptedPayment(card_number=bundle, cvv=bundle, expiry_month="07", expiry_year="2027"),
        duration_ms=1234,
    )


class DummyService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.requests = []
        self.listings = []

    async def add_card(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return _record()

    def list_records(self, subject_id: str, page: int = 1, page_size: int = 10) -> RecordPage:
        self.listings.append((subject_id, page, page_size))
        return RecordPage.build([_record().redacted()], total=1, page=page, page_size=page_size)


def _client(monkeypatch: pytest.MonkeyPatch, service: DummyService):
    monkeypatch.setattr(app_module, "_get_service", lambda: service)
    return app_module.app.test_client()


def test_add_card_success_hides_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    service = DummyService()
    client = _client(monkeypatch, service)

    response = client.post("/automation/add-card", json=BODY)

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["record_id"] == "rec1"
    assert payload["status"] == "success"
    assert "encrypted_payload" not in payload
    assert service.requests[0].card_last_four == "1111"


@pytest.mark.parametrize(
    "body",
    [
        {**BODY, "expiry_month": "13"},
        {k: v for k, v in BODY.items() if k != "cvv"},
        {**BODY, "unexpected": True},
    ],
)
def test_add_card_rejects_invalid_body(monkeypatch: pytest.MonkeyPatch, body) -> None:
    service = DummyService()
    client = _client(monkeypatch, service)

    response = client.post("/automation/add-card", json=body)

    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "INVALID_REQUEST"
    assert service.requests == []


def test_add_card_rejects_non_json(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(monkeypatch, DummyService())

    response = client.post("/automation/add-card", data="card=4111", content_type="text/plain")

    assert response.status_code == 400


@pytest.mark.parametrize(
    "error, status, code",
    [
        (IdentityNotFound("u1"), 404, "IDENTITY_NOT_FOUND"),
        (ElementNotFound(['a[href*="billing"]'], 30000), 500, "ELEMENT_NOT_FOUND"),
    ],
)
def test_add_card_maps_errors(monkeypatch: pytest.MonkeyPatch, error, status, code) -> None:
    client = _client(monkeypatch, DummyService(error))

    response = client.post("/automation/add-card", json=BODY)

    assert response.status_code == status
    body = response.get_json()
    assert body["error"]["code"] == code
    assert body["error"]["message"] == str(error)
    assert "correlation_id" in body


def test_logs_listing_passes_pagination(monkeypatch: pytest.MonkeyPatch) -> None:
    service = DummyService()
    client = _client(monkeypatch, service)

    response = client.get("/automation/logs/u1?page=2&limit=5")

    assert response.status_code == 200
    body = response.get_json()
    assert service.listings == [("u1", 2, 5)]
    assert body["total"] == 1
    assert body["page"] == 2
    assert "encrypted_payload" not in body["data"][0]


@pytest.mark.parametrize("query", ["page=0", "limit=abc"])
def test_logs_listing_rejects_bad_query(monkeypatch: pytest.MonkeyPatch, query: str) -> None:
    service = DummyService()
    client = _client(monkeypatch, service)

    response = client.get(f"/automation/logs/u1?{query}")

    assert response.status_code == 400
    assert service.listings == []


def test_healthz() -> None:
    response = app_module.app.test_client().get("/healthz")
    assert response.status_code == 200

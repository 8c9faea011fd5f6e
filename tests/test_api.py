import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from mercator.api import routes
from mercator.config import settings

HEADERS = {"X-API-Key": settings.mercator_api_key}


@pytest.fixture
def client(fake_repository):
    routes._rate_limit_windows.clear()
    routes.set_repository(fake_repository)
    yield TestClient(routes.app)
    routes.set_repository(None)


def test_missing_or_invalid_api_key(client):
    assert client.get("/v1/health").status_code == 422
    assert client.get("/v1/health", headers={"X-API-Key": "nope"}).status_code == 403


def test_repository_not_initialised(client):
    routes.set_repository(None)
    assert client.get("/v1/health", headers=HEADERS).status_code == 503


def test_evaluate_cargo(client):
    body = {
        "cargo": {
            "carrier_id": 1,
            "pod_port_id": 10,
            "category": "truck",
            "length_cm": 600,
            "width_cm": 300,
            "height_cm": 310,
        },
        "as_of": "2026-01-15",
    }
    response = client.post("/v1/cargo/evaluate", json=body, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["carrier_id"] == 1
    assert data["result"]["acceptance_status"] == "ALLOWED_UPON_REQUEST"
    assert data["result"]["approvals_required"] == ["soft_height_approval"]
    assert data["result"]["surcharge_events"][0]["event_code"] == "OVERWIDTH"


def test_evaluate_rejects_invalid_body(client):
    response = client.post("/v1/cargo/evaluate", json={"cargo": {"length_cm": 600}}, headers=HEADERS)
    assert response.status_code == 422


def test_price_quotation(client, fake_repository):
    response = client.post("/v1/quotations/42/price", headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["project_vat_code"] == "0% EX"
    assert [line["source"] for line in data["lines"]] == ["article", "surcharge"]
    assert fake_repository.saved == []


def test_price_quotation_persists_on_request(client, fake_repository):
    response = client.post("/v1/quotations/42/price", params={"persist": "true"}, headers=HEADERS)
    assert response.status_code == 200
    assert len(fake_repository.saved) == 1
    assert fake_repository.saved[0].quotation_id == 42


def test_price_unknown_quotation(client):
    assert client.post("/v1/quotations/999/price", headers=HEADERS).status_code == 404


def test_pricing_profile(client, fake_repository):
    response = client.get("/v1/pricing/profile", params={"carrier_id": 1}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["id"] == 1

    fake_repository.profiles = []
    response = client.get("/v1/pricing/profile", params={"carrier_id": 1}, headers=HEADERS)
    assert response.status_code == 404


def test_pricing_margin(client):
    body = {"carrier_id": 1, "vehicle_category": "truck", "unit_basis": "LM", "base_amount": 1000}
    response = client.post("/v1/pricing/margin", json=body, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {
        "pricing_profile_id": 1,
        "base_amount": 1000.0,
        "margin": 100.0,
        "selling_amount": 1100.0,
    }


def test_health(client, fake_repository):
    response = client.get("/v1/health", headers=HEADERS)
    assert response.json()["status"] == "ok"

    fake_repository.ping_error = SQLAlchemyError("connection refused")
    response = client.get("/v1/health", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "error"

"""Tests for the HTTP lookup endpoints."""

from fastapi.testclient import TestClient

from nutrition_lookup.api.app import create_app
from tests.fakes import FakeProvider, make_record


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_lookup_name_returns_reconciled_result(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/lookup/name", params={"q": "chicken breast"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "reconciled"
    assert body["chosen"]["source_id"] == "usda"
    assert body["agreeing_sources"] == ["edamam", "nutritionix", "usda"]
    assert body["confidence"] == 1.0
    assert body["from_cache"] is False

    again = client.get("/lookup/name", params={"q": "Chicken  Breast"})
    assert again.json()["from_cache"] is True


def test_lookup_name_falls_back_to_placeholder(
    container, providers: list[FakeProvider]
) -> None:
    for provider in providers:
        provider.records = []
    client = TestClient(create_app(container))

    response = client.get("/lookup/name", params={"q": "grandma's stew"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "placeholder"
    assert body["verified"] is False
    assert body["record"]["source_id"] == "user_input"
    assert body["record"]["name"] == "grandma's stew"


def test_lookup_name_rejects_blank_query(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/lookup/name", params={"q": "   "}).status_code == 422
    assert client.get("/lookup/name").status_code == 422


def test_lookup_name_accepts_per_call_overrides(
    container, providers: list[FakeProvider]
) -> None:
    client = TestClient(create_app(container))

    response = client.get(
        "/lookup/name",
        params={"q": "rice", "mode": "first-success", "max_providers": 1},
    )

    assert response.status_code == 200
    assert response.json()["agreeing_sources"] == ["usda"]
    assert [provider.calls for provider in providers] == [1, 0, 0]


def test_lookup_barcode_not_found_is_404(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/lookup/barcode/0000000000000")

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "not_found"
    assert {outcome["status"] for outcome in body["outcomes"]} == {"not_found"}


def test_lookup_barcode_found(container, providers: list[FakeProvider]) -> None:
    providers[2].barcode_record = make_record("edamam", 42, carbs=10.6, name="Cola")
    client = TestClient(create_app(container))

    response = client.get("/lookup/barcode/5000112126619")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "reconciled"
    assert body["chosen"]["name"] == "Cola"
    assert body["confidence"] == 1.0


def test_lookup_barcode_rejects_non_numeric(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/lookup/barcode/abc123").status_code == 422


def test_providers_endpoint_lists_status(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/providers")

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "parallel-reconcile"
    assert [item["provider_id"] for item in body["providers"]] == [
        "usda",
        "nutritionix",
        "edamam",
    ]
    assert all(item["enabled"] for item in body["providers"])

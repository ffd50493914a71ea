"""
Tests for the HTTP API
"""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add project root (main.py) and src to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from main import app


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


@pytest.fixture
def extraction(client):
    response = client.post("/api/v1/extract", json={
        "rawText": "ES TEKLEK: 1 x @ 6,364 = 6,364\nMIE GACOAN 1 x @ 10,000 10,000",
        "engineConfidence": 90,
    })
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_root(client):
    assert client.get("/").json()["rules_version"] == "2024.10.1"


def test_extract(extraction):
    assert extraction["status"] == "success"
    assert [p["name"] for p in extraction["products"]] == ["ES TEKLEK", "MIE GACOAN"]
    assert extraction["products"][0]["extractionMethod"] == "structured_single_line"
    assert extraction["products"][0]["isValidated"] is False
    assert extraction["totalAmount"] == 16364.0
    assert extraction["validationSummary"]["needsReview"] == 2
    assert 0.0 <= extraction["confidence"] <= 1.0


def test_extract_links_word_boxes(client):
    box = [[0, 0], [140, 0], [140, 16], [0, 16]]
    body = client.post("/api/v1/extract", json={
        "rawText": "ES TEKLEK: 1 x @ 6,364 = 6,364",
        "engineConfidence": 90,
        "words": [{"text": "ES TEKLEK: 1 x @ 6,364 = 6,364", "confidence": 90, "bbox": box}],
    }).json()

    link = body["diagnostics"]["word_links"][0]
    assert link["name"] == "ES TEKLEK"
    assert link["words"][0]["bbox"] == box


def test_extract_empty_text(client):
    body = client.post("/api/v1/extract", json={"rawText": ""}).json()
    assert body["products"] == []
    assert body["confidence"] == 0.0
    assert body["totalAmount"] is None
    assert body["validationSummary"]["isFullyValidated"] is True


def test_extract_rejects_out_of_range_confidence(client):
    response = client.post("/api/v1/extract", json={"rawText": "ES TEH", "engineConfidence": 250})
    assert response.status_code == 422


def test_correct(client):
    body = client.post("/api/v1/correct", json={"text": "ES TEH T x @ R,364 R,364"}).json()
    assert body["corrected"] == "ES TEH 1 x @ 6,364 6,364"
    assert body["report"]["lines_corrected"] == 1


def test_validate_item(client, extraction):
    response = client.post("/api/v1/validation/apply", json={
        "result": extraction,
        "action": "validate",
        "index": 0,
        "reviewer": "cashier-01",
    })
    assert response.status_code == 200
    body = response.json()

    product = body["result"]["products"][0]
    assert product["isValidated"] is True
    assert product["validatedBy"] == "cashier-01"
    assert product["validatedAt"] is not None
    assert body["result"]["validationSummary"]["validated"] == 1
    assert body["records"][0]["state"] == "validated"


def test_validate_all_then_reset(client, extraction):
    validated = client.post("/api/v1/validation/apply", json={
        "result": extraction, "action": "validate_all",
    }).json()["result"]
    assert validated["validationSummary"]["isFullyValidated"] is True

    reset = client.post("/api/v1/validation/apply", json={
        "result": validated, "action": "reset",
    }).json()["result"]
    assert reset["validationSummary"]["needsReview"] == 2


def test_edit_item(client, extraction):
    body = client.post("/api/v1/validation/apply", json={
        "result": extraction,
        "action": "edit",
        "index": 1,
        "overrides": {"quantity": 2, "price": 20000},
    }).json()

    product = body["result"]["products"][1]
    assert product["quantity"] == 2
    assert product["price"] == 20000.0
    assert product["originalValues"] == {"name": "MIE GACOAN", "quantity": 1, "price": 10000.0}


def test_bad_index_is_not_found(client, extraction):
    response = client.post("/api/v1/validation/apply", json={
        "result": extraction, "action": "mark", "index": 7,
    })
    assert response.status_code == 404


@pytest.mark.parametrize("payload", [
    {"action": "validate"},
    {"action": "edit", "index": 0, "overrides": {"quantity": 0}},
    {"action": "edit", "index": 0},
])
def test_invalid_action_is_unprocessable(client, extraction, payload):
    response = client.post("/api/v1/validation/apply", json={"result": extraction, **payload})
    assert response.status_code == 422


def test_rules(client):
    rules = client.get("/api/v1/rules").json()["rules"]
    assert rules["version"] == "2024.10.1"
    assert "alfamart" in rules["vendors"]

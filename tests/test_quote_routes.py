"""
Tests for the quote editing and export API.
"""

from fastapi.testclient import TestClient

from estimator.core.config import settings
from estimator.main import app

QUOTE_URL = f"{settings.API_V1_PREFIX}/quote"


def _add_item(client: TestClient, **fields) -> dict:
    response = client.post(f"{QUOTE_URL}/items")
    assert response.status_code == 201
    item = response.json()["items"][-1]
    for field, value in fields.items():
        response = client.patch(f"{QUOTE_URL}/items/{item['id']}", json={"field": field, "value": value})
        assert response.status_code == 200
    return client.get(QUOTE_URL).json()["items"][-1]


def test_new_session_gets_empty_quote(client: TestClient) -> None:
    response = client.get(QUOTE_URL)

    assert response.status_code == 200
    data = response.json()
    assert data["items"] == []
    assert data["management_rate"] == settings.DEFAULT_MANAGEMENT_RATE
    assert data["tax_rate"] == settings.DEFAULT_TAX_RATE
    assert data["totals"]["grand_total"] == 0
    assert data["can_export"] is False
    assert settings.SESSION_COOKIE_NAME in response.cookies


def test_add_item_returns_blank_row(client: TestClient) -> None:
    response = client.post(f"{QUOTE_URL}/items")

    assert response.status_code == 201
    item = response.json()["items"][0]
    assert item["quantity"] == 1
    assert item["marketPrice"] == 0
    assert item["lineTotal"] == 0
    assert item["unit"] == settings.DEFAULT_UNIT


def test_edit_items_updates_totals(client: TestClient) -> None:
    _add_item(client, name="PVC pipe", quantity=10, marketPrice=200)
    _add_item(client, name="Wire", quantity=4, market_price=400)

    totals = client.get(QUOTE_URL).json()["totals"]

    assert totals["subtotal"] == 3600
    assert totals["management_fee"] == 360
    assert totals["tax"] == 198
    assert totals["grand_total"] == 4158


def test_update_unknown_item_is_404(client: TestClient) -> None:
    _add_item(client, name="Wire")
    before = client.get(QUOTE_URL).json()

    response = client.patch(f"{QUOTE_URL}/items/missing", json={"field": "name", "value": "Ghost"})

    assert response.status_code == 404
    assert client.get(QUOTE_URL).json()["items"] == before["items"]


def test_update_invalid_field_or_value_is_422(client: TestClient) -> None:
    item = _add_item(client, name="Wire")

    bad_field = client.patch(f"{QUOTE_URL}/items/{item['id']}", json={"field": "colour", "value": "red"})
    bad_value = client.patch(f"{QUOTE_URL}/items/{item['id']}", json={"field": "quantity", "value": "lots"})
    immutable = client.patch(f"{QUOTE_URL}/items/{item['id']}", json={"field": "id", "value": "x"})

    assert bad_field.status_code == 422
    assert bad_value.status_code == 422
    assert immutable.status_code == 422
    assert client.get(QUOTE_URL).json()["items"][0]["id"] == item["id"]


def test_remove_and_move_items(client: TestClient) -> None:
    first = _add_item(client, name="First")
    second = _add_item(client, name="Second")
    third = _add_item(client, name="Third")

    response = client.post(f"{QUOTE_URL}/items/move", json={"index": 2, "direction": "up"})
    assert [item["name"] for item in response.json()["items"]] == ["First", "Third", "Second"]

    response = client.post(f"{QUOTE_URL}/items/move", json={"index": 0, "direction": "up"})
    assert [item["id"] for item in response.json()["items"]] == [first["id"], third["id"], second["id"]]

    response = client.delete(f"{QUOTE_URL}/items/{third['id']}")
    assert response.status_code == 200
    assert [item["name"] for item in response.json()["items"]] == ["First", "Second"]

    assert client.delete(f"{QUOTE_URL}/items/{third['id']}").status_code == 404


def test_move_rejects_unknown_direction(client: TestClient) -> None:
    response = client.post(f"{QUOTE_URL}/items/move", json={"index": 0, "direction": "left"})

    assert response.status_code == 422


def test_warnings_are_reported_per_item(client: TestClient) -> None:
    item = _add_item(client, quantity=-2)

    warnings = client.get(QUOTE_URL).json()["warnings"]

    assert warnings[item["id"]] == ["Item name is empty", "Quantity is negative"]


def test_header_and_rates(client: TestClient) -> None:
    response = client.put(f"{QUOTE_URL}/header", json={"fields": {"projectName": "Tower A", "client_tax_id": "12345678"}})
    assert response.status_code == 200
    header = response.json()["header"]
    assert header["projectName"] == "Tower A"
    assert header["clientTaxId"] == "12345678"

    response = client.put(f"{QUOTE_URL}/rates", json={"management_rate": 0})
    assert response.json()["management_rate"] == 0
    assert response.json()["tax_rate"] == settings.DEFAULT_TAX_RATE

    response = client.put(f"{QUOTE_URL}/header", json={"fields": {"budget": "1"}})
    assert response.status_code == 422


def test_reset_discards_quote(client: TestClient) -> None:
    _add_item(client, name="Wire")

    response = client.post(f"{QUOTE_URL}/reset")

    assert response.status_code == 200
    assert response.json()["items"] == []


def test_sessions_do_not_share_quotes(client: TestClient) -> None:
    _add_item(client, name="Wire")

    with TestClient(app) as other:
        assert other.get(QUOTE_URL).json()["items"] == []

    assert len(client.get(QUOTE_URL).json()["items"]) == 1


def test_export_requires_items(client: TestClient) -> None:
    for fmt in ("csv", "xlsx", "pdf"):
        response = client.get(f"{settings.API_V1_PREFIX}/export/{fmt}")
        assert response.status_code == 409


def test_export_downloads(client: TestClient) -> None:
    client.put(f"{QUOTE_URL}/header", json={"fields": {"projectName": "Tower A"}})
    _add_item(client, name="Wire", quantity=3, marketPrice=1450)

    csv_response = client.get(f"{settings.API_V1_PREFIX}/export/csv")
    assert csv_response.status_code == 200
    assert csv_response.content.startswith(b"\xef\xbb\xbf")
    assert "attachment" in csv_response.headers["content-disposition"]
    assert "Tower%20A_" in csv_response.headers["content-disposition"]

    xlsx_response = client.get(f"{settings.API_V1_PREFIX}/export/xlsx")
    assert xlsx_response.status_code == 200
    assert xlsx_response.content.startswith(b"PK")

    pdf_response = client.get(f"{settings.API_V1_PREFIX}/export/pdf")
    assert pdf_response.status_code == 200
    assert pdf_response.headers["content-type"] == "application/pdf"
    assert pdf_response.content.startswith(b"%PDF")

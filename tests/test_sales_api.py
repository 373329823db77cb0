from datetime import date
from decimal import Decimal

from sales_engine.models.inventory import InventoryItem, StockMovement


def _seed_items(session_factory):
    with session_factory() as db:
        db.add(InventoryItem(id="x", name="Batik scarf", unit="pcs", quantity=10))
        db.add(InventoryItem(id="y", name="Coffee beans", unit="pack", quantity=5, min_stock=8))
        db.commit()


def _sale_payload(**overrides):
    payload = {
        "buyer": "Ibu Sari",
        "sale_date": "2026-03-14",
        "note": "Charity bazaar",
        "lines": [
            {"item_id": "x", "quantity": 2, "base_price": 1200, "donation": 0},
            {"item_id": "y", "quantity": 1, "base_price": 5000, "donation": 500},
        ],
    }
    payload.update(overrides)
    return payload


def _stock(client, *item_ids: str) -> dict[str, int]:
    res = client.get("/inventory/stock", params={"ids": ",".join(item_ids)})
    assert res.status_code == 200, res.text
    return {item["item_id"]: item["quantity"] for item in res.json()["items"]}


def test_health_endpoints(test_context):
    client, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    assert client.get("/ready").status_code == 200
    root = client.get("/")
    assert root.json()["docs"] == "/docs"
    assert root.headers["X-Request-ID"]


def test_create_read_and_list_sale(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    create_res = client.post("/sales", json=_sale_payload(), headers={"X-Actor-Id": "cashier-1"})
    assert create_res.status_code == 200, create_res.text
    sale = create_res.json()
    assert sale["grand_total"] == 7900.0
    assert sale["item_count"] == 2
    assert sale["source"] == "modern"
    assert sale["ledger_entry_id"]
    assert _stock(client, "x", "y") == {"x": 8, "y": 4}

    get_res = client.get(f"/sales/{sale['id']}")
    assert get_res.status_code == 200, get_res.text
    assert [line["subtotal"] for line in get_res.json()["lines"]] == [2400.0, 5500.0]

    list_res = client.get("/sales", params={"limit": 10})
    assert list_res.status_code == 200, list_res.text
    body = list_res.json()
    assert body["pagination"]["total"] == 1
    assert body["pagination"]["has_next"] is False
    assert body["items"][0]["id"] == sale["id"]


def test_insufficient_stock_returns_line_errors(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    res = client.post(
        "/sales",
        json=_sale_payload(lines=[{"item_id": "y", "quantity": 10, "base_price": 5000}]),
    )

    assert res.status_code == 409, res.text
    error = res.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["details"][0]["requested"] == 10
    assert error["details"][0]["available"] == 5
    assert error["request_id"] == res.headers["X-Request-ID"]
    assert _stock(client, "y") == {"y": 5}
    assert client.get("/sales").json()["pagination"]["total"] == 0


def test_invalid_sale_input_is_422(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    empty = client.post("/sales", json=_sale_payload(lines=[]))
    assert empty.status_code == 422, empty.text
    assert empty.json()["error"]["code"] == "validation_error"

    zero_qty = client.post(
        "/sales",
        json=_sale_payload(lines=[{"item_id": "x", "quantity": 0, "base_price": 1200}]),
    )
    assert zero_qty.status_code == 422, zero_qty.text

    malformed = client.post("/sales", json={"buyer": "Ibu Sari"})
    assert malformed.status_code == 422
    assert malformed.json()["error"]["message"] == "Validation failed"


def test_idempotency_key_replays_over_http(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    headers = {"Idempotency-Key": "checkout-42"}
    first = client.post("/sales", json=_sale_payload(), headers=headers)
    second = client.post("/sales", json=_sale_payload(), headers=headers)

    assert first.status_code == 200, first.text
    assert second.status_code == 200, second.text
    assert first.json()["id"] == second.json()["id"]
    assert _stock(client, "x") == {"x": 8}


def test_update_delete_round_trip(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    sale_id = client.post(
        "/sales",
        json=_sale_payload(lines=[{"item_id": "x", "quantity": 3, "base_price": 1000}]),
    ).json()["id"]

    update_res = client.put(
        f"/sales/{sale_id}",
        json=_sale_payload(
            lines=[
                {"item_id": "x", "quantity": 1, "base_price": 1000},
                {"item_id": "y", "quantity": 2, "base_price": 500},
            ]
        ),
    )
    assert update_res.status_code == 200, update_res.text
    assert update_res.json()["grand_total"] == 2000.0
    assert _stock(client, "x", "y") == {"x": 9, "y": 3}

    first_delete = client.delete(f"/sales/{sale_id}")
    assert first_delete.status_code == 200
    assert first_delete.json() == {"id": sale_id, "deleted": True}
    second_delete = client.delete(f"/sales/{sale_id}")
    assert second_delete.status_code == 200
    assert second_delete.json() == {"id": sale_id, "deleted": False}

    assert _stock(client, "x", "y") == {"x": 10, "y": 5}
    missing = client.get(f"/sales/{sale_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_validate_stock_endpoint_reports_errors_and_warnings(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    res = client.post(
        "/sales/validate-stock",
        json={
            "lines": [
                {"item_id": "x", "quantity": 9},
                {"item_id": "y", "quantity": 6},
                {"item_id": "ghost", "quantity": 1},
            ]
        },
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["valid"] is False
    assert [error["line_index"] for error in body["errors"]] == [1, 2]
    assert body["message"].startswith("Found 2 stock problems:")
    assert body["warnings"] == ["Warning: Batik scarf request uses 90% of remaining stock"]


def test_legacy_sale_listing_and_migration(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)
    with session_factory() as db:
        db.add(
            StockMovement(
                id="mv-legacy",
                item_id="x",
                direction="out",
                mode="sale",
                quantity=2,
                movement_date=date(2026, 2, 1),
                buyer="Pak Budi",
                unit_price=Decimal("1500"),
            )
        )
        db.commit()

    listed = client.get("/sales", params={"q": "budi"}).json()
    assert [item["id"] for item in listed["items"]] == ["mv-legacy"]
    assert listed["items"][0]["source"] == "legacy"
    assert listed["items"][0]["grand_total"] == 3000.0

    migrated = client.post("/sales/mv-legacy/migrate")
    assert migrated.status_code == 200, migrated.text
    assert migrated.json()["source"] == "modern"
    assert migrated.json()["grand_total"] == 3000.0
    assert _stock(client, "x") == {"x": 10}

    summary = client.get("/sales/summary").json()
    assert summary["transactions"] == 1
    assert summary["total_revenue"] == 3000.0


def test_inventory_endpoints(test_context):
    client, session_factory = test_context
    _seed_items(session_factory)

    stock = client.get("/inventory/stock", params=[("ids", "x"), ("ids", "nope")]).json()
    assert stock["items"] == [{"item_id": "x", "name": "Batik scarf", "quantity": 10, "unit": "pcs"}]
    assert stock["missing"] == ["nope"]

    low = client.get("/inventory/low-stock").json()
    assert low["threshold"] == 10
    assert [item["item_id"] for item in low["items"]] == ["y"]

    assert client.get("/sales", params={"start_date": "2026-03-02", "end_date": "2026-03-01"}).status_code == 400

"""HTTP surface: status codes, error bodies and money formatting.

Reads go through ``fetch`` so no test session holds the database open
while the app handles a request.
"""
import uuid

from marketplace.models import Order, Product


def customer_headers(seed, actor=None):
    headers = {"X-Customer-Id": str(seed.customer)}
    if actor:
        headers["X-Actor-Id"] = actor
    return headers


def order_body(seed, *lines, **extra):
    body = {
        "supplier_id": str(seed.supplier),
        "items": [{"product_id": str(pid), "quantity": qty} for pid, qty in lines],
    }
    body.update(extra)
    return body


def post_order(client, seed, *lines, **extra):
    return client.post("/orders", json=order_body(seed, *lines, **extra), headers=customer_headers(seed))


# ---------- orders ----------

def test_create_order(client, seed, fetch):
    response = post_order(
        client, seed, (seed.widget, 2), (seed.gadget, 1),
        delivery_address={"street": "1 Main St", "city": "Springfield"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["subtotal"] == "25.50"
    assert data["total"] == "25.50"
    assert data["discount"] == "0.00"
    assert data["delivery_city"] == "Springfield"
    assert sorted(item["line_total"] for item in data["items"]) == ["20.00", "5.50"]
    assert {item["price_source"] for item in data["items"]} == {"base"}

    assert fetch(Product, seed.widget).stock_quantity == 8
    assert fetch(Product, seed.gadget).stock_quantity == 4
    assert fetch(Order, uuid.UUID(data["order_id"])).order_number == data["order_number"]


def test_shortage_returns_409_with_every_short_line(client, seed, fetch):
    response = post_order(client, seed, (seed.widget, 2), (seed.gadget, 6))

    assert response.status_code == 409
    assert response.json() == {
        "error": "insufficient stock",
        "shortages": [{
            "product_id": str(seed.gadget),
            "name": "Gadget",
            "available": 5,
            "requested": 6,
        }],
    }
    assert fetch(Product, seed.widget).stock_quantity == 10


def test_unknown_supplier_returns_404(client, seed):
    body = order_body(seed, (seed.widget, 1))
    body["supplier_id"] = str(uuid.uuid4())

    response = client.post("/orders", json=body, headers=customer_headers(seed))
    assert response.status_code == 404
    assert response.json() == {"error": "Supplier not found"}


def test_foreign_product_returns_404_with_ids(client, seed):
    response = post_order(client, seed, (seed.widget, 1), (seed.foreign, 1))

    assert response.status_code == 404
    assert response.json()["product_ids"] == [str(seed.foreign)]


def test_zero_quantity_is_unprocessable(client, seed):
    response = post_order(client, seed, (seed.widget, 0))
    assert response.status_code == 422


def test_duplicate_lines_are_unprocessable(client, seed):
    response = post_order(client, seed, (seed.widget, 1), (seed.widget, 1))
    assert response.status_code == 422


def test_missing_customer_header_is_unprocessable(client, seed):
    response = client.post("/orders", json=order_body(seed, (seed.widget, 1)))
    assert response.status_code == 422


def test_status_flow_and_history(client, seed):
    order = post_order(client, seed, (seed.widget, 1)).json()
    order_id = order["order_id"]

    response = client.put(
        f"/orders/{order_id}/status",
        json={"status": "confirmed", "note": "Payment received"},
        headers={"X-Actor-Id": "supplier-user"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    skipped = client.put(f"/orders/{order_id}/status", json={"status": "delivered"})
    assert skipped.status_code == 409
    assert "confirmed" in skipped.json()["error"]

    history = client.get(f"/orders/{order_id}/history").json()
    assert [(h["status"], h["created_by"]) for h in history] == [
        ("pending", str(seed.customer)),
        ("confirmed", "supplier-user"),
    ]


def test_cancel_restores_stock(client, seed, fetch):
    order = post_order(client, seed, (seed.widget, 4)).json()
    assert fetch(Product, seed.widget).stock_quantity == 6

    response = client.post(
        f"/orders/{order['order_id']}/cancel",
        json={"note": "Ordered by mistake"},
        headers=customer_headers(seed),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert fetch(Product, seed.widget).stock_quantity == 10


def test_cancel_by_another_customer_is_not_found(client, seed):
    order = post_order(client, seed, (seed.widget, 1)).json()
    response = client.post(
        f"/orders/{order['order_id']}/cancel",
        headers={"X-Customer-Id": str(seed.stranger)},
    )
    assert response.status_code == 404


def test_tracking(client, seed):
    order = post_order(client, seed, (seed.widget, 1)).json()
    response = client.put(
        f"/orders/{order['order_id']}/tracking",
        json={"tracking_code": "BR123456789", "estimated_delivery": "2026-11-02"},
    )
    assert response.status_code == 200
    assert response.json()["tracking_code"] == "BR123456789"
    assert response.json()["estimated_delivery"] == "2026-11-02"


def test_list_and_get_orders(client, seed):
    created = post_order(client, seed, (seed.gadget, 2)).json()

    listing = client.get("/orders", params={"customer_id": str(seed.customer)}).json()
    assert listing["total"] == 1
    assert listing["orders"][0]["order_number"] == created["order_number"]

    single = client.get(f"/orders/{created['order_id']}")
    assert single.status_code == 200
    assert single.json()["total"] == "11.00"

    assert client.get(f"/orders/{uuid.uuid4()}").status_code == 404


# ---------- catalog ----------

def test_price_preview_uses_customer_override(client, seed):
    client.post("/pricing/customer-prices", json={
        "customer_id": str(seed.customer),
        "product_id": str(seed.widget),
        "price": "9.10",
    })

    response = client.get(
        f"/catalog/products/{seed.widget}/price",
        params={"customer_id": str(seed.customer)},
    )
    assert response.status_code == 200
    assert response.json()["price"] == "9.10"
    assert response.json()["source"] == "customer_override"

    anonymous = client.get(f"/catalog/products/{seed.widget}/price").json()
    assert anonymous["price"] == "10.00"
    assert anonymous["source"] == "base"


def test_price_preview_of_inactive_product_is_not_found(client, seed):
    assert client.get(f"/catalog/products/{seed.retired}/price").status_code == 404


def test_supplier_catalog_applies_price_list(client, seed):
    price_list = client.post("/pricing/price-lists", json={
        "supplier_id": str(seed.supplier),
        "price_list_name": "Gold",
        "discount_type": "percentage",
        "discount_value": "20",
    })
    assert price_list.status_code == 201

    link = client.put("/pricing/links", json={
        "customer_id": str(seed.customer),
        "supplier_id": str(seed.supplier),
        "price_list_id": price_list.json()["price_list_id"],
    })
    assert link.status_code == 200

    page = client.get(
        f"/catalog/suppliers/{seed.supplier}/products",
        params={"customer_id": str(seed.customer)},
    ).json()

    assert page["total"] == 2
    prices = {p["product_name"]: (p["price"], p["source"]) for p in page["products"]}
    assert prices == {
        "Gadget": ("4.40", "price_list_discount"),
        "Widget": ("8.00", "price_list_discount"),
    }


def test_special_price_in_a_price_list(client, seed):
    price_list = client.post("/pricing/price-lists", json={
        "supplier_id": str(seed.supplier),
        "price_list_name": "Silver",
        "discount_type": "fixed_amount",
        "discount_value": "1.00",
    }).json()
    item = client.post(
        f"/pricing/price-lists/{price_list['price_list_id']}/items",
        json={"product_id": str(seed.gadget), "special_price": "3.75"},
    )
    assert item.status_code == 200

    client.put("/pricing/links", json={
        "customer_id": str(seed.customer),
        "supplier_id": str(seed.supplier),
        "price_list_id": price_list["price_list_id"],
    })

    quote = client.post("/catalog/cart/quote", json={
        "supplier_id": str(seed.supplier),
        "customer_id": str(seed.customer),
        "items": [
            {"product_id": str(seed.gadget), "quantity": 2},
            {"product_id": str(seed.widget), "quantity": 1},
        ],
    }).json()

    lines = {line["product_name"]: line for line in quote["items"]}
    assert lines["Gadget"]["unit_price"] == "3.75"
    assert lines["Gadget"]["source"] == "price_list_special"
    assert lines["Widget"]["unit_price"] == "9.00"
    assert quote["subtotal"] == "16.50"


def test_cart_quote_reports_shortage_without_touching_stock(client, seed, fetch):
    response = client.post("/catalog/cart/quote", json={
        "supplier_id": str(seed.supplier),
        "items": [{"product_id": str(seed.widget), "quantity": 11}],
    })
    assert response.status_code == 409
    assert response.json()["shortages"][0]["available"] == 10
    assert fetch(Product, seed.widget).stock_quantity == 10


def test_cart_quote_rejects_repeated_products(client, seed):
    response = client.post("/catalog/cart/quote", json={
        "supplier_id": str(seed.supplier),
        "items": [
            {"product_id": str(seed.widget), "quantity": 6},
            {"product_id": str(seed.widget), "quantity": 6},
        ],
    })
    assert response.status_code == 422


# ---------- pricing ----------

def test_percentage_price_list_over_100_is_unprocessable(client, seed):
    response = client.post("/pricing/price-lists", json={
        "supplier_id": str(seed.supplier),
        "price_list_name": "Free stuff",
        "discount_type": "percentage",
        "discount_value": "150",
    })
    assert response.status_code == 422


def test_customer_price_requires_supplier_link(client, seed):
    response = client.post("/pricing/customer-prices", json={
        "customer_id": str(seed.stranger),
        "product_id": str(seed.widget),
        "price": "1.00",
    })
    assert response.status_code == 404


# ---------- inventory ----------

def test_stock_movements_endpoint(client, seed, fetch):
    response = client.post(
        f"/inventory/products/{seed.gadget}/movements",
        json={"movement_type": "in", "quantity": 20, "reason": "Delivery received"},
        headers={"X-Actor-Id": "warehouse"},
    )
    assert response.status_code == 201
    assert (response.json()["stock_before"], response.json()["stock_after"]) == (5, 25)

    too_many = client.post(
        f"/inventory/products/{seed.gadget}/movements",
        json={"movement_type": "out", "quantity": 30, "reason": "Damaged"},
    )
    assert too_many.status_code == 409

    movements = client.get(f"/inventory/products/{seed.gadget}/movements").json()
    assert [(m["movement_type"], m["created_by"]) for m in movements] == [("in", "warehouse")]
    assert fetch(Product, seed.gadget).stock_quantity == 25


def test_product_stock_view(client, seed):
    data = client.get(f"/inventory/products/{seed.gadget}").json()
    assert data["below_minimum"] is True
    assert data["buffer_remaining"] == -5
    assert data["suggested_reorder_qty"] == 35


def test_low_stock_alerts(client, seed):
    alerts = client.get(
        "/inventory/alerts/low-stock", params={"supplier_id": str(seed.supplier)}
    ).json()

    assert [alert["product_name"] for alert in alerts] == ["Gadget"]
    assert alerts[0]["urgency_score"] == 0.5

import time

import pytest

from vokatra_checkout.application.errors import DatastoreError
from vokatra_checkout.domain.models import Donation, Order, OrderItem
from vokatra_checkout.infrastructure.datastore import SqlDatastore
from tests.conftest import FakeGateway

def test_order_checkout_snapshots_server_prices(client, datastore, gateway, order_body):
    resp = client.post("/create_checkout_session", json=order_body())
    assert resp.status_code == 200
    body = resp.json()
    assert body["url"] == "https://checkout.stripe.com/c/pay/cs_test_1"
    order_id = body["order_id"]

    order = datastore.get_order(order_id)
    assert order.total_amount_cents == 3000
    assert order.payment_status == "pending"
    assert order.status == "new"
    assert order.currency == "EUR"
    assert order.stripe_checkout_session_id == "cs_test_1"

    items = datastore.get_order_items(order_id)
    assert len(items) == 1
    assert items[0].product_name_snapshot == "Ravitoto"
    assert items[0].unit_price_cents_snapshot == 1500
    assert items[0].line_total_cents == 3000

    # Stock is only read at checkout
    assert datastore.get_product("P1").stock_qty == 5

def test_order_checkout_session_parameters(client, gateway, order_body):
    before = int(time.time())
    resp = client.post("/create_checkout_session", json=order_body(
        cart=[{"productId": "P1", "qty": 2}, {"productId": "P2", "qty": 3}]
    ))
    assert resp.status_code == 200
    session = gateway.sessions[0]
    assert session["metadata"] == {"entity_id": resp.json()["order_id"], "type": "order"}
    assert session["customer_email"] == "hery@example.com"
    assert session["success_url"] == "https://shop.example/success?session_id={CHECKOUT_SESSION_ID}"
    assert session["cancel_url"] == "https://shop.example/cancel"
    assert before + 1800 <= session["expires_at"] <= int(time.time()) + 1800
    assert [(i.name, i.unit_amount, i.quantity) for i in session["line_items"]] == [
        ("Ravitoto", 1500, 2),
        ("Sambos", 250, 3),
    ]

def test_client_supplied_prices_are_ignored(client, datastore, order_body):
    cart = [{"productId": "P1", "qty": 2, "unitPriceCents": 1, "price": 0.01}]
    resp = client.post("/create_checkout_session", json=order_body(cart=cart))
    assert resp.status_code == 200
    assert datastore.get_order(resp.json()["order_id"]).total_amount_cents == 3000

def test_total_is_sum_of_line_totals(client, datastore, order_body):
    cart = [{"productId": "P1", "qty": 1}, {"productId": "P2", "qty": 4}]
    resp = client.post("/create_checkout_session", json=order_body(cart=cart))
    order_id = resp.json()["order_id"]
    items = datastore.get_order_items(order_id)
    assert sum(i.line_total_cents for i in items) == 1500 + 1000
    assert datastore.get_order(order_id).total_amount_cents == 2500

@pytest.mark.parametrize("field,message", [
    ("firstName", "First name is required"),
    ("lastName", "Last name is required"),
    ("address", "Address is required"),
    ("churchName", "Church name is required"),
    ("sectionName", "Section name is required"),
])
def test_required_customer_fields(client, count, order_body, field, message):
    resp = client.post("/create_checkout_session", json=order_body(**{field: "  "}))
    assert resp.status_code == 400
    assert resp.json() == {"error": message}
    assert count(Order) == 0

def test_first_failure_wins(client, order_body):
    body = order_body(firstName="", sectionName="")
    body["cart"] = []
    resp = client.post("/create_checkout_session", json=body)
    assert resp.json()["error"] == "First name is required"

def test_missing_customer_object(client):
    resp = client.post("/create_checkout_session", json={"cart": [{"productId": "P1", "qty": 1}]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "First name is required"

@pytest.mark.parametrize("delivery,message", [
    ({"dateId": "D1"}, "Delivery address is required"),
    ({"address": "Temple"}, "Delivery date is required"),
    ({"address": "Temple", "dateId": "D9"}, "Delivery date not found"),
    ({"address": "Temple", "dateId": "D0"}, "This delivery date is no longer available"),
])
def test_delivery_validation(client, count, order_body, delivery, message):
    body = order_body()
    body["delivery"] = delivery
    resp = client.post("/create_checkout_session", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"] == message
    assert count(Order) == 0

def test_empty_cart(client, order_body):
    resp = client.post("/create_checkout_session", json=order_body(cart=[]))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cart is empty"

@pytest.mark.parametrize("cart,message", [
    ([{"productId": "NOPE", "qty": 1}], "Product not found: NOPE"),
    ([{"productId": "P3", "qty": 1}], "Product unavailable: Koba"),
    ([{"productId": "P1", "qty": 6}], 'Insufficient stock for "Ravitoto". Available: 5, requested: 6'),
    ([{"productId": "P1", "qty": 0}], "Invalid quantity for: Ravitoto"),
    ([{"productId": "P2", "qty": -2}], "Invalid quantity for: Sambos"),
    ([{"productId": "P1", "qty": 1}, {"productId": "P3", "qty": 1}], "Product unavailable: Koba"),
])
def test_invalid_cart_persists_nothing(client, count, gateway, order_body, cart, message):
    resp = client.post("/create_checkout_session", json=order_body(cart=cart))
    assert resp.status_code == 400
    assert resp.json()["error"] == message
    assert count(Order) == 0
    assert count(OrderItem) == 0
    assert gateway.sessions == []

def test_non_integer_quantity_is_a_schema_error(client, count, order_body):
    resp = client.post("/create_checkout_session", json=order_body(cart=[{"productId": "P1", "qty": "two"}]))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body: cart.0.qty"
    assert count(Order) == 0

def test_malformed_json(client):
    resp = client.post("/create_checkout_session", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body (JSON expected)"}
    assert resp.headers["access-control-allow-origin"] == "*"

def test_only_post_is_allowed(client):
    resp = client.get("/create_checkout_session")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}

def test_responses_carry_open_cors(client, order_body):
    resp = client.post("/create_checkout_session", json=order_body())
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.headers["access-control-allow-origin"] == "*"

class ItemsFailDatastore(SqlDatastore):
    def insert_order_items(self, order_id, items):
        raise DatastoreError("insert on order_items violates foreign key constraint")

def test_item_insert_failure_removes_order_header(make_client, session_factory, catalog, count, gateway, order_body):
    client = make_client(ItemsFailDatastore(session_factory))
    resp = client.post("/create_checkout_session", json=order_body())
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error while saving order items"}
    assert count(Order) == 0
    assert count(OrderItem) == 0
    assert gateway.sessions == []

def test_session_failure_keeps_order_as_failed(make_client, datastore, session_factory, count, order_body):
    client = make_client(datastore, gateway=FakeGateway(fail=True))
    resp = client.post("/create_checkout_session", json=order_body())
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error while creating the payment session"}
    assert count(Order) == 1
    assert count(OrderItem) == 1
    with session_factory() as db:
        order = db.query(Order).one()
        assert order.payment_status == "failed"
        assert order.stripe_checkout_session_id is None

class SessionSaveFailsDatastore(SqlDatastore):
    def update_order(self, order_id, **fields):
        if "stripe_checkout_session_id" in fields:
            raise DatastoreError("connection reset")
        return super().update_order(order_id, **fields)

def test_session_id_save_failure_marks_order_failed(make_client, session_factory, catalog, order_body):
    client = make_client(SessionSaveFailsDatastore(session_factory))
    resp = client.post("/create_checkout_session", json=order_body())
    assert resp.status_code == 500
    with session_factory() as db:
        assert db.query(Order).one().payment_status == "failed"

def test_checkout_is_not_idempotent(client, count, order_body):
    client.post("/create_checkout_session", json=order_body())
    client.post("/create_checkout_session", json=order_body())
    assert count(Order) == 2

def test_donation_checkout(client, datastore, gateway):
    resp = client.post("/create_checkout_session", json={
        "donation": {"firstName": "Voahangy", "lastName": "Rabe", "amountCents": 2500,
                     "church": "FLM Bordeaux", "message": "Courage !"},
        "cart": [{"productId": "P1", "qty": 1}],
    })
    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"url", "donation_id"}
    donation = datastore.get_donation(body["donation_id"])
    assert donation.amount_cents == 2500
    assert donation.payment_status == "pending"
    assert donation.church_name == "FLM Bordeaux"
    assert donation.stripe_checkout_session_id == "cs_test_1"
    session = gateway.sessions[0]
    assert session["metadata"] == {"entity_id": body["donation_id"], "type": "donation"}
    assert session["expires_at"] is None
    assert session["line_items"][0].unit_amount == 2500
    assert session["line_items"][0].quantity == 1

@pytest.mark.parametrize("donation,message", [
    ({"firstName": "A", "lastName": "B", "amountCents": 50}, "Minimum amount is 1 €"),
    ({"firstName": "A", "lastName": "B"}, "Minimum amount is 1 €"),
    ({"lastName": "B", "amountCents": 500}, "First name is required"),
    ({"firstName": "A", "amountCents": 500}, "Last name is required"),
])
def test_donation_validation(client, count, donation, message):
    resp = client.post("/create_checkout_session", json={"donation": donation})
    assert resp.status_code == 400
    assert resp.json() == {"error": message}
    assert count(Donation) == 0

def test_donation_session_failure_deletes_donation(make_client, datastore, count):
    client = make_client(datastore, gateway=FakeGateway(fail=True))
    resp = client.post("/create_checkout_session", json={
        "donation": {"firstName": "A", "lastName": "B", "amountCents": 1000}
    })
    assert resp.status_code == 500
    assert count(Donation) == 0

def test_falsy_donation_checks_out_the_order(client, order_body):
    body = order_body()
    body["donation"] = False
    resp = client.post("/create_checkout_session", json=body)
    assert resp.status_code == 200
    assert "order_id" in resp.json()

@pytest.mark.parametrize("method", ["HEAD", "OPTIONS", "PUT", "DELETE"])
def test_other_methods_answer_405_with_cors(client, method):
    resp = client.request(method, "/create_checkout_session")
    assert resp.status_code == 405
    assert resp.headers["access-control-allow-origin"] == "*"
    if method != "HEAD":
        assert resp.json() == {"error": "Method not allowed"}

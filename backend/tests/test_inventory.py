"""
Inventory ledger tests.

Verifies:
- Manual in/out/adjustment movements and their stock arithmetic
- Out beyond available stock is refused
- A no-op adjustment is rejected; adjusting to zero is allowed
- Movement listing filters
"""

import pytest

from prismatech.extensions import db
from prismatech.models import InventoryMovement, Product


def post_movement(client, headers, **body):
    return client.post("/api/inventory/movements", json=body, headers=headers)


class TestManualMovements:
    @pytest.mark.parametrize(
        "movement_type,quantity,expected_stock,recorded_type,recorded_qty",
        [
            ("in", 5, 15, "in", 5),
            ("out", 4, 6, "out", 4),
            ("adjustment", 3, 3, "out", 7),
            ("adjustment", 25, 25, "in", 15),
            ("adjustment", 0, 0, "out", 10),
        ],
    )
    def test_movement_updates_stock(self, client, manager_headers, product,
                                    movement_type, quantity, expected_stock, recorded_type, recorded_qty):
        resp = post_movement(client, manager_headers, product_id=product.id, movement_type=movement_type,
                             quantity=quantity, notes="Conteo fisico")

        assert resp.status_code == 201, resp.json
        movement = resp.json["data"]["movement"]
        assert movement["movement_type"] == recorded_type
        assert movement["quantity"] == recorded_qty
        assert movement["previous_stock"] == 10
        assert movement["new_stock"] == expected_stock
        assert movement["reference_type"] == "adjustment"
        assert movement["notes"] == "Conteo fisico"
        assert db.session.get(Product, product.id).stock == expected_stock

    def test_out_beyond_stock_conflicts(self, client, admin_headers, product):
        resp = post_movement(client, admin_headers, product_id=product.id, movement_type="out", quantity=11)

        assert resp.status_code == 409
        assert resp.json["error"]["details"]["available"] == 10
        assert db.session.get(Product, product.id).stock == 10

    def test_zero_quantity_only_for_adjustment(self, client, admin_headers, product):
        resp = post_movement(client, admin_headers, product_id=product.id, movement_type="in", quantity=0)

        assert resp.status_code == 400
        assert resp.json["error"]["details"]["errors"][0]["field"] == "quantity"
        assert db.session.get(Product, product.id).stock == 10

    def test_noop_adjustment_rejected(self, client, admin_headers, product):
        resp = post_movement(client, admin_headers, product_id=product.id, movement_type="adjustment", quantity=10)
        assert resp.status_code == 400

    def test_validation_collects_every_field(self, client, admin_headers):
        resp = post_movement(client, admin_headers, movement_type="initial", quantity=0)

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json["error"]["details"]["errors"]}
        assert fields == {"product_id", "movement_type", "quantity"}

    def test_unknown_product(self, client, admin_headers):
        resp = post_movement(client, admin_headers, product_id=5555, movement_type="in", quantity=1)
        assert resp.status_code == 404

    def test_default_note(self, client, admin_headers, product):
        resp = post_movement(client, admin_headers, product_id=product.id, movement_type="in", quantity=1)
        assert resp.json["data"]["movement"]["notes"] == "Manual inventory adjustment"


class TestMovementListing:
    def test_newest_first_with_filters(self, client, manager_headers, make_product):
        a = make_product()
        b = make_product()
        post_movement(client, manager_headers, product_id=a.id, movement_type="in", quantity=2)
        post_movement(client, manager_headers, product_id=b.id, movement_type="out", quantity=1)

        everything = client.get("/api/inventory/movements", headers=manager_headers).json["data"]
        only_a = client.get(f"/api/inventory/movements?product_id={a.id}", headers=manager_headers).json["data"]
        outs = client.get("/api/inventory/movements?movement_type=out", headers=manager_headers).json["data"]
        initial = client.get("/api/inventory/movements?reference_type=initial", headers=manager_headers).json["data"]

        assert everything["pagination"]["total"] == 4
        assert everything["data"][0]["product_id"] == b.id
        assert {m["product_id"] for m in only_a["data"]} == {a.id}
        assert [m["product_id"] for m in outs["data"]] == [b.id]
        assert initial["pagination"]["total"] == 2

    def test_bad_filters(self, client, manager_headers):
        resp = client.get("/api/inventory/movements?movement_type=teleport&date_from=ayer", headers=manager_headers)

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json["error"]["details"]["errors"]}
        assert fields == {"movement_type", "date_from"}

    def test_every_stock_change_has_a_movement(self, client, admin_headers, product):
        client.patch(f"/api/products/{product.id}", json={"stock": 4}, headers=admin_headers)
        post_movement(client, admin_headers, product_id=product.id, movement_type="in", quantity=6)

        moves = db.session.query(InventoryMovement).filter_by(product_id=product.id).order_by(InventoryMovement.id).all()
        for prev, nxt in zip(moves, moves[1:]):
            assert nxt.previous_stock == prev.new_stock
        assert moves[-1].new_stock == db.session.get(Product, product.id).stock == 10

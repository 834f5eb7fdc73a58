"""
Product delete lifecycle tests.

Verifies:
- Soft delete zeroes stock through the ledger and hides the product
- permanent=1 refuses while dependencies exist and lists them
- force=1 removes the product, its movements, and detaches sale lines
- Trash listing, restore, bulk delete
"""

from prismatech.extensions import db
from prismatech.models import InventoryMovement, Product, SaleItem


def sell(client, headers, product, quantity=1):
    resp = client.post("/api/sales", json={
        "customer_name": "Cliente Mostrador",
        "payment_method": "efectivo",
        "items": [{"product_id": product.id, "quantity": quantity}],
    }, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["data"]["sale"]


class TestSoftDelete:
    def test_soft_delete_zeroes_stock_with_movement(self, client, manager_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=manager_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["deletion"] == {"type": "soft", "stock_removed": 10}
        refreshed = db.session.get(Product, product.id)
        assert refreshed.status == "inactive"
        assert refreshed.stock == 0
        last = db.session.query(InventoryMovement).filter_by(product_id=product.id).order_by(InventoryMovement.id.desc()).first()
        assert (last.movement_type, last.quantity, last.new_stock) == ("out", 10, 0)

        assert client.get(f"/api/products/{product.id}").status_code == 404

    def test_soft_delete_twice_conflicts(self, client, admin_headers, product):
        client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert client.delete(f"/api/products/{product.id}", headers=admin_headers).status_code == 409

    def test_missing_product(self, client, admin_headers):
        assert client.delete("/api/products/99999", headers=admin_headers).status_code == 404


class TestHardDelete:
    def test_permanent_blocked_by_dependencies(self, client, admin_headers, product):
        sell(client, admin_headers, product)

        resp = client.delete(f"/api/products/{product.id}?permanent=1", headers=admin_headers)

        assert resp.status_code == 409
        types = {i["type"] for i in resp.json["error"]["details"]["issues"]}
        assert types == {"has_sales", "has_inventory_movements", "has_stock"}
        assert db.session.get(Product, product.id) is not None

    def test_permanent_without_dependencies(self, client, admin_headers, category):
        p = Product(name="Sin Uso", slug="sin-uso", sku="PAN-NONE-01", category_id=category.id, price=10, stock=0)
        db.session.add(p)
        db.session.commit()

        resp = client.delete(f"/api/products/{p.id}?permanent=1", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["deletion"]["type"] == "hard"
        assert db.session.get(Product, p.id) is None

    def test_force_detaches_sale_lines(self, client, admin_headers, make_product):
        p = make_product(name="Cargador Dell 90W")
        sale = sell(client, admin_headers, p, quantity=2)

        resp = client.delete(f"/api/products/{p.id}?force=1", headers=admin_headers)

        assert resp.status_code == 200
        deletion = resp.json["data"]["deletion"]
        assert deletion["sale_items_marked"] == 1
        assert deletion["movements_deleted"] == 2
        db.session.expire_all()
        assert db.session.get(Product, p.id) is None
        item = db.session.query(SaleItem).filter_by(sale_id=sale["id"]).one()
        assert item.product_id is None
        assert item.product_name == "Cargador Dell 90W [ELIMINADO]"
        assert db.session.query(InventoryMovement).filter_by(product_id=p.id).count() == 0


class TestTrashAndRestore:
    def test_trash_lists_inactive(self, client, manager_headers, make_product):
        gone = make_product(status="inactive")
        make_product()

        resp = client.get("/api/products/trash", headers=manager_headers)

        assert [p["id"] for p in resp.json["data"]["data"]] == [gone.id]

    def test_restore(self, client, manager_headers, product):
        client.delete(f"/api/products/{product.id}", headers=manager_headers)

        resp = client.post(f"/api/products/{product.id}/restore", headers=manager_headers)

        assert resp.status_code == 200
        restored = resp.json["data"]["product"]
        assert restored["status"] == "active"
        assert restored["stock"] == 0

    def test_restore_after_status_update_keeps_ledger_consistent(self, client, admin_headers, make_product):
        p = make_product(stock=5)
        resp = client.patch(f"/api/products/{p.id}", json={"status": "inactive"}, headers=admin_headers)
        assert resp.status_code == 200

        resp = client.post(f"/api/products/{p.id}/restore", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["product"]["stock"] == 5
        movements = (
            db.session.query(InventoryMovement)
            .filter_by(product_id=p.id)
            .order_by(InventoryMovement.id)
            .all()
        )
        assert [m.movement_type for m in movements] == ["initial"]
        for prev, nxt in zip(movements, movements[1:]):
            assert nxt.previous_stock == prev.new_stock
        assert movements[-1].new_stock == db.session.get(Product, p.id).stock

    def test_restore_active_product_not_found(self, client, manager_headers, product):
        assert client.post(f"/api/products/{product.id}/restore", headers=manager_headers).status_code == 404


class TestBulkDelete:
    def test_soft_bulk_delete_skips_products_with_sales(self, client, admin_headers, make_product):
        sold = make_product()
        idle = make_product()
        sell(client, admin_headers, sold)

        resp = client.delete(
            "/api/products/bulk",
            json={"product_ids": [sold.id, idle.id, 424242]},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["summary"] == {"total_processed": 3, "successful": 1, "failed": 2}
        assert data["deleted_products"][0]["product_id"] == idle.id
        assert db.session.get(Product, idle.id).status == "inactive"
        assert db.session.get(Product, sold.id).status == "active"

    def test_forced_bulk_delete(self, client, admin_headers, make_product):
        a = make_product()
        b = make_product()

        resp = client.delete("/api/products/bulk", json={"product_ids": [a.id, b.id], "force": True}, headers=admin_headers)

        assert resp.json["data"]["summary"]["successful"] == 2
        assert resp.json["data"]["force"] is True
        db.session.expire_all()
        assert db.session.query(Product).count() == 0

    def test_limit(self, client, admin_headers):
        resp = client.delete("/api/products/bulk", json={"product_ids": list(range(1, 22))}, headers=admin_headers)
        assert resp.status_code == 400

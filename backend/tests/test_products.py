"""
Product catalog tests.

Verifies:
- Public listing: active only, filters, sort fallback, page size clamping
- Create: generated slug/SKU, initial ledger entry, aggregated validation errors
- PUT resets omitted optional fields but keeps stock and SKU
- PATCH rejects unknown fields; stock edits write one movement
- Bulk create and bulk stock update report per-item results
"""

import re

import pytest

from prismatech.extensions import db
from prismatech.models import InventoryMovement, Product


def product_body(category, **overrides):
    body = {"name": "Display LCD 15.6 HP", "category_id": category.id, "price": 1299.99}
    body.update(overrides)
    return body


# =============================================================================
# PUBLIC READS
# =============================================================================


class TestPublicCatalog:
    def test_listing_is_public_and_hides_inactive(self, client, make_product):
        visible = make_product(name="Bateria Dell")
        make_product(name="Bateria Vieja", status="inactive")

        resp = client.get("/api/products")

        assert resp.status_code == 200
        body = resp.json["data"]
        assert [p["id"] for p in body["data"]] == [visible.id]
        row = body["data"][0]
        assert row["category_name"] == "Pantallas"
        assert row["availability"]["in_stock"] is True
        assert row["availability"]["quantity_available"] == 10

    def test_page_size_is_clamped(self, client, db_session, make_product):
        for _ in range(12):
            make_product()

        small = client.get("/api/products?limit=1").json["data"]["pagination"]
        large = client.get("/api/products?limit=500").json["data"]["pagination"]
        page_two = client.get("/api/products?limit=10&page=2").json["data"]

        assert small["per_page"] == 10
        assert small["total_pages"] == 2
        assert large["per_page"] == 100
        assert len(page_two["data"]) == 2
        assert page_two["pagination"]["has_prev"] is True
        assert page_two["pagination"]["links"]["prev"] == "/api/products?page=1&limit=10"

    def test_filters(self, client, make_product, make_category):
        ram = make_category("Memorias")
        make_product(name="Display HP", price="500.00", brand="HP")
        make_product(name="RAM DDR4 8GB", price="900.00", category_id=ram.id, brand="Kingston")
        make_product(name="RAM DDR5 16GB", price="1800.00", category_id=ram.id, stock=0, brand="Kingston")

        def names(query):
            return sorted(p["name"] for p in client.get(f"/api/products?{query}").json["data"]["data"])

        assert names("category=memorias") == ["RAM DDR4 8GB", "RAM DDR5 16GB"]
        assert names("search=ddr4") == ["RAM DDR4 8GB"]
        assert names("brand=HP") == ["Display HP"]
        assert names("min_price=600&max_price=1000") == ["RAM DDR4 8GB"]
        assert names("in_stock=1&brand=Kingston") == ["RAM DDR4 8GB"]
        assert names("stock_status=out_of_stock") == ["RAM DDR5 16GB"]

    def test_invalid_sort_falls_back_to_name(self, client, make_product):
        make_product(name="Zeta")
        make_product(name="Alfa")

        body = client.get("/api/products?sort_by=password&sort_order=DESC").json["data"]

        assert body["sort"]["sort_by"] == "name"
        assert [p["name"] for p in body["data"]] == ["Zeta", "Alfa"]

    def test_statistics(self, client, make_product):
        make_product(price="100.00", stock=2)
        make_product(price="300.00", stock=0)

        stats = client.get("/api/products?include_stats=1").json["data"]["statistics"]

        assert stats["total_products"] == 2
        assert stats["stock_distribution"] == {"in_stock": 0, "low_stock": 1, "out_of_stock": 1}
        assert stats["price_range"]["max"] == 300.0
        assert stats["total_inventory_value"] == 200.0

    def test_lookup_by_id_slug_and_part_number(self, client, make_product):
        p = make_product(name="Teclado Lenovo", part_number="LN-KB-01")
        sibling = make_product(name="Teclado Acer")

        by_id = client.get(f"/api/products/{p.id}").json["data"]
        by_slug = client.get(f"/api/products/slug/{p.slug}").json["data"]
        by_part = client.get("/api/products/part/LN-KB-01").json["data"]

        assert by_id["id"] == by_slug["id"] == by_part["id"] == p.id
        assert [r["id"] for r in by_id["related_products"]] == [sibling.id]

    def test_inactive_product_not_found(self, client, make_product):
        p = make_product(status="inactive")

        resp = client.get(f"/api/products/{p.id}")

        assert resp.status_code == 404
        assert resp.json["success"] is False
        assert resp.json["error"]["code"] == 404
        assert resp.json["error"]["type"] == "NOT_FOUND"


# =============================================================================
# CREATE
# =============================================================================


class TestCreateProduct:
    def test_create_generates_slug_sku_and_initial_movement(self, client, manager_headers, category):
        resp = client.post(
            "/api/products",
            json=product_body(category, name="Batería Ñandú Pro", brand="Dell", stock=7),
            headers=manager_headers,
        )

        assert resp.status_code == 201, resp.json
        product = resp.json["data"]["product"]
        assert product["slug"] == "bateria-nandu-pro"
        assert re.fullmatch(r"PAN-DEL-[0-9A-F]{6}", product["sku"])
        moves = db.session.query(InventoryMovement).filter_by(product_id=product["id"]).all()
        assert len(moves) == 1
        assert (moves[0].movement_type, moves[0].quantity, moves[0].previous_stock, moves[0].new_stock) == ("initial", 7, 0, 7)

    def test_slug_collision_gets_suffix(self, client, admin_headers, category):
        first = client.post("/api/products", json=product_body(category), headers=admin_headers)
        second = client.post("/api/products", json=product_body(category), headers=admin_headers)

        assert first.json["data"]["product"]["slug"] == "display-lcd-15-6-hp"
        assert second.json["data"]["product"]["slug"] == "display-lcd-15-6-hp-1"

    def test_all_field_errors_reported(self, client, admin_headers, category):
        resp = client.post(
            "/api/products",
            json={"name": "ab", "category_id": category.id, "price": -5, "stock": -1, "compatibility": 12},
            headers=admin_headers,
        )

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json["error"]["details"]["errors"]}
        assert {"name", "price", "stock", "compatibility"} <= fields
        assert db.session.query(Product).count() == 0

    def test_inactive_category_rejected(self, client, admin_headers, make_category):
        closed = make_category("Cerrada", status="inactive")

        resp = client.post("/api/products", json=product_body(closed), headers=admin_headers)

        assert resp.status_code == 400

    def test_duplicate_sku_conflicts(self, client, admin_headers, category, product):
        resp = client.post("/api/products", json=product_body(category, sku=product.sku.lower()), headers=admin_headers)

        assert resp.status_code == 409

    def test_compatibility_string_becomes_list(self, client, admin_headers, category):
        resp = client.post(
            "/api/products",
            json=product_body(category, compatibility="HP 240 G7, HP 250 G7 ,"),
            headers=admin_headers,
        )

        assert resp.json["data"]["product"]["compatibility"] == ["HP 240 G7", "HP 250 G7"]

    def test_employee_cannot_create(self, client, employee_headers, category):
        resp = client.post("/api/products", json=product_body(category), headers=employee_headers)

        assert resp.status_code == 403


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateProduct:
    def test_put_resets_optional_fields_but_keeps_stock_and_sku(self, client, admin_headers, category, make_product):
        p = make_product(brand="HP", description="Original", stock=9)
        sku = p.sku

        resp = client.put(
            f"/api/products/{p.id}",
            json={"name": "Display renombrado", "category_id": category.id, "price": 150},
            headers=admin_headers,
        )

        assert resp.status_code == 200, resp.json
        product = resp.json["data"]["product"]
        assert product["brand"] is None
        assert product["description"] is None
        assert product["stock"] == 9
        assert product["sku"] == sku
        assert product["slug"] == "display-renombrado"
        assert resp.json["data"]["changes"]["price"] == {"from": 100.0, "to": 150.0}

    def test_put_requires_core_fields(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product.id}", json={"price": 10}, headers=admin_headers)

        assert resp.status_code == 400

    def test_patch_touches_only_given_fields(self, client, employee_headers, make_product):
        p = make_product(brand="HP", description="Keep me")

        resp = client.patch(f"/api/products/{p.id}", json={"price": 120.5}, headers=employee_headers)

        assert resp.status_code == 200
        product = resp.json["data"]["product"]
        assert product["price"] == 120.5
        assert product["brand"] == "HP"
        assert product["description"] == "Keep me"
        assert resp.json["data"]["updated_fields"] == ["price"]

    def test_patch_rejects_unknown_fields(self, client, admin_headers, product):
        resp = client.patch(f"/api/products/{product.id}", json={"price": 10, "slug": "hack", "version_id": 9}, headers=admin_headers)

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json["error"]["details"]["errors"]}
        assert fields == {"slug", "version_id"}

    def test_empty_patch_rejected(self, client, admin_headers, product):
        assert client.patch(f"/api/products/{product.id}", json={}, headers=admin_headers).status_code == 400

    @pytest.mark.parametrize("new_stock,movement_type,quantity", [(14, "in", 4), (3, "out", 7)])
    def test_stock_change_writes_one_movement(self, client, admin_headers, product, new_stock, movement_type, quantity):
        resp = client.patch(f"/api/products/{product.id}", json={"stock": new_stock}, headers=admin_headers)

        assert resp.status_code == 200
        movement = resp.json["data"]["inventory_movement"]
        assert movement["movement_type"] == movement_type
        assert movement["quantity"] == quantity
        assert movement["previous_stock"] == 10
        assert movement["new_stock"] == new_stock
        assert movement["reference_type"] == "adjustment"

    def test_unchanged_stock_writes_no_movement(self, client, admin_headers, product):
        resp = client.patch(f"/api/products/{product.id}", json={"stock": 10, "brand": "Acer"}, headers=admin_headers)

        assert "inventory_movement" not in resp.json["data"]
        assert db.session.query(InventoryMovement).filter_by(product_id=product.id).count() == 1

    def test_update_missing_product(self, client, admin_headers):
        assert client.patch("/api/products/424242", json={"price": 1}, headers=admin_headers).status_code == 404


# =============================================================================
# BULK
# =============================================================================


class TestBulkOperations:
    def test_bulk_create_reports_each_item(self, client, admin_headers, category):
        resp = client.post(
            "/api/products/bulk",
            json={"products": [
                product_body(category, name="Cargador HP 65W", stock=3),
                {"name": "x"},
                "not-an-object",
            ]},
            headers=admin_headers,
        )

        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["summary"] == {"total_processed": 3, "successful": 1, "failed": 2}
        assert [e["index"] for e in data["errors"]] == [1, 2]
        assert db.session.query(Product).count() == 1

    def test_bulk_create_limits(self, client, admin_headers, manager_headers, category):
        too_many = {"products": [product_body(category, name=f"Producto {i}") for i in range(51)]}

        assert client.post("/api/products/bulk", json=too_many, headers=admin_headers).status_code == 400
        assert client.post("/api/products/bulk", json={"products": []}, headers=admin_headers).status_code == 400
        assert client.post("/api/products/bulk", json={"products": [{}]}, headers=manager_headers).status_code == 403

    def test_bulk_stock_update(self, client, manager_headers, make_product):
        a = make_product(stock=5)
        b = make_product(stock=5)

        resp = client.put(
            "/api/products/stock",
            json={"stock_updates": [
                {"id": a.id, "stock": 12},
                {"id": b.id, "stock": -1},
                {"id": 987654, "stock": 1},
            ]},
            headers=manager_headers,
        )

        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["summary"]["successful"] == 1
        assert data["successful_updates"][0]["new_stock"] == 12
        assert db.session.get(Product, a.id).stock == 12
        assert db.session.get(Product, b.id).stock == 5
        adjustments = db.session.query(InventoryMovement).filter_by(product_id=a.id, reference_type="adjustment").all()
        assert [(m.movement_type, m.quantity) for m in adjustments] == [("in", 7)]

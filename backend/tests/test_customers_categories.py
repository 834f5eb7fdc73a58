"""
Customer directory and category tests.
"""

from prismatech.extensions import db
from prismatech.models import Category, Customer


# =============================================================================
# CUSTOMERS
# =============================================================================


class TestCustomers:
    def test_create_normalizes_contact(self, client, employee_headers):
        resp = client.post("/api/customers", json={
            "name": "  Taller Lopez  ",
            "email": "Contacto@TallerLopez.MX",
            "phone": "+52 (55) 1234-5678",
            "customer_type": "business",
        }, headers=employee_headers)

        assert resp.status_code == 201, resp.json
        customer = resp.json["data"]["customer"]
        assert customer["name"] == "Taller Lopez"
        assert customer["email"] == "contacto@tallerlopez.mx"
        assert customer["phone"] == "+525512345678"
        assert customer["total_orders"] == 0

    def test_invalid_fields_reported_together(self, client, employee_headers):
        resp = client.post("/api/customers", json={
            "name": "A",
            "email": "not-an-email",
            "phone": "123",
            "customer_type": "alien",
        }, headers=employee_headers)

        assert resp.status_code == 400
        fields = {e["field"] for e in resp.json["error"]["details"]["errors"]}
        assert fields == {"name", "email", "phone", "customer_type"}

    def test_duplicate_email_conflicts(self, client, employee_headers):
        client.post("/api/customers", json={"name": "Uno", "email": "dup@example.com"}, headers=employee_headers)
        resp = client.post("/api/customers", json={"name": "Dos", "email": "DUP@example.com"}, headers=employee_headers)

        assert resp.status_code == 409

    def test_list_search_and_status(self, client, manager_headers):
        db.session.add_all([
            Customer(name="Maria Garcia", email="maria@example.com"),
            Customer(name="Pedro Ruiz", city="Monterrey"),
            Customer(name="Baja Cliente", status="inactive"),
        ])
        db.session.commit()

        def names(query=""):
            body = client.get(f"/api/customers?{query}", headers=manager_headers).json["data"]
            return [c["name"] for c in body["data"]]

        assert names() == ["Maria Garcia", "Pedro Ruiz"]
        assert names("search=maria@") == ["Maria Garcia"]
        assert names("city=monte") == ["Pedro Ruiz"]
        assert names("status=all") == ["Baja Cliente", "Maria Garcia", "Pedro Ruiz"]

    def test_detail_includes_statistics(self, client, manager_headers, product):
        sale = client.post("/api/sales", json={
            "customer_name": "Laura Diaz",
            "customer_email": "laura@example.com",
            "payment_method": "tarjeta_debito",
            "items": [{"product_id": product.id, "quantity": 1}],
        }, headers=manager_headers).json["data"]["sale"]

        resp = client.get(f"/api/customers/{sale['customer_id']}", headers=manager_headers)

        customer = resp.json["data"]["customer"]
        assert customer["total_orders"] == 1
        assert customer["statistics"]["completed_sales"] == 1
        assert customer["statistics"]["total_spent"] == 116.00
        assert [p["sale_number"] for p in customer["recent_purchases"]] == [sale["sale_number"]]

    def test_patch_cannot_touch_running_totals(self, client, manager_headers):
        customer = Customer(name="Fijo")
        db.session.add(customer)
        db.session.commit()

        resp = client.patch(f"/api/customers/{customer.id}", json={"total_orders": 99}, headers=manager_headers)
        assert resp.status_code == 400

        resp = client.patch(f"/api/customers/{customer.id}", json={"city": "Puebla"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["customer"]["city"] == "Puebla"

    def test_missing_customer(self, client, manager_headers):
        assert client.get("/api/customers/31337", headers=manager_headers).status_code == 404


# =============================================================================
# CATEGORIES
# =============================================================================


class TestCategories:
    def test_public_list_with_counts(self, client, make_category, make_product):
        make_product()
        make_product(status="inactive")
        make_category("Teclados")
        make_category("Oculta", status="inactive")

        body = client.get("/api/categories").json["data"]

        assert body["total"] == 2
        by_name = {c["name"]: c for c in body["categories"]}
        assert by_name["Pantallas"]["products_count"] == 2
        assert by_name["Pantallas"]["active_products_count"] == 1
        assert by_name["Teclados"]["products_count"] == 0

    def test_status_filter(self, client, make_category):
        make_category("Oculta", status="inactive")

        assert client.get("/api/categories?status=inactive").json["data"]["total"] == 1
        assert client.get("/api/categories?status=gone").status_code == 400

    def test_create_generates_slug(self, client, manager_headers, db_session):
        resp = client.post("/api/categories", json={"name": "Baterías Laptop"}, headers=manager_headers)

        assert resp.status_code == 201
        category = resp.json["data"]["category"]
        assert category["slug"] == "baterias-laptop"
        assert category["icon"] == "fas fa-tag"

    def test_duplicate_name_conflicts(self, client, manager_headers, category):
        resp = client.post("/api/categories", json={"name": "pantallas"}, headers=manager_headers)
        assert resp.status_code == 409

    def test_rename_updates_slug(self, client, admin_headers, category):
        resp = client.patch(f"/api/categories/{category.id}", json={"name": "Displays"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["data"]["category"]["slug"] == "displays"
        assert db.session.get(Category, category.id).name == "Displays"

    def test_get_one(self, client, category):
        resp = client.get(f"/api/categories/{category.id}")
        assert resp.json["data"]["category"]["name"] == "Pantallas"
        assert client.get("/api/categories/999").status_code == 404

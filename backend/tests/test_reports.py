"""
Sales report tests: summary, products, customers, daily.
"""

from prismatech.time_utils import utcnow


def record_sale(client, headers, product, quantity, customer="Juan Perez", method="efectivo"):
    resp = client.post("/api/sales", json={
        "customer_name": customer,
        "customer_email": customer.lower().replace(" ", ".") + "@example.com",
        "payment_method": method,
        "items": [{"product_id": product.id, "quantity": quantity}],
    }, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["data"]["sale"]


def report(client, headers, **params):
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return client.get(f"/api/reports/sales?{query}", headers=headers)


class TestSalesReports:
    def test_summary(self, client, manager_headers, make_product):
        p = make_product(price="100.00", stock=20)
        record_sale(client, manager_headers, p, 2)
        record_sale(client, manager_headers, p, 1, customer="Ana Lopez", method="tarjeta_debito")

        resp = report(client, manager_headers, type="summary")

        assert resp.status_code == 200
        body = resp.json["data"]
        assert body["report_type"] == "summary"
        assert body["generated_by"] == "manager"
        today = utcnow().date()
        assert body["period"] == {"from": today.replace(day=1).isoformat(), "to": today.isoformat()}
        data = body["data"]
        assert data["total_sales"] == 2
        assert data["total_revenue"] == 348.00
        assert data["max_sale"] == 232.00
        assert data["unique_customers"] == 2
        assert data["payment_methods"]["tarjeta_debito"] == {"count": 1, "amount": 116.00}

    def test_products_ranked_by_revenue(self, client, admin_headers, make_product):
        cheap = make_product(name="Cable", price="10.00")
        pricey = make_product(name="Pantalla", price="900.00")
        record_sale(client, admin_headers, cheap, 3)
        record_sale(client, admin_headers, pricey, 1)

        rows = report(client, admin_headers, type="products").json["data"]["data"]

        assert [r["product_name"] for r in rows] == ["Pantalla", "Cable"]
        assert rows[1]["total_quantity"] == 3
        assert rows[1]["total_revenue"] == 30.00

    def test_customers(self, client, admin_headers, make_product):
        p = make_product(price="100.00", stock=20)
        record_sale(client, admin_headers, p, 1)
        record_sale(client, admin_headers, p, 1)

        rows = report(client, admin_headers, type="customers").json["data"]["data"]

        assert len(rows) == 1
        assert rows[0]["customer_name"] == "Juan Perez"
        assert rows[0]["total_purchases"] == 2
        assert rows[0]["total_spent"] == 232.00

    def test_daily(self, client, admin_headers, product):
        record_sale(client, admin_headers, product, 1)

        rows = report(client, admin_headers, type="daily").json["data"]["data"]

        assert rows == [{
            "date": utcnow().date().isoformat(),
            "total_sales": 1,
            "total_revenue": 116.00,
            "average_sale": 116.00,
            "unique_customers": 1,
        }]

    def test_drafts_excluded(self, client, admin_headers, product):
        resp = client.post("/api/sales?quote=1", json={
            "customer_name": "Cotizacion",
            "payment_method": "efectivo",
            "items": [{"product_id": product.id, "quantity": 1}],
        }, headers=admin_headers)
        assert resp.status_code == 201

        assert report(client, admin_headers).json["data"]["data"]["total_sales"] == 0

    def test_empty_range_outside_sales(self, client, admin_headers, product):
        record_sale(client, admin_headers, product, 1)

        data = report(client, admin_headers, date_from="2001-01-01", date_to="2001-01-31").json["data"]["data"]

        assert data["total_sales"] == 0
        assert data["total_revenue"] == 0.0


class TestReportParameters:
    def test_invalid_type(self, client, admin_headers):
        resp = report(client, admin_headers, type="weekly")

        assert resp.status_code == 400
        assert "summary" in resp.json["error"]["details"]["valid_types"]

    def test_bad_date(self, client, admin_headers):
        assert report(client, admin_headers, date_from="18/10/2026").status_code == 400

    def test_reversed_range(self, client, admin_headers):
        assert report(client, admin_headers, date_from="2026-02-01", date_to="2026-01-01").status_code == 400

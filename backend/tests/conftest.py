"""
Pytest fixtures for PrismaTech backend tests.

Provides an in-memory database, seeded users per role with auth headers,
and category/product factories.
"""

from decimal import Decimal

import pytest

from prismatech import create_app
from prismatech.extensions import db
from prismatech.models import Category, Product
from prismatech.services.auth_service import create_user
from prismatech.services.inventory_service import record_initial_stock


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'RATE_LIMIT_ENABLED': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test; keep the schema."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["rate_limiter"].reset()

        yield db.session

        db.session.rollback()


def _make_user(username: str, role: str):
    return create_user(username, f"{username}@prismatech.test", PASSWORD, role=role, full_name=username.title())


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user("manager", "manager")


@pytest.fixture(scope='function')
def employee_user(db_session):
    return _make_user("employee", "employee")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    assert response.status_code == 200, response.json
    return response.json['data']['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.username))


@pytest.fixture(scope='function')
def employee_headers(client, employee_user):
    return auth_headers(get_auth_token(client, employee_user.username))


@pytest.fixture(scope='function')
def make_category(db_session):
    """Factory: make_category(name="Pantallas", status="active")."""
    counter = {"n": 0}

    def _make(name: str | None = None, status: str = "active") -> Category:
        counter["n"] += 1
        name = name or f"Categoria {counter['n']}"
        category = Category(name=name, slug=name.lower().replace(" ", "-"), status=status)
        db_session.add(category)
        db_session.commit()
        return category

    return _make


@pytest.fixture(scope='function')
def category(make_category):
    return make_category("Pantallas")


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """
    Factory: make_product(price="100.00", stock=10, ...).

    Stock is recorded with an 'initial' movement, as the API would.
    """
    counter = {"n": 0}

    def _make(name: str | None = None, price="100.00", stock: int = 10, cost_price="60.00",
              category_id: int | None = None, status: str = "active", **extra) -> Product:
        counter["n"] += 1
        name = name or f"Display LCD {counter['n']}"
        product = Product(
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{counter['n']}",
            sku=extra.pop("sku", f"PAN-TST-{counter['n']:06d}"),
            category_id=category_id or category.id,
            price=Decimal(str(price)),
            cost_price=Decimal(str(cost_price)),
            stock=stock,
            status=status,
            **extra,
        )
        db_session.add(product)
        db_session.flush()
        record_initial_stock(product, user_id=None)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()

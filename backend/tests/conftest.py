"""
Pytest fixtures for retail POS backend tests.

Provides the in-memory app, a cleared database per test, and factories for
operators, registers, products, stock and auth headers.
"""

import pytest

from retail_pos import create_app
from retail_pos.extensions import db
from retail_pos.models import Operator, Product, ProductVariant, Register
from retail_pos.services import auth_service
from retail_pos.services.inventory_service import REASON_RECEIVE, Availability, InventoryLedger, StockMeta

TEST_PIN = "4321"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    # Cheap hashes; PIN checks still go through bcrypt
    auth_service.BCRYPT_ROUNDS = 4

    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POS_DEFAULT_CURRENCY': 'USD',
        'POS_TAX_RATE_BPS': 0,
        'POS_CASH_METHODS': 'cash',
        'POS_ALLOW_NEGATIVE_STOCK': False,
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
    """Create fresh database for each test."""
    with app.app_context():
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def pos(app, db_session):
    return app.extensions["pos"]


# =============================================================================
# FACTORIES
# =============================================================================

def make_register(name="Front Counter", *, opening_balance_cents=0, is_active=True, currency="USD"):
    register = Register(
        name=name,
        location="Main floor",
        opening_balance_cents=opening_balance_cents,
        current_balance_cents=opening_balance_cents,
        currency=currency,
        is_active=is_active,
    )
    db.session.add(register)
    db.session.commit()
    return register


def make_operator(username, *, registers=(), is_admin=False, all_registers=False, pin=TEST_PIN):
    return auth_service.create_operator(
        username=username,
        display_name=username.title(),
        pin=pin,
        is_admin=is_admin,
        can_access_all_registers=all_registers,
        register_ids=[r.id for r in registers],
    )


def make_product(sku, name, price_cents, *, stock=0, is_active=True):
    product = Product(sku=sku, name=name, price_cents=price_cents, is_active=is_active)
    db.session.add(product)
    db.session.commit()
    if stock:
        add_stock(product.id, None, stock)
    return product


def make_variant(product, sku, name, *, price_cents=None, stock=0):
    variant = ProductVariant(product_id=product.id, sku=sku, name=name, price_cents=price_cents)
    db.session.add(variant)
    db.session.commit()
    if stock:
        add_stock(product.id, variant.id, stock)
    return variant


def add_stock(product_id, variant_id, quantity):
    from flask import current_app
    ledger = current_app.extensions["pos"].inventory
    ledger.increase_stock(product_id, variant_id, quantity, StockMeta(reason=REASON_RECEIVE))
    db.session.commit()


def on_hand(product_id, variant_id=None):
    from flask import current_app
    return current_app.extensions["pos"].inventory.quantity_on_hand(product_id, variant_id)


class OptimisticLedger(InventoryLedger):
    """Availability check that always passes, as if stock moved after the check."""

    def check_availability(self, product_id, variant_id, quantity):
        name = self.describe(product_id, variant_id)
        return Availability(available=True, available_quantity=quantity, product_name=name)


@pytest.fixture(scope='function')
def register(db_session):
    return make_register()


@pytest.fixture(scope='function')
def other_register(db_session):
    return make_register("Back Office")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_operator("admin", is_admin=True, all_registers=True)


@pytest.fixture(scope='function')
def cashier(db_session, register):
    return make_operator("cashier", registers=[register])


@pytest.fixture(scope='function')
def apple(db_session):
    """Product priced 10.00 with 10 in stock."""
    return make_product("APL-001", "Apple", 1000, stock=10)


@pytest.fixture(scope='function')
def pear(db_session):
    """Product priced 5.00 with 5 in stock."""
    return make_product("PER-001", "Pear", 500, stock=5)


@pytest.fixture(scope='function')
def open_session(pos, register, cashier):
    return pos.open_session(register.id, 10000, cashier)


def sell(pos, session, actor, items, payment_method="card", **kwargs):
    return pos.create_transaction(session.id, items, payment_method, actor=actor, **kwargs)


def get_auth_token(client, username: str, pin: str = TEST_PIN) -> str:
    """Helper to get auth token for an operator."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'pin': pin,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}

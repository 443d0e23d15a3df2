"""
Pytest fixtures for checkout core tests.

Provides test database setup, store/cashier/product fixtures, and test client.
"""

import pytest
from cashier import create_app
from cashier.extensions import db
from cashier.models import Store, User, Product, Customer


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'COMMIT_RETRY_BACKOFF_SECONDS': 0,
    'DEFAULT_TAX_RATE_BPS': 1100,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Toko Maju", address="Jl. Merdeka 1", tax_rate_bps=1100)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Toko Lain", address="Jl. Sudirman 9", tax_rate_bps=1000)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def cashier(db_session, store):
    user = User(store_id=store.id, username="siti", display_name="Siti", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session, store):
    customer = Customer(store_id=store.id, name="Budi")
    db_session.add(customer)
    db_session.commit()
    return customer


def make_product(session, store_id, *, sku, name, price_cents, stock, is_active=True):
    product = Product(
        store_id=store_id,
        sku=sku,
        name=name,
        price_cents=price_cents,
        stock=stock,
        is_active=is_active,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def tea(db_session, store):
    """Product priced at 10.00 with 5 in stock."""
    return make_product(db_session, store.id, sku="TEA-01", name="Teh Botol", price_cents=1000, stock=5)


@pytest.fixture(scope='function')
def bread(db_session, store):
    """Product priced at 4.50 with 3 in stock."""
    return make_product(db_session, store.id, sku="BRD-01", name="Roti Tawar", price_cents=450, stock=3)


@pytest.fixture(scope='function')
def product_factory(db_session, store):
    """Create products in the default store (or pass store_id=...)."""
    def _make(store_id=None, **kwargs):
        return make_product(db_session, store_id or store.id, **kwargs)
    return _make


@pytest.fixture(scope='function')
def cashier_headers(cashier) -> dict:
    """Identity headers for the default cashier."""
    return {'X-User-Id': str(cashier.id)}

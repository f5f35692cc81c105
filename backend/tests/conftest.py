"""
Pytest fixtures for millstock backend tests.

Provides test database setup, catalog fixtures (supplier, locations,
products) and an authenticated test client.
"""

from decimal import Decimal

import pytest

from millstock import create_app
from millstock.extensions import db
from millstock.models import Product, StorageLocation, Supplier
from millstock.services import inventory_service, notification_service

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'LEDGER_RETRY_BACKOFF': 0,
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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        notification_service.clear_reminder_hooks()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        notification_service.clear_reminder_hooks()


@pytest.fixture(scope='function')
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}', 'X-Actor': 'tester'}


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Nueva Ecija Farmers Coop", contact_email="orders@necoop.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def warehouse(db_session):
    location = StorageLocation(name="Main Warehouse", code="MAIN", type="WAREHOUSE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def annex(db_session):
    location = StorageLocation(name="Annex", code="ANNEX", type="WAREHOUSE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def mill_floor(db_session):
    location = StorageLocation(name="Mill Floor", code="MILL", type="ZONE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def palay(db_session, supplier):
    """Unmilled rice that can be fed to the mill."""
    product = Product(
        name="Dinorado",
        category="Rice",
        price_cents=4500,
        is_milled_rice=False,
        milling_yield_rate=Decimal("66.67"),
        supplier_id=supplier.id,
        reorder_point=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def rice(db_session, supplier):
    """Milled rice sold to customers."""
    product = Product(
        name="Jasmine",
        category="Rice",
        price_cents=5200,
        is_milled_rice=True,
        supplier_id=supplier.id,
        reorder_point=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def put_stock(db_session):
    """Place stock through the ledger so items, cache and log stay in step."""
    def _put(product, location, quantity: int):
        return inventory_service.assign_stock(
            product_id=product.id,
            location_id=location.id,
            quantity=quantity,
            actor="fixture",
        )
    return _put

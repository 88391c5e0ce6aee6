"""
Pytest fixtures for back office inventory tests.

Provides the in-memory database, two tenants with locations, users and
products, and a `stock` helper that seeds balances through the real ledger.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Location, Product, Tenant, User
from backoffice.models.enums import InventoryTransactionType, LocationType
from backoffice.services.unit_of_work import unit_of_work


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_STOCK': False,
        'ALLOW_BACKORDER': False,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Retail", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Goods", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def location_a(db_session, tenant_a):
    """Main store of Tenant A."""
    location = Location(tenant_id=tenant_a.id, name="Main Store", code="MAIN",
                        location_type=LocationType.STORE.value)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def warehouse_a(db_session, tenant_a):
    """Warehouse of Tenant A."""
    location = Location(tenant_id=tenant_a.id, name="Warehouse", code="WH",
                        location_type=LocationType.WAREHOUSE.value)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def inactive_location_a(db_session, tenant_a):
    """Closed location of Tenant A."""
    location = Location(tenant_id=tenant_a.id, name="Closed Outlet", code="OLD",
                        location_type=LocationType.STORE.value, is_active=False)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session, tenant_b):
    """Store of Tenant B."""
    location = Location(tenant_id=tenant_b.id, name="Beta Store", code="B1",
                        location_type=LocationType.STORE.value)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def user_a(db_session, tenant_a):
    """Staff user of Tenant A."""
    user = User(tenant_id=tenant_a.id, username="user_a", email="user_a@acme.test")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Stock-tracked product of Tenant A."""
    product = Product(tenant_id=tenant_a.id, sku="WIDGET-001", name="Widget",
                      base_price=Decimal("10.00"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, tenant_a):
    """Second stock-tracked product of Tenant A."""
    product = Product(tenant_id=tenant_a.id, sku="GADGET-002", name="Gadget",
                      base_price=Decimal("25.50"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_product_a(db_session, tenant_a):
    """Non-stock product (e.g. gift wrapping) of Tenant A."""
    product = Product(tenant_id=tenant_a.id, sku="SERVICE-WRAP", name="Gift wrapping",
                      base_price=Decimal("3.00"), is_stock_tracked=False)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Product of Tenant B."""
    product = Product(tenant_id=tenant_b.id, sku="WIDGET-001", name="Beta Widget",
                      base_price=Decimal("12.00"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def stock(db_session, user_a):
    """Seed stock through the ledger: stock(tenant, product, location, qty, unit_cost=None)."""
    def _seed(tenant, product, location, quantity, unit_cost=None):
        with unit_of_work(tenant.id) as uow:
            uow.ledger.record_movement(
                user_id=user_a.id if tenant.id == user_a.tenant_id else None,
                product_id=product.id,
                location_id=location.id,
                quantity_change=quantity,
                transaction_type=InventoryTransactionType.PURCHASE_RECEIPT,
                unit_cost=unit_cost,
                notes="Test seed",
            )
    return _seed

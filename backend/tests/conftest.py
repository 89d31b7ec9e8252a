"""
Pytest fixtures for the PoS core tests.

Provides an in-memory database, a per-test clean session and catalog/lot
factories.
"""

from datetime import timedelta

import pytest

from autocrm import create_app
from autocrm.extensions import db
from autocrm.models import Category, Subcategory, Product, InventoryLot
from autocrm.services import inventory_service
from autocrm.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POS_DEFAULT_CURRENCY': 'GEL',
        'POS_IMPLICIT_SHIFT': True,
        'POS_RETRY_ATTEMPTS': 3,
        'POS_RETRY_BACKOFF': 0,
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
def category(db_session):
    category = Category(name="Engine")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def subcategory(db_session, category):
    subcategory = Subcategory(category_id=category.id, name="Pistons")
    db_session.add(subcategory)
    db_session.commit()
    return subcategory


@pytest.fixture(scope='function')
def make_product(db_session, subcategory):
    """Factory: make_product(name, sku=None, min_stock_level=0, subcategory_id=None)."""
    def _make(name="Piston 82mm", sku=None, min_stock_level=0, subcategory_id=None):
        product = Product(
            subcategory_id=subcategory_id or subcategory.id,
            name=name,
            sku=sku,
            min_stock_level=min_stock_level,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def make_lot(db_session):
    """
    Factory: make_lot(product, quantity, unit_cost_cents, days_ago=...).

    days_ago controls FIFO order (larger = older).
    """
    def _make(product, quantity, unit_cost_cents=None, *, days_ago=1, currency="GEL", source_type="purchased"):
        return inventory_service.receive_lot(
            product_id=product.id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            currency=currency,
            source_type=source_type,
            received_at=utcnow() - timedelta(days=days_ago),
        )
    return _make


@pytest.fixture(scope='function')
def lot_quantities(db_session):
    """Factory: {lot_id: quantity} for every lot of a product, exhausted ones included."""
    def _get(product_id):
        db_session.expire_all()
        lots = db_session.query(InventoryLot).filter_by(product_id=product_id).all()
        return {lot.id: lot.quantity for lot in lots}
    return _get

"""
Pytest fixtures for the stock ledger backend tests.

Provides the in-memory application, a wiped database per test, actors,
a test client and helpers that put stock on the shelf.
"""
from datetime import date

import pytest

from wms import create_app
from wms.actor import Actor, ROLE_ADMIN, ROLE_USER
from wms.config import TestingConfig
from wms.extensions import db
from wms.services import inbound_service, product_service, registration_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin():
    return Actor(username="admin", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def user():
    return Actor(username="gudang", role=ROLE_USER)


@pytest.fixture(scope='function')
def product(db_session):
    """Product P001 with no opening stock."""
    return product_service.create_product(
        name="Carton Box 40x30",
        category="Packaging",
        unit="Pcs",
        product_id="P001",
    )


@pytest.fixture(scope='function')
def register():
    """Register one CREATED unit holding `qty`."""
    def _register(product_id, qty, *, batch_code="B1", arrival=date(2026, 10, 1), expiry=None):
        unit, _label = registration_service.register_units(
            product_id=product_id,
            supplier="PT Kemas Jaya",
            arrival_date=arrival,
            expiry_date=expiry,
            batch_code=batch_code,
            quantity_per_label=qty,
            label_count=1,
        )
        return unit
    return _register


@pytest.fixture(scope='function')
def receive(register, admin):
    """Register and confirm one unit into stock; returns the unit."""
    def _receive(product_id, qty, *, occurred_at=None, is_migration=False, **kwargs):
        unit = register(product_id, qty, **kwargs)
        inbound_service.process_inbound(
            codes=[unit.unique_id],
            actor=admin,
            occurred_at=occurred_at,
            is_migration=is_migration,
        )
        return unit
    return _receive


"""
Pytest fixtures for BizManager backend tests.

Provides a loaded business store over an in-memory port with a fixed clock,
a Flask app with test client, and small entity helpers.
"""

from datetime import datetime, timedelta

import pytest

from bizmanager import create_app
from bizmanager.extensions import get_business_store
from bizmanager.models import BusinessProfile
from bizmanager.persistence import MemoryBackend, MemoryPersistencePort
from bizmanager.services.business_store import BusinessStore


class FixedClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='function')
def clock():
    return FixedClock(datetime(2024, 6, 20, 12, 0, 0))


@pytest.fixture(scope='function')
def backend():
    """Shared in-memory backend; several stores may connect to it."""
    return MemoryBackend()


@pytest.fixture(scope='function')
def make_store(backend, clock):
    """Factory for loaded stores on the shared backend."""
    created = []

    def _make(scope="default", profile=None, load=True, **kwargs):
        store = BusinessStore(
            MemoryPersistencePort(backend),
            scope=scope,
            profile=profile or BusinessProfile(),
            clock=clock,
            retry_attempts=kwargs.pop("retry_attempts", 2),
            retry_backoff=0,
            **kwargs,
        )
        if load:
            store.load()
        created.append(store)
        return store

    yield _make

    for store in created:
        store.close()


@pytest.fixture(scope='function')
def store(make_store):
    """Create a ready store with default profile (INV- prefix, 10% tax)."""
    return make_store()


@pytest.fixture(scope='function')
def customer(store):
    return store.add_customer({"name": "Asha Traders", "phone": "+919800000001", "credit_limit_cents": 2000})


@pytest.fixture(scope='function')
def product_a(store):
    return store.add_product({"name": "Floor Tile", "sku": "FT-01", "price_cents": 1000, "quantity": 20})


@pytest.fixture(scope='function')
def product_b(store):
    return store.add_product({"name": "Grout", "sku": "GR-01", "price_cents": 500, "quantity": 20})


@pytest.fixture(scope='function')
def app():
    """Create application for testing (in-memory persistence, no seed)."""
    app = create_app({
        'TESTING': True,
        'PERSISTENCE_BACKEND': 'memory',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SEED_SAMPLE_DATA': False,
        'PERSISTENCE_RETRY_BACKOFF': 0,
    })
    yield app
    get_business_store_for(app).close()


def get_business_store_for(app):
    with app.app_context():
        return get_business_store()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


"""Pytest configuration and shared fixtures."""

from unittest.mock import MagicMock

import pytest

from orderflow.core.approval.service import ApprovalService
from orderflow.core.config import Settings
from orderflow.core.fulfillment import FulfillmentService
from orderflow.core.payment.service import PaymentService
from orderflow.core.store import InMemoryOrderStore
from orderflow.db.session import create_db_engine, create_session_factory, init_db
from orderflow.db.store import SqlAlchemyOrderStore
from orderflow.services.notifications import NotificationDispatcher, NotificationGateway

from tests.factories import make_owner


@pytest.fixture
def settings():
    """Settings isolated from the environment, with SMTP disabled."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        smtp_host=None,
        site_name="Test Store",
        currency="BHD",
        notification_timeout=1.0,
    )


@pytest.fixture
def customer():
    return make_owner(name="Alice Customer", email="alice@example.com")


@pytest.fixture
def admin():
    return make_owner(name="Bob Admin", email="bob@example.com", is_admin=True)


@pytest.fixture
def store(customer, admin):
    return InMemoryOrderStore(owners=[customer, admin])


@pytest.fixture
def gateway():
    """Notification gateway double recording every call."""
    return MagicMock(spec=NotificationGateway)


@pytest.fixture
def dispatcher(gateway):
    dispatcher = NotificationDispatcher(gateway, timeout=1.0, max_workers=2)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def approval_service(store, dispatcher):
    return ApprovalService(store, dispatcher)


@pytest.fixture
def payment_service(store, dispatcher):
    return PaymentService(store, dispatcher)


@pytest.fixture
def fulfillment_service(store):
    return FulfillmentService(store)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(db_engine, customer, admin):
    store = SqlAlchemyOrderStore(create_session_factory(db_engine))
    store.add_owner(customer)
    store.add_owner(admin)
    return store

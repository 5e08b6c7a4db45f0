"""
Pytest fixtures for the fulfillment backend tests.

Provides the in-memory application, per-test data reset, a seeded
directory (users, warehouses, products, starting assignments), recording
sinks and the test client.
"""

from types import SimpleNamespace

import pytest
import sqlalchemy as sa

from fulfillment import create_app
from fulfillment.extensions import db
from fulfillment.models import AccessLevel, Product, User, UserRoleName, UserWarehouse, Warehouse


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
    """Empty every table (and restart ids at 1) for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.execute(sa.text("DELETE FROM sqlite_sequence"))
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def directory(db_session):
    """
    Seeded directory.

    Users: admin (Admin), manager (Manager), creator, reader, u1 (User).
    Warehouses: 1 "Main", 2 "Annex", 3 "Closed" (inactive).
    Products: 1 "Cable", 2 "Bracket", 3 "Retired" (inactive).
    Assignments: creator Full on 1 (default); reader ReadOnly on 1 (default);
    manager Full on 1 (default) and 2. u1 has none.
    """
    users = {
        "admin": User(id="admin", username="admin", role=UserRoleName.ADMIN),
        "manager": User(id="manager", username="manager", role=UserRoleName.MANAGER),
        "creator": User(id="creator", username="creator", role=UserRoleName.USER),
        "reader": User(id="reader", username="reader", role=UserRoleName.USER),
        "u1": User(id="u1", username="u1", role=UserRoleName.USER),
    }
    db_session.add_all(users.values())

    main = Warehouse(name="Main", location="Building A")
    annex = Warehouse(name="Annex", location="Building B")
    closed = Warehouse(name="Closed", is_active=False)
    db_session.add_all([main, annex, closed])

    cable = Product(sku="CBL-1", name="Cable")
    bracket = Product(sku="BRK-1", name="Bracket")
    retired = Product(sku="OLD-1", name="Retired", is_active=False)
    db_session.add_all([cable, bracket, retired])
    db_session.flush()

    db_session.add_all([
        UserWarehouse(user_id="creator", warehouse_id=main.id, access_level=AccessLevel.FULL, is_default=True),
        UserWarehouse(user_id="reader", warehouse_id=main.id, access_level=AccessLevel.READ_ONLY, is_default=True),
        UserWarehouse(user_id="manager", warehouse_id=main.id, access_level=AccessLevel.FULL, is_default=True),
        UserWarehouse(user_id="manager", warehouse_id=annex.id, access_level=AccessLevel.FULL, is_default=False),
    ])
    db_session.commit()

    return SimpleNamespace(
        users=users,
        main=main,
        annex=annex,
        closed=closed,
        cable=cable,
        bracket=bracket,
        retired=retired,
    )


class RecordingAuditSink:
    def __init__(self):
        self.entries = []

    def log_detailed_change(self, **kwargs):
        self.entries.append(kwargs)

    def actions(self):
        return [(e["action"], e["success"]) for e in self.entries]


class RecordingNotificationSink:
    def __init__(self):
        self.calls = []

    def trigger_system_notification(self, title, message, user_id, action_url=None):
        self.calls.append(("system", user_id, title))

    def trigger_transaction_notification(self, transaction):
        self.calls.append(("transaction", transaction.user_id, transaction.id))

    def trigger_request_notification(self, request, title, message, user_id):
        self.calls.append(("request", user_id, title))

    def recipients(self, kind):
        return [user_id for k, user_id, _ in self.calls if k == kind]


class FailingAuditSink:
    def log_detailed_change(self, **kwargs):
        raise RuntimeError("audit store down")


class FailingNotificationSink:
    def trigger_system_notification(self, *args, **kwargs):
        raise RuntimeError("notification transport down")

    def trigger_transaction_notification(self, *args, **kwargs):
        raise RuntimeError("notification transport down")

    def trigger_request_notification(self, *args, **kwargs):
        raise RuntimeError("notification transport down")


def _swap_sinks(app, audit, notification):
    previous = (app.extensions["audit_sink"], app.extensions["notification_sink"])
    app.extensions["audit_sink"] = audit
    app.extensions["notification_sink"] = notification
    return previous


@pytest.fixture(scope='function')
def sinks(app):
    """Replace the database sinks with recording ones for the test."""
    audit = RecordingAuditSink()
    notification = RecordingNotificationSink()
    previous = _swap_sinks(app, audit, notification)
    yield SimpleNamespace(audit=audit, notification=notification)
    _swap_sinks(app, *previous)


@pytest.fixture(scope='function')
def failing_sinks(app):
    previous = _swap_sinks(app, FailingAuditSink(), FailingNotificationSink())
    yield
    _swap_sinks(app, *previous)


def actor_headers(user_id: str) -> dict:
    """Helper to create actor headers for API calls."""
    return {'X-User-Id': user_id}

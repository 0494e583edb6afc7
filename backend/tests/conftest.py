"""
Pytest fixtures for edition ledger tests.

Provides an in-memory database app, per-test table clearing, and a small
factory for orders and line items.
"""

from datetime import datetime, timedelta

import pytest
from edition_ledger import create_app
from edition_ledger.extensions import db
from edition_ledger.models import Order, LineItem, LINE_ITEM_STATUS_ACTIVE


API_TOKEN = "test-token"
BASE_TIME = datetime(2025, 3, 1, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EDITIONS_API_TOKEN': API_TOKEN,
        'CERTIFICATE_BASE_URL': 'https://collectors.example.com/',
        'RECONCILE_RETRY_ATTEMPTS': 3,
        'RECONCILE_RETRY_BACKOFF': 0,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


class LineItemFactory:
    """Builds committed orders and units with explicit purchase times."""

    def __init__(self, session):
        self.session = session
        self._seq = 0

    def order(self, order_id: str | None = None, **kwargs) -> Order:
        self._seq += 1
        order = Order(
            id=order_id or f"ORD-{self._seq}",
            order_name=kwargs.pop("order_name", f"#{1000 + self._seq}"),
            financial_status=kwargs.pop("financial_status", "paid"),
            created_at=kwargs.pop("created_at", BASE_TIME),
            **kwargs,
        )
        self.session.add(order)
        self.session.commit()
        return order

    def item(
        self,
        product_id: str | None = "P1",
        *,
        minutes: int = 0,
        order: Order | None = None,
        status: str = LINE_ITEM_STATUS_ACTIVE,
        edition_number: int | None = None,
        edition_total: int | None = None,
        **kwargs,
    ) -> LineItem:
        self._seq += 1
        order = order or self.order()
        item = LineItem(
            shopify_line_item_id=kwargs.pop("shopify_line_item_id", f"LI-{self._seq}"),
            unit_index=kwargs.pop("unit_index", 0),
            order_id=order.id,
            product_id=product_id,
            status=status,
            edition_number=edition_number,
            edition_total=edition_total,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            **kwargs,
        )
        self.session.add(item)
        self.session.commit()
        return item


@pytest.fixture(scope='function')
def factory(db_session):
    return LineItemFactory(db_session)


def auth_headers(token: str = API_TOKEN) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def editions_by_item(session, product_id: str) -> dict:
    """{line_item_id: edition_number} for every unit of a product, read fresh."""
    session.expire_all()
    rows = session.query(LineItem).filter_by(product_id=product_id).all()
    return {row.id: row.edition_number for row in rows}

"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read at import time: point the app at throwaway stores
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pos_shared.config.constants import DiscountType, Roles, TaxCode
from pos_shared.infrastructure.db import get_db
from pos_shared.infrastructure.events import LocalPublisher, RealtimeNotifier
from pos_shared.security.auth import Actor
from pos_api.core.dependencies import provide_notifier
from pos_api.main import app
from pos_api.models import (
    Base,
    DiscountCode,
    MenuItem,
    Table,
    TaxGroup,
    TaxGroupComponent,
)
from pos_api.services.domain import (
    BillingService,
    DiscountResolver,
    NewItem,
    OrderService,
    TableSessionService,
)


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

OUTLET_ID = 1
OTHER_OUTLET_ID = 2


class RecordingPublisher(LocalPublisher):
    """LocalPublisher that also keeps every (channels, event) it was given."""

    def __init__(self) -> None:
        super().__init__()
        self.published = []

    def publish(self, channels, event) -> None:
        self.published.append((list(channels), event))
        super().publish(channels, event)

    def events(self, event_type: str | None = None):
        return [e for _, e in self.published if event_type is None or e.type == event_type]

    def clear(self) -> None:
        self.published.clear()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def notifier(publisher):
    return RealtimeNotifier(publisher)


@pytest.fixture(scope="function")
def client(db_session, notifier):
    """
    Create a test client with database session and notifier overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[provide_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def captain():
    return Actor(actor_id=11, role=Roles.CAPTAIN, outlet_id=OUTLET_ID)


@pytest.fixture
def other_captain():
    return Actor(actor_id=12, role=Roles.CAPTAIN, outlet_id=OUTLET_ID)


@pytest.fixture
def cashier():
    return Actor(actor_id=21, role=Roles.CASHIER, outlet_id=OUTLET_ID)


@pytest.fixture
def manager():
    return Actor(actor_id=31, role=Roles.MANAGER, outlet_id=OUTLET_ID)


@pytest.fixture
def chef():
    return Actor(actor_id=41, role=Roles.KITCHEN, outlet_id=OUTLET_ID)


@pytest.fixture
def foreign_captain():
    return Actor(actor_id=51, role=Roles.CAPTAIN, outlet_id=OTHER_OUTLET_ID)


def headers_for(actor: Actor) -> dict[str, str]:
    return {
        "X-Actor-Id": str(actor.actor_id),
        "X-Actor-Role": actor.role,
        "X-Outlet-Id": str(actor.outlet_id),
    }


# =============================================================================
# Seed data
# =============================================================================


def make_table(db, table_number: str, floor_id: int = 1, capacity: int = 4, **kwargs) -> Table:
    table = Table(
        outlet_id=kwargs.pop("outlet_id", OUTLET_ID),
        floor_id=floor_id,
        table_number=table_number,
        capacity=capacity,
        is_mergeable=kwargs.pop("is_mergeable", True),
        is_splittable=False,
        status=kwargs.pop("status", "available"),
    )
    db.add(table)
    db.commit()
    return table


@pytest.fixture
def seed_tables(db_session):
    """T1-T3 on floor 1, T4 on floor 2, T5 not mergeable."""
    return {
        "T1": make_table(db_session, "T1", capacity=4),
        "T2": make_table(db_session, "T2", capacity=2),
        "T3": make_table(db_session, "T3", capacity=4),
        "T4": make_table(db_session, "T4", floor_id=2),
        "T5": make_table(db_session, "T5", is_mergeable=False),
    }


@pytest.fixture
def seed_menu(db_session):
    """
    GST 5% split as CGST 2.5% + SGST 2.5%.

    Paneer Tikka 240.00 (kitchen), Masala Chai 99.00 (bar), Water 20.00 untaxed.
    """
    gst5 = TaxGroup(outlet_id=OUTLET_ID, code="GST5", name="GST 5%")
    gst5.components = [
        TaxGroupComponent(code=TaxCode.CGST, name="Central GST", rate_bps=250),
        TaxGroupComponent(code=TaxCode.SGST, name="State GST", rate_bps=250),
    ]
    db_session.add(gst5)
    db_session.flush()

    items = {
        "paneer": MenuItem(
            outlet_id=OUTLET_ID, name="Paneer Tikka", price_cents=24000, station="kitchen", tax_group_id=gst5.id
        ),
        "chai": MenuItem(
            outlet_id=OUTLET_ID, name="Masala Chai", price_cents=9900, station="bar", tax_group_id=gst5.id
        ),
        "water": MenuItem(outlet_id=OUTLET_ID, name="Water", price_cents=2000, station="bar"),
    }
    db_session.add_all(items.values())
    db_session.commit()
    return items


@pytest.fixture
def seed_codes(db_session):
    codes = {
        "SAVE10": DiscountCode(
            outlet_id=OUTLET_ID,
            code="SAVE10",
            name="10% off above 300",
            discount_type=DiscountType.PERCENTAGE,
            value=1000,
            min_order_cents=30000,
            max_discount_cents=5000,
            usage_count=0,
        ),
        "FLAT50": DiscountCode(
            outlet_id=OUTLET_ID,
            code="FLAT50",
            name="50 off",
            discount_type=DiscountType.FLAT,
            value=5000,
            min_order_cents=0,
            usage_count=0,
        ),
        "ONCE": DiscountCode(
            outlet_id=OUTLET_ID,
            code="ONCE",
            name="Single use",
            discount_type=DiscountType.FLAT,
            value=1000,
            min_order_cents=0,
            usage_limit=1,
            usage_count=1,
        ),
    }
    db_session.add_all(codes.values())
    db_session.commit()
    return codes


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def session_service(db_session, notifier):
    return TableSessionService(db_session, notifier)


@pytest.fixture
def order_service(db_session, notifier, session_service):
    return OrderService(db_session, notifier, sessions=session_service)


@pytest.fixture
def discount_resolver(db_session, notifier, order_service):
    return DiscountResolver(db_session, notifier, orders=order_service)


@pytest.fixture
def billing_service(db_session, notifier, order_service):
    return BillingService(db_session, notifier, orders=order_service, service_charge_bps=1000)


def serve_all(order_service: OrderService, order_id: int, actor: Actor, server: Actor | None = None):
    """Send a KOT for every pending item, then mark the tickets ready and served."""
    tickets = order_service.send_kot(order_id, actor)
    for ticket in tickets:
        order_service.mark_ticket_ready(ticket.id, server or actor)
        order_service.mark_ticket_served(ticket.id, server or actor)
    return order_service.get_order(order_id, actor)


@pytest.fixture
def served_order(order_service, seed_tables, seed_menu, captain):
    """Dine-in order on T1: 1 Paneer Tikka + 1 Masala Chai (339.00), all served."""
    order = order_service.create_order(
        captain,
        table_id=seed_tables["T1"].id,
        items=[
            NewItem(item_id=seed_menu["paneer"].id, quantity=1),
            NewItem(item_id=seed_menu["chai"].id, quantity=1),
        ],
    )
    return serve_all(order_service, order.id, captain)

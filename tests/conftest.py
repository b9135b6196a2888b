"""
Shared fixtures: in-memory and SQLite stores, metrics, and seeded
customers, segments and campaigns.
"""
import itertools
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from crm_platform.lib.db import create_db_engine, create_session_factory, drop_db, init_db
from crm_platform.lib.metrics import MetricsCollector
from crm_platform.models import (
    Campaign,
    CampaignChannel,
    CampaignStatus,
    CommunicationLog,
    Customer,
    DeliveryStatus,
    Segment,
)
from crm_platform.stores import InMemoryStore, SqlAlchemyStore


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sql_store():
    """SqlAlchemyStore over a private in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield SqlAlchemyStore(create_session_factory(engine))
    drop_db(engine)
    engine.dispose()


@pytest.fixture
def metrics():
    """Fresh metrics collector for each test."""
    return MetricsCollector()


@pytest.fixture
def add_customer(store):
    """Factory creating customers directly in the store."""
    counter = itertools.count(1)

    def _add(
        name="Priya Patel",
        total_spend=0,
        visit_count=0,
        last_visit=None,
        registration_date=None,
        email=None,
        phone=None,
    ):
        customer = Customer(
            name=name,
            email=email or f"customer{next(counter)}@example.com",
            phone=phone,
            total_spend=Decimal(str(total_spend)),
            visit_count=visit_count,
            last_visit=last_visit,
        )
        if registration_date is not None:
            customer.registration_date = registration_date
        return store.create_customer(customer)

    return _add


@pytest.fixture
def add_segment(store):
    def _add(rules=None, name="High spenders"):
        return store.create_segment(Segment(name=name, rules=rules or []))

    return _add


@pytest.fixture
def active_campaign(store, add_customer, add_segment):
    """
    Active email campaign with three SENT log rows.

    Returns:
        (campaign, logs)
    """
    customers = [
        add_customer("Priya Patel", total_spend=15000),
        add_customer("Arjun Mehta", total_spend=20000),
        add_customer("Kavya Rao", total_spend=25000),
    ]
    segment = add_segment()
    campaign = store.create_campaign(
        Campaign(
            name="Diwali offer",
            segment_id=segment.id,
            message="Hi {{firstName}}, enjoy 10% off!",
            channel=CampaignChannel.EMAIL,
            status=CampaignStatus.ACTIVE,
            audience_size=len(customers),
            launched_at=datetime.now(timezone.utc),
        )
    )
    logs = store.create_communication_logs([
        CommunicationLog(
            message_id=uuid4(),
            campaign_id=campaign.id,
            customer_id=customer.id,
            status=DeliveryStatus.SENT,
            channel=CampaignChannel.EMAIL,
            message=f"Hi {customer.first_name}, enjoy 10% off!",
            sent_at=datetime.now(timezone.utc),
        )
        for customer in customers
    ])
    return campaign, logs

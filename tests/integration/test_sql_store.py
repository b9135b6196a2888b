"""
Integration tests for the SQLAlchemy store against SQLite.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from crm_platform.models import (
    Campaign,
    CampaignChannel,
    CampaignStatus,
    CommunicationLog,
    Customer,
    DeliveryStatus,
    Order,
    Segment,
)
from crm_platform.services.rule_chain import compile_rule_chain
from crm_platform.stores.base import IntegrityViolation

NOW = datetime.now(timezone.utc)


def new_customer(email, spend="0", visits=0, last_visit=None):
    return Customer(
        name="Priya Patel",
        email=email,
        total_spend=Decimal(spend),
        visit_count=visits,
        last_visit=last_visit,
    )


@pytest.fixture
def seeded(sql_store):
    customers = [
        sql_store.create_customer(new_customer("a@example.com", "15000", 2, NOW - timedelta(days=120))),
        sql_store.create_customer(new_customer("b@example.com", "25000", 9, NOW - timedelta(days=5))),
        sql_store.create_customer(new_customer("c@example.com", "500", 12, None)),
    ]
    segment = sql_store.create_segment(Segment(name="High spenders", rules=[]))
    return customers, segment


def new_campaign(segment_id, status=CampaignStatus.ACTIVE):
    return Campaign(
        name="Diwali offer",
        segment_id=segment_id,
        message="Hi {{firstName}}",
        channel=CampaignChannel.SMS,
        status=status,
    )


def new_log(campaign_id, customer_id):
    return CommunicationLog(
        message_id=uuid4(),
        campaign_id=campaign_id,
        customer_id=customer_id,
        status=DeliveryStatus.SENT,
        channel=CampaignChannel.SMS,
        message="Hi Priya",
        sent_at=NOW,
    )


@pytest.mark.integration
def test_column_defaults_applied(sql_store):
    customer = sql_store.create_customer(new_customer("new@example.com"))

    assert customer.id is not None
    assert customer.total_spend == Decimal("0")
    assert customer.visit_count == 0
    assert customer.registration_date is not None
    assert customer.created_at is not None


@pytest.mark.integration
def test_duplicate_email_rejected(sql_store):
    sql_store.create_customer(new_customer("dup@example.com"))

    with pytest.raises(IntegrityViolation):
        sql_store.create_customer(new_customer("dup@example.com"))


@pytest.mark.integration
def test_rule_chain_runs_as_sql(sql_store, seeded):
    customers, _ = seeded
    rules = [
        {"field": "totalSpend", "operator": "gt", "value": 10000},
        {"field": "lastVisit", "operator": "days_ago", "value": 30, "logic": "OR"},
        {"field": "visitCount", "operator": "gte", "value": 5, "logic": "AND"},
    ]
    predicate = compile_rule_chain(rules, now=NOW)

    matched = sql_store.query_customers(predicate)

    # (spend > 10000 OR last visit over 30 days ago) AND visits >= 5
    assert [c.id for c in matched] == [customers[1].id]
    assert sql_store.count_customers(predicate) == 1


@pytest.mark.integration
def test_sql_and_in_memory_evaluation_agree(sql_store, seeded):
    rules = [
        {"field": "lastVisit", "operator": "less_than_days_ago", "value": 30},
        {"field": "totalSpend", "operator": "lt", "value": 1000, "logic": "OR"},
    ]
    predicate = compile_rule_chain(rules, now=NOW)

    via_sql = {c.id for c in sql_store.query_customers(predicate)}
    in_python = {c.id for c in sql_store.list_customers() if predicate.matches(c)}

    assert via_sql == in_python
    assert len(via_sql) == 2


@pytest.mark.integration
def test_list_customers_pages_by_id(sql_store, seeded):
    customers, _ = seeded

    page = sql_store.list_customers(limit=2, offset=1)

    assert [c.id for c in page] == [customers[1].id, customers[2].id]


@pytest.mark.integration
def test_order_for_unknown_customer_rejected(sql_store):
    with pytest.raises(IntegrityViolation):
        sql_store.create_order(Order(customer_id=999, amount=Decimal("10"), order_date=NOW))


@pytest.mark.integration
def test_campaign_for_unknown_segment_rejected(sql_store):
    with pytest.raises(IntegrityViolation):
        sql_store.create_campaign(new_campaign(999))


@pytest.mark.integration
def test_log_status_moves_only_from_sent(sql_store, seeded):
    customers, segment = seeded
    campaign = sql_store.create_campaign(new_campaign(segment.id))
    log, = sql_store.create_communication_logs([new_log(campaign.id, customers[0].id)])

    delivered = sql_store.update_log_status(log.message_id, DeliveryStatus.DELIVERED)
    again = sql_store.update_log_status(log.message_id, DeliveryStatus.FAILED, "Carrier rejected")

    assert delivered.status == DeliveryStatus.DELIVERED
    assert delivered.delivered_at is not None
    assert again is None
    assert sql_store.get_log_by_message_id(log.message_id).status == DeliveryStatus.DELIVERED
    assert sql_store.update_log_status(uuid4(), DeliveryStatus.DELIVERED) is None


@pytest.mark.integration
def test_log_batch_is_atomic(sql_store, seeded):
    customers, segment = seeded
    campaign = sql_store.create_campaign(new_campaign(segment.id))
    first = new_log(campaign.id, customers[0].id)
    clash = new_log(campaign.id, customers[1].id)
    clash.message_id = first.message_id

    with pytest.raises(IntegrityViolation):
        sql_store.create_communication_logs([first, clash])

    assert sql_store.list_logs(campaign.id) == []


@pytest.mark.integration
def test_count_logs_by_status(sql_store, seeded):
    customers, segment = seeded
    campaign = sql_store.create_campaign(new_campaign(segment.id))
    logs = sql_store.create_communication_logs([new_log(campaign.id, c.id) for c in customers])
    sql_store.update_log_status(logs[0].message_id, DeliveryStatus.DELIVERED)
    sql_store.update_log_status(logs[1].message_id, DeliveryStatus.FAILED, "Carrier rejected")

    counts = sql_store.count_logs_by_status(campaign.id)

    assert counts == {
        DeliveryStatus.SENT: 1,
        DeliveryStatus.DELIVERED: 1,
        DeliveryStatus.FAILED: 1,
    }
    assert len(sql_store.list_logs(campaign.id, status=DeliveryStatus.FAILED)) == 1


@pytest.mark.integration
def test_campaign_filters_and_order(sql_store, seeded):
    _, segment = seeded
    draft = sql_store.create_campaign(new_campaign(segment.id, CampaignStatus.DRAFT))
    active = sql_store.create_campaign(new_campaign(segment.id))

    assert [c.id for c in sql_store.list_campaigns()] == [active.id, draft.id]
    assert [c.id for c in sql_store.list_campaigns(status=CampaignStatus.DRAFT)] == [draft.id]
    assert len(sql_store.list_campaigns(segment_id=segment.id)) == 2


@pytest.mark.integration
def test_segment_update_and_delete(sql_store):
    segment = sql_store.create_segment(Segment(name="Lapsed", rules=[]))

    updated = sql_store.update_segment(segment.id, name="Lapsed regulars", audience_size=4)

    assert updated.name == "Lapsed regulars"
    assert updated.audience_size == 4
    assert sql_store.delete_segment(segment.id) is True
    assert sql_store.delete_segment(segment.id) is False
    assert sql_store.update_segment(segment.id, name="gone") is None

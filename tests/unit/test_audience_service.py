"""
Unit tests for the audience selector.
"""
from datetime import datetime, timedelta, timezone

import pytest

from crm_platform.schemas.segments import SegmentRule
from crm_platform.services.audience_service import AudienceSelector


@pytest.fixture
def selector(store):
    return AudienceSelector(store)


@pytest.fixture
def spenders(add_customer):
    return [
        add_customer("Asha Iyer", total_spend=5000),
        add_customer("Priya Patel", total_spend=15000),
        add_customer("Rohan Das", total_spend=25000),
    ]


@pytest.mark.unit
def test_count_spend_over_10000(selector, spenders):
    rules = [SegmentRule(field="totalSpend", operator="gt", value=10000)]
    assert selector.count(rules) == 2


@pytest.mark.unit
def test_select_returns_matching_customers_in_id_order(selector, spenders):
    rules = [SegmentRule(field="totalSpend", operator="gt", value=10000)]
    selected = selector.select(rules)

    assert [c.name for c in selected] == ["Priya Patel", "Rohan Das"]


@pytest.mark.unit
def test_empty_rules_select_everyone(selector, spenders):
    assert selector.count([]) == 3
    assert len(selector.select([])) == 3


@pytest.mark.unit
def test_unknown_field_selects_nobody(selector, spenders):
    rules = [SegmentRule(field="favouriteColour", operator="eq", value="blue")]
    assert selector.count(rules) == 0
    assert selector.select(rules) == []


@pytest.mark.unit
def test_count_reflects_live_data(selector, spenders, store):
    """Counts are never cached."""
    rules = [SegmentRule(field="totalSpend", operator="gt", value=10000)]
    assert selector.count(rules) == 2

    store.update_customer(spenders[0].id, total_spend=50000)
    assert selector.count(rules) == 3


@pytest.mark.unit
def test_date_rules_against_store(selector, add_customer):
    now = datetime.now(timezone.utc)
    add_customer("Lapsed", last_visit=now - timedelta(days=120))
    add_customer("Regular", last_visit=now - timedelta(days=2))
    add_customer("Never")

    lapsed = [SegmentRule(field="lastVisit", operator="days_ago", value=90)]
    recent = [SegmentRule(field="lastVisit", operator="less_than_days_ago", value=7)]

    assert [c.name for c in selector.select(lapsed)] == ["Lapsed"]
    assert [c.name for c in selector.select(recent)] == ["Regular"]

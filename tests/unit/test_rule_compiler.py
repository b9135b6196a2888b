"""
Unit tests for the rule condition compiler.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from crm_platform.models import Customer
from crm_platform.schemas.segments import SegmentRule
from crm_platform.services.rule_compiler import (
    MATCH_ALL,
    MATCH_NONE,
    Comparison,
    RuleField,
    compile_rule,
    parse_decimal,
    parse_integer,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def customer(spend="0", visits=0, last_visit=None, registered=None):
    return Customer(
        name="Priya Patel",
        email="priya@example.com",
        total_spend=Decimal(spend),
        visit_count=visits,
        last_visit=last_visit,
        registration_date=registered or NOW - timedelta(days=365),
    )


def rule(field, operator, value):
    return SegmentRule(field=field, operator=operator, value=value)


@pytest.mark.unit
@pytest.mark.parametrize(
    "operator,value,spend,expected",
    [
        ("gt", 10000, "15000", True),
        ("gt", 10000, "10000", False),
        ("lt", 10000, "5000", True),
        ("gte", 10000, "10000", True),
        ("lte", 10000, "10000.01", False),
        ("eq", "10000", "10000.00", True),
        ("greater than", 10000, "15000", True),
        ("greater_than_or_equal", 10000, "10000", True),
        ("less than or equal", 10000, "9999.99", True),
        ("equal to", 500, "500", True),
        ("equals", 500, "501", False),
    ],
)
def test_total_spend_operators(operator, value, spend, expected):
    """totalSpend compares as a decimal under every operator spelling."""
    predicate = compile_rule(rule("totalSpend", operator, value))
    assert predicate.matches(customer(spend=spend)) is expected


@pytest.mark.unit
def test_operator_matching_ignores_case_and_padding():
    predicate = compile_rule(rule("totalSpend", "  GT ", 100))
    assert predicate.matches(customer(spend="150"))


@pytest.mark.unit
def test_visit_count_value_truncated_like_parseint():
    """A fractional or suffixed visitCount value is truncated to its integer prefix."""
    assert compile_rule(rule("visitCount", "eq", "5.7")).matches(customer(visits=5))
    assert compile_rule(rule("visitCount", "eq", 5.9)).matches(customer(visits=5))
    assert compile_rule(rule("visitCount", "gte", "3 visits")).matches(customer(visits=3))


@pytest.mark.unit
def test_days_ago_selects_older_timestamps():
    predicate = compile_rule(rule("lastVisit", "days_ago", 30), now=NOW)

    assert predicate.matches(customer(last_visit=NOW - timedelta(days=40)))
    assert not predicate.matches(customer(last_visit=NOW - timedelta(days=10)))


@pytest.mark.unit
def test_less_than_days_ago_selects_recent_timestamps():
    predicate = compile_rule(rule("lastVisit", "less_than_days_ago", 30), now=NOW)

    assert predicate.matches(customer(last_visit=NOW - timedelta(days=10)))
    assert not predicate.matches(customer(last_visit=NOW - timedelta(days=40)))


@pytest.mark.unit
def test_date_operator_aliases():
    older = compile_rule(rule("registrationDate", "more than days ago", 90), now=NOW)
    newer = compile_rule(rule("registrationDate", "less than days ago", 90), now=NOW)
    veteran = customer(registered=NOW - timedelta(days=200))

    assert older.matches(veteran)
    assert not newer.matches(veteran)


@pytest.mark.unit
def test_null_last_visit_matches_neither_date_operator():
    never_visited = customer(last_visit=None)

    assert not compile_rule(rule("lastVisit", "days_ago", 30), now=NOW).matches(never_visited)
    assert not compile_rule(rule("lastVisit", "less_than_days_ago", 30), now=NOW).matches(never_visited)


@pytest.mark.unit
def test_naive_timestamps_treated_as_utc():
    """SQLite hands back naive datetimes; they compare as UTC."""
    naive = (NOW - timedelta(days=40)).replace(tzinfo=None)
    predicate = compile_rule(rule("lastVisit", "days_ago", 30), now=NOW)

    assert predicate.matches(customer(last_visit=naive))


@pytest.mark.unit
@pytest.mark.parametrize(
    "field,operator,value",
    [
        ("loyaltyTier", "eq", "gold"),
        ("totalSpend", "between", 100),
        ("lastVisit", "gt", 30),
        ("totalSpend", "gt", "lots"),
        ("visitCount", "gt", "many"),
        ("lastVisit", "days_ago", "recently"),
    ],
)
def test_unsupported_rules_match_nobody(field, operator, value, caplog):
    """Unknown fields, operators and values fail closed with a warning instead of raising."""
    with caplog.at_level(logging.WARNING):
        predicate = compile_rule(rule(field, operator, value))

    assert predicate is MATCH_NONE
    assert not predicate.matches(customer(spend="999999", visits=99))
    assert any(record.levelno == logging.WARNING for record in caplog.records)


@pytest.mark.unit
def test_compile_accepts_rule_dicts():
    predicate = compile_rule({"field": "totalSpend", "operator": "gt", "value": 100})
    assert isinstance(predicate, Comparison)
    assert predicate.field is RuleField.TOTAL_SPEND
    assert predicate.threshold == Decimal("100")


@pytest.mark.unit
def test_describe_and_clause():
    predicate = compile_rule(rule("totalSpend", "gt", 10000))

    assert predicate.describe() == "totalSpend > 10000"
    assert "customers.total_spend >" in str(predicate.to_clause())


@pytest.mark.unit
def test_constant_predicates():
    assert MATCH_ALL.matches(customer())
    assert not MATCH_NONE.matches(customer())
    assert str(MATCH_ALL.to_clause()) == "true"
    assert str(MATCH_NONE.to_clause()) == "false"


@pytest.mark.unit
def test_value_parsers():
    assert parse_decimal("12.50") == Decimal("12.50")
    assert parse_decimal("NaN") is None
    assert parse_decimal("10,000") is None
    assert parse_decimal(True) is None
    assert parse_integer("  -4 days") == -4
    assert parse_integer(7.99) == 7
    assert parse_integer("x7") is None
    assert parse_integer(float("inf")) is None

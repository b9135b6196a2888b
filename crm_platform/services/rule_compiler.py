"""
Rule condition compiler.

Turns one segment rule into an atomic Predicate over a Customer. A Predicate
can be tested against a loaded customer (matches) or rendered as a
SQLAlchemy boolean clause (to_clause), so the in-memory and SQL stores apply
exactly the same selection.

Supported rules:
- totalSpend / visitCount: gt, lt, gte, lte, eq (and their spelled-out aliases)
- lastVisit / registrationDate: days_ago (older than N days),
  less_than_days_ago (within the last N days)

Anything else compiles to MATCH_NONE: a rule we cannot understand selects
nobody, it never raises.
"""
import enum
import operator
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy import and_, or_, true, false
from sqlalchemy.sql.elements import ColumnElement

from crm_platform.lib.logging import get_logger
from crm_platform.models.customers import Customer
from crm_platform.schemas.segments import SegmentRule

logger = get_logger(__name__)


class RuleField(str, enum.Enum):
    """Customer attributes a rule can test, by wire name."""
    TOTAL_SPEND = "totalSpend"
    VISIT_COUNT = "visitCount"
    LAST_VISIT = "lastVisit"
    REGISTRATION_DATE = "registrationDate"

    @property
    def attribute(self) -> str:
        return _FIELD_ATTRIBUTES[self]

    @property
    def is_date(self) -> bool:
        return self in (RuleField.LAST_VISIT, RuleField.REGISTRATION_DATE)


_FIELD_ATTRIBUTES = {
    RuleField.TOTAL_SPEND: "total_spend",
    RuleField.VISIT_COUNT: "visit_count",
    RuleField.LAST_VISIT: "last_visit",
    RuleField.REGISTRATION_DATE: "registration_date",
}


@dataclass(frozen=True)
class Comparator:
    symbol: str
    fn: Callable[[Any, Any], Any]


GT = Comparator(">", operator.gt)
LT = Comparator("<", operator.lt)
GTE = Comparator(">=", operator.ge)
LTE = Comparator("<=", operator.le)
EQ = Comparator("=", operator.eq)

NUMERIC_OPERATORS: Dict[str, Comparator] = {
    "gt": GT,
    "greater than": GT,
    "greater_than": GT,
    "lt": LT,
    "less than": LT,
    "less_than": LT,
    "gte": GTE,
    "greater than or equal": GTE,
    "greater_than_or_equal": GTE,
    "lte": LTE,
    "less than or equal": LTE,
    "less_than_or_equal": LTE,
    "eq": EQ,
    "equal to": EQ,
    "equal_to": EQ,
    "equals": EQ,
}

# The date value is a day count N; the comparison is against now - N days.
DATE_OPERATORS: Dict[str, Comparator] = {
    "days_ago": LT,
    "more than days ago": LT,
    "more_than_days_ago": LT,
    "less_than_days_ago": GT,
    "less than days ago": GT,
}


# ============================================================================
# Predicates
# ============================================================================


class Predicate(ABC):
    """Opaque selection predicate over customers."""

    @abstractmethod
    def matches(self, customer: Customer) -> bool:
        """Test a loaded customer."""

    @abstractmethod
    def to_clause(self) -> ColumnElement[bool]:
        """SQLAlchemy WHERE clause over the customers table."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable form, fully parenthesized."""

    def __and__(self, other: "Predicate") -> "Predicate":
        return AllOf(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return AnyOf(self, other)

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class _Constant(Predicate):
    value: bool

    def matches(self, customer: Customer) -> bool:
        return self.value

    def to_clause(self) -> ColumnElement[bool]:
        return true() if self.value else false()

    def describe(self) -> str:
        return "TRUE" if self.value else "FALSE"


MATCH_ALL: Predicate = _Constant(True)
MATCH_NONE: Predicate = _Constant(False)


@dataclass(frozen=True)
class Comparison(Predicate):
    """customer.<field> <comparator> threshold; a NULL attribute never matches."""

    field: RuleField
    comparator: Comparator
    threshold: Union[Decimal, int, datetime]

    def matches(self, customer: Customer) -> bool:
        actual = getattr(customer, self.field.attribute, None)
        if actual is None:
            return False
        if self.field is RuleField.TOTAL_SPEND:
            actual = Decimal(str(actual))
        elif self.field.is_date:
            actual = as_utc(actual)
        return bool(self.comparator.fn(actual, self.threshold))

    def to_clause(self) -> ColumnElement[bool]:
        column = getattr(Customer, self.field.attribute)
        return self.comparator.fn(column, self.threshold)

    def describe(self) -> str:
        threshold = self.threshold.isoformat() if isinstance(self.threshold, datetime) else self.threshold
        return f"{self.field.value} {self.comparator.symbol} {threshold}"


@dataclass(frozen=True)
class AllOf(Predicate):
    left: Predicate
    right: Predicate

    def matches(self, customer: Customer) -> bool:
        return self.left.matches(customer) and self.right.matches(customer)

    def to_clause(self) -> ColumnElement[bool]:
        return and_(self.left.to_clause(), self.right.to_clause())

    def describe(self) -> str:
        return f"({self.left.describe()} AND {self.right.describe()})"


@dataclass(frozen=True)
class AnyOf(Predicate):
    left: Predicate
    right: Predicate

    def matches(self, customer: Customer) -> bool:
        return self.left.matches(customer) or self.right.matches(customer)

    def to_clause(self) -> ColumnElement[bool]:
        return or_(self.left.to_clause(), self.right.to_clause())

    def describe(self) -> str:
        return f"({self.left.describe()} OR {self.right.describe()})"


# ============================================================================
# Value parsing
# ============================================================================


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a rule value as a decimal; None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def parse_integer(value: Any) -> Optional[int]:
    """
    Parse a rule value as an integer, truncating like parseInt.

    "5" -> 5, 5.9 -> 5, "12 visits" -> 12, "abc" -> None
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float("inf") else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


# ============================================================================
# Compiler
# ============================================================================


def coerce_rule(rule: Union[SegmentRule, dict]) -> SegmentRule:
    """Accept a SegmentRule or its JSON dict form."""
    if isinstance(rule, SegmentRule):
        return rule
    return SegmentRule.model_validate(rule)


def compile_rule(rule: Union[SegmentRule, dict], now: Optional[datetime] = None) -> Predicate:
    """
    Compile one rule into an atomic predicate.

    Args:
        rule: Segment rule (or its dict form)
        now: Reference time for relative-day operators (defaults to now, UTC)

    Returns:
        Predicate; MATCH_NONE when the field, operator or value is not understood
    """
    rule = coerce_rule(rule)
    operator_name = rule.operator.strip().lower()

    try:
        field = RuleField(rule.field)
    except ValueError:
        logger.warning(f"Unknown segment rule field '{rule.field}', rule selects no customers")
        return MATCH_NONE

    if field.is_date:
        comparator = DATE_OPERATORS.get(operator_name)
        days = parse_integer(rule.value)
        if comparator is None or days is None:
            logger.warning(
                f"Unsupported date rule {rule.field} {rule.operator!r} {rule.value!r}, "
                f"rule selects no customers"
            )
            return MATCH_NONE
        reference = as_utc(now) if now else datetime.now(timezone.utc)
        return Comparison(field, comparator, reference - timedelta(days=days))

    comparator = NUMERIC_OPERATORS.get(operator_name)
    if field is RuleField.TOTAL_SPEND:
        threshold = parse_decimal(rule.value)
    else:
        threshold = parse_integer(rule.value)

    if comparator is None or threshold is None:
        logger.warning(
            f"Unsupported numeric rule {rule.field} {rule.operator!r} {rule.value!r}, "
            f"rule selects no customers"
        )
        return MATCH_NONE

    return Comparison(field, comparator, threshold)

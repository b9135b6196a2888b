"""
Segment rule and segment payload schemas.
"""
import enum
from datetime import datetime
from typing import List, Optional, Union

from pydantic import Field, field_validator

from crm_platform.schemas.base import CamelModel


class RuleLogic(str, enum.Enum):
    """How a rule joins the chain built from the rules before it."""
    AND = "AND"
    OR = "OR"


class SegmentRule(CamelModel):
    """
    One condition in a segment rule chain.

    field and operator are free-form strings: an unknown field or operator
    is not a validation error, it compiles to a predicate matching nobody.
    logic is only meaningful from the second rule onwards.
    """

    field: str = Field(..., min_length=1, description="totalSpend, visitCount, lastVisit or registrationDate")
    operator: str = Field(..., min_length=1, description="gt, lt, gte, lte, eq, days_ago, less_than_days_ago")
    value: Union[int, float, str] = Field(..., description="Threshold; a day count for date fields")
    logic: Optional[RuleLogic] = Field(default=None, description="AND (default) or OR")

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, value):
        if isinstance(value, str):
            value = value.strip().upper()
            return value or None
        return value


def normalize_rules(rules: List[SegmentRule]) -> List[SegmentRule]:
    """
    Clear the first rule's logic and default the rest to AND.

    Returns new rule objects; the input list is left untouched.
    """
    normalized = []
    for index, rule in enumerate(rules):
        logic = None if index == 0 else (rule.logic or RuleLogic.AND)
        normalized.append(rule.model_copy(update={"logic": logic}))
    return normalized


def rules_to_json(rules: List[SegmentRule]) -> list:
    """Serialize a rule chain for the segments.rules JSON column."""
    return [rule.model_dump(mode="json", by_alias=True, exclude_none=True) for rule in rules]


def rules_from_json(raw: Optional[list]) -> List[SegmentRule]:
    """Parse the segments.rules JSON column back into rule objects."""
    return [SegmentRule.model_validate(item) for item in (raw or [])]


# ============================================================================
# API payloads
# ============================================================================


class SegmentCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    rules: List[SegmentRule] = Field(default_factory=list)
    user_id: Optional[int] = None


class SegmentUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    rules: Optional[List[SegmentRule]] = None


class SegmentRead(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    rules: List[SegmentRule]
    audience_size: int
    user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class AudiencePreviewRequest(CamelModel):
    rules: List[SegmentRule] = Field(default_factory=list)


class AudiencePreviewResponse(CamelModel):
    audience_size: int


class RuleGenerationRequest(CamelModel):
    query: str = Field(..., min_length=1, max_length=1000)


class RuleGenerationResponse(CamelModel):
    rules: List[SegmentRule]

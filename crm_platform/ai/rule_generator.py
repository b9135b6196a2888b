"""
Natural-language segment rule generation.

Turns free text such as "customers who spent over 10000 and haven't visited
in 90 days" into an ordered rule chain. The generator is an explicit seam:
anything implementing RuleGenerator can be plugged into the API.
"""
import json
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from crm_platform.ai.client import OpenAIClient, get_openai_client
from crm_platform.lib.logging import get_logger
from crm_platform.schemas.segments import SegmentRule, normalize_rules

logger = get_logger(__name__)


SYSTEM_PROMPT = (
    "You are an expert at converting natural language queries into structured "
    "customer segmentation rules. Always respond with valid JSON in the exact format requested."
)

RULES_PROMPT = """Convert the following natural language description into customer segmentation rules for a CRM system.

Natural language query: "{query}"

Available fields:
- totalSpend (number): Customer's total spending amount
- visitCount (number): Number of visits/orders
- lastVisit (date): Days since last visit
- registrationDate (date): Days since registration

Available operators:
- For numbers: "gt", "lt", "gte", "lte", "eq"
- For dates: "days_ago" (more than X days ago), "less_than_days_ago" (less than X days ago)

Logic operators: "AND", "OR"

Return JSON in this exact format:
{{"rules": [{{"field": "totalSpend", "operator": "gt", "value": 10000, "logic": "AND"}}]}}

Rules:
1. The first rule has no logic field
2. Later rules have logic "AND" or "OR"
3. Convert currency amounts to plain numbers
4. Convert time periods to a number of days
5. Use several rules for compound conditions"""


class RuleGenerationError(Exception):
    """The generator could not produce a usable rule chain."""


class RuleGenerator(ABC):
    """Free text in, ordered rule chain out."""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def generate_rules(self, query: str) -> List[SegmentRule]:
        """
        Raises:
            RuleGenerationError: no valid rules could be produced
        """


def parse_rules_response(content: Optional[str]) -> List[SegmentRule]:
    """
    Parse a model response of the form {"rules": [...]} into normalized rules.

    The first rule's logic is dropped and later rules default to AND.
    """
    try:
        payload = json.loads(content or "{}")
    except json.JSONDecodeError as e:
        raise RuleGenerationError(f"Model returned invalid JSON: {e}") from e

    raw_rules = payload.get("rules") if isinstance(payload, dict) else None
    if not isinstance(raw_rules, list):
        raise RuleGenerationError("Model response has no 'rules' array")

    try:
        rules = [SegmentRule.model_validate(item) for item in raw_rules]
    except ValidationError as e:
        raise RuleGenerationError(f"Model returned malformed rules: {e.error_count()} errors") from e

    return normalize_rules(rules)


class OpenAIRuleGenerator(RuleGenerator):
    """Rule generator backed by the OpenAI chat completions API in JSON mode."""

    def __init__(self, openai_client: Optional[OpenAIClient] = None):
        self.openai_client = openai_client or get_openai_client()

    def is_available(self) -> bool:
        return self.openai_client.is_available()

    def generate_rules(self, query: str) -> List[SegmentRule]:
        """
        Generate a rule chain for a natural-language audience description.

        Args:
            query: Free-text audience description

        Returns:
            Normalized rule chain

        Raises:
            RuleGenerationError: OpenAI is unavailable or kept failing
        """
        if not self.is_available():
            raise RuleGenerationError("OpenAI client not configured")

        try:
            content = self._complete(query)
        except Exception as e:
            logger.error(f"Rule generation failed after retries: {e}", exc_info=True)
            raise RuleGenerationError("Failed to generate segment rules from natural language query") from e

        rules = parse_rules_response(content)
        logger.info(f"Generated {len(rules)} rules from natural-language query")
        return rules

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
    def _complete(self, query: str) -> Optional[str]:
        """Call the chat completions API; retried with exponential backoff."""
        client = self.openai_client.get_client()
        response = client.chat.completions.create(
            model=self.openai_client.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": RULES_PROMPT.format(query=query)},
            ],
            response_format={"type": "json_object"},
            temperature=0.3,
        )
        return response.choices[0].message.content

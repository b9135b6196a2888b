"""
Rule chain evaluator.

Folds an ordered list of segment rules into a single Predicate, strictly
left to right with no operator precedence:

    [A, B(OR), C(AND)]  ->  ((A OR B) AND C)

An empty chain matches every customer.
"""
from datetime import datetime, timezone
from functools import reduce
from typing import Iterable, Optional, Union

from crm_platform.schemas.segments import RuleLogic, SegmentRule
from crm_platform.services.rule_compiler import MATCH_ALL, Predicate, coerce_rule, compile_rule


def compile_rule_chain(
    rules: Iterable[Union[SegmentRule, dict]],
    now: Optional[datetime] = None,
) -> Predicate:
    """
    Compile an ordered rule chain.

    The first rule's logic is ignored; later rules join with their own
    logic, defaulting to AND. All relative-day rules share one reference
    time so the chain is evaluated against a single instant.

    Args:
        rules: Rules in the order they were authored
        now: Reference time (defaults to now, UTC)

    Returns:
        Combined predicate
    """
    chain = [coerce_rule(rule) for rule in rules]
    if not chain:
        return MATCH_ALL

    reference = now or datetime.now(timezone.utc)

    def fold(accumulated: Predicate, rule: SegmentRule) -> Predicate:
        condition = compile_rule(rule, reference)
        if rule.logic == RuleLogic.OR:
            return accumulated | condition
        return accumulated & condition

    return reduce(fold, chain[1:], compile_rule(chain[0], reference))

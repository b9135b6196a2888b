"""
Audience selector - applies a rule chain to the live customer set.

Nothing is cached: every call compiles the chain afresh against the
current time and queries the store.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Union

from crm_platform.lib.logging import get_logger
from crm_platform.models.customers import Customer
from crm_platform.schemas.segments import SegmentRule
from crm_platform.services.rule_chain import compile_rule_chain
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)

Rules = Iterable[Union[SegmentRule, dict]]


class AudienceSelector:
    """Counts and lists the customers a rule chain selects."""

    def __init__(self, store: CrmStore):
        self.store = store

    def count(self, rules: Rules, now: Optional[datetime] = None) -> int:
        """Number of customers matching the rule chain."""
        predicate = compile_rule_chain(rules, now)
        size = self.store.count_customers(predicate)
        logger.debug(f"Audience count {size} for {predicate}")
        return size

    def select(self, rules: Rules, now: Optional[datetime] = None) -> List[Customer]:
        """
        All customers matching the rule chain, ordered by id.

        Args:
            rules: Ordered rule chain
            now: Reference time for relative-day rules (defaults to now)

        Returns:
            Matching customers; empty chain returns everyone
        """
        predicate = compile_rule_chain(rules, now)
        customers = self.store.query_customers(predicate)
        logger.info(f"Selected {len(customers)} customers for {predicate}")
        return customers

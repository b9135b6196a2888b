"""
In-memory store - used by tests and by `storage_backend = "memory"`.
"""
import itertools
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import inspect

from crm_platform.lib.logging import get_logger
from crm_platform.models import (
    Campaign,
    CampaignStatus,
    CommunicationLog,
    Customer,
    DeliveryStatus,
    Order,
    Segment,
)
from crm_platform.services.rule_compiler import Predicate
from crm_platform.stores.base import CrmStore, IntegrityViolation

logger = get_logger(__name__)


def _apply_column_defaults(entity) -> None:
    """
    Fill unset attributes from the mapped column defaults.

    The ORM only applies column defaults on flush, which never happens for
    objects that are not attached to a session.
    """
    for attr in inspect(type(entity)).column_attrs:
        column = attr.columns[0]
        if getattr(entity, attr.key) is not None or column.default is None:
            continue
        default = column.default
        value = default.arg(None) if default.is_callable else default.arg
        setattr(entity, attr.key, value)


def _touch(entity) -> None:
    if hasattr(entity, "updated_at"):
        entity.updated_at = datetime.now(timezone.utc)


class InMemoryStore(CrmStore):
    """Dict-backed store guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Drop all data and restart id sequences."""
        self._customers: Dict[int, Customer] = {}
        self._orders: Dict[int, Order] = {}
        self._segments: Dict[int, Segment] = {}
        self._campaigns: Dict[int, Campaign] = {}
        self._logs: Dict[UUID, CommunicationLog] = {}
        self._ids = {
            name: itertools.count(1)
            for name in ("customer", "order", "segment", "campaign", "log")
        }

    def _insert(self, kind: str, table: dict, entity):
        _apply_column_defaults(entity)
        entity.id = next(self._ids[kind])
        table[entity.id] = entity
        return entity

    def _update(self, table: dict, entity_id: int, changes: dict):
        entity = table.get(entity_id)
        if entity is None:
            return None
        for key, value in changes.items():
            setattr(entity, key, value)
        _touch(entity)
        return entity

    # ------------------------------------------------------------------
    # Customers and orders
    # ------------------------------------------------------------------

    def create_customer(self, customer: Customer) -> Customer:
        with self._lock:
            for existing in self._customers.values():
                if existing.email == customer.email:
                    raise IntegrityViolation(f"Customer with email {customer.email} already exists")
                if customer.external_id and existing.external_id == customer.external_id:
                    raise IntegrityViolation(f"Customer with external id {customer.external_id} already exists")
            return self._insert("customer", self._customers, customer)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        return self._customers.get(customer_id)

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        return next((c for c in self._customers.values() if c.email == email), None)

    def list_customers(self, limit: Optional[int] = None, offset: int = 0) -> List[Customer]:
        customers = sorted(self._customers.values(), key=lambda c: c.id)[offset:]
        return customers[:limit] if limit is not None else customers

    def update_customer(self, customer_id: int, **changes) -> Optional[Customer]:
        with self._lock:
            return self._update(self._customers, customer_id, changes)

    def query_customers(self, predicate: Predicate) -> List[Customer]:
        with self._lock:
            snapshot = sorted(self._customers.values(), key=lambda c: c.id)
        return [customer for customer in snapshot if predicate.matches(customer)]

    def count_customers(self, predicate: Predicate) -> int:
        return len(self.query_customers(predicate))

    def create_order(self, order: Order) -> Order:
        with self._lock:
            if order.customer_id not in self._customers:
                raise IntegrityViolation(f"Customer {order.customer_id} does not exist")
            return self._insert("order", self._orders, order)

    def list_orders(self, customer_id: int) -> List[Order]:
        orders = [o for o in self._orders.values() if o.customer_id == customer_id]
        return sorted(orders, key=lambda o: (o.order_date, o.id))

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def create_segment(self, segment: Segment) -> Segment:
        with self._lock:
            return self._insert("segment", self._segments, segment)

    def get_segment(self, segment_id: int) -> Optional[Segment]:
        return self._segments.get(segment_id)

    def list_segments(self, user_id: Optional[int] = None) -> List[Segment]:
        segments = [
            s for s in self._segments.values()
            if user_id is None or s.user_id == user_id
        ]
        return sorted(segments, key=lambda s: s.id, reverse=True)

    def update_segment(self, segment_id: int, **changes) -> Optional[Segment]:
        with self._lock:
            return self._update(self._segments, segment_id, changes)

    def delete_segment(self, segment_id: int) -> bool:
        with self._lock:
            return self._segments.pop(segment_id, None) is not None

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def create_campaign(self, campaign: Campaign) -> Campaign:
        with self._lock:
            if campaign.segment_id not in self._segments:
                raise IntegrityViolation(f"Segment {campaign.segment_id} does not exist")
            return self._insert("campaign", self._campaigns, campaign)

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    def list_campaigns(
        self,
        user_id: Optional[int] = None,
        status: Optional[CampaignStatus] = None,
        segment_id: Optional[int] = None,
    ) -> List[Campaign]:
        campaigns = [
            c for c in self._campaigns.values()
            if (user_id is None or c.user_id == user_id)
            and (status is None or c.status == status)
            and (segment_id is None or c.segment_id == segment_id)
        ]
        return sorted(campaigns, key=lambda c: c.id, reverse=True)

    def update_campaign(self, campaign_id: int, **changes) -> Optional[Campaign]:
        with self._lock:
            return self._update(self._campaigns, campaign_id, changes)

    # ------------------------------------------------------------------
    # Communication log
    # ------------------------------------------------------------------

    def create_communication_logs(self, logs: List[CommunicationLog]) -> List[CommunicationLog]:
        with self._lock:
            for log in logs:
                if log.campaign_id not in self._campaigns:
                    raise IntegrityViolation(f"Campaign {log.campaign_id} does not exist")
                if log.customer_id not in self._customers:
                    raise IntegrityViolation(f"Customer {log.customer_id} does not exist")
            seen = set()
            for log in logs:
                _apply_column_defaults(log)
                if log.message_id in self._logs or log.message_id in seen:
                    raise IntegrityViolation(f"Duplicate message id {log.message_id}")
                seen.add(log.message_id)
            for log in logs:
                log.id = next(self._ids["log"])
                self._logs[log.message_id] = log
        return logs

    def get_log_by_message_id(self, message_id: UUID) -> Optional[CommunicationLog]:
        return self._logs.get(message_id)

    def update_log_status(
        self,
        message_id: UUID,
        status: DeliveryStatus,
        error_reason: Optional[str] = None,
    ) -> Optional[CommunicationLog]:
        with self._lock:
            log = self._logs.get(message_id)
            if log is None or log.status != DeliveryStatus.SENT:
                return None
            log.status = status
            log.error_reason = error_reason
            if status == DeliveryStatus.DELIVERED:
                log.delivered_at = datetime.now(timezone.utc)
            return log

    def list_logs(
        self,
        campaign_id: int,
        status: Optional[DeliveryStatus] = None,
    ) -> List[CommunicationLog]:
        logs = [
            log for log in self._logs.values()
            if log.campaign_id == campaign_id and (status is None or log.status == status)
        ]
        return sorted(logs, key=lambda log: log.id)

    def count_logs_by_status(self, campaign_id: int) -> Dict[DeliveryStatus, int]:
        counts = {status: 0 for status in DeliveryStatus}
        with self._lock:
            for log in self._logs.values():
                if log.campaign_id == campaign_id:
                    counts[log.status] += 1
        return counts

"""
SQLAlchemy-backed store.

Each operation runs in its own transaction via session_scope. Sessions are
created with expire_on_commit=False so returned entities stay readable
after the session closes.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from crm_platform.lib.db import session_scope
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


class SqlAlchemyStore(CrmStore):
    """Store over any SQLAlchemy-supported database."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _add(self, entity):
        try:
            with session_scope(self.session_factory) as db:
                db.add(entity)
                db.flush()
                db.refresh(entity)
            return entity
        except IntegrityError as e:
            raise IntegrityViolation(str(e.orig)) from e

    def _update(self, model, entity_id: int, changes: dict):
        with session_scope(self.session_factory) as db:
            entity = db.get(model, entity_id)
            if entity is None:
                return None
            for key, value in changes.items():
                setattr(entity, key, value)
            db.flush()
            db.refresh(entity)
            return entity

    def _require(self, db, model, entity_id: int) -> None:
        # SQLite does not enforce foreign keys unless asked to
        if db.get(model, entity_id) is None:
            raise IntegrityViolation(f"{model.__name__} {entity_id} does not exist")

    # ------------------------------------------------------------------
    # Customers and orders
    # ------------------------------------------------------------------

    def create_customer(self, customer: Customer) -> Customer:
        return self._add(customer)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        with session_scope(self.session_factory) as db:
            return db.get(Customer, customer_id)

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        with session_scope(self.session_factory) as db:
            return db.scalars(select(Customer).where(Customer.email == email)).first()

    def list_customers(self, limit: Optional[int] = None, offset: int = 0) -> List[Customer]:
        stmt = select(Customer).order_by(Customer.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    def update_customer(self, customer_id: int, **changes) -> Optional[Customer]:
        return self._update(Customer, customer_id, changes)

    def query_customers(self, predicate: Predicate) -> List[Customer]:
        stmt = select(Customer).where(predicate.to_clause()).order_by(Customer.id)
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    def count_customers(self, predicate: Predicate) -> int:
        stmt = select(func.count()).select_from(Customer).where(predicate.to_clause())
        with session_scope(self.session_factory) as db:
            return db.scalar(stmt) or 0

    def create_order(self, order: Order) -> Order:
        try:
            with session_scope(self.session_factory) as db:
                self._require(db, Customer, order.customer_id)
                db.add(order)
                db.flush()
                db.refresh(order)
            return order
        except IntegrityError as e:
            raise IntegrityViolation(str(e.orig)) from e

    def list_orders(self, customer_id: int) -> List[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.order_date, Order.id)
        )
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def create_segment(self, segment: Segment) -> Segment:
        return self._add(segment)

    def get_segment(self, segment_id: int) -> Optional[Segment]:
        with session_scope(self.session_factory) as db:
            return db.get(Segment, segment_id)

    def list_segments(self, user_id: Optional[int] = None) -> List[Segment]:
        stmt = select(Segment).order_by(Segment.id.desc())
        if user_id is not None:
            stmt = stmt.where(Segment.user_id == user_id)
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    def update_segment(self, segment_id: int, **changes) -> Optional[Segment]:
        return self._update(Segment, segment_id, changes)

    def delete_segment(self, segment_id: int) -> bool:
        with session_scope(self.session_factory) as db:
            segment = db.get(Segment, segment_id)
            if segment is None:
                return False
            db.delete(segment)
            return True

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def create_campaign(self, campaign: Campaign) -> Campaign:
        try:
            with session_scope(self.session_factory) as db:
                self._require(db, Segment, campaign.segment_id)
                db.add(campaign)
                db.flush()
                db.refresh(campaign)
            return campaign
        except IntegrityError as e:
            raise IntegrityViolation(str(e.orig)) from e

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        with session_scope(self.session_factory) as db:
            return db.get(Campaign, campaign_id)

    def list_campaigns(
        self,
        user_id: Optional[int] = None,
        status: Optional[CampaignStatus] = None,
        segment_id: Optional[int] = None,
    ) -> List[Campaign]:
        stmt = select(Campaign).order_by(Campaign.id.desc())
        if user_id is not None:
            stmt = stmt.where(Campaign.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Campaign.status == status)
        if segment_id is not None:
            stmt = stmt.where(Campaign.segment_id == segment_id)
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    def update_campaign(self, campaign_id: int, **changes) -> Optional[Campaign]:
        return self._update(Campaign, campaign_id, changes)

    # ------------------------------------------------------------------
    # Communication log
    # ------------------------------------------------------------------

    def create_communication_logs(self, logs: List[CommunicationLog]) -> List[CommunicationLog]:
        try:
            with session_scope(self.session_factory) as db:
                for campaign_id in {log.campaign_id for log in logs}:
                    self._require(db, Campaign, campaign_id)
                db.add_all(logs)
                db.flush()
                for log in logs:
                    db.refresh(log)
            return logs
        except IntegrityError as e:
            raise IntegrityViolation(str(e.orig)) from e

    def get_log_by_message_id(self, message_id: UUID) -> Optional[CommunicationLog]:
        stmt = select(CommunicationLog).where(CommunicationLog.message_id == message_id)
        with session_scope(self.session_factory) as db:
            return db.scalars(stmt).first()

    def update_log_status(
        self,
        message_id: UUID,
        status: DeliveryStatus,
        error_reason: Optional[str] = None,
    ) -> Optional[CommunicationLog]:
        values = {"status": status, "error_reason": error_reason}
        if status == DeliveryStatus.DELIVERED:
            values["delivered_at"] = datetime.now(timezone.utc)

        stmt = (
            update(CommunicationLog)
            .where(CommunicationLog.message_id == message_id)
            .where(CommunicationLog.status == DeliveryStatus.SENT)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with session_scope(self.session_factory) as db:
            result = db.execute(stmt)
            if result.rowcount == 0:
                return None
            return db.scalars(
                select(CommunicationLog).where(CommunicationLog.message_id == message_id)
            ).first()

    def list_logs(
        self,
        campaign_id: int,
        status: Optional[DeliveryStatus] = None,
    ) -> List[CommunicationLog]:
        stmt = (
            select(CommunicationLog)
            .where(CommunicationLog.campaign_id == campaign_id)
            .order_by(CommunicationLog.id)
        )
        if status is not None:
            stmt = stmt.where(CommunicationLog.status == status)
        with session_scope(self.session_factory) as db:
            return list(db.scalars(stmt))

    def count_logs_by_status(self, campaign_id: int) -> Dict[DeliveryStatus, int]:
        stmt = (
            select(CommunicationLog.status, func.count())
            .where(CommunicationLog.campaign_id == campaign_id)
            .group_by(CommunicationLog.status)
        )
        counts = {status: 0 for status in DeliveryStatus}
        with session_scope(self.session_factory) as db:
            for status, count in db.execute(stmt):
                counts[DeliveryStatus(status)] = count
        return counts

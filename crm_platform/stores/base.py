"""
Storage interface shared by the in-memory and SQL backings.

Entities are the ORM model classes from crm_platform.models in both
backings; the in-memory store simply never attaches them to a session.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from uuid import UUID

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


class IntegrityViolation(Exception):
    """A write referenced a missing row or collided with a unique key."""


class CrmStore(ABC):
    """Persistence operations used by the services."""

    # ------------------------------------------------------------------
    # Customers and orders
    # ------------------------------------------------------------------

    @abstractmethod
    def create_customer(self, customer: Customer) -> Customer:
        """Insert a customer; IntegrityViolation when the email or external id is taken."""

    @abstractmethod
    def get_customer(self, customer_id: int) -> Optional[Customer]:
        pass

    @abstractmethod
    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        pass

    @abstractmethod
    def list_customers(self, limit: Optional[int] = None, offset: int = 0) -> List[Customer]:
        pass

    @abstractmethod
    def update_customer(self, customer_id: int, **changes) -> Optional[Customer]:
        pass

    @abstractmethod
    def query_customers(self, predicate: Predicate) -> List[Customer]:
        """All customers matching the predicate, ordered by id."""

    @abstractmethod
    def count_customers(self, predicate: Predicate) -> int:
        pass

    @abstractmethod
    def create_order(self, order: Order) -> Order:
        """Insert an order; IntegrityViolation when the customer does not exist."""

    @abstractmethod
    def list_orders(self, customer_id: int) -> List[Order]:
        pass

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    @abstractmethod
    def create_segment(self, segment: Segment) -> Segment:
        pass

    @abstractmethod
    def get_segment(self, segment_id: int) -> Optional[Segment]:
        pass

    @abstractmethod
    def list_segments(self, user_id: Optional[int] = None) -> List[Segment]:
        pass

    @abstractmethod
    def update_segment(self, segment_id: int, **changes) -> Optional[Segment]:
        pass

    @abstractmethod
    def delete_segment(self, segment_id: int) -> bool:
        """Returns False when there was nothing to delete."""

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    @abstractmethod
    def create_campaign(self, campaign: Campaign) -> Campaign:
        """Insert a campaign; IntegrityViolation when the segment does not exist."""

    @abstractmethod
    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        pass

    @abstractmethod
    def list_campaigns(
        self,
        user_id: Optional[int] = None,
        status: Optional[CampaignStatus] = None,
        segment_id: Optional[int] = None,
    ) -> List[Campaign]:
        """Campaigns matching every given filter, newest first."""

    @abstractmethod
    def update_campaign(self, campaign_id: int, **changes) -> Optional[Campaign]:
        pass

    # ------------------------------------------------------------------
    # Communication log
    # ------------------------------------------------------------------

    @abstractmethod
    def create_communication_logs(self, logs: List[CommunicationLog]) -> List[CommunicationLog]:
        """Insert all rows or none of them."""

    @abstractmethod
    def get_log_by_message_id(self, message_id: UUID) -> Optional[CommunicationLog]:
        pass

    @abstractmethod
    def update_log_status(
        self,
        message_id: UUID,
        status: DeliveryStatus,
        error_reason: Optional[str] = None,
    ) -> Optional[CommunicationLog]:
        """
        Move a SENT row to a terminal status.

        The transition is conditional on the row still being SENT, so a
        repeated or late receipt can never overwrite a terminal status.

        Returns:
            The updated row, or None when no SENT row has this message id
        """

    @abstractmethod
    def list_logs(
        self,
        campaign_id: int,
        status: Optional[DeliveryStatus] = None,
    ) -> List[CommunicationLog]:
        pass

    @abstractmethod
    def count_logs_by_status(self, campaign_id: int) -> Dict[DeliveryStatus, int]:
        """Row counts per status for one campaign; every status is present."""

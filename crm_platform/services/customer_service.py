"""
Customer service - customer ingestion, order recording and the spend/visit
aggregates that segment rules are evaluated against.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from crm_platform.api.middleware.error_handler import ConflictException, NotFoundException
from crm_platform.lib.logging import get_logger
from crm_platform.models.customers import Customer, Order
from crm_platform.schemas.customers import (
    BulkCustomerCreate,
    BulkIngestResult,
    CustomerCreate,
    OrderCreate,
)
from crm_platform.services.rule_compiler import as_utc
from crm_platform.stores.base import CrmStore, IntegrityViolation

logger = get_logger(__name__)


class CustomerService:
    """Service for customer and order ingestion."""

    def __init__(self, store: CrmStore):
        self.store = store

    def _build_customer(self, payload: CustomerCreate) -> Customer:
        customer = Customer(
            name=payload.name.strip(),
            email=payload.email.strip().lower(),
            phone=payload.phone,
            external_id=payload.external_id,
        )
        # Left unset otherwise so the column default applies
        if payload.registration_date:
            customer.registration_date = as_utc(payload.registration_date)
        return customer

    def create_customer(self, payload: CustomerCreate) -> Customer:
        """
        Create one customer.

        Raises:
            ConflictException: email or external id already in use
        """
        try:
            customer = self.store.create_customer(self._build_customer(payload))
        except IntegrityViolation as e:
            raise ConflictException(
                f"Customer with email {payload.email} already exists",
                details={"reason": str(e)},
            ) from e

        logger.info(f"Customer {customer.id} created", extra={"customer_id": customer.id})
        return customer

    def bulk_create(self, payload: BulkCustomerCreate) -> BulkIngestResult:
        """
        Ingest many customers; records whose email already exists are skipped.

        Returns:
            Counts of created and skipped records plus per-record errors
        """
        created = 0
        skipped = 0
        errors = []

        for index, item in enumerate(payload.customers):
            if self.store.get_customer_by_email(item.email.strip().lower()):
                skipped += 1
                continue
            try:
                self.store.create_customer(self._build_customer(item))
                created += 1
            except IntegrityViolation as e:
                skipped += 1
                errors.append(f"customers[{index}]: {e}")

        logger.info(f"Bulk ingest: {created} created, {skipped} skipped")
        return BulkIngestResult(created=created, skipped=skipped, errors=errors)

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.store.get_customer(customer_id)
        if customer is None:
            raise NotFoundException("Customer", customer_id)
        return customer

    def get_customer_with_orders(self, customer_id: int) -> Tuple[Customer, List[Order]]:
        customer = self.get_customer(customer_id)
        return customer, self.store.list_orders(customer_id)

    def list_customers(self, limit: Optional[int] = None, offset: int = 0) -> List[Customer]:
        return self.store.list_customers(limit=limit, offset=offset)

    def record_order(self, payload: OrderCreate) -> Order:
        """
        Record an order and recompute the customer's aggregates.

        Raises:
            NotFoundException: the customer does not exist
        """
        order_date = as_utc(payload.order_date) if payload.order_date else datetime.now(timezone.utc)
        try:
            order = self.store.create_order(
                Order(
                    customer_id=payload.customer_id,
                    external_id=payload.external_id,
                    amount=payload.amount,
                    order_date=order_date,
                    items=payload.items,
                )
            )
        except IntegrityViolation as e:
            raise NotFoundException("Customer", payload.customer_id) from e

        self.recompute_customer_aggregates(payload.customer_id)
        logger.info(
            f"Order {order.id} recorded for customer {payload.customer_id}: {payload.amount}",
            extra={"customer_id": payload.customer_id, "order_id": order.id},
        )
        return order

    def recompute_customer_aggregates(self, customer_id: int) -> Customer:
        """Rebuild total_spend, visit_count and last_visit from the full order history."""
        orders = self.store.list_orders(customer_id)
        total_spend = sum((Decimal(str(order.amount)) for order in orders), Decimal("0"))
        last_visit = max((as_utc(order.order_date) for order in orders), default=None)

        customer = self.store.update_customer(
            customer_id,
            total_spend=total_spend,
            visit_count=len(orders),
            last_visit=last_visit,
        )
        if customer is None:
            raise NotFoundException("Customer", customer_id)
        return customer

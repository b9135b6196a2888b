"""
Customer API routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from crm_platform.api.dependencies import get_customer_service
from crm_platform.schemas.customers import (
    BulkCustomerCreate,
    BulkIngestResult,
    CustomerCreate,
    CustomerDetail,
    CustomerRead,
    OrderRead,
)
from crm_platform.services.customer_service import CustomerService


router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("", response_model=List[CustomerRead])
def list_customers(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Page size"),
    offset: int = Query(0, ge=0),
    customers: CustomerService = Depends(get_customer_service),
):
    """List customers ordered by id."""
    return customers.list_customers(limit=limit, offset=offset)


@router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    customers: CustomerService = Depends(get_customer_service),
):
    """
    Create a customer.

    Returns 409 when the email is already registered.
    """
    return customers.create_customer(payload)


@router.post("/bulk", response_model=BulkIngestResult)
def bulk_create_customers(
    payload: BulkCustomerCreate,
    customers: CustomerService = Depends(get_customer_service),
):
    """Ingest many customers at once; existing emails are skipped, not updated."""
    return customers.bulk_create(payload)


@router.get("/{customer_id}", response_model=CustomerDetail)
def get_customer(
    customer_id: int,
    customers: CustomerService = Depends(get_customer_service),
):
    """Customer with their order history."""
    customer, orders = customers.get_customer_with_orders(customer_id)
    detail = CustomerDetail.model_validate(customer)
    detail.orders = [OrderRead.model_validate(order) for order in orders]
    return detail

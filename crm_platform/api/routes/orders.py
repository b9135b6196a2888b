"""
Order API routes.
"""
from fastapi import APIRouter, Depends, status

from crm_platform.api.dependencies import get_customer_service
from crm_platform.schemas.customers import OrderCreate, OrderRead
from crm_platform.services.customer_service import CustomerService


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    customers: CustomerService = Depends(get_customer_service),
):
    """
    Record an order.

    The customer's total spend, visit count and last visit are recomputed
    from their full order history. Returns 404 for an unknown customer.
    """
    return customers.record_order(payload)

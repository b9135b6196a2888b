"""
Customer and order payload schemas.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from crm_platform.schemas.base import CamelModel


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CustomerCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    external_id: Optional[str] = Field(default=None, max_length=100)
    registration_date: Optional[datetime] = None


class CustomerRead(CamelModel):
    id: int
    external_id: Optional[str] = None
    name: str
    email: str
    phone: Optional[str] = None
    total_spend: Decimal
    visit_count: int
    last_visit: Optional[datetime] = None
    registration_date: datetime
    created_at: datetime
    updated_at: datetime


class OrderCreate(CamelModel):
    customer_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    order_date: Optional[datetime] = Field(default=None, description="Defaults to now")
    items: Optional[List[str]] = None
    external_id: Optional[str] = Field(default=None, max_length=100)


class OrderRead(CamelModel):
    id: int
    external_id: Optional[str] = None
    customer_id: int
    amount: Decimal
    order_date: datetime
    items: Optional[List[str]] = None
    created_at: datetime


class CustomerDetail(CustomerRead):
    orders: List[OrderRead] = Field(default_factory=list)


class BulkCustomerCreate(CamelModel):
    customers: List[CustomerCreate] = Field(..., min_length=1, max_length=10000)


class BulkIngestResult(CamelModel):
    created: int
    skipped: int
    errors: List[str] = Field(default_factory=list)

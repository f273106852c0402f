"""
Pydantic schemas for bundle orders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class BundleOrderCreate(BaseModel):
    bundle_id: Optional[int] = None
    bundle_name: Optional[str] = None
    bundle_description: Optional[str] = None
    bundle_price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    savings: Optional[Decimal] = None
    quantity: Optional[int] = None
    total_price: Optional[Decimal] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class BundleOrderResponse(BaseModel):
    id: int
    order_reference: str
    bundle_id: int
    bundle_name: str
    bundle_description: Optional[str]
    bundle_price: Optional[Decimal]
    original_price: Optional[Decimal]
    savings: Decimal
    quantity: int
    total_price: Decimal
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    status: str
    has_payment_proof: bool
    payment_filename: Optional[str]
    payment_date: Optional[datetime]
    verified_at: Optional[datetime]
    verified_by: Optional[str]
    admin_notes: Optional[str]
    order_date: datetime

    model_config = {"from_attributes": True}


class BundlePaymentUploadResponse(BaseModel):
    message: str
    order_reference: str
    payment_proof: str
    status: str


class VerifyBundleRequest(BaseModel):
    action: str = Field(..., description="approve or reject")
    admin_notes: Optional[str] = Field(None, max_length=1000)

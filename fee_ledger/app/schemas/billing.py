"""
Billing Schemas for fee obligations, payments and invoices.

Amounts are integer minor units (e.g. cents).
"""

from pydantic import AliasChoices, BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from fee_ledger.app.models.billing_enums import FeeStatus, StatusSource, PaymentMethod, InvoiceStatus


class UserSummary(BaseModel):
    """Subject as shown on fees and invoices."""
    id: int
    username: str
    full_name: Optional[str]

    class Config:
        from_attributes = True


class CourseSummary(BaseModel):
    id: int
    title: str

    class Config:
        from_attributes = True


class FeeCreate(BaseModel):
    """Schema for creating a fee obligation."""
    user_id: int
    course_id: int
    amount: int = Field(..., gt=0, description="Amount owed in minor units")
    due_date: date
    description: Optional[str] = Field(None, max_length=2000)


class FeeUpdate(BaseModel):
    """Schema for editing a fee obligation."""
    amount: Optional[int] = Field(None, gt=0)
    due_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=2000)


class FeeStatusOverride(BaseModel):
    """Admin override of a fee's status. The reason is recorded."""
    status: FeeStatus
    reason: str = Field(..., min_length=1, max_length=500)


class FeeResponse(BaseModel):
    """Schema for displaying a fee obligation."""
    id: int
    user_id: int
    course_id: int
    amount: int
    due_date: date
    status: FeeStatus
    status_source: StatusSource
    override_reason: Optional[str]
    overridden_by_id: Optional[int]
    overridden_at: Optional[datetime]
    description: str
    created_by_id: int
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None
    course: Optional[CourseSummary] = None

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    """Schema for recording a payment."""
    fee_id: int
    amount: int = Field(..., gt=0, description="Amount paid in minor units")
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentUpdate(BaseModel):
    """Schema for correcting a payment."""
    amount: Optional[int] = Field(None, gt=0)
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentResponse(BaseModel):
    """Schema for displaying a payment."""
    id: int
    fee_id: int
    user_id: int
    amount: int
    payment_date: datetime
    payment_method: PaymentMethod
    transaction_id: Optional[str]
    notes: Optional[str]
    recorded_by_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentRecordedResponse(BaseModel):
    """A payment together with the fee status it produced."""
    payment: PaymentResponse
    fee_status: FeeStatus
    fee_status_source: StatusSource


class FeeStatusResponse(BaseModel):
    """Fee status after a ledger mutation that returns no payment."""
    fee_id: int
    fee_status: FeeStatus
    fee_status_source: StatusSource


class InvoiceGenerate(BaseModel):
    """Schema for generating an invoice."""
    fee_id: int
    notes: Optional[str] = Field(None, max_length=2000)


class InvoicePaymentLineResponse(BaseModel):
    """A payment as captured on an invoice."""
    position: int
    payment_id: int
    amount: int
    payment_date: datetime
    payment_method: PaymentMethod
    transaction_id: Optional[str]

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    """Schema for displaying an invoice snapshot."""
    id: int
    invoice_number: str
    user_id: int
    fee_id: int
    total_amount: int
    amount_paid: int
    balance: int
    issue_date: date
    due_date: date
    status: InvoiceStatus
    notes: Optional[str]
    created_by_id: int
    created_at: datetime
    user: Optional[UserSummary] = None
    payments: List[InvoicePaymentLineResponse] = Field(default_factory=list, validation_alias=AliasChoices("payment_lines", "payments"))

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    """One audit log entry for a fee."""
    id: int
    action: str
    actor_id: Optional[int]
    actor_username: Optional[str]
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True

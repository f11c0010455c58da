from pydantic import BaseModel, Field
from typing import Literal, Optional
from enum import Enum


class CycleStatus(str, Enum):
    DRAFT = "DRAFT"
    INVOICED = "INVOICED"
    PAID = "PAID"


# forward-only order
CYCLE_STATUS_ORDER = [CycleStatus.DRAFT, CycleStatus.INVOICED, CycleStatus.PAID]


class InvoiceStatus(str, Enum):
    ISSUED = "ISSUED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PayoutBatchStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TaxType(str, Enum):
    CGST_SGST = "cgst_sgst"
    IGST = "igst"


class BillingProfileUpdate(BaseModel):
    legal_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    gstin: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    invoice_prefix: Optional[str] = None
    invoice_padding: Optional[int] = Field(default=None, ge=1, le=12)
    series_format: Optional[str] = None
    default_sac_code: Optional[str] = None
    default_gst_rate: Optional[int] = Field(default=None, ge=0, le=100)


class CreateOrderPayload(BaseModel):
    merchant_id: str
    order_number: str
    gross_amount_paise: int = Field(..., ge=0)
    payment_method: Literal["COD", "RAZORPAY"]
    gateway_order_id: Optional[str] = None
    idempotency_key: str


class MerchantInvoiceSettingsUpdate(BaseModel):
    invoice_prefix: Optional[str] = Field(default=None, min_length=1, max_length=10)
    invoice_next_number: Optional[int] = Field(default=None, ge=1)
    invoice_padding: Optional[int] = Field(default=None, ge=3, le=8)
    invoice_series_format: Optional[str] = Field(default=None, max_length=64)


class BankAccountUpdate(BaseModel):
    account_holder_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=6, max_length=20, pattern=r"^\d+$")
    ifsc_code: str = Field(..., min_length=11, max_length=11)

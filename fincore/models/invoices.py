"""Invoice model (the subset the matching engine reads and transitions)."""
from enum import Enum
from typing import Optional

from pydantic import Field

from fincore.models.base import FCBaseModel


class InvoiceStatus(str, Enum):
    DRAFT = "draft"          # extraction incomplete
    PENDING = "pending"      # awaiting payment
    PAID = "paid"            # matched to a bank transaction
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Invoice(FCBaseModel):
    id: str = Field(..., min_length=1)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    total: float = 0.0
    currency: str = Field(default="EUR", min_length=1, max_length=10)
    vendor_id: Optional[str] = None
    invoice_number: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

"""InvoiceRecord data model representing one parsed invoice."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


REQUIRED_RECORD_FIELDS = ("record_id", "amount", "total_amount")


@dataclass(frozen=True)
class InvoiceLineItem:
    """A product row on an invoice.

    Attributes:
        line_item_id: Line item identifier (may be empty)
        description: Product/service description
        quantity: Quantity
        unit_price: Price per unit
        line_total: Declared total for the row
        tax_rate: Optional tax rate for the row (percent)
        tax_amount: Optional tax amount for the row
    """

    line_item_id: str = ""
    description: str = ""
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    line_total: Optional[float] = None
    tax_rate: Optional[float] = None
    tax_amount: Optional[float] = None


@dataclass(frozen=True)
class InvoiceRecord:
    """A parsed invoice record. Read-only from the engine's point of view.

    Attributes:
        record_id: Unique identifier for the record (REQUIRED)
        invoice_number: Invoice number as printed
        customer_name: Customer name
        amount: Base amount before tax and discount (REQUIRED)
        tax_rate: Tax rate as percentage, e.g. 25 for 25%
        tax_amount: Declared tax amount
        discount_amount: Declared discount amount
        discount_rate: Declared discount rate (percent), when the source has one
        subtotal: Declared subtotal of the line items, when the source has one
        total_amount: Declared grand total (REQUIRED)
        currency: Currency code
        line_items: Line items of the invoice
        metadata: Free-form metadata from the parser
    """

    record_id: Optional[str]
    amount: Optional[float]
    total_amount: Optional[float]
    invoice_number: str = ""
    customer_name: str = ""
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    discount_amount: float = 0.0
    discount_rate: Optional[float] = None
    subtotal: Optional[float] = None
    currency: str = "USD"
    line_items: List[InvoiceLineItem] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def missing_required_fields(self) -> List[str]:
        """Return names of required fields that are absent."""
        missing = []
        for name in REQUIRED_RECORD_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    @property
    def label(self) -> str:
        """Short human-readable label used in progress messages."""
        return self.invoice_number or str(self.record_id)

"""Schemas for raw record payloads handed over by the parsing layer.

Records may arrive as plain mappings (e.g. rows loaded from JSON). These
pydantic models validate and coerce them into InvoiceRecord instances.
Both snake_case and the camelCase keys used by the upload front end are
accepted. NaN and infinite amounts are rejected.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import RecordValidationError
from ..pipeline.financial_calculations import parse_currency_value
from .invoice_record import InvoiceLineItem, InvoiceRecord
from .record_error import ERROR_INVALID_DATA_TYPE, ERROR_MISSING_REQUIRED_FIELD


def _money(value: Any) -> Any:
    """Accept numbers and currency strings such as "$1,250.00"."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        parsed = parse_currency_value(value)
        if parsed is None:
            raise ValueError(f"not a monetary value: {value!r}")
        return parsed
    return value


class InvoiceLineItemPayload(BaseModel):
    """Line item as delivered by the parsing layer."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    line_item_id: str = Field("", validation_alias=AliasChoices("line_item_id", "id", "lineItemId"))
    description: str = ""
    quantity: Optional[float] = None
    unit_price: Optional[float] = Field(None, validation_alias=AliasChoices("unit_price", "unitPrice"))
    line_total: Optional[float] = Field(None, validation_alias=AliasChoices("line_total", "lineTotal"))
    tax_rate: Optional[float] = Field(None, validation_alias=AliasChoices("tax_rate", "taxRate"))
    tax_amount: Optional[float] = Field(None, validation_alias=AliasChoices("tax_amount", "taxAmount"))

    @field_validator("line_item_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("unit_price", "line_total", "tax_amount", mode="before")
    @classmethod
    def _parse_money(cls, value: Any) -> Any:
        return _money(value)

    def to_line_item(self) -> InvoiceLineItem:
        return InvoiceLineItem(
            line_item_id=self.line_item_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            line_total=self.line_total,
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
        )


class InvoiceRecordPayload(BaseModel):
    """Invoice record as delivered by the parsing layer."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    record_id: Optional[str] = Field(None, validation_alias=AliasChoices("record_id", "id", "recordId"))
    invoice_number: str = Field("", validation_alias=AliasChoices("invoice_number", "invoiceNumber"))
    customer_name: str = Field("", validation_alias=AliasChoices("customer_name", "customerName"))
    amount: Optional[float] = None
    tax_rate: Optional[float] = Field(None, validation_alias=AliasChoices("tax_rate", "taxRate"))
    tax_amount: Optional[float] = Field(None, validation_alias=AliasChoices("tax_amount", "taxAmount"))
    discount_amount: Optional[float] = Field(
        None, validation_alias=AliasChoices("discount_amount", "discountAmount")
    )
    discount_rate: Optional[float] = Field(
        None, validation_alias=AliasChoices("discount_rate", "discountRate")
    )
    subtotal: Optional[float] = None
    total_amount: Optional[float] = Field(None, validation_alias=AliasChoices("total_amount", "totalAmount"))
    currency: str = "USD"
    line_items: List[InvoiceLineItemPayload] = Field(
        default_factory=list, validation_alias=AliasChoices("line_items", "lineItems")
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("record_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("amount", "tax_amount", "discount_amount", "subtotal", "total_amount", mode="before")
    @classmethod
    def _parse_money(cls, value: Any) -> Any:
        return _money(value)

    @field_validator("invoice_number", "customer_name", "currency", mode="before")
    @classmethod
    def _blank_strings(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_record(self) -> InvoiceRecord:
        return InvoiceRecord(
            record_id=self.record_id,
            amount=self.amount,
            total_amount=self.total_amount,
            invoice_number=self.invoice_number,
            customer_name=self.customer_name,
            tax_rate=self.tax_rate or 0.0,
            tax_amount=self.tax_amount or 0.0,
            discount_amount=self.discount_amount or 0.0,
            discount_rate=self.discount_rate,
            subtotal=self.subtotal,
            currency=self.currency or "USD",
            line_items=[item.to_line_item() for item in self.line_items],
            metadata=dict(self.metadata),
        )


def record_id_of(raw: Any) -> Optional[str]:
    """Record id of a raw record (mapping or InvoiceRecord), None if absent."""
    if isinstance(raw, Mapping):
        for key in ("record_id", "id", "recordId"):
            if raw.get(key) is not None:
                return str(raw[key])
    return getattr(raw, "record_id", None)


def coerce_record(raw: Union[InvoiceRecord, Mapping[str, Any]]) -> InvoiceRecord:
    """Turn a raw record into a validated InvoiceRecord.

    Args:
        raw: InvoiceRecord instance or a mapping with record fields

    Returns:
        InvoiceRecord with all required fields present

    Raises:
        RecordValidationError: If the record is not a mapping/InvoiceRecord,
            has badly typed fields, or lacks a required field
    """
    if isinstance(raw, InvoiceRecord):
        record = raw
    elif isinstance(raw, Mapping):
        try:
            record = InvoiceRecordPayload.model_validate(dict(raw)).to_record()
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise RecordValidationError(
                f"Invalid record data: {problems}",
                record_id=record_id_of(raw),
                error_type=ERROR_INVALID_DATA_TYPE,
            ) from e
    else:
        raise RecordValidationError(
            f"Record must be an InvoiceRecord or a mapping, got {type(raw).__name__}",
            record_id=record_id_of(raw),
            error_type=ERROR_INVALID_DATA_TYPE,
        )

    missing = record.missing_required_fields()
    if missing:
        raise RecordValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            record_id=record.record_id,
            error_type=ERROR_MISSING_REQUIRED_FIELD,
        )
    return record

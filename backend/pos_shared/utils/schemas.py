"""
Shared Pydantic schemas used across the application.

Output schemas read straight from ORM rows (from_attributes) and double as
the entity payload of real-time events.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pos_shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

OrderTypeLiteral = Literal["dine_in", "takeaway", "delivery"]
ManualDiscountType = Literal["flat", "percentage"]
PaymentModeLiteral = Literal["cash", "card", "upi", "wallet", "other"]
ManualTableStatus = Literal["available", "reserved", "blocked", "cleaning"]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    def to_event(self) -> dict[str, Any]:
        """JSON-safe dict for event payloads."""
        return self.model_dump(mode="json")


# =============================================================================
# Table / Session Schemas
# =============================================================================


class StartSessionRequest(BaseModel):
    guest_count: int = Field(default=1, ge=1, le=Limits.MAX_GUEST_COUNT)
    guest_name: str | None = Field(default=None, max_length=100)
    guest_phone: str | None = Field(default=None, max_length=30)


class MergeTablesRequest(BaseModel):
    table_ids: list[int] = Field(min_length=1)


class UnmergeTablesRequest(BaseModel):
    """Omit merged_table_ids to undo every open merge."""

    merged_table_ids: list[int] | None = None


class TableStatusRequest(BaseModel):
    status: ManualTableStatus


class TableOutput(OrmModel):
    id: int
    outlet_id: int
    floor_id: int
    section_id: int | None = None
    table_number: str
    capacity: int
    is_mergeable: bool
    is_splittable: bool
    status: str


class SessionOutput(OrmModel):
    id: int
    table_id: int
    guest_count: int
    guest_name: str | None = None
    guest_phone: str | None = None
    started_by: int
    started_by_role: str
    lock_acquired_at: datetime
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    ended_by: int | None = None
    order_id: int | None = None


class TableMergeOutput(OrmModel):
    id: int
    primary_table_id: int
    merged_table_id: int
    table_session_id: int | None = None
    added_capacity: int
    merged_by: int
    merged_at: datetime
    unmerged_at: datetime | None = None
    unmerged_by: int | None = None


class TableDetailOutput(BaseModel):
    table: TableOutput
    session: SessionOutput | None = None
    merges: list[TableMergeOutput] = []


class TableHistoryOutput(OrmModel):
    id: int
    table_id: int
    event_type: str
    from_status: str | None = None
    to_status: str
    event_data: dict[str, Any] = {}
    created_by: int
    created_at: datetime


# =============================================================================
# Order Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    item_id: int = Field(gt=0)
    variant_id: int | None = None
    quantity: int = Field(ge=1, le=Limits.MAX_ITEM_QUANTITY)
    notes: str | None = Field(default=None, max_length=500)


class CreateOrderRequest(BaseModel):
    order_type: OrderTypeLiteral = "dine_in"
    table_id: int | None = None
    customer_name: str | None = Field(default=None, max_length=100)
    customer_phone: str | None = Field(default=None, max_length=30)
    is_interstate: bool = False
    guest_count: int = Field(default=1, ge=1, le=Limits.MAX_GUEST_COUNT)
    guest_name: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=500)
    items: list[OrderItemInput] = []


class AddItemsRequest(BaseModel):
    items: list[OrderItemInput] = Field(min_length=1)


class CancelItemRequest(BaseModel):
    """Omit quantity to cancel the whole line."""

    reason: str = Field(min_length=1, max_length=500)
    quantity: int | None = Field(default=None, ge=1)


class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class UpdateItemQuantityRequest(BaseModel):
    quantity: int = Field(ge=1, le=Limits.MAX_ITEM_QUANTITY)


class TransferTableRequest(BaseModel):
    to_table_id: int = Field(gt=0)


class OrderTransferOutput(OrmModel):
    id: int
    order_id: int
    table_session_id: int | None = None
    from_table_id: int
    to_table_id: int
    transferred_by: int
    transferred_at: datetime


class OrderItemOutput(OrmModel):
    id: int
    order_id: int
    item_id: int
    variant_id: int | None = None
    item_name: str
    station: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    tax_group_code: str | None = None
    status: str
    kot_id: int | None = None
    cancelled_quantity: int = 0
    cancel_reason: str | None = None


class KotOutput(OrmModel):
    id: int
    order_id: int
    outlet_id: int
    kot_number: str | None = None
    station: str
    status: str
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    ready_at: datetime | None = None
    served_at: datetime | None = None
    items: list[OrderItemOutput] = []


class DiscountOutput(OrmModel):
    id: int
    order_id: int
    discount_type: str
    value: int
    code_type: str | None = None
    discount_code: str | None = None
    min_order_cents: int
    max_discount_cents: int | None = None
    discount_cents: int
    applied_on: str
    is_superseded: bool
    is_billed: bool


class OrderOutput(OrmModel):
    id: int
    outlet_id: int
    order_number: str | None = None
    table_id: int | None = None
    table_session_id: int | None = None
    floor_id: int | None = None
    order_type: str
    status: str
    created_by: int
    customer_name: str | None = None
    is_interstate: bool
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    service_charge_cents: int
    round_off_cents: int
    total_cents: int
    cancel_reason: str | None = None
    items: list[OrderItemOutput] = []


# =============================================================================
# Discount Schemas
# =============================================================================


class ManualDiscountRequest(BaseModel):
    """value is cents for flat discounts and basis points for percentages."""

    discount_type: ManualDiscountType
    value: int = Field(ge=0)
    reason: str | None = Field(default=None, max_length=200)


class DiscountCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)


# =============================================================================
# Billing Schemas
# =============================================================================


class GenerateBillRequest(BaseModel):
    apply_service_charge: bool = True
    customer_name: str | None = Field(default=None, max_length=100)
    customer_gstin: str | None = Field(default=None, max_length=20)


class UpdateChargesRequest(BaseModel):
    remove_service_charge: bool = False
    remove_gst: bool = False
    customer_gstin: str | None = Field(default=None, max_length=20)


class PaymentPart(BaseModel):
    mode: PaymentModeLiteral
    amount_cents: int = Field(gt=0)
    tip_cents: int = Field(default=0, ge=0)
    reference: str | None = Field(default=None, max_length=100)


class PaymentRequest(PaymentPart):
    invoice_id: int
    order_id: int | None = None


class SplitPaymentRequest(BaseModel):
    invoice_id: int
    order_id: int | None = None
    payments: list[PaymentPart] = Field(min_length=1)


class CancelInvoiceRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class InvoiceTaxOutput(OrmModel):
    code: str
    name: str
    rate_bps: int
    taxable_cents: int
    amount_cents: int


class InvoiceItemOutput(OrmModel):
    order_item_id: int
    item_name: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    discount_share_cents: int
    tax_cents: int


class PaymentOutput(OrmModel):
    id: int
    invoice_id: int
    order_id: int
    mode: str
    amount_cents: int
    tip_cents: int
    status: str
    reference: str | None = None
    received_by: int
    created_at: datetime | None = None


class InvoiceOutput(OrmModel):
    id: int
    outlet_id: int
    order_id: int
    invoice_number: str | None = None
    subtotal_cents: int
    discount_cents: int
    taxable_cents: int
    total_tax_cents: int
    service_charge_cents: int
    round_off_cents: int
    grand_total_cents: int
    apply_service_charge: bool
    service_charge_removed: bool
    gst_removed: bool
    is_interstate: bool
    customer_name: str | None = None
    customer_gstin: str | None = None
    is_cancelled: bool
    cancel_reason: str | None = None
    payment_status: str
    paid_cents: int
    balance_cents: int
    taxes: list[InvoiceTaxOutput] = []
    items: list[InvoiceItemOutput] = []
    payments: list[PaymentOutput] = []

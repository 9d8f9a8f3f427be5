"""Pydantic request bodies for the staff and public JSON endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from fulfillment_portal.models import DocumentType, OrganizationKind, ReceiptLineStatus, UnitMode


# Catalog
class ProductRequest(BaseModel):
    name: str
    category: str = ''
    unit_type: UnitMode = UnitMode.KG
    box_weight: Decimal | None = Field(default=None, ge=0)
    cost_price: Decimal = Field(default=Decimal('0'), ge=0)
    wholesale_price: Decimal = Field(default=Decimal('0'), ge=0)
    retail_price: Decimal = Field(default=Decimal('0'), ge=0)
    active: bool = True


class OrganizationRequest(BaseModel):
    name: str
    kind: OrganizationKind
    biz_reg_no: str | None = None
    phone: str | None = None


class VehicleTypeRequest(BaseModel):
    name: str
    capacity_kg: Decimal = Field(ge=0)


# Price lists
class PriceListItemRequest(BaseModel):
    product_id: int
    supply_price: Decimal | None = Field(default=None, ge=0)


class PriceListRequest(BaseModel):
    title: str
    items: list[PriceListItemRequest] = Field(min_length=1)
    valid_until: datetime | None = None
    admin_comment: str | None = None


class DuplicatePriceListRequest(BaseModel):
    title: str | None = None


class SupplyPriceRequest(BaseModel):
    supply_price: Decimal = Field(ge=0)


class ShareLinkRequest(BaseModel):
    recipient: str = ''


class ShareRequest(BaseModel):
    recipient_name: str | None = None


# Order sheets
class OrderLineRequest(BaseModel):
    product_id: int
    qty: Decimal = Decimal('0')
    unit: UnitMode | None = None


class CreateOrderSheetRequest(BaseModel):
    customer_org_id: int | None = None
    customer_name: str | None = None
    lines: list[OrderLineRequest] = Field(min_length=1)
    ship_to: str = ''
    ship_date: date | None = None
    cut_off_at: datetime | None = None
    admin_comment: str | None = None


class UpdateLineRequest(BaseModel):
    qty: Decimal
    unit: UnitMode | None = None


class ReplaceItemsRequest(BaseModel):
    lines: list[OrderLineRequest]
    ship_to: str | None = None
    customer_comment: str | None = None


# Purchase orders and allocation
class PurchaseLineRequest(BaseModel):
    product_id: int
    qty_kg: Decimal = Field(default=Decimal('0'), ge=0)
    unit_price: Decimal | None = Field(default=None, ge=0)


class CreatePurchaseOrderRequest(BaseModel):
    supplier_org_id: int
    sales_order_id: int | None = None
    lines: list[PurchaseLineRequest] = Field(default_factory=list)
    expected_arrival_date: date | None = None
    memo: str | None = None


class AllocateRequest(BaseModel):
    sales_order_item_id: int
    supplier_org_id: int
    qty_kg: Decimal = Field(ge=0)


class CopyFromPastRequest(BaseModel):
    source_type: DocumentType
    source_id: int


class SupplierSubmitRequest(BaseModel):
    expected_arrival_date: date | None = None
    supplier_note: str | None = None
    item_quantities: dict[int, Decimal] = Field(default_factory=dict)


# Shipments and gates
class CreateShipmentRequest(BaseModel):
    sales_order_id: int


class RequestDispatchRequest(BaseModel):
    carrier_org_id: int


class DispatchDetailsRequest(BaseModel):
    driver_name: str
    driver_phone: str
    vehicle_number: str
    vehicle_type_id: int
    eta_at: datetime | None = None


class StaffDispatchRequest(DispatchDetailsRequest):
    carrier_org_id: int


class ModifyShipmentRequest(BaseModel):
    driver_name: str | None = None
    driver_phone: str | None = None
    vehicle_number: str | None = None
    vehicle_type_id: int | None = None
    eta_at: datetime | None = None


class ReceiptDocumentsRequest(BaseModel):
    statement_checked: bool
    inspection_report_checked: bool


class ReceiptVehicleRequest(BaseModel):
    vehicle_number: str
    driver_name: str | None = None


class ReceiptLineRequest(BaseModel):
    actual_kg: Decimal = Field(ge=0)
    box_count: int = Field(ge=0)
    status: ReceiptLineStatus
    note: str = ''


class OutboundDocumentsRequest(BaseModel):
    documents_matched: bool


class OutboundChecklistRequest(BaseModel):
    checklist: dict[str, bool]


class SignatureRequest(BaseModel):
    signature_ref: str
    signed_by: str | None = None

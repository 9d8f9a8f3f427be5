from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer, 'sqlite')


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    OPS = 'OPS'
    WAREHOUSE = 'WAREHOUSE'
    ACCOUNTING = 'ACCOUNTING'


class OrganizationKind(str, Enum):
    CUSTOMER = 'CUSTOMER'
    SUPPLIER = 'SUPPLIER'
    CARRIER = 'CARRIER'


class UnitMode(str, Enum):
    KG = 'kg'
    BOX = 'box'


class DocumentType(str, Enum):
    PRICE_LIST = 'PRICE_LIST'
    ORDER_SHEET = 'ORDER_SHEET'
    SALES_ORDER = 'SALES_ORDER'
    PURCHASE_ORDER = 'PURCHASE_ORDER'
    SHIPMENT = 'SHIPMENT'
    RECEIPT_GATE = 'RECEIPT_GATE'
    OUTBOUND_GATE = 'OUTBOUND_GATE'


class Capability(str, Enum):
    VIEW_PRICE_LIST = 'view-pricelist'
    EDIT_ORDER_SHEET = 'edit-ordersheet'
    SUBMIT_PURCHASE_ORDER = 'submit-purchaseorder'
    SUBMIT_DISPATCH = 'submit-dispatch'


class OrderSheetStatus(str, Enum):
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    CONFIRMED = 'CONFIRMED'


class SalesOrderStatus(str, Enum):
    CONFIRMED = 'CONFIRMED'


class PurchaseOrderStatus(str, Enum):
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    RECEIVED = 'RECEIVED'


class ShipmentStatus(str, Enum):
    PREPARING = 'PREPARING'
    IN_TRANSIT = 'IN_TRANSIT'
    DELIVERED = 'DELIVERED'


class ReceiptGateStep(str, Enum):
    DOCS = 'DOCS'
    VEHICLE = 'VEHICLE'
    INSPECT = 'INSPECT'
    DONE = 'DONE'


class OutboundGateStep(str, Enum):
    DOCS = 'DOCS'
    CHECKLIST = 'CHECKLIST'
    SIGNATURE = 'SIGNATURE'
    DONE = 'DONE'


class ReceiptLineStatus(str, Enum):
    PENDING = 'PENDING'
    CHECKED = 'CHECKED'
    ISSUE = 'ISSUE'


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime)


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class DocumentHistory(Base):
    __tablename__ = 'document_history'
    __table_args__ = (
        Index('document_history_document_idx', 'document_type', 'document_id'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    document_type: Mapped[DocumentType] = mapped_column(SQLEnum(DocumentType, name='document_type'), nullable=False)
    document_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(Text, nullable=False)
    from_status: Mapped[str | None] = mapped_column(Text)
    to_status: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class AccessToken(Base):
    __tablename__ = 'access_tokens'
    __table_args__ = (
        Index('access_tokens_document_idx', 'document_type', 'document_id'),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    document_type: Mapped[DocumentType] = mapped_column(SQLEnum(DocumentType, name='document_type'), nullable=False)
    document_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    capability: Mapped[Capability] = mapped_column(SQLEnum(Capability, name='token_capability'), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class Organization(Base):
    __tablename__ = 'organizations'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[OrganizationKind] = mapped_column(SQLEnum(OrganizationKind, name='organization_kind'), nullable=False)
    biz_reg_no: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    unit_type: Mapped[UnitMode] = mapped_column(
        SQLEnum(UnitMode, name='unit_mode'), nullable=False, default=UnitMode.KG, server_default='KG'
    )
    box_weight: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))
    cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    wholesale_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    retail_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class VehicleType(Base):
    __tablename__ = 'vehicle_types'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    capacity_kg: Mapped[Decimal] = mapped_column(Numeric(10, 1), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')


class PriceList(Base):
    __tablename__ = 'price_lists'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime)
    share_token_id: Mapped[str | None] = mapped_column(String(128))
    reach_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    admin_comment: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class PriceListItem(Base):
    __tablename__ = 'price_list_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    price_list_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('price_lists.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    wholesale_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    supply_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    unit: Mapped[UnitMode] = mapped_column(SQLEnum(UnitMode, name='unit_mode'), nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    box_weight: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))


class OrderSheet(Base):
    __tablename__ = 'order_sheets'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    customer_org_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('organizations.id'))
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_guest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    status: Mapped[OrderSheetStatus] = mapped_column(
        SQLEnum(OrderSheetStatus, name='order_sheet_status'),
        nullable=False,
        default=OrderSheetStatus.DRAFT,
        server_default='DRAFT',
    )
    cut_off_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ship_date: Mapped[date | None] = mapped_column(Date)
    ship_to: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    invite_token_id: Mapped[str | None] = mapped_column(String(128))
    source_price_list_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('price_lists.id', ondelete='SET NULL'))
    reach_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    total_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal('0'))
    admin_comment: Mapped[str | None] = mapped_column(Text)
    customer_comment: Mapped[str | None] = mapped_column(Text)
    last_submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class OrderSheetItem(Base):
    __tablename__ = 'order_sheet_items'
    __table_args__ = (
        UniqueConstraint('order_sheet_id', 'product_id', name='order_sheet_items_sheet_product_uniq'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_sheet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('order_sheets.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    unit: Mapped[UnitMode] = mapped_column(SQLEnum(UnitMode, name='unit_mode'), nullable=False)
    box_weight: Mapped[Decimal | None] = mapped_column(Numeric(10, 3))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    qty_requested: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    estimated_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal('0'))


class SalesOrder(Base):
    __tablename__ = 'sales_orders'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    source_order_sheet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('order_sheets.id'), nullable=False, unique=True)
    customer_org_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('organizations.id'))
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[SalesOrderStatus] = mapped_column(
        SQLEnum(SalesOrderStatus, name='sales_order_status'),
        nullable=False,
        default=SalesOrderStatus.CONFIRMED,
        server_default='CONFIRMED',
    )
    totals_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    totals_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    confirmed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class SalesOrderItem(Base):
    __tablename__ = 'sales_order_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    sales_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('sales_orders.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    qty_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    source_sales_order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('sales_orders.id'))
    supplier_org_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('organizations.id'), nullable=False, index=True)
    supplier_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SQLEnum(PurchaseOrderStatus, name='purchase_order_status'),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
        server_default='DRAFT',
    )
    invite_token_id: Mapped[str | None] = mapped_column(String(128))
    totals_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    totals_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal('0'))
    expected_arrival_date: Mapped[date | None] = mapped_column(Date)
    memo: Mapped[str | None] = mapped_column(Text)
    supplier_note: Mapped[str | None] = mapped_column(Text)
    supplier_submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    received_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class PurchaseOrderItem(Base):
    __tablename__ = 'purchase_order_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sales_order_item_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('sales_order_items.id'))
    product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    qty_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal('0'))


class SalesOrderAllocation(Base):
    __tablename__ = 'sales_order_allocations'

    sales_order_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('sales_order_items.id', ondelete='CASCADE'), primary_key=True
    )
    supplier_org_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('organizations.id'), primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False
    )
    qty_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class Shipment(Base):
    __tablename__ = 'shipments'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    source_sales_order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('sales_orders.id'), nullable=False, unique=True
    )
    status: Mapped[ShipmentStatus] = mapped_column(
        SQLEnum(ShipmentStatus, name='shipment_status'),
        nullable=False,
        default=ShipmentStatus.PREPARING,
        server_default='PREPARING',
    )
    carrier_org_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('organizations.id'))
    company: Mapped[str | None] = mapped_column(Text)
    vehicle_type_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('vehicle_types.id'))
    vehicle_number: Mapped[str | None] = mapped_column(Text)
    driver_name: Mapped[str | None] = mapped_column(Text)
    driver_phone: Mapped[str | None] = mapped_column(Text)
    eta_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    dispatcher_token: Mapped[str | None] = mapped_column(String(128))
    is_modified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    modified_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    total_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'))
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class CarrierDriverProfile(Base):
    __tablename__ = 'carrier_driver_profiles'

    carrier_org_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('organizations.id', ondelete='CASCADE'), primary_key=True
    )
    driver_name: Mapped[str] = mapped_column(Text, nullable=False)
    driver_phone: Mapped[str] = mapped_column(Text, nullable=False)
    vehicle_number: Mapped[str] = mapped_column(Text, nullable=False)
    vehicle_type_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('vehicle_types.id'))
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class ReceiptGate(Base):
    __tablename__ = 'receipt_gates'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    status: Mapped[ReceiptGateStep] = mapped_column(
        SQLEnum(ReceiptGateStep, name='receipt_gate_step'),
        nullable=False,
        default=ReceiptGateStep.DOCS,
        server_default='DOCS',
    )
    statement_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    inspection_report_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    vehicle_number: Mapped[str | None] = mapped_column(Text)
    driver_name: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class ReceiptGateLine(Base):
    __tablename__ = 'receipt_gate_lines'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    gate_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('receipt_gates.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_order_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('purchase_order_items.id', ondelete='CASCADE'), nullable=False
    )
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    expected_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    actual_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    box_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    status: Mapped[ReceiptLineStatus] = mapped_column(
        SQLEnum(ReceiptLineStatus, name='receipt_line_status'),
        nullable=False,
        default=ReceiptLineStatus.PENDING,
        server_default='PENDING',
    )
    note: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')


class OutboundGate(Base):
    __tablename__ = 'outbound_gates'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    shipment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    status: Mapped[OutboundGateStep] = mapped_column(
        SQLEnum(OutboundGateStep, name='outbound_gate_step'),
        nullable=False,
        default=OutboundGateStep.DOCS,
        server_default='DOCS',
    )
    documents_matched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    checklist: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    signature_ref: Mapped[str | None] = mapped_column(Text)
    signed_by: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.config import settings
from fulfillment_portal.models import (
    Capability,
    DocumentType,
    OrderSheet,
    OrderSheetItem,
    OrderSheetStatus,
    OrganizationKind,
    SalesOrder,
    SalesOrderItem,
    SalesOrderStatus,
    UnitMode,
)
from fulfillment_portal.services.catalog_service import get_organization, products_by_id
from fulfillment_portal.services.errors import DocumentNotFound, PreconditionNotMet, WorkflowWarning
from fulfillment_portal.services.lifecycle_service import Event, get_document, record_event, transition
from fulfillment_portal.services.notification_service import LinkNotification, send_link_stub
from fulfillment_portal.services.price_list_service import record_view
from fulfillment_portal.services.token_service import issue_token, resolve_token
from fulfillment_portal.services.unit_conversion_service import parse_unit_mode, resolve_line, sum_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLineInput:
    product_id: int
    qty: Decimal | int | str = 0
    unit: UnitMode | str | None = None


@dataclass(frozen=True)
class LineUpdateResult:
    order_sheet: OrderSheet
    warnings: list[WorkflowWarning]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_items(db: Session, *, order_sheet_id: int) -> list[OrderSheetItem]:
    return db.execute(
        select(OrderSheetItem)
        .where(OrderSheetItem.order_sheet_id == order_sheet_id)
        .order_by(OrderSheetItem.position.asc(), OrderSheetItem.id.asc())
    ).scalars().all()


def list_order_sheets(db: Session, *, status: OrderSheetStatus | None = None) -> list[dict]:
    query = select(OrderSheet).order_by(OrderSheet.created_at.desc(), OrderSheet.id.desc())
    if status is not None:
        query = query.where(OrderSheet.status == status)
    now = _now()
    return [
        {
            'id': sheet.id,
            'customer_name': sheet.customer_name,
            'is_guest': sheet.is_guest,
            'status': sheet.status.value,
            'cut_off_at': sheet.cut_off_at,
            'is_past_cutoff': now > sheet.cut_off_at,
            'total_kg': sheet.total_kg,
            'total_amount': sheet.total_amount,
            'source_price_list_id': sheet.source_price_list_id,
        }
        for sheet in db.execute(query).scalars().all()
    ]


def _apply_line(item: OrderSheetItem, *, qty, unit) -> WorkflowWarning | None:
    resolved = resolve_line(qty, unit if unit is not None else item.unit, item.box_weight, item.unit_price)
    item.qty_requested = resolved.qty
    item.unit = resolved.unit_mode
    item.estimated_kg = resolved.estimated_kg
    item.amount = resolved.amount
    if resolved.warning is not None:
        return WorkflowWarning(
            code=resolved.warning.code,
            message=f'{item.product_name}: {resolved.warning.message}',
            context={**resolved.warning.context, 'product_id': item.product_id},
        )
    return None


def recompute_totals(db: Session, sheet: OrderSheet) -> OrderSheet:
    db.flush()
    totals = sum_lines(list_items(db, order_sheet_id=sheet.id))
    sheet.total_kg = totals.total_kg
    sheet.total_amount = totals.total_amount
    sheet.updated_at = _now()
    return sheet


def create_order_sheet(
    db: Session,
    *,
    actor: str,
    lines: list[OrderLineInput],
    customer_org_id: int | None = None,
    customer_name: str | None = None,
    ship_to: str = '',
    ship_date: date | None = None,
    cut_off_at: datetime | None = None,
    admin_comment: str | None = None,
) -> LineUpdateResult:
    """Staff-created sheet priced from the catalog's wholesale prices."""
    name = (customer_name or '').strip()
    if customer_org_id is not None:
        customer = get_organization(db, customer_org_id, kind=OrganizationKind.CUSTOMER)
        name = name or customer.name
    if not name:
        raise ValueError('Customer name is required')
    if not lines:
        raise ValueError('Add at least one product to the order sheet')

    products = products_by_id(db, [line.product_id for line in lines])
    missing = sorted({line.product_id for line in lines} - set(products))
    if missing:
        raise DocumentNotFound(f'Products not found: {", ".join(str(pid) for pid in missing)}')

    now = _now()
    sheet = OrderSheet(
        customer_org_id=customer_org_id,
        customer_name=name,
        is_guest=False,
        status=OrderSheetStatus.DRAFT,
        cut_off_at=cut_off_at or now + timedelta(hours=settings.order_sheet_cutoff_hours),
        ship_date=ship_date,
        ship_to=(ship_to or '').strip(),
        reach_count=0,
        admin_comment=(admin_comment or '').strip() or None,
        created_at=now,
        updated_at=now,
    )
    db.add(sheet)
    db.flush()

    warnings: list[WorkflowWarning] = []
    seen: set[int] = set()
    for position, line in enumerate(lines):
        if line.product_id in seen:
            raise ValueError(f'Product {line.product_id} is listed twice')
        seen.add(line.product_id)
        product = products[line.product_id]
        item = OrderSheetItem(
            order_sheet_id=sheet.id,
            position=position,
            product_id=product.id,
            product_name=product.name,
            category=product.category,
            unit=product.unit_type,
            box_weight=product.box_weight,
            unit_price=product.wholesale_price,
        )
        warning = _apply_line(item, qty=line.qty, unit=line.unit)
        if warning is not None:
            warnings.append(warning)
        db.add(item)

    recompute_totals(db, sheet)
    record_event(db, sheet, event='CREATED', actor=actor, metadata={'lines': len(lines)})
    db.flush()
    return LineUpdateResult(order_sheet=sheet, warnings=warnings)


def _lock_editable(db: Session, order_sheet_id: int, *, guest: bool) -> OrderSheet:
    sheet = get_document(db, OrderSheet, order_sheet_id, for_update=True)
    if sheet.status == OrderSheetStatus.CONFIRMED:
        raise PreconditionNotMet('Order sheet is already confirmed')
    if guest:
        if sheet.status != OrderSheetStatus.SENT:
            raise PreconditionNotMet('Order sheet is not open for customer edits')
        if _now() > sheet.cut_off_at:
            raise PreconditionNotMet('The order cut-off time has passed')
    return sheet


def _find_item(db: Session, *, order_sheet_id: int, product_id: int) -> OrderSheetItem:
    item = db.execute(
        select(OrderSheetItem).where(
            OrderSheetItem.order_sheet_id == order_sheet_id,
            OrderSheetItem.product_id == product_id,
        )
    ).scalar_one_or_none()
    if item is None:
        raise DocumentNotFound('Product is not on this order sheet')
    return item


def update_line(
    db: Session,
    *,
    order_sheet_id: int,
    product_id: int,
    qty,
    unit_mode: UnitMode | str | None = None,
    actor: str,
    guest: bool = False,
) -> LineUpdateResult:
    sheet = _lock_editable(db, order_sheet_id, guest=guest)
    item = _find_item(db, order_sheet_id=sheet.id, product_id=product_id)
    warning = _apply_line(item, qty=qty, unit=parse_unit_mode(unit_mode) if unit_mode else None)
    recompute_totals(db, sheet)
    if guest:
        sheet.last_submitted_at = _now()
    db.flush()
    logger.info('order sheet #%s line %s set to %s %s by %s', sheet.id, product_id, item.qty_requested, item.unit.value, actor)
    return LineUpdateResult(order_sheet=sheet, warnings=[warning] if warning else [])


def replace_items(
    db: Session,
    *,
    order_sheet_id: int,
    lines: list[OrderLineInput],
    actor: str,
    guest: bool = False,
    ship_to: str | None = None,
    customer_comment: str | None = None,
) -> LineUpdateResult:
    """Replace every line quantity in one write; the last writer wins for the whole item set.

    Lines absent from ``lines`` are reset to zero. Guests can only fill products already on the
    sheet.
    """
    sheet = _lock_editable(db, order_sheet_id, guest=guest)
    by_product = {item.product_id: item for item in list_items(db, order_sheet_id=sheet.id)}
    unknown = sorted({line.product_id for line in lines} - set(by_product))
    if unknown:
        raise DocumentNotFound(f'Products not on this order sheet: {", ".join(str(pid) for pid in unknown)}')

    requested = {line.product_id: line for line in lines}
    warnings: list[WorkflowWarning] = []
    for product_id, item in by_product.items():
        line = requested.get(product_id)
        warning = _apply_line(
            item,
            qty=line.qty if line else 0,
            unit=parse_unit_mode(line.unit) if line and line.unit else None,
        )
        if warning is not None and line is not None:
            warnings.append(warning)

    if ship_to is not None:
        sheet.ship_to = ship_to.strip()
    if customer_comment is not None:
        sheet.customer_comment = customer_comment.strip() or None
    recompute_totals(db, sheet)
    if guest:
        sheet.last_submitted_at = _now()
    record_event(db, sheet, event='ITEMS_REPLACED', actor=actor, metadata={'lines': len(lines)})
    db.flush()
    return LineUpdateResult(order_sheet=sheet, warnings=warnings)


def send_order_sheet(db: Session, *, order_sheet_id: int, actor: str) -> LinkNotification:
    sheet = get_document(db, OrderSheet, order_sheet_id)
    transition(db, sheet, event=Event.SEND, actor=actor)
    token = issue_token(
        db,
        document_type=DocumentType.ORDER_SHEET,
        document_id=sheet.id,
        capability=Capability.EDIT_ORDER_SHEET,
    )
    sheet.invite_token_id = token.id
    return send_link_stub(
        db,
        actor=actor,
        document_type=DocumentType.ORDER_SHEET,
        document_id=sheet.id,
        capability=Capability.EDIT_ORDER_SHEET,
        token=token.id,
        recipient=sheet.customer_name,
        title=f'Order #{sheet.id}',
    )


def confirm_order_sheet(db: Session, *, order_sheet_id: int, actor: str) -> SalesOrder:
    sheet = get_document(db, OrderSheet, order_sheet_id)

    def precondition(locked: OrderSheet) -> None:
        if _now() > locked.cut_off_at:
            raise PreconditionNotMet('The order cut-off time has passed')
        if not any(item.qty_requested > 0 for item in list_items(db, order_sheet_id=locked.id)):
            raise PreconditionNotMet('At least one item needs a requested quantity above zero')

    transition(db, sheet, event=Event.CONFIRM, actor=actor, precondition=precondition)
    recompute_totals(db, sheet)

    now = _now()
    ordered = [item for item in list_items(db, order_sheet_id=sheet.id) if item.qty_requested > 0]
    sales_order = SalesOrder(
        source_order_sheet_id=sheet.id,
        customer_org_id=sheet.customer_org_id,
        customer_name=sheet.customer_name,
        status=SalesOrderStatus.CONFIRMED,
        totals_kg=sheet.total_kg,
        totals_amount=sheet.total_amount,
        confirmed_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(sales_order)
    db.flush()
    db.add_all(
        [
            SalesOrderItem(
                sales_order_id=sales_order.id,
                position=position,
                product_id=item.product_id,
                product_name=item.product_name,
                qty_kg=item.estimated_kg,
                unit_price=item.unit_price,
                amount=item.amount,
            )
            for position, item in enumerate(ordered)
        ]
    )
    record_event(db, sales_order, event='CREATED', actor=actor, metadata={'order_sheet_id': sheet.id})
    db.flush()
    logger.info('order sheet #%s confirmed into sales order #%s', sheet.id, sales_order.id)
    return sales_order


def order_sheet_detail(db: Session, sheet: OrderSheet) -> dict:
    return {
        'id': sheet.id,
        'customer_name': sheet.customer_name,
        'is_guest': sheet.is_guest,
        'status': sheet.status.value,
        'cut_off_at': sheet.cut_off_at,
        'is_past_cutoff': _now() > sheet.cut_off_at,
        'ship_date': sheet.ship_date,
        'ship_to': sheet.ship_to,
        'source_price_list_id': sheet.source_price_list_id,
        'reach_count': sheet.reach_count,
        'total_kg': sheet.total_kg,
        'total_amount': sheet.total_amount,
        'admin_comment': sheet.admin_comment,
        'customer_comment': sheet.customer_comment,
        'last_submitted_at': sheet.last_submitted_at,
        'items': [
            {
                'product_id': item.product_id,
                'product_name': item.product_name,
                'category': item.category,
                'unit': item.unit.value,
                'box_weight': item.box_weight,
                'unit_price': item.unit_price,
                'qty_requested': item.qty_requested,
                'estimated_kg': item.estimated_kg,
                'amount': item.amount,
            }
            for item in list_items(db, order_sheet_id=sheet.id)
        ],
    }


def resolve_guest_sheet(db: Session, *, token: str) -> int:
    return resolve_token(db, token=token, capability=Capability.EDIT_ORDER_SHEET).document_id


def view_order_sheet_by_token(db: Session, *, token: str) -> dict:
    order_sheet_id = resolve_guest_sheet(db, token=token)
    record_view(db, document_type=DocumentType.ORDER_SHEET, document_id=order_sheet_id)
    sheet = get_document(db, OrderSheet, order_sheet_id)
    db.refresh(sheet)
    return order_sheet_detail(db, sheet)


def sales_order_detail(db: Session, sales_order: SalesOrder) -> dict:
    items = db.execute(
        select(SalesOrderItem)
        .where(SalesOrderItem.sales_order_id == sales_order.id)
        .order_by(SalesOrderItem.position.asc())
    ).scalars().all()
    return {
        'id': sales_order.id,
        'source_order_sheet_id': sales_order.source_order_sheet_id,
        'customer_name': sales_order.customer_name,
        'status': sales_order.status.value,
        'totals_kg': sales_order.totals_kg,
        'totals_amount': sales_order.totals_amount,
        'confirmed_at': sales_order.confirmed_at,
        'items': [
            {
                'id': item.id,
                'product_id': item.product_id,
                'product_name': item.product_name,
                'qty_kg': item.qty_kg,
                'unit_price': item.unit_price,
                'amount': item.amount,
            }
            for item in items
        ],
    }

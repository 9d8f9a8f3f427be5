"""Purchase orders and the split of sales order lines across suppliers.

Allocation is keyed by ``(sales order line, supplier)``. Writing a cell replaces its quantity, so
re-submitting the same allocation is a correction rather than a second addition. The sales order
line is locked for the whole write so concurrent allocations to other suppliers read the committed
total instead of a stale one. Over-allocation is allowed and reported as a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from fulfillment_portal.models import (
    Capability,
    DocumentType,
    OrderSheet,
    OrderSheetItem,
    Organization,
    OrganizationKind,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    ReceiptGate,
    ReceiptGateStep,
    ReceiptGateLine,
    ReceiptLineStatus,
    SalesOrder,
    SalesOrderAllocation,
    SalesOrderItem,
    UnitMode,
)
from fulfillment_portal.services.catalog_service import get_organization, products_by_id
from fulfillment_portal.services.errors import (
    DocumentNotFound,
    PreconditionNotMet,
    WarningCode,
    WorkflowWarning,
)
from fulfillment_portal.services.lifecycle_service import Event, get_document, record_event, transition
from fulfillment_portal.services.notification_service import LinkNotification, send_link_stub
from fulfillment_portal.services.token_service import issue_token, resolve_token
from fulfillment_portal.services.unit_conversion_service import (
    ZERO,
    boxes_for_weight,
    resolve_line,
    sum_lines,
    to_decimal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseLineInput:
    product_id: int
    qty_kg: Decimal | int | str = 0
    unit_price: Decimal | int | str | None = None


@dataclass(frozen=True)
class AllocationResult:
    sales_order_item_id: int
    allocated_total: Decimal
    required: Decimal
    is_fully_allocated: bool
    warnings: list[WorkflowWarning] = field(default_factory=list)

    @property
    def is_over_allocated(self) -> bool:
        return self.allocated_total > self.required


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _kg_line(qty_kg, unit_price):
    return resolve_line(qty_kg, UnitMode.KG, None, unit_price)


def list_po_items(db: Session, *, purchase_order_id: int) -> list[PurchaseOrderItem]:
    return db.execute(
        select(PurchaseOrderItem)
        .where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
        .order_by(PurchaseOrderItem.position.asc(), PurchaseOrderItem.id.asc())
    ).scalars().all()


def recompute_po_totals(db: Session, po: PurchaseOrder) -> PurchaseOrder:
    db.flush()
    totals = sum_lines(list_po_items(db, purchase_order_id=po.id), weight_attr='qty_kg')
    po.totals_kg = totals.total_kg
    po.totals_amount = totals.total_amount
    po.updated_at = _now()
    return po


def create_purchase_order(
    db: Session,
    *,
    supplier_org_id: int,
    actor: str,
    sales_order_id: int | None = None,
    lines: list[PurchaseLineInput] | None = None,
    expected_arrival_date: date | None = None,
    memo: str | None = None,
    principal_id: int | None = None,
) -> PurchaseOrder:
    """Open a DRAFT purchase order.

    With ``sales_order_id`` the order starts empty and is filled by :func:`allocate`. Without it,
    ``lines`` describe a direct purchase priced at catalog cost unless a price is given.
    """
    supplier = get_organization(db, supplier_org_id, kind=OrganizationKind.SUPPLIER)
    if sales_order_id is not None:
        get_document(db, SalesOrder, sales_order_id)
    elif not lines:
        raise ValueError('A direct purchase needs at least one line')

    now = _now()
    po = PurchaseOrder(
        source_sales_order_id=sales_order_id,
        supplier_org_id=supplier.id,
        supplier_name=supplier.name,
        status=PurchaseOrderStatus.DRAFT,
        totals_kg=ZERO,
        totals_amount=ZERO,
        expected_arrival_date=expected_arrival_date,
        memo=(memo or '').strip() or None,
        created_by_principal_id=principal_id,
        created_at=now,
        updated_at=now,
    )
    db.add(po)
    db.flush()

    if lines:
        products = products_by_id(db, [line.product_id for line in lines])
        missing = sorted({line.product_id for line in lines} - set(products))
        if missing:
            raise DocumentNotFound(f'Products not found: {", ".join(str(pid) for pid in missing)}')
        for position, line in enumerate(lines):
            product = products[line.product_id]
            price = to_decimal(line.unit_price) if line.unit_price is not None else product.cost_price
            resolved = _kg_line(line.qty_kg, price)
            db.add(
                PurchaseOrderItem(
                    purchase_order_id=po.id,
                    position=position,
                    product_id=product.id,
                    product_name=product.name,
                    qty_kg=resolved.estimated_kg,
                    unit_price=price,
                    amount=resolved.amount,
                )
            )
        recompute_po_totals(db, po)

    record_event(db, po, event='CREATED', actor=actor, metadata={'sales_order_id': sales_order_id})
    db.flush()
    return po


def allocated_total(db: Session, *, sales_order_item_id: int) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(SalesOrderAllocation.qty_kg), 0)).where(
            SalesOrderAllocation.sales_order_item_id == sales_order_item_id
        )
    ).scalar_one()
    return to_decimal(total)


def allocation_status(db: Session, *, sales_order_item_id: int) -> AllocationResult:
    item = db.get(SalesOrderItem, sales_order_item_id)
    if item is None:
        raise DocumentNotFound('Sales order line not found')
    total = allocated_total(db, sales_order_item_id=item.id)
    return AllocationResult(
        sales_order_item_id=item.id,
        allocated_total=total,
        required=item.qty_kg,
        is_fully_allocated=total >= item.qty_kg,
    )


def _receipt_gate_at_docs(db: Session, po: PurchaseOrder) -> ReceiptGate | None:
    gate = db.execute(select(ReceiptGate).where(ReceiptGate.purchase_order_id == po.id)).scalar_one_or_none()
    if gate is not None and gate.status != ReceiptGateStep.DOCS:
        raise PreconditionNotMet('Goods receipt is already under way')
    return gate


def _next_position(db: Session, model, parent_column, parent_id: int) -> int:
    current = db.execute(select(func.max(model.position)).where(parent_column == parent_id)).scalar_one()
    return 0 if current is None else current + 1


def _sync_receipt_line(db: Session, *, gate: ReceiptGate, line: PurchaseOrderItem) -> None:
    """Keep a gate that is still checking documents in step with its purchase-order line."""
    db.flush()
    receipt_line = db.execute(
        select(ReceiptGateLine).where(
            ReceiptGateLine.gate_id == gate.id,
            ReceiptGateLine.purchase_order_item_id == line.id,
        )
    ).scalar_one_or_none()
    if receipt_line is None:
        receipt_line = ReceiptGateLine(
            gate_id=gate.id,
            position=_next_position(db, ReceiptGateLine, ReceiptGateLine.gate_id, gate.id),
            purchase_order_item_id=line.id,
            product_name=line.product_name,
            status=ReceiptLineStatus.PENDING,
            note='',
        )
        db.add(receipt_line)
    product = products_by_id(db, [line.product_id]).get(line.product_id)
    receipt_line.expected_kg = line.qty_kg
    receipt_line.actual_kg = line.qty_kg
    receipt_line.box_count = boxes_for_weight(line.qty_kg, product.box_weight if product else None)
    gate.updated_at = _now()


def _sync_po_line(
    db: Session, *, po: PurchaseOrder, so_item: SalesOrderItem, qty_kg: Decimal, gate: ReceiptGate | None
) -> None:
    line = db.execute(
        select(PurchaseOrderItem).where(
            PurchaseOrderItem.purchase_order_id == po.id,
            PurchaseOrderItem.sales_order_item_id == so_item.id,
        )
    ).scalar_one_or_none()
    if qty_kg == ZERO:
        if line is not None:
            db.execute(delete(ReceiptGateLine).where(ReceiptGateLine.purchase_order_item_id == line.id))
            db.delete(line)
        return
    if line is None:
        product = products_by_id(db, [so_item.product_id]).get(so_item.product_id)
        line = PurchaseOrderItem(
            purchase_order_id=po.id,
            position=_next_position(db, PurchaseOrderItem, PurchaseOrderItem.purchase_order_id, po.id),
            sales_order_item_id=so_item.id,
            product_id=so_item.product_id,
            product_name=so_item.product_name,
            unit_price=product.cost_price if product is not None else so_item.unit_price,
        )
        db.add(line)
    resolved = _kg_line(qty_kg, line.unit_price)
    line.qty_kg = resolved.estimated_kg
    line.amount = resolved.amount
    if gate is not None:
        _sync_receipt_line(db, gate=gate, line=line)


def allocate(
    db: Session,
    *,
    purchase_order_id: int,
    sales_order_item_id: int,
    supplier_org_id: int,
    qty_kg,
    actor: str,
) -> AllocationResult:
    so_item = db.execute(
        select(SalesOrderItem)
        .where(SalesOrderItem.id == sales_order_item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if so_item is None:
        raise DocumentNotFound('Sales order line not found')
    po = get_document(db, PurchaseOrder, purchase_order_id, for_update=True)
    if po.status == PurchaseOrderStatus.RECEIVED:
        raise PreconditionNotMet('Purchase order has already been received')
    gate = _receipt_gate_at_docs(db, po)
    if po.supplier_org_id != supplier_org_id:
        raise ValueError('Purchase order belongs to a different supplier')
    if po.source_sales_order_id is not None and po.source_sales_order_id != so_item.sales_order_id:
        raise ValueError('Sales order line belongs to a different sales order')

    qty = to_decimal(qty_kg)
    if qty < 0:
        raise ValueError('Allocated quantity cannot be negative')

    cell = db.get(SalesOrderAllocation, (so_item.id, supplier_org_id))
    if cell is not None and cell.purchase_order_id != po.id:
        raise PreconditionNotMet(
            f'This line is already allocated to the supplier on purchase order #{cell.purchase_order_id}'
        )
    if qty == ZERO:
        if cell is not None:
            db.delete(cell)
    elif cell is None:
        cell = SalesOrderAllocation(
            sales_order_item_id=so_item.id,
            supplier_org_id=supplier_org_id,
            purchase_order_id=po.id,
            qty_kg=qty,
            updated_at=_now(),
        )
        db.add(cell)
    else:
        cell.qty_kg = qty
        cell.updated_at = _now()

    _sync_po_line(db, po=po, so_item=so_item, qty_kg=qty, gate=gate)
    recompute_po_totals(db, po)

    total = allocated_total(db, sales_order_item_id=so_item.id)
    warnings: list[WorkflowWarning] = []
    if total > so_item.qty_kg:
        warnings.append(
            WorkflowWarning(
                code=WarningCode.OVER_ALLOCATION,
                message=f'{so_item.product_name} is allocated {total} kg against {so_item.qty_kg} kg ordered',
                context={
                    'sales_order_item_id': so_item.id,
                    'allocated_total': str(total),
                    'required': str(so_item.qty_kg),
                },
            )
        )
        logger.warning('sales order line #%s over-allocated: %s > %s kg', so_item.id, total, so_item.qty_kg)

    record_event(
        db,
        po,
        event='ALLOCATED',
        actor=actor,
        metadata={
            'sales_order_item_id': so_item.id,
            'supplier_org_id': supplier_org_id,
            'qty_kg': str(qty),
            'over_allocated': bool(warnings),
        },
    )
    db.flush()
    return AllocationResult(
        sales_order_item_id=so_item.id,
        allocated_total=total,
        required=so_item.qty_kg,
        is_fully_allocated=total >= so_item.qty_kg,
        warnings=warnings,
    )


def allocation_board(db: Session, *, sales_order_id: int) -> dict:
    sales_order = get_document(db, SalesOrder, sales_order_id)
    items = db.execute(
        select(SalesOrderItem)
        .where(SalesOrderItem.sales_order_id == sales_order.id)
        .order_by(SalesOrderItem.position.asc())
    ).scalars().all()
    cells = db.execute(
        select(SalesOrderAllocation, Organization.name)
        .join(Organization, Organization.id == SalesOrderAllocation.supplier_org_id)
        .where(SalesOrderAllocation.sales_order_item_id.in_([item.id for item in items] or [0]))
        .order_by(Organization.name.asc())
    ).all()

    by_item: dict[int, list[dict]] = {}
    by_supplier: dict[int, dict] = {}
    for cell, supplier_name in cells:
        by_item.setdefault(cell.sales_order_item_id, []).append(
            {
                'supplier_org_id': cell.supplier_org_id,
                'supplier_name': supplier_name,
                'purchase_order_id': cell.purchase_order_id,
                'qty_kg': cell.qty_kg,
            }
        )
        supplier = by_supplier.setdefault(
            cell.supplier_org_id,
            {'supplier_org_id': cell.supplier_org_id, 'supplier_name': supplier_name, 'qty_kg': ZERO, 'lines': 0},
        )
        supplier['qty_kg'] += cell.qty_kg
        supplier['lines'] += 1

    lines = []
    for item in items:
        allocations = by_item.get(item.id, [])
        total = sum((row['qty_kg'] for row in allocations), ZERO)
        lines.append(
            {
                'sales_order_item_id': item.id,
                'product_id': item.product_id,
                'product_name': item.product_name,
                'required_kg': item.qty_kg,
                'allocated_kg': total,
                'remaining_kg': max(item.qty_kg - total, ZERO),
                'is_fully_allocated': total >= item.qty_kg,
                'is_over_allocated': total > item.qty_kg,
                'allocations': allocations,
            }
        )
    return {
        'sales_order_id': sales_order.id,
        'customer_name': sales_order.customer_name,
        'is_fully_allocated': all(line['is_fully_allocated'] for line in lines),
        'lines': lines,
        'suppliers': sorted(by_supplier.values(), key=lambda row: row['supplier_name']),
    }


def copy_from_past_order(db: Session, *, source_type: DocumentType, source_id: int) -> list[dict]:
    """Template rows from an earlier order, quantities zeroed and prices taken from today's catalog."""
    if source_type == DocumentType.PURCHASE_ORDER:
        get_document(db, PurchaseOrder, source_id)
        source_lines = [(line.product_id, line.product_name) for line in list_po_items(db, purchase_order_id=source_id)]
    elif source_type == DocumentType.ORDER_SHEET:
        get_document(db, OrderSheet, source_id)
        source_lines = [
            (line.product_id, line.product_name)
            for line in db.execute(
                select(OrderSheetItem)
                .where(OrderSheetItem.order_sheet_id == source_id)
                .order_by(OrderSheetItem.position.asc())
            ).scalars()
        ]
    else:
        raise ValueError(f'Cannot copy lines from {source_type.value}')

    products = products_by_id(db, [product_id for product_id, _ in source_lines])
    rows: list[dict] = []
    seen: set[int] = set()
    for product_id, product_name in source_lines:
        if product_id in seen:
            continue
        seen.add(product_id)
        product = products.get(product_id)
        if product is None or not product.active:
            logger.info('skipping retired product %s while copying %s #%s', product_id, source_type.value, source_id)
            continue
        price = product.cost_price if source_type == DocumentType.PURCHASE_ORDER else product.wholesale_price
        rows.append(
            {
                'product_id': product.id,
                'product_name': product.name,
                'category': product.category,
                'unit': product.unit_type.value,
                'box_weight': product.box_weight,
                'unit_price': price,
                'qty': ZERO,
            }
        )
    return rows


def send_purchase_order(db: Session, *, purchase_order_id: int, actor: str) -> LinkNotification:
    po = get_document(db, PurchaseOrder, purchase_order_id)

    def has_lines(locked: PurchaseOrder) -> None:
        if not any(line.qty_kg > 0 for line in list_po_items(db, purchase_order_id=locked.id)):
            raise PreconditionNotMet('Purchase order has no quantities to send')

    transition(db, po, event=Event.SEND, actor=actor, precondition=has_lines)
    token = issue_token(
        db,
        document_type=DocumentType.PURCHASE_ORDER,
        document_id=po.id,
        capability=Capability.SUBMIT_PURCHASE_ORDER,
    )
    po.invite_token_id = token.id
    po.sent_at = _now()
    return send_link_stub(
        db,
        actor=actor,
        document_type=DocumentType.PURCHASE_ORDER,
        document_id=po.id,
        capability=Capability.SUBMIT_PURCHASE_ORDER,
        token=token.id,
        recipient=po.supplier_name,
        title=f'PO #{po.id}',
    )


def list_purchase_orders(
    db: Session,
    *,
    supplier_org_id: int | None = None,
    status: PurchaseOrderStatus | None = None,
    limit: int = 100,
) -> list[dict]:
    query = select(PurchaseOrder).order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).limit(limit)
    if supplier_org_id is not None:
        query = query.where(PurchaseOrder.supplier_org_id == supplier_org_id)
    if status is not None:
        query = query.where(PurchaseOrder.status == status)
    return [
        {
            'id': po.id,
            'supplier_org_id': po.supplier_org_id,
            'supplier_name': po.supplier_name,
            'source_sales_order_id': po.source_sales_order_id,
            'status': po.status.value,
            'totals_kg': po.totals_kg,
            'totals_amount': po.totals_amount,
            'expected_arrival_date': po.expected_arrival_date,
            'created_at': po.created_at,
        }
        for po in db.execute(query).scalars().all()
    ]


def purchase_order_detail(db: Session, po: PurchaseOrder) -> dict:
    return {
        'id': po.id,
        'supplier_org_id': po.supplier_org_id,
        'supplier_name': po.supplier_name,
        'source_sales_order_id': po.source_sales_order_id,
        'status': po.status.value,
        'totals_kg': po.totals_kg,
        'totals_amount': po.totals_amount,
        'expected_arrival_date': po.expected_arrival_date,
        'memo': po.memo,
        'supplier_note': po.supplier_note,
        'supplier_submitted_at': po.supplier_submitted_at,
        'items': [
            {
                'id': line.id,
                'product_id': line.product_id,
                'product_name': line.product_name,
                'qty_kg': line.qty_kg,
                'unit_price': line.unit_price,
                'amount': line.amount,
            }
            for line in list_po_items(db, purchase_order_id=po.id)
        ],
    }


def view_purchase_order_by_token(db: Session, *, token: str) -> dict:
    resolved = resolve_token(db, token=token, capability=Capability.SUBMIT_PURCHASE_ORDER)
    return purchase_order_detail(db, get_document(db, PurchaseOrder, resolved.document_id))


def submit_supplier_update(
    db: Session,
    *,
    token: str,
    expected_arrival_date: date | None,
    supplier_note: str | None = None,
    item_quantities: dict[int, Decimal] | None = None,
) -> PurchaseOrder:
    """Supplier confirms arrival date and shippable quantities through their purchase-order link.

    Accepted while the order is SENT and its receipt gate has not moved past the document check.
    Quantity changes on allocated lines carry through to the allocation cell.
    """
    resolved = resolve_token(db, token=token, capability=Capability.SUBMIT_PURCHASE_ORDER)
    po = get_document(db, PurchaseOrder, resolved.document_id, for_update=True)
    if po.status != PurchaseOrderStatus.SENT:
        raise PreconditionNotMet('Purchase order is not open for supplier updates')
    gate = _receipt_gate_at_docs(db, po)

    lines = {line.id: line for line in list_po_items(db, purchase_order_id=po.id)}
    for item_id, qty in (item_quantities or {}).items():
        line = lines.get(int(item_id))
        if line is None:
            raise DocumentNotFound('Line is not on this purchase order')
        resolved_line = _kg_line(qty, line.unit_price)
        line.qty_kg = resolved_line.estimated_kg
        line.amount = resolved_line.amount
        if gate is not None:
            _sync_receipt_line(db, gate=gate, line=line)
        if line.sales_order_item_id is not None:
            cell = db.get(SalesOrderAllocation, (line.sales_order_item_id, po.supplier_org_id))
            if cell is not None:
                cell.qty_kg = line.qty_kg
                cell.updated_at = _now()

    po.expected_arrival_date = expected_arrival_date
    po.supplier_note = (supplier_note or '').strip() or None
    po.supplier_submitted_at = _now()
    recompute_po_totals(db, po)
    record_event(
        db,
        po,
        event='SUPPLIER_SUBMITTED',
        actor=f'supplier:{po.supplier_org_id}',
        metadata={'changed_lines': sorted(int(item_id) for item_id in (item_quantities or {}))},
    )
    db.flush()
    logger.info('supplier update received for purchase order #%s', po.id)
    return po


def delete_draft_purchase_order(db: Session, *, purchase_order_id: int, actor: str) -> None:
    po = get_document(db, PurchaseOrder, purchase_order_id, for_update=True)
    if po.status != PurchaseOrderStatus.DRAFT:
        raise PreconditionNotMet('Only draft purchase orders can be deleted')
    db.execute(delete(SalesOrderAllocation).where(SalesOrderAllocation.purchase_order_id == po.id))
    db.execute(delete(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == po.id))
    record_event(db, po, event='DELETED', actor=actor)
    db.delete(po)
    db.flush()

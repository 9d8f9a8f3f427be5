from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.models import (
    OutboundGate,
    OutboundGateStep,
    PurchaseOrder,
    PurchaseOrderStatus,
    ReceiptGate,
    ReceiptGateLine,
    ReceiptGateStep,
    ReceiptLineStatus,
    Shipment,
    ShipmentStatus,
)
from fulfillment_portal.services.allocation_service import list_po_items
from fulfillment_portal.services.catalog_service import products_by_id
from fulfillment_portal.services.errors import DocumentNotFound, PreconditionNotMet
from fulfillment_portal.services.lifecycle_service import Event, get_document, record_event, transition
from fulfillment_portal.services.unit_conversion_service import KG_QUANT, ZERO, boxes_for_weight, to_decimal

logger = logging.getLogger(__name__)

REQUIRED_CHECKLIST_ITEMS: tuple[str, ...] = (
    'transaction_statement',
    'inspection_report',
    'item_qty_match',
    'packaging_condition',
    'cold_chain_temperature',
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_line_status(value: ReceiptLineStatus | str) -> ReceiptLineStatus:
    if isinstance(value, ReceiptLineStatus):
        return value
    try:
        return ReceiptLineStatus((value or '').strip().upper())
    except ValueError as exc:
        raise ValueError('Line status must be one of PENDING, CHECKED, ISSUE') from exc


def list_receipt_lines(db: Session, *, gate_id: int) -> list[ReceiptGateLine]:
    return db.execute(
        select(ReceiptGateLine)
        .where(ReceiptGateLine.gate_id == gate_id)
        .order_by(ReceiptGateLine.position.asc(), ReceiptGateLine.id.asc())
    ).scalars().all()


def open_receipt_gate(db: Session, *, purchase_order_id: int, actor: str) -> ReceiptGate:
    po = get_document(db, PurchaseOrder, purchase_order_id, for_update=True)
    existing = db.execute(
        select(ReceiptGate).where(ReceiptGate.purchase_order_id == po.id)
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    if po.status != PurchaseOrderStatus.SENT:
        raise PreconditionNotMet('Only sent purchase orders can be received')

    items = list_po_items(db, purchase_order_id=po.id)
    if not items:
        raise PreconditionNotMet('Purchase order has no lines to receive')
    products = products_by_id(db, [item.product_id for item in items])

    now = _now()
    gate = ReceiptGate(
        purchase_order_id=po.id,
        status=ReceiptGateStep.DOCS,
        statement_checked=False,
        inspection_report_checked=False,
        created_at=now,
        updated_at=now,
    )
    db.add(gate)
    db.flush()
    for position, item in enumerate(items):
        product = products.get(item.product_id)
        db.add(
            ReceiptGateLine(
                gate_id=gate.id,
                position=position,
                purchase_order_item_id=item.id,
                product_name=item.product_name,
                expected_kg=item.qty_kg,
                actual_kg=item.qty_kg,
                box_count=boxes_for_weight(item.qty_kg, product.box_weight if product else None),
                status=ReceiptLineStatus.PENDING,
                note='',
            )
        )
    record_event(db, gate, event='OPENED', actor=actor, metadata={'purchase_order_id': po.id})
    db.flush()
    return gate


def confirm_receipt_documents(
    db: Session,
    *,
    gate_id: int,
    statement_checked: bool,
    inspection_report_checked: bool,
    actor: str,
) -> ReceiptGate:
    gate = get_document(db, ReceiptGate, gate_id)

    def paperwork_present(_gate: ReceiptGate) -> None:
        if not statement_checked:
            raise PreconditionNotMet('Transaction statement has not been checked')
        if not inspection_report_checked:
            raise PreconditionNotMet('Inspection report has not been checked')

    transition(db, gate, event=Event.CONFIRM_DOCUMENTS, actor=actor, precondition=paperwork_present)
    gate.statement_checked = True
    gate.inspection_report_checked = True
    db.flush()
    return gate


def confirm_receipt_vehicle(
    db: Session,
    *,
    gate_id: int,
    vehicle_number: str,
    driver_name: str | None = None,
    actor: str,
) -> ReceiptGate:
    gate = get_document(db, ReceiptGate, gate_id)
    plate = (vehicle_number or '').strip()

    def vehicle_identified(_gate: ReceiptGate) -> None:
        if not plate:
            raise PreconditionNotMet('Vehicle number is required')

    transition(
        db, gate, event=Event.CONFIRM_VEHICLE, actor=actor, precondition=vehicle_identified,
        metadata={'vehicle_number': plate},
    )
    gate.vehicle_number = plate
    gate.driver_name = (driver_name or '').strip() or None
    db.flush()
    return gate


def record_receipt_line(
    db: Session,
    *,
    gate_id: int,
    line_id: int,
    actual_kg,
    box_count: int,
    status: ReceiptLineStatus | str,
    note: str = '',
    actor: str,
) -> ReceiptGateLine:
    gate = get_document(db, ReceiptGate, gate_id, for_update=True)
    if gate.status != ReceiptGateStep.INSPECT:
        raise PreconditionNotMet('Lines can only be recorded during inspection')
    line = db.get(ReceiptGateLine, line_id)
    if line is None or line.gate_id != gate.id:
        raise DocumentNotFound('Receipt line not found')

    weight = to_decimal(actual_kg)
    if weight < 0:
        raise ValueError('Actual weight cannot be negative')
    if int(box_count) < 0:
        raise ValueError('Box count cannot be negative')
    line.actual_kg = weight.quantize(KG_QUANT)
    line.box_count = int(box_count)
    line.status = _parse_line_status(status)
    line.note = (note or '').strip()
    gate.updated_at = _now()
    if line.status == ReceiptLineStatus.ISSUE:
        logger.warning('receipt gate #%s line %s flagged: %s', gate.id, line.product_name, line.note or 'no note')
    db.flush()
    return line


def complete_receipt(db: Session, *, gate_id: int, actor: str) -> PurchaseOrder:
    """Close the inspection and mark the purchase order received at the actual weights."""
    gate = get_document(db, ReceiptGate, gate_id)
    po = get_document(db, PurchaseOrder, gate.purchase_order_id, for_update=True)
    lines = list_receipt_lines(db, gate_id=gate.id)

    def every_line_settled(_gate: ReceiptGate) -> None:
        pending = [line.product_name for line in lines if line.status == ReceiptLineStatus.PENDING]
        if pending:
            raise PreconditionNotMet(f'Lines still pending inspection: {", ".join(pending)}')
        if po.status != PurchaseOrderStatus.SENT:
            raise PreconditionNotMet('Purchase order is not awaiting receipt')

    transition(db, gate, event=Event.COMPLETE_INSPECTION, actor=actor, precondition=every_line_settled)
    gate.completed_at = _now()

    actual_total = sum((line.actual_kg for line in lines), ZERO).quantize(KG_QUANT)
    issues = sum(1 for line in lines if line.status == ReceiptLineStatus.ISSUE)
    po.totals_kg = actual_total
    po.received_at = _now()
    transition(
        db, po, event=Event.RECEIVE, actor=actor,
        metadata={'receipt_gate_id': gate.id, 'actual_kg': str(actual_total), 'issue_lines': issues},
    )
    logger.info('purchase order #%s received at %s kg (%s issue lines)', po.id, actual_total, issues)
    return po


def receipt_gate_detail(db: Session, gate: ReceiptGate) -> dict:
    return {
        'id': gate.id,
        'purchase_order_id': gate.purchase_order_id,
        'status': gate.status.value,
        'statement_checked': gate.statement_checked,
        'inspection_report_checked': gate.inspection_report_checked,
        'vehicle_number': gate.vehicle_number,
        'driver_name': gate.driver_name,
        'completed_at': gate.completed_at,
        'lines': [
            {
                'id': line.id,
                'product_name': line.product_name,
                'expected_kg': line.expected_kg,
                'actual_kg': line.actual_kg,
                'box_count': line.box_count,
                'status': line.status.value,
                'note': line.note,
            }
            for line in list_receipt_lines(db, gate_id=gate.id)
        ],
    }


def open_outbound_gate(db: Session, *, shipment_id: int, actor: str) -> OutboundGate:
    shipment = get_document(db, Shipment, shipment_id, for_update=True)
    existing = db.execute(
        select(OutboundGate).where(OutboundGate.shipment_id == shipment.id)
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    if shipment.status == ShipmentStatus.DELIVERED:
        raise PreconditionNotMet('Shipment has already been delivered')

    now = _now()
    gate = OutboundGate(
        shipment_id=shipment.id,
        status=OutboundGateStep.DOCS,
        documents_matched=False,
        checklist={key: False for key in REQUIRED_CHECKLIST_ITEMS},
        created_at=now,
        updated_at=now,
    )
    db.add(gate)
    db.flush()
    record_event(db, gate, event='OPENED', actor=actor, metadata={'shipment_id': shipment.id})
    return gate


def confirm_outbound_documents(db: Session, *, gate_id: int, documents_matched: bool, actor: str) -> OutboundGate:
    gate = get_document(db, OutboundGate, gate_id)

    def documents_match(_gate: OutboundGate) -> None:
        if not documents_matched:
            raise PreconditionNotMet('Shipping documents have not been matched')

    transition(db, gate, event=Event.CONFIRM_DOCUMENTS, actor=actor, precondition=documents_match)
    gate.documents_matched = True
    db.flush()
    return gate


def complete_outbound_checklist(db: Session, *, gate_id: int, checklist: dict[str, bool], actor: str) -> OutboundGate:
    unknown = sorted(set(checklist) - set(REQUIRED_CHECKLIST_ITEMS))
    if unknown:
        raise ValueError(f'Unknown checklist items: {", ".join(unknown)}')
    gate = get_document(db, OutboundGate, gate_id)
    merged = {key: bool(checklist.get(key, False)) for key in REQUIRED_CHECKLIST_ITEMS}

    def all_checked(_gate: OutboundGate) -> None:
        missing = [key for key, checked in merged.items() if not checked]
        if missing:
            raise PreconditionNotMet(f'Checklist items not confirmed: {", ".join(missing)}')

    transition(db, gate, event=Event.COMPLETE_CHECKLIST, actor=actor, precondition=all_checked)
    gate.checklist = merged
    db.flush()
    return gate


def sign_outbound(
    db: Session,
    *,
    gate_id: int,
    signature_ref: str,
    signed_by: str | None = None,
    actor: str,
) -> OutboundGate:
    gate = get_document(db, OutboundGate, gate_id)
    reference = (signature_ref or '').strip()

    def signature_present(_gate: OutboundGate) -> None:
        if not reference:
            raise PreconditionNotMet('A signature is required')

    transition(db, gate, event=Event.SIGN, actor=actor, precondition=signature_present)
    gate.signature_ref = reference
    gate.signed_by = (signed_by or '').strip() or None
    gate.completed_at = _now()
    db.flush()
    return gate


def outbound_gate_detail(gate: OutboundGate) -> dict:
    return {
        'id': gate.id,
        'shipment_id': gate.shipment_id,
        'status': gate.status.value,
        'documents_matched': gate.documents_matched,
        'checklist': dict(gate.checklist or {}),
        'signature_ref': gate.signature_ref,
        'signed_by': gate.signed_by,
        'completed_at': gate.completed_at,
    }

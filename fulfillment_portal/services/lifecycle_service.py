"""Gated state machines shared by every document type.

Each document type has a fixed, forward-only transition table keyed by ``(status, event)``.
:func:`transition` re-reads the document under a row lock before it checks the table, so the
decision is always made against the state at write time rather than the state the caller saw.
Data preconditions run only after the event is known to be legal, and a failing precondition
leaves the document untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.models import (
    DocumentType,
    OrderSheet,
    OrderSheetStatus,
    OutboundGate,
    OutboundGateStep,
    PriceList,
    PurchaseOrder,
    PurchaseOrderStatus,
    ReceiptGate,
    ReceiptGateStep,
    SalesOrder,
    SalesOrderStatus,
    Shipment,
    ShipmentStatus,
)
from fulfillment_portal.services.errors import DocumentNotFound, IllegalTransition
from fulfillment_portal.services.history_service import log_history

logger = logging.getLogger(__name__)


class Event(str, Enum):
    SEND = 'SEND'
    CONFIRM = 'CONFIRM'
    RECEIVE = 'RECEIVE'
    DISPATCH = 'DISPATCH'
    DELIVER = 'DELIVER'
    CONFIRM_DOCUMENTS = 'CONFIRM_DOCUMENTS'
    CONFIRM_VEHICLE = 'CONFIRM_VEHICLE'
    COMPLETE_INSPECTION = 'COMPLETE_INSPECTION'
    COMPLETE_CHECKLIST = 'COMPLETE_CHECKLIST'
    SIGN = 'SIGN'


TRANSITIONS: dict[DocumentType, dict[tuple[Enum, Event], Enum]] = {
    DocumentType.ORDER_SHEET: {
        (OrderSheetStatus.DRAFT, Event.SEND): OrderSheetStatus.SENT,
        (OrderSheetStatus.SENT, Event.CONFIRM): OrderSheetStatus.CONFIRMED,
    },
    DocumentType.SALES_ORDER: {},
    DocumentType.PURCHASE_ORDER: {
        (PurchaseOrderStatus.DRAFT, Event.SEND): PurchaseOrderStatus.SENT,
        (PurchaseOrderStatus.SENT, Event.RECEIVE): PurchaseOrderStatus.RECEIVED,
    },
    DocumentType.SHIPMENT: {
        (ShipmentStatus.PREPARING, Event.DISPATCH): ShipmentStatus.IN_TRANSIT,
        (ShipmentStatus.IN_TRANSIT, Event.DELIVER): ShipmentStatus.DELIVERED,
    },
    DocumentType.RECEIPT_GATE: {
        (ReceiptGateStep.DOCS, Event.CONFIRM_DOCUMENTS): ReceiptGateStep.VEHICLE,
        (ReceiptGateStep.VEHICLE, Event.CONFIRM_VEHICLE): ReceiptGateStep.INSPECT,
        (ReceiptGateStep.INSPECT, Event.COMPLETE_INSPECTION): ReceiptGateStep.DONE,
    },
    DocumentType.OUTBOUND_GATE: {
        (OutboundGateStep.DOCS, Event.CONFIRM_DOCUMENTS): OutboundGateStep.CHECKLIST,
        (OutboundGateStep.CHECKLIST, Event.COMPLETE_CHECKLIST): OutboundGateStep.SIGNATURE,
        (OutboundGateStep.SIGNATURE, Event.SIGN): OutboundGateStep.DONE,
    },
}

INITIAL_STATES: dict[DocumentType, Enum] = {
    DocumentType.ORDER_SHEET: OrderSheetStatus.DRAFT,
    DocumentType.SALES_ORDER: SalesOrderStatus.CONFIRMED,
    DocumentType.PURCHASE_ORDER: PurchaseOrderStatus.DRAFT,
    DocumentType.SHIPMENT: ShipmentStatus.PREPARING,
    DocumentType.RECEIPT_GATE: ReceiptGateStep.DOCS,
    DocumentType.OUTBOUND_GATE: OutboundGateStep.DOCS,
}

MODEL_DOCUMENT_TYPES: dict[type, DocumentType] = {
    PriceList: DocumentType.PRICE_LIST,
    OrderSheet: DocumentType.ORDER_SHEET,
    SalesOrder: DocumentType.SALES_ORDER,
    PurchaseOrder: DocumentType.PURCHASE_ORDER,
    Shipment: DocumentType.SHIPMENT,
    ReceiptGate: DocumentType.RECEIPT_GATE,
    OutboundGate: DocumentType.OUTBOUND_GATE,
}

DOCUMENT_LABELS: dict[type, str] = {
    PriceList: 'Price list',
    OrderSheet: 'Order sheet',
    SalesOrder: 'Sales order',
    PurchaseOrder: 'Purchase order',
    Shipment: 'Shipment',
    ReceiptGate: 'Receipt gate',
    OutboundGate: 'Outbound gate',
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def document_type_for(doc) -> DocumentType:
    try:
        return MODEL_DOCUMENT_TYPES[type(doc)]
    except KeyError as exc:
        raise TypeError(f'{type(doc).__name__} has no lifecycle') from exc


def get_document(db: Session, model, document_id: int, *, for_update: bool = False):
    query = select(model).where(model.id == document_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    doc = db.execute(query).scalar_one_or_none()
    if doc is None:
        raise DocumentNotFound(f"{DOCUMENT_LABELS.get(model, model.__name__)} not found")
    return doc


def target_state(document_type: DocumentType, status: Enum, event: Event) -> Enum | None:
    return TRANSITIONS[document_type].get((status, event))


def available_events(document_type: DocumentType, status: Enum) -> list[Event]:
    return [event for (source, event) in TRANSITIONS[document_type] if source == status]


def transition(
    db: Session,
    doc,
    *,
    event: Event,
    actor: str,
    precondition: Callable[[object], None] | None = None,
    metadata: dict | None = None,
):
    document_type = document_type_for(doc)
    db.flush()
    db.refresh(doc, with_for_update=True)

    current = doc.status
    target = target_state(document_type, current, event)
    if target is None:
        raise IllegalTransition(document_type.value, current.value, event.value)
    if precondition is not None:
        precondition(doc)

    doc.status = target
    doc.updated_at = _now()
    log_history(
        db,
        document_type=document_type,
        document_id=doc.id,
        event=event.value,
        actor=actor,
        from_status=current.value,
        to_status=target.value,
        metadata=metadata,
    )
    db.flush()
    logger.info('%s #%s %s -> %s (%s by %s)', document_type.value, doc.id, current.value, target.value, event.value, actor)
    return doc


def record_event(db: Session, doc, *, event: str, actor: str, metadata: dict | None = None) -> None:
    """Append a history row that does not move the document's state."""
    status = getattr(doc, 'status', None)
    log_history(
        db,
        document_type=document_type_for(doc),
        document_id=doc.id,
        event=event,
        actor=actor,
        from_status=status.value if status is not None else None,
        to_status=status.value if status is not None else None,
        metadata=metadata,
    )

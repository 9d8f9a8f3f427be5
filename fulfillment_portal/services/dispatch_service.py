from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.models import (
    Capability,
    CarrierDriverProfile,
    DocumentType,
    OrganizationKind,
    OutboundGate,
    OutboundGateStep,
    SalesOrder,
    SalesOrderItem,
    Shipment,
    ShipmentStatus,
)
from fulfillment_portal.services.catalog_service import (
    get_organization,
    get_vehicle_type,
    list_vehicle_types,
    products_by_id,
)
from fulfillment_portal.services.errors import PreconditionNotMet
from fulfillment_portal.services.lifecycle_service import Event, get_document, record_event, transition
from fulfillment_portal.services.notification_service import LinkNotification, send_link_stub
from fulfillment_portal.services.token_service import issue_token, resolve_token, revoke_document_tokens
from fulfillment_portal.services.unit_conversion_service import boxes_for_weight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchDetails:
    driver_name: str
    driver_phone: str
    vehicle_number: str
    vehicle_type_id: int | None
    eta_at: datetime | None = None

    def cleaned(self) -> DispatchDetails:
        return DispatchDetails(
            driver_name=(self.driver_name or '').strip(),
            driver_phone=(self.driver_phone or '').strip(),
            vehicle_number=(self.vehicle_number or '').strip(),
            vehicle_type_id=self.vehicle_type_id,
            eta_at=self.eta_at,
        )

    def missing_fields(self) -> list[str]:
        return [
            name
            for name in ('driver_name', 'driver_phone', 'vehicle_number', 'vehicle_type_id')
            if getattr(self, name) in (None, '')
        ]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def find_shipment_for_sales_order(db: Session, *, sales_order_id: int) -> Shipment | None:
    return db.execute(
        select(Shipment).where(Shipment.source_sales_order_id == sales_order_id)
    ).scalar_one_or_none()


def create_shipment(db: Session, *, sales_order_id: int, actor: str) -> Shipment:
    sales_order = get_document(db, SalesOrder, sales_order_id, for_update=True)
    existing = find_shipment_for_sales_order(db, sales_order_id=sales_order.id)
    if existing is not None:
        raise PreconditionNotMet(f'Sales order already has shipment #{existing.id}')
    now = _now()
    shipment = Shipment(
        source_sales_order_id=sales_order.id,
        status=ShipmentStatus.PREPARING,
        is_modified=False,
        total_kg=sales_order.totals_kg,
        created_at=now,
        updated_at=now,
    )
    db.add(shipment)
    db.flush()
    record_event(db, shipment, event='CREATED', actor=actor, metadata={'sales_order_id': sales_order.id})
    return shipment


def _apply_details(shipment: Shipment, details: DispatchDetails) -> None:
    shipment.driver_name = details.driver_name
    shipment.driver_phone = details.driver_phone
    shipment.vehicle_number = details.vehicle_number
    shipment.vehicle_type_id = details.vehicle_type_id
    shipment.eta_at = details.eta_at


def _save_driver_profile(db: Session, *, carrier_org_id: int, details: DispatchDetails) -> CarrierDriverProfile:
    profile = db.get(CarrierDriverProfile, carrier_org_id)
    if profile is None:
        profile = CarrierDriverProfile(carrier_org_id=carrier_org_id)
        db.add(profile)
    profile.driver_name = details.driver_name
    profile.driver_phone = details.driver_phone
    profile.vehicle_number = details.vehicle_number
    profile.vehicle_type_id = details.vehicle_type_id
    profile.last_used_at = _now()
    return profile


def _dispatch(db: Session, shipment: Shipment, *, details: DispatchDetails, actor: str) -> Shipment:
    details = details.cleaned()
    missing = details.missing_fields()
    if missing:
        raise ValueError(f'Missing dispatch details: {", ".join(missing)}')
    get_vehicle_type(db, details.vehicle_type_id)

    def carrier_assigned(locked: Shipment) -> None:
        if locked.carrier_org_id is None:
            raise PreconditionNotMet('Assign a carrier before dispatching')

    transition(
        db, shipment, event=Event.DISPATCH, actor=actor, precondition=carrier_assigned,
        metadata={'vehicle_number': details.vehicle_number},
    )
    _apply_details(shipment, details)
    _save_driver_profile(db, carrier_org_id=shipment.carrier_org_id, details=details)
    db.flush()
    return shipment


def request_dispatch(db: Session, *, shipment_id: int, carrier_org_id: int, actor: str) -> LinkNotification:
    """Hand the shipment to a carrier and send them a one-form dispatch link.

    Re-requesting replaces any earlier dispatch link for the shipment.
    """
    shipment = get_document(db, Shipment, shipment_id, for_update=True)
    if shipment.status != ShipmentStatus.PREPARING:
        raise PreconditionNotMet('Shipment has already been dispatched')
    carrier = get_organization(db, carrier_org_id, kind=OrganizationKind.CARRIER)

    revoke_document_tokens(db, document_type=DocumentType.SHIPMENT, document_id=shipment.id)
    token = issue_token(
        db,
        document_type=DocumentType.SHIPMENT,
        document_id=shipment.id,
        capability=Capability.SUBMIT_DISPATCH,
    )
    shipment.carrier_org_id = carrier.id
    shipment.company = carrier.name
    shipment.dispatcher_token = token.id
    shipment.updated_at = _now()
    return send_link_stub(
        db,
        actor=actor,
        document_type=DocumentType.SHIPMENT,
        document_id=shipment.id,
        capability=Capability.SUBMIT_DISPATCH,
        token=token.id,
        recipient=carrier.name,
        title=f'Shipment #{shipment.id}',
    )


def submit_dispatch(db: Session, *, token: str, details: DispatchDetails) -> Shipment:
    resolved = resolve_token(db, token=token, capability=Capability.SUBMIT_DISPATCH)
    shipment = get_document(db, Shipment, resolved.document_id)
    shipment = _dispatch(db, shipment, details=details, actor=f'carrier:{shipment.carrier_org_id}')
    logger.info('carrier %s dispatched shipment #%s', shipment.carrier_org_id, shipment.id)
    return shipment


def staff_dispatch(
    db: Session,
    *,
    shipment_id: int,
    carrier_org_id: int,
    details: DispatchDetails,
    actor: str,
) -> Shipment:
    shipment = get_document(db, Shipment, shipment_id, for_update=True)
    if shipment.status != ShipmentStatus.PREPARING:
        raise PreconditionNotMet('Shipment has already been dispatched')
    carrier = get_organization(db, carrier_org_id, kind=OrganizationKind.CARRIER)
    shipment.carrier_org_id = carrier.id
    shipment.company = carrier.name
    return _dispatch(db, shipment, details=details, actor=actor)


def modify_after_dispatch(
    db: Session,
    *,
    shipment_id: int,
    actor: str,
    driver_name: str | None = None,
    driver_phone: str | None = None,
    vehicle_number: str | None = None,
    vehicle_type_id: int | None = None,
    eta_at: datetime | None = None,
) -> Shipment:
    shipment = get_document(db, Shipment, shipment_id, for_update=True)
    if shipment.status != ShipmentStatus.IN_TRANSIT:
        raise PreconditionNotMet('Only shipments in transit can be modified')
    if vehicle_type_id is not None:
        get_vehicle_type(db, vehicle_type_id)

    requested = {
        'driver_name': (driver_name or '').strip() or None,
        'driver_phone': (driver_phone or '').strip() or None,
        'vehicle_number': (vehicle_number or '').strip() or None,
        'vehicle_type_id': vehicle_type_id,
        'eta_at': eta_at,
    }
    changes: dict[str, dict] = {}
    for name, value in requested.items():
        if value is None or getattr(shipment, name) == value:
            continue
        before = getattr(shipment, name)
        changes[name] = {'from': str(before) if before is not None else None, 'to': str(value)}
        setattr(shipment, name, value)
    if not changes:
        raise ValueError('Nothing to change')

    now = _now()
    shipment.is_modified = True
    shipment.modified_at = now
    shipment.updated_at = now
    record_event(db, shipment, event='MODIFIED', actor=actor, metadata=changes)
    db.flush()
    logger.info('shipment #%s modified after dispatch by %s: %s', shipment.id, actor, ', '.join(changes))
    return shipment


def deliver(db: Session, *, shipment_id: int, actor: str) -> Shipment:
    shipment = get_document(db, Shipment, shipment_id)

    def released(locked: Shipment) -> None:
        gate = db.execute(
            select(OutboundGate).where(OutboundGate.shipment_id == locked.id)
        ).scalar_one_or_none()
        if gate is None or gate.status != OutboundGateStep.DONE:
            raise PreconditionNotMet('Outbound gate has not been completed')

    transition(db, shipment, event=Event.DELIVER, actor=actor, precondition=released)
    shipment.delivered_at = _now()
    db.flush()
    return shipment


def shipment_lines(db: Session, shipment: Shipment) -> list[dict]:
    items = db.execute(
        select(SalesOrderItem)
        .where(SalesOrderItem.sales_order_id == shipment.source_sales_order_id)
        .order_by(SalesOrderItem.position.asc())
    ).scalars().all()
    products = products_by_id(db, [item.product_id for item in items])
    lines = []
    for item in items:
        product = products.get(item.product_id)
        box_weight = product.box_weight if product is not None else None
        lines.append(
            {
                'product_name': item.product_name,
                'qty_kg': item.qty_kg,
                'box_weight': box_weight,
                'boxes': boxes_for_weight(item.qty_kg, box_weight),
            }
        )
    return lines


def shipment_detail(db: Session, shipment: Shipment) -> dict:
    return {
        'id': shipment.id,
        'source_sales_order_id': shipment.source_sales_order_id,
        'status': shipment.status.value,
        'carrier_org_id': shipment.carrier_org_id,
        'company': shipment.company,
        'vehicle_type_id': shipment.vehicle_type_id,
        'vehicle_number': shipment.vehicle_number,
        'driver_name': shipment.driver_name,
        'driver_phone': shipment.driver_phone,
        'eta_at': shipment.eta_at,
        'is_modified': shipment.is_modified,
        'modified_at': shipment.modified_at,
        'total_kg': shipment.total_kg,
        'delivered_at': shipment.delivered_at,
        'lines': shipment_lines(db, shipment),
    }


def dispatch_view_by_token(db: Session, *, token: str) -> dict:
    """Carrier's dispatch form, pre-filled from the carrier's last submission."""
    resolved = resolve_token(db, token=token, capability=Capability.SUBMIT_DISPATCH)
    shipment = get_document(db, Shipment, resolved.document_id)
    profile = db.get(CarrierDriverProfile, shipment.carrier_org_id) if shipment.carrier_org_id else None
    sales_order = db.get(SalesOrder, shipment.source_sales_order_id)
    return {
        'shipment_id': shipment.id,
        'status': shipment.status.value,
        'company': shipment.company,
        'customer_name': sales_order.customer_name if sales_order else None,
        'total_kg': shipment.total_kg,
        'lines': shipment_lines(db, shipment),
        'can_submit': shipment.status == ShipmentStatus.PREPARING,
        'vehicle_types': [
            {'id': row.id, 'name': row.name, 'capacity_kg': row.capacity_kg} for row in list_vehicle_types(db)
        ],
        'defaults': {
            'driver_name': profile.driver_name,
            'driver_phone': profile.driver_phone,
            'vehicle_number': profile.vehicle_number,
            'vehicle_type_id': profile.vehicle_type_id,
        }
        if profile is not None
        else None,
    }

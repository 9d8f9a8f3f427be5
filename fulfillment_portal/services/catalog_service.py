from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_portal.models import Organization, OrganizationKind, Product, UnitMode, VehicleType
from fulfillment_portal.services.errors import DocumentNotFound
from fulfillment_portal.services.unit_conversion_service import parse_unit_mode, to_decimal


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _non_negative(value, *, field: str) -> Decimal:
    parsed = to_decimal(value)
    if parsed < 0:
        raise ValueError(f'{field} cannot be negative')
    return parsed


def list_products(db: Session, *, active_only: bool = True) -> list[Product]:
    query = select(Product).order_by(Product.category.asc(), Product.name.asc())
    if active_only:
        query = query.where(Product.active.is_(True))
    return db.execute(query).scalars().all()


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise DocumentNotFound('Product not found')
    return product


def products_by_id(db: Session, product_ids) -> dict[int, Product]:
    ids = {int(product_id) for product_id in product_ids}
    if not ids:
        return {}
    rows = db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
    return {row.id: row for row in rows}


def upsert_product(
    db: Session,
    *,
    name: str,
    category: str = '',
    unit_type: UnitMode | str = UnitMode.KG,
    box_weight=None,
    cost_price=0,
    wholesale_price=0,
    retail_price=0,
    product_id: int | None = None,
    active: bool = True,
) -> Product:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValueError('Product name is required')
    weight = to_decimal(box_weight) if box_weight not in (None, '') else None
    if weight is not None and weight < 0:
        raise ValueError('Box weight cannot be negative')

    product = get_product(db, product_id) if product_id is not None else Product()
    product.name = clean_name
    product.category = (category or '').strip()
    product.unit_type = parse_unit_mode(unit_type)
    product.box_weight = weight
    product.cost_price = _non_negative(cost_price, field='Cost price')
    product.wholesale_price = _non_negative(wholesale_price, field='Wholesale price')
    product.retail_price = _non_negative(retail_price, field='Retail price')
    product.active = active
    product.updated_at = _now()
    if product_id is None:
        db.add(product)
    db.flush()
    return product


def create_organization(
    db: Session,
    *,
    name: str,
    kind: OrganizationKind,
    biz_reg_no: str | None = None,
    phone: str | None = None,
) -> Organization:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValueError('Organization name is required')
    org = Organization(
        name=clean_name,
        kind=kind,
        biz_reg_no=(biz_reg_no or '').strip() or None,
        phone=(phone or '').strip() or None,
        active=True,
    )
    db.add(org)
    db.flush()
    return org


def get_organization(db: Session, org_id: int, *, kind: OrganizationKind | None = None) -> Organization:
    org = db.get(Organization, org_id)
    if org is None or not org.active or (kind is not None and org.kind != kind):
        label = kind.value.title() if kind else 'Organization'
        raise DocumentNotFound(f'{label} not found')
    return org


def list_organizations(db: Session, *, kind: OrganizationKind | None = None) -> list[Organization]:
    query = select(Organization).where(Organization.active.is_(True)).order_by(Organization.name.asc())
    if kind is not None:
        query = query.where(Organization.kind == kind)
    return db.execute(query).scalars().all()


def create_vehicle_type(db: Session, *, name: str, capacity_kg, enabled: bool = True) -> VehicleType:
    clean_name = (name or '').strip()
    if not clean_name:
        raise ValueError('Vehicle type name is required')
    vehicle_type = VehicleType(
        name=clean_name,
        capacity_kg=_non_negative(capacity_kg, field='Capacity'),
        enabled=enabled,
    )
    db.add(vehicle_type)
    db.flush()
    return vehicle_type


def list_vehicle_types(db: Session, *, enabled_only: bool = True) -> list[VehicleType]:
    query = select(VehicleType).order_by(VehicleType.capacity_kg.asc())
    if enabled_only:
        query = query.where(VehicleType.enabled.is_(True))
    return db.execute(query).scalars().all()


def get_vehicle_type(db: Session, vehicle_type_id: int) -> VehicleType:
    vehicle_type = db.get(VehicleType, vehicle_type_id)
    if vehicle_type is None or not vehicle_type.enabled:
        raise DocumentNotFound('Vehicle type not found')
    return vehicle_type

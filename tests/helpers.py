from __future__ import annotations

from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fulfillment_portal.models import Base, OrganizationKind, UnitMode
from fulfillment_portal.services.catalog_service import create_organization, create_vehicle_type, upsert_product
from fulfillment_portal.services.order_sheet_service import (
    OrderLineInput,
    confirm_order_sheet,
    create_order_sheet,
    send_order_sheet,
)

STAFF = 'staff:tester'


def make_session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_product(
    db,
    name: str,
    *,
    unit_type: UnitMode = UnitMode.KG,
    box_weight=None,
    cost_price='0',
    wholesale_price='0',
):
    return upsert_product(
        db,
        name=name,
        category='Beef',
        unit_type=unit_type,
        box_weight=Decimal(str(box_weight)) if box_weight is not None else None,
        cost_price=Decimal(cost_price),
        wholesale_price=Decimal(wholesale_price),
    )


def add_supplier(db, name: str):
    return create_organization(db, name=name, kind=OrganizationKind.SUPPLIER)


def add_carrier(db, name: str = 'Coldline Logistics'):
    return create_organization(db, name=name, kind=OrganizationKind.CARRIER)


def add_vehicle_type(db, name: str = '1t refrigerated'):
    return create_vehicle_type(db, name=name, capacity_kg=Decimal('1000'))


def confirmed_sales_order(db, quantities: dict, *, customer_name: str = 'Acme Co'):
    """Create, send and confirm a staff order sheet; ``quantities`` maps product to kg."""
    result = create_order_sheet(
        db,
        actor=STAFF,
        customer_name=customer_name,
        lines=[
            OrderLineInput(product_id=product.id, qty=Decimal(str(qty)), unit=UnitMode.KG)
            for product, qty in quantities.items()
        ],
    )
    send_order_sheet(db, order_sheet_id=result.order_sheet.id, actor=STAFF)
    return confirm_order_sheet(db, order_sheet_id=result.order_sheet.id, actor=STAFF)

from decimal import Decimal

from sqlalchemy import select

from fulfillment_portal.db import SessionLocal, engine
from fulfillment_portal.models import (
    Base,
    Organization,
    OrganizationKind,
    Principal,
    PrincipalRole,
    Product,
    UnitMode,
    VehicleType,
)
from fulfillment_portal.security.passwords import hash_password

DEMO_PRINCIPALS = [
    ('admin', 'adminpass', PrincipalRole.ADMIN),
    ('ops1', 'opspass', PrincipalRole.OPS),
    ('gate1', 'gatepass', PrincipalRole.WAREHOUSE),
]

DEMO_PRODUCTS = [
    ('Sirloin', 'Beef', UnitMode.KG, None, Decimal('72000'), Decimal('85000'), Decimal('98000')),
    ('Tenderloin', 'Beef', UnitMode.BOX, Decimal('18.5'), Decimal('9800'), Decimal('12000'), Decimal('14500')),
    ('Pork Belly', 'Pork', UnitMode.BOX, Decimal('10'), Decimal('21000'), Decimal('24500'), Decimal('29000')),
]

DEMO_ORGANIZATIONS = [
    ('Acme Co', OrganizationKind.CUSTOMER),
    ('Hanwoo Farms', OrganizationKind.SUPPLIER),
    ('Valley Meats', OrganizationKind.SUPPLIER),
    ('Coldline Logistics', OrganizationKind.CARRIER),
]

DEMO_VEHICLE_TYPES = [('1t refrigerated', Decimal('1000')), ('5t refrigerated', Decimal('5000'))]


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        for username, password, role in DEMO_PRINCIPALS:
            existing = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
            if not existing:
                db.add(Principal(username=username, password_hash=hash_password(password), role=role, active=True))

        for name, category, unit_type, box_weight, cost, wholesale, retail in DEMO_PRODUCTS:
            existing = db.execute(select(Product).where(Product.name == name)).scalar_one_or_none()
            if not existing:
                db.add(
                    Product(
                        name=name,
                        category=category,
                        unit_type=unit_type,
                        box_weight=box_weight,
                        cost_price=cost,
                        wholesale_price=wholesale,
                        retail_price=retail,
                        active=True,
                    )
                )

        for name, kind in DEMO_ORGANIZATIONS:
            existing = db.execute(
                select(Organization).where(Organization.name == name, Organization.kind == kind)
            ).scalar_one_or_none()
            if not existing:
                db.add(Organization(name=name, kind=kind, active=True))

        for name, capacity in DEMO_VEHICLE_TYPES:
            existing = db.execute(select(VehicleType).where(VehicleType.name == name)).scalar_one_or_none()
            if not existing:
                db.add(VehicleType(name=name, capacity_kg=capacity, enabled=True))

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')

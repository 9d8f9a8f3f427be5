from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from fulfillment_portal.config import settings
from fulfillment_portal.models import (
    AccessToken,
    Capability,
    DocumentType,
    OrderSheet,
    OrderSheetItem,
    OrderSheetStatus,
    PriceList,
    PriceListItem,
)
from fulfillment_portal.services.catalog_service import products_by_id
from fulfillment_portal.services.errors import DocumentNotFound, PreconditionNotMet
from fulfillment_portal.services.history_service import log_history
from fulfillment_portal.services.lifecycle_service import get_document
from fulfillment_portal.services.notification_service import LinkNotification, send_link_stub
from fulfillment_portal.services.token_service import issue_token, resolve_token, revoke_document_tokens
from fulfillment_portal.services.unit_conversion_service import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceListItemInput:
    product_id: int
    supply_price: Decimal | None = None


@dataclass(frozen=True)
class ShareResult:
    order_sheet: OrderSheet
    token: str
    notification: LinkNotification


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def is_price_list_expired(price_list: PriceList, *, now: datetime | None = None) -> bool:
    if price_list.valid_until is None:
        return False
    return (now or _now()) > price_list.valid_until


def _snapshot_items(db: Session, *, price_list_id: int, items: list[PriceListItemInput]) -> list[PriceListItem]:
    if not items:
        raise ValueError('Add at least one product to the price list')
    seen: set[int] = set()
    for item in items:
        if item.product_id in seen:
            raise ValueError(f'Product {item.product_id} is listed twice')
        seen.add(item.product_id)

    products = products_by_id(db, seen)
    missing = sorted(seen - set(products))
    if missing:
        raise DocumentNotFound(f'Products not found: {", ".join(str(pid) for pid in missing)}')

    rows: list[PriceListItem] = []
    for position, item in enumerate(items):
        product = products[item.product_id]
        supply_price = to_decimal(item.supply_price) if item.supply_price is not None else product.wholesale_price
        if supply_price < 0:
            raise ValueError('Supply price cannot be negative')
        rows.append(
            PriceListItem(
                price_list_id=price_list_id,
                position=position,
                product_id=product.id,
                name=product.name,
                cost_price=product.cost_price,
                wholesale_price=product.wholesale_price,
                supply_price=supply_price,
                unit=product.unit_type,
                category=product.category,
                box_weight=product.box_weight,
            )
        )
    return rows


def list_price_list_items(db: Session, *, price_list_id: int) -> list[PriceListItem]:
    return db.execute(
        select(PriceListItem)
        .where(PriceListItem.price_list_id == price_list_id)
        .order_by(PriceListItem.position.asc())
    ).scalars().all()


def list_price_lists(db: Session) -> list[dict]:
    now = _now()
    rows = db.execute(select(PriceList).order_by(PriceList.created_at.desc(), PriceList.id.desc())).scalars().all()
    return [
        {
            'id': row.id,
            'title': row.title,
            'valid_until': row.valid_until,
            'is_expired': is_price_list_expired(row, now=now),
            'reach_count': row.reach_count,
            'conversion_count': row.conversion_count,
            'created_at': row.created_at,
        }
        for row in rows
    ]


def create_price_list(
    db: Session,
    *,
    title: str,
    items: list[PriceListItemInput],
    valid_until: datetime | None = None,
    admin_comment: str | None = None,
    principal_id: int | None = None,
) -> PriceList:
    clean_title = (title or '').strip()
    if not clean_title:
        raise ValueError('Price list title is required')
    price_list = PriceList(
        title=clean_title,
        valid_until=valid_until,
        admin_comment=(admin_comment or '').strip() or None,
        reach_count=0,
        conversion_count=0,
        created_by_principal_id=principal_id,
    )
    db.add(price_list)
    db.flush()
    db.add_all(_snapshot_items(db, price_list_id=price_list.id, items=items))
    db.flush()
    return price_list


def update_price_list(
    db: Session,
    *,
    price_list_id: int,
    title: str,
    items: list[PriceListItemInput],
    valid_until: datetime | None,
    admin_comment: str | None = None,
) -> PriceList:
    # Order sheets already produced from this list keep their own copy of the items.
    price_list = get_document(db, PriceList, price_list_id, for_update=True)
    clean_title = (title or '').strip()
    if not clean_title:
        raise ValueError('Price list title is required')
    new_items = _snapshot_items(db, price_list_id=price_list.id, items=items)
    db.execute(delete(PriceListItem).where(PriceListItem.price_list_id == price_list.id))
    db.add_all(new_items)
    price_list.title = clean_title
    if price_list.valid_until != valid_until:
        price_list.valid_until = valid_until
        _sync_share_token_expiry(db, price_list)
    price_list.admin_comment = (admin_comment or '').strip() or None
    price_list.updated_at = _now()
    db.flush()
    return price_list


def set_supply_price(db: Session, *, price_list_id: int, product_id: int, supply_price) -> PriceListItem:
    get_document(db, PriceList, price_list_id, for_update=True)
    item = db.execute(
        select(PriceListItem).where(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.product_id == product_id,
        )
    ).scalar_one_or_none()
    if item is None:
        raise DocumentNotFound('Product is not on this price list')
    price = to_decimal(supply_price)
    if price < 0:
        raise ValueError('Supply price cannot be negative')
    item.supply_price = price
    db.flush()
    return item


def duplicate_price_list(
    db: Session,
    *,
    price_list_id: int,
    title: str | None = None,
    principal_id: int | None = None,
) -> PriceList:
    source = get_document(db, PriceList, price_list_id)
    copy = PriceList(
        title=(title or '').strip() or f'{source.title} (copy)',
        valid_until=None,
        admin_comment=source.admin_comment,
        reach_count=0,
        conversion_count=0,
        created_by_principal_id=principal_id,
    )
    db.add(copy)
    db.flush()
    db.add_all(
        [
            PriceListItem(
                price_list_id=copy.id,
                position=item.position,
                product_id=item.product_id,
                name=item.name,
                cost_price=item.cost_price,
                wholesale_price=item.wholesale_price,
                supply_price=item.supply_price,
                unit=item.unit,
                category=item.category,
                box_weight=item.box_weight,
            )
            for item in list_price_list_items(db, price_list_id=source.id)
        ]
    )
    db.flush()
    return copy


def delete_price_list(db: Session, *, price_list_id: int, actor: str) -> None:
    price_list = get_document(db, PriceList, price_list_id, for_update=True)
    revoked = revoke_document_tokens(db, document_type=DocumentType.PRICE_LIST, document_id=price_list.id)
    db.execute(
        update(OrderSheet)
        .where(OrderSheet.source_price_list_id == price_list.id)
        .values(source_price_list_id=None)
        .execution_options(synchronize_session='fetch')
    )
    db.execute(delete(PriceListItem).where(PriceListItem.price_list_id == price_list.id))
    log_history(
        db,
        document_type=DocumentType.PRICE_LIST,
        document_id=price_list.id,
        event='DELETED',
        actor=actor,
        metadata={'title': price_list.title, 'revoked_tokens': revoked},
    )
    db.delete(price_list)
    db.flush()


def _share_token_expiry(price_list: PriceList) -> datetime:
    window = timedelta(days=settings.price_list_share_days)
    if price_list.valid_until is not None:
        return price_list.valid_until + window
    return _now() + window


def _sync_share_token_expiry(db: Session, price_list: PriceList) -> None:
    token = db.get(AccessToken, price_list.share_token_id) if price_list.share_token_id else None
    if token is not None:
        token.expires_at = _share_token_expiry(price_list)


def publish_share_link(db: Session, *, price_list_id: int, actor: str, recipient: str = '') -> LinkNotification:
    price_list = get_document(db, PriceList, price_list_id, for_update=True)
    token_id = price_list.share_token_id
    current = db.get(AccessToken, token_id) if token_id else None
    if current is None or (current.expires_at is not None and current.expires_at <= _now()):
        token = issue_token(
            db,
            document_type=DocumentType.PRICE_LIST,
            document_id=price_list.id,
            capability=Capability.VIEW_PRICE_LIST,
            expires_at=_share_token_expiry(price_list),
        )
        token_id = token.id
        price_list.share_token_id = token_id
        price_list.updated_at = _now()
    return send_link_stub(
        db,
        actor=actor,
        document_type=DocumentType.PRICE_LIST,
        document_id=price_list.id,
        capability=Capability.VIEW_PRICE_LIST,
        token=token_id,
        recipient=recipient,
        title=price_list.title,
    )


def record_view(db: Session, *, document_type: DocumentType, document_id: int) -> None:
    """Count one view. Every call counts, including reloads by the same guest."""
    models = {DocumentType.PRICE_LIST: PriceList, DocumentType.ORDER_SHEET: OrderSheet}
    model = models.get(document_type)
    if model is None:
        raise ValueError(f'{document_type.value} does not track reach')
    result = db.execute(
        update(model)
        .where(model.id == document_id)
        .values(reach_count=model.reach_count + 1)
        .execution_options(synchronize_session='fetch')
    )
    if not result.rowcount:
        raise DocumentNotFound('Document not found')


def _increment_conversion(db: Session, *, price_list_id: int) -> None:
    db.execute(
        update(PriceList)
        .where(PriceList.id == price_list_id)
        .values(conversion_count=PriceList.conversion_count + 1)
        .execution_options(synchronize_session='fetch')
    )


def share(
    db: Session,
    *,
    price_list_id: int,
    recipient_name: str | None = None,
    actor: str,
) -> ShareResult:
    price_list = get_document(db, PriceList, price_list_id)
    if is_price_list_expired(price_list):
        raise PreconditionNotMet('Price list is no longer valid for ordering')
    items = list_price_list_items(db, price_list_id=price_list.id)
    if not items:
        raise PreconditionNotMet('Price list has no items')

    now = _now()
    customer_name = (recipient_name or '').strip() or price_list.title
    order_sheet = OrderSheet(
        customer_name=customer_name,
        is_guest=True,
        status=OrderSheetStatus.SENT,
        cut_off_at=now + timedelta(hours=settings.order_sheet_cutoff_hours),
        ship_to='',
        source_price_list_id=price_list.id,
        reach_count=0,
        total_kg=Decimal('0'),
        total_amount=Decimal('0'),
        admin_comment=f'Guest order started from price list "{price_list.title}"',
        created_at=now,
        updated_at=now,
    )
    db.add(order_sheet)
    db.flush()
    db.add_all(
        [
            OrderSheetItem(
                order_sheet_id=order_sheet.id,
                position=item.position,
                product_id=item.product_id,
                product_name=item.name,
                category=item.category,
                unit=item.unit,
                box_weight=item.box_weight,
                unit_price=item.supply_price,
                qty_requested=Decimal('0'),
                estimated_kg=Decimal('0'),
                amount=Decimal('0'),
            )
            for item in items
        ]
    )
    token = issue_token(
        db,
        document_type=DocumentType.ORDER_SHEET,
        document_id=order_sheet.id,
        capability=Capability.EDIT_ORDER_SHEET,
    )
    order_sheet.invite_token_id = token.id
    _increment_conversion(db, price_list_id=price_list.id)
    log_history(
        db,
        document_type=DocumentType.ORDER_SHEET,
        document_id=order_sheet.id,
        event='CREATED_FROM_PRICE_LIST',
        actor=actor,
        to_status=OrderSheetStatus.SENT.value,
        metadata={'price_list_id': price_list.id},
    )
    notification = send_link_stub(
        db,
        actor=actor,
        document_type=DocumentType.ORDER_SHEET,
        document_id=order_sheet.id,
        capability=Capability.EDIT_ORDER_SHEET,
        token=token.id,
        recipient=customer_name,
        title=price_list.title,
    )
    db.flush()
    logger.info('price list #%s shared as order sheet #%s', price_list.id, order_sheet.id)
    return ShareResult(order_sheet=order_sheet, token=token.id, notification=notification)


def price_list_detail(db: Session, price_list: PriceList) -> dict:
    return {
        'id': price_list.id,
        'title': price_list.title,
        'valid_until': price_list.valid_until,
        'is_expired': is_price_list_expired(price_list),
        'reach_count': price_list.reach_count,
        'conversion_count': price_list.conversion_count,
        'admin_comment': price_list.admin_comment,
        'items': [
            {
                'product_id': item.product_id,
                'name': item.name,
                'category': item.category,
                'unit': item.unit.value,
                'box_weight': item.box_weight,
                'supply_price': item.supply_price,
            }
            for item in list_price_list_items(db, price_list_id=price_list.id)
        ],
    }


def view_price_list_by_token(db: Session, *, token: str) -> dict:
    resolved = resolve_token(db, token=token, capability=Capability.VIEW_PRICE_LIST)
    record_view(db, document_type=DocumentType.PRICE_LIST, document_id=resolved.document_id)
    price_list = get_document(db, PriceList, resolved.document_id)
    db.refresh(price_list)
    return price_list_detail(db, price_list)


def funnel_summary(db: Session, *, price_list_id: int) -> dict:
    price_list = get_document(db, PriceList, price_list_id)
    db.refresh(price_list)
    order_sheet_reach, order_sheet_count = db.execute(
        select(func.coalesce(func.sum(OrderSheet.reach_count), 0), func.count(OrderSheet.id)).where(
            OrderSheet.source_price_list_id == price_list.id
        )
    ).one()
    reach = price_list.reach_count
    conversions = price_list.conversion_count
    rate = (Decimal(conversions) / Decimal(reach)).quantize(Decimal('0.0001')) if reach else Decimal('0')
    return {
        'price_list_id': price_list.id,
        'reach_count': reach,
        'conversion_count': conversions,
        'conversion_rate': rate,
        'order_sheets': int(order_sheet_count),
        'order_sheet_reach': int(order_sheet_reach),
        'cumulative_reach': reach + int(order_sheet_reach),
    }

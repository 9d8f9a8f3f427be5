from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from fulfillment_portal.db import get_db
from fulfillment_portal.dependencies import get_public_actor
from fulfillment_portal.models import Capability
from fulfillment_portal.schemas import (
    DispatchDetailsRequest,
    ReplaceItemsRequest,
    ShareRequest,
    SupplierSubmitRequest,
    UpdateLineRequest,
)
from fulfillment_portal.services.allocation_service import (
    purchase_order_detail,
    submit_supplier_update,
    view_purchase_order_by_token,
)
from fulfillment_portal.services.dispatch_service import (
    DispatchDetails,
    dispatch_view_by_token,
    shipment_detail,
    submit_dispatch,
)
from fulfillment_portal.services.order_sheet_service import (
    OrderLineInput,
    order_sheet_detail,
    replace_items,
    resolve_guest_sheet,
    update_line,
    view_order_sheet_by_token,
)
from fulfillment_portal.services.price_list_service import share, view_price_list_by_token
from fulfillment_portal.services.token_service import build_deep_link, resolve_token

router = APIRouter(tags=['public'])


@router.get('/price-view/{token}')
def view_price_list(token: str, db: Session = Depends(get_db)):
    detail = view_price_list_by_token(db, token=token)
    db.commit()
    return detail


@router.post('/price-view/{token}/order', status_code=201)
def start_guest_order(token: str, body: ShareRequest, request: Request, db: Session = Depends(get_db)):
    resolved = resolve_token(db, token=token, capability=Capability.VIEW_PRICE_LIST)
    result = share(
        db,
        price_list_id=resolved.document_id,
        recipient_name=body.recipient_name,
        actor=get_public_actor(request, 'guest'),
    )
    db.commit()
    return {
        'order_sheet_id': result.order_sheet.id,
        'token': result.token,
        'link': build_deep_link(Capability.EDIT_ORDER_SHEET, result.token),
    }


@router.get('/order/{token}')
def view_order_sheet(token: str, db: Session = Depends(get_db)):
    detail = view_order_sheet_by_token(db, token=token)
    db.commit()
    return detail


@router.put('/order/{token}/lines/{product_id}')
def update_order_line(
    token: str,
    product_id: int,
    body: UpdateLineRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    order_sheet_id = resolve_guest_sheet(db, token=token)
    result = update_line(
        db,
        order_sheet_id=order_sheet_id,
        product_id=product_id,
        qty=body.qty,
        unit_mode=body.unit,
        actor=get_public_actor(request, 'guest'),
        guest=True,
    )
    db.commit()
    return {
        'order_sheet': order_sheet_detail(db, result.order_sheet),
        'warnings': [warning.as_dict() for warning in result.warnings],
    }


@router.put('/order/{token}')
def submit_order_sheet(token: str, body: ReplaceItemsRequest, request: Request, db: Session = Depends(get_db)):
    order_sheet_id = resolve_guest_sheet(db, token=token)
    result = replace_items(
        db,
        order_sheet_id=order_sheet_id,
        lines=[OrderLineInput(product_id=line.product_id, qty=line.qty, unit=line.unit) for line in body.lines],
        actor=get_public_actor(request, 'guest'),
        guest=True,
        ship_to=body.ship_to,
        customer_comment=body.customer_comment,
    )
    db.commit()
    return {
        'order_sheet': order_sheet_detail(db, result.order_sheet),
        'warnings': [warning.as_dict() for warning in result.warnings],
    }


@router.get('/purchase-order/{token}')
def view_purchase_order(token: str, db: Session = Depends(get_db)):
    return view_purchase_order_by_token(db, token=token)


@router.post('/purchase-order/{token}')
def submit_purchase_order(token: str, body: SupplierSubmitRequest, db: Session = Depends(get_db)):
    po = submit_supplier_update(
        db,
        token=token,
        expected_arrival_date=body.expected_arrival_date,
        supplier_note=body.supplier_note,
        item_quantities=body.item_quantities,
    )
    db.commit()
    return purchase_order_detail(db, po)


@router.get('/dispatch/{token}')
def view_dispatch(token: str, db: Session = Depends(get_db)):
    return dispatch_view_by_token(db, token=token)


@router.post('/dispatch/{token}')
def submit_dispatch_form(token: str, body: DispatchDetailsRequest, db: Session = Depends(get_db)):
    shipment = submit_dispatch(
        db,
        token=token,
        details=DispatchDetails(
            driver_name=body.driver_name,
            driver_phone=body.driver_phone,
            vehicle_number=body.vehicle_number,
            vehicle_type_id=body.vehicle_type_id,
            eta_at=body.eta_at,
        ),
    )
    db.commit()
    return shipment_detail(db, shipment)

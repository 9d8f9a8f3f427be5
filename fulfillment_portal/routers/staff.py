from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fulfillment_portal.auth import GATE_ROLES, OFFICE_ROLES, READ_ROLES, Principal, require_role
from fulfillment_portal.db import get_db
from fulfillment_portal.models import (
    DocumentType,
    OrderSheet,
    OrderSheetStatus,
    OrganizationKind,
    OutboundGate,
    PriceList,
    PurchaseOrder,
    PurchaseOrderStatus,
    ReceiptGate,
    SalesOrder,
    Shipment,
)
from fulfillment_portal.schemas import (
    AllocateRequest,
    CopyFromPastRequest,
    CreateOrderSheetRequest,
    CreatePurchaseOrderRequest,
    CreateShipmentRequest,
    DuplicatePriceListRequest,
    ModifyShipmentRequest,
    OrganizationRequest,
    OutboundChecklistRequest,
    OutboundDocumentsRequest,
    PriceListRequest,
    ProductRequest,
    ReceiptDocumentsRequest,
    ReceiptLineRequest,
    ReceiptVehicleRequest,
    ReplaceItemsRequest,
    RequestDispatchRequest,
    ShareLinkRequest,
    ShareRequest,
    SignatureRequest,
    StaffDispatchRequest,
    SupplyPriceRequest,
    UpdateLineRequest,
    VehicleTypeRequest,
)
from fulfillment_portal.services import (
    allocation_service,
    catalog_service,
    dispatch_service,
    gate_service,
    order_sheet_service,
    price_list_service,
)
from fulfillment_portal.services.history_service import list_history
from fulfillment_portal.services.lifecycle_service import get_document

router = APIRouter(prefix='/staff', tags=['staff'])

office = require_role(*OFFICE_ROLES)
gate_staff = require_role(*GATE_ROLES)
reader = require_role(*READ_ROLES)


def _price_list_items(body: PriceListRequest) -> list[price_list_service.PriceListItemInput]:
    return [
        price_list_service.PriceListItemInput(product_id=item.product_id, supply_price=item.supply_price)
        for item in body.items
    ]


def _order_lines(lines) -> list[order_sheet_service.OrderLineInput]:
    return [order_sheet_service.OrderLineInput(product_id=line.product_id, qty=line.qty, unit=line.unit) for line in lines]


def _product_row(product) -> dict:
    return {
        'id': product.id,
        'name': product.name,
        'category': product.category,
        'unit_type': product.unit_type.value,
        'box_weight': product.box_weight,
        'cost_price': product.cost_price,
        'wholesale_price': product.wholesale_price,
        'retail_price': product.retail_price,
        'active': product.active,
    }


def _line_result(db: Session, result: order_sheet_service.LineUpdateResult) -> dict:
    return {
        'order_sheet': order_sheet_service.order_sheet_detail(db, result.order_sheet),
        'warnings': [warning.as_dict() for warning in result.warnings],
    }


# Catalog


@router.get('/products')
def list_products(
    include_inactive: bool = False,
    _: Principal = Depends(reader),
    db: Session = Depends(get_db),
):
    return [_product_row(row) for row in catalog_service.list_products(db, active_only=not include_inactive)]


@router.post('/products', status_code=201)
def create_product(body: ProductRequest, _: Principal = Depends(office), db: Session = Depends(get_db)):
    product = catalog_service.upsert_product(db, **body.model_dump())
    db.commit()
    return _product_row(product)


@router.put('/products/{product_id}')
def update_product(product_id: int, body: ProductRequest, _: Principal = Depends(office), db: Session = Depends(get_db)):
    product = catalog_service.upsert_product(db, product_id=product_id, **body.model_dump())
    db.commit()
    return _product_row(product)


@router.get('/organizations')
def list_organizations(
    kind: OrganizationKind | None = None,
    _: Principal = Depends(reader),
    db: Session = Depends(get_db),
):
    return [
        {'id': org.id, 'name': org.name, 'kind': org.kind.value, 'biz_reg_no': org.biz_reg_no, 'phone': org.phone}
        for org in catalog_service.list_organizations(db, kind=kind)
    ]


@router.post('/organizations', status_code=201)
def create_organization(body: OrganizationRequest, _: Principal = Depends(office), db: Session = Depends(get_db)):
    org = catalog_service.create_organization(db, **body.model_dump())
    db.commit()
    return {'id': org.id, 'name': org.name, 'kind': org.kind.value}


@router.get('/vehicle-types')
def list_vehicle_types(_: Principal = Depends(reader), db: Session = Depends(get_db)):
    return [
        {'id': row.id, 'name': row.name, 'capacity_kg': row.capacity_kg}
        for row in catalog_service.list_vehicle_types(db)
    ]


@router.post('/vehicle-types', status_code=201)
def create_vehicle_type(body: VehicleTypeRequest, _: Principal = Depends(office), db: Session = Depends(get_db)):
    row = catalog_service.create_vehicle_type(db, name=body.name, capacity_kg=body.capacity_kg)
    db.commit()
    return {'id': row.id, 'name': row.name, 'capacity_kg': row.capacity_kg}


# Price lists


@router.get('/price-lists')
def list_price_lists(_: Principal = Depends(reader), db: Session = Depends(get_db)):
    return price_list_service.list_price_lists(db)


@router.post('/price-lists', status_code=201)
def create_price_list(body: PriceListRequest, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    price_list = price_list_service.create_price_list(
        db,
        title=body.title,
        items=_price_list_items(body),
        valid_until=body.valid_until,
        admin_comment=body.admin_comment,
        principal_id=principal.id,
    )
    db.commit()
    return price_list_service.price_list_detail(db, price_list)


@router.get('/price-lists/{price_list_id}')
def get_price_list(price_list_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return price_list_service.price_list_detail(db, get_document(db, PriceList, price_list_id))


@router.put('/price-lists/{price_list_id}')
def update_price_list(
    price_list_id: int,
    body: PriceListRequest,
    _: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    price_list = price_list_service.update_price_list(
        db,
        price_list_id=price_list_id,
        title=body.title,
        items=_price_list_items(body),
        valid_until=body.valid_until,
        admin_comment=body.admin_comment,
    )
    db.commit()
    return price_list_service.price_list_detail(db, price_list)


@router.put('/price-lists/{price_list_id}/items/{product_id}/supply-price')
def set_supply_price(
    price_list_id: int,
    product_id: int,
    body: SupplyPriceRequest,
    _: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    item = price_list_service.set_supply_price(
        db, price_list_id=price_list_id, product_id=product_id, supply_price=body.supply_price
    )
    db.commit()
    return {'product_id': item.product_id, 'supply_price': item.supply_price}


@router.delete('/price-lists/{price_list_id}', status_code=204)
def delete_price_list(price_list_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    price_list_service.delete_price_list(db, price_list_id=price_list_id, actor=principal.actor)
    db.commit()


@router.post('/price-lists/{price_list_id}/duplicate', status_code=201)
def duplicate_price_list(
    price_list_id: int,
    body: DuplicatePriceListRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    copy = price_list_service.duplicate_price_list(
        db, price_list_id=price_list_id, title=body.title, principal_id=principal.id
    )
    db.commit()
    return price_list_service.price_list_detail(db, copy)


@router.post('/price-lists/{price_list_id}/share-link')
def publish_share_link(
    price_list_id: int,
    body: ShareLinkRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    notification = price_list_service.publish_share_link(
        db, price_list_id=price_list_id, actor=principal.actor, recipient=body.recipient
    )
    db.commit()
    return notification.as_dict()


@router.post('/price-lists/{price_list_id}/share', status_code=201)
def share_price_list(
    price_list_id: int,
    body: ShareRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    result = price_list_service.share(
        db, price_list_id=price_list_id, recipient_name=body.recipient_name, actor=principal.actor
    )
    db.commit()
    return {
        'order_sheet_id': result.order_sheet.id,
        'token': result.token,
        'notification': result.notification.as_dict(),
    }


@router.get('/price-lists/{price_list_id}/funnel')
def price_list_funnel(price_list_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return price_list_service.funnel_summary(db, price_list_id=price_list_id)


# Order sheets and sales orders


@router.get('/order-sheets')
def list_order_sheets(
    status: OrderSheetStatus | None = None,
    _: Principal = Depends(reader),
    db: Session = Depends(get_db),
):
    return order_sheet_service.list_order_sheets(db, status=status)


@router.post('/order-sheets', status_code=201)
def create_order_sheet(
    body: CreateOrderSheetRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    result = order_sheet_service.create_order_sheet(
        db,
        actor=principal.actor,
        lines=_order_lines(body.lines),
        customer_org_id=body.customer_org_id,
        customer_name=body.customer_name,
        ship_to=body.ship_to,
        ship_date=body.ship_date,
        cut_off_at=body.cut_off_at,
        admin_comment=body.admin_comment,
    )
    db.commit()
    return _line_result(db, result)


@router.get('/order-sheets/{order_sheet_id}')
def get_order_sheet(order_sheet_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return order_sheet_service.order_sheet_detail(db, get_document(db, OrderSheet, order_sheet_id))


@router.put('/order-sheets/{order_sheet_id}/lines/{product_id}')
def update_order_line(
    order_sheet_id: int,
    product_id: int,
    body: UpdateLineRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    result = order_sheet_service.update_line(
        db,
        order_sheet_id=order_sheet_id,
        product_id=product_id,
        qty=body.qty,
        unit_mode=body.unit,
        actor=principal.actor,
    )
    db.commit()
    return _line_result(db, result)


@router.put('/order-sheets/{order_sheet_id}')
def replace_order_items(
    order_sheet_id: int,
    body: ReplaceItemsRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    result = order_sheet_service.replace_items(
        db,
        order_sheet_id=order_sheet_id,
        lines=_order_lines(body.lines),
        actor=principal.actor,
        ship_to=body.ship_to,
        customer_comment=body.customer_comment,
    )
    db.commit()
    return _line_result(db, result)


@router.post('/order-sheets/{order_sheet_id}/send')
def send_order_sheet(order_sheet_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    notification = order_sheet_service.send_order_sheet(db, order_sheet_id=order_sheet_id, actor=principal.actor)
    db.commit()
    return notification.as_dict()


@router.post('/order-sheets/{order_sheet_id}/confirm', status_code=201)
def confirm_order_sheet(order_sheet_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    sales_order = order_sheet_service.confirm_order_sheet(db, order_sheet_id=order_sheet_id, actor=principal.actor)
    db.commit()
    return order_sheet_service.sales_order_detail(db, sales_order)


@router.get('/sales-orders/{sales_order_id}')
def get_sales_order(sales_order_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return order_sheet_service.sales_order_detail(db, get_document(db, SalesOrder, sales_order_id))


@router.get('/sales-orders/{sales_order_id}/allocation')
def get_allocation_board(sales_order_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return allocation_service.allocation_board(db, sales_order_id=sales_order_id)


# Purchase orders


@router.get('/purchase-orders')
def list_purchase_orders(
    supplier_org_id: int | None = None,
    status: PurchaseOrderStatus | None = None,
    _: Principal = Depends(reader),
    db: Session = Depends(get_db),
):
    return allocation_service.list_purchase_orders(db, supplier_org_id=supplier_org_id, status=status)


@router.post('/purchase-orders', status_code=201)
def create_purchase_order(
    body: CreatePurchaseOrderRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    po = allocation_service.create_purchase_order(
        db,
        supplier_org_id=body.supplier_org_id,
        actor=principal.actor,
        sales_order_id=body.sales_order_id,
        lines=[
            allocation_service.PurchaseLineInput(product_id=line.product_id, qty_kg=line.qty_kg, unit_price=line.unit_price)
            for line in body.lines
        ],
        expected_arrival_date=body.expected_arrival_date,
        memo=body.memo,
        principal_id=principal.id,
    )
    db.commit()
    return allocation_service.purchase_order_detail(db, po)


@router.post('/purchase-orders/copy-from-past')
def copy_from_past_order(body: CopyFromPastRequest, _: Principal = Depends(office), db: Session = Depends(get_db)):
    return allocation_service.copy_from_past_order(db, source_type=body.source_type, source_id=body.source_id)


@router.get('/purchase-orders/{purchase_order_id}')
def get_purchase_order(purchase_order_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return allocation_service.purchase_order_detail(db, get_document(db, PurchaseOrder, purchase_order_id))


@router.delete('/purchase-orders/{purchase_order_id}', status_code=204)
def delete_purchase_order(purchase_order_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    allocation_service.delete_draft_purchase_order(db, purchase_order_id=purchase_order_id, actor=principal.actor)
    db.commit()


@router.post('/purchase-orders/{purchase_order_id}/allocations')
def allocate(
    purchase_order_id: int,
    body: AllocateRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    result = allocation_service.allocate(
        db,
        purchase_order_id=purchase_order_id,
        sales_order_item_id=body.sales_order_item_id,
        supplier_org_id=body.supplier_org_id,
        qty_kg=body.qty_kg,
        actor=principal.actor,
    )
    db.commit()
    return {
        'sales_order_item_id': result.sales_order_item_id,
        'allocated_total': result.allocated_total,
        'required': result.required,
        'is_fully_allocated': result.is_fully_allocated,
        'is_over_allocated': result.is_over_allocated,
        'warnings': [warning.as_dict() for warning in result.warnings],
    }


@router.post('/purchase-orders/{purchase_order_id}/send')
def send_purchase_order(purchase_order_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    notification = allocation_service.send_purchase_order(db, purchase_order_id=purchase_order_id, actor=principal.actor)
    db.commit()
    return notification.as_dict()


# Receipt gate


@router.post('/purchase-orders/{purchase_order_id}/receipt-gate', status_code=201)
def open_receipt_gate(purchase_order_id: int, principal: Principal = Depends(gate_staff), db: Session = Depends(get_db)):
    gate = gate_service.open_receipt_gate(db, purchase_order_id=purchase_order_id, actor=principal.actor)
    db.commit()
    return gate_service.receipt_gate_detail(db, gate)


@router.get('/receipt-gates/{gate_id}')
def get_receipt_gate(gate_id: int, _: Principal = Depends(gate_staff), db: Session = Depends(get_db)):
    return gate_service.receipt_gate_detail(db, get_document(db, ReceiptGate, gate_id))


@router.post('/receipt-gates/{gate_id}/documents')
def confirm_receipt_documents(
    gate_id: int,
    body: ReceiptDocumentsRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate = gate_service.confirm_receipt_documents(
        db,
        gate_id=gate_id,
        statement_checked=body.statement_checked,
        inspection_report_checked=body.inspection_report_checked,
        actor=principal.actor,
    )
    db.commit()
    return gate_service.receipt_gate_detail(db, gate)


@router.post('/receipt-gates/{gate_id}/vehicle')
def confirm_receipt_vehicle(
    gate_id: int,
    body: ReceiptVehicleRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate = gate_service.confirm_receipt_vehicle(
        db, gate_id=gate_id, vehicle_number=body.vehicle_number, driver_name=body.driver_name, actor=principal.actor
    )
    db.commit()
    return gate_service.receipt_gate_detail(db, gate)


@router.put('/receipt-gates/{gate_id}/lines/{line_id}')
def record_receipt_line(
    gate_id: int,
    line_id: int,
    body: ReceiptLineRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate_service.record_receipt_line(
        db,
        gate_id=gate_id,
        line_id=line_id,
        actual_kg=body.actual_kg,
        box_count=body.box_count,
        status=body.status,
        note=body.note,
        actor=principal.actor,
    )
    db.commit()
    return gate_service.receipt_gate_detail(db, get_document(db, ReceiptGate, gate_id))


@router.post('/receipt-gates/{gate_id}/complete')
def complete_receipt(gate_id: int, principal: Principal = Depends(gate_staff), db: Session = Depends(get_db)):
    po = gate_service.complete_receipt(db, gate_id=gate_id, actor=principal.actor)
    db.commit()
    return allocation_service.purchase_order_detail(db, po)


# Shipments and outbound gate


@router.post('/shipments', status_code=201)
def create_shipment(body: CreateShipmentRequest, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    shipment = dispatch_service.create_shipment(db, sales_order_id=body.sales_order_id, actor=principal.actor)
    db.commit()
    return dispatch_service.shipment_detail(db, shipment)


@router.get('/shipments/{shipment_id}')
def get_shipment(shipment_id: int, _: Principal = Depends(reader), db: Session = Depends(get_db)):
    return dispatch_service.shipment_detail(db, get_document(db, Shipment, shipment_id))


@router.post('/shipments/{shipment_id}/request-dispatch')
def request_dispatch(
    shipment_id: int,
    body: RequestDispatchRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    notification = dispatch_service.request_dispatch(
        db, shipment_id=shipment_id, carrier_org_id=body.carrier_org_id, actor=principal.actor
    )
    db.commit()
    return notification.as_dict()


@router.post('/shipments/{shipment_id}/dispatch')
def staff_dispatch(
    shipment_id: int,
    body: StaffDispatchRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    shipment = dispatch_service.staff_dispatch(
        db,
        shipment_id=shipment_id,
        carrier_org_id=body.carrier_org_id,
        details=dispatch_service.DispatchDetails(
            driver_name=body.driver_name,
            driver_phone=body.driver_phone,
            vehicle_number=body.vehicle_number,
            vehicle_type_id=body.vehicle_type_id,
            eta_at=body.eta_at,
        ),
        actor=principal.actor,
    )
    db.commit()
    return dispatch_service.shipment_detail(db, shipment)


@router.patch('/shipments/{shipment_id}')
def modify_shipment(
    shipment_id: int,
    body: ModifyShipmentRequest,
    principal: Principal = Depends(office),
    db: Session = Depends(get_db),
):
    shipment = dispatch_service.modify_after_dispatch(
        db, shipment_id=shipment_id, actor=principal.actor, **body.model_dump()
    )
    db.commit()
    return dispatch_service.shipment_detail(db, shipment)


@router.post('/shipments/{shipment_id}/deliver')
def deliver_shipment(shipment_id: int, principal: Principal = Depends(office), db: Session = Depends(get_db)):
    shipment = dispatch_service.deliver(db, shipment_id=shipment_id, actor=principal.actor)
    db.commit()
    return dispatch_service.shipment_detail(db, shipment)


@router.post('/shipments/{shipment_id}/outbound-gate', status_code=201)
def open_outbound_gate(shipment_id: int, principal: Principal = Depends(gate_staff), db: Session = Depends(get_db)):
    gate = gate_service.open_outbound_gate(db, shipment_id=shipment_id, actor=principal.actor)
    db.commit()
    return gate_service.outbound_gate_detail(gate)


@router.get('/outbound-gates/{gate_id}')
def get_outbound_gate(gate_id: int, _: Principal = Depends(gate_staff), db: Session = Depends(get_db)):
    return gate_service.outbound_gate_detail(get_document(db, OutboundGate, gate_id))


@router.post('/outbound-gates/{gate_id}/documents')
def confirm_outbound_documents(
    gate_id: int,
    body: OutboundDocumentsRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate = gate_service.confirm_outbound_documents(
        db, gate_id=gate_id, documents_matched=body.documents_matched, actor=principal.actor
    )
    db.commit()
    return gate_service.outbound_gate_detail(gate)


@router.post('/outbound-gates/{gate_id}/checklist')
def complete_outbound_checklist(
    gate_id: int,
    body: OutboundChecklistRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate = gate_service.complete_outbound_checklist(db, gate_id=gate_id, checklist=body.checklist, actor=principal.actor)
    db.commit()
    return gate_service.outbound_gate_detail(gate)


@router.post('/outbound-gates/{gate_id}/signature')
def sign_outbound(
    gate_id: int,
    body: SignatureRequest,
    principal: Principal = Depends(gate_staff),
    db: Session = Depends(get_db),
):
    gate = gate_service.sign_outbound(
        db, gate_id=gate_id, signature_ref=body.signature_ref, signed_by=body.signed_by, actor=principal.actor
    )
    db.commit()
    return gate_service.outbound_gate_detail(gate)


# History


@router.get('/history/{document_type}/{document_id}')
def document_history(
    document_type: DocumentType,
    document_id: int,
    _: Principal = Depends(reader),
    db: Session = Depends(get_db),
):
    return list_history(db, document_type=document_type, document_id=document_id)

from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import select

from fulfillment_portal.models import (
    OutboundGateStep,
    PurchaseOrderStatus,
    ReceiptGateStep,
    ReceiptLineStatus,
    SalesOrderItem,
    UnitMode,
)
from fulfillment_portal.services.allocation_service import allocate, create_purchase_order, send_purchase_order
from fulfillment_portal.services.dispatch_service import create_shipment
from fulfillment_portal.services.errors import IllegalTransition, PreconditionNotMet
from fulfillment_portal.services.gate_service import (
    REQUIRED_CHECKLIST_ITEMS,
    complete_outbound_checklist,
    complete_receipt,
    confirm_outbound_documents,
    confirm_receipt_documents,
    confirm_receipt_vehicle,
    list_receipt_lines,
    open_outbound_gate,
    open_receipt_gate,
    outbound_gate_detail,
    record_receipt_line,
    sign_outbound,
)
from tests.helpers import STAFF, add_product, add_supplier, confirmed_sales_order, make_session_factory

GATE = 'staff:gate1'


class ReceiptGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()
        tenderloin = add_product(
            self.db, 'Tenderloin', unit_type=UnitMode.BOX, box_weight='18.5', cost_price='70000', wholesale_price='90000'
        )
        supplier = add_supplier(self.db, 'North Farms')
        sales_order = confirmed_sales_order(self.db, {tenderloin: 40})
        so_item = self.db.execute(
            select(SalesOrderItem).where(SalesOrderItem.sales_order_id == sales_order.id)
        ).scalar_one()
        self.po = create_purchase_order(
            self.db, supplier_org_id=supplier.id, sales_order_id=sales_order.id, actor=STAFF
        )
        allocate(
            self.db,
            purchase_order_id=self.po.id,
            sales_order_item_id=so_item.id,
            supplier_org_id=supplier.id,
            qty_kg=40,
            actor=STAFF,
        )

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _open(self):
        send_purchase_order(self.db, purchase_order_id=self.po.id, actor=STAFF)
        return open_receipt_gate(self.db, purchase_order_id=self.po.id, actor=GATE)

    def _to_inspection(self, gate) -> None:
        confirm_receipt_documents(
            self.db, gate_id=gate.id, statement_checked=True, inspection_report_checked=True, actor=GATE
        )
        confirm_receipt_vehicle(self.db, gate_id=gate.id, vehicle_number='82-GK-4471', driver_name='Lee', actor=GATE)

    def test_draft_purchase_order_cannot_be_received(self) -> None:
        with self.assertRaises(PreconditionNotMet):
            open_receipt_gate(self.db, purchase_order_id=self.po.id, actor=GATE)

    def test_open_prefills_lines_and_is_idempotent(self) -> None:
        gate = self._open()

        again = open_receipt_gate(self.db, purchase_order_id=self.po.id, actor=GATE)

        self.assertEqual(again.id, gate.id)
        self.assertEqual(gate.status, ReceiptGateStep.DOCS)
        lines = list_receipt_lines(self.db, gate_id=gate.id)
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].expected_kg, Decimal('40'))
        self.assertEqual(lines[0].actual_kg, Decimal('40'))
        self.assertEqual(lines[0].box_count, 3)
        self.assertEqual(lines[0].status, ReceiptLineStatus.PENDING)

    def test_steps_cannot_be_skipped(self) -> None:
        gate = self._open()
        line = list_receipt_lines(self.db, gate_id=gate.id)[0]

        with self.assertRaises(IllegalTransition):
            confirm_receipt_vehicle(self.db, gate_id=gate.id, vehicle_number='82-GK-4471', actor=GATE)
        with self.assertRaises(PreconditionNotMet):
            record_receipt_line(
                self.db, gate_id=gate.id, line_id=line.id, actual_kg=40, box_count=3, status='CHECKED', actor=GATE
            )
        with self.assertRaises(PreconditionNotMet):
            confirm_receipt_documents(
                self.db, gate_id=gate.id, statement_checked=True, inspection_report_checked=False, actor=GATE
            )
        self.assertEqual(gate.status, ReceiptGateStep.DOCS)
        self.assertFalse(gate.statement_checked)

    def test_vehicle_number_is_required(self) -> None:
        gate = self._open()
        confirm_receipt_documents(
            self.db, gate_id=gate.id, statement_checked=True, inspection_report_checked=True, actor=GATE
        )

        with self.assertRaises(PreconditionNotMet):
            confirm_receipt_vehicle(self.db, gate_id=gate.id, vehicle_number='  ', actor=GATE)
        self.assertEqual(gate.status, ReceiptGateStep.VEHICLE)

    def test_complete_waits_for_every_line(self) -> None:
        gate = self._open()
        self._to_inspection(gate)

        with self.assertRaises(PreconditionNotMet):
            complete_receipt(self.db, gate_id=gate.id, actor=GATE)
        self.assertEqual(self.po.status, PurchaseOrderStatus.SENT)

    def test_complete_receives_purchase_order_at_actual_weight(self) -> None:
        gate = self._open()
        self._to_inspection(gate)
        line = list_receipt_lines(self.db, gate_id=gate.id)[0]

        with self.assertLogs('fulfillment_portal.services.gate_service', level='WARNING'):
            record_receipt_line(
                self.db,
                gate_id=gate.id,
                line_id=line.id,
                actual_kg='38.2',
                box_count=2,
                status='issue',
                note='one box short',
                actor=GATE,
            )
        po = complete_receipt(self.db, gate_id=gate.id, actor=GATE)

        self.assertEqual(gate.status, ReceiptGateStep.DONE)
        self.assertIsNotNone(gate.completed_at)
        self.assertEqual(po.status, PurchaseOrderStatus.RECEIVED)
        self.assertEqual(po.totals_kg, Decimal('38.2'))
        self.assertEqual(po.totals_amount, Decimal('2800000'))
        self.assertIsNotNone(po.received_at)

    def test_line_status_must_be_known(self) -> None:
        gate = self._open()
        self._to_inspection(gate)
        line = list_receipt_lines(self.db, gate_id=gate.id)[0]

        with self.assertRaises(ValueError):
            record_receipt_line(
                self.db, gate_id=gate.id, line_id=line.id, actual_kg=40, box_count=3, status='LOST', actor=GATE
            )


class OutboundGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()
        sirloin = add_product(self.db, 'Sirloin', wholesale_price='85000')
        sales_order = confirmed_sales_order(self.db, {sirloin: 25})
        self.shipment = create_shipment(self.db, sales_order_id=sales_order.id, actor=STAFF)
        self.gate = open_outbound_gate(self.db, shipment_id=self.shipment.id, actor=GATE)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_gate_opens_with_empty_checklist(self) -> None:
        detail = outbound_gate_detail(self.gate)

        self.assertEqual(detail['status'], 'DOCS')
        self.assertEqual(detail['checklist'], {key: False for key in REQUIRED_CHECKLIST_ITEMS})
        self.assertEqual(open_outbound_gate(self.db, shipment_id=self.shipment.id, actor=GATE).id, self.gate.id)

    def test_checklist_needs_every_item(self) -> None:
        with self.assertRaises(PreconditionNotMet):
            confirm_outbound_documents(self.db, gate_id=self.gate.id, documents_matched=False, actor=GATE)
        confirm_outbound_documents(self.db, gate_id=self.gate.id, documents_matched=True, actor=GATE)

        with self.assertRaises(ValueError):
            complete_outbound_checklist(self.db, gate_id=self.gate.id, checklist={'smell_test': True}, actor=GATE)
        with self.assertRaises(PreconditionNotMet):
            complete_outbound_checklist(
                self.db, gate_id=self.gate.id, checklist={'transaction_statement': True}, actor=GATE
            )
        self.assertEqual(self.gate.status, OutboundGateStep.CHECKLIST)

    def test_full_release(self) -> None:
        confirm_outbound_documents(self.db, gate_id=self.gate.id, documents_matched=True, actor=GATE)
        complete_outbound_checklist(
            self.db, gate_id=self.gate.id, checklist={key: True for key in REQUIRED_CHECKLIST_ITEMS}, actor=GATE
        )
        with self.assertRaises(PreconditionNotMet):
            sign_outbound(self.db, gate_id=self.gate.id, signature_ref='', actor=GATE)

        gate = sign_outbound(self.db, gate_id=self.gate.id, signature_ref='sig-0042', signed_by='Kim', actor=GATE)

        self.assertEqual(gate.status, OutboundGateStep.DONE)
        self.assertEqual(gate.signature_ref, 'sig-0042')
        self.assertTrue(all(gate.checklist.values()))
        self.assertIsNotNone(gate.completed_at)


if __name__ == '__main__':
    unittest.main()

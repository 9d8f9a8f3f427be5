from __future__ import annotations

import unittest
from decimal import Decimal

from fulfillment_portal.models import CarrierDriverProfile, DocumentType, ShipmentStatus, UnitMode
from fulfillment_portal.services.dispatch_service import (
    DispatchDetails,
    create_shipment,
    deliver,
    dispatch_view_by_token,
    modify_after_dispatch,
    request_dispatch,
    shipment_detail,
    staff_dispatch,
    submit_dispatch,
)
from fulfillment_portal.services.errors import IllegalTransition, PreconditionNotMet, TokenNotFound
from fulfillment_portal.services.gate_service import (
    REQUIRED_CHECKLIST_ITEMS,
    complete_outbound_checklist,
    confirm_outbound_documents,
    open_outbound_gate,
    sign_outbound,
)
from fulfillment_portal.services.history_service import list_history
from tests.helpers import STAFF, add_carrier, add_product, add_vehicle_type, confirmed_sales_order, make_session_factory


class DispatchServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()
        self.tenderloin = add_product(
            self.db, 'Tenderloin', unit_type=UnitMode.BOX, box_weight='18.5', wholesale_price='90000'
        )
        self.carrier = add_carrier(self.db)
        self.truck = add_vehicle_type(self.db)
        self.sales_order = confirmed_sales_order(self.db, {self.tenderloin: 40})
        self.shipment = create_shipment(self.db, sales_order_id=self.sales_order.id, actor=STAFF)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _details(self, **overrides) -> DispatchDetails:
        values = {
            'driver_name': 'Park',
            'driver_phone': '010-2222-3333',
            'vehicle_number': '91-SA-1204',
            'vehicle_type_id': self.truck.id,
        }
        values.update(overrides)
        return DispatchDetails(**values)

    def _request(self, shipment=None) -> str:
        shipment = shipment or self.shipment
        notification = request_dispatch(self.db, shipment_id=shipment.id, carrier_org_id=self.carrier.id, actor=STAFF)
        self.assertTrue(notification.link.endswith(f'/dispatch/{shipment.dispatcher_token}'))
        return shipment.dispatcher_token

    def _release(self) -> None:
        gate = open_outbound_gate(self.db, shipment_id=self.shipment.id, actor=STAFF)
        confirm_outbound_documents(self.db, gate_id=gate.id, documents_matched=True, actor=STAFF)
        complete_outbound_checklist(
            self.db, gate_id=gate.id, checklist={key: True for key in REQUIRED_CHECKLIST_ITEMS}, actor=STAFF
        )
        sign_outbound(self.db, gate_id=gate.id, signature_ref='sig-1', actor=STAFF)

    def test_one_shipment_per_sales_order(self) -> None:
        self.assertEqual(self.shipment.total_kg, Decimal('40'))
        with self.assertRaises(PreconditionNotMet):
            create_shipment(self.db, sales_order_id=self.sales_order.id, actor=STAFF)

    def test_lines_show_box_counts(self) -> None:
        detail = shipment_detail(self.db, self.shipment)

        self.assertEqual(detail['status'], 'PREPARING')
        self.assertEqual(detail['lines'][0]['boxes'], 3)

    def test_carrier_submits_dispatch_through_link(self) -> None:
        token = self._request()
        form = dispatch_view_by_token(self.db, token=token)
        self.assertTrue(form['can_submit'])
        self.assertIsNone(form['defaults'])
        self.assertEqual([row['id'] for row in form['vehicle_types']], [self.truck.id])

        shipment = submit_dispatch(self.db, token=token, details=self._details())

        self.assertEqual(shipment.status, ShipmentStatus.IN_TRANSIT)
        self.assertEqual(shipment.company, 'Coldline Logistics')
        self.assertEqual(shipment.vehicle_number, '91-SA-1204')
        history = list_history(self.db, document_type=DocumentType.SHIPMENT, document_id=shipment.id)
        self.assertIn(f'carrier:{self.carrier.id}', [row['actor'] for row in history])
        with self.assertRaises(IllegalTransition):
            submit_dispatch(self.db, token=token, details=self._details(driver_name='Choi'))

    def test_missing_details_are_rejected(self) -> None:
        token = self._request()

        with self.assertRaises(ValueError):
            submit_dispatch(self.db, token=token, details=self._details(driver_phone='  '))
        self.assertEqual(self.shipment.status, ShipmentStatus.PREPARING)

    def test_rerequest_replaces_previous_link(self) -> None:
        first = self._request()
        second = self._request()

        self.assertNotEqual(first, second)
        with self.assertRaises(TokenNotFound):
            dispatch_view_by_token(self.db, token=first)
        dispatch_view_by_token(self.db, token=second)

    def test_driver_profile_keeps_last_submission(self) -> None:
        submit_dispatch(self.db, token=self._request(), details=self._details())
        other_order = confirmed_sales_order(self.db, {self.tenderloin: 20}, customer_name='Bistro')
        other = create_shipment(self.db, sales_order_id=other_order.id, actor=STAFF)

        form = dispatch_view_by_token(self.db, token=self._request(other))
        self.assertEqual(form['defaults']['driver_name'], 'Park')

        staff_dispatch(
            self.db,
            shipment_id=other.id,
            carrier_org_id=self.carrier.id,
            details=self._details(driver_name='Choi', vehicle_number='77-TR-0001'),
            actor=STAFF,
        )
        profile = self.db.get(CarrierDriverProfile, self.carrier.id)
        self.assertEqual((profile.driver_name, profile.vehicle_number), ('Choi', '77-TR-0001'))

    def test_modify_after_dispatch_flags_shipment(self) -> None:
        with self.assertRaises(PreconditionNotMet):
            modify_after_dispatch(self.db, shipment_id=self.shipment.id, driver_phone='010-0000-0000', actor=STAFF)
        submit_dispatch(self.db, token=self._request(), details=self._details())

        shipment = modify_after_dispatch(
            self.db, shipment_id=self.shipment.id, driver_phone='010-9999-8888', actor=STAFF
        )

        self.assertTrue(shipment.is_modified)
        self.assertIsNotNone(shipment.modified_at)
        history = list_history(self.db, document_type=DocumentType.SHIPMENT, document_id=shipment.id)
        modified = [row for row in history if row['event'] == 'MODIFIED']
        self.assertEqual(modified[0]['metadata']['driver_phone'], {'from': '010-2222-3333', 'to': '010-9999-8888'})
        with self.assertRaises(ValueError):
            modify_after_dispatch(self.db, shipment_id=self.shipment.id, driver_phone='010-9999-8888', actor=STAFF)

    def test_delivery_needs_released_gate(self) -> None:
        submit_dispatch(self.db, token=self._request(), details=self._details())

        with self.assertRaises(PreconditionNotMet):
            deliver(self.db, shipment_id=self.shipment.id, actor=STAFF)

        self._release()
        shipment = deliver(self.db, shipment_id=self.shipment.id, actor=STAFF)

        self.assertEqual(shipment.status, ShipmentStatus.DELIVERED)
        self.assertIsNotNone(shipment.delivered_at)


if __name__ == '__main__':
    unittest.main()

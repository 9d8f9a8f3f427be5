from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import func, select

from fulfillment_portal.models import OrderSheetStatus, SalesOrder, SalesOrderItem, UnitMode
from fulfillment_portal.services.errors import DocumentNotFound, IllegalTransition, PreconditionNotMet, WarningCode
from fulfillment_portal.services.order_sheet_service import (
    OrderLineInput,
    confirm_order_sheet,
    create_order_sheet,
    list_items,
    recompute_totals,
    replace_items,
    send_order_sheet,
    update_line,
)
from tests.helpers import STAFF, add_product, make_session_factory


class OrderSheetServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()
        self.tenderloin = add_product(
            self.db, 'Tenderloin', unit_type=UnitMode.BOX, box_weight='18.5', wholesale_price='12000'
        )
        self.sirloin = add_product(self.db, 'Sirloin', wholesale_price='85000')

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _sheet(self, *, tenderloin_boxes=4, sirloin_kg=10, cut_off_at=None):
        return create_order_sheet(
            self.db,
            actor=STAFF,
            customer_name='Acme Co',
            cut_off_at=cut_off_at,
            lines=[
                OrderLineInput(product_id=self.tenderloin.id, qty=tenderloin_boxes),
                OrderLineInput(product_id=self.sirloin.id, qty=sirloin_kg),
            ],
        ).order_sheet

    def _sales_order_count(self) -> int:
        return self.db.execute(select(func.count(SalesOrder.id))).scalar_one()

    def test_create_prices_lines_from_catalog(self) -> None:
        sheet = self._sheet()

        items = list_items(self.db, order_sheet_id=sheet.id)
        self.assertEqual(sheet.status, OrderSheetStatus.DRAFT)
        self.assertEqual([item.unit for item in items], [UnitMode.BOX, UnitMode.KG])
        self.assertEqual(items[0].estimated_kg, Decimal('74'))
        self.assertEqual(items[0].amount, Decimal('888000'))
        self.assertEqual(sheet.total_kg, Decimal('84'))
        self.assertEqual(sheet.total_amount, Decimal('1738000'))

    def test_recompute_is_stable(self) -> None:
        sheet = self._sheet()
        before = (sheet.total_kg, sheet.total_amount)

        recompute_totals(self.db, sheet)
        recompute_totals(self.db, sheet)

        self.assertEqual((sheet.total_kg, sheet.total_amount), before)

    def test_confirm_creates_sales_order_from_filled_lines(self) -> None:
        sheet = self._sheet(sirloin_kg=0)
        notification = send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        sales_order = confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        self.assertIn('/order/', notification.link)
        self.assertIsNotNone(sheet.invite_token_id)
        self.assertEqual(sheet.status, OrderSheetStatus.CONFIRMED)
        self.assertEqual(sales_order.source_order_sheet_id, sheet.id)
        self.assertEqual(sales_order.totals_kg, Decimal('74'))
        self.assertEqual(sales_order.totals_amount, Decimal('888000'))
        items = self.db.execute(
            select(SalesOrderItem).where(SalesOrderItem.sales_order_id == sales_order.id)
        ).scalars().all()
        self.assertEqual([(item.product_id, item.qty_kg) for item in items], [(self.tenderloin.id, Decimal('74'))])

    def test_confirm_without_quantities_is_refused(self) -> None:
        sheet = self._sheet(tenderloin_boxes=0, sirloin_kg=0)
        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        with self.assertRaises(PreconditionNotMet):
            confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        self.assertEqual(sheet.status, OrderSheetStatus.SENT)
        self.assertEqual(self._sales_order_count(), 0)

    def test_confirm_twice_is_illegal(self) -> None:
        sheet = self._sheet()
        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)
        confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        with self.assertRaises(IllegalTransition):
            confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)
        self.assertEqual(self._sales_order_count(), 1)

    def test_confirm_after_cutoff_is_refused(self) -> None:
        sheet = self._sheet(cut_off_at=datetime.now(tz=timezone.utc) - timedelta(minutes=1))
        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        with self.assertRaises(PreconditionNotMet):
            confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)
        self.assertEqual(self._sales_order_count(), 0)

    def test_guest_edits_stop_at_cutoff(self) -> None:
        sheet = self._sheet()
        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)
        later = sheet.cut_off_at + timedelta(seconds=1)

        with patch('fulfillment_portal.services.order_sheet_service._now', return_value=later):
            with self.assertRaises(PreconditionNotMet):
                update_line(
                    self.db, order_sheet_id=sheet.id, product_id=self.sirloin.id, qty=5, actor='guest', guest=True
                )
            update_line(self.db, order_sheet_id=sheet.id, product_id=self.sirloin.id, qty=5, actor=STAFF)

        self.assertEqual(list_items(self.db, order_sheet_id=sheet.id)[1].qty_requested, Decimal('5'))

    def test_guest_cannot_edit_draft_or_confirmed_sheet(self) -> None:
        sheet = self._sheet()
        with self.assertRaises(PreconditionNotMet):
            update_line(self.db, order_sheet_id=sheet.id, product_id=self.sirloin.id, qty=1, actor='guest', guest=True)

        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)
        confirm_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        with self.assertRaises(PreconditionNotMet):
            replace_items(self.db, order_sheet_id=sheet.id, lines=[], actor='guest', guest=True)
        with self.assertRaises(PreconditionNotMet):
            update_line(self.db, order_sheet_id=sheet.id, product_id=self.sirloin.id, qty=1, actor=STAFF)

    def test_unit_switch_reprices_line(self) -> None:
        sheet = self._sheet()

        update_line(
            self.db, order_sheet_id=sheet.id, product_id=self.tenderloin.id, qty=37, unit_mode='kg', actor=STAFF
        )

        item = list_items(self.db, order_sheet_id=sheet.id)[0]
        self.assertEqual(item.unit, UnitMode.KG)
        self.assertEqual(item.estimated_kg, Decimal('37'))
        self.assertEqual(item.amount, Decimal('444000'))
        self.assertEqual(sheet.total_kg, Decimal('47'))

    def test_replace_items_last_writer_wins(self) -> None:
        sheet = self._sheet()
        send_order_sheet(self.db, order_sheet_id=sheet.id, actor=STAFF)

        replace_items(
            self.db,
            order_sheet_id=sheet.id,
            lines=[OrderLineInput(product_id=self.sirloin.id, qty=3)],
            actor='guest',
            guest=True,
            ship_to='Dock 4',
        )
        replace_items(
            self.db,
            order_sheet_id=sheet.id,
            lines=[OrderLineInput(product_id=self.tenderloin.id, qty=2)],
            actor=STAFF,
        )

        items = list_items(self.db, order_sheet_id=sheet.id)
        self.assertEqual([item.qty_requested for item in items], [Decimal('2'), Decimal('0')])
        self.assertEqual(sheet.total_kg, Decimal('37'))
        self.assertEqual(sheet.ship_to, 'Dock 4')
        self.assertIsNotNone(sheet.last_submitted_at)

    def test_replace_items_rejects_products_not_on_sheet(self) -> None:
        sheet = self._sheet()
        other = add_product(self.db, 'Brisket', wholesale_price='40000')

        with self.assertRaises(DocumentNotFound):
            replace_items(self.db, order_sheet_id=sheet.id, lines=[OrderLineInput(product_id=other.id, qty=1)], actor=STAFF)

    def test_box_line_without_box_weight_warns(self) -> None:
        shank = add_product(self.db, 'Shank', unit_type=UnitMode.BOX, wholesale_price='9000')

        result = create_order_sheet(
            self.db,
            actor=STAFF,
            customer_name='Acme Co',
            lines=[OrderLineInput(product_id=shank.id, qty=3)],
        )

        self.assertEqual(result.order_sheet.total_kg, Decimal('0'))
        self.assertEqual([warning.code for warning in result.warnings], [WarningCode.DATA_QUALITY])
        self.assertIn('Shank', result.warnings[0].message)


if __name__ == '__main__':
    unittest.main()

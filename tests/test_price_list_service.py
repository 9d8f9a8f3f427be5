from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

from fulfillment_portal.models import AccessToken, Capability, OrderSheet, OrderSheetStatus, Product, UnitMode
from fulfillment_portal.services.catalog_service import upsert_product
from fulfillment_portal.services.errors import DocumentNotFound, PreconditionNotMet, TokenNotFound
from fulfillment_portal.services.order_sheet_service import list_items, update_line, view_order_sheet_by_token
from fulfillment_portal.services.price_list_service import (
    PriceListItemInput,
    create_price_list,
    delete_price_list,
    duplicate_price_list,
    funnel_summary,
    list_price_list_items,
    publish_share_link,
    set_supply_price,
    share,
    update_price_list,
    view_price_list_by_token,
)
from fulfillment_portal.services.token_service import resolve_token
from tests.helpers import STAFF, add_product, make_session_factory


class PriceListServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()
        self.sirloin = add_product(self.db, 'Sirloin', cost_price='70000', wholesale_price='80000')
        self.price_list = create_price_list(
            self.db,
            title='Weekly beef',
            items=[PriceListItemInput(product_id=self.sirloin.id, supply_price=Decimal('85000'))],
        )

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_share_clones_items_into_sent_order_sheet(self) -> None:
        result = share(self.db, price_list_id=self.price_list.id, recipient_name='Acme Co', actor='guest')

        sheet = result.order_sheet
        self.assertEqual(sheet.customer_name, 'Acme Co')
        self.assertEqual(sheet.status, OrderSheetStatus.SENT)
        self.assertEqual(sheet.source_price_list_id, self.price_list.id)
        self.assertTrue(sheet.is_guest)
        self.assertEqual(sheet.cut_off_at - sheet.created_at, timedelta(hours=24))
        items = list_items(self.db, order_sheet_id=sheet.id)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].unit_price, Decimal('85000'))
        self.assertEqual(items[0].qty_requested, Decimal('0'))

        update_line(
            self.db,
            order_sheet_id=sheet.id,
            product_id=self.sirloin.id,
            qty=Decimal('10'),
            unit_mode=UnitMode.KG,
            actor='guest',
            guest=True,
        )
        self.assertEqual(items[0].estimated_kg, Decimal('10'))
        self.assertEqual(items[0].amount, Decimal('850000'))
        self.assertEqual(sheet.total_amount, Decimal('850000'))

    def test_share_defaults_customer_name_to_title(self) -> None:
        result = share(self.db, price_list_id=self.price_list.id, actor='guest')

        self.assertEqual(result.order_sheet.customer_name, 'Weekly beef')

    def test_funnel_counts_every_share_and_every_view(self) -> None:
        tokens = [share(self.db, price_list_id=self.price_list.id, actor='guest').token for _ in range(3)]
        for _ in range(5):
            view_order_sheet_by_token(self.db, token=tokens[0])

        summary = funnel_summary(self.db, price_list_id=self.price_list.id)

        self.assertEqual(summary['conversion_count'], 3)
        self.assertEqual(summary['order_sheets'], 3)
        self.assertEqual(summary['order_sheet_reach'], 5)
        self.assertGreaterEqual(summary['cumulative_reach'], 5)

    def test_price_list_views_are_counted_on_each_load(self) -> None:
        notification = publish_share_link(self.db, price_list_id=self.price_list.id, actor=STAFF)
        token = notification.link.rsplit('/', 1)[-1]

        view_price_list_by_token(self.db, token=token)
        detail = view_price_list_by_token(self.db, token=token)

        self.assertEqual(detail['reach_count'], 2)
        self.assertIn('/price-view/', notification.link)

    def test_sheet_token_does_not_open_sibling_sheet(self) -> None:
        first = share(self.db, price_list_id=self.price_list.id, actor='guest')
        second = share(self.db, price_list_id=self.price_list.id, actor='guest')

        resolve_token(
            self.db, token=first.token, capability=Capability.EDIT_ORDER_SHEET, document_id=first.order_sheet.id
        )
        with self.assertRaises(TokenNotFound):
            resolve_token(
                self.db, token=first.token, capability=Capability.EDIT_ORDER_SHEET, document_id=second.order_sheet.id
            )

    def test_expired_list_is_viewable_but_not_orderable(self) -> None:
        self.price_list.valid_until = datetime.now(tz=timezone.utc) - timedelta(days=1)
        self.db.flush()
        notification = publish_share_link(self.db, price_list_id=self.price_list.id, actor=STAFF)
        token = notification.link.rsplit('/', 1)[-1]

        detail = view_price_list_by_token(self.db, token=token)

        self.assertTrue(detail['is_expired'])
        with self.assertRaises(PreconditionNotMet):
            share(self.db, price_list_id=self.price_list.id, actor='guest')

    def test_share_link_expiry_follows_valid_until(self) -> None:
        valid_until = datetime(2030, 5, 1, tzinfo=timezone.utc)
        self.price_list.valid_until = valid_until
        self.db.flush()

        publish_share_link(self.db, price_list_id=self.price_list.id, actor=STAFF)

        token = self.db.get(AccessToken, self.price_list.share_token_id)
        self.assertEqual(token.expires_at, valid_until + timedelta(days=5))

    def test_extending_validity_keeps_published_link_alive(self) -> None:
        now = datetime.now(tz=timezone.utc)
        self.price_list.valid_until = now + timedelta(days=1)
        self.db.flush()
        notification = publish_share_link(self.db, price_list_id=self.price_list.id, actor=STAFF)
        token = notification.link.rsplit('/', 1)[-1]

        update_price_list(
            self.db,
            price_list_id=self.price_list.id,
            title='Weekly beef',
            items=[PriceListItemInput(product_id=self.sirloin.id, supply_price=Decimal('85000'))],
            valid_until=now + timedelta(days=30),
        )

        self.assertEqual(self.db.get(AccessToken, token).expires_at, now + timedelta(days=35))
        with patch('fulfillment_portal.services.token_service._now', return_value=now + timedelta(days=10)):
            resolved = resolve_token(self.db, token=token, capability=Capability.VIEW_PRICE_LIST)
        self.assertEqual(resolved.document_id, self.price_list.id)

    def test_edits_do_not_reach_existing_order_sheets(self) -> None:
        sheet = share(self.db, price_list_id=self.price_list.id, actor='guest').order_sheet

        update_price_list(
            self.db,
            price_list_id=self.price_list.id,
            title='Weekly beef',
            items=[PriceListItemInput(product_id=self.sirloin.id, supply_price=Decimal('99000'))],
            valid_until=None,
        )

        self.assertEqual(list_price_list_items(self.db, price_list_id=self.price_list.id)[0].supply_price, Decimal('99000'))
        self.assertEqual(list_items(self.db, order_sheet_id=sheet.id)[0].unit_price, Decimal('85000'))

    def test_duplicate_starts_fresh_counters(self) -> None:
        share(self.db, price_list_id=self.price_list.id, actor='guest')

        copy = duplicate_price_list(self.db, price_list_id=self.price_list.id)

        self.assertEqual(copy.title, 'Weekly beef (copy)')
        self.assertEqual(copy.conversion_count, 0)
        self.assertEqual(copy.reach_count, 0)
        self.assertIsNone(copy.share_token_id)
        items = list_price_list_items(self.db, price_list_id=copy.id)
        self.assertEqual([(item.product_id, item.supply_price) for item in items], [(self.sirloin.id, Decimal('85000'))])

    def test_delete_revokes_tokens_and_keeps_order_sheets(self) -> None:
        notification = publish_share_link(self.db, price_list_id=self.price_list.id, actor=STAFF)
        token = notification.link.rsplit('/', 1)[-1]
        sheet = share(self.db, price_list_id=self.price_list.id, actor='guest').order_sheet

        delete_price_list(self.db, price_list_id=self.price_list.id, actor=STAFF)

        with self.assertRaises(TokenNotFound):
            view_price_list_by_token(self.db, token=token)
        self.db.refresh(sheet)
        self.assertIsNone(sheet.source_price_list_id)
        self.assertIsNotNone(self.db.get(OrderSheet, sheet.id))

    def test_create_requires_known_products(self) -> None:
        with self.assertRaises(ValueError):
            create_price_list(self.db, title='Empty', items=[PriceListItemInput(product_id=9999)])

    def test_supply_price_defaults_to_wholesale(self) -> None:
        price_list = create_price_list(self.db, title='Default', items=[PriceListItemInput(product_id=self.sirloin.id)])

        self.assertEqual(list_price_list_items(self.db, price_list_id=price_list.id)[0].supply_price, Decimal('80000'))

    def test_catalog_price_changes_leave_list_prices_alone(self) -> None:
        upsert_product(
            self.db,
            product_id=self.sirloin.id,
            name='Sirloin',
            cost_price='75000',
            wholesale_price='90000',
        )

        item = list_price_list_items(self.db, price_list_id=self.price_list.id)[0]
        self.assertEqual(
            (item.cost_price, item.wholesale_price, item.supply_price),
            (Decimal('70000'), Decimal('80000'), Decimal('85000')),
        )

    def test_supply_price_is_edited_per_list(self) -> None:
        item = set_supply_price(
            self.db, price_list_id=self.price_list.id, product_id=self.sirloin.id, supply_price='88000'
        )

        self.assertEqual(item.supply_price, Decimal('88000'))
        self.assertEqual(self.db.get(Product, self.sirloin.id).wholesale_price, Decimal('80000'))
        with self.assertRaises(ValueError):
            set_supply_price(self.db, price_list_id=self.price_list.id, product_id=self.sirloin.id, supply_price=-1)
        self.assertEqual(item.supply_price, Decimal('88000'))
        with self.assertRaises(DocumentNotFound):
            set_supply_price(self.db, price_list_id=self.price_list.id, product_id=9999, supply_price='1000')


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fulfillment_portal.models import Capability, DocumentType
from fulfillment_portal.services.errors import TOKEN_DENIED_MESSAGE, TokenExpired, TokenNotFound
from fulfillment_portal.services.token_service import (
    build_deep_link,
    issue_token,
    list_document_tokens,
    resolve_token,
    revoke_document_tokens,
)
from tests.helpers import make_session_factory


class TokenServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, session_factory = make_session_factory()
        self.db = session_factory()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_resolves_only_for_bound_document(self) -> None:
        token = issue_token(
            self.db,
            document_type=DocumentType.ORDER_SHEET,
            document_id=7,
            capability=Capability.EDIT_ORDER_SHEET,
        )

        resolved = resolve_token(self.db, token=token.id, capability=Capability.EDIT_ORDER_SHEET, document_id=7)
        self.assertEqual(resolved.document_type, DocumentType.ORDER_SHEET)
        self.assertEqual(resolved.document_id, 7)

        with self.assertRaises(TokenNotFound):
            resolve_token(self.db, token=token.id, capability=Capability.EDIT_ORDER_SHEET, document_id=8)

    def test_other_capability_looks_like_missing_token(self) -> None:
        token = issue_token(
            self.db,
            document_type=DocumentType.ORDER_SHEET,
            document_id=7,
            capability=Capability.EDIT_ORDER_SHEET,
        )

        with self.assertRaises(TokenNotFound) as wrong_capability:
            resolve_token(self.db, token=token.id, capability=Capability.SUBMIT_DISPATCH)
        with self.assertRaises(TokenNotFound) as unknown:
            resolve_token(self.db, token='not-a-token', capability=Capability.SUBMIT_DISPATCH)

        self.assertEqual(str(wrong_capability.exception), str(unknown.exception))
        self.assertEqual(str(unknown.exception), TOKEN_DENIED_MESSAGE)

    def test_capability_must_match_document_type(self) -> None:
        with self.assertRaises(ValueError):
            issue_token(
                self.db,
                document_type=DocumentType.SHIPMENT,
                document_id=1,
                capability=Capability.EDIT_ORDER_SHEET,
            )

    def test_view_token_expires(self) -> None:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        token = issue_token(
            self.db,
            document_type=DocumentType.PRICE_LIST,
            document_id=3,
            capability=Capability.VIEW_PRICE_LIST,
            expires_at=now + timedelta(days=1),
        )
        self.db.commit()

        with patch('fulfillment_portal.services.token_service._now', return_value=now):
            resolve_token(self.db, token=token.id, capability=Capability.VIEW_PRICE_LIST)
        with patch('fulfillment_portal.services.token_service._now', return_value=now + timedelta(days=2)):
            with self.assertRaises(TokenExpired) as ctx:
                resolve_token(self.db, token=token.id, capability=Capability.VIEW_PRICE_LIST)
        self.assertEqual(str(ctx.exception), TOKEN_DENIED_MESSAGE)

    def test_edit_tokens_are_open_ended(self) -> None:
        token = issue_token(
            self.db,
            document_type=DocumentType.ORDER_SHEET,
            document_id=1,
            capability=Capability.EDIT_ORDER_SHEET,
            expires_at=datetime(2000, 1, 1, tzinfo=timezone.utc),
        )

        self.assertIsNone(token.expires_at)
        resolve_token(self.db, token=token.id, capability=Capability.EDIT_ORDER_SHEET)

    def test_tokens_are_long_and_unique(self) -> None:
        ids = {
            issue_token(
                self.db,
                document_type=DocumentType.SHIPMENT,
                document_id=1,
                capability=Capability.SUBMIT_DISPATCH,
            ).id
            for _ in range(20)
        }

        self.assertEqual(len(ids), 20)
        self.assertTrue(all(len(token) >= 22 for token in ids))

    def test_revoke_removes_every_token_of_document(self) -> None:
        for _ in range(2):
            issue_token(
                self.db,
                document_type=DocumentType.SHIPMENT,
                document_id=4,
                capability=Capability.SUBMIT_DISPATCH,
            )
        keep = issue_token(
            self.db,
            document_type=DocumentType.SHIPMENT,
            document_id=5,
            capability=Capability.SUBMIT_DISPATCH,
        )

        removed = revoke_document_tokens(self.db, document_type=DocumentType.SHIPMENT, document_id=4)

        self.assertEqual(removed, 2)
        self.assertEqual(list_document_tokens(self.db, document_type=DocumentType.SHIPMENT, document_id=4), [])
        resolve_token(self.db, token=keep.id, capability=Capability.SUBMIT_DISPATCH)

    def test_deep_link_uses_capability_path(self) -> None:
        with patch('fulfillment_portal.services.token_service.settings') as settings_mock:
            settings_mock.public_origin_normalized = 'https://portal.example.com'
            link = build_deep_link(Capability.SUBMIT_PURCHASE_ORDER, 'abc123')

        self.assertEqual(link, 'https://portal.example.com/purchase-order/abc123')


if __name__ == '__main__':
    unittest.main()

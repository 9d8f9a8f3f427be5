from __future__ import annotations

import unittest
from decimal import ROUND_HALF_UP, Decimal
from types import SimpleNamespace

from fulfillment_portal.models import UnitMode
from fulfillment_portal.services.errors import WarningCode
from fulfillment_portal.services.unit_conversion_service import (
    boxes_for_weight,
    parse_unit_mode,
    resolve_line,
    sum_lines,
)


class ResolveLineTests(unittest.TestCase):
    def test_box_line_converts_through_box_weight(self) -> None:
        result = resolve_line(4, 'box', Decimal('18.5'), Decimal('12000'))

        self.assertEqual(result.estimated_kg, Decimal('74'))
        self.assertEqual(result.amount, Decimal('888000'))
        self.assertIsNone(result.warning)

    def test_kg_line_ignores_box_weight(self) -> None:
        result = resolve_line(Decimal('10'), UnitMode.KG, Decimal('18.5'), Decimal('85000'))

        self.assertEqual(result.estimated_kg, Decimal('10'))
        self.assertEqual(result.amount, Decimal('850000'))

    def test_amount_is_weight_times_price_and_repeatable(self) -> None:
        first = resolve_line('3.3', 'box', '2.25', '1999.99')
        second = resolve_line('3.3', 'box', '2.25', '1999.99')

        self.assertEqual(first, second)
        self.assertEqual(first.amount, (first.estimated_kg * Decimal('1999.99')).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))

    def test_negative_quantity_is_clamped_to_zero(self) -> None:
        result = resolve_line(-5, 'kg', None, Decimal('100'))

        self.assertEqual(result.qty, Decimal('0'))
        self.assertEqual(result.estimated_kg, Decimal('0'))
        self.assertEqual(result.amount, Decimal('0'))

    def test_missing_box_weight_resolves_to_zero_with_warning(self) -> None:
        for box_weight in (None, 0, '0'):
            with self.subTest(box_weight=box_weight):
                with self.assertLogs('fulfillment_portal.services.unit_conversion_service', level='WARNING'):
                    result = resolve_line(4, 'box', box_weight, Decimal('12000'))

                self.assertEqual(result.estimated_kg, Decimal('0'))
                self.assertEqual(result.amount, Decimal('0'))
                self.assertEqual(result.warning.code, WarningCode.DATA_QUALITY)

    def test_unknown_unit_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            resolve_line(1, 'crate', None, 1)

    def test_unit_parsing_is_case_insensitive(self) -> None:
        self.assertEqual(parse_unit_mode(' BOX '), UnitMode.BOX)


class SumLinesTests(unittest.TestCase):
    def test_recompute_is_stable(self) -> None:
        lines = [
            SimpleNamespace(estimated_kg=Decimal('74.000'), amount=Decimal('888000.00')),
            SimpleNamespace(estimated_kg=Decimal('10.000'), amount=Decimal('850000.00')),
        ]

        first = sum_lines(lines)
        second = sum_lines(lines)

        self.assertEqual(first, second)
        self.assertEqual(first.total_kg, Decimal('84.000'))
        self.assertEqual(first.total_amount, Decimal('1738000.00'))
        self.assertEqual(first.line_count, 2)

    def test_custom_weight_attribute(self) -> None:
        lines = [SimpleNamespace(qty_kg=Decimal('60'), amount=Decimal('10')), SimpleNamespace(qty_kg=Decimal('50'), amount=Decimal('5'))]

        self.assertEqual(sum_lines(lines, weight_attr='qty_kg').total_kg, Decimal('110'))


class BoxesForWeightTests(unittest.TestCase):
    def test_rounds_up_to_whole_boxes(self) -> None:
        self.assertEqual(boxes_for_weight(Decimal('37'), Decimal('18.5')), 2)
        self.assertEqual(boxes_for_weight(Decimal('40'), Decimal('18.5')), 3)

    def test_unknown_box_weight_gives_zero_boxes(self) -> None:
        self.assertEqual(boxes_for_weight(Decimal('40'), None), 0)


if __name__ == '__main__':
    unittest.main()

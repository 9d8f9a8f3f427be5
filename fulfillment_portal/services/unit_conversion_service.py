from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from fulfillment_portal.models import UnitMode
from fulfillment_portal.services.errors import WarningCode, WorkflowWarning

logger = logging.getLogger(__name__)

KG_QUANT = Decimal('0.001')
AMOUNT_QUANT = Decimal('0.01')
ZERO = Decimal('0')


@dataclass(frozen=True)
class ResolvedLine:
    qty: Decimal
    unit_mode: UnitMode
    estimated_kg: Decimal
    amount: Decimal
    warning: WorkflowWarning | None = None


@dataclass(frozen=True)
class LineTotals:
    total_kg: Decimal
    total_amount: Decimal
    line_count: int


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip() or '0')
    except InvalidOperation as exc:
        raise ValueError(f'Invalid number: {value!r}') from exc


def parse_unit_mode(value: UnitMode | str) -> UnitMode:
    if isinstance(value, UnitMode):
        return value
    raw = str(value or '').strip().lower()
    try:
        return UnitMode(raw)
    except ValueError as exc:
        raise ValueError(f'Unit must be one of kg, box (got {value!r})') from exc


def resolve_line(
    qty: Decimal | int | float | str | None,
    unit_mode: UnitMode | str,
    box_weight: Decimal | int | float | str | None,
    unit_price: Decimal | int | float | str | None,
) -> ResolvedLine:
    mode = parse_unit_mode(unit_mode)
    clean_qty = max(to_decimal(qty), ZERO)
    price = to_decimal(unit_price)
    warning = None

    if mode == UnitMode.KG:
        weight = clean_qty
    else:
        per_box = max(to_decimal(box_weight), ZERO)
        if per_box == ZERO:
            warning = WorkflowWarning(
                code=WarningCode.DATA_QUALITY,
                message='Box weight is missing; weight resolved to 0',
                context={'qty': str(clean_qty)},
            )
            logger.warning('box-unit line has no box weight; qty=%s resolved to 0 kg', clean_qty)
        weight = clean_qty * per_box

    estimated_kg = weight.quantize(KG_QUANT, rounding=ROUND_HALF_UP)
    amount = (estimated_kg * price).quantize(AMOUNT_QUANT, rounding=ROUND_HALF_UP)
    return ResolvedLine(qty=clean_qty, unit_mode=mode, estimated_kg=estimated_kg, amount=amount, warning=warning)


def sum_lines(lines, *, weight_attr: str = 'estimated_kg') -> LineTotals:
    """Full recompute over every line; callers never patch totals incrementally."""
    total_kg = ZERO
    total_amount = ZERO
    count = 0
    for line in lines:
        total_kg += to_decimal(getattr(line, weight_attr))
        total_amount += to_decimal(line.amount)
        count += 1
    return LineTotals(
        total_kg=total_kg.quantize(KG_QUANT),
        total_amount=total_amount.quantize(AMOUNT_QUANT),
        line_count=count,
    )


def boxes_for_weight(qty_kg: Decimal | int | float | str | None, box_weight: Decimal | int | float | str | None) -> int:
    per_box = to_decimal(box_weight)
    if per_box <= 0:
        return 0
    return int((to_decimal(qty_kg) / per_box).to_integral_value(rounding=ROUND_CEILING))

# Overview: Line and order pricing (discounts, tax-inclusive / tax-exclusive tax).

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import BadRequestError

"""
posledger Pricing Policy (authoritative)

All amounts are integer cents; tax rates are basis points (1600 = 16%).

Per line:
    gross    = unit_price * quantity
    discount = discount_per_unit * quantity
    base     = gross - discount                     (never negative)
  inclusive (price already contains tax):
    tax        = base - round(base / (1 + rate))
    line_total = base
  exclusive (tax is added on top):
    tax        = round(base * rate)
    line_total = base + tax

Order:
    subtotal = sum(gross), discount = sum(discount),
    tax = sum(tax), total = sum(line_total)

Rounding is nearest cent, half-up, applied once per derived value.
Which of inclusive/exclusive applies is decided by PRICE_TAX_MODE:
"product" follows each product's tax_included flag, "inclusive" and
"exclusive" force one policy for every line.
"""

TAX_MODE_PRODUCT = "product"
TAX_MODE_INCLUSIVE = "inclusive"
TAX_MODE_EXCLUSIVE = "exclusive"
TAX_MODES = {TAX_MODE_PRODUCT, TAX_MODE_INCLUSIVE, TAX_MODE_EXCLUSIVE}

_BPS = Decimal(10000)


def round_cents(value: Decimal) -> int:
    """Nearest cent, half-up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PricedLine:
    quantity: int
    unit_price_cents: int
    discount_cents: int  # per unit
    tax_rate_bps: int
    tax_included: bool
    gross_cents: int
    discount_total_cents: int
    subtotal_cents: int  # gross - discount
    tax_cents: int
    total_cents: int


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


def resolve_tax_included(product_tax_included: bool, mode: str | None = None) -> bool:
    mode = (mode or current_app.config.get("PRICE_TAX_MODE", TAX_MODE_PRODUCT)).lower()
    if mode not in TAX_MODES:
        raise BadRequestError(f"Unknown PRICE_TAX_MODE {mode!r}")
    if mode == TAX_MODE_INCLUSIVE:
        return True
    if mode == TAX_MODE_EXCLUSIVE:
        return False
    return bool(product_tax_included)


def compute_tax(base_cents: int, tax_rate_bps: int, tax_included: bool) -> int:
    if not tax_rate_bps or base_cents == 0:
        return 0
    rate = Decimal(tax_rate_bps) / _BPS
    if tax_included:
        net = round_cents(Decimal(base_cents) / (Decimal(1) + rate))
        return base_cents - net
    return round_cents(Decimal(base_cents) * rate)


def price_line(
    *,
    quantity: int,
    unit_price_cents: int,
    tax_rate_bps: int,
    tax_included: bool,
    discount_cents: int = 0,
) -> PricedLine:
    if quantity <= 0:
        raise BadRequestError("quantity must be positive", details={"quantity": quantity})
    if unit_price_cents < 0:
        raise BadRequestError("unit price cannot be negative")
    if discount_cents < 0:
        raise BadRequestError("discount cannot be negative")
    if tax_rate_bps < 0:
        raise BadRequestError("tax rate cannot be negative")

    gross = unit_price_cents * quantity
    discount_total = discount_cents * quantity
    base = gross - discount_total
    if base < 0:
        raise BadRequestError(
            "discount exceeds line amount",
            details={"gross_cents": gross, "discount_cents": discount_total},
        )

    tax = compute_tax(base, tax_rate_bps, tax_included)
    total = base if tax_included else base + tax

    return PricedLine(
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        discount_cents=discount_cents,
        tax_rate_bps=tax_rate_bps,
        tax_included=tax_included,
        gross_cents=gross,
        discount_total_cents=discount_total,
        subtotal_cents=base,
        tax_cents=tax,
        total_cents=total,
    )


def summarize(lines: list[PricedLine]) -> OrderTotals:
    return OrderTotals(
        subtotal_cents=sum(line.gross_cents for line in lines),
        discount_cents=sum(line.discount_total_cents for line in lines),
        tax_cents=sum(line.tax_cents for line in lines),
        total_cents=sum(line.total_cents for line in lines),
    )

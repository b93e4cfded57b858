# Overview: Pytest coverage for line pricing and tax policy.

from decimal import Decimal

import pytest
from posledger.errors import BadRequestError
from posledger.services.pricing_service import (
    compute_tax,
    price_line,
    resolve_tax_included,
    round_cents,
    summarize,
)


class TestRounding:

    def test_half_up(self):
        assert round_cents(Decimal("12.5")) == 13
        assert round_cents(Decimal("12.49")) == 12
        assert round_cents(Decimal("-0.5")) == -1


class TestTax:

    def test_inclusive_backs_tax_out(self):
        # 100.00 at 16% contains 13.79 of tax
        assert compute_tax(10000, 1600, tax_included=True) == 1379

    def test_exclusive_adds_tax(self):
        assert compute_tax(10000, 1600, tax_included=False) == 1600

    def test_zero_rate(self):
        assert compute_tax(10000, 0, tax_included=True) == 0


class TestPriceLine:

    def test_inclusive_line_total_is_base(self):
        priced = price_line(quantity=5, unit_price_cents=2000, tax_rate_bps=1600, tax_included=True)

        assert priced.gross_cents == 10000
        assert priced.subtotal_cents == 10000
        assert priced.tax_cents == 1379
        assert priced.total_cents == 10000

    def test_exclusive_line_with_discount(self):
        priced = price_line(
            quantity=4, unit_price_cents=2500, discount_cents=500, tax_rate_bps=1000, tax_included=False
        )

        assert priced.gross_cents == 10000
        assert priced.discount_total_cents == 2000
        assert priced.subtotal_cents == 8000
        assert priced.tax_cents == 800
        assert priced.total_cents == 8800

    @pytest.mark.parametrize("kwargs", [
        dict(quantity=0, unit_price_cents=100),
        dict(quantity=1, unit_price_cents=-1),
        dict(quantity=1, unit_price_cents=100, discount_cents=-5),
        dict(quantity=2, unit_price_cents=100, discount_cents=101),
    ])
    def test_invalid_lines(self, kwargs):
        with pytest.raises(BadRequestError):
            price_line(tax_rate_bps=1600, tax_included=True, **kwargs)

    def test_summarize(self):
        lines = [
            price_line(quantity=1, unit_price_cents=1160, tax_rate_bps=1600, tax_included=True),
            price_line(quantity=2, unit_price_cents=500, discount_cents=100, tax_rate_bps=1600, tax_included=False),
        ]

        totals = summarize(lines)

        assert totals.subtotal_cents == 1160 + 1000
        assert totals.discount_cents == 200
        assert totals.tax_cents == 160 + 128
        assert totals.total_cents == 1160 + 928


class TestTaxMode:

    def test_product_mode_follows_flag(self, app):
        assert resolve_tax_included(True, mode="product") is True
        assert resolve_tax_included(False, mode="product") is False

    def test_forced_modes(self, app):
        assert resolve_tax_included(False, mode="inclusive") is True
        assert resolve_tax_included(True, mode="exclusive") is False

    def test_configured_mode(self, app):
        app.config["PRICE_TAX_MODE"] = "exclusive"
        try:
            assert resolve_tax_included(True) is False
        finally:
            app.config["PRICE_TAX_MODE"] = "product"

    def test_unknown_mode(self, app):
        with pytest.raises(BadRequestError):
            resolve_tax_included(True, mode="vat-ish")

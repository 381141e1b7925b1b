from decimal import Decimal

import pytest

from retail_core.core.exceptions import ValidationError
from retail_core.services.pricing_engine import PricingEngine


@pytest.fixture
def engine():
    return PricingEngine()


def test_percentage_discount_taxed_after_discount(engine):
    line = engine.compute_line(unit_price="100", quantity=2, tax_rate="5", discount_percentage="10")

    assert line.subtotal == Decimal("200.00")
    assert line.discount_amount == Decimal("20.00")
    assert line.taxable_amount == Decimal("180.00")
    assert line.tax_amount == Decimal("9.00")
    assert line.line_total == Decimal("189.00")


def test_amount_discount_derives_percentage(engine):
    line = engine.compute_line(unit_price="100", quantity=2, tax_rate="5", discount_amount="20")

    assert line.discount_percentage == Decimal("10.00")
    assert line.line_total == Decimal("189.00")


def test_amount_wins_when_both_discounts_given(engine):
    line = engine.compute_line(
        unit_price="100", quantity=2, tax_rate="5",
        discount_percentage="50", discount_amount="20",
    )

    assert line.discount_amount == Decimal("20.00")
    assert line.discount_percentage == Decimal("10.00")


def test_no_discount(engine):
    line = engine.compute_line(unit_price="49.99", quantity=3, tax_rate="12")

    assert line.discount_amount == Decimal("0.00")
    assert line.subtotal == Decimal("149.97")
    assert line.tax_amount == Decimal("18.00")  # 17.9964
    assert line.line_total == Decimal("167.97")


def test_currency_rounds_half_up(engine):
    line = engine.compute_line(unit_price="1.00", quantity=1, tax_rate="12.5")

    assert line.tax_amount == Decimal("0.13")


def test_fractional_quantity(engine):
    line = engine.compute_line(unit_price="80.00", quantity="2.5", tax_rate="5")

    assert line.quantity == Decimal("2.500")
    assert line.subtotal == Decimal("200.00")
    assert line.line_total == Decimal("210.00")


def test_zero_price_line_has_zero_percentage(engine):
    line = engine.compute_line(unit_price="0", quantity=1, tax_rate="5", discount_amount="0")

    assert line.discount_percentage == Decimal("0.00")
    assert line.line_total == Decimal("0.00")


@pytest.mark.parametrize("kwargs, field", [
    ({"unit_price": "10", "quantity": 0, "tax_rate": "5"}, "quantity"),
    ({"unit_price": "10", "quantity": -1, "tax_rate": "5"}, "quantity"),
    ({"unit_price": "-1", "quantity": 1, "tax_rate": "5"}, "unit_price"),
    ({"unit_price": "10", "quantity": 1, "tax_rate": "-5"}, "tax_rate"),
    ({"unit_price": "10", "quantity": 1, "tax_rate": "5", "discount_percentage": "101"}, "discount_percentage"),
    ({"unit_price": "10", "quantity": 1, "tax_rate": "5", "discount_percentage": "-1"}, "discount_percentage"),
    ({"unit_price": "10", "quantity": 1, "tax_rate": "5", "discount_amount": "10.01"}, "discount_amount"),
    ({"unit_price": "10", "quantity": 1, "tax_rate": "5", "discount_amount": "-0.01"}, "discount_amount"),
    ({"unit_price": "abc", "quantity": 1, "tax_rate": "5"}, "unit_price"),
])
def test_invalid_line_input_rejected(engine, kwargs, field):
    with pytest.raises(ValidationError) as exc_info:
        engine.compute_line(**kwargs)

    assert field in exc_info.value.errors


def test_full_discount_is_allowed(engine):
    line = engine.compute_line(unit_price="10", quantity=1, tax_rate="5", discount_percentage="100")

    assert line.discount_amount == Decimal("10.00")
    assert line.tax_amount == Decimal("0.00")
    assert line.line_total == Decimal("0.00")


def test_proportional_discount_half(engine):
    assert engine.compute_proportional_discount(2, 1, "20.00") == Decimal("10.00")


def test_proportional_discount_full_quantity_reproduces_discount(engine):
    assert engine.compute_proportional_discount(3, 3, "10.00") == Decimal("10.00")
    assert engine.compute_proportional_discount("2.5", "2.5", "7.77") == Decimal("7.77")


def test_proportional_discount_zero_return_is_zero(engine):
    assert engine.compute_proportional_discount(3, 0, "10.00") == Decimal("0.00")


def test_proportional_discount_zero_original_quantity(engine):
    assert engine.compute_proportional_discount(0, 0, "10.00") == Decimal("0.00")


def test_proportional_discount_rounds_to_currency(engine):
    assert engine.compute_proportional_discount(3, 1, "10.00") == Decimal("3.33")
    assert engine.compute_proportional_discount(3, 2, "10.00") == Decimal("6.67")


def test_proportional_discount_rejects_over_return(engine):
    with pytest.raises(ValidationError):
        engine.compute_proportional_discount(2, 3, "20.00")


def test_return_line_uses_prorated_discount(engine):
    line = engine.compute_return_line(
        unit_price="100.00",
        original_quantity=2,
        return_quantity=1,
        original_discount_amount="20.00",
        tax_rate="5",
    )

    assert line.discount_amount == Decimal("10.00")
    assert line.subtotal == Decimal("100.00")
    assert line.tax_amount == Decimal("4.50")
    assert line.line_total == Decimal("94.50")


def test_summarize_totals_identity(engine):
    lines = [
        engine.compute_line("100", 2, "5", discount_percentage="10"),
        engine.compute_line("33.33", 3, "12", discount_amount="5"),
        engine.compute_line("0.99", "1.5", "0"),
    ]

    totals = engine.summarize(lines)

    assert totals.subtotal == sum(line.subtotal for line in lines)
    assert totals.discount_amount == sum(line.discount_amount for line in lines)
    assert totals.tax_amount == sum(line.tax_amount for line in lines)
    assert totals.total == totals.subtotal - totals.discount_amount + totals.tax_amount
    assert totals.total == sum(line.line_total for line in lines)


def test_summarize_empty(engine):
    totals = engine.summarize([])

    assert totals.total == Decimal("0.00")


def test_percentage_of(engine):
    assert engine.percentage_of(Decimal("32.50"), Decimal("682.50")) == Decimal("4.76")
    assert engine.percentage_of(Decimal("5"), Decimal("0")) == Decimal("0.00")

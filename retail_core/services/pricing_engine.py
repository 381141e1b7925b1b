"""
Pricing Engine for sale and return lines.

Pure Decimal arithmetic, no database access:
1. Line pricing (subtotal, discount, tax on the discounted amount)
2. Discount given as percentage or amount, the other derived
3. Proportional discount for partial returns
4. Document totals

Currency rounds to 2 places (ROUND_HALF_UP), quantities to 3 places.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from retail_core.core.exceptions import ValidationError


CURRENCY = Decimal("0.01")
QUANTITY = Decimal("0.001")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CURRENCY, rounding=ROUND_HALF_UP)


def to_quantity(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce int/str/float/Decimal input to Decimal, rejecting garbage."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid {field}: {value!r}", errors={field: "not a number"})
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}", errors={field: "not a number"})
    return result


@dataclass
class LinePricing:
    """Computed monetary breakdown of one line."""
    unit_price: Decimal
    quantity: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass
class DocumentTotals:
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO


class PricingEngine:
    """Per-line discount/tax computation shared by sales and returns."""

    def compute_line(
        self,
        unit_price: Any,
        quantity: Any,
        tax_rate: Any,
        discount_percentage: Optional[Any] = None,
        discount_amount: Optional[Any] = None,
    ) -> LinePricing:
        """
        Price a single line.

        tax = (subtotal - discount) * rate / 100
        line_total = subtotal - discount + tax

        When both discount forms are supplied the amount wins.
        """
        price = to_money(to_decimal(unit_price, "unit_price"))
        qty = to_quantity(to_decimal(quantity, "quantity"))
        rate = to_decimal(tax_rate, "tax_rate")

        if qty <= 0:
            raise ValidationError("Quantity must be greater than zero", errors={"quantity": "must be > 0"})
        if price < 0:
            raise ValidationError("Unit price cannot be negative", errors={"unit_price": "must be >= 0"})
        if rate < 0:
            raise ValidationError("Tax rate cannot be negative", errors={"tax_rate": "must be >= 0"})

        subtotal = to_money(price * qty)

        if discount_amount is not None:
            discount = to_money(to_decimal(discount_amount, "discount_amount"))
            if discount < 0 or discount > subtotal:
                raise ValidationError(
                    f"Discount amount {discount} must be between 0 and line subtotal {subtotal}",
                    errors={"discount_amount": f"must be between 0 and {subtotal}"},
                )
            percentage = self.percentage_of(discount, subtotal)
        elif discount_percentage is not None:
            percentage = to_decimal(discount_percentage, "discount_percentage")
            if percentage < 0 or percentage > HUNDRED:
                raise ValidationError(
                    f"Discount percentage {percentage} must be between 0 and 100",
                    errors={"discount_percentage": "must be between 0 and 100"},
                )
            discount = to_money(subtotal * percentage / HUNDRED)
            percentage = to_money(percentage)
        else:
            percentage = ZERO
            discount = ZERO

        taxable = subtotal - discount
        tax = to_money(taxable * rate / HUNDRED)

        return LinePricing(
            unit_price=price,
            quantity=qty,
            tax_rate=rate,
            subtotal=subtotal,
            discount_percentage=percentage,
            discount_amount=discount,
            taxable_amount=taxable,
            tax_amount=tax,
            line_total=taxable + tax,
        )

    def compute_proportional_discount(
        self,
        original_quantity: Any,
        return_quantity: Any,
        original_discount_amount: Any,
    ) -> Decimal:
        """Share of the original line discount attributable to ``return_quantity`` units."""
        original_qty = to_decimal(original_quantity, "original_quantity")
        return_qty = to_decimal(return_quantity, "return_quantity")
        original_discount = to_decimal(original_discount_amount, "original_discount_amount")

        if original_qty <= 0:
            return ZERO
        if return_qty < 0 or return_qty > original_qty:
            raise ValidationError(
                f"Return quantity {return_qty} must be between 0 and {original_qty}",
                errors={"return_quantity": f"must be between 0 and {original_qty}"},
            )
        if return_qty == original_qty:
            return to_money(original_discount)

        return to_money(original_discount * return_qty / original_qty)

    def compute_return_line(
        self,
        unit_price: Any,
        original_quantity: Any,
        return_quantity: Any,
        original_discount_amount: Any,
        tax_rate: Any,
    ) -> LinePricing:
        discount = self.compute_proportional_discount(
            original_quantity, return_quantity, original_discount_amount
        )
        # Rounding of the prorated share must not exceed what the returned units cost
        returned_subtotal = to_money(
            to_money(to_decimal(unit_price, "unit_price"))
            * to_quantity(to_decimal(return_quantity, "return_quantity"))
        )
        discount = min(discount, max(returned_subtotal, ZERO))

        return self.compute_line(
            unit_price=unit_price,
            quantity=return_quantity,
            tax_rate=tax_rate,
            discount_amount=discount,
        )

    def summarize(self, lines: Iterable[LinePricing]) -> DocumentTotals:
        """Sum line breakdowns; total is always subtotal - discount + tax."""
        totals = DocumentTotals()
        for line in lines:
            totals.subtotal += line.subtotal
            totals.discount_amount += line.discount_amount
            totals.tax_amount += line.tax_amount
        totals.total = totals.subtotal - totals.discount_amount + totals.tax_amount
        return totals

    @staticmethod
    def percentage_of(amount: Decimal, total: Decimal) -> Decimal:
        """``amount`` as a percentage of ``total``; 0 when total is 0."""
        if not total:
            return ZERO
        return to_money(amount / total * HUNDRED)

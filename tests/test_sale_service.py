import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from retail_core.core.exceptions import (
    DocumentNumberConflictError,
    InsufficientStockError,
    NotFoundError,
    StateError,
    ValidationError,
)
from retail_core.models import Sale
from retail_core.schemas.sale import SaleCreate
from retail_core.schemas.sales_return import ReturnCreate, ReturnLineCreate
from retail_core.services.return_service import ReturnService
from retail_core.services.sale_service import SaleService


async def count_sales(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count(Sale.id)))).scalar_one()


async def test_sale_reserves_stock_and_prices_lines(db, settings, make_product, stock_of, sale_request):
    product_id = await make_product(stock="10", unit_price="100.00", tax_rate="5.00")

    sale = await SaleService(db, settings).create_sale(
        sale_request((product_id, 3, {"discount_percentage": Decimal("10")}))
    )

    assert await stock_of(product_id) == Decimal("7")
    assert sale.status == "COMPLETED"
    assert sale.invoice_number.startswith("INV")
    assert len(sale.lines) == 1

    line = sale.lines[0]
    assert line.line_number == 1
    assert line.product_name == "Khadi Kurta"
    assert line.discount_amount == Decimal("30.00")
    assert line.discount_percentage == Decimal("10.00")
    assert line.tax_amount == Decimal("13.50")  # 5% of 270
    assert line.line_total == Decimal("283.50")
    assert line.returned_quantity == Decimal("0")

    assert sale.subtotal == Decimal("300.00")
    assert sale.discount_amount == Decimal("30.00")
    assert sale.tax_amount == Decimal("13.50")
    assert sale.calculated_total == Decimal("283.50")
    assert sale.final_total is None
    assert sale.requires_approval is False


async def test_totals_identity_across_lines(db, settings, make_product, sale_request):
    kurta = await make_product(name="Kurta", stock="10", unit_price="349.00", tax_rate="5")
    fabric = await make_product(name="Khadi Fabric", stock="50", unit_price="120.50", tax_rate="12", unit_of_measure="METER")
    honey = await make_product(name="Honey", stock="20", unit_price="75.00", tax_rate="0")

    sale = await SaleService(db, settings).create_sale(sale_request(
        (kurta, 2, {"discount_amount": Decimal("49.00")}),
        (fabric, "3.5", {"discount_percentage": Decimal("7.5")}),
        (honey, 1),
    ))

    assert [line.line_number for line in sale.lines] == [1, 2, 3]
    assert sale.calculated_total == sale.subtotal - sale.discount_amount + sale.tax_amount
    assert sale.calculated_total == sum(line.line_total for line in sale.lines)
    assert sale.lines[1].unit_of_measure == "METER"
    assert sale.lines[1].quantity == Decimal("3.5")


async def test_insufficient_stock_rolls_back_every_line(db, settings, session_factory, make_product, stock_of, sale_request):
    plenty = await make_product(name="Soap", stock="10")
    scarce = await make_product(name="Cotton Saree", stock="5")

    with pytest.raises(InsufficientStockError) as exc_info:
        await SaleService(db, settings).create_sale(sale_request((plenty, 4), (scarce, 10)))

    assert exc_info.value.product_name == "Cotton Saree"
    assert exc_info.value.available == Decimal("5")
    assert await stock_of(plenty) == Decimal("10")
    assert await stock_of(scarce) == Decimal("5")
    assert await count_sales(session_factory) == 0


async def test_oversell_by_sequential_sales(settings, session_factory, make_product, stock_of, create_sale):
    product_id = await make_product(stock="5")

    await create_sale((product_id, 3))
    with pytest.raises(InsufficientStockError):
        await create_sale((product_id, 3))

    assert await stock_of(product_id) == Decimal("2")
    assert await count_sales(session_factory) == 1


async def test_empty_sale_rejected(db, settings):
    with pytest.raises(ValidationError) as exc_info:
        await SaleService(db, settings).create_sale(SaleCreate(lines=[]))

    assert "lines" in exc_info.value.errors


async def test_unknown_product(db, settings, sale_request):
    with pytest.raises(NotFoundError):
        await SaleService(db, settings).create_sale(sale_request((uuid.uuid4(), 1)))


async def test_inactive_product(db, settings, make_product, stock_of, sale_request):
    product_id = await make_product(stock="10", is_active=False)

    with pytest.raises(ValidationError):
        await SaleService(db, settings).create_sale(sale_request((product_id, 1)))

    assert await stock_of(product_id) == Decimal("10")


async def test_invalid_discount_releases_reservation(db, settings, make_product, stock_of, sale_request):
    product_id = await make_product(stock="10", unit_price="10.00")

    with pytest.raises(ValidationError):
        await SaleService(db, settings).create_sale(
            sale_request((product_id, 1, {"discount_amount": Decimal("15.00")}))
        )

    assert await stock_of(product_id) == Decimal("10")


@pytest.mark.parametrize("given, stored", [
    (None, "CASH"),
    ("", "CASH"),
    ("bitcoin", "CASH"),
    ("card", "CARD"),
    ("store credit", "STORE_CREDIT"),
    ("UPI", "UPI"),
])
async def test_payment_method_falls_back_to_default(db, settings, make_product, sale_request, given, stored):
    product_id = await make_product()

    sale = await SaleService(db, settings).create_sale(
        sale_request((product_id, 1), payment_method=given)
    )

    assert sale.payment_method == stored


async def test_unit_price_override(db, settings, make_product, sale_request):
    product_id = await make_product(unit_price="100.00", tax_rate="0")

    sale = await SaleService(db, settings).create_sale(
        sale_request((product_id, 2, {"unit_price": Decimal("80.00")}))
    )

    assert sale.lines[0].unit_price == Decimal("80.00")
    assert sale.calculated_total == Decimal("160.00")


async def test_customer_aggregates_updated(make_product, make_customer, load_customer, create_sale):
    product_id = await make_product(stock="10", unit_price="100.00", tax_rate="0")
    customer_id = await make_customer()

    first = await create_sale((product_id, 1), customer_id=customer_id)
    second = await create_sale((product_id, 2), customer_id=customer_id)

    customer = await load_customer(customer_id)
    assert customer.total_orders == 2
    assert customer.total_purchases == first.calculated_total + second.calculated_total
    assert customer.last_purchase_date is not None
    assert first.customer_name == "Asha Patel"
    assert first.customer_phone == "9800000001"


async def test_failed_sale_leaves_customer_untouched(make_product, make_customer, load_customer, create_sale):
    product_id = await make_product(stock="1")
    customer_id = await make_customer()

    with pytest.raises(InsufficientStockError):
        await create_sale((product_id, 2), customer_id=customer_id)

    customer = await load_customer(customer_id)
    assert customer.total_orders == 0
    assert customer.total_purchases == Decimal("0")
    assert customer.last_purchase_date is None


async def test_unknown_customer(db, settings, make_product, stock_of, sale_request):
    product_id = await make_product(stock="10")

    with pytest.raises(NotFoundError):
        await SaleService(db, settings).create_sale(sale_request((product_id, 1), customer_id=uuid.uuid4()))

    assert await stock_of(product_id) == Decimal("10")


async def test_walk_in_customer_details(db, settings, make_product, sale_request):
    product_id = await make_product()

    sale = await SaleService(db, settings).create_sale(
        sale_request((product_id, 1), customer_name="Walk-in", customer_phone="9811111111")
    )

    assert sale.customer_id is None
    assert sale.customer_name == "Walk-in"


async def test_invoice_numbers_are_sequential(make_product, create_sale):
    product_id = await make_product(stock="10")

    first = await create_sale((product_id, 1))
    second = await create_sale((product_id, 1))

    assert first.invoice_number[:11] == second.invoice_number[:11]
    assert int(second.invoice_number[11:]) == int(first.invoice_number[11:]) + 1


async def test_duplicate_invoice_number_at_commit(db, settings, session_factory, make_product, stock_of,
                                                 create_sale, sale_request, monkeypatch):
    product_id = await make_product(stock="10")
    existing = await create_sale((product_id, 1))
    service = SaleService(db, settings)

    async def stale_allocate(document_type, on_date=None):
        return existing.invoice_number

    monkeypatch.setattr(service.numbers, "allocate", stale_allocate)

    with pytest.raises(DocumentNumberConflictError) as exc_info:
        await service.create_sale(sale_request((product_id, 2)))

    assert exc_info.value.document_number == existing.invoice_number
    assert await stock_of(product_id) == Decimal("9")
    assert await count_sales(session_factory) == 1


async def test_read_helpers(db, settings, make_product, create_sale):
    product_id = await make_product(stock="10")
    created = await create_sale((product_id, 2))
    service = SaleService(db, settings)

    by_id = await service.get_sale(created.id)
    by_number = await service.get_sale_by_invoice_number(created.invoice_number)
    quantities = await service.get_returnable_quantities(created.id)

    assert by_id.id == by_number.id == created.id
    assert quantities == {created.lines[0].id: Decimal("2")}
    assert await service.get_sale_by_invoice_number("INV00000000000") is None
    with pytest.raises(NotFoundError):
        await service.get_sale(uuid.uuid4())


async def test_cancel_sale_restocks(db, settings, make_product, stock_of, create_sale):
    product_id = await make_product(stock="10")
    sale = await create_sale((product_id, 4))

    cancelled = await SaleService(db, settings).cancel_sale(sale.id, "Customer changed mind", "cashier-1")

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancellation_reason == "Customer changed mind"
    assert cancelled.cancelled_by == "cashier-1"
    assert cancelled.cancelled_at is not None
    assert await stock_of(product_id) == Decimal("10")


async def test_cancel_sale_twice_rejected(db, settings, make_product, stock_of, create_sale):
    product_id = await make_product(stock="10")
    sale = await create_sale((product_id, 4))
    service = SaleService(db, settings)
    await service.cancel_sale(sale.id, "Duplicate entry")

    with pytest.raises(StateError) as exc_info:
        await service.cancel_sale(sale.id, "Again")

    assert exc_info.value.current_status == "CANCELLED"
    assert await stock_of(product_id) == Decimal("10")


async def test_cancel_sale_with_return_rejected(db, settings, make_product, stock_of, create_sale):
    product_id = await make_product(stock="10")
    sale = await create_sale((product_id, 2))
    await ReturnService(db, settings).create_return(ReturnCreate(
        sale_id=sale.id,
        reason="Damaged",
        lines=[ReturnLineCreate(sale_line_id=sale.lines[0].id, quantity=Decimal("1"))],
    ))

    with pytest.raises(StateError):
        await SaleService(db, settings).cancel_sale(sale.id, "Too late")

    assert await stock_of(product_id) == Decimal("8")


async def test_cancel_unknown_sale(db, settings):
    with pytest.raises(NotFoundError):
        await SaleService(db, settings).cancel_sale(uuid.uuid4(), "Nope")


async def test_cancel_sale_awaiting_payment_approval(db, settings, make_product, stock_of, create_sale):
    from retail_core.services.payment_reconciliation_service import PaymentReconciliationService

    product_id = await make_product(stock="5", unit_price="650.00", tax_rate="5")
    sale = await create_sale((product_id, 1))
    await PaymentReconciliationService(db, settings).process_payment(sale.id, Decimal("650.00"))
    service = SaleService(db, settings)
    assert (await service.get_sale(sale.id)).is_cancellable

    cancelled = await service.cancel_sale(sale.id, "Customer walked away")

    assert cancelled.status == "CANCELLED"
    assert cancelled.is_cancellable is False
    assert await stock_of(product_id) == Decimal("5")

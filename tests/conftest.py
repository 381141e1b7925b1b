# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own file-backed SQLite database (aiosqlite)
# - Seed rows are committed through a separate session, so services under
#   test always see them as pre-existing data
# - Read stock / aggregates back through a fresh session (stock_of, ...)
#   because services mutate with UPDATE statements, not ORM attributes
# ---------------------------------------------------------------------
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from retail_core.config import Settings
from retail_core.database import build_engine, init_db
from retail_core.models import Customer, Product, SaleLine
from retail_core.schemas.sale import SaleCreate, SaleLineCreate
from retail_core.services.sale_service import SaleService


@pytest.fixture
def settings():
    return Settings(_env_file=None, DOCUMENT_NUMBER_RETRY_DELAY_MS=0)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'retail_core_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------- Seed helpers ----------

@pytest.fixture
def make_product(session_factory):
    async def _make(
        name="Khadi Kurta",
        stock="10",
        unit_price="100.00",
        tax_rate="5.00",
        is_active=True,
        unit_of_measure="PIECE",
    ):
        async with session_factory() as session:
            product = Product(
                name=name,
                stock_quantity=Decimal(stock),
                unit_price=Decimal(unit_price),
                tax_rate=Decimal(tax_rate),
                is_active=is_active,
                unit_of_measure=unit_of_measure,
            )
            session.add(product)
            await session.commit()
            return product.id
    return _make


@pytest.fixture
def make_customer(session_factory):
    async def _make(name="Asha Patel", phone="9800000001"):
        async with session_factory() as session:
            customer = Customer(name=name, phone=phone)
            session.add(customer)
            await session.commit()
            return customer.id
    return _make


@pytest.fixture
def stock_of(session_factory):
    async def _stock(product_id):
        async with session_factory() as session:
            return (await session.execute(
                select(Product.stock_quantity).where(Product.id == product_id)
            )).scalar_one()
    return _stock


@pytest.fixture
def load_customer(session_factory):
    async def _load(customer_id):
        async with session_factory() as session:
            return (await session.execute(
                select(Customer).where(Customer.id == customer_id)
            )).scalar_one()
    return _load


@pytest.fixture
def returned_quantity_of(session_factory):
    async def _returned(sale_line_id):
        async with session_factory() as session:
            return (await session.execute(
                select(SaleLine.returned_quantity).where(SaleLine.id == sale_line_id)
            )).scalar_one()
    return _returned


def build_sale_request(*lines, **kwargs) -> SaleCreate:
    """Build a SaleCreate from (product_id, quantity[, extra fields]) tuples."""
    built = []
    for line in lines:
        product_id, quantity, *rest = line
        extra = rest[0] if rest else {}
        built.append(SaleLineCreate(product_id=product_id, quantity=Decimal(str(quantity)), **extra))
    return SaleCreate(lines=built, **kwargs)


@pytest.fixture
def sale_request():
    return build_sale_request


@pytest.fixture
def create_sale(session_factory, settings):
    """Create a committed sale through the service and return it."""
    async def _create(*lines, **kwargs):
        async with session_factory() as session:
            return await SaleService(session, settings).create_sale(build_sale_request(*lines, **kwargs))
    return _create

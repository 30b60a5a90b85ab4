import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from application.promoter import BatchPromoter
from conftest import make_item
from domain.order import Order, OrderStatus
from domain.paging import PageRequest
from infrastructure import db

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def postgres_container():
    """Start PostgreSQL container once for all tests."""
    with PostgresContainer("postgres:15-alpine") as postgres:
        yield postgres


@pytest_asyncio.fixture
async def db_engine(postgres_container):
    """Create a fresh schema for each test."""
    dsn = postgres_container.get_connection_url(driver="asyncpg")
    schema_name = f"test_{uuid.uuid4().hex[:8]}"

    engine = create_async_engine(dsn, future=True, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA {schema_name}"))
    await engine.dispose()

    engine = create_async_engine(
        dsn,
        future=True,
        poolclass=NullPool,
        connect_args={"server_settings": {"search_path": schema_name}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(db.metadata.create_all)

    yield engine

    await engine.dispose()


def _order(number: str, *items) -> Order:
    return Order.create(
        order_number=number,
        customer_name="Ada Lovelace",
        customer_email="ada@example.com",
        items=items or [make_item("1299.99")],
    )


@pytest.mark.asyncio
async def test_save_assigns_id_and_timestamps_and_round_trips(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)
    order = _order("ORD-20261019-00001", make_item("19.99", 3), make_item("0.01", 1, product_id=2))

    async with uow:
        saved = await uow.orders.save(order)
        await uow.commit()

    async with uow:
        fetched = await uow.orders.find_by_id(saved.id)

    assert saved.id is not None
    assert fetched.order_number == "ORD-20261019-00001"
    assert fetched.status is OrderStatus.PENDING
    assert fetched.total_amount == Decimal("59.98")
    assert fetched.items[0].price == Decimal("19.99")
    assert fetched.created_at is not None
    assert fetched.updated_at >= fetched.created_at


@pytest.mark.asyncio
async def test_status_update_and_lookup_by_number(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)

    async with uow:
        order = await uow.orders.save(_order("ORD-20261019-00001"))
        await uow.commit()

    async with uow:
        order.transition_to(OrderStatus.PROCESSING)
        await uow.orders.save(order)
        await uow.commit()

    async with uow:
        fetched = await uow.orders.find_by_order_number("ORD-20261019-00001")
        exists = await uow.orders.exists_by_order_number("ORD-20261019-00001")
        missing = await uow.orders.exists_by_order_number("ORD-20261019-00002")

    assert fetched.status is OrderStatus.PROCESSING
    assert exists is True
    assert missing is False


@pytest.mark.asyncio
async def test_find_last_order_number_handles_widened_counter(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)
    async with uow:
        for number in ("ORD-20261019-99999", "ORD-20261019-100000", "ORD-20261019-00042", "ORD-20261020-00001"):
            await uow.orders.save(_order(number))
        await uow.commit()

    async with uow:
        last = await uow.orders.find_last_order_number("ORD-20261019-")
        none_yet = await uow.orders.find_last_order_number("ORD-20261021-")

    assert last == "ORD-20261019-100000"
    assert none_yet is None


@pytest.mark.asyncio
async def test_order_number_is_unique(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)

    async with uow:
        await uow.orders.save(_order("ORD-20261019-00001"))
        await uow.commit()

    with pytest.raises(IntegrityError):
        async with uow:
            await uow.orders.save(_order("ORD-20261019-00001"))
            await uow.commit()


@pytest.mark.asyncio
async def test_find_page_filters_and_orders_by_creation(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)

    async with uow:
        for i in range(1, 6):
            order = await uow.orders.save(_order(f"ORD-20261019-{i:05d}"))
            await uow.commit()
        order.transition_to(OrderStatus.PROCESSING)
        await uow.orders.save(order)
        await uow.commit()

    async with uow:
        pending = await uow.orders.find_page(OrderStatus.PENDING, PageRequest(page=1, size=3))
        everything = await uow.orders.find_page(None, PageRequest(page=0, size=10))

    assert pending.total_elements == 4
    assert [o.order_number for o in pending.content] == ["ORD-20261019-00004"]
    assert pending.has_next is False
    assert [o.order_number for o in everything.content] == [f"ORD-20261019-{i:05d}" for i in range(1, 6)]


@pytest.mark.asyncio
async def test_delete_removes_order(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)

    async with uow:
        order = await uow.orders.save(_order("ORD-20261019-00001"))
        await uow.commit()

    async with uow:
        await uow.orders.delete(order)
        await uow.commit()

    async with uow:
        assert await uow.orders.find_by_id(order.id) is None


@pytest.mark.asyncio
async def test_promoter_drains_pending_orders_in_database(db_engine):
    uow = db.SqlAlchemyUnitOfWork(db_engine)
    async with uow:
        for i in range(1, 13):
            await uow.orders.save(_order(f"ORD-20261019-{i:05d}"))
        await uow.commit()

    promoter = BatchPromoter(lambda: db.SqlAlchemyUnitOfWork(db_engine), page_size=5)
    promoted = await promoter.run_once()

    async with uow:
        pending = await uow.orders.find_page(OrderStatus.PENDING, PageRequest(size=50))
        processing = await uow.orders.find_page(OrderStatus.PROCESSING, PageRequest(size=50))

    assert promoted == 12
    assert pending.total_elements == 0
    assert processing.total_elements == 12

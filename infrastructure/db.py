from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from domain.order import Order, OrderItem, OrderStatus
from domain.paging import Page, PageRequest

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_number", String(50), nullable=False, unique=True),
    Column("customer_name", String(100), nullable=False),
    Column("customer_email", String(100), nullable=False),
    Column("status", String(20), nullable=False),
    Column("total_amount", Numeric(10, 2), nullable=False),
    Column("items", JSONB, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("idx_orders_status", "status"),
    Index("idx_orders_created_at", "created_at"),
)


def get_engine(dsn: Optional[str] = None) -> AsyncEngine:
    url = dsn or os.getenv("APP__DB_DSN")
    if not url:
        raise RuntimeError("APP__DB_DSN not set")
    return create_async_engine(url, future=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def items_to_json(items) -> list[dict[str, Any]]:
    return [
        {
            "product_id": i.product_id,
            "product_name": i.product_name,
            "quantity": i.quantity,
            "price": str(i.price),
        }
        for i in items
    ]


def items_from_json(data: list[dict[str, Any]]) -> list[OrderItem]:
    return [
        OrderItem(
            product_id=item["product_id"],
            product_name=item["product_name"],
            quantity=item["quantity"],
            price=Decimal(item["price"]),
        )
        for item in data
    ]


def _to_order(row) -> Order:
    data = row._mapping
    return Order.hydrate(
        id=data["id"],
        order_number=data["order_number"],
        customer_name=data["customer_name"],
        customer_email=data["customer_email"],
        items=items_from_json(data["items"]),
        status=OrderStatus(data["status"]),
        total_amount=Decimal(data["total_amount"]),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, order: Order) -> Order:
        now = _utcnow()
        if order.id is None:
            stmt = (
                insert(orders)
                .values(
                    order_number=order.order_number,
                    customer_name=order.customer_name,
                    customer_email=order.customer_email,
                    status=order.status.value,
                    total_amount=order.total_amount,
                    items=items_to_json(order.items),
                    created_at=now,
                    updated_at=now,
                )
                .returning(orders.c.id)
            )
            result = await self.session.execute(stmt)
            order.id = result.scalar_one()
            order.created_at = now
        else:
            # Only status moves after creation; items and total are fixed.
            await self.session.execute(
                update(orders)
                .where(orders.c.id == order.id)
                .values(status=order.status.value, updated_at=now)
            )
        order.updated_at = now
        return order

    async def find_by_id(self, order_id: int) -> Order | None:
        result = await self.session.execute(select(orders).where(orders.c.id == order_id))
        row = result.first()
        return _to_order(row) if row else None

    async def find_by_order_number(self, order_number: str) -> Order | None:
        result = await self.session.execute(select(orders).where(orders.c.order_number == order_number))
        row = result.first()
        return _to_order(row) if row else None

    async def exists_by_order_number(self, order_number: str) -> bool:
        result = await self.session.execute(
            select(orders.c.id).where(orders.c.order_number == order_number).limit(1)
        )
        return result.first() is not None

    async def find_last_order_number(self, prefix: str) -> str | None:
        # Longer counters sort after shorter ones once the field widens.
        result = await self.session.execute(
            select(orders.c.order_number)
            .where(orders.c.order_number.startswith(prefix, autoescape=True))
            .order_by(func.length(orders.c.order_number).desc(), orders.c.order_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_page(self, status: OrderStatus | None, page_request: PageRequest) -> Page[Order]:
        query = select(orders)
        count_query = select(func.count()).select_from(orders)
        if status is not None:
            query = query.where(orders.c.status == status.value)
            count_query = count_query.where(orders.c.status == status.value)

        total = (await self.session.execute(count_query)).scalar_one()
        result = await self.session.execute(
            query.order_by(orders.c.created_at, orders.c.id)
            .offset(page_request.offset)
            .limit(page_request.size)
        )
        return Page(
            content=[_to_order(row) for row in result.fetchall()],
            total_elements=total,
            page=page_request.page,
            size=page_request.size,
        )

    async def delete(self, order: Order) -> None:
        await self.session.execute(delete(orders).where(orders.c.id == order.id))


class SqlAlchemyUnitOfWork:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)
        self.session: AsyncSession | None = None
        self._orders_repo: OrderRepository | None = None

    async def __aenter__(self):
        self.session = self.session_factory()
        await self.session.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session:
            await self.session.__aexit__(exc_type, exc, tb)
        self.session = None
        self._orders_repo = None

    async def commit(self) -> None:
        if self.session:
            await self.session.commit()

    @property
    def orders(self) -> OrderRepository:
        if not self._orders_repo:
            if not self.session:
                raise RuntimeError("Session not initialized")
            self._orders_repo = OrderRepository(self.session)
        return self._orders_repo

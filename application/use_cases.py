from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol

from application.results import Failure, Result, Success
from domain.order import (
    InvalidStatusTransition,
    Order,
    OrderError,
    OrderItem,
    OrderNotFound,
    OrderStatus,
    validate_order_input,
)
from domain.paging import Page, PageRequest
from domain.sequence import SequenceAllocator, parse_counter
from infrastructure.config import SERVICE_NAME
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

logger = get_logger(SERVICE_NAME)


class OrderRepository(Protocol):
    async def save(self, order: Order) -> Order: ...
    async def find_by_id(self, order_id: int) -> Order | None: ...
    async def find_by_order_number(self, order_number: str) -> Order | None: ...
    async def exists_by_order_number(self, order_number: str) -> bool: ...
    async def find_last_order_number(self, prefix: str) -> str | None: ...
    async def find_page(self, status: OrderStatus | None, page_request: PageRequest) -> Page[Order]: ...
    async def delete(self, order: Order) -> None: ...


class UnitOfWork(Protocol):
    async def __aenter__(self) -> "UnitOfWork": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...
    @property
    def orders(self) -> OrderRepository: ...


@dataclass
class CreateOrderCommand:
    customer_name: str
    customer_email: str
    items: List[OrderItem]


class OrderLifecycleEngine:
    """Creates orders, enforces the status state machine and handles cancellation.

    Business rule violations come back as ``Failure`` values; only
    infrastructure errors propagate as exceptions.
    """

    def __init__(self, uow: UnitOfWork, allocator: SequenceAllocator):
        self.uow = uow
        self.allocator = allocator

    async def create(self, cmd: CreateOrderCommand) -> Result[Order]:
        try:
            validate_order_input(cmd.customer_name, cmd.customer_email, tuple(cmd.items))
        except OrderError as exc:
            logger.warning("Order rejected", customer_email=cmd.customer_email, error=str(exc))
            return Failure(exc)

        async with self.uow:
            order_number = await self._allocate_order_number()
            order = Order.create(
                order_number=order_number,
                customer_name=cmd.customer_name,
                customer_email=cmd.customer_email,
                items=cmd.items,
            )
            saved = await self.uow.orders.save(order)
            await self.uow.commit()

        metrics.increment("orders_created_total")
        logger.info(
            "Order created",
            order_id=saved.id,
            order_number=saved.order_number,
            total_amount=str(saved.total_amount),
            items=len(saved.items),
        )
        return Success(saved)

    async def _allocate_order_number(self) -> str:
        date_key = self.allocator.date_key()
        if not self.allocator.is_seeded_for(date_key):
            last = await self.uow.orders.find_last_order_number(self.allocator.number_prefix(date_key))
            counter = parse_counter(last) if last else 0
            self.allocator.advance_to(date_key, counter)
            logger.info("Order number sequence seeded", date_key=date_key, last_order_number=last)

        # Another process may share the store; skip anything it already took.
        while True:
            order_number = self.allocator.next()
            if not await self.uow.orders.exists_by_order_number(order_number):
                return order_number
            logger.warning("Order number already taken, drawing again", order_number=order_number)

    async def get_by_id(self, order_id: int) -> Result[Order]:
        async with self.uow:
            order = await self.uow.orders.find_by_id(order_id)
        if order is None:
            return Failure(OrderNotFound(f"Order not found with id: {order_id}"))
        return Success(order)

    async def get_by_order_number(self, order_number: str) -> Result[Order]:
        async with self.uow:
            order = await self.uow.orders.find_by_order_number(order_number)
        if order is None:
            return Failure(OrderNotFound(f"Order not found with order number: {order_number}"))
        return Success(order)

    async def update_status(self, order_id: int, new_status: OrderStatus) -> Result[Order]:
        async with self.uow:
            order = await self.uow.orders.find_by_id(order_id)
            if order is None:
                return Failure(OrderNotFound(f"Order not found with id: {order_id}"))

            try:
                previous = order.transition_to(new_status)
            except InvalidStatusTransition as exc:
                logger.warning(
                    "Status transition rejected",
                    order_number=order.order_number,
                    from_status=exc.from_status.value,
                    to_status=new_status.value,
                )
                return Failure(exc)

            saved = await self.uow.orders.save(order)
            await self.uow.commit()

        metrics.increment("orders_status_updated_total")
        logger.info(
            "Order status updated",
            order_number=saved.order_number,
            from_status=previous.value,
            to_status=new_status.value,
        )
        return Success(saved)

    async def cancel(self, order_id: int) -> Result[None]:
        async with self.uow:
            order = await self.uow.orders.find_by_id(order_id)
            if order is None:
                return Failure(OrderNotFound(f"Order not found with id: {order_id}"))

            try:
                order.ensure_cancellable()
            except InvalidStatusTransition as exc:
                logger.warning("Cancellation rejected", order_number=order.order_number, status=order.status.value)
                return Failure(exc)

            await self.uow.orders.delete(order)
            await self.uow.commit()

        metrics.increment("orders_cancelled_total")
        logger.info("Order cancelled", order_id=order_id, order_number=order.order_number)
        return Success(None)

    async def list(self, status: OrderStatus | None, page_request: PageRequest) -> Result[Page[Order]]:
        async with self.uow:
            page = await self.uow.orders.find_page(status, page_request)
        return Success(page)

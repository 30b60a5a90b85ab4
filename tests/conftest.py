import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional

import pytest

from domain.order import Order, OrderItem, OrderStatus
from domain.paging import Page, PageRequest
from domain.sequence import SequenceAllocator
from infrastructure.metrics import metrics

BASE_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class InMemoryOrderRepo:
    """Dict-backed order store; returns copies so unsaved changes never leak in."""

    def __init__(self):
        self.storage: Dict[int, Order] = {}
        self._next_id = 1
        self.save_calls = 0
        self.find_page_calls = 0
        self.delete_calls = 0
        self.fail_on_save_call: Optional[int] = None
        self.fail_on_find_page_call: Optional[int] = None

    async def save(self, order: Order) -> Order:
        self.save_calls += 1
        if self.fail_on_save_call == self.save_calls:
            raise ConnectionError("database went away")
        now = BASE_TIME + timedelta(seconds=self._next_id)
        if order.id is None:
            order.id = self._next_id
            order.created_at = now
            self._next_id += 1
        order.updated_at = now
        self.storage[order.id] = copy.copy(order)
        return order

    async def find_by_id(self, order_id: int) -> Order | None:
        order = self.storage.get(order_id)
        return copy.copy(order) if order else None

    async def find_by_order_number(self, order_number: str) -> Order | None:
        for order in self.storage.values():
            if order.order_number == order_number:
                return copy.copy(order)
        return None

    async def exists_by_order_number(self, order_number: str) -> bool:
        return any(o.order_number == order_number for o in self.storage.values())

    async def find_last_order_number(self, prefix: str) -> Optional[str]:
        numbers = [o.order_number for o in self.storage.values() if o.order_number.startswith(prefix)]
        return max(numbers, key=lambda n: (len(n), n), default=None)

    async def find_page(self, status: OrderStatus | None, page_request: PageRequest) -> Page[Order]:
        self.find_page_calls += 1
        if self.fail_on_find_page_call == self.find_page_calls:
            raise ConnectionError("database went away")
        matching = sorted(
            (o for o in self.storage.values() if status is None or o.status == status),
            key=lambda o: (o.created_at, o.id),
        )
        chunk = matching[page_request.offset:page_request.offset + page_request.size]
        return Page(
            content=[copy.copy(o) for o in chunk],
            total_elements=len(matching),
            page=page_request.page,
            size=page_request.size,
        )

    async def delete(self, order: Order) -> None:
        self.delete_calls += 1
        self.storage.pop(order.id, None)

    def count(self, status: OrderStatus) -> int:
        return sum(1 for o in self.storage.values() if o.status == status)


class InMemoryUoW:
    def __init__(self, orders: InMemoryOrderRepo | None = None):
        self.orders = orders or InMemoryOrderRepo()
        self.commits = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def commit(self) -> None:
        self.commits += 1


class FixedClock:
    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_item(price: str = "10.00", quantity: int = 1, product_id: int = 1, name: str = "Widget") -> OrderItem:
    return OrderItem(product_id=product_id, product_name=name, quantity=quantity, price=Decimal(price))


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def allocator(clock):
    return SequenceAllocator(prefix="ORD", clock=clock)


@pytest.fixture
def repo():
    return InMemoryOrderRepo()


@pytest.fixture
def uow(repo):
    return InMemoryUoW(repo)

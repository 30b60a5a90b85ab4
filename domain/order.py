from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Tuple

from email_validator import EmailNotValidError, validate_email

CENTS = Decimal("0.01")


class OrderError(Exception):
    """Base class for business rule violations."""


class ValidationFailure(OrderError, ValueError):
    """Raised when order data is invalid."""


class OrderNotFound(OrderError, LookupError):
    """Raised when no order matches the given id or number."""


class InvalidStatusTransition(OrderError):
    def __init__(self, from_status: "OrderStatus", to_status: "OrderStatus | None", message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        if message is None:
            message = f"Invalid status transition from {from_status.value} to {to_status.value if to_status else None}"
        super().__init__(message)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class OrderItem:
    product_id: int
    product_name: str
    quantity: int
    price: Decimal

    def subtotal(self) -> Decimal:
        return self.price * self.quantity


def calculate_total(items: Iterable[OrderItem]) -> Decimal:
    return sum((item.subtotal() for item in items), Decimal("0")).quantize(CENTS)


def validate_order_input(customer_name: str, customer_email: str, items: Tuple[OrderItem, ...]) -> None:
    if not customer_name or not customer_name.strip():
        raise ValidationFailure("customer_name must not be blank")
    if not customer_email:
        raise ValidationFailure("customer_email must not be blank")
    try:
        validate_email(customer_email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailure(f"customer_email is not a valid email address: {customer_email!r}") from exc
    if not items:
        raise ValidationFailure("Order must contain at least one item")
    for index, item in enumerate(items):
        if not item.product_name or not item.product_name.strip():
            raise ValidationFailure(f"items[{index}].product_name must not be blank")
        if item.quantity < 1:
            raise ValidationFailure(f"items[{index}].quantity must be greater than 0, got {item.quantity}")
        if item.price <= 0:
            raise ValidationFailure(f"items[{index}].price must be greater than 0, got {item.price}")
        if item.price.as_tuple().exponent < -2:
            raise ValidationFailure(f"items[{index}].price must have at most 2 decimal places, got {item.price}")


class Order:
    def __init__(
        self,
        order_number: str,
        customer_name: str,
        customer_email: str,
        items: Iterable[OrderItem],
        status: OrderStatus = OrderStatus.PENDING,
        id: int | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.order_number = order_number
        self.customer_name = customer_name
        self.customer_email = customer_email
        self.items = tuple(items)
        self.status = status
        self.total_amount = calculate_total(self.items)
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def create(
        cls,
        order_number: str,
        customer_name: str,
        customer_email: str,
        items: Iterable[OrderItem],
    ) -> "Order":
        items = tuple(items)
        validate_order_input(customer_name, customer_email, items)
        return cls(
            order_number=order_number,
            customer_name=customer_name.strip(),
            customer_email=customer_email.strip(),
            items=items,
        )

    @classmethod
    def hydrate(
        cls,
        id: int,
        order_number: str,
        customer_name: str,
        customer_email: str,
        items: Iterable[OrderItem],
        status: OrderStatus,
        total_amount: Decimal,
        created_at: datetime,
        updated_at: datetime,
    ) -> "Order":
        obj = cls.__new__(cls)
        obj.id = id
        obj.order_number = order_number
        obj.customer_name = customer_name
        obj.customer_email = customer_email
        obj.items = tuple(items)
        obj.status = status
        obj.total_amount = total_amount
        obj.created_at = created_at
        obj.updated_at = updated_at
        return obj

    def transition_to(self, new_status: OrderStatus) -> OrderStatus:
        """Move to ``new_status`` and return the previous status.

        Raises InvalidStatusTransition without touching the order when the
        edge is not in ALLOWED_TRANSITIONS.
        """
        previous = self.status
        if not can_transition(previous, new_status):
            raise InvalidStatusTransition(previous, new_status)
        self.status = new_status
        return previous

    def ensure_cancellable(self) -> None:
        if self.status is not OrderStatus.PENDING:
            raise InvalidStatusTransition(
                self.status,
                None,
                "Cannot cancel order. Only PENDING orders can be cancelled. "
                f"Current status: {self.status.value}",
            )

    def __repr__(self) -> str:
        return f"Order(id={self.id!r}, order_number={self.order_number!r}, status={self.status.value})"

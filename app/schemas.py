"""Pydantic schemas for HTTP API requests and responses."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from domain.order import Order, OrderItem, OrderStatus
from domain.paging import Page


class OrderItemRequest(BaseModel):
    """Line item in an order request."""
    product_id: int = Field(..., ge=1)
    product_name: str = Field(..., min_length=2, max_length=200)
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=Decimal("0.01"), max_digits=10, decimal_places=2)

    def to_domain(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=self.quantity,
            price=self.price,
        )


class CreateOrderRequest(BaseModel):
    """Request body for creating an order."""
    customer_name: str = Field(..., min_length=2, max_length=100)
    customer_email: EmailStr
    items: List[OrderItemRequest] = Field(..., min_length=1)


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    product_name: str
    quantity: int
    price: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    """Response for order endpoints."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    customer_name: str
    customer_email: str
    status: OrderStatus
    total_amount: Decimal
    items: List[OrderItemResponse]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status,
            total_amount=order.total_amount,
            items=[
                OrderItemResponse(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.price,
                    subtotal=item.subtotal(),
                )
                for item in order.items
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderPageResponse(BaseModel):
    content: List[OrderResponse]
    total_elements: int
    total_pages: int
    page: int
    size: int
    has_next: bool

    @classmethod
    def from_domain(cls, page: Page[Order]) -> "OrderPageResponse":
        responses = page.map(OrderResponse.from_domain)
        return cls(
            content=responses.content,
            total_elements=responses.total_elements,
            total_pages=responses.total_pages,
            page=responses.page,
            size=responses.size,
            has_next=responses.has_next,
        )

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from app.errors import (
    generic_error_handler,
    invalid_transition_error_handler,
    not_found_error_handler,
    request_validation_error_handler,
    unwrap,
    validation_error_handler,
)
from app.schemas import CreateOrderRequest, OrderPageResponse, OrderResponse, UpdateOrderStatusRequest
from application.promoter import BatchPromoter
from application.use_cases import CreateOrderCommand, OrderLifecycleEngine
from domain.order import InvalidStatusTransition, OrderNotFound, OrderStatus, ValidationFailure
from domain.paging import MAX_PAGE_SIZE, PageRequest
from domain.sequence import SequenceAllocator
from infrastructure import db
from infrastructure.config import Settings
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

settings = Settings.from_env()
logger = get_logger(settings.service_name, settings.log_level)

# Initialized at startup
engine: AsyncEngine | None = None
allocator: SequenceAllocator | None = None
# Background tasks
background_tasks: set[asyncio.Task] = set()


def get_service_name() -> str:
    return Settings.from_env().service_name


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and allocator, start the promoter, and cleanup on shutdown."""
    global engine, allocator, background_tasks

    engine = db.get_engine(settings.db_dsn)
    allocator = SequenceAllocator(
        prefix=settings.order_number_prefix,
        tz=settings.order_number_timezone,
    )

    # Deployed databases are migrated with `alembic upgrade head`.
    if settings.db_create_schema:
        async with engine.begin() as conn:
            await conn.run_sync(db.metadata.create_all)

    if settings.promoter_enabled:
        bound_engine = engine
        promoter = BatchPromoter(
            lambda: db.SqlAlchemyUnitOfWork(bound_engine),
            page_size=settings.promoter_page_size,
        )
        task = asyncio.create_task(promoter.run_forever(settings.promoter_interval_seconds))
        background_tasks.add(task)

    logger.info(
        "Order service started",
        promoter_enabled=settings.promoter_enabled,
        promoter_interval_seconds=settings.promoter_interval_seconds,
    )

    yield

    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()

    if engine:
        await engine.dispose()


app = FastAPI(title="Order Service", version="0.1.0", lifespan=lifespan)

# Register error handlers
app.add_exception_handler(ValidationFailure, validation_error_handler)
app.add_exception_handler(OrderNotFound, not_found_error_handler)
app.add_exception_handler(InvalidStatusTransition, invalid_transition_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(Exception, generic_error_handler)


def get_lifecycle() -> OrderLifecycleEngine:
    if not engine or not allocator:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return OrderLifecycleEngine(db.SqlAlchemyUnitOfWork(engine), allocator)


@app.get("/health")
async def health() -> dict:
    return {"service": get_service_name(), "status": "ok"}


@app.get("/metrics", response_class=PlainTextResponse)
async def get_metrics() -> str:
    return metrics.get_prometheus_text()


@app.post("/api/v1/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> OrderResponse:
    """Create a new order in PENDING state."""
    command = CreateOrderCommand(
        customer_name=request.customer_name,
        customer_email=str(request.customer_email),
        items=[item.to_domain() for item in request.items],
    )
    order = unwrap(await lifecycle.create(command))
    return OrderResponse.from_domain(order)


@app.get("/api/v1/orders", response_model=OrderPageResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> OrderPageResponse:
    result = unwrap(await lifecycle.list(status_filter, PageRequest(page=page, size=size)))
    return OrderPageResponse.from_domain(result)


@app.get("/api/v1/orders/number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(
    order_number: str,
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> OrderResponse:
    return OrderResponse.from_domain(unwrap(await lifecycle.get_by_order_number(order_number)))


@app.get("/api/v1/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> OrderResponse:
    """Get order details by ID."""
    return OrderResponse.from_domain(unwrap(await lifecycle.get_by_id(order_id)))


@app.patch("/api/v1/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    request: UpdateOrderStatusRequest,
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> OrderResponse:
    order = unwrap(await lifecycle.update_status(order_id, request.status))
    return OrderResponse.from_domain(order)


@app.delete("/api/v1/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_order(
    order_id: int,
    lifecycle: OrderLifecycleEngine = Depends(get_lifecycle),
) -> Response:
    """Cancel a PENDING order; the order is removed."""
    unwrap(await lifecycle.cancel(order_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

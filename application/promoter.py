from __future__ import annotations

import asyncio
from typing import Callable

from application.use_cases import UnitOfWork
from domain.order import OrderStatus
from domain.paging import MAX_PAGE_SIZE, PageRequest
from infrastructure.config import SERVICE_NAME
from infrastructure.logging import get_logger
from infrastructure.metrics import metrics

DEFAULT_PAGE_SIZE = 50
DEFAULT_INTERVAL_SECONDS = 300

logger = get_logger(SERVICE_NAME)


class BatchPromoter:
    """Moves every PENDING order to PROCESSING, one page at a time.

    Error policy: an exception while fetching or saving aborts the current
    run only. It is logged and counted, never raised, so the periodic task
    survives transient failures. Orders left PENDING are picked up by the
    next run.
    """

    def __init__(self, uow_factory: Callable[[], UnitOfWork], page_size: int = DEFAULT_PAGE_SIZE):
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        self.uow_factory = uow_factory
        self.page_size = page_size

    async def run_once(self) -> int:
        """Perform one run and return the number of orders promoted."""
        logger.debug("Batch promotion started", page_size=self.page_size)
        metrics.increment("promoter_runs_total")

        promoted_ids: set[int] = set()
        try:
            # Promoted orders drop out of the PENDING filter, so the remaining
            # work is always the first page.
            page_request = PageRequest(page=0, size=self.page_size)
            uow = self.uow_factory()
            while True:
                async with uow:
                    page = await uow.orders.find_page(OrderStatus.PENDING, page_request)
                    if page.is_empty:
                        break
                    for order in page.content:
                        if order.id in promoted_ids:
                            raise RuntimeError(f"Order {order.order_number} is still PENDING after promotion")
                        order.transition_to(OrderStatus.PROCESSING)
                        await uow.orders.save(order)
                        await uow.commit()
                        promoted_ids.add(order.id)
                        metrics.increment("orders_promoted_total")
                        logger.debug("Order promoted", order_number=order.order_number)
        except Exception:
            metrics.increment("promoter_runs_failed_total")
            logger.error("Batch promotion aborted", exc_info=True, promoted=len(promoted_ids))
            return len(promoted_ids)

        if promoted_ids:
            logger.info("Batch promotion finished", promoted=len(promoted_ids))
        else:
            logger.debug("Batch promotion finished: no pending orders")
        return len(promoted_ids)

    async def run_forever(self, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        """Run at a fixed rate until cancelled."""
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.run_once()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, interval_seconds - elapsed))

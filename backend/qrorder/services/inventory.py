"""
Recipe-based stock deduction for delivered orders.

Deduction runs on its own side channel: the order state machine hands the
order id to ``StockDeductionDispatcher`` and moves on. A failed deduction is
logged by the dispatcher and never reaches the transition that caused it.
"""

import asyncio
import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Set

from qrorder.domain import InventoryItem
from qrorder.errors import NotFound
from qrorder.storage.base import Storage

logger = logging.getLogger(__name__)


async def compute_stock_deductions(storage: Storage, order_id: str) -> Dict[str, Decimal]:
    """Aggregate recipe quantity x line quantity per inventory item for an order."""
    order = await storage.get_order(order_id)
    if order is None:
        raise NotFound("Order", order_id)

    recipes = await storage.get_recipe_items(item.menu_item_id for item in order.items)
    by_menu_item: Dict[str, list] = {}
    for recipe in recipes:
        by_menu_item.setdefault(recipe.menu_item_id, []).append(recipe)

    deductions: Dict[str, Decimal] = OrderedDict()
    for item in order.items:
        for recipe in by_menu_item.get(item.menu_item_id, []):
            total = recipe.quantity * item.quantity
            deductions[recipe.inventory_item_id] = deductions.get(recipe.inventory_item_id, Decimal(0)) + total
    return deductions


async def deduct_stock_for_order(storage: Storage, order_id: str) -> List[InventoryItem]:
    """
    Deduct the ingredients consumed by an order.

    All-or-nothing: if any ingredient would go negative, InsufficientStock is
    raised and no stock changes.
    """
    deductions = await compute_stock_deductions(storage, order_id)
    if not deductions:
        return []
    updated = await storage.deduct_stock(deductions)
    logger.info("[inventory] Deducted %d ingredient(s) for order %s", len(updated), order_id)
    return updated


class StockDeductionDispatcher:
    """
    Non-blocking side channel for stock deduction.

    ``dispatch`` schedules the deduction as a background task and returns
    immediately. Failures are logged from the task's done-callback and are
    otherwise dropped.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self._tasks: Set[asyncio.Task] = set()
        self.failures: int = 0

    def dispatch(self, order_id: str) -> asyncio.Task:
        task = asyncio.create_task(
            deduct_stock_for_order(self.storage, order_id),
            name=f"stock-deduction-{order_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(order_id, t))
        return task

    def _finished(self, order_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("[inventory] Stock deduction for order %s was cancelled", order_id)
            return
        error = task.exception()
        if error is not None:
            self.failures += 1
            logger.error("[inventory] Stock deduction failed for order %s: %s", order_id, error)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding deduction to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

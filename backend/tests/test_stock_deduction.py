"""
Tests for recipe-based stock deduction and its non-blocking dispatcher.
"""

from decimal import Decimal

import pytest

from qrorder.domain import InventoryItem, OrderLine, OrderStatus, RecipeItem, UnattributedActor
from qrorder.errors import InsufficientStock
from qrorder.services import OrderService, StockDeductionDispatcher, deduct_stock_for_order
from qrorder.services.inventory import compute_stock_deductions

ADMIN = UnattributedActor()


@pytest.fixture
def orders(storage, clock):
    return OrderService(storage, clock=clock)


async def add_recipes(storage, seeded, tea_stock="100", mint_stock="50"):
    tea_leaves = InventoryItem("inv-tea", seeded.restaurant.id, "Green tea", "g", Decimal(tea_stock))
    mint = InventoryItem("inv-mint", seeded.restaurant.id, "Mint", "g", Decimal(mint_stock))
    await storage.add_inventory_item(tea_leaves)
    await storage.add_inventory_item(mint)
    await storage.add_recipe_item(RecipeItem(seeded.tea.id, tea_leaves.id, Decimal("5")))
    await storage.add_recipe_item(RecipeItem(seeded.tea.id, mint.id, Decimal("8")))
    return tea_leaves, mint


async def deliver(orders, seeded, order):
    for status in (OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED):
        order = await orders.transition(order.id, seeded.restaurant.id, status, ADMIN)
    return order


@pytest.mark.asyncio
async def test_deductions_aggregate_per_inventory_item(orders, storage, seeded):
    await add_recipes(storage, seeded)
    order = await orders.create(
        seeded.restaurant.id,
        seeded.table1.id,
        [OrderLine(seeded.tea.id, 2), OrderLine(seeded.tea.id, 1), OrderLine(seeded.tagine.id, 1)],
    )

    deductions = await compute_stock_deductions(storage, order.id)
    assert deductions == {"inv-tea": Decimal("15"), "inv-mint": Decimal("24")}


@pytest.mark.asyncio
async def test_delivery_deducts_stock_in_background(orders, storage, seeded):
    await add_recipes(storage, seeded)
    order = await orders.create(seeded.restaurant.id, seeded.table1.id, [OrderLine(seeded.tea.id, 3)])

    await deliver(orders, seeded, order)
    await orders.stock_dispatcher.drain()

    assert (await storage.get_inventory_item("inv-tea")).current_stock == Decimal("85")
    assert (await storage.get_inventory_item("inv-mint")).current_stock == Decimal("26")


@pytest.mark.asyncio
async def test_insufficient_stock_deducts_nothing(orders, storage, seeded):
    await add_recipes(storage, seeded, tea_stock="100", mint_stock="10")
    order = await orders.create(seeded.restaurant.id, seeded.table1.id, [OrderLine(seeded.tea.id, 2)])

    with pytest.raises(InsufficientStock):
        await deduct_stock_for_order(storage, order.id)

    assert (await storage.get_inventory_item("inv-tea")).current_stock == Decimal("100")
    assert (await storage.get_inventory_item("inv-mint")).current_stock == Decimal("10")


@pytest.mark.asyncio
async def test_failed_deduction_never_blocks_delivery(orders, storage, seeded):
    await add_recipes(storage, seeded, mint_stock="1")
    order = await orders.create(seeded.restaurant.id, seeded.table1.id, [OrderLine(seeded.tea.id, 1)])

    delivered = await deliver(orders, seeded, order)
    await orders.stock_dispatcher.drain()

    assert delivered.status == OrderStatus.DELIVERED
    assert (await orders.get(order.id)).status == OrderStatus.DELIVERED
    assert orders.stock_dispatcher.failures == 1
    assert orders.stock_dispatcher.pending == 0


@pytest.mark.asyncio
async def test_dispatcher_logs_unexpected_errors(storage, seeded, monkeypatch, caplog):
    async def broken(_deductions):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(storage, "deduct_stock", broken)
    await add_recipes(storage, seeded)
    orders = OrderService(storage)
    order = await orders.create(seeded.restaurant.id, seeded.table1.id, [OrderLine(seeded.tea.id, 1)])

    dispatcher = StockDeductionDispatcher(storage)
    dispatcher.dispatch(order.id)
    await dispatcher.drain()

    assert dispatcher.failures == 1
    assert "disk on fire" in caplog.text


@pytest.mark.asyncio
async def test_no_recipes_means_no_deduction(orders, storage, seeded):
    order = await orders.create(seeded.restaurant.id, seeded.table1.id, [OrderLine(seeded.tagine.id, 1)])
    assert await deduct_stock_for_order(storage, order.id) == []

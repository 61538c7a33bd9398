import asyncio
from decimal import Decimal

import aiohttp

from conftest import FakeApi, make_product
from models import CartItem
from reconciliation import STATUS_INSUFFICIENT, STATUS_OK, STATUS_OUT_OF_STOCK, reconcile


def item(pid, variant=None, quantity=1, price="10.00"):
    return CartItem(product_id=pid, name=f"Product {pid}", image="", category="Gifts",
                    unit_price=Decimal(price), original_price=Decimal(price),
                    quantity=quantity, selected_variant_label=variant)


async def test_variant_quantity_insufficient():
    api = FakeApi([make_product("P1", sizes=[("L", "500", 3)])])
    report = await reconcile([item("P1", "L", 5)], api.fetch_product_by_id)

    check = report.checks[0]
    assert check.quantity_insufficient
    assert not check.out_of_stock
    assert check.available_stock == 3
    assert check.status == STATUS_INSUFFICIENT
    assert report.blocked


async def test_flat_stock_zero_is_out_of_stock():
    api = FakeApi([make_product("P2", stock=0)])
    report = await reconcile([item("P2", None, 1)], api.fetch_product_by_id)

    check = report.check_for("P2")
    assert check.out_of_stock
    assert not check.quantity_insufficient
    assert report.blocked


async def test_all_available_clears():
    api = FakeApi([make_product("P1", stock=5), make_product("P2", sizes=[("M", "20", 2)])])
    report = await reconcile([item("P1", quantity=5), item("P2", "M", 2)], api.fetch_product_by_id)
    assert report.cleared
    assert [c.status for c in report.checks] == [STATUS_OK, STATUS_OK]
    assert report.check_for("P2", "M").live_price == 20


async def test_one_fetch_per_distinct_product():
    api = FakeApi([make_product("P1", sizes=[("S", "1", 9), ("M", "1", 9), ("L", "1", 9)])])
    items = [item("P1", "S"), item("P1", "M"), item("P1", "L")]
    await reconcile(items, api.fetch_product_by_id)
    assert api.fetch_calls == ["P1"]


async def test_removed_variant_counts_as_zero():
    api = FakeApi([make_product("P1", sizes=[("M", "10", 4)])])
    report = await reconcile([item("P1", "XL")], api.fetch_product_by_id)
    assert report.checks[0].available_stock == 0
    assert report.checks[0].status == STATUS_OUT_OF_STOCK


async def test_fetch_failure_degrades_only_that_product():
    api = FakeApi([make_product("P1", stock=5)])
    api.fail_products.add("P2")
    items = [item("P1"), item("P2"), item("P3")]
    report = await reconcile(items, api.fetch_product_by_id)

    assert report.check_for("P1").status == STATUS_OK
    assert report.check_for("P2").out_of_stock
    assert report.check_for("P3").out_of_stock
    assert set(report.failed_products) == {"P2", "P3"}
    assert "could not verify" in report.check_for("P3").describe()
    assert report.blocked


async def test_transport_errors_are_contained():
    async def fetch(pid):
        if pid == "slow":
            raise asyncio.TimeoutError()
        raise aiohttp.ClientConnectionError("refused")

    report = await reconcile([item("slow"), item("down")], fetch)
    assert set(report.failed_products) == {"slow", "down"}
    assert all(c.out_of_stock for c in report.checks)


async def test_empty_cart_is_cleared():
    report = await reconcile([], FakeApi().fetch_product_by_id)
    assert report.checks == []
    assert report.cleared


async def test_bad_product_data_blocks_only_that_product():
    good = make_product("P1", stock=5)

    async def fetch(pid):
        if pid == "P2":
            raise ValueError("Stock count cannot be negative")
        return good

    report = await reconcile([item("P1"), item("P2", quantity=2)], fetch)

    assert report.check_for("P1").status == STATUS_OK
    assert report.check_for("P2").out_of_stock
    assert report.failed_products == {"P2": "Stock count cannot be negative"}
    assert report.blocked

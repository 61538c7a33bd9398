"""Shared fixtures: product factory, in-memory storage and a fake API."""
from decimal import Decimal

import pytest

from database import MemoryCartStorage
from errors import ApiError, PersistenceError
from models import Cart, FlatStock, Product, Variant, VariantStock


def make_product(pid="P1", price="100", stock=10, sizes=None, discount=0, name=None):
    if sizes:
        stock_model = VariantStock(tuple(Variant(label, Decimal(str(p)), s) for label, p, s in sizes))
    else:
        stock_model = FlatStock(stock)
    return Product(
        id=pid,
        name=name or f"Product {pid}",
        price=Decimal(str(price)),
        stock_model=stock_model,
        discount_percent=Decimal(str(discount)),
        category="Gifts",
        images=[f"https://img.example/{pid}.jpg"],
    )


class FailingStorage(MemoryCartStorage):
    """Storage whose writes always fail."""
    def save(self, items):
        raise PersistenceError("disk full")

    def clear(self):
        raise PersistenceError("disk full")


class FakeApi:
    def __init__(self, products=None):
        self.products = {p.id: p for p in (products or [])}
        self.fetch_calls = []
        self.orders_created = []
        self.cancelled = []
        self.fail_products = set()
        self.order_error = None
        self.token = None

    async def fetch_product_by_id(self, product_id):
        self.fetch_calls.append(product_id)
        if product_id in self.fail_products:
            raise ApiError(None, "Network error: connection reset")
        if product_id not in self.products:
            raise ApiError(404, "Product not found")
        return self.products[product_id]

    async def create_order(self, payload):
        if self.order_error:
            raise self.order_error
        self.orders_created.append(payload)
        return {"_id": "O1", "orderStatus": "Pending", **payload}

    async def cancel_order(self, order_id, reason):
        self.cancelled.append((order_id, reason))
        return {"_id": order_id, "orderStatus": "Cancelled"}


@pytest.fixture
def storage():
    return MemoryCartStorage()


@pytest.fixture
def cart(storage):
    return Cart(storage).load()

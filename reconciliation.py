# reconciliation.py
"""
Pre-checkout stock check.

Every distinct product in the cart is fetched once, concurrently, and each
line item is classified against the live stock. A product that cannot be
fetched counts as zero stock, so its lines block checkout.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import aiohttp

from errors import ApiError
from models import CartItem

logger = logging.getLogger("storefront.reconciliation")

STATUS_OK = "ok"
STATUS_OUT_OF_STOCK = "out_of_stock"
STATUS_INSUFFICIENT = "insufficient"


@dataclass
class StockCheck:
    item: CartItem
    available_stock: int
    live_price: Optional[Decimal] = None
    error: Optional[str] = None

    @property
    def out_of_stock(self) -> bool:
        return self.available_stock == 0

    @property
    def quantity_insufficient(self) -> bool:
        return not self.out_of_stock and self.item.quantity > self.available_stock

    @property
    def status(self) -> str:
        if self.out_of_stock:
            return STATUS_OUT_OF_STOCK
        if self.quantity_insufficient:
            return STATUS_INSUFFICIENT
        return STATUS_OK

    def describe(self) -> str:
        label = f"{self.item.name} ({self.item.selected_variant_label})" \
            if self.item.selected_variant_label else self.item.name
        if self.error:
            return f"{label}: could not verify stock ({self.error})"
        if self.out_of_stock:
            return f"{label}: out of stock"
        if self.quantity_insufficient:
            return f"{label}: requested {self.item.quantity}, available {self.available_stock}"
        return f"{label}: ok"


@dataclass
class ReconciliationReport:
    checks: list
    failed_products: dict = field(default_factory=dict)
    revision: Optional[int] = None

    @property
    def problems(self):
        return [c for c in self.checks if c.status != STATUS_OK]

    @property
    def blocked(self) -> bool:
        return bool(self.problems)

    @property
    def cleared(self) -> bool:
        return not self.blocked

    def check_for(self, product_id, variant_label=None) -> Optional[StockCheck]:
        for c in self.checks:
            if c.item.key == (product_id, variant_label):
                return c
        return None


async def _fetch_one(fetch_product, product_id):
    try:
        return await fetch_product(product_id), None
    except (ApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Stock check: could not fetch product {product_id}: {e}")
        return None, str(e) or e.__class__.__name__
    except (ValueError, KeyError, TypeError) as e:
        # unparseable live record, e.g. oversold (negative) stock
        logger.warning(f"Stock check: bad product data for {product_id}: {e!r}")
        return None, str(e) or e.__class__.__name__


def classify(item: CartItem, product, error: str = None) -> StockCheck:
    if product is None:
        return StockCheck(item=item, available_stock=0, error=error)
    label = item.selected_variant_label
    if label is not None:
        variant = product.variant(label)
        if variant is None:
            # variant removed server-side
            return StockCheck(item=item, available_stock=0, live_price=None)
        return StockCheck(item=item, available_stock=variant.stock, live_price=variant.price)
    if product.has_variants:
        # product gained variants since the item was added
        return StockCheck(item=item, available_stock=0, live_price=product.price)
    return StockCheck(item=item, available_stock=product.stock_model.count,
                      live_price=product.price)


async def reconcile(items, fetch_product, revision: int = None) -> ReconciliationReport:
    """
    Fetch live stock for each distinct product in items and classify every line.
    fetch_product is an async callable product_id -> Product.
    """
    product_ids = list(dict.fromkeys(it.product_id for it in items))
    results = await asyncio.gather(*(_fetch_one(fetch_product, pid) for pid in product_ids))
    fetched = dict(zip(product_ids, results))

    checks = []
    failed = {}
    for item in items:
        product, error = fetched[item.product_id]
        if error is not None:
            failed[item.product_id] = error
        checks.append(classify(item, product, error))

    report = ReconciliationReport(checks=checks, failed_products=failed, revision=revision)
    if report.blocked:
        logger.info(f"Stock check blocked checkout: {[c.describe() for c in report.problems]}")
    return report

# checkout.py
import logging

from errors import ApiError, CheckoutBlockedError, OrderNotCancellableError
from models import Address, Order
from pricing import PricingPolicy, price_summary
from reconciliation import reconcile

logger = logging.getLogger("storefront.checkout")

IDLE = "idle"
RECONCILING = "reconciling"
BLOCKED = "blocked"
CLEARED = "cleared"

PAYMENT_METHOD = "COD"


class CheckoutFlow:
    """
    Coordinates stock reconciliation, pricing and order submission.
    Any cart mutation drops the flow back to idle, so an order can only be
    submitted against the exact cart that was reconciled.
    """
    def __init__(self, cart, api, policy: PricingPolicy = None):
        self.cart = cart
        self.api = api
        self.policy = policy or PricingPolicy()
        self.state = IDLE
        self.report = None
        self._unsubscribe = cart.subscribe(self._on_cart_event)

    def _on_cart_event(self, event, cart):
        if event == "persistence_warning":
            return
        if self.state != IDLE:
            logger.debug(f"Cart {event}; checkout reset to idle")
        self.state = IDLE
        self.report = None

    def close(self):
        self._unsubscribe()

    def summary(self):
        return price_summary(self.cart.total(), self.policy)

    async def reconcile(self):
        """
        Check the current cart against live stock.
        Returns the report, or None if the cart changed while checking.
        """
        revision = self.cart.revision
        self.state = RECONCILING
        self.report = None
        try:
            report = await reconcile(self.cart.items, self.api.fetch_product_by_id, revision=revision)
        except Exception:
            logger.exception("Stock check failed")
            self.state = IDLE
            raise
        if self.cart.revision != revision:
            logger.info("Discarding stock check for a cart that has since changed")
            self.state = IDLE
            return None
        self.report = report
        self.state = BLOCKED if report.blocked else CLEARED
        return report

    def build_order_payload(self, address: Address) -> dict:
        items = [{
            'product': it.product_id,
            'name': it.name,
            'image': it.image,
            'price': float(it.unit_price),
            'quantity': it.quantity,
            'size': it.selected_variant_label,
            'subtotal': float(it.line_total),
        } for it in self.cart.items]
        return {
            'items': items,
            'shippingAddress': address.to_api(),
            **self.summary().to_dict(),
            'paymentMethod': PAYMENT_METHOD,
        }

    async def place_order(self, address: Address) -> dict:
        """
        Submit the order. The cart is cleared only when the server confirms.
        Raises CheckoutBlockedError unless the current cart was reconciled clean.
        """
        if len(self.cart) == 0:
            raise CheckoutBlockedError("Cart is empty")
        if self.state != CLEARED or self.report is None or self.report.revision != self.cart.revision:
            raise CheckoutBlockedError("Stock has not been verified for the current cart",
                                       report=self.report)
        address.validate()
        payload = self.build_order_payload(address)
        submitted = {it.key: it.quantity for it in self.cart.items}
        revision = self.cart.revision
        try:
            confirmation = await self.api.create_order(payload)
        except ApiError as e:
            logger.error(f"Order submission failed: {e}")
            self.state = IDLE
            self.report = None
            raise
        logger.info(f"Order placed: grandTotal={payload['grandTotal']} items={len(payload['items'])}")
        if self.cart.revision == revision:
            self.cart.clear()
        else:
            self._remove_ordered(submitted)
        return confirmation

    def _remove_ordered(self, submitted: dict):
        """Take the ordered quantities out of a cart that changed during submission."""
        logger.info("Cart changed while the order was in flight; keeping the new items")
        for (product_id, label), ordered in submitted.items():
            item = self.cart.get(product_id, label)
            if item is None:
                continue
            self.cart.set_quantity(product_id, item.quantity - ordered, label)


async def cancel_order(api, order: Order, reason: str):
    if not order.can_cancel:
        raise OrderNotCancellableError(f"Order {order.id} is {order.status} and cannot be cancelled")
    if not reason or not reason.strip():
        raise OrderNotCancellableError("Please provide a reason for cancellation")
    result = await api.cancel_order(order.id, reason.strip())
    logger.info(f"Order {order.id} cancelled: {reason.strip()}")
    return result

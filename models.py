# models.py
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from errors import InvalidQuantityError, PersistenceError, UnknownVariantError
from pricing import discounted, round2, to_decimal

logger = logging.getLogger("storefront.models")

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
NON_CANCELLABLE_STATUSES = ("Shipped", "Delivered", "Cancelled")

ADDRESS_FIELDS = {
    'full_name': 'fullName',
    'phone': 'phone',
    'address_line1': 'addressLine1',
    'address_line2': 'addressLine2',
    'city': 'city',
    'state': 'state',
    'zip_code': 'zipCode',
}


@dataclass(frozen=True)
class Variant:
    """A separately priced and stocked sub-SKU, e.g. a size."""
    label: str
    price: Decimal
    stock: int

    def __post_init__(self):
        if self.stock < 0:
            raise ValueError(f"Variant {self.label!r} has negative stock")
        if self.price < 0:
            raise ValueError(f"Variant {self.label!r} has negative price")

    @classmethod
    def from_api(cls, data: dict):
        return cls(
            label=str(data['label']),
            price=to_decimal(data.get('price', 0)),
            stock=int(data.get('stock') or 0),
        )


@dataclass(frozen=True)
class FlatStock:
    count: int

    def __post_init__(self):
        if self.count < 0:
            raise ValueError("Stock count cannot be negative")


@dataclass(frozen=True)
class VariantStock:
    variants: tuple

    def __post_init__(self):
        if not self.variants:
            raise ValueError("VariantStock needs at least one variant")
        labels = [v.label for v in self.variants]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Duplicate variant labels: {labels}")

    def get(self, label: str) -> Optional[Variant]:
        for v in self.variants:
            if v.label == label:
                return v
        return None


StockModel = Union[FlatStock, VariantStock]


@dataclass
class Product:
    """Read-only view of a product as served by the API."""
    id: str
    name: str
    price: Decimal
    stock_model: StockModel
    discount_percent: Decimal = Decimal(0)
    category: str = ""
    images: list = field(default_factory=list)
    description: str = ""
    featured: bool = False

    def __post_init__(self):
        if not 0 <= self.discount_percent <= 100:
            raise ValueError(f"Discount must be between 0 and 100, got {self.discount_percent}")

    @classmethod
    def from_api(cls, data: dict):
        """
        Parse an API product record.
        A non-empty sizes list wins over the flat stock field.
        """
        sizes = data.get('sizes') or []
        if sizes:
            if data.get('stock'):
                logger.debug(f"Product {data.get('_id')} has sizes and flat stock; using sizes")
            stock_model = VariantStock(tuple(Variant.from_api(s) for s in sizes))
        else:
            stock_model = FlatStock(int(data.get('stock') or 0))
        return cls(
            id=str(data.get('_id') or data.get('id')),
            name=data.get('name', ''),
            price=to_decimal(data.get('price', 0)),
            stock_model=stock_model,
            discount_percent=to_decimal(data.get('discountPercent') or 0),
            category=data.get('category', ''),
            images=list(data.get('images') or []),
            description=data.get('description', ''),
            featured=bool(data.get('featured', False)),
        )

    @property
    def has_variants(self) -> bool:
        return isinstance(self.stock_model, VariantStock)

    @property
    def variants(self) -> tuple:
        return self.stock_model.variants if self.has_variants else ()

    def variant(self, label: str) -> Optional[Variant]:
        if not self.has_variants:
            return None
        return self.stock_model.get(label)

    def available_stock(self, label: str = None) -> int:
        """Stock for a variant, summed over variants when no label, or the flat count."""
        if not self.has_variants:
            return self.stock_model.count
        if label is None:
            return sum(v.stock for v in self.variants)
        v = self.variant(label)
        return v.stock if v else 0

    def base_price(self, label: str = None) -> Decimal:
        v = self.variant(label) if label is not None else None
        return v.price if v else self.price

    def discounted_price(self, label: str = None) -> Decimal:
        return discounted(self.base_price(label), self.discount_percent)


@dataclass
class CartItem:
    """One line in the cart, keyed by product and variant label."""
    product_id: str
    name: str
    image: str
    category: str
    unit_price: Decimal
    original_price: Decimal
    quantity: int
    selected_variant_label: Optional[str] = None

    @property
    def key(self):
        return (self.product_id, self.selected_variant_label)

    @property
    def line_total(self) -> Decimal:
        return round2(self.unit_price) * self.quantity

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'name': self.name,
            'image': self.image,
            'category': self.category,
            'unit_price': str(self.unit_price),
            'original_price': str(self.original_price),
            'quantity': self.quantity,
            'selected_variant_label': self.selected_variant_label,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            product_id=data['product_id'],
            name=data.get('name', ''),
            image=data.get('image', ''),
            category=data.get('category', ''),
            unit_price=Decimal(data['unit_price']),
            original_price=Decimal(data.get('original_price', data['unit_price'])),
            quantity=int(data['quantity']),
            selected_variant_label=data.get('selected_variant_label'),
        )


@dataclass
class Address:
    full_name: str = ""
    phone: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    def missing_fields(self):
        return [name for name in ADDRESS_FIELDS
                if name != 'address_line2' and not str(getattr(self, name) or "").strip()]

    def validate(self):
        missing = self.missing_fields()
        if missing:
            raise ValueError(f"Address is missing required fields: {', '.join(missing)}")
        return self

    def to_api(self):
        return {api_key: getattr(self, name) for name, api_key in ADDRESS_FIELDS.items()}

    @classmethod
    def from_api(cls, data: dict):
        return cls(**{name: data.get(api_key) or "" for name, api_key in ADDRESS_FIELDS.items()})


@dataclass
class Order:
    id: str
    status: str
    items: list
    grand_total: Decimal
    items_total: Decimal = Decimal(0)
    delivery_fee: Decimal = Decimal(0)
    other_charges: Decimal = Decimal(0)
    payment_method: str = "COD"
    created_at: str = ""
    shipping_address: Optional[Address] = None
    cancellation: Optional[dict] = None
    delivery_agent: Optional[dict] = None
    estimated_delivery_date: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict):
        address = data.get('shippingAddress')
        return cls(
            id=str(data.get('_id') or data.get('id')),
            status=data.get('orderStatus') or data.get('status') or 'Pending',
            items=list(data.get('items') or []),
            grand_total=to_decimal(data.get('grandTotal') or 0),
            items_total=to_decimal(data.get('itemsTotal') or 0),
            delivery_fee=to_decimal(data.get('deliveryFee') or 0),
            other_charges=to_decimal(data.get('otherCharges') or 0),
            payment_method=data.get('paymentMethod') or 'COD',
            created_at=data.get('createdAt', ''),
            shipping_address=Address.from_api(address) if address else None,
            cancellation=data.get('cancellation'),
            delivery_agent=data.get('deliveryAgent'),
            estimated_delivery_date=data.get('estimatedDeliveryDate'),
        )

    @property
    def can_cancel(self) -> bool:
        return self.status not in NON_CANCELLABLE_STATUSES


def validate_add_request(product: Product, quantity, variant_label: str = None) -> Optional[Variant]:
    """
    Reject bad add-to-cart input before it reaches the cart.
    Returns the resolved variant, or None for a flat-stock product.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(f"Quantity must be a positive integer, got {quantity!r}")
    if product.has_variants:
        if variant_label is None:
            raise UnknownVariantError(f"{product.name} requires a variant selection")
        variant = product.variant(variant_label)
        if variant is None:
            raise UnknownVariantError(f"{product.name} has no variant {variant_label!r}")
        return variant
    if variant_label is not None:
        raise UnknownVariantError(f"{product.name} has no variants")
    return None


class Cart:
    """
    Ordered line items, unique by (product_id, variant label).
    Every mutation is written through to storage before returning.
    """
    def __init__(self, storage):
        self.storage = storage
        self._items = []
        self._listeners = []
        self.revision = 0
        self.degraded = False

    # Lifecycle
    def load(self):
        try:
            self._items = list(self.storage.load())
        except PersistenceError as e:
            logger.warning(f"Could not load saved cart, starting empty: {e}")
            self._items = []
            self.degraded = True
            self._notify("persistence_warning")
        self.revision += 1
        self._notify("loaded")
        return self

    def subscribe(self, listener):
        """Register listener(event, cart). Returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, event):
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception:
                logger.exception(f"Cart listener failed on {event}")

    def _commit(self, event):
        self.revision += 1
        try:
            if self._items:
                self.storage.save(list(self._items))
            else:
                self.storage.clear()
            self.degraded = False
        except PersistenceError as e:
            logger.warning(f"Cart change kept in memory only: {e}")
            self.degraded = True
            self._notify("persistence_warning")
        self._notify(event)

    def _find(self, product_id, variant_label):
        key = (product_id, variant_label)
        for idx, item in enumerate(self._items):
            if item.key == key:
                return idx
        return -1

    # Queries
    @property
    def items(self):
        return list(self._items)

    def get(self, product_id, variant_label=None) -> Optional[CartItem]:
        idx = self._find(product_id, variant_label)
        return self._items[idx] if idx >= 0 else None

    def total(self) -> Decimal:
        return round2(sum((item.line_total for item in self._items), Decimal(0)))

    def count(self) -> int:
        return sum(item.quantity for item in self._items)

    def __len__(self):
        return len(self._items)

    # Mutations
    def add_item(self, product: Product, quantity: int = 1, variant_label: str = None) -> CartItem:
        variant = validate_add_request(product, quantity, variant_label)
        idx = self._find(product.id, variant_label)
        if idx >= 0:
            # keep the price captured on first add
            item = self._items[idx]
            item.quantity += quantity
            logger.info(f"Cart: {item.name} [{variant_label}] qty={item.quantity}")
            self._commit("updated")
            return item

        base = variant.price if variant else product.price
        item = CartItem(
            product_id=product.id,
            name=product.name,
            image=product.images[0] if product.images else "",
            category=product.category,
            unit_price=discounted(base, product.discount_percent),
            original_price=round2(base),
            quantity=quantity,
            selected_variant_label=variant_label,
        )
        self._items.append(item)
        logger.info(f"Cart: added {quantity} x {item.name} [{variant_label}]")
        self._commit("added")
        return item

    def remove_item(self, product_id, variant_label=None):
        idx = self._find(product_id, variant_label)
        if idx < 0:
            return
        removed = self._items.pop(idx)
        logger.info(f"Cart: removed {removed.name} [{variant_label}]")
        self._commit("removed")

    def set_quantity(self, product_id, new_quantity: int, variant_label=None):
        if new_quantity <= 0:
            self.remove_item(product_id, variant_label)
            return
        idx = self._find(product_id, variant_label)
        if idx < 0:
            return
        self._items[idx].quantity = new_quantity
        self._commit("updated")

    def clear(self):
        self._items = []
        self._commit("cleared")

# admin.py
import asyncio
import logging

from models import ORDER_STATUSES

logger = logging.getLogger("storefront.admin")

CATEGORIES = ['Perfumes', 'Gifts', 'Cosmetics', 'Toys', 'Bangles', 'Belts',
              'Watches', 'Caps', 'Birthday Items']


def filter_orders(orders, status: str = None):
    if not status:
        return list(orders)
    return [o for o in orders if o.status == status]


def build_product_payload(form: dict) -> dict:
    """
    Validate the product form and build the API payload.
    A product carries either sizes or a flat stock count, never both.
    Raises ValueError on invalid input.
    """
    name = (form.get('name') or '').strip()
    if not name:
        raise ValueError("Product name is required")
    try:
        price = float(form.get('price'))
    except (TypeError, ValueError):
        raise ValueError("Price must be a number")
    if price < 0:
        raise ValueError("Price cannot be negative")
    discount = int(form.get('discountPercent') or 0)
    if not 0 <= discount <= 100:
        raise ValueError("Discount must be between 0 and 100")
    category = form.get('category') or ''
    if category not in CATEGORIES:
        raise ValueError(f"Category must be one of: {', '.join(CATEGORIES)}")

    payload = {
        'name': name,
        'description': form.get('description', ''),
        'price': price,
        'category': category,
        'images': [img.strip() for img in form.get('images', []) if img and img.strip()],
        'featured': bool(form.get('featured', False)),
        'discountPercent': discount,
    }

    sizes = form.get('sizes') or []
    if sizes:
        if form.get('stock'):
            raise ValueError("A product with sizes cannot also have a flat stock count")
        labels = [str(s.get('label', '')).strip() for s in sizes]
        if any(not label for label in labels):
            raise ValueError("Every size needs a label")
        if len(set(labels)) != len(labels):
            raise ValueError("Size labels must be unique")
        payload['sizes'] = []
        for label, size in zip(labels, sizes):
            s_price, s_stock = float(size.get('price', 0)), int(size.get('stock', 0))
            if s_price < 0 or s_stock < 0:
                raise ValueError(f"Size {label} has a negative price or stock")
            payload['sizes'].append({'label': label, 'price': s_price, 'stock': s_stock})
    else:
        stock = int(form.get('stock') or 0)
        if stock < 0:
            raise ValueError("Stock cannot be negative")
        payload['stock'] = stock
    return payload


class AdminConsole:
    """Admin-side product and order management over the API."""
    def __init__(self, api):
        self.api = api

    async def dashboard_stats(self):
        products, orders = await asyncio.gather(self.api.list_products(), self.api.list_orders())
        return {
            'total_products': len(products),
            'featured_products': sum(1 for p in products if p.featured),
            'total_orders': len(orders),
            'pending_orders': len(filter_orders(orders, 'Pending')),
            'delivered_orders': len(filter_orders(orders, 'Delivered')),
        }

    async def update_order(self, order_id, status, agent_name=None, agent_phone=None,
                           estimated_delivery_date=None):
        if status not in ORDER_STATUSES:
            raise ValueError(f"Unknown order status {status!r}")
        payload = {'status': status}
        if agent_name or agent_phone:
            payload['deliveryAgent'] = {'name': agent_name or '', 'phone': agent_phone or ''}
        if estimated_delivery_date:
            payload['estimatedDeliveryDate'] = estimated_delivery_date
        result = await self.api.update_order_status(order_id, payload)
        logger.info(f"Order {order_id} set to {status}")
        return result

    async def save_product(self, form: dict, product_id: str = None):
        payload = build_product_payload(form)
        if product_id:
            product = await self.api.update_product(product_id, payload)
            logger.info(f"Product {product_id} updated")
        else:
            product = await self.api.create_product(payload)
            logger.info(f"Product {product.id} created")
        return product

    async def delete_product(self, product_id: str):
        await self.api.delete_product(product_id)
        logger.info(f"Product {product_id} deleted")

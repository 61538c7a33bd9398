# main.py
import os
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path

from admin import AdminConsole
from api import StoreApi
from checkout import CheckoutFlow, cancel_order
from database import Database, MemoryCartStorage, SqliteCartStorage, SqliteSessionStorage
from errors import StorefrontError
from logger import set_level, setup_logger
from models import Address, Cart, Order
from pricing import PricingPolicy, money
from search import SearchController
from session import SessionStore
from utils import export_orders, generate_orders_report, generate_pdf_receipt, generate_txt_receipt

logger = logging.getLogger("storefront.main")

# Default configuration
DEFAULT_CONFIG = {
    "api": {"base_url": "http://localhost:5000/api", "timeout": 15},
    "storage": {"path": "storefront.db"},
    "pricing": {"free_delivery_threshold": 999, "delivery_fee": 50, "currency": "₹"},
    "search": {"min_length": 3, "debounce": 0.3},
    "admin_emails": [],
    "receipt_dir": "receipts",
    "export_dir": "exports",
    "logging": {"level": "INFO", "file": "logs/storefront.log"},
}


def _merge(defaults, overrides):
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return _merge(DEFAULT_CONFIG, config)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading config: {e}")
            return dict(DEFAULT_CONFIG)

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(DEFAULT_CONFIG, f, indent=4, ensure_ascii=False)
        logger.info(f"Created default configuration at {config_path}")
    except OSError as e:
        logger.warning(f"Could not write default config: {e}")
    return dict(DEFAULT_CONFIG)


def setup_directories(config):
    """Create required directories if they don't exist."""
    for dir_path in (config.get("receipt_dir", "receipts"), config.get("export_dir", "exports")):
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")


class Storefront:
    """Wires the stores and services together for one CLI run."""
    def __init__(self, config, ephemeral=False):
        self.config = config
        self.currency = config["pricing"].get("currency", "₹")
        self.api = StoreApi(config["api"]["base_url"], timeout=config["api"].get("timeout", 15))
        if ephemeral:
            self.db = Database(":memory:")
            cart_storage = MemoryCartStorage()
        else:
            self.db = Database(config["storage"]["path"])
            cart_storage = SqliteCartStorage(self.db)
        self.session = SessionStore(SqliteSessionStorage(self.db), self.api,
                                    admin_emails=config.get("admin_emails", [])).load()
        self.cart = Cart(cart_storage).load()
        self.cart.subscribe(self._on_cart_event)
        self.checkout = CheckoutFlow(self.cart, self.api, PricingPolicy.from_config(config))
        self.search = SearchController(self.api.search_products,
                                       min_length=config["search"].get("min_length", 3),
                                       debounce=config["search"].get("debounce", 0.3))
        self.admin = AdminConsole(self.api)

    def _on_cart_event(self, event, cart):
        if event == "persistence_warning":
            print("Warning: cart could not be saved; changes last for this session only.")

    async def close(self):
        await self.api.close()
        self.db.close()


def print_products(products, currency):
    if not products:
        print("No products found.")
        return
    for p in products:
        if p.has_variants:
            stock = ", ".join(f"{v.label}:{v.stock}" for v in p.variants)
        else:
            stock = str(p.stock_model.count)
        discount = f" (-{p.discount_percent}%)" if p.discount_percent else ""
        print(f"{p.id:26} {p.name[:30]:30} {money(p.discounted_price(), currency):>10}{discount}  stock: {stock}")


def print_cart(sf: Storefront):
    if not sf.cart.items:
        print("Your cart is empty.")
        return
    for it in sf.cart.items:
        variant = f" [{it.selected_variant_label}]" if it.selected_variant_label else ""
        print(f"{it.product_id:26} {it.name[:30]}{variant} x{it.quantity}  "
              f"{money(it.unit_price, sf.currency)} = {money(it.line_total, sf.currency)}")
    s = sf.checkout.summary()
    print("-" * 40)
    print(f"Items ({sf.cart.count()}):  {money(s.items_total, sf.currency)}")
    print(f"Delivery fee: {money(s.delivery_fee, sf.currency)}")
    print(f"Grand total:  {money(s.grand_total, sf.currency)}")


async def cmd_checkout(sf: Storefront, args):
    if not sf.session.is_authenticated:
        print("Please log in before checking out.")
        return 1
    report = await sf.checkout.reconcile()
    if report is None:
        print("Cart changed during the stock check; please try again.")
        return 1
    if report.blocked:
        print("Checkout blocked:")
        for check in report.problems:
            print(f"  {check.describe()}")
        return 1

    addresses = sf.session.addresses
    if args.address_index is not None:
        if not 0 <= args.address_index < len(addresses):
            print(f"No saved address at index {args.address_index}; you have {len(addresses)}.")
            return 1
        address = addresses[args.address_index]
    elif addresses:
        address = addresses[0]
    else:
        print("No saved address; add one with 'storefront address'.")
        return 1

    confirmation = await sf.checkout.place_order(address)
    print(f"Order placed. Thank you! Order id: {confirmation.get('_id', '')}")
    if args.receipt:
        order = Order.from_api(confirmation)
        os.makedirs(sf.config["receipt_dir"], exist_ok=True)
        path = os.path.join(sf.config["receipt_dir"], f"order_{order.id}.{args.receipt}")
        if args.receipt == "pdf":
            generate_pdf_receipt(order, path, currency=sf.currency)
        else:
            generate_txt_receipt(order, path, currency=sf.currency)
        print(f"Receipt saved to {path}")
    return 0


async def run_command(sf: Storefront, args):
    cmd = args.command
    if cmd == "products":
        if args.category:
            products = await sf.api.products_by_category(args.category, args.limit)
        else:
            products = await sf.api.list_products(limit=args.limit)
        print_products(products, sf.currency)
    elif cmd == "search":
        results = await sf.search.search(args.query)
        if not results:
            print("Type at least %d characters to search." % sf.search.min_length
                  if len(args.query.strip()) < sf.search.min_length else "No products found.")
        else:
            print_products(results, sf.currency)
    elif cmd == "show":
        print_products([await sf.api.fetch_product_by_id(args.product_id)], sf.currency)
    elif cmd == "cart":
        if args.action == "add":
            product = await sf.api.fetch_product_by_id(args.product_id)
            available = product.available_stock(args.variant)
            if available == 0:
                print("Product is out of stock")
                return 1
            existing = sf.cart.get(args.product_id, args.variant)
            if args.quantity + (existing.quantity if existing else 0) > available:
                print(f"Only {available} items available in stock")
                return 1
            sf.cart.add_item(product, args.quantity, args.variant)
        elif args.action == "remove":
            sf.cart.remove_item(args.product_id, args.variant)
        elif args.action == "set":
            if args.quantity > 0:
                product = await sf.api.fetch_product_by_id(args.product_id)
                available = product.available_stock(args.variant)
                if args.quantity > available:
                    print(f"Only {available} items available in stock")
                    return 1
            sf.cart.set_quantity(args.product_id, args.quantity, args.variant)
        elif args.action == "clear":
            sf.cart.clear()
        print_cart(sf)
    elif cmd == "checkout":
        return await cmd_checkout(sf, args)
    elif cmd == "orders":
        orders = await sf.api.list_orders()
        if args.action == "cancel":
            order = next((o for o in orders if o.id == args.order_id), None)
            if order is None:
                print(f"Order {args.order_id} not found")
                return 1
            await cancel_order(sf.api, order, args.reason)
            print("Order cancelled successfully")
        else:
            for o in orders:
                print(f"{o.id:26} {o.created_at[:10]:10} {o.status:10} {money(o.grand_total, sf.currency):>12}")
    elif cmd == "login":
        await sf.session.login(args.email, args.password)
        print(f"Welcome, {sf.session.user.get('name', args.email)}")
    elif cmd == "logout":
        sf.session.logout()
        print("Logged out")
    elif cmd == "address":
        address = Address(args.full_name, args.phone, args.line1, args.line2 or "",
                          args.city, args.state, args.zip_code)
        await sf.session.add_address(address)
        print("Address added successfully")
    elif cmd == "admin":
        if not sf.session.is_admin:
            print("Admin access required.")
            return 1
        if args.action == "stats":
            for key, value in (await sf.admin.dashboard_stats()).items():
                print(f"{key.replace('_', ' ').title():20} {value}")
        elif args.action == "set-status":
            await sf.admin.update_order(args.order_id, args.status, args.agent_name,
                                        args.agent_phone, args.eta)
            print("Order updated successfully!")
        elif args.action == "export":
            orders = await sf.api.list_orders()
            os.makedirs(sf.config["export_dir"], exist_ok=True)
            ext = "xlsx" if args.format == "excel" else "csv"
            path = os.path.join(sf.config["export_dir"], f"orders.{ext}")
            export_orders(orders, path, format=args.format)
            print(f"Exported to {path}")
        else:
            df, summary = generate_orders_report(await sf.api.list_orders(), status=args.status)
            print(df.to_string(index=False) if not df.empty else "No orders.")
            print(summary)
    return 0


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Storefront client")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    parser.add_argument("--ephemeral", help="Keep the cart in memory only", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("products", help="List products")
    p.add_argument("--category")
    p.add_argument("--limit", type=int, default=50)

    p = sub.add_parser("search", help="Search products")
    p.add_argument("query")

    p = sub.add_parser("show", help="Show one product")
    p.add_argument("product_id")

    p = sub.add_parser("cart", help="View or change the cart")
    p.add_argument("action", choices=["list", "add", "remove", "set", "clear"])
    p.add_argument("product_id", nargs="?")
    p.add_argument("--quantity", "-q", type=int, default=1)
    p.add_argument("--variant", "-v")

    p = sub.add_parser("checkout", help="Verify stock and place a cash-on-delivery order")
    p.add_argument("--address-index", type=int)
    p.add_argument("--receipt", choices=["txt", "pdf"])

    p = sub.add_parser("orders", help="List or cancel your orders")
    p.add_argument("action", choices=["list", "cancel"], nargs="?", default="list")
    p.add_argument("order_id", nargs="?")
    p.add_argument("--reason", default="")

    p = sub.add_parser("login")
    p.add_argument("email")
    p.add_argument("password")

    sub.add_parser("logout")

    p = sub.add_parser("address", help="Save a shipping address")
    p.add_argument("full_name")
    p.add_argument("phone")
    p.add_argument("line1")
    p.add_argument("city")
    p.add_argument("state")
    p.add_argument("zip_code")
    p.add_argument("--line2")

    p = sub.add_parser("admin", help="Admin console")
    p.add_argument("action", choices=["stats", "orders", "set-status", "export"])
    p.add_argument("order_id", nargs="?")
    p.add_argument("--status")
    p.add_argument("--agent-name")
    p.add_argument("--agent-phone")
    p.add_argument("--eta", help="Estimated delivery date (YYYY-MM-DD)")
    p.add_argument("--format", choices=["csv", "excel"], default="csv")

    args = parser.parse_args(argv)
    if args.command == "cart" and args.action in ("add", "remove", "set") and not args.product_id:
        parser.error("cart %s needs a product id" % args.action)
    if args.command == "orders" and args.action == "cancel" and not args.order_id:
        parser.error("orders cancel needs an order id")
    if args.command == "admin" and args.action == "set-status" and not (args.order_id and args.status):
        parser.error("admin set-status needs an order id and --status")
    return args


async def _run(config, args):
    sf = Storefront(config, ephemeral=args.ephemeral)
    try:
        return await run_command(sf, args)
    finally:
        await sf.close()


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    setup_logger(config)
    if args.debug:
        set_level("DEBUG")
        logger.debug("Debug mode enabled")
    setup_directories(config)

    try:
        return asyncio.run(_run(config, args))
    except (StorefrontError, ValueError, IndexError) as e:
        print(f"Error: {e}")
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

# api.py
import asyncio
import logging

import aiohttp

from errors import ApiError
from models import Order, Product

logger = logging.getLogger("storefront.api")


class StoreApi:
    """
    Async client for the shop's REST API.
    Successful responses carry {"data": ...}; failures carry {"message": ...}.
    """
    def __init__(self, base_url: str, token: str = None, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self):
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, params=None, json=None):
        url = f"{self.base_url}{path}"
        session = await self._get_session()
        try:
            async with session.request(method, url, params=params, json=json,
                                       headers=self._headers()) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if response.status >= 400:
                    message = body.get("message") if isinstance(body, dict) else None
                    raise ApiError(response.status, message or f"Request failed: {method} {path}")
                if isinstance(body, dict) and "data" in body:
                    return body["data"]
                return body
        except aiohttp.ClientError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ApiError(None, f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"{method} {url} timed out")
            raise ApiError(None, "Request timed out") from e

    # Products
    async def list_products(self, category=None, featured=None, limit=None):
        params = {}
        if category:
            params["category"] = category
        if featured is not None:
            params["featured"] = "true" if featured else "false"
        if limit:
            params["limit"] = str(limit)
        data = await self._request("GET", "/products", params=params or None)
        return [Product.from_api(p) for p in data or []]

    async def products_by_category(self, category: str, limit: int = 12):
        data = await self._request("GET", f"/products/category/{category}",
                                   params={"limit": str(limit)})
        return [Product.from_api(p) for p in data or []]

    async def fetch_product_by_id(self, product_id: str) -> Product:
        data = await self._request("GET", f"/products/{product_id}")
        if not data:
            raise ApiError(404, f"Product {product_id} not found")
        try:
            return Product.from_api(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Product {product_id} has invalid data: {e!r}")
            raise ApiError(None, f"Invalid product data for {product_id}: {e}") from e

    async def search_products(self, query: str):
        data = await self._request("GET", "/products/search", params={"q": query})
        return [Product.from_api(p) for p in data or []]

    async def create_product(self, payload: dict) -> Product:
        return Product.from_api(await self._request("POST", "/products", json=payload))

    async def update_product(self, product_id: str, payload: dict) -> Product:
        return Product.from_api(await self._request("PUT", f"/products/{product_id}", json=payload))

    async def delete_product(self, product_id: str):
        await self._request("DELETE", f"/products/{product_id}")

    # Orders
    async def create_order(self, payload: dict) -> dict:
        return await self._request("POST", "/orders", json=payload)

    async def list_orders(self):
        data = await self._request("GET", "/orders")
        return [Order.from_api(o) for o in data or []]

    async def cancel_order(self, order_id: str, reason: str):
        return await self._request("PUT", f"/orders/{order_id}/cancel", json={"reason": reason})

    async def update_order_status(self, order_id: str, payload: dict):
        return await self._request("PUT", f"/orders/{order_id}/status", json=payload)

    # Auth
    async def login(self, email: str, password: str) -> dict:
        return await self._request("POST", "/auth/login",
                                   json={"email": email, "password": password})

    async def signup(self, name: str, email: str, password: str) -> dict:
        return await self._request("POST", "/auth/signup",
                                   json={"name": name, "email": email, "password": password})

    async def update_addresses(self, addresses: list) -> dict:
        return await self._request("PUT", "/auth/addresses", json={"addresses": addresses})

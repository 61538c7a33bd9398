"""StoreApi against an in-process aiohttp server."""
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from api import StoreApi
from errors import ApiError

PRODUCTS = {
    "P1": {"_id": "P1", "name": "Rose Perfume", "price": 500, "discountPercent": 10,
           "category": "Perfumes", "images": ["a.jpg"], "stock": 4},
    "P2": {"_id": "P2", "name": "Cap", "price": 250, "category": "Caps",
           "sizes": [{"label": "M", "price": 250, "stock": 2}, {"label": "L", "price": 275, "stock": 0}],
           "stock": 99},
}

# served by id only; not listed
BROKEN = {
    "OVERSOLD": {"_id": "OVERSOLD", "name": "Mug", "price": 150, "stock": -1},
    "NOLABEL": {"_id": "NOLABEL", "name": "Shirt", "price": 300, "sizes": [{"price": 300, "stock": 1}]},
}


def build_app(seen):
    async def list_products(request):
        seen.append(("list", dict(request.query)))
        return web.json_response({"data": list(PRODUCTS.values())})

    async def search(request):
        q = request.query["q"].lower()
        return web.json_response({"data": [p for p in PRODUCTS.values() if q in p["name"].lower()]})

    async def get_product(request):
        pid = request.match_info["pid"]
        product = PRODUCTS.get(pid) or BROKEN.get(pid)
        if product is None:
            return web.json_response({"message": "Product not found"}, status=404)
        return web.json_response({"data": product})

    async def create_order(request):
        seen.append(("auth", request.headers.get("Authorization")))
        payload = await request.json()
        if payload["grandTotal"] <= 0:
            return web.json_response({"message": "Invalid order total"}, status=400)
        return web.json_response({"data": {"_id": "O1", "orderStatus": "Pending", **payload}}, status=201)

    async def cancel(request):
        body = await request.json()
        return web.json_response({"data": {"_id": request.match_info["oid"],
                                           "orderStatus": "Cancelled", "reason": body["reason"]}})

    async def broken(request):
        return web.Response(status=500, text="<html>oops</html>")

    app = web.Application()
    app.router.add_get("/api/products", list_products)
    app.router.add_get("/api/products/search", search)
    app.router.add_get("/api/products/{pid}", get_product)
    app.router.add_post("/api/orders", create_order)
    app.router.add_put("/api/orders/{oid}/cancel", cancel)
    app.router.add_get("/api/orders", broken)
    return app


@pytest.fixture
async def server_and_seen():
    seen = []
    server = TestServer(build_app(seen))
    await server.start_server()
    yield server, seen
    await server.close()


@pytest.fixture
async def api(server_and_seen):
    server, _ = server_and_seen
    client = StoreApi(str(server.make_url("/api")), token="secret")
    yield client
    await client.close()


async def test_fetch_product_parses_stock_model(api):
    cap = await api.fetch_product_by_id("P2")
    assert cap.has_variants
    assert cap.available_stock("M") == 2
    assert cap.available_stock("L") == 0

    perfume = await api.fetch_product_by_id("P1")
    assert not perfume.has_variants
    assert perfume.available_stock() == 4
    assert str(perfume.discounted_price()) == "450.00"


async def test_missing_product_raises_api_error(api):
    with pytest.raises(ApiError) as exc:
        await api.fetch_product_by_id("nope")
    assert exc.value.status == 404
    assert exc.value.message == "Product not found"


async def test_list_products_sends_filters(api, server_and_seen):
    _, seen = server_and_seen
    products = await api.list_products(category="Caps", featured=True, limit=5)
    assert [p.id for p in products] == ["P1", "P2"]
    assert seen[0] == ("list", {"category": "Caps", "featured": "true", "limit": "5"})


async def test_search(api):
    results = await api.search_products("perf")
    assert [p.name for p in results] == ["Rose Perfume"]


async def test_create_order_sends_token_and_returns_data(api, server_and_seen):
    _, seen = server_and_seen
    order = await api.create_order({"items": [], "grandTotal": 50.0})
    assert order["_id"] == "O1"
    assert ("auth", "Bearer secret") in seen


async def test_server_message_passed_through(api):
    with pytest.raises(ApiError) as exc:
        await api.create_order({"items": [], "grandTotal": 0})
    assert exc.value.status == 400
    assert exc.value.message == "Invalid order total"


async def test_non_json_error_body(api):
    with pytest.raises(ApiError) as exc:
        await api.list_orders()
    assert exc.value.status == 500
    assert "GET /orders" in exc.value.message


async def test_cancel_order(api):
    result = await api.cancel_order("O7", "duplicate")
    assert result == {"_id": "O7", "orderStatus": "Cancelled", "reason": "duplicate"}


async def test_unreachable_host_raises_api_error():
    client = StoreApi("http://127.0.0.1:1/api", timeout=2)
    try:
        with pytest.raises(ApiError) as exc:
            await client.fetch_product_by_id("P1")
        assert exc.value.status is None
    finally:
        await client.close()


@pytest.mark.parametrize("product_id", ["OVERSOLD", "NOLABEL"])
async def test_unparseable_product_raises_api_error(api, product_id):
    with pytest.raises(ApiError) as exc:
        await api.fetch_product_by_id(product_id)
    assert exc.value.status is None
    assert product_id in exc.value.message

# tests/unit/integrations/test_trendyol_client.py
import httpx
import pytest

from marketsync.core.exceptions import TrendyolAPIError, MarketplaceClientError, MarketplaceNotFoundError
from marketsync.integrations.platforms.trendyol import TrendyolClient
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models.marketplace import Marketplace

CREDENTIALS = {"api_key": "key", "api_secret": "secret", "supplier_id": "12345"}
BASE_URL = "https://api.test/integration"


def make_client(handler):
    return TrendyolClient(CREDENTIALS, base_url=BASE_URL, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_packages_request_and_mapping():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(200, json={
            "page": 1,
            "size": 50,
            "totalPages": 3,
            "totalElements": 120,
            "content": [{"orderNumber": "TY-1"}],
        })

    client = make_client(handler)
    page = await client.fetch_packages("Created", page=1, size=50)

    assert page.content == [{"orderNumber": "TY-1"}]
    assert (page.page, page.size, page.total_pages, page.total_elements) == (1, 50, 3, 120)
    assert client.last_fetch is not None

    request = requests[0]
    assert request.url.path == "/integration/order/sellers/12345/orders"
    assert request.url.params["status"] == "Created"
    assert request.url.params["page"] == "1"
    assert request.url.params["size"] == "50"
    assert request.url.params["orderByField"] == "PackageLastModifiedDate"
    assert request.headers["User-Agent"] == "12345 - SelfIntegration"
    assert request.headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_page_size_is_capped():
    sizes = []

    def handler(request):
        sizes.append(request.url.params["size"])
        return httpx.Response(200, json={"content": []})

    await make_client(handler).fetch_packages("Created", size=1000)
    assert sizes == ["200"]


@pytest.mark.asyncio
async def test_http_error_raises():
    client = make_client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(TrendyolAPIError) as exc_info:
        await client.fetch_packages("Created")
    assert "503" in str(exc_info.value)
    assert isinstance(exc_info.value, MarketplaceClientError)


@pytest.mark.asyncio
async def test_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(TrendyolAPIError, match="timed out"):
        await make_client(handler).fetch_packages("Created")


@pytest.mark.asyncio
async def test_invalid_json_raises():
    client = make_client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(TrendyolAPIError, match="Invalid JSON"):
        await client.fetch_packages("Created")


@pytest.mark.asyncio
async def test_non_object_listing_raises():
    client = make_client(lambda request: httpx.Response(200, json=[{"orderNumber": "X"}]))
    with pytest.raises(TrendyolAPIError, match="expected an object"):
        await client.fetch_packages("Created")
    assert client.last_fetch is None


@pytest.mark.asyncio
async def test_malformed_content_raises():
    client = make_client(lambda request: httpx.Response(200, json={"content": "nope"}))
    with pytest.raises(TrendyolAPIError, match="content is not a list"):
        await client.fetch_packages("Created")

    client = make_client(lambda request: httpx.Response(200, json={"content": [], "page": "first"}))
    with pytest.raises(TrendyolAPIError, match="Unexpected package listing"):
        await client.fetch_packages("Created")


def test_incomplete_credentials_rejected():
    with pytest.raises(TrendyolAPIError):
        TrendyolClient({"api_key": "key"})


def test_registry_builds_trendyol_client():
    registry = MarketplaceClientRegistry()
    marketplace = Marketplace(name="Trendyol", api_key="key", api_secret="secret", supplier_id="12345")

    client = registry.get_client(marketplace)
    assert isinstance(client, TrendyolClient)
    assert client.supplier_id == "12345"

    with pytest.raises(MarketplaceNotFoundError):
        registry.get_client(Marketplace(name="Hepsiburada"))


def test_registry_accepts_instances_and_factories(mock_client):
    registry = MarketplaceClientRegistry()
    registry.register("Hepsiburada", mock_client)
    assert registry.supports("hepsiburada")
    assert registry.get_client(Marketplace(name="Hepsiburada")) is mock_client

    registry.register("n11", lambda marketplace: mock_client)
    assert registry.get_client(Marketplace(name="N11")) is mock_client

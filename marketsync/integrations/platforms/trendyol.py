import json
import logging
import httpx
from pydantic import ValidationError
from datetime import datetime, timezone
from typing import Dict, Optional, Any

from marketsync.core.config import get_settings
from marketsync.core.exceptions import TrendyolAPIError
from marketsync.integrations.base import MarketplaceClient, PackagePage

logger = logging.getLogger(__name__)


class TrendyolClient(MarketplaceClient):
    """
    Async client for the Trendyol seller integration API.

    Only the shipment package listing used by the poller is implemented.
    Authentication is HTTP basic with the API key/secret; Trendyol also
    expects the supplier id in the User-Agent.
    """

    MAX_PAGE_SIZE = 200

    def __init__(
        self,
        api_credentials: Dict[str, str],
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_credentials)
        self._transport = transport
        settings = get_settings()
        self.api_key = api_credentials.get("api_key") or ""
        self.api_secret = api_credentials.get("api_secret") or ""
        self.supplier_id = api_credentials.get("supplier_id") or ""
        self.BASE_URL = (base_url or settings.TRENDYOL_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.MARKETPLACE_TIMEOUT

        if not (self.api_key and self.api_secret and self.supplier_id):
            raise TrendyolAPIError("Trendyol credentials incomplete (api_key, api_secret, supplier_id required)")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"{self.supplier_id} - SelfIntegration",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """
        Make a request to the Trendyol API

        Raises:
            TrendyolAPIError: If the API request fails or times out
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                auth=(self.api_key, self.api_secret),
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    params=params,
                    json=data,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Trendyol timeout: {str(e)}")
            raise TrendyolAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Trendyol network error: {str(e)}")
            raise TrendyolAPIError(f"Network error: {str(e)}")

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Trendyol API error {response.status_code}: {response.text[:500]}")
            raise TrendyolAPIError(f"Request failed ({response.status_code}): {response.text[:500]}")

        if response.status_code == 204:
            return {}

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise TrendyolAPIError(f"Invalid JSON in response: {str(e)}")

    async def fetch_packages(self, status: str, page: int = 0, size: int = 100) -> PackagePage:
        size = max(1, min(size, self.MAX_PAGE_SIZE))
        params = {
            "status": status,
            "page": page,
            "size": size,
            "orderByField": "PackageLastModifiedDate",
            "orderByDirection": "DESC",
            "supplierId": self.supplier_id,
        }
        body = await self._make_request("GET", f"/order/sellers/{self.supplier_id}/orders", params=params)
        if not isinstance(body, dict):
            raise TrendyolAPIError(f"Unexpected package listing: expected an object, got {type(body).__name__}")

        content = body.get("content") or []
        if not isinstance(content, list) or not all(isinstance(p, dict) for p in content):
            raise TrendyolAPIError("Unexpected package listing: content is not a list of packages")

        try:
            package_page = PackagePage(
                content=content,
                page=body.get("page", page),
                size=body.get("size", size),
                total_pages=body.get("totalPages") or 0,
                total_elements=body.get("totalElements") or 0,
            )
        except ValidationError as e:
            raise TrendyolAPIError(f"Unexpected package listing: {e.errors()[0]['msg']}")

        self._last_fetch = datetime.now(timezone.utc)
        logger.info(f"Trendyol {status} page {page}: {len(content)} packages (total {package_page.total_elements})")
        return package_page

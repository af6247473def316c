from datetime import datetime
from typing import Dict, List, Optional

from marketsync.core.exceptions import MarketplaceClientError
from marketsync.integrations.base import MarketplaceClient, PackagePage


class MockMarketplaceClient(MarketplaceClient):
    """Serves canned shipment packages per remote status."""

    def __init__(self, api_credentials: Dict[str, str] = None):
        super().__init__(api_credentials or {})
        self.packages: Dict[str, List[dict]] = {}  # status -> packages
        self.fetch_calls: list = []  # Track calls for testing
        self.should_fail = False  # Toggle to test error scenarios
        self.fail_message = "Service unavailable"
        self.max_page_size: Optional[int] = None  # Emulate a server-side size cap

    def set_packages(self, status: str, packages: List[dict]) -> None:
        self.packages[status] = list(packages)

    async def fetch_packages(self, status: str, page: int = 0, size: int = 100) -> PackagePage:
        if self.max_page_size:
            size = min(size, self.max_page_size)
        self.fetch_calls.append({"status": status, "page": page, "size": size})
        if self.should_fail:
            raise MarketplaceClientError(self.fail_message)

        packages = self.packages.get(status, [])
        content = packages[page * size:(page + 1) * size]
        self._last_fetch = datetime.now()
        total_pages = (len(packages) + size - 1) // size if size else 0
        return PackagePage(
            content=content,
            page=page,
            size=size,
            total_pages=total_pages,
            total_elements=len(packages),
        )

    def clear_history(self):
        """Clear test history"""
        self.fetch_calls = []

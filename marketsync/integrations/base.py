from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field


class PackagePage(BaseModel):
    """One page of shipment packages as returned by a marketplace."""
    content: List[Dict[str, Any]] = Field(default_factory=list)
    page: int = 0
    size: int = 0
    total_pages: int = 0
    total_elements: int = 0


class MarketplaceClient(ABC):
    def __init__(self, api_credentials: Dict[str, str]):
        self.api_credentials = api_credentials
        self._last_fetch: Optional[datetime] = None

    @property
    def last_fetch(self) -> Optional[datetime]:
        return self._last_fetch

    @abstractmethod
    async def fetch_packages(self, status: str, page: int = 0, size: int = 100) -> PackagePage:
        """
        Fetch one page of shipment packages in the given remote status.

        Raises:
            MarketplaceClientError: on timeout, transport or API failure
        """
        pass

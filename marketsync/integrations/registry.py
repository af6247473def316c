"""
Builds marketplace clients from the configured Marketplace rows.

Clients are looked up by the marketplace's slug. Tests and alternative
deployments register their own client (or factory) with ``register``.
"""

import logging
from typing import Callable, Dict, Union

from marketsync.core.exceptions import MarketplaceNotFoundError
from marketsync.integrations.base import MarketplaceClient
from marketsync.integrations.platforms.trendyol import TrendyolClient
from marketsync.models.marketplace import Marketplace

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Marketplace], MarketplaceClient]


def get_marketplace_credentials(marketplace: Marketplace) -> Dict[str, str]:
    return {
        "api_key": marketplace.api_key,
        "api_secret": marketplace.api_secret,
        "supplier_id": marketplace.supplier_id,
    }


def _build_trendyol(marketplace: Marketplace) -> MarketplaceClient:
    return TrendyolClient(get_marketplace_credentials(marketplace))


DEFAULT_FACTORIES: Dict[str, ClientFactory] = {
    "trendyol": _build_trendyol,
}


class MarketplaceClientRegistry:

    def __init__(self):
        self._factories: Dict[str, ClientFactory] = dict(DEFAULT_FACTORIES)

    def register(self, slug: str, client: Union[MarketplaceClient, ClientFactory]) -> None:
        """Register a client instance or a factory for a marketplace slug."""
        if isinstance(client, MarketplaceClient):
            instance = client
            self._factories[slug.lower()] = lambda _marketplace: instance
        else:
            self._factories[slug.lower()] = client
        logger.info(f"Registered marketplace client for {slug}")

    def supports(self, slug: str) -> bool:
        return slug.lower() in self._factories

    def get_client(self, marketplace: Marketplace) -> MarketplaceClient:
        factory = self._factories.get(marketplace.slug)
        if factory is None:
            raise MarketplaceNotFoundError(f"No client available for marketplace '{marketplace.name}'")
        return factory(marketplace)

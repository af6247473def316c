"""
Matches marketplace order lines to local catalog products.

Lookup order for a line identifier (barcode, stock code or merchant SKU):
    1. a Product whose sku or location code equals the identifier
    2. an existing ProductMapping with that remote_sku on this marketplace
    3. a placeholder Product ``UNMATCHED_<identifier>`` flagged for review,
       mapped with sync_stock=False so it can never move stock

Matching never fails an order: anything unknown ends up on the review queue.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketsync.core.exceptions import ProductNotFoundError, ValidationError
from marketsync.models.product import Product
from marketsync.models.product_mapping import ProductMapping
from marketsync.schemas.marketplace import NormalizedLine

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "UNMATCHED_"
PLACEHOLDER_NAME_PREFIX = "[unmatched] "
MISSING_IDENTIFIER = "NO-BARCODE"


def placeholder_sku(remote_identifier: Optional[str]) -> str:
    return f"{PLACEHOLDER_PREFIX}{remote_identifier or MISSING_IDENTIFIER}"


class ProductMatcher:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_or_create(self, model: Type, defaults: Optional[Dict[str, Any]] = None, **lookup) -> Tuple[Any, bool]:
        """
        Fetch a row by ``lookup`` or insert it inside a SAVEPOINT.

        A concurrent insert of the same unique key rolls back only the
        savepoint; the winner's row is read back instead.
        """
        result = await self.db.execute(select(model).filter_by(**lookup))
        instance = result.scalars().first()
        if instance is not None:
            return instance, False

        try:
            async with self.db.begin_nested():
                instance = model(**lookup, **(defaults or {}))
                self.db.add(instance)
            return instance, True
        except IntegrityError:
            logger.info(f"{model.__name__} {lookup} created concurrently, re-reading")
            result = await self.db.execute(select(model).filter_by(**lookup))
            instance = result.scalars().first()
            if instance is None:
                raise
            return instance, False

    async def _find_product(self, identifier: str) -> Optional[Product]:
        result = await self.db.execute(select(Product).where(Product.sku == identifier))
        product = result.scalars().first()
        if product is not None:
            return product

        result = await self.db.execute(
            select(Product).where(Product.location == identifier).order_by(Product.id)
        )
        return result.scalars().first()

    async def _load_mapping(self, mapping_id: int) -> ProductMapping:
        result = await self.db.execute(
            select(ProductMapping)
            .options(selectinload(ProductMapping.product))
            .where(ProductMapping.id == mapping_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def resolve(
        self,
        marketplace_id: int,
        remote_identifier: Optional[str],
        line: Optional[NormalizedLine] = None,
    ) -> ProductMapping:
        """
        Resolve an order line to a ProductMapping (with ``product`` loaded).

        Check ``mapping.sync_stock`` before touching stock: placeholder
        mappings have it switched off.
        """
        identifier = (remote_identifier or "").strip() or None
        remote_product_id = line.remote_product_id if line else None
        remote_name = line.product_name if line else None

        if identifier:
            # 1. local catalog
            product = await self._find_product(identifier)
            if product is not None:
                mapping, created = await self._get_or_create(
                    ProductMapping,
                    defaults={
                        "remote_sku": identifier,
                        "remote_product_id": remote_product_id,
                        "remote_product_name": remote_name,
                        "sync_stock": True,
                    },
                    product_id=product.id,
                    marketplace_id=marketplace_id,
                )
                if created:
                    logger.info(f"Mapped {identifier} to product {product.sku} on marketplace {marketplace_id}")
                return await self._load_mapping(mapping.id)

            # 2. existing marketplace mapping
            result = await self.db.execute(
                select(ProductMapping)
                .where(
                    ProductMapping.marketplace_id == marketplace_id,
                    ProductMapping.remote_sku == identifier,
                )
                .order_by(ProductMapping.id)
            )
            mapping = result.scalars().first()
            if mapping is not None:
                return await self._load_mapping(mapping.id)

        # 3. placeholder
        sku = placeholder_sku(identifier)
        placeholder, created = await self._get_or_create(
            Product,
            defaults={
                "name": f"{PLACEHOLDER_NAME_PREFIX}{remote_name or sku}",
                "description": "Created automatically from an unmatched marketplace order line",
                "price": line.unit_price if line else None,
                "stock_quantity": 0,
                "initial_stock_quantity": 0,
                "requires_review": True,
                "product_metadata": {
                    "remote_identifier": identifier,
                    "remote_product_id": remote_product_id,
                    "marketplace_id": marketplace_id,
                },
            },
            sku=sku,
        )
        if created:
            logger.warning(f"No product for '{identifier or MISSING_IDENTIFIER}', created placeholder {sku}")

        mapping, _ = await self._get_or_create(
            ProductMapping,
            defaults={
                "remote_sku": identifier or MISSING_IDENTIFIER,
                "remote_product_id": remote_product_id,
                "remote_product_name": remote_name,
                "sync_stock": False,
            },
            product_id=placeholder.id,
            marketplace_id=marketplace_id,
        )
        return await self._load_mapping(mapping.id)

    async def list_review_queue(self, limit: int = 100) -> List[Product]:
        """Placeholder products waiting for an operator."""
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.mappings))
            .where(or_(Product.requires_review.is_(True), Product.sku.like(f"{PLACEHOLDER_PREFIX}%")))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def link_mapping(self, mapping_id: int, product_id: int, sync_stock: bool = True) -> ProductMapping:
        """
        Re-point a mapping at a real product.

        Past orders keep the stock effects they had; only future lines use
        the new target.
        """
        mapping = await self.db.get(ProductMapping, mapping_id)
        if mapping is None:
            raise ValidationError(f"Mapping {mapping_id} not found")
        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

        clash = (await self.db.execute(
            select(ProductMapping).where(
                ProductMapping.product_id == product_id,
                ProductMapping.marketplace_id == mapping.marketplace_id,
                ProductMapping.id != mapping_id,
            )
        )).scalars().first()
        if clash is not None:
            raise ValidationError(
                f"Product {product.sku} already has mapping {clash.id} on marketplace {mapping.marketplace_id}"
            )

        mapping.product_id = product_id
        mapping.sync_stock = sync_stock
        await self.db.flush()
        logger.info(f"Mapping {mapping_id} ({mapping.remote_sku}) now points to {product.sku}, sync_stock={sync_stock}")
        return await self._load_mapping(mapping_id)

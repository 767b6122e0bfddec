"""
Source adapters package.

Pluggable adapter pattern for reading variant inventory and paid order
lines from an upstream commerce platform:
  - Shopify Admin GraphQL  (productVariants / orders / locations)

Usage:
    from integrations import SourceType, get_source

    source = get_source(
        source_type=SourceType.SHOPIFY,
        shop_domain="demo.myshopify.com",
        config={"access_token": "..."},
    )
    page = await source.fetch_inventory_page(cursor=None)
"""

from integrations.base import (
    Page,
    PaginationResult,
    SourceType,
    VariantSource,
    get_source,
    paginate,
    register_source,
)
from integrations.shopify import ShopifyAdminClient, ShopifyVariantSource

__all__ = [
    "Page",
    "PaginationResult",
    "SourceType",
    "VariantSource",
    "get_source",
    "paginate",
    "register_source",
    "ShopifyAdminClient",
    "ShopifyVariantSource",
]

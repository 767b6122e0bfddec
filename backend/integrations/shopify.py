"""
Shopify Admin GraphQL Integration

Source adapter that reads variant inventory and paid orders from the
Shopify Admin API. Transport errors are retried; HTTP errors, GraphQL
errors and missing payloads surface as SourceUnavailableError.
"""

from datetime import date, datetime, timezone
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import get_settings
from integrations.base import Page, SourceType, VariantSource, register_source
from inventory.errors import SourceUnavailableError
from inventory.types import UNKNOWN_PRODUCT, UNKNOWN_SKU, OrderLine, VariantInventory

INVENTORY_QUERY = """
query InventorySnapshot($first: Int!, $cursor: String) {
  productVariants(first: $first, after: $cursor) {
    pageInfo { hasNextPage endCursor }
    nodes {
      id
      sku
      title
      inventoryQuantity
      product { title }
      inventoryItem { unitCost { amount } }
    }
  }
}
"""

ORDERS_QUERY = """
query OrdersForInventory($query: String!, $first: Int!, $cursor: String) {
  orders(first: $first, after: $cursor, query: $query, sortKey: CREATED_AT, reverse: true) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        createdAt
        lineItems(first: 50) {
          edges {
            node {
              quantity
              variant { id }
            }
          }
        }
      }
    }
  }
}
"""

LOCATIONS_QUERY = """
query LocationsForInventory($first: Int!, $cursor: String) {
  locations(first: $first, after: $cursor) {
    pageInfo { hasNextPage endCursor }
    nodes { id name }
  }
}
"""


class ShopifyAdminClient:
    """Thin GraphQL client for one shop's Admin API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.shop_domain = shop_domain
        self.endpoint = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(self.endpoint, headers=self.headers, json=payload)

    async def execute(self, query: str, variables: dict[str, Any] | None = None, scope: str = "graphql") -> dict:
        """Run a query and return its `data` object."""
        try:
            response = await self._post({"query": query, "variables": variables or {}})
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(f"GraphQL {scope} request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        errors = (body or {}).get("errors") if isinstance(body, dict) else None
        if response.status_code >= 400:
            detail = f" | {format_errors(errors)}" if errors else ""
            raise SourceUnavailableError(f"GraphQL {scope} failed with status {response.status_code}{detail}")
        if errors:
            raise SourceUnavailableError(f"GraphQL {scope} returned errors: {format_errors(errors)}")
        if not isinstance(body, dict) or not body.get("data"):
            raise SourceUnavailableError(f"GraphQL {scope} returned no data")
        return body["data"]

    async def connection_page(
        self,
        query: str,
        path: list[str],
        variables: dict[str, Any],
    ) -> tuple[list[dict], str | None, bool]:
        """Fetch one connection page and return (nodes, end_cursor, has_next_page)."""
        scope = ".".join(path)
        data = await self.execute(query, variables, scope=scope)
        container: Any = data
        for key in path:
            container = container.get(key) if isinstance(container, dict) else None
        if not isinstance(container, dict):
            raise SourceUnavailableError(f"Missing path {scope} in GraphQL response")

        page_info = container.get("pageInfo") or {}
        if "nodes" in container:
            nodes = container.get("nodes") or []
        else:
            nodes = [edge.get("node") for edge in container.get("edges") or [] if edge.get("node")]
        return nodes, page_info.get("endCursor"), bool(page_info.get("hasNextPage"))


def format_errors(errors: Any) -> str:
    if not isinstance(errors, list):
        return str(errors)
    return " | ".join(str(error.get("message", error)) if isinstance(error, dict) else str(error) for error in errors)


def parse_timestamp(value: str) -> datetime:
    """Shopify ISO-8601 timestamp → naive UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def map_variant_node(node: dict) -> VariantInventory:
    """Map a Shopify ProductVariant node to a VariantInventory."""
    product = node.get("product") or {}
    unit_cost_money = (node.get("inventoryItem") or {}).get("unitCost") or {}
    try:
        unit_cost = float(unit_cost_money.get("amount") or 0)
    except (TypeError, ValueError):
        unit_cost = 0.0

    return VariantInventory(
        id=node["id"],
        sku=node.get("sku") or UNKNOWN_SKU,
        product_name=product.get("title") or UNKNOWN_PRODUCT,
        variant_title=node.get("title") or "",
        available=max(0, int(node.get("inventoryQuantity") or 0)),
        # Zero cost means the merchant never filled it in
        unit_cost=unit_cost or None,
    )


def map_order_node(node: dict) -> list[OrderLine]:
    """Flatten a Shopify Order node into one OrderLine per variant line item."""
    created_at = node.get("createdAt")
    if not created_at:
        return []
    timestamp = parse_timestamp(created_at)

    lines: list[OrderLine] = []
    for edge in (node.get("lineItems") or {}).get("edges") or []:
        line = edge.get("node") or {}
        variant_id = (line.get("variant") or {}).get("id")
        if not variant_id:
            continue
        lines.append(OrderLine(variant_id=variant_id, quantity=int(line.get("quantity") or 0), created_at=timestamp))
    return lines


def paid_orders_query(since: date) -> str:
    return f"created_at:>={since.isoformat()} AND financial_status:paid"


@register_source
class ShopifyVariantSource(VariantSource):
    """Source adapter backed by the Shopify Admin GraphQL API."""

    @property
    def source_type(self) -> SourceType:
        return SourceType.SHOPIFY

    def __init__(self, shop_domain: str, config: dict[str, Any] | None = None):
        super().__init__(shop_domain, config)
        settings = get_settings()
        self.inventory_page_size = int(self.config.get("inventory_page_size", settings.inventory_page_size))
        self.orders_page_size = int(self.config.get("orders_page_size", settings.orders_page_size))
        self.client = ShopifyAdminClient(
            shop_domain=shop_domain,
            access_token=self.config.get("access_token", settings.shopify_admin_token),
            api_version=self.config.get("api_version", settings.shopify_api_version),
            timeout=float(self.config.get("timeout", settings.shopify_request_timeout_seconds)),
            transport=self.config.get("transport"),
        )

    async def fetch_inventory_page(self, cursor: str | None = None) -> Page[VariantInventory]:
        nodes, end_cursor, has_next = await self.client.connection_page(
            INVENTORY_QUERY,
            ["productVariants"],
            {"first": self.inventory_page_size, "cursor": cursor},
        )
        return Page(items=[map_variant_node(node) for node in nodes], next_cursor=end_cursor, has_more=has_next)

    async def fetch_orders_page(self, cursor: str | None, since: date) -> Page[OrderLine]:
        nodes, end_cursor, has_next = await self.client.connection_page(
            ORDERS_QUERY,
            ["orders"],
            {"query": paid_orders_query(since), "first": self.orders_page_size, "cursor": cursor},
        )
        lines = [line for node in nodes for line in map_order_node(node)]
        return Page(items=lines, next_cursor=end_cursor, has_more=has_next)

    async def fetch_locations(self) -> list[dict[str, str]]:
        nodes, _, _ = await self.client.connection_page(LOCATIONS_QUERY, ["locations"], {"first": 50, "cursor": None})
        return [{"id": node["id"], "name": node.get("name") or node["id"]} for node in nodes]

"""
Variant Source Adapter — Abstract Base Class

Every upstream catalog/order connector implements this interface so the
sync orchestrator stays source-agnostic. The core only needs two
cursor-paginated reads: current inventory per variant, and paid order
lines since a date. Retry/backoff is the adapter's own concern.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from inventory.types import OrderLine, VariantInventory

logger = structlog.get_logger()

T = TypeVar("T")


# ── Source types ──────────────────────────────────────────────────────────


class SourceType(str, Enum):
    """Supported upstream providers."""

    SHOPIFY = "shopify"


# ── Page container ────────────────────────────────────────────────────────


@dataclass
class Page(Generic[T]):
    """One page of a cursor-paginated read."""

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


@dataclass
class PaginationResult(Generic[T]):
    records: list[T]
    pages: int
    guard_hit: bool


async def paginate(
    fetch_page: Callable[[str | None], Awaitable[Page[T]]],
    limit_pages: int,
) -> PaginationResult[T]:
    """
    Walk cursors sequentially until the source runs out or `limit_pages`
    pages have been read. Hitting the guard keeps what was read so far.
    """
    records: list[T] = []
    cursor: str | None = None
    has_more = True
    pages = 0

    while has_more and pages < limit_pages:
        page = await fetch_page(cursor)
        records.extend(page.items)
        has_more = page.has_more and page.next_cursor is not None
        cursor = page.next_cursor
        pages += 1

    return PaginationResult(records=records, pages=pages, guard_hit=has_more)


# ── Abstract adapter ──────────────────────────────────────────────────────


class VariantSource(ABC):
    """
    Base class for upstream inventory/order connectors.

    Lifecycle:
        1. __init__(shop_domain, config)   — load credentials / config
        2. fetch_inventory_page(cursor)    — on-hand quantity per variant
        3. fetch_orders_page(cursor, since) — paid order lines since a date
        4. fetch_locations()               — optional, for location pickers
    """

    def __init__(self, shop_domain: str, config: dict[str, Any] | None = None):
        self.shop_domain = shop_domain
        self.config = config or {}
        self.logger = logger.bind(source=self.source_type.value, shop=shop_domain)

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        """Return the provider this adapter talks to."""
        ...

    @abstractmethod
    async def fetch_inventory_page(self, cursor: str | None = None) -> Page[VariantInventory]:
        """One page of variants with available quantity and unit cost."""
        ...

    @abstractmethod
    async def fetch_orders_page(self, cursor: str | None, since: date) -> Page[OrderLine]:
        """One page of paid order lines created on or after `since`."""
        ...

    async def fetch_locations(self) -> list[dict[str, str]]:
        """Shop locations as [{"id", "name"}]. Adapters without locations return []."""
        return []


# ── Adapter registry ──────────────────────────────────────────────────────

_ADAPTER_REGISTRY: dict[SourceType, type[VariantSource]] = {}


def register_source(source_cls: type[VariantSource]):
    """Decorator: register an adapter class for its source type."""
    _ADAPTER_REGISTRY[source_cls.source_type.fget(None)] = source_cls  # type: ignore
    return source_cls


def get_source(
    source_type: SourceType,
    shop_domain: str,
    config: dict[str, Any] | None = None,
) -> VariantSource:
    """Factory: return the right adapter instance for the given provider."""
    source_cls = _ADAPTER_REGISTRY.get(source_type)
    if source_cls is None:
        raise ValueError(f"No source registered for type: {source_type.value}")
    return source_cls(shop_domain=shop_domain, config=config)

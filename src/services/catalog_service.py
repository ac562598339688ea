"""Read-only product catalog lookups used for pricing carts and orders."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from supabase import Client

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.supabase import execute_query, get_supabase_client

logger = logging.getLogger(__name__)


def _sale_price(value: Any) -> Decimal | None:
    """Stored sale prices of zero or less mean there is no sale."""
    if value is None:
        return None
    price = Decimal(str(value))
    return price if price > 0 else None


@dataclass(frozen=True)
class ProductSize:
    size: str
    price: Decimal
    sale_price: Decimal | None = None
    in_stock: bool = True


@dataclass(frozen=True)
class CatalogProduct:
    """Pricing-relevant view of a products row."""

    id: str
    name: str
    price: Decimal
    sale_price: Decimal | None = None
    image: str | None = None
    active: bool = True
    sizes: tuple[ProductSize, ...] = ()

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CatalogProduct":
        sizes = tuple(
            ProductSize(
                size=str(entry["size"]),
                price=Decimal(str(entry["price"])),
                sale_price=_sale_price(entry.get("sale_price")),
                in_stock=entry.get("in_stock", True),
            )
            for entry in row.get("sizes") or []
        )
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            price=Decimal(str(row.get("price") or 0)),
            sale_price=_sale_price(row.get("sale_price")),
            image=row.get("image"),
            active=row.get("active", True),
            sizes=sizes,
        )

    @property
    def has_sizes(self) -> bool:
        return bool(self.sizes)

    def price_for(self, variant: str | None) -> tuple[Decimal, Decimal | None]:
        """List and sale price of the product in the given size.

        Args:
            variant: Size label, required when the product comes in sizes.

        Returns:
            Tuple of (list price, sale price or None).

        Raises:
            ValidationError: If the product is inactive, the size is unknown,
                missing or out of stock.
        """
        if not self.active:
            raise ValidationError(f"{self.name or self.id} is no longer available")

        if not self.has_sizes:
            if variant:
                raise ValidationError(f"{self.name} does not come in sizes")
            return self.price, self.sale_price

        if not variant:
            raise ValidationError(f"Please choose a size for {self.name}")

        for size in self.sizes:
            if size.size == variant:
                if not size.in_stock:
                    raise ValidationError(f"{self.name} ({variant}) is out of stock")
                return size.price, size.sale_price

        raise ValidationError(f"{self.name} is not available in size {variant}")


class CatalogService:
    """Service for reading products from the catalog."""

    table = "products"

    def __init__(self, supabase_client: Client | None = None) -> None:
        """Initialize catalog service.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def get_product(self, product_ref: str) -> CatalogProduct | None:
        """Get a single product by reference.

        Returns:
            CatalogProduct | None: The product or None if not found.
        """
        response = execute_query(
            self.supabase.table(self.table).select("*").eq("id", product_ref).maybe_single(),
            "load product",
        )
        if not response or not response.data:
            return None
        return CatalogProduct.from_row(response.data)

    async def require_product(self, product_ref: str) -> CatalogProduct:
        """Get a product, raising NotFoundError if it does not exist."""
        product = await self.get_product(product_ref)
        if product is None:
            raise NotFoundError(f"Product {product_ref} not found")
        return product

    async def get_products(self, product_refs: Iterable[str]) -> dict[str, CatalogProduct]:
        """Load several products in one query.

        Returns:
            dict: Products keyed by reference. Unknown references are absent.
        """
        refs = sorted(set(product_refs))
        if not refs:
            return {}

        response = execute_query(
            self.supabase.table(self.table).select("*").in_("id", refs),
            "load products",
        )
        products = [CatalogProduct.from_row(row) for row in response.data or []]
        return {product.id: product for product in products}

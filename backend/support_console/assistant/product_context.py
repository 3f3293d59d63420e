"""
Product context rendering for the assistant system prompt.
"""
from typing import Callable, Optional

from ..schemas.domain import Product

NO_PRODUCT_CONTEXT = "No specific product context available."

# Looks a product up by id; None when unknown
ProductCatalog = Callable[[str], Optional[Product]]


def build_product_context(product: Optional[Product]) -> str:
    """Render the product block, or the fallback line when there is no product."""
    if product is None:
        return NO_PRODUCT_CONTEXT

    lines = [
        "PRODUCT INFORMATION:",
        f"- Name: {product.name}",
        f"- Model/Version: {product.model_version or 'N/A'}",
        f"- Category: {product.category or 'N/A'}",
        "",
    ]
    if product.manual:
        lines.extend(["PRODUCT MANUAL/DOCUMENTATION:", product.manual, ""])
    lines.append("Use this information to help answer the user's questions about this product.")
    return "\n".join(lines)


def empty_catalog(product_id: str) -> Optional[Product]:
    return None


class StaticProductCatalog:
    """Dictionary-backed catalog for headless use and tests."""

    def __init__(self, *products: Product):
        self._products = {p.product_id: p for p in products}

    def add(self, product: Product) -> None:
        self._products[product.product_id] = product

    def __call__(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)


__all__ = [
    "NO_PRODUCT_CONTEXT",
    "ProductCatalog",
    "build_product_context",
    "empty_catalog",
    "StaticProductCatalog",
]

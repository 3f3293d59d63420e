"""
Assistant backend package.
"""
from .base import AssistantBackend, AssistantBackendError, AssistantTimeoutError
from .openai_backend import OpenAIAssistantBackend
from .product_context import (
    NO_PRODUCT_CONTEXT,
    ProductCatalog,
    StaticProductCatalog,
    build_product_context,
    empty_catalog,
)

__all__ = [
    "AssistantBackend",
    "AssistantBackendError",
    "AssistantTimeoutError",
    "OpenAIAssistantBackend",
    "NO_PRODUCT_CONTEXT",
    "ProductCatalog",
    "StaticProductCatalog",
    "build_product_context",
    "empty_catalog",
]

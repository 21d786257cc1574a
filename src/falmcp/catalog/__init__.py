"""Model catalog and the read-only resources built from it."""

from .models import (
    GENERAL_CATEGORY,
    CatalogError,
    CatalogModel,
    Examples,
    Pricing,
    category_breakdown,
    load_catalog,
    packaged_catalog_path,
    tool_name,
)
from .resources import (
    CATALOG_URI,
    PRICING_URI,
    catalog_document,
    list_resources,
    pricing_document,
    read_resource,
    resource_stats,
    schema_uri,
)

__all__ = [
    # Models
    "CatalogModel", "Pricing", "Examples", "CatalogError", "GENERAL_CATEGORY",
    "load_catalog", "packaged_catalog_path", "tool_name", "category_breakdown",
    # Resources
    "CATALOG_URI", "PRICING_URI", "schema_uri", "list_resources", "read_resource",
    "catalog_document", "pricing_document", "resource_stats",
]

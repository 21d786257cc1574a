"""Read-only catalog resources.

Three URI shapes are served:
    fal://models/catalog              every model with category counts
    fal://pricing                     pricing grouped by category
    fal://models/{slug}/schema        one model's input schema (slug URL-encoded)
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, unquote

import orjson

from falmcp.foundation.errors import not_found

from .models import CatalogModel, category_breakdown

if TYPE_CHECKING:
    from falmcp.io.schema import SchemaResolver

JsonDict = dict[str, Any]

CATALOG_URI = "fal://models/catalog"
PRICING_URI = "fal://pricing"
MIME_JSON = "application/json"

_SCHEMA_URI = re.compile(r"^fal://models/([^/]+)/schema$")


def schema_uri(slug: str) -> str:
    return f"fal://models/{quote(slug, safe='')}/schema"


def list_resources(models: Sequence[CatalogModel]) -> list[JsonDict]:
    """Resource descriptors: catalog, pricing, then one schema per model."""
    return [
        {"uri": CATALOG_URI, "name": "Fal AI Model Catalog",
         "description": f"Complete catalog of all {len(models)} Fal AI models", "mimeType": MIME_JSON},
        {"uri": PRICING_URI, "name": "Pricing Information",
         "description": "Pricing details for all Fal AI models", "mimeType": MIME_JSON},
        *({"uri": schema_uri(m.slug), "name": f"{m.name} Schema",
           "description": f"OpenAPI schema for {m.name}", "mimeType": MIME_JSON} for m in models),
    ]


def catalog_document(models: Sequence[CatalogModel]) -> JsonDict:
    return {
        "total": len(models),
        "categories": category_breakdown(models),
        "models": [m.model_dump(include={"slug", "name", "category", "description", "url"}) for m in models],
    }


def pricing_document(models: Sequence[CatalogModel]) -> JsonDict:
    rows = [
        {"slug": m.slug, "name": m.name, "category": m.category, "pricing": m.pricing.model_dump()}
        for m in models
    ]
    by_category: dict[str, list[JsonDict]] = {}
    for row in rows:
        by_category.setdefault(row["category"], []).append(row)
    return {"total_models": len(models), "by_category": by_category, "all_models": rows}


async def read_resource(uri: str, models: Sequence[CatalogModel], resolver: SchemaResolver) -> str:
    """Serialized JSON document for a resource URI.

    Raises:
        NormalizedException: invalid_request/not_found for unknown URIs or models.
    """
    if uri == CATALOG_URI:
        return _dump(catalog_document(models))
    if uri == PRICING_URI:
        return _dump(pricing_document(models))
    if match := _SCHEMA_URI.match(uri):
        slug = unquote(match.group(1))
        model = next((m for m in models if m.slug == slug), None)
        if model is None:
            raise not_found(f"Model not found: {slug}")
        return _dump({
            "model": model.model_dump(include={"slug", "name", "category", "description"}),
            "schema": await resolver.resolve(slug),
            "examples": model.examples.model_dump(exclude_none=True),
        })
    raise not_found(f"Unknown resource: {uri}")


def resource_stats(models: Sequence[CatalogModel]) -> dict[str, int]:
    return {
        "total_models": len(models),
        "categories": len(category_breakdown(models)),
        "resources": 2 + len(models),
    }


def _dump(document: JsonDict) -> str:
    return orjson.dumps(document, option=orjson.OPT_INDENT_2).decode()

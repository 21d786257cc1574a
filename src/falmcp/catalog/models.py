"""Model catalog: typed entries loaded from a JSON file.

Each catalog entry is one invokable provider model. The callable tool name
is derived from the slug: ``fal-ai/flux-pro/kontext`` -> ``fal_flux_pro_kontext``.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from importlib.resources import files
from pathlib import Path
from typing import Annotated

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, computed_field

from falmcp.runtime.observability import get_logger

_log = get_logger("falmcp.catalog")

GENERAL_CATEGORY = "general"

_SLUG_PREFIX = re.compile(r"^fal-ai/")
_SLUG_SEPARATORS = re.compile(r"[/\-.]")


def packaged_catalog_path() -> Path:
    """Path of the catalog shipped with the package."""
    return Path(str(files("falmcp.catalog").joinpath("data", "models.json")))


def tool_name(slug: str) -> str:
    """Callable tool name for a model slug."""
    return "fal_" + _SLUG_SEPARATORS.sub("_", _SLUG_PREFIX.sub("", slug))


class Pricing(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    display: str = ""
    value: float = 0.0
    currency: str = "USD"
    unit: str = ""


class Examples(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    javascript: str | None = None
    python: str | None = None


class CatalogModel(BaseModel):
    """One invokable model.

    Attributes:
        slug: Provider model id (e.g. "fal-ai/flux-pro/kontext")
        name: Human-readable name
        category: Model category (e.g. "Text-to-Image"), "general" if uncategorized
        description: Model description
        pricing: Pricing details
        examples: Code samples per language
        url: Model page
    """

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    slug: Annotated[str, Field(min_length=1)]
    name: str
    category: str = GENERAL_CATEGORY
    description: str = ""
    pricing: Pricing = Field(default_factory=Pricing)
    examples: Examples = Field(default_factory=Examples)
    url: str = ""

    @computed_field
    @property
    def tool_name(self) -> str:
        return tool_name(self.slug)

    def format_description(self) -> str:
        """Description prefixed with the category tag unless uncategorized."""
        tag = f"[{self.category}]" if self.category != GENERAL_CATEGORY else ""
        return f"{tag} {self.description}".strip()


class CatalogError(Exception):
    """Catalog file missing, unreadable, or invalid."""


_CatalogAdapter = TypeAdapter(list[CatalogModel])


def load_catalog(path: str | Path) -> list[CatalogModel]:
    """Load and validate a catalog file.

    Raises:
        CatalogError: If the file is missing, not JSON, invalid, or empty.
    """
    path = Path(path)
    try:
        models = _CatalogAdapter.validate_python(orjson.loads(path.read_bytes()))
    except FileNotFoundError as e:
        raise CatalogError(f"Catalog not found: {path}") from e
    except (OSError, orjson.JSONDecodeError, ValidationError) as e:
        raise CatalogError(f"Invalid catalog {path}: {e}") from e
    if not models:
        raise CatalogError(f"Catalog is empty: {path}")
    _log.info("catalog loaded", path=str(path), count=len(models),
              categories=len(category_breakdown(models)))
    return models


def category_breakdown(models: Iterable[CatalogModel]) -> dict[str, int]:
    """Model count per category, in first-seen order."""
    return dict(Counter(m.category for m in models))

"""Item catalog loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from case_tracker.core.exceptions import CatalogError
from case_tracker.core.models import ItemId

logger = logging.getLogger(__name__)


def load_catalog(path: str | Path) -> list[ItemId]:
    """Read the ordered list of item identifiers from a JSON file.

    The file holds a JSON array of market hash names. Surrounding whitespace
    is stripped and duplicates are dropped, keeping the first occurrence so
    the sweep order stays as written.

    Raises:
        CatalogError: If the file is missing, not valid JSON, not an array of
            strings, or contains no items.
    """
    catalog_path = Path(path)
    try:
        raw = json.loads(catalog_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise CatalogError(
            f"Cannot read catalog: {catalog_path}",
            context={"path": str(catalog_path), "error": str(e)},
        ) from e
    except json.JSONDecodeError as e:
        raise CatalogError(
            f"Catalog is not valid JSON: {catalog_path}",
            context={"path": str(catalog_path), "error": str(e)},
        ) from e

    return validate_catalog(raw, source=str(catalog_path))


def validate_catalog(raw: object, source: str = "<memory>") -> list[ItemId]:
    """Normalize an in-memory catalog and reject empty or malformed input."""
    if not isinstance(raw, list):
        raise CatalogError(
            f"Catalog must be a JSON array, got {type(raw).__name__}",
            context={"path": source},
        )

    items: list[ItemId] = []
    seen: set[str] = set()
    for entry in raw:
        if not isinstance(entry, str):
            raise CatalogError(
                f"Catalog entries must be strings, got {entry!r}",
                context={"path": source},
            )
        name = entry.strip()
        if not name:
            continue
        if name in seen:
            logger.warning("Duplicate catalog entry %r ignored", name)
            continue
        seen.add(name)
        items.append(name)

    if not items:
        raise CatalogError("Catalog is empty", context={"path": source})

    logger.info("Loaded %d catalog items from %s", len(items), source)
    return items

# products/services/catalog.py

"""
Product lookups used by the billing engine.

Offer rules store product ids as plain strings; malformed ids are treated
as "no such product" rather than errors.
"""

from __future__ import annotations

import uuid
from typing import Iterable

from products.models import Product


def _valid_ids(product_ids: Iterable) -> set[str]:
    out = set()
    for raw in product_ids:
        if not raw:
            continue
        try:
            out.add(str(uuid.UUID(str(raw))))
        except ValueError:
            continue
    return out


def load_catalog(product_ids: Iterable) -> dict[str, Product]:
    """Map str(product.id) -> Product for the ids that exist."""
    ids = _valid_ids(product_ids)
    if not ids:
        return {}
    return {str(p.id): p for p in Product.objects.filter(id__in=ids)}

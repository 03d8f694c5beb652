# storefront/services/catalog.py
"""Batch product lookups against the catalog's products table."""
from typing import Dict, Iterable

from storefront.models.product import Product


def get_products_by_ids(store, product_ids: Iterable[str]) -> Dict[str, Product]:
    """
    One read of the products table for all distinct ids. Ids with no row are
    simply absent from the returned map.
    """
    ids = {str(pid) for pid in product_ids if pid}
    if not ids:
        return {}
    rows = store.get_records("products", "id", ids)
    return {p.id: p for p in (Product.from_dict(r) for r in rows)}

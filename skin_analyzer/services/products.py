from __future__ import annotations

from typing import Any, Iterable, Optional

from skin_analyzer.models import Product


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_non_empty_str(*values: Any) -> str:
    for value in values:
        text = _as_str(value)
        if text:
            return text
    return ""


def _format_price(raw: Any) -> str:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return f"{float(raw):.2f} €".replace(".", ",")
    return _as_str(raw)


def _map_product(p: dict[str, Any]) -> Optional[Product]:
    title = _first_non_empty_str(p.get("title"), p.get("name"), p.get("product_title"))
    if not title:
        return None
    return Product(
        title=title,
        type=_first_non_empty_str(p.get("type"), p.get("product_type"), p.get("category")),
        benefit=_first_non_empty_str(p.get("benefit"), p.get("short_benefit"), p.get("description"))[:280],
        price=_format_price(p.get("price")),
        handle=_first_non_empty_str(p.get("handle"), p.get("slug")),
    )


def normalize_products(items: Optional[Iterable[Any]]) -> list[Product]:
    products: list[Product] = []
    for item in items or ():
        if not isinstance(item, dict):
            continue
        mapped = _map_product(item)
        if mapped is not None:
            products.append(mapped)
    return products


def _mentions_range(product: Product, range_name: str) -> bool:
    needle = range_name.lower()
    return any(needle in text.lower() for text in (product.title, product.type, product.handle))


def select_products_for_range(products: list[Product], range_name: str) -> list[Product]:
    if not range_name:
        return list(products)
    matching = [p for p in products if _mentions_range(p, range_name)]
    return matching or list(products)

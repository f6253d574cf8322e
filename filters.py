"""
Predicates over in-memory product and order lists.

Products and orders are plain dicts with camelCase keys, the same shape the
API returns.
"""
import re
from typing import Any, Dict, List, Optional

Product = Dict[str, Any]


def discount_percent(product: Product) -> float:
    digits = re.sub(r"\D", "", product.get("discount") or "")
    return float(digits) if digits else 0.0


def in_price_range(price: float, price_range: str) -> bool:
    """Inclusive "100-500" range; "500+" (or "500-") means 500 and up."""
    low, _, high = price_range.rstrip("+").partition("-")
    minimum = float(low) if low else 0.0
    if high:
        return minimum <= price <= float(high)
    return price >= minimum


def matches_search(product: Product, query: str) -> bool:
    q = query.lower()
    return q in (product.get("name") or "").lower() or q in (product.get("category") or "").lower()


def filter_products(
    products: List[Product],
    vertical: Optional[str] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    discount: Optional[float] = None,
    price_range: Optional[str] = None,
) -> List[Product]:
    result = []
    for p in products:
        if vertical and p.get("vertical") != vertical:
            continue
        if search and not matches_search(p, search):
            continue
        if category and p.get("category") != category:
            continue
        if discount and discount_percent(p) < float(discount):
            continue
        if price_range and not in_price_range(p.get("price", 0), price_range):
            continue
        result.append(p)
    return result


def available_categories(products: List[Product], vertical: Optional[str] = None) -> List[str]:
    """Distinct categories in first-seen order."""
    seen: List[str] = []
    for p in products:
        if vertical and p.get("vertical") != vertical:
            continue
        category = p.get("category")
        if category and category not in seen:
            seen.append(category)
    return seen


def wishlist_products(products: List[Product], wishlist: List[str]) -> List[Product]:
    wanted = set(wishlist)
    return [p for p in products if p.get("id") in wanted]


def related_products(products: List[Product], product: Product, limit: int = 4) -> List[Product]:
    return [
        p for p in products
        if p.get("category") == product.get("category") and p.get("id") != product.get("id")
    ][:limit]


def seller_products(products: List[Product], user: Optional[Dict[str, Any]]) -> List[Product]:
    """Listings owned by a seller: ids they listed, or anything under their store id."""
    if not user or user.get("role", "consumer") == "consumer":
        return []
    mine = set(user.get("myProducts") or [])
    return [p for p in products if p.get("id") in mine or p.get("storeId") == user.get("id")]


def filter_orders_by_vertical(orders: List[Dict[str, Any]], vertical: str = "ALL") -> List[Dict[str, Any]]:
    """Keep only items of one vertical; orders left empty are dropped."""
    if vertical == "ALL":
        return list(orders)
    result = []
    for order in orders:
        items = [i for i in order.get("items", []) if i.get("vertical") == vertical]
        if items:
            result.append({**order, "items": items})
    return result

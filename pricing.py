"""
Cart pricing: bulk discount tiers and per-supplier order splitting.

Products are plain product documents (dicts) as stored in the `product`
collection; only `price`, `bulk_discounts`, `supplier_id`, `supplier_name`,
`name` and `unit` are read here.
"""
from typing import Any, Dict, Iterable, List, Mapping, Tuple

CartLine = Tuple[Mapping[str, Any], float]


def _money(value: float) -> float:
    return round(value, 2)


def _product_key(product: Mapping[str, Any]) -> str:
    return str(product.get("id") or product.get("_id"))


def resolve_bulk_discount(tiers: Iterable[Mapping[str, Any]], quantity: float) -> float:
    """Return the discount percentage unlocked by `quantity`.

    Tiers are scanned in list order and every tier whose threshold is met
    overwrites the discount, so the last qualifying tier wins. Authors are
    expected to list tiers by ascending threshold.
    """
    discount = 0.0
    for tier in tiers or ():
        if quantity >= tier["quantity"]:
            discount = float(tier["discount"])
    return discount


def discounted_unit_price(product: Mapping[str, Any], quantity: float) -> float:
    """List price less the bulk discount, unrounded."""
    discount = resolve_bulk_discount(product.get("bulk_discounts"), quantity)
    return product["price"] * (1 - discount / 100)


def quote_line(product: Mapping[str, Any], quantity: float) -> Dict[str, Any]:
    """Price one cart line. Only the line total is rounded."""
    price = discounted_unit_price(product, quantity)
    return {
        "product_id": _product_key(product),
        "product_name": product["name"],
        "quantity": quantity,
        "unit": product.get("unit", ""),
        "list_price": product["price"],
        "discount": resolve_bulk_discount(product.get("bulk_discounts"), quantity),
        "price": price,
        "line_total": _money(price * quantity),
    }


def merge_lines(lines: Iterable[CartLine]) -> List[CartLine]:
    """Collapse repeated products into one line, summing quantities."""
    merged: Dict[str, list] = {}
    for product, quantity in lines:
        key = _product_key(product)
        if key in merged:
            merged[key][1] += quantity
        else:
            merged[key] = [product, quantity]
    return [(product, quantity) for product, quantity in merged.values()]


def split_cart(lines: Iterable[CartLine]) -> List[Dict[str, Any]]:
    """Partition a cart into one priced group per supplier.

    Groups keep the order in which suppliers first appear in the cart.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for product, quantity in merge_lines(lines):
        supplier_id = product["supplier_id"]
        group = groups.get(supplier_id)
        if group is None:
            group = groups[supplier_id] = {
                "supplier_id": supplier_id,
                "supplier_name": product.get("supplier_name", ""),
                "items": [],
                "total_amount": 0.0,
            }
        group["items"].append(quote_line(product, quantity))

    for group in groups.values():
        group["total_amount"] = _money(sum(item["line_total"] for item in group["items"]))
    return list(groups.values())


def cart_total(groups: Iterable[Mapping[str, Any]]) -> float:
    return _money(sum(group["total_amount"] for group in groups))

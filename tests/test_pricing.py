import pytest

from pricing import cart_total, discounted_unit_price, merge_lines, quote_line, resolve_bulk_discount, split_cart

TIERS = [{"quantity": 50, "discount": 5}, {"quantity": 100, "discount": 10}]


def product(pid, supplier_id, price, tiers=None, name=None):
    return {
        "id": pid,
        "name": name or f"product-{pid}",
        "price": price,
        "unit": "kg",
        "supplier_id": supplier_id,
        "supplier_name": f"Supplier {supplier_id}",
        "bulk_discounts": tiers or [],
    }


@pytest.mark.parametrize(
    "quantity,expected",
    [(1, 0), (49, 0), (50, 5), (99, 5), (100, 10), (500, 10)],
)
def test_resolve_bulk_discount_thresholds(quantity, expected):
    assert resolve_bulk_discount(TIERS, quantity) == expected


def test_resolve_bulk_discount_without_tiers():
    assert resolve_bulk_discount(None, 1000) == 0
    assert resolve_bulk_discount([], 1000) == 0


def test_resolve_bulk_discount_last_qualifying_tier_wins():
    # tiers listed out of order: the later 50-tier overrides the 100-tier
    assert resolve_bulk_discount(list(reversed(TIERS)), 120) == 5
    assert resolve_bulk_discount(list(reversed(TIERS)), 60) == 5
    assert resolve_bulk_discount(list(reversed(TIERS)), 10) == 0


def test_resolve_bulk_discount_equal_thresholds_last_wins():
    tiers = [{"quantity": 20, "discount": 3}, {"quantity": 20, "discount": 7}]
    assert resolve_bulk_discount(tiers, 25) == 7


def test_discounted_unit_price():
    onions = product("1", "s1", 30, TIERS)
    assert discounted_unit_price(onions, 10) == 30
    assert discounted_unit_price(onions, 60) == pytest.approx(28.5)
    assert discounted_unit_price(onions, 100) == pytest.approx(27)


def test_quote_line():
    tomatoes = product("4", "s3", 35, [{"quantity": 25, "discount": 8}], name="Fresh Tomatoes")
    line = quote_line(tomatoes, 25)
    assert line["product_id"] == "4"
    assert line["product_name"] == "Fresh Tomatoes"
    assert line["discount"] == 8
    assert line["list_price"] == 35
    assert line["price"] == pytest.approx(32.2)
    assert line["line_total"] == pytest.approx(805.0)


def test_line_total_uses_unrounded_unit_price():
    flour = product("5", "s1", 10.01, [{"quantity": 500, "discount": 3}])
    line = quote_line(flour, 1000)
    assert line["price"] == pytest.approx(9.7097)
    assert line["line_total"] == pytest.approx(9709.70)
    (group,) = split_cart([(flour, 1000)])
    assert group["total_amount"] == pytest.approx(9709.70)


def test_merge_lines_sums_quantities_of_same_product():
    onions = product("1", "s1", 30, TIERS)
    masala = product("3", "s1", 180)
    merged = merge_lines([(onions, 30), (masala, 1), (onions, 25)])
    assert [(p["id"], q) for p, q in merged] == [("1", 55), ("3", 1)]


def test_split_cart_groups_by_supplier_in_first_seen_order():
    onions = product("1", "s1", 30, TIERS)
    potatoes = product("2", "s2", 25)
    masala = product("3", "s1", 180)

    groups = split_cart([(potatoes, 10), (onions, 60), (masala, 2)])

    assert [g["supplier_id"] for g in groups] == ["s2", "s1"]
    assert groups[0]["supplier_name"] == "Supplier s2"
    assert groups[0]["total_amount"] == 250
    assert [i["product_id"] for i in groups[1]["items"]] == ["1", "3"]
    # 60 kg onions at 5% off + 2 kg masala at list price
    assert groups[1]["total_amount"] == pytest.approx(60 * 28.5 + 360)
    assert cart_total(groups) == pytest.approx(250 + 1710 + 360)


def test_split_cart_discount_applies_to_merged_quantity():
    onions = product("1", "s1", 30, TIERS)
    groups = split_cart([(onions, 40), (onions, 60)])
    assert len(groups) == 1
    (item,) = groups[0]["items"]
    assert item["quantity"] == 100
    assert item["discount"] == 10
    assert groups[0]["total_amount"] == 2700


def test_split_cart_empty():
    assert split_cart([]) == []
    assert cart_total([]) == 0

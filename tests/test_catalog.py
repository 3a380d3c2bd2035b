"""Tests for the product query builder."""

from decimal import Decimal

from storefront.models.catalog import ProductFilters, ProductSort
from storefront.services.catalog import PRODUCT_COLUMNS, build_product_query


def test_no_filters_selects_everything_by_name():
    sql, args = build_product_query(ProductFilters())
    assert sql == f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY name ASC, id ASC"
    assert args == []


def test_filters_are_combined_with_and():
    sql, args = build_product_query(ProductFilters(
        search="mug",
        min_price=Decimal("2"),
        max_price=Decimal("20.5"),
        category="Kitchen",
    ))
    assert sql.endswith(
        "WHERE name ILIKE $1 AND price >= $2 AND price <= $3 AND category = $4"
        " ORDER BY name ASC, id ASC"
    )
    assert args == ["%mug%", Decimal("2"), Decimal("20.5"), "Kitchen"]


def test_empty_values_add_no_constraint():
    sql, args = build_product_query(ProductFilters(search="  ", category=""))
    assert "WHERE" not in sql
    assert args == []


def test_all_categories_sentinel_is_ignored():
    sql, args = build_product_query(ProductFilters(category="All"))
    assert "category =" not in sql
    assert args == []


def test_zero_min_price_is_still_a_constraint():
    sql, args = build_product_query(ProductFilters(min_price=Decimal("0")))
    assert "price >= $1" in sql
    assert args == [Decimal("0")]


def test_parameters_are_numbered_in_order_of_use():
    sql, args = build_product_query(ProductFilters(max_price=Decimal("9"), category="Coffee"))
    assert "price <= $1 AND category = $2" in sql
    assert args == [Decimal("9"), "Coffee"]


def test_search_escapes_like_wildcards():
    _, args = build_product_query(ProductFilters(search="100%_off"))
    assert args == ["%100\\%\\_off%"]


def test_newest_first_ordering():
    sql, _ = build_product_query(ProductFilters(sort=ProductSort.NEWEST))
    assert sql.endswith("ORDER BY created_at DESC, id ASC")

from typing import Any, List, Tuple
from storefront.models.catalog import ALL_CATEGORIES, ProductFilters, ProductSort

PRODUCT_COLUMNS = "id::text AS id, name, description, price, image_url, category, created_at"

ORDERINGS = {
    ProductSort.NAME: "name ASC, id ASC",
    ProductSort.NEWEST: "created_at DESC, id ASC",
}

def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

def build_product_query(filters: ProductFilters) -> Tuple[str, List[Any]]:
    """
    Build a parameterised SELECT over products.

    Filters combine with AND; a filter left empty adds no constraint. Rows are
    always tie-broken on id so the same filters give the same order.
    """
    clauses = []
    args: List[Any] = []

    def bind(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    search = (filters.search or "").strip()
    if search:
        clauses.append(f"name ILIKE {bind('%' + escape_like(search) + '%')}")

    if filters.min_price is not None:
        clauses.append(f"price >= {bind(filters.min_price)}")

    if filters.max_price is not None:
        clauses.append(f"price <= {bind(filters.max_price)}")

    category = (filters.category or "").strip()
    if category and category != ALL_CATEGORIES:
        clauses.append(f"category = {bind(category)}")

    sql = f"SELECT {PRODUCT_COLUMNS} FROM products"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {ORDERINGS[filters.sort]}"
    return sql, args

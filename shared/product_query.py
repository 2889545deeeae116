"""shared/product_query.py — Filter/sort composition for the product listing.

Used by GET /api/products and GET /api/analytics.

Filters are pushed down into a DynamoDB scan FilterExpression; ordering and
the result cap are applied after the scan because a scan has no ORDER BY.
Case-insensitive search runs against the lower-cased search_text attribute
written by shared.product_record.finalize().
"""
from decimal import Decimal, InvalidOperation
from functools import reduce

from boto3.dynamodb.conditions import Attr

from shared.dynamo import scan_all, to_python

# sortBy value → (attribute, descending)
SORT_OPTIONS = {
    "name_asc":   ("title",        False),
    "name_desc":  ("title",        True),
    "price_asc":  ("price_amount", False),
    "price_desc": ("price_amount", True),
}
DEFAULT_SORT = "name_asc"

# Products with no EU notification status count as this one
EU_STATUS_DEFAULT = "Not started"


class QueryError(ValueError):
    """Raised for malformed listing parameters (mapped to HTTP 400)."""


def _param(params: dict, *names) -> str:
    for n in names:
        v = params.get(n)
        if v is not None and str(v).strip() != "":
            return str(v).strip()
    return ""


def _price(raw: str, name: str):
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise QueryError(f"{name} must be a number.")
    if not value.is_finite():
        raise QueryError(f"{name} must be a number.")
    return value


def parse_query_params(params: dict | None) -> dict:
    """Turn raw query-string parameters into a normalised query dict."""
    params = params or {}
    raw_limit = _param(params, "limit")
    limit = None
    if raw_limit:
        try:
            limit = int(raw_limit)
        except ValueError:
            raise QueryError("limit must be a positive integer.")
        if limit <= 0:
            raise QueryError("limit must be a positive integer.")
    min_price = _price(_param(params, "minPrice", "min_price"), "minPrice")
    max_price = _price(_param(params, "maxPrice", "max_price"), "maxPrice")
    return {
        "search":    _param(params, "search", "q"),
        "category":  _param(params, "category"),
        "goal":      _param(params, "goal"),
        "eu_status": _param(params, "euNotificationStatus", "eu_notification_status"),
        "min_price": min_price,
        "max_price": max_price,
        "sort_by":   _param(params, "sortBy", "sort_by") or DEFAULT_SORT,
        "limit":     limit,
    }


def build_filter_expression(query: dict):
    """Compose the scan FilterExpression, or None when nothing filters."""
    conditions = []
    if query.get("search"):
        conditions.append(Attr("search_text").contains(query["search"].lower()))
    if query.get("category"):
        conditions.append(Attr("category").eq(query["category"]))
    if query.get("goal"):
        conditions.append(Attr("primary_goal").eq(query["goal"]))
    if query.get("eu_status"):
        cond = Attr("eu_notification_status").eq(query["eu_status"])
        if query["eu_status"] == EU_STATUS_DEFAULT:
            cond = cond | Attr("eu_notification_status").not_exists()
        conditions.append(cond)
    if query.get("min_price") is not None:
        conditions.append(Attr("price_amount").gte(query["min_price"]))
    if query.get("max_price") is not None:
        conditions.append(Attr("price_amount").lte(query["max_price"]))
    if not conditions:
        return None
    return reduce(lambda a, b: a & b, conditions)


def sort_products(products: list, sort_by: str) -> list:
    """Order products; unknown keys fall back to title ascending.

    Titles compare case-insensitively. Products without a price go last in
    both price orders.
    """
    field, descending = SORT_OPTIONS.get(sort_by, SORT_OPTIONS[DEFAULT_SORT])
    if field == "title":
        return sorted(products, key=lambda p: (p.get("title") or "").lower(), reverse=descending)
    priced   = [p for p in products if p.get(field) is not None]
    unpriced = [p for p in products if p.get(field) is None]
    priced.sort(key=lambda p: p[field], reverse=descending)
    return priced + unpriced


def run_product_query(table, query: dict, apply_sort: bool = True) -> list:
    """Scan the products table with the composed filter, then sort and cap."""
    kwargs = {}
    fe = build_filter_expression(query)
    if fe is not None:
        kwargs["FilterExpression"] = fe
    products = to_python(scan_all(table, **kwargs))
    if not apply_sort:
        return products
    products = sort_products(products, query.get("sort_by") or DEFAULT_SORT)
    if query.get("limit"):
        products = products[:query["limit"]]
    return products

"""lambda/analytics.py — GET /api/analytics"""
from helpers import ok, err, get_session, get_params, products_tbl
from shared.analytics import compute_analytics
from shared.product_query import QueryError, parse_query_params, run_product_query


def get_analytics(event):
    """Price stats, category/goal counts and price buckets.

    Accepts the same filters as the product listing; sortBy and limit are
    ignored so the aggregate covers every match.
    """
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    try:
        query = parse_query_params(get_params(event))
    except QueryError as e:
        return err(str(e))
    try:
        products = run_product_query(products_tbl, query, apply_sort=False)
    except Exception as e:
        print(f"[CAT] get_analytics: {e}")
        return err("Failed to compute analytics.", 500)
    return ok(compute_analytics(products))

"""lambda/products.py — Product CRUD and listing.

Every write goes through shared.product_record so the price pair and
search_text stay in sync with the stored title/description.
"""
from helpers import (
    ok, err, get_session, get_params,
    products_tbl, variants_tbl,
)
from logging_utils import _log_app_event
from shared.catalog import (
    get_product, put_product, get_variants, replace_variants, delete_variants,
)
from shared.product_query import QueryError, parse_query_params, run_product_query
from shared.product_record import normalize_product, apply_update, validate_product


def list_products(event):
    """GET /api/products?search=&category=&goal=&minPrice=&maxPrice=&sortBy=&limit="""
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    try:
        query = parse_query_params(get_params(event))
    except QueryError as e:
        return err(str(e))
    try:
        products = run_product_query(products_tbl, query)
    except Exception as e:
        print(f"[CAT] list_products: {e}")
        return err("Failed to fetch products.", 500)
    return ok({"products": products, "total": len(products)})


def get_one(event, key: str):
    """GET /api/products/{id or handle} — product with its variants."""
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    try:
        product = get_product(products_tbl, key)
        if not product: return err("Product not found.", 404)
        product["variants"] = get_variants(variants_tbl, product["handle"])
    except Exception as e:
        print(f"[CAT] get_one {key}: {e}")
        return err("Failed to fetch product.", 500)
    return ok({"product": product})


def create_product(event, body):
    """POST /api/products — 409 when the handle is already taken."""
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    record = normalize_product(body)
    errors, warnings = validate_product(record)
    if errors:
        return err("; ".join(errors), 400, _extra={"errors": errors})
    try:
        if get_product(products_tbl, record["handle"]):
            return err(f"A product with handle '{record['handle']}' already exists.", 409)
        saved = put_product(products_tbl, record)
        if isinstance(body.get("variants"), list):
            saved["variants"] = replace_variants(variants_tbl, saved["handle"], body["variants"])
    except Exception as e:
        print(f"[CAT] create_product {record['handle']}: {e}")
        return err("Failed to create product.", 500)
    _log_app_event("catalog", "info", action="product-create",
                   user=sess["user"], handle=saved["handle"])
    print(f"[CAT] product created: {saved['handle']} by {sess['user']}")
    return ok({"product": saved, "warnings": warnings}, 201)


def update_product(event, body, key: str):
    """PUT /api/products/{id or handle} — partial update, last write wins.

    A price sent in either form replaces both halves of the pair. A
    variants list replaces all of the product's variant rows.
    """
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    changes = normalize_product(body, partial=True)
    try:
        existing = get_product(products_tbl, key)
        if not existing: return err("Product not found.", 404)
        merged = apply_update(existing, changes)
        errors, warnings = validate_product(merged)
        if errors:
            return err("; ".join(errors), 400, _extra={"errors": errors})
        saved = put_product(products_tbl, merged)
        if isinstance(body.get("variants"), list):
            saved["variants"] = replace_variants(variants_tbl, saved["handle"], body["variants"])
    except Exception as e:
        print(f"[CAT] update_product {key}: {e}")
        return err("Failed to update product.", 500)
    _log_app_event("catalog", "info", action="product-update",
                   user=sess["user"], handle=saved["handle"],
                   fields=sorted(changes.keys()))
    return ok({"product": saved, "warnings": warnings})


def delete_product(event, key: str):
    """DELETE /api/products/{id or handle} — removes the product and its variants."""
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    try:
        existing = get_product(products_tbl, key)
        if not existing: return err("Product not found.", 404)
        products_tbl.delete_item(Key={"handle": existing["handle"]})
        removed = delete_variants(variants_tbl, existing["handle"])
    except Exception as e:
        print(f"[CAT] delete_product {key}: {e}")
        return err("Failed to delete product.", 500)
    _log_app_event("catalog", "info", action="product-delete",
                   user=sess["user"], handle=existing["handle"])
    return ok({"message": f"Product {existing['handle']} deleted.",
               "variants_deleted": removed})

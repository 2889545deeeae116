"""lambda/handler.py — API Gateway Lambda router.

Thin routing layer only; no business logic lives here.
Lambda handler entry point: handler.handler
"""
import urllib.parse
from helpers import err, get_body, CORS

from auth      import login, logout, auth_check
from status    import health, get_config
from products  import list_products, get_one, create_product, update_product, delete_product
from analytics import get_analytics
from taxonomy  import (
    list_categories, create_category, delete_category,
    list_goals, create_goal, delete_goal,
    list_flavors, create_flavor, delete_flavor,
)
from admin     import (
    admin_list_users, admin_create_user, admin_delete_user,
    get_app_logs, get_auth_logs, get_scrape_logs,
)

# Paths that exist under some method; anything else is a 404.
_FIXED_PATHS = {
    "/api/health", "/api/config", "/api/login", "/api/logout", "/api/auth/check",
    "/api/products", "/api/analytics", "/api/categories", "/api/goals", "/api/flavors",
    "/api/admin/users", "/api/admin/app-logs", "/api/admin/auth-logs", "/api/admin/scrape-logs",
}
_PARAM_PREFIXES = (
    "/api/products/", "/api/categories/", "/api/goals/", "/api/flavors/", "/api/admin/users/",
)


def _tail(path: str, prefix: str) -> str:
    """'/api/products/whey%20protein' → 'whey protein' for prefix '/api/products/'."""
    rest = path[len(prefix):]
    if not rest or "/" in rest:
        return ""
    return urllib.parse.unquote(rest)


def handler(event, context):
    try:
        return _dispatch(event)
    except Exception as e:
        # Store failures outside a handler's own try (session lookup, login)
        print(f"[CAT] unhandled error: {e!r}")
        return err("Internal server error.", 500)


def _dispatch(event):
    http_ctx = event.get("requestContext", {}).get("http", {})
    method   = (http_ctx.get("method") or event.get("httpMethod", "GET")).upper()
    path     = http_ctx.get("path") or event.get("rawPath") or event.get("path", "")
    path     = path.rstrip("/") or "/"
    body     = get_body(event)

    if method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS, "body": ""}

    # ── Public / auth routes ──────────────────────────────────────────────────
    if path == "/api/health"      and method == "GET":    return health(event)
    if path == "/api/config"      and method == "GET":    return get_config(event)
    if path == "/api/login"       and method == "POST":   return login(event, body)
    if path == "/api/logout"      and method == "POST":   return logout(event)
    if path == "/api/auth/check"  and method == "GET":    return auth_check(event)

    # ── Catalog ───────────────────────────────────────────────────────────────
    if path == "/api/products"    and method == "GET":    return list_products(event)
    if path == "/api/products"    and method == "POST":   return create_product(event, body)
    if path == "/api/analytics"   and method == "GET":    return get_analytics(event)

    if path == "/api/categories"  and method == "GET":    return list_categories(event)
    if path == "/api/categories"  and method == "POST":   return create_category(event, body)
    if path == "/api/goals"       and method == "GET":    return list_goals(event)
    if path == "/api/goals"       and method == "POST":   return create_goal(event, body)
    if path == "/api/flavors"     and method == "GET":    return list_flavors(event)
    if path == "/api/flavors"     and method == "POST":   return create_flavor(event, body)

    # ── Admin fixed routes ────────────────────────────────────────────────────
    if path == "/api/admin/users"       and method == "GET":  return admin_list_users(event)
    if path == "/api/admin/users"       and method == "POST": return admin_create_user(event, body)
    if path == "/api/admin/app-logs"    and method == "GET":  return get_app_logs(event)
    if path == "/api/admin/auth-logs"   and method == "GET":  return get_auth_logs(event)
    if path == "/api/admin/scrape-logs" and method == "GET":  return get_scrape_logs(event)

    # ── Parameterised routes ──────────────────────────────────────────────────
    if path.startswith("/api/products/"):
        key = _tail(path, "/api/products/")
        if key and method == "GET":    return get_one(event, key)
        if key and method == "PUT":    return update_product(event, body, key)
        if key and method == "DELETE": return delete_product(event, key)
    if path.startswith("/api/categories/"):
        key = _tail(path, "/api/categories/")
        if key and method == "DELETE": return delete_category(event, key)
    if path.startswith("/api/goals/"):
        key = _tail(path, "/api/goals/")
        if key and method == "DELETE": return delete_goal(event, key)
    if path.startswith("/api/flavors/"):
        key = _tail(path, "/api/flavors/")
        if key and method == "DELETE": return delete_flavor(event, key)
    if path.startswith("/api/admin/users/"):
        key = _tail(path, "/api/admin/users/")
        if key and method == "DELETE": return admin_delete_user(event, key)

    if path in _FIXED_PATHS:
        return err("Method not allowed.", 405)
    if any(path.startswith(p) and _tail(path, p) for p in _PARAM_PREFIXES):
        return err("Method not allowed.", 405)
    return err("Not found.", 404)

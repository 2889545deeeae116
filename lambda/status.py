"""lambda/status.py — Public health and config endpoints."""
from datetime import datetime, timezone

from helpers import ok, err, products_tbl, STAGE, SESSION_TTL_HOURS
from shared.analytics import PRICE_RANGES
from shared.product_query import SORT_OPTIONS, DEFAULT_SORT


def health(event):
    """GET /api/health — 503 when the products table cannot be read."""
    try:
        products_tbl.scan(Limit=1)
    except Exception as e:
        print(f"[CAT] health check failed: {e}")
        return err("Database unavailable.", 503, _extra={"status": "unhealthy"})
    return ok({
        "status":    "healthy",
        "database":  "connected",
        "stage":     STAGE,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


def get_config(event):
    """GET /api/config — non-secret settings the admin UI needs."""
    return ok({
        "stage":             STAGE,
        "session_ttl_hours": SESSION_TTL_HOURS,
        "sort_options":      list(SORT_OPTIONS),
        "default_sort":      DEFAULT_SORT,
        "price_ranges":      [label for label, _, _ in PRICE_RANGES],
    })

"""shared/product_record.py — Unified product record normalisation.

Used by:
  - lambda/products.py     (API Lambda create/update)
  - scraper/main.py        (snapshot merge + upsert)
  - migration/runner.py    (JSON snapshot import)

Accepts both camelCase (scraped snapshots, admin UI payloads) and snake_case
(stored rows) field names and returns the snake_case shape stored in the
products table. Every write goes through here so price_amount always stays
the parsed form of price_display.
"""
import html as _html
import re
from datetime import datetime, timezone
from decimal import Decimal

_PRICE_RE  = re.compile(r"\d[\d,]*(?:\.\d+)?")
_HANDLE_RE = re.compile(r"^[a-z0-9-]+$")
_LINK_HANDLE_RE = re.compile(r"/products/([^/?#]+)")

# (amount field, display field, camelCase display alias, legacy column)
PRICE_PAIRS = (
    ("price_amount",              "price_display",              "price",             "price"),
    ("subscription_price_amount", "subscription_price_display", "subscriptionPrice", "subscription_price"),
    ("original_price_amount",     "original_price_display",     "originalPrice",     "original_price"),
)

_TEXT_FIELDS = {
    "title":                  ("title", "productName"),
    "description":            ("description",),
    "full_description":       ("full_description", "fullDescription"),
    "image":                  ("image", "main_image"),
    "link":                   ("link",),
    "category":               ("category",),
    "primary_goal":           ("primary_goal", "primaryGoal"),
    "vendor":                 ("vendor",),
    "product_type":           ("product_type", "productType"),
    "availability":           ("availability",),
    "eu_notification_status": ("eu_notification_status", "euNotificationStatus"),
    "hs_code":                ("hs_code", "hsCode"),
    "hs_code_description":    ("hs_code_description", "hsCodeDescription"),
    "size":                   ("size",),
    "servings":               ("servings",),
    "intake_frequency":       ("intake_frequency", "intakeFrequency"),
    "reorder_period":         ("reorder_period", "reorderPeriod"),
    "ingredients":            ("ingredients",),
    "benefits":               ("benefits",),
    "usage":                  ("usage",),
    "scraped_at":             ("scraped_at", "scrapedAt"),
}

_LIST_FIELDS = {
    "images":     ("images",),
    "categories": ("categories",),
    "goals":      ("goals",),
    "flavors":    ("flavors",),
    "skus":       ("skus",),
    "tags":       ("tags",),
}

# Legacy parallel per-flavor maps folded into flavor_details[flavor][key]
_FLAVOR_MAPS = {
    "sku":                    ("flavorSkus", "flavor_skus"),
    "hs_code":                ("flavorHsCodes", "flavor_hs_codes"),
    "duty_rate":              ("flavorDutyRates", "flavor_duty_rates"),
    "eu_notification_status": ("flavorEuNotifications", "flavor_eu_notifications"),
    "notes":                  ("flavorNotes", "flavor_notes"),
    "link":                   ("flavorLinks", "flavor_links"),
    "ingredients":            ("flavorIngredients", "flavor_ingredients"),
}

# Admin-maintained fields a re-scrape must never overwrite.
CURATED_FIELDS = (
    "categories", "goals", "flavors", "skus", "flavor_details",
    "category", "primary_goal",
    "eu_allowed", "eu_notification_status",
    "hs_code", "hs_code_description", "duty_rate",
    "size", "servings", "intake_frequency", "reorder_period",
)


def _clean(s) -> str:
    """Unescape HTML entities and trim; scraped text arrives entity-encoded."""
    return _html.unescape(str(s)).strip() if s is not None else ""


def _first(d: dict, names):
    """Return (found, value) for the first alias present in d."""
    for n in names:
        if n in d:
            return True, d[n]
    return False, None


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(name: str) -> str:
    """'Sleep & Recovery' → 'sleep-recovery'."""
    return re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")


def handle_from_link(link: str) -> str:
    m = _LINK_HANDLE_RE.search(link or "")
    return m.group(1).lower() if m else ""


def parse_price(value) -> float | None:
    """Extract a numeric price.

    '$1,299.00' → 1299.0, 'From $34.95' → 34.95, 19 → 19.0
    Returns None for empty or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    m = _PRICE_RE.search(str(value))
    if not m:
        return None
    return float(m.group(0).replace(",", ""))


def format_price(amount) -> str:
    return f"${float(amount):.2f}"


def price_pair(display=None, amount=None) -> tuple:
    """Return a synchronised (amount, display) pair.

    The display string wins when it parses; otherwise the amount is
    formatted into a display string. An unparseable display with no amount
    is kept as-is with a None amount ('Price not available').
    """
    if isinstance(display, (int, float, Decimal)) and not isinstance(display, bool):
        display, amount = None, (display if amount is None else amount)
    display = _clean(display) if display not in (None, "") else ""
    parsed  = parse_price(display) if display else None
    if parsed is not None:
        return parsed, display
    amount = parse_price(amount)
    if amount is not None:
        return amount, format_price(amount)
    return None, (display or None)


def _as_list(value) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    if isinstance(value, (list, tuple, set)):
        return [v.strip() if isinstance(v, str) else v for v in value if v not in (None, "")]
    return [value]


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def _flavor_details(d: dict) -> dict | None:
    found, details = _first(d, ("flavor_details", "flavorDetails"))
    merged = {}
    if found and isinstance(details, dict):
        merged = {k: dict(v or {}) for k, v in details.items()}
    touched = found
    for key, names in _FLAVOR_MAPS.items():
        present, per_flavor = _first(d, names)
        if not present or not isinstance(per_flavor, dict):
            continue
        touched = True
        for flavor, val in per_flavor.items():
            if val in (None, ""):
                continue
            merged.setdefault(flavor, {})[key] = val
    return merged if touched else None


def search_text(record: dict) -> str:
    """Lower-cased haystack for case-insensitive title/description search."""
    return f"{record.get('title') or ''}\n{record.get('description') or ''}".lower()


def normalize_product(d: dict, partial: bool = False) -> dict:
    """Normalise a raw product dict into the stored snake_case shape.

    partial=True returns only the fields present in d (for PUT updates);
    a price pair is always returned whole so the caller replaces both halves.
    """
    out = {}

    for field, names in _TEXT_FIELDS.items():
        found, val = _first(d, names)
        if found:
            out[field] = _clean(val) or None
        elif not partial:
            out[field] = None

    for field, names in _LIST_FIELDS.items():
        found, val = _first(d, names)
        if field == "tags" and not found:
            found, val = _first(d, ("tags_string", "tagsString"))
        if found:
            out[field] = _as_list(val)
        elif not partial:
            out[field] = []

    for amount_f, display_f, camel, legacy in PRICE_PAIRS:
        has_display, display = _first(d, (display_f, camel, legacy))
        has_amount, amount   = _first(d, (amount_f,))
        if has_display or has_amount:
            out[amount_f], out[display_f] = price_pair(display, amount)
        elif not partial:
            out[amount_f], out[display_f] = None, None

    found, val = _first(d, ("eu_allowed", "euAllowed"))
    if found:
        out["eu_allowed"] = _as_bool(val)
    elif not partial:
        out["eu_allowed"] = False

    found, val = _first(d, ("duty_rate", "dutyRate"))
    if found:
        out["duty_rate"] = parse_price(val)
    elif not partial:
        out["duty_rate"] = None

    details = _flavor_details(d)
    if details is not None:
        out["flavor_details"] = details
    elif not partial:
        out["flavor_details"] = {}

    # Legacy single-value fields follow the first entry of their list
    if out.get("categories") and not out.get("category"):
        out["category"] = out["categories"][0]
    if out.get("goals") and not out.get("primary_goal"):
        out["primary_goal"] = out["goals"][0]

    handle = _clean(d.get("handle")).lower()
    if handle:
        out["handle"] = handle
    elif not partial:
        out["handle"] = handle_from_link(out.get("link")) or slugify(out.get("title") or "")

    if d.get("id"):
        out["id"] = str(d["id"])

    if not partial and not out.get("vendor"):
        out["vendor"] = None

    return out


def finalize(record: dict) -> dict:
    """Recompute derived fields on a complete record before it is written."""
    record = dict(record)
    record["search_text"] = search_text(record)
    record["updated_at"]  = now_iso()
    if not record.get("created_at"):
        record["created_at"] = record["updated_at"]
    return record


def apply_update(existing: dict, changes: dict) -> dict:
    """Merge a partial normalised update into an existing record (last write wins)."""
    merged = {**existing, **{k: v for k, v in changes.items() if k not in ("handle", "id")}}
    return finalize(merged)


def merge_scraped(existing: dict | None, scraped: dict) -> dict:
    """Overlay freshly scraped data onto a stored record, keeping curated fields."""
    if not existing:
        return dict(scraped)
    merged = dict(scraped)
    for field in CURATED_FIELDS:
        val = existing.get(field)
        if val not in (None, "", [], {}):
            merged[field] = val
    for keep in ("id", "created_at"):
        if existing.get(keep):
            merged[keep] = existing[keep]
    return merged


def validate_product(record: dict) -> tuple[list, list]:
    """Return (errors, warnings) for a normalised product record."""
    errors, warnings = [], []
    handle = record.get("handle") or ""
    if not handle:
        errors.append("handle is required")
    elif not _HANDLE_RE.match(handle):
        errors.append("handle must be URL-safe (lowercase letters, numbers, hyphens only)")
    if not record.get("title"):
        errors.append("title is required")

    for amount_f, display_f, _, _ in PRICE_PAIRS:
        amount = record.get(amount_f)
        if amount is not None and amount < 0:
            errors.append(f"{amount_f} cannot be negative")
        elif amount is None and record.get(display_f):
            warnings.append(f"{display_f} could not be parsed to numeric value")

    for field in ("image", "link"):
        val = record.get(field)
        if val and not re.match(r"^https?://[^\s/]+", val):
            warnings.append(f"{field} appears to be an invalid URL")
    return errors, warnings


def normalize_variant(v: dict, position: int = 0) -> dict:
    """Normalise a Shopify-style or DOM-scraped variant into a child row."""
    amount, display = price_pair(v.get("price_display") or v.get("price"), v.get("price_amount"))
    cmp_amount, cmp_display = price_pair(
        v.get("compare_at_display") or v.get("compareAtPrice") or v.get("compare_at_price"),
        v.get("compare_at_amount"),
    )
    variant_id = str(v.get("variant_id") or v.get("id") or f"variant-{position}")
    return {
        "variant_id":         variant_id,
        "title":              _clean(v.get("title")) or f"Variant {position + 1}",
        "price_amount":       amount,
        "price_display":      display,
        "compare_at_amount":  cmp_amount,
        "compare_at_display": cmp_display,
        "available":          v.get("available") is not False,
        "sku":                _clean(v.get("sku")) or None,
        "option1":            _clean(v.get("option1")) or None,
        "option2":            _clean(v.get("option2")) or None,
        "option3":            _clean(v.get("option3")) or None,
        "position":           int(v.get("position", position)),
    }

"""shared/catalog.py — Product and variant persistence.

Products are keyed by handle; each product's variants live as child rows
(handle + variant_id) in the variants table instead of a serialised column.
Callers pass the table objects so each Lambda/script keeps its own clients.
"""
import secrets

from boto3.dynamodb.conditions import Attr, Key

from shared.dynamo import scan_all, to_dynamo, to_python
from shared.product_record import finalize, merge_scraped, normalize_variant


def new_product_id() -> str:
    return secrets.token_hex(6)


def get_product(products_tbl, key: str) -> dict | None:
    """Look a product up by handle, falling back to its id."""
    if not key:
        return None
    item = products_tbl.get_item(Key={"handle": key}).get("Item")
    if item:
        return to_python(item)
    rows = scan_all(products_tbl, FilterExpression=Attr("id").eq(key))
    return to_python(rows[0]) if rows else None


def put_product(products_tbl, record: dict) -> dict:
    record = finalize(record)
    if not record.get("id"):
        record["id"] = new_product_id()
    record.pop("variants", None)
    # Absent rather than NULL, so price-bound filters skip unpriced rows
    item = {k: v for k, v in record.items() if v is not None}
    products_tbl.put_item(Item=to_dynamo(item))
    return record


def get_variants(variants_tbl, handle: str) -> list:
    resp  = variants_tbl.query(KeyConditionExpression=Key("handle").eq(handle))
    items = list(resp.get("Items", []))
    while "LastEvaluatedKey" in resp:
        resp = variants_tbl.query(
            KeyConditionExpression=Key("handle").eq(handle),
            ExclusiveStartKey=resp["LastEvaluatedKey"],
        )
        items.extend(resp.get("Items", []))
    variants = to_python(items)
    variants.sort(key=lambda v: v.get("position", 0))
    return variants


def delete_variants(variants_tbl, handle: str) -> int:
    existing = get_variants(variants_tbl, handle)
    for v in existing:
        variants_tbl.delete_item(Key={"handle": handle, "variant_id": v["variant_id"]})
    return len(existing)


def replace_variants(variants_tbl, handle: str, variants: list) -> list:
    """Replace all child rows of a product with the given variant list."""
    delete_variants(variants_tbl, handle)
    rows = []
    for i, v in enumerate(variants or []):
        row = {**normalize_variant(v, i), "handle": handle}
        variants_tbl.put_item(Item=to_dynamo(row))
        rows.append(row)
    return rows


def upsert_product(products_tbl, variants_tbl, record: dict,
                   variants: list | None = None, preserve_curated: bool = False) -> dict:
    """Insert-or-update keyed on handle.

    preserve_curated=True keeps admin-maintained fields of an existing row
    (used by the scraper so a re-scrape doesn't wipe categories/goals).
    """
    existing = to_python(products_tbl.get_item(Key={"handle": record["handle"]}).get("Item"))
    if preserve_curated:
        merged = merge_scraped(existing, record)
    else:
        merged = {**(existing or {}), **record}
        if existing:
            merged["id"] = existing.get("id") or merged.get("id")
            merged["created_at"] = existing.get("created_at") or merged.get("created_at")
    saved = put_product(products_tbl, merged)
    if variants is not None and variants_tbl is not None:
        replace_variants(variants_tbl, saved["handle"], variants)
    return saved

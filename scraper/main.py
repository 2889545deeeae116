"""
scraper/main.py

Command-line entry point for the storefront scraper.

  python scraper/main.py [--upsert] [--headless 0] [--detail-limit N] [--output-dir data]

Writes products_<timestamp>.json (this run only) and latest.json (this run
merged with the admin-curated fields of the previous latest.json). With
--upsert, each product is also upserted into the products table keeping
curated fields, and a job summary goes to the scrape-logs table.
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone, timedelta

import boto3

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.catalog import upsert_product
from shared.dynamo import to_dynamo
from shared.product_record import merge_scraped, normalize_product, validate_product
from storefront import COLLECTION_PATH, STOREFRONT_URL, scrape_storefront

# ── Config ────────────────────────────────────────────────────────────────────

AWS_REGION      = os.environ.get("CATALOG_REGION", os.environ.get("AWS_REGION", "us-east-1"))
OUTPUT_DIR      = os.environ.get("SCRAPER_OUTPUT_DIR", "data")
PRODUCTS_TABLE  = os.environ.get("PRODUCTS_TABLE", "catalog-admin-products")
VARIANTS_TABLE  = os.environ.get("VARIANTS_TABLE", "catalog-admin-variants")
SCRAPE_LOGS_TBL = os.environ.get("SCRAPE_LOGS_TABLE", "catalog-admin-scrape-logs")


def _tables() -> tuple:
    dynamodb = boto3.resource("dynamodb", region_name=AWS_REGION)
    return (dynamodb.Table(PRODUCTS_TABLE),
            dynamodb.Table(VARIANTS_TABLE),
            dynamodb.Table(SCRAPE_LOGS_TBL))


# ── Snapshot files ────────────────────────────────────────────────────────────

def to_records(raw_products: list[dict]) -> list[dict]:
    """Normalise raw scraped dicts; variants ride along under 'variants'."""
    records = []
    for raw in raw_products:
        rec = normalize_product(raw)
        rec["variants"] = raw.get("variants") or []
        records.append(rec)
    return records


def load_latest(path: str) -> list[dict]:
    if not os.path.exists(path):
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        print(f"WARNING: could not read {path}, starting fresh: {e}")
        return []
    return [normalize_product(p) for p in data] if isinstance(data, list) else []


def merge_with_previous(records: list[dict], previous: list[dict]) -> list[dict]:
    """Keep curated fields from the previous snapshot, matched by handle then title."""
    by_handle = {p["handle"]: p for p in previous if p.get("handle")}
    by_title  = {(p.get("title") or "").lower(): p for p in previous if p.get("title")}
    merged = []
    for rec in records:
        existing = by_handle.get(rec.get("handle")) or by_title.get((rec.get("title") or "").lower())
        merged.append(merge_scraped(existing, rec))
    return merged


def save_snapshots(records: list[dict], output_dir: str, now: datetime = None) -> tuple:
    """Write the timestamped snapshot and the merged latest.json. Returns both paths."""
    now = now or datetime.now(timezone.utc)
    os.makedirs(output_dir, exist_ok=True)
    snapshot = os.path.join(output_dir, f"products_{now.strftime('%Y%m%d-%H%M%S')}.json")
    latest   = os.path.join(output_dir, "latest.json")

    merged = merge_with_previous(records, load_latest(latest))
    with open(snapshot, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=2, ensure_ascii=False)
    with open(latest, "w", encoding="utf-8") as f:
        json.dump(merged, f, indent=2, ensure_ascii=False)

    preserved = sum(1 for m in merged if m.get("categories") or m.get("goals") or m.get("hs_code"))
    print(f"Saved {len(records)} products to {snapshot}")
    print(f"latest.json: {len(merged)} products, {preserved} with curated fields")
    return snapshot, latest


# ── Store upsert ──────────────────────────────────────────────────────────────

def upsert_all(records: list[dict], products_tbl, variants_tbl, job: dict):
    for rec in records:
        rec = dict(rec)
        variants = rec.pop("variants", None)
        errors, _ = validate_product(rec)
        if errors:
            job["skipped"] += 1
            job["errors"].append(f"{rec.get('handle') or rec.get('title')}: {'; '.join(errors)}")
            continue
        try:
            upsert_product(products_tbl, variants_tbl, rec,
                           variants=variants or None, preserve_curated=True)
            job["upserted"] += 1
        except Exception as e:
            msg = f"ERROR upserting {rec['handle']}: {e}"
            print(f"  {msg}")
            job["errors"].append(msg)


def write_scrape_log(scrape_logs_tbl, log: dict):
    """Persist scrape job summary to DynamoDB with a 1-year TTL."""
    try:
        log["expires_at"] = int((datetime.now(timezone.utc) + timedelta(days=365)).timestamp())
        scrape_logs_tbl.put_item(Item=to_dynamo(log))
    except Exception as e:
        print(f"WARNING: failed to write scrape log: {e}")


# ── Entry point ───────────────────────────────────────────────────────────────

def run(upsert: bool = False, headless: bool = True, detail_limit: int | None = None,
        output_dir: str = OUTPUT_DIR, base_url: str = STOREFRONT_URL,
        collection_path: str = COLLECTION_PATH, scrape=scrape_storefront, tables=_tables) -> dict:
    started_at = datetime.now(timezone.utc)
    print(f"\nCatalog scraper — {started_at.date()}")
    print("=" * 50)

    job = {
        "job_id":      started_at.strftime("%Y%m%d-%H%M%S"),
        "started_at":  started_at.isoformat(),
        "finished_at": "",
        "source":      base_url + collection_path,
        "scraped":     0,
        "upserted":    0,
        "skipped":     0,
        "errors":      [],
    }

    raw = scrape(base_url=base_url, collection_path=collection_path,
                 headless=headless, detail_limit=detail_limit)
    records = to_records(raw)
    job["scraped"] = len(records)
    save_snapshots(records, output_dir, started_at)

    if upsert:
        products_tbl, variants_tbl, scrape_logs_tbl = tables()
        upsert_all(records, products_tbl, variants_tbl, job)
        job["finished_at"] = datetime.now(timezone.utc).isoformat()
        write_scrape_log(scrape_logs_tbl, job)
    else:
        job["finished_at"] = datetime.now(timezone.utc).isoformat()

    print(f"\nDone. Scraped: {job['scraped']}. Upserted: {job['upserted']}. "
          f"Skipped: {job['skipped']}. Errors: {len(job['errors'])}")
    return job


def main(argv=None):
    ap = argparse.ArgumentParser(description="Scrape the storefront product catalog.")
    ap.add_argument("--upsert", action="store_true", help="upsert products into DynamoDB")
    ap.add_argument("--headless", default="1", help="1=headless, 0=headed for debugging")
    ap.add_argument("--detail-limit", type=int, default=None,
                    help="only visit the first N product pages (0 skips the detail pass)")
    ap.add_argument("--output-dir", default=OUTPUT_DIR, help="directory for snapshot files")
    ap.add_argument("--url", default=STOREFRONT_URL, help="storefront base URL")
    ap.add_argument("--collection", default=COLLECTION_PATH, help="collection path to list")
    args = ap.parse_args(argv)

    job = run(
        upsert=args.upsert,
        headless=(args.headless.strip() != "0"),
        detail_limit=args.detail_limit,
        output_dir=args.output_dir,
        base_url=args.url.rstrip("/"),
        collection_path=args.collection,
    )
    return 1 if job["errors"] and not job["upserted"] and args.upsert else 0


if __name__ == "__main__":
    sys.exit(main())

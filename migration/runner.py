"""
migration/runner.py

Versioned, re-runnable loader for the JSON snapshot files in the data
directory (latest.json, categories.json, goals.json, flavors.json).

Each version is an ordered list of steps. Every write is an upsert keyed on
handle / id / name, so running a version twice leaves the same rows. The
migrations ledger table records each run; an applied version is skipped
unless force=True.
"""

import json
import os
from datetime import datetime, timezone

from shared.catalog import put_product, upsert_product
from shared.dynamo import scan_all, to_dynamo, to_python
from shared.product_record import PRICE_PAIRS, price_pair
from validators import (
    flatten_tree, validate_batch, validate_category, validate_flavor,
    validate_goal, validate_product_row,
)

INVALID_PRODUCT_LIMIT = 0.1

_BASE_STEPS = [
    "validate_data",
    "migrate_categories",
    "migrate_goals",
    "migrate_flavors",
    "migrate_products",
]
VERSIONS = {
    "1.0.0": list(_BASE_STEPS),
    "1.1.0": _BASE_STEPS + ["backfill_prices"],
}
LATEST_VERSION = "1.1.0"

BACKUP_TABLES = ("products", "variants", "categories", "goals", "flavors")


class MigrationError(Exception):
    """A migration step could not run; the version is marked failed."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MigrationRunner:
    """Runs migration versions against a dict of DynamoDB tables:
    products, variants, categories, goals, flavors, migrations."""

    def __init__(self, tables: dict, data_dir: str = "data", backup_dir: str = "backups"):
        self.tables     = tables
        self.data_dir   = data_dir
        self.backup_dir = backup_dir
        self.validated  = None

    # ── Ledger ────────────────────────────────────────────────────────────────

    def ledger_entry(self, version: str) -> dict | None:
        item = self.tables["migrations"].get_item(Key={"version": version}).get("Item")
        return to_python(item) if item else None

    def applied_versions(self) -> list[str]:
        rows = to_python(scan_all(self.tables["migrations"]))
        return sorted(r["version"] for r in rows if r.get("status") == "completed")

    def _record(self, version: str, **fields):
        self.tables["migrations"].put_item(Item=to_dynamo({"version": version, **fields}))

    # ── Entry point ───────────────────────────────────────────────────────────

    def run(self, version: str = LATEST_VERSION, force: bool = False, backup: bool = False) -> dict:
        if version not in VERSIONS:
            raise MigrationError(f"Unknown migration version {version!r}. "
                                 f"Known: {', '.join(sorted(VERSIONS))}")
        entry = self.ledger_entry(version)
        if entry and entry.get("status") == "completed" and not force:
            print(f"Version {version} already applied at {entry.get('finished_at')}; skipping.")
            return {"version": version, "status": "skipped", "steps": {}}

        started_at = _now()
        backup_id  = self.backup() if backup else None
        self._record(version, status="running", started_at=started_at, backup_id=backup_id)
        print(f"\nRunning migration {version} ({len(VERSIONS[version])} steps)")
        print("=" * 50)

        results = {}
        try:
            for step in VERSIONS[version]:
                print(f"\n▶ {step}")
                results[step] = getattr(self, step)()
        except MigrationError as e:
            print(f"Migration {version} failed at {step}: {e}")
            self._record(version, status="failed", started_at=started_at,
                         finished_at=_now(), failed_step=step, error=str(e)[:500],
                         backup_id=backup_id, steps=results)
            raise

        self._record(version, status="completed", started_at=started_at,
                     finished_at=_now(), backup_id=backup_id, steps=results)
        print(f"\nMigration {version} completed.")
        return {"version": version, "status": "completed", "steps": results, "backup_id": backup_id}

    # ── Data files ────────────────────────────────────────────────────────────

    def _load(self, filename: str, required: bool = False):
        path = os.path.join(self.data_dir, filename)
        if not os.path.exists(path):
            if required:
                raise MigrationError(f"Data file not found: {path}")
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise MigrationError(f"Could not read {path}: {e}")
        if not isinstance(data, list):
            raise MigrationError(f"{path} must contain a JSON array")
        return data

    def _put_each(self, rows: list, write, label: str) -> dict:
        ok_count, failed = 0, []
        for row in rows:
            try:
                write(row)
                ok_count += 1
            except Exception as e:
                key = row.get("handle") or row.get("id") or row.get("name")
                print(f"  [warn] {label} {key}: {e}")
                failed.append(str(key))
        print(f"  {label}: {ok_count}/{len(rows)} successful")
        return {"successful": ok_count, "total": len(rows), "failed": failed}

    # ── Steps ─────────────────────────────────────────────────────────────────

    def validate_data(self) -> dict:
        products = self._load("latest.json", required=True)
        result = validate_batch(products, validate_product_row, "product")
        invalid = len(result["invalid"])
        if products and invalid / len(products) > INVALID_PRODUCT_LIMIT:
            raise MigrationError(
                f"Too many invalid products: {invalid}/{len(products)} "
                f"({round(invalid * 100 / len(products))}%)"
            )
        for bad in result["invalid"][:10]:
            print(f"  invalid product #{bad['index']}: {'; '.join(bad['errors'])}")
        self.validated = result["valid"]
        return {"valid": len(result["valid"]), "invalid": invalid,
                "warnings": len(result["warnings"])}

    def _migrate_tree(self, filename: str, table_name: str, validator) -> dict:
        entries = self._load(filename)
        if entries is None:
            print(f"  Skipping {table_name} ({filename} not found)")
            return {"successful": 0, "total": 0, "failed": [], "skipped": True}
        result = validate_batch(flatten_tree(entries), validator, table_name)
        table = self.tables[table_name]

        def write(row):
            existing = table.get_item(Key={"id": row["id"]}).get("Item")
            created  = (existing or {}).get("created_at") or _now()
            table.put_item(Item={**row, "created_at": created})

        return self._put_each(result["valid"], write, table_name)

    def migrate_categories(self) -> dict:
        return self._migrate_tree("categories.json", "categories", validate_category)

    def migrate_goals(self) -> dict:
        return self._migrate_tree("goals.json", "goals", validate_goal)

    def migrate_flavors(self) -> dict:
        entries = self._load("flavors.json")
        if entries is None:
            print("  Skipping flavors (flavors.json not found)")
            return {"successful": 0, "total": 0, "failed": [], "skipped": True}
        result = validate_batch(entries, validate_flavor, "flavor")
        table = self.tables["flavors"]
        return self._put_each(result["valid"], lambda row: table.put_item(Item=row), "flavors")

    def migrate_products(self) -> dict:
        if self.validated is None:
            raise MigrationError("No validated product data; validate_data must run first")

        def write(row):
            row = dict(row)
            variants = row.pop("variants", None)
            upsert_product(self.tables["products"], self.tables["variants"], row, variants=variants)

        return self._put_each(self.validated, write, "products")

    def backfill_prices(self) -> dict:
        """Re-derive every stored price pair so amount matches display."""
        table = self.tables["products"]
        rows  = to_python(scan_all(table))
        fixed = []
        for row in rows:
            changed = False
            for amount_f, display_f, _, _ in PRICE_PAIRS:
                amount, display = price_pair(row.get(display_f), row.get(amount_f))
                if amount != row.get(amount_f) or display != row.get(display_f):
                    row[amount_f], row[display_f] = amount, display
                    changed = True
            if changed:
                fixed.append(row)
        result = self._put_each(fixed, lambda row: put_product(table, row),
                                "price backfill")
        result["scanned"] = len(rows)
        return result

    # ── Backup / restore ──────────────────────────────────────────────────────

    def backup(self) -> str:
        """Dump every catalog table to backups/<id>/<table>.json. Returns the id."""
        backup_id = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        target = os.path.join(self.backup_dir, backup_id)
        os.makedirs(target, exist_ok=True)
        for name in BACKUP_TABLES:
            rows = to_python(scan_all(self.tables[name]))
            with open(os.path.join(target, f"{name}.json"), "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2, ensure_ascii=False)
            print(f"  Backed up {len(rows)} {name} row(s)")
        print(f"Backup written to {target}")
        return backup_id

    def restore(self, backup_id: str) -> dict:
        """Put every row of a backup back. Rows created since are left alone."""
        source = os.path.join(self.backup_dir, backup_id)
        if not os.path.isdir(source):
            raise MigrationError(f"Backup not found: {source}")
        counts = {}
        for name in BACKUP_TABLES:
            path = os.path.join(source, f"{name}.json")
            if not os.path.exists(path):
                continue
            with open(path, encoding="utf-8") as f:
                rows = json.load(f)
            table = self.tables[name]
            counts[name] = self._put_each(rows, lambda row: table.put_item(Item=to_dynamo(row)),
                                          f"restore {name}")["successful"]
        return counts

"""
migration/migrate.py

  python migration/migrate.py [--version 1.1.0] [--data-dir data] [--backup] [--force]
  python migration/migrate.py --restore 20260101-120000
  python migration/migrate.py --list
"""

import argparse
import os
import sys

import boto3

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from runner import LATEST_VERSION, VERSIONS, MigrationError, MigrationRunner

# ── Config ────────────────────────────────────────────────────────────────────

AWS_REGION = os.environ.get("CATALOG_REGION", os.environ.get("AWS_REGION", "us-east-1"))

TABLE_ENV = {
    "products":   ("PRODUCTS_TABLE",   "catalog-admin-products"),
    "variants":   ("VARIANTS_TABLE",   "catalog-admin-variants"),
    "categories": ("CATEGORIES_TABLE", "catalog-admin-categories"),
    "goals":      ("GOALS_TABLE",      "catalog-admin-goals"),
    "flavors":    ("FLAVORS_TABLE",    "catalog-admin-flavors"),
    "migrations": ("MIGRATIONS_TABLE", "catalog-admin-migrations"),
}


def load_tables() -> dict:
    dynamodb = boto3.resource("dynamodb", region_name=AWS_REGION)
    return {name: dynamodb.Table(os.environ.get(env, default))
            for name, (env, default) in TABLE_ENV.items()}


def main(argv=None, tables=None) -> int:
    ap = argparse.ArgumentParser(description="Load JSON snapshots into the catalog tables.")
    ap.add_argument("--version", default=LATEST_VERSION, choices=sorted(VERSIONS),
                    help="migration version to apply")
    ap.add_argument("--data-dir", default=os.environ.get("MIGRATION_DATA_DIR", "data"),
                    help="directory holding latest.json, categories.json, goals.json, flavors.json")
    ap.add_argument("--backup-dir", default=os.environ.get("MIGRATION_BACKUP_DIR", "backups"))
    ap.add_argument("--backup", action="store_true", help="back up catalog tables before writing")
    ap.add_argument("--force", action="store_true", help="re-run a version already applied")
    ap.add_argument("--restore", metavar="BACKUP_ID", help="restore a backup and exit")
    ap.add_argument("--list", action="store_true", help="list versions and their status")
    args = ap.parse_args(argv)

    runner = MigrationRunner(tables or load_tables(), args.data_dir, args.backup_dir)

    try:
        if args.list:
            for version in sorted(VERSIONS):
                entry = runner.ledger_entry(version) or {}
                print(f"{version:8} {entry.get('status', 'pending'):10} "
                      f"{entry.get('finished_at', '')}  {', '.join(VERSIONS[version])}")
            applied = runner.applied_versions()
            print(f"Applied: {', '.join(applied) if applied else 'none'}")
            return 0
        if args.restore:
            counts = runner.restore(args.restore)
            print(f"Restored: {counts}")
            return 0
        summary = runner.run(args.version, force=args.force, backup=args.backup)
    except MigrationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    failed = sum(len(s.get("failed", [])) for s in summary["steps"].values() if isinstance(s, dict))
    print(f"Status: {summary['status']}. Item failures: {failed}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

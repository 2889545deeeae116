"""tests/test_migration.py — Snapshot validation, versioned runs, backup/restore."""
import json
import os

import pytest

from runner import MigrationError, MigrationRunner, VERSIONS
from validators import flatten_tree, validate_category, validate_flavor, validate_product_row

PRODUCTS = [
    {"title": "Whey Protein", "link": "https://www.livemomentous.com/products/whey-protein",
     "price": "$45.00", "categories": ["Protein"], "primaryGoal": "Recovery",
     "variants": [{"id": 1, "title": "Vanilla", "price": "$45.00"}]},
    {"title": "Creatine", "handle": "creatine", "price": "$30.00"},
]

CATEGORIES = [
    {"id": "protein", "name": "Protein", "subCategories": [
        {"name": "Whey"}, {"name": "Plant Based"},
    ]},
    {"name": "Sleep & Recovery"},
]


def _tables(ddb):
    return {name: ddb.Table(f"test-{name}")
            for name in ("products", "variants", "categories", "goals", "flavors", "migrations")}


def _write(data_dir, name, payload):
    with open(os.path.join(data_dir, name), "w") as f:
        json.dump(payload, f)


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    _write(str(d), "latest.json", PRODUCTS)
    _write(str(d), "categories.json", CATEGORIES)
    _write(str(d), "goals.json", [{"name": "Sleep", "sub_goals": [{"name": "Falling Asleep"}]}])
    _write(str(d), "flavors.json", ["Vanilla", {"name": "Chocolate"}, ""])
    return str(d)


@pytest.fixture
def runner(dynamodb_tables, data_dir, tmp_path):
    return MigrationRunner(_tables(dynamodb_tables), data_dir, str(tmp_path / "backups"))


class TestValidators:
    def test_product_row_keeps_variants(self):
        data, errors, _ = validate_product_row(PRODUCTS[0])
        assert errors == []
        assert data["handle"] == "whey-protein"
        assert data["price_amount"] == 45.0
        assert data["category"] == "Protein"
        assert len(data["variants"]) == 1

    def test_product_row_requires_title(self):
        _, errors, _ = validate_product_row({"handle": "x"})
        assert "title is required" in errors

    def test_flatten_nested_categories(self):
        rows = flatten_tree(CATEGORIES)
        assert [r["name"] for r in rows] == ["Protein", "Whey", "Plant Based", "Sleep & Recovery"]
        assert rows[1]["parent_id"] == "protein"
        child, errors, _ = validate_category(rows[2])
        assert errors == []
        assert child["id"] == "plant-based"
        assert child["is_sub_category"] is True

    def test_category_requires_name(self):
        _, errors, _ = validate_category({"id": "x"})
        assert errors

    def test_flavor_accepts_strings(self):
        assert validate_flavor(" Lemon ")[0] == {"name": "Lemon"}
        assert validate_flavor(42)[1]


class TestRun:
    def test_full_run(self, runner, dynamodb_tables):
        summary = runner.run("1.1.0")
        assert summary["status"] == "completed"
        assert list(summary["steps"]) == VERSIONS["1.1.0"]

        products = dynamodb_tables.Table("test-products").scan()["Items"]
        assert sorted(p["handle"] for p in products) == ["creatine", "whey-protein"]
        assert len(dynamodb_tables.Table("test-variants").scan()["Items"]) == 1

        cats = {c["id"]: c for c in dynamodb_tables.Table("test-categories").scan()["Items"]}
        assert set(cats) == {"protein", "whey", "plant-based", "sleep-recovery"}
        assert cats["whey"]["parent_id"] == "protein"
        goals = {g["id"]: g for g in dynamodb_tables.Table("test-goals").scan()["Items"]}
        assert goals["falling-asleep"]["is_sub_goal"] is True

        flavors = sorted(f["name"] for f in dynamodb_tables.Table("test-flavors").scan()["Items"])
        assert flavors == ["Chocolate", "Vanilla"]
        assert summary["steps"]["migrate_flavors"]["total"] == 2

        assert runner.ledger_entry("1.1.0")["status"] == "completed"
        assert runner.applied_versions() == ["1.1.0"]

    def test_rerun_skipped_unless_forced(self, runner, dynamodb_tables):
        runner.run("1.0.0")
        assert runner.run("1.0.0")["status"] == "skipped"
        again = runner.run("1.0.0", force=True)
        assert again["status"] == "completed"
        # Upserts: a second pass leaves the same rows
        assert len(dynamodb_tables.Table("test-products").scan()["Items"]) == 2
        assert len(dynamodb_tables.Table("test-categories").scan()["Items"]) == 4

    def test_rerun_keeps_ids_and_created_at(self, runner, dynamodb_tables):
        runner.run("1.0.0")
        tbl = dynamodb_tables.Table("test-products")
        first = tbl.get_item(Key={"handle": "creatine"})["Item"]
        runner.run("1.0.0", force=True)
        second = tbl.get_item(Key={"handle": "creatine"})["Item"]
        assert first["id"] == second["id"]
        assert first["created_at"] == second["created_at"]

    def test_unknown_version(self, runner):
        with pytest.raises(MigrationError):
            runner.run("9.9.9")

    def test_missing_products_file_fails(self, runner, data_dir):
        os.remove(os.path.join(data_dir, "latest.json"))
        with pytest.raises(MigrationError):
            runner.run("1.0.0")
        assert runner.ledger_entry("1.0.0")["status"] == "failed"

    def test_too_many_invalid_products_aborts(self, runner, data_dir, dynamodb_tables):
        _write(data_dir, "latest.json", PRODUCTS + [{"price": "$1"}])
        with pytest.raises(MigrationError, match="Too many invalid products"):
            runner.run("1.0.0")
        entry = runner.ledger_entry("1.0.0")
        assert entry["status"] == "failed"
        assert entry["failed_step"] == "validate_data"
        assert dynamodb_tables.Table("test-products").scan()["Items"] == []

    def test_invalid_under_limit_is_skipped(self, runner, data_dir, dynamodb_tables):
        good = [{"title": f"Product {i}", "price": "$10"} for i in range(10)]
        _write(data_dir, "latest.json", good + [{"price": "$1"}])
        summary = runner.run("1.0.0")
        assert summary["steps"]["validate_data"] == {"valid": 10, "invalid": 1, "warnings": 0}
        assert len(dynamodb_tables.Table("test-products").scan()["Items"]) == 10

    def test_optional_files_may_be_missing(self, runner, data_dir):
        for name in ("categories.json", "goals.json", "flavors.json"):
            os.remove(os.path.join(data_dir, name))
        summary = runner.run("1.0.0")
        assert summary["steps"]["migrate_goals"]["skipped"] is True


class TestBackfill:
    def test_fixes_desynced_price_pairs(self, runner, dynamodb_tables):
        tbl = dynamodb_tables.Table("test-products")
        tbl.put_item(Item={"handle": "whey", "title": "Whey", "price_display": "$45.00",
                           "price_amount": 40})
        tbl.put_item(Item={"handle": "omega", "title": "Omega", "price_amount": 30})
        tbl.put_item(Item={"handle": "ok", "title": "Ok", "price_display": "$10.00",
                           "price_amount": 10})
        result = runner.backfill_prices()
        assert result["scanned"] == 3
        assert result["successful"] == 2
        assert float(tbl.get_item(Key={"handle": "whey"})["Item"]["price_amount"]) == 45.0
        assert tbl.get_item(Key={"handle": "omega"})["Item"]["price_display"] == "$30.00"


class TestBackupRestore:
    def test_restore_puts_rows_back(self, runner, dynamodb_tables):
        runner.run("1.0.0")
        backup_id = runner.backup()
        tbl = dynamodb_tables.Table("test-products")
        tbl.delete_item(Key={"handle": "creatine"})
        counts = runner.restore(backup_id)
        assert counts["products"] == 2
        item = tbl.get_item(Key={"handle": "creatine"})["Item"]
        assert float(item["price_amount"]) == 30.0

    def test_run_with_backup_records_id(self, runner):
        summary = runner.run("1.0.0", backup=True)
        assert summary["backup_id"]
        assert runner.ledger_entry("1.0.0")["backup_id"] == summary["backup_id"]

    def test_restore_unknown_backup(self, runner):
        with pytest.raises(MigrationError):
            runner.restore("19700101-000000")


class TestCli:
    def test_run_and_list(self, dynamodb_tables, data_dir, tmp_path, capsys):
        from migrate import main
        tables = _tables(dynamodb_tables)
        args = ["--data-dir", data_dir, "--backup-dir", str(tmp_path / "b")]
        assert main(["--version", "1.0.0"] + args, tables=tables) == 0
        assert main(["--list"] + args, tables=tables) == 0
        out = capsys.readouterr().out
        assert "1.0.0    completed" in out
        assert "1.1.0    pending" in out
        assert "Applied: 1.0.0" in out

    def test_failure_exit_code(self, dynamodb_tables, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        from migrate import main
        assert main(["--data-dir", str(empty)], tables=_tables(dynamodb_tables)) == 1

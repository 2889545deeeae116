"""tests/test_product_record.py — Tests for shared product normalisation.

Price pairs must stay synchronised however the price arrives, and legacy
camelCase snapshot fields must land in the stored snake_case shape.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from shared.product_record import (
    parse_price, price_pair, normalize_product, apply_update, merge_scraped,
    validate_product, normalize_variant, slugify, handle_from_link, finalize,
)


class TestParsePrice:
    @pytest.mark.parametrize("raw,expected", [
        ("$49.95", 49.95),
        ("$1,299.00", 1299.0),
        ("From $34.95", 34.95),
        ("$49.95 $39.95", 49.95),
        (19, 19.0),
        (12.5, 12.5),
    ])
    def test_parses(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "Price not available", True])
    def test_unparseable_is_none(self, raw):
        assert parse_price(raw) is None


class TestPricePair:
    def test_display_only(self):
        assert price_pair("$39.95", None) == (39.95, "$39.95")

    def test_amount_only_formats_display(self):
        assert price_pair(None, 40) == (40.0, "$40.00")

    def test_display_wins_when_both_given(self):
        assert price_pair("$39.95", 10) == (39.95, "$39.95")

    def test_unparseable_display_falls_back_to_amount(self):
        assert price_pair("Sold out", 12) == (12.0, "$12.00")

    def test_unparseable_display_kept_without_amount(self):
        assert price_pair("Price not available", None) == (None, "Price not available")

    def test_numeric_display_treated_as_amount(self):
        assert price_pair(25, None) == (25.0, "$25.00")

    def test_nothing(self):
        assert price_pair(None, None) == (None, None)


class TestNormalizeProduct:
    def test_camel_case_snapshot(self):
        rec = normalize_product({
            "title": "Creatine &amp; More",
            "price": "$34.95",
            "subscriptionPrice": "$29.71",
            "link": "https://www.livemomentous.com/products/creatine?variant=1",
            "primaryGoal": "Recovery",
            "categories": ["Sports Nutrition", "Supplements"],
            "euAllowed": "true",
            "tagsString": "protein, recovery",
        })
        assert rec["title"] == "Creatine & More"
        assert rec["price_amount"] == 34.95
        assert rec["price_display"] == "$34.95"
        assert rec["subscription_price_amount"] == 29.71
        assert rec["handle"] == "creatine"
        assert rec["primary_goal"] == "Recovery"
        assert rec["category"] == "Sports Nutrition"
        assert rec["eu_allowed"] is True
        assert rec["tags"] == ["protein", "recovery"]

    def test_handle_falls_back_to_title_slug(self):
        rec = normalize_product({"title": "Sleep & Recovery Pack"})
        assert rec["handle"] == "sleep-recovery-pack"

    def test_legacy_flavor_maps_fold_into_details(self):
        rec = normalize_product({
            "title": "Whey",
            "flavors": ["Vanilla", "Chocolate"],
            "flavorSkus": {"Vanilla": "WH-V", "Chocolate": ""},
            "flavorHsCodes": {"Vanilla": "2106.10"},
        })
        assert rec["flavor_details"] == {"Vanilla": {"sku": "WH-V", "hs_code": "2106.10"}}

    def test_partial_only_returns_present_fields(self):
        rec = normalize_product({"productName": "New Title"}, partial=True)
        assert rec == {"title": "New Title"}

    def test_partial_price_returns_both_halves(self):
        rec = normalize_product({"price_amount": 50}, partial=True)
        assert rec == {"price_amount": 50.0, "price_display": "$50.00"}


class TestUpdateAndMerge:
    def test_apply_update_keeps_handle_and_refreshes_search_text(self):
        existing = finalize(normalize_product({"handle": "whey", "title": "Whey", "price": "$40"}))
        changes  = normalize_product({"title": "Grass-Fed Whey", "handle": "other"}, partial=True)
        merged   = apply_update(existing, changes)
        assert merged["handle"] == "whey"
        assert merged["title"] == "Grass-Fed Whey"
        assert "grass-fed whey" in merged["search_text"]
        assert merged["price_amount"] == 40.0

    def test_merge_scraped_preserves_curated_fields(self):
        existing = {"handle": "whey", "id": "abc", "categories": ["Protein"], "hs_code": "2106",
                    "price_amount": 40.0, "created_at": "2025-01-01"}
        scraped  = {"handle": "whey", "categories": [], "price_amount": 45.0, "hs_code": None}
        merged   = merge_scraped(existing, scraped)
        assert merged["categories"] == ["Protein"]
        assert merged["hs_code"] == "2106"
        assert merged["price_amount"] == 45.0
        assert merged["id"] == "abc"
        assert merged["created_at"] == "2025-01-01"

    def test_merge_scraped_new_product(self):
        assert merge_scraped(None, {"handle": "x"}) == {"handle": "x"}


class TestValidateProduct:
    def test_valid(self):
        errors, warnings = validate_product(normalize_product(
            {"handle": "whey", "title": "Whey", "price": "$40", "link": "https://x.com/products/whey"}))
        assert errors == [] and warnings == []

    def test_missing_title_and_bad_handle(self):
        errors, _ = validate_product({"handle": "Bad Handle!", "title": ""})
        assert any("URL-safe" in e for e in errors)
        assert "title is required" in errors

    def test_negative_price(self):
        errors, _ = validate_product({"handle": "a", "title": "A", "price_amount": -1})
        assert "price_amount cannot be negative" in errors

    def test_warnings_for_unparsed_price_and_url(self):
        _, warnings = validate_product({"handle": "a", "title": "A", "price_amount": None,
                                        "price_display": "TBD", "image": "not a url"})
        assert "price_display could not be parsed to numeric value" in warnings
        assert "image appears to be an invalid URL" in warnings


class TestHelpers:
    def test_slugify(self):
        assert slugify("Sleep & Recovery") == "sleep-recovery"
        assert slugify("  ") == ""

    def test_handle_from_link(self):
        assert handle_from_link("https://s.com/products/Omega-3?x=1") == "omega-3"
        assert handle_from_link("https://s.com/collections/all") == ""

    def test_normalize_variant(self):
        v = normalize_variant({"id": 123, "title": "Vanilla", "price": "$40.00",
                               "compareAtPrice": "$50.00", "available": False}, 2)
        assert v["variant_id"] == "123"
        assert v["price_amount"] == 40.0
        assert v["compare_at_amount"] == 50.0
        assert v["available"] is False
        assert v["position"] == 2

"""tests/test_analytics.py — Price stats, breakdowns and histogram buckets."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from shared.analytics import compute_analytics, price_bucket, price_stats, median


def _p(price, category=None, goal=None):
    return {"price_amount": price, "category": category, "primary_goal": goal}


class TestPriceStats:
    def test_odd_count(self):
        stats = price_stats([10, 30, 20])
        assert stats == {"min": 10, "max": 30, "average": 20.0, "median": 20}

    def test_median_even_count_takes_upper_middle(self):
        assert median([10, 20, 30, 40]) == 30

    def test_average_is_unrounded_mean(self):
        assert price_stats([10, 10, 11])["average"] == pytest.approx(31 / 3)

    def test_empty_defaults(self):
        assert price_stats([]) == {"min": 0, "max": 0, "average": 0, "median": 0}


class TestBuckets:
    @pytest.mark.parametrize("price,label", [
        (0, "$0-25"), (25, "$0-25"), (25.01, "$26-50"), (50, "$26-50"),
        (50.5, "$51-100"), (100, "$51-100"), (100.01, "$100+"), (999, "$100+"),
    ])
    def test_boundaries(self, price, label):
        assert price_bucket(price) == label


class TestComputeAnalytics:
    def test_one_product_per_bucket(self):
        result = compute_analytics([_p(10), _p(30), _p(75), _p(150)])
        assert result["price_ranges"] == {"$0-25": 1, "$26-50": 1, "$51-100": 1, "$100+": 1}
        assert result["total_products"] == 4

    def test_counts_and_null_prices(self):
        products = [
            _p(10, "Protein", "Recovery"),
            _p(None, "Protein", "Sleep"),
            _p(40, "Sleep", "Sleep"),
            _p(None),
        ]
        result = compute_analytics(products)
        assert result["total_products"] == 4
        assert result["categories"] == {"Protein": 2, "Sleep": 1}
        assert result["goals"] == {"Recovery": 1, "Sleep": 2}
        assert result["price_stats"]["min"] == 10
        assert result["price_stats"]["max"] == 40
        assert sum(result["price_ranges"].values()) == 2

    def test_empty_catalog(self):
        result = compute_analytics([])
        assert result["total_products"] == 0
        assert result["price_stats"] == {"min": 0, "max": 0, "average": 0, "median": 0}
        assert result["categories"] == {}
        assert result["price_ranges"] == {"$0-25": 0, "$26-50": 0, "$51-100": 0, "$100+": 0}

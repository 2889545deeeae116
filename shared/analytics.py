"""shared/analytics.py — Catalog price statistics and breakdowns.

Pure functions over plain product dicts; the /api/analytics handler feeds
them the (optionally filtered) scan result.
"""
import math
from decimal import Decimal

# label, exclusive lower bound, inclusive upper bound
PRICE_RANGES = (
    ("$0-25",   None, 25),
    ("$26-50",  25,   50),
    ("$51-100", 50,   100),
    ("$100+",   100,  None),
)


def _empty_histogram() -> dict:
    return {label: 0 for label, _, _ in PRICE_RANGES}


def price_bucket(price: float) -> str:
    for label, low, high in PRICE_RANGES:
        if (low is None or price > low) and (high is None or price <= high):
            return label
    return PRICE_RANGES[-1][0]


def price_histogram(prices: list) -> dict:
    counts = _empty_histogram()
    for p in prices:
        counts[price_bucket(p)] += 1
    return counts


def extract_prices(products: list) -> list:
    """Non-null, finite price_amount values as floats."""
    prices = []
    for p in products:
        amount = p.get("price_amount")
        if amount is None or isinstance(amount, bool):
            continue
        if isinstance(amount, (int, float, Decimal)):
            amount = float(amount)
            if not math.isnan(amount):
                prices.append(amount)
    return prices


def median(prices: list) -> float:
    """Element at index n // 2 of the ascending sort (upper middle for even n)."""
    ordered = sorted(prices)
    return ordered[len(ordered) // 2]


def price_stats(prices: list) -> dict:
    if not prices:
        return {"min": 0, "max": 0, "average": 0, "median": 0}
    return {
        "min":     min(prices),
        "max":     max(prices),
        "average": sum(prices) / len(prices),
        "median":  median(prices),
    }


def _count_by(products: list, field: str) -> dict:
    counts: dict = {}
    for p in products:
        key = p.get(field)
        if key:
            counts[key] = counts.get(key, 0) + 1
    return counts


def compute_analytics(products: list) -> dict:
    prices = extract_prices(products)
    return {
        "total_products": len(products),
        "price_stats":    price_stats(prices),
        "categories":     _count_by(products, "category"),
        "goals":          _count_by(products, "primary_goal"),
        "price_ranges":   price_histogram(prices),
    }

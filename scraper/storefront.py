"""
scraper/storefront.py

Extracts the product catalog from a Shopify storefront collection page with
Playwright (Chromium).

Listing pass: scroll + "load more" until the card count stops growing, then
read each card through ordered selector candidates (themes differ, so every
field has a list of selectors and the first that matches wins).

Detail pass: visit each product page for description/vendor/type/tags/images
and take variants from the storefront's /products/<handle>.js endpoint, whose
prices are integer cents. Variant selectors on the page are the fallback.
"""

import json
import os
import urllib.request
from urllib.parse import urljoin

from playwright.sync_api import sync_playwright

from shared.product_record import format_price, handle_from_link, now_iso

STOREFRONT_URL  = os.environ.get("STOREFRONT_URL", "https://www.livemomentous.com")
COLLECTION_PATH = os.environ.get("COLLECTION_PATH", "/collections/shop-all")
REQ_DELAY       = float(os.environ.get("REQ_DELAY", "1.0"))
NAV_TIMEOUT_MS  = int(os.environ.get("NAV_TIMEOUT_MS", "30000"))
MAX_LOAD_ROUNDS = 10

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36"
)

# ── Selector candidates ───────────────────────────────────────────────────────

CARD_SELECTORS = [".product-card", ".product-item", "[data-product-id]"]

CARD_FIELDS = {
    "title": [
        "h3", ".product-title", ".card__heading", ".product-card__title",
        "[data-product-title]", "h2", ".h3", ".product-name",
    ],
    "price": [
        ".price", ".product-price", ".card__price", "[data-price]",
        ".money", ".product-card__price",
    ],
    "description": [".product-description", ".card__text", ".product-summary"],
}

LOAD_MORE_SELECTORS = [
    ".load-more", "[data-load-more]", ".btn--load-more",
    ".pagination__next", ".btn-load-more",
]

DETAIL_FIELDS = {
    "full_description":   [".product__description", ".product-description", ".rte"],
    "ingredients":        [".ingredients", ".product__ingredients", "[data-ingredients]"],
    "benefits":           [".benefits", ".product__benefits", "[data-benefits]"],
    "usage":              [".usage", ".directions", ".product__usage"],
    "availability":       [".product-availability", ".stock-status", "[data-availability]"],
    "subscription_price": [
        ".subscription-price", ".recurring-price", "[data-subscription-price]",
        ".product-form__price .subscription", ".price--subscription",
    ],
    "original_price": [
        ".price--compare", ".was-price", ".compare-price",
        ".original-price", ".price--original", ".price .compare-at-price",
    ],
    "vendor":       [".product__vendor", ".product-vendor", "[data-vendor]", ".brand-name"],
    "product_type": [".product__type", ".product-type", "[data-product-type]"],
}

IMAGE_SELECTORS = [
    ".product__media img", ".product-media img", ".product__photos img",
    ".product-images img", ".product-gallery img",
]
TAG_SELECTORS = [".product__tags .tag", ".product-tags .tag", ".tags .tag"]
VARIANT_SELECTORS = [
    ".product-form__variants .variant-selector",
    ".product__variants .variant-input",
    ".variant-selectors .variant-selector",
    ".product-variants .variant-option",
    ".product-form .swatch",
]
VARIANT_OPTION_SELECTOR = ".product-form select option"

DEFAULT_VENDOR = "Momentous"


# ── DOM helpers ───────────────────────────────────────────────────────────────

def first_matching(root, selectors: list) -> tuple:
    """Return (selector, elements) for the first candidate that yields elements."""
    for sel in selectors:
        try:
            found = root.query_selector_all(sel)
        except Exception as e:
            print(f"  [warn] selector {sel!r} failed: {e}")
            continue
        if found:
            return sel, found
    return None, []


def _text(el) -> str:
    if el is None:
        return ""
    return " ".join((el.inner_text() or "").split())


def first_text(root, selectors: list) -> str:
    for sel in selectors:
        try:
            el = root.query_selector(sel)
        except Exception as e:
            print(f"  [warn] selector {sel!r} failed: {e}")
            continue
        text = _text(el)
        if text:
            return text
    return ""


def _image_src(img, base_url: str) -> str:
    for attr in ("src", "data-src", "data-srcset"):
        val = (img.get_attribute(attr) or "").strip()
        if val:
            val = val.split(",")[0].split(" ")[0]
            return urljoin(base_url, val)
    return ""


# ── Listing pass ──────────────────────────────────────────────────────────────

def count_cards(page) -> int:
    _, cards = first_matching(page, CARD_SELECTORS)
    return len(cards)


def load_all_products(page, max_rounds: int = MAX_LOAD_ROUNDS) -> int:
    """Scroll and click "load more" until the card count stops growing."""
    previous, current, rounds = -1, count_cards(page), 0
    while current > previous and rounds < max_rounds:
        previous = current
        page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        page.wait_for_timeout(2000)
        _, buttons = first_matching(page, LOAD_MORE_SELECTORS)
        if buttons:
            print("  Found load-more button, clicking...")
            buttons[0].click()
            page.wait_for_timeout(3000)
        current = count_cards(page)
        rounds += 1
        print(f"  Cards found: {current} (was {previous})")
    print(f"  Finished loading: {current} cards after {rounds} rounds")
    return current


def extract_card(card, base_url: str) -> dict | None:
    """One listing card → raw product dict, or None without a title and link."""
    title = first_text(card, CARD_FIELDS["title"])
    link_el = card.query_selector("a")
    href = (link_el.get_attribute("href") or "").strip() if link_el else ""
    if not href:
        href = (card.get_attribute("href") or "").strip()
    if not title or not href:
        return None
    link = urljoin(base_url, href)
    img = card.query_selector("img")
    return {
        "title":       title,
        "price":       first_text(card, CARD_FIELDS["price"]) or "Price not available",
        "image":       _image_src(img, base_url) if img else None,
        "link":        link,
        "handle":      handle_from_link(link),
        "description": first_text(card, CARD_FIELDS["description"]),
        "scraped_at":  now_iso(),
    }


def extract_cards(page, base_url: str = STOREFRONT_URL) -> list[dict]:
    selector, cards = first_matching(page, CARD_SELECTORS)
    if not cards:
        print(f"  [warn] no product cards matched any of {CARD_SELECTORS}")
        return []
    print(f"  Using card selector {selector!r}: {len(cards)} elements")
    products, seen = [], set()
    for i, card in enumerate(cards):
        try:
            item = extract_card(card, base_url)
        except Exception as e:
            print(f"  [warn] card {i}: {e}")
            continue
        if not item:
            continue
        key = item["handle"] or item["link"]
        if key in seen:
            continue
        seen.add(key)
        products.append(item)
    return products


# ── Detail pass ───────────────────────────────────────────────────────────────

def _fetch(url: str) -> dict:
    req = urllib.request.Request(
        url,
        headers={
            "Accept":     "application/json, text/plain, */*",
            "User-Agent": USER_AGENT,
        },
    )
    with urllib.request.urlopen(req, timeout=15) as resp:
        return json.loads(resp.read().decode())


def _cents(value) -> str | None:
    if value in (None, ""):
        return None
    return format_price(int(value) / 100)


def shopify_variants(data: dict) -> list[dict]:
    """Variants from a /products/<handle>.js payload (prices in cents)."""
    out = []
    for v in (data or {}).get("variants") or []:
        out.append({
            "id":             v.get("id"),
            "title":          v.get("title"),
            "price":          _cents(v.get("price")),
            "compareAtPrice": _cents(v.get("compare_at_price")),
            "available":      v.get("available", True),
            "option1":        v.get("option1"),
            "option2":        v.get("option2"),
            "option3":        v.get("option3"),
            "sku":            v.get("sku"),
        })
    return out


def fetch_shopify_variants(handle: str, base_url: str = STOREFRONT_URL) -> list[dict]:
    if not handle:
        return []
    return shopify_variants(_fetch(f"{base_url}/products/{handle}.js"))


def dom_variants(page) -> list[dict]:
    """Variant fallback from swatches/selectors, then from <select> options."""
    variants = []
    _, elements = first_matching(page, VARIANT_SELECTORS)
    for i, el in enumerate(elements):
        title = (_text(el) or el.get_attribute("data-variant-title")
                 or el.get_attribute("title") or el.get_attribute("value") or "")
        if not title.strip():
            continue
        variants.append({
            "id":             el.get_attribute("data-variant-id") or el.get_attribute("value") or f"variant-{i}",
            "title":          title.strip(),
            "price":          el.get_attribute("data-variant-price") or el.get_attribute("data-price"),
            "compareAtPrice": el.get_attribute("data-variant-compare-price") or el.get_attribute("data-compare-price"),
            "available":      el.get_attribute("data-variant-available") != "false"
                              and el.get_attribute("disabled") is None,
        })
    if variants:
        return variants
    for i, opt in enumerate(page.query_selector_all(VARIANT_OPTION_SELECTOR)):
        title = _text(opt)
        value = opt.get_attribute("value") or ""
        if not title or not value or title == "Default Title" or opt.get_attribute("disabled") is not None:
            continue
        variants.append({
            "id":             value,
            "title":          title,
            "price":          opt.get_attribute("data-price"),
            "compareAtPrice": opt.get_attribute("data-compare-price"),
            "available":      True,
        })
    return variants


def extract_details(page, base_url: str = STOREFRONT_URL) -> dict:
    details = {field: first_text(page, sels) for field, sels in DETAIL_FIELDS.items()}
    details["vendor"] = details["vendor"] or DEFAULT_VENDOR
    for field in ("subscription_price", "original_price"):
        if not details[field]:
            details[field] = None

    images = []
    _, imgs = first_matching(page, IMAGE_SELECTORS)
    for img in imgs:
        src = _image_src(img, base_url)
        if src and src not in images:
            images.append(src)
    details["images"] = images

    tags = []
    _, tag_els = first_matching(page, TAG_SELECTORS)
    for t in tag_els:
        text = _text(t)
        if text and text not in tags:
            tags.append(text)
    details["tags"] = tags
    return {k: v for k, v in details.items() if v not in ("", [])}


def scrape_details(page, products: list[dict], limit: int | None = None,
                   base_url: str = STOREFRONT_URL, fetch_variants=fetch_shopify_variants) -> int:
    """Enrich products in place from their detail pages. Returns the count enriched.

    Failures are logged per product and the product keeps its listing data.
    """
    targets = products if limit is None else products[:limit]
    done = 0
    for i, product in enumerate(targets):
        if not product.get("link"):
            continue
        print(f"  [{i + 1}/{len(targets)}] details: {product['title']}")
        variants = []
        try:
            variants = fetch_variants(product.get("handle"), base_url)
        except Exception as e:
            print(f"  [warn] variant JSON failed for {product.get('handle')}: {e}")
        try:
            page.goto(product["link"], timeout=NAV_TIMEOUT_MS, wait_until="domcontentloaded")
            details = extract_details(page, base_url)
            if not variants:
                variants = dom_variants(page)
        except Exception as e:
            print(f"  [warn] could not scrape details for {product['title']}: {e}")
            continue
        product.update(details)
        if details.get("images") and not product.get("image"):
            product["image"] = details["images"][0]
        product["variants"] = variants
        done += 1
        page.wait_for_timeout(int(REQ_DELAY * 1000))
    return done


# ── Entry point ───────────────────────────────────────────────────────────────

def scrape_storefront(base_url: str = STOREFRONT_URL, collection_path: str = COLLECTION_PATH,
                      headless: bool = True, detail_limit: int | None = None) -> list[dict]:
    """Run the listing and detail passes in one browser session."""
    url = urljoin(base_url, collection_path)
    print(f"Scraping {url} ...")
    with sync_playwright() as pw:
        browser = pw.chromium.launch(headless=headless)
        try:
            context = browser.new_context(user_agent=USER_AGENT,
                                          viewport={"width": 1920, "height": 1080})
            page = context.new_page()
            page.goto(url, timeout=NAV_TIMEOUT_MS, wait_until="domcontentloaded")
            try:
                page.wait_for_selector(", ".join(CARD_SELECTORS), timeout=10000)
            except Exception as e:
                print(f"  [warn] no product cards appeared: {e}")
            load_all_products(page)
            products = extract_cards(page, base_url)
            print(f"  Found {len(products)} products")
            if detail_limit != 0:
                scrape_details(page, products, detail_limit, base_url)
        finally:
            browser.close()
    return products

"""Storefront crawler that feeds the products dataset.

The crawl is two-phase: the entry (category) page is fetched for subcategory and
product links, every subcategory page is fetched for more product links, then each
product page is fetched and parsed for its name and listed colors. New product
URLs are appended to the store; in full mode existing rows also get their name,
category and website colors refreshed. Curated sourcing columns are never written.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .catalog_store import CatalogStore, ScrapedProductRow
from .errors import IngestionError, InvalidRequestError

logger = logging.getLogger("product_agent.scraper")

MODES = ("incremental", "full")
DEFAULT_CATEGORY = "Uncategorized"

HEADERS = {
    "User-Agent": "product-agent catalog sync (+https://www.easyprintsg.com)",
}

EXCLUDED_PATH_PATTERNS = (
    "/corporate-gifts/",
    "/business-stationery/",
    "/large-format-print/",
    "/category/",
    "/cart",
    "/checkout",
    "/customer/",
    "/about",
    "/contact",
    "/faq",
    "/privacy",
    "/terms",
    "/blog",
    "/news",
    "/search",
    "/catalogsearch/",
    "/wishlist/",
    "/media/",
    "/static/",
    "/pub/",
    "/quotation/",
    "/our-recent-projects",
    "/latest-gifts",
    "/popular-gifts",
    "/trending-gifts",
    "/order-tracking",
    "/shippingandreturn",
)
EXCLUDED_SLUGS = {"home", "index", "login", "register", "account", "lanyard", "flyer"}

COLOR_PATTERNS = (
    re.compile(r"\*{0,2}Available Colou?rs?:?\*{0,2}\s*([^\n*]+)", re.IGNORECASE),
    re.compile(r"\*{0,2}Colou?rs?:\*{0,2}\s*([^\n*]+)", re.IGNORECASE),
    re.compile(r"Colou?rs? Available:?\s*([^\n*]+)", re.IGNORECASE),
)
MAX_COLOR_LENGTH = 50


@dataclass
class ScrapedProduct:
    name: str
    category: str
    url: str
    colors: List[str] = field(default_factory=list)
    source_url: str = ""

    def to_row(self) -> ScrapedProductRow:
        return ScrapedProductRow(
            product_name=self.name,
            category=self.category,
            website_url=self.url,
            colors_on_website=", ".join(self.colors),
        )


@dataclass
class ScrapeStats:
    pages_crawled: int = 0
    new_products: int = 0
    updated_products: int = 0
    unchanged: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "pagesCrawled": self.pages_crawled,
            "newProducts": self.new_products,
            "updatedProducts": self.updated_products,
            "unchanged": self.unchanged,
            "errors": self.errors,
        }


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def normalize_url(url: str) -> str:
    """Drop query string, fragment and trailing slash."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")


def same_site(url: str, site_host: str) -> bool:
    host = urlparse(url).netloc.lower()
    if not host or not site_host:
        return False
    return host == site_host or host.endswith("." + site_host) or site_host.endswith("." + host)


def is_product_page(url: str) -> bool:
    """Purpose: Decide whether a storefront URL points at a product page.
    Inputs/Outputs: Input is an absolute URL; output is a bool.
    Side Effects / State: None.
    Dependencies: EXCLUDED_PATH_PATTERNS and EXCLUDED_SLUGS.
    Failure Modes: Heuristic; unknown single-segment pages count as products.
    If Removed: The crawler fetches every link on the category page.
    Testing Notes: /pvc-luggage-tag -> True, /corporate-gifts/bags -> False.
    """
    # Products live at single-segment slugs; category trees are excluded.
    path = urlparse(url).path.lower()
    for pattern in EXCLUDED_PATH_PATTERNS:
        if pattern in path:
            return False
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) == 1:
        return segments[0] not in EXCLUDED_SLUGS
    return "/products/" in path or "/product/" in path or (path.endswith(".html") and "/cms/" not in path)


def extract_links(html: str, page_url: str) -> List[str]:
    """Return absolute href targets of every anchor, in document order."""
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        links.append(urljoin(page_url, href))
    return links


def extract_subcategory_urls(links: Sequence[str], parent_url: str) -> List[str]:
    """Links nested under the parent category path, deduplicated.

    Product pages are left out so a crawl from the site root does not fetch them twice.
    """
    parent = urlparse(parent_url)
    parent_path = parent.path.rstrip("/")
    site_host = parent.netloc.lower()
    seen = set()
    urls = []
    for link in links:
        if not same_site(link, site_host):
            continue
        parsed = urlparse(link)
        link_path = parsed.path.rstrip("/")
        if not link_path.startswith(parent_path + "/") or link_path == parent_path or link_path in seen:
            continue
        url = f"{parsed.scheme}://{parsed.netloc}{link_path}"
        if is_product_page(url):
            continue
        seen.add(link_path)
        urls.append(url)
    return urls


def extract_product_urls(links: Sequence[str], site_host: str, limit: int) -> List[str]:
    """Same-site product links, normalized and deduplicated, up to limit."""
    seen = set()
    urls: List[str] = []
    for link in links:
        if len(urls) >= limit:
            break
        if not same_site(link, site_host):
            continue
        normalized = normalize_url(link)
        if normalized in seen:
            continue
        seen.add(normalized)
        if is_product_page(normalized):
            urls.append(normalized)
    return urls


def parse_color_list(text: str) -> List[str]:
    """Split "Black, Blue & White and Red" into individual color names."""
    normalized = re.sub(r"\s+and\s+", ", ", text, flags=re.IGNORECASE)
    colors = []
    for part in re.split(r"[,&]", normalized):
        color = part.strip().rstrip(".")
        if not color or color.lower() in ("and", "or") or len(color) > MAX_COLOR_LENGTH:
            continue
        colors.append(color)
    return colors


def extract_colors(text: str) -> List[str]:
    for pattern in COLOR_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return parse_color_list(match.group(1))
    return []


def derive_category_name(url: Optional[str]) -> str:
    """Purpose: Turn a category URL into a display name.
    Inputs/Outputs: Input is a URL; output is Title Case text from the last path segment.
    Side Effects / State: None.
    Dependencies: urllib.parse.
    Failure Modes: URLs without a path give "Uncategorized".
    If Removed: Scraped rows carry no category unless one is given explicitly.
    Testing Notes: .../travel-and-lifestyle -> "Travel & Lifestyle".
    """
    # Last segment, hyphens to spaces, each word capitalized.
    if not url:
        return DEFAULT_CATEGORY
    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    if not segments:
        return DEFAULT_CATEGORY
    words = [word[:1].upper() + word[1:] for word in segments[-1].split("-") if word]
    return " ".join(words).replace(" And ", " & ") or DEFAULT_CATEGORY


def parse_product_page(html: str, url: str, category: str) -> Optional[ScrapedProduct]:
    """Purpose: Parse a product page into name, category, path and colors.
    Inputs/Outputs: Inputs are page HTML, its URL and the run's category; output is
        a ScrapedProduct or None when the page has no usable title.
    Side Effects / State: None.
    Dependencies: BeautifulSoup; extract_colors.
    Failure Modes: Pages without og:title or <title> return None.
    If Removed: Product pages cannot be turned into catalog rows.
    Testing Notes: og:description "Available Colours: Black, Clear" -> two colors.
    """
    # Name from og:title then <title>; colors from og:description then page text.
    soup = BeautifulSoup(html, "html.parser")
    name = ""
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        name = og_title["content"].strip()
    if not name and soup.title and soup.title.string:
        name = soup.title.string.strip()
    if not name:
        return None

    colors: List[str] = []
    og_description = soup.find("meta", attrs={"property": "og:description"})
    if og_description and og_description.get("content"):
        colors = extract_colors(og_description["content"])
    if not colors:
        colors = extract_colors(soup.get_text("\n"))

    return ScrapedProduct(
        name=name,
        category=category or DEFAULT_CATEGORY,
        url=urlparse(url).path or url,
        colors=colors,
        source_url=url,
    )


class CatalogScraper:
    """Crawls the storefront and reconciles product rows with the catalog store."""

    def __init__(
        self,
        store: CatalogStore,
        base_url: str,
        timeout_sec: float = 20.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._store = store
        self._base_url = base_url
        self._timeout_sec = timeout_sec
        self._session = session or create_session()

    def fetch_html(self, url: str) -> str:
        response = self._session.get(url, timeout=self._timeout_sec)
        response.raise_for_status()
        return response.text

    def run(
        self,
        mode: str = "incremental",
        dry_run: bool = False,
        category_url: Optional[str] = None,
        category_name: Optional[str] = None,
        limit: int = 100,
    ) -> ScrapeStats:
        """Purpose: Crawl, parse and write new or updated product rows.
        Inputs/Outputs: Inputs are mode, dry_run, optional category URL/name and a page
            limit; output is ScrapeStats.
        Side Effects / State: HTTP requests; store writes unless dry_run.
        Dependencies: crawl, CatalogStore.append_products/update_product.
        Failure Modes: InvalidRequestError for a bad mode or limit; IngestionError when
            the entry page cannot be fetched. Individual page failures only bump errors.
        If Removed: The catalog can only be maintained by hand.
        Testing Notes: Dry runs report every parsed product as new and write nothing.
        """
        # Validate, crawl, then reconcile against existing URLs.
        if mode not in MODES:
            raise InvalidRequestError(
                'Invalid mode. Must be "incremental" or "full".',
                details={"field": "mode", "allowed": list(MODES)},
            )
        if limit < 1:
            raise InvalidRequestError("limit must be a positive integer", details={"field": "limit"})
        category = category_name or (derive_category_name(category_url) if category_url else DEFAULT_CATEGORY)
        target_url = category_url or self._base_url
        logger.info(
            "scraper=start mode=%s dry_run=%s target=%s limit=%s category=%s",
            mode,
            dry_run,
            target_url,
            limit,
            category,
        )

        stats = ScrapeStats()
        products = self.crawl(target_url, category, limit, stats)
        if dry_run:
            stats.new_products = len(products)
            logger.info("scraper=dry_run parsed=%s", len(products))
            return stats

        existing = self._store.existing_product_urls()
        new_rows: List[ScrapedProductRow] = []
        for product in products:
            row_index = existing.get(product.url)
            if row_index is None:
                new_rows.append(product.to_row())
                existing[product.url] = -1
            elif row_index < 0:
                # Same URL seen twice in this run.
                continue
            elif mode == "full":
                self._store.update_product(
                    row_index,
                    product_name=product.name,
                    category=product.category,
                    colors_on_website=", ".join(product.colors),
                )
                stats.updated_products += 1
            else:
                stats.unchanged += 1
        stats.new_products = self._store.append_products(new_rows)

        logger.info("scraper=complete stats=%s", json.dumps(stats.to_dict(), ensure_ascii=True))
        return stats

    def crawl(self, target_url: str, category: str, limit: int, stats: ScrapeStats) -> List[ScrapedProduct]:
        """Purpose: Collect product URLs from the category tree and parse each page.
        Inputs/Outputs: Inputs are the entry URL, category, limit and the stats to
            update; output is parsed products in discovery order.
        Side Effects / State: HTTP requests; increments stats.pages_crawled/errors.
        Dependencies: fetch_html, extract_* helpers, parse_product_page.
        Failure Modes: IngestionError if the entry page fails; other fetch failures
            are logged and counted.
        If Removed: run() has nothing to reconcile.
        Testing Notes: Mock the session and serve HTML fixtures per URL.
        """
        # Subcategory pages list every product; the entry page only shows a subset.
        try:
            entry_html = self.fetch_html(target_url)
        except requests.RequestException as exc:
            logger.error("scraper=entry_failed url=%s error=%s", target_url, exc)
            raise IngestionError(
                "Failed to fetch the crawl entry page",
                details={"url": target_url},
            ) from exc

        site_host = urlparse(target_url).netloc.lower()
        entry_links = extract_links(entry_html, target_url)
        product_urls: List[str] = []

        subcategory_urls = extract_subcategory_urls(entry_links, target_url)
        logger.info("scraper=subcategories count=%s", len(subcategory_urls))
        for sub_url in subcategory_urls:
            if len(product_urls) >= limit:
                break
            try:
                sub_html = self.fetch_html(sub_url)
            except requests.RequestException as exc:
                stats.errors += 1
                logger.warning("scraper=subcategory_failed url=%s error=%s", sub_url, exc)
                continue
            for url in extract_product_urls(extract_links(sub_html, sub_url), site_host, limit):
                if url not in product_urls:
                    product_urls.append(url)

        for url in extract_product_urls(entry_links, site_host, limit):
            if url not in product_urls:
                product_urls.append(url)
        logger.info("scraper=product_urls count=%s", len(product_urls))

        products: List[ScrapedProduct] = []
        for url in product_urls[:limit]:
            try:
                html = self.fetch_html(url)
            except requests.RequestException as exc:
                stats.errors += 1
                logger.warning("scraper=product_failed url=%s error=%s", url, exc)
                continue
            stats.pages_crawled += 1
            product = parse_product_page(html, url, category)
            if product is None:
                logger.debug("scraper=skipped url=%s reason=no_title", url)
                continue
            products.append(product)
        return products

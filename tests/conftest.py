from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from product_agent.catalog_cache import CatalogCache
from product_agent.catalog_store import (
    CatalogStore,
    LocalSourcing,
    OverseasSourcing,
    Product,
    ScrapedProductRow,
    Synonym,
    parse_product_row,
)
from product_agent.config import Settings
from product_agent.query_extractor import FallbackQueryExtractor, MultiParsedQuery, ParsedQueryItem, QueryExtractor
from product_agent.resolution_pipeline import ResolutionPipeline

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "product_agent" / "prompts"
TEST_API_KEY = "test-key"


def card_holder() -> Product:
    return Product(
        name="Card Holder",
        category="Corporate Gifts",
        url="/card-holder",
        other_names="badge holder, ID holder",
        website_colors=("Black", "Clear"),
        local=LocalSourcing(supplier="ABC Supplies", moq=100, lead_time="3-5 days", colors=("Black", "Clear")),
        china=OverseasSourcing(available=True, moq=1000, air=True, sea=True, colors="Black, Clear, Blue"),
    )


def sample_products() -> List[Product]:
    return [
        card_holder(),
        Product(
            name="Cotton T-Shirt",
            category="Apparel",
            url="/cotton-t-shirt",
            other_names="tee",
            website_colors=("White", "Black"),
            local=LocalSourcing(supplier="Prime Apparel", moq=50, lead_time="7-10 days", colors=("White", "Black", "Navy")),
            china=OverseasSourcing(available=True, moq=1000, air=False, sea=True, colors="Any Pantone color"),
        ),
        Product(
            name="Pullover Hoodie",
            category="Apparel",
            url="/pullover-hoodie",
            website_colors=("Black", "Grey"),
            local=LocalSourcing(supplier="Prime Apparel", moq=30, lead_time="10-14 days"),
            china=OverseasSourcing(available=True, moq=500, sea=True, colors="Black, Grey"),
        ),
        Product(
            name="USB Flash Drive",
            category="Tech Gadgets",
            url="/usb-flash-drive",
            other_names="thumb drive",
            website_colors=("Silver",),
            local=LocalSourcing(supplier="Gadget Hub", moq=100, lead_time="7 days", colors=("Silver",)),
        ),
    ]


def sample_synonyms() -> List[Synonym]:
    return [
        Synonym(customer_says="badge case", we_call_it="Card Holder"),
        Synonym(customer_says="hoodie", we_call_it="Pullover Hoodie"),
        Synonym(customer_says="pendrive", we_call_it="USB Flash Drive", notes="regional term"),
    ]


class MemoryCatalogStore(CatalogStore):
    """In-memory store; set fail=True to make every read raise."""

    def __init__(self, products: Sequence[Product] = (), synonyms: Sequence[Synonym] = ()) -> None:
        self.products = list(products)
        self.synonyms = list(synonyms)
        self.appended: List[ScrapedProductRow] = []
        self.updates: List[Dict[str, Optional[str]]] = []
        self.urls: Dict[str, int] = {}
        self.fail = False

    def list_products(self) -> List[Product]:
        if self.fail:
            raise OSError("catalog unreachable")
        return list(self.products)

    def list_synonyms(self) -> List[Synonym]:
        if self.fail:
            raise OSError("catalog unreachable")
        return list(self.synonyms)

    def append_products(self, rows: Sequence[ScrapedProductRow]) -> int:
        for row in rows:
            self.appended.append(row)
            product = parse_product_row(row.to_row())
            if product is not None:
                self.products.append(product)
        return len(rows)

    def update_product(self, row_index, product_name=None, category=None, colors_on_website=None) -> None:
        self.updates.append(
            {
                "row_index": row_index,
                "product_name": product_name,
                "category": category,
                "colors_on_website": colors_on_website,
            }
        )

    def existing_product_urls(self) -> Dict[str, int]:
        return dict(self.urls)


class StubExtractor(QueryExtractor):
    """Returns canned results, or raises when given an exception instance."""

    def __init__(self, item=None, batch=None) -> None:
        self.item = item
        self.batch = batch
        self.calls = 0

    def extract(self, text: str) -> ParsedQueryItem:
        self.calls += 1
        if isinstance(self.item, Exception):
            raise self.item
        return self.item

    def extract_multi(self, text: str) -> MultiParsedQuery:
        self.calls += 1
        if isinstance(self.batch, Exception):
            raise self.batch
        return self.batch


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        api_key=TEST_API_KEY,
        gemini_api_key="",
        gemini_model="gemini-2.5-flash",
        catalog_path=tmp_path / "catalog.json",
        prompts_dir=PROMPTS_DIR,
        cache_refresh_interval_sec=0,
        extractor_enabled=False,
        extractor_timeout_sec=1,
        health_max_refresh_failures=3,
        scraper_base_url="https://shop.example.com",
        scraper_timeout_sec=5,
        scraper_default_limit=10,
        log_level="INFO",
        host="127.0.0.1",
        port=3000,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def products() -> List[Product]:
    return sample_products()


@pytest.fixture
def synonyms() -> List[Synonym]:
    return sample_synonyms()


@pytest.fixture
def store() -> MemoryCatalogStore:
    return MemoryCatalogStore(sample_products(), sample_synonyms())


@pytest.fixture
def cache(store: MemoryCatalogStore) -> CatalogCache:
    cache = CatalogCache(store, refresh_interval_sec=0)
    cache.refresh()
    return cache


@pytest.fixture
def pipeline(cache: CatalogCache) -> ResolutionPipeline:
    return ResolutionPipeline(cache, FallbackQueryExtractor())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)

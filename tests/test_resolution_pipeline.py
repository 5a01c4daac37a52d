import pytest

from product_agent.catalog_cache import CatalogCache
from product_agent.errors import CatalogUnavailableError, InvalidRequestError
from product_agent.query_extractor import FallbackQueryExtractor, ParsedQueryItem, ResilientQueryExtractor
from product_agent.resolution_pipeline import ResolutionPipeline
from product_agent.sourcing import REASON_URGENT

from .conftest import MemoryCatalogStore, StubExtractor


def test_search_resolves_synonym_first(pipeline):
    result = pipeline.search("badge case")
    assert result["synonymResolved"] == "Card Holder"
    assert result["totalFound"] == 1
    assert result["products"][0]["name"] == "Card Holder"
    assert "sourcing" in result["products"][0]


def test_search_without_sourcing(pipeline):
    result = pipeline.search("apparel", include_sourcing=False)
    assert [product["name"] for product in result["products"]] == ["Cotton T-Shirt", "Pullover Hoodie"]
    assert all("sourcing" not in product for product in result["products"])


def test_search_unknown_product(pipeline):
    result = pipeline.search("flying carpet")
    assert result["totalFound"] == 0
    assert result["products"] == []
    assert result["synonymResolved"] is None


def test_blank_query_is_rejected_before_cache(pipeline):
    empty = ResolutionPipeline(CatalogCache(MemoryCatalogStore(), refresh_interval_sec=0), FallbackQueryExtractor())
    for target in (pipeline, empty):
        with pytest.raises(InvalidRequestError):
            target.search("  ")
        with pytest.raises(InvalidRequestError):
            target.check_availability(None)
        with pytest.raises(InvalidRequestError):
            target.check_multi_availability("")


def test_unpopulated_cache_is_unavailable():
    empty = ResolutionPipeline(CatalogCache(MemoryCatalogStore(), refresh_interval_sec=0), FallbackQueryExtractor())
    with pytest.raises(CatalogUnavailableError):
        empty.check_availability("card holder")
    with pytest.raises(CatalogUnavailableError):
        empty.list_synonyms()


def test_urgent_white_badge_case(pipeline):
    result = pipeline.check_availability("Do you have white badge case? Need 200 pieces urgently")
    assert result["synonymResolved"] == "Card Holder"
    assert result["parsed"] == {"product": "badge case", "color": "white", "quantity": 200, "urgent": True}
    availability = result["availability"]
    assert availability["found"] is True
    assert availability["colorAvailable"] is False
    top = availability["matchingProducts"][0]
    assert top["product"]["name"] == "Card Holder"
    assert top["recommendation"]["source"] == "local"
    assert top["recommendation"]["reason"] == REASON_URGENT
    assert "urgent" in top["recommendation"]["reason"].lower()
    assert result["summary"] == (
        'Products matching "badge case" found, but white color is not available. '
        "Check available colors in the results."
    )


def test_quantity_at_overseas_moq_goes_overseas(pipeline):
    result = pipeline.check_availability("card holder", quantity=1000, urgent=False)
    recommendation = result["availability"]["matchingProducts"][0]["recommendation"]
    assert recommendation["source"] == "china"
    assert "MOQ (1000)" in recommendation["reason"]
    assert result["summary"] == (
        "Card Holder recommended from overseas sourcing. For 1000 pieces: better pricing for larger quantities."
    )


def test_local_summary_with_quantity_and_lead_time(pipeline):
    result = pipeline.check_availability("need 200 pcs black card holders")
    assert result["parsed"]["quantity"] == 200
    assert result["availability"]["colorAvailable"] is True
    assert result["summary"] == (
        "black Card Holder available from ABC Supplies (local supplier). For 200 pieces: 3-5 days lead time."
    )


def test_request_quantity_overrides_text(pipeline):
    result = pipeline.check_availability("need 200 pcs card holder", quantity=1500)
    assert result["parsed"]["quantity"] == 1500
    assert result["availability"]["matchingProducts"][0]["recommendation"]["source"] == "china"


def test_decimal_thousands_quantity_stays_below_overseas_moq(pipeline):
    result = pipeline.check_availability("need 0.5k pcs card holders")
    assert result["parsed"]["quantity"] == 500
    recommendation = result["availability"]["matchingProducts"][0]["recommendation"]
    assert recommendation["source"] == "local"
    assert "MOQ (1000)" in recommendation["reason"]


def test_request_urgent_is_ored_with_parsed(pipeline):
    result = pipeline.check_availability("2,000 pcs card holder", urgent=True)
    assert result["parsed"]["urgent"] is True
    assert result["availability"]["matchingProducts"][0]["recommendation"]["source"] == "local"


def test_negative_quantity_is_rejected(pipeline):
    with pytest.raises(InvalidRequestError):
        pipeline.check_availability("card holder", quantity=-1)


def test_unknown_product_summary(pipeline):
    result = pipeline.check_availability("flying carpet")
    assert result["availability"]["found"] is False
    assert result["availability"]["matchingProducts"] == []
    assert result["summary"].startswith('No products found matching "flying carpet".')


def test_raw_query_synonym_wins_over_parsed(cache):
    extractor = StubExtractor(item=ParsedQueryItem(product_type="hoodie"))
    result = ResolutionPipeline(cache, extractor).check_availability("badge case please")
    assert result["synonymResolved"] == "Card Holder"
    assert result["parsed"]["product"] == "hoodie"
    assert result["availability"]["matchingProducts"][0]["product"]["name"] == "Card Holder"


def test_extractor_failure_degrades_to_rules(cache):
    extractor = ResilientQueryExtractor(StubExtractor(item=RuntimeError("model down")), timeout_sec=1)
    result = ResolutionPipeline(cache, extractor).check_availability("Need 300 pcs black card holder")
    assert result["parsed"]["product"] == "card holder"
    assert result["parsed"]["quantity"] == 300
    assert result["availability"]["found"] is True


def test_multi_availability_two_items(pipeline):
    result = pipeline.check_multi_availability("1,500 pcs t-shirts, 500 pcs hoodies")
    assert result["totalProductsRequested"] == 2
    assert result["totalProductsFound"] == 2
    first, second = result["results"]
    assert first["originalQuery"] == "1500 pcs t-shirts"
    assert first["availability"]["matchingProducts"][0]["product"]["name"] == "Cotton T-Shirt"
    assert second["synonymResolved"] == "Pullover Hoodie"
    assert second["availability"]["matchingProducts"][0]["recommendation"]["source"] == "china"
    assert result["combinedSummary"] == (
        "Available: 1500 pcs Cotton T-Shirt (china), 500 pcs Pullover Hoodie (china)."
    )


def test_multi_availability_reports_missing_items(pipeline):
    result = pipeline.check_multi_availability("100 pcs flying carpets, 50 pcs pendrive")
    assert result["totalProductsFound"] == 1
    missing, found = result["results"]
    assert missing["availability"]["found"] is False
    recommendation = found["availability"]["matchingProducts"][0]["recommendation"]
    assert recommendation["source"] == "local"
    assert recommendation["warning"] == "quantity 50 is below the local supplier MOQ (100)"
    assert result["combinedSummary"] == (
        "Available: 50 pcs USB Flash Drive (local - Gadget Hub). Not found: flying carpets."
    )


def test_multi_availability_batch_urgency(pipeline):
    result = pipeline.check_multi_availability("1,500 pcs t-shirts", urgent=True)
    item = result["results"][0]
    assert item["parsed"]["urgent"] is True
    assert item["availability"]["matchingProducts"][0]["recommendation"]["source"] == "local"


def test_resolve_terms_confidence_levels(pipeline):
    resolutions = pipeline.resolve_terms(["Card Holder", "badge case", "holder", "flying carpet", "apparel"])[
        "resolutions"
    ]
    assert [item["confidence"] for item in resolutions] == ["exact", "synonym", "fuzzy", "not_found", "fuzzy"]
    assert resolutions[0]["category"] == "Corporate Gifts"
    assert resolutions[1]["canonicalName"] == "Card Holder"
    assert resolutions[2]["canonicalName"] == "Card Holder"
    assert resolutions[3] == {
        "input": "flying carpet",
        "canonicalName": None,
        "confidence": "not_found",
        "alternates": [],
        "category": None,
    }
    assert resolutions[4]["canonicalName"] == "Cotton T-Shirt"
    assert resolutions[4]["alternates"] == ["Pullover Hoodie"]


def test_resolve_terms_validation(pipeline):
    with pytest.raises(InvalidRequestError):
        pipeline.resolve_terms([])
    with pytest.raises(InvalidRequestError):
        pipeline.resolve_terms(["ok", 3])


def test_list_synonyms(pipeline):
    result = pipeline.list_synonyms()
    assert result["total"] == 3
    assert result["synonyms"][0] == {"customerSays": "badge case", "weCallIt": "Card Holder", "notes": ""}

from dataclasses import replace

from product_agent.catalog_store import LocalSourcing, OverseasSourcing, Product
from product_agent.sourcing import (
    CUSTOM_COLOR_NOTE,
    REASON_DEFAULT,
    REASON_OVERSEAS_UNAVAILABLE,
    REASON_URGENT,
    apply_sourcing_warnings,
    check_color_availability,
    color_match,
    recommend_sourcing,
)

from .conftest import card_holder


def test_color_check_without_color_is_always_available():
    availability = check_color_availability(card_holder(), None)
    assert availability.available is True
    assert availability.source == "any"
    assert check_color_availability(card_holder(), "  ").source == "any"


def test_color_check_tiers_in_order():
    product = replace(card_holder(), local=LocalSourcing(supplier="ABC Supplies", moq=100, colors=("Black", "Navy")))
    assert check_color_availability(product, "black").source == "website"
    assert check_color_availability(product, "Navy").source == "local"
    assert check_color_availability(product, "blue").source == "china"
    missing = check_color_availability(product, "white")
    assert missing.available is False
    assert missing.source == "any"


def test_color_check_generic_overseas_capability_adds_note():
    product = replace(card_holder(), china=OverseasSourcing(available=True, moq=1000, colors="Any Pantone color"))
    availability = check_color_availability(product, "white")
    assert availability.available is True
    assert availability.source == "china"
    assert availability.note == CUSTOM_COLOR_NOTE


def test_color_check_ignores_overseas_tier_when_unavailable():
    product = replace(card_holder(), china=OverseasSourcing(available=False, colors="Any Pantone color"))
    assert check_color_availability(product, "white").available is False


def test_color_match_flags():
    product = card_holder()
    website = color_match(product, check_color_availability(product, "black"))
    assert website.to_dict() == {"onWebsite": True, "fromLocal": True, "fromChina": True}
    overseas = color_match(product, check_color_availability(product, "blue"))
    assert overseas.to_dict() == {"onWebsite": False, "fromLocal": False, "fromChina": True}


def test_recommend_overseas_unavailable_beats_everything():
    product = replace(card_holder(), china=OverseasSourcing(available=False, moq=10))
    recommendation = recommend_sourcing(product, 5000, urgent=False)
    assert recommendation.source == "local"
    assert recommendation.reason == REASON_OVERSEAS_UNAVAILABLE


def test_recommend_urgent_overrides_quantity():
    recommendation = recommend_sourcing(card_holder(), 5000, urgent=True)
    assert recommendation.source == "local"
    assert recommendation.reason == REASON_URGENT
    assert recommendation.supplier == "ABC Supplies"
    assert recommendation.lead_time == "3-5 days"


def test_recommend_moq_boundary():
    product = card_holder()
    below = recommend_sourcing(product, 999, urgent=False)
    at = recommend_sourcing(product, 1000, urgent=False)
    assert below.source == "local"
    assert below.reason == "Quantity 999 below overseas MOQ (1000)"
    assert at.source == "china"
    assert "MOQ (1000)" in at.reason
    assert at.moq == 1000
    assert at.freight == ("air", "sea")


def test_recommend_defaults_to_local_without_quantity_or_moq():
    assert recommend_sourcing(card_holder(), None, urgent=False).reason == REASON_DEFAULT
    product = replace(card_holder(), china=OverseasSourcing(available=True, moq=None))
    assert recommend_sourcing(product, 5000, urgent=False).reason == REASON_DEFAULT


def test_recommendation_to_dict_omits_empty_fields():
    product = Product(name="Mug", china=OverseasSourcing(available=False))
    assert recommend_sourcing(product, None, urgent=False).to_dict() == {
        "source": "local",
        "reason": REASON_OVERSEAS_UNAVAILABLE,
    }


def test_warning_for_overseas_only_color_on_local_recommendation():
    product = card_holder()
    availability = check_color_availability(product, "blue")
    recommendation = recommend_sourcing(product, 200, urgent=True)
    warned = apply_sourcing_warnings(recommendation, availability, product, 200)
    assert warned.warning == "requested color is only available via overseas custom order"


def test_warning_for_quantity_below_local_moq():
    product = card_holder()
    availability = check_color_availability(product, None)
    recommendation = recommend_sourcing(product, 20, urgent=False)
    warned = apply_sourcing_warnings(recommendation, availability, product, 20)
    assert warned.warning == "quantity 20 is below the local supplier MOQ (100)"


def test_no_warning_on_overseas_recommendation():
    product = card_holder()
    availability = check_color_availability(product, "blue")
    recommendation = recommend_sourcing(product, 2000, urgent=False)
    assert apply_sourcing_warnings(recommendation, availability, product, 2000).warning is None

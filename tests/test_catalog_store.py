import json

import pytest

from product_agent.catalog_store import (
    PRODUCT_COLUMNS,
    JsonCatalogStore,
    ScrapedProductRow,
    parse_product_row,
    parse_synonym_row,
    row_to_cells,
)

CARD_HOLDER_ROW = [
    "Card Holder",
    "Corporate Gifts",
    "/card-holder",
    "badge holder, ID holder",
    "Black, Clear",
    "ABC Supplies",
    "100",
    "3-5 days",
    "Black, Clear",
    "yes",
    "1,000",
    "yes",
    "",
    "Any Pantone color",
    "",
    "2026-09-01",
]


def write_catalog(path, products, synonyms=()):
    path.write_text(json.dumps({"products": list(products), "synonyms": list(synonyms)}), encoding="utf-8")


def test_parse_product_row_builds_nested_sourcing():
    product = parse_product_row(CARD_HOLDER_ROW)
    assert product.name == "Card Holder"
    assert product.website_colors == ("Black", "Clear")
    assert product.local.supplier == "ABC Supplies"
    assert product.local.moq == 100
    assert product.china.available is True
    assert product.china.moq == 1000
    assert product.china.freight_modes() == ("air",)
    assert product.alias_list() == ["badge holder", "ID holder"]


def test_parse_product_row_defaults_for_short_and_empty_rows():
    product = parse_product_row(["Card Holder", "", "", "", "Black, Clear"])
    assert product.website_colors == ("Black", "Clear")
    assert product.local.moq is None
    assert product.china.available is False
    assert product.notes == ""
    assert parse_product_row(["", "Apparel"]) is None
    assert parse_product_row([]) is None


def test_parse_product_row_accepts_header_keyed_rows():
    row = {"Product Name": "Mug", "Local MOQ": "TBC", "China Available?": True, "Colors on Website": ["Red", "Blue"]}
    product = parse_product_row(row)
    assert product.name == "Mug"
    assert product.local.moq is None
    assert product.china.available is True
    assert product.website_colors == ("Red", "Blue")


def test_parse_synonym_row_requires_both_sides():
    synonym = parse_synonym_row(["badge case", "Card Holder", "common"])
    assert synonym.to_dict() == {"customerSays": "badge case", "weCallIt": "Card Holder", "notes": "common"}
    assert parse_synonym_row(["badge case", ""]) is None
    assert parse_synonym_row({"customer says": "tee", "we call it": "Cotton T-Shirt"}).we_call_it == "Cotton T-Shirt"


def test_row_to_cells_pads_missing_columns():
    cells = row_to_cells(["Mug"], PRODUCT_COLUMNS)
    assert cells["product_name"] == "Mug"
    assert cells["last_updated"] == ""
    assert len(cells) == len(PRODUCT_COLUMNS)


def test_product_to_dict_without_sourcing():
    data = parse_product_row(CARD_HOLDER_ROW).to_dict(include_sourcing=False)
    assert set(data) == {"name", "category", "url", "otherNames", "websiteColors"}
    full = parse_product_row(CARD_HOLDER_ROW).to_dict()
    assert full["sourcing"]["local"]["leadTime"] == "3-5 days"
    assert full["sourcing"]["china"]["moq"] == 1000


def test_json_store_lists_and_skips_bad_rows(tmp_path):
    path = tmp_path / "catalog.json"
    write_catalog(path, [CARD_HOLDER_ROW, ["", "no name"]], [["badge case", "Card Holder", ""], ["orphan", ""]])
    store = JsonCatalogStore(path)
    assert [product.name for product in store.list_products()] == ["Card Holder"]
    assert [synonym.customer_says for synonym in store.list_synonyms()] == ["badge case"]


def test_json_store_rejects_malformed_document(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"products": {"not": "a list"}}), encoding="utf-8")
    with pytest.raises(ValueError):
        JsonCatalogStore(path).list_products()
    with pytest.raises(FileNotFoundError):
        JsonCatalogStore(tmp_path / "missing.json").list_products()


def test_json_store_append_and_existing_urls(tmp_path):
    path = tmp_path / "catalog.json"
    write_catalog(path, [CARD_HOLDER_ROW])
    store = JsonCatalogStore(path)
    written = store.append_products([ScrapedProductRow("Canvas Tote", "Bags", "/canvas-tote", colors_on_website="Natural")])
    assert written == 1
    assert store.existing_product_urls() == {"/card-holder": 0, "/canvas-tote": 1}
    document = json.loads(path.read_text(encoding="utf-8"))
    assert len(document["products"][1]) == len(PRODUCT_COLUMNS)
    assert "updated_at" in document
    assert store.append_products([]) == 0


def test_json_store_update_keeps_curated_columns(tmp_path):
    path = tmp_path / "catalog.json"
    write_catalog(path, [CARD_HOLDER_ROW])
    store = JsonCatalogStore(path)
    store.update_product(0, product_name="Card Holder Deluxe", colors_on_website="Black, Red")
    product = store.list_products()[0]
    assert product.name == "Card Holder Deluxe"
    assert product.category == "Corporate Gifts"
    assert product.website_colors == ("Black", "Red")
    assert product.local.supplier == "ABC Supplies"
    assert product.china.moq == 1000
    with pytest.raises(IndexError):
        store.update_product(5, product_name="nope")

from product_agent.catalog_store import Product, Synonym
from product_agent.matcher import exact_product, find_products, match_products, product_matches, resolve_synonym
from product_agent.utils import contains_ignore_case, normalize


def test_resolve_synonym_exact_and_plural(synonyms):
    assert resolve_synonym("Badge Case", synonyms) == "Card Holder"
    assert resolve_synonym("badge cases", synonyms) == "Card Holder"
    assert resolve_synonym("", synonyms) is None
    assert resolve_synonym("flying carpet", synonyms) is None


def test_resolve_synonym_substring_of_longer_text(synonyms):
    assert resolve_synonym("Do you have white badge case? Need 200 pieces", synonyms) == "Card Holder"


def test_resolve_synonym_exact_pass_beats_earlier_substring_row():
    rows = [
        Synonym(customer_says="case", we_call_it="Phone Case"),
        Synonym(customer_says="badge case", we_call_it="Card Holder"),
    ]
    assert resolve_synonym("badge case", rows) == "Card Holder"
    assert resolve_synonym("a badge case please", rows) == "Phone Case"


def test_resolve_synonym_is_unidirectional():
    rows = [Synonym(customer_says="white badge case", we_call_it="Card Holder")]
    assert resolve_synonym("badge case", rows) is None


def test_find_products_by_name_category_and_alias(products):
    assert [p.name for p in find_products("card holder", products)] == ["Card Holder"]
    assert [p.name for p in find_products("apparel", products)] == ["Cotton T-Shirt", "Pullover Hoodie"]
    assert [p.name for p in find_products("ID holder", products)] == ["Card Holder"]
    # alias contained in the term
    assert [p.name for p in find_products("blue tee", products)] == ["Cotton T-Shirt"]


def test_find_products_blank_term_returns_nothing(products):
    assert find_products("", products) == []
    assert find_products("   ", products) == []


def test_find_products_has_no_false_positives(products):
    for term in ("holder", "drive", "apparel", "shirt", "tee", "gadgets", "flying carpet", "hoodie"):
        term_norm = normalize(term)
        for product in find_products(term, products):
            hit = contains_ignore_case(product.name, term_norm) or contains_ignore_case(product.category, term_norm)
            hit = hit or any(
                contains_ignore_case(alias, term_norm) or contains_ignore_case(term_norm, alias)
                for alias in product.alias_list()
            )
            assert hit, (term, product.name)


def test_find_products_preserves_catalog_order(products):
    result = find_products("a", products)
    positions = [products.index(product) for product in result]
    assert positions == sorted(positions)


def test_match_products_retries_with_singular(products):
    assert [p.name for p in match_products("card holders", products)] == ["Card Holder"]
    assert [p.name for p in match_products("usb flash drives", products)] == ["USB Flash Drive"]
    assert match_products("flying carpets", products) == []


def test_product_matches_ignores_empty_aliases():
    product = Product(name="Mug", other_names=" , ")
    assert not product_matches(product, "cup")


def test_exact_product(products):
    assert exact_product("  card HOLDER ", products).name == "Card Holder"
    assert exact_product("card", products) is None
    assert exact_product("", products) is None


def test_canonical_names_do_not_resolve_again(synonyms):
    spoken = {normalize(row.customer_says) for row in synonyms}
    for row in synonyms:
        canonical = normalize(row.we_call_it)
        if canonical in spoken or any(phrase in canonical for phrase in spoken):
            continue
        assert resolve_synonym(row.we_call_it, synonyms) is None, row.we_call_it
    assert resolve_synonym("Card Holder", synonyms) is None
    assert resolve_synonym("USB Flash Drive", synonyms) is None


def test_canonical_name_containing_a_spoken_phrase_maps_to_itself(synonyms):
    # "hoodie" sits inside "Pullover Hoodie", so the substring pass fires.
    assert resolve_synonym("Pullover Hoodie", synonyms) == "Pullover Hoodie"

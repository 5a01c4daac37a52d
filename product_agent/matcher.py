from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .catalog_store import Product, Synonym
from .utils import contains_ignore_case, normalize, normalize_for_synonym, singularize

logger = logging.getLogger("product_agent.matcher")


def resolve_synonym(term: Optional[str], synonyms: Sequence[Synonym]) -> Optional[str]:
    """Purpose: Map customer phrasing to the catalog's canonical term.
    Inputs/Outputs: Input is a raw term and synonym rows in load order; output is the
        matched row's we_call_it value or None.
    Side Effects / State: None.
    Dependencies: Uses normalize_for_synonym so simple plurals match on either side.
    Failure Modes: Blank terms and rows with blank customer_says never match.
    If Removed: "badge case" style requests never reach the canonical product name.
    Testing Notes: Exact pass beats substring pass even when a substring row comes
        first; "white badge cases please" resolves through the substring pass.
    """
    # Exact pass over every row first, then term-contains-synonym pass.
    term_variants = normalize_for_synonym(term)
    if not term_variants:
        return None
    candidates = [(row, normalize_for_synonym(row.customer_says)) for row in synonyms]
    candidates = [(row, variants) for row, variants in candidates if variants]

    for row, variants in candidates:
        if any(term_variant == variant for term_variant in term_variants for variant in variants):
            logger.debug("synonym_match=exact term=%s canonical=%s", term, row.we_call_it)
            return row.we_call_it

    for row, variants in candidates:
        if any(variant in term_variant for term_variant in term_variants for variant in variants):
            logger.debug("synonym_match=substring term=%s canonical=%s", term, row.we_call_it)
            return row.we_call_it
    return None


def product_matches(product: Product, term: str) -> bool:
    """True when the term hits the product's name, category, or any alias."""
    if contains_ignore_case(product.name, term):
        return True
    if contains_ignore_case(product.category, term):
        return True
    for alias in product.alias_list():
        if contains_ignore_case(alias, term) or contains_ignore_case(term, alias):
            return True
    return False


def find_products(term: Optional[str], products: Sequence[Product]) -> List[Product]:
    """Purpose: Return the catalog products matching a search term.
    Inputs/Outputs: Input is the effective search term and products in catalog order;
        output is the matching products, catalog order preserved.
    Side Effects / State: None.
    Dependencies: Uses product_matches.
    Failure Modes: A blank term returns an empty list rather than the whole catalog.
    If Removed: Nothing downstream can recommend a product.
    Testing Notes: Results are a subsequence of the catalog; no ranking is applied.
    """
    # Keep catalog order; callers treat the first element as primary.
    search_term = normalize(term)
    if not search_term:
        return []
    return [product for product in products if product_matches(product, search_term)]


def match_products(term: Optional[str], products: Sequence[Product]) -> List[Product]:
    """Purpose: find_products with a single plural-tolerant retry.
    Inputs/Outputs: Input is a search term and products; output is matching products.
    Side Effects / State: None.
    Dependencies: Uses find_products and singularize on the term's last word.
    Failure Modes: Returns [] when neither form matches.
    If Removed: "card holders" no longer finds "Card Holder".
    Testing Notes: Retry only happens when the first pass is empty.
    """
    # Retry with the singular head noun when the literal term finds nothing.
    matches = find_products(term, products)
    if matches:
        return matches
    search_term = normalize(term)
    if not search_term:
        return []
    words = search_term.split(" ")
    words[-1] = singularize(words[-1])
    singular_term = " ".join(words)
    if singular_term == search_term:
        return []
    matches = find_products(singular_term, products)
    if matches:
        logger.debug("product_match=singular term=%s singular=%s count=%s", term, singular_term, len(matches))
    return matches


def exact_product(term: Optional[str], products: Sequence[Product]) -> Optional[Product]:
    """Return the first product whose name equals the term after normalization."""
    search_term = normalize(term)
    if not search_term:
        return None
    for product in products:
        if normalize(product.name) == search_term:
            return product
    return None

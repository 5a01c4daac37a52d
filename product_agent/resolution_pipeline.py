"""Query resolution: from raw customer text to matched products and sourcing advice.

Role:
    Composes the synonym resolver, product matcher, color checker and sourcing
    recommender over one catalog snapshot per request, and renders the summaries
    returned by the availability endpoints.

Single-item step contract (ResolutionContext fields written by each step):
    validate:         query is a non-empty string, quantity is non-negative.
    snapshot:         the catalog snapshot used for the rest of the request.
    quantity_scan:    quantity from the request or from a "<n> pcs" scan of the text.
    raw_synonym:      synonym_from_query, resolved on the whole raw text.
    extraction:       parsed (ParsedQueryItem) from the resilient extractor.
    parsed_synonym:   synonym_from_parsed, resolved on parsed.product_type.
    product_matching: synonym_resolved, effective_term and products.
    availability:     matches (ProductMatch per product) and color_available.
    summary:          summary text from the top-ranked match.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .catalog_cache import CatalogCache, CatalogSnapshot
from .catalog_store import Product
from .errors import InvalidRequestError
from .matcher import exact_product, match_products, resolve_synonym
from .pipeline_runtime import PipelineStep, StepRunner
from .query_extractor import ParsedQueryItem, QueryExtractor, parse_quantity_from_query
from .sourcing import (
    ColorAvailability,
    ColorMatch,
    SourcingRecommendation,
    apply_sourcing_warnings,
    check_color_availability,
    color_match,
    recommend_sourcing,
)
from .summaries import (
    CombinedEntry,
    availability_summary,
    color_unavailable_summary,
    combined_summary,
    not_found_summary,
)

logger = logging.getLogger("product_agent.pipeline")

CONFIDENCE_EXACT = "exact"
CONFIDENCE_SYNONYM = "synonym"
CONFIDENCE_FUZZY = "fuzzy"
CONFIDENCE_NOT_FOUND = "not_found"


@dataclass
class ProductMatch:
    product: Product
    color_match: ColorMatch
    color_availability: ColorAvailability
    recommendation: SourcingRecommendation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "colorMatch": self.color_match.to_dict(),
            "colorAvailability": self.color_availability.to_dict(),
            "recommendation": self.recommendation.to_dict(),
        }


@dataclass
class ResolutionContext:
    """Mutable state shared by the single-item resolution steps."""
    query: Any
    snapshot: CatalogSnapshot = CatalogSnapshot()
    request_quantity: Optional[int] = None
    request_urgent: bool = False
    quantity: Optional[int] = None
    synonym_from_query: Optional[str] = None
    synonym_from_parsed: Optional[str] = None
    synonym_resolved: Optional[str] = None
    parsed: Optional[ParsedQueryItem] = None
    effective_term: str = ""
    urgent: bool = False
    products: List[Product] = field(default_factory=list)
    matches: List[ProductMatch] = field(default_factory=list)
    color_available: bool = False
    summary: str = ""

    def to_response(self) -> Dict[str, Any]:
        parsed = self.parsed
        return {
            "query": self.query,
            "parsed": {
                "product": parsed.product_type if parsed else None,
                "color": parsed.color if parsed else None,
                "quantity": self.quantity,
                "urgent": self.urgent,
            },
            "synonymResolved": self.synonym_resolved,
            "availability": {
                "found": bool(self.matches),
                "colorAvailable": self.color_available,
                "matchingProducts": [match.to_dict() for match in self.matches],
            },
            "summary": self.summary,
        }


def build_matches(
    products: Sequence[Product],
    color: Optional[str],
    quantity: Optional[int],
    urgent: bool,
) -> List[ProductMatch]:
    """Purpose: Run the color check and sourcing recommendation for each product.
    Inputs/Outputs: Inputs are matched products plus the request slots; output is one
        ProductMatch per product, in the same order.
    Side Effects / State: None.
    Dependencies: sourcing.check_color_availability/recommend_sourcing/apply_sourcing_warnings.
    Failure Modes: None.
    If Removed: Matched products carry no availability or sourcing data.
    Testing Notes: Order of the output equals order of the input products.
    """
    # Recommendations are per product; the first one drives the summary.
    matches: List[ProductMatch] = []
    for product in products:
        availability = check_color_availability(product, color)
        recommendation = recommend_sourcing(product, quantity, urgent)
        recommendation = apply_sourcing_warnings(recommendation, availability, product, quantity)
        matches.append(
            ProductMatch(
                product=product,
                color_match=color_match(product, availability),
                color_availability=availability,
                recommendation=recommendation,
            )
        )
    return matches


def render_summary(
    product_type: str,
    color: Optional[str],
    quantity: Optional[int],
    matches: Sequence[ProductMatch],
    color_available: bool,
) -> str:
    if not matches:
        return not_found_summary(product_type)
    if color and not color_available:
        return color_unavailable_summary(product_type, color)
    top = matches[0]
    return availability_summary(top.product.name, color, top.recommendation, quantity)


class ResolutionPipeline:
    """Answers search, availability and term-resolution requests from the cache."""

    def __init__(self, cache: CatalogCache, extractor: QueryExtractor) -> None:
        """Purpose: Wire the cache and extractor and build the single-item steps.
        Inputs/Outputs: Inputs are a CatalogCache and a QueryExtractor; no return value.
        Side Effects / State: Builds a StepRunner with the ordered steps.
        Dependencies: StepRunner/PipelineStep from pipeline_runtime.
        Failure Modes: None at init.
        If Removed: The HTTP layer has nothing to call.
        Testing Notes: Construct with a populated cache and the fallback extractor.
        """
        # Step order is part of the contract; see the module docstring.
        self._cache = cache
        self._extractor = extractor
        self._runner = StepRunner(
            steps=[
                PipelineStep("validate", self._step_validate),
                PipelineStep("snapshot", self._step_snapshot),
                PipelineStep("quantity_scan", self._step_quantity_scan),
                PipelineStep("raw_synonym", self._step_raw_synonym),
                PipelineStep("extraction", self._step_extraction),
                PipelineStep("parsed_synonym", self._step_parsed_synonym),
                PipelineStep("product_matching", self._step_product_matching),
                PipelineStep("availability", self._step_availability),
                PipelineStep("summary", self._step_summary),
            ]
        )

    def search(self, query: Any, include_sourcing: bool = True) -> Dict[str, Any]:
        """Purpose: Look up products by name, category or alias after synonym mapping.
        Inputs/Outputs: Inputs are the query and include_sourcing flag; output is
            {query, synonymResolved, products, totalFound}.
        Side Effects / State: Reads one snapshot; logs the result counts.
        Dependencies: resolve_synonym and match_products.
        Failure Modes: InvalidRequestError for a blank query; CatalogUnavailableError
            before the first successful refresh.
        If Removed: The search endpoint has no implementation.
        Testing Notes: "flying carpet" -> totalFound 0.
        """
        # Synonym first; the canonical term replaces the raw text when it resolves.
        query = _require_query(query)
        snapshot = self._cache.require_snapshot()
        synonym_resolved = resolve_synonym(query, snapshot.synonyms)
        products = match_products(synonym_resolved or query, snapshot.products)
        logger.info(
            "query=%s op=search synonym=%s total_found=%s",
            json.dumps(query, ensure_ascii=True),
            synonym_resolved,
            len(products),
        )
        return {
            "query": query,
            "synonymResolved": synonym_resolved,
            "products": [product.to_dict(include_sourcing=include_sourcing) for product in products],
            "totalFound": len(products),
        }

    def check_availability(
        self,
        query: Any,
        quantity: Optional[int] = None,
        urgent: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Purpose: Resolve one product request into matches, sourcing and a summary.
        Inputs/Outputs: Inputs are the raw query and optional quantity/urgent overrides;
            output is the availability response dict.
        Side Effects / State: Reads one snapshot; may call the hosted extractor.
        Dependencies: StepRunner steps defined on this class.
        Failure Modes: InvalidRequestError, CatalogUnavailableError; extractor failures
            never surface (the resilient extractor falls back).
        If Removed: The availability endpoint has no implementation.
        Testing Notes: White badge case urgently -> local, colorAvailable False.
        """
        # The snapshot step pins one catalog snapshot for the whole request.
        context = ResolutionContext(
            query=query,
            request_quantity=quantity,
            request_urgent=bool(urgent),
        )
        self._runner.run(context, request_label=_label(query))
        logger.info(
            "query=%s op=availability synonym=%s effective=%s quantity=%s urgent=%s matches=%s recommendations=%s",
            _label(query),
            context.synonym_resolved,
            json.dumps(context.effective_term, ensure_ascii=True),
            context.quantity,
            context.urgent,
            len(context.matches),
            json.dumps(
                [
                    {"product": match.product.name, "source": match.recommendation.source}
                    for match in context.matches
                ],
                ensure_ascii=True,
            ),
        )
        return context.to_response()

    def check_multi_availability(self, query: Any, urgent: Optional[bool] = None) -> Dict[str, Any]:
        """Purpose: Resolve every product requested in one message independently.
        Inputs/Outputs: Inputs are the raw query and optional batch urgency; output is
            {query, totalProductsRequested, totalProductsFound, results, combinedSummary}.
        Side Effects / State: Reads one snapshot; one batch extraction call.
        Dependencies: QueryExtractor.extract_multi, build_matches, summaries.
        Failure Modes: InvalidRequestError, CatalogUnavailableError.
        If Removed: The multi-availability endpoint has no implementation.
        Testing Notes: "1,500 pcs t-shirts, 500 pcs hoodies" -> two results in order.
        """
        # Items share only the snapshot and the batch urgency default.
        query = _require_query(query)
        snapshot = self._cache.require_snapshot()
        batch = self._extractor.extract_multi(query)
        batch_urgent = bool(urgent) or batch.global_urgent

        results: List[Dict[str, Any]] = []
        entries: List[CombinedEntry] = []
        for item in batch.items:
            synonym_resolved = resolve_synonym(item.product_type, snapshot.synonyms)
            effective_term = synonym_resolved or item.product_type
            item_urgent = item.urgent or batch_urgent
            products = match_products(effective_term, snapshot.products)
            matches = build_matches(products, item.color, item.quantity, item_urgent)
            color_available = any(match.color_availability.available for match in matches)
            summary = render_summary(item.product_type, item.color, item.quantity, matches, color_available)
            results.append(
                {
                    "originalQuery": _item_label(item),
                    "parsed": {
                        "product": item.product_type,
                        "color": item.color,
                        "quantity": item.quantity,
                        "urgent": item_urgent,
                    },
                    "synonymResolved": synonym_resolved,
                    "availability": {
                        "found": bool(matches),
                        "colorAvailable": color_available,
                        "matchingProducts": [match.to_dict() for match in matches],
                    },
                    "summary": summary,
                }
            )
            top = matches[0] if matches else None
            entries.append(
                CombinedEntry(
                    found=top is not None,
                    name=top.product.name if top else item.product_type,
                    color=item.color,
                    quantity=item.quantity,
                    source=top.recommendation.source if top else None,
                    supplier=top.recommendation.supplier if top else None,
                )
            )

        total_found = sum(1 for entry in entries if entry.found)
        logger.info(
            "query=%s op=availability_multi items=%s found=%s",
            _label(query),
            len(results),
            total_found,
        )
        return {
            "query": query,
            "totalProductsRequested": len(results),
            "totalProductsFound": total_found,
            "results": results,
            "combinedSummary": combined_summary(entries),
        }

    def resolve_terms(self, terms: Any) -> Dict[str, Any]:
        """Purpose: Map raw terms to canonical product names with a confidence label.
        Inputs/Outputs: Input is a non-empty list of strings; output is {resolutions}.
        Side Effects / State: Reads one snapshot.
        Dependencies: exact_product, resolve_synonym, match_products.
        Failure Modes: InvalidRequestError for an empty list or non-string terms.
        If Removed: Callers cannot normalize product names before ordering.
        Testing Notes: Confidence order is exact, synonym, fuzzy, not_found.
        """
        # Same snapshot for every term in the request.
        if not isinstance(terms, list) or not terms:
            raise InvalidRequestError("terms must be a non-empty list", details={"field": "terms"})
        if not all(isinstance(term, str) for term in terms):
            raise InvalidRequestError("terms must contain only strings", details={"field": "terms"})
        snapshot = self._cache.require_snapshot()
        resolutions = [self._resolve_term(term, snapshot) for term in terms]
        logger.info(
            "op=resolve_terms terms=%s confidences=%s",
            len(terms),
            json.dumps([item["confidence"] for item in resolutions], ensure_ascii=True),
        )
        return {"resolutions": resolutions}

    def list_synonyms(self) -> Dict[str, Any]:
        snapshot = self._cache.require_snapshot()
        return {
            "synonyms": [synonym.to_dict() for synonym in snapshot.synonyms],
            "total": len(snapshot.synonyms),
        }

    def _resolve_term(self, term: str, snapshot: CatalogSnapshot) -> Dict[str, Any]:
        canonical: Optional[str] = None
        category: Optional[str] = None
        confidence = CONFIDENCE_NOT_FOUND
        matches: List[Product] = []

        exact = exact_product(term, snapshot.products)
        synonym = None if exact else resolve_synonym(term, snapshot.synonyms)
        if exact is not None:
            canonical, category, confidence = exact.name, exact.category, CONFIDENCE_EXACT
            matches = match_products(term, snapshot.products)
        elif synonym is not None:
            canonical, confidence = synonym, CONFIDENCE_SYNONYM
            matches = match_products(synonym, snapshot.products)
            primary = exact_product(synonym, snapshot.products) or (matches[0] if matches else None)
            category = primary.category if primary else None
        else:
            matches = match_products(term, snapshot.products)
            if matches:
                canonical, category, confidence = matches[0].name, matches[0].category, CONFIDENCE_FUZZY

        alternates: List[str] = []
        for product in matches:
            if product.name != canonical and product.name not in alternates:
                alternates.append(product.name)
        return {
            "input": term,
            "canonicalName": canonical,
            "confidence": confidence,
            "alternates": alternates,
            "category": category or None,
        }

    def _step_validate(self, context: ResolutionContext) -> None:
        context.query = _require_query(context.query)
        quantity = context.request_quantity
        if quantity is not None and (isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0):
            raise InvalidRequestError("quantity must be a non-negative integer", details={"field": "quantity"})

    def _step_snapshot(self, context: ResolutionContext) -> None:
        context.snapshot = self._cache.require_snapshot()

    def _step_quantity_scan(self, context: ResolutionContext) -> None:
        if context.request_quantity is not None:
            context.quantity = context.request_quantity
            return
        context.quantity = parse_quantity_from_query(context.query)
        if context.quantity is not None:
            logger.debug("query=%s quantity_scan=%s", _label(context.query), context.quantity)

    def _step_raw_synonym(self, context: ResolutionContext) -> None:
        context.synonym_from_query = resolve_synonym(context.query, context.snapshot.synonyms)

    def _step_extraction(self, context: ResolutionContext) -> None:
        parsed = self._extractor.extract(context.query)
        context.parsed = parsed
        if context.quantity is None:
            context.quantity = parsed.quantity
        context.urgent = context.request_urgent or parsed.urgent

    def _step_parsed_synonym(self, context: ResolutionContext) -> None:
        context.synonym_from_parsed = resolve_synonym(context.parsed.product_type, context.snapshot.synonyms)

    def _step_product_matching(self, context: ResolutionContext) -> None:
        # The raw-text synonym wins over the one found on the extractor's paraphrase.
        context.synonym_resolved = context.synonym_from_query or context.synonym_from_parsed
        context.effective_term = context.synonym_resolved or context.parsed.product_type
        context.products = match_products(context.effective_term, context.snapshot.products)

    def _step_availability(self, context: ResolutionContext) -> None:
        context.matches = build_matches(context.products, context.parsed.color, context.quantity, context.urgent)
        context.color_available = any(match.color_availability.available for match in context.matches)

    def _step_summary(self, context: ResolutionContext) -> None:
        context.summary = render_summary(
            context.parsed.product_type,
            context.parsed.color,
            context.quantity,
            context.matches,
            context.color_available,
        )


def _require_query(query: Any) -> str:
    if not isinstance(query, str) or not query.strip():
        raise InvalidRequestError("Query is required", details={"field": "query"})
    return query


def _label(query: Any) -> str:
    return json.dumps(query if isinstance(query, str) else str(query), ensure_ascii=True)


def _item_label(item: ParsedQueryItem) -> str:
    parts = []
    if item.quantity:
        parts.append(f"{item.quantity} pcs")
    if item.color:
        parts.append(item.color)
    parts.append(item.product_type)
    return " ".join(parts).strip()

"""Color availability tiers and the local-vs-overseas sourcing decision table."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from .catalog_store import Product
from .utils import contains_ignore_case, normalize

SOURCE_WEBSITE = "website"
SOURCE_LOCAL = "local"
SOURCE_CHINA = "china"
SOURCE_ANY = "any"

CUSTOM_COLOR_NOTE = "custom color available via overseas sourcing"

REASON_OVERSEAS_UNAVAILABLE = "Overseas sourcing not available for this product"
REASON_URGENT = "Urgent delivery requested - local supplier fastest"
REASON_DEFAULT = "Default to local supplier for standard orders"

_ANY_WORD_RE = re.compile(r"\bany\b")


@dataclass(frozen=True)
class ColorAvailability:
    available: bool
    source: str
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"available": self.available, "source": self.source}
        if self.note:
            data["note"] = self.note
        return data


@dataclass(frozen=True)
class ColorMatch:
    """Per-tier view of where a requested color can come from."""
    on_website: bool
    from_local: bool
    from_china: bool

    def to_dict(self) -> Dict[str, bool]:
        return {"onWebsite": self.on_website, "fromLocal": self.from_local, "fromChina": self.from_china}


@dataclass(frozen=True)
class SourcingRecommendation:
    source: str
    reason: str
    supplier: Optional[str] = None
    moq: Optional[int] = None
    lead_time: Optional[str] = None
    warning: Optional[str] = None
    freight: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source, "reason": self.reason}
        if self.supplier:
            data["supplier"] = self.supplier
        if self.moq is not None:
            data["moq"] = self.moq
        if self.lead_time:
            data["leadTime"] = self.lead_time
        if self.freight:
            data["freight"] = list(self.freight)
        if self.warning:
            data["warning"] = self.warning
        return data


def check_color_availability(product: Product, requested_color: Optional[str]) -> ColorAvailability:
    """Purpose: Decide whether a requested color is obtainable and from which tier.
    Inputs/Outputs: Input is a Product and an optional color; output is ColorAvailability.
    Side Effects / State: None.
    Dependencies: Uses contains_ignore_case for the storefront and local tiers.
    Failure Modes: None; an unknown color yields available=False, source="any".
    If Removed: Availability answers ignore colors entirely.
    Testing Notes: No color -> (True, "any"); "any custom color" overseas descriptor
        -> (True, "china") with the custom color note.
    """
    # Storefront, then local supplier, then the overseas custom tier.
    color = normalize(requested_color)
    if not color:
        return ColorAvailability(available=True, source=SOURCE_ANY)

    if _color_in(product.website_colors, color):
        return ColorAvailability(available=True, source=SOURCE_WEBSITE)
    if _color_in(product.local.colors, color):
        return ColorAvailability(available=True, source=SOURCE_LOCAL)

    if product.china.available:
        descriptor = normalize(product.china.colors)
        if "pantone" in descriptor or _ANY_WORD_RE.search(descriptor):
            return ColorAvailability(available=True, source=SOURCE_CHINA, note=CUSTOM_COLOR_NOTE)
        if contains_ignore_case(descriptor, color):
            return ColorAvailability(available=True, source=SOURCE_CHINA)

    return ColorAvailability(available=False, source=SOURCE_ANY)


def color_match(product: Product, availability: ColorAvailability) -> ColorMatch:
    """Project a ColorAvailability onto the per-tier flags reported to callers."""
    return ColorMatch(
        on_website=availability.source == SOURCE_WEBSITE,
        from_local=availability.source in (SOURCE_LOCAL, SOURCE_WEBSITE),
        from_china=product.china.available and (availability.source == SOURCE_CHINA or availability.available),
    )


def recommend_sourcing(product: Product, quantity: Optional[int], urgent: bool) -> SourcingRecommendation:
    """Purpose: Choose local or overseas fulfillment with a fixed decision table.
    Inputs/Outputs: Input is a Product, optional quantity, and urgency flag; output is
        a SourcingRecommendation.
    Side Effects / State: None.
    Dependencies: Reads product.local and product.china.
    Failure Modes: None; unknown quantity or MOQ falls through to the local default.
    If Removed: Responses cannot say where to source an order.
    Testing Notes: Overseas-unavailable beats urgent, urgent beats MOQ, quantity M-1 is
        local and quantity M is overseas for overseas MOQ M.
    """
    # Rules are evaluated top-down; the first applicable one wins.
    china = product.china
    if not china.available:
        return _local(product, REASON_OVERSEAS_UNAVAILABLE)
    if urgent:
        return _local(product, REASON_URGENT)
    if quantity is not None and china.moq is not None:
        if quantity < china.moq:
            return _local(product, f"Quantity {quantity} below overseas MOQ ({china.moq})")
        return SourcingRecommendation(
            source=SOURCE_CHINA,
            reason=f"Quantity {quantity} meets overseas MOQ ({china.moq}), better unit pricing at scale",
            moq=china.moq,
            freight=china.freight_modes(),
        )
    return _local(product, REASON_DEFAULT)


def apply_sourcing_warnings(
    recommendation: SourcingRecommendation,
    availability: ColorAvailability,
    product: Product,
    quantity: Optional[int],
) -> SourcingRecommendation:
    """Purpose: Attach a warning when the recommendation needs a compromise.
    Inputs/Outputs: Input is a recommendation, the color check, the product, and the
        quantity; output is the recommendation, possibly with warning set.
    Side Effects / State: None; returns a new frozen instance.
    Dependencies: Uses dataclasses.replace.
    Failure Modes: None.
    If Removed: Local recommendations silently hide color or MOQ problems.
    Testing Notes: White card holders urgently from local -> color warning.
    """
    # Only local recommendations can conflict with the color tier or the local MOQ.
    if recommendation.source != SOURCE_LOCAL:
        return recommendation
    warnings = []
    if availability.available and availability.source == SOURCE_CHINA:
        warnings.append("requested color is only available via overseas custom order")
    local_moq = product.local.moq
    if quantity is not None and local_moq is not None and quantity < local_moq:
        warnings.append(f"quantity {quantity} is below the local supplier MOQ ({local_moq})")
    if not warnings:
        return recommendation
    return replace(recommendation, warning="; ".join(warnings))


def _local(product: Product, reason: str) -> SourcingRecommendation:
    local = product.local
    return SourcingRecommendation(
        source=SOURCE_LOCAL,
        reason=reason,
        supplier=local.supplier or None,
        moq=local.moq,
        lead_time=local.lead_time or None,
    )


def _color_in(colors: Tuple[str, ...], color: str) -> bool:
    for candidate in colors:
        if contains_ignore_case(candidate, color) or contains_ignore_case(color, candidate):
            return True
    return False

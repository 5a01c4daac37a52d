from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .sourcing import SOURCE_CHINA, SourcingRecommendation


@dataclass
class CombinedEntry:
    """One requested item as it appears in the combined batch summary."""
    found: bool
    name: str
    color: Optional[str] = None
    quantity: Optional[int] = None
    source: Optional[str] = None
    supplier: Optional[str] = None


def not_found_summary(product_type: str) -> str:
    return (
        f'No products found matching "{product_type}". '
        "Please check the product name or try a different search term."
    )


def color_unavailable_summary(product_type: str, color: str) -> str:
    return (
        f'Products matching "{product_type}" found, but {color} color is not available. '
        "Check available colors in the results."
    )


def availability_summary(
    product_name: str,
    color: Optional[str],
    recommendation: SourcingRecommendation,
    quantity: Optional[int],
) -> str:
    """Purpose: Render the success sentence for the top-ranked match.
    Inputs/Outputs: Inputs are the product name, requested color, recommendation and
        quantity; output is one or two sentences plus an optional note.
    Side Effects / State: None.
    Dependencies: SourcingRecommendation fields.
    Failure Modes: None; unknown supplier, quantity or lead time drop their clauses.
    If Removed: Availability responses have no human-readable answer.
    Testing Notes: Local with all fields ->
        "white Card Holder available from ABC Supplies (local supplier). For 200 pieces: 3-5 days lead time."
    """
    # Overseas and local recommendations use different sentence shapes.
    subject = f"{color} {product_name}" if color else product_name
    if recommendation.source == SOURCE_CHINA:
        text = f"{subject} recommended from overseas sourcing."
        if quantity:
            text += f" For {quantity} pieces: better pricing for larger quantities."
        else:
            text += " Better pricing for larger quantities."
    else:
        if recommendation.supplier:
            text = f"{subject} available from {recommendation.supplier} (local supplier)."
        else:
            text = f"{subject} available from local supplier."
        if quantity and recommendation.lead_time:
            text += f" For {quantity} pieces: {recommendation.lead_time} lead time."
        elif quantity:
            text += f" For {quantity} pieces."
        elif recommendation.lead_time:
            text += f" Lead time: {recommendation.lead_time}."
    if recommendation.warning:
        text += f" Note: {recommendation.warning}."
    return text


def combined_summary(entries: List[CombinedEntry]) -> str:
    """Purpose: Summarize a batch as one "Available: ... Not found: ..." line.
    Inputs/Outputs: Input is entries in request order; output is the combined text.
    Side Effects / State: None.
    Dependencies: CombinedEntry.
    Failure Modes: Either clause is omitted when it has no entries.
    If Removed: Multi-item answers only have per-item summaries.
    Testing Notes: One found and one missing item produce both clauses in order.
    """
    # Found items first, then the not-found listing.
    available: List[str] = []
    missing: List[str] = []
    for entry in entries:
        if not entry.found:
            missing.append(entry.name)
            continue
        parts = []
        if entry.quantity:
            parts.append(f"{entry.quantity} pcs")
        if entry.color:
            parts.append(entry.color)
        parts.append(entry.name)
        source = entry.source or ""
        if entry.supplier:
            source = f"{source} - {entry.supplier}"
        available.append(f"{' '.join(parts)} ({source})")

    clauses = []
    if available:
        clauses.append("Available: " + ", ".join(available) + ".")
    if missing:
        clauses.append("Not found: " + ", ".join(missing) + ".")
    return " ".join(clauses)

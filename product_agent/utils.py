from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Tuple

IRREGULAR_PLURALS = {
    "mice": "mouse",
    "men": "man",
    "women": "woman",
    "children": "child",
    "people": "person",
    "teeth": "tooth",
    "feet": "foot",
    "geese": "goose",
    "knives": "knife",
    "leaves": "leaf",
    "lives": "life",
    "wives": "wife",
    "halves": "half",
}

SIBILANT_PLURAL_SUFFIXES = ("shes", "ches", "xes", "zes", "sses")
TRUTHY_VALUES = {"yes", "true", "1", "y", "✓", "✔"}

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Purpose: Canonicalize free text for comparison.
    Inputs/Outputs: Input is a raw string; output is lowercased, trimmed text with
        internal whitespace runs collapsed to a single space.
    Side Effects / State: None; pure function.
    Dependencies: Uses regex; called by every matching step in the pipeline.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Synonym and product matching become case/spacing sensitive.
    Testing Notes: "  Badge   CASE " -> "badge case".
    """
    # Lowercase, trim, and collapse whitespace.
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", str(text).lower()).strip()


def singularize(word: str) -> str:
    """Purpose: Best-effort English singularization of a single word.
    Inputs/Outputs: Input is a word; output is its singular guess or the word itself.
    Side Effects / State: None.
    Dependencies: Uses IRREGULAR_PLURALS and SIBILANT_PLURAL_SUFFIXES.
    Failure Modes: Heuristic only; "bus" becomes "bu". Used to widen recall, not as
        a linguistic authority.
    If Removed: "badge cases" no longer resolves against a "badge case" synonym.
    Testing Notes: mice -> mouse, batteries -> battery, boxes -> box, glass -> glass.
    """
    # Irregulars first, then suffix rules in fixed order.
    if not word:
        return word
    lowered = word.lower()
    if lowered in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[lowered]
    if lowered.endswith("ies") and len(lowered) > 3:
        return word[:-3] + "y"
    if lowered.endswith(SIBILANT_PLURAL_SUFFIXES):
        return word[:-2]
    if lowered.endswith("s") and not lowered.endswith("ss") and len(lowered) > 2:
        return word[:-1]
    return word


def normalize_for_synonym(term: Optional[str]) -> Tuple[str, ...]:
    """Purpose: Produce the comparison variants of a term for synonym lookups.
    Inputs/Outputs: Input is a raw term; output is a deduplicated tuple of the
        normalized term and the normalized term with its last word singularized.
    Side Effects / State: None.
    Dependencies: Uses normalize and singularize.
    Failure Modes: Blank input returns an empty tuple.
    If Removed: Synonym resolution stops tolerating simple plurals.
    Testing Notes: "Badge Cases" -> ("badge cases", "badge case").
    """
    # Singularize the head noun (last word) of the normalized term.
    normalized = normalize(term)
    if not normalized:
        return ()
    words = normalized.split(" ")
    words[-1] = singularize(words[-1])
    singular = " ".join(words)
    if singular == normalized:
        return (normalized,)
    return (normalized, singular)


def contains_ignore_case(haystack: Optional[str], needle: Optional[str]) -> bool:
    """Purpose: Substring test after normalizing both sides.
    Inputs/Outputs: Inputs are haystack and needle strings; output is a bool.
    Side Effects / State: None.
    Dependencies: Uses normalize.
    Failure Modes: A blank needle never matches.
    If Removed: Product name/category matching loses its comparison primitive.
    Testing Notes: contains_ignore_case("Card Holder", "card  HOLD") is True.
    """
    # Empty needles would match everything, so reject them.
    needle_norm = normalize(needle)
    if not needle_norm:
        return False
    return needle_norm in normalize(haystack)


def parse_comma_separated(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated cell into trimmed, non-empty entries."""
    if not value or not str(value).strip():
        return ()
    return tuple(part.strip() for part in str(value).split(",") if part.strip())


def parse_number(value: Optional[str]) -> Optional[int]:
    """Purpose: Parse an integer from a free-text cell such as "1,000 pcs".
    Inputs/Outputs: Input is a cell value; output is int or None.
    Side Effects / State: None.
    Dependencies: Uses regex to drop non-digit characters.
    Failure Modes: Cells without digits return None.
    If Removed: MOQ cells propagate raw text into sourcing decisions.
    Testing Notes: "1,000" -> 1000, "TBC" -> None, "" -> None.
    """
    # Keep digits only; an empty residue means unknown.
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    digits = re.sub(r"[^0-9]", "", str(value))
    if not digits:
        return None
    return int(digits)


def is_truthy(value: Any) -> bool:
    """Interpret spreadsheet-style yes/no cells."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the first JSON object block from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in prose or code fences cannot be parsed.
    Testing Notes: Provide strings with extra text before/after JSON.
    """
    # Locate the outermost JSON braces to extract a parseable block.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses extract_json_block and json.loads; called by the extractor.
    Failure Modes: Returns None on JSONDecodeError, missing block, or non-object JSON.
    If Removed: Extraction crashes on malformed model output instead of falling back.
    Testing Notes: Valid JSON parses and malformed JSON returns None.
    """
    # Parse only the extracted JSON block to avoid non-JSON prefixes/suffixes.
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None

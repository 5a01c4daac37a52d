"""Turn raw customer text into structured product requests.

Two implementations share one interface: GeminiQueryExtractor calls the hosted
model with a strict JSON prompt, FallbackQueryExtractor applies fixed keyword and
regex rules. ResilientQueryExtractor puts the hosted call behind a timeout and
answers from the fallback whenever the hosted call fails, so callers always get
a usable result.
"""

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .config import Settings
from .errors import ExtractionError
from .gemini_client import GeminiClient
from .prompt_loader import load_prompt, render_prompt
from .utils import normalize, safe_json_loads

logger = logging.getLogger("product_agent.extractor")

URGENT_KEYWORDS = ("urgent", "urgently", "asap", "rush", "quickly", "fast")
COLOR_NAMES = (
    "white",
    "black",
    "red",
    "blue",
    "green",
    "yellow",
    "orange",
    "purple",
    "pink",
    "brown",
    "grey",
    "gray",
    "silver",
    "gold",
    "tan",
    "navy",
    "maroon",
)
UNIT_TOKENS = ("pcs", "pc", "pieces", "piece", "units", "unit", "qty")
FRAMING_PHRASES = ("do you have", "need", "looking for", "want", "can i get", "any")

_NUMBER = r"\d{1,3}(?:,\d{3})+|\d+"
_UNIT = "|".join(UNIT_TOKENS)

_URGENT_RE = re.compile(r"\b(?:" + "|".join(URGENT_KEYWORDS) + r")\b", re.IGNORECASE)
_COLOR_RE = re.compile(r"\b(?:" + "|".join(COLOR_NAMES) + r")\b", re.IGNORECASE)
_FRAMING_RE = re.compile(r"\b(?:" + "|".join(FRAMING_PHRASES) + r")\b", re.IGNORECASE)
_UNIT_ONLY_RE = re.compile(r"^(?:" + _UNIT + r")$", re.IGNORECASE)
_PUNCTUATION_RE = re.compile(r"[?!.,;:]+")

# Whole number not continuing a longer number such as "1.5" or "1,500".
_ANCHORED_NUMBER = rf"(?<![\d.,])(?:{_NUMBER})"

# First "<n> <unit>" or "qty: <n>" in the text.
_FALLBACK_QUANTITY_RE = re.compile(
    rf"\bqty\s*:?\s*({_NUMBER})\b|({_ANCHORED_NUMBER})\s*(?:{_UNIT})\b",
    re.IGNORECASE,
)
# Quantity tokens stripped from the single-item product phrase.
_QUANTITY_TOKEN_RE = re.compile(
    rf"(?:\b(?:qty|quantity)\b\s*:?\s*)?(?:{_NUMBER})(?:\.\d+)?(?:k\b)?\s*(?:(?:{_UNIT})\b)?(?:\s*of\b)?",
    re.IGNORECASE,
)
# "<n> [unit] [of] <phrase>"; the phrase stops at a separator or a standalone number.
_SEGMENT_RE = re.compile(
    rf"\b({_ANCHORED_NUMBER})\s*(?:(?:{_UNIT})\b)?\s*(?:of\s+)?(.+?)(?=,|;|\band\b|\b\d|\)|$)",
    re.IGNORECASE,
)

# Quantity scan used when the request carries no explicit quantity.
# Groups: whole part, optional decimal part, optional "k" multiplier.
_UNIT_QUANTITY_RE = re.compile(
    rf"({_ANCHORED_NUMBER})(?:\.(\d+))?\s*(k)?\s*(?:pcs|pc|pieces|piece|units|unit)\b",
    re.IGNORECASE,
)
_LABEL_QUANTITY_RE = re.compile(
    rf"\b(?:quantity|qty)\s*:?\s*({_ANCHORED_NUMBER})(?:\.(\d+))?(k)?\b",
    re.IGNORECASE,
)

_EXTRACTION_POOL = ThreadPoolExecutor(max_workers=4, thread_name_prefix="query-extractor")

T = TypeVar("T")


@dataclass
class ParsedQueryItem:
    product_type: str
    color: Optional[str] = None
    quantity: Optional[int] = None
    urgent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productType": self.product_type,
            "color": self.color,
            "quantity": self.quantity,
            "urgent": self.urgent,
        }


@dataclass
class MultiParsedQuery:
    items: List[ParsedQueryItem] = field(default_factory=list)
    global_urgent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [item.to_dict() for item in self.items], "globalUrgent": self.global_urgent}


class QueryExtractor:
    """Interface for single-item and batch extraction."""

    def extract(self, text: str) -> ParsedQueryItem:
        raise NotImplementedError

    def extract_multi(self, text: str) -> MultiParsedQuery:
        raise NotImplementedError


def parse_number_token(token: str) -> int:
    return int(token.replace(",", ""))


def scaled_quantity(whole: str, fraction: Optional[str], thousands: bool) -> Optional[int]:
    """Combine "<whole>[.<fraction>][k]" into a piece count; None when not whole."""
    scale = 10 ** len(fraction or "")
    value = parse_number_token(whole) * scale + int(fraction or "0")
    if thousands:
        value *= 1000
    if value % scale:
        return None
    return value // scale


def detect_urgency(text: str) -> bool:
    return bool(_URGENT_RE.search(text or ""))


def detect_color(text: str) -> Optional[str]:
    """Return the earliest known color word in the text, lowercased."""
    match = _COLOR_RE.search(text or "")
    return match.group(0).lower() if match else None


def parse_quantity_from_query(text: str) -> Optional[int]:
    """Purpose: Scan raw text for an order quantity independent of any extractor.
    Inputs/Outputs: Input is the raw query; output is the largest quantity found or None.
    Side Effects / State: None.
    Dependencies: Uses the "<n> pcs", "<n>k pcs" and "qty: <n>" patterns.
    Failure Modes: Bare numbers without a unit or label are ignored, and so are
        fractional counts such as "1.5 pcs".
    If Removed: Quantities depend entirely on the extractor, which can drop them.
    Testing Notes: "2k pcs or 1,500 pieces" -> 2000; "1.5k pcs" -> 1500;
        "size 12 shirts" -> None.
    """
    # Collect every candidate; the largest is taken as the order quantity.
    candidates: List[int] = []
    for pattern in (_UNIT_QUANTITY_RE, _LABEL_QUANTITY_RE):
        for match in pattern.finditer(text or ""):
            value = scaled_quantity(match.group(1), match.group(2), bool(match.group(3)))
            if value is not None:
                candidates.append(value)
    if not candidates:
        return None
    return max(candidates)


class FallbackQueryExtractor(QueryExtractor):
    """Deterministic keyword and regex extractor with no external calls."""

    def extract(self, text: str) -> ParsedQueryItem:
        """Purpose: Parse one product request from raw text with fixed rules.
        Inputs/Outputs: Input is raw text; output is a ParsedQueryItem whose
            product_type is never empty.
        Side Effects / State: None.
        Dependencies: Uses the module regexes for quantity, urgency, color, framing.
        Failure Modes: None; an empty residue falls back to the raw text.
        If Removed: Queries fail whenever the hosted model is unavailable.
        Testing Notes: "Do you have white badge case? Need 200 pieces urgently" ->
            ("badge case", "white", 200, True).
        """
        # Detect slots first, then strip them from the text to leave the product.
        raw = text or ""
        quantity = None
        match = _FALLBACK_QUANTITY_RE.search(raw)
        if match:
            quantity = parse_number_token(match.group(1) or match.group(2))

        residue = normalize(raw)
        residue = _QUANTITY_TOKEN_RE.sub(" ", residue)
        residue = _URGENT_RE.sub(" ", residue)
        residue = _COLOR_RE.sub(" ", residue)
        residue = _FRAMING_RE.sub(" ", residue)
        residue = _PUNCTUATION_RE.sub(" ", residue)
        product_type = normalize(residue) or raw.strip() or raw

        return ParsedQueryItem(
            product_type=product_type,
            color=detect_color(raw),
            quantity=quantity,
            urgent=detect_urgency(raw),
        )

    def extract_multi(self, text: str) -> MultiParsedQuery:
        """Purpose: Split a message into quantity-anchored product requests.
        Inputs/Outputs: Input is raw text; output is a MultiParsedQuery with at least
            one item.
        Side Effects / State: None.
        Dependencies: Uses _SEGMENT_RE and falls back to extract().
        Failure Modes: Text without quantity anchors becomes a one-item batch.
        If Removed: Multi-product messages cannot be answered offline.
        Testing Notes: "1,500 pcs t-shirts, 500 pcs hoodies" -> two items.
        """
        # Each match is "<qty> [unit] [of] <phrase>"; the phrase keeps its casing.
        raw = text or ""
        items: List[ParsedQueryItem] = []
        for match in _SEGMENT_RE.finditer(raw):
            phrase = match.group(2)
            color = detect_color(phrase)
            if color:
                phrase = _COLOR_RE.sub(" ", phrase, count=1)
            urgent = detect_urgency(phrase)
            if urgent:
                phrase = _URGENT_RE.sub(" ", phrase)
            phrase = " ".join(_PUNCTUATION_RE.sub(" ", phrase).split())
            if len(phrase) < 2 or _UNIT_ONLY_RE.match(phrase):
                continue
            items.append(
                ParsedQueryItem(
                    product_type=phrase,
                    color=color,
                    quantity=parse_number_token(match.group(1)),
                    urgent=urgent,
                )
            )
        if not items:
            items = [self.extract(raw)]
        return MultiParsedQuery(items=items, global_urgent=detect_urgency(raw))


class GeminiQueryExtractor(QueryExtractor):
    """Hosted-model extractor using strict JSON prompts."""

    def __init__(self, client: GeminiClient, prompts_dir: Path, model: Optional[str] = None) -> None:
        self._client = client
        self._model = model
        self._single_prompt = load_prompt(prompts_dir / "query_extractor.txt")
        self._multi_prompt = load_prompt(prompts_dir / "multi_query_extractor.txt")

    def extract(self, text: str) -> ParsedQueryItem:
        data = self._call(self._single_prompt, text)
        return validate_item(data)

    def extract_multi(self, text: str) -> MultiParsedQuery:
        """Purpose: Ask the model for a batch of items and validate the shape.
        Inputs/Outputs: Input is raw text; output is MultiParsedQuery.
        Side Effects / State: One network call through GeminiClient.
        Dependencies: Uses multi_query_extractor.txt and validate_item.
        Failure Modes: Raises ExtractionError for missing/empty items or bad fields.
        If Removed: Batch extraction is always the regex fallback.
        Testing Notes: Stub the client with canned JSON strings.
        """
        # Items must be a non-empty list of valid item objects.
        data = self._call(self._multi_prompt, text)
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ExtractionError("Model output has no items", details={"output": data})
        global_urgent = data.get("globalUrgent", False)
        if not isinstance(global_urgent, bool):
            raise ExtractionError("globalUrgent must be a boolean", details={"output": data})
        items = []
        for raw_item in raw_items:
            if not isinstance(raw_item, dict):
                raise ExtractionError("Each item must be an object", details={"output": data})
            items.append(validate_item(raw_item))
        return MultiParsedQuery(items=items, global_urgent=global_urgent)

    def _call(self, template: str, text: str) -> Dict[str, Any]:
        # Escape the query the same way a JSON string would be.
        prompt = render_prompt(template, {"QUERY": json.dumps(text, ensure_ascii=False)[1:-1]})
        output = self._client.generate_json(prompt, model=self._model)
        data = safe_json_loads(output)
        if data is None:
            raise ExtractionError("Model output is not a JSON object", details={"output": output[:200]})
        return data


def validate_item(data: Dict[str, Any]) -> ParsedQueryItem:
    """Purpose: Strictly validate one extracted item from model output.
    Inputs/Outputs: Input is a decoded JSON object; output is ParsedQueryItem.
    Side Effects / State: None.
    Dependencies: Raises ExtractionError from errors.
    Failure Modes: Empty productType, non-string color, negative or non-integer
        quantity, or non-boolean urgent all raise ExtractionError.
    If Removed: Malformed model output leaks into matching and sourcing.
    Testing Notes: {"productType": "", ...} and {"quantity": "200"} are rejected.
    """
    # Validate each field; missing optional fields take their defaults.
    product_type = data.get("productType")
    if not isinstance(product_type, str) or not product_type.strip():
        raise ExtractionError("productType must be a non-empty string", details={"output": data})

    color = data.get("color")
    if color is not None and not isinstance(color, str):
        raise ExtractionError("color must be a string or null", details={"output": data})
    if color is not None:
        color = color.strip() or None

    quantity = data.get("quantity")
    if quantity is not None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ExtractionError("quantity must be a non-negative integer or null", details={"output": data})

    urgent = data.get("urgent", False)
    if not isinstance(urgent, bool):
        raise ExtractionError("urgent must be a boolean", details={"output": data})

    return ParsedQueryItem(product_type=product_type.strip(), color=color, quantity=quantity, urgent=urgent)


class ResilientQueryExtractor(QueryExtractor):
    """Runs a primary extractor under a timeout and falls back on any failure."""

    def __init__(
        self,
        primary: Optional[QueryExtractor],
        fallback: Optional[QueryExtractor] = None,
        timeout_sec: float = 8.0,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or FallbackQueryExtractor()
        self._timeout_sec = timeout_sec

    @property
    def has_primary(self) -> bool:
        return self._primary is not None

    def extract(self, text: str) -> ParsedQueryItem:
        if self._primary is None:
            return self._fallback.extract(text)
        return self._run("extract", self._primary.extract, self._fallback.extract, text)

    def extract_multi(self, text: str) -> MultiParsedQuery:
        if self._primary is None:
            return self._fallback.extract_multi(text)
        return self._run("extract_multi", self._primary.extract_multi, self._fallback.extract_multi, text)

    def _run(
        self,
        stage: str,
        primary_fn: Callable[[str], T],
        fallback_fn: Callable[[str], T],
        text: str,
    ) -> T:
        """Purpose: Call the primary extractor on the shared pool with a deadline.
        Inputs/Outputs: Inputs are stage name, primary and fallback callables, and the
            raw text; output is the primary result or the fallback result.
        Side Effects / State: Submits work to _EXTRACTION_POOL; logs on fallback.
        Dependencies: concurrent.futures timeout semantics.
        Failure Modes: Never raises for primary failures; fallback errors propagate.
        If Removed: A slow or broken model call fails the whole request.
        Testing Notes: A primary that sleeps past timeout_sec yields the fallback.
        """
        # Timeout, model errors and invalid shapes all degrade to the fallback.
        future = _EXTRACTION_POOL.submit(primary_fn, text)
        try:
            return future.result(timeout=self._timeout_sec)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "query=%s stage=%s error=timeout timeout_sec=%s fallback=rules",
                json.dumps(text, ensure_ascii=True),
                stage,
                self._timeout_sec,
            )
        except Exception as exc:
            logger.warning(
                "query=%s stage=%s error=%s fallback=rules",
                json.dumps(text, ensure_ascii=True),
                stage,
                f"{type(exc).__name__}: {exc}",
            )
        return fallback_fn(text)


def build_query_extractor(settings: Settings) -> ResilientQueryExtractor:
    """Purpose: Build the extractor chain from configuration.
    Inputs/Outputs: Input is Settings; output is a ResilientQueryExtractor.
    Side Effects / State: Configures the Gemini SDK when a key is present.
    Dependencies: GeminiClient, GeminiQueryExtractor, FallbackQueryExtractor.
    Failure Modes: Missing key or disabled extractor yields fallback-only mode.
    If Removed: The app has to wire extractors by hand.
    Testing Notes: EXTRACTOR_ENABLED=0 gives has_primary False.
    """
    # Hosted extraction only when enabled and configured.
    primary: Optional[QueryExtractor] = None
    if settings.extractor_enabled and settings.gemini_api_key:
        client = GeminiClient(settings)
        primary = GeminiQueryExtractor(client, settings.prompts_dir)
        logger.info("extractor=gemini model=%s timeout_sec=%s", settings.gemini_model, settings.extractor_timeout_sec)
    else:
        logger.info("extractor=rules reason=%s", "disabled" if not settings.extractor_enabled else "no_api_key")
    return ResilientQueryExtractor(primary, FallbackQueryExtractor(), settings.extractor_timeout_sec)

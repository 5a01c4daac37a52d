"""Catalog records, the tabular row schema, and the JSON-file catalog store.

The store keeps two datasets, products and synonyms, as spreadsheet-style rows.
Rows are parsed strictly into immutable Product/Synonym records: empty cells get
defaults, numbers are parsed or become None, and yes/no cells become booleans.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .utils import is_truthy, normalize, parse_comma_separated, parse_number

logger = logging.getLogger("product_agent.catalog")

# Products sheet, columns A-P in order.
PRODUCT_COLUMNS = (
    "product_name",
    "category",
    "website_url",
    "other_names",
    "colors_on_website",
    "local_supplier",
    "local_moq",
    "local_lead_time",
    "local_colors",
    "china_available",
    "china_moq",
    "china_air",
    "china_sea",
    "china_colors",
    "notes",
    "last_updated",
)
SYNONYM_COLUMNS = ("customer_says", "we_call_it", "notes")

HEADER_ALIASES: Dict[str, List[str]] = {
    "product_name": ["product name", "name"],
    "category": ["category"],
    "website_url": ["website url", "url", "link"],
    "other_names": ["other names", "aliases", "alternate names"],
    "colors_on_website": ["colors on website", "colours on website", "website colors"],
    "local_supplier": ["local supplier", "supplier"],
    "local_moq": ["local moq"],
    "local_lead_time": ["local lead time", "lead time"],
    "local_colors": ["local colors", "local colours"],
    "china_available": ["china available", "china available?", "overseas available"],
    "china_moq": ["china moq", "overseas moq"],
    "china_air": ["china air", "air"],
    "china_sea": ["china sea", "sea"],
    "china_colors": ["china colors", "china colours", "overseas colors"],
    "notes": ["notes"],
    "last_updated": ["last updated", "updated"],
    "customer_says": ["customer says"],
    "we_call_it": ["we call it"],
}

Row = Union[Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class LocalSourcing:
    """Local supplier tier for a product."""
    supplier: str = ""
    moq: Optional[int] = None
    lead_time: str = ""
    colors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OverseasSourcing:
    """Overseas (China) custom-order tier for a product."""
    available: bool = False
    moq: Optional[int] = None
    air: bool = False
    sea: bool = False
    colors: str = ""

    def freight_modes(self) -> Tuple[str, ...]:
        modes = []
        if self.air:
            modes.append("air")
        if self.sea:
            modes.append("sea")
        return tuple(modes)


@dataclass(frozen=True)
class Product:
    """Immutable catalog record combining storefront data and sourcing intel."""
    name: str
    category: str = ""
    url: str = ""
    other_names: str = ""
    website_colors: Tuple[str, ...] = ()
    local: LocalSourcing = LocalSourcing()
    china: OverseasSourcing = OverseasSourcing()
    notes: str = ""
    last_updated: str = ""

    def alias_list(self) -> List[str]:
        """Return the non-empty alternate names curated for this product."""
        return list(parse_comma_separated(self.other_names))

    def to_dict(self, include_sourcing: bool = True) -> Dict[str, Any]:
        """Purpose: Serialize the product with the external camelCase field names.
        Inputs/Outputs: Input is include_sourcing flag; output is a JSON-ready dict.
        Side Effects / State: None.
        Dependencies: Used by search and availability responses.
        Failure Modes: None.
        If Removed: API responses cannot expose catalog records.
        Testing Notes: include_sourcing=False drops the sourcing block entirely.
        """
        # Core storefront fields always, sourcing block on request.
        data: Dict[str, Any] = {
            "name": self.name,
            "category": self.category,
            "url": self.url,
            "otherNames": self.other_names,
            "websiteColors": list(self.website_colors),
        }
        if include_sourcing:
            data["sourcing"] = {
                "local": {
                    "supplier": self.local.supplier,
                    "moq": self.local.moq,
                    "leadTime": self.local.lead_time,
                    "colors": list(self.local.colors),
                },
                "china": {
                    "available": self.china.available,
                    "moq": self.china.moq,
                    "air": self.china.air,
                    "sea": self.china.sea,
                    "colors": self.china.colors,
                },
            }
            data["notes"] = self.notes
            data["lastUpdated"] = self.last_updated
        return data


@dataclass(frozen=True)
class Synonym:
    """Customer phrasing mapped to the catalog's canonical term."""
    customer_says: str
    we_call_it: str
    notes: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"customerSays": self.customer_says, "weCallIt": self.we_call_it, "notes": self.notes}


@dataclass(frozen=True)
class ScrapedProductRow:
    """Crawler-owned columns (A-E) of a product row."""
    product_name: str
    category: str
    website_url: str
    other_names: str = ""
    colors_on_website: str = ""

    def to_row(self) -> List[str]:
        # Curated columns F-P stay blank for a new row.
        values = [self.product_name, self.category, self.website_url, self.other_names, self.colors_on_website]
        return values + [""] * (len(PRODUCT_COLUMNS) - len(values))


def row_to_cells(row: Row, columns: Sequence[str]) -> Dict[str, str]:
    """Purpose: Map a positional or header-keyed row onto named columns.
    Inputs/Outputs: Input is a list row or dict row plus the column schema; output is
        a dict of column name -> trimmed string (missing cells become "").
    Side Effects / State: None.
    Dependencies: Uses _get_first_value for header-keyed rows.
    Failure Modes: Unsupported row types yield an all-empty mapping.
    If Removed: Row parsing has to index raw cells ad hoc.
    Testing Notes: Short list rows are padded; dict headers match case-insensitively.
    """
    # Positional rows follow the column order; dict rows use header aliases.
    cells: Dict[str, str] = {}
    if isinstance(row, Mapping):
        for column in columns:
            keys = [column] + HEADER_ALIASES.get(column, [])
            value = _get_first_value(row, keys)
            cells[column] = _cell_text(value)
        return cells
    if isinstance(row, (list, tuple)):
        for index, column in enumerate(columns):
            cells[column] = _cell_text(row[index]) if index < len(row) else ""
        return cells
    return {column: "" for column in columns}


def parse_product_row(row: Row) -> Optional[Product]:
    """Purpose: Strictly parse one products row into a Product.
    Inputs/Outputs: Input is a list or dict row; output is Product or None when the
        row has no product name.
    Side Effects / State: None.
    Dependencies: Uses row_to_cells and the utils cell parsers.
    Failure Modes: Unparseable numbers become None; empty lists become empty tuples.
    If Removed: The cache cannot be built from store rows.
    Testing Notes: ["Card Holder", "", "", "", "Black, Clear"] parses with two colors.
    """
    # Build nested sourcing records from the flat columns.
    cells = row_to_cells(row, PRODUCT_COLUMNS)
    name = cells["product_name"]
    if not name:
        return None
    return Product(
        name=name,
        category=cells["category"],
        url=cells["website_url"],
        other_names=cells["other_names"],
        website_colors=parse_comma_separated(cells["colors_on_website"]),
        local=LocalSourcing(
            supplier=cells["local_supplier"],
            moq=parse_number(cells["local_moq"]),
            lead_time=cells["local_lead_time"],
            colors=parse_comma_separated(cells["local_colors"]),
        ),
        china=OverseasSourcing(
            available=is_truthy(cells["china_available"]),
            moq=parse_number(cells["china_moq"]),
            air=is_truthy(cells["china_air"]),
            sea=is_truthy(cells["china_sea"]),
            colors=cells["china_colors"],
        ),
        notes=cells["notes"],
        last_updated=cells["last_updated"],
    )


def parse_synonym_row(row: Row) -> Optional[Synonym]:
    """Parse one synonyms row; rows missing either side of the mapping are dropped."""
    cells = row_to_cells(row, SYNONYM_COLUMNS)
    if not cells["customer_says"] or not cells["we_call_it"]:
        return None
    return Synonym(
        customer_says=cells["customer_says"],
        we_call_it=cells["we_call_it"],
        notes=cells["notes"],
    )


class CatalogStore:
    """Read/write interface of the tabular catalog source of truth."""

    def list_products(self) -> List[Product]:
        raise NotImplementedError

    def list_synonyms(self) -> List[Synonym]:
        raise NotImplementedError

    def append_products(self, rows: Sequence[ScrapedProductRow]) -> int:
        raise NotImplementedError

    def update_product(
        self,
        row_index: int,
        product_name: Optional[str] = None,
        category: Optional[str] = None,
        colors_on_website: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def existing_product_urls(self) -> Dict[str, int]:
        raise NotImplementedError


class JsonCatalogStore(CatalogStore):
    """Catalog store backed by a JSON file with "products" and "synonyms" row lists."""

    def __init__(self, path: Path) -> None:
        """Purpose: Configure the store with its backing file.
        Inputs/Outputs: Input is a Path to the catalog JSON; no return value.
        Side Effects / State: Stores the path and a write lock.
        Dependencies: None at init; reads happen on list_* calls.
        Failure Modes: None at init; missing files raise on read.
        If Removed: The cache has no source of truth to refresh from.
        Testing Notes: Instantiate with a tmp_path file and call list_products().
        """
        # Reads are stateless; writes are serialized through the lock.
        self._path = path
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def list_products(self) -> List[Product]:
        """Purpose: Read and strictly parse every products row.
        Inputs/Outputs: No inputs; returns Products in file order.
        Side Effects / State: Reads the backing file.
        Dependencies: Uses _read_document and parse_product_row.
        Failure Modes: Missing file or invalid JSON raise to the caller (the cache
            keeps its previous snapshot).
        If Removed: The catalog cache cannot load products.
        Testing Notes: Rows without a name are skipped and logged.
        """
        # Parse rows in order, skipping nameless rows.
        rows = self._read_document().get("products", [])
        products: List[Product] = []
        for index, row in enumerate(rows):
            product = parse_product_row(row)
            if product is None:
                logger.warning("catalog=%s products_row=%s skipped=missing_name", self._path.name, index)
                continue
            products.append(product)
        logger.info("catalog=%s products_loaded=%s", self._path.name, len(products))
        return products

    def list_synonyms(self) -> List[Synonym]:
        """Read and parse every synonyms row in file order."""
        rows = self._read_document().get("synonyms", [])
        synonyms: List[Synonym] = []
        for index, row in enumerate(rows):
            synonym = parse_synonym_row(row)
            if synonym is None:
                logger.warning("catalog=%s synonyms_row=%s skipped=incomplete", self._path.name, index)
                continue
            synonyms.append(synonym)
        logger.info("catalog=%s synonyms_loaded=%s", self._path.name, len(synonyms))
        return synonyms

    def append_products(self, rows: Sequence[ScrapedProductRow]) -> int:
        """Purpose: Append crawler rows (columns A-E) to the products dataset.
        Inputs/Outputs: Input is a sequence of ScrapedProductRow; returns rows written.
        Side Effects / State: Rewrites the backing file atomically.
        Dependencies: Uses _read_document/_write_document under the write lock.
        Failure Modes: IO errors propagate to the caller.
        If Removed: Ingestion cannot add newly discovered products.
        Testing Notes: Appended rows have blank curated columns.
        """
        # Append positional rows and persist.
        if not rows:
            return 0
        with self._write_lock:
            document = self._read_document()
            products = document.setdefault("products", [])
            for row in rows:
                products.append(row.to_row())
            self._write_document(document)
        logger.info("catalog=%s products_appended=%s", self._path.name, len(rows))
        return len(rows)

    def update_product(
        self,
        row_index: int,
        product_name: Optional[str] = None,
        category: Optional[str] = None,
        colors_on_website: Optional[str] = None,
    ) -> None:
        """Purpose: Update crawler-owned cells of an existing products row.
        Inputs/Outputs: Inputs are the row index and optional new name/category/colors.
        Side Effects / State: Rewrites the backing file; curated cells are preserved.
        Dependencies: Uses row_to_cells to normalize dict rows into positional rows.
        Failure Modes: IndexError for an unknown row index.
        If Removed: Full-mode ingestion cannot refresh storefront data.
        Testing Notes: Supplier/MOQ cells are untouched after an update.
        """
        # Rewrite only columns A, B and E.
        updates = {
            "product_name": product_name,
            "category": category,
            "colors_on_website": colors_on_website,
        }
        with self._write_lock:
            document = self._read_document()
            products = document.setdefault("products", [])
            if row_index < 0 or row_index >= len(products):
                raise IndexError(f"products row {row_index} does not exist")
            cells = row_to_cells(products[row_index], PRODUCT_COLUMNS)
            for column, value in updates.items():
                if value is not None:
                    cells[column] = value
            products[row_index] = [cells[column] for column in PRODUCT_COLUMNS]
            self._write_document(document)
        logger.info("catalog=%s products_row_updated=%s", self._path.name, row_index)

    def existing_product_urls(self) -> Dict[str, int]:
        """Map each known product URL to its row index for incremental ingestion."""
        urls: Dict[str, int] = {}
        for index, row in enumerate(self._read_document().get("products", [])):
            url = row_to_cells(row, PRODUCT_COLUMNS)["website_url"]
            if url and url not in urls:
                urls[url] = index
        return urls

    def _read_document(self) -> Dict[str, Any]:
        data = json.loads(self._path.read_text(encoding="utf-8-sig"))
        if not isinstance(data, dict):
            raise ValueError(f"{self._path.name} must contain a JSON object")
        for key in ("products", "synonyms"):
            if not isinstance(data.get(key, []), list):
                raise ValueError(f"{self._path.name}: '{key}' must be a list of rows")
        return data

    def _write_document(self, document: Dict[str, Any]) -> None:
        document["updated_at"] = datetime.now(timezone.utc).isoformat()
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)


def _get_first_value(item: Mapping[str, Any], keys: List[str]) -> Optional[Any]:
    """Purpose: Find the first non-empty field in a dict row by header aliases.
    Inputs/Outputs: Input is a raw dict and candidate keys; returns value or None.
    Side Effects / State: None.
    Dependencies: Uses _header_key and _has_value.
    Failure Modes: Returns None when no header matches.
    If Removed: Header-keyed rows cannot be parsed.
    Testing Notes: "Product Name", "product_name" and "PRODUCT  NAME" all resolve.
    """
    # Compare headers with case, spacing and underscores folded.
    header_map = {_header_key(str(k)): k for k in item.keys()}
    for key in keys:
        actual = header_map.get(_header_key(key))
        if actual is not None and _has_value(item.get(actual)):
            return item.get(actual)
    return None


def _header_key(text: str) -> str:
    return normalize(text.replace("_", " ")).rstrip("?")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _cell_text(value: Any) -> str:
    # Spreadsheet exports sometimes carry lists or booleans in cells.
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(part).strip() for part in value if str(part).strip())
    return str(value).strip()

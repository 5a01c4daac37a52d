"""Command-line entry point for a one-off catalog crawl."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .catalog_store import JsonCatalogStore
from .config import load_settings
from .errors import ProductAgentError
from .scraper import MODES, CatalogScraper


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl the storefront and sync products into the catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  product-agent-scrape --dry-run
  product-agent-scrape --category https://www.easyprintsg.com/corporate-gifts/travel-lifestyle --limit 20
  product-agent-scrape --mode full
        """,
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="incremental",
        help="incremental: only add new URLs; full: also refresh name/category/colors of known rows",
    )
    parser.add_argument("--category", dest="category_url", help="Category URL to crawl instead of the site root")
    parser.add_argument("--category-name", help="Category label for scraped rows (default: derived from URL)")
    parser.add_argument("--limit", type=int, default=None, help="Maximum product pages to fetch")
    parser.add_argument("--dry-run", action="store_true", help="Parse and report without writing the catalog")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args(argv)

    store = JsonCatalogStore(settings.catalog_path)
    scraper = CatalogScraper(store, settings.scraper_base_url, timeout_sec=settings.scraper_timeout_sec)
    try:
        stats = scraper.run(
            mode=args.mode,
            dry_run=args.dry_run,
            category_url=args.category_url,
            category_name=args.category_name,
            limit=args.limit or settings.scraper_default_limit,
        )
    except ProductAgentError as exc:
        print(json.dumps({"success": False, "error": exc.to_dict()}, indent=2), file=sys.stderr)
        return 1
    print(json.dumps({"mode": args.mode, "dryRun": args.dry_run, "stats": stats.to_dict()}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for the crawler."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

__all__ = ["main", "parse_args", "show_stats", "read_links_file"]

from catalog_crawl.batch import BatchSaver
from catalog_crawl.config import DB_PATH, DEFAULT_MAX_PAGES, LOGIN_PASSWORD
from catalog_crawl.crawler import (
    CrawlError,
    CrawlSession,
    LinkRenderer,
    create_session,
    make_image_fetcher,
)
from catalog_crawl.csv_utils import export_db_to_csv
from catalog_crawl.db import get_connection, get_product_count, init_db
from catalog_crawl.logging_config import setup_logging
from catalog_crawl.profile import SiteProfile, load_site_profile


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Product catalog crawler with SQLite storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl a site described by a profile
  python -m catalog_crawl.cli --profile profiles/example.json

  # Pick one profile from a file holding several, crawl at most 20 pages
  python -m catalog_crawl.cli --profile profiles/example.json --profile-name "Example Shop" --max-pages 20

  # JavaScript-rendered listing: feed the product links rendered elsewhere
  python -m catalog_crawl.cli --profile profiles/example.json --links-file links.txt

  # Export database to CSV
  python -m catalog_crawl.cli --export-csv data/export.csv

  # Show database statistics
  python -m catalog_crawl.cli --stats
        """,
    )

    parser.add_argument(
        "--profile",
        metavar="PATH",
        help="JSON file with the site profile to crawl",
    )
    parser.add_argument(
        "--profile-name",
        metavar="NAME",
        help="Profile to use when the file holds several",
    )
    parser.add_argument(
        "--links-file",
        metavar="PATH",
        help="Pre-rendered product links, one per line (for JavaScript-rendered listings)",
    )

    parser.add_argument(
        "--max-pages",
        type=int,
        help=f"Maximum pages to visit (default: profile value, else {DEFAULT_MAX_PAGES})",
    )
    parser.add_argument(
        "--delay",
        type=float,
        help="Seconds to wait between product page fetches (default: profile value)",
    )
    parser.add_argument(
        "--no-validate-images",
        action="store_true",
        help="Keep extracted image URLs instead of discovering and checking them",
    )
    parser.add_argument(
        "--download-images",
        action="store_true",
        help="Store image bytes alongside image URLs",
    )

    # Database options
    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )

    # Export and info commands
    parser.add_argument(
        "--export-csv",
        metavar="PATH",
        help="Export database to CSV file",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug output on the console",
    )

    return parser.parse_args(argv)


def show_stats(db_path: str) -> None:
    """Display database statistics."""
    init_db(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")

    print(f"\nTotal products: {get_product_count(db_path)}")

    with get_connection(db_path) as conn:
        images = conn.execute("SELECT COUNT(*) AS count FROM product_images").fetchone()["count"]
        with_ean = conn.execute(
            "SELECT COUNT(*) AS count FROM products WHERE ean IS NOT NULL"
        ).fetchone()["count"]
        last = conn.execute(
            "SELECT MAX(COALESCE(updated_at, created_at)) AS last FROM products"
        ).fetchone()["last"]

    print(f"Products with EAN: {with_ean}")
    print(f"Images: {images}")
    print(f"Last write: {last or 'never'}")
    print()


def read_links_file(path: str) -> List[str]:
    """Non-empty, non-comment lines of a link list file."""
    links: List[str] = []
    with open(Path(path), "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                links.append(line)
    return links


def _build_profile(args: argparse.Namespace) -> SiteProfile:
    profile = load_site_profile(args.profile, args.profile_name)
    return profile.with_overrides(
        max_pages=args.max_pages,
        crawl_delay=args.delay,
        validate_images=False if args.no_validate_images else None,
        download_images=True if args.download_images else None,
        password=LOGIN_PASSWORD if not profile.password else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    if args.stats:
        show_stats(args.db)
        return 0

    if args.export_csv:
        init_db(args.db)
        export_db_to_csv(args.db, args.export_csv)
        return 0

    if not args.profile:
        print("Error: --profile is required to crawl (or use --stats / --export-csv)")
        return 2

    try:
        profile = _build_profile(args)
    except (OSError, ValueError) as e:
        print(f"Error: cannot load profile {args.profile}: {e}")
        return 2

    link_renderer: Optional[LinkRenderer] = None
    if args.links_file:
        links = read_links_file(args.links_file)
        link_renderer = lambda listing_url, _profile: links  # noqa: E731

    http = create_session()
    saver = BatchSaver(
        args.db,
        image_fetcher=make_image_fetcher(http) if profile.download_images else None,
    )
    session = CrawlSession(profile, saver, http=http, link_renderer=link_renderer)

    try:
        result = session.run()
    except CrawlError as e:
        print(f"Error: {e}")
        return 1

    print(f"\nProducts saved to database: {args.db}")
    print(f"  {result.stats.inserted} new, {result.stats.updated} updated, "
          f"{result.pages_dropped} dropped, {result.page_errors} page errors")
    print(f"Total products in database: {get_product_count(args.db)}")

    if result.flush_errors:
        print(f"\n{len(result.flush_errors)} batch(es) failed, {saver.failed_count} products not saved:")
        for error in result.flush_errors:
            print(f"  {error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

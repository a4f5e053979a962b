#!/usr/bin/env python3
"""
Interactive CLI for the Journal Crawler
=======================================
Batch-crawls journal listings from the journal navigator by search code
(CN prefix such as ``31-`` for Shanghai) and saves one row per journal.

All configuration flows through ``CrawlerRunConfig``: environment
variables (``.env``) first, then flags or interactive prompts.

Run with: python -m journal_crawler
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .browser import BrowserSession
from .detail import extract_saved_page
from .errors import ConfigError, CrawlError
from .monitor import RunStats
from .orchestrator import CrawlOrchestrator
from .record import DetailRecord, UNKNOWN
from .run_config import PRESETS, REGION_CODES, CrawlerRunConfig, region_label
from .sinks import JsonSink, sink_for_path
from .static_page import StaticSite
from .store import RecordStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    if log_file:
        handler = logging.FileHandler(log_file, encoding='utf-8')
        handler.setFormatter(logging.Formatter('%(asctime)s | %(levelname)s | %(name)s | %(message)s'))
        logging.getLogger().addHandler(handler)


def load_env() -> None:
    """Load .env from the project root, falling back to the CWD."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------

def get_user_input(prompt: str, default: str = None) -> str:
    """Get user input with optional default value."""
    if default:
        full_prompt = f"{prompt} [{default}]: "
    else:
        full_prompt = f"{prompt}: "
    response = input(full_prompt).strip()
    return response if response else default


def get_choice(prompt: str, options: list, default: int = 1) -> int:
    """Get user choice from numbered options."""
    print(f"\n{prompt}")
    for i, option in enumerate(options, 1):
        marker = " (default)" if i == default else ""
        print(f"  {i}) {option}{marker}")
    while True:
        response = input(f"Enter choice [1-{len(options)}]: ").strip()
        if not response:
            return default
        try:
            choice = int(response)
            if 1 <= choice <= len(options):
                return choice
        except ValueError:
            pass
        print(f"Please enter a number between 1 and {len(options)}")


def get_int(prompt: str, default: int, minimum: int = 0) -> int:
    """Prompt until the answer is a whole number no smaller than ``minimum``."""
    while True:
        response = get_user_input(prompt, str(default))
        try:
            value = int(response)
            if value >= minimum:
                return value
        except ValueError:
            pass
        print(f"Please enter a whole number of at least {minimum}")


def confirm(prompt: str = "Proceed with crawl?") -> bool:
    answer = input(f"\n{prompt} [Y/n]: ").strip().lower()
    return answer in ("", "y", "yes")


# ---------------------------------------------------------------------------
# Interactive flow -> builds CrawlerRunConfig
# ---------------------------------------------------------------------------

def run_interactive_cli():
    """Prompt the user and build a CrawlerRunConfig."""
    print("\n" + "=" * 60)
    print("  JOURNAL CRAWLER - Interactive Mode")
    print("=" * 60)

    cfg = CrawlerRunConfig.from_env()
    preset_names = list(PRESETS)
    options = [f"{name}: {', '.join(region_label(c) for c in PRESETS[name])}" for name in preset_names]
    options.append("Custom codes")
    choice = get_choice("Select search codes:", options, default=1)
    if choice <= len(preset_names):
        cfg.search_codes = list(PRESETS[preset_names[choice - 1]])
    else:
        raw = get_user_input("Codes (comma separated, e.g. 11-,31-)")
        cfg.search_codes = [c.strip() for c in (raw or "").split(",") if c.strip()]

    print("\n--- Optional Configuration (press Enter for defaults) ---")
    cfg.max_pages_per_code = get_int("Max pages per code", cfg.max_pages_per_code, minimum=1)
    cfg.max_total_pages = get_int("Max pages in total (0 = unbounded)", cfg.max_total_pages)
    cfg.output_path = get_user_input("Output file (.xlsx/.csv/.json)", cfg.output_path)

    return _run_crawl(cfg, assume_yes=False)


# ---------------------------------------------------------------------------
# Unified execution: interactive & flag paths land here
# ---------------------------------------------------------------------------

def _install_sigint(orchestrator: CrawlOrchestrator):
    """First Ctrl+C stops cooperatively; a second one interrupts immediately."""
    def handler(signum, frame):
        print("\nStopping after the current step (Ctrl+C again to force)...")
        orchestrator.stop()
        signal.signal(signal.SIGINT, signal.default_int_handler)
    return signal.signal(signal.SIGINT, handler)


def _run_crawl(cfg: CrawlerRunConfig, assume_yes: bool = False) -> int:
    try:
        cfg.ensure_valid()
    except ConfigError as exc:
        print("Configuration errors:")
        for problem in exc.problems:
            print(f"  - {problem}")
        return 2

    cfg.log_summary()
    if not assume_yes and not confirm():
        print("Crawl cancelled.")
        return 0

    store = RecordStore(sink_for_path(cfg.output_path, cfg.sheet_name))
    orchestrator = CrawlOrchestrator(
        cfg, store,
        navigator_factory=lambda: BrowserSession(
            headless=cfg.headless, user_agent=cfg.user_agent, timeout_ms=cfg.timeout_ms,
        ),
    )
    previous = _install_sigint(orchestrator)
    print("\nStarting crawl...\n")
    try:
        stats = orchestrator.run()
    except CrawlError as exc:
        logger.error(f"Crawl aborted: {exc}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    if cfg.export_json:
        try:
            path = store.export(JsonSink(cfg.export_json))
            print(f"  Exported: {path}")
        except CrawlError as exc:
            logger.error(f"JSON export failed: {exc}")

    print_summary(stats, store)
    return 0 if stats.failed_flushes == 0 else 1


def print_summary(stats: RunStats, store: RecordStore):
    """Print crawl summary."""
    print("\n" + stats.format_summary())
    print(f"  Records in store:    {len(store)}")
    print(f"  Output file:         {store.sink.path}")
    print("=" * 65)


def print_record(record: DetailRecord, as_json: bool = False, show_all: bool = False) -> None:
    """Print one record as a label table, or as JSON keyed by column label."""
    if as_json:
        print(json.dumps(record.to_dict(by_label=True), indent=2, ensure_ascii=False))
        return
    print("\n" + "=" * 65)
    print(f"  {record.title}")
    print("=" * 65)
    for name, label in zip(DetailRecord.field_names(), DetailRecord.headers()):
        value = getattr(record, name)
        if value != UNKNOWN or show_all:
            print(f"  {label:<12} {value}")


def _run_extract(args) -> int:
    """Replay a saved detail page through the extractor."""
    site = StaticSite.from_file(args.html, url=args.url)
    page = site.new_page()
    page.navigate(args.url or Path(args.html).resolve().as_uri())
    title = args.title or page.title() or Path(args.html).stem
    record, _, _ = extract_saved_page(page, title)
    print_record(record, as_json=args.json, show_all=args.all)
    return 0


def _run_single(args) -> int:
    """Fetch and save the first journal on one result page of one code."""
    if args.page < 1:
        print("Invalid option: --page must be 1 or more")
        return 2
    cfg = CrawlerRunConfig.from_env()
    cfg.search_codes = [args.code.strip()]
    if args.output:
        cfg.output_path = args.output
    if args.headed:
        cfg.headless = False
    try:
        cfg.ensure_valid()
    except ConfigError as exc:
        print("Configuration errors:")
        for problem in exc.problems:
            print(f"  - {problem}")
        return 2

    store = RecordStore(sink_for_path(cfg.output_path, cfg.sheet_name))
    orchestrator = CrawlOrchestrator(
        cfg, store,
        navigator_factory=lambda: BrowserSession(
            headless=cfg.headless, user_agent=cfg.user_agent, timeout_ms=cfg.timeout_ms,
        ),
    )
    logger.info(f"Single journal: code={cfg.search_codes[0]} page={args.page} output={cfg.output_path}")
    previous = _install_sigint(orchestrator)
    try:
        record = orchestrator.run_single(cfg.search_codes[0], args.page)
    except CrawlError as exc:
        logger.error(f"Single-journal run aborted: {exc}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    if record is None:
        print(f"No journal found on page {args.page} of {cfg.search_codes[0]}")
        return 1
    print_record(record, as_json=args.json, show_all=args.all)
    return 0
    print("\n" + "=" * 65)
    print(f"  {record.title}")
    print("=" * 65)
    for name, label in zip(DetailRecord.field_names(), DetailRecord.headers()):
        value = getattr(record, name)
        if value != UNKNOWN or args.all:
            print(f"  {label:<12} {value}")
    return 0


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='journal-crawler',
        description='Journal navigator batch crawler',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m journal_crawler                                   # Interactive mode
  python -m journal_crawler crawl --preset MAJOR_CITIES --yes
  python -m journal_crawler crawl --codes 31- --pages-per-code 2 --output shanghai.csv
  python -m journal_crawler single --code 31- --page 3
  python -m journal_crawler extract saved_detail.html --title 复旦学报
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--log-file', type=str, help='Also write logs to this file')
    sub = parser.add_subparsers(dest='command')

    crawl = sub.add_parser('crawl', help='Run the batch crawl')
    codes = crawl.add_mutually_exclusive_group()
    codes.add_argument('--preset', choices=sorted(PRESETS), help='Named search-code preset')
    codes.add_argument('--codes', type=str, help='Comma-separated search codes, e.g. 11-,31-')
    crawl.add_argument('--max-pages', type=int, help='Global page cap, 0 = unbounded (default: 0)')
    crawl.add_argument('--pages-per-code', type=int, help='Per-code page cap (default: 50)')
    crawl.add_argument('--save-every', type=int, help='Checkpoint every N pages (default: 5)')
    crawl.add_argument('--page-delay', type=str, metavar='MIN-MAX', help='Delay between pages in ms (default: 3000-6000)')
    crawl.add_argument('--code-delay', type=str, metavar='MIN-MAX', help='Delay between codes in ms (default: 10000-20000)')
    crawl.add_argument('--item-delay', type=str, metavar='MIN-MAX', help='Delay between journals in ms (default: 2000-4000)')
    crawl.add_argument('--timeout-ms', type=int, help='Navigation timeout in ms (default: 30000)')
    crawl.add_argument('--output', type=str, help='Output file: .xlsx, .csv or .json')
    crawl.add_argument('--sheet', type=str, help='Worksheet name for .xlsx output')
    crawl.add_argument('--export-json', type=str, help='Also export all records to this JSON file')
    crawl.add_argument('--clear', action='store_true', help='Back up and ignore the existing output file')
    crawl.add_argument('--stop-on-empty', action='store_true', help='Stop a code at the first page with no journals')
    crawl.add_argument('--headed', action='store_true', help='Show the browser window')
    crawl.add_argument('-y', '--yes', action='store_true', help='Skip the confirmation prompt')
    crawl.add_argument('--list-regions', action='store_true', help='Print known region codes and exit')

    extract = sub.add_parser('extract', help='Extract fields from a saved detail page')
    extract.add_argument('html', help='Saved HTML file')
    extract.add_argument('--title', type=str, help='Journal title (default: page title)')
    extract.add_argument('--url', type=str, help='URL the page was saved from')
    extract.add_argument('--json', action='store_true', help='Print the record as JSON')
    extract.add_argument('--all', action='store_true', help='Also print unknown fields')

    single = sub.add_parser('single', help='Fetch the first journal on one result page')
    single.add_argument('--code', type=str, required=True, help='Search code, e.g. 31-')
    single.add_argument('--page', type=int, default=1, help='Result page number (default: 1)')
    single.add_argument('--output', type=str, help='Output file: .xlsx, .csv or .json')
    single.add_argument('--headed', action='store_true', help='Show the browser window')
    single.add_argument('--json', action='store_true', help='Print the record as JSON')
    single.add_argument('--all', action='store_true', help='Also print unknown fields')
    return parser


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build CrawlerRunConfig, run."""
    load_env()
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    if args.command is None:
        return run_interactive_cli()
    if args.command == 'extract':
        return _run_extract(args)
    if args.command == 'single':
        return _run_single(args)

    if args.list_regions:
        for code, name in REGION_CODES.items():
            print(f"  {code}  {name}")
        return 0

    try:
        cfg = CrawlerRunConfig.from_cli_args(args, base=CrawlerRunConfig.from_env())
    except ValueError as exc:
        print(f"Invalid option: {exc}")
        return 2
    return _run_crawl(cfg, assume_yes=args.yes)


def main():
    sys.exit(run_cli_with_args())


if __name__ == '__main__':
    main()

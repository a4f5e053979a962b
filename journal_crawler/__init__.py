"""
Journal Crawler Package
Batch crawler for the journal navigator: searches by CN code prefix,
walks the result pages, and extracts one fixed-schema record per journal.

CLI Usage:
    python -m journal_crawler crawl [options]

    Options:
        --preset          DEFAULT | MAJOR_CITIES | ALL_REGIONS
        --codes           Comma-separated search codes (e.g. 11-,31-)
        --max-pages       Global page cap (default: 0 = unbounded)
        --pages-per-code  Per-code page cap (default: 50)
        --output          Output file, .xlsx / .csv / .json
        --yes             Skip the confirmation prompt

The Playwright backend lives in ``journal_crawler.browser`` and is only
imported by the CLI; everything exported here runs without a browser.
"""

from .record import DetailRecord, UNKNOWN
from .run_config import CrawlerRunConfig, PRESETS, REGION_CODES
from .errors import (
    CrawlError, NavigationError, ElementNotFound, ExtractionValidation,
    BlockDetected, PersistenceError, ConfigError, CrawlCancelled,
)
from .extractor import extract_fields, build_record
from .classifier import classify, decide, discover_items
from .resolver import resolve, resolve_all
from .store import RecordStore
from .sinks import ExcelSink, CsvSink, JsonSink, sink_for_path
from .pagination import PaginationController, SearchTask, TaskStatus
from .orchestrator import CrawlOrchestrator
from .monitor import RunStats
from .static_page import StaticSite, StaticPage

__all__ = [
    'DetailRecord',
    'UNKNOWN',
    'CrawlerRunConfig',
    'PRESETS',
    'REGION_CODES',
    # Errors
    'CrawlError',
    'NavigationError',
    'ElementNotFound',
    'ExtractionValidation',
    'BlockDetected',
    'PersistenceError',
    'ConfigError',
    'CrawlCancelled',
    # Extraction
    'extract_fields',
    'build_record',
    'classify',
    'decide',
    'discover_items',
    'resolve',
    'resolve_all',
    # Persistence
    'RecordStore',
    'ExcelSink',
    'CsvSink',
    'JsonSink',
    'sink_for_path',
    # Crawl
    'PaginationController',
    'SearchTask',
    'TaskStatus',
    'CrawlOrchestrator',
    'RunStats',
    'StaticSite',
    'StaticPage',
]

__version__ = '1.0.0'

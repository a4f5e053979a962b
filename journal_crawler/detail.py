"""
Detail Fetcher
==============
Opens one journal's detail page, expands the collapsed introduction,
follows the submission view (often a popup) and feeds both through the
field extractor.

A blocked or half-rendered page is not an error here: the extractor
simply finds less and the record carries ``UNKNOWN`` for the rest.
Navigation failures do propagate so the caller can count the item as
errored.
"""

import logging
from typing import List, Optional, Tuple

from . import selectors
from .backoff import BlockMonitor, DelayRange, Pacer
from .classifier import ListingItem
from .errors import CrawlCancelled
from .extractor import BASIC, SUBMISSION, Partial, TableRow, build_record, extract_fields
from .page_query import Navigator, PageQuery
from .record import DetailRecord
from .resolver import first_text, resolve, resolve_all
from .strategies import Chain

logger = logging.getLogger(__name__)

EXPAND_WAIT: DelayRange = (1500, 2500)
SUBMISSION_WAIT: DelayRange = (2500, 3500)


def collect_table_rows(query: PageQuery, chain: Chain = selectors.DETAIL_TABLE_ROWS) -> List[TableRow]:
    """``(label, value)`` pairs from two-column tables.

    Rows with four cells (label, value, label, value) yield two pairs.
    """
    pairs: List[TableRow] = []
    for row in resolve_all(chain, query):
        cells = [query.text(c).strip() for c in resolve_all(selectors.TABLE_CELLS, query, within=row)]
        if len(cells) < 2:
            continue
        pairs.extend(zip(cells[0::2], cells[1::2]))
    return pairs


def collect_stat_items(query: PageQuery) -> List[TableRow]:
    """``(label, value)`` pairs from ``h3``/``p`` stat blocks."""
    pairs: List[TableRow] = []
    for item in resolve_all(selectors.STAT_ITEMS, query):
        label = first_text(selectors.STAT_LABEL, query, within=item)
        value = first_text(selectors.STAT_VALUE, query, within=item)
        if label and value:
            pairs.append((label, value))
    return pairs


class DetailFetcher:
    """Fetches and extracts one ``DetailRecord`` per listing item."""

    def __init__(self, navigator: Navigator, monitor: BlockMonitor, pacer: Pacer):
        self.navigator = navigator
        self.monitor = monitor
        self.pacer = pacer

    def fetch(self, item: ListingItem) -> Optional[DetailRecord]:
        """Record for ``item``; ``None`` if the item has no usable title.

        Raises:
            NavigationError: the detail page could not be opened.
            CrawlCancelled:  cancellation requested during a wait.
        """
        if not item.title.strip():
            return None
        page = self.navigator.new_page()
        try:
            logger.info(f"[DETAIL] {item.title} -> {item.url}")
            page.navigate(item.url)
            self.monitor.wait_for_page_load(page)
            basic = self.extract_basic(page)
            submission = self.extract_submission(page)
        finally:
            page.close()

        record = build_record(item.title, basic, submission)
        logger.info(f"[DETAIL] {item.title}: {len(record.known_fields()) - 2} fields extracted")
        return record

    def expand_intro(self, page: PageQuery) -> bool:
        match = resolve(selectors.MORE_INTRO, page, require_enabled=True)
        if match is None:
            return False
        try:
            page.click(match.element)
        except Exception as exc:
            logger.debug(f"[DETAIL] expand click failed: {exc}")
            return False
        self.pacer.pause(EXPAND_WAIT, "expand intro")
        return True

    def extract_basic(self, page: PageQuery) -> Partial:
        self.expand_intro(page)
        return extract_fields(page.body_text(), collect_table_rows(page), BASIC)

    def extract_submission(self, page: PageQuery) -> Partial:
        """Open the submission view and extract its fields. Degrades to ``{}``."""
        match = resolve(selectors.SUBMISSION_ENTRY, page, require_enabled=True)
        if match is None:
            logger.debug("[DETAIL] no submission entry on page")
            return {}

        popup: Optional[PageQuery] = None
        try:
            popup = page.click(match.element)
            target = popup or page
            self.monitor.wait_for_page_load(target)
            self.pacer.pause(SUBMISSION_WAIT, "submission view")
            rows = collect_stat_items(target)
            rows += collect_table_rows(target, selectors.EDITORIAL_TABLE_ROWS)
            return extract_fields(target.body_text(), rows, SUBMISSION)
        except CrawlCancelled:
            raise
        except Exception as exc:
            logger.warning(f"[DETAIL] submission view failed: {exc}")
            return {}
        finally:
            if popup is not None:
                popup.close()


def extract_saved_page(query: PageQuery, title: str) -> Tuple[DetailRecord, Partial, Partial]:
    """Run both extraction passes over an already loaded page (no clicks, no waits)."""
    basic = extract_fields(query.body_text(), collect_table_rows(query), BASIC)
    rows = collect_stat_items(query) + collect_table_rows(query, selectors.EDITORIAL_TABLE_ROWS)
    submission = extract_fields(query.body_text(), rows, SUBMISSION)
    return build_record(title, basic, submission), basic, submission

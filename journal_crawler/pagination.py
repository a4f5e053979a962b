"""
Pagination Controller
=====================
Drives one search task through the result pages:

    PENDING -> SEARCHING -> LISTING_READY -> EXTRACTING -> ADVANCING
                                 ^                             |
                                 +-----------------------------+
                          ADVANCING -> DONE when no next page
                          any state -> FAILED on a first-page error

Budgets (global across tasks, and per task) are checked before entering
LISTING_READY and before ADVANCING. Entering LISTING_READY counts a
visited page.

A page with zero accepted journals does not stop the walk unless
``stop_on_empty_page`` is set; the page caps are the backstop.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from . import selectors
from .backoff import BlockMonitor, DelayRange, Pacer
from .classifier import ListingItem, discover_items
from .detail import DetailFetcher
from .errors import CrawlCancelled
from .monitor import PageStats, RunStats
from .page_query import PageQuery
from .resolver import Match, require, resolve
from .store import RecordStore

logger = logging.getLogger(__name__)

ADVANCE_SETTLE: DelayRange = (1500, 2500)


class TaskStatus(Enum):
    PENDING = "pending"
    SEARCHING = "searching"
    LISTING_READY = "listing_ready"
    EXTRACTING = "extracting"
    ADVANCING = "advancing"
    DONE = "done"
    FAILED = "failed"


TERMINAL = (TaskStatus.DONE, TaskStatus.FAILED)


@dataclass
class SearchTask:
    code: str
    page_cursor: int = 1
    pages_visited: int = 0
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    stop_reason: str = ""
    saved: int = 0

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL

    def move(self, status: TaskStatus) -> None:
        logger.debug(f"[TASK {self.code}] {self.status.value} -> {status.value}")
        self.status = status

    def finish(self, reason: str) -> None:
        self.stop_reason = reason
        self.move(TaskStatus.DONE)
        logger.info(f"[TASK {self.code}] done after {self.pages_visited} page(s): {reason}")


class PageBudget:
    """Global listing-page budget shared by every task. 0 = unbounded."""

    def __init__(self, max_total_pages: int = 0):
        self.max_total_pages = max_total_pages
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.max_total_pages > 0 and self.used >= self.max_total_pages

    @property
    def remaining(self) -> Optional[int]:
        if self.max_total_pages <= 0:
            return None
        return max(0, self.max_total_pages - self.used)

    def consume(self) -> None:
        self.used += 1


@dataclass
class PaginationSettings:
    max_pages_per_code: int = 50
    page_delay_ms: DelayRange = (3000, 6000)
    item_delay_ms: DelayRange = (2000, 4000)
    save_every_pages: int = 5
    stop_on_empty_page: bool = False
    base_url: str = selectors.BASE_URL
    search_type: str = selectors.SEARCH_TYPE
    site_root: str = selectors.SITE_ROOT


class PaginationController:
    """Runs ``SearchTask`` objects against one listing page."""

    def __init__(self, page: PageQuery, store: RecordStore, fetcher: DetailFetcher,
                 monitor: BlockMonitor, pacer: Pacer, budget: PageBudget,
                 stats: RunStats, settings: Optional[PaginationSettings] = None):
        self.page = page
        self.store = store
        self.fetcher = fetcher
        self.monitor = monitor
        self.pacer = pacer
        self.budget = budget
        self.stats = stats
        self.settings = settings or PaginationSettings()

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def run(self, task: SearchTask) -> SearchTask:
        """Walk the task to DONE. Exceptions on the first page propagate."""
        if self.budget.exhausted:
            task.finish("global page budget exhausted")
            return task

        task.move(TaskStatus.SEARCHING)
        self.search(task.code)

        while True:
            self.pacer.token.raise_if_cancelled("pagination")
            stop = self._budget_stop(task)
            if stop:
                task.finish(stop)
                return task

            task.move(TaskStatus.LISTING_READY)
            task.pages_visited += 1
            self.budget.consume()
            self.stats.pages_visited += 1
            logger.info(f"[PAGE] code={task.code} page={task.page_cursor} "
                        f"(task {task.pages_visited}/{self.settings.max_pages_per_code}, "
                        f"total {self.budget.used})")

            accepted = -1
            try:
                items = discover_items(self.page, root=self.settings.site_root)
                accepted = len(items)
                task.move(TaskStatus.EXTRACTING)
                page_stats = self.process_items(items)
                task.saved += page_stats.saved
                self.stats.add_page(page_stats)
                logger.info(f"[PAGE] page {task.page_cursor}: processed={page_stats.processed} "
                            f"saved={page_stats.saved} skipped={page_stats.skipped} "
                            f"errors={page_stats.errors}")
            except CrawlCancelled:
                raise
            except Exception as exc:
                if task.page_cursor == 1:
                    raise
                self.stats.page_errors += 1
                logger.error(f"[PAGE] page {task.page_cursor} of {task.code} failed: {exc}; "
                             f"trying next page")

            self.checkpoint()
            self.stats.log_progress()

            if accepted == 0 and self.settings.stop_on_empty_page:
                task.finish("no journals on page")
                return task

            stop = self._budget_stop(task)
            if stop:
                task.finish(stop)
                return task

            task.move(TaskStatus.ADVANCING)
            if not self.advance(task):
                task.finish("no next page")
                return task

    def _budget_stop(self, task: SearchTask) -> str:
        if self.budget.exhausted:
            return "global page budget exhausted"
        if task.pages_visited >= self.settings.max_pages_per_code:
            return "per-code page budget exhausted"
        return ""

    # -------------------------------------------------------------------
    # States
    # -------------------------------------------------------------------
    def search(self, code: str) -> None:
        """Submit a search for ``code`` from the navigator home page.

        Raises:
            NavigationError: the home page or result page failed to load.
            ElementNotFound: no search input on the page.
        """
        logger.info(f"[SEARCH] code={code}")
        self.page.navigate(self.settings.base_url)
        self.monitor.wait_for_page_load(self.page)

        field = require(selectors.SEARCH_INPUT, self.page, "search input")
        kind = resolve(selectors.SEARCH_TYPE_SELECT, self.page, require_visible=False)
        if kind is not None:
            try:
                self.page.select_option(kind.element, self.settings.search_type)
            except Exception as exc:
                logger.debug(f"[SEARCH] could not select search type: {exc}")

        self.page.fill(field.element, "")
        self.page.fill(field.element, code)
        self.page.press(field.element, "Enter")
        self.monitor.wait_for_page_load(self.page)
        self.pacer.pause(self.settings.page_delay_ms, "search results")

    def process_items(self, items: List[ListingItem]) -> PageStats:
        """Fetch, extract and merge each accepted item, in listing order."""
        page_stats = PageStats(accepted_items=len(items))
        for index, item in enumerate(items, 1):
            self.pacer.token.raise_if_cancelled("items")
            page_stats.processed += 1
            if self.store.exists(item.title):
                page_stats.skipped += 1
                logger.info(f"[ITEM] {index}/{len(items)} already stored: {item.title}")
                continue
            try:
                record = self.fetcher.fetch(item)
                if record is None:
                    page_stats.skipped += 1
                    logger.warning(f"[ITEM] {index}/{len(items)} no details: {item.title}")
                elif self.store.merge(record).applied:
                    page_stats.saved += 1
                    logger.info(f"[ITEM] {index}/{len(items)} saved: {item.title}")
                else:
                    page_stats.skipped += 1
            except CrawlCancelled:
                raise
            except Exception as exc:
                page_stats.errors += 1
                logger.error(f"[ITEM] {index}/{len(items)} failed: {item.title}: {exc}")
            if index < len(items):
                self.pacer.pause(self.settings.item_delay_ms, "between items")
        return page_stats

    def checkpoint(self) -> None:
        every = self.settings.save_every_pages
        if every > 0 and self.budget.used % every == 0:
            logger.info(f"[STORE] checkpoint after {self.budget.used} pages")
            self.stats.record_flush(self.store.flush().ok)

    def advance(self, task: SearchTask) -> bool:
        """Activate the next-page control. False when there is none."""
        self.pacer.pause(ADVANCE_SETTLE, "before paging")
        match = resolve(selectors.NEXT_PAGE, self.page, require_enabled=True)
        if match is None:
            match = resolve(selectors.PAGE_NUMBER_LINK, self.page,
                            page_number=task.page_cursor + 1, require_enabled=True)
        if match is None:
            logger.info(f"[PAGE] no next-page control after page {task.page_cursor}")
            return False
        if not self._follow(match):
            return False

        task.page_cursor += 1
        self.pacer.pause(self.settings.page_delay_ms, "between pages")
        return True

    def go_to_page(self, task: SearchTask, number: int) -> bool:
        """Bring the listing to result page ``number``.

        Clicks the numbered pager link when the current page shows one,
        otherwise steps through next-page controls. False when the page
        cannot be reached; the cursor then names the page actually shown.
        """
        if number <= task.page_cursor:
            return number == task.page_cursor
        self.pacer.pause(ADVANCE_SETTLE, "before paging")
        match = resolve(selectors.PAGE_NUMBER_LINK, self.page,
                        page_number=number, require_enabled=True)
        if match is not None and self._follow(match):
            logger.info(f"[PAGE] jumped from page {task.page_cursor} to page {number}")
            task.page_cursor = number
            self.pacer.pause(self.settings.page_delay_ms, "between pages")
            return True

        while task.page_cursor < number:
            if not self.advance(task):
                logger.warning(f"[PAGE] stuck on page {task.page_cursor}, wanted page {number}")
                return False
        return True

    def _follow(self, match: Match) -> bool:
        logger.debug(f"[PAGE] paging via {match.strategy.describe()}")
        try:
            popup = self.page.click(match.element)
            if popup is not None:
                popup.close()
            self.monitor.wait_for_page_load(self.page)
        except CrawlCancelled:
            raise
        except Exception as exc:
            logger.warning(f"[PAGE] pager click failed: {exc}")
            return False
        return True

"""
Crawl Orchestrator
==================
Runs every configured search code in order and returns ``RunStats``.

- One browser session for the whole run, released on every exit path.
- The store is loaded before any task and flushed at the end, on
  cancellation, and on any unexpected error.
- A task that fails on its first page is logged as failed; the run moves
  on to the next code.
- Cancellation is cooperative: ``stop()`` (or SIGINT in the CLI) sets the
  token, which every wait and loop checks.
- ``run_single`` is the one-journal mode: one code, one result page, the
  first journal on it, with the same load and save guarantees.
"""

import logging
from contextlib import ExitStack
from typing import Callable, List, Optional, Sequence

from .backoff import BlockMonitor, CancelToken, Pacer
from .classifier import discover_items
from .detail import DetailFetcher
from .errors import CrawlCancelled
from .monitor import RunStats, TaskLog
from .page_query import Navigator
from .pagination import PageBudget, PaginationController, PaginationSettings, SearchTask, TaskStatus
from .record import DetailRecord
from .run_config import CrawlerRunConfig
from .store import RecordStore

logger = logging.getLogger(__name__)

NavigatorFactory = Callable[[], Navigator]


class CrawlOrchestrator:
    """Sequences search tasks over a single navigator and store."""

    def __init__(self, config: CrawlerRunConfig, store: RecordStore,
                 navigator_factory: NavigatorFactory,
                 pacer: Optional[Pacer] = None,
                 token: Optional[CancelToken] = None):
        self.config = config
        self.store = store
        self.navigator_factory = navigator_factory
        self.token = token or (pacer.token if pacer else CancelToken())
        self.pacer = pacer or Pacer(self.token)
        self.pacer.token = self.token
        self.monitor = BlockMonitor(self.pacer, timeout_ms=config.timeout_ms)
        self.tasks: List[SearchTask] = []
        self._flushed = False

    def stop(self) -> None:
        """Request cooperative cancellation."""
        logger.info("Stop requested")
        self.token.cancel()

    def _settings(self) -> PaginationSettings:
        cfg = self.config
        return PaginationSettings(
            max_pages_per_code=cfg.max_pages_per_code,
            page_delay_ms=cfg.page_delay_ms,
            item_delay_ms=cfg.item_delay_ms,
            save_every_pages=cfg.save_every_pages,
            stop_on_empty_page=cfg.stop_on_empty_page,
            base_url=cfg.base_url,
            search_type=cfg.search_type,
            site_root=cfg.site_root,
        )

    def run(self, codes: Optional[Sequence[str]] = None) -> RunStats:
        codes = list(codes if codes is not None else self.config.search_codes)
        stats = RunStats()
        stats.start()
        self.tasks = [SearchTask(code) for code in codes]
        budget = PageBudget(self.config.max_total_pages)

        logger.info(f"[RUN] {len(codes)} search code(s): {', '.join(codes)}")
        if self.config.clear_existing:
            self.store.backup()
            self.store.clear()
            logger.info("[STORE] existing data backed up, starting empty")
        else:
            self.store.load()
        self._flushed = False

        try:
            with ExitStack() as stack:
                navigator = self.navigator_factory()
                if hasattr(navigator, "__exit__"):
                    navigator = stack.enter_context(navigator)
                listing_page = navigator.new_page()
                stack.callback(listing_page.close)
                # Runs first on exit: save before the browser goes away.
                stack.callback(self._final_flush, stats)

                fetcher = DetailFetcher(navigator, self.monitor, self.pacer)
                controller = PaginationController(
                    listing_page, self.store, fetcher, self.monitor, self.pacer,
                    budget, stats, self._settings(),
                )

                for index, task in enumerate(self.tasks):
                    self.token.raise_if_cancelled("between tasks")
                    self._run_task(controller, task, stats)
                    if index < len(self.tasks) - 1 and not budget.exhausted:
                        self.pacer.pause(self.config.code_delay_ms, "between codes")
        except (CrawlCancelled, KeyboardInterrupt) as exc:
            stats.stop_reason = "cancelled"
            logger.warning(f"[RUN] interrupted: {str(exc) or 'keyboard interrupt'}")
        except Exception as exc:
            stats.stop_reason = f"error: {exc}"
            logger.error(f"[RUN] aborted: {exc}", exc_info=True)
            raise
        finally:
            self._final_flush(stats)
            for task in self.tasks:
                if not task.terminal and task.status is not TaskStatus.PENDING:
                    self._log_task(stats, task, TaskStatus.FAILED, task.error or stats.stop_reason)
            stats.finish("budget exhausted" if budget.exhausted else "completed")

        return stats

    def run_single(self, code: str, page_number: int = 1) -> Optional[DetailRecord]:
        """Search ``code``, open result page ``page_number`` and save its first journal.

        Returns the stored record for that journal (the earlier copy when
        the title was already saved), or None when the page lists no
        journal or its detail page failed. An unreachable page number
        falls back to the last page reached.
        """
        stats = RunStats()
        stats.start()
        task = SearchTask(code)
        self.tasks = [task]
        self.store.load()
        self._flushed = False
        record = None

        try:
            with ExitStack() as stack:
                navigator = self.navigator_factory()
                if hasattr(navigator, "__exit__"):
                    navigator = stack.enter_context(navigator)
                listing_page = navigator.new_page()
                stack.callback(listing_page.close)
                stack.callback(self._final_flush, stats)

                fetcher = DetailFetcher(navigator, self.monitor, self.pacer)
                controller = PaginationController(
                    listing_page, self.store, fetcher, self.monitor, self.pacer,
                    PageBudget(), stats, self._settings(),
                )
                task.move(TaskStatus.SEARCHING)
                controller.search(code)
                if not controller.go_to_page(task, page_number):
                    logger.warning(f"[SINGLE] page {page_number} of {code} unreachable, "
                                   f"using page {task.page_cursor}")

                task.move(TaskStatus.LISTING_READY)
                task.pages_visited = 1
                stats.pages_visited = 1
                items = discover_items(listing_page, root=self.config.site_root)
                if not items:
                    task.finish("no journals on page")
                    return None

                task.move(TaskStatus.EXTRACTING)
                page_stats = controller.process_items(items[:1])
                stats.add_page(page_stats)
                task.saved = page_stats.saved
                record = self.store.get(items[0].title)
                task.finish("first journal taken")
        except (CrawlCancelled, KeyboardInterrupt) as exc:
            stats.stop_reason = "cancelled"
            logger.warning(f"[SINGLE] interrupted: {str(exc) or 'keyboard interrupt'}")
        except Exception as exc:
            stats.stop_reason = f"error: {exc}"
            logger.error(f"[SINGLE] aborted: {exc}", exc_info=True)
            raise
        finally:
            self._final_flush(stats)
            stats.finish()
        return record

    def _run_task(self, controller: PaginationController, task: SearchTask, stats: RunStats) -> None:
        try:
            controller.run(task)
        except (CrawlCancelled, KeyboardInterrupt):
            task.error = "cancelled"
            raise
        except Exception as exc:
            task.error = str(exc)
            task.move(TaskStatus.FAILED)
            logger.error(f"[TASK {task.code}] failed on page {task.page_cursor}: {exc}")
        self._log_task(stats, task, task.status, task.error)

    def _log_task(self, stats: RunStats, task: SearchTask, status: TaskStatus,
                  error: Optional[str]) -> None:
        if status is not task.status:
            task.move(status)
        stats.log_task(TaskLog(
            code=task.code,
            status=status.value,
            pages_visited=task.pages_visited,
            saved=task.saved,
            error=error,
            stop_reason=task.stop_reason,
        ))

    def _final_flush(self, stats: RunStats) -> None:
        if self._flushed:
            return
        self._flushed = True
        result = self.store.flush()
        stats.record_flush(result.ok)
        if not result.ok:
            logger.error(f"[STORE] final save failed; {result.count} records were not written")

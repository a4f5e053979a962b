"""
Tests for pacing, cancellation, block detection and run statistics.

Covers:
  1. Block indicators in URL / title
  2. One-shot recovery (wait, reload, wait)
  3. Pacer delays and cancellation
  4. RunStats accounting and summary
"""

import random
import threading
import time

import pytest

from journal_crawler.backoff import (
    BlockMonitor, CancelToken, Pacer, check_blocked, find_indicator, no_delay_pacer,
)
from journal_crawler.errors import BlockDetected, CrawlCancelled
from journal_crawler.monitor import PageStats, RunStats, TaskLog


class FakePage:
    """Minimal page whose title changes after a given number of reloads."""

    def __init__(self, url, titles):
        self.url = url
        self._titles = list(titles)
        self.reloads = 0
        self.settle_calls = 0

    def title(self):
        return self._titles[min(self.reloads, len(self._titles) - 1)]

    def reload(self):
        self.reloads += 1

    def wait_settled(self, timeout_ms):
        self.settle_calls += 1
        return True


# ====================================================================
# 1. Indicators
# ====================================================================

class TestIndicators:

    @pytest.mark.parametrize("url,title", [
        ("https://navi.cnki.net/verify/captcha", "期刊导航"),
        ("https://navi.cnki.net/knavi", "请输入验证码"),
        ("https://navi.cnki.net/knavi", "403 Forbidden"),
        ("https://navi.cnki.net/error/404", ""),
        ("https://navi.cnki.net/knavi", "访问被拒绝"),
    ])
    def test_blocked(self, url, title):
        assert check_blocked(url, title)

    def test_normal_page(self):
        assert not check_blocked("https://navi.cnki.net/knavi/detail?id=abc", "教育研究")

    def test_case_insensitive(self):
        assert find_indicator("https://x.test/CAPTCHA", "") == "captcha"

    def test_missing_values(self):
        assert find_indicator(None, None) is None


# ====================================================================
# 2. Recovery
# ====================================================================

class TestBlockMonitor:

    def test_recovery_reloads_once(self, pacer):
        page = FakePage("https://x.test/page", ["验证码", "验证码", "验证码"])
        monitor = BlockMonitor(pacer)
        assert monitor.wait_for_page_load(page) is False
        assert page.reloads == 1
        assert monitor.blocks_seen == 1
        assert monitor.recoveries == 1

    def test_recovery_succeeds(self, pacer):
        page = FakePage("https://x.test/page", ["验证码", "教育研究"])
        assert BlockMonitor(pacer).wait_for_page_load(page) is True
        assert page.reloads == 1

    def test_unblocked_page_not_reloaded(self, pacer):
        page = FakePage("https://x.test/page", ["教育研究"])
        assert BlockMonitor(pacer).wait_for_page_load(page) is True
        assert page.reloads == 0
        assert page.settle_calls == 1

    def test_on_block_callback(self, pacer):
        seen = []
        monitor = BlockMonitor(pacer, on_block=seen.append)
        monitor.check_blocked(FakePage("https://x.test/forbidden", ["t"]))
        assert len(seen) == 1
        assert isinstance(seen[0], BlockDetected)
        assert seen[0].url == "https://x.test/forbidden"
        assert seen[0].indicator == "forbidden"
        assert seen[0].error_code == "BLOCKED"
        assert monitor.last_block is seen[0]

    def test_reload_failure_is_not_raised(self, pacer):
        class Unreloadable(FakePage):
            def reload(self):
                raise RuntimeError("target closed")

        page = Unreloadable("https://x.test/page", ["验证码"])
        assert BlockMonitor(pacer).recover(page) is False

    def test_title_failure_treated_as_blank(self, pacer):
        class NoTitle(FakePage):
            def title(self):
                raise RuntimeError("navigating")

        assert not BlockMonitor(pacer).check_blocked(NoTitle("https://x.test/ok", [""]))


# ====================================================================
# 3. Pacer
# ====================================================================

class TestPacer:

    def test_pick_within_range(self):
        pacer = Pacer(rng=random.Random(7))
        picks = [pacer.pick((1000, 3000)) for _ in range(50)]
        assert all(1000 <= p <= 3000 for p in picks)

    def test_pick_swapped_bounds(self):
        assert 10 <= Pacer(rng=random.Random(1)).pick((20, 10)) <= 20

    def test_no_delay_pacer_never_sleeps(self):
        pacer = no_delay_pacer()
        assert pacer.pause((5000, 10000), "block backoff") == 0
        assert pacer.total_slept_ms == 0

    def test_pause_raises_when_already_cancelled(self, token):
        token.cancel()
        with pytest.raises(CrawlCancelled):
            no_delay_pacer(token).pause((0, 0), "page delay")

    def test_cancel_interrupts_long_wait(self):
        """A cancel during a long backoff wakes the sleeper immediately."""
        token = CancelToken()
        pacer = Pacer(token=token, rng=random.Random(0))
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(CrawlCancelled):
                pacer.pause((60000, 60000), "code delay")
        finally:
            timer.cancel()
        assert time.monotonic() - started < 5

    def test_scaled_pause(self):
        pacer = Pacer(rng=random.Random(0), scale=0.001)
        assert pacer.pause((1000, 1000)) == 1
        assert pacer.total_slept_ms == 1


# ====================================================================
# 4. RunStats
# ====================================================================

class TestRunStats:

    def test_add_page(self):
        stats = RunStats()
        stats.add_page(PageStats(processed=3, saved=2, skipped=1))
        stats.add_page(PageStats(processed=1, errors=1))
        assert (stats.processed, stats.saved, stats.skipped, stats.errored) == (4, 2, 1, 1)
        assert stats.processed == stats.saved + stats.skipped + stats.errored

    def test_flush_counts(self):
        stats = RunStats()
        stats.record_flush(True)
        stats.record_flush(False)
        assert stats.flushes == 2
        assert stats.failed_flushes == 1

    def test_finish_keeps_first_reason(self):
        stats = RunStats()
        stats.start()
        stats.stop_reason = "cancelled"
        stats.finish()
        assert stats.stop_reason == "cancelled"
        assert stats.finished_at

    def test_summary_lists_tasks(self):
        stats = RunStats()
        stats.start()
        stats.log_task(TaskLog(code="11-", status="done", pages_visited=3, saved=20))
        stats.log_task(TaskLog(code="31-", status="failed", error="no search input"))
        stats.finish()
        text = stats.format_summary()
        assert "CRAWL SUMMARY" in text
        assert "11-" in text and "no search input" in text
        assert stats.tasks_done == 1
        assert stats.tasks_failed == 1
        assert stats.to_dict()["stop_reason"] == "completed"

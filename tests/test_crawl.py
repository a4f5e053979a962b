"""
End-to-end crawl tests over a static replica of the navigator.

Covers:
  1. Single code walk: classification, extraction, pagination stop
  2. Page budgets (per code, global) and empty pages
  3. Dedup across pages and resumed runs
  4. Failure isolation (first page, detail page, later page, blocks)
  5. Checkpoints, cancellation and resource release
  6. Single-journal mode and direct page jumps
"""

from journal_crawler import pagination
from journal_crawler.orchestrator import CrawlOrchestrator
from journal_crawler.record import UNKNOWN
from journal_crawler.sinks import CsvSink
from journal_crawler.store import RecordStore

from conftest import ROOT, listing_html, make_record, result_url


def crawl(config, store, site, pacer, codes=None):
    orchestrator = CrawlOrchestrator(config, store, lambda: site, pacer=pacer)
    return orchestrator, orchestrator.run(codes)


def reload_titles(store):
    fresh = RecordStore(CsvSink(str(store.sink.path)))
    fresh.load()
    return fresh.titles()


TWO_PAGES = [
    [("教育研究", "e1", "journal"), ("复旦学报", "f1", "label_only"),
     ("解放日报", "n1", "newspaper"), ("数学学报", "m1", "marker_only")],
    [("中国语文", "c1", "journal")],
]


# ====================================================================
# 1. Single code walk
# ====================================================================

class TestSingleCode:

    def test_walks_until_no_next_page(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        orchestrator, stats = crawl(config, csv_store, site, pacer)

        assert stats.pages_visited == 2
        assert stats.processed == 4
        assert stats.saved == 4
        assert stats.errored == 0
        assert csv_store.titles() == ["教育研究", "复旦学报", "数学学报", "中国语文"]

        task = orchestrator.tasks[0]
        assert task.status is pagination.TaskStatus.DONE
        assert task.stop_reason == "no next page"
        assert stats.tasks_done == 1
        assert stats.stop_reason == "completed"

    def test_newspapers_never_fetched(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        crawl(config, csv_store, site, pacer)
        assert f"{ROOT}/knavi/detail?id=n1" not in site.visits
        assert "解放日报" not in csv_store

    def test_record_fields(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES[:1]).build()
        crawl(config, csv_store, site, pacer)
        record = csv_store.get("教育研究")
        assert record.cn_number == "31-1234/C"
        assert record.publisher == "复旦大学"
        assert record.composite_factor == "1.234"
        assert record.chief_editor == "张三"
        assert record.wjci_partition == "Q2"
        assert record.submission_fee == "/"
        assert record.former_name == UNKNOWN
        assert record.is_complete_key()

    def test_results_persisted(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.flushes == 1
        assert stats.failed_flushes == 0
        assert reload_titles(csv_store) == csv_store.titles()

    def test_counter_identity(self, config, csv_store, site_builder, pacer):
        csv_store.merge(make_record("复旦学报"))
        site = site_builder.code("31-", TWO_PAGES).build()
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.processed == stats.saved + stats.skipped + stats.errored


# ====================================================================
# 2. Budgets
# ====================================================================

class TestBudgets:

    def test_per_code_budget(self, config, csv_store, site_builder, pacer):
        config.max_pages_per_code = 1
        site = site_builder.code("31-", TWO_PAGES).build()
        orchestrator, stats = crawl(config, csv_store, site, pacer)
        assert stats.pages_visited == 1
        assert orchestrator.tasks[0].stop_reason == "per-code page budget exhausted"
        assert "中国语文" not in csv_store

    def test_per_code_budget_with_third_page_reachable(self, config, csv_store, site_builder, pacer):
        config.max_pages_per_code = 2
        site = site_builder.code("31-", TWO_PAGES + [[("历史研究", "h1", "journal")]]).build()
        orchestrator, stats = crawl(config, csv_store, site, pacer)

        assert stats.pages_visited == 2
        assert orchestrator.tasks[0].stop_reason == "per-code page budget exhausted"
        assert len(csv_store) == 4
        assert result_url("31-", 3) not in site.visits
        assert reload_titles(csv_store) == ["教育研究", "复旦学报", "数学学报", "中国语文"]

    def test_global_budget_spans_codes(self, config, csv_store, site_builder, pacer):
        config.search_codes = ["11-", "31-"]
        config.max_total_pages = 1
        site = (site_builder
                .code("11-", [[("北京大学学报", "b1", "journal")], [("中国科学", "s1", "journal")]])
                .code("31-", TWO_PAGES)
                .build())
        orchestrator, stats = crawl(config, csv_store, site, pacer)

        assert stats.pages_visited == 1
        assert csv_store.titles() == ["北京大学学报"]
        first, second = orchestrator.tasks
        assert first.stop_reason == "global page budget exhausted"
        assert second.status is pagination.TaskStatus.DONE
        assert second.pages_visited == 0
        assert stats.stop_reason == "budget exhausted"

    def test_empty_page_keeps_walking_by_default(self, config, csv_store, site_builder, pacer):
        pages = [[("解放日报", "n1", "newspaper")], [("中国语文", "c1", "journal")]]
        site = site_builder.code("31-", pages).build()
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.pages_visited == 2
        assert csv_store.titles() == ["中国语文"]

    def test_stop_on_empty_page(self, config, csv_store, site_builder, pacer):
        config.stop_on_empty_page = True
        pages = [[("解放日报", "n1", "newspaper")], [("中国语文", "c1", "journal")]]
        site = site_builder.code("31-", pages).build()
        orchestrator, stats = crawl(config, csv_store, site, pacer)
        assert stats.pages_visited == 1
        assert orchestrator.tasks[0].stop_reason == "no journals on page"


# ====================================================================
# 3. Dedup / resume
# ====================================================================

class TestDedup:

    def test_duplicate_across_pages(self, config, csv_store, site_builder, pacer):
        pages = [[("教育研究", "e1", "journal")],
                 [("教育研究", "e1", "journal"), ("中国语文", "c1", "journal")]]
        site = site_builder.code("31-", pages).build()
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.processed == 3
        assert stats.saved == 2
        assert stats.skipped == 1
        assert site.visits.count(f"{ROOT}/knavi/detail?id=e1") == 1

    def test_resumed_run_skips_persisted_titles(self, config, csv_store, site_builder, pacer):
        csv_store.merge(make_record("教育研究", issn="0000-0000"))
        csv_store.flush()

        store = RecordStore(CsvSink(str(csv_store.sink.path)))
        site = site_builder.code("31-", TWO_PAGES[:1]).build()
        _, stats = crawl(config, store, site, pacer)

        assert stats.skipped == 1
        assert store.get("教育研究").issn == "0000-0000"
        assert reload_titles(store) == ["教育研究", "复旦学报", "数学学报"]

    def test_clear_existing_backs_up_and_starts_empty(self, tmp_path, config, csv_store,
                                                      site_builder, pacer):
        csv_store.merge(make_record("旧刊"))
        csv_store.flush()
        config.clear_existing = True

        store = RecordStore(CsvSink(str(csv_store.sink.path)))
        site = site_builder.code("31-", [[("中国语文", "c1", "journal")]]).build()
        crawl(config, store, site, pacer)

        assert reload_titles(store) == ["中国语文"]
        backups = [p.name for p in tmp_path.iterdir() if "_backup_" in p.name]
        assert len(backups) == 1


# ====================================================================
# 4. Failure isolation
# ====================================================================

class TestFailures:

    def test_first_page_failure_moves_to_next_code(self, config, csv_store, site_builder, pacer):
        config.search_codes = ["99-", "31-"]
        site = site_builder.code("31-", TWO_PAGES[:1]).build()
        orchestrator, stats = crawl(config, csv_store, site, pacer)

        failed, done = orchestrator.tasks
        assert failed.status is pagination.TaskStatus.FAILED
        assert "NAVIGATION_FAILED" in failed.error
        assert done.status is pagination.TaskStatus.DONE
        assert stats.tasks_failed == 1
        assert stats.tasks_done == 1
        assert len(csv_store) == 3

    def test_missing_search_form_fails_task(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES[:1]).build()
        site.add(config.base_url, "<html><body><p>maintenance</p></body></html>")
        orchestrator, stats = crawl(config, csv_store, site, pacer)
        assert orchestrator.tasks[0].status is pagination.TaskStatus.FAILED
        assert "ELEMENT_NOT_FOUND" in orchestrator.tasks[0].error
        assert stats.pages_visited == 0

    def test_detail_failure_counts_item_error(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        del site.pages[f"{ROOT}/knavi/detail?id=f1"]
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.errored == 1
        assert stats.saved == 3
        assert "复旦学报" not in csv_store

    def test_missing_submission_view_degrades(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", [[("教育研究", "e1", "journal")]]).build()
        del site.pages[f"{ROOT}/knavi/submission?id=e1"]
        crawl(config, csv_store, site, pacer)
        record = csv_store.get("教育研究")
        assert record.issn == "1000-1234"
        assert record.chief_editor == UNKNOWN

    def test_later_page_error_continues(self, config, csv_store, site_builder, pacer, monkeypatch):
        pages = [[("教育研究", "e1", "journal")], [("复旦学报", "f1", "journal")],
                 [("中国语文", "c1", "journal")]]
        site = site_builder.code("31-", pages).build()
        real = pagination.discover_items
        calls = []

        def flaky(query, **kwargs):
            calls.append(query.url)
            if len(calls) == 2:
                raise RuntimeError("listing rendered partially")
            return real(query, **kwargs)

        monkeypatch.setattr(pagination, "discover_items", flaky)
        _, stats = crawl(config, csv_store, site, pacer)
        assert stats.pages_visited == 3
        assert stats.page_errors == 1
        assert csv_store.titles() == ["教育研究", "中国语文"]

    def test_blocked_detail_page_recovers_once(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", [[("教育研究", "e1", "journal")]]).build()
        url = f"{ROOT}/knavi/detail?id=e1"
        site.add(url, "<html><head><title>请输入验证码</title></head><body></body></html>")
        crawl(config, csv_store, site, pacer)

        assert site.visits.count(url) == 2
        record = csv_store.get("教育研究")
        assert record is not None
        assert record.issn == UNKNOWN

    def test_flush_failure_does_not_stop_crawl(self, tmp_path, config, site_builder, pacer):
        target = tmp_path / "out.csv"
        target.mkdir()
        (target / "occupied").write_text("x")
        config.save_every_pages = 1
        store = RecordStore(CsvSink(str(target)))
        site = site_builder.code("31-", TWO_PAGES).build()
        _, stats = crawl(config, store, site, pacer)
        assert stats.pages_visited == 2
        assert stats.flushes == 3
        assert stats.failed_flushes == 3
        assert len(store) == 4


# ====================================================================
# 5. Checkpoints / cancellation
# ====================================================================

class TestCheckpointsAndCancel:

    def test_checkpoint_cadence(self, config, csv_store, site_builder, pacer):
        config.save_every_pages = 1
        site = site_builder.code("31-", TWO_PAGES).build()
        _, stats = crawl(config, csv_store, site, pacer)
        # one per page plus the final save
        assert stats.flushes == 3

    def test_cancel_mid_page_saves_progress(self, config, tmp_path, site_builder, pacer, token):

        class CancellingStore(RecordStore):
            def merge(self, record):
                result = super().merge(record)
                token.cancel()
                return result

        store = CancellingStore(CsvSink(str(tmp_path / "journals.csv")))
        site = site_builder.code("31-", TWO_PAGES).build()
        orchestrator, stats = crawl(config, store, site, pacer)

        assert stats.stop_reason == "cancelled"
        assert reload_titles(store) == ["教育研究"]
        assert orchestrator.tasks[0].status is pagination.TaskStatus.FAILED
        assert stats.tasks[0].error == "cancelled"

    def test_stop_before_run(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        orchestrator = CrawlOrchestrator(config, csv_store, lambda: site, pacer=pacer)
        orchestrator.stop()
        stats = orchestrator.run()
        assert stats.stop_reason == "cancelled"
        assert stats.pages_visited == 0
        assert stats.tasks == []
        assert stats.flushes == 1

    def test_pages_released(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        crawl(config, csv_store, site, pacer)
        assert site.opened_pages > 0
        assert site.closed_pages == site.opened_pages

    def test_pages_released_on_cancel(self, config, tmp_path, site_builder, pacer, token):

        class CancellingStore(RecordStore):
            def merge(self, record):
                token.cancel()
                return super().merge(record)

        store = CancellingStore(CsvSink(str(tmp_path / "journals.csv")))
        site = site_builder.code("31-", TWO_PAGES).build()
        crawl(config, store, site, pacer)
        assert site.closed_pages == site.opened_pages

    def test_session_context_exited(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES[:1]).build()

        class Session:
            entered = exited = False

            def __enter__(self):
                Session.entered = True
                return site

            def __exit__(self, *exc):
                Session.exited = True
                return False

        CrawlOrchestrator(config, csv_store, Session, pacer=pacer).run()
        assert Session.entered and Session.exited


# ====================================================================
# 6. Single-journal mode
# ====================================================================

THREE_PAGES = TWO_PAGES + [[("解放日报", "n3", "newspaper"), ("历史研究", "h1", "journal"),
                            ("经济研究", "j1", "journal")]]


class TestSingleJournal:

    def single(self, config, store, site, pacer, code="31-", page=1):
        orchestrator = CrawlOrchestrator(config, store, lambda: site, pacer=pacer)
        return orchestrator, orchestrator.run_single(code, page)

    def test_jumps_straight_to_page(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", THREE_PAGES).build()
        orchestrator, record = self.single(config, csv_store, site, pacer, page=3)

        assert record.title == "历史研究"
        assert record.issn == "1000-1234"
        assert result_url("31-", 3) in site.visits
        assert result_url("31-", 2) not in site.visits
        assert f"{ROOT}/knavi/detail?id=j1" not in site.visits
        assert orchestrator.tasks[0].page_cursor == 3
        assert reload_titles(csv_store) == ["历史研究"]

    def test_first_page_by_default(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", THREE_PAGES).build()
        _, record = self.single(config, csv_store, site, pacer)
        assert record.title == "教育研究"
        assert csv_store.titles() == ["教育研究"]

    def test_steps_when_page_link_missing(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", THREE_PAGES).build()
        # page 1 only links pages 1 and 2
        first = [result_url("31-", 1), result_url("31-", 2)]
        site.add(result_url("31-", 1), listing_html(TWO_PAGES[0], result_url("31-", 2), first))
        _, record = self.single(config, csv_store, site, pacer, page=3)

        assert record.title == "历史研究"
        assert result_url("31-", 2) in site.visits

    def test_unreachable_page_uses_last_reached(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", TWO_PAGES).build()
        orchestrator, record = self.single(config, csv_store, site, pacer, page=5)
        assert record.title == "中国语文"
        assert orchestrator.tasks[0].page_cursor == 2

    def test_page_without_journals(self, config, csv_store, site_builder, pacer):
        site = site_builder.code("31-", [[("解放日报", "n1", "newspaper")]]).build()
        orchestrator, record = self.single(config, csv_store, site, pacer)
        assert record is None
        assert len(csv_store) == 0
        assert orchestrator.tasks[0].stop_reason == "no journals on page"
        assert site.closed_pages == site.opened_pages

    def test_already_stored_title_not_fetched(self, config, csv_store, site_builder, pacer):
        csv_store.merge(make_record("教育研究", issn="0000-0000"))
        csv_store.flush()
        store = RecordStore(CsvSink(str(csv_store.sink.path)))
        site = site_builder.code("31-", THREE_PAGES).build()
        _, record = self.single(config, store, site, pacer)

        assert record.issn == "0000-0000"
        assert f"{ROOT}/knavi/detail?id=e1" not in site.visits
        assert reload_titles(store) == ["教育研究"]

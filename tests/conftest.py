"""
Shared fixtures: a small static replica of the journal navigator.

Home page with a search form, paginated result listings per search code,
a detail page per journal and a submission popup per journal.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from journal_crawler import selectors
from journal_crawler.backoff import CancelToken, no_delay_pacer
from journal_crawler.extractor import build_record
from journal_crawler.run_config import CrawlerRunConfig
from journal_crawler.sinks import CsvSink
from journal_crawler.static_page import StaticSite
from journal_crawler.store import RecordStore

ROOT = selectors.SITE_ROOT
SEARCH_URL = ROOT + "/knavi/journals/search"

HOME_HTML = """
<html><head><title>期刊导航</title></head><body>
<form action="/knavi/journals/search">
  <select name="txt_1_sel">
    <option value="刊名">刊名</option>
    <option value="CN">CN</option>
  </select>
  <input type="text" name="txt_1_value1" id="txt_1_value1">
</form>
</body></html>
"""

TYPE_TAGS = {
    "journal": '<span>期刊</span><em class="qk_tag"></em><b>Journal</b>',
    "newspaper": '<span>报纸</span><em class="bz_tag"></em><b>Newspaper</b>',
    "label_only": "<span>期刊</span>",
    "marker_only": '<em class="qk_tag"></em>',
    "mixed": '<span>期刊</span><em class="bz_tag"></em>',
    "unknown": "<span>会议</span>",
}

# (title, detail id, kind)
Row = Tuple[str, str, str]


def result_url(code: str, page: int = 1) -> str:
    url = f"{SEARCH_URL}?txt_1_sel=CN&txt_1_value1={code}"
    return url if page == 1 else f"{url}&page={page}"


def listing_html(rows: Sequence[Row], next_url: Optional[str] = None,
                 page_urls: Sequence[str] = ()) -> str:
    items = []
    for title, detail_id, kind in rows:
        tag = TYPE_TAGS.get(kind)
        tag_html = f'<dd class="re_tag">{tag}</dd>' if tag is not None else ""
        items.append(
            f'<dl class="result"><dt><a href="/knavi/detail?id={detail_id}">{title}</a></dt>'
            f"{tag_html}</dl>"
        )
    nav = ""
    # the last page has no pager, so ".pagenav a:last-child" is always the next link
    if next_url:
        numbers = "".join(f'<a href="{url}">{n}</a>' for n, url in enumerate(page_urls, 1))
        nav = f'<div class="pagenav">{numbers}<a class="next" href="{next_url}">下一页</a></div>'
    return (
        "<html><head><title>检索结果</title></head><body>"
        f'<div class="result-table-list">{"".join(items)}</div>{nav}</body></html>'
    )


def detail_html(title: str, detail_id: str, publisher: str = "复旦大学") -> str:
    return f"""
<html><head><title>{title}</title></head><body>
<h1>{title}</h1>
<span id="J_sumBtn-stretch">更多介绍</span>
<div class="infobox">
  <p>主办单位：{publisher}</p>
  <p>出版周期：双月</p>
  <p>ISSN：1000-1234</p>
  <p>CN：31-1234/C</p>
  <p>出版地：上海市</p>
  <p>语种：中文</p>
  <p>开本：大16开</p>
  <p>创刊时间：1998</p>
  <p>(2024版)复合影响因子：1.234</p>
  <p>(2024版)综合影响因子：0.876</p>
  <p>总下载次数：123,456次</p>
  <p>总被引次数：7,890次</p>
</div>
<table>
  <tr><td>专辑名称</td><td>社会科学I辑</td></tr>
  <tr><td>专题名称</td><td>高等教育</td></tr>
</table>
<a id="TouGao" href="/knavi/submission?id={detail_id}" target="_blank">投稿</a>
</body></html>
"""


SUBMISSION_HTML = """
<html><head><title>投稿信息</title></head><body>
<div class="info-stat">
  <div class="stat-item"><h3>WJCI分区</h3><p>Q2</p></div>
</div>
<div class="ant-descriptions-view"><table>
  <tr><th>主编</th><td>张三</td><th>副主编</th><td>李四</td></tr>
  <tr><th>投稿邮箱</th><td>edit@example.com</td><th>联系电话</th><td>电话：021-12345678</td></tr>
</table></div>
<p>是否收费：/</p>
</body></html>
"""


class SiteBuilder:
    """Assemble a ``StaticSite`` from listing pages per search code."""

    def __init__(self):
        self.pages: Dict[str, str] = {selectors.BASE_URL: HOME_HTML}

    def code(self, code: str, pages: List[List[Row]]) -> "SiteBuilder":
        urls = [result_url(code, n) for n in range(1, len(pages) + 1)]
        for number, rows in enumerate(pages, 1):
            next_url = result_url(code, number + 1) if number < len(pages) else None
            self.pages[result_url(code, number)] = listing_html(rows, next_url, urls)
            for title, detail_id, _ in rows:
                self.pages[f"{ROOT}/knavi/detail?id={detail_id}"] = detail_html(title, detail_id)
                self.pages[f"{ROOT}/knavi/submission?id={detail_id}"] = SUBMISSION_HTML
        return self

    def build(self) -> StaticSite:
        return StaticSite(dict(self.pages))


@pytest.fixture
def site_builder():
    return SiteBuilder()


@pytest.fixture
def token():
    return CancelToken()


@pytest.fixture
def pacer(token):
    return no_delay_pacer(token)


@pytest.fixture
def config():
    return CrawlerRunConfig(
        search_codes=["31-"],
        max_pages_per_code=50,
        save_every_pages=5,
        page_delay_ms=(1000, 1000),
        code_delay_ms=(5000, 5000),
        item_delay_ms=(0, 0),
        timeout_ms=1000,
    )


@pytest.fixture
def csv_store(tmp_path):
    return RecordStore(CsvSink(str(tmp_path / "journals.csv")))


def make_record(title: str, **fields: str):
    return build_record(title, fields, retrieved_at="2024-05-01 10:00:00")

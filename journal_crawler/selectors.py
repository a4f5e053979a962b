"""
Selector Catalogue
==================
Every fallback chain the crawler uses, as data.

The navigator's markup changes without notice; when it does, only this
file should need editing. Bump ``CATALOGUE_VERSION`` with each change so
logs show which catalogue a run used.
"""

from .strategies import Chain, Css, HasText, PageNumber, css

CATALOGUE_VERSION = "2024.1"

BASE_URL = "https://navi.cnki.net/knavi/#"
SITE_ROOT = "https://navi.cnki.net"
SEARCH_FALLBACK_URL = SITE_ROOT + "/knavi/journals/index?search={query}"

# Value selected in the search-type dropdown before typing a code.
SEARCH_TYPE = "CN"

# Listing rows beyond this index are ignored on every page.
MAX_ITEMS_PER_PAGE = 50

# ---------------------------------------------------------------------------
# Search form
# ---------------------------------------------------------------------------
SEARCH_INPUT: Chain = css(
    'input[name="txt_1_value1"]',
    'input[id="txt_1_value1"]',
    ".search-input",
    'input[type="text"]',
)

SEARCH_TYPE_SELECT: Chain = css('select[name="txt_1_sel"]')

# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
RESULT_ITEMS: Chain = css(
    "dl.result",
    ".result-table-list dl",
    ".grid-table tr",
    ".result",
    "tbody tr",
    ".item",
    "dl",
    "tr",
)

TITLE_LINK: Chain = css(
    "h1 a",
    "dt a",
    ".title a",
    'a[href*="journal"]',
    'a[href*="navi.cnki.net"]',
    "a[title]",
    "a",
    "h1",
    "h2",
    "h3",
    ".name",
    ".journal-name",
)

TYPE_TAG: Chain = css(".re_tag")
TYPE_TAG_LABEL: Chain = css("span")
TYPE_TAG_CLASS_MARKER: Chain = css("em")
TYPE_TAG_SHORT_MARKER: Chain = css("b")

# ---------------------------------------------------------------------------
# Detail page
# ---------------------------------------------------------------------------
MORE_INTRO: Chain = css("#J_sumBtn-stretch", ".btn-stretch")

SUBMISSION_ENTRY: Chain = (
    Css("#TouGao"),
    Css(".shares"),
    HasText("a", "投稿"),
)

STAT_ITEMS: Chain = css(".info-stat .stat-item", ".stat-item")
STAT_LABEL: Chain = css("h3")
STAT_VALUE: Chain = css("p")

DETAIL_TABLE_ROWS: Chain = css("table tr")
EDITORIAL_TABLE_ROWS: Chain = css(".ant-descriptions-view table tr")
TABLE_CELLS: Chain = css("th, td")

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
NEXT_PAGE: Chain = (
    Css(".pagenav .next"),
    Css("a.next"),
    Css(".next"),
    HasText("a", "下一页"),
    HasText("a", "下页"),
    Css('a[title*="下一页"]'),
    Css(".pagenav a:last-child"),
    Css(".page-next"),
    Css('a[onclick*="next"]'),
    Css(".pagination .next"),
    Css(".paging .next"),
)

PAGE_NUMBER_LINK: Chain = (
    PageNumber(".pagenav a"),
    PageNumber(".pagination a"),
    PageNumber(".paging a"),
)

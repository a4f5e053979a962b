"""
Field Extractor
===============
Turns the visible text (and any two-column tables) of a journal detail
page into a partial record.

Two passes per section, in order; the second only fills fields the
first left unset:

  1. Pattern pass: ``field -> ordered regexes``. Each regex is anchored on
     the field's label and bounds its capture by length and character
     class. The first regex that matches wins.
  2. Table pass: ``(label, value)`` rows whose label contains a known
     field label fill the field if its value passes a length bound.

Captures are cut at the next known label so run-on text such as
``出版周期：双月 创刊时间：1998`` yields ``双月``. Contact fields are also
run through ``clean_value`` which strips trailing boilerplate.

Stateless; every function here is safe to call on any text.
"""

import logging
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from .errors import ExtractionValidation
from .record import UNKNOWN, DetailRecord

logger = logging.getLogger(__name__)

TableRow = Tuple[str, str]
Partial = Dict[str, str]

BASIC = "basic"
SUBMISSION = "submission"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_SEP = r"[\s：:]*"

# The source's own "nothing here" placeholders.
PLACEHOLDERS = frozenset({"暂无", "无", "-", "—"})
_PLACEHOLDER_FRAGMENTS = ("未知", "详情请咨询")


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# ---------------------------------------------------------------------------
# Pattern tables
# ---------------------------------------------------------------------------
BASIC_PATTERNS: Dict[str, Tuple[Pattern, ...]] = {
    "cn_number": _compile(
        r"CN[：:]*\s*(\d{2}-\d{4}(?:/[A-Z0-9]+)?)",
        r"CN[：:]*\s*(\d+[\-/][\d\w]+)",
    ),
    "issn": _compile(r"ISSN[：:]*\s*(\d+-\d+[\dXx]?)"),
    "former_name": _compile(r"曾用刊名" + _SEP + r"([^\n\r]{2,100})"),
    "publisher": _compile(
        r"主办单位[：:]*\s*([\u4e00-\u9fa5\w\s（）()]{2,50})",
        r"主办单位[：:]*\s*([\u4e00-\u9fa5]{2,20}大学)",
        r"主办单位[：:]*\s*([\u4e00-\u9fa5]{2,30})",
    ),
    "publish_cycle": _compile(r"出版周期" + _SEP + r"([^\n\r]{1,50})"),
    "publish_place": _compile(r"出版地" + _SEP + r"([^\n\r；;语]{2,20})"),
    "language": _compile(r"语种" + _SEP + r"([^\n\r；;开]{2,20})"),
    "format": _compile(r"开本" + _SEP + r"([^\n\r创]{2,10})"),
    "founding_time": _compile(r"创刊时间" + _SEP + r"(\d{4})"),
    "album_name": _compile(r"专辑名称" + _SEP + r"([^\n\r]{2,100})"),
    "topic_name": _compile(r"专题名称" + _SEP + r"([^\n\r]{2,100})"),
    "publication_count": _compile(r"出版文献量" + _SEP + r"([\d,]+篇?)"),
    "total_downloads": _compile(r"总下载次数" + _SEP + r"([\d,]+次)"),
    "total_citations": _compile(r"总被引次数" + _SEP + r"([\d,]+次)"),
    "database_list": _compile(r"该刊被以下数据库收录" + _SEP + r"([^\n\r]{5,200})"),
}

# value field -> (year field, patterns with groups (year, value))
FACTOR_PATTERNS: Dict[str, Tuple[str, Tuple[Pattern, ...]]] = {
    "composite_factor": ("composite_factor_year", _compile(
        r"\((\d{4})版\)复合影响因子" + _SEP + r"([\d.]+)",
        r"（(\d{4})版）复合影响因子" + _SEP + r"([\d.]+)",
    )),
    "comprehensive_factor": ("comprehensive_factor_year", _compile(
        r"\((\d{4})版\)综合影响因子" + _SEP + r"([\d.]+)",
        r"（(\d{4})版）综合影响因子" + _SEP + r"([\d.]+)",
    )),
}

DATABASE_TAG_PATTERN = re.compile(r"(?:SCI|JSTP|CSCD|WJCI|AJ)[^\s]{0,10}", re.IGNORECASE)

SUBMISSION_PATTERNS: Dict[str, Tuple[Pattern, ...]] = {
    "wjci_partition": _compile(
        r"WJCI分区" + _SEP + r"(Q?\d+)",
        r"WJCI\s*分区" + _SEP + r"(Q?\d+)",
    ),
    "submission_publish_cycle": _compile(r"出版周期" + _SEP + r"([^\n\r]{1,20})"),
    "submission_fee": _compile(
        r"是否收费" + _SEP + r"([^/\n\r：:\s][^/\n\r]{0,19})",
        r"(?<!是否)收费" + _SEP + r"([^/\n\r：:\s][^/\n\r]{0,19})",
    ),
    "deputy_editor": _compile(r"副主编" + _SEP + r"([^\n\r]{1,20})"),
    "chief_editor": _compile(r"(?<!副)主编" + _SEP + r"([^\n\r]{1,20})"),
    "official_website": _compile(r"官网网址" + _SEP + r"([^\n\r\s]{10,100})"),
    "submission_website": _compile(r"投稿网址" + _SEP + r"([^\n\r\s]{10,100})"),
    "submission_email": _compile(r"投稿邮箱" + _SEP + r"([^\n\r\s]{5,50})"),
    "consultation_email": _compile(r"咨询邮箱" + _SEP + r"([^\n\r\s]{5,50})"),
    "editorial_address": _compile(r"编辑部地址" + _SEP + r"([^\n\r]{5,100})"),
    "contact_phone": _compile(r"联系电话" + _SEP + r"([^\n\r]{5,30})"),
}

# (label, field, max length). Order matters: the first label contained in
# a row's key wins, so 副主编 is listed before 主编.
BASIC_TABLE_LABELS: Tuple[Tuple[str, str, int], ...] = (
    ("主办单位", "publisher", 100),
    ("出版周期", "publish_cycle", 30),
    ("专辑名称", "album_name", 100),
    ("专题名称", "topic_name", 100),
    ("出版文献量", "publication_count", 50),
    ("复合影响因子", "composite_factor", 20),
    ("综合影响因子", "comprehensive_factor", 20),
    ("曾用刊名", "former_name", 100),
    ("出版地", "publish_place", 50),
    ("语种", "language", 50),
    ("开本", "format", 20),
    ("创刊时间", "founding_time", 20),
    ("总下载次数", "total_downloads", 50),
    ("总被引次数", "total_citations", 50),
)

SUBMISSION_TABLE_LABELS: Tuple[Tuple[str, str, int], ...] = (
    ("WJCI分区", "wjci_partition", 20),
    ("出版周期", "submission_publish_cycle", 30),
    ("是否收费", "submission_fee", 30),
    ("副主编", "deputy_editor", 30),
    ("主编", "chief_editor", 30),
    ("官网网址", "official_website", 100),
    ("投稿网址", "submission_website", 100),
    ("投稿邮箱", "submission_email", 50),
    ("咨询邮箱", "consultation_email", 50),
    ("编辑部地址", "editorial_address", 100),
    ("联系电话", "contact_phone", 30),
)

CONTACT_FIELDS = frozenset({
    "chief_editor", "deputy_editor", "official_website", "submission_website",
    "submission_email", "consultation_email", "editorial_address", "contact_phone",
})

# Labels that end a run-on capture.
_BOUNDARY_LABELS = tuple(sorted(
    {label for label, _, _ in BASIC_TABLE_LABELS + SUBMISSION_TABLE_LABELS}
    | {"CN", "ISSN", "该刊被以下数据库收录"},
    key=len, reverse=True,
))

_EDITOR_TAIL = re.compile(r"(副主编|网址|邮箱|电话|暂无|官网).*$")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------
def cut_at_next_label(value: str) -> str:
    """Drop everything from the first known label that follows the value."""
    cut = len(value)
    for label in _BOUNDARY_LABELS:
        pos = value.find(label, 1)
        if 0 < pos < cut:
            cut = pos
    return value[:cut].strip()


def is_placeholder(value: str) -> bool:
    value = value.strip()
    if not value or value in PLACEHOLDERS:
        return True
    return any(frag in value for frag in _PLACEHOLDER_FRAGMENTS)


def clean_value(field_name: str, value: str) -> str:
    """Normalize a contact value or raise ``ExtractionValidation``."""
    cleaned = re.sub(r"^[\s：:]+|[\s：:]+$", "", value or "")
    cleaned = re.sub(r"\s+", " ", cleaned)

    if field_name in ("chief_editor", "deputy_editor"):
        if field_name == "deputy_editor":
            cleaned = re.sub(r"^副主编" + _SEP, "", cleaned)
        cleaned = _EDITOR_TAIL.sub("", cleaned).strip()
    elif field_name == "contact_phone":
        cleaned = re.sub(r"[^\d\-\s()（）]", "", cleaned).strip()

    if is_placeholder(cleaned):
        raise ExtractionValidation(field_name, value, "placeholder or empty after cleaning")
    return cleaned


def _clean_publisher(value: str) -> str:
    value = re.sub(r"[，,].*$", "", value)
    value = re.sub(r"(ISSN|CN).*$", "", value, flags=re.IGNORECASE)
    value = re.sub(r"\s+", " ", value).strip()
    if not 1 < len(value) < 50:
        raise ExtractionValidation("publisher", value, "length out of range")
    return value


def _accept(field_name: str, raw: str) -> str:
    """Shared post-processing for a captured value. Raises on rejection."""
    value = cut_at_next_label(re.sub(r"^[\s：:]+|[\s：:]+$", "", raw))
    if field_name == "publisher":
        value = _clean_publisher(value)
    if field_name in CONTACT_FIELDS:
        return clean_value(field_name, value)
    # "无" and "暂无" are real answers outside contact fields (e.g. no fee)
    if not value or UNKNOWN in value:
        raise ExtractionValidation(field_name, raw, "empty or unknown value")
    return value


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------
def pattern_pass(text: str, patterns: Dict[str, Sequence[Pattern]],
                 found: Optional[Partial] = None) -> Partial:
    found = {} if found is None else found
    for field_name, candidates in patterns.items():
        if field_name in found:
            continue
        for pattern in candidates:
            match = pattern.search(text)
            if not match:
                continue
            try:
                found[field_name] = _accept(field_name, match.group(1))
                break
            except ExtractionValidation as exc:
                logger.debug(f"[EXTRACT] {exc}")
    return found


def factor_pass(text: str, found: Optional[Partial] = None) -> Partial:
    found = {} if found is None else found
    for value_field, (year_field, candidates) in FACTOR_PATTERNS.items():
        if value_field in found:
            continue
        for pattern in candidates:
            match = pattern.search(text)
            if match:
                found[year_field] = match.group(1)
                found[value_field] = match.group(2)
                break
    return found


def database_tags(text: str) -> str:
    seen: List[str] = []
    for tag in DATABASE_TAG_PATTERN.findall(text):
        if tag not in seen:
            seen.append(tag)
    return " ".join(seen)


def table_pass(rows: Iterable[TableRow], labels: Sequence[Tuple[str, str, int]],
               found: Optional[Partial] = None) -> Partial:
    found = {} if found is None else found
    for key, value in rows:
        key = (key or "").strip()
        value = (value or "").strip()
        for label, field_name, max_len in labels:
            if label not in key:
                continue
            if field_name in found:
                break
            if not 1 < len(value) < max_len:
                logger.debug(f"[EXTRACT] table value for {field_name} out of bounds ({len(value)})")
                break
            if field_name == "publisher" and ("ISSN" in value or "CN" in value):
                break
            try:
                found[field_name] = _accept(field_name, value)
            except ExtractionValidation as exc:
                logger.debug(f"[EXTRACT] {exc}")
            break
    return found


def extract_fields(raw_text: str, table_rows: Optional[Iterable[TableRow]] = None,
                   section: str = BASIC) -> Partial:
    """Partial record (field name -> value) for one page section.

    Args:
        raw_text:   Visible text of the page.
        table_rows: ``(label, value)`` pairs from tables / stat blocks.
        section:    ``BASIC`` for the journal page, ``SUBMISSION`` for the
                    submission view.
    """
    text = raw_text or ""
    if section == SUBMISSION:
        found = pattern_pass(text, SUBMISSION_PATTERNS)
        found = table_pass(table_rows or (), SUBMISSION_TABLE_LABELS, found)
        if "submission_fee" not in found and "是否收费" in text:
            found["submission_fee"] = "/"
        return found

    found = pattern_pass(text, BASIC_PATTERNS)
    tags = database_tags(text)
    if tags:
        found["database_tags"] = tags
    found = factor_pass(text, found)
    return table_pass(table_rows or (), BASIC_TABLE_LABELS, found)


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def build_record(title: str, *partials: Partial, retrieved_at: Optional[str] = None) -> DetailRecord:
    """Merge partials into a full record. Earlier partials win per field."""
    values: Dict[str, str] = {}
    names = set(DetailRecord.field_names())
    for partial in partials:
        for name, value in partial.items():
            if name in names and name not in values and value and value != UNKNOWN:
                values[name] = value
    values["title"] = title.strip()
    values["retrieved_at"] = retrieved_at or timestamp()
    return DetailRecord(**values)

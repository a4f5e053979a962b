"""
Listing Classifier
==================
Decides whether a listing row is a journal (keep) or something else,
typically a newspaper (drop).

Evidence comes from three tiers inside the row's type tag:

  1. the visible type label (``期刊`` / ``报纸``)
  2. a class marker on a nested ``em`` (``qk_tag`` / ``bz_tag``)
  3. a short English marker on a nested ``b`` (``Journal`` / ``Newspaper``)

Decision rule: a rejection at any tier vetoes; otherwise the first
acceptance wins; a row with no conclusive evidence is rejected.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote, urljoin

from . import selectors
from .page_query import Element, PageQuery
from .resolver import resolve_all

logger = logging.getLogger(__name__)


class Verdict(Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    UNKNOWN = "unknown"


class Classification(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Evidence:
    tier: int
    verdict: Verdict
    reason: str


@dataclass(frozen=True)
class ClassifierVerdict:
    classification: Classification
    reason: str
    evidence: Tuple[Evidence, ...] = ()
    tag_text: str = ""

    @property
    def accepted(self) -> bool:
        return self.classification is Classification.ACCEPTED


@dataclass
class ListingItem:
    title: str
    url: str
    classification: Classification = Classification.UNKNOWN
    reason: str = ""
    tag_text: str = ""
    evidence: List[Evidence] = field(default_factory=list)


# Tier lookup tables
_LABELS = {"期刊": Verdict.ACCEPT, "报纸": Verdict.REJECT}
_CLASS_MARKERS = {"qk_tag": Verdict.ACCEPT, "bz_tag": Verdict.REJECT}
_SHORT_MARKERS = {"Journal": Verdict.ACCEPT, "Newspaper": Verdict.REJECT}


def decide(evidence: Sequence[Evidence]) -> ClassifierVerdict:
    """Combine tier evidence into a verdict. Pure."""
    evidence = tuple(evidence)
    for item in evidence:
        if item.verdict is Verdict.REJECT:
            return ClassifierVerdict(Classification.REJECTED, item.reason, evidence)
    for item in evidence:
        if item.verdict is Verdict.ACCEPT:
            return ClassifierVerdict(Classification.ACCEPTED, item.reason, evidence)
    if evidence:
        return ClassifierVerdict(Classification.UNKNOWN, "no conclusive type marker", evidence)
    return ClassifierVerdict(Classification.REJECTED, "no type tag", evidence)


def collect_evidence(query: PageQuery, tag: Element) -> List[Evidence]:
    """Read all three tiers from a row's type-tag element."""
    evidence: List[Evidence] = []

    for el in resolve_all(selectors.TYPE_TAG_LABEL, query, within=tag):
        label = query.text(el).strip()
        if not label:
            continue
        verdict = _LABELS.get(label, Verdict.UNKNOWN)
        evidence.append(Evidence(1, verdict, f"type label '{label}'"))

    for el in resolve_all(selectors.TYPE_TAG_CLASS_MARKER, query, within=tag):
        classes = (query.attribute(el, "class") or "").split()
        for cls in classes:
            if cls in _CLASS_MARKERS:
                evidence.append(Evidence(2, _CLASS_MARKERS[cls], f"class marker '{cls}'"))

    for el in resolve_all(selectors.TYPE_TAG_SHORT_MARKER, query, within=tag):
        marker = query.text(el).strip()
        if marker in _SHORT_MARKERS:
            evidence.append(Evidence(3, _SHORT_MARKERS[marker], f"short marker '{marker}'"))

    return evidence


def classify(query: PageQuery, row: Element) -> ClassifierVerdict:
    """Classify one listing row. Never raises; failures reject."""
    try:
        tags = resolve_all(selectors.TYPE_TAG, query, within=row)
        if not tags:
            return decide([])
        verdict = decide(collect_evidence(query, tags[0]))
        return replace(verdict, tag_text=query.text(tags[0]).strip())
    except Exception as exc:
        logger.debug(f"[CLASSIFY] type check failed: {exc}")
        return ClassifierVerdict(Classification.REJECTED, "type check failed")


def normalize_url(href: Optional[str], title: str, root: str = selectors.SITE_ROOT) -> str:
    """Absolute detail URL; a site search for the title when there is no link."""
    href = (href or "").strip()
    if not href or href.startswith("javascript:"):
        return selectors.SEARCH_FALLBACK_URL.format(query=quote(title))
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(root + "/", href)


def build_item(query: PageQuery, row: Element,
               root: str = selectors.SITE_ROOT) -> Optional[ListingItem]:
    """Title + URL for a row, or ``None`` when the row has no title."""
    for strategy in selectors.TITLE_LINK:
        try:
            candidates = query.find_all(strategy, row)
        except Exception as exc:
            logger.debug(f"[CLASSIFY] title strategy {strategy.describe()} failed: {exc}")
            continue
        for el in candidates:
            title = query.text(el).strip()
            if title:
                href = query.attribute(el, "href")
                return ListingItem(title=title, url=normalize_url(href, title, root))
    return None


def discover_items(query: PageQuery, root: str = selectors.SITE_ROOT,
                   limit: int = selectors.MAX_ITEMS_PER_PAGE) -> List[ListingItem]:
    """Accepted journal items on the current listing page, in listing order."""
    rows = resolve_all(selectors.RESULT_ITEMS, query)[:limit]
    accepted: List[ListingItem] = []
    for row in rows:
        item = build_item(query, row, root)
        if item is None:
            continue
        verdict = classify(query, row)
        item.classification = verdict.classification
        item.reason = verdict.reason
        item.tag_text = verdict.tag_text
        item.evidence = list(verdict.evidence)
        if verdict.accepted:
            accepted.append(item)
            logger.debug(f"[CLASSIFY] keep   {item.title} ({verdict.reason})")
        else:
            logger.info(f"[CLASSIFY] skip   {item.title} ({verdict.reason})")
    logger.info(f"[CLASSIFY] {len(accepted)}/{len(rows)} rows accepted")
    return accepted

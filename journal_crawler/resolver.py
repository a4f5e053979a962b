"""
Selector Resolver
=================
Walks an ordered fallback chain and returns the first usable element.

Pure loop over a list of strategies: no hidden retries, no waiting.
A strategy that raises is logged and skipped, exactly as if it had
matched nothing.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .errors import ElementNotFound
from .page_query import Element, PageQuery
from .strategies import Chain, PageNumber, Strategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    element: Element
    strategy: Strategy
    index: int


def _candidates(query: PageQuery, strategy: Strategy, within: Optional[Element],
                page_number: Optional[int]) -> List[Element]:
    if isinstance(strategy, PageNumber):
        if page_number is None:
            return []
        wanted = str(page_number)
        return [el for el in query.find_all(strategy, within)
                if query.text(el).strip() == wanted]
    return query.find_all(strategy, within)


def resolve(chain: Chain, query: PageQuery, *, within: Optional[Element] = None,
            page_number: Optional[int] = None, require_visible: bool = True,
            require_enabled: bool = False) -> Optional[Match]:
    """Return the first element produced by the chain, or ``None``.

    Args:
        chain:           Ordered strategies; earlier entries win.
        query:           Page to search.
        within:          Restrict the search to this element's subtree.
        page_number:     Value for ``PageNumber`` strategies.
        require_visible: Skip elements that are not rendered.
        require_enabled: Skip disabled elements (clickable targets).
    """
    for index, strategy in enumerate(chain):
        try:
            for element in _candidates(query, strategy, within, page_number):
                if require_visible and not query.is_visible(element):
                    continue
                if require_enabled and not query.is_enabled(element):
                    continue
                logger.debug(f"[RESOLVE] matched {strategy.describe()} (#{index})")
                return Match(element, strategy, index)
        except Exception as exc:
            logger.debug(f"[RESOLVE] strategy {strategy.describe()} failed: {exc}")
    return None


def resolve_all(chain: Chain, query: PageQuery, *,
                within: Optional[Element] = None) -> List[Element]:
    """Return the elements of the first strategy that yields a non-empty list."""
    for strategy in chain:
        try:
            found = query.find_all(strategy, within)
        except Exception as exc:
            logger.debug(f"[RESOLVE] strategy {strategy.describe()} failed: {exc}")
            continue
        if found:
            logger.debug(f"[RESOLVE] {len(found)} elements via {strategy.describe()}")
            return found
    return []


def require(chain: Chain, query: PageQuery, name: str, **kwargs) -> Match:
    """Like ``resolve`` but raises ``ElementNotFound`` when the chain is exhausted."""
    match = resolve(chain, query, **kwargs)
    if match is None:
        raise ElementNotFound(name, {"strategies": [s.describe() for s in chain]})
    return match


def first_text(chain: Chain, query: PageQuery, *, within: Optional[Element] = None) -> str:
    """Text of the first element in the chain whose text is non-empty."""
    for strategy in chain:
        try:
            for element in query.find_all(strategy, within):
                text = query.text(element).strip()
                if text:
                    return text
        except Exception as exc:
            logger.debug(f"[RESOLVE] strategy {strategy.describe()} failed: {exc}")
    return ""

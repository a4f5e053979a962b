"""
Query Strategies
================
Typed element-lookup strategies consumed by the resolver.

A fallback chain is an ordered tuple of these. Keeping them as values
(rather than raw selector strings) lets the static and Playwright page
backends each translate them their own way.
"""

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class Css:
    """Plain CSS selector."""
    selector: str

    def describe(self) -> str:
        return self.selector


@dataclass(frozen=True)
class HasText:
    """Elements matching ``selector`` whose text contains ``text``."""
    selector: str
    text: str

    def describe(self) -> str:
        return f'{self.selector}:has-text("{self.text}")'


@dataclass(frozen=True)
class PageNumber:
    """Among links matching ``selector``, the one whose text is the page number.

    The number is supplied at resolve time.
    """
    selector: str

    def describe(self) -> str:
        return f"{self.selector} [page-number]"


Strategy = Union[Css, HasText, PageNumber]
Chain = Tuple[Strategy, ...]


def css(*selectors: str) -> Chain:
    """Shorthand for a chain made only of CSS selectors."""
    return tuple(Css(s) for s in selectors)

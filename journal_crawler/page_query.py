"""
Page-Query Capability
=====================
The only surface through which crawler logic touches a page.

Two backends implement it:
  - ``browser.PlaywrightPage`` drives a live Chromium page.
  - ``static_page.StaticPage`` answers from saved HTML (tests, offline
    replay of a detail page).

Elements are opaque handles; only the page that returned one may be
asked about it.
"""

from typing import Any, List, Optional, Protocol

from .strategies import Strategy

Element = Any


class PageQuery(Protocol):
    """Query and drive a single page."""

    @property
    def url(self) -> str: ...

    def title(self) -> str: ...

    def body_text(self) -> str: ...

    def find(self, strategy: Strategy, within: Optional[Element] = None) -> Optional[Element]: ...

    def find_all(self, strategy: Strategy, within: Optional[Element] = None) -> List[Element]: ...

    def text(self, element: Element) -> str: ...

    def attribute(self, element: Element, name: str) -> Optional[str]: ...

    def is_visible(self, element: Element) -> bool: ...

    def is_enabled(self, element: Element) -> bool: ...

    def click(self, element: Element) -> Optional["PageQuery"]:
        """Click; return the popup page if the click opened one."""
        ...

    def fill(self, element: Element, value: str) -> None: ...

    def press(self, element: Element, key: str) -> None: ...

    def select_option(self, element: Element, value: str) -> None: ...

    def navigate(self, url: str) -> None: ...

    def reload(self) -> None: ...

    def wait_settled(self, timeout_ms: int) -> bool:
        """Wait for the network to go quiet. False on timeout."""
        ...

    def close(self) -> None: ...


class Navigator(Protocol):
    """Something that can open pages (a browser session or a static site)."""

    def new_page(self) -> PageQuery: ...

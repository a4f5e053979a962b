"""
Static Page Backend
===================
Page-query implementation over saved HTML, parsed with BeautifulSoup.

``StaticSite`` maps URLs to HTML documents and hands out ``StaticPage``
objects. It supports the handful of interactions the crawler needs:

  - clicking a link navigates (``target="_blank"`` opens a popup page)
  - pressing Enter in a form field submits the form as a GET query
  - an unknown URL raises ``NavigationError``

Used for tests and for replaying a saved detail page through the
extractor without a browser.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlencode, urljoin, urldefrag

from bs4 import BeautifulSoup, Tag

from .errors import NavigationError
from .strategies import Css, HasText, PageNumber, Strategy

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"


class StaticSite:
    """In-memory site: ``{url: html}``."""

    def __init__(self, pages: Optional[Dict[str, str]] = None):
        self.pages: Dict[str, str] = dict(pages or {})
        self.visits: List[str] = []
        self.opened_pages = 0
        self.closed_pages = 0

    def add(self, url: str, html: str) -> None:
        self.pages[url] = html

    def fetch(self, url: str) -> str:
        self.visits.append(url)
        if url in self.pages:
            return self.pages[url]
        bare, _ = urldefrag(url)
        if bare in self.pages:
            return self.pages[bare]
        raise NavigationError(url, "no such page")

    def new_page(self) -> "StaticPage":
        self.opened_pages += 1
        return StaticPage(self)

    @classmethod
    def from_file(cls, path: str, url: Optional[str] = None) -> "StaticSite":
        html = Path(path).read_text(encoding="utf-8")
        return cls({url or Path(path).resolve().as_uri(): html})


class StaticPage:
    """One tab on a ``StaticSite``."""

    def __init__(self, site: StaticSite, url: str = "about:blank"):
        self.site = site
        self._url = url
        self._soup = BeautifulSoup("<html><body></body></html>", _BS_PARSER)
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    def title(self) -> str:
        tag = self._soup.title
        return tag.get_text(strip=True) if tag else ""

    def body_text(self) -> str:
        body = self._soup.body or self._soup
        for tag in body.find_all(["script", "style"]):
            tag.decompose()
        return body.get_text("\n", strip=True)

    # ---- Queries ----
    def find(self, strategy: Strategy, within: Optional[Tag] = None) -> Optional[Tag]:
        found = self.find_all(strategy, within)
        return found[0] if found else None

    def find_all(self, strategy: Strategy, within: Optional[Tag] = None) -> List[Tag]:
        root = within if within is not None else self._soup
        if isinstance(strategy, (Css, PageNumber)):
            return root.select(strategy.selector)
        if isinstance(strategy, HasText):
            return [el for el in root.select(strategy.selector) if strategy.text in el.get_text()]
        raise TypeError(f"Unsupported strategy: {strategy!r}")

    def text(self, element: Tag) -> str:
        return element.get_text(" ", strip=True)

    def attribute(self, element: Tag, name: str) -> Optional[str]:
        value = element.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def is_visible(self, element: Tag) -> bool:
        node = element
        while isinstance(node, Tag):
            if node.has_attr("hidden"):
                return False
            style = (node.get("style") or "").replace(" ", "").lower()
            if "display:none" in style or "visibility:hidden" in style:
                return False
            node = node.parent
        return True

    def is_enabled(self, element: Tag) -> bool:
        if element.has_attr("disabled"):
            return False
        return "disabled" not in (element.get("class") or [])

    # ---- Actions ----
    def click(self, element: Tag) -> Optional["StaticPage"]:
        href = element.get("href")
        if element.name != "a" or not href or href.startswith(("#", "javascript:")):
            return None
        target = urljoin(self._url, href)
        if element.get("target") == "_blank":
            popup = self.site.new_page()
            try:
                popup.navigate(target)
            except NavigationError:
                popup.close()
                raise
            return popup
        self.navigate(target)
        return None

    def fill(self, element: Tag, value: str) -> None:
        element["value"] = value

    def press(self, element: Tag, key: str) -> None:
        if key != "Enter":
            return
        form = element.find_parent("form")
        scope = form if form is not None else self._soup
        params = []
        for field in scope.find_all(["input", "select"]):
            name = field.get("name")
            if not name:
                continue
            if field.name == "select":
                chosen = field.find("option", selected=True) or field.find("option")
                params.append((name, chosen.get("value", chosen.get_text(strip=True)) if chosen else ""))
            elif field.get("type", "text") in ("text", "search", "hidden"):
                params.append((name, field.get("value", "")))
        action = form.get("action") if form is not None else None
        base = urljoin(self._url, action) if action else urldefrag(self._url)[0]
        self.navigate(f"{base}?{urlencode(params)}")

    def select_option(self, element: Tag, value: str) -> None:
        options = element.find_all("option")
        chosen = [o for o in options if o.get("value", o.get_text(strip=True)) == value]
        if not chosen:
            raise ValueError(f"option '{value}' not found")
        for option in options:
            if option.has_attr("selected"):
                del option["selected"]
        chosen[0]["selected"] = "selected"

    def navigate(self, url: str) -> None:
        html = self.site.fetch(url)
        self._url = url
        self._soup = BeautifulSoup(html, _BS_PARSER)
        logger.debug(f"[STATIC] loaded {url}")

    def reload(self) -> None:
        self.navigate(self._url)

    def wait_settled(self, timeout_ms: int) -> bool:
        return True

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.site.closed_pages += 1

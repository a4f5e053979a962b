"""
Crawl Error Hierarchy
=====================
Every failure the crawler raises on purpose derives from ``CrawlError``.

Propagation rules live with the callers, not here:
  - ``ElementNotFound`` / ``ExtractionValidation`` stay local (the field
    becomes unknown, or the item is skipped).
  - ``NavigationError`` ends a task only on its first listing page.
  - ``BlockDetected`` triggers one recovery attempt and is never escalated.
  - ``PersistenceError`` is logged; the flush reports failure and later
    flushes still run.
  - ``CrawlCancelled`` unwinds to the orchestrator's cleanup path.
"""

from typing import Any, Dict, List, Optional


class CrawlError(Exception):
    """Base class for all crawler errors."""

    def __init__(self, message: str, error_code: str = "CRAWL_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class NavigationError(CrawlError):
    """A page could not be reached or did not settle."""

    def __init__(self, url: str, reason: str = "", details: Optional[Dict[str, Any]] = None):
        message = f"Navigation to {url} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "NAVIGATION_FAILED", details or {"url": url, "reason": reason})
        self.url = url


class ElementNotFound(CrawlError):
    """Every strategy in a fallback chain came up empty."""

    def __init__(self, chain: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"No element matched chain '{chain}'", "ELEMENT_NOT_FOUND",
                         details or {"chain": chain})
        self.chain = chain


class ExtractionValidation(CrawlError):
    """An extracted value failed a sanity check."""

    def __init__(self, field_name: str, value: Any, reason: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Rejected value for '{field_name}': {reason}", "EXTRACTION_INVALID",
                         details or {"field": field_name, "value": value, "reason": reason})
        self.field_name = field_name
        self.value = value


class BlockDetected(CrawlError):
    """The site served a captcha / forbidden page instead of content."""

    def __init__(self, url: str, indicator: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Block page detected at {url} (indicator: {indicator})", "BLOCKED",
                         details or {"url": url, "indicator": indicator})
        self.url = url
        self.indicator = indicator


class PersistenceError(CrawlError):
    """The record sink could not read or write."""

    def __init__(self, path: str, operation: str, reason: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Sink {operation} failed for {path}: {reason}", "PERSISTENCE_FAILED",
                         details or {"path": path, "operation": operation, "reason": reason})
        self.path = path
        self.operation = operation


class ConfigError(CrawlError):
    """Run configuration is invalid. ``problems`` lists every violation."""

    def __init__(self, problems: List[str]):
        super().__init__("Invalid configuration: " + "; ".join(problems), "CONFIG_INVALID",
                         {"problems": list(problems)})
        self.problems = list(problems)


class CrawlCancelled(CrawlError):
    """Cooperative cancellation was requested."""

    def __init__(self, where: str = ""):
        message = "Crawl cancelled"
        if where:
            message = f"{message} during {where}"
        super().__init__(message, "CANCELLED", {"where": where})

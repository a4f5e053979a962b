"""
Unified Run Configuration
=========================
Single source of truth for every crawl default and limit.

CLI flags, interactive prompts and environment variables all populate
this one object; the orchestrator and pagination controller read from it.
The delay floors in ``validate`` keep the crawl slow enough not to be
flagged as automated.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from . import selectors
from .errors import ConfigError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Search-code presets and region labels
# ---------------------------------------------------------------------------
PRESETS: Dict[str, List[str]] = {
    "DEFAULT": ["11-", "31-"],
    "MAJOR_CITIES": ["11-", "31-", "21-", "44-", "37-", "51-"],
    "ALL_REGIONS": ["11-", "31-", "21-", "44-", "37-", "51-", "32-", "33-", "34-", "35-"],
}

REGION_CODES: Dict[str, str] = {
    "11-": "北京", "12-": "天津", "13-": "河北", "14-": "山西", "15-": "内蒙古",
    "21-": "辽宁", "22-": "吉林", "23-": "黑龙江",
    "31-": "上海", "32-": "江苏", "33-": "浙江", "34-": "安徽", "35-": "福建",
    "36-": "江西", "37-": "山东",
    "41-": "河南", "42-": "湖北", "43-": "湖南", "44-": "广东", "45-": "广西", "46-": "海南",
    "50-": "重庆", "51-": "四川", "52-": "贵州", "53-": "云南", "54-": "西藏",
    "61-": "陕西", "62-": "甘肃", "63-": "青海", "64-": "宁夏", "65-": "新疆",
}

# Minimum delays (ms)
MIN_PAGE_DELAY_MS = 1000
MIN_CODE_DELAY_MS = 5000

ENV_PREFIX = "JOURNAL_CRAWLER_"


# ---------------------------------------------------------------------------
# Canonical defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_total_pages": 0,              # 0 = unbounded
    "max_pages_per_code": 50,
    "page_delay_ms": (3000, 6000),
    "code_delay_ms": (10000, 20000),
    "item_delay_ms": (2000, 4000),
    "save_every_pages": 5,
    "timeout_ms": 30000,               # per navigation / element wait
    "headless": True,
    "output_path": "zhiwang_journals_complete.xlsx",
    "sheet_name": "Journal_Info",
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}


def region_label(code: str) -> str:
    name = REGION_CODES.get(code)
    return f"{code}({name})" if name else code


def _parse_range(value: str) -> Tuple[int, int]:
    low, _, high = value.partition("-")
    return int(low), int(high or low)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                  -> all defaults
      - ``CrawlerRunConfig(max_pages_per_code=5)`` -> override one value
      - ``CrawlerRunConfig.from_cli_args(ns)``  -> from argparse Namespace
      - ``CrawlerRunConfig.from_env()``         -> from JOURNAL_CRAWLER_* variables
    """

    # ---- Tasks ----
    search_codes: List[str] = field(default_factory=lambda: list(PRESETS["DEFAULT"]))

    # ---- Limits ----
    max_total_pages: int = _DEFAULTS["max_total_pages"]
    max_pages_per_code: int = _DEFAULTS["max_pages_per_code"]
    save_every_pages: int = _DEFAULTS["save_every_pages"]
    timeout_ms: int = _DEFAULTS["timeout_ms"]
    stop_on_empty_page: bool = False

    # ---- Pacing (ms ranges) ----
    page_delay_ms: Tuple[int, int] = _DEFAULTS["page_delay_ms"]
    code_delay_ms: Tuple[int, int] = _DEFAULTS["code_delay_ms"]
    item_delay_ms: Tuple[int, int] = _DEFAULTS["item_delay_ms"]

    # ---- Output ----
    output_path: str = _DEFAULTS["output_path"]
    sheet_name: str = _DEFAULTS["sheet_name"]
    export_json: Optional[str] = None
    clear_existing: bool = False

    # ---- Site / browser ----
    base_url: str = selectors.BASE_URL
    site_root: str = selectors.SITE_ROOT
    search_type: str = selectors.SEARCH_TYPE
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------
    def validate(self) -> List[str]:
        """Every problem with this config (empty list = valid)."""
        problems = []
        if not self.search_codes or not all(c.strip() for c in self.search_codes):
            problems.append("search_codes must be a non-empty list of non-blank codes")
        if self.max_total_pages < 0:
            problems.append("max_total_pages must be >= 0 (0 = unbounded)")
        if self.max_pages_per_code <= 0:
            problems.append("max_pages_per_code must be > 0")
        if self.save_every_pages <= 0:
            problems.append("save_every_pages must be > 0")
        if self.timeout_ms <= 0:
            problems.append("timeout_ms must be > 0")
        for name, floor in (("page_delay_ms", MIN_PAGE_DELAY_MS), ("code_delay_ms", MIN_CODE_DELAY_MS)):
            low, high = getattr(self, name)
            if low < floor or high < floor:
                problems.append(f"{name} bounds must each be >= {floor}ms")
            if low > high:
                problems.append(f"{name} minimum must not exceed maximum")
        low, high = self.item_delay_ms
        if low < 0 or low > high:
            problems.append("item_delay_ms must be a non-negative range with min <= max")
        return problems

    def ensure_valid(self) -> "CrawlerRunConfig":
        problems = self.validate()
        if problems:
            raise ConfigError(problems)
        return self

    def estimate(self) -> Tuple[int, int]:
        """(estimated listing pages, estimated minutes) for the confirmation prompt."""
        pages = len(self.search_codes) * self.max_pages_per_code
        if self.max_total_pages > 0:
            pages = min(pages, self.max_total_pages)
        avg_delay = sum(self.page_delay_ms) / 2
        return pages, int(math.ceil(pages * avg_delay / 60000))

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args, base: Optional["CrawlerRunConfig"] = None) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace; unset flags keep ``base`` values."""
        cfg = base or cls()

        codes = getattr(args, "codes", None)
        preset = getattr(args, "preset", None)
        if codes:
            cfg.search_codes = [c.strip() for c in codes.split(",") if c.strip()]
        elif preset:
            cfg.search_codes = list(PRESETS[preset])

        for attr, flag in (
            ("max_total_pages", "max_pages"),
            ("max_pages_per_code", "pages_per_code"),
            ("save_every_pages", "save_every"),
            ("timeout_ms", "timeout_ms"),
            ("output_path", "output"),
            ("sheet_name", "sheet"),
            ("export_json", "export_json"),
        ):
            value = getattr(args, flag, None)
            if value is not None:
                setattr(cfg, attr, value)

        for attr, flag in (("page_delay_ms", "page_delay"), ("code_delay_ms", "code_delay"),
                           ("item_delay_ms", "item_delay")):
            value = getattr(args, flag, None)
            if value:
                setattr(cfg, attr, _parse_range(value))

        if getattr(args, "headed", False):
            cfg.headless = False
        if getattr(args, "stop_on_empty", False):
            cfg.stop_on_empty_page = True
        if getattr(args, "clear", False):
            cfg.clear_existing = True
        return cfg

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "CrawlerRunConfig":
        """Defaults overridden by ``JOURNAL_CRAWLER_*`` variables (e.g. from .env)."""
        env = os.environ if environ is None else environ
        cfg = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        if get("CODES"):
            cfg.search_codes = [c.strip() for c in get("CODES").split(",") if c.strip()]
        if get("OUTPUT"):
            cfg.output_path = get("OUTPUT")
        if get("BASE_URL"):
            cfg.base_url = get("BASE_URL")
        if get("HEADLESS"):
            cfg.headless = _parse_bool(get("HEADLESS"))
        if get("MAX_PAGES_PER_CODE"):
            cfg.max_pages_per_code = int(get("MAX_PAGES_PER_CODE"))
        if get("USER_AGENT"):
            cfg.user_agent = get("USER_AGENT")
        return cfg

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger."""
        pages, minutes = self.estimate()
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Search Codes:     {', '.join(region_label(c) for c in self.search_codes)}")
        logger.info(f"  Max Pages:        {self.max_total_pages or 'unbounded'} total, "
                    f"{self.max_pages_per_code} per code")
        logger.info(f"  Page Delay:       {self.page_delay_ms[0]}-{self.page_delay_ms[1]}ms")
        logger.info(f"  Code Delay:       {self.code_delay_ms[0]}-{self.code_delay_ms[1]}ms")
        logger.info(f"  Save Every:       {self.save_every_pages} pages")
        logger.info(f"  Output:           {self.output_path}")
        if self.export_json:
            logger.info(f"  JSON Export:      {self.export_json}")
        if self.stop_on_empty_page:
            logger.info("  Empty Page:       stops the code")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Selectors:        catalogue {selectors.CATALOGUE_VERSION}")
        logger.info(f"  Estimate:         ~{pages} pages, ~{minutes // 60}h{minutes % 60:02d}m")
        logger.info("=" * 60)

"""
Pacing and Block Monitor
========================
Human-like delays, cooperative cancellation, and the captcha/forbidden
page check that runs after every navigation.

All waiting goes through ``Pacer.pause`` which sleeps on the cancel
token, so a cancel request wakes a long backoff immediately.
"""

import logging
import random
import threading
from typing import Callable, Optional, Sequence, Tuple

from .errors import BlockDetected, CrawlCancelled
from .page_query import PageQuery

logger = logging.getLogger(__name__)

DelayRange = Tuple[int, int]

BLOCK_INDICATORS: Tuple[str, ...] = (
    "验证码", "captcha", "403", "404", "blocked", "forbidden", "拒绝访问", "访问被拒绝",
)

# Recovery and settle waits (milliseconds)
RECOVERY_FIRST_WAIT: DelayRange = (5000, 10000)
RECOVERY_SECOND_WAIT: DelayRange = (3000, 6000)
SETTLE_WAIT: DelayRange = (1000, 3000)


class CancelToken:
    """Thread-safe cancellation flag (set from a signal handler, read by the crawl)."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. True if cancelled meanwhile."""
        return self._event.wait(max(0.0, seconds))

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            raise CrawlCancelled(where)


class Pacer:
    """Randomized delays between pages, items and tasks."""

    def __init__(self, token: Optional[CancelToken] = None,
                 rng: Optional[random.Random] = None,
                 scale: float = 1.0):
        self.token = token or CancelToken()
        self.rng = rng or random.Random()
        self.scale = scale
        self.total_slept_ms = 0

    def pick(self, delay: DelayRange) -> int:
        low, high = int(delay[0]), int(delay[1])
        if high < low:
            low, high = high, low
        return self.rng.randint(low, high)

    def pause(self, delay: DelayRange, reason: str = "") -> int:
        """Sleep a uniform random time within ``delay`` (ms). Returns ms chosen.

        Raises:
            CrawlCancelled: cancellation requested before or during the wait.
        """
        self.token.raise_if_cancelled(reason)
        ms = int(self.pick(delay) * self.scale)
        if ms <= 0:
            return 0
        if reason:
            logger.debug(f"[PACE] waiting {ms / 1000:.1f}s ({reason})")
        self.total_slept_ms += ms
        if self.token.wait(ms / 1000.0):
            raise CrawlCancelled(reason)
        return ms


def no_delay_pacer(token: Optional[CancelToken] = None) -> Pacer:
    """Pacer that never sleeps (tests, offline replay)."""
    return Pacer(token=token, scale=0.0)


def find_indicator(url: str, title: str,
                   indicators: Sequence[str] = BLOCK_INDICATORS) -> Optional[str]:
    surface = f"{url or ''} {title or ''}".lower()
    for indicator in indicators:
        if indicator.lower() in surface:
            return indicator
    return None


def check_blocked(url: str, title: str) -> bool:
    """True when the URL or title shows a block/challenge page."""
    return find_indicator(url, title) is not None


class BlockMonitor:
    """Detects block pages and runs a single wait+reload recovery."""

    def __init__(self, pacer: Pacer, timeout_ms: int = 30000,
                 on_block: Optional[Callable[[BlockDetected], None]] = None):
        self.pacer = pacer
        self.timeout_ms = timeout_ms
        self.on_block = on_block
        self.blocks_seen = 0
        self.recoveries = 0
        self.last_block: Optional[BlockDetected] = None

    def check_blocked(self, query: PageQuery) -> bool:
        indicator = find_indicator(query.url, _safe_title(query))
        if indicator is None:
            return False
        self.blocks_seen += 1
        self.last_block = BlockDetected(query.url, indicator)
        logger.warning(f"[BLOCK] {self.last_block}")
        if self.on_block:
            self.on_block(self.last_block)
        return True

    def recover(self, query: PageQuery) -> bool:
        """Long wait, reload, second wait. One attempt only.

        Returns True if the page no longer looks blocked. The caller
        continues either way.
        """
        self.recoveries += 1
        logger.info("[BLOCK] backing off before reload")
        self.pacer.pause(RECOVERY_FIRST_WAIT, "block backoff")
        try:
            query.reload()
            query.wait_settled(self.timeout_ms)
        except Exception as exc:
            logger.warning(f"[BLOCK] reload failed: {exc}")
        self.pacer.pause(RECOVERY_SECOND_WAIT, "after reload")
        still_blocked = find_indicator(query.url, _safe_title(query)) is not None
        if still_blocked:
            logger.warning("[BLOCK] page still blocked after recovery, continuing with best effort")
        return not still_blocked

    def wait_for_page_load(self, query: PageQuery) -> bool:
        """Settle, short pause, block check with at most one recovery.

        Returns False only if the page is still blocked afterwards.
        """
        if not query.wait_settled(self.timeout_ms):
            logger.debug(f"[PAGE] settle timed out at {query.url}, proceeding")
        self.pacer.pause(SETTLE_WAIT, "settle")
        if self.check_blocked(query):
            return self.recover(query)
        return True


def _safe_title(query: PageQuery) -> str:
    try:
        return query.title()
    except Exception:
        return ""

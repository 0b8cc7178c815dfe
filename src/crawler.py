"""Sequential crawl of the search-results pages.

Per page: LOAD → WAIT_FOR_CONTENT → EXTRACT → CHECK_NEXT → ADVANCE or TERMINATE.
Pages are never fetched concurrently; the caller consumes one page (and
classifies its records on the same browser session) before the crawler
looks for the next one.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.log import get_logger
from src.models import ListingRecord

log = get_logger(__name__)


class Termination(str, Enum):
    CONTENT_TIMEOUT = "content-timeout"
    NO_MORE_PAGES = "no-more-pages"
    LAST_PAGE = "last-page"
    AUTH_REDIRECT = "auth-redirect"
    NAVIGATION_TIMEOUT = "navigation-timeout"
    PAGE_LIMIT = "page-limit"


@dataclass(frozen=True)
class ListingSelectors:
    card: str = ".job_seen_beacon"
    title: str = "h2.jobTitle > a"
    employer: str = '[data-testid="company-name"]'
    location: str = '[data-testid="text-location"]'
    summary: str = ".job-snippet"
    next_page: str = 'a[data-testid="pagination-page-next"]'

    def as_js_arg(self) -> dict[str, str]:
        return {
            "card": self.card,
            "title": self.title,
            "employer": self.employer,
            "location": self.location,
            "summary": self.summary,
        }


@dataclass
class CrawledPage:
    index: int
    records: list[ListingRecord] = field(default_factory=list)
    dropped: int = 0


HAS_CARDS_JS = "sel => document.querySelectorAll(sel).length > 0"

EXTRACT_JS = """
(sel) => Array.from(document.querySelectorAll(sel.card)).map(card => {
  const text = s => {
    const el = card.querySelector(s);
    return el ? (el.innerText || "").trim() : "";
  };
  const a = card.querySelector(sel.title);
  return {
    jk: a ? (a.getAttribute("data-jk") || "") : "",
    title: a ? (a.innerText || "").trim() : "",
    href: a ? (a.getAttribute("href") || "") : "",
    employer: text(sel.employer),
    location: text(sel.location),
    summary: text(sel.summary),
  };
})
"""


# Per-impression tracking parameters; they change between runs for the same listing.
VOLATILE_PARAMS = frozenset({
    "ad", "advn", "bb", "camk", "from", "jsa", "sjdu", "tk", "vjs", "xkcb",
})


def listing_id(jk: str, link: str, title: str = "", employer: str = "") -> str:
    """Stable id: the card's job key, else the jk/vjk link parameter, else a hash.

    The hash covers the link path, its non-tracking parameters and the card's
    title and employer, so re-impressions of the same ad keep their id.
    """
    if jk:
        return jk.strip()
    parsed = urlparse(link)
    query = parse_qs(parsed.query)
    for key in ("jk", "vjk"):
        if query.get(key) and query[key][0].strip():
            return query[key][0].strip()
    stable = urlencode(sorted((k, v) for k, vs in query.items() if k not in VOLATILE_PARAMS for v in vs))
    basis = "\n".join([parsed.netloc, parsed.path, stable, title.strip().lower(), employer.strip().lower()])
    return hashlib.sha256(basis.encode()).hexdigest()[:12]


def build_record(raw: dict[str, Any], base_url: str) -> ListingRecord | None:
    """Turn one extracted card into a ListingRecord; None when it has no detail link."""
    href = (raw.get("href") or "").strip()
    if not href:
        return None
    link = urljoin(base_url, href)
    title = (raw.get("title") or "").strip()
    employer = (raw.get("employer") or "").strip()
    return ListingRecord(
        id=listing_id(raw.get("jk") or "", link, title, employer),
        title=title,
        employer=employer,
        location=(raw.get("location") or "").strip(),
        summary=(raw.get("summary") or "").strip(),
        link=link,
    )


class ListingCrawler:
    def __init__(
        self,
        page,
        *,
        base_url: str,
        auth_redirect_markers: tuple[str, ...] = (),
        selectors: ListingSelectors | None = None,
        content_timeout_ms: int = 60_000,
        navigation_timeout_ms: int = 30_000,
        max_pages: int = 0,
    ) -> None:
        self.page = page
        self.base_url = base_url
        self.auth_redirect_markers = auth_redirect_markers
        self.selectors = selectors or ListingSelectors()
        self.content_timeout_ms = content_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.max_pages = max_pages
        self.termination: Termination | None = None

    async def open(self, url: str) -> None:
        """LOAD the first results page."""
        log.info("Opening %s", url)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError:
            # A challenge interstitial can hold the load event; the content wait decides.
            log.warning("Initial load of %s timed out", url)

    async def wait_for_content(self) -> bool:
        try:
            await self.page.wait_for_function(
                HAS_CARDS_JS, arg=self.selectors.card, timeout=self.content_timeout_ms
            )
            return True
        except PlaywrightTimeoutError:
            return False

    async def extract(self, index: int = 0) -> CrawledPage:
        raw_cards = await self.page.evaluate(EXTRACT_JS, self.selectors.as_js_arg())
        page = CrawledPage(index=index)
        for position, raw in enumerate(raw_cards or [], start=1):
            record = build_record(raw, self.base_url)
            if record is None:
                page.dropped += 1
                log.warning("Page %d card %d has no detail link, skipped", index, position)
                continue
            page.records.append(record)
        return page

    async def check_next(self) -> Termination | None:
        """Inspect the pagination control and ADVANCE if possible.

        Returns the termination reason, or None after a successful advance.
        """
        next_btn = await self.page.query_selector(self.selectors.next_page)
        if next_btn is None:
            return Termination.NO_MORE_PAGES
        if (await next_btn.get_attribute("aria-disabled")) == "true":
            return Termination.LAST_PAGE

        try:
            async with self.page.expect_navigation(
                wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
            ):
                await next_btn.click()
        except PlaywrightTimeoutError:
            return Termination.NAVIGATION_TIMEOUT

        current = self.page.url
        if any(marker in current for marker in self.auth_redirect_markers):
            log.warning("Redirected off the listings to %s", current)
            return Termination.AUTH_REDIRECT
        return None

    def _stop(self, reason: Termination) -> None:
        self.termination = reason
        log.info("Crawl finished: %s", reason.value)

    async def pages(self) -> AsyncIterator[CrawledPage]:
        index = 1
        while True:
            if not await self.wait_for_content():
                self._stop(Termination.CONTENT_TIMEOUT)
                return
            crawled = await self.extract(index)
            log.info("Page %d: found %d listing(s)", index, len(crawled.records))
            yield crawled

            if self.max_pages and index >= self.max_pages:
                self._stop(Termination.PAGE_LIMIT)
                return
            reason = await self.check_next()
            if reason is not None:
                self._stop(reason)
                return
            index += 1
            log.info("Advanced to page %d", index)

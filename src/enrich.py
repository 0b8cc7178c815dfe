"""Detail-page enrichment: skill tags, restricted-requirement tiles, full description."""
from __future__ import annotations

from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.log import get_logger
from src.models import EnrichedRecord, ListingRecord

log = get_logger(__name__)


@dataclass(frozen=True)
class DetailSelectors:
    skills: str = '[data-testid*="skill-tile"], .jobCardShelfItem--skill, .job-tag-list li'
    restricted: str = (
        '[data-testid*="TS/SCI"], [data-testid*="Secret Clearance"], [data-testid*="Top Secret Clearance"]'
    )
    employer: str = '[data-testid="companyName"], [data-testid="inlineHeader-companyName"], .icl-u-lg-mr--sm'
    description: str = "#jobDescriptionText"


DETAIL_JS = """
(sel) => {
  const skills = Array.from(document.querySelectorAll(sel.skills))
    .map(el => (el.innerText || "").trim())
    .filter(s => s.length > 0);
  const restricted = document.querySelectorAll(sel.restricted).length > 0;
  const emp = document.querySelector(sel.employer);
  return { skills, restricted, employer: emp ? (emp.innerText || "").trim() : "" };
}
"""

DESCRIPTION_JS = """
(sel) => {
  const d = document.querySelector(sel);
  return d ? (d.innerText || "").trim() : "";
}
"""


class DetailFetcher:
    """Opens each detail link in its own tab of the shared browser context."""

    def __init__(
        self,
        context,
        *,
        user_agent: str = "",
        selectors: DetailSelectors | None = None,
        navigation_timeout_ms: int = 30_000,
        content_timeout_ms: int = 15_000,
    ) -> None:
        self.context = context
        self.user_agent = user_agent
        self.selectors = selectors or DetailSelectors()
        self.navigation_timeout_ms = navigation_timeout_ms
        self.content_timeout_ms = content_timeout_ms

    async def fetch(self, listing: ListingRecord) -> EnrichedRecord:
        page = await self.context.new_page()
        try:
            if self.user_agent:
                await page.set_extra_http_headers({"User-Agent": self.user_agent})
            try:
                await page.goto(listing.link, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
            except PlaywrightTimeoutError:
                log.warning("Detail page timed out for %s, classifying without it", listing.link)
                return EnrichedRecord(listing=listing)
            except PlaywrightError as exc:
                log.warning("Detail page failed for %s (%s), classifying without it", listing.link, exc)
                return EnrichedRecord(listing=listing)

            try:
                details = await page.evaluate(
                    DETAIL_JS,
                    {
                        "skills": self.selectors.skills,
                        "restricted": self.selectors.restricted,
                        "employer": self.selectors.employer,
                    },
                ) or {}
            except PlaywrightError as exc:
                log.warning("Could not read detail page %s (%s), classifying without it", listing.link, exc)
                return EnrichedRecord(listing=listing)

            full_text = ""
            try:
                await page.wait_for_selector(self.selectors.description, timeout=self.content_timeout_ms)
                full_text = await page.evaluate(DESCRIPTION_JS, self.selectors.description) or ""
            except PlaywrightTimeoutError:
                log.warning("Description container not found for %s", listing.link)
            except PlaywrightError as exc:
                log.warning("Could not read description of %s: %s", listing.link, exc)

            return EnrichedRecord(
                listing=listing,
                skill_tags=tuple(details.get("skills") or ()),
                has_restricted_requirement=bool(details.get("restricted")),
                full_text=full_text,
                detail_employer=details.get("employer") or "",
            )
        finally:
            try:
                await page.close()
            except PlaywrightError as exc:
                log.debug("Detail tab close failed: %s", exc)

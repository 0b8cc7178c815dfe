"""Playwright session owned by one harvest run.

A persistent Chromium profile keeps cookies (and any manual login) between
runs. Every document gets the Turnstile interception script before its own
scripts run, so a challenge on any page reaches the ChallengeGate.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from playwright.async_api import BrowserContext, Page, async_playwright

from src.config import Settings
from src.log import get_logger

log = get_logger(__name__)

LAUNCH_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1280,800",
    "--disable-infobars",
]

# Replaces turnstile.render so the widget parameters surface on the console
# and the page's own success callback stays reachable as window.cfCallback.
INTERCEPT_JS = """
(() => {
  console.clear = () => console.log('Console was cleared');
  const poll = setInterval(() => {
    if (window.turnstile) {
      clearInterval(poll);
      window.turnstile.render = (container, opts) => {
        const params = {
          type: 'TurnstileTaskProxyless',
          websiteKey: opts.sitekey,
          websiteURL: window.location.href,
          data: opts.cData,
          pagedata: opts.chlPageData,
          action: opts.action,
          userAgent: navigator.userAgent,
        };
        console.log('intercepted-params:' + JSON.stringify(params));
        window.cfCallback = opts.callback;
        return;
      };
    }
  }, 50);
})();
"""


@dataclass
class BrowserSession:
    context: BrowserContext
    page: Page
    user_agent: str


def normalize_user_agent(raw: str) -> str:
    """Headless Chromium advertises itself; present the regular Chrome token instead."""
    return raw.replace("HeadlessChrome", "Chrome")


async def _probe_user_agent(pw) -> str:
    browser = await pw.chromium.launch(headless=True)
    try:
        page = await browser.new_page()
        raw = await page.evaluate("() => navigator.userAgent")
    finally:
        await browser.close()
    return normalize_user_agent(raw)


@asynccontextmanager
async def open_session(settings: Settings) -> AsyncIterator[BrowserSession]:
    """Launch the browser; it is closed on every exit path, including aborts."""
    async with async_playwright() as pw:
        user_agent = await _probe_user_agent(pw)
        log.info("Launching Chromium (headless=%s) with profile %s", settings.headless, settings.user_data_dir)
        context = await pw.chromium.launch_persistent_context(
            str(settings.user_data_dir),
            headless=settings.headless,
            no_viewport=True,
            user_agent=user_agent,
            args=LAUNCH_ARGS,
        )
        try:
            await context.add_init_script(INTERCEPT_JS)
            page = context.pages[0] if context.pages else await context.new_page()
            yield BrowserSession(context=context, page=page, user_agent=user_agent)
        finally:
            await context.close()
            log.info("Browser closed")

"""
Listing harvester.

Runs: load store → open browser → clear challenge → crawl page by page →
classify new listings → merge → save → close browser.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, AsyncContextManager, Callable

from src.browser import open_session
from src.challenge import ChallengeGate, Solver
from src.classifier import TextClassifier, build_classifier
from src.config import Settings, ensure_dirs, load_rulebook, load_settings
from src.crawler import ListingCrawler
from src.enrich import DetailFetcher
from src.errors import ChallengeFailure
from src.log import get_logger
from src.models import ClassifiedRecord, Excluded, RunSummary
from src.pipeline import ClassificationPipeline, Enricher
from src.rules import RuleBook
from src.solver import TwoCaptchaSolver
from src.store import RecordStore

log = get_logger(__name__)


def _detail_fetcher(settings: Settings) -> Callable[[Any], Enricher]:
    def factory(session) -> Enricher:
        return DetailFetcher(
            session.context,
            user_agent=session.user_agent,
            navigation_timeout_ms=settings.detail_navigation_timeout_ms,
            content_timeout_ms=settings.detail_content_timeout_ms,
        )

    return factory


class Harvester:
    def __init__(
        self,
        settings: Settings,
        rules: RuleBook,
        *,
        solver: Solver,
        classifier: TextClassifier,
        store: RecordStore,
        session_factory: Callable[[Settings], AsyncContextManager[Any]] | None = None,
        enricher_factory: Callable[[Any], Enricher] | None = None,
    ) -> None:
        self.settings = settings
        self.rules = rules
        self.solver = solver
        self.classifier = classifier
        self.store = store
        self.session_factory = session_factory or open_session
        self.enricher_factory = enricher_factory or _detail_fetcher(settings)

    async def _manual_login(self, page) -> None:
        s = self.settings
        await page.goto(s.login_url, wait_until="domcontentloaded", timeout=s.navigation_timeout_ms)
        log.warning("🚨 Please log in manually. You have %.0f seconds...", s.manual_login_seconds)
        await asyncio.sleep(s.manual_login_seconds)

    async def _clear_challenge(self, session, crawler: ListingCrawler) -> None:
        s = self.settings
        gate = ChallengeGate(
            session.page,
            self.solver,
            grace_seconds=s.challenge_grace_seconds,
            solve_timeout=s.challenge_solve_seconds,
        )
        gate.attach()
        try:
            if s.manual_login_required:
                await self._manual_login(session.page)
            await crawler.open(s.search_url)
            result = await gate.await_ready(s.challenge_solve_seconds)
        finally:
            gate.detach()
        if not result.ok:
            raise ChallengeFailure(result.reason)
        if s.post_challenge_pause_seconds > 0:
            log.info("🔐 If login is prompted, please complete within %.0fs...", s.post_challenge_pause_seconds)
            await asyncio.sleep(s.post_challenge_pause_seconds)

    async def run(self) -> RunSummary:
        s = self.settings
        prior = self.store.load()
        known = {r.id for r in prior}
        collected: list[ClassifiedRecord] = []
        summary = RunSummary()

        async with self.session_factory(s) as session:
            crawler = ListingCrawler(
                session.page,
                base_url=s.base_url,
                auth_redirect_markers=s.auth_redirect_markers,
                content_timeout_ms=s.content_timeout_ms,
                navigation_timeout_ms=s.navigation_timeout_ms,
                max_pages=s.max_pages,
            )
            await self._clear_challenge(session, crawler)

            pipeline = ClassificationPipeline(self.rules, self.enricher_factory(session), self.classifier)
            async for crawled in crawler.pages():
                summary.pages += 1
                for listing in crawled.records:
                    summary.seen += 1
                    if listing.id in known:
                        continue
                    known.add(listing.id)
                    outcome = await pipeline.classify(listing)
                    if isinstance(outcome, Excluded):
                        summary.excluded += 1
                        continue
                    collected.append(outcome)
                log.info("✅ After page %d: %d new record(s) collected", crawled.index, len(collected))

            summary.termination = crawler.termination.value if crawler.termination else ""
            merged = self.store.merge(prior, collected)
            self.store.save(merged)

        summary.new = len(collected)
        summary.stored = len(merged)
        summary.categories = dict(Counter(r.category.value for r in collected))
        log.info(
            "Run complete: pages=%d, seen=%d, new=%d, excluded=%d, stored=%d (%s)",
            summary.pages, summary.seen, summary.new, summary.excluded, summary.stored, summary.termination,
        )
        return summary


def build_harvester(settings: Settings | None = None, rules: RuleBook | None = None) -> Harvester:
    settings = settings or load_settings()
    rules = rules or load_rulebook()
    ensure_dirs(settings)
    return Harvester(
        settings,
        rules,
        solver=TwoCaptchaSolver(settings.solver_api_key, max_wait=max(settings.challenge_solve_seconds - 10, 10)),
        classifier=build_classifier(settings, rules),
        store=RecordStore(settings.store_path, settings.sheet_name),
    )


async def run() -> RunSummary:
    return await build_harvester().run()

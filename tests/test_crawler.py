"""Tests for the paginated results crawl."""

import asyncio

import pytest

from src.crawler import ListingCrawler, Termination, build_record, listing_id
from tests.helpers.fakes import FakeListingPage, card

BASE = "https://www.indeed.com"


def crawl(pages, **kwargs):
    page = FakeListingPage(pages)
    crawler = ListingCrawler(
        page,
        base_url=BASE,
        auth_redirect_markers=("secure.indeed.com/auth",),
        content_timeout_ms=50,
        navigation_timeout_ms=50,
        **kwargs,
    )

    async def go():
        return [p async for p in crawler.pages()]

    return asyncio.run(go()), crawler, page


class TestListingId:
    def test_prefers_card_job_key(self):
        assert listing_id("abc123", f"{BASE}/rc/clk?jk=zzz") == "abc123"

    @pytest.mark.parametrize("query", ["jk=9f8e", "vjk=9f8e", "from=serp&jk=9f8e"])
    def test_falls_back_to_link_parameter(self, query):
        assert listing_id("", f"{BASE}/viewjob?{query}") == "9f8e"

    def test_hashes_link_without_key(self):
        link = f"{BASE}/pagead/clk?mo=r&ad=xyz&tk=1h2&fccid=77"
        first = listing_id("", link, "Backend Developer", "Acme")
        assert len(first) == 12
        assert first == listing_id("", link, "Backend Developer", "Acme")

    def test_hash_ignores_tracking_parameters(self):
        first = listing_id("", f"{BASE}/pagead/clk?mo=r&ad=xyz&tk=1h2&fccid=77", "Backend Developer", "Acme")
        later = listing_id("", f"{BASE}/pagead/clk?tk=9zz&fccid=77&ad=abc&mo=r&from=serp", "Backend Developer", "Acme")
        assert first == later

    def test_hash_separates_different_listings(self):
        link = f"{BASE}/pagead/clk?mo=r&ad=xyz"
        assert listing_id("", link, "Backend Developer", "Acme") != listing_id("", link, "PHP Developer", "Acme")
        assert listing_id("", link, "Dev", "Acme") != listing_id("", f"{BASE}/pagead/clk?mo=r&fccid=12", "Dev", "Acme")

    def test_build_record_ids_survive_new_tracking_tokens(self):
        first = build_record(card("", href="/pagead/clk?mo=r&ad=one&tk=a"), BASE)
        later = build_record(card("", href="/pagead/clk?mo=r&ad=two&tk=b"), BASE)
        assert first.id == later.id


class TestBuildRecord:
    def test_relative_link_is_resolved(self):
        record = build_record(card("k1", title=" React Dev "), BASE)
        assert record.id == "k1"
        assert record.title == "React Dev"
        assert record.link == f"{BASE}/rc/clk?jk=k1&from=serp"

    def test_card_without_link_is_dropped(self):
        assert build_record(card("k2", href=""), BASE) is None


class TestPagination:
    def test_stops_at_disabled_next_control(self):
        pages = [
            {"cards": [card("a"), card("b")], "next": "enabled"},
            {"cards": [card("c")], "next": "enabled"},
            {"cards": [card("d")], "next": "disabled"},
        ]
        crawled, crawler, page = crawl(pages)
        assert [p.index for p in crawled] == [1, 2, 3]
        assert [r.id for p in crawled for r in p.records] == ["a", "b", "c", "d"]
        assert crawler.termination is Termination.LAST_PAGE
        assert page.clicks == 2

    def test_missing_next_control(self):
        crawled, crawler, _ = crawl([{"cards": [card("a")], "next": None}])
        assert len(crawled) == 1
        assert crawler.termination is Termination.NO_MORE_PAGES

    def test_content_timeout_on_first_page_yields_nothing(self):
        crawled, crawler, _ = crawl([{"no_content": True}])
        assert crawled == []
        assert crawler.termination is Termination.CONTENT_TIMEOUT

    def test_content_timeout_on_later_page(self):
        pages = [{"cards": [card("a")], "next": "enabled"}, {"no_content": True}]
        crawled, crawler, _ = crawl(pages)
        assert len(crawled) == 1
        assert crawler.termination is Termination.CONTENT_TIMEOUT

    def test_auth_redirect(self):
        pages = [
            {"cards": [card("a")], "next": "enabled"},
            {"cards": [card("b")], "url": "https://secure.indeed.com/auth?continue=/jobs"},
        ]
        crawled, crawler, _ = crawl(pages)
        assert [r.id for p in crawled for r in p.records] == ["a"]
        assert crawler.termination is Termination.AUTH_REDIRECT

    def test_navigation_timeout(self):
        pages = [{"cards": [card("a")], "next": "enabled"}, {"nav_timeout": True}]
        crawled, crawler, _ = crawl(pages)
        assert len(crawled) == 1
        assert crawler.termination is Termination.NAVIGATION_TIMEOUT

    def test_page_limit(self):
        pages = [{"cards": [card(str(i))], "next": "enabled"} for i in range(5)]
        crawled, crawler, page = crawl(pages, max_pages=2)
        assert len(crawled) == 2
        assert crawler.termination is Termination.PAGE_LIMIT
        assert page.clicks == 1

    def test_cards_without_link_counted_as_dropped(self):
        pages = [{"cards": [card("a"), card("b", href="")], "next": None}]
        crawled, _, _ = crawl(pages)
        assert [r.id for r in crawled[0].records] == ["a"]
        assert crawled[0].dropped == 1

    def test_open_navigates_to_search(self):
        page = FakeListingPage([{"cards": []}])
        crawler = ListingCrawler(page, base_url=BASE)
        asyncio.run(crawler.open(f"{BASE}/jobs?q=php"))
        assert page.gotos == [f"{BASE}/jobs?q=php"]

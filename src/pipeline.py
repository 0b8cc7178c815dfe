"""Tiered classification of listings.

Order, first decisive tier wins:

0. pre-screen   exclusion on what is already known (title markers, listing
                employer, an already-enriched restricted flag)
1. title        keyword table, no detail fetch
2. exclusion    restricted-requirement tiles or blocklisted employer on the
                detail page
3. delegated    skill tags + description through the text classifier

Tier 1 is not cross-checked against tier 3: a title naming PHP stays PHP even
if the description reads like a JavaScript job.
"""
from __future__ import annotations

from typing import Protocol

from src.classifier import TextClassifier
from src.errors import ClassifierFailure
from src.log import get_logger
from src.models import Category, ClassifiedRecord, EnrichedRecord, Excluded, ListingRecord
from src.rules import RuleBook, has_restricted_marker, is_blocklisted, match_title

log = get_logger(__name__)

RESTRICTED = "restricted-requirement"
BLOCKLISTED = "blocklisted-employer"


class Enricher(Protocol):
    async def fetch(self, listing: ListingRecord) -> EnrichedRecord: ...


class ClassificationPipeline:
    def __init__(self, rules: RuleBook, enricher: Enricher, classifier: TextClassifier) -> None:
        self.rules = rules
        self.enricher = enricher
        self.classifier = classifier

    def _prescreen(self, record: ListingRecord | EnrichedRecord) -> str | None:
        listing = record.listing if isinstance(record, EnrichedRecord) else record
        if isinstance(record, EnrichedRecord) and record.has_restricted_requirement:
            return RESTRICTED
        if has_restricted_marker(listing.title, self.rules):
            return RESTRICTED
        if is_blocklisted(listing.employer, self.rules):
            return BLOCKLISTED
        return None

    def _exclusion(self, enriched: EnrichedRecord) -> str | None:
        if enriched.has_restricted_requirement:
            return RESTRICTED
        if is_blocklisted(enriched.detail_employer, self.rules) or is_blocklisted(
            enriched.listing.employer, self.rules
        ):
            return BLOCKLISTED
        return None

    async def classify(self, record: ListingRecord | EnrichedRecord) -> ClassifiedRecord | Excluded:
        listing = record.listing if isinstance(record, EnrichedRecord) else record

        reason = self._prescreen(record)
        if reason:
            log.info("⛔ Skipping %r (%s): %s", listing.title, listing.employer, reason)
            return Excluded(listing=listing, reason=reason)

        category = match_title(listing.title, self.rules)
        if category is not None:
            log.debug("Title match %r → %s", listing.title, category.value)
            return ClassifiedRecord(listing=listing, category=category)

        enriched = record if isinstance(record, EnrichedRecord) else await self.enricher.fetch(listing)

        reason = self._exclusion(enriched)
        if reason:
            log.info(
                "⛔ Skipping %r (%s): %s",
                listing.title, enriched.detail_employer or listing.employer, reason,
            )
            return Excluded(listing=listing, reason=reason)

        try:
            category = await self.classifier.classify(list(enriched.skill_tags), enriched.full_text)
        except ClassifierFailure as exc:
            exc.record_id = listing.id
            raise
        if not isinstance(category, Category):
            category = Category.parse(str(category))
        log.debug("Classified %r → %s", listing.title, category.value)
        return ClassifiedRecord(listing=listing, category=category)

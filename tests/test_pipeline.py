"""Tests for the tiered classification pipeline."""

import asyncio

import pytest

from src.errors import ClassifierFailure
from src.models import Category, ClassifiedRecord, EnrichedRecord, Excluded
from src.pipeline import BLOCKLISTED, RESTRICTED, ClassificationPipeline
from tests.helpers.fakes import FakeClassifier, FakeEnricher, listing


def _pipeline(rules, details=None, result=Category.OTHER, error=None):
    enricher = FakeEnricher(details)
    classifier = FakeClassifier(result=result, error=error)
    return ClassificationPipeline(rules, enricher, classifier), enricher, classifier


def test_title_match_skips_detail_fetch(rules):
    pipeline, enricher, classifier = _pipeline(rules)
    outcome = asyncio.run(pipeline.classify(listing("a1", title="Senior React Developer")))
    assert isinstance(outcome, ClassifiedRecord)
    assert outcome.category is Category.JS
    assert enricher.calls == []
    assert classifier.calls == []


def test_restricted_title_excluded_before_title_match(rules):
    pipeline, enricher, _ = _pipeline(rules)
    outcome = asyncio.run(pipeline.classify(listing("a2", title="PHP Engineer (Secret Clearance Required)")))
    assert isinstance(outcome, Excluded)
    assert outcome.reason == RESTRICTED
    assert enricher.calls == []


def test_negated_clearance_title_is_not_excluded(rules):
    pipeline, enricher, _ = _pipeline(rules)
    outcome = asyncio.run(pipeline.classify(listing("a2n", title="PHP Developer (no clearance required)")))
    assert isinstance(outcome, ClassifiedRecord)
    assert outcome.category is Category.PHP
    assert enricher.calls == []


def test_enriched_restricted_flag_beats_title(rules):
    pipeline, _, classifier = _pipeline(rules)
    record = EnrichedRecord(listing=listing("a3", title="PHP Engineer"), has_restricted_requirement=True)
    outcome = asyncio.run(pipeline.classify(record))
    assert isinstance(outcome, Excluded)
    assert outcome.reason == RESTRICTED
    assert classifier.calls == []


def test_blocklisted_listing_employer_never_stored(rules):
    pipeline, enricher, _ = _pipeline(rules)
    outcome = asyncio.run(pipeline.classify(listing("a4", title="React Developer", employer="amazon")))
    assert isinstance(outcome, Excluded)
    assert outcome.reason == BLOCKLISTED
    assert enricher.calls == []


def test_restricted_tiles_on_detail_page(rules):
    pipeline, enricher, classifier = _pipeline(rules, {"a5": {"has_restricted_requirement": True}})
    outcome = asyncio.run(pipeline.classify(listing("a5")))
    assert isinstance(outcome, Excluded)
    assert outcome.reason == RESTRICTED
    assert enricher.calls == ["a5"]
    assert classifier.calls == []


def test_blocklisted_detail_employer(rules):
    pipeline, _, classifier = _pipeline(rules, {"a6": {"detail_employer": "Lockheed Martin"}})
    outcome = asyncio.run(pipeline.classify(listing("a6", employer="LM Staffing")))
    assert isinstance(outcome, Excluded)
    assert outcome.reason == BLOCKLISTED
    assert classifier.calls == []


def test_delegates_to_classifier(rules):
    details = {"a7": {"skill_tags": ("Laravel", "MySQL"), "full_text": "Laravel shop"}}
    pipeline, _, classifier = _pipeline(rules, details, result=Category.PHP)
    outcome = asyncio.run(pipeline.classify(listing("a7")))
    assert outcome.category is Category.PHP
    assert classifier.calls == [(["Laravel", "MySQL"], "Laravel shop")]


def test_empty_detail_still_classified(rules):
    # A timed-out detail page comes back with empty fields.
    pipeline, enricher, classifier = _pipeline(rules)
    outcome = asyncio.run(pipeline.classify(listing("a8")))
    assert outcome.category is Category.OTHER
    assert enricher.calls == ["a8"]
    assert classifier.calls == [([], "")]


def test_already_enriched_record_not_fetched_again(rules):
    pipeline, enricher, _ = _pipeline(rules, result=Category.WORDPRESS)
    record = EnrichedRecord(listing=listing("a9"), full_text="WordPress")
    outcome = asyncio.run(pipeline.classify(record))
    assert outcome.category is Category.WORDPRESS
    assert enricher.calls == []


def test_classifier_failure_propagates_with_record_id(rules):
    pipeline, _, _ = _pipeline(rules, error=ClassifierFailure("boom"))
    with pytest.raises(ClassifierFailure) as info:
        asyncio.run(pipeline.classify(listing("b1")))
    assert info.value.record_id == "b1"

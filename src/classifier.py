"""Tier-3 text classification: keyword-family majority rule, locally or via an LLM.

Both backends answer the same question from a listing's skill tags and full
description, and both speak the same interface:

    await classifier.classify(skill_tags, full_text) -> Category

An ambiguous answer is ``Category.OTHER``. A failed call raises
``ClassifierFailure``; the caller must not turn that into OTHER.
"""
from __future__ import annotations

import asyncio
import re
from collections import Counter
from typing import Protocol, Sequence

import openai
from openai import AsyncOpenAI

from src.config import Settings
from src.errors import ClassifierFailure
from src.log import get_logger
from src.models import Category
from src.retry import retry
from src.rules import RuleBook, families_in

log = get_logger(__name__)


class TextClassifier(Protocol):
    async def classify(self, skill_tags: Sequence[str], full_text: str) -> Category: ...


def skill_families(skill_tags: Sequence[str], rules: RuleBook) -> set[Category]:
    """Families holding a strict majority of the family-bearing skill tags.

    A tag votes for every family whose distinctive keyword it contains. With
    no strict majority the whole split is returned, which callers treat as
    "more than one family".
    """
    votes: Counter[Category] = Counter()
    voting = 0
    for tag in skill_tags:
        fams = families_in(tag, rules.distinctive)
        if fams:
            voting += 1
            votes.update(fams)
    if not voting:
        return set()
    majority = {cat for cat, n in votes.items() if n * 2 > voting}
    return majority or set(votes)


def classify_by_families(skill_tags: Sequence[str], full_text: str, rules: RuleBook) -> Category:
    from_skills = skill_families(skill_tags, rules)
    from_text = families_in(full_text, rules.distinctive)

    if len(from_skills) > 1 or len(from_text) > 1:
        return Category.OTHER
    if from_skills and from_text:
        return next(iter(from_skills)) if from_skills == from_text else Category.OTHER
    if from_skills or from_text:
        return next(iter(from_skills or from_text))
    return Category.OTHER


class KeywordFamilyClassifier:
    def __init__(self, rules: RuleBook) -> None:
        self.rules = rules

    async def classify(self, skill_tags: Sequence[str], full_text: str) -> Category:
        return classify_by_families(skill_tags, full_text, self.rules)


_PROFILE_RE = re.compile(r"PROFILE:\s*(JS|WORDPRESS|PHP|OTHER)\b")


def parse_profile_reply(content: str) -> Category:
    match = _PROFILE_RE.search((content or "").upper())
    return Category(match.group(1)) if match else Category.OTHER


def build_system_prompt(rules: RuleBook) -> str:
    families = "\n\n".join(
        f"  • {cat.value}-family: {', '.join(words)}" for cat, words in rules.display_families
    )
    labels = ", ".join(f"PROFILE: {cat.value}" for cat, _ in rules.display_families)
    return (
        "You are a job-technology classification assistant. "
        "You will receive TWO inputs in the user message:\n\n"
        "1) A list of skill tags (comma-separated) scraped from the job's skill-tag section.\n"
        "2) The full job description text (including 'Required Skills', 'Must have', "
        "'Responsibilities', etc.).\n\n"
        "FIRST, look for any sentence like \"Experience with any of the following technologies: X, Y, Z\". "
        "If it contains keywords from exactly one family below, assign that family and stop.\n\n"
        f"FAMILIES OF KEYWORDS:\n{families}\n\n"
        "RULES:\n"
        "  1) If a majority of the SKILLS tags belong to exactly one family, that indicates the profile.\n"
        "  2) If the DESCRIPTION sections mention exactly one family, that confirms the profile.\n"
        "  3) If skills and description point to different families, if either mentions more than one "
        "family, or if neither mentions any, return OTHER.\n\n"
        f"Reply exactly as one of: {labels}, PROFILE: OTHER."
    )


class LLMClassifier:
    """OpenAI-compatible chat endpoint (DeepSeek by default)."""

    def __init__(
        self,
        rules: RuleBook,
        *,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.system_prompt = build_system_prompt(rules)
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    @retry(
        max_attempts=3,
        base_delay=2.0,
        retryable=(openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError),
    )
    async def _complete(self, user_prompt: str) -> str:
        r = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        return (r.choices[0].message.content or "").strip()

    async def classify(self, skill_tags: Sequence[str], full_text: str) -> Category:
        user_prompt = f"Skills: {', '.join(skill_tags)}\n\nDescription:\n{full_text}"
        try:
            content = await asyncio.wait_for(self._complete(user_prompt), self.timeout)
        except asyncio.TimeoutError as exc:
            raise ClassifierFailure(f"classifier did not answer within {self.timeout:.0f}s") from exc
        except openai.OpenAIError as exc:
            raise ClassifierFailure(f"classifier call failed: {exc}") from exc
        category = parse_profile_reply(content)
        log.debug("LLM reply %r → %s", content[:60], category.value)
        return category


def build_classifier(settings: Settings, rules: RuleBook) -> TextClassifier:
    if settings.classifier_backend == "llm":
        log.info("Classifier: %s at %s", settings.classifier_model, settings.classifier_base_url)
        return LLMClassifier(
            rules,
            api_key=settings.classifier_api_key,
            base_url=settings.classifier_base_url,
            model=settings.classifier_model,
            timeout=settings.classifier_timeout_seconds,
        )
    log.info("Classifier: local keyword families")
    return KeywordFamilyClassifier(rules)

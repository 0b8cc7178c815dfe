"""Category rule tables: title keywords, keyword families, exclusion lists.

Everything here is plain data plus pure functions over it. The tables are
loaded once at startup into an immutable RuleBook that the classification
pipeline receives explicitly.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import Iterable, Mapping

from src.log import get_logger
from src.models import Category

log = get_logger(__name__)


def _normalize(s: str) -> str:
    return " ".join((s or "").lower().split())


# Title keywords, tested in this order; first category with a hit wins.
TITLE_KEYWORDS: list[tuple[Category, list[str]]] = [
    (Category.JS, ["react", "javascript"]),
    (Category.PHP, ["php"]),
    (Category.WORDPRESS, ["wordpress"]),
]

_SHARED_WEB: list[str] = [
    "Web development", "Web design", "Agile", "SCRUM", "Jira", "Google Cloud Platform",
    "Software development", "Databases", "Computer science", "Git", "Visual Studio",
    "Product management", "Linux", "Responsive web design", "Software troubleshooting",
    "Debugging", "DevOps", "Windows", "OOP", "Docker", "XML", "Application development",
    "Communication skills", "Microsoft Office",
]

_SHARED_STACK: list[str] = [
    "MySQL", "SQL", "Postgres", "MongoDB", "AWS", "Azure", "Digital Ocean", "GraphQL",
    "GitHub", "RestAPI", "RESTful API", "API's", "AJAX", "Relational databases", "HTML",
    "CSS", "Microsoft SQL Server", "Distributed systems", "Kubernetes", "Terraform",
    "Tailwind CSS", "jQuery", "MVC",
]

KEYWORD_FAMILIES: dict[Category, list[str]] = {
    Category.JS: [
        "JavaScript", "TypeScript", "Node.js", "Nest.js", "React", "Next.js", "Angular",
        "Vue", "UI development", "JavaScript frameworks",
        *_SHARED_STACK, *_SHARED_WEB,
    ],
    Category.WORDPRESS: [
        "WordPress", "Webflow",
        *_SHARED_WEB,
    ],
    Category.PHP: [
        "PHP", "Laravel", "Drupal", "LAMP Stack", "Apache", "Organizational skills",
        "Database design",
        *_SHARED_STACK, *_SHARED_WEB,
    ],
}

# Titles carrying one of these can never be stored, whatever else they say.
RESTRICTED_TITLE_MARKERS: list[str] = [
    "clearance", "ts/sci", "top secret", "polygraph",
]

# "No clearance required" and friends are removed before markers are checked.
_NEGATED_CLEARANCE = re.compile(
    r"\b(?:no|not|without|non)[- ]+(?:security |active |secret )?clearance(?: (?:is )?(?:required|needed))?"
    r"|\bclearance (?:is )?not (?:required|needed)"
)

DEFAULT_BLOCKLIST: list[str] = [
    "Fidelity Investments", "FIS Global", "EY", "Disney", "Lockheed Martin",
    "Lockheed Martin Corporation", "Jacobs Engineering Group Inc.", "NTT DATA", "PayPal",
    "Dialysis Clinic, Inc.", "Discover Financial Services", "Coalition Technologies",
    "American Partner Solutions", "General Dynamics Information Technology", "Booz Allen",
    "Amex", "BAE Systems", "Capgemini", "CEDENT", "Infosys", "Peraton", "SAIC",
    "CVS Health", "Lowe's", "Wipro Limited", "Piper Companies", "Mochi Health",
    "JPMorganChase", "ECS Federal, LLC", "Disney Entertainment", "Cognizant",
    "Capital One", "ASRC Federal", "Apple", "Robert Half", "Ebay", "Amazon",
    "Google/Alpha", "Facebook/Meta", "Microsoft",
]


@dataclass(frozen=True)
class RuleBook:
    """Immutable rule tables for one run. All keywords are stored normalized."""

    title_rules: tuple[tuple[Category, tuple[str, ...]], ...]
    families: tuple[tuple[Category, frozenset[str]], ...]
    blocklist: frozenset[str]
    restricted_markers: tuple[str, ...]
    display_families: tuple[tuple[Category, tuple[str, ...]], ...] = field(default=(), compare=False)

    @cached_property
    def distinctive(self) -> dict[Category, frozenset[str]]:
        """Keywords that belong to exactly one family, per family."""
        counts: dict[str, int] = {}
        for _, words in self.families:
            for w in words:
                counts[w] = counts.get(w, 0) + 1
        return {
            cat: frozenset(w for w in words if counts[w] == 1)
            for cat, words in self.families
        }


def build_rulebook(
    *,
    title_keywords: Mapping[str, Iterable[str]] | None = None,
    families: Mapping[str, Iterable[str]] | None = None,
    blocklist: Iterable[str] | None = None,
    restricted_markers: Iterable[str] | None = None,
) -> RuleBook:
    """Freeze rule tables. Keys of the mappings are category labels, in priority order."""
    if title_keywords is None:
        title_pairs = [(cat, words) for cat, words in TITLE_KEYWORDS]
    else:
        title_pairs = [(_category(label), words) for label, words in title_keywords.items()]

    if families is None:
        family_pairs = list(KEYWORD_FAMILIES.items())
    else:
        family_pairs = [(_category(label), words) for label, words in families.items()]

    title_rules = tuple(
        (cat, tuple(_normalize(w) for w in words if _normalize(w)))
        for cat, words in title_pairs
        if cat is not Category.OTHER
    )
    frozen_families = tuple(
        (cat, frozenset(_normalize(w) for w in words if _normalize(w)))
        for cat, words in family_pairs
        if cat is not Category.OTHER
    )
    display = tuple((cat, tuple(words)) for cat, words in family_pairs if cat is not Category.OTHER)
    blocked = frozenset(
        _normalize(name) for name in (DEFAULT_BLOCKLIST if blocklist is None else blocklist)
        if _normalize(name)
    )
    markers = tuple(
        _normalize(m) for m in (RESTRICTED_TITLE_MARKERS if restricted_markers is None else restricted_markers)
        if _normalize(m)
    )
    log.debug(
        "Rulebook: %d title rules, %d families, %d blocked employers",
        len(title_rules), len(frozen_families), len(blocked),
    )
    return RuleBook(
        title_rules=title_rules,
        families=frozen_families,
        blocklist=blocked,
        restricted_markers=markers,
        display_families=display,
    )


def _category(label: str) -> Category:
    cat = Category.parse(label)
    if cat is Category.OTHER and _normalize(label) != "other":
        raise ValueError(f"Unknown category label in rule table: {label!r}")
    return cat


def match_title(title: str, rules: RuleBook) -> Category | None:
    t = _normalize(title)
    for cat, words in rules.title_rules:
        if any(w in t for w in words):
            return cat
    return None


def is_blocklisted(employer: str, rules: RuleBook) -> bool:
    return bool(employer) and _normalize(employer) in rules.blocklist


def has_restricted_marker(title: str, rules: RuleBook) -> bool:
    t = _NEGATED_CLEARANCE.sub(" ", _normalize(title))
    return any(m in t for m in rules.restricted_markers)


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # Word boundaries that tolerate punctuation inside keywords ("node.js", "api's").
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])")


def families_in(text: str, keywords: Mapping[Category, frozenset[str]]) -> set[Category]:
    """Families with at least one of their keywords mentioned in *text*."""
    t = _normalize(text)
    if not t:
        return set()
    found: set[Category] = set()
    for cat, words in keywords.items():
        if any(_keyword_pattern(w).search(t) for w in words):
            found.add(cat)
    return found

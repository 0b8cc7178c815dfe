"""Unit tests for the rule tables and the pure rule functions."""

import pytest

from src.models import Category
from src.rules import (
    build_rulebook,
    families_in,
    has_restricted_marker,
    is_blocklisted,
    match_title,
)


class TestTitleHeuristic:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Senior React Developer", Category.JS),
            ("Full Stack JavaScript Engineer", Category.JS),
            ("php developer", Category.PHP),
            ("WordPress Site Builder", Category.WORDPRESS),
            ("Backend Engineer (Go)", None),
        ],
    )
    def test_match_title(self, rules, title, expected):
        assert match_title(title, rules) is expected

    def test_priority_order_decides_between_categories(self, rules):
        # Both JS and PHP keywords present: JS is earlier in the table.
        assert match_title("PHP / React Developer", rules) is Category.JS

    def test_custom_priority_from_config(self):
        rules = build_rulebook(title_keywords={"PHP": ["php"], "JS": ["react"]})
        assert match_title("PHP / React Developer", rules) is Category.PHP

    def test_unknown_label_rejected(self):
        with pytest.raises(ValueError, match="Unknown category"):
            build_rulebook(title_keywords={"RUST": ["rust"]})


class TestExclusionLists:
    @pytest.mark.parametrize("employer", ["Amazon", "amazon", "AMAZON", "  Amazon "])
    def test_blocklist_is_case_insensitive(self, rules, employer):
        assert is_blocklisted(employer, rules)

    def test_blocklist_is_whole_name(self, rules):
        assert not is_blocklisted("Amazonia Labs", rules)
        assert not is_blocklisted("", rules)

    def test_default_blocklist_used_when_not_configured(self):
        rules = build_rulebook()
        assert is_blocklisted("Capital One", rules)

    def test_restricted_title_marker(self, rules):
        assert has_restricted_marker("PHP Engineer (Secret Clearance Required)", rules)
        assert has_restricted_marker("Developer - TS/SCI", rules)
        assert not has_restricted_marker("PHP Engineer", rules)

    @pytest.mark.parametrize(
        "title",
        [
            "Developer (no clearance required)",
            "PHP Developer - No Security Clearance Needed",
            "Non-clearance React Engineer",
            "WordPress Developer, clearance not required",
        ],
    )
    def test_negated_clearance_is_not_a_marker(self, rules, title):
        assert not has_restricted_marker(title, rules)

    def test_negation_does_not_hide_other_markers(self, rules):
        assert has_restricted_marker("Developer (no clearance required) - TS/SCI preferred", rules)
        assert has_restricted_marker("Engineer, Secret Clearance Required", rules)


class TestKeywordFamilies:
    def test_distinctive_keywords_exclude_shared_ones(self, rules):
        assert "react" in rules.distinctive[Category.JS]
        assert "laravel" in rules.distinctive[Category.PHP]
        assert "wordpress" in rules.distinctive[Category.WORDPRESS]
        # Shared by every family, so it identifies none.
        assert not any("git" in words for words in rules.distinctive.values())

    def test_families_in_respects_word_boundaries(self, rules):
        assert families_in("We use Node.js and Postgres", rules.distinctive) == {Category.JS}
        assert families_in("Reactive programming background", rules.distinctive) == set()
        assert families_in("", rules.distinctive) == set()

    def test_families_in_finds_several(self, rules):
        text = "Maintain Laravel services and a React front end."
        assert families_in(text, rules.distinctive) == {Category.JS, Category.PHP}

    def test_rulebook_is_immutable(self, rules):
        with pytest.raises(AttributeError):
            rules.blocklist = frozenset()

"""Tests for settings and rule-table loading."""

import pytest

from src import config
from src.models import Category
from src.rules import is_blocklisted, match_title

ENV_KEYS = (
    "TWOCAPTCHA_API_KEY", "APIKEY", "CLASSIFIER_API_KEY", "DEEPSEEK_API_KEY",
    "CLASSIFIER_BACKEND", "CLASSIFIER_BASE_URL", "CLASSIFIER_MODEL", "EMPLOYER_BLOCKLIST",
    "RUN_HEADLESS", "MANUAL_LOGIN_REQUIRED", "SEARCH_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_config():
    s = config.load_settings({})
    assert s.classifier_backend == "keywords"
    assert s.sheet_name == "FilteredJobs"
    assert s.store_path == config.DATA_DIR / "indeed_filtered_jobs.xlsx"
    assert s.challenge_solve_seconds == 180.0


def test_yaml_sections_are_read():
    data = {
        "crawl": {"search_url": "https://example.test/jobs", "max_pages": 3, "headless": True},
        "timeouts": {"content_ms": 5000, "classifier_seconds": 9},
        "store": {"path": "out/jobs.xlsx", "sheet_name": "Jobs"},
    }
    s = config.load_settings(data)
    assert s.search_url == "https://example.test/jobs"
    assert s.max_pages == 3
    assert s.headless is True
    assert s.content_timeout_ms == 5000
    assert s.classifier_timeout_seconds == 9.0
    assert s.store_path == config.PROJECT_ROOT / "out" / "jobs.xlsx"
    assert s.sheet_name == "Jobs"


def test_environment_overrides_yaml(monkeypatch):
    monkeypatch.setenv("RUN_HEADLESS", "false")
    monkeypatch.setenv("SEARCH_URL", "https://env.test/jobs")
    monkeypatch.setenv("APIKEY", "captcha-key")
    s = config.load_settings({"crawl": {"headless": True, "search_url": "https://yaml.test"}})
    assert s.headless is False
    assert s.search_url == "https://env.test/jobs"
    assert s.solver_api_key == "captcha-key"


def test_llm_backend_selected_when_key_present(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-1")
    s = config.load_settings({})
    assert s.classifier_backend == "llm"
    assert s.classifier_api_key == "sk-1"


def test_llm_backend_without_key_rejected(monkeypatch):
    monkeypatch.setenv("CLASSIFIER_BACKEND", "llm")
    with pytest.raises(ValueError, match="CLASSIFIER_API_KEY"):
        config.load_settings({})


def test_unknown_backend_rejected(monkeypatch):
    monkeypatch.setenv("CLASSIFIER_BACKEND", "magic")
    with pytest.raises(ValueError, match="CLASSIFIER_BACKEND"):
        config.load_settings({})


def test_rulebook_from_yaml():
    rules = config.load_rulebook({
        "rules": {
            "title_keywords": {"WORDPRESS": ["wordpress"], "PHP": ["php"]},
            "blocklist": ["Initech"],
        }
    })
    assert match_title("PHP WordPress Developer", rules) is Category.WORDPRESS
    assert is_blocklisted("initech", rules)
    assert not is_blocklisted("Amazon", rules)


def test_env_blocklist_replaces_yaml(monkeypatch):
    monkeypatch.setenv("EMPLOYER_BLOCKLIST", "Globex, Hooli ,")
    rules = config.load_rulebook({"rules": {"blocklist": ["Initech"]}})
    assert rules.blocklist == frozenset({"globex", "hooli"})


def test_config_file_must_be_mapping(tmp_path):
    path = tmp_path / "harvester.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        config.load_config_file(path)
    assert config.load_config_file(tmp_path / "missing.yaml") == {}


def test_shipped_config_loads():
    data = config.load_config_file()
    rules = config.load_rulebook(data)
    assert is_blocklisted("Capital One", rules)
    assert match_title("Senior React Developer", rules) is Category.JS

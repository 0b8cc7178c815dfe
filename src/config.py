"""Load harvester settings from config/harvester.yaml and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from src.log import get_logger
from src.rules import RuleBook, build_rulebook

log = get_logger(__name__)

load_dotenv()

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
CONFIG_PATH: Path = CONFIG_DIR / "harvester.yaml"
DATA_DIR: Path = PROJECT_ROOT / "data"
USER_DATA_DIR: Path = PROJECT_ROOT / "user_data"

DEFAULT_SEARCH_URL = "https://www.indeed.com/jobs?q=php+developer&l=USA&fromage=1"
DEFAULT_LOGIN_URL = "https://www.indeed.com/account/login"
DEFAULT_AUTH_MARKERS: tuple[str, ...] = ("secure.indeed.com/auth", "onboarding.indeed.com")


@dataclass(frozen=True)
class Settings:
    search_url: str = DEFAULT_SEARCH_URL
    login_url: str = DEFAULT_LOGIN_URL
    base_url: str = "https://www.indeed.com"
    auth_redirect_markers: tuple[str, ...] = DEFAULT_AUTH_MARKERS
    store_path: Path = DATA_DIR / "indeed_filtered_jobs.xlsx"
    sheet_name: str = "FilteredJobs"
    user_data_dir: Path = USER_DATA_DIR
    headless: bool = False
    manual_login_required: bool = False
    manual_login_seconds: float = 60.0
    post_challenge_pause_seconds: float = 0.0
    max_pages: int = 0

    # Timeouts. Playwright takes milliseconds, everything else seconds.
    challenge_grace_seconds: float = 3.0
    challenge_solve_seconds: float = 180.0
    content_timeout_ms: int = 60_000
    navigation_timeout_ms: int = 30_000
    detail_navigation_timeout_ms: int = 30_000
    detail_content_timeout_ms: int = 15_000
    classifier_timeout_seconds: float = 60.0

    solver_api_key: str = ""
    classifier_backend: str = "keywords"
    classifier_api_key: str = ""
    classifier_base_url: str = "https://api.deepseek.com"
    classifier_model: str = "deepseek-chat"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _env_flag(key: str, default: bool) -> bool:
    raw = get_env(key)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def ensure_dirs(settings: Settings) -> None:
    for d in (settings.store_path.parent, settings.user_data_dir):
        d.mkdir(parents=True, exist_ok=True)


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    path = path or CONFIG_PATH
    if not path.exists():
        log.info("No %s — using built-in defaults", path.name)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def load_settings(data: dict[str, Any] | None = None) -> Settings:
    """Merge YAML values with environment overrides. Env wins."""
    data = load_config_file() if data is None else data
    crawl = data.get("crawl", {}) or {}
    timeouts = data.get("timeouts", {}) or {}
    store = data.get("store", {}) or {}
    defaults = Settings()

    solver_key = get_env("TWOCAPTCHA_API_KEY") or get_env("APIKEY")
    classifier_key = get_env("CLASSIFIER_API_KEY") or get_env("DEEPSEEK_API_KEY")
    backend = get_env("CLASSIFIER_BACKEND").lower() or ("llm" if classifier_key else "keywords")
    if backend not in ("llm", "keywords"):
        raise ValueError(f"CLASSIFIER_BACKEND must be 'llm' or 'keywords', got {backend!r}")

    store_path = Path(store.get("path") or defaults.store_path)
    if not store_path.is_absolute():
        store_path = PROJECT_ROOT / store_path

    settings = Settings(
        search_url=get_env("SEARCH_URL") or crawl.get("search_url", defaults.search_url),
        login_url=crawl.get("login_url", defaults.login_url),
        base_url=crawl.get("base_url", defaults.base_url),
        auth_redirect_markers=tuple(crawl.get("auth_redirect_markers", defaults.auth_redirect_markers)),
        store_path=store_path,
        sheet_name=store.get("sheet_name", defaults.sheet_name),
        headless=_env_flag("RUN_HEADLESS", bool(crawl.get("headless", defaults.headless))),
        manual_login_required=_env_flag(
            "MANUAL_LOGIN_REQUIRED", bool(crawl.get("manual_login_required", defaults.manual_login_required))
        ),
        manual_login_seconds=float(crawl.get("manual_login_seconds", defaults.manual_login_seconds)),
        post_challenge_pause_seconds=float(
            crawl.get("post_challenge_pause_seconds", defaults.post_challenge_pause_seconds)
        ),
        max_pages=int(crawl.get("max_pages", defaults.max_pages)),
        challenge_grace_seconds=float(timeouts.get("challenge_grace_seconds", defaults.challenge_grace_seconds)),
        challenge_solve_seconds=float(timeouts.get("challenge_solve_seconds", defaults.challenge_solve_seconds)),
        content_timeout_ms=int(timeouts.get("content_ms", defaults.content_timeout_ms)),
        navigation_timeout_ms=int(timeouts.get("navigation_ms", defaults.navigation_timeout_ms)),
        detail_navigation_timeout_ms=int(
            timeouts.get("detail_navigation_ms", defaults.detail_navigation_timeout_ms)
        ),
        detail_content_timeout_ms=int(timeouts.get("detail_content_ms", defaults.detail_content_timeout_ms)),
        classifier_timeout_seconds=float(
            timeouts.get("classifier_seconds", defaults.classifier_timeout_seconds)
        ),
        solver_api_key=solver_key,
        classifier_backend=backend,
        classifier_api_key=classifier_key,
        classifier_base_url=get_env("CLASSIFIER_BASE_URL") or defaults.classifier_base_url,
        classifier_model=get_env("CLASSIFIER_MODEL") or defaults.classifier_model,
    )
    if settings.classifier_backend == "llm" and not settings.classifier_api_key:
        raise ValueError("CLASSIFIER_BACKEND=llm needs CLASSIFIER_API_KEY (or DEEPSEEK_API_KEY)")
    return settings


def load_rulebook(data: dict[str, Any] | None = None) -> RuleBook:
    """Build the run's immutable rule tables. EMPLOYER_BLOCKLIST replaces the YAML list."""
    data = load_config_file() if data is None else data
    rules = data.get("rules", {}) or {}

    blocklist: list[str] | None = rules.get("blocklist")
    env_blocklist = get_env("EMPLOYER_BLOCKLIST")
    if env_blocklist:
        blocklist = [name.strip() for name in env_blocklist.split(",") if name.strip()]

    return build_rulebook(
        title_keywords=rules.get("title_keywords"),
        families=rules.get("keyword_families"),
        blocklist=blocklist,
        restricted_markers=rules.get("restricted_title_markers"),
    )

"""2Captcha client for Cloudflare Turnstile challenges.

Docs: https://2captcha.com/2captcha-api#turnstile
"""
from __future__ import annotations

import time
from typing import Any

import requests

from src.errors import SolverError
from src.log import get_logger
from src.retry import retry

log = get_logger(__name__)

SUBMIT_URL = "https://2captcha.com/in.php"
RESULT_URL = "https://2captcha.com/res.php"

# Intercepted widget params → 2Captcha form fields.
_PARAM_FIELDS: dict[str, str] = {
    "websiteKey": "sitekey",
    "websiteURL": "pageurl",
    "data": "data",
    "pagedata": "pagedata",
    "action": "action",
    "userAgent": "userAgent",
}


class TwoCaptchaSolver:
    def __init__(
        self,
        api_key: str,
        *,
        poll_interval: float = 5.0,
        max_wait: float = 170.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.http = session or requests.Session()

    @retry(max_attempts=3, base_delay=2.0, retryable=(requests.RequestException,))
    def _submit(self, form: dict[str, Any]) -> str:
        r = self.http.post(SUBMIT_URL, data=form, timeout=30)
        r.raise_for_status()
        body = r.json()
        if body.get("status") != 1:
            raise SolverError(f"2Captcha rejected task: {body.get('request')}", code=str(body.get("request", "")))
        return str(body["request"])

    @retry(max_attempts=3, base_delay=2.0, retryable=(requests.RequestException,))
    def _poll(self, task_id: str) -> dict[str, Any]:
        r = self.http.get(
            RESULT_URL,
            params={"key": self.api_key, "action": "get", "id": task_id, "json": 1},
            timeout=30,
        )
        r.raise_for_status()
        return r.json()

    def solve(self, params: dict[str, Any]) -> str:
        """Submit a Turnstile task and block until 2Captcha returns the token."""
        if not self.api_key:
            raise SolverError("No 2Captcha API key configured (TWOCAPTCHA_API_KEY)", code="NO_KEY")
        form: dict[str, Any] = {"key": self.api_key, "method": "turnstile", "json": 1}
        for src_key, field in _PARAM_FIELDS.items():
            if params.get(src_key):
                form[field] = params[src_key]
        if "sitekey" not in form or "pageurl" not in form:
            raise SolverError("Intercepted challenge params lack websiteKey/websiteURL", code="BAD_PARAMS")

        try:
            task_id = self._submit(form)
        except requests.RequestException as exc:
            raise SolverError(f"2Captcha submit failed: {exc}", code="HTTP") from exc
        log.info("2Captcha task %s submitted", task_id)

        deadline = time.monotonic() + self.max_wait
        while time.monotonic() < deadline:
            time.sleep(self.poll_interval)
            try:
                body = self._poll(task_id)
            except requests.RequestException as exc:
                raise SolverError(f"2Captcha poll failed: {exc}", code="HTTP") from exc
            if body.get("status") == 1:
                log.info("2Captcha task %s solved", task_id)
                return str(body["request"])
            if body.get("request") != "CAPCHA_NOT_READY":
                raise SolverError(f"2Captcha task {task_id} failed: {body.get('request')}", code=str(body.get("request", "")))
        raise SolverError(f"2Captcha task {task_id} not solved within {self.max_wait:.0f}s", code="TIMEOUT")

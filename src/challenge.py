"""One-shot gate that clears the anti-automation challenge before crawling.

The interception script (see src/browser.py) logs the Turnstile widget
parameters to the console with the ``intercepted-params:`` prefix. The gate
listens on the page's console channel, solves the first such challenge, hands
the token back through ``cfCallback`` and resolves exactly once.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from src.log import get_logger

log = get_logger(__name__)

CHALLENGE_PREFIX = "intercepted-params:"
INJECT_TOKEN_JS = "token => cfCallback(token)"


class Solver(Protocol):
    def solve(self, params: dict[str, Any]) -> str: ...


class GateStatus(str, Enum):
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class GateResult:
    status: GateStatus
    reason: str

    @property
    def ok(self) -> bool:
        return self.status is GateStatus.READY


class ChallengeGate:
    def __init__(self, page, solver: Solver, *, grace_seconds: float = 3.0, solve_timeout: float = 180.0) -> None:
        self.page = page
        self.solver = solver
        self.grace_seconds = grace_seconds
        self.solve_timeout = solve_timeout
        self._signal: asyncio.Future[dict[str, Any]] | None = None
        self._outcome: asyncio.Future[GateResult] | None = None
        self._task: asyncio.Task | None = None

    def attach(self) -> None:
        """Start listening. Call before the first navigation."""
        loop = asyncio.get_running_loop()
        self._signal = loop.create_future()
        self._outcome = loop.create_future()
        self.page.on("console", self._on_console)

    def _resolve(self, result: GateResult) -> bool:
        if self._outcome is None or self._outcome.done():
            return False
        self._outcome.set_result(result)
        log.info("Challenge gate %s (%s)", result.status.value, result.reason)
        return True

    def _on_console(self, msg) -> None:
        text = msg.text
        if not isinstance(text, str) or not text.startswith(CHALLENGE_PREFIX):
            return
        if self._outcome is None or self._outcome.done():
            log.debug("Ignoring challenge signal after the gate resolved")
            return
        if self._signal.done():
            log.debug("Ignoring repeated challenge signal")
            return
        try:
            params = json.loads(text[len(CHALLENGE_PREFIX):])
        except ValueError as exc:
            self._signal.set_result({})
            self._resolve(GateResult(GateStatus.FAILED, f"unreadable challenge params: {exc}"))
            return
        self._signal.set_result(params)
        log.info("Challenge detected, solving")
        self._task = asyncio.ensure_future(self._solve(params))

    async def _solve(self, params: dict[str, Any]) -> None:
        try:
            token = await asyncio.wait_for(asyncio.to_thread(self.solver.solve, params), self.solve_timeout)
        except asyncio.TimeoutError:
            self._resolve(GateResult(GateStatus.FAILED, f"solver timed out after {self.solve_timeout:.0f}s"))
            return
        except Exception as exc:
            log.error("Challenge solve error: %s", exc)
            self._resolve(GateResult(GateStatus.FAILED, str(exc)))
            return
        try:
            await self.page.evaluate(INJECT_TOKEN_JS, token)
        except Exception as exc:
            log.error("Could not inject challenge token: %s", exc)
            self._resolve(GateResult(GateStatus.FAILED, f"token injection failed: {exc}"))
            return
        self._resolve(GateResult(GateStatus.READY, "solved"))

    async def await_ready(self, timeout: float | None = None) -> GateResult:
        """Wait for the gate. No signal within the grace period counts as READY."""
        if self._outcome is None:
            raise RuntimeError("ChallengeGate.attach() must be called first")
        timeout = self.solve_timeout if timeout is None else timeout

        try:
            await asyncio.wait_for(asyncio.shield(self._signal), self.grace_seconds)
        except asyncio.TimeoutError:
            if not self._signal.done():
                self._resolve(GateResult(GateStatus.READY, "no challenge"))

        try:
            return await asyncio.wait_for(asyncio.shield(self._outcome), timeout)
        except asyncio.TimeoutError:
            self._resolve(GateResult(GateStatus.FAILED, f"challenge not cleared within {timeout:.0f}s"))
            return self._outcome.result()

    def detach(self) -> None:
        try:
            self.page.remove_listener("console", self._on_console)
        except (AttributeError, KeyError, ValueError):
            pass
        if self._task is not None and not self._task.done():
            self._task.cancel()

"""
Executor collaborator that runs sanitized commands on a Playwright async page.

Works with an already-open page; launching and closing the browser is the
caller's business.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from error_handling import CommandExecutionError
from models.command_models import (
    CommandCandidate,
    CommandExecutionResult,
    CommandIntent,
    ExecutionReport,
)

logger = logging.getLogger(__name__)

# Pixels per scroll step when no amount is given
DEFAULT_SCROLL_AMOUNT = 600

_SCROLL_VECTORS = {
    "down": (0, 1),
    "up": (0, -1),
    "right": (1, 0),
    "left": (-1, 0),
}


class PlaywrightCommandExecutor:
    """
    Maps each sanitized command onto Playwright page calls.

    Commands run in order. The first command that raises stops the batch and
    surfaces as CommandExecutionError carrying the per-command results so far.
    Intents without a page mapping (login, drag, upload, ...) are reported as
    not ok and the batch continues.
    """

    def __init__(self, page: Page, action_timeout: float = 10.0, screenshot_dir: Optional[str] = None):
        self.page = page
        self.action_timeout = action_timeout
        self.screenshot_dir = screenshot_dir

    def set_page(self, page: Page) -> None:
        if not page or page is self.page:
            return
        self.page = page

    async def execute(self, commands: List[CommandCandidate], timeout: Optional[float] = None) -> ExecutionReport:
        results: List[CommandExecutionResult] = []
        executed = 0
        step_timeout_ms = self._timeout_ms(timeout)

        for command in commands:
            start = time.time()
            try:
                result = await self._run(command, step_timeout_ms)
            except Exception as exc:
                results.append(
                    CommandExecutionResult(
                        command_id=command.id,
                        intent=command.intent.value,
                        ok=False,
                        message=str(exc),
                        time_ms=(time.time() - start) * 1000,
                    )
                )
                logger.warning("Command %s (%s) failed: %s", command.id, command.intent.value, exc)
                raise CommandExecutionError(
                    f"{command.intent.value} command {command.id} failed: {exc}",
                    details={"per_command_results": [r.model_dump(mode="json") for r in results]},
                ) from exc

            result.time_ms = (time.time() - start) * 1000
            results.append(result)
            if result.ok:
                executed += 1

        return ExecutionReport(executed_count=executed, per_command_results=results)

    def _timeout_ms(self, timeout: Optional[float]) -> float:
        seconds = self.action_timeout if timeout is None else min(timeout, self.action_timeout)
        return seconds * 1000

    async def _run(self, command: CommandCandidate, timeout_ms: float) -> CommandExecutionResult:
        params = command.parameters
        intent = command.intent
        data: Any = None

        def done(message: str) -> CommandExecutionResult:
            return CommandExecutionResult(
                command_id=command.id, intent=intent.value, ok=True, message=message, data=data
            )

        if intent == CommandIntent.NAVIGATE:
            await self.page.goto(params.url, timeout=timeout_ms)
            return done(f"Navigated to {params.url}")

        if intent == CommandIntent.CLICK:
            selector = params.selector or (f"text={params.text}" if params.text else None)
            self._require(selector, command)
            await self.page.click(selector, timeout=timeout_ms)
            return done(f"Clicked {selector}")

        if intent == CommandIntent.FILL:
            self._require(params.selector, command)
            await self.page.fill(params.selector, params.value or "", timeout=timeout_ms)
            return done(f"Filled {params.selector}")

        if intent == CommandIntent.HOVER:
            self._require(params.selector, command)
            await self.page.hover(params.selector, timeout=timeout_ms)
            return done(f"Hovered {params.selector}")

        if intent == CommandIntent.SELECT:
            self._require(params.selector, command)
            await self.page.select_option(params.selector, params.value, timeout=timeout_ms)
            return done(f"Selected {params.value!r} in {params.selector}")

        if intent == CommandIntent.SUBMIT:
            selector = params.selector or "form"
            await self.page.press(selector, "Enter", timeout=timeout_ms)
            return done(f"Submitted {selector}")

        if intent == CommandIntent.SCROLL:
            dx, dy = self._scroll_delta(params.direction, params.amount)
            await self.page.mouse.wheel(dx, dy)
            return done(f"Scrolled by ({dx}, {dy})")

        if intent == CommandIntent.WAIT:
            if params.selector:
                await self.page.wait_for_selector(params.selector, timeout=timeout_ms)
                return done(f"Waited for {params.selector}")
            duration = params.duration if params.duration is not None else 1000
            await self.page.wait_for_timeout(duration)
            return done(f"Waited {duration}ms")

        if intent == CommandIntent.EXTRACT:
            if params.selector:
                data = await self.page.inner_text(params.selector, timeout=timeout_ms)
            else:
                data = await self.page.content()
            return done(f"Extracted {len(data)} characters")

        if intent == CommandIntent.SCREENSHOT:
            kwargs: Dict[str, Any] = {"full_page": bool(params.full_page)}
            if params.file_path:
                kwargs["path"] = params.file_path
            elif self.screenshot_dir and params.file_name:
                kwargs["path"] = f"{self.screenshot_dir.rstrip('/')}/{params.file_name}"
            image = await self.page.screenshot(**kwargs)
            data = {"path": kwargs.get("path"), "size": len(image)}
            return done("Captured screenshot")

        return CommandExecutionResult(
            command_id=command.id,
            intent=intent.value,
            ok=False,
            message=f"Intent '{intent.value}' is not supported by the browser executor",
        )

    @staticmethod
    def _require(selector: Optional[str], command: CommandCandidate) -> None:
        if not selector:
            raise ValueError(f"{command.intent.value} command needs a selector")

    @staticmethod
    def _scroll_delta(direction: Optional[str], amount: Any) -> tuple:
        dx, dy = _SCROLL_VECTORS.get((direction or "down").lower(), (0, 1))
        if isinstance(amount, (int, float)) and not isinstance(amount, bool):
            pixels = abs(amount)
        elif amount == "to_top":
            dx, dy, pixels = 0, -1, 1_000_000
        elif amount == "to_bottom":
            dx, dy, pixels = 0, 1, 1_000_000
        else:
            pixels = DEFAULT_SCROLL_AMOUNT
        return dx * pixels, dy * pixels

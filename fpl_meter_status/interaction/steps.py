"""Flow step execution - one resolver lookup, one action, one settle delay"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from playwright.async_api import Error as PlaywrightError

import fpl_meter_status.config as config
from fpl_meter_status.debug.artifacts import capture
from fpl_meter_status.errors import RequiredStepError, SessionError
from fpl_meter_status.perception.resolver import Resolver, SemanticTarget
from fpl_meter_status.utils.timing import settle


class Action(str, Enum):
    CLICK = "click"
    FILL = "fill"
    CHECK = "check"
    READ = "read"
    NONE = "none"  # resolve only - used as a presence probe


class OutcomeKind(str, Enum):
    OK = "ok"
    SOFT_FAIL = "soft_fail"
    HARD_FAIL = "hard_fail"


@dataclass(frozen=True)
class Step:
    """
    One logical action on the portal.

    required steps gate forward progress: a failure aborts the row.
    Optional steps (banners, checkboxes, assistive clicks) only log.
    `expect` is a postcondition target that must resolve after the action.
    `settle_key` names the timing-profile window slept after the action.
    """

    name: str
    target: SemanticTarget
    action: Action = Action.CLICK
    value: Optional[str] = None
    required: bool = False
    expect: Optional[SemanticTarget] = None
    settle_key: Optional[str] = "settle"


@dataclass(frozen=True)
class StepOutcome:
    kind: OutcomeKind
    step: str
    reason: str = ""
    text: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def ok(self):
        return self.kind == OutcomeKind.OK

    @classmethod
    def success(cls, step, strategy=None, text=None):
        return cls(OutcomeKind.OK, step, strategy=strategy, text=text)

    @classmethod
    def soft_fail(cls, step, reason):
        return cls(OutcomeKind.SOFT_FAIL, step, reason=reason)

    @classmethod
    def hard_fail(cls, step, reason):
        return cls(OutcomeKind.HARD_FAIL, step, reason=reason)


class StepExecutor:
    """Runs Steps against one page, capturing a screenshot on every failure"""

    def __init__(self, page, resolver=None, timing=None):
        self.page = page
        self.timing = timing or config.TIMING
        self.resolver = resolver or Resolver(page, self.timing)

    async def execute(self, step):
        """Execute a step and classify the result. Never raises for a missing element."""
        handle = await self.resolver.resolve(step.target)
        if not handle:
            return await self._fail(step, handle.reason)

        text = None
        try:
            text = await self._perform(step, handle.locator)
        except PlaywrightError as e:
            if self.page.is_closed():
                raise SessionError(f"Page closed during step '{step.name}'") from e
            return await self._fail(step, f"{step.action.value} failed: {str(e).splitlines()[0]}")

        if step.settle_key:
            await settle(self.timing, step.settle_key)

        if step.expect is not None:
            indicator = await self.resolver.resolve(step.expect)
            if not indicator:
                return await self._fail(step, f"postcondition {indicator.reason}")

        print(f"  ✓ {step.name}" + (f" (via {handle.strategy})" if handle.strategy else ""))
        return StepOutcome.success(step.name, strategy=handle.strategy, text=text)

    async def run(self, step):
        """Execute a step, raising RequiredStepError when a required step fails"""
        outcome = await self.execute(step)
        if outcome.kind == OutcomeKind.HARD_FAIL:
            raise RequiredStepError(step.name, outcome.reason)
        return outcome

    async def _perform(self, step, locator):
        timeout = self.timing["action_timeout"]
        if step.action == Action.CLICK:
            await locator.click(timeout=timeout)
        elif step.action == Action.FILL:
            await locator.fill(step.value or "", timeout=timeout)
        elif step.action == Action.CHECK:
            try:
                await locator.check(timeout=timeout)
            except PlaywrightError:
                # Styled radio/checkbox containers are not native inputs
                await locator.click(timeout=timeout)
        elif step.action == Action.READ:
            return (await locator.inner_text(timeout=timeout)).strip()
        return None

    async def _fail(self, step, reason):
        await capture(self.page, f"{step.name}-failed")
        if step.required:
            print(f"  ❌ {step.name}: {reason}")
            return StepOutcome.hard_fail(step.name, reason)
        print(f"  ⚠️ {step.name} skipped: {reason}")
        return StepOutcome.soft_fail(step.name, reason)

"""Shared fixtures: a scripted stand-in for a Playwright page and zero-delay timing"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

import fpl_meter_status.config as config
from fpl_meter_status.data.submission import Credentials
from fpl_meter_status.perception.strategies import describe_match
from fpl_meter_status.state.machine import FlowState, FlowStateMachine

ZERO_TIMING = {
    "strategy_timeout": 0,
    "action_timeout": 0,
    "settle_min": 0,
    "settle_max": 0,
    "page_transition_min": 0,
    "page_transition_max": 0,
    "dropdown_open_min": 0,
    "dropdown_open_max": 0,
    "status_page_min": 0,
    "status_page_max": 0,
    "navigation_timeout": 0,
}

CREDENTIALS = Credentials(username="manager@example.com", password="hunter2")
TIN = "12-3456789"

# Every strategy of the Address field
ADDRESS_FIELD = ("Address$/", 'aria-label="*Address"', 'aria-label="Address"')


@pytest.fixture(autouse=True)
def isolated_outputs(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "RESULT_LOG_PATH", tmp_path / "log.jsonl")
    monkeypatch.setattr(config, "ARTIFACTS_DIR", tmp_path / "artifacts")
    monkeypatch.setattr(config, "CAPTURE_SCREENSHOTS", False)
    return tmp_path


class FakeLocator:
    def __init__(self, page, description):
        self.page = page
        self.description = description

    @property
    def first(self):
        return self

    def locator(self, selector):
        return FakeLocator(self.page, f"{self.description} >> {selector}")

    async def wait_for(self, state="visible", timeout=None):
        if self.page.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        if not self.page.is_visible(self.description):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.description}")

    async def click(self, timeout=None):
        self.page.perform("click", self.description)

    async def fill(self, value, timeout=None):
        self.page.perform("fill", self.description, value)

    async def check(self, timeout=None):
        if self.page.fail_check:
            raise PlaywrightError("Not a checkbox or radio button")
        self.page.perform("check", self.description)

    async def inner_text(self, timeout=None):
        self.page.perform("read", self.description)
        for key, text in self.page.texts.items():
            if key in self.description:
                return text
        return ""


class FakePage:
    """Answers locator lookups from description strings

    Every locator is visible unless its description contains one of the
    `hidden` substrings. `texts` maps description substrings to inner text.
    """

    def __init__(self, hidden=(), texts=None, probes=(), fail_fill_values=()):
        self.hidden = set(hidden)
        self.texts = dict(texts or {})
        self.probes = set(probes)
        self.fail_fill_values = set(fail_fill_values)
        self.fail_check = False
        self.close_on = None
        self.closed = False
        self.actions = []
        self.visited_urls = []
        self.screenshots = []

    def is_visible(self, description):
        return not any(fragment in description for fragment in self.hidden)

    def perform(self, action, description, value=None):
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        if self.close_on and self.close_on in description:
            self.closed = True
            raise PlaywrightError("Target page, context or browser has been closed")
        if action == "fill" and value in self.fail_fill_values:
            raise PlaywrightError(f"Element is not editable: {description}")
        self.actions.append((action, description, value))

    def did(self, action, fragment):
        return any(a == action and fragment in d for a, d, _ in self.actions)

    def filled(self, fragment):
        return [v for a, d, v in self.actions if a == "fill" and fragment in d]

    # Playwright page API
    def get_by_role(self, role, name=None, exact=None):
        return FakeLocator(self, f"role={role} name={describe_match(name)}")

    def get_by_label(self, label, exact=None):
        return FakeLocator(self, f"label={describe_match(label)}")

    def get_by_text(self, text, exact=None):
        return FakeLocator(self, f"text={describe_match(text)}")

    def locator(self, selector, has_text=None):
        description = f"css={selector}"
        if has_text is not None:
            description += f" has_text={describe_match(has_text)}"
        return FakeLocator(self, description)

    async def evaluate(self, script, marker):
        return marker in self.probes

    async def goto(self, url, wait_until=None, timeout=None):
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        self.visited_urls.append(url)

    async def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)

    def is_closed(self):
        return self.closed

    def set_default_timeout(self, timeout):
        pass


class FakeSessions:
    """Stand-in for open_session: yields a FakePage and records teardown"""

    def __init__(self, page=None):
        self.page = page or FakePage()
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def __call__(self, headless=None):
        self.opened += 1
        try:
            yield self.page
        finally:
            self.closed += 1


class ScriptedMachine(FlowStateMachine):
    """Real entry-mode bookkeeping with the portal pages replaced by a script

    `script` maps an address to (meter_status, property_status) or to an
    exception instance to raise for that row.
    """

    def __init__(self, page, credentials, tin, timing=None, script=None, login_error=None):
        super().__init__(page, credentials, tin, timing=timing or ZERO_TIMING)
        self.script = script or {}
        self.login_error = login_error

    async def login(self):
        self._visit(FlowState.LOGIN)
        if self.login_error is not None:
            raise self.login_error
        self.authenticated = True

    async def _warm_entry(self):
        pass

    async def _account_to_property(self):
        self._visit(FlowState.ACCOUNT_SELECT)

    async def _address_and_status(self, address, unit):
        self._visit(FlowState.ADDRESS_AND_UNIT_ENTRY)
        outcome = self.script.get(address, (config.NOT_FOUND, config.NOT_FOUND))
        if isinstance(outcome, BaseException):
            raise outcome
        self._visit(FlowState.STATUS_READOUT)
        self._run.meter_status, self._run.property_status = outcome
        if self._run.has_status:
            self._run.status_captured_at = datetime.now(timezone.utc)


def scripted_factory(script=None, login_error=None, machines=None):
    """machine_factory for the scheduler/lookup driver; collects built machines"""

    def factory(page, credentials, tin, timing=None):
        machine = ScriptedMachine(
            page, credentials, tin, timing=timing, script=script, login_error=login_error
        )
        if machines is not None:
            machines.append(machine)
        return machine

    return factory


@pytest.fixture
def fake_page():
    return FakePage(texts={"Meter Status": "Active", "property-status": "Occupied"})

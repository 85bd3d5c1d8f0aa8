import asyncio

import pytest

import fpl_meter_status.config as config
from fpl_meter_status.errors import RequiredStepError, SessionError
from fpl_meter_status.interaction.steps import Action, OutcomeKind, Step, StepExecutor
from fpl_meter_status.perception import targets

from conftest import ADDRESS_FIELD, ZERO_TIMING, FakePage


def execute(page, step):
    return asyncio.run(StepExecutor(page, timing=ZERO_TIMING).execute(step))


def test_click_step_succeeds_and_reports_strategy():
    page = FakePage()

    outcome = execute(page, Step("confirm selection", targets.CONFIRM_BUTTON))

    assert outcome.ok
    assert outcome.strategy.startswith("css=span.q-btn__content")
    assert page.did("click", "span.q-btn__content")


def test_fill_step_types_value():
    page = FakePage()

    outcome = execute(page, Step("fill TIN", targets.TIN_INPUT, Action.FILL, value="12-3456789"))

    assert outcome.ok
    assert page.filled("TIN") == ["12-3456789"]


def test_missing_optional_element_is_soft_failure():
    page = FakePage(hidden={"Not the right address"})

    outcome = execute(page, Step("different address", targets.DIFFERENT_ADDRESS_LINK))

    assert outcome.kind == OutcomeKind.SOFT_FAIL
    assert "not found" in outcome.reason


def test_missing_required_element_is_hard_failure():
    page = FakePage(hidden=set(ADDRESS_FIELD))
    step = Step("fill address", targets.ADDRESS_INPUT, Action.FILL, value="1 Main St", required=True)

    outcome = execute(page, step)
    assert outcome.kind == OutcomeKind.HARD_FAIL

    with pytest.raises(RequiredStepError) as excinfo:
        asyncio.run(StepExecutor(page, timing=ZERO_TIMING).run(step))
    assert excinfo.value.step_name == "fill address"


def test_action_error_is_classified_not_raised():
    page = FakePage(fail_fill_values={"bad"})

    outcome = execute(page, Step("fill requestor", targets.REQUESTOR_INPUT, Action.FILL, value="bad"))

    assert outcome.kind == OutcomeKind.SOFT_FAIL
    assert outcome.reason.startswith("fill failed")


def test_check_falls_back_to_click_on_styled_container():
    page = FakePage()
    page.fail_check = True

    outcome = execute(page, Step("select Business", targets.BUSINESS_RADIO, Action.CHECK))

    assert outcome.ok
    assert page.did("click", "q-radio__inner")
    assert not page.did("check", "q-radio__inner")


def test_missing_postcondition_fails_the_step():
    page = FakePage(hidden=set(ADDRESS_FIELD))
    step = Step(
        "different address",
        targets.DIFFERENT_ADDRESS_LINK,
        expect=targets.ADDRESS_INPUT,
    )

    outcome = execute(page, step)

    assert outcome.kind == OutcomeKind.SOFT_FAIL
    assert outcome.reason.startswith("postcondition")
    assert page.did("click", "Not the right address")


def test_read_step_returns_trimmed_text():
    page = FakePage(texts={"Meter Status": "  Active \n"})

    outcome = execute(page, Step("read meter", targets.METER_STATUS, Action.READ, settle_key=None))

    assert outcome.ok
    assert outcome.text == "Active"


def test_page_closing_mid_action_is_a_session_error():
    page = FakePage()
    page.close_on = "Confirm"

    with pytest.raises(SessionError):
        execute(page, Step("confirm selection", targets.CONFIRM_BUTTON))


def test_failure_captures_screenshot(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "CAPTURE_SCREENSHOTS", True)
    page = FakePage(hidden={"Not the right address"})

    execute(page, Step("different address", targets.DIFFERENT_ADDRESS_LINK))

    assert len(page.screenshots) == 1
    assert page.screenshots[0].endswith("-different-address-failed.png")
    assert str(tmp_path / "artifacts") in page.screenshots[0]


def test_presence_probe_performs_no_action():
    page = FakePage()

    outcome = execute(page, Step("status page loaded", targets.PROPERTY_STATUS, Action.NONE, settle_key=None))

    assert outcome.ok
    assert page.actions == []

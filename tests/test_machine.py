import asyncio

import pytest

import fpl_meter_status.config as config
from fpl_meter_status.errors import RequiredStepError, SessionError
from fpl_meter_status.jobs.lookup import LookupDriver
from fpl_meter_status.state.machine import EntryMode, FlowState, FlowStateMachine

from conftest import ADDRESS_FIELD, CREDENTIALS, TIN, ZERO_TIMING, FakePage, FakeSessions

COLD_STATES = [
    FlowState.START,
    FlowState.LOGIN,
    FlowState.ACCOUNT_SELECT,
    FlowState.SERVICE_CATEGORY_SELECT,
    FlowState.REGION_SELECT,
    FlowState.ADDITIONAL_SERVICE,
    FlowState.CUSTOMER_TYPE_SELECT,
    FlowState.MASTER_ACCOUNT_QUESTION,
    FlowState.TAX_ID_AND_REQUESTOR_INFO,
    FlowState.PROPERTY_USE_AND_MAILING,
    FlowState.CONFIRM_PROPERTY,
    FlowState.ADDRESS_AND_UNIT_ENTRY,
    FlowState.CONFIRM_SELECTION,
    FlowState.STATUS_READOUT,
    FlowState.DONE,
]


def make_machine(page):
    return FlowStateMachine(page, CREDENTIALS, TIN, timing=ZERO_TIMING)


def test_cold_entry_visits_every_state_in_order(fake_page):
    machine = make_machine(fake_page)

    run = asyncio.run(machine.run_row("12 Palm Ave, Miami, FL 33101"))

    assert run.entry == EntryMode.COLD
    assert run.visited == COLD_STATES
    assert run.statuses == ("Active", "Occupied")
    assert run.status_captured_at is not None
    assert machine.authenticated
    assert machine.next_entry == EntryMode.WARM
    assert fake_page.visited_urls == [config.PORTAL_URL]
    assert fake_page.filled("username") == [CREDENTIALS.username]
    assert fake_page.filled("TIN") == [TIN]
    assert fake_page.filled("Address") == ["12 Palm Ave, Miami, FL 33101"]


def test_second_successful_row_uses_warm_entry(fake_page):
    machine = make_machine(fake_page)

    async def two_rows():
        first = await machine.run_row("12 Palm Ave, Miami, FL 33101")
        second = await machine.run_row("40 Bay Rd, Miami, FL 33139")
        return first, second

    first, second = asyncio.run(two_rows())

    assert first.entry == EntryMode.COLD
    assert second.entry == EntryMode.WARM
    assert FlowState.LOGIN not in second.visited
    assert FlowState.ACCOUNT_SELECT not in second.visited
    assert second.visited[1] == FlowState.ADDRESS_AND_UNIT_ENTRY
    assert not second.fell_back
    assert fake_page.did("click", "Not the right address")
    assert machine.history == [first, second]


def test_unit_disambiguation_runs_only_with_unit(fake_page):
    machine = make_machine(fake_page)

    run = asyncio.run(machine.run_row("12 Palm Ave, Miami, FL 33101", unit="4B"))

    assert FlowState.UNIT_DISAMBIGUATION in run.visited
    assert fake_page.filled("Unit#") == ["4B", "4B"]


def test_unit_disambiguation_skipped_when_confirm_missing():
    page = FakePage(hidden={"Confirm", "confirm"}, texts={"Meter Status": "Active"})
    machine = make_machine(page)

    run = asyncio.run(machine.run_row("12 Palm Ave, Miami, FL 33101", unit="4B"))

    assert FlowState.UNIT_DISAMBIGUATION not in run.visited
    assert run.meter_status == "Active"


def test_missing_status_fields_default_to_sentinel_and_force_cold():
    page = FakePage(hidden={"Meter Status", "property-status", "Property Status"})
    machine = make_machine(page)

    run = asyncio.run(machine.run_row("12 Palm Ave, Miami, FL 33101"))

    assert run.statuses == (config.NOT_FOUND, config.NOT_FOUND)
    assert run.error is None
    assert run.status_captured_at is None
    assert machine.next_entry == EntryMode.COLD


def test_each_status_field_defaults_independently():
    page = FakePage(hidden={"property-status", "Property Status"}, texts={"Meter Status": "Active"})

    run = asyncio.run(make_machine(page).run_row("12 Palm Ave, Miami, FL 33101"))

    assert run.statuses == ("Active", config.NOT_FOUND)
    assert run.has_status


def test_required_step_failure_aborts_row_and_forces_cold(fake_page):
    machine = make_machine(fake_page)

    async def rows():
        await machine.run_row("12 Palm Ave, Miami, FL 33101")
        fake_page.hidden.update(ADDRESS_FIELD)
        with pytest.raises(RequiredStepError):
            await machine.run_row("40 Bay Rd, Miami, FL 33139")

    asyncio.run(rows())

    failed = machine.history[-1]
    assert failed.entry == EntryMode.WARM
    assert "fill address" in failed.error
    assert machine.next_entry == EntryMode.COLD


def test_warm_entry_falls_back_to_cold_traversal_when_link_missing(fake_page):
    machine = make_machine(fake_page)

    async def rows():
        await machine.run_row("12 Palm Ave, Miami, FL 33101")
        fake_page.hidden.add("Not the right address")
        return await machine.run_row("40 Bay Rd, Miami, FL 33139")

    run = asyncio.run(rows())

    assert run.entry == EntryMode.WARM
    assert run.fell_back
    assert FlowState.LOGIN not in run.visited
    assert FlowState.ACCOUNT_SELECT in run.visited
    assert run.statuses == ("Active", "Occupied")


def test_login_form_missing_everywhere_is_session_error():
    page = FakePage(hidden={"username", 'name*="user"', 'type="text"'})
    machine = make_machine(page)

    with pytest.raises(SessionError):
        asyncio.run(machine.login())

    assert page.visited_urls == [config.PORTAL_URL, *config.LOGIN_URLS]
    assert not machine.authenticated


def test_single_lookup_returns_sentinels_without_raising():
    page = FakePage(hidden={"Meter Status", "property-status", "Property Status"})
    sessions = FakeSessions(page)
    driver = LookupDriver(session_opener=sessions, timing=ZERO_TIMING)

    result = asyncio.run(driver.lookup(CREDENTIALS, TIN, "12 Palm Ave, Miami, FL 33101"))

    assert result == {
        "address": "12 Palm Ave, Miami, FL 33101",
        "unit": None,
        "meter_status": config.NOT_FOUND,
        "property_status": config.NOT_FOUND,
    }
    assert sessions.opened == sessions.closed == 1


def test_single_lookup_tears_down_session_on_failure():
    page = FakePage(hidden=set(ADDRESS_FIELD))
    sessions = FakeSessions(page)
    driver = LookupDriver(session_opener=sessions, timing=ZERO_TIMING)

    with pytest.raises(RequiredStepError):
        asyncio.run(driver.lookup(CREDENTIALS, TIN, "12 Palm Ave, Miami, FL 33101"))

    assert sessions.closed == 1

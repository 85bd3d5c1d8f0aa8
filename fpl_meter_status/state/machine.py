"""
Lookup flow state machine

Sequences steps through the portal's multi-page start-service form. Two
ways in:

- COLD: full traversal from login (when the session is not yet
  authenticated) through account selection and every form page.
- WARM: on the status page of the previous address, click
  "Not the right address?" and go straight back to address entry.

The machine owns the cold/warm decision. After each row it sets
`next_entry` to WARM only when the row produced a real status; anything
else (sentinel-only result, required step failure) forces the next row
back to COLD.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError

import fpl_meter_status.config as config
from fpl_meter_status.debug.artifacts import capture
from fpl_meter_status.errors import RequiredStepError, SessionError
from fpl_meter_status.interaction.steps import Action, Step, StepExecutor
from fpl_meter_status.perception import targets
from fpl_meter_status.utils.timing import settle


class FlowState(str, Enum):
    START = "Start"
    LOGIN = "Login"
    ACCOUNT_SELECT = "AccountSelect"
    SERVICE_CATEGORY_SELECT = "ServiceCategorySelect"
    REGION_SELECT = "RegionSelect"
    ADDITIONAL_SERVICE = "AdditionalService"
    CUSTOMER_TYPE_SELECT = "CustomerTypeSelect"
    MASTER_ACCOUNT_QUESTION = "MasterAccountQuestion"
    TAX_ID_AND_REQUESTOR_INFO = "TaxIdAndRequestorInfo"
    PROPERTY_USE_AND_MAILING = "PropertyUseAndMailing"
    CONFIRM_PROPERTY = "ConfirmProperty"
    ADDRESS_AND_UNIT_ENTRY = "AddressAndUnitEntry"
    CONFIRM_SELECTION = "ConfirmSelection"
    UNIT_DISAMBIGUATION = "UnitDisambiguation"
    STATUS_READOUT = "StatusReadout"
    DONE = "Done"


class EntryMode(str, Enum):
    COLD = "cold"
    WARM = "warm"


def is_real_status(value):
    return value is not None and value != config.NOT_FOUND


@dataclass
class FlowRun:
    """Trace of one row through the machine"""

    entry: EntryMode
    address: str
    unit: Optional[str] = None
    visited: List[FlowState] = field(default_factory=list)
    fell_back: bool = False
    meter_status: Optional[str] = None
    property_status: Optional[str] = None
    status_captured_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def has_status(self):
        return is_real_status(self.meter_status) or is_real_status(self.property_status)

    @property
    def statuses(self):
        return self.meter_status, self.property_status


class FlowStateMachine:
    def __init__(
        self,
        page,
        credentials,
        tin,
        timing=None,
        requestor_name=None,
        account_title=None,
        executor=None,
    ):
        self.page = page
        self.credentials = credentials
        self.tin = tin
        self.timing = timing or config.TIMING
        self.requestor_name = requestor_name or config.REQUESTOR_NAME
        self.account_title = account_title or config.ACCOUNT_TITLE
        self.executor = executor or StepExecutor(page, timing=self.timing)

        self.authenticated = False
        self.next_entry = EntryMode.COLD
        self.history: List[FlowRun] = []
        self._run: Optional[FlowRun] = None

    # ========================================
    # PUBLIC API
    # ========================================
    async def login(self):
        """Authenticate the session. Raises SessionError when it cannot."""
        self._visit(FlowState.LOGIN)
        print("\n🔐 Logging in to the portal...")

        await self._goto(config.PORTAL_URL)
        await settle(self.timing, "page_transition")
        await self.executor.execute(Step("accept cookies", targets.COOKIE_ACCEPT))

        if not await self.executor.resolver.resolve(targets.LOGIN_USERNAME):
            if not await self._find_login_page():
                await capture(self.page, "login-form-missing")
                raise SessionError("Login form not found on any known login page")

        try:
            await self.executor.run(
                Step(
                    "fill username",
                    targets.LOGIN_USERNAME,
                    Action.FILL,
                    value=self.credentials.username,
                    required=True,
                )
            )
            await self.executor.run(
                Step(
                    "fill password",
                    targets.LOGIN_PASSWORD,
                    Action.FILL,
                    value=self.credentials.password,
                    required=True,
                )
            )
            await self.executor.run(
                Step(
                    "submit login",
                    targets.LOGIN_SUBMIT,
                    required=True,
                    settle_key="page_transition",
                )
            )
        except RequiredStepError as e:
            raise SessionError(f"Login failed: {e}") from e

        self.authenticated = True
        print("  ✓ Logged in")

    async def run_row(self, address, unit=None):
        """Run one address through the flow using the current entry mode

        Returns the FlowRun. A required step failure is recorded on the run
        and re-raised after forcing the next row to cold entry.
        """
        run = FlowRun(entry=self.next_entry, address=address, unit=unit)
        self.history.append(run)
        self._run = run
        self._visit(FlowState.START)
        print(f"  Entry: {run.entry.value}")

        try:
            if run.entry == EntryMode.WARM:
                await self._warm_entry()
            else:
                await self._cold_entry()
            await self._address_and_status(address, unit)
            self._visit(FlowState.DONE)
        except Exception as e:
            run.error = str(e)
            self.next_entry = EntryMode.COLD
            raise
        finally:
            self._run = None

        self.next_entry = EntryMode.WARM if run.has_status else EntryMode.COLD
        if not run.has_status:
            print("  ⚠️ No status captured - next row will use cold entry")
        return run

    # ========================================
    # ENTRY PATHS
    # ========================================
    async def _cold_entry(self):
        if not self.authenticated:
            await self.login()
        await self._account_to_property()

    async def _warm_entry(self):
        outcome = await self.executor.execute(
            Step(
                "click 'Not the right address?'",
                targets.DIFFERENT_ADDRESS_LINK,
                expect=targets.ADDRESS_INPUT,
                settle_key="page_transition",
            )
        )
        if not outcome.ok:
            print("  ⚠️ Warm entry unavailable - falling back to cold traversal")
            self._run.fell_back = True
            await self._account_to_property()

    async def _find_login_page(self):
        for url in config.LOGIN_URLS:
            print(f"  Trying login page {url}")
            try:
                await self._goto(url)
            except SessionError as e:
                if self.page.is_closed():
                    raise
                print(f"  ⚠️ {e}")
                continue
            if await self.executor.resolver.resolve(targets.LOGIN_USERNAME):
                return True
        return False

    async def _goto(self, url):
        try:
            await self.page.goto(
                url, wait_until="domcontentloaded", timeout=self.timing["navigation_timeout"]
            )
        except PlaywrightError as e:
            if self.page.is_closed():
                raise SessionError(f"Page closed while opening {url}") from e
            raise SessionError(f"Could not open {url}: {str(e).splitlines()[0]}") from e

    # ========================================
    # COLD TRAVERSAL (post-login)
    # ========================================
    async def _account_to_property(self):
        run = self.executor.run

        self._visit(FlowState.ACCOUNT_SELECT)
        await run(
            Step(
                "select account",
                targets.account_link(self.account_title),
                settle_key="page_transition",
            )
        )

        self._visit(FlowState.SERVICE_CATEGORY_SELECT)
        await run(Step("open Services menu", targets.SERVICES_MENU))
        await run(
            Step("click 'Start, Stop, Move'", targets.START_STOP_MOVE, settle_key="page_transition")
        )

        self._visit(FlowState.REGION_SELECT)
        await run(Step("choose FPL region", targets.REGION_FPL))
        await run(
            Step("continue past region", targets.REGION_CONTINUE, settle_key="page_transition")
        )

        self._visit(FlowState.ADDITIONAL_SERVICE)
        await run(
            Step(
                "click 'Additional Service'",
                targets.ADDITIONAL_SERVICE,
                settle_key="page_transition",
            )
        )

        self._visit(FlowState.CUSTOMER_TYPE_SELECT)
        await run(Step("select Business", targets.BUSINESS_RADIO, Action.CHECK))
        await run(
            Step(
                "continue as business",
                targets.CONTINUE_BUTTON,
                required=True,
                settle_key="page_transition",
            )
        )

        self._visit(FlowState.MASTER_ACCOUNT_QUESTION)
        await run(Step("next (master account intro)", targets.NEXT_BUTTON, settle_key="page_transition"))
        await run(Step("answer 'No' to master account", targets.MASTER_ACCOUNT_NO, Action.CHECK))
        await run(Step("next (master account)", targets.NEXT_BUTTON, settle_key="page_transition"))

        self._visit(FlowState.TAX_ID_AND_REQUESTOR_INFO)
        await run(Step("fill TIN", targets.TIN_INPUT, Action.FILL, value=self.tin))
        await run(Step("select U.S. Business", targets.US_BUSINESS_RADIO, Action.CHECK))
        await run(
            Step(
                "fill Person Making Request",
                targets.REQUESTOR_INPUT,
                Action.FILL,
                value=self.requestor_name,
            )
        )
        await run(Step("next (tax id)", targets.NEXT_BUTTON, settle_key="page_transition"))

        self._visit(FlowState.PROPERTY_USE_AND_MAILING)
        await run(
            Step("open Property Use", targets.PROPERTY_USE_DROPDOWN, settle_key="dropdown_open")
        )
        await run(
            Step(
                "choose property use",
                targets.property_use_option(config.PROPERTY_USE_OPTION),
            )
        )
        await run(
            Step("mailing address same as service", targets.MAILING_SAME_CHECKBOX, Action.CHECK)
        )
        await run(Step("next (property use)", targets.NEXT_BUTTON, settle_key="page_transition"))

        self._visit(FlowState.CONFIRM_PROPERTY)
        await run(Step("confirm property", targets.CONFIRM_PROPERTY_RADIO, Action.CHECK))
        await run(Step("next (confirm property)", targets.NEXT_BUTTON, settle_key="page_transition"))

    # ========================================
    # SHARED TAIL: ADDRESS -> STATUS
    # ========================================
    async def _address_and_status(self, address, unit):
        run = self.executor.run

        self._visit(FlowState.ADDRESS_AND_UNIT_ENTRY)
        await run(
            Step(
                "fill address",
                targets.ADDRESS_INPUT,
                Action.FILL,
                value=address,
                required=True,
                settle_key="dropdown_open",
            )
        )
        await run(Step("pick address suggestion", targets.address_suggestion(address)))
        if unit:
            await run(
                Step(
                    "fill unit",
                    targets.UNIT_INPUT,
                    Action.FILL,
                    value=unit,
                    settle_key="dropdown_open",
                )
            )
            await run(Step("pick unit option", targets.unit_option(unit)))
        await run(Step("search address", targets.SEARCH_BUTTON, settle_key="page_transition"))
        await run(Step("next (address)", targets.NEXT_BUTTON, settle_key="page_transition"))

        self._visit(FlowState.CONFIRM_SELECTION)
        confirmed = await run(
            Step("confirm selection", targets.CONFIRM_BUTTON, settle_key="page_transition")
        )

        if unit and confirmed.ok:
            self._visit(FlowState.UNIT_DISAMBIGUATION)
            await run(
                Step(
                    "fill unit on confirmation",
                    targets.UNIT_CONFIRM_INPUT,
                    Action.FILL,
                    value=unit,
                    settle_key="dropdown_open",
                )
            )
            await run(Step("pick unit suggestion", targets.unit_suggestion(unit)))
            await run(
                Step("confirm unit", targets.CONFIRM_BUTTON, settle_key="page_transition")
            )

        print("  Waiting for status page...")
        await settle(self.timing, "status_page")
        await self.read_statuses()

    async def read_statuses(self):
        """Read both status fields, each defaulting to the sentinel on its own"""
        self._visit(FlowState.STATUS_READOUT)
        meter = await self.executor.execute(
            Step("read Meter Status", targets.METER_STATUS, Action.READ, settle_key=None)
        )
        prop = await self.executor.execute(
            Step("read Property Status", targets.PROPERTY_STATUS, Action.READ, settle_key=None)
        )

        meter_status = meter.text if meter.ok and meter.text else config.NOT_FOUND
        property_status = prop.text if prop.ok and prop.text else config.NOT_FOUND

        if self._run is not None:
            self._run.meter_status = meter_status
            self._run.property_status = property_status
            if self._run.has_status:
                self._run.status_captured_at = datetime.now(timezone.utc)

        print(f"  Meter Status: {meter_status}")
        print(f"  Property Status: {property_status}")
        return meter_status, property_status

    def _visit(self, state):
        if self._run is not None:
            self._run.visited.append(state)

"""Single address lookup - one dedicated session, login, cold flow, teardown"""

import time

import fpl_meter_status.config as config
from fpl_meter_status.browser.session import open_session
from fpl_meter_status.data.submission import validate_submission
from fpl_meter_status.debug.artifacts import clear_artifacts
from fpl_meter_status.errors import SubmissionError
from fpl_meter_status.jobs.supervisor import TaskSupervisor
from fpl_meter_status.state.machine import FlowStateMachine
from fpl_meter_status.utils.timing import format_elapsed_time


class LookupDriver:
    def __init__(
        self,
        supervisor=None,
        session_opener=open_session,
        machine_factory=FlowStateMachine,
        timing=None,
    ):
        self.supervisor = supervisor or TaskSupervisor()
        self.session_opener = session_opener
        self.machine_factory = machine_factory
        self.timing = timing or config.TIMING

    async def lookup(self, credentials, tin, address, unit=None):
        """Look up one address and return its meter and property status

        Nothing is persisted. A missing status comes back as the
        "Not found" sentinel rather than an error.
        """
        validate_submission(credentials, tin)
        address = (address or "").strip()
        if not address:
            raise SubmissionError("Missing required fields: address")
        unit = (unit or "").strip() or None

        clear_artifacts()
        task = self.supervisor.spawn(
            self._run(credentials, tin.strip(), address, unit),
            name=f"lookup-{address[:24]}",
        )
        return await task

    async def _run(self, credentials, tin, address, unit):
        start_time = time.time()
        print("\n" + "=" * 60)
        print(f"SINGLE LOOKUP: {address}" + (f" (Unit: {unit})" if unit else ""))
        print("=" * 60)

        async with self.session_opener() as page:
            machine = self.machine_factory(page, credentials, tin, timing=self.timing)
            run = await machine.run_row(address, unit)

        print(f"\n✓ Lookup finished in {format_elapsed_time(time.time() - start_time)}")
        return {
            "address": address,
            "unit": unit,
            "meter_status": run.meter_status,
            "property_status": run.property_status,
        }

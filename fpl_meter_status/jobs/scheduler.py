"""
Batch job scheduler

One browser session per batch, one login, then every row in order through
the flow state machine. The machine decides cold/warm entry; this module
classifies each row's outcome, persists it, pushes a progress event and
advances the job's processed count.

Row outcomes:
- success: at least one real status read -> address_completed
- no status: both fields came back as the sentinel -> address_failed
- exception: the row's flow raised -> address_error

A SessionError (or a page that has closed) ends the whole batch. The job is
then marked completed if any row was processed, failed otherwise.
"""

import asyncio
import time
import traceback
from uuid import uuid4

import fpl_meter_status.config as config
from fpl_meter_status.browser.session import open_session
from fpl_meter_status.data.rows import normalize_row
from fpl_meter_status.data.submission import validate_submission
from fpl_meter_status.debug.artifacts import clear_artifacts
from fpl_meter_status.errors import BatchTooLargeError, SessionError, SubmissionError
from fpl_meter_status.jobs import progress
from fpl_meter_status.jobs.models import JobStatus
from fpl_meter_status.jobs.progress import ProgressChannel, ProgressEvent
from fpl_meter_status.jobs.supervisor import TaskSupervisor
from fpl_meter_status.state.machine import FlowStateMachine
from fpl_meter_status.utils.logging import log_result
from fpl_meter_status.utils.timing import format_elapsed_time, human_delay


class BatchScheduler:
    def __init__(
        self,
        store,
        channel=None,
        supervisor=None,
        session_opener=open_session,
        machine_factory=FlowStateMachine,
        timing=None,
        inter_row_delay_ms=None,
        max_batch_size=None,
    ):
        self.store = store
        self.channel = channel or ProgressChannel()
        self.supervisor = supervisor or TaskSupervisor()
        self.session_opener = session_opener
        self.machine_factory = machine_factory
        self.timing = timing or config.TIMING
        self.inter_row_delay_ms = (
            config.INTER_ROW_DELAY_MS if inter_row_delay_ms is None else inter_row_delay_ms
        )
        self.max_batch_size = max_batch_size or config.MAX_BATCH_SIZE
        self._running = {}

    async def submit(self, credentials, tin, rows):
        """Create a job for `rows` and start processing it in the background

        Raises SubmissionError / BatchTooLargeError before any job exists.
        """
        validate_submission(credentials, tin)
        rows = list(rows or [])
        if not rows:
            raise SubmissionError("No rows to process")
        if len(rows) > self.max_batch_size:
            raise BatchTooLargeError(len(rows), self.max_batch_size)

        clear_artifacts()
        job_id = str(uuid4())
        job = await asyncio.to_thread(self.store.create_job, job_id, len(rows))
        print(f"Job {job_id} created with {job.total} total addresses")

        await self._notify(
            job_id,
            progress.JOB_STARTED,
            0,
            job.total,
            f"Starting batch processing of {job.total} addresses",
        )

        task = self.supervisor.spawn(
            self._run_batch(job_id, credentials, tin.strip(), rows),
            name=f"batch-{job_id[:8]}",
        )
        self._running[job_id] = task
        task.add_done_callback(lambda _task: self._running.pop(job_id, None))
        return {"job_id": job_id, "total": job.total}

    async def wait(self, job_id):
        """Block until a submitted batch has finished"""
        task = self._running.get(job_id)
        if task is not None:
            await task

    # ========================================
    # BATCH LOOP
    # ========================================
    async def _run_batch(self, job_id, credentials, tin, rows):
        total = len(rows)
        processed = 0
        fatal = None
        start_time = time.time()

        print("\n" + "=" * 60)
        print(f"BATCH {job_id}: {total} addresses")
        print("=" * 60)

        try:
            async with self.session_opener() as page:
                machine = self.machine_factory(page, credentials, tin, timing=self.timing)
                await machine.login()

                for index, raw in enumerate(rows):
                    if index > 0:
                        await human_delay(self.inter_row_delay_ms, self.inter_row_delay_ms)
                    row_fatal = await self._process_row(job_id, index, total, raw, machine)
                    processed += 1
                    await asyncio.to_thread(self.store.update_job_progress, job_id, processed)
                    if row_fatal is not None:
                        raise row_fatal
        except asyncio.CancelledError:
            print(f"\n⚠️ Batch {job_id} cancelled after {processed}/{total} rows")
            raise
        except Exception as e:
            fatal = e
            print(f"\n❌ Batch {job_id} stopped after {processed}/{total} rows: {e}")
            traceback.print_exc()
        finally:
            status = JobStatus.COMPLETED if processed > 0 else JobStatus.FAILED
            await asyncio.to_thread(self.store.complete_job, job_id, status)
            elapsed = format_elapsed_time(time.time() - start_time)

            print("\n" + "=" * 60)
            print(f"BATCH {job_id} {status.value.upper()}: {processed}/{total} rows in {elapsed}")
            print("=" * 60)

            if status == JobStatus.COMPLETED:
                message = f"Processed {processed}/{total} addresses"
                if fatal is not None:
                    message += f" before stopping: {fatal}"
                await self._notify(job_id, progress.JOB_COMPLETED, processed, total, message)
            else:
                await self._notify(
                    job_id,
                    progress.JOB_FAILED,
                    processed,
                    total,
                    f"Batch failed: {fatal}" if fatal else "Batch failed",
                )

    async def _process_row(self, job_id, index, total, raw, machine):
        """Run, persist and announce one row

        Row failures are recorded, never raised. A batch-fatal error (session
        lost, page closed) is recorded too and then returned so the caller can
        count the row before stopping.
        """
        processed = index + 1
        address = f"Row {processed}"
        unit = None
        entry = None

        try:
            row = normalize_row(raw)
            address, unit = row.address or address, row.unit
            if not row.address:
                raise SubmissionError("Row has no address")

            print("\n" + "-" * 60)
            print(f"Processing address {processed}/{total}: {address}" + (f" (Unit: {unit})" if unit else ""))
            print("-" * 60)

            entry = machine.next_entry.value
            run = await machine.run_row(address, unit)
        except Exception as e:
            error = str(e) or type(e).__name__
            await asyncio.to_thread(
                self.store.upsert_result,
                job_id,
                index,
                address=address,
                unit=unit,
                error=error,
                entry_mode=entry,
            )
            await asyncio.to_thread(
                log_result, job_id, index, address, "error", unit=unit, entry=entry, error=error
            )
            await self._notify(
                job_id,
                progress.ADDRESS_ERROR,
                processed,
                total,
                f"Error {processed}/{total}: {address} - {error}",
                row_index=index,
                address=address,
                unit=unit,
                error=error,
            )
            if isinstance(e, SessionError) or machine.page.is_closed():
                return e
            return None

        if run.has_status:
            await asyncio.to_thread(
                self.store.upsert_result,
                job_id,
                index,
                address=address,
                unit=unit,
                meter_status=run.meter_status,
                property_status=run.property_status,
                entry_mode=entry,
                status_captured_at=run.status_captured_at,
            )
            await asyncio.to_thread(
                log_result,
                job_id,
                index,
                address,
                "success",
                unit=unit,
                entry=entry,
                meter_status=run.meter_status,
                property_status=run.property_status,
                fell_back=run.fell_back or None,
            )
            await self._notify(
                job_id,
                progress.ADDRESS_COMPLETED,
                processed,
                total,
                f"Completed {processed}/{total}: {address}",
                row_index=index,
                address=address,
                unit=unit,
                meter_status=run.meter_status,
                property_status=run.property_status,
            )
        else:
            await asyncio.to_thread(
                self.store.upsert_result,
                job_id,
                index,
                address=address,
                unit=unit,
                error=config.NO_STATUS_ERROR,
                entry_mode=entry,
            )
            await asyncio.to_thread(
                log_result,
                job_id,
                index,
                address,
                "no_status",
                unit=unit,
                entry=entry,
                error=config.NO_STATUS_ERROR,
            )
            await self._notify(
                job_id,
                progress.ADDRESS_FAILED,
                processed,
                total,
                f"Failed {processed}/{total}: {address} - {config.NO_STATUS_ERROR}",
                row_index=index,
                address=address,
                unit=unit,
                error=config.NO_STATUS_ERROR,
            )

    async def _notify(self, job_id, event_type, processed, total, message, **data):
        event = ProgressEvent(
            type=event_type,
            processed=processed,
            total=total,
            message=message,
            data={"job_id": job_id, **data},
        )
        await self.channel.notify(job_id, event)

"""HTTP surface: single lookups, batch submission, job results and progress streams"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from playwright.async_api import Error as PlaywrightError

import fpl_meter_status.config as config
from fpl_meter_status.api.schemas import (
    BatchRequest,
    BatchStatusResponse,
    BatchSubmitResponse,
    JobResponse,
    LookupRequest,
    LookupResponse,
    ResultResponse,
)
from fpl_meter_status.data.rows import parse_csv_text
from fpl_meter_status.data.submission import Credentials
from fpl_meter_status.errors import LookupAutomationError, SubmissionError
from fpl_meter_status.jobs import progress
from fpl_meter_status.jobs.lookup import LookupDriver
from fpl_meter_status.jobs.models import JobStatus
from fpl_meter_status.jobs.progress import ProgressChannel, ProgressEvent
from fpl_meter_status.jobs.scheduler import BatchScheduler
from fpl_meter_status.jobs.store import JobNotFoundError, JobStore
from fpl_meter_status.jobs.supervisor import TaskSupervisor

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_scheduler(request: Request) -> BatchScheduler:
    return request.app.state.scheduler


def get_lookup(request: Request) -> LookupDriver:
    return request.app.state.lookup


def _credentials(payload):
    return Credentials(username=payload.username or "", password=payload.password or "")


def _job_response(job) -> JobResponse:
    return JobResponse(**asdict(job))


def _load_job(store, job_id):
    try:
        return store.get_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/health")
def get_health() -> dict:
    return {"ok": True, "timestamp": datetime.now(tz=timezone.utc)}


@router.post("/api/lookup", response_model=LookupResponse)
async def lookup_address(payload: LookupRequest, driver: LookupDriver = Depends(get_lookup)):
    try:
        result = await driver.lookup(
            _credentials(payload), payload.tin, payload.address, payload.unit
        )
    except SubmissionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (LookupAutomationError, PlaywrightError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc) or "Lookup failed"
        ) from exc
    return LookupResponse(**result)


@router.post("/api/batch", response_model=BatchSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_batch(payload: BatchRequest, scheduler: BatchScheduler = Depends(get_scheduler)):
    if payload.rows is not None and payload.csv_text is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Send either rows or csv, not both"
        )
    rows = payload.rows if payload.rows is not None else parse_csv_text(payload.csv_text or "")
    try:
        submitted = await scheduler.submit(_credentials(payload), payload.tin, rows)
    except SubmissionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BatchSubmitResponse(**submitted)


@router.get("/api/batch/{job_id}", response_model=BatchStatusResponse)
def get_batch(job_id: str, store: JobStore = Depends(get_store)):
    job = _load_job(store, job_id)
    results = store.list_results(job_id)
    return BatchStatusResponse(
        job=_job_response(job),
        results=[ResultResponse(**asdict(result)) for result in results],
    )


@router.get("/api/jobs", response_model=List[JobResponse])
def list_jobs(
    limit: int = Query(default=10, ge=1, le=200),
    store: JobStore = Depends(get_store),
):
    return [_job_response(job) for job in store.list_recent_jobs(limit=limit)]


@router.get("/api/jobs/search", response_model=List[JobResponse])
def search_jobs(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    by: str = Query(default="created", pattern="^(created|captured)$"),
    store: JobStore = Depends(get_store),
):
    if by == "captured":
        jobs = store.search_jobs_by_status_captured(start_date, end_date)
    else:
        jobs = store.search_jobs(start_date, end_date)
    return [_job_response(job) for job in jobs]


@router.get("/api/jobs/{job_id}/results", response_model=List[ResultResponse])
def get_job_results(job_id: str, store: JobStore = Depends(get_store)):
    _load_job(store, job_id)
    return [ResultResponse(**asdict(result)) for result in store.list_results(job_id)]


@router.get("/api/jobs/{job_id}/events")
async def stream_job_events(job_id: str, request: Request, store: JobStore = Depends(get_store)):
    """Server-sent events for a batch, closed after its terminal event"""
    job = await asyncio.to_thread(_load_job, store, job_id)
    channel: ProgressChannel = request.app.state.channel

    async def finished():
        current = await asyncio.to_thread(store.get_job, job_id)
        return current.status != JobStatus.RUNNING

    async def events():
        if job.status != JobStatus.RUNNING:
            event_type = (
                progress.JOB_COMPLETED if job.status == JobStatus.COMPLETED else progress.JOB_FAILED
            )
            yield ProgressEvent(
                type=event_type,
                processed=job.processed,
                total=job.total,
                message=f"Job already {job.status.value}",
                data={"job_id": job_id},
            ).format()
            return
        async for chunk in channel.subscribe(job_id, is_finished=finished):
            yield chunk

    return StreamingResponse(events(), media_type="text/event-stream", headers=SSE_HEADERS)


def create_app(store=None, scheduler=None, lookup=None, channel=None, supervisor=None) -> FastAPI:
    store = store or JobStore()
    supervisor = supervisor or TaskSupervisor()
    if scheduler is None:
        scheduler = BatchScheduler(store, channel=channel, supervisor=supervisor)
    channel = scheduler.channel
    lookup = lookup or LookupDriver(supervisor=supervisor)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        print(f"[server] database: {store.database_url}")
        print(f"[server] headless browser: {config.HEADLESS}, max batch size: {scheduler.max_batch_size}")
        yield
        await scheduler.supervisor.shutdown()
        await lookup.supervisor.shutdown()

    app = FastAPI(title="FPL Meter Status Lookup", lifespan=lifespan)
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.lookup = lookup
    app.state.channel = channel
    app.include_router(router)
    return app

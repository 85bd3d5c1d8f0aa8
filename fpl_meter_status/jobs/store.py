"""
SQLite-backed job and result store

One short SQLAlchemy session per call, WAL journal so several batch tasks
can write concurrently (each keyed by its own job_id). Callers get frozen
dataclass snapshots, never live ORM objects.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

import fpl_meter_status.config as config
from fpl_meter_status.jobs.models import Base, Job, JobStatus, Result


class JobNotFoundError(RuntimeError):
    pass


class InvalidJobStateError(RuntimeError):
    pass


ALLOWED_TRANSITIONS = {
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

_RESULT_FIELDS = (
    "address",
    "unit",
    "meter_status",
    "property_status",
    "error",
    "entry_mode",
    "created_at",
    "status_captured_at",
)


@dataclass(frozen=True)
class JobSnapshot:
    job_id: str
    created_at: datetime
    status: JobStatus
    total: int
    processed: int


@dataclass(frozen=True)
class ResultSnapshot:
    job_id: str
    row_index: int
    address: str
    unit: Optional[str]
    meter_status: Optional[str]
    property_status: Optional[str]
    error: Optional[str]
    entry_mode: Optional[str]
    created_at: datetime
    status_captured_at: Optional[datetime]

    def to_dict(self):
        return {
            "job_id": self.job_id,
            "row_index": self.row_index,
            "address": self.address,
            "unit": self.unit,
            "meter_status": self.meter_status,
            "property_status": self.property_status,
            "error": self.error,
            "entry_mode": self.entry_mode,
            "created_at": self.created_at.isoformat(),
            "status_captured_at": (
                self.status_captured_at.isoformat() if self.status_captured_at else None
            ),
        }


def _utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _configure_sqlite_pragma(engine):
    if not engine.url.drivername.startswith("sqlite"):
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()


def create_session_factory(database_url):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    _configure_sqlite_pragma(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        class_=Session,
    )


class JobStore:
    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or f"sqlite:///{config.DATABASE_PATH}"
        self._session_factory = create_session_factory(self.database_url)

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _enforce_transition(self, from_status: JobStatus, to_status: JobStatus) -> None:
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidJobStateError(f"Illegal transition: {from_status.value} -> {to_status.value}")

    def _load(self, session, job_id) -> Job:
        job = session.get(Job, job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    # ========================================
    # JOBS
    # ========================================
    def create_job(self, job_id: str, total: int) -> JobSnapshot:
        if total < 0:
            raise ValueError("total must be >= 0")
        with self._session_factory() as session:
            job = Job(
                job_id=job_id,
                created_at=self._now(),
                status=JobStatus.RUNNING,
                total=total,
                processed=0,
            )
            session.add(job)
            session.commit()
            return self._to_job_snapshot(job)

    def update_job_progress(self, job_id: str, processed: int) -> JobSnapshot:
        with self._session_factory() as session:
            job = self._load(session, job_id)
            if job.status != JobStatus.RUNNING:
                raise InvalidJobStateError(f"Job {job_id} is not running")
            if processed < job.processed:
                raise InvalidJobStateError(
                    f"processed cannot decrease ({job.processed} -> {processed})"
                )
            if processed > job.total:
                raise InvalidJobStateError(f"processed {processed} exceeds total {job.total}")
            job.processed = processed
            session.commit()
            return self._to_job_snapshot(job)

    def complete_job(self, job_id: str, status: JobStatus) -> JobSnapshot:
        status = JobStatus(status)
        with self._session_factory() as session:
            job = self._load(session, job_id)
            self._enforce_transition(job.status, status)
            job.status = status
            session.commit()
            return self._to_job_snapshot(job)

    def get_job(self, job_id: str) -> JobSnapshot:
        with self._session_factory() as session:
            return self._to_job_snapshot(self._load(session, job_id))

    def list_recent_jobs(self, limit: int = 10) -> List[JobSnapshot]:
        bounded_limit = max(1, min(limit, 200))
        with self._session_factory() as session:
            stmt = select(Job).order_by(Job.created_at.desc(), Job.job_id.desc()).limit(bounded_limit)
            return [self._to_job_snapshot(job) for job in session.scalars(stmt).all()]

    def search_jobs(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[JobSnapshot]:
        """Jobs created within [start, end]; either bound may be open"""
        with self._session_factory() as session:
            stmt = select(Job).order_by(Job.created_at.desc(), Job.job_id.desc())
            if start is not None:
                stmt = stmt.where(Job.created_at >= _utc(start))
            if end is not None:
                stmt = stmt.where(Job.created_at <= _utc(end))
            return [self._to_job_snapshot(job) for job in session.scalars(stmt).all()]

    def search_jobs_by_status_captured(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[JobSnapshot]:
        """Jobs with at least one status read from the portal within [start, end]"""
        with self._session_factory() as session:
            captured = select(Result.job_id).where(Result.status_captured_at.is_not(None))
            if start is not None:
                captured = captured.where(Result.status_captured_at >= _utc(start))
            if end is not None:
                captured = captured.where(Result.status_captured_at <= _utc(end))
            stmt = (
                select(Job)
                .where(Job.job_id.in_(captured.distinct()))
                .order_by(Job.created_at.desc(), Job.job_id.desc())
            )
            return [self._to_job_snapshot(job) for job in session.scalars(stmt).all()]

    # ========================================
    # RESULTS
    # ========================================
    def upsert_result(self, job_id: str, row_index: int, **fields) -> ResultSnapshot:
        """Create or overwrite the result for one row

        A result carries either an error or both status fields, never a mix.
        """
        unknown = set(fields) - set(_RESULT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown result fields: {', '.join(sorted(unknown))}")
        if fields.get("error"):
            if fields.get("meter_status") is not None or fields.get("property_status") is not None:
                raise ValueError("A failed row cannot carry status values")
        elif fields.get("meter_status") is None or fields.get("property_status") is None:
            raise ValueError("A successful row needs both status values")

        with self._session_factory() as session:
            self._load(session, job_id)
            result = session.get(Result, (job_id, row_index))
            if result is None:
                result = Result(job_id=job_id, row_index=row_index)
                session.add(result)
            for name in _RESULT_FIELDS:
                setattr(result, name, fields.get(name))
            result.created_at = _utc(fields.get("created_at")) or self._now()
            result.status_captured_at = _utc(fields.get("status_captured_at"))
            session.commit()
            return self._to_result_snapshot(result)

    def list_results(self, job_id: str) -> List[ResultSnapshot]:
        with self._session_factory() as session:
            self._load(session, job_id)
            stmt = select(Result).where(Result.job_id == job_id).order_by(Result.row_index)
            return [self._to_result_snapshot(row) for row in session.scalars(stmt).all()]

    # ========================================
    # SNAPSHOTS
    # ========================================
    def _to_job_snapshot(self, job: Job) -> JobSnapshot:
        return JobSnapshot(
            job_id=job.job_id,
            created_at=_utc(job.created_at),
            status=JobStatus(job.status),
            total=job.total,
            processed=job.processed,
        )

    def _to_result_snapshot(self, result: Result) -> ResultSnapshot:
        return ResultSnapshot(
            job_id=result.job_id,
            row_index=result.row_index,
            address=result.address,
            unit=result.unit,
            meter_status=result.meter_status,
            property_status=result.property_status,
            error=result.error,
            entry_mode=result.entry_mode,
            created_at=_utc(result.created_at),
            status_captured_at=_utc(result.status_captured_at),
        )

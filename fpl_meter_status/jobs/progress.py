"""
Progress channel - pushes per-row batch events to server-sent-event subscribers

Each subscriber gets its own queue, registered for one job_id and removed
when the subscriber disconnects. Events are dropped for jobs nobody is
listening to; the store remains the source of truth for progress.
"""

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

JOB_STARTED = "job_started"
ADDRESS_COMPLETED = "address_completed"
ADDRESS_FAILED = "address_failed"
ADDRESS_ERROR = "address_error"
JOB_COMPLETED = "job_completed"
JOB_FAILED = "job_failed"

EVENT_TYPES = (
    JOB_STARTED,
    ADDRESS_COMPLETED,
    ADDRESS_FAILED,
    ADDRESS_ERROR,
    JOB_COMPLETED,
    JOB_FAILED,
)
TERMINAL_EVENTS = (JOB_COMPLETED, JOB_FAILED)

KEEPALIVE_SECONDS = 30.0


@dataclass
class ProgressEvent:
    """A single batch progress event"""

    type: str
    processed: int
    total: int
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown progress event type: {self.type}")

    @property
    def terminal(self):
        return self.type in TERMINAL_EVENTS

    def to_dict(self):
        return {
            "type": self.type,
            "processed": self.processed,
            "total": self.total,
            "message": self.message,
            **self.data,
            "timestamp": self.timestamp,
        }

    def format(self):
        """Format as an SSE message"""
        return f"data: {json.dumps(self.to_dict())}\n\n"


class ProgressChannel:
    def __init__(self, keepalive_seconds=KEEPALIVE_SECONDS):
        self.keepalive_seconds = keepalive_seconds
        self._queues = defaultdict(set)
        self._lock = asyncio.Lock()

    def subscriber_count(self, job_id):
        return len(self._queues.get(job_id, ()))

    async def subscribe(self, job_id, is_finished=None):
        """Yield SSE-formatted events for a job until its terminal event

        `is_finished` is an async callable polled on every keepalive so a
        subscriber that connected after the terminal event was sent still
        gets closed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        async with self._lock:
            self._queues[job_id].add(queue)

        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.keepalive_seconds)
                except asyncio.TimeoutError:
                    if is_finished is not None and await is_finished():
                        return
                    yield ": keepalive\n\n"
                    continue
                yield event.format()
                if event.terminal:
                    return
        finally:
            async with self._lock:
                self._queues[job_id].discard(queue)
                if not self._queues[job_id]:
                    del self._queues[job_id]

    async def notify(self, job_id, event: ProgressEvent) -> int:
        """Push an event to every subscriber of a job. Returns how many were notified."""
        async with self._lock:
            queues = self._queues.get(job_id, set()).copy()
        for queue in queues:
            queue.put_nowait(event)
        return len(queues)

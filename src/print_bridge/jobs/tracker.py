"""
Job tracker: owns PrintJob records and their status transitions.

pending is the only initial state; completed, failed and canceled are
terminal. A transition requested for a terminal job is logged and ignored,
so late or duplicate events can never regress a finished job.
"""
import logging
from collections import OrderedDict
from typing import Optional

from print_bridge.errors import DuplicateJobError
from print_bridge.jobs.models import (
    CANCELED, COMPLETED, FAILED, JOB_KINDS, PENDING, PrintJob, utcnow,
)

logger = logging.getLogger(__name__)

MAX_HISTORY = 500


class JobTracker:

    def __init__(self, observer=None, max_history: int = MAX_HISTORY):
        self.observer = observer
        self.max_history = max(1, max_history)
        self._jobs: 'OrderedDict[str, PrintJob]' = OrderedDict()

    def create(self, job_id: str, kind: str, printer: Optional[str] = None) -> PrintJob:
        if kind not in JOB_KINDS:
            raise ValueError(f"Unknown job kind {kind!r}")
        existing = self._jobs.get(job_id)
        if existing is not None:
            raise DuplicateJobError(existing)

        self._prune()
        job = PrintJob(id=job_id, kind=kind, printer=printer)
        self._jobs[job_id] = job
        logger.info(f"Job accepted: {job}")
        self._notify(job, {'type': kind})
        return job

    def get(self, job_id: str) -> Optional[PrintJob]:
        return self._jobs.get(job_id)

    def all(self) -> list:
        return list(self._jobs.values())

    def recent(self, limit: int = 20) -> list:
        return list(self._jobs.values())[-limit:]

    def complete(self, job_id: str, result: Optional[dict] = None) -> bool:
        return self._finish(job_id, COMPLETED, result=result or {})

    def fail(self, job_id: str, error: str) -> bool:
        return self._finish(job_id, FAILED, error=error)

    def cancel(self, job_id: str, message: str = '') -> bool:
        return self._finish(job_id, CANCELED, result={'message': message} if message else {})

    def _finish(self, job_id: str, status: str, error: Optional[str] = None,
                result: Optional[dict] = None) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning(f"Status {status!r} for unknown job {job_id} - ignoring")
            return False
        if job.status != PENDING:
            logger.warning(f"Job {job_id} already {job.status} - ignoring late {status!r}")
            return False

        now = utcnow()
        job.status = status
        job.error = error
        job.result = result or {}
        job.updated_at = now
        job.finished_at = now
        logger.info(f"Job finished: {job}" + (f" error={error}" if error else ''))

        details = dict(job.result)
        if error:
            details['error'] = error
        self._notify(job, details)
        return True

    def _notify(self, job: PrintJob, details: dict):
        if self.observer is None:
            return
        payload = {
            'printer': job.printer,
            'kind': job.kind,
            'timestamp': job.updated_at.isoformat(),
        }
        payload.update(details)
        try:
            self.observer.notify_job_event(job.id, job.status, payload)
        except Exception as e:
            logger.warning(f"Job observer failed for {job.id}: {e}")

    def _prune(self):
        """Drop the oldest finished jobs once history is full; pending jobs are kept."""
        while len(self._jobs) >= self.max_history:
            oldest = next((j for j in self._jobs.values() if j.is_terminal), None)
            if oldest is None:
                break
            del self._jobs[oldest.id]

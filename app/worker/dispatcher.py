from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from app.infra.interfaces import JobQueue
from app.models.job import Job, JobType

logger = logging.getLogger(__name__)


class WorkerDispatcher:
    """
    Polls the job queue and routes each claimed job to its handler.

    A handler returning normally acks the job, any exception fails it with the
    exception message. Nothing raised by a handler escapes the loop. When the
    queue is empty the loop waits `poll_interval` seconds, or less if `stop()`
    is called in the meantime.
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: Dict[JobType, Callable[[Job], None]],
        poll_interval: float = 0.5,
    ):
        missing = [t.value for t in JobType if t not in handlers]
        if missing:
            raise ValueError(f"No handler registered for job types: {', '.join(missing)}")

        self.queue = queue
        self.handlers = dict(handlers)
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Claims and processes at most one job. Returns False when the queue was empty."""
        job = self.queue.claim()
        if job is None:
            return False

        logger.info("Processing job %s (%s) for %s v%s", job.id, job.job_type.value, job.content_key, job.version)
        try:
            self.handlers[job.job_type](job)
        except Exception as e:
            logger.error("Job %s (%s) failed: %s", job.id, job.job_type.value, e, exc_info=True)
            self._record(self.queue.fail, job, str(e) or e.__class__.__name__)
        else:
            self._record(self.queue.ack, job)
        return True

    def run(self, max_iterations: Optional[int] = None) -> None:
        """
        Runs until stop() is called, or for `max_iterations` loop turns
        (claimed jobs and idle polls both count).
        """
        iterations = 0
        logger.info("Worker loop started (poll_interval=%ss)", self.poll_interval)

        while not self._stop_event.is_set():
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1
            try:
                processed = self.run_once()
            except Exception as e:
                # Queue unavailable: back off like an empty poll
                logger.error("Failed to claim job: %s", e)
                processed = False
            if not processed:
                self._stop_event.wait(self.poll_interval)

        logger.info("Worker loop stopped after %d iterations", iterations)

    def start(self) -> None:
        """Runs the loop in a background thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="worker-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            self._thread = None

    def _record(self, transition, job: Job, *args) -> None:
        try:
            # A stale claim (lease expired and reclaimed) cannot overwrite the new one
            transition(job.id, *args, attempt=job.attempts)
        except Exception as e:
            # The lease lets another worker reclaim the job later
            logger.error("Could not record outcome of job %s: %s", job.id, e)

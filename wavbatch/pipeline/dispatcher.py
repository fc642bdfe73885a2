"""Job dispatch and completion barrier.

One worker thread is spawned per job. Workers are never joined; instead every
worker holds one count in `SharedRunState` and releases it on exit, and the
dispatcher waits on the state's condition until the count drains to zero.
"""

import logging
import threading
from typing import Callable, Iterable, Optional

from wavbatch.domain.errors import SpawnFailure
from wavbatch.domain.events import SpawnFailed, ProcessingFinished
from wavbatch.domain.models import TranscodeJob, RunSummary
from wavbatch.infrastructure.event_bus import EventBus


class SharedRunState:
    """Live worker count and run tallies, guarded by a single condition.

    `active_worker_count` is only read or changed while holding the lock.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._active = 0
        self.spawned = 0
        self.succeeded = 0
        self.failed = 0
        self.spawn_failed = 0

    @property
    def active_worker_count(self) -> int:
        with self._cond:
            return self._active

    def increment(self) -> int:
        with self._cond:
            self._active += 1
            return self._active

    def decrement(self) -> int:
        with self._cond:
            if self._active <= 0:
                raise RuntimeError("active_worker_count would drop below zero")
            self._active -= 1
            self._cond.notify_all()
            return self._active

    def record_spawn(self, ok: bool):
        with self._cond:
            if ok:
                self.spawned += 1
            else:
                self.spawn_failed += 1

    def record_result(self, ok: bool):
        with self._cond:
            if ok:
                self.succeeded += 1
            else:
                self.failed += 1

    def wait_for_slot(self, max_workers: int):
        """Blocks while `max_workers` workers are live."""
        with self._cond:
            while self._active >= max_workers:
                self._cond.wait()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the count reaches zero. False if `timeout` elapsed first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._active == 0, timeout=timeout)

    def summary(self, jobs_found: int) -> RunSummary:
        with self._cond:
            return RunSummary(
                jobs_found=jobs_found,
                spawned=self.spawned,
                succeeded=self.succeeded,
                failed=self.failed,
                spawn_failed=self.spawn_failed,
            )


class JobDispatcher:
    """Spawns a worker per job and waits for all of them to finish.

    Args:
        worker: Callable run on the worker thread; returns True on success.
            Normally `StreamingTranscoder.run`.
        event_bus: EventBus for SpawnFailed and ProcessingFinished.
        state: SharedRunState handed to every worker; a fresh one by default.
        max_workers: Caps live workers when set. None spawns all jobs at once.
        poll_interval_s: How often the barrier wakes up to log progress.
    """

    def __init__(
        self,
        worker: Callable[[TranscodeJob], bool],
        event_bus: EventBus,
        state: Optional[SharedRunState] = None,
        max_workers: Optional[int] = None,
        poll_interval_s: float = 1.0,
    ):
        self.worker = worker
        self.event_bus = event_bus
        self.state = state or SharedRunState()
        self.max_workers = max_workers
        self.poll_interval_s = poll_interval_s
        self.logger = logging.getLogger(__name__)

    def _run_worker(self, job: TranscodeJob, state: SharedRunState):
        ok = False
        try:
            ok = bool(self.worker(job))
        except Exception as e:
            # Log exception but don't crash the batch
            self.logger.exception(f"Unexpected error processing {job.input_path}: {e}")
        finally:
            state.record_result(ok)
            state.decrement()

    def _start_thread(self, thread: threading.Thread, job: TranscodeJob):
        try:
            thread.start()
        except RuntimeError as e:
            raise SpawnFailure(f"cannot start worker thread: {e}", job.input_path) from e

    def spawn(self, job: TranscodeJob) -> bool:
        """Starts a detached worker for `job`. Returns False if it could not start."""
        state = self.state
        if self.max_workers is not None:
            state.wait_for_slot(self.max_workers)

        thread = threading.Thread(
            target=self._run_worker,
            args=(job, state),
            name=f"encode-{job.input_path.name}",
            daemon=True,
        )
        # Count first so a fast worker can never decrement before the increment.
        state.increment()
        try:
            self._start_thread(thread, job)
        except SpawnFailure as e:
            state.decrement()
            state.record_spawn(False)
            self.logger.error(f"SPAWN_FAILED: {job.input_path}: {e}")
            self.event_bus.publish(SpawnFailed(job=job, error_message=str(e)))
            return False

        state.record_spawn(True)
        return True

    def wait(self):
        """Blocks until every spawned worker has finished."""
        while not self.state.wait_until_idle(timeout=self.poll_interval_s):
            self.logger.debug(f"Waiting for workers: active={self.state.active_worker_count}")

    def run(self, jobs: Iterable[TranscodeJob]) -> RunSummary:
        jobs_found = 0
        for job in jobs:
            jobs_found += 1
            self.spawn(job)

        self.logger.info(f"Dispatch finished: {jobs_found} jobs submitted, waiting for workers")
        self.wait()

        summary = self.state.summary(jobs_found)
        self.logger.info(
            f"All workers finished: succeeded={summary.succeeded}, failed={summary.failed}, "
            f"spawn_failed={summary.spawn_failed}"
        )
        self.event_bus.publish(ProcessingFinished(summary=summary))
        return summary

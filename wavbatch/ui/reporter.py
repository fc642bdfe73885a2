import threading
from typing import Optional
from rich.console import Console
from wavbatch.infrastructure.event_bus import EventBus
from wavbatch.domain.events import (
    DiscoveryFinished, JobStarted, JobCompleted, JobFailed, SpawnFailed, ProcessingFinished
)


class ConsoleReporter:
    """Subscribes to EventBus and prints one line per event.

    Any worker may publish at any time; every write goes through `_lock` so
    lines from concurrent workers never interleave.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
        lock: Optional[threading.Lock] = None,
    ):
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)
        self._lock = lock or threading.Lock()
        if bus is not None:
            self._setup_subscriptions(bus)

    def _setup_subscriptions(self, bus: EventBus):
        bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        bus.subscribe(JobStarted, self.on_job_started)
        bus.subscribe(JobCompleted, self.on_job_completed)
        bus.subscribe(JobFailed, self.on_job_failed)
        bus.subscribe(SpawnFailed, self.on_spawn_failed)
        bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def status(self, message: str):
        with self._lock:
            self.console.print(message, markup=False, emoji=False, soft_wrap=True)

    def error(self, message: str):
        with self._lock:
            self.error_console.print(message, markup=False, emoji=False, soft_wrap=True, style="red")

    def on_discovery_finished(self, event: DiscoveryFinished):
        if event.jobs_found == 0:
            self.status(f"No files to encode in {event.directory}")

    def on_job_started(self, event: JobStarted):
        self.status(f"{event.job.output_path} from {event.job.input_path}")

    def on_job_completed(self, event: JobCompleted):
        self.status(f"{event.job.input_path} encoded successfully")

    def on_job_failed(self, event: JobFailed):
        self.error(f"ERROR: {event.path}: {event.error_message}")

    def on_spawn_failed(self, event: SpawnFailed):
        self.error(f"ERROR: cannot start worker for {event.job.input_path}: {event.error_message}")

    def on_processing_finished(self, event: ProcessingFinished):
        summary = event.summary
        line = f"All workers finished: {summary.succeeded} encoded, {summary.failed} failed"
        if summary.spawn_failed:
            line += f", {summary.spawn_failed} not started"
        self.status(line)

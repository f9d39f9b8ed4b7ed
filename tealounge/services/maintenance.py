"""
Background maintenance for the conversation pipeline.

Runs the idle-session sweep and the memory cleanup on fixed intervals:

    worker = MaintenanceWorker(orchestrator)
    worker.start()
    ...
    worker.stop()
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from .chat_orchestrator import ChatOrchestrator

logger = get_logger(__name__)


class MaintenanceJob:
    """A named callable due every `interval`."""

    def __init__(self, name: str, interval: timedelta, action: Callable[[], int]):
        self.name = name
        self.interval = interval
        self.action = action
        self.last_run: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval


class MaintenanceWorker:
    """Daemon thread that runs due maintenance jobs.

    A failing job is logged and retried at its next interval; it never stops
    the loop or the other jobs.
    """

    POLL_INTERVAL = 30  # seconds

    def __init__(self,
                 orchestrator: ChatOrchestrator,
                 app_config: Optional[AppConfig] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 poll_interval: Optional[float] = None):
        app_config = app_config or config
        self._clock = clock
        self.poll_interval = self.POLL_INTERVAL if poll_interval is None else poll_interval
        self.jobs: List[MaintenanceJob] = [
            MaintenanceJob('session_sweep',
                           timedelta(minutes=app_config.session.sweep_interval_minutes),
                           orchestrator.sweep_sessions),
            MaintenanceJob('memory_cleanup',
                           timedelta(hours=app_config.memory.cleanup_interval_hours),
                           orchestrator.cleanup_memory),
        ]

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread. Jobs first run one interval after start."""
        if self.running:
            logger.warning('[MaintenanceWorker] Already running')
            return

        now = self._clock()
        for job in self.jobs:
            job.last_run = now

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name='tealounge-maintenance', daemon=True)
        self._thread.start()
        logger.info('[MaintenanceWorker] Started')

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        logger.info('[MaintenanceWorker] Stopping worker')
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_pending(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run every due job once. Returns job name -> items removed for the jobs that ran."""
        now = now or self._clock()
        results = {}

        for job in self.jobs:
            if not job.is_due(now):
                continue
            job.last_run = now
            try:
                results[job.name] = job.action()
            except Exception as e:
                logger.error(f'[MaintenanceWorker] Job {job.name} failed: {e}')
                continue
            if results[job.name]:
                logger.debug(f'[MaintenanceWorker] {job.name} removed {results[job.name]} items')

        return results

    def _loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.run_pending()
            except Exception as e:
                logger.error(f'[MaintenanceWorker] Error in worker loop: {e}')

        logger.info('[MaintenanceWorker] Worker stopped')

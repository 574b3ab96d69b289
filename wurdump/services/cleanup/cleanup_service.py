"""Scheduled maintenance for the clipboard history database"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

JOB_ID = 'maintenance_job'


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance cycle"""
    started_at: datetime
    elapsed: float = 0.0
    completed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class CleanupService:
    """Runs registered maintenance tasks on a fixed interval"""

    def __init__(self, interval_seconds: int = 3600):
        """
        Initialize cleanup service

        Args:
            interval_seconds: Seconds between maintenance cycles
        """
        self.interval = interval_seconds
        self.scheduler = BackgroundScheduler()
        self._tasks: Dict[str, Callable[[], None]] = {}
        self._last_report: Optional[MaintenanceReport] = None
        self._running = False
        self._lock = threading.RLock()

    def add_task(self, task: Callable[[], None], name: Optional[str] = None) -> str:
        """
        Register a maintenance task; a task registered under an existing name replaces it

        Returns:
            The name the task was registered under
        """
        name = name or task.__name__
        with self._lock:
            self._tasks[name] = task
        logger.debug(f"Registered maintenance task: {name}")
        return name

    @property
    def task_names(self) -> List[str]:
        with self._lock:
            return list(self._tasks)

    def start(self) -> None:
        """Schedule maintenance; the first cycle runs one interval from now"""
        with self._lock:
            if self._running:
                logger.warning("Maintenance already scheduled")
                return

            self.scheduler.add_job(
                func=self.run_now,
                trigger=IntervalTrigger(seconds=self.interval),
                id=JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
            self.scheduler.start()
            self._running = True

        logger.info(f"Maintenance scheduled every {self.interval}s")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self.scheduler.shutdown(wait=True)
            self._running = False

        logger.info("Maintenance stopped")

    def run_now(self) -> MaintenanceReport:
        """Run every task once on the calling thread; failures are recorded, not raised"""
        with self._lock:
            tasks = list(self._tasks.items())

        report = MaintenanceReport(started_at=datetime.now())
        started = time.monotonic()

        for name, task in tasks:
            try:
                task()
            except Exception as e:
                report.failed[name] = str(e)
                logger.error(f"Maintenance task '{name}' failed: {e}")
            else:
                report.completed.append(name)

        report.elapsed = time.monotonic() - started
        with self._lock:
            self._last_report = report

        logger.info(f"Maintenance cycle: {len(report.completed)} ok, "
                    f"{len(report.failed)} failed in {report.elapsed:.2f}s")
        return report

    @property
    def last_report(self) -> Optional[MaintenanceReport]:
        with self._lock:
            return self._last_report

    @property
    def is_running(self) -> bool:
        return self._running

    def get_next_run(self) -> Optional[datetime]:
        """Next scheduled cycle, or None when not scheduled"""
        if not self._running:
            return None

        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None


class DatabaseOptimizer:
    """Compacts the history database file"""

    def __init__(self, database_manager):
        self.db_manager = database_manager

    def optimize(self) -> None:
        """Run VACUUM and log the resulting file size"""
        before = self.db_manager.get_size()
        self.db_manager.vacuum()
        after = self.db_manager.get_size()
        logger.info(f"Database compacted: {before / 1024:.1f} KB -> {after / 1024:.1f} KB")

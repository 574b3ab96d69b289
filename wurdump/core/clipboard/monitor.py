"""Clipboard monitoring service for real-time clipboard change detection"""

import threading
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Optional, Callable, Set

from loguru import logger

from .access import ClipboardReader, PyperclipClipboard
from .item import ClipboardItem
from ..errors import ClipboardReadError

if TYPE_CHECKING:
    from ..storage.repository import ClipboardRepository

DEFAULT_INTERVAL_MS = 1000


class MonitorState:
    """Running flag and change-detection state shared by the loop and callers"""

    def __init__(self):
        self._lock = threading.Lock()
        self._is_running = False
        self._generation = 0
        self._last_content = ""
        self._last_check = time.monotonic()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._is_running

    @property
    def last_content(self) -> str:
        with self._lock:
            return self._last_content

    def time_since_last_change(self) -> timedelta:
        with self._lock:
            last_check = self._last_check
        return timedelta(seconds=time.monotonic() - last_check)

    def try_start(self) -> Optional[int]:
        """Mark running; returns the new generation, or None if already running"""
        with self._lock:
            if self._is_running:
                return None
            self._is_running = True
            self._generation += 1
            return self._generation

    def request_stop(self) -> bool:
        """Clear the running flag; returns False if it was already clear"""
        with self._lock:
            was_running = self._is_running
            self._is_running = False
            return was_running

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._is_running and self._generation == generation

    def record_change(self, content: str) -> bool:
        """
        Record content if it differs from the last value and is not blank

        Returns:
            True if the content counts as a change
        """
        if not content.strip():
            return False

        with self._lock:
            if content == self._last_content:
                return False
            self._last_content = content
            self._last_check = time.monotonic()
            return True


class MonitorHandle:
    """Read-only view of a monitor's state, safe to share between threads"""

    def __init__(self, state: MonitorState):
        self._state = state

    def is_monitoring(self) -> bool:
        return self._state.is_running

    def last_content(self) -> str:
        return self._state.last_content

    def time_since_last_change(self) -> timedelta:
        return self._state.time_since_last_change()


class ClipboardMonitor:
    """Polls the clipboard and stores every new distinct value"""

    def __init__(self, repository: "ClipboardRepository",
                 reader: Optional[ClipboardReader] = None,
                 check_interval: int = DEFAULT_INTERVAL_MS):
        """
        Initialize clipboard monitor

        Args:
            repository: History store receiving new clipboard values
            reader: Clipboard read capability (defaults to pyperclip)
            check_interval: Check interval in milliseconds
        """
        self.repository = repository
        self.reader = reader or PyperclipClipboard()
        self.check_interval = check_interval / 1000.0  # Convert to seconds
        self._state = MonitorState()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._callbacks: Set[Callable[[ClipboardItem], None]] = set()
        self._lock = threading.RLock()

        logger.info(f"ClipboardMonitor initialized with {check_interval}ms interval")

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def handle(self) -> MonitorHandle:
        return MonitorHandle(self._state)

    def add_callback(self, callback: Callable[[ClipboardItem], None]) -> None:
        """
        Add a callback for newly stored items

        Args:
            callback: Function called with each stored ClipboardItem
        """
        with self._lock:
            self._callbacks.add(callback)
            logger.debug(f"Added callback: {getattr(callback, '__name__', callback)}")

    def remove_callback(self, callback: Callable) -> None:
        """Remove a callback"""
        with self._lock:
            self._callbacks.discard(callback)
            logger.debug(f"Removed callback: {getattr(callback, '__name__', callback)}")

    def start(self, interval_ms: Optional[int] = None) -> bool:
        """
        Start monitoring the clipboard

        Args:
            interval_ms: Optional new check interval in milliseconds

        Returns:
            True once a monitor is running (also when one already was)
        """
        with self._lock:
            generation = self._state.try_start()
            if generation is None:
                logger.warning("Clipboard monitoring is already running")
                return True

            if interval_ms is not None:
                self.check_interval = interval_ms / 1000.0

            # A fresh event so a stop aimed at the previous loop cannot wake this one
            self._wake = threading.Event()
            self._thread = threading.Thread(
                target=self._monitor_loop,
                args=(generation, self._wake, self.check_interval),
                name=f"clipboard-monitor-{generation}",
                daemon=True
            )
            self._thread.start()

        logger.info(f"Started clipboard monitoring with {int(self.check_interval * 1000)}ms interval")
        return True

    def stop(self) -> None:
        """Request the monitor loop to stop; does not wait for the thread"""
        with self._lock:
            if not self._state.request_stop():
                logger.debug("Monitor not running")
                return
            self._wake.set()

        logger.info("Clipboard monitoring stop requested")

    def is_monitoring(self) -> bool:
        """Check if monitor is running"""
        return self._state.is_running

    status = is_monitoring

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def force_check(self) -> Optional[str]:
        """
        Check the clipboard immediately on the calling thread

        Returns:
            The clipboard text when it is not blank, otherwise None

        Raises:
            ClipboardReadError: Clipboard could not be read
            StorageError: Storing a changed value failed
        """
        content = self.reader.read_text()
        if not content.strip():
            return None

        if self._state.record_change(content):
            logger.debug(f"Manual clipboard detection: {len(content)} chars")
            self._store(content)

        return content

    def _monitor_loop(self, generation: int, wake: threading.Event, interval: float) -> None:
        """Main monitoring loop"""
        logger.debug("Monitor loop started")

        while self._state.is_current(generation):
            try:
                self._tick()
            except Exception as e:
                logger.exception(f"Error in monitor loop: {e}")

            wake.wait(interval)

        logger.info("Stopping clipboard monitoring")

    def _tick(self) -> None:
        try:
            current_content = self.reader.read_text()
        except ClipboardReadError as e:
            logger.debug(f"Could not read clipboard text content: {e}")
            return

        if not self._state.record_change(current_content):
            return

        logger.info(f"Clipboard content changed: {len(current_content)} chars")
        try:
            self._store(current_content)
        except Exception as e:
            logger.error(f"Failed to store clipboard item: {e}")

    def _store(self, content: str) -> Optional[ClipboardItem]:
        item = self.repository.insert_if_new(content)
        if item is None:
            logger.debug("Clipboard content already exists in recent history, skipping")
            return None

        self._notify_callbacks(item)
        return item

    def _notify_callbacks(self, item: ClipboardItem) -> None:
        """
        Notify all callbacks of a stored item

        Args:
            item: Newly stored clipboard item
        """
        with self._lock:
            callbacks = self._callbacks.copy()

        for callback in callbacks:
            try:
                callback(item)
            except Exception as e:
                logger.error(f"Error in callback {getattr(callback, '__name__', callback)}: {e}")

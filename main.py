"""Wurdump application entry point"""

import argparse
import signal
import sys
import threading
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from wurdump import __version__
from wurdump.core.clipboard import ClipboardMonitor, PyperclipClipboard
from wurdump.core.clipboard.item import ClipboardItem
from wurdump.core.errors import StorageError, StorageInitError, WurdumpError
from wurdump.core.storage import DatabaseManager, ClipboardRepository
from wurdump.services import AIService, AIConfig, AITransformation, CleanupService, DatabaseOptimizer
from wurdump.utils import ConfigManager
from wurdump.utils.paths import get_log_dir


class WurdumpApp:
    """Headless application wiring the monitor, history store and services"""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize application"""
        self.config_path = config_path
        self.config_manager = None
        self.database_manager = None
        self.repository = None
        self.clipboard = PyperclipClipboard()
        self.clipboard_monitor = None
        self.cleanup_service = None
        self.ai_service = None

        self._shutdown_event = threading.Event()

    def _setup_logging(self):
        """Configure logging"""
        level = self.config_manager.get('logging.level', 'INFO') if self.config_manager else 'INFO'

        # Configure loguru
        logger.remove()  # Remove default handler

        # Console logging
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
        )

        # File logging
        if not self.config_manager or self.config_manager.get('logging.file_logging', True):
            log_dir = get_log_dir()
            log_dir.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_dir / "wurdump_{time:YYYY-MM-DD}.log",
                rotation="1 day",
                retention="7 days",
                level="DEBUG",
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
            )

    def initialize(self) -> bool:
        """Initialize all components"""
        # Load configuration
        self.config_manager = ConfigManager(self.config_path)
        self._setup_logging()

        logger.info("=" * 60)
        logger.info(f"Wurdump {__version__} starting")
        logger.info("=" * 60)

        if not self.config_manager.validate():
            logger.error("Invalid configuration")
            return False

        # Initialize database; the monitor must not run without it
        logger.info("Initializing database...")
        try:
            self.database_manager = DatabaseManager(self.config_manager.get('storage.database_path'))
        except StorageInitError as e:
            logger.error(f"Failed to initialize database: {e}")
            return False

        self.repository = ClipboardRepository(
            self.database_manager,
            max_items=self.config_manager.get('clipboard.max_history_size', 20),
            duplicate_window=timedelta(seconds=self.config_manager.get('clipboard.duplicate_window', 3600))
        )

        # Initialize clipboard monitoring
        logger.info("Initializing clipboard monitoring...")
        self.clipboard_monitor = ClipboardMonitor(
            self.repository,
            reader=self.clipboard,
            check_interval=self.config_manager.get('clipboard.check_interval', 1000)
        )
        self.clipboard_monitor.add_callback(self._on_item_stored)

        # Initialize maintenance
        if self.config_manager.get('maintenance.enabled', True):
            logger.info("Initializing cleanup service...")
            self.cleanup_service = CleanupService(self.config_manager.get('maintenance.interval', 3600))
            optimizer = DatabaseOptimizer(self.database_manager)
            self.cleanup_service.add_task(optimizer.optimize, "database_optimization")

        if self.config_manager.get('ai.enabled', True):
            self.ai_service = AIService(AIConfig.from_config(self.config_manager))

        logger.info("Application initialized successfully")
        return True

    def _on_item_stored(self, item: ClipboardItem):
        """Handle a newly captured clipboard item"""
        logger.debug(f"Captured {item.content_type.value} item {item.id} ({item.size} chars)")

    # Command surface

    def start(self, interval_ms: Optional[int] = None) -> bool:
        return self.clipboard_monitor.start(interval_ms)

    def stop(self) -> None:
        self.clipboard_monitor.stop()

    def is_monitoring(self) -> bool:
        return self.clipboard_monitor.is_monitoring()

    def force_check(self) -> Optional[str]:
        return self.clipboard_monitor.force_check()

    def list_history(self, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.repository.list(limit, offset)]

    def delete(self, item_id: str) -> bool:
        return self.repository.delete(item_id)

    def clear(self) -> int:
        return self.repository.clear()

    def set_clipboard_content(self, text: str) -> None:
        """Write text to the system clipboard (the monitor will pick it up as a change)"""
        self.clipboard.write_text(text)

    def transform(self, item_id: str, instructions: Optional[str] = None,
                  context: Optional[Iterable[str]] = None) -> List[AITransformation]:
        """
        Request AI transformations for a stored item

        Raises:
            WurdumpError: AI is disabled or the item does not exist
        """
        if self.ai_service is None:
            raise WurdumpError("AI transformations are disabled")

        item = self.repository.get(item_id)
        if item is None:
            raise WurdumpError(f"Clipboard item not found: {item_id}")

        return self.ai_service.transform(
            item.content,
            item.content_type.value,
            instructions=instructions,
            context=context,
            request_id=item.id
        )

    def run(self):
        """Start services and block until shutdown"""
        if self.config_manager.get('clipboard.auto_start', True):
            self.start()

        if self.cleanup_service:
            self.cleanup_service.start()

        logger.info("Application started successfully")
        self._shutdown_event.wait()

    def shutdown(self):
        """Shutdown the application"""
        if self._shutdown_event.is_set():
            return

        logger.info("Shutting down application...")

        try:
            # Stop monitoring
            if self.clipboard_monitor:
                self.clipboard_monitor.stop()

            # Stop cleanup service
            if self.cleanup_service and self.cleanup_service.is_running:
                self.cleanup_service.stop()

            # Close database
            if self.database_manager:
                self.database_manager.close()

            logger.info("Application shutdown complete")

        finally:
            self._shutdown_event.set()


def print_history(app: WurdumpApp, limit: int) -> int:
    try:
        items = app.repository.list(limit)
    except StorageError as e:
        print(f"Failed to load clipboard history: {e}", file=sys.stderr)
        return 1

    for item in items:
        language = f" [{item.code_language}]" if item.code_language else ""
        print(f"{item.timestamp:%Y-%m-%d %H:%M:%S} UTC  {item.id}  {item.content_type.value}{language}")
        print(f"    {item.preview}")
    return 0


def signal_handler(signum, frame):
    """Handle system signals"""
    logger.info(f"Received signal {signum}")
    if hasattr(signal_handler, 'app'):
        signal_handler.app.shutdown()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Wurdump - clipboard history with AI transformations")
    parser.add_argument('command', nargs='?', choices=['run', 'history', 'clear'], default='run',
                        help="run the monitor (default), print history, or clear history")
    parser.add_argument('--config', help="path to settings.yaml")
    parser.add_argument('--limit', type=int, default=20, help="number of items for 'history'")
    args = parser.parse_args()

    # Create application
    app = WurdumpApp(args.config)

    # Initialize application
    if not app.initialize():
        logger.error("Failed to initialize application")
        sys.exit(1)

    if args.command == 'history':
        code = print_history(app, args.limit)
        app.shutdown()
        sys.exit(code)

    if args.command == 'clear':
        try:
            removed = app.clear()
            print(f"Removed {removed} items")
            code = 0
        except StorageError as e:
            print(f"Failed to clear clipboard history: {e}", file=sys.stderr)
            code = 1
        app.shutdown()
        sys.exit(code)

    # Store app reference for signal handler
    signal_handler.app = app

    # Register signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.run()


if __name__ == "__main__":
    main()

"""
Watchdog monitor for rule files

Feeds create/modify/delete/move events for rule files, and for the
directories holding them, into an IgnoreManager so rule sets are
rebuilt while the engine keeps serving queries.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .manager import IgnoreManager
from .utils import get_logger

logger = get_logger("watchdog-monitor")


class IgnoreFileHandler(FileSystemEventHandler):
    """
    Watches for changes to rule files and notifies the IgnoreManager

    Bursts of events for the same file are collapsed: the manager is
    notified once, debounce_seconds after the last event.
    """

    def __init__(self, ignore_manager: IgnoreManager,
                 debounce_seconds: float = 0.5,
                 on_change_callback: Optional[Callable[[str], None]] = None):
        """
        Initialize the rule file handler

        Args:
            ignore_manager: The IgnoreManager instance to notify
            debounce_seconds: Quiet period before a change is applied (0 = immediately)
            on_change_callback: Optional callback after a change was applied
        """
        super().__init__()
        self.ignore_manager = ignore_manager
        self.debounce_seconds = debounce_seconds
        self.on_change_callback = on_change_callback
        self._timers: Dict[Tuple[str, bool], threading.Timer] = {}
        self._lock = threading.Lock()

    def _is_rule_file_event(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        return self.ignore_manager.is_rule_file(event.src_path)

    def _schedule(self, path: str, directory: bool = False):
        if self.debounce_seconds <= 0:
            self._apply(path, directory)
            return
        key = (path, directory)
        with self._lock:
            pending = self._timers.pop(key, None)
            if pending is not None:
                pending.cancel()
                logger.debug(f"Debouncing change to {path}")
            timer = threading.Timer(self.debounce_seconds, self._apply, args=key)
            timer.daemon = True
            self._timers[key] = timer
        timer.start()

    def _apply(self, path: str, directory: bool = False):
        with self._lock:
            self._timers.pop((path, directory), None)
        if directory:
            changed = self.ignore_manager.notify_directory_changed(path)
        else:
            self.ignore_manager.notify_file_changed(path)
            changed = [path]
        if self.on_change_callback:
            for rule_file in changed:
                self.on_change_callback(rule_file)

    def flush(self):
        """Apply every pending change now"""
        with self._lock:
            pending = list(self._timers.items())
            self._timers.clear()
        for (path, directory), timer in pending:
            timer.cancel()
            self._apply(path, directory)

    def cancel_pending(self):
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()

    def on_created(self, event: FileSystemEvent):
        """Handle creation of new rule files and of directories that may hold some"""
        if event.is_directory:
            self._schedule(str(event.src_path), directory=True)
        elif self._is_rule_file_event(event):
            logger.info(f"Detected new rule file: {event.src_path}")
            self._schedule(str(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        """Handle modification of rule files"""
        if self._is_rule_file_event(event):
            logger.info(f"Detected change to rule file: {event.src_path}")
            self._schedule(str(event.src_path))

    def on_deleted(self, event: FileSystemEvent):
        """Handle deletion of rule files and of directories holding them"""
        if event.is_directory:
            logger.info(f"Detected deletion of directory: {event.src_path}")
            self._schedule(str(event.src_path), directory=True)
        elif self._is_rule_file_event(event):
            logger.info(f"Detected deletion of rule file: {event.src_path}")
            self._schedule(str(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        """Handle moving of rule files and of directories holding them"""
        src = str(event.src_path)
        dest = str(getattr(event, 'dest_path', '') or '')
        if event.is_directory:
            logger.info(f"Detected move of directory: {src} -> {dest}")
            self._schedule(src, directory=True)
            if dest and dest != src:
                self._schedule(dest, directory=True)
            return
        if self.ignore_manager.is_rule_file(src):
            logger.info(f"Detected move of rule file: {src} -> {dest}")
            self._schedule(src)
        if dest and dest != src and self.ignore_manager.is_rule_file(dest):
            self._schedule(dest)


class IgnoreAwareHandler(FileSystemEventHandler):
    """
    Forwards file system events to another handler unless the path is ignored

    Events for rule files themselves always pass through.
    """

    def __init__(self, ignore_manager: IgnoreManager, delegate: FileSystemEventHandler):
        super().__init__()
        self.ignore_manager = ignore_manager
        self.delegate = delegate

    def _should_process(self, event: FileSystemEvent) -> bool:
        if self.ignore_manager.is_rule_file(event.src_path):
            return True
        return not self.ignore_manager.should_ignore(event.src_path, event.is_directory)

    def dispatch(self, event: FileSystemEvent):
        if not self._should_process(event):
            logger.debug(f"Ignoring event for: {event.src_path}")
            return
        self.delegate.dispatch(event)


class WatchdogMonitor:
    """
    Main watchdog monitor that manages file system watching
    """

    def __init__(self, ignore_manager: IgnoreManager,
                 recursive: bool = True,
                 debounce_seconds: float = 0.5):
        """
        Initialize the watchdog monitor

        Args:
            ignore_manager: The IgnoreManager to integrate with
            recursive: Whether to watch subdirectories
            debounce_seconds: Quiet period before a change is applied
        """
        self.ignore_manager = ignore_manager
        self.recursive = recursive
        self.debounce_seconds = debounce_seconds

        self._observer: Optional[Observer] = None
        self._handler: Optional[IgnoreFileHandler] = None
        self._watched_paths: Set[Path] = set()

    def start(self, paths: Optional[List[str]] = None,
              on_change_callback: Optional[Callable[[str], None]] = None):
        """
        Start monitoring for changes

        Args:
            paths: List of paths to watch (defaults to IgnoreManager root)
            on_change_callback: Optional callback for changes
        """
        if self._observer is not None:
            logger.warning("Monitor already running")
            return

        if paths is None:
            paths = [str(self.ignore_manager.root_path)]

        self._handler = IgnoreFileHandler(
            self.ignore_manager,
            debounce_seconds=self.debounce_seconds,
            on_change_callback=on_change_callback
        )
        self._observer = Observer()

        for path in paths:
            self._schedule(Path(path))

        self._observer.start()
        logger.info("Watchdog monitor started")

    def _schedule(self, path: Path):
        path_obj = path.absolute()
        if path_obj in self._watched_paths:
            logger.debug(f"Path already watched: {path_obj}")
            return
        if path_obj.is_dir():
            self._observer.schedule(self._handler, str(path_obj), recursive=self.recursive)
            self._watched_paths.add(path_obj)
            logger.info(f"Watching directory: {path_obj}")
        else:
            logger.warning(f"Path does not exist or is not a directory: {path}")

    def stop(self):
        """Stop monitoring for changes"""
        if self._observer is None:
            logger.warning("Monitor not running")
            return

        self._observer.stop()
        self._observer.join()
        self._handler.cancel_pending()
        self._observer = None
        self._handler = None
        self._watched_paths.clear()

        logger.info("Watchdog monitor stopped")

    def is_running(self) -> bool:
        """Check if monitor is running"""
        return self._observer is not None and self._observer.is_alive()

    def add_path(self, path: str):
        """Add a path to watch"""
        if self._observer is None:
            raise RuntimeError("Monitor not running")
        self._schedule(Path(path))

    def get_watched_paths(self) -> List[str]:
        """Get list of currently watched paths"""
        return [str(p) for p in self._watched_paths]

    def __enter__(self):
        """Context manager support"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager cleanup"""
        self.stop()

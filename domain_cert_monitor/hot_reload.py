"""
Hot reload functionality for Domain Certificate Monitor.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from domain_cert_monitor.checker import CertificateChecker
from domain_cert_monitor.config import Config, load_config
from domain_cert_monitor.logger import get_logger, log_hot_reload
from domain_cert_monitor.monitor import create_monitor


class ReloadFileHandler(FileSystemEventHandler):
    """Handler for changes to the configuration, domains and CA files."""

    MEANINGFUL_EVENTS = {"created", "modified", "moved", "closed"}

    def __init__(self, hot_reload_manager: "HotReloadManager"):
        self.manager = hot_reload_manager
        self.logger = get_logger("hot_reload.files")

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle meaningful events on watched files only."""
        if event.is_directory or event.event_type not in self.MEANINGFUL_EVENTS:
            return

        # Editors often save by writing a temporary file and moving it into place
        candidates = [event.src_path]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            candidates.append(dest_path)

        for candidate in candidates:
            if self.manager.is_watched_file(str(candidate)):
                self.logger.info(f"Watched file changed ({event.event_type}): {candidate}")
                self.manager._schedule_coro(self.manager._handle_change(str(candidate)))
                return


class HotReloadManager:
    """
    Rebuilds the certificate monitor when its inputs change.

    Watches the configuration file, the domains file and the additional
    root CA files. A monitor is never reconfigured in place: every reload
    builds a new one and hands it to the checker. If the rebuild fails,
    the previous monitor stays in service.
    """

    def __init__(
        self,
        config: Config,
        checker: CertificateChecker,
        config_path: Optional[str] = None,
        config_loader: Optional[Callable[[], Config]] = None,
        debounce_seconds: float = 2.0,
    ):
        self.config = config
        self.checker = checker
        self.config_path = Path(config_path) if config_path else None
        self.config_loader = config_loader or self._load_from_file
        self.debounce_seconds = debounce_seconds
        self.logger = get_logger("hot_reload")

        self._observer = Observer()
        self._handler = ReloadFileHandler(self)
        self._watching = False
        self._watched_files: Set[Path] = set()
        self._watched_dirs: Set[str] = set()
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._reload_count = 0

        self.logger.info("Hot reload manager initialized")

    def _load_from_file(self) -> Config:
        return load_config(str(self.config_path) if self.config_path else None)

    def _schedule_coro(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Schedule a coroutine from the watchdog thread."""
        if self._event_loop and not self._event_loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._event_loop)
        else:
            coro.close()
            self.logger.warning("Cannot schedule coroutine: event loop not available")

    def watched_files_for(self, config: Config) -> Set[Path]:
        """Files whose changes require a new monitor."""
        files = set()
        if self.config_path:
            files.add(self.config_path)
        if config.domains_file:
            files.add(Path(config.domains_file))
        files.update(Path(ca_path) for ca_path in config.additional_root_ca_paths)
        return {path.resolve() for path in files}

    def is_watched_file(self, file_path: str) -> bool:
        try:
            return Path(file_path).resolve() in self._watched_files
        except (OSError, RuntimeError):
            return False

    def _schedule_watches(self) -> None:
        self._watched_files = self.watched_files_for(self.config)
        self._watched_dirs = set()

        for file_path in self._watched_files:
            watch_dir = str(file_path.parent)
            if watch_dir in self._watched_dirs:
                continue
            if not file_path.parent.is_dir():
                self.logger.warning(f"Cannot watch missing directory: {watch_dir}")
                continue
            self._observer.schedule(self._handler, watch_dir, recursive=False)
            self._watched_dirs.add(watch_dir)

    async def start(self) -> None:
        """Start hot reload monitoring."""
        if not self.config.hot_reload:
            self.logger.info("Hot reload disabled in configuration")
            return

        if self._watching:
            self.logger.warning("Hot reload already started")
            return

        self._event_loop = asyncio.get_running_loop()

        try:
            self._schedule_watches()
            self._observer.start()
            self._watching = True
            self.logger.info(
                f"Hot reload started - Watching {len(self._watched_files)} files "
                f"in {len(self._watched_dirs)} directories"
            )
        except Exception as e:
            self.logger.error(f"Failed to start hot reload: {e}")
            raise

    async def stop(self) -> None:
        """Stop hot reload monitoring."""
        if not self._watching:
            return

        try:
            self._observer.stop()
            self._observer.join(timeout=5.0)

            if self._reload_task:
                self._reload_task.cancel()

            self._watching = False
            self._watched_files.clear()
            self._watched_dirs.clear()

            self.logger.info("Hot reload stopped")

        except Exception as e:
            self.logger.error(f"Error stopping hot reload: {e}")

    async def _handle_change(self, file_path: str) -> None:
        """Restart the debounce window for a reload."""
        if self._reload_task and not self._reload_task.done():
            self._reload_task.cancel()

        self._reload_task = asyncio.create_task(self._debounced_reload(file_path))

    async def _debounced_reload(self, file_path: str) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
            log_hot_reload(self.logger, file_path, "reload")
            await self.reload()
        except asyncio.CancelledError:
            self.logger.debug(f"Reload for {file_path} superseded by a newer change")

    async def reload(self) -> bool:
        """
        Load configuration, build a new monitor and swap it in.

        Returns:
            True if the new monitor is in service
        """
        try:
            new_config = self.config_loader()
            new_monitor = create_monitor(new_config)
        except Exception as e:
            self.logger.error(f"Reload failed, keeping previous monitor: {e}")
            return False

        old_domains = self.checker.monitor.domain_names
        self.config = new_config
        self.checker.replace_monitor(new_monitor, new_config)
        self.checker.metrics.clear_host_metrics()
        self._reload_count += 1

        added = [d for d in new_monitor.domain_names if d not in old_domains]
        removed = [d for d in old_domains if d not in new_monitor.domain_names]
        self.logger.info(
            f"Monitor rebuilt - Hosts: {len(new_monitor)}, Added: {added}, Removed: {removed}"
        )

        if self._watching:
            self._observer.unschedule_all()
            self._schedule_watches()

        try:
            await self.checker.check_once()
        except Exception as e:
            self.logger.error(f"Check after reload failed: {e}")

        return True

    def get_status(self) -> dict:
        """Get hot reload status information."""
        return {
            "enabled": self.config.hot_reload,
            "watching": self._watching,
            "watched_files": sorted(str(path) for path in self._watched_files),
            "config_path": str(self.config_path) if self.config_path else None,
            "reload_count": self._reload_count,
            "reload_pending": self._reload_task is not None and not self._reload_task.done(),
        }

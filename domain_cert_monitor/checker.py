"""
Periodic certificate checker for Domain Certificate Monitor.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from domain_cert_monitor.config import Config
from domain_cert_monitor.errors import CertMonitorError
from domain_cert_monitor.host import Host
from domain_cert_monitor.logger import get_logger, log_check_complete, log_check_start
from domain_cert_monitor.metrics import (
    EXPIRY_STATUSES,
    MetricsCollector,
    is_deprecated_signature_algorithm,
    is_weak_key,
)
from domain_cert_monitor.monitor import CertMonitor

SECONDS_PER_DAY = 86400


def classify_expiry(seconds_until_expiry: float, warning_days: int, critical_days: int) -> str:
    """
    Classify a signed time-to-expiry.

    Returns:
        One of "expired", "critical", "warning" or "ok"
    """
    if seconds_until_expiry <= 0:
        return "expired"
    if seconds_until_expiry < critical_days * SECONDS_PER_DAY:
        return "critical"
    if seconds_until_expiry < warning_days * SECONDS_PER_DAY:
        return "warning"
    return "ok"


class CertificateChecker:
    """
    Fetches the leaf certificate of every monitored host on a schedule.

    Fetches are blocking socket operations, so they run on a thread pool;
    one host failing never affects the others.
    """

    def __init__(self, config: Config, monitor: CertMonitor, metrics: MetricsCollector):
        self.config = config
        self.monitor = monitor
        self.metrics = metrics
        self.logger = get_logger("checker")

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._executor = ThreadPoolExecutor(max_workers=config.workers)
        self._check_lock: Optional[asyncio.Lock] = None  # created lazily in async context
        self._last_results: Dict[str, Any] = {}

        self.logger.info(f"Certificate checker initialized - Workers: {config.workers}")

    @property
    def last_results(self) -> Dict[str, Any]:
        return self._last_results

    async def start(self) -> None:
        """Start the periodic certificate checks."""
        if self._running:
            self.logger.warning("Checker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._check_loop())
        self.logger.info(f"Started certificate checks - Interval: {self.config.check_interval}")

    async def stop(self) -> None:
        """Stop the periodic certificate checks."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._executor.shutdown(wait=True)
        self.logger.info("Certificate checker stopped")

    def replace_monitor(self, monitor: CertMonitor, config: Optional[Config] = None) -> None:
        """Swap in a newly built monitor, and optionally a new configuration."""
        self.monitor = monitor
        if config is not None:
            self.config = config
        self._last_results = {}
        self.logger.info(f"Monitor replaced - Hosts: {len(monitor)}")

    async def check_once(self) -> Dict[str, Any]:
        """
        Fetch every host once.

        Returns:
            Check results with one entry per host, in monitor order
        """
        if self._check_lock is None:
            self._check_lock = asyncio.Lock()

        async with self._check_lock:
            start_time = time.time()
            monitor = self.monitor
            config = self.config

            log_check_start(self.logger, len(monitor))

            semaphore = asyncio.Semaphore(config.workers)
            tasks = [
                asyncio.create_task(self._check_host(host, semaphore, config))
                for host in monitor.hosts
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            host_results: List[Dict[str, Any]] = []
            for host, result in zip(monitor.hosts, results):
                if isinstance(result, BaseException):
                    self.logger.error(f"Check task for {host.domain_name} failed: {result}")
                    result = build_host_result(host, config, result)
                host_results.append(result)
                self.metrics.update_host_metrics(result)

            duration = time.time() - start_time
            status_counts = {status: 0 for status in EXPIRY_STATUSES}
            for result in host_results:
                status_counts[result["status"]] += 1
            errors = status_counts["error"]

            self.metrics.update_check_metrics(duration, len(host_results), status_counts)
            log_check_complete(self.logger, duration, len(host_results) - errors, errors)

            self._last_results = {
                "hosts": host_results,
                "summary": {
                    "total_duration": duration,
                    "total_hosts": len(host_results),
                    "fetched": len(host_results) - errors,
                    "errors": errors,
                    "statuses": status_counts,
                },
                "timestamp": start_time,
            }
            return self._last_results

    async def _check_loop(self) -> None:
        """Main check loop."""
        while self._running:
            try:
                await self.check_once()
                await asyncio.sleep(self.config.check_interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in check loop: {e}")
                await asyncio.sleep(60)

    async def _check_host(
        self, host: Host, semaphore: asyncio.Semaphore, config: Config
    ) -> Dict[str, Any]:
        """
        Fetch one host on the thread pool.

        The socket timeout bounds each network operation but not name
        resolution, so the whole fetch also gets an overall deadline.
        """
        async with semaphore:
            loop = asyncio.get_event_loop()
            deadline = config.connect_timeout * 2
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(self._executor, fetch_host, host, config),
                    timeout=deadline,
                )
            except asyncio.TimeoutError as e:
                self.logger.warning(f"Fetch for {host.domain_name} exceeded {deadline}s deadline")
                return build_host_result(host, config, e)

    async def get_health_status(self) -> Dict[str, Any]:
        """Get checker health status."""
        return {
            "check_status": "running" if self._running else "stopped",
            "monitored_hosts": len(self.monitor),
            "worker_pool_size": self.config.workers,
            "last_check": self._last_results.get("timestamp"),
        }


def fetch_host(host: Host, config: Config) -> Dict[str, Any]:
    """Fetch a host's certificate and describe the outcome; runs on a worker thread."""
    try:
        host.fetch(config.connect_timeout)
    except CertMonitorError as e:
        return build_host_result(host, config, e)
    return build_host_result(host, config)


def build_host_result(
    host: Host, config: Config, error: Optional[BaseException] = None
) -> Dict[str, Any]:
    """
    Describe a host's current state.

    A failed fetch keeps reporting the previously fetched certificate,
    if any, but the status is always "error".
    """
    seconds = host.seconds_until_expiry()

    if error is not None or not host.fetched:
        status = "error"
    else:
        status = classify_expiry(seconds, config.warning_days, config.critical_days)

    result: Dict[str, Any] = {
        "domain": host.domain_name,
        "status": status,
        "fetched": host.fetched,
        "seconds_until_expiry": seconds,
        "days_until_expiry": host.days_until_expiry(),
        "last_fetch": host.last_fetch.isoformat() if host.last_fetch else None,
        "certificate": None,
        "error": None,
        "error_type": None,
    }

    if host.fetched:
        cert = host.certificate
        result["certificate"] = cert.to_dict()
        result["is_weak_key"] = is_weak_key(cert.key_size, cert.key_algorithm)
        result["is_deprecated_algorithm"] = is_deprecated_signature_algorithm(
            cert.signature_algorithm
        )

    if error is not None:
        result["error"] = str(error) or type(error).__name__
        result["error_type"] = type(error).__name__

    return result

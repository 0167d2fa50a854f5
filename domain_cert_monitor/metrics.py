"""
Prometheus metrics collection for Domain Certificate Monitor.
"""

import socket
import sys
import time
from typing import Any, Dict

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from domain_cert_monitor.logger import get_logger, log_metrics_collection

EXPIRY_STATUSES = ("ok", "warning", "critical", "expired", "error")


class MetricsCollector:
    """Prometheus metrics collector for monitored domains and the application."""

    def __init__(self) -> None:
        self.logger = get_logger("metrics")
        self.registry = CollectorRegistry()

        self._create_host_metrics()

        # Check metrics
        self.tls_cert_fetch_errors_total = Counter(
            "tls_cert_fetch_errors_total",
            "Certificate fetch failures",
            ["domain", "error_type"],
            registry=self.registry,
        )

        self.tls_cert_check_duration_seconds = Histogram(
            "tls_cert_check_duration_seconds",
            "Duration of a full certificate check",
            registry=self.registry,
        )

        self.tls_cert_last_check_timestamp = Gauge(
            "tls_cert_last_check_timestamp",
            "Last completed check time (Unix timestamp)",
            registry=self.registry,
        )

        self.tls_cert_hosts_total = Gauge(
            "tls_cert_hosts_total", "Number of monitored hosts", registry=self.registry
        )

        self.tls_cert_status_total = Gauge(
            "tls_cert_status_total",
            "Number of hosts per expiry status",
            ["status"],
            registry=self.registry,
        )

        # Application metrics
        self.app_memory_bytes = Gauge(
            "app_memory_bytes",
            "Application memory usage in bytes",
            ["type"],
            registry=self.registry,
        )

        self.app_cpu_percent = Gauge(
            "app_cpu_percent", "Application CPU usage percentage", registry=self.registry
        )

        self.app_thread_count = Gauge(
            "app_thread_count", "Number of application threads", registry=self.registry
        )

        self.app_info = Info(
            "app_info",
            "Application information",
            ["hostname", "version", "python_version"],
            registry=self.registry,
        )

        self._last_system_update = 0.0
        self._system_update_interval = 30

        self.logger.info("Metrics collector initialized")

    def _create_host_metrics(self) -> None:
        """Create the per-domain labelled metrics."""
        self.tls_cert_expiry_seconds = Gauge(
            "tls_cert_expiry_seconds",
            "Seconds until the leaf certificate expires (negative when expired)",
            ["domain"],
            registry=self.registry,
        )

        self.tls_cert_expiration_timestamp = Gauge(
            "tls_cert_expiration_timestamp",
            "Leaf certificate expiration time (Unix timestamp)",
            ["domain", "common_name", "issuer", "serial"],
            registry=self.registry,
        )

        self.tls_cert_info = Info(
            "tls_cert_info",
            "Leaf certificate information",
            ["domain", "common_name", "issuer", "serial"],
            registry=self.registry,
        )

        self.tls_cert_fetch_success = Gauge(
            "tls_cert_fetch_success",
            "Whether the last fetch for the domain succeeded",
            ["domain"],
            registry=self.registry,
        )

    def update_host_metrics(self, result: Dict[str, Any]) -> None:
        """
        Update metrics for one host check result.

        Args:
            result: Host result as produced by the certificate checker
        """
        try:
            domain = result["domain"]
            cert = result.get("certificate")

            if result.get("error"):
                self.tls_cert_fetch_success.labels(domain=domain).set(0)
                self.tls_cert_fetch_errors_total.labels(
                    domain=domain, error_type=result.get("error_type", "unknown")
                ).inc()
            else:
                self.tls_cert_fetch_success.labels(domain=domain).set(1)

            # Hosts that never fetched have no certificate to report
            if cert:
                self.tls_cert_expiry_seconds.labels(domain=domain).set(
                    float(result["seconds_until_expiry"])
                )
                self.tls_cert_expiration_timestamp.labels(
                    domain=domain,
                    common_name=cert["common_name"],
                    issuer=cert["issuer_name"],
                    serial=cert["serial"],
                ).set(float(cert["expiration_timestamp"]))
                self.tls_cert_info.labels(
                    domain=domain,
                    common_name=cert["common_name"],
                    issuer=cert["issuer_name"],
                    serial=cert["serial"],
                ).info(
                    {
                        "subject": cert["subject"],
                        "not_before": cert["not_before"],
                        "not_after": cert["not_after"],
                        "signature_algorithm": cert["signature_algorithm"],
                        "key_algorithm": cert["key_algorithm"],
                        "key_size": str(cert["key_size"]),
                        "fingerprint_sha256": cert["fingerprint_sha256"],
                    }
                )

            log_metrics_collection(self.logger, "host_checked", 1.0, {"domain": domain})

        except Exception as e:
            self.logger.error(f"Failed to update host metrics: {e}")

    def update_check_metrics(
        self, duration: float, host_count: int, status_counts: Dict[str, int]
    ) -> None:
        """
        Update metrics describing a completed check.

        Args:
            duration: Check duration in seconds
            host_count: Number of hosts checked
            status_counts: Number of hosts per expiry status
        """
        try:
            self.tls_cert_check_duration_seconds.observe(duration)
            self.tls_cert_last_check_timestamp.set(int(time.time()))
            self.tls_cert_hosts_total.set(host_count)

            for status in EXPIRY_STATUSES:
                self.tls_cert_status_total.labels(status=status).set(status_counts.get(status, 0))

            log_metrics_collection(
                self.logger,
                "check_completed",
                duration,
                {"host_count": host_count, **status_counts},
            )

        except Exception as e:
            self.logger.error(f"Failed to update check metrics: {e}")

    def clear_host_metrics(self) -> None:
        """Drop all per-domain series, used when the monitored domains change."""
        for metric in (
            self.tls_cert_expiry_seconds,
            self.tls_cert_expiration_timestamp,
            self.tls_cert_info,
            self.tls_cert_fetch_success,
        ):
            try:
                self.registry.unregister(metric)
            except KeyError:
                pass

        self._create_host_metrics()
        self.logger.debug("Per-domain metrics cleared and recreated")

    def update_system_metrics(self) -> None:
        """Update system and application metrics."""
        current_time = time.time()

        # Only refresh every N seconds to reduce overhead
        if current_time - self._last_system_update < self._system_update_interval:
            return

        try:
            process = psutil.Process()

            memory_info = process.memory_info()
            self.app_memory_bytes.labels(type="rss").set(int(memory_info.rss))
            self.app_memory_bytes.labels(type="vms").set(int(memory_info.vms))

            cpu_percent = process.cpu_percent()
            self.app_cpu_percent.set(cpu_percent)

            thread_count = process.num_threads()
            self.app_thread_count.set(int(thread_count))

            from domain_cert_monitor import __version__

            self.app_info.labels(
                hostname=socket.gethostname(),
                version=__version__,
                python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            ).info({"platform": sys.platform, "process_id": str(process.pid)})

            self._last_system_update = current_time

            log_metrics_collection(
                self.logger,
                "system_metrics_updated",
                1.0,
                {
                    "memory_rss": memory_info.rss,
                    "cpu_percent": cpu_percent,
                    "thread_count": thread_count,
                },
            )

        except Exception as e:
            self.logger.error(f"Failed to update system metrics: {e}")

    def get_metrics(self) -> str:
        """
        Get Prometheus metrics in text format.

        Returns:
            Metrics in Prometheus text format
        """
        self.update_system_metrics()
        return generate_latest(self.registry).decode("utf-8")

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_registry_status(self) -> Dict[str, Any]:
        """Get Prometheus registry status for health checks."""
        try:
            metrics_count = len(list(self.registry._collector_to_names.keys()))

            return {
                "prometheus_registry": {
                    "status": "healthy",
                    "metrics_count": metrics_count,
                    "last_update": self._last_system_update,
                }
            }
        except Exception as e:
            return {"prometheus_registry": {"status": "error", "error": str(e)}}


def is_weak_key(key_size: int, algorithm: str) -> bool:
    """
    Check if a key is considered weak.

    Args:
        key_size: Key size in bits
        algorithm: Key algorithm

    Returns:
        True if key is weak
    """
    algorithm_lower = algorithm.lower()

    # Ed25519/Ed448 keys have a fixed, adequate size
    if algorithm_lower.startswith("ed"):
        return False
    # Check EC before RSA since "ecdsa" contains "rsa"
    if "elliptic" in algorithm_lower or "ec" in algorithm_lower:
        return key_size < 256
    elif "rsa" in algorithm_lower:
        return key_size < 2048
    elif "dsa" in algorithm_lower:
        return key_size < 2048

    return key_size < 2048


def is_deprecated_signature_algorithm(algorithm: str) -> bool:
    """
    Check if a signature algorithm is deprecated.

    Args:
        algorithm: Signature algorithm

    Returns:
        True if algorithm is deprecated
    """
    algorithm_lower = algorithm.lower()

    deprecated_algorithms = ["md5", "sha1", "md2", "md4"]

    return any(alg in algorithm_lower for alg in deprecated_algorithms)

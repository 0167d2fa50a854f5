"""
Tests for the periodic certificate checker.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from conftest import der_bytes, generate_certificate

from domain_cert_monitor.checker import (
    SECONDS_PER_DAY,
    CertificateChecker,
    build_host_result,
    classify_expiry,
    fetch_host,
)
from domain_cert_monitor.config import Config
from domain_cert_monitor.errors import ConnectFailure
from domain_cert_monitor.host import Host, LeafCertificate
from domain_cert_monitor.metrics import MetricsCollector
from domain_cert_monitor.monitor import CertMonitor


def certificate_expiring_in(domain: str, delta: timedelta) -> LeafCertificate:
    now = datetime.now(timezone.utc)
    cert, _ = generate_certificate(domain, not_before=now - timedelta(days=100), not_after=now + delta)
    return LeafCertificate.from_der(der_bytes(cert))


def fake_fetch_factory(certificates, failures=()):
    """Host.fetch replacement serving canned certificates by domain."""

    def fake_fetch(self, timeout=None):
        if self.domain_name in failures:
            raise ConnectFailure(self.domain_name, 443, ConnectionRefusedError("refused"))
        self.certificate = certificates[self.domain_name]
        self.last_fetch = datetime.now(timezone.utc)
        return self.certificate

    return fake_fetch


@pytest.fixture
def config():
    return Config(workers=2, warning_days=30, critical_days=7, connect_timeout=1.0)


@pytest_asyncio.fixture
async def checker(config):
    monitor = CertMonitor(
        ["ok.example.com", "down.example.com", "soon.example.com", "old.example.com"]
    )
    checker = CertificateChecker(config=config, monitor=monitor, metrics=MetricsCollector())
    yield checker
    await checker.stop()


class TestClassifyExpiry:
    """Test expiry classification."""

    @pytest.mark.parametrize(
        "days,expected",
        [
            (-1, "expired"),
            (0, "expired"),
            (3, "critical"),
            (7, "warning"),
            (29, "warning"),
            (30, "ok"),
            (365, "ok"),
        ],
    )
    def test_thresholds(self, days, expected):
        assert classify_expiry(days * SECONDS_PER_DAY, 30, 7) == expected

    def test_never_fetched_host_is_expired(self):
        host = CertMonitor(["example.com"]).hosts[0]
        assert classify_expiry(host.seconds_until_expiry(), 30, 7) == "expired"


class TestBuildHostResult:
    """Test per-host result building."""

    def test_unfetched_host(self, config):
        host = CertMonitor(["example.com"]).hosts[0]

        result = build_host_result(host, config)

        assert result["status"] == "error"
        assert result["fetched"] is False
        assert result["certificate"] is None
        assert result["last_fetch"] is None
        assert result["seconds_until_expiry"] < 0

    def test_fetched_host(self, config):
        host = CertMonitor(["example.com"]).hosts[0]
        host.certificate = certificate_expiring_in("example.com", timedelta(days=90))
        host.last_fetch = datetime.now(timezone.utc)

        result = build_host_result(host, config)

        assert result["status"] == "ok"
        assert result["certificate"]["common_name"] == "example.com"
        assert result["days_until_expiry"] == pytest.approx(90, abs=0.01)
        assert result["is_weak_key"] is False
        assert result["is_deprecated_algorithm"] is False
        assert result["error"] is None

    def test_failed_refetch_keeps_certificate_but_reports_error(self, config):
        host = CertMonitor(["example.com"]).hosts[0]
        host.certificate = certificate_expiring_in("example.com", timedelta(days=90))
        error = ConnectFailure("example.com", 443, TimeoutError("timed out"))

        result = build_host_result(host, config, error)

        assert result["status"] == "error"
        assert result["certificate"] is not None
        assert result["error_type"] == "ConnectFailure"
        assert "example.com:443" in result["error"]


def test_fetch_host_wraps_errors(config):
    host = CertMonitor(["down.example.com"]).hosts[0]

    with patch.object(Host, "fetch", fake_fetch_factory({}, failures={"down.example.com"})):
        result = fetch_host(host, config)

    assert result["status"] == "error"
    assert result["error_type"] == "ConnectFailure"


class TestCertificateChecker:
    """Test checker runs."""

    @pytest.mark.asyncio
    async def test_check_once(self, checker):
        certificates = {
            "ok.example.com": certificate_expiring_in("ok.example.com", timedelta(days=200)),
            "soon.example.com": certificate_expiring_in("soon.example.com", timedelta(days=3)),
            "old.example.com": certificate_expiring_in("old.example.com", timedelta(days=-5)),
        }

        with patch.object(
            Host, "fetch", fake_fetch_factory(certificates, failures={"down.example.com"})
        ):
            results = await checker.check_once()

        assert [r["domain"] for r in results["hosts"]] == checker.monitor.domain_names
        assert [r["status"] for r in results["hosts"]] == ["ok", "error", "critical", "expired"]

        summary = results["summary"]
        assert summary["total_hosts"] == 4
        assert summary["fetched"] == 3
        assert summary["errors"] == 1
        assert summary["statuses"]["critical"] == 1
        assert checker.last_results is results

    @pytest.mark.asyncio
    async def test_check_updates_metrics(self, checker):
        certificates = {
            domain: certificate_expiring_in(domain, timedelta(days=60))
            for domain in checker.monitor.domain_names
        }

        with patch.object(Host, "fetch", fake_fetch_factory(certificates)):
            await checker.check_once()

        output = checker.metrics.get_metrics()
        assert 'tls_cert_expiry_seconds{domain="ok.example.com"}' in output
        assert 'tls_cert_status_total{status="ok"} 4.0' in output

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_result(self, checker):
        def broken_fetch(self, timeout=None):
            raise RuntimeError("boom")

        with patch.object(Host, "fetch", broken_fetch):
            results = await checker.check_once()

        assert all(r["status"] == "error" for r in results["hosts"])
        assert results["hosts"][0]["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_slow_host_hits_deadline(self):
        config = Config(workers=2, connect_timeout=0.05)
        monitor = CertMonitor(["slow.example.com"])
        checker = CertificateChecker(config=config, monitor=monitor, metrics=MetricsCollector())

        def slow_fetch(self, timeout=None):
            time.sleep(0.5)

        try:
            with patch.object(Host, "fetch", slow_fetch):
                results = await checker.check_once()
        finally:
            await checker.stop()

        assert results["hosts"][0]["status"] == "error"
        assert results["hosts"][0]["error_type"] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_replace_monitor(self, checker):
        checker._last_results = {"hosts": [], "timestamp": 1.0}
        new_monitor = CertMonitor(["new.example.com"])
        new_config = Config(workers=1)

        checker.replace_monitor(new_monitor, new_config)

        assert checker.monitor is new_monitor
        assert checker.config is new_config
        assert checker.last_results == {}

    @pytest.mark.asyncio
    async def test_health_status(self, checker):
        health = await checker.get_health_status()

        assert health["check_status"] == "stopped"
        assert health["monitored_hosts"] == 4
        assert health["last_check"] is None

    @pytest.mark.asyncio
    async def test_start_runs_first_check(self, checker):
        checker.check_once = AsyncMock(return_value={})

        await checker.start()
        await asyncio.sleep(0.05)
        await checker.stop()

        checker.check_once.assert_awaited()

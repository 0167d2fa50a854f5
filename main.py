#!/usr/bin/env python3
"""
Domain Certificate Monitor - Main Application Entry Point
"""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import click
import uvicorn
from fastapi import FastAPI

from domain_cert_monitor import __version__
from domain_cert_monitor.api import create_app
from domain_cert_monitor.checker import CertificateChecker
from domain_cert_monitor.config import Config, create_example_config, load_config
from domain_cert_monitor.hot_reload import HotReloadManager
from domain_cert_monitor.logger import setup_logging
from domain_cert_monitor.metrics import MetricsCollector
from domain_cert_monitor.monitor import CertMonitor, create_monitor

FAILING_STATUSES = {"expired", "critical", "error"}


def build_config(
    config_path: Optional[str] = None,
    domains: Sequence[str] = (),
    domains_file: Optional[str] = None,
    ca_files: Sequence[str] = (),
    timeout: Optional[float] = None,
    dry_run: bool = False,
) -> Config:
    """
    Load configuration and apply command line options on top.

    Domains and CA files given on the command line are appended to the
    configured ones; scalar options replace them.
    """
    config = load_config(config_path)
    data: Dict[str, Any] = config.model_dump()

    if domains:
        data["domains"] = list(config.domains) + list(domains)
    if ca_files:
        data["additional_root_ca_paths"] = list(config.additional_root_ca_paths) + list(ca_files)
    if domains_file:
        data["domains_file"] = domains_file
    if timeout is not None:
        data["connect_timeout"] = timeout
    if dry_run:
        data["dry_run"] = True

    return Config(**data)


def render_table(results: Dict[str, Any]) -> str:
    """Render check results as a plain text table."""
    header = f"{'DOMAIN':<40} {'STATUS':<9} {'EXPIRES (UTC)':<20} {'DAYS LEFT':>10}  DETAIL"
    lines = [header, "-" * len(header)]

    for result in results["hosts"]:
        cert = result.get("certificate")
        if cert:
            expires = cert["not_after"][:19].replace("T", " ")
            days_left = f"{result['days_until_expiry']:.1f}"
            detail = cert["issuer_name"] or cert["issuer"]
        else:
            expires = "-"
            days_left = "-"
            detail = ""
        if result.get("error"):
            detail = result["error"]
        lines.append(
            f"{result['domain']:<40} {result['status']:<9} {expires:<20} {days_left:>10}  {detail}"
        )

    summary = results["summary"]
    lines.append("")
    lines.append(
        f"{summary['total_hosts']} host(s) checked in {summary['total_duration']:.2f}s - "
        + ", ".join(f"{status}: {count}" for status, count in summary["statuses"].items())
    )
    return "\n".join(lines)


class DomainCertMonitor:
    """Main application class for Domain Certificate Monitor."""

    def __init__(self, config: Config, config_path: Optional[str] = None, output_format: str = "table"):
        self.config = config
        self.config_path = config_path
        self.output_format = output_format
        self.monitor: Optional[CertMonitor] = None
        self.checker: Optional[CertificateChecker] = None
        self.metrics: Optional[MetricsCollector] = None
        self.hot_reload: Optional[HotReloadManager] = None
        self.app: Optional[FastAPI] = None
        self._config_loader = None
        self._shutdown_event = asyncio.Event()
        self.logger = logging.getLogger(__name__)

    def set_config_loader(self, loader: Any) -> None:
        """Loader used by hot reload so command line options survive a reload."""
        self._config_loader = loader

    async def initialize(self) -> None:
        """Initialize all application components."""
        try:
            setup_logging(self.config)
            self.logger.info("Initializing Domain Certificate Monitor")

            self.monitor = create_monitor(self.config)
            if not len(self.monitor):
                self.logger.warning("No domains configured")

            self.metrics = MetricsCollector()
            self.checker = CertificateChecker(
                config=self.config, monitor=self.monitor, metrics=self.metrics
            )

            if self.config.dry_run:
                return

            if self.config.hot_reload:
                self.hot_reload = HotReloadManager(
                    config=self.config,
                    checker=self.checker,
                    config_path=self.config_path,
                    config_loader=self._config_loader,
                )
                await self.hot_reload.start()

            self.app = create_app(checker=self.checker, metrics=self.metrics, config=self.config)

            await self.checker.start()

            self.logger.info("Domain Certificate Monitor initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize application: {e}")
            raise

    async def run_once(self) -> int:
        """
        Check every host once and print the results.

        Returns:
            Process exit code, 1 if any host is expired, critical or failing
        """
        if not self.checker:
            await self.initialize()
        assert self.checker is not None

        try:
            results = await self.checker.check_once()
        finally:
            await self.shutdown()

        if self.output_format == "json":
            click.echo(json.dumps(results, indent=2))
        else:
            click.echo(render_table(results))

        failing = [r for r in results["hosts"] if r["status"] in FAILING_STATUSES]
        return 1 if failing else 0

    async def run(self) -> int:
        """Run the application server or perform a single check."""
        if self.config.dry_run:
            return await self.run_once()

        if not self.app:
            await self.initialize()
        assert self.app is not None

        config_dict = {
            "app": self.app,
            "host": self.config.bind_address,
            "port": self.config.port,
            "log_level": self.config.log_level.lower(),
            "access_log": True,
        }

        if self.config.tls_cert and self.config.tls_key:
            config_dict.update(
                {
                    "ssl_keyfile": self.config.tls_key,
                    "ssl_certfile": self.config.tls_cert,
                }
            )
            self.logger.info(
                f"Starting HTTPS server on {self.config.bind_address}:{self.config.port}"
            )
        else:
            self.logger.info(
                f"Starting HTTP server on {self.config.bind_address}:{self.config.port}"
            )

        for sig in [signal.SIGTERM, signal.SIGINT]:
            signal.signal(sig, self._signal_handler)

        server = uvicorn.Server(uvicorn.Config(**config_dict))  # type: ignore[arg-type]

        try:
            await server.serve()
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal")
        finally:
            await self.shutdown()
        return 0

    def _signal_handler(self, signum: int, frame: Optional[object]) -> None:
        """Handle shutdown signals."""
        self.logger.info(f"Received signal {signum}, initiating graceful shutdown")
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        self.logger.info("Starting graceful shutdown")

        if self.hot_reload:
            await self.hot_reload.stop()

        if self.checker:
            await self.checker.stop()

        self.logger.info("Graceful shutdown completed")


@click.command()
@click.option(
    "--config",
    "-f",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--domain", "-d", "domains", multiple=True, help="Domain to monitor (repeatable)")
@click.option(
    "--domains-file",
    type=click.Path(path_type=Path),
    help="File with one domain per line",
)
@click.option(
    "--ca-file",
    "ca_files",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Additional PEM root CA file (repeatable)",
)
@click.option("--timeout", type=float, help="Handshake timeout in seconds")
@click.option("--dry-run", is_flag=True, help="Check every domain once, print results and exit")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format for --dry-run",
)
@click.option("--version", "-v", is_flag=True, help="Show version information")
@click.option(
    "--create-config",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an example configuration file and exit",
)
def main(
    config: Optional[Path],
    domains: List[str],
    domains_file: Optional[Path],
    ca_files: List[Path],
    timeout: Optional[float],
    dry_run: bool,
    output_format: str,
    version: bool,
    create_config: Optional[Path],
) -> None:
    """Domain Certificate Monitor - Report time left before each domain's TLS certificate expires."""
    if version:
        click.echo(f"Domain Certificate Monitor v{__version__}")
        return

    if create_config:
        create_example_config(str(create_config))
        click.echo(f"Example configuration written to {create_config}")
        return

    config_path = str(config) if config else None

    def loader() -> Config:
        return build_config(
            config_path,
            domains,
            str(domains_file) if domains_file else None,
            [str(path) for path in ca_files],
            timeout,
            dry_run,
        )

    try:
        app_config = loader()
        monitor = DomainCertMonitor(app_config, config_path, output_format=output_format)
        monitor.set_config_loader(loader)
        exit_code = asyncio.run(monitor.run())
    except KeyboardInterrupt:
        click.echo("\nShutdown requested by user", err=True)
        sys.exit(0)
    except Exception as e:
        click.echo(f"Application failed: {e}", err=True)
        sys.exit(2)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

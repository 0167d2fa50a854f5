"""
FastAPI application for Domain Certificate Monitor.
"""

import ipaddress
from typing import Any, Awaitable, Callable, Dict

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from domain_cert_monitor import __version__
from domain_cert_monitor.checker import CertificateChecker
from domain_cert_monitor.config import Config
from domain_cert_monitor.logger import get_logger
from domain_cert_monitor.metrics import MetricsCollector


def is_ip_allowed(client_ip: str, allowed_ips: list) -> bool:
    """Check a client address against single addresses and CIDR blocks."""
    logger = get_logger("api")
    for allowed_ip in allowed_ips:
        try:
            if "/" in allowed_ip:
                network = ipaddress.ip_network(allowed_ip, strict=False)
                if ipaddress.ip_address(client_ip) in network:
                    return True
            elif client_ip == allowed_ip:
                return True
        except ValueError as e:
            logger.warning(f"Invalid IP configuration '{allowed_ip}': {e}")
    return False


def create_app(checker: CertificateChecker, metrics: MetricsCollector, config: Config) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        checker: Certificate checker instance
        metrics: Metrics collector instance
        config: Configuration instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Domain Certificate Monitor",
        description="Time-to-expiry monitoring for TLS certificates served by domains",
        version=__version__,
        docs_url="/docs" if not config.dry_run else None,
        redoc_url="/redoc" if not config.dry_run else None,
    )

    logger = get_logger("api")

    @app.middleware("http")
    async def ip_whitelist_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Middleware to enforce IP whitelisting."""
        current_config = checker.config
        if not current_config.enable_ip_whitelist:
            return await call_next(request)

        client_ip = request.client.host if request.client else None

        # Test clients may not report an address
        if not client_ip:
            logger.warning("Unable to determine client IP address, allowing request")
            return await call_next(request)

        if not is_ip_allowed(client_ip, current_config.allowed_ips):
            logger.warning(f"Access denied for IP address: {client_ip}")
            return JSONResponse(
                status_code=403,
                content={
                    "error": "Access forbidden",
                    "message": "Your IP address is not allowed to access this service",
                    "client_ip": client_ip,
                },
            )

        return await call_next(request)

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics() -> PlainTextResponse:
        try:
            metrics_data: str = metrics.get_metrics()
            return PlainTextResponse(content=metrics_data, media_type=metrics.get_content_type())
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate metrics") from e

    @app.get("/healthz", response_class=JSONResponse)
    async def get_health() -> JSONResponse:
        try:
            checker_health = await checker.get_health_status()
            metrics_health = metrics.get_registry_status()
            trust_store = checker.monitor.root_cas

            health_status = {
                **checker_health,
                **metrics_health,
                "trust_store": {
                    "system_roots": trust_store.use_system_roots,
                    "system_root_count": trust_store.system_root_count,
                    "additional_roots": len(trust_store.extra_roots),
                    "additional_root_subjects": trust_store.subjects(),
                    "verifies_certificates": checker.monitor.policy.verifies_certificates,
                },
                "status": "healthy",
                "version": __version__,
            }
            return JSONResponse(content=health_status)
        except Exception as e:
            logger.error(f"Failed to get health status: {e}")
            return JSONResponse(content={"status": "error", "error": str(e)}, status_code=500)

    @app.get("/hosts", response_class=JSONResponse)
    async def get_hosts() -> JSONResponse:
        results = checker.last_results
        if not results:
            return JSONResponse(
                content={
                    "hosts": [
                        {"domain": domain, "status": "pending"}
                        for domain in checker.monitor.domain_names
                    ],
                    "timestamp": None,
                }
            )
        return JSONResponse(content={"hosts": results["hosts"], "timestamp": results["timestamp"]})

    @app.get("/check", response_class=JSONResponse)
    async def trigger_check() -> JSONResponse:
        if checker.config.dry_run:
            return JSONResponse(
                content={"message": "Check not performed - dry run mode enabled"}, status_code=200
            )
        try:
            logger.info("Manual check triggered via API")
            results = await checker.check_once()
            return JSONResponse(content=results)
        except Exception as e:
            logger.error(f"Manual check failed: {e}")
            raise HTTPException(status_code=500, detail=f"Check failed: {e}") from e

    @app.get("/config", response_class=JSONResponse)
    async def get_config() -> JSONResponse:
        try:
            config_dict: Dict[str, Any] = checker.config.model_dump()

            # Always redact sensitive information
            if config_dict.get("tls_key"):
                config_dict["tls_key"] = "***REDACTED***"
            config_dict["allowed_ips"] = [
                f"***REDACTED*** ({len(config_dict['allowed_ips'])} IPs/networks)"
            ]

            return JSONResponse(content=config_dict)
        except Exception as e:
            logger.error(f"Failed to get configuration: {e}")
            raise HTTPException(status_code=500, detail="Failed to get configuration") from e

    @app.get("/", response_class=JSONResponse)
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "name": "Domain Certificate Monitor",
                "version": __version__,
                "endpoints": ["/metrics", "/healthz", "/hosts", "/check", "/config"],
            }
        )

    return app

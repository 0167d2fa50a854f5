"""
Domain Certificate Monitor

Reports how long the TLS leaf certificate served by each configured
domain has left before it expires.
"""

__version__ = "1.0.0"
__author__ = "Domain Certificate Monitor Team"
__description__ = "TLS certificate expiry monitoring for domains"

from domain_cert_monitor.config import Config
from domain_cert_monitor.errors import (
    CertMonitorError,
    ConfigReadError,
    ConnectFailure,
    NoCertificateError,
)
from domain_cert_monitor.host import Host, LeafCertificate
from domain_cert_monitor.monitor import CertMonitor

__all__ = [
    "CertMonitor",
    "CertMonitorError",
    "Config",
    "ConfigReadError",
    "ConnectFailure",
    "Host",
    "LeafCertificate",
    "NoCertificateError",
]

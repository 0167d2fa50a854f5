"""
Error types for Domain Certificate Monitor.
"""

from typing import Optional


class CertMonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigReadError(CertMonitorError):
    """An additional root CA file could not be read."""

    def __init__(self, path: str, cause: Optional[BaseException] = None, message: str = ""):
        self.path = path
        self.cause = cause
        if not message:
            message = f"Error reading additional cert file {path}"
            if cause is not None:
                message = f"{message}: {cause}"
        super().__init__(message)


class MalformedCAFileError(ConfigReadError):
    """An additional root CA file was readable but held no usable certificates."""


class NoCertificateError(CertMonitorError):
    """The TLS handshake succeeded but the peer presented no certificate."""

    def __init__(self, domain_name: str):
        self.domain_name = domain_name
        super().__init__(f"No certificates returned by {domain_name}")


class ConnectFailure(CertMonitorError):
    """DNS resolution, TCP connect or TLS negotiation with a host failed."""

    def __init__(self, domain_name: str, port: int, cause: BaseException):
        self.domain_name = domain_name
        self.port = port
        self.cause = cause
        super().__init__(f"Failed to connect to {domain_name}:{port}: {cause}")


class CertificateDecodeError(CertMonitorError):
    """The peer certificate could not be decoded."""

    def __init__(self, domain_name: str, cause: BaseException):
        self.domain_name = domain_name
        self.cause = cause
        super().__init__(f"Could not decode certificate from {domain_name}: {cause}")

"""
Certificate monitor for a configured set of domains.
"""

from typing import Iterator, List, Optional, Sequence, Tuple

from domain_cert_monitor.config import Config
from domain_cert_monitor.errors import CertMonitorError
from domain_cert_monitor.host import Host
from domain_cert_monitor.logger import get_logger
from domain_cert_monitor.policy import (
    DEFAULT_CONNECT_TIMEOUT,
    ConnectionPolicy,
    build_connection_policy,
)
from domain_cert_monitor.trust import TrustStore, build_trust_store


class CertMonitor:
    """
    Owns one Host per configured domain and the trust context they share.

    Construction builds the trust store and connection policy but performs
    no network I/O. A monitor is not reconfigured after construction;
    build a new one instead.

    Raises:
        ConfigReadError: An additional root CA file could not be read
    """

    def __init__(
        self,
        domain_names: Sequence[str],
        additional_root_ca_paths: Optional[Sequence[str]] = None,
        *,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
        strict_ca_files: bool = False,
    ):
        self.logger = get_logger("monitor")
        self.additional_root_ca_paths: Optional[Tuple[str, ...]] = (
            tuple(additional_root_ca_paths) if additional_root_ca_paths is not None else None
        )

        self.root_cas: TrustStore = build_trust_store(
            self.additional_root_ca_paths, strict=strict_ca_files
        )
        self.policy: ConnectionPolicy = build_connection_policy(self.root_cas, timeout=timeout)
        self.hosts: List[Host] = [Host(domain, self.policy) for domain in domain_names]

        self.logger.info(f"Certificate monitor initialized - Hosts: {len(self.hosts)}")

    def __len__(self) -> int:
        return len(self.hosts)

    def __iter__(self) -> Iterator[Host]:
        return iter(self.hosts)

    @property
    def domain_names(self) -> List[str]:
        return [host.domain_name for host in self.hosts]

    def fetch_all(self, timeout: Optional[float] = None) -> List[Optional[CertMonitorError]]:
        """
        Fetch every host in order, one at a time.

        A failing host does not stop the others.

        Returns:
            The error raised for each host, or None where the fetch succeeded
        """
        errors: List[Optional[CertMonitorError]] = []
        for host in self.hosts:
            try:
                host.fetch(timeout)
            except CertMonitorError as e:
                errors.append(e)
            else:
                errors.append(None)
        return errors


def create_monitor(config: Config) -> CertMonitor:
    """
    Build a monitor from configuration.

    Raises:
        ConfigReadError: The domains file or an additional root CA file
            could not be read
    """
    return CertMonitor(
        config.all_domains(),
        config.additional_root_ca_paths or None,
        timeout=config.connect_timeout,
        strict_ca_files=config.strict_ca_files,
    )

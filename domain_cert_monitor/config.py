"""
Configuration management for Domain Certificate Monitor.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from domain_cert_monitor.errors import ConfigReadError


class Config(BaseModel):
    """Configuration model for Domain Certificate Monitor."""

    # Monitored domains
    domains: List[str] = Field(default_factory=list)
    domains_file: Optional[str] = None

    # Trust store
    additional_root_ca_paths: List[str] = Field(default_factory=list)
    strict_ca_files: bool = Field(default=False)

    # Check settings
    connect_timeout: float = Field(default=10.0, gt=0, le=300)
    check_interval: str = Field(default="1h")
    workers: int = Field(default=4, ge=1, le=32)

    # Expiry thresholds
    warning_days: int = Field(default=30, ge=0)
    critical_days: int = Field(default=7, ge=0)

    # Server settings
    port: int = Field(default=3201, ge=1, le=65535)
    bind_address: str = Field(default="127.0.0.1")

    # TLS settings for metrics endpoint
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    # Operation modes
    dry_run: bool = Field(default=False)
    hot_reload: bool = Field(default=True)

    # Security settings
    allowed_ips: List[str] = Field(default_factory=lambda: ["127.0.0.1", "::1"])
    enable_ip_whitelist: bool = Field(default=True)

    @field_validator("domains")
    @classmethod
    def validate_domains(cls, v: List[str]) -> List[str]:
        """Strip whitespace and drop blank entries; order and duplicates are kept."""
        return [domain.strip() for domain in v if domain and domain.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("allowed_ips")
    @classmethod
    def validate_allowed_ips(cls, v: List[str]) -> List[str]:
        """Validate IP addresses and CIDR blocks in allowed_ips list."""
        import ipaddress

        validated_ips = []
        for ip_str in v:
            try:
                if "/" in ip_str:
                    ipaddress.ip_network(ip_str, strict=False)
                else:
                    ipaddress.ip_address(ip_str)
                validated_ips.append(ip_str)
            except ValueError as e:
                logging.error(f"Invalid IP address or network '{ip_str}': {e}")

        # Localhost is always allowed for health checks
        for localhost in ["127.0.0.1", "::1"]:
            if localhost not in validated_ips:
                validated_ips.append(localhost)

        return validated_ips

    @field_validator("check_interval")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Validate duration format (e.g., '5m', '1h', '30s')."""
        if not v:
            raise ValueError("Duration cannot be empty")

        if not re.match(r"^\d+[smhd]$", v):
            raise ValueError("Duration must be in format like '5m', '1h', '30s', '1d'")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Config":
        if self.critical_days > self.warning_days:
            raise ValueError(
                f"critical_days ({self.critical_days}) must not exceed "
                f"warning_days ({self.warning_days})"
            )
        return self

    def parse_duration_seconds(self, duration: str) -> int:
        """Parse duration string to seconds."""
        match = re.match(r"^(\d+)([smhd])$", duration)
        if not match:
            raise ValueError(f"Invalid duration format: {duration}")

        value, unit = match.groups()
        multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400}

        return int(value) * multipliers[unit]

    @property
    def check_interval_seconds(self) -> int:
        """Get check interval in seconds."""
        return self.parse_duration_seconds(self.check_interval)

    def all_domains(self) -> List[str]:
        """
        Configured domains followed by those listed in domains_file.

        Raises:
            ConfigReadError: domains_file could not be read
        """
        domains = list(self.domains)
        if self.domains_file:
            domains.extend(read_domain_names(self.domains_file))
        return domains


def read_domain_names(path: str) -> List[str]:
    """
    Read a domain list file.

    One domain per line; blank lines and lines starting with '#' are skipped.

    Raises:
        ConfigReadError: The file could not be read
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except OSError as e:
        raise ConfigReadError(path, e, f"Failed to read domains file {path}: {e}") from e

    domains = []
    for line in lines:
        line = line.strip()
        if line and not line.startswith("#"):
            domains.append(line)
    return domains


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Config object
    """
    config_data: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config_data.update(_get_env_overrides())

    return Config(**config_data)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, tuple[str, Callable[[str], Any]]] = {
        "CERT_MONITOR_DOMAINS_FILE": ("domains_file", str),
        "CERT_MONITOR_STRICT_CA_FILES": ("strict_ca_files", _parse_bool),
        "CERT_MONITOR_CONNECT_TIMEOUT": ("connect_timeout", float),
        "CERT_MONITOR_CHECK_INTERVAL": ("check_interval", str),
        "CERT_MONITOR_WORKERS": ("workers", int),
        "CERT_MONITOR_WARNING_DAYS": ("warning_days", int),
        "CERT_MONITOR_CRITICAL_DAYS": ("critical_days", int),
        "CERT_MONITOR_PORT": ("port", int),
        "CERT_MONITOR_BIND_ADDRESS": ("bind_address", str),
        "CERT_MONITOR_TLS_CERT": ("tls_cert", str),
        "CERT_MONITOR_TLS_KEY": ("tls_key", str),
        "CERT_MONITOR_LOG_LEVEL": ("log_level", str),
        "CERT_MONITOR_LOG_FILE": ("log_file", str),
        "CERT_MONITOR_DRY_RUN": ("dry_run", _parse_bool),
        "CERT_MONITOR_HOT_RELOAD": ("hot_reload", _parse_bool),
        "CERT_MONITOR_ENABLE_IP_WHITELIST": ("enable_ip_whitelist", _parse_bool),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    # List variables are comma separated
    list_mapping = {
        "CERT_MONITOR_DOMAINS": "domains",
        "CERT_MONITOR_ADDITIONAL_ROOT_CA_PATHS": "additional_root_ca_paths",
        "CERT_MONITOR_ALLOWED_IPS": "allowed_ips",
    }
    for env_var, config_key in list_mapping.items():
        value = os.getenv(env_var)
        if value:
            overrides[config_key] = [item.strip() for item in value.split(",") if item.strip()]

    return overrides


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example_config = {
        "domains": ["example.com", "www.python.org"],
        "domains_file": None,
        "additional_root_ca_paths": [],
        "strict_ca_files": False,
        "connect_timeout": 10.0,
        "check_interval": "1h",
        "workers": 4,
        "warning_days": 30,
        "critical_days": 7,
        "port": 3201,
        "bind_address": "127.0.0.1",
        "log_level": "INFO",
        "dry_run": False,
        "hot_reload": True,
        "allowed_ips": ["127.0.0.1", "::1", "192.168.1.0/24"],
        "enable_ip_whitelist": True,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)

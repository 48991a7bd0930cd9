"""Configuration management for the DNS-SD bridge."""

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DnssdLimits(BaseModel):
    """Fixed maxima applied to names crossing the backend boundary (lengths in UTF-8 bytes)."""

    instance_name_max_length: int = Field(default=63, ge=1, le=255, description="Maximum instance name length (one DNS label).")
    service_type_max_length: int = Field(default=16, ge=1, le=63, description="Maximum base service type length, e.g. '_matterc'.")
    host_name_max_length: int = Field(default=63, ge=1, le=255, description="Host names longer than this are truncated.")

    @property
    def type_and_protocol_max_length(self) -> int:
        # <type>.<protocol>, protocol text being "_tcp" or "_udp"
        return self.service_type_max_length + 1 + len("_tcp")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format ('json' or 'console')")


class ZeroconfConfig(BaseModel):
    """Configuration for the bundled python-zeroconf backend."""

    interfaces: List[str] = Field(default_factory=list, description="Network interfaces to bind and advertise on. Empty means all non-loopback interfaces.")
    ip_version: str = Field(default="all", description="IP versions to use: 'all', 'v4' or 'v6'.")
    domain: str = Field(default="local.", description="mDNS domain appended to service types.")
    resolve_timeout_ms: int = Field(default=3000, ge=100, le=60000, description="Timeout for a single resolve request.")
    resolver_workers: int = Field(default=4, ge=1, le=64, description="Worker threads that run resolve requests.")


class BridgeConfig(BaseSettings):
    """Main configuration for the bridge. Loads from environment variables prefixed with DNSSD_BRIDGE_."""

    model_config = SettingsConfigDict(
        env_prefix='DNSSD_BRIDGE_',
        env_nested_delimiter='__', # e.g., DNSSD_BRIDGE_LIMITS__INSTANCE_NAME_MAX_LENGTH
        extra='ignore',
        env_file='.env',
        env_file_encoding='utf-8'
    )

    limits: DnssdLimits = Field(default_factory=DnssdLimits)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    zeroconf: ZeroconfConfig = Field(default_factory=ZeroconfConfig)
    default_service_type: Optional[str] = Field(default=None, description="Service type used by the CLI when none is given.")

    @classmethod
    def from_file(cls, file_path: Path) -> "BridgeConfig":
        """Create configuration strictly from a JSON file.
        Environment variables are not layered on top.
        """
        with open(file_path) as f:
            config_data = json.load(f)
        return cls.model_validate(config_data)

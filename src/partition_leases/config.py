"""Lease coordination configuration model."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

BACKENDS = ("memory", "redis")

CONFIG_SECTION = "partition_leases"


@dataclass
class LeaseConfig:
    """Configuration for lease and checkpoint stores."""

    backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "partition_leases"
    hub_name: str = "events"
    partition_count: int = 4
    lease_duration: float = 30.0
    renew_interval: float = 10.0
    management_attempts: int = 3
    management_retry_delay: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate lease configuration."""
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")
        if not self.key_prefix:
            raise ValueError("key_prefix must not be empty")
        if not self.hub_name:
            raise ValueError("hub_name must not be empty")
        if self.partition_count < 1:
            raise ValueError("partition_count must be >= 1")
        if self.lease_duration < 1:
            raise ValueError("lease_duration must be >= 1")
        if self.renew_interval <= 0:
            raise ValueError("renew_interval must be > 0")
        if self.renew_interval >= self.lease_duration:
            raise ValueError("renew_interval must be < lease_duration")
        if self.management_attempts < 1:
            raise ValueError("management_attempts must be >= 1")
        if self.management_retry_delay < 0:
            raise ValueError("management_retry_delay must be >= 0")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LeaseConfig":
        """Create LeaseConfig from dictionary.

        Args:
            data: Dictionary with lease configuration, or None/empty

        Returns:
            LeaseConfig instance
        """
        if not data:
            return cls()

        known_fields = set(cls.__dataclass_fields__)
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def _read_section(path: str) -> dict:
    with open(path, "r") as f:
        full_config = yaml.safe_load(f) or {}
    return full_config.get(CONFIG_SECTION) or {}


def load_lease_config(config_path: str = "config.yaml") -> LeaseConfig:
    """Load lease configuration from a YAML config file.

    Values come from the `partition_leases` section. A sibling
    `<name>.local.yaml` file overrides individual keys.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        LeaseConfig loaded from the file, or the default config if the file
        or section is not found
    """
    config_data = {}
    if os.path.exists(config_path):
        config_data = _read_section(config_path)

    local = Path(config_path).with_suffix(".local.yaml")
    if local.exists():
        config_data.update(_read_section(str(local)))

    return LeaseConfig.from_dict(config_data)

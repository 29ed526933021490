"""Configuration for cdx-stats with YAML loading and validation."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .content_type import NormalizeOptions
from .errors import ConfigError

DEFAULT_START = "000000"
DEFAULT_END = "999999"
SEPARATORS = (", ", "\t")


def split_patterns(values: List[str]) -> List[str]:
    """Flatten option values that hold comma-separated pattern lists."""
    patterns: List[str] = []
    for value in values:
        patterns.extend(part for part in value.split(",") if part)
    return patterns


@dataclass
class ServiceConfig:
    host: str = "localhost"
    port: int = 8085
    index_dir: str = "/data/outbackcdx"

    def __post_init__(self):
        if not self.host:
            raise ValueError("service.host cannot be empty")
        self.port = int(self.port)
        if not 0 < self.port < 65536:
            raise ValueError(f"service.port out of range: {self.port}")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass
class LimitsConfig:
    connect_timeout_ms: int = 4000
    read_timeout_ms: int = 60000
    retry_delay_sec: float = 3.0

    def __post_init__(self):
        if self.connect_timeout_ms < 100:
            raise ValueError(f"connect_timeout_ms too low: {self.connect_timeout_ms}")
        if self.read_timeout_ms < 100:
            raise ValueError(f"read_timeout_ms too low: {self.read_timeout_ms}")
        if self.retry_delay_sec < 0:
            raise ValueError(f"retry_delay_sec must be >= 0, got {self.retry_delay_sec}")


@dataclass
class OutputConfig:
    separator: str = ", "

    def __post_init__(self):
        if self.separator not in SEPARATORS:
            raise ValueError("output.separator must be ', ' or a TAB")


@dataclass
class LogsConfig:
    log_file: Optional[str] = None
    log_level: str = "INFO"


@dataclass
class FilterConfig:
    """Allow-lists per dimension plus the inclusive time range."""
    collections: List[str] = field(default_factory=list)
    domains: List[str] = field(default_factory=list)
    sub_domains: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    start: str = DEFAULT_START
    end: str = DEFAULT_END

    def __post_init__(self):
        # collection patterns may legitimately contain commas
        self.domains = split_patterns(self.domains)
        self.sub_domains = split_patterns(self.sub_domains)
        self.types = split_patterns(self.types)
        self.extensions = split_patterns(self.extensions)

    def is_default(self) -> bool:
        return (
            not (self.collections or self.domains or self.sub_domains or self.types or self.extensions)
            and self.start == DEFAULT_START
            and self.end == DEFAULT_END
        )


@dataclass
class MergeConfig:
    """Dimensions collapsed to the wildcard."""
    collections: bool = False
    domains: bool = False
    sub_domains: bool = False
    months: bool = False
    types: bool = False
    extensions: bool = False

    @classmethod
    def total(cls) -> "MergeConfig":
        return cls(True, True, True, True, True, True)

    def is_default(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


@dataclass
class StatsConfig:
    service: ServiceConfig = field(default_factory=ServiceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logs: LogsConfig = field(default_factory=LogsConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatsConfig":
        sections = {
            "service": ServiceConfig,
            "limits": LimitsConfig,
            "output": OutputConfig,
            "logs": LogsConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, section_cls in sections.items():
            value = data.get(name) or {}
            if not isinstance(value, dict):
                raise ConfigError(f"Section '{name}' must be a mapping.")
            try:
                kwargs[name] = section_cls(**value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid '{name}' section: {e}") from e
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str) -> "StatsConfig":
        """Load a YAML configuration file."""
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            try:
                data = yaml.safe_load(handle) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed configuration file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping.")

        return cls.from_dict(data)


__all__ = [
    "ConfigError",
    "FilterConfig",
    "LimitsConfig",
    "LogsConfig",
    "MergeConfig",
    "NormalizeOptions",
    "OutputConfig",
    "ServiceConfig",
    "StatsConfig",
]

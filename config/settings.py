"""
Configuration management using Pydantic Settings v2+
Environment-based configuration with validation and type safety
"""

import tempfile
from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic.types import NonNegativeFloat, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict

from dumbometrics.model import normalize_namespace

DEFAULT_NAMESPACE = "dumbometrics"
DEFAULT_CACHE_DIRECTORY = Path(tempfile.gettempdir()) / "achetronic" / "dumbometrics"


class Environment(str, Enum):
    """Environment types"""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Log levels"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CacheBackend(str, Enum):
    """Persistence backends for the metrics snapshot"""

    FILESYSTEM = "filesystem"
    MEMORY = "memory"


class ServerSettings(BaseSettings):
    """HTTP exposition endpoint binding"""

    ip: str = Field(default="0.0.0.0", description="Address to bind the metrics server")
    port: PositiveInt = Field(
        default=9090, le=65535, description="Port for the metrics server"
    )

    model_config = SettingsConfigDict(
        env_prefix="DUMBOMETRICS_METRICS_",
        case_sensitive=False,
        validate_assignment=True,
    )


class RegistrySettings(BaseSettings):
    """Metrics registry settings"""

    namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        validation_alias=AliasChoices(
            "DUMBOMETRICS_METRICS_NAMESPACE", "METRICS_NAMESPACE"
        ),
        description="Prefix prepended to every exposed metric name",
    )

    @field_validator("namespace", mode="before")
    @classmethod
    def normalize(cls, v):
        """Lower-case the namespace; blank values fall back to the default"""
        if v is None or not str(v).strip():
            return DEFAULT_NAMESPACE
        return normalize_namespace(str(v))

    model_config = SettingsConfigDict(
        env_prefix="DUMBOMETRICS_METRICS_",
        case_sensitive=False,
        populate_by_name=True,
        validate_assignment=True,
    )


class CacheSettings(BaseSettings):
    """Snapshot persistence settings"""

    backend: CacheBackend = Field(
        default=CacheBackend.FILESYSTEM,
        description="Where the snapshot survives between requests: filesystem or memory",
    )
    directory: Path = Field(
        default=DEFAULT_CACHE_DIRECTORY,
        description="Directory holding the snapshot blob (filesystem backend)",
    )
    key: str = Field(
        default="metrics", min_length=1, description="Key the snapshot is stored under"
    )
    lock_timeout: PositiveFloat = Field(
        default=10.0, description="Seconds to wait for the snapshot file lock"
    )

    @field_validator("backend", mode="before")
    @classmethod
    def expand_backend_alias(cls, v):
        """Accept the short "fs" selector for the filesystem backend"""
        if isinstance(v, str) and v.strip().lower() == "fs":
            return CacheBackend.FILESYSTEM
        return v

    model_config = SettingsConfigDict(
        env_prefix="DUMBOMETRICS_CACHE_",
        case_sensitive=False,
        validate_assignment=True,
    )


class ExampleSettings(BaseSettings):
    """Demonstration routes under /example"""

    enabled: bool = Field(default=False, description="Serve the /example routes")
    delay_seconds: NonNegativeFloat = Field(
        default=5.0, description="Sleep duration of /example/delay"
    )

    model_config = SettingsConfigDict(
        env_prefix="DUMBOMETRICS_EXAMPLES_",
        case_sensitive=False,
        validate_assignment=True,
    )


class LoggingSettings(BaseSettings):
    """Logging settings"""

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Application log level"
    )

    log_directory: Path = Field(
        default=Path("logs"), description="Directory for log files"
    )

    log_to_file: bool = Field(
        default=False, description="Write JSON log files with daily rotation"
    )

    log_retention_days: PositiveInt = Field(
        default=30, description="Days to retain log files"
    )

    json_console: bool = Field(
        default=False, description="Emit console logs as JSON lines"
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_", case_sensitive=False, validate_assignment=True
    )


class ApplicationSettings(BaseSettings):
    """Main application configuration combining all settings"""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="env",
        description="Application environment",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    examples: ExampleSettings = Field(default_factory=ExampleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    version: str = Field(default="1.0.0", description="Application version")

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )


def get_settings() -> ApplicationSettings:
    """Load application settings from the environment"""
    return ApplicationSettings()

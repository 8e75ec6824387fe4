"""Engine settings, read from the environment and an optional ``.env`` file."""

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration of the enrollment and progress engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    app_name: str = Field(default="lms-engine", description="Service name")
    app_version: str = Field(default="0.1.0", description="Service version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=True, description="Reload on code changes")
    api_host: str = Field(default="0.0.0.0", description="Bind address")
    api_port: int = Field(default=8000, description="Bind port")

    # Tenancy and admission
    tenant_header: str = Field(
        default="X-Org-ID", description="Header carrying the organization id"
    )
    admission_max_cas_attempts: int = Field(
        default=8,
        ge=1,
        description="Rounds of every compare-and-set loop (seats, enrollments, progress)",
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(default=["localhost"])
    cassandra_port: int = Field(default=9042)
    cassandra_keyspace: str = Field(default="lms")
    cassandra_datacenter: str = Field(
        default="datacenter1", description="Local datacenter for routing and LWT"
    )
    cassandra_username: str | None = None
    cassandra_password: str | None = None
    cassandra_protocol_version: int = Field(default=4)
    cassandra_connect_timeout: float = Field(default=10.0)
    cassandra_request_timeout: float = Field(default=10.0)
    cassandra_replication_factor: int = Field(
        default=3, ge=1, description="Replicas in the local datacenter (production)"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    log_format: Literal["json", "console"] = "console"
    log_include_caller_info: bool = True
    log_to_file: bool = True
    log_dir: str = "logs"
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="10MB")
    log_file_backup_count: int = 5
    log_requests: bool = True
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths without request start/finish logs",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"])
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = Field(default=["*"])
    cors_allow_headers: list[str] = Field(default=["*"])
    cors_max_age: int = 600

    @field_validator("tenant_header")
    @classmethod
    def _tenant_header_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tenant_header cannot be blank")
        return value

    @field_validator("cassandra_keyspace")
    @classmethod
    def _keyspace_identifier(cls, value: str) -> str:
        # Interpolated into CQL, so it must be a plain identifier
        if not value.replace("_", "").isalnum():
            raise ValueError("cassandra_keyspace must be alphanumeric/underscore")
        return value

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    @property
    def cassandra_replication(self) -> dict[str, Any]:
        """Keyspace replication map for the current environment."""
        if self.is_production:
            return {
                "class": "NetworkTopologyStrategy",
                self.cassandra_datacenter: self.cassandra_replication_factor,
            }
        return {"class": "SimpleStrategy", "replication_factor": 1}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

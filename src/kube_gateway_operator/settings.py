"""Environment-driven configuration for the kube-gateway operator."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_JWT_KEY_SIZE, MINIMUM_JWT_KEY_SIZE


class Settings(BaseSettings):
    """Operator configuration, read once at import from the environment or a .env file."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    operator_name: str = Field(
        default="kube-gateway-operator",
        validation_alias="OPERATOR_NAME",
        description="Peering name shared by all replicas of this operator",
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Emit one JSON object per log line",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Tag log lines of a reconcile with a shared id",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Keep access log lines for /healthz, /ready and /metrics",
    )
    handler_entry_log_level: str = Field(
        default="INFO", validation_alias="HANDLER_ENTRY_LOG_LEVEL"
    )

    namespaces: str = Field(
        default="",
        validation_alias="KUBE_GATEWAY_OPERATOR_NAMESPACES",
        description="Namespaces to watch, comma separated; empty watches the cluster",
    )

    # Reconciliation
    max_workers: int = Field(
        default=20,
        validation_alias="MAX_WORKERS",
        description="Upper bound on GateServers handled at the same time",
    )
    jwt_key_size: int = Field(
        default=DEFAULT_JWT_KEY_SIZE,
        validation_alias="JWT_KEY_SIZE",
        description="Modulus length of generated RSA signing keys",
    )
    strict_teardown: bool = Field(
        default=False,
        validation_alias="STRICT_TEARDOWN",
        description="Hold the finalizer until every dependent object is gone",
    )

    metrics_port: int = Field(default=8081, validation_alias="METRICS_PORT")
    metrics_host: str = Field(default="0.0.0.0", validation_alias="METRICS_HOST")

    @field_validator("jwt_key_size")
    @classmethod
    def validate_jwt_key_size(cls, v: int) -> int:
        if v < MINIMUM_JWT_KEY_SIZE:
            raise ValueError(
                f"JWT key size must be at least {MINIMUM_JWT_KEY_SIZE} bits, got {v}"
            )
        return v

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Namespaces from KUBE_GATEWAY_OPERATOR_NAMESPACES, or None for all of them."""
        names = [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return names or None


settings = Settings()

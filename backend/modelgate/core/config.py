"""
Runtime configuration for model selection and ensemble verification.

Environment configuration:
- CANARY_ENABLED: Route a share of traffic to canary models (default: false)
- CANARY_PERCENT: Share of (user, project, role) buckets sent to canary, 0-100 (default: 5)
- CANARY_CRITICAL_ONLY: Only consider canary models for critical tasks (default: false)
- CANARY_EXCLUDE_ROLES: Comma-separated roles that never use canary models
- VERIFICATION_QUORUM_SIZE: Default number of agreeing models for destructive operations (default: 2)
- VERIFICATION_AGREEMENT_THRESHOLD: Minimum agreement score, 0.0-1.0 (default: 0.7)
- VERIFICATION_MEMBER_TIMEOUT_SECONDS: Per panel member execution timeout (default: 60)
- VERIFICATION_AUDIT_TIMEOUT_SECONDS: Upper bound for a single audit write (default: 2)
- REGISTRY_CACHE_TTL_SECONDS: Model registry refresh interval (default: 300)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: INFO)
- LOG_JSON: JSON log lines when true, console rendering otherwise (default: true)
- OTEL_SERVICE_NAME: Service name on logs and spans (default: modelgate)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint; spans are exported only when set
- OTEL_TRACES_SAMPLER_ARG: Trace sampling rate, 0.0-1.0 (default: 1.0)

A `.env` file in the repository root is loaded first if present.
"""
import os
from pathlib import Path
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modelgate.core.logging import get_logger

logger = get_logger(__name__)

env_path = Path(__file__).parent.parent.parent.parent / ".env"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when configuration values are out of range or malformed."""
    pass


class CanaryConfig(BaseModel):
    """Canary routing configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    percentage: int = Field(5, ge=0, le=100)
    critical_only: bool = False
    excluded_roles: FrozenSet[str] = Field(default_factory=frozenset)


class VerificationConfig(BaseModel):
    """Ensemble verification defaults."""

    model_config = ConfigDict(frozen=True)

    quorum_size: int = Field(2, ge=1)
    agreement_threshold: float = Field(0.7, ge=0.0, le=1.0)
    member_timeout_seconds: float = Field(60.0, gt=0.0)
    audit_timeout_seconds: float = Field(2.0, gt=0.0)


class ObservabilityConfig(BaseModel):
    """Logging and tracing setup, applied by configure_observability."""

    model_config = ConfigDict(frozen=True)

    log_level: str = "INFO"
    log_json: bool = True
    service_name: str = Field("modelgate", min_length=1)
    otlp_endpoint: Optional[str] = None
    sampling_rate: float = Field(1.0, ge=0.0, le=1.0)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}")
        return level


class Settings(BaseModel):
    """Top-level settings bundle."""

    model_config = ConfigDict(frozen=True)

    canary: CanaryConfig = Field(default_factory=CanaryConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    registry_cache_ttl_seconds: float = Field(300.0, ge=0.0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError if a value cannot be parsed or is out of range.
        """
        env = os.environ if environ is None else environ

        canary_values = {
            "enabled": _parse_bool(env.get("CANARY_ENABLED"), False),
            "percentage": _parse_number(env, "CANARY_PERCENT", int, 5),
            "critical_only": _parse_bool(env.get("CANARY_CRITICAL_ONLY"), False),
            "excluded_roles": frozenset(
                role.strip()
                for role in (env.get("CANARY_EXCLUDE_ROLES") or "").split(",")
                if role.strip()
            ),
        }
        verification_values = {
            "quorum_size": _parse_number(env, "VERIFICATION_QUORUM_SIZE", int, 2),
            "agreement_threshold": _parse_number(env, "VERIFICATION_AGREEMENT_THRESHOLD", float, 0.7),
            "member_timeout_seconds": _parse_number(env, "VERIFICATION_MEMBER_TIMEOUT_SECONDS", float, 60.0),
            "audit_timeout_seconds": _parse_number(env, "VERIFICATION_AUDIT_TIMEOUT_SECONDS", float, 2.0),
        }
        observability_values = {
            "log_level": (env.get("LOG_LEVEL") or "INFO").strip() or "INFO",
            "log_json": _parse_bool(env.get("LOG_JSON"), True),
            "service_name": (env.get("OTEL_SERVICE_NAME") or "modelgate").strip() or "modelgate",
            "otlp_endpoint": (env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip() or None,
            "sampling_rate": _parse_number(env, "OTEL_TRACES_SAMPLER_ARG", float, 1.0),
        }

        try:
            return cls(
                canary=CanaryConfig(**canary_values),
                verification=VerificationConfig(**verification_values),
                observability=ObservabilityConfig(**observability_values),
                registry_cache_ttl_seconds=_parse_number(env, "REGISTRY_CACHE_TTL_SECONDS", float, 300.0),
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _parse_number(env: Mapping[str, str], key: str, cast, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a valid {cast.__name__}, got {raw!r}") from exc


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Global accessor; loads `.env` and the environment on first use."""
    global _settings
    if _settings is None:
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("env_loaded", env_path=str(env_path))
        _settings = Settings.from_env()
        logger.info(
            "settings_loaded",
            canary_enabled=_settings.canary.enabled,
            canary_percentage=_settings.canary.percentage,
            quorum_size=_settings.verification.quorum_size,
            agreement_threshold=_settings.verification.agreement_threshold,
        )
    return _settings


def reset_settings() -> None:
    """Drop cached settings (used by tests and after environment changes)."""
    global _settings
    _settings = None

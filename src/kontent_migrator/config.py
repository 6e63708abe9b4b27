"""Configuration for the Kontent.ai environment and for migration runs."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from . import utils
from .exceptions import MigrationConfigError

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

ENVIRONMENT_ID_ENV_VAR: Final[str] = "KONTENT_ENVIRONMENT_ID"
_LEGACY_ENVIRONMENT_ID_ENV_VAR: Final[str] = "KONTENT_PROJECT_ID"
MANAGEMENT_KEY_ENV_VAR: Final[str] = "KONTENT_MANAGEMENT_API_KEY"  # noqa: S105
PREVIEW_KEY_ENV_VAR: Final[str] = "KONTENT_PREVIEW_API_KEY"  # noqa: S105

# Values shipped in example .env files; they count as unset
_PLACEHOLDERS: Final[frozenset[str]] = frozenset(
    {"your-project-id", "your-environment-id", "your-management-api-key", "your-preview-api-key"}
)

DEFAULT_FALLBACK_LANGUAGES: Final[tuple[str, ...]] = ("en", "de", "es", "zh")
MIN_BATCH_SIZE: Final[int] = 1
MAX_BATCH_SIZE: Final[int] = 50


@dataclass(frozen=True)
class KontentConfig:
    """Connection settings for one Kontent.ai environment."""

    environment_id: str
    management_api_key: str = field(repr=False)
    preview_api_key: str = field(repr=False)
    delivery_base_url: str = "https://preview-deliver.kontent.ai"
    management_base_url: str = "https://manage.kontent.ai/v2"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 2.0


@dataclass(frozen=True)
class MigrationSettings:
    """Per-run policy knobs of the migration engine."""

    language: str = "en"
    # None means: ask the repository for its default language
    default_language: str | None = None
    fallback_languages: tuple[str, ...] = DEFAULT_FALLBACK_LANGUAGES
    publish_batch_size: int = 5
    publish_delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if not self.language:
            msg = "A migration language is required"
            raise MigrationConfigError(msg)
        if not MIN_BATCH_SIZE <= self.publish_batch_size <= MAX_BATCH_SIZE:
            msg = f"Publish batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, got {self.publish_batch_size}"
            raise MigrationConfigError(msg)


def _clean(value: str | None) -> str | None:
    if not value or value in _PLACEHOLDERS:
        return None
    return value


def _get_secret(env: Mapping[str, str], env_var: str, pass_path: str | None) -> str | None:
    """Get a secret from pass path first, then from the environment."""
    if pass_path:
        return _clean(utils.get_pass_value(pass_path))
    return _clean(env.get(env_var))


def load_config(
    env: Mapping[str, str] | None = None,
    *,
    management_pass_path: str | None = None,
    preview_pass_path: str | None = None,
    timeout_seconds: float | None = None,
) -> KontentConfig:
    """Load the Kontent.ai configuration from environment variables and pass.

    Raises:
        MigrationConfigError: If any credential is missing
    """
    env = os.environ if env is None else env

    environment_id = _clean(env.get(ENVIRONMENT_ID_ENV_VAR)) or _clean(env.get(_LEGACY_ENVIRONMENT_ID_ENV_VAR))
    management_api_key = _get_secret(env, MANAGEMENT_KEY_ENV_VAR, management_pass_path)
    preview_api_key = _get_secret(env, PREVIEW_KEY_ENV_VAR, preview_pass_path)

    missing = [
        name
        for name, value in (
            (ENVIRONMENT_ID_ENV_VAR, environment_id),
            (MANAGEMENT_KEY_ENV_VAR, management_api_key),
            (PREVIEW_KEY_ENV_VAR, preview_api_key),
        )
        if not value
    ]
    if missing:
        msg = f"Missing Kontent.ai credentials: {', '.join(missing)}"
        raise MigrationConfigError(msg)

    assert environment_id and management_api_key and preview_api_key  # narrowed by the check above
    overrides: dict[str, Any] = {}
    if timeout_seconds is not None:
        overrides["timeout_seconds"] = timeout_seconds

    logger.info(f"Using Kontent.ai environment {environment_id}")
    return KontentConfig(
        environment_id=environment_id,
        management_api_key=management_api_key,
        preview_api_key=preview_api_key,
        **overrides,
    )


def configuration_status(env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Report which credentials are configured without exposing their values."""
    env = os.environ if env is None else env
    environment_id = _clean(env.get(ENVIRONMENT_ID_ENV_VAR)) or _clean(env.get(_LEGACY_ENVIRONMENT_ID_ENV_VAR))
    management_api_key = _clean(env.get(MANAGEMENT_KEY_ENV_VAR))
    preview_api_key = _clean(env.get(PREVIEW_KEY_ENV_VAR))

    status = {
        "has_environment_id": environment_id is not None,
        "has_management_key": management_api_key is not None,
        "has_preview_key": preview_api_key is not None,
        "environment_id": environment_id,
        "management_key_length": len(management_api_key or ""),
        "preview_key_length": len(preview_api_key or ""),
    }
    status["is_valid"] = status["has_environment_id"] and status["has_management_key"] and status["has_preview_key"]
    if not status["is_valid"]:
        logger.warning(f"Kontent.ai configuration incomplete: {status}")
    return status

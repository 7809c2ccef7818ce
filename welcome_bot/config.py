"""Configuration with JSON file, config.yml, secrets.yml, and env variable support."""

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from welcome_bot.enums import DedupPolicy
from welcome_bot.services.onboarding_dispatcher import (
    DEFAULT_BODY_TEMPLATE,
    DEFAULT_TITLE_TEMPLATE,
    DEFAULT_UNCONFIGURED_TEMPLATE,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "WELCOME_"

# secrets.yml sections whose keys map onto top-level fields without a prefix.
_UNPREFIXED_SECTIONS = {"matrix"}


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    First directory containing `pyproject.toml`, otherwise the current
    working directory.
    """

    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


def _flatten_secrets_mapping(secrets: dict) -> dict:
    """Flatten secrets mapping into BotConfig-compatible keys.

    Converts nested YAML structure to flat config keys:
        matrix.access_token -> access_token
        error_log.level -> error_log_level
    """
    flat = {}
    for section, values in secrets.items():
        if isinstance(values, dict):
            for key, value in values.items():
                if section in _UNPREFIXED_SECTIONS:
                    flat[key] = value
                else:
                    flat[f"{section}_{key}"] = value
        else:
            flat[section] = values
    return flat


def _load_secrets(secrets_path: Path) -> dict:
    """Load and flatten secrets from YAML file."""
    if not secrets_path.exists():
        return {}

    with open(secrets_path, encoding="utf-8") as f:
        secrets = yaml.safe_load(f) or {}

    if not isinstance(secrets, dict):
        return {}

    return _flatten_secrets_mapping(secrets)


def _check_template(template: str, **placeholders: str) -> str:
    try:
        template.format(**placeholders)
    except (KeyError, IndexError, ValueError) as e:
        raise ValueError(f"invalid template {template!r}: {e}") from e
    return template


class BotConfig(BaseSettings):
    """Configuration with JSON file + config.yml + secrets.yml + env var support.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - non-secret overlay at the repo root
    3. secrets.yml - access token and other sensitive values
    4. Environment variables - runtime overrides

    Prefix: WELCOME_ (e.g., WELCOME_ACCESS_TOKEN)
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Matrix connection
    homeserver: str = Field(...)
    access_token: str = Field(...)
    user_id: str | None = Field(
        default=None, description="Bot MXID; resolved with whoami when empty."
    )
    device_id: str | None = Field(
        default=None, description="Device ID; resolved with whoami when empty."
    )

    # End-to-end encryption
    encryption_enabled: bool = Field(default=True)
    crypto_db_path: str = Field(default="./data/crypto.db")
    crypto_pickle_key: str = Field(default="welcome_bot")
    dm_encrypted: bool = Field(
        default=True, description="Create welcome DMs with m.room.encryption enabled."
    )

    # Onboarding behaviour
    log_room_id: str | None = Field(
        default=None, description="Optional room receiving a notice for every welcome sent."
    )
    global_welcome: bool = Field(
        default=False,
        description="Use one shared welcome for all target rooms instead of one per room.",
    )
    target_room_prefix: str = Field(default="INFO")
    target_room_exact_name: str = Field(default="Accueil des nouveaux•elles")
    command_prefix: str = Field(default="!welcome")
    admin_power_level: int = Field(default=50)
    dedup_policy: DedupPolicy = Field(
        default=DedupPolicy.MARK_THEN_SEND,
        description=(
            "mark_then_send never duplicates a welcome but may miss one if the bot "
            "crashes mid-send; send_then_mark retries on the next join instead."
        ),
    )
    event_workers: int = Field(
        default=1, ge=1, description="Number of tasks consuming the event queue."
    )

    # Welcome templates
    welcome_title_template: str = Field(default=DEFAULT_TITLE_TEMPLATE)
    welcome_body_template: str = Field(default=DEFAULT_BODY_TEMPLATE)
    welcome_cta: str = Field(default="")
    unconfigured_dm_template: str = Field(default=DEFAULT_UNCONFIGURED_TEMPLATE)

    # Persistence
    welcome_store_path: str = Field(default="./data/welcome_store.json")
    welcomed_store_path: str = Field(default="./data/welcomed.json")

    # Logging
    log_level: str = Field(default="INFO")
    error_log_file_enabled: bool = Field(default=True)
    error_log_file_path: str = Field(default="./logs/errors.log")
    error_log_level: str = Field(default="WARNING")
    error_log_max_bytes: int = Field(default=10_485_760)
    error_log_backup_count: int = Field(default=5)

    @field_validator("homeserver")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("homeserver is required")
        return v.rstrip("/")

    @field_validator("command_prefix")
    @classmethod
    def _non_empty_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("command_prefix must not be empty")
        return v

    @field_validator("welcome_title_template", "welcome_cta")
    @classmethod
    def _check_room_templates(cls, v: str) -> str:
        return _check_template(v, room_name="")

    @field_validator("welcome_body_template")
    @classmethod
    def _check_body_template(cls, v: str) -> str:
        return _check_template(v, room_name="", text="")

    @field_validator("unconfigured_dm_template")
    @classmethod
    def _check_unconfigured_template(cls, v: str) -> str:
        return _check_template(v, room_name="", prefix="")

    @classmethod
    def from_json_file(
        cls,
        config_path: str = "config.json",
        secrets_path: str = "secrets.yml",
    ) -> "BotConfig":
        """Load config from JSON + config.yml + secrets.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.
            secrets_path: Path to secrets YAML file.

        Returns:
            Configured BotConfig instance.
        """
        config_data: dict[str, Any] = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path, encoding="utf-8") as f:
                config_data = json.load(f)

        # Precedence: config.json < config.yml < secrets.yml < env
        repo_root = _find_repo_root(start=Path(__file__))
        cfg_yml = repo_root / "config.yml"
        if cfg_yml.is_file():
            try:
                with cfg_yml.open("r", encoding="utf-8") as f:
                    yml_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Ignoring unreadable %s: %s", cfg_yml, e)
                yml_data = {}
            if isinstance(yml_data, dict):
                config_data.update(yml_data)

        config_data.update(_load_secrets(Path(secrets_path)))

        # Drop file values that an env var overrides, so pydantic-settings
        # picks the env var instead of the init kwarg.
        keys_to_remove = [key for key in config_data if f"{ENV_PREFIX}{key.upper()}" in os.environ]
        for key in keys_to_remove:
            del config_data[key]

        return cls(**config_data)

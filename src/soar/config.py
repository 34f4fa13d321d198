"""Configuration management for Soar.

This module provides the persisted configuration model, file discovery for
the global (user-wide) and local (project-relative) sources, and the merge
of command-line overrides on top of the loaded file.

Configuration sources:
1. Global: $SOAR_PATH/config.yml, or ~/.config/soar/config.yml (platformdirs)
2. Local: ./.soar-local.yml in the current working directory

The source is chosen per invocation with ``--local``; the two are never
merged with each other. String values may reference environment variables
with ${VAR} syntax so that keys can be kept out of the file.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError, ConfigErrorKind
from .models import Surface

# Application identifiers for XDG paths
APP_NAME = "soar"
APP_AUTHOR = "pteropackages"

GLOBAL_CONFIG_NAMES = ("config.yml", "config.yaml")
LOCAL_CONFIG_NAME = ".soar-local.yml"


class SoarSettings(BaseSettings):
    """Process-level settings read from the environment.

    Attributes:
        path: Directory holding the global config file (SOAR_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="SOAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    path: Path | None = Field(default=None, description="Global config directory")


def get_config_dir() -> Path:
    """Get the directory of the global configuration file.

    Returns:
        $SOAR_PATH if set, otherwise the XDG config directory (~/.config/soar).

    Note:
        The directory is not created; only ``config setup`` writes files.
    """
    settings = SoarSettings()
    if settings.path is not None:
        return settings.path
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def get_local_config_file() -> Path:
    """Get path to the project-scoped configuration file."""
    return Path.cwd() / LOCAL_CONFIG_NAME


def get_global_config_file() -> Path:
    """Get the preferred path of the user-scoped configuration file."""
    return get_config_dir() / GLOBAL_CONFIG_NAMES[0]


# =============================================================================
# Configuration Models
# =============================================================================


class SurfaceConfig(BaseModel):
    """Panel URL and API key for one API surface.

    Attributes:
        url: Panel base URL, e.g. https://panel.example.com.
        key: API key sent as a bearer token.
    """

    model_config = ConfigDict(frozen=True)

    url: str = ""
    key: str = ""


class HttpOptions(BaseModel):
    """Response output options.

    Attributes:
        parse_body: Strip envelopes down to the resource attributes.
        parse_indent: Pretty-print output with 2-space indentation.
    """

    model_config = ConfigDict(frozen=True)

    parse_body: bool = True
    parse_indent: bool = True


class LogOptions(BaseModel):
    """Diagnostics output options."""

    model_config = ConfigDict(frozen=True)

    use_color: bool = True
    use_debug: bool = False
    quiet: bool = False


class EndpointCredentials(BaseModel):
    """Resolved base URL and token bound to one API surface."""

    model_config = ConfigDict(frozen=True)

    surface: Surface
    base_url: str
    token: str


class SoarConfig(BaseModel):
    """Root configuration model, as loaded and after overrides.

    Attributes:
        application: Credentials for the application (operator) API.
        client: Credentials for the client (end-user) API.
        http: Response output options.
        logs: Diagnostics output options.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    application: SurfaceConfig = Field(default_factory=SurfaceConfig)
    client: SurfaceConfig = Field(default_factory=SurfaceConfig)
    http: HttpOptions = Field(default_factory=HttpOptions)
    logs: LogOptions = Field(default_factory=LogOptions)

    def surface(self, surface: Surface) -> SurfaceConfig:
        """Get the configuration block of an API surface."""
        if surface is Surface.APPLICATION:
            return self.application
        return self.client

    def credentials(self, surface: Surface) -> EndpointCredentials:
        """Get the credentials view for an API surface.

        Empty values are allowed here; they are rejected when a request
        is built.
        """
        block = self.surface(surface)
        return EndpointCredentials(surface=surface, base_url=block.url, token=block.key)


class FlagOverrides(BaseModel):
    """Configuration values supplied on the command line.

    Only fields that were explicitly provided are set on the instance, so
    ``model_fields_set`` tells an explicit ``--no-parse-body`` apart from an
    option that was never passed.
    """

    model_config = ConfigDict(frozen=True)

    application_url: str | None = None
    application_key: str | None = None
    client_url: str | None = None
    client_key: str | None = None
    parse_body: bool | None = None
    parse_indent: bool | None = None
    use_color: bool | None = None
    use_debug: bool | None = None
    quiet: bool | None = None


# Override field -> (config section, section field)
OVERRIDE_FIELDS: dict[str, tuple[str, str]] = {
    "application_url": ("application", "url"),
    "application_key": ("application", "key"),
    "client_url": ("client", "url"),
    "client_key": ("client", "key"),
    "parse_body": ("http", "parse_body"),
    "parse_indent": ("http", "parse_indent"),
    "use_color": ("logs", "use_color"),
    "use_debug": ("logs", "use_debug"),
    "quiet": ("logs", "quiet"),
}


# =============================================================================
# Environment Variable Interpolation
# =============================================================================

_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


def _env_value(match: re.Match[str]) -> str:
    name = match.group(1)
    if name not in os.environ:
        raise ValueError(f"Environment variable '{name}' is not set")
    return os.environ[name]


def interpolate(value: Any) -> Any:
    """Resolve ${VAR} references in a loaded YAML value.

    Strings are substituted; mappings and lists are walked recursively;
    anything else (bools, numbers, null) is returned as is. Keys are never
    substituted.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_env_value, value)
    if isinstance(value, dict):
        return {key: interpolate(item) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate(item) for item in value]
    return value


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def find_config_file(local: bool) -> Path:
    """Find the selected configuration file.

    Args:
        local: Select the project-scoped file instead of the global one.

    Returns:
        Path to the configuration file.

    Raises:
        ConfigError: NOT_FOUND if the selected file does not exist.
    """
    if local:
        search_paths = [get_local_config_file()]
    else:
        config_dir = get_config_dir()
        search_paths = [config_dir / name for name in GLOBAL_CONFIG_NAMES]

    for path in search_paths:
        if path.is_file():
            return path

    scope = "local" if local else "global"
    raise ConfigError(
        ConfigErrorKind.NOT_FOUND,
        f"{scope} configuration file not found. "
        f"Searched: {', '.join(str(p) for p in search_paths)}",
    )


def load_raw_config(config_file: Path) -> dict[str, Any]:
    """Load raw YAML configuration.

    Args:
        config_file: Path to YAML configuration file.

    Returns:
        Parsed YAML as dictionary.

    Raises:
        ConfigError: PARSE if the file is unreadable or not a YAML mapping.
    """
    try:
        with open(config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(ConfigErrorKind.PARSE, f"failed to read {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            ConfigErrorKind.PARSE,
            f"{config_file}: expected a mapping at the top level",
        )
    return data


def load_config(local: bool, interpolate_env: bool = True) -> SoarConfig:
    """Locate and load the base configuration.

    Args:
        local: Load the project-scoped file instead of the global one.
        interpolate_env: Resolve ${VAR} references. Disabled when the
            result is written back to disk, so secrets stay in the environment.

    Returns:
        SoarConfig parsed from the file.

    Raises:
        ConfigError: If the file is missing or malformed.
    """
    config_path = find_config_file(local)
    raw_config = load_raw_config(config_path)

    try:
        if interpolate_env:
            raw_config = interpolate(raw_config)
        return SoarConfig.model_validate(raw_config)
    except ValueError as e:
        # Covers unset ${VAR} references and pydantic ValidationError
        raise ConfigError(ConfigErrorKind.PARSE, f"invalid configuration in {config_path}: {e}") from e


def apply_overrides(config: SoarConfig, overrides: FlagOverrides) -> SoarConfig:
    """Apply explicitly provided overrides on top of a loaded configuration.

    Fields that were never set on ``overrides`` leave the loaded value
    untouched, whatever their zero value is.

    Args:
        config: Base configuration.
        overrides: Command-line overrides.

    Returns:
        New SoarConfig with the overrides applied.
    """
    updates: dict[str, dict[str, Any]] = {}
    for name in overrides.model_fields_set:
        value = getattr(overrides, name)
        if value is None:
            continue
        section, field_name = OVERRIDE_FIELDS[name]
        updates.setdefault(section, {})[field_name] = value

    sections = {
        section: getattr(config, section).model_copy(update=values)
        for section, values in updates.items()
    }
    return config.model_copy(update=sections)


def resolve_config(local: bool, overrides: FlagOverrides | None = None) -> SoarConfig:
    """Build the effective configuration for one invocation.

    Args:
        local: Use the project-scoped file instead of the global one.
        overrides: Explicitly provided command-line values.

    Returns:
        Effective, immutable configuration.

    Raises:
        ConfigError: If the selected file is missing or malformed.
    """
    config = load_config(local)
    if overrides is None:
        return config
    return apply_overrides(config, overrides)


def write_raw_config(data: dict[str, Any], config_file: Path) -> None:
    """Write a YAML mapping to disk, creating parent directories.

    Raises:
        ConfigError: WRITE if the file or its directory cannot be written.
    """
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)
    except OSError as e:
        raise ConfigError(ConfigErrorKind.WRITE, f"failed to write {config_file}: {e}") from e


def dump_config(config: SoarConfig, config_file: Path) -> None:
    """Write a configuration to disk as YAML.

    Args:
        config: Configuration to persist.
        config_file: Destination path.
    """
    write_raw_config(config.model_dump(), config_file)


# =============================================================================
# Single-Key Updates
# =============================================================================


def config_keys() -> list[str]:
    """List every settable key in ``section.option`` form."""
    return [
        f"{section}.{name}"
        for section, info in SoarConfig.model_fields.items()
        for name in info.annotation.model_fields
    ]


def set_config_value(config_file: Path, key: str, value: str) -> Any:
    """Set one ``section.option`` key in a config file.

    The file is edited as raw YAML, so ${VAR} references in other keys are
    written back untouched.

    Args:
        config_file: File to update.
        key: Dotted key, e.g. ``application.key`` or ``http.parse_body``.
        value: New value as typed on the command line.

    Returns:
        The validated value that was written (e.g. ``False`` for "false").

    Raises:
        ValueError: If the key is unknown or the value has the wrong type.
        ConfigError: If the file cannot be read or written.
    """
    keys = config_keys()
    if key not in keys:
        raise ValueError(f"invalid config key '{key}'; valid keys: {', '.join(keys)}")

    section, name = key.split(".", 1)
    section_model = SoarConfig.model_fields[section].annotation
    typed = getattr(section_model.model_validate({name: value}), name)

    raw = load_raw_config(config_file)
    block = raw.get(section)
    if not isinstance(block, dict):
        block = {}
    raw[section] = {**block, name: typed}

    write_raw_config(raw, config_file)
    return typed

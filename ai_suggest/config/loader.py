"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml


DEFAULT_CONFIG_PATH = "~/.ai-suggest/config.yaml"
DEFAULT_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.0-flash:generateContent"
)

ENV_API_KEYS = "AI_SUGGEST_API_KEYS"
ENV_API_KEY = "GEMINI_API_KEY"


class ConfigurationError(ValueError):
    """Raised when the configuration cannot be used to start the service."""


@dataclass(frozen=True)
class SuggestionSettings:
    """When suggestions are requested and how long they may be."""
    enabled: bool = True
    min_input_length: int = 3
    max_suggestion_length: int = 30


@dataclass(frozen=True)
class CacheSettings:
    """Suggestion cache limits and location."""
    enabled: bool = True
    ttl_seconds: float = 3600.0
    max_entries: int = 1000
    path: str = "~/.ai-suggest/suggestion-cache.json"


@dataclass(frozen=True)
class UsageSettings:
    """Request quota, cooldown and cost rates."""
    daily_limit: int = 100
    cooldown_seconds: float = 5.0
    input_cost_per_million: float = 0.000075
    output_cost_per_million: float = 0.0003
    path: str = "~/.ai-suggest/usage.json"


@dataclass(frozen=True)
class ApiSettings:
    """Remote endpoint and the credential pool used against it."""
    url: str = DEFAULT_API_URL
    credentials: Tuple[str, ...] = ()
    timeout_seconds: float = 5.0
    credential_header: str = "X-goog-api-key"


@dataclass(frozen=True)
class ContextSettings:
    """Bounds for the environment snapshot."""
    max_directory_entries: int = 20
    max_recent_commands: int = 10
    prompt_recent_commands: int = 3
    probe_timeout_seconds: float = 2.0


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    suggestions: SuggestionSettings = field(default_factory=SuggestionSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    usage: UsageSettings = field(default_factory=UsageSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    context: ContextSettings = field(default_factory=ContextSettings)

    def require_credentials(self) -> "AppConfig":
        """Return self, or raise if no API credential is configured."""
        if not self.api.credentials:
            raise ConfigurationError(
                "No API credentials configured. Set 'api.credentials' in the "
                f"config file or export {ENV_API_KEYS} / {ENV_API_KEY}."
            )
        return self


# Key -> expected type(s) for every section. bool is checked before int
# because bool is an int subclass.
_SECTION_SCHEMAS: Dict[str, Tuple[type, Dict[str, tuple]]] = {
    "suggestions": (SuggestionSettings, {
        "enabled": (bool,),
        "min_input_length": (int,),
        "max_suggestion_length": (int,),
    }),
    "cache": (CacheSettings, {
        "enabled": (bool,),
        "ttl_seconds": (int, float),
        "max_entries": (int,),
        "path": (str,),
    }),
    "usage": (UsageSettings, {
        "daily_limit": (int,),
        "cooldown_seconds": (int, float),
        "input_cost_per_million": (int, float),
        "output_cost_per_million": (int, float),
        "path": (str,),
    }),
    "api": (ApiSettings, {
        "url": (str,),
        "credentials": (list,),
        "timeout_seconds": (int, float),
        "credential_header": (str,),
    }),
    "context": (ContextSettings, {
        "max_directory_entries": (int,),
        "max_recent_commands": (int,),
        "prompt_recent_commands": (int,),
        "probe_timeout_seconds": (int, float),
    }),
}

# Values that must be strictly positive.
_POSITIVE_KEYS = {
    "suggestions.min_input_length",
    "suggestions.max_suggestion_length",
    "cache.ttl_seconds",
    "cache.max_entries",
    "usage.daily_limit",
    "api.timeout_seconds",
    "context.max_directory_entries",
    "context.max_recent_commands",
    "context.probe_timeout_seconds",
}

# Values that must not be negative.
_NON_NEGATIVE_KEYS = {
    "usage.cooldown_seconds",
    "usage.input_cost_per_million",
    "usage.output_cost_per_million",
    "context.prompt_recent_commands",
}


def load_config(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    require_credentials: bool = True,
) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Strict validation ensures no silent misconfigurations; a typo in a key
    name is reported instead of quietly falling back to a default.

    Args:
        path: Path to YAML configuration file. A missing file means defaults.
        env: Environment mapping used for credentials (defaults to os.environ)
        require_credentials: Fail when the credential pool ends up empty

    Returns:
        Validated AppConfig object

    Raises:
        ConfigurationError: If the file is unreadable or the configuration is invalid
    """
    env = os.environ if env is None else env
    config_path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

    raw_config: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}")
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigurationError("Configuration file must contain a mapping")
            raw_config = loaded

    config = parse_config(raw_config)
    config = replace(
        config,
        api=replace(
            config.api,
            credentials=_merge_credentials(config.api.credentials, _env_credentials(env)),
        ),
    )

    if require_credentials:
        config.require_credentials()
    return config


def parse_config(raw_config: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from an already-parsed mapping.

    Raises:
        ConfigurationError: If a key is unknown or a value is invalid
    """
    unknown_keys = set(raw_config.keys()) - set(_SECTION_SCHEMAS)
    if unknown_keys:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(map(str, unknown_keys))}")

    sections = {}
    for section_name, (settings_cls, schema) in _SECTION_SCHEMAS.items():
        section_data = raw_config.get(section_name) or {}
        if not isinstance(section_data, dict):
            raise ConfigurationError(f"'{section_name}' must be a dictionary")
        sections[section_name] = settings_cls(
            **_parse_section(section_data, schema, section_name)
        )
    return AppConfig(**sections)


def _parse_section(data: Dict[str, Any], schema: Dict[str, tuple], path: str) -> Dict[str, Any]:
    """Validate one section against its schema.

    Args:
        data: Section data
        schema: Mapping of allowed keys to accepted types
        path: Section name for error messages

    Returns:
        Keyword arguments for the section's settings dataclass
    """
    unknown_keys = set(data.keys()) - set(schema)
    if unknown_keys:
        raise ConfigurationError(f"Unknown keys in {path}: {sorted(map(str, unknown_keys))}")

    values = {}
    for key, value in data.items():
        key_path = f"{path}.{key}"
        expected = schema[key]
        if (isinstance(value, bool) and bool not in expected) or not isinstance(value, expected):
            names = " or ".join(t.__name__ for t in expected)
            raise ConfigurationError(f"'{key_path}' must be of type {names}")
        if isinstance(value, float) and not math.isfinite(value):
            raise ConfigurationError(f"'{key_path}' must be a finite number")
        if key_path in _POSITIVE_KEYS and value <= 0:
            raise ConfigurationError(f"'{key_path}' must be > 0")
        if key_path in _NON_NEGATIVE_KEYS and value < 0:
            raise ConfigurationError(f"'{key_path}' must be >= 0")
        if key == "credentials":
            value = _parse_credentials(value, key_path)
        elif float in expected:
            value = float(value)
        values[key] = value
    return values


def _parse_credentials(value: List[Any], path: str) -> Tuple[str, ...]:
    credentials = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ConfigurationError(f"'{path}' entries must be non-empty strings")
        credentials.append(item.strip())
    return tuple(credentials)


def _env_credentials(env: Mapping[str, str]) -> Tuple[str, ...]:
    keys = [k.strip() for k in env.get(ENV_API_KEYS, "").split(",")]
    keys.append(env.get(ENV_API_KEY, "").strip())
    return tuple(k for k in keys if k)


def _merge_credentials(*groups: Tuple[str, ...]) -> Tuple[str, ...]:
    merged: List[str] = []
    for group in groups:
        for credential in group:
            if credential not in merged:
                merged.append(credential)
    return tuple(merged)


def default_config_yaml() -> str:
    """Render the default configuration as a starter YAML document."""
    defaults = AppConfig()
    document = {}
    for section_name in _SECTION_SCHEMAS:
        section = getattr(defaults, section_name)
        document[section_name] = {
            key: (list(value) if isinstance(value, tuple) else value)
            for key, value in vars(section).items()
        }
    return yaml.safe_dump(document, sort_keys=False)

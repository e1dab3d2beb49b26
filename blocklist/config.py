"""
config.py - Configuration loading and runtime settings

Two kinds of configuration:

    CompilationConfig  What to build: title/metadata, the ordered source list
                       and the global transformations. Read from config.json,
                       validated against config.schema.json, then frozen.

    Settings           How to run: cron cadence, timeouts, guards and paths.
                       Defaults below, overridable from the environment and
                       from the command line.

The JSON schema is the single source of truth for document shape; this module
only converts an already-valid document into typed objects.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Mapping

import jsonschema

from blocklist.errors import ConfigError

SCHEMA_PATH: Final[Path] = Path(__file__).with_name("config.schema.json")

# Runtime defaults
DEFAULT_SCHEDULE = "0 0 * * *"      # midnight
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_OUTPUT_PATH = "adguard-blocklist.txt"
DEFAULT_FETCH_TIMEOUT = 10.0        # seconds, per source
DEFAULT_COMPILE_TIMEOUT = 600.0     # seconds, whole run
DEFAULT_MIN_RULES = 100
DEFAULT_MIN_OUTPUT_BYTES = 1000
DEFAULT_MAX_FAILURES = 3
DEFAULT_UPDATE_INTERVAL = 86400     # seconds, used when config omits it


class SourceKind(str, Enum):
    ADBLOCK = "adblock"
    HOSTS = "hosts"


class Transformation(str, Enum):
    """Global post-processing stages, declared in canonical execution order."""
    REMOVE_COMMENTS = "RemoveComments"
    COMPRESS = "Compress"
    DEDUPLICATE = "Deduplicate"
    VALIDATE = "Validate"


DEFAULT_TRANSFORMATIONS: Final[tuple[Transformation, ...]] = (
    Transformation.REMOVE_COMMENTS,
    Transformation.DEDUPLICATE,
    Transformation.VALIDATE,
)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class SourceSpec:
    """One remote filter list."""
    name: str
    kind: SourceKind
    url: str
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("Source name must not be empty")
        if not self.url.startswith("https://"):
            raise ConfigError(
                f'Invalid source URL in source "{self.name}": "{self.url}". '
                "Only HTTPS URLs are allowed."
            )


@dataclass(frozen=True)
class CompilationConfig:
    """Everything one compilation run needs to know about the list it builds."""
    title: str
    description: str
    sources: tuple[SourceSpec, ...]
    homepage: str | None = None
    license: str | None = None
    version: str | None = None
    update_interval: int = DEFAULT_UPDATE_INTERVAL
    transformations: tuple[Transformation, ...] = DEFAULT_TRANSFORMATIONS

    @property
    def enabled_sources(self) -> tuple[SourceSpec, ...]:
        return tuple(s for s in self.sources if s.enabled)


# =============================================================================
# LOADING
# =============================================================================

@lru_cache(maxsize=1)
def load_schema() -> dict[str, Any]:
    """Read the bundled JSON schema."""
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        return json.load(f)


def validate_document(data: Any) -> None:
    """
    Validate a parsed config document against the bundled schema.

    All violations are collected and reported together.

    Raises:
        ConfigError: If the document does not match the schema
    """
    validator = jsonschema.Draft202012Validator(load_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        details = "\n".join(
            f"- at /{'/'.join(str(p) for p in e.absolute_path)} {e.message}"
            if e.absolute_path else f"- {e.message}"
            for e in errors
        )
        raise ConfigError(f"Invalid configuration format:\n{details}")


def parse_config(data: Any) -> CompilationConfig:
    """
    Validate a parsed JSON document and convert it to a CompilationConfig.

    Transformation tokens are reordered into canonical execution order.

    Example:
        >>> cfg = parse_config({
        ...     "name": "My list", "description": "merged",
        ...     "sources": [{"name": "a", "type": "hosts", "source": "https://a.example/h"}],
        ... })
        >>> cfg.sources[0].kind
        <SourceKind.HOSTS: 'hosts'>
    """
    validate_document(data)

    sources = tuple(
        SourceSpec(
            name=item["name"],
            kind=SourceKind(item["type"]),
            url=item["source"],
            enabled=item.get("enabled", True),
        )
        for item in data["sources"]
    )

    if "transformations" in data:
        requested = {Transformation(t) for t in data["transformations"]}
        transformations = tuple(t for t in Transformation if t in requested)
    else:
        transformations = DEFAULT_TRANSFORMATIONS

    return CompilationConfig(
        title=data["name"],
        description=data["description"],
        sources=sources,
        homepage=data.get("homepage"),
        license=data.get("license"),
        version=data.get("version"),
        update_interval=data.get("updateInterval", DEFAULT_UPDATE_INTERVAL),
        transformations=transformations,
    )


def load_config(path: str | os.PathLike[str]) -> CompilationConfig:
    """
    Read, parse and validate a configuration file.

    Raises:
        ConfigError: If the file is missing, not JSON, or invalid
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"Config file not found at {config_path}")
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse {config_path.name}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {config_path}: {e}") from e
    return parse_config(data)


# =============================================================================
# RUNTIME SETTINGS
# =============================================================================

def _env_number(environ: Mapping[str, str], key: str, default, cast, *, allow_zero: bool = False):
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ConfigError(f"{key} must be {qualifier}, got {raw!r}")
    return value


@dataclass
class Settings:
    """Process-level knobs. Independent of the compiled list's content."""
    schedule: str = DEFAULT_SCHEDULE
    config_path: Path = field(default_factory=lambda: Path(DEFAULT_CONFIG_PATH))
    output_path: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT_PATH))
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    compile_timeout: float = DEFAULT_COMPILE_TIMEOUT
    min_rules: int = DEFAULT_MIN_RULES
    min_output_bytes: int = DEFAULT_MIN_OUTPUT_BYTES
    max_failures: int = DEFAULT_MAX_FAILURES
    log_file: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        log_file = env.get("LOG_FILE")
        return cls(
            schedule=env.get("CRON_SCHEDULE") or DEFAULT_SCHEDULE,
            config_path=Path(env.get("CONFIG_PATH") or DEFAULT_CONFIG_PATH),
            output_path=Path(env.get("OUTPUT_PATH") or DEFAULT_OUTPUT_PATH),
            fetch_timeout=_env_number(env, "FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT, float),
            compile_timeout=_env_number(env, "COMPILE_TIMEOUT", DEFAULT_COMPILE_TIMEOUT, float),
            min_rules=_env_number(env, "MIN_RULES", DEFAULT_MIN_RULES, int, allow_zero=True),
            min_output_bytes=_env_number(
                env, "MIN_OUTPUT_BYTES", DEFAULT_MIN_OUTPUT_BYTES, int, allow_zero=True
            ),
            max_failures=_env_number(env, "MAX_FAILURES", DEFAULT_MAX_FAILURES, int),
            log_file=Path(log_file) if log_file else None,
        )

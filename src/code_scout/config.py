"""Configuration management - Pydantic model with YAML loading and CLI overrides."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from code_scout.errors import ConfigError
from code_scout.system_prompt import SYSTEM_PROMPT

DEFAULT_CONFIG_DIR = Path.home() / ".code-scout"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

_EXAMPLE_CONFIG = (
    "For Gemini through LiteLLM:\n"
    "  model: gemini/gemini-2.0-flash\n"
    "  api_key: <your key>\n\n"
    "For a LiteLLM proxy / OpenAI-compatible API:\n"
    "  model: litellm/gpt-4o\n"
    "  api_base: http://localhost:4000\n\n"
    "Optional fields: workspace_root, timeout_seconds, max_tool_rounds, limits"
)


class ToolLimits(BaseModel):
    """Caps applied to tool results. Hitting a cap sets the truncated flag."""

    model_config = ConfigDict(extra="forbid")

    max_read_chars: int = Field(default=100_000, gt=0)
    max_glob_results: int = Field(default=100, gt=0)
    max_grep_results: int = Field(default=50, gt=0)
    max_list_entries: int = Field(default=500, gt=0)
    max_list_depth: int = Field(default=5, ge=1, le=5)
    max_context_lines: int = Field(default=5, ge=0, le=5)
    max_tool_output_chars: int = Field(default=30_000, gt=0)


class ScoutConfig(BaseModel):
    """Session configuration with validation."""

    model_config = ConfigDict(extra="forbid")

    model: str
    api_base: str | None = None
    api_key: str | None = None

    # Model sampling parameters
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    max_output_tokens: int = Field(default=8192, gt=0, le=1_048_576)

    # Turn control
    timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    max_tool_rounds: int = Field(default=10, ge=1, le=100)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)

    # Workspace and tools
    workspace_root: Path = Field(default_factory=Path.cwd)
    system_instruction: str = SYSTEM_PROMPT
    ignore_patterns: list[str] = Field(default_factory=list)
    deny_tools: list[str] = Field(default_factory=list)
    limits: ToolLimits = Field(default_factory=ToolLimits)

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Model cannot be empty")
        return v.strip()

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("Must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("API key cannot be empty")
        return v

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: Path) -> Path:
        path = Path(v).expanduser().resolve()
        if not path.exists():
            raise ValueError(f"Workspace directory does not exist: {path}")
        if not path.is_dir():
            raise ValueError(f"Workspace path is not a directory: {path}")
        return path

    def __repr__(self) -> str:
        api_key_display = "***" if self.api_key else "None"
        return (
            f"ScoutConfig(model={self.model!r}, "
            f"api_base={self.api_base!r}, "
            f"api_key={api_key_display!r}, "
            f"workspace_root={str(self.workspace_root)!r}, "
            f"timeout_seconds={self.timeout_seconds!r}, "
            f"max_tool_rounds={self.max_tool_rounds!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


def _format_errors(e: ValidationError) -> str:
    errors = []
    for err in e.errors():
        field = ".".join(str(loc) for loc in err["loc"])
        errors.append(f"  - {field}: {err['msg']}")
    return "\n".join(errors)


def load_config(config_path: Path | None = None) -> ScoutConfig:
    """Load and validate config from YAML file.

    Args:
        config_path: Path to config file. Defaults to ~/.code-scout/config.yaml.

    Returns:
        Validated ScoutConfig instance.

    Raises:
        ConfigError: If file is missing, empty, or contains invalid config.
    """
    path = config_path or DEFAULT_CONFIG_FILE

    if not path.exists():
        raise ConfigError(
            f"Configuration file not found.\n\n"
            f"Expected location: {path}\n\n"
            f"{_EXAMPLE_CONFIG}"
        )

    raw = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}\n\n  {e}") from None

    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid configuration in {path}\n\n"
            f"  Config file is empty or not a valid YAML mapping.\n\n"
            f"{_EXAMPLE_CONFIG}"
        )

    try:
        return ScoutConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}\n\n{_format_errors(e)}") from None


def apply_cli_overrides(config: ScoutConfig, **overrides: Any) -> ScoutConfig:
    """Apply CLI flag overrides to config. Returns a new ScoutConfig instance.

    Override precedence: Defaults → YAML → CLI flags. ``None`` values are
    treated as "not given".
    """
    given = {k: v for k, v in overrides.items() if v is not None}
    if not given:
        return config

    try:
        return ScoutConfig.model_validate(config.model_dump() | given)
    except ValidationError as e:
        raise ConfigError(f"Invalid CLI override:\n\n{_format_errors(e)}") from None


def build_config(config_path: Path | None = None, **overrides: Any) -> ScoutConfig:
    """Resolve the effective config for one CLI invocation.

    Loads ``config_path`` (or the default file when it exists) and applies the
    overrides. Without any file, the overrides alone must name a model; the
    provider key is then taken from the environment by LiteLLM.

    Raises:
        ConfigError: If no usable configuration can be built.
    """
    if config_path is not None or DEFAULT_CONFIG_FILE.exists():
        return apply_cli_overrides(load_config(config_path), **overrides)

    given = {k: v for k, v in overrides.items() if v is not None}
    if "model" not in given:
        raise ConfigError(
            f"No configuration file found at {DEFAULT_CONFIG_FILE} and no --model given.\n\n"
            f"{_EXAMPLE_CONFIG}"
        )
    try:
        return ScoutConfig(**given)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n\n{_format_errors(e)}") from None

"""Configuration validation for the Ralph loop."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMPLETION_MARKER = "<promise>COMPLETE</promise>"

# Fatal error text emitted by the claude CLI when a session dies mid-stream
DEFAULT_ERROR_PATTERNS: list[str] = [
    r"Error: No messages returned",
    r"promise rejected with the reason",
]

DEFAULT_PROMPT_FILE = Path(__file__).resolve().parent / "prompt.md"


@dataclass
class Result(Generic[T]):
    """Type-safe result wrapper for operations that can fail."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> Result[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str = "UNKNOWN") -> Result[T]:
        return cls(success=False, error=error, error_code=code)


class LimitsConfig(BaseModel):
    """Iteration budget and inter-iteration delay."""

    max_iterations: int = Field(default=50, ge=1)
    retry_delay_seconds: float = Field(
        default=2.0, ge=0,
        description="Fixed pause between iterations (no backoff)",
    )


class ClaudeConfig(BaseModel):
    """Claude CLI invocation settings."""

    executable: str = Field(default="claude", min_length=1)
    print_mode: bool = Field(default=True)
    output_format: str = Field(default="stream-json")
    verbose: bool = Field(default=True)
    dangerously_skip_permissions: bool = Field(default=True)
    extra_args: list[str] = Field(default_factory=list)

    def build_command(self) -> list[str]:
        """Return the argv used to spawn one claude session."""
        args = [self.executable]
        if self.print_mode:
            args.append("--print")
        args.extend(["--output-format", self.output_format])
        if self.verbose:
            args.append("--verbose")
        if self.dangerously_skip_permissions:
            args.append("--dangerously-skip-permissions")
        args.extend(self.extra_args)
        return args


class PatternsConfig(BaseModel):
    """Completion sentinel and fatal error patterns."""

    completion_marker: str = Field(default=COMPLETION_MARKER, min_length=1)
    error_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ERROR_PATTERNS)
    )

    @field_validator("error_patterns")
    @classmethod
    def _check_regexes(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid error pattern {pattern!r}: {e}") from e
        return patterns


class SecurityConfig(BaseModel):
    """Log redaction settings."""

    log_redact_patterns: list[str] = Field(
        default_factory=lambda: [
            r"sk-ant-[\w-]+",
            r"sk-proj-[\w-]+",
        ]
    )


class RunnerConfig(BaseModel):
    """Root configuration model."""

    prompt_file: Path = Field(default=DEFAULT_PROMPT_FILE)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)


def load_config(config_path: str | Path | None) -> Result[RunnerConfig]:
    """Load and validate runner config from a JSON file.

    A missing path (or ``None``) yields the defaults.
    """
    if config_path is None:
        return Result.ok(RunnerConfig())

    path = Path(config_path)
    if not path.exists():
        logger.info("Config not found at %s, using defaults", path)
        return Result.ok(RunnerConfig())

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        return Result.fail(f"Invalid JSON in {path}: {e}", "JSON_ERROR")
    except OSError as e:
        return Result.fail(f"Cannot read {path}: {e}", "READ_ERROR")

    try:
        return Result.ok(RunnerConfig.model_validate(raw))
    except Exception as e:
        return Result.fail(f"Config validation failed: {e}", "VALIDATION_ERROR")


def apply_overrides(
    config: RunnerConfig,
    max_iterations: Optional[int] = None,
    prompt_file: str | Path | None = None,
) -> Result[RunnerConfig]:
    """Merge CLI overrides into ``config`` and re-validate the result."""
    raw = config.model_dump()
    if max_iterations is not None:
        raw["limits"]["max_iterations"] = max_iterations
    if prompt_file is not None:
        raw["prompt_file"] = Path(prompt_file)

    try:
        return Result.ok(RunnerConfig.model_validate(raw))
    except Exception as e:
        return Result.fail(f"Invalid arguments: {e}", "VALIDATION_ERROR")

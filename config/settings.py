"""
Configuration management for the post-build auto-commit runner.

This module provides centralized configuration management with:
- Environment-specific settings
- Type validation and defaults
- Git, watch set and output artifact configuration
- Logging configuration
"""

import shutil
from typing import Optional, List, Dict, Any
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import BaseSettings as PydanticBaseSettings


DEFAULT_GITIGNORE_PATTERNS = [
    "build/",
    "out/",
    "CMakeFiles/",
    "CMakeCache.txt",
    "cmake_install.cmake",
    "*.o",
    "*.obj",
    "*.exe",
    "*.pdb",
    "*.ilk",
    "*.log",
    ".vs/",
    ".vscode/",
    "__pycache__/",
]

DEFAULT_LOG_TAG = "[AutoCommit]"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class GitSettings(BaseSettings):
    """Git configuration settings."""

    executable: str = Field(default="git", description="Git executable name or path")
    remote_name: str = Field(default="origin", description="Remote used for publishing")
    default_branch: str = Field(default="main", description="Branch name used on first push")
    user_name: str = Field(default="AutoCommit Bot", description="Fallback commit author name")
    user_email: str = Field(
        default="autocommit@localhost", description="Fallback commit author email"
    )

    model_config = {"env_prefix": "AUTOCOMMIT_GIT_", "extra": "ignore"}

    @field_validator("remote_name", "default_branch")
    @classmethod
    def validate_ref_name(cls, v):
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("Git ref names must be non-empty and contain no whitespace")
        return v


class WatchSettings(BaseSettings):
    """Watched source files configuration."""

    files: List[str] = Field(
        default=["main.cpp", "welcome.cpp", "CMakeLists.txt", "src/main.cpp"],
        description="Candidate source files, relative to the repository root",
    )

    model_config = {"env_prefix": "AUTOCOMMIT_WATCH_", "extra": "ignore"}


class FileSettings(BaseSettings):
    """Counter, output artifact and ignore-file settings."""

    counter_file: str = Field(
        default=".autocommit_counter.txt", description="Counter file at the repository root"
    )
    output_dir: str = Field(default="output", description="Directory for captured output")
    output_prefix: str = Field(default="welcome_output_", description="Output artifact prefix")
    output_suffix: str = Field(default=".txt", description="Output artifact suffix")
    empty_output_sentinel: str = Field(
        default="[no output captured]", description="Line written when nothing was captured"
    )
    gitignore_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_GITIGNORE_PATTERNS),
        description="Patterns written to a freshly created .gitignore",
    )
    history_file: Optional[str] = Field(
        default=None, description="Optional JSONL file receiving one run report per line"
    )

    model_config = {"env_prefix": "AUTOCOMMIT_FILE_", "extra": "ignore"}

    @field_validator("counter_file", "output_dir", "output_prefix")
    @classmethod
    def validate_not_empty(cls, v):
        if not v.strip():
            raise ValueError("Value must not be empty")
        return v


class ExecutionSettings(BaseSettings):
    """Target executable settings."""

    executable_suffixes: List[str] = Field(
        default=[".exe", ""], description="Suffixes tried, in order, when locating the binary"
    )
    noninteractive: bool = Field(
        default=False, description="Ask the target executable to skip interactive prompts"
    )
    noninteractive_env_var: str = Field(
        default="AUTOCOMMIT_NONINTERACTIVE",
        description="Environment variable set to 1 for the child when noninteractive",
    )

    model_config = {"env_prefix": "AUTOCOMMIT_EXECUTION_", "extra": "ignore"}


class MonitoringSettings(BaseSettings):
    """Logging configuration settings."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_tag: str = Field(default=DEFAULT_LOG_TAG, description="Prefix of every log line")
    log_format: str = Field(
        default=DEFAULT_LOG_FORMAT,
        description="logging format string",
    )

    model_config = {"env_prefix": "AUTOCOMMIT_MONITORING_", "extra": "ignore"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class Settings(PydanticBaseSettings):
    """
    Main application settings.

    Values come from ``AUTOCOMMIT_``-prefixed environment variables or a
    ``.env`` file; nested groups use ``__`` as delimiter, e.g.
    ``AUTOCOMMIT_GIT__REMOTE_NAME=upstream``.
    """

    app_name: str = Field(default="AutoCommit", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    git: GitSettings = Field(default_factory=GitSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    file: FileSettings = Field(default_factory=FileSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_environments = ["development", "testing", "staging", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v, info):
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode cannot be enabled in production")
        return v

    model_config = {
        "env_prefix": "AUTOCOMMIT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Example:
        >>> settings = get_settings()
        >>> print(settings.file.counter_file)
    """
    return Settings()


def validate_configuration(config: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Validate configuration settings and return validation results.

    Returns:
        Dict[str, Any]: Validation results with status, errors and warnings
    """
    config = config or get_settings()
    errors = []
    warnings = []

    if shutil.which(config.git.executable) is None:
        warnings.append(f"Git executable not found on PATH: {config.git.executable}")

    if not config.watch.files:
        warnings.append("No watched files configured; every run will execute and commit")

    if config.file.output_dir in (".", ""):
        errors.append("Output directory must be a subdirectory of the repository root")

    if not config.execution.executable_suffixes:
        errors.append("At least one executable suffix must be configured")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "environment": config.environment,
    }


def export_config(config: Optional[Settings] = None) -> Dict[str, Any]:
    """Export configuration as a plain dictionary."""
    config = config or get_settings()
    return {
        "app_name": config.app_name,
        "version": config.version,
        "environment": config.environment,
        "debug": config.debug,
        "git": {
            "executable": config.git.executable,
            "remote_name": config.git.remote_name,
            "default_branch": config.git.default_branch,
        },
        "watch": {"files": list(config.watch.files)},
        "file": {
            "counter_file": config.file.counter_file,
            "output_dir": config.file.output_dir,
            "output_prefix": config.file.output_prefix,
            "history_file": config.file.history_file,
        },
        "execution": {
            "executable_suffixes": list(config.execution.executable_suffixes),
            "noninteractive": config.execution.noninteractive,
        },
        "monitoring": {
            "log_level": config.monitoring.log_level,
            "log_tag": config.monitoring.log_tag,
        },
    }


if __name__ == "__main__":
    """Configuration validation script."""
    import json

    validation = validate_configuration()

    print("Configuration Validation:")
    print(json.dumps(validation, indent=2))

    print("\nConfiguration Export:")
    print(json.dumps(export_config(), indent=2))

    if not validation["valid"]:
        exit(1)

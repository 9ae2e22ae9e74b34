"""
Data models for the post-build auto-commit runner.

This module provides:
- Structured results for external process invocations
- Per-phase outcomes aggregated into a run report
- The watch set of existing source files
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterable, Tuple

from pydantic import BaseModel, Field, computed_field, field_validator


class PhaseName(Enum):
    """Pipeline phases, in execution order."""
    ENVIRONMENT = "environment"
    BOOTSTRAP = "bootstrap"
    CHANGE_GATE = "change_gate"
    EXECUTE = "execute"
    COMMIT = "commit"
    PUBLISH = "publish"
    HISTORY = "history"


class PhaseStatus(Enum):
    """Outcome of a single phase."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    WARNING = "warning"


class CommandResult(BaseModel):
    """Result of one external process invocation."""

    args: List[str] = Field(default_factory=list, description="Command line")
    returncode: int = Field(..., description="Process exit code")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")

    @computed_field
    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output_lines(self) -> List[str]:
        """Non-empty lines of stdout."""
        return [line for line in self.stdout.splitlines() if line.strip()]

    def describe(self) -> str:
        """Short human readable description used in log lines."""
        detail = self.stderr.strip() or self.stdout.strip()
        command = " ".join(self.args)
        if detail:
            return f"`{command}` exited with {self.returncode}: {detail}"
        return f"`{command}` exited with {self.returncode}"


class PhaseResult(BaseModel):
    """Outcome of one pipeline phase."""

    phase: PhaseName
    status: PhaseStatus
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, phase: PhaseName, message: str = "", **details) -> "PhaseResult":
        return cls(phase=phase, status=PhaseStatus.SUCCESS, message=message, details=details)

    @classmethod
    def skipped(cls, phase: PhaseName, message: str = "", **details) -> "PhaseResult":
        return cls(phase=phase, status=PhaseStatus.SKIPPED, message=message, details=details)

    @classmethod
    def warning(cls, phase: PhaseName, message: str = "", **details) -> "PhaseResult":
        return cls(phase=phase, status=PhaseStatus.WARNING, message=message, details=details)


class WatchSet(BaseModel):
    """Watched source files that exist at the start of a run."""

    model_config = {"frozen": True}

    paths: Tuple[str, ...] = Field(
        default=(), description="Existing paths, relative to the repository root"
    )

    @classmethod
    def from_candidates(cls, root: Path, candidates: Iterable[str]) -> "WatchSet":
        """Keep the candidates that currently exist, preserving order and dropping duplicates."""
        present = []
        for candidate in candidates:
            if candidate in present:
                continue
            if (Path(root) / candidate).exists():
                present.append(candidate)
        return cls(paths=tuple(present))

    def is_empty(self) -> bool:
        return len(self.paths) == 0


class RunReport(BaseModel):
    """Aggregated outcome of one pipeline run."""

    repo_root: str
    target_name: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    phases: List[PhaseResult] = Field(default_factory=list)
    bootstrapped: bool = False
    counter: Optional[int] = None
    output_file: Optional[str] = None
    executable_exit_code: Optional[int] = None
    committed: bool = False
    pushed: bool = False

    @field_validator("counter")
    @classmethod
    def validate_counter(cls, v):
        if v is not None and v < 0:
            raise ValueError("Counter must be non-negative")
        return v

    def add(self, result: PhaseResult) -> PhaseResult:
        self.phases.append(result)
        return result

    def finish(self) -> "RunReport":
        self.finished_at = datetime.now(timezone.utc)
        return self

    def get(self, phase: PhaseName) -> Optional[PhaseResult]:
        """Most recent result recorded for a phase."""
        for result in reversed(self.phases):
            if result.phase == phase:
                return result
        return None

    @property
    def warnings(self) -> List[PhaseResult]:
        return [result for result in self.phases if result.status == PhaseStatus.WARNING]

    @computed_field
    @property
    def exit_code(self) -> int:
        # Always zero; failures are reported through the phase results.
        return 0

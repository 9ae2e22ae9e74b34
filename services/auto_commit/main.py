"""
Post-build auto-commit service.

This service runs after a build and:
- Bootstraps a git repository with a baseline commit when none exists
- Detects changes in the watched source files
- Runs the freshly built executable and captures its output
- Commits sources, output and a run counter, then pushes to ``origin``

Every phase reports a ``PhaseResult``; nothing raised by git or by the
target executable escapes ``AutoCommitRunner.run`` and the resulting
``RunReport`` always carries exit code 0.
"""

import logging
import os
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from config.settings import Settings, get_settings
from services.auto_commit import GIT_REFRESH_DEFAULTED, GIT_REFRESH_ENV_VAR
from shared.models import (
    CommandResult, PhaseName, PhaseResult, PhaseStatus, RunReport, WatchSet
)
from shared.vcs import GitClient

logger = logging.getLogger(__name__)

INITIAL_COMMIT_MESSAGE = "Initial commit"


class RunnerConfig(BaseModel):
    """Everything one pipeline run needs, passed explicitly."""

    repo_root: Path = Field(..., description="Repository root")
    target_name: str = Field(..., min_length=1, description="Build target name")
    dest_dir: Path = Field(..., description="Directory holding the built executable")
    script_path: Optional[Path] = Field(
        default=None, description="Automation script staged alongside the results"
    )
    settings: Settings = Field(default_factory=get_settings)


class CounterStore:
    """Run counter persisted as a single integer in a text file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> int:
        """Current value; 0 when the file is missing or holds no digits."""
        if not self.path.exists():
            return 0
        digits = re.sub(r"\D", "", self.path.read_text(encoding="utf-8", errors="ignore"))
        return int(digits) if digits else 0

    def write(self, value: int) -> None:
        if value < 0:
            raise ValueError("Counter must be non-negative")
        self.path.write_text(str(value), encoding="utf-8")

    def snapshot(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8", errors="ignore")

    def restore(self, snapshot: Optional[str]) -> None:
        if snapshot is None:
            self.path.unlink(missing_ok=True)
        else:
            self.path.write_text(snapshot, encoding="utf-8")


class AutoCommitRunner:
    """Runs the post-build pipeline for one repository."""

    def __init__(self, config: RunnerConfig, git_client: Optional[GitClient] = None):
        self.config = config
        self.settings = config.settings
        self.repo_root = Path(config.repo_root)
        self.git = git_client or GitClient(self.repo_root, self.settings.git.executable)
        self.counter = CounterStore(self.repo_root / self.settings.file.counter_file)
        self.tag = self.settings.monitoring.log_tag

    def _log(self, level: int, message: str) -> None:
        logger.log(level, f"{self.tag} {message}")

    def _record(self, report: RunReport, result: PhaseResult) -> PhaseResult:
        level = logging.WARNING if result.status == PhaseStatus.WARNING else logging.INFO
        self._log(level, result.message)
        return report.add(result)

    def _relative(self, path: Path) -> Optional[str]:
        """Path relative to the repository root, or None when it lies outside."""
        try:
            return Path(path).resolve().relative_to(self.repo_root.resolve()).as_posix()
        except ValueError:
            return None

    # Phase 1: environment

    def check_environment(self) -> PhaseResult:
        if not self.git.is_available():
            return PhaseResult.skipped(
                PhaseName.ENVIRONMENT,
                f"{self.settings.git.executable} not found on PATH; auto-commit disabled",
            )
        return PhaseResult.success(PhaseName.ENVIRONMENT, "git is available")

    # Phase 2: bootstrap

    def write_gitignore(self) -> bool:
        """Create .gitignore with the fixed pattern set unless one already exists."""
        gitignore = self.repo_root / ".gitignore"
        if gitignore.exists():
            return False
        patterns = self.settings.file.gitignore_patterns
        gitignore.write_text("\n".join(patterns) + "\n", encoding="utf-8")
        return True

    def ensure_repository(self) -> PhaseResult:
        """Initialize the repository and create a baseline commit if HEAD is missing."""
        if self.git.head_exists():
            return PhaseResult.skipped(
                PhaseName.BOOTSTRAP, "Repository already initialized", bootstrapped=False
            )

        failures: List[CommandResult] = []

        if not self.git.has_repository():
            self._log(logging.INFO, f"Initializing git repository in {self.repo_root}")
            failures.append(self.git.init())

        if not self.git.has_identity():
            failures.extend(
                self.git.configure_identity(
                    self.settings.git.user_name, self.settings.git.user_email
                )
            )

        created = self.write_gitignore()
        failures.append(self.git.add([".gitignore"]))
        failures.append(self.git.commit(INITIAL_COMMIT_MESSAGE))

        failures = [result for result in failures if not result.ok]
        if failures:
            return PhaseResult.warning(
                PhaseName.BOOTSTRAP,
                "Repository bootstrap incomplete: "
                + "; ".join(result.describe() for result in failures),
                bootstrapped=True,
                gitignore_created=created,
            )
        return PhaseResult.success(
            PhaseName.BOOTSTRAP,
            "Created repository with initial commit",
            bootstrapped=True,
            gitignore_created=created,
        )

    # Phase 3: change gate

    def resolve_watch_set(self) -> WatchSet:
        return WatchSet.from_candidates(self.repo_root, self.settings.watch.files)

    def should_run(self, watch_set: WatchSet, bootstrapped: bool) -> PhaseResult:
        """
        Decide whether the executable runs.

        SUCCESS and WARNING both mean "proceed"; SKIPPED means nothing changed.
        An empty watch set always proceeds while a populated but unchanged one
        skips.
        """
        if bootstrapped:
            return PhaseResult.success(
                PhaseName.CHANGE_GATE, "Repository was just bootstrapped; running"
            )
        if watch_set.is_empty():
            return PhaseResult.success(
                PhaseName.CHANGE_GATE, "No watched files present; running unconditionally"
            )

        result = self.git.status(watch_set.paths)
        if not result.ok:
            return PhaseResult.warning(
                PhaseName.CHANGE_GATE,
                f"Could not query status ({result.describe()}); running anyway",
            )

        changed = result.output_lines()
        if changed:
            return PhaseResult.success(
                PhaseName.CHANGE_GATE,
                f"Detected {len(changed)} changed watched file(s)",
                changed=changed,
            )
        return PhaseResult.skipped(
            PhaseName.CHANGE_GATE, "No changes in watched files; skipping run and commit"
        )

    # Phase 4: executor

    def locate_executable(self) -> Optional[Path]:
        dest_dir = Path(self.config.dest_dir)
        for suffix in self.settings.execution.executable_suffixes:
            candidate = dest_dir / f"{self.config.target_name}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def output_path(self, counter: int) -> Path:
        file_settings = self.settings.file
        name = f"{file_settings.output_prefix}{counter}{file_settings.output_suffix}"
        return self.repo_root / file_settings.output_dir / name

    def _child_env(self) -> dict:
        env = dict(os.environ)
        if GIT_REFRESH_DEFAULTED:
            env.pop(GIT_REFRESH_ENV_VAR, None)
        execution = self.settings.execution
        if execution.noninteractive:
            env[execution.noninteractive_env_var] = "1"
        return env

    def run_executable(self, executable: Optional[Path], output_path: Path) -> PhaseResult:
        """Run the target with no arguments, capturing stdout and stderr into one file."""
        if executable is None:
            return PhaseResult.skipped(
                PhaseName.EXECUTE,
                f"Executable for target '{self.config.target_name}' not found in "
                f"{self.config.dest_dir}; nothing to run",
            )

        stdin = subprocess.DEVNULL if self.settings.execution.noninteractive else None
        exit_code = None
        launch_error = None

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(output_path, "wb")
        except OSError as e:
            return PhaseResult.warning(
                PhaseName.EXECUTE,
                f"Cannot write output file {output_path}: {e}; not running {executable.name}",
                output_file=None,
                exit_code=None,
            )

        with handle:
            try:
                completed = subprocess.run(
                    [str(executable)],
                    cwd=str(self.repo_root),
                    stdin=stdin,
                    stdout=handle,
                    stderr=subprocess.STDOUT,
                    env=self._child_env(),
                    check=False,
                )
                exit_code = completed.returncode
            except OSError as e:
                launch_error = str(e)

        if output_path.stat().st_size == 0:
            with open(output_path, "w", encoding="utf-8") as handle:
                handle.write(self.settings.file.empty_output_sentinel + "\n")

        relative = self._relative(output_path)
        if launch_error is not None:
            return PhaseResult.warning(
                PhaseName.EXECUTE,
                f"Failed to launch {executable}: {launch_error}",
                output_file=relative,
                exit_code=None,
            )
        return PhaseResult.success(
            PhaseName.EXECUTE,
            f"{executable.name} exited with code {exit_code}; output saved to {relative}",
            output_file=relative,
            exit_code=exit_code,
        )

    # Phase 5: committer

    def staged_paths(self, watch_set: WatchSet, output_path: Path) -> List[str]:
        """Watched sources, output artifact, counter file and the script itself."""
        paths = list(watch_set.paths)
        for extra in (output_path, self.counter.path, self.config.script_path):
            if extra is None or not Path(extra).exists():
                continue
            relative = self._relative(Path(extra))
            if relative is not None and relative not in paths:
                paths.append(relative)
        return paths

    def commit_message(self, counter: int) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        label = self.repo_root.resolve().name
        return f"Auto-commit #{counter} [{self.config.target_name} @ {label}] {timestamp}"

    def commit_changes(self, paths: List[str], counter: int) -> PhaseResult:
        """Stage ``paths`` one by one and commit; a failed commit means nothing to commit."""
        unstaged = []
        for path in paths:
            result = self.git.add([path])
            if not result.ok:
                self._log(logging.WARNING, f"Could not stage {path}: {result.describe()}")
                unstaged.append(path)

        result = self.git.commit(self.commit_message(counter))
        if not result.ok:
            return PhaseResult.skipped(
                PhaseName.COMMIT, "Nothing to commit", unstaged=unstaged
            )
        return PhaseResult.success(
            PhaseName.COMMIT,
            f"Committed run #{counter} ({self.git.head_commit() or 'unknown'})",
            staged=[path for path in paths if path not in unstaged],
            unstaged=unstaged,
        )

    # Phase 6: publisher

    def publish(self) -> PhaseResult:
        git_settings = self.settings.git
        remote = git_settings.remote_name
        if self.git.remote_url(remote) is None:
            return PhaseResult.skipped(
                PhaseName.PUBLISH, f"No remote '{remote}' configured; not pushing"
            )

        if self.git.upstream() is None:
            renamed = self.git.rename_branch(git_settings.default_branch)
            if not renamed.ok:
                self._log(logging.WARNING, f"Branch rename failed: {renamed.describe()}")
            result = self.git.push(remote, git_settings.default_branch, set_upstream=True)
        else:
            result = self.git.push()

        if not result.ok:
            return PhaseResult.warning(PhaseName.PUBLISH, f"Push failed: {result.describe()}")
        return PhaseResult.success(PhaseName.PUBLISH, f"Pushed to {remote}")

    # Run history

    def save_report(self, report: RunReport) -> Optional[PhaseResult]:
        """Append the report to the JSONL history file when one is configured."""
        history_file = self.settings.file.history_file
        if not history_file:
            return None

        path = Path(history_file)
        if not path.is_absolute():
            path = self.repo_root / path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(report.model_dump_json() + "\n")
        except OSError as e:
            logger.error(f"{self.tag} Error saving run history: {e}")
            return PhaseResult.warning(PhaseName.HISTORY, f"Could not write {path}: {e}")

        logger.debug(f"{self.tag} Saved run report to {path}")
        return PhaseResult.success(PhaseName.HISTORY, f"Run report appended to {path}")

    # Pipeline

    def run(self) -> RunReport:
        report = RunReport(
            repo_root=str(self.repo_root), target_name=self.config.target_name
        )
        try:
            self._run_phases(report)
        finally:
            report.finish()
            history = self.save_report(report)
            if history is not None:
                report.add(history)
        return report

    def _run_phases(self, report: RunReport) -> None:
        environment = self._record(report, self.check_environment())
        if environment.status != PhaseStatus.SUCCESS:
            return

        bootstrap = self._record(report, self.ensure_repository())
        report.bootstrapped = bool(bootstrap.details.get("bootstrapped"))

        watch_set = self.resolve_watch_set()
        gate = self._record(report, self.should_run(watch_set, report.bootstrapped))
        if gate.status == PhaseStatus.SKIPPED:
            return

        snapshot = self.counter.snapshot()
        counter = self.counter.read() + 1
        output_path = self.output_path(counter)

        execution = self._record(
            report, self.run_executable(self.locate_executable(), output_path)
        )
        if execution.details.get("output_file") is None:
            return
        report.executable_exit_code = execution.details.get("exit_code")

        self.counter.write(counter)
        commit = self._record(
            report, self.commit_changes(self.staged_paths(watch_set, output_path), counter)
        )
        if commit.status != PhaseStatus.SUCCESS:
            self.counter.restore(snapshot)
            output_path.unlink(missing_ok=True)
            return

        report.counter = counter
        report.output_file = execution.details.get("output_file")
        report.committed = True

        publish = self._record(report, self.publish())
        report.pushed = publish.status == PhaseStatus.SUCCESS


def run_pipeline(
    repo_root: Path,
    target_name: str,
    dest_dir: Path,
    script_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> RunReport:
    """Build a runner from plain arguments and execute the whole pipeline."""
    config = RunnerConfig(
        repo_root=Path(repo_root),
        target_name=target_name,
        dest_dir=Path(dest_dir),
        script_path=script_path,
        settings=settings or get_settings(),
    )
    return AutoCommitRunner(config).run()

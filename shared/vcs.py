"""
Git access layer for the auto-commit runner.

Every git invocation goes through ``GitClient.run`` which returns a
``CommandResult`` instead of raising, so callers decide per phase whether a
failure is a skip, a warning or irrelevant. Commands always run with an
explicit working directory; the process-wide cwd is never changed.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from git import Git
from git.exc import GitCommandNotFound

from shared.models import CommandResult

logger = logging.getLogger(__name__)

# Exit code reported when the git binary cannot be launched at all.
COMMAND_NOT_FOUND = 127


class GitClient:
    """Thin wrapper around the git command line bound to one working tree."""

    def __init__(self, repo_root: Path, executable: str = "git"):
        self.repo_root = Path(repo_root)
        self.executable = executable
        self._git = Git(str(self.repo_root))

    def is_available(self) -> bool:
        """Whether the git executable can be found on the execution path."""
        return shutil.which(self.executable) is not None

    def run(self, *args: str) -> CommandResult:
        """Run ``git <args>`` in the repository root and capture the result."""
        command = [self.executable, *args]
        logger.debug(f"Running {' '.join(command)} in {self.repo_root}")
        try:
            status, stdout, stderr = self._git.execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
            )
        except GitCommandNotFound as e:
            return CommandResult(args=command, returncode=COMMAND_NOT_FOUND, stderr=str(e))
        except OSError as e:
            return CommandResult(args=command, returncode=COMMAND_NOT_FOUND, stderr=str(e))

        return CommandResult(
            args=command,
            returncode=status if status is not None else 0,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    # Repository state predicates

    def has_repository(self) -> bool:
        """Whether the root lies inside a git working tree, its own or a parent's."""
        return self.run("rev-parse", "--git-dir").ok

    def head_exists(self) -> bool:
        return self.run("rev-parse", "--verify", "--quiet", "HEAD").ok

    def head_commit(self) -> Optional[str]:
        result = self.run("rev-parse", "--short", "HEAD")
        return result.stdout.strip() if result.ok else None

    def remote_url(self, name: str = "origin") -> Optional[str]:
        result = self.run("remote", "get-url", name)
        if not result.ok or not result.stdout.strip():
            return None
        return result.stdout.strip()

    def upstream(self) -> Optional[str]:
        result = self.run("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
        if not result.ok or not result.stdout.strip():
            return None
        return result.stdout.strip()

    def has_identity(self) -> bool:
        return self.run("config", "user.name").ok and self.run("config", "user.email").ok

    # Mutating commands

    def init(self) -> CommandResult:
        return self.run("init")

    def configure_identity(self, name: str, email: str) -> List[CommandResult]:
        return [
            self.run("config", "user.name", name),
            self.run("config", "user.email", email),
        ]

    def status(self, paths: Iterable[str]) -> CommandResult:
        """Porcelain status restricted to ``paths``."""
        return self.run("status", "--porcelain", "--", *paths)

    def add(self, paths: Iterable[str]) -> CommandResult:
        return self.run("add", "--", *paths)

    def commit(self, message: str) -> CommandResult:
        return self.run("commit", "-m", message)

    def rename_branch(self, name: str) -> CommandResult:
        return self.run("branch", "-M", name)

    def push(
        self,
        remote: Optional[str] = None,
        branch: Optional[str] = None,
        set_upstream: bool = False,
    ) -> CommandResult:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        if remote:
            args.append(remote)
            if branch:
                args.append(branch)
        return self.run(*args)

"""
Integration tests for the post-build auto-commit pipeline.

These tests drive a real git binary inside a temporary directory and a tiny
shell script standing in for the built executable.
"""

import shutil
import sys

import pytest
from git import Repo

from config.settings import Settings, WatchSettings
from services.auto_commit.main import AutoCommitRunner, RunnerConfig, run_pipeline
from shared.models import PhaseName, PhaseStatus

pytestmark = [
    pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed"),
    pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell script as target"),
]


@pytest.fixture(autouse=True)
def isolated_git_config(tmp_path, monkeypatch):
    """Keep the user's global git configuration out of the tests."""
    global_config = tmp_path / "gitconfig"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "welcome"
    root.mkdir()
    (root / "main.cpp").write_text('int main() { std::cout << "Welcome!"; }\n')
    (root / "CMakeLists.txt").write_text("project(welcome)\n")
    return root


@pytest.fixture
def dest_dir(project):
    return project / "build"


@pytest.fixture
def settings():
    return Settings(watch=WatchSettings(files=["main.cpp", "CMakeLists.txt", "src/main.cpp"]))


def make_executable(directory, name="welcome", body='echo "Welcome!"'):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return path


def commit_count(root) -> int:
    return len(list(Repo(root).iter_commits()))


def run(project, dest_dir, settings, **kwargs):
    return run_pipeline(project, "welcome", dest_dir, settings=settings, **kwargs)


class TestFreshRepository:
    """A project directory that has never been under version control."""

    def test_first_run(self, project, dest_dir, settings):
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert (project / ".git").is_dir()
        assert (project / ".gitignore").read_text().splitlines() == (
            settings.file.gitignore_patterns
        )
        assert (project / ".autocommit_counter.txt").read_text() == "1"
        output = project / "output" / "welcome_output_1.txt"
        assert output.read_text() == "Welcome!\n"

        assert report.bootstrapped is True
        assert report.committed is True
        assert report.counter == 1
        assert report.exit_code == 0
        # baseline commit plus the run commit
        assert commit_count(project) == 2

        repo = Repo(project)
        assert not repo.is_dirty(untracked_files=False)
        tracked = {item.path for item in repo.head.commit.tree.traverse()}
        assert {"main.cpp", "CMakeLists.txt", ".autocommit_counter.txt", ".gitignore"} <= tracked
        assert "output/welcome_output_1.txt" in tracked
        assert "Auto-commit #1 [welcome @ welcome]" in repo.head.commit.message

    def test_bootstrap_is_idempotent(self, project, dest_dir, settings):
        config = RunnerConfig(
            repo_root=project, target_name="welcome", dest_dir=dest_dir, settings=settings
        )
        runner = AutoCommitRunner(config)

        first = runner.ensure_repository()
        second = runner.ensure_repository()

        assert first.status == PhaseStatus.SUCCESS
        assert second.status == PhaseStatus.SKIPPED
        assert commit_count(project) == 1

    def test_existing_identity_is_respected(self, project, dest_dir, settings):
        Repo.init(project)
        with Repo(project).config_writer() as writer:
            writer.set_value("user", "name", "Build Agent")
            writer.set_value("user", "email", "agent@example.com")
        make_executable(dest_dir)

        run(project, dest_dir, settings)

        assert Repo(project).head.commit.author.name == "Build Agent"

    def test_project_inside_existing_repository(self, tmp_path, project, dest_dir, settings):
        parent = Repo.init(tmp_path)
        with parent.config_writer() as writer:
            writer.set_value("user", "name", "Build Agent")
            writer.set_value("user", "email", "agent@example.com")
        (tmp_path / "README.md").write_text("parent\n")
        parent.index.add(["README.md"])
        parent.index.commit("parent baseline")
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert not (project / ".git").exists()
        assert report.bootstrapped is False
        assert report.committed is True
        assert commit_count(tmp_path) == 2


class TestSubsequentRuns:
    """Runs against a repository that already holds auto-commits."""

    def test_unchanged_sources_skip(self, project, dest_dir, settings, caplog):
        make_executable(dest_dir)
        run(project, dest_dir, settings)

        with caplog.at_level("INFO"):
            report = run(project, dest_dir, settings)

        assert report.get(PhaseName.CHANGE_GATE).status == PhaseStatus.SKIPPED
        assert report.committed is False
        assert not (project / "output" / "welcome_output_2.txt").exists()
        assert (project / ".autocommit_counter.txt").read_text() == "1"
        assert commit_count(project) == 2
        assert any("skipping" in record.getMessage() for record in caplog.records)

    def test_modified_source_runs_again(self, project, dest_dir, settings):
        make_executable(dest_dir)
        run(project, dest_dir, settings)
        (project / "main.cpp").write_text('int main() { std::cout << "Hi!"; }\n')
        make_executable(dest_dir, body='echo "Hi!"')

        report = run(project, dest_dir, settings)

        assert report.counter == 2
        assert (project / "output" / "welcome_output_2.txt").read_text() == "Hi!\n"
        assert (project / "output" / "welcome_output_1.txt").read_text() == "Welcome!\n"
        assert (project / ".autocommit_counter.txt").read_text() == "2"
        assert commit_count(project) == 3

    def test_new_watched_file_triggers_run(self, project, dest_dir, settings):
        make_executable(dest_dir)
        run(project, dest_dir, settings)
        (project / "src").mkdir()
        (project / "src" / "main.cpp").write_text("// moved\n")

        report = run(project, dest_dir, settings)

        assert report.committed is True
        tracked = {item.path for item in Repo(project).head.commit.tree.traverse()}
        assert "src/main.cpp" in tracked

    def test_empty_watch_set_always_runs(self, project, dest_dir):
        settings = Settings(watch=WatchSettings(files=["missing.cpp"]))
        make_executable(dest_dir)

        run(project, dest_dir, settings)
        report = run(project, dest_dir, settings)

        assert report.counter == 2
        assert (project / "output" / "welcome_output_2.txt").exists()


class TestExecutableOutput:
    """Capturing what the target prints."""

    def test_stderr_is_captured(self, project, dest_dir, settings):
        make_executable(dest_dir, body='echo "out"\necho "err" 1>&2')

        run(project, dest_dir, settings)

        content = (project / "output" / "welcome_output_1.txt").read_text().splitlines()
        assert content == ["out", "err"]

    def test_silent_executable_gets_sentinel(self, project, dest_dir, settings):
        make_executable(dest_dir, body="true")

        run(project, dest_dir, settings)

        output = project / "output" / "welcome_output_1.txt"
        assert output.read_text() == "[no output captured]\n"

    def test_failing_executable_still_commits(self, project, dest_dir, settings):
        make_executable(dest_dir, body='echo "boom"\nexit 3')

        report = run(project, dest_dir, settings)

        assert report.executable_exit_code == 3
        assert report.committed is True
        assert report.exit_code == 0

    def test_non_executable_file_is_a_warning(self, project, dest_dir, settings):
        dest_dir.mkdir()
        target = dest_dir / "welcome"
        target.write_text("not a program")
        target.chmod(0o644)

        report = run(project, dest_dir, settings)

        assert report.get(PhaseName.EXECUTE).status == PhaseStatus.WARNING
        assert report.committed is True
        output = project / "output" / "welcome_output_1.txt"
        assert output.read_text() == "[no output captured]\n"

    def test_missing_executable(self, project, dest_dir, settings):
        report = run(project, dest_dir, settings)

        assert report.get(PhaseName.EXECUTE).status == PhaseStatus.SKIPPED
        assert report.committed is False
        assert not (project / ".autocommit_counter.txt").exists()
        # only the baseline commit
        assert commit_count(project) == 1

    def test_noninteractive_variable(self, project, dest_dir):
        settings = Settings(
            execution={"noninteractive": True, "noninteractive_env_var": "WELCOME_BATCH"}
        )
        make_executable(dest_dir, body='echo "batch=$WELCOME_BATCH"')

        run(project, dest_dir, settings)

        output = project / "output" / "welcome_output_1.txt"
        assert output.read_text() == "batch=1\n"


class TestScriptStaging:
    """The automation script is committed with the results."""

    def test_script_inside_repository(self, project, dest_dir, settings):
        script = project / "tools" / "post_build_commit.py"
        script.parent.mkdir()
        script.write_text("# automation\n")
        make_executable(dest_dir)

        run(project, dest_dir, settings, script_path=script)

        tracked = {item.path for item in Repo(project).head.commit.tree.traverse()}
        assert "tools/post_build_commit.py" in tracked


class TestPublishing:
    """Pushing to a configured origin."""

    @pytest.fixture
    def remote(self, tmp_path):
        path = tmp_path / "remote.git"
        Repo.init(path, bare=True)
        return path

    def test_no_remote_means_no_push(self, project, dest_dir, settings):
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert report.get(PhaseName.PUBLISH).status == PhaseStatus.SKIPPED
        assert report.pushed is False

    def test_first_push_sets_upstream_on_main(self, project, dest_dir, settings, remote):
        Repo.init(project).create_remote("origin", str(remote))
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert report.pushed is True
        repo = Repo(project)
        assert repo.active_branch.name == "main"
        assert repo.active_branch.tracking_branch().name == "origin/main"
        remote_repo = Repo(remote)
        assert remote_repo.heads.main.commit.hexsha == repo.head.commit.hexsha

    def test_later_push_uses_upstream(self, project, dest_dir, settings, remote):
        Repo.init(project).create_remote("origin", str(remote))
        make_executable(dest_dir)
        run(project, dest_dir, settings)
        (project / "main.cpp").write_text("// changed\n")

        report = run(project, dest_dir, settings)

        assert report.pushed is True
        assert Repo(remote).heads.main.commit.hexsha == Repo(project).head.commit.hexsha

    def test_unreachable_remote_is_a_warning(self, project, dest_dir, settings, tmp_path):
        Repo.init(project).create_remote("origin", str(tmp_path / "does-not-exist.git"))
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert report.committed is True
        assert report.get(PhaseName.PUBLISH).status == PhaseStatus.WARNING
        assert report.pushed is False
        assert report.exit_code == 0


class TestMissingGit:
    """The git binary cannot be found."""

    def test_pipeline_does_nothing(self, project, dest_dir):
        settings = Settings(git={"executable": "git-does-not-exist"})
        make_executable(dest_dir)

        report = run(project, dest_dir, settings)

        assert report.get(PhaseName.ENVIRONMENT).status == PhaseStatus.SKIPPED
        assert not (project / ".git").exists()
        assert not (project / "output").exists()

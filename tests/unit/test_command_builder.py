# tests/unit/test_command_builder.py

"""Tests for turning runner configuration into a process invocation."""

from pathlib import Path

import pytest

from testmgr.config import RunnerConfig
from testmgr.exceptions import ConfigurationError
from testmgr.testing import CommandBuilder
from testmgr.testing.command import (
    ensure_required_flags,
    resolve_interpreter,
    select_arguments,
    strip_debug_incompatible,
)


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path


def builder_for(root: Path, **runner_kwargs) -> CommandBuilder:
    return CommandBuilder(RunnerConfig(**runner_kwargs), root, base_env={"PATH": "/usr/bin"})


class TestBuild:
    def test_default_template(self, root: Path):
        invocation = builder_for(root).build("users.tests.TestLogin.test_ok")

        assert invocation.argv == (
            "python3",
            "manage.py",
            "test",
            "users.tests.TestLogin.test_ok",
            "-v",
            "2",
            "--noinput",
        )
        assert invocation.cwd == root
        assert invocation.targets == ("users.tests.TestLogin.test_ok",)

    def test_empty_target_runs_everything(self, root: Path):
        invocation = builder_for(root).build("")
        assert invocation.argv == ("python3", "manage.py", "test", "-v", "2", "--noinput")
        assert invocation.targets == ()

    def test_multiple_targets(self, root: Path):
        invocation = builder_for(root).build(["a.tests", "", "b.tests"])
        assert invocation.argv[3:5] == ("a.tests", "b.tests")
        assert invocation.targets == ("a.tests", "b.tests")

    def test_build_is_deterministic(self, root: Path):
        builder = builder_for(root, arguments=["--parallel", "4"])
        assert builder.build("x").argv == builder.build("x").argv

    def test_custom_template_and_quoting(self, root: Path):
        invocation = builder_for(
            root,
            interpreter="/opt/my python/bin/python",
            command_template="${interpreter} -m pytest ${target} ${args}",
        ).build("users.tests")

        assert invocation.argv[0] == "/opt/my python/bin/python"
        assert invocation.argv[1:4] == ("-m", "pytest", "users.tests")

    def test_unknown_placeholder_is_configuration_error(self, root: Path):
        builder = builder_for(root, command_template="${interpreter} ${nope}")
        with pytest.raises(ConfigurationError, match="Invalid command template"):
            builder.build()

    def test_environment_overrides_and_unbuffered(self, root: Path):
        invocation = builder_for(root, environment={"DJANGO_SETTINGS_MODULE": "app.settings"}).build()

        assert invocation.env["DJANGO_SETTINGS_MODULE"] == "app.settings"
        assert invocation.env["PYTHONUNBUFFERED"] == "1"
        assert invocation.env["PATH"] == "/usr/bin"

    def test_fail_fast_detected(self, root: Path):
        assert builder_for(root, arguments=["--failfast"]).build().fail_fast
        assert not builder_for(root).build().fail_fast

    def test_debug_drops_parallel_and_buffer(self, root: Path):
        builder = builder_for(root, arguments=["--parallel", "4", "--buffer", "--keepdb"])

        normal = builder.build("x")
        debug = builder.build("x", debug=True)

        assert "--parallel" in normal.argv
        assert "--parallel" not in debug.argv
        assert "4" not in debug.argv
        assert "--buffer" not in debug.argv
        assert "--keepdb" in debug.argv
        assert debug.debug


class TestArguments:
    def test_ad_hoc_arguments_win_over_profile(self):
        config = RunnerConfig(
            arguments=["--keepdb"],
            profiles={"Fast": ["--parallel"]},
            active_profile="Fast",
        )
        assert select_arguments(config) == ["--keepdb"]

    def test_active_profile_used_without_ad_hoc_arguments(self):
        config = RunnerConfig(profiles={"Fast": ["--parallel", "auto"]}, active_profile="Fast")
        assert select_arguments(config) == ["--parallel", "auto"]

    def test_missing_profile_means_no_arguments(self):
        assert select_arguments(RunnerConfig(active_profile="Nope")) == []

    @pytest.mark.parametrize(
        "args, expected",
        [
            (["--parallel", "4", "-b"], []),
            (["--parallel", "--keepdb"], ["--keepdb"]),
            (["--parallel=auto", "--buffer"], []),
            (["--tag", "slow"], ["--tag", "slow"]),
        ],
    )
    def test_strip_debug_incompatible(self, args, expected):
        assert strip_debug_incompatible(args) == expected

    @pytest.mark.parametrize(
        "args, expected",
        [
            ([], ["-v", "2", "--noinput"]),
            (["-v", "3"], ["-v", "3", "--noinput"]),
            (["-v3", "--no-input"], ["-v3", "--no-input"]),
            (["--verbosity=1"], ["--verbosity=1", "--noinput"]),
        ],
    )
    def test_ensure_required_flags(self, args, expected):
        assert ensure_required_flags(args) == expected


class TestInterpreter:
    def test_prefers_project_virtualenv(self, root: Path):
        venv_python = root / ".venv" / "bin" / "python"
        venv_python.parent.mkdir(parents=True)
        venv_python.write_text("")

        assert resolve_interpreter("python3", root) == str(venv_python)

    def test_explicit_interpreter_used_verbatim(self, root: Path):
        (root / ".venv" / "bin").mkdir(parents=True)
        (root / ".venv" / "bin" / "python").write_text("")

        assert resolve_interpreter("/usr/bin/python3.12", root) == "/usr/bin/python3.12"

    def test_falls_back_to_configured_name(self, root: Path):
        assert resolve_interpreter("python3", root) == "python3"

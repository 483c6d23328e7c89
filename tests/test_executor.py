import sys
from pathlib import Path

import pytest

from probebuild.errors import BuildTimeoutError, SubcommandFailure, ValidationError
from probebuild.executor import StepExecutor
from probebuild.models import DependencyStep, ShellSpec, SubCommand
from probebuild.observability import StructuredLogger
from probebuild.runner import SubprocessRunner

SHELL = ShellSpec(path="/bin/bash")


def _step(tmp_path: Path) -> DependencyStep:
    return DependencyStep(
        name="vorbis",
        working_dir=tmp_path / "vorbis",
        prefix=tmp_path / "prefix",
        prerequisites=("ogg",),
        commands=(
            SubCommand("clean", ("make", "distclean"), tolerate_failure=True),
            SubCommand("bootstrap", ("./autogen.sh",)),
            SubCommand("configure", ("./configure", "--prefix=/p")),
            SubCommand("build", ("make", "-j2")),
            SubCommand("install", ("make", "install")),
        ),
    )


def test_subcommands_run_in_order_through_shell(tmp_path: Path, fake_runner) -> None:
    executor = StepExecutor(runner=fake_runner, target_id="linux-x64")

    result = executor.execute(_step(tmp_path), {"CFLAGS": "-O2"}, SHELL)

    assert result.completed == ("clean", "bootstrap", "configure", "build", "install")
    assert [call.argv[-1] for call in fake_runner.calls] == [
        "make distclean",
        "./autogen.sh",
        "./configure --prefix=/p",
        "make -j2",
        "make install",
    ]
    assert all(call.argv[:2] == ("/bin/bash", "-c") for call in fake_runner.calls)
    assert all(call.cwd == tmp_path / "vorbis" for call in fake_runner.calls)
    assert all(call.env == {"CFLAGS": "-O2"} for call in fake_runner.calls)


def test_clean_failure_is_tolerated_and_logged(tmp_path: Path, fake_runner) -> None:
    fake_runner.fail_when("make distclean", returncode=2)
    logger = StructuredLogger()
    executor = StepExecutor(runner=fake_runner, logger=logger, target_id="linux-x64")

    result = executor.execute(_step(tmp_path), {}, SHELL)

    assert result.tolerated == ("clean",)
    assert result.completed[-1] == "install"
    warnings = logger.records_at("warning")
    assert [record["subcommand"] for record in warnings] == ["clean"]


def test_configure_failure_aborts_remaining_subcommands(tmp_path: Path, fake_runner) -> None:
    fake_runner.fail_when("./configure", returncode=1)
    executor = StepExecutor(
        runner=fake_runner,
        target_id="linux-x64",
        log_dir=tmp_path / "logs",
    )

    with pytest.raises(SubcommandFailure) as excinfo:
        executor.execute(_step(tmp_path), {}, SHELL)

    error = excinfo.value
    assert error.context["step"] == "vorbis"
    assert error.context["subcommand"] == "configure"
    assert error.context["returncode"] == "1"
    assert "simulated failure" in error.context["output"]
    assert [call.argv[-1] for call in fake_runner.calls][-1] == "./configure --prefix=/p"
    log_text = (tmp_path / "logs" / "vorbis-configure.log").read_text(encoding="utf-8")
    assert "returncode=1" in log_text


def test_timeout_is_fatal_even_for_tolerant_subcommands(tmp_path: Path, fake_runner) -> None:
    fake_runner.timeout_when("make distclean")
    executor = StepExecutor(runner=fake_runner, timeout=5.0, target_id="macos-x64")

    with pytest.raises(BuildTimeoutError) as excinfo:
        executor.execute(_step(tmp_path), {}, SHELL)

    assert excinfo.value.context["subcommand"] == "clean"
    assert excinfo.value.context["target"] == "macos-x64"
    assert len(fake_runner.calls) == 1


def test_timeout_is_forwarded_to_invocations(tmp_path: Path, fake_runner) -> None:
    StepExecutor(runner=fake_runner, timeout=30.0).execute(_step(tmp_path), {}, None)

    assert {call.timeout for call in fake_runner.calls} == {30.0}
    assert fake_runner.calls[0].argv == ("make", "distclean")


def test_out_of_order_subcommands_are_rejected(tmp_path: Path, fake_runner) -> None:
    step = DependencyStep(
        name="lame",
        working_dir=tmp_path,
        prefix=tmp_path,
        commands=(
            SubCommand("build", ("make",)),
            SubCommand("configure", ("./configure",)),
        ),
    )

    with pytest.raises(ValidationError):
        StepExecutor(runner=fake_runner).execute(step, {}, SHELL)

    assert fake_runner.calls == []


def test_undecodable_tool_output_is_replaced_not_raised(tmp_path: Path) -> None:
    script = "import sys; sys.stderr.buffer.write(b'\\xff\\xfe broken'); sys.exit(1)"
    step = DependencyStep(
        name="lame",
        working_dir=tmp_path,
        prefix=tmp_path,
        commands=(SubCommand("build", (sys.executable, "-c", script)),),
    )
    executor = StepExecutor(runner=SubprocessRunner(), log_dir=tmp_path / "logs")

    with pytest.raises(SubcommandFailure) as excinfo:
        executor.execute(step, {}, None)

    assert "\ufffd" in excinfo.value.context["output"]
    assert "broken" in (tmp_path / "logs" / "lame-build.log").read_text(encoding="utf-8")


def test_unwritable_log_directory_is_a_subcommand_failure(tmp_path: Path, fake_runner) -> None:
    stale = tmp_path / "logs"
    stale.write_text("not a directory", encoding="utf-8")
    executor = StepExecutor(runner=fake_runner, log_dir=stale, target_id="linux-x64")

    with pytest.raises(SubcommandFailure) as excinfo:
        executor.execute(_step(tmp_path), {}, SHELL)

    assert excinfo.value.context["subcommand"] == "clean"
    assert excinfo.value.context["log"] == str(stale / "vorbis-clean.log")

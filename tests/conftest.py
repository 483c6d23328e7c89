"""Shared test fixtures."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from probebuild.config import BuildConfig
from probebuild.errors import BuildTimeoutError
from probebuild.models import ProcessInvocation, ProcessOutcome

SOURCE_TREES = ("ogg", "vorbis", "lame", "ffmpeg", "vcpkg")


@dataclass
class FakeRunner:
    """Records invocations and imitates the side effects of the real tools.

    ``make install`` in an ffmpeg tree drops the binary into the configured
    ``--bindir``; ``vcpkg install`` drops it under ``installed/<triplet>``;
    ``lipo -create`` writes its ``-output`` file.
    """

    calls: list[ProcessInvocation] = field(default_factory=list)
    failures: list[tuple[str, int, str | None]] = field(default_factory=list)
    timeouts: list[str] = field(default_factory=list)

    def fail_when(self, needle: str, returncode: int = 1, *, tree: str | None = None) -> None:
        self.failures.append((needle, returncode, tree))

    def timeout_when(self, needle: str) -> None:
        self.timeouts.append(needle)

    def commands(self) -> list[str]:
        return [call.display for call in self.calls]

    def commands_in(self, directory: Path) -> list[str]:
        return [call.argv[-1] for call in self.calls if call.cwd == directory]

    def run(self, invocation: ProcessInvocation) -> ProcessOutcome:
        self.calls.append(invocation)
        display = invocation.display
        for needle in self.timeouts:
            if needle in display:
                raise BuildTimeoutError(
                    "Command did not finish before its timeout.",
                    context={"command": display},
                )
        for needle, returncode, tree in self.failures:
            in_tree = tree is None or (invocation.cwd is not None and invocation.cwd.name == tree)
            if needle in display and in_tree:
                return ProcessOutcome(returncode=returncode, stderr=f"simulated failure: {needle}")

        argv = invocation.argv
        if argv[0] == "lipo":
            output = Path(argv[argv.index("-output") + 1])
            inputs = argv[argv.index("-create") + 1 : argv.index("-output")]
            names = ",".join(Path(p).name for p in inputs)
            output.write_text(f"universal:{names}", encoding="utf-8")
        elif invocation.cwd is not None and argv[-1] == "make install":
            self._install(invocation)
        elif invocation.cwd is not None and argv[-1].startswith("./vcpkg"):
            triplet = shlex.split(argv[-1])[2].split(":")[1]
            suffix = ".exe" if "windows" in triplet else ""
            tools = invocation.cwd / "installed" / triplet / "tools" / "ffmpeg"
            output = tools / f"ffprobe{suffix}"
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(f"binary:{triplet}", encoding="utf-8")
        return ProcessOutcome(returncode=0, stdout="ok")

    def _install(self, invocation: ProcessInvocation) -> None:
        assert invocation.cwd is not None
        if invocation.cwd.name != "ffmpeg":
            return
        configure = next(
            call
            for call in reversed(self.calls)
            if call.cwd == invocation.cwd and call.argv[-1].startswith("./configure")
        )
        bindir = next(
            Path(arg.split("=", 1)[1])
            for arg in shlex.split(configure.argv[-1])
            if arg.startswith("--bindir=")
        )
        suffix = ".exe" if "MSYSTEM" in invocation.env else ""
        bindir.mkdir(parents=True, exist_ok=True)
        (bindir / f"ffprobe{suffix}").write_text(f"binary:{bindir.parent.name}", encoding="utf-8")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A project root with empty source trees and one flag file."""
    root = tmp_path / "project"
    for name in SOURCE_TREES:
        tree = root / "sources" / name
        tree.mkdir(parents=True)
        (tree / "README").write_text(f"{name} sources\n", encoding="utf-8")
    flags = root / "flags"
    flags.mkdir()
    (flags / "ffmpeg.config").write_text(
        "# minimal probe\n--disable-everything\n\n--enable-ffprobe\n",
        encoding="utf-8",
    )
    (root / "patches").mkdir()
    return root


@pytest.fixture
def config(project_root: Path) -> BuildConfig:
    return BuildConfig.from_root(project_root, make_jobs=4)

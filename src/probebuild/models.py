"""Core typed dataclasses for build targets, steps, invocations and results."""

from __future__ import annotations

import json
import shlex
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

import cbor2

from probebuild.errors import ProbeBuildError, ValidationError

Platform = Literal["linux", "macos", "windows"]
TargetArch = Literal["x64", "arm64"]
Strategy = Literal["autotools", "vcpkg"]
ConfigureStyle = Literal["autotools", "ffmpeg", "vcpkg"]
SubCommandKind = Literal["clean", "bootstrap", "configure", "build", "install"]

PLATFORMS: tuple[Platform, ...] = ("linux", "macos", "windows")
ARCHITECTURES: tuple[TargetArch, ...] = ("x64", "arm64")
SUBCOMMAND_ORDER: tuple[SubCommandKind, ...] = (
    "clean",
    "bootstrap",
    "configure",
    "build",
    "install",
)


class TargetState(StrEnum):
    PENDING = "pending"
    PATCHING = "patching"
    BUILDING = "building"
    ASSEMBLING = "assembling"
    REVERTING = "reverting"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TargetState.COMPLETE, TargetState.FAILED})

# Failure is recorded while reverting, so FAILED is only entered from REVERTING
# unless the target never got past PENDING.
ALLOWED_TRANSITIONS: dict[TargetState, frozenset[TargetState]] = {
    TargetState.PENDING: frozenset(
        {TargetState.PATCHING, TargetState.REVERTING, TargetState.FAILED}
    ),
    TargetState.PATCHING: frozenset({TargetState.BUILDING, TargetState.REVERTING}),
    TargetState.BUILDING: frozenset({TargetState.ASSEMBLING, TargetState.REVERTING}),
    TargetState.ASSEMBLING: frozenset({TargetState.REVERTING}),
    TargetState.REVERTING: frozenset({TargetState.COMPLETE, TargetState.FAILED}),
    TargetState.COMPLETE: frozenset(),
    TargetState.FAILED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class ShellSpec:
    path: str
    args: tuple[str, ...] = ("-c",)

    def wrap(self, argv: tuple[str, ...]) -> tuple[str, ...]:
        return (self.path, *self.args, shlex.join(argv))


@dataclass(frozen=True, slots=True)
class BuildTarget:
    platform: Platform
    arch: TargetArch
    host_triple: str
    shell: ShellSpec
    cc: str = "cc"
    cxx: str = "c++"
    arch_flags: tuple[str, ...] = ()
    min_os_flag: str | None = None
    cross_compile: bool = False
    universal: bool = False
    vcpkg_triplet: str = ""
    ffmpeg_arch: str = "x86_64"
    ffmpeg_target_os: str = "linux"
    cross_prefix: str | None = None
    msystem: str | None = None
    binary_suffix: str = ""

    @property
    def id(self) -> str:
        return f"{self.platform}-{self.arch}"

    def binary_name(self, stem: str) -> str:
        return f"{stem}{self.binary_suffix}"


@dataclass(frozen=True, slots=True)
class TargetLayout:
    """Directories owned by one target; no two targets share any of them."""

    root: Path
    source_root: Path

    @classmethod
    def for_target(
        cls,
        work_dir: Path,
        target: BuildTarget,
        *,
        shared_sources: Path | None = None,
    ) -> TargetLayout:
        root = work_dir / target.id
        source_root = shared_sources if shared_sources is not None else root / "src"
        return cls(root=root, source_root=source_root)

    @property
    def prefix(self) -> Path:
        return self.root / "prefix"

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    def ensure(self) -> None:
        for path in (self.root, self.source_root, self.prefix, self.bin_dir, self.log_dir):
            path.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True, slots=True)
class SubCommand:
    kind: SubCommandKind
    argv: tuple[str, ...]
    tolerate_failure: bool = False


@dataclass(frozen=True, slots=True)
class ConfigureFlagSet:
    flags: tuple[str, ...] = ()
    sources: tuple[Path, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.flags)

    def __len__(self) -> int:
        return len(self.flags)


@dataclass(frozen=True, slots=True)
class DependencyStep:
    name: str
    working_dir: Path
    prefix: Path
    prerequisites: tuple[str, ...] = ()
    commands: tuple[SubCommand, ...] = ()
    configure_style: ConfigureStyle = "autotools"
    flags_to: SubCommandKind = "configure"
    output: Path | None = None

    @property
    def include_dir(self) -> Path:
        return self.prefix / "include"

    @property
    def lib_dir(self) -> Path:
        return self.prefix / "lib"

    def command(self, kind: SubCommandKind) -> SubCommand | None:
        for command in self.commands:
            if command.kind == kind:
                return command
        return None

    def with_flags(self, flag_set: ConfigureFlagSet) -> DependencyStep:
        """Return a copy whose flag-receiving sub-command ends with *flag_set*."""
        if not flag_set.flags:
            return self
        commands = tuple(
            replace(command, argv=(*command.argv, *flag_set.flags))
            if command.kind == self.flags_to
            else command
            for command in self.commands
        )
        return replace(self, commands=commands)


@dataclass(frozen=True, slots=True)
class ProcessInvocation:
    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    expected_returncode: int = 0
    timeout: float | None = None

    @property
    def display(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    def output_tail(self, limit: int = 2000) -> str:
        combined = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return combined[-limit:]


@dataclass(frozen=True, slots=True)
class Artifact:
    target_id: str
    platform: Platform
    arch: TargetArch
    path: Path


@dataclass(slots=True)
class TargetResult:
    target: BuildTarget
    state: TargetState = TargetState.PENDING
    history: list[TargetState] = field(default_factory=lambda: [TargetState.PENDING])
    failed_step: str | None = None
    failed_subcommand: str | None = None
    error: ProbeBuildError | None = None
    artifact: Artifact | None = None
    revert_count: int = 0

    @property
    def ok(self) -> bool:
        return self.state == TargetState.COMPLETE

    def transition(self, state: TargetState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise ValidationError(
                "Illegal target state transition.",
                context={
                    "target": self.target.id,
                    "from": self.state.value,
                    "to": state.value,
                },
            )
        self.state = state
        self.history.append(state)

    def fail(self, error: ProbeBuildError) -> None:
        self.error = error
        self.failed_step = error.context.get("step") or self.failed_step or self.state.value
        self.failed_subcommand = error.context.get("subcommand") or self.failed_subcommand

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target.id,
            "state": self.state.value,
            "history": [state.value for state in self.history],
            "failed_step": self.failed_step,
            "failed_subcommand": self.failed_subcommand,
            "error": self.error.to_dict() if self.error is not None else None,
            "artifact": str(self.artifact.path) if self.artifact is not None else None,
        }


@dataclass(slots=True)
class AssemblyResult:
    platform: Platform
    targets: tuple[str, ...]
    path: Path | None = None
    error: ProbeBuildError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.path is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "targets": list(self.targets),
            "path": str(self.path) if self.path is not None else None,
            "error": self.error.to_dict() if self.error is not None else None,
        }


@dataclass(slots=True)
class RunResult:
    targets: list[TargetResult] = field(default_factory=list)
    assemblies: list[AssemblyResult] = field(default_factory=list)
    logs: list[dict[str, Any]] = field(default_factory=list)
    report_path: Path | None = None

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.targets) and all(
            assembly.ok for assembly in self.assemblies
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def result_for(self, target_id: str) -> TargetResult:
        for result in self.targets:
            if result.target.id == target_id:
                return result
        raise KeyError(target_id)

    def summary_lines(self) -> list[str]:
        lines: list[str] = []
        for result in self.targets:
            if result.ok:
                lines.append(f"{result.target.id}: complete")
                continue
            where = result.failed_step or "setup"
            if result.failed_subcommand:
                where = f"{where}/{result.failed_subcommand}"
            reason = result.error.message if result.error is not None else "unknown error"
            lines.append(f"{result.target.id}: FAILED at {where}: {reason}")
        for assembly in self.assemblies:
            if assembly.ok:
                lines.append(f"{assembly.platform}: artifact {assembly.path}")
            else:
                reason = assembly.error.message if assembly.error is not None else "no artifact"
                lines.append(f"{assembly.platform}: FAILED at assemble: {reason}")
        return lines

    def report(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "exit_code": self.exit_code,
            "targets": [result.to_dict() for result in self.targets],
            "assemblies": [assembly.to_dict() for assembly in self.assemblies],
            "logs": list(self.logs),
        }

    def write_report(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(self.report(), indent=2, sort_keys=True, default=str) + "\n",
            encoding="utf-8",
        )
        self.report_path = output_path
        return output_path

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        payload = json.loads(json.dumps(self.report(), default=str))
        encoded = cbor2.dumps(payload, canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

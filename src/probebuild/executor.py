"""Sequential, fail-fast execution of a dependency step's sub-commands."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from probebuild.errors import (
    BuildTimeoutError,
    ProbeBuildError,
    SubcommandFailure,
    ValidationError,
)
from probebuild.models import (
    SUBCOMMAND_ORDER,
    DependencyStep,
    ProcessInvocation,
    ProcessOutcome,
    ShellSpec,
    SubCommand,
    SubCommandKind,
)
from probebuild.observability import StructuredLogger
from probebuild.runner import ProcessRunner


@dataclass(frozen=True, slots=True)
class StepResult:
    step: str
    completed: tuple[SubCommandKind, ...] = ()
    tolerated: tuple[SubCommandKind, ...] = ()


@dataclass(slots=True)
class StepExecutor:
    runner: ProcessRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    timeout: float | None = None
    log_dir: Path | None = None
    target_id: str | None = None

    def execute(
        self,
        step: DependencyStep,
        environment: Mapping[str, str],
        shell: ShellSpec | None,
    ) -> StepResult:
        """Run the step's sub-commands in order; the first hard failure raises."""
        _ensure_command_order(step)
        completed: list[SubCommandKind] = []
        tolerated: list[SubCommandKind] = []
        for command in step.commands:
            invocation = ProcessInvocation(
                argv=shell.wrap(command.argv) if shell is not None else command.argv,
                cwd=step.working_dir,
                env=dict(environment),
                timeout=self.timeout,
            )
            self.logger.log(
                operation="subcommand_start",
                target=self.target_id,
                step=step.name,
                subcommand=command.kind,
                message="Running sub-command.",
                extra={"command": invocation.display},
            )
            try:
                outcome = self.runner.run(invocation)
            except BuildTimeoutError as exc:
                raise self._annotate(exc, step, command) from None
            except ProbeBuildError as exc:
                if not command.tolerate_failure:
                    raise self._annotate(exc, step, command) from None
                self._tolerate(step, command, reason=exc.message)
                tolerated.append(command.kind)
                continue

            log_path = self._write_log(step, command, invocation, outcome)
            if outcome.returncode == invocation.expected_returncode:
                completed.append(command.kind)
                continue
            if command.tolerate_failure:
                self._tolerate(step, command, reason=f"exit code {outcome.returncode}")
                tolerated.append(command.kind)
                continue

            self.logger.log(
                operation="subcommand_failed",
                target=self.target_id,
                step=step.name,
                subcommand=command.kind,
                message="Sub-command exited with a failure code.",
                level="error",
                extra={"returncode": outcome.returncode},
            )
            raise SubcommandFailure(
                f"`{step.name}` {command.kind} failed with exit code {outcome.returncode}.",
                hint="Inspect the sub-command log for the tool's own diagnostics.",
                context={
                    "operation": "execute",
                    "target": self.target_id or "",
                    "step": step.name,
                    "subcommand": command.kind,
                    "returncode": str(outcome.returncode),
                    "command": invocation.display,
                    "log": str(log_path) if log_path is not None else "",
                    "output": outcome.output_tail(),
                },
            )

        return StepResult(step=step.name, completed=tuple(completed), tolerated=tuple(tolerated))

    def _tolerate(self, step: DependencyStep, command: SubCommand, *, reason: str) -> None:
        self.logger.warning(
            operation="subcommand_tolerated",
            target=self.target_id,
            step=step.name,
            subcommand=command.kind,
            message=f"Ignoring {command.kind} failure: {reason}.",
        )

    def _annotate(
        self,
        error: ProbeBuildError,
        step: DependencyStep,
        command: SubCommand,
    ) -> ProbeBuildError:
        error.context = {
            **error.context,
            "target": self.target_id or "",
            "step": step.name,
            "subcommand": command.kind,
        }
        return error

    def _write_log(
        self,
        step: DependencyStep,
        command: SubCommand,
        invocation: ProcessInvocation,
        outcome: ProcessOutcome,
    ) -> Path | None:
        if self.log_dir is None:
            return None
        log_path = self.log_dir / f"{step.name}-{command.kind}.log"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_path.write_text(
                (
                    f"$ {invocation.display}\n"
                    f"cwd={invocation.cwd}\n"
                    f"returncode={outcome.returncode}\n"
                    f"--- stdout ---\n{outcome.stdout}\n"
                    f"--- stderr ---\n{outcome.stderr}\n"
                ),
                encoding="utf-8",
            )
        except OSError as exc:
            raise SubcommandFailure(
                f"Could not write the {command.kind} log of `{step.name}`.",
                context={
                    "operation": "execute",
                    "target": self.target_id or "",
                    "step": step.name,
                    "subcommand": command.kind,
                    "log": str(log_path),
                    "error": str(exc),
                },
            ) from exc
        return log_path


def _ensure_command_order(step: DependencyStep) -> None:
    positions = [SUBCOMMAND_ORDER.index(command.kind) for command in step.commands]
    if positions != sorted(positions) or len(set(positions)) != len(positions):
        raise ValidationError(
            f"Sub-commands of `{step.name}` are out of order.",
            hint=f"Expected order: {', '.join(SUBCOMMAND_ORDER)}.",
            context={
                "operation": "execute",
                "step": step.name,
                "commands": ", ".join(command.kind for command in step.commands),
            },
        )

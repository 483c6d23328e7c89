"""Drive every requested target through patch, build, assemble and revert."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from probebuild.assemble import ArtifactAssembler
from probebuild.config import BuildConfig, ensure_config
from probebuild.errors import ArtifactMergeError, ProbeBuildError
from probebuild.executor import StepExecutor
from probebuild.flags import FlagComposer
from probebuild.models import (
    Artifact,
    AssemblyResult,
    BuildTarget,
    DependencyStep,
    Platform,
    RunResult,
    TargetLayout,
    TargetResult,
    TargetState,
)
from probebuild.observability import StructuredLogger
from probebuild.patches import PatchSet, discover_patches
from probebuild.plan import plan
from probebuild.runner import ProcessRunner, SubprocessRunner
from probebuild.targets import resolve_targets
from probebuild.workspace import stage_sources

REPORT_NAME = "build-report.json"


@dataclass(frozen=True, slots=True)
class TargetPlan:
    target: BuildTarget
    layout: TargetLayout
    steps: tuple[DependencyStep, ...]
    environments: dict[str, dict[str, str]]


@dataclass(slots=True)
class Orchestrator:
    config: BuildConfig
    runner: ProcessRunner = field(default_factory=SubprocessRunner)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def layout_for(self, target: BuildTarget) -> TargetLayout:
        shared = None if self.config.isolate_sources else self.config.sources_dir
        return TargetLayout.for_target(self.config.work_dir, target, shared_sources=shared)

    def plan_target(self, target: BuildTarget) -> TargetPlan:
        """Resolve the steps of *target* with their flags and environments bound."""
        layout = self.layout_for(target)
        composer = FlagComposer(self.config.flags_dir)
        steps: list[DependencyStep] = []
        environments: dict[str, dict[str, str]] = {}
        for step in plan(
            target,
            layout,
            strategy=self.config.strategy,
            binary_name=self.config.binary_name,
            make_jobs=self.config.make_jobs,
        ):
            flag_set, environment = composer.compose(step, target)
            steps.append(step.with_flags(flag_set))
            environments[step.name] = environment
        return TargetPlan(
            target=target,
            layout=layout,
            steps=tuple(steps),
            environments=environments,
        )

    def run(self, targets: Sequence[BuildTarget]) -> RunResult:
        ensure_config(self.config)
        results = [TargetResult(target=target) for target in targets]
        if self.config.target_jobs > 1 and len(results) > 1:
            with ThreadPoolExecutor(max_workers=self.config.target_jobs) as pool:
                list(pool.map(self._run_target, results))
        else:
            for result in results:
                self._run_target(result)

        assemblies = [
            self._assemble(platform, group) for platform, group in _group_by_platform(results)
        ]
        run_result = RunResult(
            targets=results,
            assemblies=assemblies,
            logs=list(self.logger.records),
        )
        run_result.write_report(self.config.artifacts_dir / REPORT_NAME)
        return run_result

    def _run_target(self, result: TargetResult) -> None:
        target = result.target
        patch_set: PatchSet | None = None
        succeeded = False
        try:
            result.transition(TargetState.PATCHING)
            target_plan = self.plan_target(target)
            stage_sources(target_plan.steps, self.config.sources_dir, target_plan.layout)
            patch_set = PatchSet(
                patches=discover_patches(
                    target_plan.steps,
                    target,
                    self.config.patches_dir,
                    strategy=self.config.strategy,
                ),
                runner=self.runner,
                logger=self.logger,
                target_id=target.id,
            )
            patch_set.apply()

            result.transition(TargetState.BUILDING)
            executor = StepExecutor(
                runner=self.runner,
                logger=self.logger,
                timeout=self.config.timeout,
                log_dir=target_plan.layout.log_dir,
                target_id=target.id,
            )
            for step in target_plan.steps:
                result.failed_step = step.name
                executor.execute(step, target_plan.environments[step.name], target.shell)
            result.failed_step = None

            result.transition(TargetState.ASSEMBLING)
            result.artifact = _collect_output(target, target_plan.steps)
            succeeded = True
        except ProbeBuildError as exc:
            result.fail(exc)
            self.logger.log(
                operation="target_failed",
                target=target.id,
                step=result.failed_step,
                subcommand=result.failed_subcommand,
                message=exc.message,
                level="error",
                extra={"code": exc.code},
            )
        finally:
            result.transition(TargetState.REVERTING)
            if patch_set is not None:
                patch_set.revert()
            result.revert_count += 1
            result.transition(TargetState.COMPLETE if succeeded else TargetState.FAILED)
            self.logger.log(
                operation="target_finished",
                target=target.id,
                step=None,
                subcommand=None,
                message=f"Target {result.state.value}.",
            )

    def _assemble(self, platform: Platform, group: list[TargetResult]) -> AssemblyResult:
        assembly = AssemblyResult(
            platform=platform,
            targets=tuple(result.target.id for result in group),
        )
        assembler = ArtifactAssembler(
            artifacts_dir=self.config.artifacts_dir,
            binary_name=self.config.binary_name,
            runner=self.runner,
            logger=self.logger,
        )
        try:
            assembly.path = assembler.assemble(
                platform,
                [result.artifact for result in group if result.artifact is not None],
                [result.target for result in group],
            )
        except ArtifactMergeError as exc:
            assembly.error = exc
            self.logger.log(
                operation="assemble_failed",
                target=None,
                step=None,
                subcommand=None,
                message=exc.message,
                level="error",
                extra={"platform": platform},
            )
        return assembly


def build(
    platform: str,
    architectures: Iterable[str],
    config: BuildConfig,
    *,
    runner: ProcessRunner | None = None,
    logger: StructuredLogger | None = None,
) -> RunResult:
    """Resolve targets for *platform* and run them. Unsupported targets raise."""
    targets = resolve_targets(platform, architectures)
    orchestrator = Orchestrator(
        config=config,
        runner=runner if runner is not None else SubprocessRunner(),
        logger=logger if logger is not None else StructuredLogger(),
    )
    return orchestrator.run(targets)


def _collect_output(target: BuildTarget, steps: tuple[DependencyStep, ...]) -> Artifact:
    final = steps[-1]
    if final.output is None or not final.output.is_file():
        raise ArtifactMergeError(
            "Final step did not produce the expected binary.",
            hint="Check the install log of the final step.",
            context={
                "operation": "collect_output",
                "target": target.id,
                "step": final.name,
                "subcommand": "install",
                "path": str(final.output or ""),
            },
        )
    return Artifact(
        target_id=target.id,
        platform=target.platform,
        arch=target.arch,
        path=final.output,
    )


def _group_by_platform(results: list[TargetResult]) -> list[tuple[Platform, list[TargetResult]]]:
    groups: dict[Platform, list[TargetResult]] = {}
    for result in results:
        groups.setdefault(result.target.platform, []).append(result)
    return list(groups.items())

"""Reduce per-target binaries to the final artifacts of a platform."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from probebuild.errors import ArtifactMergeError, ProbeBuildError
from probebuild.models import Artifact, BuildTarget, Platform, ProcessInvocation
from probebuild.observability import StructuredLogger
from probebuild.runner import ProcessRunner


@dataclass(slots=True)
class ArtifactAssembler:
    artifacts_dir: Path
    binary_name: str
    runner: ProcessRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    merge_tool: str = "lipo"

    def assemble(
        self,
        platform: Platform,
        outputs: Sequence[Artifact],
        expected: Sequence[BuildTarget],
    ) -> Path:
        """Copy or merge the *outputs* of *expected* targets into one location.

        Universal platforms with more than one architecture are merged into a
        single binary; every other case copies the per-target binaries.
        """
        by_arch = {artifact.arch: artifact for artifact in outputs}
        missing = [
            target.id
            for target in expected
            if target.arch not in by_arch or not by_arch[target.arch].path.is_file()
        ]
        if missing:
            raise ArtifactMergeError(
                "Expected per-architecture outputs are missing.",
                hint="Every target of the platform must build before assembly.",
                context={
                    "operation": "assemble",
                    "platform": platform,
                    "missing": ", ".join(missing),
                },
            )

        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        ordered = [by_arch[target.arch] for target in expected]
        if len(expected) > 1 and all(target.universal for target in expected):
            return self._merge(platform, ordered, expected[0])
        if len(expected) == 1:
            destination = self.artifacts_dir / expected[0].binary_name(self.binary_name)
            return self._copy(ordered[0], destination)

        for artifact, target in zip(ordered, expected, strict=True):
            destination = self.artifacts_dir / target.arch / target.binary_name(self.binary_name)
            self._copy(artifact, destination)
        return self.artifacts_dir

    def _copy(self, artifact: Artifact, destination: Path) -> Path:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(artifact.path, destination)
        except OSError as exc:
            raise ArtifactMergeError(
                "Could not copy artifact.",
                context={
                    "operation": "assemble",
                    "target": artifact.target_id,
                    "destination": str(destination),
                    "error": str(exc),
                },
            ) from exc
        self.logger.log(
            operation="assemble_copy",
            target=artifact.target_id,
            step=None,
            subcommand=None,
            message="Copied artifact.",
            extra={"destination": str(destination)},
        )
        return destination

    def _merge(
        self,
        platform: Platform,
        artifacts: Sequence[Artifact],
        reference: BuildTarget,
    ) -> Path:
        final_name = reference.binary_name(self.binary_name)
        destination = self.artifacts_dir / final_name
        staged: list[Path] = []
        try:
            for artifact in artifacts:
                stage = self.artifacts_dir / f"{final_name}-{artifact.arch}"
                staged.append(stage)
                self._copy(artifact, stage)

            invocation = ProcessInvocation(
                argv=(
                    self.merge_tool,
                    "-create",
                    *(str(path) for path in staged),
                    "-output",
                    str(destination),
                ),
            )
            try:
                outcome = self.runner.run(invocation)
            except ProbeBuildError as exc:
                raise ArtifactMergeError(
                    "Binary merge tool could not run.",
                    context={
                        "operation": "assemble",
                        "platform": platform,
                        "command": invocation.display,
                        "error": exc.message,
                    },
                ) from exc
            if outcome.returncode != 0 or not destination.is_file():
                raise ArtifactMergeError(
                    "Binary merge failed.",
                    hint=f"Check that {self.merge_tool} accepts every per-architecture binary.",
                    context={
                        "operation": "assemble",
                        "platform": platform,
                        "command": invocation.display,
                        "returncode": str(outcome.returncode),
                        "output": outcome.output_tail(),
                    },
                )
        finally:
            for stage in staged:
                stage.unlink(missing_ok=True)

        self.logger.log(
            operation="assemble_merge",
            target=None,
            step=None,
            subcommand=None,
            message="Merged per-architecture binaries.",
            extra={"platform": platform, "destination": str(destination)},
        )
        return destination

"""Apply and revert vendor build-file patches with the `patch` tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from probebuild.errors import PatchApplyError, ProbeBuildError
from probebuild.models import (
    BuildTarget,
    DependencyStep,
    ProcessInvocation,
    Strategy,
)
from probebuild.observability import StructuredLogger
from probebuild.runner import ProcessRunner


@dataclass(frozen=True, slots=True)
class PatchSpec:
    patch_file: Path
    directory: Path
    target_file: str | None = None
    strip: int = 1

    def argv(self, *, reverse: bool) -> tuple[str, ...]:
        # --forward skips patches already in the requested state in either direction
        argv = [
            "patch",
            *(("--reverse",) if reverse else ()),
            "--forward",
            "--batch",
            "--no-backup-if-mismatch",
            "--reject-file=-",
            f"-p{self.strip}",
            "-d",
            str(self.directory),
            "-i",
            str(self.patch_file),
        ]
        if self.target_file is not None:
            argv.append(self.target_file)
        return tuple(argv)


def discover_patches(
    steps: tuple[DependencyStep, ...],
    target: BuildTarget,
    patches_dir: Path,
    *,
    strategy: Strategy = "autotools",
) -> tuple[PatchSpec, ...]:
    """Collect the patches that apply to *target*'s planned steps.

    The autotools pipeline applies ``<patches_dir>/<library>/*.patch`` inside
    each library tree. The vcpkg pipeline patches the ffmpeg port file and the
    target's triplet file.
    """
    patches: list[PatchSpec] = []
    if strategy == "vcpkg":
        for step in steps:
            candidates = (
                (patches_dir / "ffmpeg-portfile.patch", "ports/ffmpeg/portfile.cmake"),
                (
                    patches_dir / f"{target.vcpkg_triplet}-cmake.patch",
                    f"triplets/{target.vcpkg_triplet}.cmake",
                ),
            )
            for patch_file, target_file in candidates:
                if patch_file.is_file():
                    patches.append(
                        PatchSpec(
                            patch_file=patch_file,
                            directory=step.working_dir,
                            target_file=target_file,
                            strip=0,
                        )
                    )
        return tuple(patches)

    for step in steps:
        library_dir = patches_dir / step.name
        if not library_dir.is_dir():
            continue
        for patch_file in sorted(library_dir.glob("*.patch")):
            patches.append(PatchSpec(patch_file=patch_file, directory=step.working_dir))
    return tuple(patches)


@dataclass(slots=True)
class PatchSet:
    patches: tuple[PatchSpec, ...]
    runner: ProcessRunner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    target_id: str | None = None

    def apply(self) -> list[PatchSpec]:
        """Apply every patch; ones that do not apply are logged and skipped.

        A patch that fails to apply has usually been applied already, so the
        run continues.
        """
        applied: list[PatchSpec] = []
        for patch in self.patches:
            try:
                self._run(patch, reverse=False)
            except PatchApplyError as exc:
                self.logger.warning(
                    operation="patch_apply",
                    target=self.target_id,
                    message="Patch did not apply; assuming it is already applied.",
                    extra=exc.to_dict(),
                )
                continue
            applied.append(patch)
            self.logger.log(
                operation="patch_apply",
                target=self.target_id,
                step=None,
                subcommand=None,
                message="Applied patch.",
                extra={"patch": str(patch.patch_file)},
            )
        return applied

    def revert(self) -> list[PatchSpec]:
        """Revert every patch, newest first. Never raises for unpatched files."""
        reverted: list[PatchSpec] = []
        for patch in reversed(self.patches):
            try:
                self._run(patch, reverse=True)
            except PatchApplyError as exc:
                self.logger.warning(
                    operation="patch_revert",
                    target=self.target_id,
                    message="Patch was not reverted; assuming the file is unpatched.",
                    extra=exc.to_dict(),
                )
                continue
            reverted.append(patch)
        return reverted

    def _run(self, patch: PatchSpec, *, reverse: bool) -> None:
        invocation = ProcessInvocation(argv=patch.argv(reverse=reverse))
        try:
            outcome = self.runner.run(invocation)
        except ProbeBuildError as exc:
            raise PatchApplyError(
                "Patch tool could not run.",
                context={
                    "operation": "patch_revert" if reverse else "patch_apply",
                    "patch": str(patch.patch_file),
                    "error": exc.message,
                },
            ) from exc
        if outcome.returncode != 0:
            raise PatchApplyError(
                "Patch tool reported a failure.",
                hint="The file may already be in the requested state.",
                context={
                    "operation": "patch_revert" if reverse else "patch_apply",
                    "patch": str(patch.patch_file),
                    "returncode": str(outcome.returncode),
                    "output": outcome.output_tail(500),
                },
            )

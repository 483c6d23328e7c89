"""Per-target source staging."""

from __future__ import annotations

import shutil
from pathlib import Path

from probebuild.errors import ValidationError
from probebuild.models import DependencyStep, TargetLayout


def stage_sources(
    steps: tuple[DependencyStep, ...],
    sources_dir: Path,
    layout: TargetLayout,
) -> tuple[Path, ...]:
    """Copy each step's source tree from *sources_dir* into the target layout.

    When the layout already points at *sources_dir* (shared sources) nothing
    is copied, but every tree must still exist.
    """
    staged: list[Path] = []
    for step in steps:
        tree_name = step.working_dir.name
        origin = sources_dir / tree_name
        if not origin.is_dir():
            raise ValidationError(
                f"Source tree for `{step.name}` is missing.",
                hint=f"Check out the sources into {origin}.",
                context={"operation": "stage_sources", "step": step.name, "path": str(origin)},
            )
        if origin.resolve() == step.working_dir.resolve():
            continue
        try:
            step.working_dir.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(origin, step.working_dir, symlinks=True, dirs_exist_ok=True)
        except OSError as exc:
            raise ValidationError(
                f"Could not stage the source tree for `{step.name}`.",
                context={
                    "operation": "stage_sources",
                    "step": step.name,
                    "path": str(step.working_dir),
                    "error": str(exc),
                },
            ) from exc
        staged.append(step.working_dir)
    try:
        layout.ensure()
    except OSError as exc:
        raise ValidationError(
            "Could not create the target work directories.",
            hint=f"Remove stale files under {layout.root}.",
            context={"operation": "stage_sources", "path": str(layout.root), "error": str(exc)},
        ) from exc
    return tuple(staged)

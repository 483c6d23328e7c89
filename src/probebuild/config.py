"""Run configuration and its validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from probebuild.errors import ValidationError
from probebuild.models import Strategy

STRATEGIES: tuple[Strategy, ...] = ("autotools", "vcpkg")


def _default_make_jobs() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True, slots=True)
class BuildConfig:
    root: Path
    sources_dir: Path
    flags_dir: Path
    patches_dir: Path
    work_dir: Path
    artifacts_dir: Path
    binary_name: str = "ffprobe"
    strategy: Strategy = "autotools"
    make_jobs: int = 1
    target_jobs: int = 1
    timeout: float | None = None
    isolate_sources: bool = True

    @classmethod
    def from_root(
        cls,
        root: str | Path,
        *,
        binary_name: str = "ffprobe",
        strategy: Strategy = "autotools",
        make_jobs: int | None = None,
        target_jobs: int = 1,
        timeout: float | None = None,
        isolate_sources: bool = True,
    ) -> BuildConfig:
        """Lay out the conventional directories under *root*."""
        base = Path(root).resolve()
        return cls(
            root=base,
            sources_dir=base / "sources",
            flags_dir=base / "flags",
            patches_dir=base / "patches",
            work_dir=base / "build",
            artifacts_dir=base / "artifacts",
            binary_name=binary_name,
            strategy=strategy,
            make_jobs=make_jobs if make_jobs is not None else _default_make_jobs(),
            target_jobs=target_jobs,
            timeout=timeout,
            isolate_sources=isolate_sources,
        )


def ensure_config(config: BuildConfig) -> None:
    if config.strategy not in STRATEGIES:
        raise ValidationError(
            f"Unsupported build strategy `{config.strategy}`.",
            hint=f"Choose one of: {', '.join(STRATEGIES)}.",
            context={"operation": "ensure_config", "strategy": str(config.strategy)},
        )
    if not config.binary_name:
        raise ValidationError(
            "binary_name must be non-empty.",
            context={"operation": "ensure_config"},
        )
    if config.make_jobs < 1 or config.target_jobs < 1:
        raise ValidationError(
            "Job counts must be at least 1.",
            context={
                "operation": "ensure_config",
                "make_jobs": str(config.make_jobs),
                "target_jobs": str(config.target_jobs),
            },
        )
    if config.timeout is not None and config.timeout <= 0:
        raise ValidationError(
            "timeout must be positive when set.",
            context={"operation": "ensure_config", "timeout": str(config.timeout)},
        )
    if config.target_jobs > 1 and not config.isolate_sources:
        raise ValidationError(
            "Parallel targets require per-target source isolation.",
            hint="Drop --shared-sources or run with --target-jobs 1.",
            context={"operation": "ensure_config", "target_jobs": str(config.target_jobs)},
        )

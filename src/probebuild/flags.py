"""Configure-flag file composition and build environment construction."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from probebuild.errors import ValidationError
from probebuild.models import BuildTarget, ConfigureFlagSet, DependencyStep


def read_flag_file(path: Path) -> tuple[str, ...]:
    """Return the flags in *path*, one per line, skipping blanks and `#` comments.

    A missing file contributes no flags.
    """
    if not path.exists():
        return ()
    if not path.is_file():
        raise ValidationError(
            "Flag file path is not a regular file.",
            context={"operation": "read_flag_file", "path": str(path)},
        )
    flags: list[str] = []
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        flags.append(line)
    return tuple(flags)


def flag_files(flags_dir: Path, tool: str, target: BuildTarget) -> tuple[Path, Path]:
    return (
        flags_dir / f"{tool}.config",
        flags_dir / f"{tool}.{target.id}.config",
    )


def compose_flags(common: Path, override: Path) -> ConfigureFlagSet:
    """Common-file flags first, then the target override file's flags."""
    common_flags = read_flag_file(common)
    override_flags = read_flag_file(override)
    sources = tuple(path for path in (common, override) if path.exists())
    return ConfigureFlagSet(flags=(*common_flags, *override_flags), sources=sources)


def compose_environment(step: DependencyStep, target: BuildTarget) -> dict[str, str]:
    prefix = step.prefix
    target_flags = [*target.arch_flags]
    if target.min_os_flag:
        target_flags.append(target.min_os_flag)

    include_flag = f"-I{prefix / 'include'}"
    lib_flag = f"-L{prefix / 'lib'}"
    env = {
        "CFLAGS": " ".join([include_flag, *target_flags]),
        "CPPFLAGS": include_flag,
        "LDFLAGS": " ".join([lib_flag, *target_flags]),
        "PKG_CONFIG_PATH": str(prefix / "lib" / "pkgconfig"),
    }
    if target.cross_compile:
        env["CC"] = target.cc
        env["CXX"] = target.cxx
    if target.msystem is not None:
        env["MSYSTEM"] = target.msystem
        # keeps the login shell in the working directory we pass
        env["CHERE_INVOKING"] = "1"
    return env


@dataclass(frozen=True, slots=True)
class FlagComposer:
    flags_dir: Path

    def compose(
        self,
        step: DependencyStep,
        target: BuildTarget,
    ) -> tuple[ConfigureFlagSet, dict[str, str]]:
        common, override = flag_files(self.flags_dir, _tool_name(step), target)
        return compose_flags(common, override), compose_environment(step, target)


def _tool_name(step: DependencyStep) -> str:
    return "vcpkg" if step.configure_style == "vcpkg" else step.name

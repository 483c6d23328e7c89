"""Registry of supported platform/architecture build targets."""

from __future__ import annotations

from collections.abc import Iterable

from probebuild.errors import UnsupportedTargetError
from probebuild.models import ARCHITECTURES, PLATFORMS, BuildTarget, ShellSpec

POSIX_SHELL = ShellSpec(path="/bin/bash")
MSYS2_SHELL = ShellSpec(path="C:/msys64/usr/bin/bash.exe", args=("-lc",))

TARGET_REGISTRY: dict[tuple[str, str], BuildTarget] = {
    ("linux", "x64"): BuildTarget(
        platform="linux",
        arch="x64",
        host_triple="x86_64-linux-gnu",
        shell=POSIX_SHELL,
        cc="gcc",
        cxx="g++",
        vcpkg_triplet="x64-linux",
        ffmpeg_arch="x86_64",
        ffmpeg_target_os="linux",
    ),
    ("macos", "x64"): BuildTarget(
        platform="macos",
        arch="x64",
        host_triple="x86_64-apple-darwin",
        shell=POSIX_SHELL,
        cc="clang",
        cxx="clang++",
        arch_flags=("-arch", "x86_64"),
        min_os_flag="-mmacosx-version-min=10.15",
        cross_compile=True,
        universal=True,
        vcpkg_triplet="x64-osx",
        ffmpeg_arch="x86_64",
        ffmpeg_target_os="darwin",
    ),
    ("macos", "arm64"): BuildTarget(
        platform="macos",
        arch="arm64",
        host_triple="aarch64-apple-darwin",
        shell=POSIX_SHELL,
        cc="clang",
        cxx="clang++",
        arch_flags=("-arch", "arm64"),
        min_os_flag="-mmacosx-version-min=11.0",
        cross_compile=True,
        universal=True,
        vcpkg_triplet="arm64-osx",
        ffmpeg_arch="arm64",
        ffmpeg_target_os="darwin",
    ),
    ("windows", "x64"): BuildTarget(
        platform="windows",
        arch="x64",
        host_triple="x86_64-w64-mingw32",
        shell=MSYS2_SHELL,
        cc="x86_64-w64-mingw32-gcc",
        cxx="x86_64-w64-mingw32-g++",
        cross_compile=True,
        vcpkg_triplet="x64-windows-static",
        ffmpeg_arch="x86_64",
        ffmpeg_target_os="mingw32",
        cross_prefix="x86_64-w64-mingw32-",
        msystem="MINGW64",
        binary_suffix=".exe",
    ),
    ("windows", "arm64"): BuildTarget(
        platform="windows",
        arch="arm64",
        host_triple="aarch64-w64-mingw32",
        shell=MSYS2_SHELL,
        cc="aarch64-w64-mingw32-clang",
        cxx="aarch64-w64-mingw32-clang++",
        cross_compile=True,
        vcpkg_triplet="arm64-windows-static",
        ffmpeg_arch="aarch64",
        ffmpeg_target_os="mingw32",
        cross_prefix="aarch64-w64-mingw32-",
        msystem="CLANGARM64",
        binary_suffix=".exe",
    ),
}


def registered_targets() -> tuple[BuildTarget, ...]:
    return tuple(TARGET_REGISTRY.values())


def resolve_targets(
    platform: str,
    requested_architectures: Iterable[str] = (),
) -> tuple[BuildTarget, ...]:
    """Return the registered targets for *platform*, in request order.

    An empty request selects every architecture registered for the platform.
    Repeated architectures are collapsed to their first occurrence.
    """
    if platform not in PLATFORMS:
        raise UnsupportedTargetError(
            f"Unsupported platform `{platform}`.",
            hint=f"Choose one of: {', '.join(PLATFORMS)}.",
            context={"operation": "resolve_targets", "platform": platform},
        )

    requested = list(dict.fromkeys(requested_architectures))
    if not requested:
        requested = [arch for (plat, arch) in TARGET_REGISTRY if plat == platform]

    targets: list[BuildTarget] = []
    for arch in requested:
        if arch not in ARCHITECTURES:
            raise UnsupportedTargetError(
                f"Unsupported architecture `{arch}`.",
                hint=f"Choose one of: {', '.join(ARCHITECTURES)}.",
                context={"operation": "resolve_targets", "platform": platform, "arch": arch},
            )
        target = TARGET_REGISTRY.get((platform, arch))
        if target is None:
            raise UnsupportedTargetError(
                f"No build configuration is registered for {platform}-{arch}.",
                hint="Register the target in probebuild.targets.TARGET_REGISTRY.",
                context={"operation": "resolve_targets", "platform": platform, "arch": arch},
            )
        targets.append(target)
    return tuple(targets)

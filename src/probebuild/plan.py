"""Declarative library pipeline and per-target step planning."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from probebuild.errors import ValidationError
from probebuild.models import (
    BuildTarget,
    ConfigureStyle,
    DependencyStep,
    Strategy,
    SubCommand,
    TargetLayout,
)


@dataclass(frozen=True, slots=True)
class LibraryDecl:
    name: str
    requires: tuple[str, ...] = ()
    bootstrap: tuple[str, ...] = ()
    configure_style: ConfigureStyle = "autotools"
    produces_binary: bool = False


LIBRARIES: tuple[LibraryDecl, ...] = (
    LibraryDecl("ogg", bootstrap=("./autogen.sh",)),
    LibraryDecl("vorbis", requires=("ogg",), bootstrap=("./autogen.sh",)),
    LibraryDecl("lame"),
    LibraryDecl(
        "ffmpeg",
        requires=("ogg", "vorbis", "lame"),
        configure_style="ffmpeg",
        produces_binary=True,
    ),
)

VCPKG_PORT = "ffmpeg[mp3lame,vorbis]"


def resolve_order(libraries: Sequence[LibraryDecl]) -> tuple[LibraryDecl, ...]:
    """Topologically sort *libraries*, breaking ties by declaration order."""
    by_name: dict[str, LibraryDecl] = {}
    for library in libraries:
        if library.name in by_name:
            raise ValidationError(
                f"Library `{library.name}` is declared more than once.",
                context={"operation": "resolve_order", "library": library.name},
            )
        by_name[library.name] = library

    for library in libraries:
        for requirement in library.requires:
            if requirement not in by_name:
                raise ValidationError(
                    f"Library `{library.name}` requires undeclared `{requirement}`.",
                    hint="Declare the prerequisite library before planning.",
                    context={
                        "operation": "resolve_order",
                        "library": library.name,
                        "requires": requirement,
                    },
                )

    ordered: list[LibraryDecl] = []
    done: set[str] = set()
    pending = list(libraries)
    while pending:
        ready = next(
            (lib for lib in pending if all(req in done for req in lib.requires)),
            None,
        )
        if ready is None:
            raise ValidationError(
                "Library prerequisites form a cycle.",
                context={
                    "operation": "resolve_order",
                    "libraries": ", ".join(lib.name for lib in pending),
                },
            )
        ordered.append(ready)
        done.add(ready.name)
        pending.remove(ready)
    return tuple(ordered)


def plan(
    target: BuildTarget,
    layout: TargetLayout,
    *,
    strategy: Strategy = "autotools",
    binary_name: str = "ffprobe",
    make_jobs: int = 1,
    libraries: Sequence[LibraryDecl] = LIBRARIES,
) -> tuple[DependencyStep, ...]:
    if strategy == "vcpkg":
        return (_vcpkg_step(target, layout, binary_name),)
    if strategy != "autotools":
        raise ValidationError(
            f"Unsupported build strategy `{strategy}`.",
            context={"operation": "plan", "target": target.id},
        )
    return tuple(
        _library_step(library, target, layout, binary_name=binary_name, make_jobs=make_jobs)
        for library in resolve_order(libraries)
    )


def _library_step(
    library: LibraryDecl,
    target: BuildTarget,
    layout: TargetLayout,
    *,
    binary_name: str,
    make_jobs: int,
) -> DependencyStep:
    commands = [SubCommand("clean", ("make", "distclean"), tolerate_failure=True)]
    if library.bootstrap:
        commands.append(SubCommand("bootstrap", library.bootstrap))
    if library.configure_style == "ffmpeg":
        commands.append(SubCommand("configure", _ffmpeg_configure(target, layout)))
    else:
        commands.append(SubCommand("configure", _autotools_configure(target, layout)))
    commands.append(SubCommand("build", ("make", f"-j{make_jobs}")))
    commands.append(SubCommand("install", ("make", "install")))

    output = layout.bin_dir / target.binary_name(binary_name) if library.produces_binary else None
    return DependencyStep(
        name=library.name,
        working_dir=layout.source_root / library.name,
        prefix=layout.prefix,
        prerequisites=library.requires,
        commands=tuple(commands),
        configure_style=library.configure_style,
        output=output,
    )


def _autotools_configure(target: BuildTarget, layout: TargetLayout) -> tuple[str, ...]:
    argv = [
        "./configure",
        f"--prefix={layout.prefix}",
        "--disable-shared",
        "--enable-static",
    ]
    if target.cross_compile:
        argv.append(f"--host={target.host_triple}")
    return tuple(argv)


def _ffmpeg_configure(target: BuildTarget, layout: TargetLayout) -> tuple[str, ...]:
    target_flags = [*target.arch_flags]
    if target.min_os_flag:
        target_flags.append(target.min_os_flag)
    argv = [
        "./configure",
        f"--prefix={layout.prefix}",
        f"--bindir={layout.bin_dir}",
        "--pkg-config-flags=--static",
        " ".join([f"--extra-cflags=-I{layout.prefix / 'include'}", *target_flags]),
        " ".join([f"--extra-ldflags=-L{layout.prefix / 'lib'}", *target_flags]),
    ]
    if target.cross_compile:
        argv.extend([
            "--enable-cross-compile",
            f"--arch={target.ffmpeg_arch}",
            f"--target-os={target.ffmpeg_target_os}",
        ])
        if target.cross_prefix:
            argv.append(f"--cross-prefix={target.cross_prefix}")
        else:
            argv.extend([f"--cc={target.cc}", f"--cxx={target.cxx}"])
    return tuple(argv)


def _vcpkg_step(target: BuildTarget, layout: TargetLayout, binary_name: str) -> DependencyStep:
    vcpkg_root = layout.source_root / "vcpkg"
    if target.platform == "windows":
        bootstrap: tuple[str, ...] = ("cmd.exe", "/c", "bootstrap-vcpkg.bat")
        executable = "./vcpkg.exe"
    else:
        bootstrap = ("./bootstrap-vcpkg.sh",)
        executable = "./vcpkg"
    installed = vcpkg_root / "installed" / target.vcpkg_triplet
    return DependencyStep(
        name="ffmpeg",
        working_dir=vcpkg_root,
        prefix=installed,
        commands=(
            SubCommand("bootstrap", bootstrap),
            SubCommand("install", (executable, "install", f"{VCPKG_PORT}:{target.vcpkg_triplet}")),
        ),
        configure_style="vcpkg",
        flags_to="install",
        output=installed / "tools" / "ffmpeg" / target.binary_name(binary_name),
    )

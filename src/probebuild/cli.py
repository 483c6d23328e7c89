"""Command-line entrypoint.

Usage:
    probebuild build --platform macos --arch x64 --arch arm64
    probebuild plan --platform windows
    probebuild targets
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from probebuild.config import STRATEGIES, BuildConfig, ensure_config
from probebuild.errors import ProbeBuildError
from probebuild.models import ARCHITECTURES, PLATFORMS
from probebuild.observability import StructuredLogger
from probebuild.orchestrator import Orchestrator
from probebuild.targets import registered_targets, resolve_targets


def _config_from_args(args: argparse.Namespace) -> BuildConfig:
    return BuildConfig.from_root(
        args.root,
        binary_name=args.binary,
        strategy=args.strategy,
        make_jobs=args.jobs,
        target_jobs=getattr(args, "target_jobs", 1),
        timeout=getattr(args, "timeout", None),
        isolate_sources=not getattr(args, "shared_sources", False),
    )


def cmd_build(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    logger = StructuredLogger()
    targets = resolve_targets(args.platform, args.arch or ())
    result = Orchestrator(config=config, logger=logger).run(targets)
    if args.log_file:
        logger.to_json_lines(args.log_file)
    for line in result.summary_lines():
        print(line)
    if result.report_path is not None:
        print(f"Report: {result.report_path}")
    return result.exit_code


def cmd_plan(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    ensure_config(config)
    orchestrator = Orchestrator(config=config)
    for target in resolve_targets(args.platform, args.arch or ()):
        target_plan = orchestrator.plan_target(target)
        print(f"[{target.id}] host={target.host_triple} root={target_plan.layout.root}")
        for step in target_plan.steps:
            requires = ", ".join(step.prerequisites) or "-"
            print(f"  {step.name} (requires: {requires}) in {step.working_dir}")
            for command in step.commands:
                print(f"    {command.kind}: {' '.join(command.argv)}")
    return 0


def cmd_targets(args: argparse.Namespace) -> int:
    for target in registered_targets():
        mode = "universal" if target.universal else "single"
        print(f"{target.id}\t{target.host_triple}\t{mode}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="probebuild",
        description="Build statically linked ffprobe binaries per platform.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--platform", required=True, choices=PLATFORMS)
    common.add_argument(
        "--arch",
        action="append",
        choices=ARCHITECTURES,
        help="Architecture to build; repeat for several. Defaults to all registered.",
    )
    common.add_argument("--root", default=".", help="Directory holding sources/, flags/, patches/")
    common.add_argument("--strategy", default="autotools", choices=STRATEGIES)
    common.add_argument("--binary", default="ffprobe", help="Name of the produced binary")
    common.add_argument("--jobs", type=int, default=None, help="Parallel make jobs")

    build_p = sub.add_parser("build", parents=[common], help="Build and assemble artifacts")
    build_p.add_argument("--target-jobs", type=int, default=1, help="Targets built concurrently")
    build_p.add_argument("--timeout", type=float, default=None, help="Per sub-command timeout")
    build_p.add_argument(
        "--shared-sources",
        action="store_true",
        help="Build in the shared source tree instead of per-target copies",
    )
    build_p.add_argument("--log-file", default=None, help="Write structured logs as JSON lines")
    build_p.set_defaults(handler=cmd_build)

    plan_p = sub.add_parser("plan", parents=[common], help="Print the resolved build plan")
    plan_p.set_defaults(handler=cmd_plan)

    targets_p = sub.add_parser("targets", help="List registered targets")
    targets_p.set_defaults(handler=cmd_targets)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.handler(args))
    except ProbeBuildError as exc:
        print(f"error [{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

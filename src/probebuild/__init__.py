"""Public package entrypoint for the ffprobe build orchestrator."""

from .assemble import ArtifactAssembler
from .config import BuildConfig, ensure_config
from .errors import (
    ArtifactMergeError,
    BuildFailure,
    BuildTimeoutError,
    ErrorCode,
    PatchApplyError,
    ProbeBuildError,
    SubcommandFailure,
    UnsupportedTargetError,
    ValidationError,
)
from .executor import StepExecutor, StepResult
from .flags import FlagComposer, compose_environment, compose_flags, read_flag_file
from .models import (
    Artifact,
    BuildTarget,
    ConfigureFlagSet,
    DependencyStep,
    ProcessInvocation,
    RunResult,
    TargetLayout,
    TargetResult,
    TargetState,
)
from .orchestrator import Orchestrator, build
from .patches import PatchSet, PatchSpec
from .plan import LIBRARIES, LibraryDecl, plan, resolve_order
from .targets import resolve_targets

__all__ = [
    "LIBRARIES",
    "Artifact",
    "ArtifactAssembler",
    "ArtifactMergeError",
    "BuildConfig",
    "BuildFailure",
    "BuildTarget",
    "BuildTimeoutError",
    "ConfigureFlagSet",
    "DependencyStep",
    "ErrorCode",
    "FlagComposer",
    "LibraryDecl",
    "Orchestrator",
    "PatchApplyError",
    "PatchSet",
    "PatchSpec",
    "ProbeBuildError",
    "ProcessInvocation",
    "RunResult",
    "StepExecutor",
    "StepResult",
    "SubcommandFailure",
    "TargetLayout",
    "TargetResult",
    "TargetState",
    "UnsupportedTargetError",
    "ValidationError",
    "build",
    "compose_environment",
    "compose_flags",
    "ensure_config",
    "plan",
    "read_flag_file",
    "resolve_order",
    "resolve_targets",
]

"""Typed build error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    UNSUPPORTED_TARGET = "E_UNSUPPORTED_TARGET"
    PATCH_APPLY = "E_PATCH_APPLY"
    SUBCOMMAND = "E_SUBCOMMAND"
    ARTIFACT_MERGE = "E_ARTIFACT_MERGE"
    TIMEOUT = "E_TIMEOUT"


class ProbeBuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(ProbeBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class UnsupportedTargetError(ProbeBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.UNSUPPORTED_TARGET, hint=hint, context=context)


class PatchApplyError(ProbeBuildError):
    """Raised when a patch does not apply; callers downgrade it to a warning."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PATCH_APPLY, hint=hint, context=context)


class SubcommandFailure(ProbeBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.SUBCOMMAND, hint=hint, context=context)


class ArtifactMergeError(ProbeBuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ARTIFACT_MERGE, hint=hint, context=context)


class BuildTimeoutError(ProbeBuildError, TimeoutError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TIMEOUT, hint=hint, context=context)


BuildFailure = SubcommandFailure

__all__ = [
    "ArtifactMergeError",
    "BuildFailure",
    "BuildTimeoutError",
    "ErrorCode",
    "PatchApplyError",
    "ProbeBuildError",
    "SubcommandFailure",
    "UnsupportedTargetError",
    "ValidationError",
]

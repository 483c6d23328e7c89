"""Process runners used to invoke external build tools."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Protocol

from probebuild.errors import BuildTimeoutError, SubcommandFailure
from probebuild.models import ProcessInvocation, ProcessOutcome


class ProcessRunner(Protocol):
    def run(self, invocation: ProcessInvocation) -> ProcessOutcome:
        """Run *invocation* to completion and return its outcome.

        Implementations raise ``BuildTimeoutError`` when the invocation's
        timeout elapses and ``SubcommandFailure`` when the process cannot be
        started. A non-zero exit is reported through the outcome, not raised.
        """


@dataclass(slots=True)
class SubprocessRunner:
    inherit_env: bool = True

    def run(self, invocation: ProcessInvocation) -> ProcessOutcome:
        env = dict(os.environ) if self.inherit_env else {}
        env.update(invocation.env)
        try:
            completed = subprocess.run(
                list(invocation.argv),
                cwd=str(invocation.cwd) if invocation.cwd is not None else None,
                env=env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=invocation.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise BuildTimeoutError(
                "Command did not finish before its timeout.",
                hint="Raise --timeout or investigate the stalled tool.",
                context={
                    "operation": "run",
                    "command": invocation.display,
                    "timeout": str(invocation.timeout),
                },
            ) from exc
        except OSError as exc:
            raise SubcommandFailure(
                "Command could not be started.",
                hint="Ensure the tool is installed and the working directory exists.",
                context={
                    "operation": "run",
                    "command": invocation.display,
                    "cwd": str(invocation.cwd or ""),
                    "error": str(exc),
                },
            ) from exc
        return ProcessOutcome(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

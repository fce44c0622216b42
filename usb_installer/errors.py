from __future__ import annotations

from typing import List, Sequence

EXIT_OK = 0
EXIT_INTERNAL = 1
EXIT_PRECONDITION = 2
EXIT_USER_ABORT = 3
EXIT_MISSING_DEPENDENCY = 4
EXIT_UNSAFE_DEVICE = 5
EXIT_STAGE_FAILED = 6
EXIT_CLEANUP_INCOMPLETE = 7
EXIT_INTERRUPTED = 130


class InstallerError(Exception):
    """Base class for every error the installer reports to the operator."""

    exit_code = EXIT_INTERNAL


class PreconditionError(InstallerError):
    """Raised before any resource is acquired."""

    exit_code = EXIT_PRECONDITION


class MissingDependencyError(PreconditionError):
    exit_code = EXIT_MISSING_DEPENDENCY

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required host tools: {', '.join(self.missing)}")


class UnsafeDeviceError(PreconditionError):
    exit_code = EXIT_UNSAFE_DEVICE


class UserAbortError(InstallerError):
    exit_code = EXIT_USER_ABORT


class StageError(InstallerError):
    """A stage could not complete; forward progress stops here."""

    exit_code = EXIT_STAGE_FAILED


class ToolExecutionError(StageError):
    def __init__(self, argv: Sequence[str], exit_code: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.command = self.argv[0] if self.argv else ""
        self.returncode = exit_code
        self.stderr = stderr or ""
        detail = self.stderr.strip()
        msg = f"Command failed ({exit_code}): {' '.join(self.argv)}"
        if detail:
            msg = f"{msg}\n{detail}"
        super().__init__(msg)


class AcquisitionError(StageError):
    """Mount, bind, loop attach or directory creation failed.

    Nothing is pushed onto the lifecycle stack for the failed resource.
    """

    def __init__(self, kind: str, target: str, source: str | None, cause: Exception) -> None:
        self.kind = kind
        self.target = target
        self.source = source
        self.cause = cause
        src = f" from {source}" if source else ""
        super().__init__(f"Could not acquire {kind} at {target}{src}: {cause}")


class ReleaseError(InstallerError):
    """A release attempt failed. Collected during unwind, never raised by it."""

    exit_code = EXIT_CLEANUP_INCOMPLETE

    def __init__(self, handle, reason: str) -> None:
        self.handle = handle
        self.reason = reason
        super().__init__(f"Could not release {handle.kind.value} at {handle.target}: {reason}")


class CleanupIncompleteError(InstallerError):
    exit_code = EXIT_CLEANUP_INCOMPLETE

    def __init__(self, errors: List[ReleaseError]) -> None:
        self.errors = list(errors)
        targets = ", ".join(e.handle.target for e in self.errors)
        super().__init__(f"{len(self.errors)} resource(s) could not be released: {targets}")


class RunInterrupted(InstallerError):
    exit_code = EXIT_INTERRUPTED

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")

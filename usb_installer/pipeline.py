from __future__ import annotations

import logging
import signal
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .errors import CleanupIncompleteError, ReleaseError, RunInterrupted
from .lifecycle import LifecycleStack

logger = logging.getLogger(__name__)

GUARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class Stage(Protocol):
    """A single named unit of work. Stages run once, in order, never retried."""

    stage_id: str
    idempotent: bool

    def run(self, ctx: Any) -> None:
        ...


@dataclass
class FunctionStage:
    """Adapter for a plain callable used as a stage."""

    stage_id: str
    action: Callable[[Any], None]
    idempotent: bool = False

    def run(self, ctx: Any) -> None:
        self.action(ctx)


@dataclass(frozen=True)
class RunResult:
    ran_stages: List[str]
    release_errors: List[ReleaseError]


class InterruptGuard:
    """Record termination signals for the runner to act on between stages.

    The handler never raises: a tool already running is allowed to finish and
    a successful acquire always reaches the stack. Only the first signal
    counts; later ones, and any during the unwind, are logged and ignored.
    """

    def __init__(self, signals: Sequence[int] = GUARDED_SIGNALS) -> None:
        self.signals = tuple(signals)
        self.unwinding = False
        self.received: Optional[int] = None
        self._previous: Dict[int, Any] = {}

    def _handle(self, signum, frame) -> None:
        if self.unwinding or self.received is not None:
            logger.warning("Signal %s received again or during cleanup; ignoring", signum)
            return
        self.received = signum
        logger.error("Signal %s received; stopping after the current stage", signum)

    def check(self) -> None:
        """Raise :class:`RunInterrupted` if a signal arrived."""
        if self.received is not None and not self.unwinding:
            raise RunInterrupted(self.received)

    def __enter__(self) -> "InterruptGuard":
        for sig in self.signals:
            try:
                self._previous[sig] = signal.signal(sig, self._handle)
            except ValueError:
                # Not the main thread; the caller's own handlers stay in place.
                logger.debug("Cannot install handler for signal %s", sig)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for sig, prev in self._previous.items():
            signal.signal(sig, prev)
        self._previous.clear()


class StageRunner:
    """Run stages strictly in order and always drain the lifecycle stack."""

    def __init__(self, stack: LifecycleStack, *, guard: Optional[InterruptGuard] = None) -> None:
        self.stack = stack
        self.guard = guard if guard is not None else InterruptGuard()
        self.current_stage: Optional[str] = None
        self.failed_stage: Optional[str] = None
        self.release_errors: List[ReleaseError] = []

    def _unwind(self, ctx: Any) -> List[ReleaseError]:
        self.guard.unwinding = True
        errors = list(getattr(ctx, "release_errors", None) or [])
        errors.extend(self.stack.release_all())
        self.release_errors = errors
        return errors

    def run(self, stages: Sequence[Stage], ctx: Any, *, state: Optional[Dict[str, Any]] = None) -> RunResult:
        """Run ``stages`` against ``ctx``.

        The first failing stage stops the run; its exception propagates
        unchanged after every held resource has been released. A clean run
        whose unwind left resources behind raises CleanupIncompleteError.
        """

        ran: List[str] = []
        exe = (state if state is not None else {}).setdefault("execution", {})
        exe.setdefault("completed_stages", [])
        errors: List[ReleaseError] = []

        with self.guard:
            try:
                for stage in stages:
                    self.current_stage = stage.stage_id
                    exe["current_stage"] = stage.stage_id
                    # signals only take effect here, between stages
                    self.guard.check()
                    logger.info("Running stage %s", stage.stage_id)
                    stage.run(ctx)
                    ran.append(stage.stage_id)
                    exe["completed_stages"].append(stage.stage_id)
                    self.guard.check()
                self.current_stage = None
            except BaseException:
                self.failed_stage = self.current_stage
                exe["failed_stage"] = self.failed_stage
                logger.error("Run stopped at stage %s; releasing %d resource(s)", self.failed_stage, len(self.stack))
                raise
            finally:
                exe["current_stage"] = None
                errors = self._unwind(ctx)
                exe["release_errors"] = [str(e) for e in errors]
                if self.failed_stage is not None:
                    for e in errors:
                        logger.warning("Left behind after failure: %s", e)

        if errors:
            raise CleanupIncompleteError(errors)
        return RunResult(ran_stages=ran, release_errors=errors)

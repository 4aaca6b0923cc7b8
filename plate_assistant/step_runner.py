from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger("plate_assistant.steps")

StepAction = Callable[[Any], Awaitable[None]]


@dataclass
class BoundedStep:
    """Step descriptor with its own timeout and declared fallback action."""
    name: str
    fn: StepAction
    timeout: Optional[float] = None
    fallback: Optional[StepAction] = None


@dataclass
class StepOutcome:
    name: str
    status: str
    detail: str = ""
    elapsed_ms: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {"step": self.name, "status": self.status, "detail": self.detail, "elapsed_ms": self.elapsed_ms}


@dataclass
class StepRunner:
    """Ordered runner for bounded steps; a failed step runs its fallback and the run continues."""
    steps: List[BoundedStep]
    label: str = ""
    outcomes: List[StepOutcome] = field(default_factory=list)

    async def run(self, target: Any) -> List[StepOutcome]:
        """Purpose: Execute steps in order with per-step timeouts and fallbacks.
        Inputs/Outputs: Input is the object each step acts on; returns step outcomes.
        Side Effects / State: Invokes step functions; appends to outcomes.
        Dependencies: Uses asyncio.wait_for for step timeouts.
        Failure Modes: Step and fallback errors are recorded, never raised;
            cancellation propagates to the caller.
        If Removed: Browser scripting falls back to inline awaits with no step audit.
        Testing Notes: Verify order, timeout -> fallback, and fallback failure paths.
        """
        # Run every step; a failure only changes that step's outcome.
        for step in self.steps:
            started = time.monotonic()
            try:
                await _bounded(step.fn(target), step.timeout)
                self._record(step.name, "success", "", started)
                continue
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                detail = f"{type(exc).__name__}: {exc}"
                logger.warning("%s step=%s status=failed detail=%s", self.label, step.name, detail)

            if step.fallback is None:
                self._record(step.name, "failed", detail, started)
                continue
            try:
                await _bounded(step.fallback(target), step.timeout)
                self._record(step.name, "fallback", detail, started)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                fallback_detail = f"{type(exc).__name__}: {exc}"
                logger.warning("%s step=%s status=fallback_failed detail=%s", self.label, step.name, fallback_detail)
                self._record(step.name, "skipped", fallback_detail, started)
        return self.outcomes

    def _record(self, name: str, status: str, detail: str, started: float) -> None:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        self.outcomes.append(StepOutcome(name=name, status=status, detail=detail, elapsed_ms=elapsed_ms))
        logger.info("%s step=%s status=%s elapsed_ms=%s", self.label, name, status, elapsed_ms)


async def _bounded(awaitable: Awaitable[None], timeout: Optional[float]) -> None:
    if timeout is None:
        await awaitable
    else:
        await asyncio.wait_for(awaitable, timeout=timeout)


async def continue_anyway(_: Any) -> None:
    """Fallback that accepts the failure and lets the run go on."""
    return None

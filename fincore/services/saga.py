"""
Compensating steps for multi-write operations.

Each store write that succeeded is recorded together with an async undo.
When a later write fails, ``rollback`` runs the undos newest-first. A failing
undo is logged and the walk continues; the caller still reports the error
that started the rollback.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fincore.services.logging import log_error

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    compensate: Compensation


@dataclass
class Saga:
    operation: str
    context: Dict[str, Any] = field(default_factory=dict)
    steps: List[SagaStep] = field(default_factory=list)

    def committed(self, name: str, compensate: Compensation) -> None:
        self.steps.append(SagaStep(name=name, compensate=compensate))

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    async def rollback(self, reason: Optional[BaseException] = None) -> List[str]:
        """Undo committed steps in reverse order. Returns the names of undos that failed."""
        failed: List[str] = []
        if self.steps:
            logger.warning(
                f"Rolling back {self.operation}: {', '.join(reversed(self.step_names))}"
                + (f" ({reason})" if reason else "")
            )
        for step in reversed(self.steps):
            try:
                await step.compensate()
            except Exception as exc:
                failed.append(step.name)
                log_error(
                    "rollback_failed",
                    f"Compensation for {self.operation}/{step.name} failed",
                    context={**self.context, "step": step.name},
                    exception=exc,
                )
        self.steps.clear()
        return failed

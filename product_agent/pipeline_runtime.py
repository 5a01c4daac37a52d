from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger("product_agent.pipeline")


@dataclass
class PipelineStep:
    """Named unit of work in a resolution pipeline."""
    name: str
    fn: Callable[[object], None]


class StepRunner:
    """Runs ordered steps against a mutable context with per-step logging."""

    def __init__(self, steps: List[PipelineStep]) -> None:
        self._steps = steps

    def run(self, context: object, request_label: str = "") -> None:
        """Purpose: Execute steps in order.
        Inputs/Outputs: Input is a mutable context and a label for log lines; no return.
        Side Effects / State: Step functions mutate the context; each step is logged
            with its duration.
        Dependencies: PipelineStep.fn.
        Failure Modes: A failing step is logged with its stage name and re-raised.
        If Removed: Resolution requests cannot run.
        Testing Notes: A raising step stops the run; later steps never execute.
        """
        # Time each step; failures keep the stage name in the log before propagating.
        for step in self._steps:
            started = time.perf_counter()
            try:
                step.fn(context)
            except Exception:
                logger.warning(
                    "query=%s step=%s status=failed elapsed_ms=%s",
                    request_label,
                    step.name,
                    int((time.perf_counter() - started) * 1000),
                )
                raise
            logger.debug(
                "query=%s step=%s status=success elapsed_ms=%s",
                request_label,
                step.name,
                int((time.perf_counter() - started) * 1000),
            )

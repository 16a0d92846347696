"""Composable validation gates for build stages.

A gate pairs a predicate with the error it raises and a diagnostic message.
Builders assemble lists of gates after each transformation and hand them to
run_gates(), which enforces them in order and stops at the first failure.
"""

from dataclasses import dataclass
from typing import Callable, Iterable

import structlog

from msigdb_pipeline.exceptions import PipelineError, ValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Gate:
    """Single sanity check on a build stage.

    Attributes:
        name: Short identifier, unique within a stage
        check: Zero-argument predicate, True when the invariant holds
        message: Diagnostic describing the invariant and observed values
        error: Exception class raised on failure (default: ValidationError)
    """
    name: str
    check: Callable[[], bool]
    message: str
    error: type[PipelineError] = ValidationError

    def passed(self) -> bool:
        return bool(self.check())

    def enforce(self, stage: str = "") -> None:
        """Raise the gate's error if the predicate does not hold."""
        if self.passed():
            return
        prefix = f"{stage}: " if stage else ""
        logger.error(
            "validation_gate_failed",
            stage=stage,
            gate=self.name,
            message=self.message,
        )
        raise self.error(f"{prefix}{self.name} failed - {self.message}")


def run_gates(stage: str, gates: Iterable[Gate]) -> list[str]:
    """Enforce gates in order.

    Args:
        stage: Name of the build stage (used in logs and error messages)
        gates: Gates to evaluate; later gates may assume earlier ones passed

    Returns:
        Names of the gates that passed

    Raises:
        PipelineError subclass declared by the first failing gate
    """
    passed: list[str] = []
    for gate in gates:
        gate.enforce(stage)
        logger.debug("validation_gate_passed", stage=stage, gate=gate.name)
        passed.append(gate.name)

    logger.info("validation_gates_passed", stage=stage, gate_count=len(passed))
    return passed


def ratio(numerator: int | float, denominator: int | float) -> float:
    """Fraction used by threshold gates; 0.0 when the denominator is empty."""
    if not denominator:
        return 0.0
    return numerator / denominator


def gates_by_name(gates: Iterable[Gate]) -> dict[str, Gate]:
    return {gate.name: gate for gate in gates}

"""
Ordered decision list for base/current comparison.

Each step pairs a predicate with a candidate handler. Steps are tried in
order and the first whose predicate holds produces the result, so the
list order is the branch precedence.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np

from .types import DefectCandidate, GeometryResult, StructuralResult

logger = logging.getLogger(__name__)


@dataclass
class DiffContext:
    """Everything the decision steps of one comparison can look at.

    ``structural`` and ``geometry`` are filled lazily by the predicates
    that need them, so a branch is only evaluated when every branch ahead
    of it declined.
    """

    width: int
    height: int
    diff_mask: np.ndarray = field(repr=False)
    roi_mask: np.ndarray = field(repr=False)
    base_mask: np.ndarray = field(repr=False)
    current_mask: np.ndarray = field(repr=False)
    structural: Optional[StructuralResult] = None
    geometry: Optional[GeometryResult] = None


@dataclass(frozen=True)
class DecisionStep:
    """One branch of the decision list."""

    name: str
    predicate: Callable[[DiffContext], bool]
    handler: Callable[[DiffContext], list[DefectCandidate]]


def always(_: DiffContext) -> bool:
    return True


def run_decision_steps(
    steps: Sequence[DecisionStep],
    context: DiffContext,
) -> tuple[str, list[DefectCandidate]]:
    """Run the first step whose predicate holds.

    Returns:
        (name of the branch taken, its candidates). When no step applies
        the branch name is empty and the list is empty.
    """
    for step in steps:
        if not step.predicate(context):
            continue
        candidates = step.handler(context)
        logger.info("detector.branch taken=%s candidates=%d", step.name, len(candidates))
        return step.name, candidates

    logger.info("detector.branch taken=none")
    return "", []

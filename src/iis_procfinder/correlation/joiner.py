"""
Correlation Joiner.

A candidate belongs to an application pool when its immediate parent is one
of that pool's worker processes. Deeper ancestry is not followed.
"""

from typing import Iterable, List, Mapping

from ..utils.logging import get_logger
from .models import (
    CorrelatedProcess,
    CorrelationOutcome,
    Found,
    NotCorrelated,
    RuntimeProcessCandidate,
)

logger = get_logger(__name__)


def correlate(
    candidate: RuntimeProcessCandidate,
    worker_process_map: Mapping[int, str]
) -> CorrelationOutcome:
    """Look up the candidate's parent pid in the worker process map."""
    app_pool_name = worker_process_map.get(candidate.parent_process_id)
    if app_pool_name is None:
        return NotCorrelated(candidate)
    return Found(CorrelatedProcess.from_candidate(candidate, app_pool_name))


def join(
    candidates: Iterable[RuntimeProcessCandidate],
    worker_process_map: Mapping[int, str]
) -> List[CorrelatedProcess]:
    """Return a correlated record for every candidate hosted by a worker process."""
    correlated: List[CorrelatedProcess] = []

    for candidate in candidates:
        outcome = correlate(candidate, worker_process_map)
        if isinstance(outcome, Found):
            correlated.append(outcome.process)
        else:
            logger.debug(
                "candidate_not_correlated",
                pid=candidate.process_id,
                parent_pid=candidate.parent_process_id,
                name=candidate.process_name
            )

    return correlated


def sort_for_display(processes: Iterable[CorrelatedProcess]) -> List[CorrelatedProcess]:
    """Order by application pool name; ties keep enumeration order."""
    return sorted(processes, key=lambda process: process.app_pool_name)


__all__ = [
    'correlate',
    'join',
    'sort_for_display',
]

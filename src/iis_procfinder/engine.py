"""
Correlation Engine.

Runs the pipeline stages one after another:

1. worker process listing -> pid to application pool map
2. candidate enumeration for each configured executable name
3. join on parent pid
4. sort for display

A scan never raises for a fatal enumeration failure; the failure is returned
in the ScanResult so callers can tell "nothing found" from "could not look".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from .dispatch.matcher import ArchitectureChooser, MatchResult, match
from .utils.config import ProcFinderConfig
from .utils.errors import ProcFinderError, error_context
from .utils.logging import get_logger
from .correlation.app_pools import ApplicationPoolEnumerator
from .correlation.architecture import ArchitectureResolver
from .correlation.candidates import CandidateEnumerator
from .correlation.joiner import join, sort_for_display
from .correlation.models import CorrelatedProcess

logger = get_logger(__name__)


class ScanStatus(str, Enum):
    """Whether the enumeration pipeline ran to completion."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanResult:
    """Correlated processes from one enumeration pass."""
    status: ScanStatus
    correlated: Tuple[CorrelatedProcess, ...] = ()
    worker_processes: Tuple[Tuple[int, str], ...] = ()
    candidates_found: int = 0
    skipped_names: Tuple[str, ...] = ()
    error: Optional[ProcFinderError] = None

    @property
    def failed(self) -> bool:
        return self.status == ScanStatus.FAILED

    @property
    def worker_process_map(self) -> Dict[int, str]:
        return dict(self.worker_processes)


@dataclass(frozen=True)
class LocateResult:
    """A scan and, when it succeeded, the match for one application pool."""
    scan: ScanResult
    match: Optional[MatchResult] = None

    @property
    def failed(self) -> bool:
        return self.scan.failed


class CorrelationEngine:
    """Finds the processes hosting IIS application pools."""

    def __init__(
        self,
        process_names: Sequence[str],
        pool_enumerator: ApplicationPoolEnumerator,
        candidate_enumerator: CandidateEnumerator
    ):
        self.process_names = list(process_names)
        self.pool_enumerator = pool_enumerator
        self.candidate_enumerator = candidate_enumerator

    @classmethod
    def from_config(
        cls,
        config: ProcFinderConfig,
        resolver: Optional[ArchitectureResolver] = None
    ) -> "CorrelationEngine":
        return cls(
            process_names=config.discovery.process_names,
            pool_enumerator=ApplicationPoolEnumerator(config.discovery.appcmd_path),
            candidate_enumerator=CandidateEnumerator(resolver=resolver),
        )

    def scan(self) -> ScanResult:
        """Run the enumeration pipeline once."""
        try:
            with error_context("correlation_engine", "scan", process_names=self.process_names):
                worker_map = self.pool_enumerator.enumerate_worker_processes()
                enumeration = self.candidate_enumerator.enumerate_all(self.process_names)
        except ProcFinderError as e:
            return ScanResult(status=ScanStatus.FAILED, error=e)

        candidates = enumeration.candidates
        correlated = sort_for_display(join(candidates, worker_map))
        logger.info(
            "scan_completed",
            worker_processes=len(worker_map),
            candidates=len(candidates),
            correlated=len(correlated),
            skipped_names=list(enumeration.skipped_names)
        )

        return ScanResult(
            status=ScanStatus.COMPLETED,
            correlated=tuple(correlated),
            worker_processes=tuple(sorted(worker_map.items())),
            candidates_found=len(candidates),
            skipped_names=enumeration.skipped_names,
        )

    def locate(
        self,
        target_pool_name: str,
        passthrough_args: Sequence[str] = (),
        choose_architecture: Optional[ArchitectureChooser] = None,
        **match_options
    ) -> LocateResult:
        """Scan, then match ``target_pool_name`` when the scan succeeded."""
        scan = self.scan()
        if scan.failed:
            return LocateResult(scan=scan)

        return LocateResult(
            scan=scan,
            match=match(
                scan.correlated,
                target_pool_name,
                passthrough_args,
                choose_architecture=choose_architecture,
                **match_options
            ),
        )


__all__ = [
    'CorrelationEngine',
    'ScanResult',
    'ScanStatus',
    'LocateResult',
]

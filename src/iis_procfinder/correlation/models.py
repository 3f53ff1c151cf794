"""
Data model for the correlation engine.

Records are created fresh on every enumeration pass and never persisted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ArchitectureTag(str, Enum):
    """Processor architecture a process runs under."""
    X86 = "x86"
    X64 = "x64"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ApplicationPoolWorkerProcess:
    """One IIS worker process and the application pool it serves."""
    process_id: int
    app_pool_name: str
    processor_architecture: Optional[str] = None


@dataclass(frozen=True)
class RuntimeProcessCandidate:
    """An OS process whose executable name matched a configured name."""
    process_name: str
    process_id: int
    parent_process_id: int
    processor_architecture: ArchitectureTag = ArchitectureTag.UNKNOWN
    owner_identity: str = ""


@dataclass(frozen=True)
class CorrelatedProcess:
    """A candidate joined to the application pool of its parent worker process."""
    process_name: str
    process_id: int
    parent_process_id: int
    app_pool_name: str
    processor_architecture: ArchitectureTag = ArchitectureTag.UNKNOWN
    owner_identity: str = ""

    @classmethod
    def from_candidate(cls, candidate: RuntimeProcessCandidate, app_pool_name: str) -> "CorrelatedProcess":
        return cls(
            process_name=candidate.process_name,
            process_id=candidate.process_id,
            parent_process_id=candidate.parent_process_id,
            app_pool_name=app_pool_name,
            processor_architecture=candidate.processor_architecture,
            owner_identity=candidate.owner_identity,
        )


@dataclass(frozen=True)
class Found:
    """Correlation hit."""
    process: CorrelatedProcess


@dataclass(frozen=True)
class NotCorrelated:
    """The candidate's parent is not a known worker process."""
    candidate: RuntimeProcessCandidate


CorrelationOutcome = Union[Found, NotCorrelated]


__all__ = [
    'ArchitectureTag',
    'ApplicationPoolWorkerProcess',
    'RuntimeProcessCandidate',
    'CorrelatedProcess',
    'Found',
    'NotCorrelated',
    'CorrelationOutcome',
]

"""
Process correlation for iis-procfinder.

This package joins IIS worker processes to the runtime processes they host:
- Application pool enumeration through appcmd
- Candidate enumeration from the OS process table
- Architecture resolution through IsWow64Process
- Parent pid correlation
"""

from .models import (
    ArchitectureTag,
    ApplicationPoolWorkerProcess,
    RuntimeProcessCandidate,
    CorrelatedProcess,
    Found,
    NotCorrelated,
)
from .architecture import ArchitectureResolver, Kernel32Wow64Probe
from .app_pools import ApplicationPoolEnumerator
from .candidates import CandidateEnumerator
from .joiner import correlate, join

__all__ = [
    # Models
    'ArchitectureTag',
    'ApplicationPoolWorkerProcess',
    'RuntimeProcessCandidate',
    'CorrelatedProcess',
    'Found',
    'NotCorrelated',

    # Stages
    'ArchitectureResolver',
    'Kernel32Wow64Probe',
    'ApplicationPoolEnumerator',
    'CandidateEnumerator',
    'correlate',
    'join',
]

"""
Test fixtures for iis-procfinder.

Provides fake process table entries, fake WOW64 probes and mock appcmd scripts.
"""

from .process_fixtures import (
    ProcessFixtures,
    FakeProcess,
    FakeWow64Probe,
    DEFAULT_POOL_LISTING,
)

__all__ = [
    "ProcessFixtures",
    "FakeProcess",
    "FakeWow64Probe",
    "DEFAULT_POOL_LISTING",
]

"""
Dispatch package for iis-procfinder.

Builds ProcDump invocations for matched processes and launches them.
"""

from .matcher import InvocationDescriptor, MatchResult, match, build_arguments
from .launcher import LaunchedProcess, launch, validate_tool_path

__all__ = [
    # Matching
    'InvocationDescriptor',
    'MatchResult',
    'match',
    'build_arguments',

    # Launching
    'LaunchedProcess',
    'launch',
    'validate_tool_path',
]

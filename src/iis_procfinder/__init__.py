"""
iis-procfinder - find the process hosting an IIS application pool.

ASP.NET Core applications behind IIS run in a dotnet.exe (or self-hosted exe)
process started by the pool's w3wp.exe worker. This package finds that
process for a given application pool name so ProcDump can be attached to it:
- Application pool to worker process mapping via appcmd
- Runtime host process discovery via psutil
- 32/64-bit detection
- ProcDump command construction and launch
"""

__version__ = "0.1.0"
__author__ = "iis-procfinder developers"

__all__ = [
    '__version__',
]

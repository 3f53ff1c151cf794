"""
Architecture Resolver.

Determines whether a process runs under WOW64 (32-bit emulation on a 64-bit
host) or natively, using kernel32's IsWow64Process.
"""

import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol

from ..utils.logging import get_logger
from .models import ArchitectureTag

logger = get_logger(__name__)


class Wow64Probe(Protocol):
    """OS facility answering "is this process emulated 32-bit?"."""

    @property
    def available(self) -> bool:
        ...

    def open(self, process_id: int) -> Any:
        ...

    def is_wow64(self, handle: Any) -> bool:
        ...

    def close(self, handle: Any) -> None:
        ...


class Kernel32Wow64Probe:
    """Wow64Probe backed by kernel32 through ctypes."""

    PROCESS_QUERY_INFORMATION = 0x0400
    PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

    def __init__(self):
        self._kernel32 = None
        self._windows_version = (0, 0)

        if sys.platform == "win32":
            import ctypes
            from ctypes import wintypes

            kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
            kernel32.OpenProcess.argtypes = (wintypes.DWORD, wintypes.BOOL, wintypes.DWORD)
            kernel32.OpenProcess.restype = wintypes.HANDLE
            kernel32.CloseHandle.argtypes = (wintypes.HANDLE,)
            kernel32.CloseHandle.restype = wintypes.BOOL
            if hasattr(kernel32, "IsWow64Process"):
                kernel32.IsWow64Process.argtypes = (wintypes.HANDLE, ctypes.POINTER(wintypes.BOOL))
                kernel32.IsWow64Process.restype = wintypes.BOOL

            self._kernel32 = kernel32
            version = sys.getwindowsversion()
            self._windows_version = (version.major, version.minor)

    @property
    def available(self) -> bool:
        """IsWow64Process exists from Windows XP (5.1) on."""
        return (
            self._kernel32 is not None
            and self._windows_version >= (5, 1)
            and hasattr(self._kernel32, "IsWow64Process")
        )

    def open(self, process_id: int) -> Any:
        import ctypes

        # PROCESS_QUERY_LIMITED_INFORMATION is only understood by Vista and later
        if self._windows_version >= (6, 0):
            access = self.PROCESS_QUERY_LIMITED_INFORMATION
        else:
            access = self.PROCESS_QUERY_INFORMATION

        handle = self._kernel32.OpenProcess(access, False, process_id)
        if not handle:
            raise ctypes.WinError(ctypes.get_last_error())
        return handle

    def is_wow64(self, handle: Any) -> bool:
        import ctypes
        from ctypes import wintypes

        result = wintypes.BOOL()
        if not self._kernel32.IsWow64Process(handle, ctypes.byref(result)):
            raise ctypes.WinError(ctypes.get_last_error())
        return bool(result.value)

    def close(self, handle: Any) -> None:
        self._kernel32.CloseHandle(handle)


class ArchitectureResolver:
    """Resolves the architecture tag of a process id."""

    def __init__(self, probe: Optional[Wow64Probe] = None):
        self.probe = probe if probe is not None else Kernel32Wow64Probe()

    @contextmanager
    def _opened(self, process_id: int) -> Iterator[Any]:
        handle = self.probe.open(process_id)
        try:
            yield handle
        finally:
            self.probe.close(handle)

    def resolve(self, process_id: int) -> ArchitectureTag:
        """
        Return x86 for WOW64 processes, x64 for native ones.

        Systems without the WOW64 facility are treated as 32-bit. Any failure
        of the query yields ArchitectureTag.UNKNOWN.
        """
        if not self.probe.available:
            return ArchitectureTag.X86

        try:
            with self._opened(process_id) as handle:
                wow64 = self.probe.is_wow64(handle)
        except Exception as e:
            logger.debug(
                "architecture_unresolved",
                pid=process_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return ArchitectureTag.UNKNOWN

        return ArchitectureTag.X86 if wow64 else ArchitectureTag.X64


__all__ = [
    'Wow64Probe',
    'Kernel32Wow64Probe',
    'ArchitectureResolver',
]

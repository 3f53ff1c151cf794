"""
Candidate Process Enumerator.

Finds every running process whose executable name equals one of the
configured runtime host names (dotnet.exe, a self-hosted app exe, ...).
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

import psutil

from ..utils.errors import CandidateQueryError
from ..utils.logging import get_logger, log_function_call
from .architecture import ArchitectureResolver
from .models import RuntimeProcessCandidate

logger = get_logger(__name__)

PROCESS_ATTRS = ["pid", "ppid", "name"]
_INVALID_NAME_CHARS = ("'", '"', "/", "\\")


def validate_executable_name(executable_name: str) -> str:
    """
    Check that a name can be used as an exact process table filter.

    Raises:
        CandidateQueryError: For empty names or names containing quotes or path separators
    """
    if not executable_name or not executable_name.strip():
        raise CandidateQueryError("Executable name is empty", executable_name=executable_name)
    if any(char in executable_name for char in _INVALID_NAME_CHARS):
        raise CandidateQueryError(
            f"Executable name {executable_name!r} cannot be used as a process filter",
            executable_name=executable_name
        )
    return executable_name


def _read_tolerated(read: Callable[[], Any], default: Any) -> Any:
    """Call ``read``; only an exited process is allowed to propagate."""
    try:
        return read()
    except psutil.ZombieProcess:
        return default
    except psutil.NoSuchProcess:
        raise
    except (psutil.Error, OSError) as e:
        logger.debug("owner_identity_unreadable", error=str(e), error_type=type(e).__name__)
        return default


def read_owner_identity(process: Any) -> str:
    """
    Return DOMAIN\\user for a process, or an empty string.

    The process environment is tried first, then the account psutil reports.

    Raises:
        psutil.NoSuchProcess: If the process exited meanwhile
    """
    environ = _read_tolerated(process.environ, {})

    user_name = environ.get("USERNAME", "")
    user_domain = environ.get("USERDOMAIN", "")
    if user_name:
        return f"{user_domain}\\{user_name}" if user_domain else user_name

    return _read_tolerated(process.username, "") or ""


@dataclass(frozen=True)
class CandidateEnumeration:
    """Candidates for every usable name, and the names that could not be queried."""
    candidates: Tuple[RuntimeProcessCandidate, ...] = ()
    skipped_names: Tuple[str, ...] = ()


class CandidateEnumerator:
    """Enumerates runtime host processes from the OS process table."""

    def __init__(
        self,
        resolver: Optional[ArchitectureResolver] = None,
        process_iter: Callable[..., Iterable[Any]] = psutil.process_iter
    ):
        self.resolver = resolver if resolver is not None else ArchitectureResolver()
        self.process_iter = process_iter

    def _build_candidate(self, process: Any, executable_name: str) -> RuntimeProcessCandidate:
        info = process.info
        return RuntimeProcessCandidate(
            process_name=executable_name,
            process_id=info["pid"],
            parent_process_id=info.get("ppid") or 0,
            processor_architecture=self.resolver.resolve(info["pid"]),
            owner_identity=read_owner_identity(process),
        )

    @log_function_call(logger)
    def enumerate_candidates(self, executable_name: str) -> List[RuntimeProcessCandidate]:
        """
        Return every running process named exactly ``executable_name``.

        Raises:
            CandidateQueryError: If the name cannot form a process filter
        """
        validate_executable_name(executable_name)

        candidates: List[RuntimeProcessCandidate] = []
        for process in self.process_iter(PROCESS_ATTRS):
            if process.info.get("name") != executable_name:
                continue

            try:
                candidates.append(self._build_candidate(process, executable_name))
            except psutil.NoSuchProcess:
                logger.debug("candidate_vanished", pid=process.info.get("pid"), name=executable_name)
            except (psutil.Error, OSError) as e:
                logger.debug(
                    "candidate_skipped",
                    pid=process.info.get("pid"),
                    name=executable_name,
                    error=str(e)
                )

        logger.info("candidates_enumerated", name=executable_name, count=len(candidates))
        return candidates

    def enumerate_all(self, executable_names: Sequence[str]) -> CandidateEnumeration:
        """
        Enumerate each name in order and concatenate the results.

        A name that cannot be queried is skipped and reported; the other
        names are still enumerated.
        """
        candidates: List[RuntimeProcessCandidate] = []
        skipped_names: List[str] = []

        for executable_name in executable_names:
            try:
                candidates.extend(self.enumerate_candidates(executable_name))
            except CandidateQueryError as e:
                logger.warning("candidate_query_failed", name=executable_name, error=e.message)
                skipped_names.append(executable_name)

        return CandidateEnumeration(candidates=tuple(candidates), skipped_names=tuple(skipped_names))


__all__ = [
    'CandidateEnumerator',
    'CandidateEnumeration',
    'validate_executable_name',
    'read_owner_identity',
]

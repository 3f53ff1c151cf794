"""
Match & Dispatch.

Selects the correlated processes of one application pool and builds the
ProcDump invocation for each. Nothing is launched here.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..correlation.models import ArchitectureTag, CorrelatedProcess
from ..utils.logging import get_logger

logger = get_logger(__name__)

ACCEPT_EULA_SWITCH = "-accepteula"
NATIVE_64_SWITCH = "-64"

ArchitectureChooser = Callable[[CorrelatedProcess], Optional[ArchitectureTag]]


def pool_names_equal(left: str, right: str) -> bool:
    """Case-insensitive, culture-invariant comparison; whitespace is significant."""
    return left.casefold() == right.casefold()


@dataclass(frozen=True)
class InvocationDescriptor:
    """Everything needed to start ProcDump against one process."""
    process: CorrelatedProcess
    architecture: ArchitectureTag
    arguments: Tuple[str, ...]
    tool_path: Optional[Path] = None

    @property
    def process_id(self) -> int:
        return self.process.process_id

    @property
    def argument_string(self) -> str:
        return subprocess.list2cmdline(self.arguments)

    @property
    def command_line(self) -> str:
        executable = str(self.tool_path) if self.tool_path else "procdump.exe"
        return subprocess.list2cmdline([executable, *self.arguments])


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one application pool name."""
    target_pool_name: str
    processes_scanned: int
    matched: Tuple[CorrelatedProcess, ...] = ()
    invocations: Tuple[InvocationDescriptor, ...] = ()
    cancelled: Tuple[CorrelatedProcess, ...] = ()

    @property
    def processes_matched(self) -> int:
        return len(self.matched)

    @property
    def invocations_produced(self) -> int:
        return len(self.invocations)

    @property
    def count(self) -> int:
        return self.processes_matched


def build_arguments(
    process_id: int,
    architecture: ArchitectureTag,
    passthrough_args: Sequence[str] = (),
    accept_eula: bool = True
) -> Tuple[str, ...]:
    """ProcDump argument list: [-accepteula] <pid> [-64] <passthrough...>."""
    arguments: List[str] = []
    if accept_eula:
        arguments.append(ACCEPT_EULA_SWITCH)
    arguments.append(str(process_id))
    if architecture != ArchitectureTag.X86:
        arguments.append(NATIVE_64_SWITCH)
    arguments.extend(passthrough_args)
    return tuple(arguments)


def match(
    correlated: Sequence[CorrelatedProcess],
    target_pool_name: str,
    passthrough_args: Sequence[str] = (),
    choose_architecture: Optional[ArchitectureChooser] = None,
    tool_path: Optional[Path] = None,
    accept_eula: bool = True
) -> MatchResult:
    """
    Match ``target_pool_name`` against the correlated processes.

    A matched process with an unknown architecture is passed to
    ``choose_architecture`` once; when no choice comes back the process is
    reported as cancelled and no invocation is built for it.
    """
    matched: List[CorrelatedProcess] = []
    invocations: List[InvocationDescriptor] = []
    cancelled: List[CorrelatedProcess] = []

    for process in correlated:
        if not pool_names_equal(process.app_pool_name, target_pool_name):
            continue
        matched.append(process)

        architecture = process.processor_architecture
        if architecture == ArchitectureTag.UNKNOWN:
            choice = choose_architecture(process) if choose_architecture is not None else None
            if choice is None or choice == ArchitectureTag.UNKNOWN:
                logger.info("dispatch_cancelled", pid=process.process_id, app_pool=process.app_pool_name)
                cancelled.append(process)
                continue
            architecture = ArchitectureTag(choice)

        invocations.append(InvocationDescriptor(
            process=process,
            architecture=architecture,
            arguments=build_arguments(process.process_id, architecture, passthrough_args, accept_eula),
            tool_path=tool_path,
        ))

    logger.info(
        "pool_matched",
        target=target_pool_name,
        scanned=len(correlated),
        matched=len(matched),
        invocations=len(invocations)
    )

    return MatchResult(
        target_pool_name=target_pool_name,
        processes_scanned=len(correlated),
        matched=tuple(matched),
        invocations=tuple(invocations),
        cancelled=tuple(cancelled),
    )


def pool_names(correlated: Iterable[CorrelatedProcess]) -> List[str]:
    """Distinct application pool names, sorted."""
    return sorted({process.app_pool_name for process in correlated})


__all__ = [
    'InvocationDescriptor',
    'MatchResult',
    'ArchitectureChooser',
    'build_arguments',
    'match',
    'pool_names',
    'pool_names_equal',
]

"""
Starts ProcDump for an invocation descriptor.

The tool runs in its own console window and is not monitored afterwards.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..utils.errors import LaunchError
from ..utils.logging import get_logger
from .matcher import InvocationDescriptor

logger = get_logger(__name__)


@dataclass(frozen=True)
class LaunchedProcess:
    """A started diagnostic tool instance."""
    pid: int
    command_line: str
    target_pid: int


def validate_tool_path(tool_path: Optional[Path]) -> bool:
    """True when the configured path points at an existing file."""
    return tool_path is not None and Path(tool_path).is_file()


def launch(descriptor: InvocationDescriptor, new_console: bool = True) -> LaunchedProcess:
    """
    Start the diagnostic tool described by ``descriptor``.

    Raises:
        LaunchError: If no tool path is set or the process cannot be started
    """
    command_line = descriptor.command_line
    if descriptor.tool_path is None:
        raise LaunchError(command_line, message="ProcDump path is not set")

    creationflags = 0
    if new_console and os.name == "nt":
        creationflags = subprocess.CREATE_NEW_CONSOLE

    try:
        process = subprocess.Popen(
            [str(descriptor.tool_path), *descriptor.arguments],
            creationflags=creationflags,
        )
    except OSError as e:
        logger.error("launch_failed", command=command_line, error=str(e))
        raise LaunchError(command_line, cause=e) from e

    logger.info("tool_launched", command=command_line, pid=process.pid, target_pid=descriptor.process_id)
    return LaunchedProcess(pid=process.pid, command_line=command_line, target_pid=descriptor.process_id)


__all__ = [
    'LaunchedProcess',
    'launch',
    'validate_tool_path',
]

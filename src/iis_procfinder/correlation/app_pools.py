"""
Application-Pool Enumerator.

Runs ``appcmd list wp`` and turns its output into a map of worker process id
to application pool name. A typical line looks like::

    WP "4312" (applicationPool:My App Pool)
"""

import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import psutil

from ..utils.errors import (
    ErrorSeverity,
    HostingServiceUnavailableError,
    WorkerListingUnavailableError,
    handle_errors,
)
from ..utils.logging import get_logger, log_function_call
from .models import ApplicationPoolWorkerProcess

logger = get_logger(__name__)

LIST_WORKER_PROCESSES_ARGS = ("list", "wp")
ERROR_MARKER = "ERROR"
POOL_MARKER = "(applicationPool:"


@handle_errors(psutil.Error, OSError, fallback=lambda process_id: None, log_level=ErrorSeverity.DEBUG)
def read_processor_architecture(process_id: int) -> Optional[str]:
    """Best-effort read of a process's PROCESSOR_ARCHITECTURE environment value."""
    return psutil.Process(process_id).environ().get("PROCESSOR_ARCHITECTURE")


def parse_worker_line(line: str) -> Optional[ApplicationPoolWorkerProcess]:
    """
    Parse one listing line.

    Returns None for lines that do not have the expected shape.

    Raises:
        HostingServiceUnavailableError: If the line is an appcmd error report
    """
    if line.startswith(ERROR_MARKER):
        raise HostingServiceUnavailableError(line=line)

    fields = line.split(None, 2)
    if len(fields) < 3:
        return None

    try:
        process_id = int(fields[1].replace('"', ""))
    except ValueError:
        return None

    decorated = fields[2].rstrip()
    if not decorated.startswith(POOL_MARKER):
        return None

    pool_name = decorated[len(POOL_MARKER):]
    if pool_name.endswith(')"'):
        pool_name = pool_name[:-1]
    if not pool_name.endswith(")"):
        return None
    pool_name = pool_name[:-1]

    if process_id <= 0 or not pool_name:
        return None

    return ApplicationPoolWorkerProcess(process_id=process_id, app_pool_name=pool_name)


def parse_worker_listing(
    lines: Iterable[str],
    architecture_reader: Optional[Callable[[int], Optional[str]]] = None
) -> List[ApplicationPoolWorkerProcess]:
    """
    Parse the full listing output into worker process records, in output order.

    Raises:
        HostingServiceUnavailableError: On the first appcmd error line
    """
    workers: List[ApplicationPoolWorkerProcess] = []

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            continue

        worker = parse_worker_line(line)
        if worker is None:
            logger.warning("unparsed_worker_line", line_number=line_number, line=line)
            continue

        if architecture_reader is not None:
            worker = ApplicationPoolWorkerProcess(
                process_id=worker.process_id,
                app_pool_name=worker.app_pool_name,
                processor_architecture=architecture_reader(worker.process_id),
            )
        workers.append(worker)

    return workers


def build_worker_process_map(workers: Iterable[ApplicationPoolWorkerProcess]) -> Dict[int, str]:
    """Map worker pid to pool name; a later record for the same pid wins."""
    worker_map: Dict[int, str] = {}
    for worker in workers:
        previous = worker_map.get(worker.process_id)
        if previous is not None:
            logger.warning(
                "duplicate_worker_process_id",
                pid=worker.process_id,
                replaced=previous,
                app_pool=worker.app_pool_name
            )
        worker_map[worker.process_id] = worker.app_pool_name
    return worker_map


class ApplicationPoolEnumerator:
    """Enumerates running IIS worker processes through appcmd."""

    def __init__(
        self,
        appcmd_path: Path,
        architecture_reader: Optional[Callable[[int], Optional[str]]] = read_processor_architecture
    ):
        self.appcmd_path = Path(appcmd_path)
        self.architecture_reader = architecture_reader

    def _read_listing(self) -> List[str]:
        """Run appcmd and read its output to the end."""
        command = [str(self.appcmd_path), *LIST_WORKER_PROCESSES_ARGS]

        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except OSError as e:
            raise WorkerListingUnavailableError(
                f"An exception has occured while getting the application pool list: {e}",
                cause=e,
                command=command
            ) from e

        if result.returncode != 0:
            logger.debug(
                "worker_listing_nonzero_exit",
                returncode=result.returncode,
                stderr=result.stderr.strip()
            )

        return result.stdout.splitlines()

    @log_function_call(logger)
    def list_worker_processes(self) -> List[ApplicationPoolWorkerProcess]:
        """
        Return one record per worker process line.

        Raises:
            WorkerListingUnavailableError: If appcmd cannot be started
            HostingServiceUnavailableError: If appcmd reports an error
        """
        workers = parse_worker_listing(self._read_listing(), self.architecture_reader)
        logger.info("worker_processes_enumerated", count=len(workers))
        return workers

    def enumerate_worker_processes(self) -> Dict[int, str]:
        """Return the worker pid to application pool name map."""
        return build_worker_process_map(self.list_worker_processes())


__all__ = [
    'ApplicationPoolEnumerator',
    'parse_worker_line',
    'parse_worker_listing',
    'build_worker_process_map',
    'read_processor_architecture',
]

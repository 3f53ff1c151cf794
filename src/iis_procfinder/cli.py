"""
Command line interface for iis-procfinder.

    iis-procfinder                       list processes with an application pool
    iis-procfinder --list                same, without the instructions prompt
    iis-procfinder "My Pool" -ma c:\\dumps   attach ProcDump to the pool's process

Every argument after the application pool name is passed to ProcDump as is.
"""

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from . import __version__
from .correlation.models import ArchitectureTag, CorrelatedProcess
from .dispatch.launcher import LaunchedProcess, launch, validate_tool_path
from .dispatch.matcher import MatchResult, match, pool_names
from .engine import CorrelationEngine, ScanResult
from .utils.config import ProcFinderConfig, default_config_paths, load_config, save_tool_path
from .utils.errors import ConfigurationError, LaunchError, ProcFinderError
from .utils.logging import get_logger, setup_logging

logger = get_logger("iis-procfinder.cli")

PROG = "iis-procfinder"
LIST_ALIASES = ("*",)
HELP_ALIASES = ("/?", "?", "-?")
OPTIONS_WITH_VALUE = ("--config", "--log-level")


class Prompter:
    """Interactive questions; every question has a non-interactive answer."""

    def __init__(self, console: Console, interactive: bool = True):
        self.console = console
        self.interactive = interactive

    def ask(self, message: str, default: str = "") -> str:
        if not self.interactive:
            return default
        return Prompt.ask(message, console=self.console, default=default, show_default=False).strip()

    def key(self, message: str) -> str:
        """Single-letter answer, upper-cased; empty when not interactive."""
        return self.ask(message).upper()[:1]

    def choose_architecture(self, process: CorrelatedProcess) -> Optional[ArchitectureTag]:
        self.console.print(
            f"\n[red]Unable to detect the bitness of the process {process.process_id} "
            f"({process.process_name}, {process.app_pool_name}).[/red]"
        )
        answer = self.key("Press 1 if it is 32-bit, or press 2 if it is 64-bit process, or any other key to skip it")
        if answer == "1":
            return ArchitectureTag.X86
        if answer == "2":
            return ArchitectureTag.X64
        return None

    def tool_path(self) -> Optional[Path]:
        """Ask for the ProcDump path until it exists or the user gives up."""
        while True:
            answer = self.ask("\nPlease provide the full path of ProcDump.exe. E.g.: c:\\downloads\\procdump.exe")
            if not answer:
                return None
            path = Path(answer.strip('"'))
            if validate_tool_path(path):
                return path
            retry = self.key(f"\n{path} is not found. Press T to try again or any other key to exit")
            if retry != "T":
                return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Find the process hosting an IIS application pool and attach ProcDump to it.",
        add_help=False,
    )
    parser.add_argument("-h", "--help", action="store_true", dest="show_help",
                        help="Show the instructions and usage samples")
    parser.add_argument("-l", "--list", action="store_true", dest="list_only",
                        help="List processes that have an application pool assigned")
    parser.add_argument("--config", action="append", type=Path, default=[],
                        help="Configuration file (YAML, JSON or TOML); may be repeated")
    parser.add_argument("--log-level", default=None,
                        help="Log file level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--non-interactive", action="store_true",
                        help="Never wait for keyboard input")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("app_pool", nargs="?",
                        help="IIS application pool name (case-insensitive)")
    parser.add_argument("procdump_args", nargs=argparse.REMAINDER,
                        help="Arguments passed to ProcDump as they are")
    return parser


def normalize_argv(argv: Sequence[str]) -> List[str]:
    """Map the DOS style aliases in the application pool position to options."""
    normalized = list(argv)
    index = 0
    while index < len(normalized):
        arg = normalized[index]
        if arg in HELP_ALIASES:
            normalized[index] = "--help"
        elif arg in LIST_ALIASES:
            normalized[index] = "--list"
        elif arg in OPTIONS_WITH_VALUE:
            index += 2
            continue
        elif arg.startswith("-"):
            index += 1
            continue
        break
    return normalized


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    return build_parser().parse_args(normalize_argv(argv))


def print_instructions(console: Console) -> None:
    console.print("[yellow]INSTRUCTIONS:[/yellow]")
    console.print("\n1) Set the process names hosting your ASP.NET Core application in the configuration file. E.g.:\n")
    console.print("[yellow]discovery:\n  process_names: dotnet.exe, MyAspNetCoreApp.exe[/yellow]", highlight=False)
    console.print("\n2) This tool uses ProcDump to attach to processes and capture the dump so set the full path "
                  "in the configuration file. E.g.:\n")
    console.print("[yellow]procdump:\n  path: C:\\Downloads\\procdump.exe[/yellow]", highlight=False)
    console.print("\n3) Provide the IIS application pool name as first parameter then provide the other ProcDump "
                  "parameters as usual. Do not give any PID or process name, this tool finds the correct PID "
                  "and attaches ProcDump to it.")
    console.print("\n[yellow]SAMPLE 1:[/yellow] Create a memory dump of the dotnet.exe process associated with "
                  "'My App Pool With Space in Name' in c:\\dumps folder.\n")
    console.print(f'[reverse]{PROG} "My App Pool With Space in Name" c:\\dumps[/reverse]', highlight=False)
    console.print("\n[yellow]SAMPLE 2:[/yellow] Create a memory dump of the dotnet.exe process associated with "
                  "MyAppPool in the current folder when a first chance exception happens.\n")
    console.print(f"[reverse]{PROG} MyAppPool -ma -f * -e 1[/reverse]", highlight=False)


def print_process_list(console: Console, processes: Sequence[CorrelatedProcess]) -> None:
    table = Table(title="Dotnet core processes with an application pool assigned", title_justify="left")
    table.add_column("Process Name")
    table.add_column("PID", justify="right")
    table.add_column("App Pool")
    table.add_column("Arch")
    table.add_column("User")

    for process in processes:
        table.add_row(
            process.process_name,
            str(process.process_id),
            process.app_pool_name,
            str(process.processor_architecture),
            process.owner_identity,
        )

    console.print(table)
    console.print(f"\nTotal {len(processes)} processes found.")


def print_error(console: Console, error: ProcFinderError) -> None:
    console.print(f"[red]{error.message}[/red]", highlight=False)
    for suggestion in error.get_suggestions():
        console.print(f"  - {suggestion}", highlight=False)


def offer_instructions(console: Console, prompter: Prompter) -> None:
    if prompter.key("\nPress H to see the instructions or any other key to exit") == "H":
        console.print()
        print_instructions(console)


def remember_tool_path(console: Console, config: ProcFinderConfig, tool_path: Path) -> None:
    config_file = config.writable_config_path or default_config_paths()[0]
    try:
        save_tool_path(tool_path, config_file)
    except ConfigurationError as e:
        logger.warning("tool_path_not_saved", error=e.message)
        console.print("\nNew ProcDump path will be used but the configuration file cannot be updated. "
                      "Please update it manually.\n")
        return
    console.print(f"\nConfiguration file {config_file} is updated with the new ProcDump path.\n", highlight=False)


def resolve_tool_path(console: Console, config: ProcFinderConfig, prompter: Prompter) -> Optional[Path]:
    """Configured ProcDump path, or one supplied by the user now."""
    tool_path = config.procdump.path
    if validate_tool_path(tool_path):
        return tool_path

    console.print("[red]Cannot find ProcDump path. Please make sure that the ProcDump path is correctly set "
                  "in the configuration file.[/red]")
    console.print("[yellow]\nSample:\nprocdump:\n  path: C:\\Downloads\\procdump.exe[/yellow]", highlight=False)
    if prompter.key("\nDo you want to provide the full path of ProcDump.exe now (y/n)?") != "Y":
        return None

    tool_path = prompter.tool_path()
    if tool_path is not None:
        remember_tool_path(console, config, tool_path)
    return tool_path


def launch_all(
    console: Console,
    config: ProcFinderConfig,
    prompter: Prompter,
    result: MatchResult
) -> Optional[List[LaunchedProcess]]:
    """
    Start ProcDump for every invocation.

    Returns None when the user chose to stop after a launch failure.
    """
    launched: List[LaunchedProcess] = []
    replacement_path: Optional[Path] = None

    for descriptor in result.invocations:
        if replacement_path is not None:
            descriptor = dataclasses.replace(descriptor, tool_path=replacement_path)

        process = descriptor.process
        console.print(
            f"\nFound a {process.process_name} process for \"{process.app_pool_name}\" application pool "
            f"and the process ID is {process.process_id}. Processor type is {descriptor.architecture}.",
            highlight=False
        )
        console.print("Starting ProcDump...")

        try:
            launched.append(launch(descriptor, new_console=config.procdump.new_console))
        except LaunchError as e:
            console.print(f"\n[red]An exception has occured while starting the following command:\n\n"
                          f"{e.command_line}\n[/red]", highlight=False)
            if e.cause is not None:
                console.print(str(e.cause), highlight=False)
            answer = prompter.key("\nPress T to set ProcDump path manually and try launching ProcDump for the "
                                  "NEXT process found, or press any other key to exit")
            if answer != "T":
                return None
            replacement_path = prompter.tool_path()
            if replacement_path is None:
                return None
            remember_tool_path(console, config, replacement_path)
            continue

        console.print("Successfully started the following command:")
        console.print(f"[reverse]{descriptor.command_line}[/reverse]", highlight=False)

    return launched


def report(
    console: Console,
    prompter: Prompter,
    scan: ScanResult,
    result: MatchResult,
    launched: Sequence[LaunchedProcess]
) -> None:
    console.print(f"\nTotal number of process(es) scanned: {result.processes_scanned}")
    console.print(f"Total number of process(es) matched for \"{result.target_pool_name}\" application pool: "
                  f"{result.processes_matched}", highlight=False)
    console.print(f"Total number of ProcDump instances started: {len(launched)}")

    if not launched:
        if not result.matched:
            console.print("\n[reverse]No process found to attach with ProcDump.[/reverse]")
            console.print(f"Known application pools: {', '.join(pool_names(scan.correlated))}", highlight=False)
        answer = prompter.key("\nPress L to list the available ASP.NET Core processes running, "
                              "H to see the instructions, or any other key to exit")
        if answer == "L":
            console.print()
            print_process_list(console, scan.correlated)
        elif answer == "H":
            console.print()
            print_instructions(console)
        return

    console.print("\nPlease check the ProcDump window(s) launched for the results. If windows are closed quickly "
                  "then it is possible that the parameters you passed are not correct.")
    console.print("[yellow]TIP:[/yellow] You can try running the [reverse]ProcDump command printed above[/reverse] "
                  "on an elevated command prompt to see if you are getting an unexpected result / error.\n")
    if prompter.key("Press L to list the processes scanned or any other key to exit") == "L":
        console.print()
        print_process_list(console, scan.correlated)


def run(
    argv: Sequence[str],
    console: Optional[Console] = None,
    engine: Optional[CorrelationEngine] = None,
    config: Optional[ProcFinderConfig] = None,
    configure_logging: bool = True
) -> int:
    """Run the command line; returns the process exit code."""
    console = console or Console()
    args = parse_args(argv)
    prompter = Prompter(console, interactive=not args.non_interactive)

    if config is None:
        try:
            config = load_config(config_paths=args.config)
        except ConfigurationError as e:
            console.print("[red]An exception has occured while reading the configuration file.[/red]")
            print_error(console, e)
            return 1

    if configure_logging:
        setup_logging(
            app_name=config.app_name,
            log_level=args.log_level or config.logging.level,
            log_dir=config.logging.directory,
            enable_json=config.logging.format == "json",
            console=console,
            console_level=config.logging.console_level,
            max_bytes=config.logging.max_size,
            backup_count=config.logging.backup_count,
        )

    if args.show_help:
        print_instructions(console)
        return 0

    tool_path: Optional[Path] = None
    if args.app_pool:
        tool_path = resolve_tool_path(console, config, prompter)
        if tool_path is None:
            return 1

    engine = engine or CorrelationEngine.from_config(config)
    scan = engine.scan()

    if scan.failed:
        console.print("\n[red]An exception has occured while getting the application pool list.[/red]")
        print_error(console, scan.error)
        return 1

    for name in scan.skipped_names:
        console.print(f"[yellow]Error occured while executing the query for {name!r}, it is skipped. "
                      "Set process names without quotes or paths.[/yellow]", highlight=False)

    if not scan.correlated:
        console.print("Cannot find a process hosting an ASP.NET Core application associated with an IIS "
                      "application pool.")
        console.print("\nIf your ASP.NET Core application is self-hosted (other than dotnet.exe) please make sure "
                      "it is set in the configuration file.")
        offer_instructions(console, prompter)
        return 0

    if args.list_only:
        print_process_list(console, scan.correlated)
        return 0

    if not args.app_pool:
        console.print("No application pool name given, printing ASP.NET Core processes running.\n")
        print_process_list(console, scan.correlated)
        offer_instructions(console, prompter)
        return 0

    console.print(f"Searching for the \"{args.app_pool}\" application pool in the process list...", highlight=False)
    result = match(
        scan.correlated,
        args.app_pool,
        args.procdump_args,
        choose_architecture=prompter.choose_architecture,
        tool_path=tool_path,
        accept_eula=config.procdump.accept_eula,
    )

    launched = launch_all(console, config, prompter, result)
    if launched is None:
        return 1

    report(console, prompter, scan, result, launched)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Console script entry point."""
    try:
        code = run(sys.argv[1:] if argv is None else argv)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()

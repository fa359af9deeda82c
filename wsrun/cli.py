"""
wsrun command line
==================

Run a package script across every package of a workspace.

Usage:
    wsrun [options] SCRIPT [ARGS...]
    wsrun [options] -- SCRIPT [ARGS...]

Examples:
    wsrun --serial build
    wsrun --stages -r -p app build
    wsrun --stages --fast-exit test
    wsrun --stages --if changed --if-dependency -- test --ci
"""

from typing import Any, Dict, List, Optional, Sequence, TextIO
import argparse
import asyncio
import logging
import sys

from wsrun.config import RunConfig, load_config
from wsrun.errors import ConfigurationError, WorkspaceError
from wsrun.execution_plan import ExecutionMode
from wsrun.report import ExecutionReport, TaskResult
from wsrun.runner import WorkspaceRunner
from wsrun.workspace import load_workspace

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wsrun",
        description="Run a script in every package of a workspace, honoring package dependencies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dependencies before dependents, one package at a time
  wsrun --serial build

  # Stage by stage, only app and what it depends on
  wsrun --stages -r -p app build

  # Stop dispatching after the first failure
  wsrun --stages --fast-exit test

  # Only packages whose 'changed' script succeeds, plus their dependents
  wsrun --stages --if changed --if-dependency -- test --ci
        """
    )

    modes = parser.add_mutually_exclusive_group()
    modes.add_argument('--serial', dest='mode', action='store_const', const=ExecutionMode.SERIAL.value,
                       help='Run packages one at a time, dependencies first')
    modes.add_argument('--parallel', dest='mode', action='store_const', const=ExecutionMode.PARALLEL.value,
                       help='Run all packages at once, ignoring dependency order (default)')
    modes.add_argument('--stages', dest='mode', action='store_const', const=ExecutionMode.STAGED.value,
                       help='Run packages stage by stage; dependencies finish before dependents start')

    parser.add_argument('-p', '--package', dest='packages', action='append', default=None, metavar='NAME',
                        help='Run only this package (repeatable)')
    parser.add_argument('-r', '--recursive', action='store_true', default=None,
                        help='Also run the dependencies of the selected packages')
    parser.add_argument('--exclude', action='append', default=None, metavar='NAME',
                        help='Leave this package out (repeatable)')
    parser.add_argument('--exclude-missing', action='store_true', default=None,
                        help='Leave out packages that do not define the script')
    parser.add_argument('-c', '--concurrency', type=int, default=None,
                        help='Maximum number of scripts running at once')
    parser.add_argument('--fast-exit', action='store_true', default=None,
                        help='Stop starting new scripts after the first failure')
    parser.add_argument('--if', dest='condition_script', default=None, metavar='SCRIPT',
                        help='Only run in packages where this script exits successfully')
    parser.add_argument('--if-dependency', '--ifDependency', dest='cascade', action='store_true', default=None,
                        help='With --if, also run in packages whose dependencies pass the condition')
    parser.add_argument('--report', action='store_true', default=None,
                        help='Print a per-package summary at the end')
    parser.add_argument('--no-prefix', dest='prefix', action='store_false', default=None,
                        help='Do not prefix script output with the package name')
    parser.add_argument('--plan', action='store_true',
                        help='Print the execution stages and exit without running anything')
    parser.add_argument('--workspace', default='.', metavar='DIR',
                        help='Workspace root (default: current directory)')
    parser.add_argument('--config', default=None, metavar='PATH',
                        help='Config file (default: .wsrun.yaml in the workspace root)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase log verbosity (-v info, -vv debug)')

    parser.add_argument('script', nargs='?', help='Script to run in each package')
    parser.add_argument('args', nargs=argparse.REMAINDER, help='Arguments passed to the script')
    return parser


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Everything after a standalone '--' is the script followed by its
    arguments; without it, the first positional is the script and the rest
    is passed through untouched.
    """
    parser = build_parser()
    argv = list(argv)

    if '--' in argv:
        split = argv.index('--')
        options, rest = argv[:split], argv[split + 1:]
        namespace = parser.parse_args(options)
        if namespace.script is not None:
            rest = [namespace.script] + list(namespace.args) + rest
        if not rest:
            parser.error("missing script name")
        namespace.script, namespace.args = rest[0], rest[1:]
    else:
        namespace = parser.parse_args(argv)
        if namespace.script is None:
            parser.error("missing script name")
        namespace.args = list(namespace.args)

    return namespace


def _overrides(namespace: argparse.Namespace) -> Dict[str, Any]:
    overrides = {
        'mode': namespace.mode,
        'concurrency': namespace.concurrency,
        'fast_exit': namespace.fast_exit,
        'condition_script': namespace.condition_script,
        'cascade': namespace.cascade,
        'packages': namespace.packages,
        'recursive': namespace.recursive,
        'exclude': namespace.exclude,
        'exclude_missing': namespace.exclude_missing,
        'report': namespace.report,
        'prefix': namespace.prefix,
    }
    if namespace.verbose:
        overrides['log_level'] = 'DEBUG' if namespace.verbose > 1 else 'INFO'
    return overrides


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        stream=sys.stderr
    )


def _write_output(text: str, stream: TextIO, prefix: Optional[str]) -> None:
    if not text:
        return
    for line in text.splitlines():
        stream.write(f"{prefix} | {line}\n" if prefix else f"{line}\n")
    stream.flush()


class OutputPrinter:
    """Writes each package's captured output as soon as its task completes."""

    def __init__(self, prefix: bool = True, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self.prefix = prefix
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

    async def __call__(self, event: Dict[str, Any]) -> None:
        if event.get('type') != 'task_completed':
            return
        result: TaskResult = event['result']
        label = result.name if self.prefix else None
        _write_output(result.stdout, self.stdout, label)
        _write_output(result.stderr, self.stderr, label)
        if result.ran and not result.succeeded:
            detail = result.error or f"exit code {result.exit_code}"
            self.stderr.write(f"{result.name}: failed ({detail})\n")
            self.stderr.flush()


def print_report(report: ExecutionReport, config: RunConfig, stdout: TextIO, stderr: TextIO) -> None:
    if config.report:
        stdout.write("Report:\n")
        for line in report.summary_lines():
            stdout.write(f"{line}\n")
    for line in report.diagnostics:
        stderr.write(f"{line}\n")
    stdout.flush()
    stderr.flush()


async def run(namespace: argparse.Namespace, stdout: TextIO, stderr: TextIO) -> int:
    config = load_config(namespace.workspace, namespace.config, _overrides(namespace))
    configure_logging(config.log_level)
    logger.debug(f"Configuration: {config.to_dict()}")

    records = load_workspace(
        config.workspace,
        namespace.script,
        condition_script=config.condition_script,
        exclude_missing=config.exclude_missing
    )

    printer = OutputPrinter(prefix=config.prefix, stdout=stdout, stderr=stderr)
    runner = WorkspaceRunner(config, progress_callback=printer)

    if namespace.plan:
        stdout.write(runner.describe(records) + "\n")
        return EXIT_OK

    report = await runner.run(records, namespace.args)
    print_report(report, config, stdout, stderr)
    return EXIT_OK if report.success else EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    namespace = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return asyncio.run(run(namespace, sys.stdout, sys.stderr))
    except (ConfigurationError, WorkspaceError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())

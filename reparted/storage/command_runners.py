"""Process execution boundary for external partitioning and filesystem tools.

parted, e2fsck and resize2fs routinely exit non-zero on benign warnings while
still printing a usable report. The policy applied here is therefore explicit:
a run that produced output is a success regardless of its exit code. Only a
silent failure, or a program that cannot be started at all, is an error.
"""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING, Optional

from reparted.logging import LoggerFactory

from .exceptions import CommandError

if TYPE_CHECKING:
    from loguru import Logger


def split_args(args: str) -> list[str]:
    """Split a space-delimited argument string, dropping empty tokens."""
    if not args:
        return []
    return [arg for arg in args.split(" ") if arg]


def output_implies_success(returncode: int, output: str) -> bool:
    """Exit code tolerance policy: non-empty output means success."""
    if returncode == 0:
        return True
    return bool(output and output.strip())


def run_command(program: str, args: str = "", log: Optional[Logger] = None) -> str:
    """Run program with a space-delimited argument string.

    stdout and stderr are combined into the returned output.

    Raises:
        CommandError: If the program cannot be started, or exits non-zero
            without printing anything
    """
    log = log or LoggerFactory.for_system()
    command = [program, *split_args(args)]
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as error:
        raise CommandError(command, str(error)) from error
    output = result.stdout or ""
    if output:
        log.bind(tags=["output"]).trace(f"output: {output.strip()}")
    if not output_implies_success(result.returncode, output):
        raise CommandError(command, "exited without output", result.returncode)
    if result.returncode != 0:
        log.debug(
            f"Command exited with code {result.returncode} but produced output, "
            "treating as success"
        )
    return output


class CommandRunner:
    """Callable wrapper around run_command() carrying its logger."""

    def __init__(self, log: Optional[Logger] = None):
        self.log = log or LoggerFactory.for_system()

    def __call__(self, program: str, args: str = "") -> str:
        return run_command(program, args, log=self.log)


__all__ = [
    "CommandRunner",
    "output_implies_success",
    "run_command",
    "split_args",
]

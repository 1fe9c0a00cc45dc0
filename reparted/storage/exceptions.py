"""Custom exceptions for partition resize operations.

Every failure in the resize pipeline is fatal: nothing here is retried, and a
failed run leaves the disk in whatever state the last completed step produced.

Exception Hierarchy:
    RepartedError (base)
        ├── ConfigError
        ├── ParseError
        ├── ConsistencyError
        ├── PlanError
        ├── ExecutionError
        └── CommandError

Usage:
    from reparted.storage.exceptions import PlanError

    if reserve > available:
        raise PlanError("not enough userdata space", shortfall=reserve - available)
"""

from typing import Optional


class RepartedError(Exception):
    """Base exception for all resize operations."""


class ConfigError(RepartedError):
    """Configuration document is missing, malformed or incomplete."""


class ParseError(RepartedError):
    """Partitioning tool output could not be decoded."""

    def __init__(self, field: str, reason: str, line: Optional[str] = None):
        self.field = field
        self.reason = reason
        self.line = line
        msg = f"Failed to parse {field}: {reason}"
        if line is not None:
            msg += f" (line: {line!r})"
        super().__init__(msg)


class ConsistencyError(RepartedError):
    """Parsed geometry disagrees with the bytes on the device."""

    def __init__(self, partition: int, reason: str):
        self.partition = partition
        self.reason = reason
        super().__init__(f"Consistency check failed for partition {partition}: {reason}")


class PlanError(RepartedError):
    """The requested layout cannot be planned on this disk."""

    def __init__(self, reason: str, shortfall: Optional[int] = None):
        self.reason = reason
        self.shortfall = shortfall
        msg = reason
        if shortfall is not None:
            msg += f" (short by {shortfall} bytes)"
        super().__init__(msg)


class ExecutionError(RepartedError):
    """A resize step failed; remaining steps for the partition were skipped."""

    def __init__(self, partition: str, step: str, reason: str):
        self.partition = partition
        self.step = step
        self.reason = reason
        super().__init__(f"{step} failed for partition {partition}: {reason}")


class CommandError(RepartedError):
    """External program could not be run or failed without output."""

    def __init__(self, command: list[str], reason: str, returncode: Optional[int] = None):
        self.command = command
        self.reason = reason
        self.returncode = returncode
        msg = f"Command failed ({' '.join(command)}): {reason}"
        if returncode is not None:
            msg += f" [rc={returncode}]"
        super().__init__(msg)

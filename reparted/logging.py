from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "REPARTED_LOG_DIR",
        Path.home() / ".local" / "state" / "reparted" / "logs",
    )
)

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[source]: <9}</cyan> | "
    "{message}"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[source]: <9} | "
    "{extra[job_id]: <17} | "
    "{message}"
)

DEBUG_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[source]: <9} | "
    "{extra[job_id]: <17} | "
    "{extra[tags]} | "
    "{name}:{function}:{line} | "
    "{message}"
)


def _should_log_command_output(record) -> bool:
    """Filter raw tool output (tag "output") - only show in TRACE mode."""
    if "output" in record["extra"].get("tags", []):
        return record["level"].no <= logger.level("TRACE").no
    return True


def _add_file_sink(log_dir: Path, filename: str, level: str, **options) -> int:
    """Rotating, compressed file sink under log_dir."""
    options.setdefault("rotation", "5 MB")
    options.setdefault("retention", "7 days")
    return logger.add(
        log_dir / filename,
        level=level,
        compression="zip",
        **options,
    )


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup logging for one resize run.

    Log Files:
    - operations.log: INFO+ events, the record of what was done to the disk
    - debug.log: DEBUG+ (TRACE+ with trace) events, only with debug or trace
    - structured.jsonl: INFO+ events serialized as JSON

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (raw parted/fsck/resize output)
        log_dir: Custom log directory (defaults to ~/.local/state/reparted/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "reparted"})

    if trace:
        level = "TRACE"
    elif debug:
        level = "DEBUG"
    else:
        level = "INFO"

    logger.add(
        sys.stderr,
        level=level,
        colorize=True,
        backtrace=False,
        diagnose=False,
        filter=None if trace else _should_log_command_output,
        format=CONSOLE_FORMAT,
    )

    log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    _add_file_sink(
        log_dir,
        "operations.log",
        "INFO",
        backtrace=False,
        diagnose=False,
        format=FILE_FORMAT,
    )
    if debug or trace:
        _add_file_sink(
            log_dir,
            "debug.log",
            level,
            rotation="10 MB",
            retention="3 days",
            backtrace=True,
            diagnose=True,
            format=DEBUG_FILE_FORMAT,
        )
    _add_file_sink(
        log_dir,
        "structured.jsonl",
        "INFO",
        rotation="10 MB",
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Identifier shared by every record of one run
        tags: Tags for filtering (e.g., ["parted", "output"])
        source: Pipeline stage (e.g., "parted", "planner")
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def _job_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, **details):
    """
    Track one operation: logs started, then completed or failed with its duration.

    details are attached to every record logged inside the block.

    Example:
        with operation_context("reparted", disk="/dev/mmcblk0p") as log:
            disk = read_disk_layout(tool, log=log)
    """
    job_id = _job_id(operation)
    title = operation.capitalize()

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        log = get_logger(job_id=job_id, tags=[operation], source=operation)
        started = time.monotonic()
        log.info(f"{title} started")
        try:
            yield log
        except Exception as error:
            log.error(
                f"{title} failed",
                error=str(error),
                error_type=type(error).__name__,
                duration_seconds=round(time.monotonic() - started, 2),
            )
            raise
        log.success(
            f"{title} completed",
            duration_seconds=round(time.monotonic() - started, 2),
        )


class LoggerFactory:
    """
    Component loggers, one per stage of the resize pipeline.

    Stages that touch the disk (parted, resize) get a fresh job_id unless one
    is passed in; read-only stages inherit whatever the caller contextualized.
    """

    @staticmethod
    def for_parted(job_id: str | None = None) -> Logger:
        """Logger for partitioning tool invocations and layout parsing."""
        return get_logger(
            job_id=job_id or _job_id("parted"), tags=["parted", "storage"], source="parted"
        )

    @staticmethod
    def for_validation() -> Logger:
        """Logger for byte consistency checks."""
        return get_logger(tags=["validate", "storage"], source="validate")

    @staticmethod
    def for_planner() -> Logger:
        return get_logger(tags=["planner"], source="planner")

    @staticmethod
    def for_resize(job_id: str | None = None) -> Logger:
        """Logger for destructive resize steps."""
        return get_logger(
            job_id=job_id or _job_id("resize"), tags=["resize", "storage"], source="resize"
        )

    @staticmethod
    def for_system() -> Logger:
        """Logger for startup, configuration and shutdown."""
        return get_logger(tags=["system"], source="system")

"""Disk layout parsing from parted's free-space report.

The report is read with ``parted --script <disk> unit B print free``:

    Model: ATA VBOX HARDDISK (scsi)
    Disk /dev/sda: 8589934592B
    Sector size (logical/physical): 512B/512B
    Partition Table: gpt
    Disk Flags:

    Number  Start        End          Size         File system  Name  Flags
            17408B       1048575B     1031168B     Free Space
     1      1048576B     537919487B   536870912B   fat32        boot  boot, esp
     2      537919488B   8588886015B  8050966528B  ext4         data

The header keys and the column header row are parted's wording, not ours; if
parted changes them this module must change with it. Column widths are not
fixed: parted sizes each column to its widest value, so they are read from the
column header row of every report. Fields such as "File system" or
"Free Space" contain spaces, so records are sliced by width, never split on
whitespace.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from reparted.domain.models import Disk, Partition
from reparted.logging import LoggerFactory

from .command_runners import run_command
from .exceptions import ParseError
from .sizes import SIZE_UNPARSEABLE
from .validation import check_partition_geometry

if TYPE_CHECKING:
    from loguru import Logger

HEADER_DELIMITER = ": "

KEY_MODEL = "Model"
KEY_DISK_PREFIX = "Disk "
KEY_SECTOR_SIZE = "Sector size (logical/physical)"
KEY_PARTITION_TABLE = "Partition Table"
KEY_DISK_FLAGS = "Disk Flags"

COLUMN_NUMBER = "Number"
COLUMN_START = "Start"
COLUMN_END = "End"
COLUMN_SIZE = "Size"
COLUMN_FILE_SYSTEM = "File system"
COLUMN_NAME = "Name"
COLUMN_FLAGS = "Flags"

REQUIRED_COLUMNS = (COLUMN_NUMBER, COLUMN_START, COLUMN_END, COLUMN_SIZE)

# "File" is the first word of the two-word "File system" header.
_MULTI_WORD_PREFIX = "File"

_BYTES_RE = re.compile(r"^(\d+)B")
_SECTOR_SIZES_RE = re.compile(r"^(\d+)B/(\d+)B")


class PartedTool:
    """Invokes parted against one disk, always in byte units and script mode."""

    def __init__(
        self,
        binary: str,
        disk: str,
        runner: Optional[Callable[[str, str], str]] = None,
        log: Optional[Logger] = None,
    ):
        self.binary = binary
        self.disk = disk
        self.log = log or LoggerFactory.for_parted()
        self.runner = runner or (lambda program, args: run_command(program, args, log=self.log))

    def run(self, args: str) -> str:
        return self.runner(self.binary, f"--script {self.disk} unit B {args}")

    def version(self) -> str:
        return self.runner(self.binary, "--version")

    def help(self) -> str:
        return self.runner(self.binary, "--help")

    def print_list(self, all: bool = False) -> str:
        if all:
            return self.run("print all")
        return self.run("print list")

    def print_free(self) -> str:
        return self.run("print free")


# ==============================================================================
# Column header row
# ==============================================================================


class HeaderState(Enum):
    ACCUMULATING = "accumulating"
    PADDING = "padding"


@dataclass(frozen=True)
class Column:
    name: str
    offset: int
    width: Optional[int]  # None for the last column, which runs to end of line


def parse_column_header(row: str) -> list[Column]:
    """Read column names and widths from parted's column header row.

    A column's width is its name plus the spaces padding it up to the next
    name. The last column is never followed by another name, so it gets no
    width and takes whatever remains of each record.
    """
    row = row.rstrip("\r\n")
    columns: list[Column] = []
    state = HeaderState.ACCUMULATING
    key = ""
    padding = 0
    indent = 0
    offset = 0

    for char in row:
        if char == " ":
            if state is HeaderState.ACCUMULATING and key == _MULTI_WORD_PREFIX:
                key += char
            elif key:
                state = HeaderState.PADDING
                padding += 1
            else:
                # Leading indentation belongs to the first column.
                indent += 1
            continue
        if state is HeaderState.PADDING:
            width = indent + len(key) + padding
            columns.append(Column(name=key, offset=offset, width=width))
            offset += width
            key = ""
            padding = 0
            indent = 0
            state = HeaderState.ACCUMULATING
        key += char

    if key:
        columns.append(Column(name=key, offset=offset, width=None))
    return columns


def slice_record(line: str, columns: list[Column]) -> dict[str, str]:
    """Cut one fixed-width record into fields, keyed by column name.

    When a column reaches the end of a short line, the rest of the line is
    that column's value and every later column is empty.
    """
    line = line.rstrip("\r\n")
    fields = {column.name: "" for column in columns}
    for column in columns:
        start = column.offset
        if start >= len(line):
            break
        if column.width is None or start + column.width >= len(line):
            fields[column.name] = line[start:].strip()
            break
        fields[column.name] = line[start : start + column.width].strip()
    return fields


# ==============================================================================
# Report parsing
# ==============================================================================


def _parse_bytes(value: str, field: str, line: str) -> int:
    match = _BYTES_RE.match(value.strip())
    if not match:
        raise ParseError(field, f"expected <bytes>B, got {value!r}", line)
    return int(match.group(1))


def _parse_optional_bytes(value: str, field: str, line: str) -> int:
    if not value:
        return 0
    return _parse_bytes(value, field, line)


def _parse_number(value: str, line: str) -> int:
    if not value:
        return 0
    if not value.isdigit():
        raise ParseError("partition number", f"expected an integer, got {value!r}", line)
    return int(value)


def parse_partition_record(
    line: str, columns: list[Column], disk_path: str
) -> Partition:
    fields = slice_record(line, columns)
    return Partition(
        number=_parse_number(fields.get(COLUMN_NUMBER, ""), line),
        start=_parse_optional_bytes(fields.get(COLUMN_START, ""), "partition start", line),
        end=_parse_optional_bytes(fields.get(COLUMN_END, ""), "partition end", line),
        size_text=fields.get(COLUMN_SIZE, ""),
        fs=fields.get(COLUMN_FILE_SYSTEM, ""),
        name=fields.get(COLUMN_NAME, ""),
        flags=fields.get(COLUMN_FLAGS, ""),
        disk_path=disk_path,
    )


def parse_disk_layout(text: str, disk_path: str) -> Disk:
    """Build a Disk from the text of ``print free``.

    Raises:
        ParseError: On a missing header key, a malformed annotation, an
            undecodable partition size, or partitions that add up to more
            than the disk
        ConsistencyError: If a partition's size disagrees with its range
    """
    header: dict[str, str] = {}
    columns: Optional[list[Column]] = None
    partitions: list[Partition] = []

    for line in text.splitlines():
        if not line.strip():
            continue
        if columns is None:
            key, delimiter, value = line.partition(HEADER_DELIMITER)
            if delimiter:
                header[key] = value
            elif line.rstrip().endswith(":") and not line.startswith(COLUMN_NUMBER):
                # "Disk Flags:" with nothing after it
                header[line.rstrip()[:-1]] = ""
            else:
                columns = parse_column_header(line)
            continue
        partitions.append(parse_partition_record(line, columns, disk_path))

    size_key = f"{KEY_DISK_PREFIX}{disk_path}"
    if size_key not in header:
        raise ParseError("disk size", f"missing header key {size_key!r}")
    size_line = f"{size_key}{HEADER_DELIMITER}{header[size_key]}"
    disk_size = _parse_bytes(header[size_key], "disk size", size_line)

    if KEY_SECTOR_SIZE not in header:
        raise ParseError("sector size", f"missing header key {KEY_SECTOR_SIZE!r}")
    sector_match = _SECTOR_SIZES_RE.match(header[KEY_SECTOR_SIZE].strip())
    if not sector_match:
        raise ParseError(
            "sector size",
            f"expected <logical>B/<physical>B, got {header[KEY_SECTOR_SIZE]!r}",
        )

    if KEY_PARTITION_TABLE not in header:
        raise ParseError("partition table", f"missing header key {KEY_PARTITION_TABLE!r}")

    if columns is None:
        raise ParseError("column header", "no column header row in report")
    names = {column.name for column in columns}
    for required in REQUIRED_COLUMNS:
        if required not in names:
            raise ParseError("column header", f"missing column {required!r}")

    disk = Disk(
        path=disk_path,
        size=disk_size,
        logical_sector_size=int(sector_match.group(1)),
        physical_sector_size=int(sector_match.group(2)),
        table_type=header[KEY_PARTITION_TABLE].strip().upper(),
        model=header.get(KEY_MODEL, "").strip(),
        flags=header.get(KEY_DISK_FLAGS, "").strip(),
        partitions=partitions,
    )

    for partition in disk.partitions:
        if partition.size == SIZE_UNPARSEABLE:
            raise ParseError(
                "partition size",
                f"cannot decode {partition.size_text!r} of partition {partition.number}",
            )
    for partition in disk.partitions:
        check_partition_geometry(partition)

    if disk.table_size < 0:
        raise ParseError(
            "partition table",
            f"parsed disk size {disk.size} is {-disk.table_size} bytes less than "
            f"counted partition sizes {disk.parts_size}; parted must be out of touch",
        )
    return disk


def read_disk_layout(tool: PartedTool, log: Optional[Logger] = None) -> Disk:
    """Query parted for the disk's layout, free-space gaps included."""
    log = log or tool.log
    output = tool.print_free()
    disk = parse_disk_layout(output, tool.disk)
    log.debug(
        f"Parsed {len(disk.real_partitions)} partitions and "
        f"{len(disk.partitions) - len(disk.real_partitions)} free-space gaps on {disk.path}"
    )
    return disk

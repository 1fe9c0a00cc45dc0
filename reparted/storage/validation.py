"""Byte consistency checks between parsed geometry and the raw device.

Everything downstream trusts parted's self-reported geometry. Before any
plan is made, each partition is checked two ways:

- its size must equal ``end - start + 1``
- the first logical sector read through its own device node must match the
  same bytes read from the raw disk at the partition's start offset

A mismatch means parted and the kernel disagree (stale device nodes, a
misparsed report, the wrong disk) and is always fatal. There is no warning
mode.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from reparted.logging import LoggerFactory

from .exceptions import ConsistencyError

if TYPE_CHECKING:
    from loguru import Logger

    from reparted.domain.models import Disk, Partition


def check_partition_geometry(partition: Partition) -> None:
    """Raise ConsistencyError unless the partition's range matches its size."""
    if partition.is_free_space:
        return
    span = partition.end - partition.start + 1
    if span != partition.size:
        raise ConsistencyError(
            partition.number,
            f"size {partition.size} doesn't match end-start+1 "
            f"({partition.end}-{partition.start}+1 = {span})",
        )


def read_block(path: str, offset: int, count: int) -> bytes:
    """Read up to count bytes at offset; the device is closed on return."""
    with open(path, "rb") as device:
        device.seek(offset)
        return device.read(count)


class ConsistencyValidator:
    """Compares each partition's first sector against the raw disk."""

    def __init__(self, disk: Disk, log: Optional[Logger] = None):
        self.disk = disk
        self.log = log or LoggerFactory.for_validation()

    @property
    def check_count(self) -> int:
        """One logical sector."""
        return self.disk.logical_sector_size

    def _read(self, partition: Partition, path: str, offset: int, what: str) -> bytes:
        count = self.check_count
        try:
            data = read_block(path, offset, count)
        except OSError as error:
            raise ConsistencyError(
                partition.number,
                f"failed to read {count} bytes from {what} {path} at offset {offset}: {error}",
            ) from error
        if len(data) < count:
            raise ConsistencyError(
                partition.number,
                f"failed to read {count} bytes from {what} {path} at offset {offset}, "
                f"got {len(data)} bytes instead",
            )
        return data

    def validate_partition(self, partition: Partition) -> None:
        if partition.is_free_space:
            return
        check_partition_geometry(partition)

        partition_bytes = self._read(partition, partition.device_path, 0, "partition")
        disk_bytes = self._read(partition, self.disk.path, partition.start, "disk")

        for index, (ours, theirs) in enumerate(zip(partition_bytes, disk_bytes)):
            if ours != theirs:
                raise ConsistencyError(
                    partition.number,
                    f"byte {index} on {partition.device_path} does not match byte "
                    f"{partition.start + index} on disk, {ours} != {theirs}",
                )
        self.log.debug(
            f"Partition {partition.label} matches disk at offset {partition.start}"
        )

    def validate(self) -> None:
        """Check every partition in order; stops at the first failure."""
        for partition in self.disk.partitions:
            self.validate_partition(partition)
        self.log.info(
            f"Validated {len(self.disk.real_partitions)} partitions on {self.disk.path}"
        )


def validate_disk(disk: Disk, log: Optional[Logger] = None) -> None:
    ConsistencyValidator(disk, log=log).validate()

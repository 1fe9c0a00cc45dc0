"""Apply a resize plan to the disk, one partition at a time.

Shrinking works filesystem first, then table: unmount, fsck, shrink the
filesystem, then rewrite the table entry with the smaller end. Growing is the
reverse: unmount, rewrite the table entry, then fsck and grow the filesystem
to fill it. fsck and resize only run for partitions marked wipe, so a shrink
of a partition not marked wipe is refused before the table is touched.

A table entry is only rewritten when its new range stays inside the disk and
clear of every other partition; the check runs before the old entry is
removed. The in-memory layout follows each rewrite so later steps of the same
plan see the updated ranges.

Nothing is rolled back. When a step fails the remaining steps for that
partition (and the rest of the plan) are skipped and an ExecutionError names
the partition and the step; the disk must be inspected by hand before
retrying.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional

from reparted.domain.models import Partition
from reparted.logging import LoggerFactory

from .command_runners import run_command
from .exceptions import CommandError, ExecutionError

if TYPE_CHECKING:
    from loguru import Logger

    from reparted.domain.models import Disk, PartitionSpec, ResizePlan, ResizeTarget

    from .parted import PartedTool

UMOUNT = "umount"
GPT = "GPT"


class ResizeExecutor:
    """Runs unmount, fsck, filesystem resize and table rewrites for a plan."""

    def __init__(
        self,
        disk: Disk,
        tool: PartedTool,
        runner: Optional[Callable[[str, str], str]] = None,
        fsck: Optional[str] = None,
        resize: Optional[str] = None,
        log: Optional[Logger] = None,
    ):
        self.disk = disk
        self.tool = tool
        self.fsck = fsck
        self.resize = resize
        self.log = log or LoggerFactory.for_resize()
        self.runner = runner or (lambda program, args: run_command(program, args, log=self.log))

    def _step(self, identity: str, step: str, program: str, args: str) -> str:
        try:
            return self.runner(program, args)
        except CommandError as error:
            raise ExecutionError(identity, step, str(error)) from error

    def _parted(self, identity: str, step: str, args: str) -> str:
        try:
            return self.tool.run(args)
        except CommandError as error:
            raise ExecutionError(identity, step, str(error)) from error

    # ------------------------------------------------------------------
    # Single steps
    # ------------------------------------------------------------------

    def unmount(self, partition: Partition) -> None:
        """Unmount the partition; not being mounted is not an error."""
        try:
            self.runner(UMOUNT, partition.device_path)
        except CommandError as error:
            self.log.debug(f"Unmount of {partition.device_path} skipped: {error}")

    def check_filesystem(self, partition: Partition) -> None:
        if not self.fsck:
            raise ExecutionError(partition.label, "fsck", "no fsck tool configured")
        self.log.info(f"Checking filesystem on {partition.device_path}")
        self._step(partition.label, "fsck", self.fsck, partition.device_path)

    def resize_filesystem(self, partition: Partition, size: Optional[int] = None) -> None:
        """Resize the filesystem to size bytes, or to fill the partition."""
        if not self.resize:
            raise ExecutionError(partition.label, "resize", "no resize tool configured")
        args = partition.device_path
        if size is not None:
            args += f" {size // 1024}K"
        self.log.info(f"Resizing filesystem on {partition.device_path}")
        self._step(partition.label, "resize", self.resize, args)

    def check_range(
        self, identity: str, start: int, end: int, number: Optional[int] = None
    ) -> None:
        """Raise unless start..end fits the disk and overlaps no partition but number.

        parted rejects an overlapping mkpart with output, which the exit code
        policy would count as success, so the range is checked up front.
        """
        if start < 0 or end < start:
            raise ExecutionError(identity, "create", f"invalid range {start}B-{end}B")
        if end >= self.disk.size:
            raise ExecutionError(
                identity,
                "create",
                f"range {start}B-{end}B would run past the end of {self.disk.path} "
                f"({self.disk.size}B)",
            )
        for other in self.disk.real_partitions:
            if other.number == number:
                continue
            if start <= other.end and other.start <= end:
                raise ExecutionError(
                    identity,
                    "create",
                    f"range {start}B-{end}B would overlap partition {other.label} "
                    f"({other.start}B-{other.end}B)",
                )

    def rewrite_entry(
        self, partition: Partition, spec: PartitionSpec, start: int, end: int
    ) -> None:
        """Replace the table entry of partition with one spanning start..end."""
        identity = partition.label
        number = partition.number
        name = spec.name or partition.name
        flags = spec.flags if spec.flags is not None else partition.flags

        self.check_range(identity, start, end, number)
        self.log.info(f"Rewriting partition {identity}: {start}B-{end}B")
        self._parted(identity, "delete", f"rm {number}")
        self._parted(identity, "create", f"mkpart primary {start}B {end}B")
        partition.start = start
        partition.end = end
        partition.size_text = f"{end - start + 1}B"
        if name and self.disk.table_type == GPT:
            self._parted(identity, "name", f"name {number} {name}")
        for flag in [flag.strip() for flag in flags.split(",") if flag.strip()]:
            self._parted(identity, "flags", f"set {number} {flag} on")

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def _bounds(self, target: ResizeTarget) -> tuple[int, int]:
        spec = target.spec
        start = spec.start if spec.start is not None else target.actual.start
        end = spec.end if spec.end is not None else start + spec.size_bytes - 1
        return start, end

    def shrink(self, target: ResizeTarget) -> None:
        """Shrink the filesystem, then the table entry; needs the wipe marker."""
        partition = target.actual
        if not partition.wipe:
            raise ExecutionError(
                partition.label,
                "shrink",
                "filesystem cannot be shrunk unless the partition is marked wipe",
            )
        start, end = self._bounds(target)
        self.check_range(partition.label, start, end, partition.number)
        self.unmount(partition)
        self.check_filesystem(partition)
        self.resize_filesystem(partition, target.spec.size_bytes)
        self.rewrite_entry(partition, target.spec, start, end)

    def grow(self, target: ResizeTarget) -> None:
        partition = target.actual
        self.unmount(partition)
        start, end = self._bounds(target)
        self.rewrite_entry(partition, target.spec, start, end)
        if partition.wipe:
            self.check_filesystem(partition)
            self.resize_filesystem(partition)

    def move(self, target: ResizeTarget) -> None:
        partition = target.actual
        spec = target.spec
        if spec.start is None or spec.end is None:
            raise ExecutionError(
                partition.label, "move", "start and end are required to reposition"
            )
        self.unmount(partition)
        self.rewrite_entry(partition, spec, spec.start, spec.end)
        if partition.wipe:
            self.check_filesystem(partition)
            self.resize_filesystem(partition)

    def refresh(self, target: ResizeTarget) -> None:
        partition = target.actual
        self.unmount(partition)
        self.check_filesystem(partition)
        self.resize_filesystem(partition)

    def create(self, spec: PartitionSpec) -> None:
        if spec.start is None or spec.end is None:
            raise ExecutionError(
                spec.identity, "create", "start and end are required to create"
            )
        self.check_range(spec.identity, spec.start, spec.end)
        label = spec.name if spec.name and self.disk.table_type == GPT else "primary"
        self.log.info(f"Creating partition {spec.identity}: {spec.start}B-{spec.end}B")
        self._parted(spec.identity, "create", f"mkpart {label} {spec.start}B {spec.end}B")
        number = spec.number if spec.number is not None else self._next_number()
        self.disk.partitions.append(
            Partition(
                number=number,
                start=spec.start,
                end=spec.end,
                size_text=f"{spec.end - spec.start + 1}B",
                fs=spec.fs or "",
                name=spec.name or "",
                flags=spec.flags or "",
                disk_path=self.disk.path,
            )
        )
        if spec.number is not None and spec.flags:
            for flag in [flag.strip() for flag in spec.flags.split(",") if flag.strip()]:
                self._parted(spec.identity, "flags", f"set {spec.number} {flag} on")

    def _next_number(self) -> int:
        """Lowest unused partition number, the one parted hands out."""
        used = {partition.number for partition in self.disk.real_partitions}
        number = 1
        while number in used:
            number += 1
        return number

    def apply(self, plan: ResizePlan) -> None:
        """Run every bucket of the plan in order: shrink, grow, move, refresh, create."""
        moved = {id(target) for target in plan.move}
        for target in plan.shrink:
            if id(target) not in moved:
                self.shrink(target)
        for target in plan.grow:
            if id(target) not in moved:
                self.grow(target)
        for target in plan.move:
            self.move(target)
        for target in plan.refresh:
            if id(target) not in moved:
                self.refresh(target)
        for spec in plan.unmatched:
            self.create(spec)
        self.log.success(f"Applied resize plan to {self.disk.path}")

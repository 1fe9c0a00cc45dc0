"""Domain model for partition resize planning.

Actual partitions come from the partitioning tool's report; specs come from
the configuration document and describe the desired state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from reparted.storage.exceptions import ConfigError
from reparted.storage.sizes import decode_size, human_size

FREE_SPACE_LABEL = "Free Space"
FREE_SPACE_NUMBER = 0


# ==============================================================================
# Actual layout
# ==============================================================================


@dataclass
class Partition:
    """A partition (or free-space gap) as reported by parted.

    Only `wipe` is ever changed after parsing; it is copied over from the
    matching reserved spec by the planner.
    """

    number: int  # 0 for free-space gaps
    start: int  # Byte offset of the first byte
    end: int  # Byte offset of the last byte (inclusive)
    size_text: str  # e.g., "536870912B"
    fs: str = ""
    name: str = ""
    flags: str = ""
    disk_path: str = ""
    wipe: bool = False

    @property
    def size(self) -> int:
        """Size in bytes, or -1 if size_text cannot be decoded."""
        return decode_size(self.size_text)

    @property
    def human_size(self) -> str:
        return human_size(max(self.size, 0))

    @property
    def is_free_space(self) -> bool:
        return self.number == FREE_SPACE_NUMBER or self.fs == FREE_SPACE_LABEL

    @property
    def device_path(self) -> str:
        """Partition device node (e.g., /dev/sda + 1)."""
        return f"{self.disk_path}{self.number}"

    @property
    def label(self) -> str:
        if self.name:
            return f"{self.number} ({self.name})"
        return str(self.number)

    @property
    def flag_list(self) -> list[str]:
        return [flag.strip() for flag in self.flags.split(",") if flag.strip()]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "num": self.number,
            "start": self.start,
            "end": self.end,
            "size": self.size_text,
        }
        for key, value in (("fs", self.fs), ("name", self.name), ("flags", self.flags)):
            if value:
                data[key] = value
        data["wipe"] = self.wipe
        return data


@dataclass
class Disk:
    """A block device and its partition table as reported by parted."""

    path: str
    size: int
    logical_sector_size: int
    physical_sector_size: int
    table_type: str
    model: str = ""
    flags: str = ""
    partitions: list[Partition] = field(default_factory=list)

    @property
    def parts_size(self) -> int:
        return sum(partition.size for partition in self.partitions)

    @property
    def table_size(self) -> int:
        """Bytes not covered by any partition or gap (table and alignment)."""
        return self.size - self.parts_size

    @property
    def free_space(self) -> int:
        return sum(
            partition.size for partition in self.partitions if partition.is_free_space
        )

    @property
    def real_partitions(self) -> list[Partition]:
        return [partition for partition in self.partitions if not partition.is_free_space]

    def device_path(self, number: int) -> str:
        return f"{self.path}{number}"

    def get_partition_by_name(self, name: str) -> Optional[Partition]:
        for partition in self.real_partitions:
            if partition.name == name:
                return partition
        return None

    def get_partition_by_number(self, number: int) -> Optional[Partition]:
        for partition in self.real_partitions:
            if partition.number == number:
                return partition
        return None

    def match(self, spec: PartitionSpec) -> Optional[Partition]:
        """Find the actual partition a spec targets: by name, else by number."""
        if spec.name is not None:
            return self.get_partition_by_name(spec.name)
        if spec.number is not None:
            return self.get_partition_by_number(spec.number)
        return None


# ==============================================================================
# Desired layout
# ==============================================================================


@dataclass(frozen=True)
class PartitionSpec:
    """A configured partition, identified by name or by number.

    Constructing a spec with neither a name nor a number raises ConfigError.
    """

    name: Optional[str] = None
    number: Optional[int] = None
    size: Optional[str] = None  # e.g., "256MiB"
    start: Optional[int] = None
    end: Optional[int] = None
    fs: Optional[str] = None
    flags: Optional[str] = None
    wipe: bool = False  # Run fsck and resize even if the size is unchanged

    def __post_init__(self) -> None:
        if not self.name and not self.number:
            raise ConfigError("Partition spec must specify either name or number")
        if self.name == "":
            object.__setattr__(self, "name", None)
        if self.number == 0:
            object.__setattr__(self, "number", None)

    @property
    def size_bytes(self) -> int:
        """Target size in bytes, or -1 if absent or undecodable."""
        if self.size is None:
            return -1
        return decode_size(self.size)

    @property
    def identity(self) -> str:
        if self.name is not None:
            return self.name
        return f"#{self.number}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartitionSpec:
        """Build a spec from a configuration document entry.

        Raises:
            ConfigError: If the entry is not an object or has bad field types
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Partition spec must be an object, got {data!r}")
        try:
            number = data.get("num")
            start = data.get("start")
            end = data.get("end")
            return cls(
                name=data.get("name"),
                number=int(number) if number is not None else None,
                size=str(data["size"]) if data.get("size") is not None else None,
                start=int(start) if start is not None else None,
                end=int(end) if end is not None else None,
                fs=data.get("fs"),
                flags=data.get("flags"),
                wipe=bool(data.get("wipe", False)),
            )
        except (TypeError, ValueError) as error:
            raise ConfigError(f"Invalid partition spec {data!r}: {error}") from error

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key, value in (
            ("num", self.number),
            ("start", self.start),
            ("end", self.end),
            ("size", self.size),
            ("fs", self.fs),
            ("name", self.name),
            ("flags", self.flags),
        ):
            if value is not None:
                data[key] = value
        data["wipe"] = self.wipe
        return data


# ==============================================================================
# Plan
# ==============================================================================


@dataclass(frozen=True)
class ResizeTarget:
    """A reserved spec paired with the actual partition it matched."""

    spec: PartitionSpec
    actual: Optional[Partition]

    @property
    def delta(self) -> int:
        """Bytes the partition must gain (positive) or give up (negative)."""
        actual_size = self.actual.size if self.actual is not None else 0
        return self.spec.size_bytes - actual_size

    @property
    def identity(self) -> str:
        return self.spec.identity


@dataclass
class ResizePlan:
    """Result of resize planning; advisory until an executor applies it."""

    reserve: int
    shrink: list[ResizeTarget] = field(default_factory=list)
    grow: list[ResizeTarget] = field(default_factory=list)
    move: list[ResizeTarget] = field(default_factory=list)
    matched: list[ResizeTarget] = field(default_factory=list)
    unmatched: list[PartitionSpec] = field(default_factory=list)
    userdata: list[Partition] = field(default_factory=list)
    available: int = 0
    free_space: int = 0

    @property
    def direction(self) -> str:
        """Either reserve (userdata gives up space), free or none."""
        if self.reserve > 0:
            return "reserve"
        if self.reserve < 0:
            return "free"
        return "none"

    @property
    def refresh(self) -> list[ResizeTarget]:
        """Wiped partitions whose size is unchanged; they still get fsck and resize."""
        return [
            target for target in self.matched if target.spec.wipe and target.delta == 0
        ]

    @property
    def has_changes(self) -> bool:
        return bool(self.shrink or self.grow or self.move or self.refresh)

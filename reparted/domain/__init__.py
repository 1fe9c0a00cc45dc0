"""Domain models for partition resize planning."""

from __future__ import annotations

from .models import (
    FREE_SPACE_LABEL,
    Disk,
    Partition,
    PartitionSpec,
    ResizePlan,
    ResizeTarget,
)


__all__ = [
    "FREE_SPACE_LABEL",
    "Disk",
    "Partition",
    "PartitionSpec",
    "ResizePlan",
    "ResizeTarget",
]

"""Resize planning: how much space moves between reserved and userdata.

Reserved partitions have a configured target size. Userdata partitions have
none; they absorb whatever the reserved partitions gain or give up. The plan
is computed from the parsed layout alone, before any tool touches the disk.

Reserve arithmetic:
    reserve = sum(target sizes) - sum(matched actual sizes) - free space

A positive reserve is taken from userdata, a negative one is awarded to
userdata, zero means no net change. The actual size is always subtracted in
full, also when it is larger than the target.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from reparted.domain.models import ResizePlan, ResizeTarget
from reparted.logging import LoggerFactory

from .exceptions import PlanError
from .sizes import human_size

if TYPE_CHECKING:
    from loguru import Logger

    from reparted.domain.models import Disk, PartitionSpec


def match_reserved(
    disk: Disk, reserved: Sequence[PartitionSpec]
) -> list[ResizeTarget]:
    """Pair each reserved spec with its actual partition (None if unmatched).

    Matched partitions take over the spec's wipe marker.
    """
    targets = []
    for spec in reserved:
        actual = disk.match(spec)
        if actual is not None:
            actual.wipe = spec.wipe
        targets.append(ResizeTarget(spec=spec, actual=actual))
    return targets


def match_userdata(disk: Disk, userdata: Sequence[PartitionSpec]):
    """Actual userdata partitions, each listed once even if several specs match it."""
    matched = []
    seen = set()
    for spec in userdata:
        actual = disk.match(spec)
        if actual is not None and actual.number not in seen:
            seen.add(actual.number)
            matched.append(actual)
    return matched


def compute_reserve(targets: Sequence[ResizeTarget], free_space: int = 0) -> int:
    reserve = 0
    for target in targets:
        reserve += target.spec.size_bytes
        if target.actual is not None:
            reserve -= target.actual.size
    return reserve - free_space


def plan_resize(
    disk: Disk,
    reserved: Sequence[PartitionSpec],
    userdata: Sequence[PartitionSpec],
    log: Optional[Logger] = None,
) -> ResizePlan:
    """Compute the resize plan for a parsed disk.

    Raises:
        PlanError: If no reserved partition matched, no userdata partition
            exists or matched, only some userdata partitions matched, or
            userdata is too small to give up the reserve
    """
    log = log or LoggerFactory.for_planner()

    targets = match_reserved(disk, reserved)
    matched = [target for target in targets if target.actual is not None]
    unmatched = [target.spec for target in targets if target.actual is None]
    for spec in unmatched:
        log.warning(f"Reserved partition {spec.identity} could not be matched to disk")

    free_space = disk.free_space
    reserve = compute_reserve(targets, free_space)

    if not matched:
        raise PlanError("No reserved partitions could be matched to disk")
    if not userdata:
        raise PlanError("No userdata partitions configured")

    userdata_parts = match_userdata(disk, userdata)
    if not userdata_parts:
        raise PlanError("No userdata partitions could be matched to disk")
    if len(userdata_parts) != len(userdata):
        raise PlanError(
            f"Only {len(userdata_parts)} of {len(userdata)} userdata partitions "
            "could be matched to disk"
        )

    available = sum(partition.size for partition in userdata_parts)
    if reserve > available:
        raise PlanError(
            f"Need to reserve {human_size(reserve)} but userdata only has "
            f"{human_size(available)}",
            shortfall=reserve - available,
        )

    plan = ResizePlan(
        reserve=reserve,
        matched=matched,
        unmatched=unmatched,
        userdata=userdata_parts,
        available=available,
        free_space=free_space,
    )
    for target in matched:
        if target.spec.size_bytes < target.actual.size:
            plan.shrink.append(target)
        elif target.spec.size_bytes > target.actual.size:
            plan.grow.append(target)
        if target.spec.number is None:
            plan.move.append(target)

    log.debug(
        f"Plan for {disk.path}: reserve={reserve} shrink={len(plan.shrink)} "
        f"grow={len(plan.grow)} move={len(plan.move)} unmatched={len(unmatched)}"
    )
    return plan


def describe_plan(plan: ResizePlan, disk: Disk) -> str:
    """One-line summary of what the plan does to userdata."""
    if plan.reserve > 0:
        return (
            f"Need to reserve {human_size(plan.reserve)}/{human_size(disk.size)} "
            "for new partition table"
        )
    if plan.reserve < 0:
        return (
            f"Need to free {human_size(-plan.reserve)}/{human_size(disk.size)} "
            "for new partition table"
        )
    return "No additional space will be freed or reserved for new partition table"

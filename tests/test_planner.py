"""Tests for resize planning."""

import pytest

from reparted.domain.models import Disk, PartitionSpec
from reparted.storage.exceptions import PlanError
from reparted.storage.planner import (
    compute_reserve,
    describe_plan,
    match_reserved,
    match_userdata,
    plan_resize,
)

MiB = 1024**2
GiB = 1024**3


class TestReserveArithmetic:
    def test_userdata_is_awarded_space(self, three_partition_disk, userdata_specs):
        """(300 + 200) - (400 + 150) = -50MiB goes to userdata."""
        reserved = [
            PartitionSpec(name="A", size="300MiB"),
            PartitionSpec(name="B", size="200MiB"),
        ]

        plan = plan_resize(three_partition_disk, reserved, userdata_specs)

        assert plan.reserve == -50 * MiB
        assert plan.direction == "free"

    def test_larger_actual_is_subtracted_in_full(self, three_partition_disk):
        targets = match_reserved(three_partition_disk, [PartitionSpec(name="A", size="300MiB")])

        assert compute_reserve(targets) == -100 * MiB

    def test_unmatched_spec_counts_toward_reserve(self, three_partition_disk):
        targets = match_reserved(
            three_partition_disk,
            [
                PartitionSpec(name="A", size="400MiB"),
                PartitionSpec(name="new", size="64MiB"),
            ],
        )

        assert compute_reserve(targets) == 64 * MiB

    def test_free_space_reduces_reserve(self, three_partition_disk, userdata_specs):
        gap = three_partition_disk.partitions[-1]
        three_partition_disk.partitions.append(
            type(gap)(
                number=0,
                start=gap.end + 1,
                end=gap.end + 1 * MiB,
                size_text=f"{1 * MiB}B",
                fs="Free Space",
                disk_path="/dev/sda",
            )
        )
        reserved = [PartitionSpec(name="A", size="410MiB")]

        plan = plan_resize(three_partition_disk, reserved, userdata_specs)

        assert plan.free_space == 1 * MiB
        assert plan.reserve == 9 * MiB

    def test_zero_reserve(self, three_partition_disk, userdata_specs):
        reserved = [PartitionSpec(name="A", number=1, size="400MiB")]

        plan = plan_resize(three_partition_disk, reserved, userdata_specs)

        assert plan.reserve == 0
        assert plan.direction == "none"
        assert not plan.has_changes


class TestClassification:
    def test_shrink_only(self, three_partition_disk, userdata_specs):
        plan = plan_resize(
            three_partition_disk, [PartitionSpec(name="A", size="300MiB", number=1)], userdata_specs
        )

        assert [t.identity for t in plan.shrink] == ["A"]
        assert plan.grow == []
        assert plan.move == []

    def test_grow_only(self, three_partition_disk, userdata_specs):
        plan = plan_resize(
            three_partition_disk, [PartitionSpec(name="B", size="200MiB", number=2)], userdata_specs
        )

        assert [t.identity for t in plan.grow] == ["B"]
        assert plan.shrink == []
        assert plan.move == []

    def test_spec_without_number_is_moved(self, three_partition_disk, userdata_specs):
        """No number means move, on top of shrink or grow."""
        reserved = [
            PartitionSpec(name="A", size="300MiB"),
            PartitionSpec(name="B", size="150MiB"),
        ]

        plan = plan_resize(three_partition_disk, reserved, userdata_specs)

        assert [t.identity for t in plan.move] == ["A", "B"]
        assert [t.identity for t in plan.shrink] == ["A"]
        assert plan.grow == []

    def test_number_only_spec_matches_by_number(self, three_partition_disk, userdata_specs):
        plan = plan_resize(
            three_partition_disk, [PartitionSpec(number=2, size="100MiB")], userdata_specs
        )

        assert plan.shrink[0].actual.name == "B"
        assert plan.move == []

    def test_name_takes_precedence_over_number(self, three_partition_disk, userdata_specs):
        plan = plan_resize(
            three_partition_disk,
            [PartitionSpec(name="B", number=1, size="100MiB")],
            userdata_specs,
        )

        assert plan.shrink[0].actual.number == 2

    def test_wipe_marker_copied_to_actual(self, three_partition_disk, userdata_specs):
        plan = plan_resize(
            three_partition_disk,
            [PartitionSpec(name="A", number=1, size="400MiB", wipe=True)],
            userdata_specs,
        )

        assert three_partition_disk.get_partition_by_name("A").wipe is True
        assert [t.identity for t in plan.refresh] == ["A"]

    def test_unmatched_recorded(self, three_partition_disk, userdata_specs):
        new = PartitionSpec(name="new", size="64MiB", number=9)

        plan = plan_resize(
            three_partition_disk,
            [PartitionSpec(name="A", number=1, size="400MiB"), new],
            userdata_specs,
        )

        assert plan.unmatched == [new]


class TestEndToEnd:
    def test_boot_grows_into_data(self, boot_data_disk):
        reserved = [PartitionSpec(name="boot", size="256MiB")]
        userdata = [PartitionSpec(name="data")]

        plan = plan_resize(boot_data_disk, reserved, userdata)

        assert plan.reserve == 128 * MiB
        assert plan.direction == "reserve"
        assert [t.identity for t in plan.grow] == ["boot"]
        assert plan.shrink == []
        assert plan.available == 10 * GiB
        assert plan.reserve < plan.available
        assert [p.name for p in plan.userdata] == ["data"]

    def test_describe_reserve(self, boot_data_disk):
        plan = plan_resize(
            boot_data_disk, [PartitionSpec(name="boot", size="256MiB")], [PartitionSpec(name="data")]
        )

        assert describe_plan(plan, boot_data_disk).startswith("Need to reserve 128.0MiB/")

    def test_describe_free(self, boot_data_disk):
        plan = plan_resize(
            boot_data_disk, [PartitionSpec(name="boot", size="64MiB")], [PartitionSpec(name="data")]
        )

        assert describe_plan(plan, boot_data_disk).startswith("Need to free 64.0MiB/")

    def test_describe_none(self, boot_data_disk):
        plan = plan_resize(
            boot_data_disk, [PartitionSpec(name="boot", size="128MiB")], [PartitionSpec(name="data")]
        )

        assert describe_plan(plan, boot_data_disk).startswith("No additional space")


class TestPlanErrors:
    def test_no_reserved_matched(self, boot_data_disk):
        with pytest.raises(PlanError, match="No reserved partitions"):
            plan_resize(
                boot_data_disk,
                [PartitionSpec(name="missing", size="1MiB")],
                [PartitionSpec(name="data")],
            )

    def test_no_reserved_configured(self, boot_data_disk):
        with pytest.raises(PlanError, match="No reserved partitions"):
            plan_resize(boot_data_disk, [], [PartitionSpec(name="data")])

    def test_no_userdata_configured(self, boot_data_disk):
        with pytest.raises(PlanError, match="No userdata partitions configured"):
            plan_resize(boot_data_disk, [PartitionSpec(name="boot", size="256MiB")], [])

    def test_no_userdata_matched(self, boot_data_disk):
        with pytest.raises(PlanError, match="No userdata partitions could be matched"):
            plan_resize(
                boot_data_disk,
                [PartitionSpec(name="boot", size="256MiB")],
                [PartitionSpec(name="home")],
            )

    def test_partial_userdata_match(self, boot_data_disk):
        with pytest.raises(PlanError, match="Only 1 of 2"):
            plan_resize(
                boot_data_disk,
                [PartitionSpec(name="boot", size="256MiB")],
                [PartitionSpec(name="data"), PartitionSpec(name="home")],
            )

    def test_insufficient_headroom_reports_shortfall(self, boot_data_disk):
        with pytest.raises(PlanError) as exc_info:
            plan_resize(
                boot_data_disk,
                [PartitionSpec(name="boot", size="12GiB")],
                [PartitionSpec(name="data")],
            )

        assert exc_info.value.shortfall == 12 * GiB - 128 * MiB - 10 * GiB

    def test_two_userdata_specs_for_one_partition(self, boot_data_disk):
        """A partition named by two specs is counted once, so the count check fails."""
        userdata = [PartitionSpec(name="data"), PartitionSpec(number=2)]

        assert len(match_userdata(boot_data_disk, userdata)) == 1
        with pytest.raises(PlanError, match="Only 1 of 2"):
            plan_resize(boot_data_disk, [PartitionSpec(name="boot", size="256MiB")], userdata)

    def test_userdata_match_on_empty_disk(self):
        empty = Disk(
            path="/dev/sda",
            size=2 * MiB,
            logical_sector_size=512,
            physical_sector_size=512,
            table_type="GPT",
        )

        assert match_userdata(empty, [PartitionSpec(number=1)]) == []

"""
Pytest configuration and shared fixtures for reparted tests.

This module provides sample parted reports, disk factories and fake command
runners used across the test modules.
"""

from typing import Callable, List, Optional, Tuple
from unittest.mock import Mock

import pytest

from reparted.domain.models import Disk, Partition, PartitionSpec


MiB = 1024**2
GiB = 1024**3

REPORT_COLUMNS = ["Number", "Start", "End", "Size", "File system", "Name", "Flags"]


def format_parted_report(
    disk_path: str,
    disk_size: int,
    rows: List[Tuple[str, ...]],
    *,
    table: str = "gpt",
    model: str = "ATA VBOX HARDDISK (scsi)",
    sector_sizes: str = "512B/512B",
    disk_flags: str = "",
) -> str:
    """Render rows the way `parted unit B print free` lays them out."""
    widths = [
        max([len(name)] + [len(row[index]) for row in rows if len(row) > index]) + 2
        for index, name in enumerate(REPORT_COLUMNS)
    ]

    def render(values):
        cells = [
            value if index == len(REPORT_COLUMNS) - 1 else value.ljust(widths[index])
            for index, value in enumerate(values)
        ]
        return "".join(cells).rstrip()

    lines = [
        f"Model: {model}",
        f"Disk {disk_path}: {disk_size}B",
        f"Sector size (logical/physical): {sector_sizes}",
        f"Partition Table: {table}",
        f"Disk Flags: {disk_flags}",
        "",
        render(REPORT_COLUMNS),
    ]
    lines.extend(render(row) for row in rows)
    return "\n".join(lines) + "\n\n"


def partition_row(number, start, size, fs="", name="", flags=""):
    number_text = f"{number:>2}" if number else ""
    return (
        number_text,
        f"{start}B",
        f"{start + size - 1}B",
        f"{size}B",
        fs,
        name,
        flags,
    )


def make_partition(
    number: int,
    start: int,
    size: int,
    name: str = "",
    fs: str = "",
    flags: str = "",
    disk_path: str = "/dev/sda",
) -> Partition:
    return Partition(
        number=number,
        start=start,
        end=start + size - 1,
        size_text=f"{size}B",
        fs=fs,
        name=name,
        flags=flags,
        disk_path=disk_path,
    )


# ==============================================================================
# parted Report Fixtures
# ==============================================================================


@pytest.fixture
def gpt_report() -> str:
    """
    Fixture providing a GPT `print free` report with two partitions and two gaps.

    Returns:
        Text as printed by parted for /dev/sda (8GiB).
    """
    rows = [
        ("", "17408B", "1048575B", "1031168B", "Free Space"),
        partition_row(1, 1048576, 128 * MiB, "fat32", "boot", "boot, esp"),
        partition_row(2, 135266304, 8453619712, "ext4", "data"),
        ("", "8588886016B", "8589917695B", "1031680B", "Free Space"),
    ]
    return format_parted_report("/dev/sda", 8589934592, rows)


@pytest.fixture
def boot_data_disk() -> Disk:
    """
    Fixture providing a disk with a 128MiB boot and a 10GiB data partition.

    There are no free-space gaps, so every byte of reserve comes from data.
    """
    boot = make_partition(1, 1 * MiB, 128 * MiB, name="boot", fs="fat32", flags="boot, esp")
    data = make_partition(2, 129 * MiB, 10 * GiB, name="data", fs="ext4")
    return Disk(
        path="/dev/sda",
        size=129 * MiB + 10 * GiB + 1 * MiB,
        logical_sector_size=512,
        physical_sector_size=512,
        table_type="GPT",
        model="Test Disk",
        partitions=[boot, data],
    )


@pytest.fixture
def three_partition_disk() -> Disk:
    """
    Fixture providing reserved partitions A (400MiB) and B (150MiB) plus data.
    """
    part_a = make_partition(1, 1 * MiB, 400 * MiB, name="A", fs="ext4")
    part_b = make_partition(2, 401 * MiB, 150 * MiB, name="B", fs="ext4")
    data = make_partition(3, 551 * MiB, 2 * GiB, name="data", fs="ext4")
    return Disk(
        path="/dev/sda",
        size=551 * MiB + 2 * GiB + 1 * MiB,
        logical_sector_size=512,
        physical_sector_size=512,
        table_type="GPT",
        partitions=[part_a, part_b, data],
    )


@pytest.fixture
def report_factory() -> Callable[..., str]:
    """Fixture providing format_parted_report for custom layouts."""
    return format_parted_report


@pytest.fixture
def row_factory() -> Callable[..., Tuple[str, ...]]:
    """Fixture providing partition_row for custom layouts."""
    return partition_row


@pytest.fixture
def userdata_specs() -> List[PartitionSpec]:
    return [PartitionSpec(name="data")]


# ==============================================================================
# Command Runner Fixtures
# ==============================================================================


class FakeRunner:
    """Records (program, args) calls and answers from a response table."""

    def __init__(self, responses: Optional[dict] = None, default: str = "ok\n"):
        self.calls: List[Tuple[str, str]] = []
        self.responses = responses or {}
        self.default = default
        self.failures: dict = {}

    def fail_on(self, needle: str, error: Exception) -> None:
        self.failures[needle] = error

    def __call__(self, program: str, args: str = "") -> str:
        self.calls.append((program, args))
        command = f"{program} {args}"
        for needle, error in self.failures.items():
            if needle in command:
                raise error
        for needle, response in self.responses.items():
            if needle in command:
                return response
        return self.default

    @property
    def commands(self) -> List[str]:
        return [f"{program} {args}".strip() for program, args in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Fixture providing a recording command runner."""
    return FakeRunner()


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    return FakeRunner


@pytest.fixture
def mock_log() -> Mock:
    """Fixture providing a stand-in for a bound loguru logger."""
    return Mock()


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")

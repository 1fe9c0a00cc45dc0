"""Configuration document for a resize run.

    {
        "disk": "/dev/mmcblk0p",
        "parted": "/sbin/parted",
        "fsck": "/sbin/e2fsck",
        "resize": "/sbin/resize2fs",
        "reserved": [{"name": "boot", "size": "256MiB"}],
        "userdata": [{"name": "data"}]
    }
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from reparted.domain.models import PartitionSpec
from reparted.storage.exceptions import ConfigError


def default_config_path() -> Path:
    """REPARTED_CONFIG, else <program>.json next to the program."""
    env_path = os.environ.get("REPARTED_CONFIG")
    if env_path:
        return Path(env_path)
    program = Path(sys.argv[0]) if sys.argv and sys.argv[0] else Path("reparted")
    return program.resolve().parent / f"{program.stem}.json"


@dataclass
class RepartedConfig:
    disk: str
    parted: str
    fsck: Optional[str] = None
    resize: Optional[str] = None
    reserved: list[PartitionSpec] = field(default_factory=list)
    userdata: list[PartitionSpec] = field(default_factory=list)

    def validate(self) -> None:
        if not self.disk:
            raise ConfigError("No disk specified")
        if not self.parted:
            raise ConfigError("No parted executable specified")
        for index, spec in enumerate(self.reserved, start=1):
            if spec.size_bytes <= 0:
                raise ConfigError(
                    f"Invalid size {spec.size!r} specified for reserved partition {index}"
                )
        wiped = [spec for spec in self.reserved if spec.wipe]
        if wiped and not (self.fsck and self.resize):
            raise ConfigError(
                f"Partition {wiped[0].identity} is marked wipe but fsck and resize "
                "tools are not both specified"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepartedConfig:
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")
        config = cls(
            disk=data.get("disk") or "",
            parted=data.get("parted") or "",
            fsck=data.get("fsck") or None,
            resize=data.get("resize") or None,
            reserved=_load_specs(data.get("reserved"), "reserved"),
            userdata=_load_specs(data.get("userdata"), "userdata"),
        )
        config.validate()
        return config

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"disk": self.disk, "parted": self.parted}
        if self.fsck:
            data["fsck"] = self.fsck
        if self.resize:
            data["resize"] = self.resize
        data["reserved"] = [spec.to_dict() for spec in self.reserved]
        data["userdata"] = [spec.to_dict() for spec in self.userdata]
        return data


def _load_specs(entries: Any, section: str) -> list[PartitionSpec]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigError(f"{section} must be a list of partitions")
    specs = []
    for index, entry in enumerate(entries, start=1):
        try:
            specs.append(PartitionSpec.from_dict(entry))
        except ConfigError as error:
            raise ConfigError(f"{section} partition {index}: {error}") from error
    return specs


def load_config(path: Optional[Path] = None) -> RepartedConfig:
    path = Path(path) if path is not None else default_config_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as error:
        raise ConfigError(f"Failed to open JSON for reading from {path}: {error}") from error
    except json.JSONDecodeError as error:
        raise ConfigError(f"Failed to load JSON from {path}: {error}") from error
    return RepartedConfig.from_dict(data)


def save_config(config: RepartedConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")

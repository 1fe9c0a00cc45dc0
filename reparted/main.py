import argparse
import json
import sys
from pathlib import Path

from reparted.config.settings import load_config
from reparted.logging import LoggerFactory, operation_context, setup_logging
from reparted.storage.command_runners import CommandRunner
from reparted.storage.exceptions import RepartedError
from reparted.storage.executor import ResizeExecutor
from reparted.storage.parted import PartedTool, read_disk_layout
from reparted.storage.planner import describe_plan, plan_resize
from reparted.storage.sizes import human_size
from reparted.storage.validation import validate_disk


def log_disk_summary(log, disk):
    for partition in disk.partitions:
        log.info(json.dumps(partition.to_dict()))
    log.info(f"Disk model: {disk.model}")
    log.info(
        f"Disk total size: {disk.size} "
        f"({disk.logical_sector_size} logical / {disk.physical_sector_size} physical)"
    )
    log.info(f"Disk flags: {disk.flags}")
    log.info(f"Partition table: {disk.table_type}")
    log.info(f"Size of partition table: {disk.table_size} (partitions: {disk.parts_size})")


def run(config, *, apply=False):
    """Parse, validate and plan; execute the plan when apply is set."""
    with operation_context("reparted", disk=config.disk) as log:
        runner = CommandRunner(log)
        tool = PartedTool(config.parted, config.disk, runner=runner, log=log)
        log.debug(f"Using {tool.version().strip()}")

        disk = read_disk_layout(tool, log=log)
        log.info(f"Loaded parted for disk {disk.path}")
        validate_disk(disk, log=log)
        log_disk_summary(log, disk)

        plan = plan_resize(disk, config.reserved, config.userdata, log=log)
        log.info(describe_plan(plan, disk))
        for bucket in ("shrink", "grow", "move"):
            for target in getattr(plan, bucket):
                log.info(
                    f"{bucket.capitalize()} {target.identity}: "
                    f"{target.actual.human_size} -> {human_size(target.spec.size_bytes)}"
                )

        if not apply:
            log.info("Dry run, not applying plan (use --apply)")
            return plan
        if not plan.has_changes and not plan.unmatched:
            log.info("Nothing to apply")
            return plan
        executor = ResizeExecutor(
            disk,
            tool,
            runner=runner,
            fsck=config.fsck,
            resize=config.resize,
            log=log,
        )
        executor.apply(plan)
        return plan


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Resize reserved partitions and let userdata absorb the difference"
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to the JSON configuration")
    parser.add_argument(
        "--apply", action="store_true", help="Execute the plan instead of only printing it"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw tool output")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()

    try:
        config = load_config(args.config)
        run(config, apply=args.apply)
    except RepartedError as error:
        log.critical("!!!FATAL!!!")
        log.critical(str(error))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

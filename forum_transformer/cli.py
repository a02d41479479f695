"""Command line interface for the forum transformer."""

import argparse
import json
import logging
import sys
from typing import Optional

from .drivers import choose_run_mode, detect_source
from .exceptions import TransformerError
from .models.entity import step_name
from .models.migration import MigrationConfig
from .orchestrator import MigrationOrchestrator
from .services.database import Database

logger = logging.getLogger(__name__)


def load_config(args) -> MigrationConfig:
    """Build the configuration from a JSON file or the environment, then apply CLI flags."""
    if getattr(args, "config", None):
        config = MigrationConfig.from_json_file(args.config)
    else:
        config = MigrationConfig.from_env()

    for name in ("source_url", "source_prefix", "target_url", "target_prefix", "state_dir"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)
    if getattr(args, "batch_size", None):
        config.batch_size = args.batch_size
    if getattr(args, "exact_copy", False):
        config.exact_copy = True
    return config


def print_settings(settings) -> None:
    print(f"Run:      {settings.run_key}")
    print(f"Source:   {settings.source_type} {settings.source_version}")
    print(f"Mode:     {settings.run_mode.value}")
    print(f"Status:   {settings.status.value}")
    print(f"Position: step {settings.step} ({step_name(settings.step)}), cursor {settings.cursor}")
    if settings.username_renames:
        print(f"Renamed:  {len(settings.username_renames)} users")
    if settings.last_message:
        print(f"Message:  {settings.last_message}")


def run_detect(args) -> int:
    """Report the source product and the run mode the destination allows."""
    config = load_config(args)
    source = Database(config.source_url, config.source_prefix)
    try:
        driver, detection = detect_source(source)
    finally:
        source.dispose()
    print(f"Source: {driver.type_name} {driver.format_version(detection.version)}")

    if config.target_url:
        destination = Database(config.target_url, config.target_prefix)
        try:
            mode = choose_run_mode(destination, driver.type_name, config.exact_copy)
        finally:
            destination.dispose()
        print(f"Mode:   {mode.value}")
    return 0


def run_start(args) -> int:
    config = load_config(args)
    settings = MigrationOrchestrator(config).start()
    print_settings(settings)
    return 0


def run_step(args) -> int:
    config = load_config(args)
    result = MigrationOrchestrator(config).resume_step(args.run_key)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def run_all(args) -> int:
    """Start a run unless a key is given, then step it until done."""
    config = load_config(args)
    orchestrator = MigrationOrchestrator(config)
    run_key = args.run_key or orchestrator.start().run_key
    settings = orchestrator.run(run_key, args.max_steps)
    print_settings(settings)
    return 0


def run_status(args) -> int:
    config = load_config(args)
    print_settings(MigrationOrchestrator(config).status(args.run_key))
    return 0


def run_cleanup(args) -> int:
    config = load_config(args)
    if MigrationOrchestrator(config).cleanup(args.run_key):
        print(f"Run {args.run_key} removed")
    return 0


def add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to migration config JSON file")
    parser.add_argument("--source-url", dest="source_url", help="SQLAlchemy URL of the source board")
    parser.add_argument("--source-prefix", dest="source_prefix", help="Table prefix of the source board")
    parser.add_argument("--target-url", dest="target_url", help="SQLAlchemy URL of the ForkBB destination")
    parser.add_argument("--target-prefix", dest="target_prefix", help="Table prefix of the destination")
    parser.add_argument("--state-dir", dest="state_dir", help="Directory for run settings")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Forum Transformer - Move ForkBB, FluxBB_by_Visman and PunBB boards into ForkBB"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    detect_parser = subparsers.add_parser("detect", help="Detect the source product")
    add_connection_args(detect_parser)
    detect_parser.add_argument("--exact-copy", action="store_true", help="Request an exact copy")

    start_parser = subparsers.add_parser("start", help="Create a new migration run")
    add_connection_args(start_parser)
    start_parser.add_argument("--batch-size", type=int, help="Rows per step")
    start_parser.add_argument("--exact-copy", action="store_true", help="Keep source ids (ForkBB sources only)")

    step_parser = subparsers.add_parser("step", help="Execute the next step of a run")
    add_connection_args(step_parser)
    step_parser.add_argument("run_key", help="Run key")

    run_parser = subparsers.add_parser("run", help="Execute steps until the run finishes")
    add_connection_args(run_parser)
    run_parser.add_argument("run_key", nargs="?", help="Run key, a new run is started when omitted")
    run_parser.add_argument("--batch-size", type=int, help="Rows per step")
    run_parser.add_argument("--exact-copy", action="store_true", help="Keep source ids (ForkBB sources only)")
    run_parser.add_argument("--max-steps", type=int, help="Stop after this many steps")

    status_parser = subparsers.add_parser("status", help="Show the position of a run")
    add_connection_args(status_parser)
    status_parser.add_argument("run_key", help="Run key")

    cleanup_parser = subparsers.add_parser("cleanup", help="Drop tracking columns and forget a run")
    add_connection_args(cleanup_parser)
    cleanup_parser.add_argument("run_key", help="Run key")

    return parser


COMMANDS = {
    "detect": run_detect,
    "start": run_start,
    "step": run_step,
    "run": run_all,
    "status": run_status,
    "cleanup": run_cleanup,
}


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except TransformerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 2
    except ValueError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())

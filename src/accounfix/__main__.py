"""Entry point for running AccounFix.

This module provides the main entry point for AccounFix.
It handles:
- Configuration loading
- Logging setup with secret sanitization
- Health checks and dry runs
- Wiring the store, AI gateway and ERP adapter into the shell
"""

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from accounfix._version import __version__

if TYPE_CHECKING:
    from accounfix.config.schema import AccountFixConfig
    from accounfix.shell import Shell

log = structlog.get_logger()


def setup_logging(
    debug: bool = False,
    log_format: str = "console",
    level: str = "WARNING",
    file_path: Path | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Force debug logging if True
        log_format: Output format ("json" or "console")
        level: Log level used when debug is off
        file_path: Path to log file (if file logging enabled)
        file_enabled: Whether to enable file logging
    """
    from accounfix.utils.logging import LogFormat, LogLevel, configure_logging

    configure_logging(
        level=LogLevel.DEBUG if debug else LogLevel(level),
        log_format=LogFormat(log_format.lower()),
        file_path=file_path,
        file_enabled=file_enabled,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed argument namespace
    """
    parser = argparse.ArgumentParser(
        prog="accounfix",
        description="AccounFix - track accounting errors with AI triage and ERP sync",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in settings)",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print the configuration without starting a session",
    )

    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default=None,
        help="Log output format (default: from configuration)",
    )

    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check and exit",
    )

    parser.add_argument(
        "--no-demo-data",
        action="store_true",
        help="Start with an empty error list",
    )

    return parser.parse_args(argv)


def masked_config(config: "AccountFixConfig") -> dict[str, object]:
    """Configuration as a JSON-ready dict with the API key masked."""
    from accounfix.utils.security import mask_config_value

    data = config.model_dump(mode="json")
    data["ai"]["api_key"] = mask_config_value("api_key", config.ai.api_key)
    return data


def build_shell(config: "AccountFixConfig", seed_demo_records: bool) -> "Shell":
    """Wire the store, AI gateway and ERP adapter into a shell."""
    from accounfix.adapters.ai.anthropic import AnthropicGateway
    from accounfix.adapters.erp.simulated import SimulatedDynamicsAdapter
    from accounfix.core.demo import demo_records
    from accounfix.core.store import ErrorStore
    from accounfix.core.workbench import Workbench
    from accounfix.shell import Shell

    seed = demo_records(datetime.now(UTC)) if seed_demo_records else []
    store = ErrorStore(seed, default_reporter=config.workbench.reporter)
    gateway = AnthropicGateway(config.ai, retry=config.retry)
    erp = SimulatedDynamicsAdapter(config.erp)
    workbench = Workbench(store, gateway, erp, config.workbench, notify=print)
    return Shell(workbench)


async def run_session(
    config_path: Path | None,
    debug: bool = False,
    log_format: str | None = None,
    dry_run: bool = False,
    health_check: bool = False,
    no_demo_data: bool = False,
) -> int:
    """Run an AccounFix session.

    Args:
        config_path: Path to configuration file, or None for defaults
        debug: Force debug logging
        log_format: Log format overriding the configuration
        dry_run: If True, only validate config without starting
        health_check: If True, run health check and exit
        no_demo_data: If True, start without the sample records

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    log.info(
        "starting_accounfix",
        version=__version__,
        config_path=str(config_path) if config_path else None,
    )

    from accounfix.config.loader import load_config
    from accounfix.utils.logging import LogEventNames

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        log.error("configuration_file_not_found", path=str(config_path), error=str(e))
        print(f"Configuration file not found: {config_path}", file=sys.stderr)
        return 1
    except (ValueError, ValidationError) as e:
        log.error("configuration_invalid", error=str(e))
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    log.info("configuration_loaded")

    # Reconfigure logging from config file settings
    setup_logging(
        debug=debug,
        log_format=log_format or config.logging.format,
        level=config.logging.level,
        file_path=config.logging.file.path if config.logging.file.enabled else None,
        file_enabled=config.logging.file.enabled,
    )

    if dry_run:
        print(json.dumps(masked_config(config), indent=2))
        log.info("dry_run_mode_config_valid")
        return 0

    if health_check:
        from accounfix.utils.health import HealthChecker

        checker = HealthChecker(config)
        report = await checker.run_all_checks()
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.healthy else 1

    shell = build_shell(
        config,
        seed_demo_records=config.workbench.seed_demo_records and not no_demo_data,
    )
    log.info(LogEventNames.SESSION_STARTED, model=config.ai.model)
    await shell.run()
    log.info(LogEventNames.SESSION_ENDED)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Setup logging with CLI options until the configuration is loaded
    setup_logging(debug=args.debug, log_format=args.format or "console")

    try:
        return asyncio.run(
            run_session(
                args.config,
                debug=args.debug,
                log_format=args.format,
                dry_run=args.dry_run,
                health_check=args.health_check,
                no_demo_data=args.no_demo_data,
            )
        )
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())

"""Entry point for running mqtt2cmd as a module.

Usage:
    python -m mqtt2cmd                    # Search default config locations
    python -m mqtt2cmd -c /path/to/config.yaml
    python -m mqtt2cmd --help
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from . import __version__
from .app import run_app
from .config import AppConfig, MQTTConfig, create_default_config, print_env_help, get_config
from .errors import BusConnectionError, ConfigError

DEFAULT_CONFIG_PATHS = [
    "/etc/mqtt2cmd/config.yaml",
    "/config/config.yaml",  # Docker default
    "config.yaml",
]


def build_parser() -> argparse.ArgumentParser:
    """Create the command line parser."""
    parser = argparse.ArgumentParser(
        prog="mqtt2cmd",
        description="Control shell-command driven switches and displays over MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mqtt2cmd -c /etc/mqtt2cmd/config.yaml
  mqtt2cmd -c config.yaml -b 192.168.1.100 -l /var/log/mqtt2cmd.log
  mqtt2cmd --generate-config > config.yaml
        """,
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "-b", "--mqtt-host",
        default=None,
        help="MQTT broker host or URL such as tcp://host:1883 (overrides the configuration file)",
    )
    parser.add_argument(
        "-l", "--log-file",
        default=None,
        help="Log file path (overrides the configuration file)",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Print an example configuration and exit",
    )
    parser.add_argument(
        "--env-help",
        action="store_true",
        help="Print environment variable help and exit",
    )
    return parser


def find_config(config_path: Optional[str]) -> Optional[str]:
    """Return the given config path, or the first existing default path."""
    if config_path:
        return config_path
    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return path
    return None


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Apply command line overrides to a loaded configuration."""
    if args.mqtt_host:
        try:
            mqtt = MQTTConfig(**{**config.mqtt.model_dump(), "host": args.mqtt_host})
        except ValidationError as e:
            raise ConfigError(f"Invalid --mqtt-host {args.mqtt_host!r}: {e}") from e
        config = config.model_copy(update={"mqtt": mqtt})
    if args.log_file:
        logging_config = config.logging.model_copy(update={"file": Path(args.log_file)})
        config = config.model_copy(update={"logging": logging_config})
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = build_parser().parse_args(argv)

    if args.generate_config:
        print(create_default_config())
        return 0

    if args.env_help:
        print(print_env_help())
        return 0

    config_path = find_config(args.config)
    if not config_path:
        print("Error: No configuration found.", file=sys.stderr)
        print("\nOptions:", file=sys.stderr)
        print("  1. Create a config file: mqtt2cmd --generate-config > config.yaml", file=sys.stderr)
        print("  2. Specify config path: mqtt2cmd -c /path/to/config.yaml", file=sys.stderr)
        print("\nFor environment variable help: mqtt2cmd --env-help", file=sys.stderr)
        return 1

    try:
        config = apply_overrides(get_config(config_path), args)
    except (FileNotFoundError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Using configuration file: {config_path}")

    try:
        asyncio.run(run_app(config))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    except BusConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

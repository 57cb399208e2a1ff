"""VoxRelay CLI entry point.

Usage:
    voxrelay run [--config relay.yaml]
    voxrelay check [--config relay.yaml]
    voxrelay init [--output relay.yaml]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from voxrelay.config import ConfigError, RelayConfig, load_config


def _load(args: argparse.Namespace) -> RelayConfig:
    try:
        config = load_config(args.config)
        config.validate_for_run()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)
    return config


def cmd_run(args: argparse.Namespace) -> None:
    """Run the VoxRelay server."""
    config = _load(args)

    # Configure logging
    logger.remove()
    logger.add(sys.stderr, level=config.logging.level)

    logger.info(f"VoxRelay starting with config: {args.config or '<defaults>'}")
    logger.info(f"AI API key: {config.ai.masked_api_key}")
    logger.info(
        f"Listening on: ws://{config.listener.host}:{config.listener.port}"
        f"{config.listener.path}"
    )

    # Use the FastAPI server when installed, else the plain WebSocket server
    from voxrelay import server

    if server._fastapi_available():
        server.run_server(config)
    else:
        from voxrelay.relay import VoxRelay
        logger.info("fastapi/uvicorn not installed, serving with plain websockets")
        relay = VoxRelay(config)
        relay.run()


def cmd_check(args: argparse.Namespace) -> None:
    """Validate the configuration and print the effective settings."""
    config = _load(args)
    print("\nVoxRelay configuration OK")
    print("=" * 40)
    print(f"  listen     ws://{config.listener.host}:{config.listener.port}{config.listener.path}")
    print(f"  endpoint   {config.ai.endpoint}")
    print(f"  api key    {config.ai.masked_api_key}")
    print(f"  voice      {config.session.voice}")
    print(f"  greeting   {'on' if config.greeting.enabled else 'off'}")
    print()


def cmd_init(args: argparse.Namespace) -> None:
    """Generate a starter configuration file."""
    output = Path(args.output)

    if output.exists() and not args.force:
        logger.error(f"File already exists: {output}. Use --force to overwrite.")
        sys.exit(1)

    from voxrelay.config import DEFAULT_CONFIG_YAML

    output.write_text(DEFAULT_CONFIG_YAML)
    print(f"Configuration written to: {output}")
    print(f"\nEdit the file and run: voxrelay run --config {output}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="voxrelay",
        description="VoxRelay - Twilio Media Streams to realtime speech AI relay",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # `voxrelay run`
    run_parser = subparsers.add_parser("run", help="Run the relay server")
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to a relay YAML config file (default: built-in defaults + environment)",
    )

    # `voxrelay check`
    check_parser = subparsers.add_parser("check", help="Validate the configuration")
    check_parser.add_argument("--config", "-c", default=None, help="Path to a relay YAML config file")

    # `voxrelay init`
    init_parser = subparsers.add_parser("init", help="Generate a starter config file")
    init_parser.add_argument(
        "--output", "-o",
        default="relay.yaml",
        help="Output file path (default: relay.yaml)",
    )
    init_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing file",
    )

    args = parser.parse_args(argv)

    if args.command == "run":
        cmd_run(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "init":
        cmd_init(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()

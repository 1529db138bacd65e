"""Command-line launcher for the dt-explorer control plane."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from dtcontrol.app import Application, SignalHandler
from dtcontrol.config import Settings, get_settings
from dtcontrol.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog='dt-explorer-control',
        description='Launch and supervise the dt API server and bridge front-end requests to it',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dt-explorer-control                       # Start the API server and the front-end channel
  dt-explorer-control --dev                 # Use an API server you started yourself
  dt-explorer-control --data-dir /srv/dt    # Keep data, logs and the lock file elsewhere
        """
    )
    parser.add_argument(
        '--dev',
        action='store_true',
        default=None,
        help='Development mode: do not spawn the API server'
    )
    parser.add_argument(
        '--data-dir',
        type=Path,
        default=None,
        help='Root directory for data, logs and the lock file'
    )
    parser.add_argument(
        '--command',
        type=Path,
        default=None,
        help='Path to the dt executable (default: next to the interpreter)'
    )
    parser.add_argument(
        '--ip',
        type=str,
        default=None,
        help='IP address the API server listens on (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='API server port (default: 55556)'
    )
    parser.add_argument(
        '--channel-port',
        type=int,
        default=None,
        help='Port of the local front-end channel (default: 55557)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )
    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    return get_settings(
        dev_mode=args.dev,
        data_root=args.data_dir,
        backend_command=args.command,
        api_ip=args.ip,
        api_port=args.port,
        channel_port=args.channel_port,
    )


def _start_info(settings: Settings) -> str:
    info = {
        'dev': settings.dev_mode,
        'cmd': str(settings.backend_command),
        'installDir': str(settings.install_dir),
        'dataDir': str(settings.data_dir),
        'logPath': str(settings.api_log_path),
        'etcPath': str(settings.etc_dir),
        'uri': settings.api_uri,
        'pidPath': str(settings.lock_path),
        'channel': f'{settings.channel_host}:{settings.channel_port}',
    }
    return f"Initializing dt-explorer control plane cwd: {Path.cwd()} config: {json.dumps(info, indent=2)}"


async def run(settings: Settings) -> int:
    app = Application(settings)
    handler = SignalHandler(app)
    handler.setup()
    try:
        return await app.run()
    finally:
        handler.restore()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = create_argument_parser().parse_args(argv)
    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    # Console first in case the log file cannot be configured
    start_info = _start_info(settings)
    print(start_info)
    configure_logging(settings, verbose=args.verbose)
    logger.debug(start_info)

    try:
        return asyncio.run(run(settings))
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

"""
CLI for Browser Launcher.

Provides the command-line interface using argparse.
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from rich.console import Console

from . import __version__
from .config import DEFAULTS, LauncherConfig
from .config_guard import check_browser_config
from .coordinator import LaunchCoordinator
from .errors import LaunchError
from .logger import ConsoleReporter, setup_logging
from .types import LaunchOptions


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="browser-launcher",
        description="Discover locally installed browsers and launch them.",
        epilog="""
Examples:
  # Check browsers.json and clear it if it is broken or old
  browser-launcher check

  # List the browsers that were found
  browser-launcher list

  # Open a page in Firefox with a throwaway profile and a proxy
  browser-launcher launch https://example.com --browser firefox --proxy 127.0.0.1:8000

  # Pass extra flags to the browser
  browser-launcher launch https://example.com --browser chrome --arg=--incognito
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Browser Launcher {__version__}",
    )

    parser.add_argument(
        "--config-dir",
        type=str,
        default=None,
        help=f"Directory holding browsers.json (default: {DEFAULTS['config_dir']})",
    )

    parser.add_argument(
        "--stale-hours",
        type=float,
        default=None,
        help=f"Rebuild browsers.json once it is this old (default: {DEFAULTS['stale_after_hours']:g})",
    )

    parser.add_argument(
        "--no-playwright",
        action="store_true",
        default=False,
        help="Do not report browsers installed by Playwright",
    )

    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "check",
        help="Validate browsers.json, clearing it if corrupt or outdated",
    )

    list_parser = subparsers.add_parser(
        "list",
        help="List available browsers",
    )

    list_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output browsers as JSON",
    )

    launch_parser = subparsers.add_parser(
        "launch",
        help="Launch a browser at a URL",
    )

    launch_parser.add_argument(
        "url",
        type=str,
        help="URL to open",
    )

    launch_parser.add_argument(
        "--browser",
        type=str,
        default=None,
        help="Browser name (default: first browser found)",
    )

    launch_parser.add_argument(
        "--browser-version",
        dest="browser_version",
        type=str,
        default=None,
        help="Required browser version prefix",
    )

    launch_parser.add_argument(
        "--profile",
        type=str,
        default=None,
        help="Profile directory to use",
    )

    launch_parser.add_argument(
        "--proxy",
        type=str,
        default=None,
        help="HTTP(S) proxy as host:port",
    )

    launch_parser.add_argument(
        "--headless",
        action="store_true",
        default=False,
        help="Run the browser headless",
    )

    launch_parser.add_argument(
        "--detached",
        action="store_true",
        default=False,
        help="Start the browser in its own session so it outlives this command",
    )

    launch_parser.add_argument(
        "--skip-defaults",
        action="store_true",
        default=False,
        help="Do not add the default command line flags",
    )

    launch_parser.add_argument(
        "--arg",
        dest="args",
        action="append",
        default=[],
        help="Extra browser argument, e.g. --arg=--incognito (repeatable)",
    )

    launch_parser.add_argument(
        "--wait",
        action="store_true",
        default=False,
        help="Wait for the browser to exit",
    )

    launch_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output launch details as JSON",
    )

    return parser


async def check_command(config: LauncherConfig, reporter: ConsoleReporter) -> int:
    """Execute the check command."""
    condition = await check_browser_config(config.config_dir, max_age=config.stale_after)
    reporter.print_condition(condition, str(config.browser_config_path))
    return 0


async def list_command(
    args: argparse.Namespace,
    config: LauncherConfig,
    reporter: ConsoleReporter,
) -> int:
    """Execute the list command."""
    await check_browser_config(config.config_dir, max_age=config.stale_after)
    coordinator = LaunchCoordinator.from_config(config)

    try:
        browsers = await coordinator.list_available_browsers(config.config_dir)
    except LaunchError as e:
        reporter.print_error(str(e))
        return 1

    if args.json:
        print(json.dumps([b.model_dump() for b in browsers], indent=2))
    else:
        reporter.print_browsers(browsers)
    return 0


async def launch_command(
    args: argparse.Namespace,
    config: LauncherConfig,
    reporter: ConsoleReporter,
) -> int:
    """Execute the launch command."""
    try:
        options = LaunchOptions(
            browser=args.browser,
            version=args.browser_version,
            profile=args.profile,
            proxy=args.proxy,
            headless=args.headless,
            detached=args.detached,
            skip_defaults=args.skip_defaults,
            args=args.args,
        )
    except ValueError as e:
        reporter.print_error(str(e))
        return 2

    await check_browser_config(config.config_dir, max_age=config.stale_after)
    coordinator = LaunchCoordinator.from_config(config)

    try:
        instance = await coordinator.launch_browser(args.url, options, config.config_dir)
    except LaunchError as e:
        reporter.print_error(str(e))
        return 1

    if args.json:
        print(json.dumps(instance.to_dict()))
    else:
        reporter.print_launched(instance, args.url)

    if args.wait:
        returncode = await instance.wait()
        # Killed by a signal: report it the way shells do
        return 128 - returncode if returncode < 0 else returncode
    return 0


async def run(args: argparse.Namespace, config: LauncherConfig) -> int:
    """Dispatch a parsed command."""
    reporter = ConsoleReporter()
    config.ensure_directories()

    if args.command == "check":
        return await check_command(config, reporter)
    if args.command == "list":
        return await list_command(args, config, reporter)
    if args.command == "launch":
        return await launch_command(args, config, reporter)
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    console = Console()
    try:
        config = LauncherConfig.from_cli_args(
            config_dir=args.config_dir,
            stale_hours=args.stale_hours,
            no_playwright=args.no_playwright,
            debug=args.debug,
        )
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration: {e}[/bold red]")
        return 2

    setup_logging(config.debug)

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())

import argparse
import logging
import sys
from typing import Callable, List, Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import DashboardConfig, load_config
from .exceptions import XdpStatsError
from .Monitoring import Dashboard
from .PinnedMap import CounterTable, PinnedMap

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xdpstats",
        description="Live packet and bit rates per XDP action, read from a pinned per-CPU stats map.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    stats = subparsers.add_parser("stats", help="Show the live stats dashboard (press q to quit).")
    stats.add_argument("-v", "--verbose", action="store_true", help="Print the map metadata before starting.")
    stats.add_argument("--pin-dir", metavar="DIR", help="BPF filesystem directory holding the pinned map.")
    stats.add_argument("--map-name", metavar="NAME", help="Name of the pinned stats map.")
    stats.add_argument("--interval", type=float, metavar="SECONDS", help="Sampling interval (default: 1).")
    stats.add_argument("--config", metavar="FILE", help="JSON file with dashboard settings.")
    stats.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level for diagnostic output (default: INFO, DEBUG with --verbose).",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> DashboardConfig:
    """
    Merges the config file, if any, with the command line flags. Flags win.
    Raises:
        ConfigError: If the file is invalid or the resulting interval is not positive.
    """
    config = load_config(args.config)
    overrides = {
        "pin_dir": args.pin_dir,
        "map_name": args.map_name,
        "interval": args.interval,
        "verbose": True if args.verbose else None,
    }
    values = {name: getattr(config, name) for name in ("pin_dir", "map_name", "interval", "verbose")}
    values.update({name: value for name, value in overrides.items() if value is not None})
    return DashboardConfig(**values)


def run_stats(
    config: DashboardConfig,
    console: Console,
    open_table: Callable[[str], CounterTable] = lambda path: PinnedMap(path).open(),
) -> int:
    """
    Opens the pinned map and runs the dashboard on it until the user quits.

    Args:
        config (DashboardConfig): The resolved settings.
        console (Console): Console used for the metadata line and the live screen.
        open_table (Callable[[str], CounterTable], optional): Opens the table at a path.

    Returns:
        int: 0 when the user quit, 1 when the map could not be opened or read.
    """
    logger.info("Loading pinned map at %s", config.map_path)
    try:
        with open_table(config.map_path) as table:
            info = table.info()
            console.print("Collecting stats from BPF map", markup=False, highlight=False)
            if config.verbose:
                console.print(info.describe(), markup=False, highlight=False)
            Dashboard(table, interval=config.interval, console=console).run()
    except XdpStatsError as e:
        logger.error("%s", e)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    console = Console()
    level = args.log_level or ("DEBUG" if args.verbose else "INFO")
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    try:
        config = resolve_config(args)
    except XdpStatsError as e:
        logger.error("%s", e)
        return 1
    return run_stats(config, console)


if __name__ == "__main__":
    sys.exit(main())

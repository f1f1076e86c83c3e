"""Command line entry point."""

from __future__ import annotations

import argparse
import sys

from loguru import logger
from rich.console import Console

from gpudiag import __version__
from gpudiag.config import LOG_LEVELS, Settings
from gpudiag.errors import InitializationFailure, UnsupportedFeature
from gpudiag.logging_config import configure_logging
from gpudiag.render import CONSOLE_WIDTH, Renderer
from gpudiag.report import create_builder


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="gpudiag",
        description="Snapshot of GPU, host and GPU process state",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gpudiag
  gpudiag --verbose --cpu
  gpudiag --all
""",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show every GPU column and longer commands",
    )
    parser.add_argument(
        "-c",
        "--cpu",
        action="store_true",
        help="Show host stats and the processes running on the GPUs",
    )
    parser.add_argument("-d", "--disk", action="store_true", help="Show disk stats (unsupported)")
    parser.add_argument(
        "-n", "--network", action="store_true", help="Show network stats (unsupported)"
    )
    parser.add_argument(
        "-b",
        "--bottleneck",
        action="store_true",
        help="Explain why GPUs are throttling",
    )
    parser.add_argument(
        "-a",
        "--all",
        action="store_true",
        help="Same as --cpu --bottleneck",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Collect host stats concurrently with GPU stats",
    )
    parser.add_argument("--log-level", type=str.upper, default=None, choices=LOG_LEVELS)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def check_supported(args: argparse.Namespace) -> None:
    """Reject sections that are not implemented."""
    for flag in ("disk", "network"):
        if getattr(args, flag):
            message = f"--{flag} stats are not implemented"
            raise UnsupportedFeature(message)


def main(argv: list[str] | None = None) -> int:
    """Collect one report and print it; return the process exit status."""
    args = parse_args(argv)
    settings = Settings.from_env()
    configure_logging(args.log_level or settings.log_level, settings.log_file)

    try:
        check_supported(args)
        report = create_builder(settings, parallel=args.parallel).build()
    except (InitializationFailure, UnsupportedFeature) as exc:
        logger.error("{}", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    renderer = Renderer(
        verbose=args.verbose,
        show_processes=args.cpu or args.all,
        show_bottlenecks=args.bottleneck or args.all,
    )
    renderer.print(report, Console(width=CONSOLE_WIDTH, highlight=False, emoji=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

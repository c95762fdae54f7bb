"""Entry point for the machine-report command line tool."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional, Union

from rich.console import Console
from rich.text import Text

from . import __version__
from .config import Config
from .errors import FatalStartupError
from .report import render
from .system_state import gather_snapshot

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    config = Config.from_args(args)

    try:
        snapshot = gather_snapshot(fast=config.fast)
        _write(render(snapshot, config), config)
    except FatalStartupError as exc:
        print(f"machine-report: {exc}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="machine-report",
        description="Print a one-shot report of this machine's OS, hardware, network and session.",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--ascii", action="store_true", help="draw the table with plain ASCII characters")
    output.add_argument("--json", action="store_true", help="print the report as JSON instead of a table")
    parser.add_argument("-t", "--title", help="replace the title at the top of the table")
    parser.add_argument("--no-color", action="store_true", help="do not color labels and bars")
    parser.add_argument("--fast", action="store_true", help="skip slow probes (GPU, hypervisor, login history, ...)")
    parser.add_argument("--debug", action="store_true", help="log every probe to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _write(document: Union[Text, str], config: Config) -> None:
    """Write the whole document to stdout in one go."""
    try:
        if isinstance(document, str):
            sys.stdout.write(document + "\n")
            sys.stdout.flush()
            return
        console = Console(
            no_color=not config.color or "NO_COLOR" in os.environ,
            highlight=False,
            soft_wrap=True,
        )
        console.print(document)
    except UnicodeEncodeError as exc:
        # rich appends a multi-line hint to the reason, so keep only the codec
        raise FatalStartupError(f"cannot write report: stdout encoding {exc.encoding} cannot show it, try --ascii") from exc
    except OSError as exc:
        raise FatalStartupError(f"cannot write report: {exc}") from exc


if __name__ == "__main__":
    sys.exit(main())

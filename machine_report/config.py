"""Per-invocation settings, built once from the command line."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_TITLE = "MACHINE REPORT"
DEFAULT_SUBTITLE = "SYSTEM SNAPSHOT"


class OutputMode(Enum):
    TABLE = "table"
    ASCII = "ascii"
    JSON = "json"


@dataclass(frozen=True)
class Config:
    mode: OutputMode = OutputMode.TABLE
    title: Optional[str] = None
    subtitle: Optional[str] = None
    color: bool = True
    fast: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Config":
        if args.json:
            mode = OutputMode.JSON
        elif args.ascii:
            mode = OutputMode.ASCII
        else:
            mode = OutputMode.TABLE
        return cls(
            mode=mode,
            title=args.title,
            color=not args.no_color,
            fast=args.fast,
        )

    @property
    def ascii(self) -> bool:
        return self.mode is OutputMode.ASCII

    @property
    def title_text(self) -> str:
        return self.title or DEFAULT_TITLE

    @property
    def subtitle_text(self) -> str:
        return self.subtitle or DEFAULT_SUBTITLE

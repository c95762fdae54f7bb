"""Provider chains: ordered acquisition strategies for a single fact."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generic, Iterable, List, Mapping, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SKIP_ALL = "*"
COMMAND_TIMEOUT = 5.0


@dataclass(frozen=True)
class Field(Generic[T]):
    value: T
    source: str


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    probe: Callable[["Host"], Optional[T]]


class Host:
    """Read-only view of the machine a strategy probes.

    Every external command, file read and environment lookup goes through
    this class, so tests can replace it with canned output.
    """

    def __init__(
        self,
        system: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        timeout: float = COMMAND_TIMEOUT,
    ) -> None:
        self.system = system or current_platform()
        self._environ = os.environ if environ is None else environ
        self._timeout = timeout

    def run(self, *argv: str, timeout: Optional[float] = None) -> Optional[str]:
        """Run a command and return its stdout, or None if it failed in any way."""
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout or self._timeout,
            )
        except FileNotFoundError:
            logger.debug("%s not installed", argv[0])
            return None
        except subprocess.TimeoutExpired:
            logger.debug("%s timed out after %ss", argv[0], timeout or self._timeout)
            return None
        except OSError as exc:
            logger.debug("%s could not be started: %s", argv[0], exc)
            return None
        if result.returncode != 0:
            logger.debug("%s exited with %s", argv[0], result.returncode)
            return None
        return result.stdout

    def powershell(self, command: str) -> Optional[str]:
        return self.run("powershell", "-NoProfile", "-Command", command)

    def read_text(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(errors="replace")
        except OSError:
            return None

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def registry_value(self, key: str, name: str) -> Optional[str]:
        """Read a value under HKEY_LOCAL_MACHINE; None off Windows or when missing."""
        try:
            import winreg
        except ImportError:
            return None
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key) as handle:
                value, _ = winreg.QueryValueEx(handle, name)
        except OSError:
            return None
        return str(value)

    def registry_subkeys(self, key: str) -> List[str]:
        try:
            import winreg
        except ImportError:
            return []
        names: List[str] = []
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key) as handle:
                index = 0
                while True:
                    try:
                        names.append(winreg.EnumKey(handle, index))
                    except OSError:
                        break
                    index += 1
        except OSError:
            return []
        return names

    def getenv(self, name: str) -> Optional[str]:
        value = self._environ.get(name)
        return value if value else None

    def which(self, name: str) -> bool:
        return shutil.which(name) is not None


class ProviderChain(Generic[T]):
    """An ordered list of strategies for one field, tried until one succeeds."""

    def __init__(self, field_name: str, strategies: Sequence[Strategy[T]]) -> None:
        self.field = field_name
        self.strategies = tuple(strategies)

    @property
    def names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    def resolve(self, host: Host, skip: Iterable[str] = ()) -> Optional[Field[T]]:
        """Return the first present value, or None once the chain is exhausted."""
        skipped = frozenset(skip)
        if SKIP_ALL in skipped:
            logger.debug("%s: skipped", self.field)
            return None
        for strategy in self.strategies:
            if strategy.name in skipped:
                logger.debug("%s: strategy %s skipped", self.field, strategy.name)
                continue
            try:
                value = strategy.probe(host)
            except Exception as exc:
                logger.debug("%s: strategy %s failed: %s", self.field, strategy.name, exc)
                continue
            if _is_present(value):
                return Field(value=value, source=strategy.name)
            logger.debug("%s: strategy %s found nothing", self.field, strategy.name)
        return None


@dataclass(frozen=True)
class CollectContext:
    """What a collector needs: the host to probe and the strategies to skip."""

    host: Host
    skips: Mapping[str, frozenset] = field(default_factory=dict)

    @property
    def system(self) -> str:
        return self.host.system

    def resolve(self, chain: ProviderChain[T]) -> Optional[Field[T]]:
        return chain.resolve(self.host, self.skips.get(chain.field, frozenset()))

    def is_skipped(self, field_name: str) -> bool:
        return SKIP_ALL in self.skips.get(field_name, frozenset())


class Sources(dict):
    """Field name to strategy name, filled in as a collector resolves chains."""

    def take(self, name: str, resolved: Optional[Field[T]]) -> Optional[T]:
        if resolved is None:
            return None
        self[name] = resolved.source
        return resolved.value


def current_platform() -> str:
    system = platform.system().lower()
    if system.startswith(("cygwin", "msys", "mingw")):
        return "windows"
    return system


def constant(name: str, value: T) -> Strategy[T]:
    return Strategy(name, lambda host: value)


def first_line(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return None


def unique(items: Iterable[str], limit: Optional[int] = None) -> List[str]:
    """De-duplicate keeping first-seen order, optionally capped."""
    seen: List[str] = []
    for item in items:
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
            if limit is not None and len(seen) >= limit:
                break
    return seen


def usable_ipv4(address: Optional[str]) -> bool:
    if not address:
        return False
    parts = address.split(".")
    if len(parts) != 4 or not all(part.isdigit() and int(part) < 256 for part in parts):
        return False
    return not address.startswith(("127.", "169.254.", "0."))


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) > 0
    return True

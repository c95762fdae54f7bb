"""Physical memory and swap."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, NamedTuple, Optional

import psutil

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy


class MemoryUsage(NamedTuple):
    total: int
    used: int
    available: int


@dataclass(frozen=True)
class MemoryPartial:
    total_bytes: Optional[int] = None
    used_bytes: Optional[int] = None
    available_bytes: Optional[int] = None
    swap_total_bytes: Optional[int] = None
    swap_used_bytes: Optional[int] = None
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> MemoryPartial:
    sources = Sources()
    physical = sources.take("memory.physical", ctx.resolve(physical_chain(ctx.system)))
    swap = sources.take("memory.swap", ctx.resolve(swap_chain(ctx.system)))
    return MemoryPartial(
        total_bytes=physical.total if physical else None,
        used_bytes=physical.used if physical else None,
        available_bytes=physical.available if physical else None,
        swap_total_bytes=swap.total if swap else None,
        swap_used_bytes=swap.used if swap else None,
        sources=dict(sources),
    )


def physical_chain(system: str) -> ProviderChain[MemoryUsage]:
    strategies = [Strategy("psutil.virtual_memory", _psutil_physical)]
    if system == "linux":
        strategies.append(Strategy("/proc/meminfo", lambda host: _meminfo_usage(host, "MemTotal", "MemAvailable")))
    return ProviderChain("memory.physical", strategies)


def swap_chain(system: str) -> ProviderChain[MemoryUsage]:
    strategies = [Strategy("psutil.swap_memory", _psutil_swap)]
    if system == "linux":
        strategies.append(Strategy("/proc/meminfo", lambda host: _meminfo_usage(host, "SwapTotal", "SwapFree")))
    return ProviderChain("memory.swap", strategies)


def parse_meminfo(text: str) -> Dict[str, int]:
    """``/proc/meminfo`` values in bytes (the file reports kB)."""
    values: Dict[str, int] = {}
    for line in text.splitlines():
        name, sep, rest = line.partition(":")
        parts = rest.split()
        if not sep or not parts or not parts[0].isdigit():
            continue
        multiplier = 1024 if len(parts) > 1 and parts[1].lower() == "kb" else 1
        values[name.strip()] = int(parts[0]) * multiplier
    return values


def _psutil_physical(host: Host) -> Optional[MemoryUsage]:
    memory = psutil.virtual_memory()
    if not memory.total:
        return None
    # total - available matches what free(1) and Task Manager call "in use".
    used = max(memory.total - memory.available, 0)
    return MemoryUsage(total=memory.total, used=used, available=memory.available)


def _psutil_swap(host: Host) -> Optional[MemoryUsage]:
    swap = psutil.swap_memory()
    return MemoryUsage(total=swap.total, used=swap.used, available=swap.free)


def _meminfo_usage(host: Host, total_key: str, free_key: str) -> Optional[MemoryUsage]:
    text = host.read_text("/proc/meminfo")
    if not text:
        return None
    values = parse_meminfo(text)
    if total_key not in values or free_key not in values:
        return None
    total = values[total_key]
    free = min(values[free_key], total)
    return MemoryUsage(total=total, used=total - free, available=free)

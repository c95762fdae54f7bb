"""Processor facts, core counts, frequency, usage and load."""

from __future__ import annotations

import os
import platform
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

import cpuinfo
import psutil

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, constant, first_line

SAMPLE_INTERVAL = 0.2
CPU_REGISTRY_KEY = r"HARDWARE\DESCRIPTION\System\CentralProcessor\0"

Load = Tuple[float, float, float]


@dataclass(frozen=True)
class CpuPartial:
    processor: Optional[str] = None
    logical_cores: Optional[int] = None
    physical_cores: Optional[int] = None
    sockets: Optional[int] = None
    frequency_mhz: Optional[float] = None
    usage_percent: Optional[float] = None
    per_core_percent: Tuple[float, ...] = ()
    load_percent: Optional[Load] = None
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> CpuPartial:
    """Collect CPU facts; the usage sample blocks this task for SAMPLE_INTERVAL."""
    sources = Sources()
    system = ctx.system
    per_core = sources.take("cpu.usage", ctx.resolve(usage_chain())) or ()
    per_core = tuple(_clamp(value) for value in per_core)
    usage = round(sum(per_core) / len(per_core), 1) if per_core else None
    logical = sources.take("cpu.cores", ctx.resolve(cores_chain()))
    return CpuPartial(
        processor=sources.take("cpu.processor", ctx.resolve(processor_chain(system))),
        logical_cores=logical,
        physical_cores=sources.take("cpu.physical_cores", ctx.resolve(physical_cores_chain())),
        sockets=sources.take("cpu.sockets", ctx.resolve(sockets_chain(system))),
        frequency_mhz=sources.take("cpu.frequency", ctx.resolve(frequency_chain(system))),
        usage_percent=usage,
        per_core_percent=per_core,
        load_percent=sources.take("cpu.load", ctx.resolve(load_chain(system, logical, usage))),
        sources=dict(sources),
    )


def sample_usage() -> Tuple[float, ...]:
    """Two per-core readings SAMPLE_INTERVAL apart; the first only primes psutil."""
    psutil.cpu_percent(interval=None, percpu=True)
    time.sleep(SAMPLE_INTERVAL)
    return tuple(psutil.cpu_percent(interval=None, percpu=True))


def usage_chain() -> ProviderChain[Tuple[float, ...]]:
    return ProviderChain("cpu.usage", [Strategy("psutil.cpu_percent", lambda host: sample_usage())])


def cores_chain() -> ProviderChain[int]:
    return ProviderChain(
        "cpu.cores",
        [
            Strategy("psutil.cpu_count", lambda host: psutil.cpu_count(logical=True)),
            Strategy("os.cpu_count", lambda host: os.cpu_count()),
        ],
    )


def physical_cores_chain() -> ProviderChain[int]:
    return ProviderChain(
        "cpu.physical_cores",
        [Strategy("psutil.cpu_count", lambda host: psutil.cpu_count(logical=False))],
    )


def processor_chain(system: str) -> ProviderChain[str]:
    strategies = [Strategy("py-cpuinfo", lambda host: cpuinfo.get_cpu_info().get("brand_raw"))]
    if system == "linux":
        strategies += [
            Strategy("/proc/cpuinfo", lambda host: _cpuinfo_value(host, "model name", "hardware", "cpu model", "processor")),
            Strategy("lscpu", lambda host: parse_colon_field(host.run("lscpu"), "Model name")),
        ]
    elif system == "darwin":
        strategies += [
            Strategy("sysctl machdep.cpu.brand_string", lambda host: first_line(host.run("sysctl", "-n", "machdep.cpu.brand_string"))),
        ]
    elif system == "windows":
        strategies += [
            Strategy("registry ProcessorNameString", lambda host: host.registry_value(CPU_REGISTRY_KEY, "ProcessorNameString")),
            Strategy("wmic cpu", lambda host: _wmic_value(host.run("wmic", "cpu", "get", "name"))),
            Strategy("platform.processor", lambda host: platform.processor()),
        ]
    if system != "windows":
        strategies.append(Strategy("uname -p", lambda host: _known(first_line(host.run("uname", "-p")))))
    return ProviderChain("cpu.processor", [_trimmed(strategy) for strategy in strategies])


def frequency_chain(system: str) -> ProviderChain[float]:
    strategies = [Strategy("psutil.cpu_freq", _psutil_frequency)]
    if system == "linux":
        strategies.append(Strategy("/proc/cpuinfo", lambda host: _to_float(_cpuinfo_value(host, "cpu mhz"))))
    elif system == "darwin":
        strategies.append(Strategy("sysctl hw.cpufrequency", _darwin_frequency))
    elif system == "windows":
        strategies.append(Strategy("registry ~MHz", lambda host: _to_float(host.registry_value(CPU_REGISTRY_KEY, "~MHz"))))
    return ProviderChain("cpu.frequency", strategies)


def sockets_chain(system: str) -> ProviderChain[int]:
    if system == "linux":
        strategies = [Strategy("lscpu", lambda host: _to_count(parse_colon_field(host.run("lscpu"), "Socket(s)")))]
    elif system == "darwin":
        strategies = [Strategy("sysctl hw.packages", lambda host: _to_count(first_line(host.run("sysctl", "-n", "hw.packages"))))]
    elif system == "windows":
        strategies = [
            Strategy(
                "cim Win32_Processor",
                lambda host: _to_count(first_line(host.powershell("(Get-CimInstance Win32_Processor | Measure-Object).Count"))),
            )
        ]
    else:
        strategies = []
    strategies.append(constant("default", 1))
    return ProviderChain("cpu.sockets", strategies)


def load_chain(system: str, cores: Optional[int], usage: Optional[float]) -> ProviderChain[Load]:
    """Load averages as a percentage of the logical core count."""
    if system == "windows":
        strategies = [Strategy("usage sample", lambda host: (usage, usage, usage) if usage is not None else None)]
    else:
        strategies = []
        if system == "linux":
            strategies.append(Strategy("/proc/loadavg", lambda host: _as_percent(parse_loadavg(host.read_text("/proc/loadavg")), cores)))
        strategies.append(Strategy("getloadavg", lambda host: _as_percent(os.getloadavg(), cores)))
        if system == "darwin":
            strategies.append(Strategy("sysctl vm.loadavg", lambda host: _as_percent(parse_loadavg(host.run("sysctl", "-n", "vm.loadavg")), cores)))
    return ProviderChain("cpu.load", strategies)


def parse_loadavg(text: Optional[str]) -> Optional[Load]:
    """Parse ``/proc/loadavg`` or ``sysctl vm.loadavg`` (``{ 0.52 0.41 0.38 }``)."""
    if not text:
        return None
    parts = text.replace("{", " ").replace("}", " ").split()
    if len(parts) < 3:
        return None
    try:
        return float(parts[0]), float(parts[1]), float(parts[2])
    except ValueError:
        return None


def parse_colon_field(output: Optional[str], key: str) -> Optional[str]:
    """Value of the first ``key: value`` line in tool output such as lscpu."""
    if not output:
        return None
    for line in output.splitlines():
        name, sep, value = line.partition(":")
        if sep and name.strip().lower() == key.lower():
            return value.strip() or None
    return None


def _cpuinfo_value(host: Host, *keys: str) -> Optional[str]:
    text = host.read_text("/proc/cpuinfo")
    if not text:
        return None
    for key in keys:
        value = parse_colon_field(text, key)
        # "processor" is also the per-core index on x86, so digits don't count.
        if value and not value.isdigit():
            return value
    return None


def _psutil_frequency(host: Host) -> Optional[float]:
    freq = psutil.cpu_freq()
    if freq is None:
        return None
    return freq.max if freq.max else (freq.current or None)


def _darwin_frequency(host: Host) -> Optional[float]:
    hertz = _to_float(first_line(host.run("sysctl", "-n", "hw.cpufrequency")))
    return hertz / 1_000_000 if hertz else None


def _as_percent(load: Optional[Tuple[float, float, float]], cores: Optional[int]) -> Optional[Load]:
    if load is None or not cores:
        return None
    one, five, fifteen = (min(value / cores * 100.0, 100.0) for value in load)
    return one, five, fifteen


def _known(value: Optional[str]) -> Optional[str]:
    return None if value in (None, "unknown") else value


def _wmic_value(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[1] if len(lines) > 1 else None


def _trimmed(strategy: Strategy[str]) -> Strategy[str]:
    def probe(host: Host) -> Optional[str]:
        value = strategy.probe(host)
        return " ".join(value.split()) if value else None

    return Strategy(strategy.name, probe)


def _to_float(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value else None
    except ValueError:
        return None


def _to_count(value: Optional[str]) -> Optional[int]:
    try:
        count = int(value) if value else 0
    except ValueError:
        return None
    return count if count > 0 else None


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))

"""Collect the system state once and fold it into an immutable snapshot."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Sequence, Tuple

from . import fast_mode
from .collectors import (
    COLLECTORS,
    EMPTY_PARTIALS,
    CpuPartial,
    DiskPartial,
    MemoryPartial,
    NetworkPartial,
    OsPartial,
    PlatformPartial,
    SessionPartial,
    Volume,
)
from .errors import FatalStartupError
from .providers import CollectContext, Host

logger = logging.getLogger(__name__)

BARE_METAL = "Bare Metal"
ROOT_MOUNTS = ("/", "C:\\", "C:")


@dataclass(frozen=True)
class OsInfo:
    name: Optional[str] = None
    version: Optional[str] = None
    kernel: Optional[str] = None
    architecture: Optional[str] = None
    edition: Optional[str] = None
    codename: Optional[str] = None
    boot_mode: Optional[str] = None
    desktop_environment: Optional[str] = None
    display_server: Optional[str] = None


@dataclass(frozen=True)
class NetworkInfo:
    hostname: Optional[str] = None
    machine_ip: Optional[str] = None
    client_ip: Optional[str] = None
    dns_servers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CpuInfo:
    processor: Optional[str] = None
    cores: Optional[int] = None
    physical_cores: Optional[int] = None
    sockets: Optional[int] = None
    frequency_ghz: Optional[float] = None
    usage_percent: Optional[float] = None
    per_core_percent: Tuple[float, ...] = ()
    load_1m: Optional[float] = None
    load_5m: Optional[float] = None
    load_15m: Optional[float] = None
    hypervisor: Optional[str] = None
    gpus: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DiskInfo:
    mount_point: Optional[str] = None
    used_bytes: Optional[int] = None
    total_bytes: Optional[int] = None
    percent: Optional[int] = None
    zfs_health: Optional[str] = None


@dataclass(frozen=True)
class MemoryInfo:
    used_bytes: Optional[int] = None
    total_bytes: Optional[int] = None
    percent: Optional[float] = None
    swap_used_bytes: Optional[int] = None
    swap_total_bytes: Optional[int] = None


@dataclass(frozen=True)
class SessionInfo:
    username: Optional[str] = None
    last_login: Optional[str] = None
    last_login_ip: Optional[str] = None
    uptime_seconds: Optional[int] = None
    shell: Optional[str] = None
    terminal: Optional[str] = None
    locale: Optional[str] = None
    battery: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    os: OsInfo = field(default_factory=OsInfo)
    network: NetworkInfo = field(default_factory=NetworkInfo)
    cpu: CpuInfo = field(default_factory=CpuInfo)
    disk: DiskInfo = field(default_factory=DiskInfo)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    session: SessionInfo = field(default_factory=SessionInfo)
    # (field, strategy) pairs, sorted; diagnostics only.
    sources: Tuple[Tuple[str, str], ...] = ()


Collector = Callable[[CollectContext], object]


def gather_snapshot(
    fast: bool = False,
    host: Optional[Host] = None,
    collectors: Optional[Mapping[str, Collector]] = None,
) -> Snapshot:
    """Run every collector concurrently, wait for all of them, and aggregate."""
    host = host or Host()
    if not host.system:
        raise FatalStartupError("cannot determine the operating system")
    ctx = CollectContext(host=host, skips=fast_mode.policy(host.system, fast))
    collectors = COLLECTORS if collectors is None else collectors

    partials = {}
    with ThreadPoolExecutor(max_workers=len(collectors), thread_name_prefix="collector") as pool:
        futures = {pool.submit(collect, ctx): domain for domain, collect in collectors.items()}
        for future in as_completed(futures):
            domain = futures[future]
            try:
                partials[domain] = future.result()
            except Exception:
                logger.warning("%s collector failed", domain, exc_info=True)
                partials[domain] = EMPTY_PARTIALS[domain]
    return aggregate(partials)


def aggregate(partials: Mapping[str, object]) -> Snapshot:
    """Merge collector partials into a snapshot; missing domains count as empty."""
    os_part: OsPartial = partials.get("os") or EMPTY_PARTIALS["os"]
    cpu_part: CpuPartial = partials.get("cpu") or EMPTY_PARTIALS["cpu"]
    mem_part: MemoryPartial = partials.get("memory") or EMPTY_PARTIALS["memory"]
    disk_part: DiskPartial = partials.get("disk") or EMPTY_PARTIALS["disk"]
    net_part: NetworkPartial = partials.get("network") or EMPTY_PARTIALS["network"]
    session_part: SessionPartial = partials.get("session") or EMPTY_PARTIALS["session"]
    extras: PlatformPartial = partials.get("platform") or EMPTY_PARTIALS["platform"]

    load = cpu_part.load_percent or (None, None, None)
    mount_point, disk_used, disk_total = select_volume(disk_part.volumes)
    sources = {}
    for partial in partials.values():
        sources.update(getattr(partial, "sources", {}))

    return Snapshot(
        os=OsInfo(
            name=os_part.name,
            version=os_part.version,
            kernel=os_part.kernel,
            architecture=os_part.architecture,
            edition=extras.windows_edition,
            codename=extras.macos_codename,
            boot_mode=extras.boot_mode,
            desktop_environment=extras.desktop_environment,
            display_server=extras.display_server,
        ),
        network=NetworkInfo(
            hostname=net_part.hostname,
            machine_ip=net_part.machine_ip,
            client_ip=net_part.client_ip,
            dns_servers=tuple(net_part.dns_servers),
        ),
        cpu=CpuInfo(
            processor=cpu_part.processor,
            cores=cpu_part.logical_cores,
            physical_cores=cpu_part.physical_cores,
            sockets=cpu_part.sockets,
            frequency_ghz=round(cpu_part.frequency_mhz / 1000.0, 2) if cpu_part.frequency_mhz else None,
            usage_percent=cpu_part.usage_percent,
            per_core_percent=tuple(cpu_part.per_core_percent),
            load_1m=_clamp(load[0]),
            load_5m=_clamp(load[1]),
            load_15m=_clamp(load[2]),
            hypervisor=hypervisor_label(extras),
            gpus=tuple(extras.gpus),
        ),
        disk=DiskInfo(
            mount_point=mount_point,
            used_bytes=disk_used,
            total_bytes=disk_total,
            percent=percent_of(disk_used, disk_total),
            zfs_health=disk_part.zfs_health,
        ),
        memory=MemoryInfo(
            used_bytes=mem_part.used_bytes,
            total_bytes=mem_part.total_bytes,
            percent=memory_percent(mem_part.used_bytes, mem_part.total_bytes),
            swap_used_bytes=mem_part.swap_used_bytes,
            swap_total_bytes=mem_part.swap_total_bytes,
        ),
        session=SessionInfo(
            username=session_part.username,
            last_login=session_part.last_login,
            last_login_ip=session_part.last_login_ip,
            uptime_seconds=session_part.uptime_seconds,
            shell=session_part.shell,
            terminal=session_part.terminal,
            locale=session_part.locale,
            battery=extras.battery,
        ),
        sources=tuple(sorted(sources.items())),
    )


def select_volume(volumes: Sequence[Volume]) -> Tuple[Optional[str], Optional[int], Optional[int]]:
    """Root (or C:) volume, else all fixed volumes summed, else the first one."""
    if not volumes:
        return None, None, None
    for volume in volumes:
        if volume.mount_point in ROOT_MOUNTS or volume.mount_point.upper().startswith("C:"):
            return volume.mount_point, volume.used_bytes, volume.total_bytes
    fixed = [volume for volume in volumes if not volume.removable]
    total = sum(volume.total_bytes for volume in fixed)
    if total > 0:
        return None, sum(volume.used_bytes for volume in fixed), total
    first = volumes[0]
    return first.mount_point, first.used_bytes, first.total_bytes


def percent_of(used: Optional[int], total: Optional[int]) -> Optional[int]:
    """Integer percentage, rounded half up and clamped to 0..100."""
    if used is None or not total or total <= 0:
        return None
    used = max(int(used), 0)
    rounded = (used * 200 + total) // (2 * total)
    return max(0, min(100, rounded))


def memory_percent(used: Optional[int], total: Optional[int]) -> Optional[float]:
    if used is None or not total or total <= 0:
        return None
    return round(min(max(used / total * 100.0, 0.0), 100.0), 1)


def hypervisor_label(extras: PlatformPartial) -> Optional[str]:
    if extras.virtualization:
        return extras.virtualization
    if "platform.virtualization" in extras.skipped:
        return None
    return BARE_METAL


def _clamp(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(max(0.0, min(100.0, value)), 2)

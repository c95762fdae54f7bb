"""Mounted volumes and ZFS pool health."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

import psutil

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, unique

REMOVABLE_PREFIXES = ("/media/", "/run/media/", "/Volumes/")


@dataclass(frozen=True)
class Volume:
    mount_point: str
    total_bytes: int
    used_bytes: int
    filesystem: str = ""
    removable: bool = False


@dataclass(frozen=True)
class DiskPartial:
    volumes: Tuple[Volume, ...] = ()
    zfs_health: Optional[str] = None
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> DiskPartial:
    sources = Sources()
    volumes = sources.take("disk.volumes", ctx.resolve(volumes_chain(ctx.system))) or ()
    return DiskPartial(
        volumes=tuple(volumes),
        zfs_health=sources.take("disk.zfs_health", ctx.resolve(zfs_health_chain(ctx.system))),
        sources=dict(sources),
    )


def volumes_chain(system: str) -> ProviderChain[Tuple[Volume, ...]]:
    strategies = []
    if system != "windows":
        strategies.append(Strategy("zfs get", _zfs_root_volume))
    strategies.append(Strategy("psutil.disk_partitions", _psutil_volumes))
    if system != "windows":
        strategies.append(Strategy("df", lambda host: parse_df(host.run("df", "-kP"))))
    return ProviderChain("disk.volumes", strategies)


def zfs_health_chain(system: str) -> ProviderChain[str]:
    if system == "windows":
        return ProviderChain("disk.zfs_health", [])
    return ProviderChain(
        "disk.zfs_health",
        [
            Strategy("zpool status", lambda host: parse_zpool_status(host.run("zpool", "status", "-x"))),
            Strategy("zpool list", lambda host: parse_zpool_list(host.run("zpool", "list", "-H", "-o", "health"))),
        ],
    )


def parse_zpool_status(output: Optional[str]) -> Optional[str]:
    """``zpool status -x`` prints one line when everything is fine."""
    if not output or "no pools available" in output:
        return None
    if "all pools are healthy" in output:
        return "HEALTHY"
    states = [line.split(":", 1)[1] for line in output.splitlines() if line.strip().startswith("state:")]
    return ", ".join(unique(states)) or None


def parse_zpool_list(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    return ", ".join(unique(output.splitlines())) or None


def parse_df(output: Optional[str]) -> Tuple[Volume, ...]:
    """POSIX ``df -kP``: Filesystem 1024-blocks Used Available Capacity Mounted-on."""
    volumes: List[Volume] = []
    if not output:
        return ()
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6 or not parts[1].isdigit() or not parts[3].isdigit():
            continue
        total = int(parts[1]) * 1024
        available = int(parts[3]) * 1024
        if total == 0:
            continue
        mount_point = " ".join(parts[5:])
        volumes.append(
            Volume(
                mount_point=mount_point,
                total_bytes=total,
                used_bytes=max(total - available, 0),
                removable=mount_point.startswith(REMOVABLE_PREFIXES),
            )
        )
    return tuple(volumes)


def _zfs_root_volume(host: Host) -> Optional[Tuple[Volume, ...]]:
    if not host.which("zfs"):
        return None
    root = next(
        (part for part in psutil.disk_partitions(all=False) if part.mountpoint == "/" and part.fstype == "zfs"),
        None,
    )
    if root is None:
        return None
    output = host.run("zfs", "get", "-Hp", "-o", "value", "used,available", root.device)
    if not output:
        return None
    values = [line.strip() for line in output.splitlines() if line.strip()]
    if len(values) != 2 or not all(value.isdigit() for value in values):
        return None
    used, available = int(values[0]), int(values[1])
    return (Volume(mount_point="/", total_bytes=used + available, used_bytes=used, filesystem="zfs"),)


def _psutil_volumes(host: Host) -> Tuple[Volume, ...]:
    volumes: List[Volume] = []
    for partition in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except OSError:
            continue
        if usage.total == 0:
            continue
        volumes.append(
            Volume(
                mount_point=partition.mountpoint,
                total_bytes=usage.total,
                used_bytes=max(usage.total - usage.free, 0),
                filesystem=partition.fstype,
                removable=_is_removable(partition.opts, partition.mountpoint),
            )
        )
    return tuple(volumes)


def _is_removable(opts: str, mount_point: str) -> bool:
    flags = {flag.strip() for flag in opts.split(",")}
    return bool(flags & {"removable", "cdrom"}) or mount_point.startswith(REMOVABLE_PREFIXES)

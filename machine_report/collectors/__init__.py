"""One collector per information domain, each returning a partial result."""

from . import cpu, disk, memory, network, os_info, platform_extras, session
from .cpu import CpuPartial
from .disk import DiskPartial, Volume
from .memory import MemoryPartial
from .network import NetworkPartial
from .os_info import OsPartial
from .platform_extras import PlatformPartial
from .session import SessionPartial

COLLECTORS = {
    "os": os_info.collect,
    "cpu": cpu.collect,
    "memory": memory.collect,
    "disk": disk.collect,
    "network": network.collect,
    "session": session.collect,
    "platform": platform_extras.collect,
}

EMPTY_PARTIALS = {
    "os": OsPartial(),
    "cpu": CpuPartial(),
    "memory": MemoryPartial(),
    "disk": DiskPartial(),
    "network": NetworkPartial(),
    "session": SessionPartial(),
    "platform": PlatformPartial(),
}

__all__ = [
    "COLLECTORS",
    "EMPTY_PARTIALS",
    "CpuPartial",
    "DiskPartial",
    "MemoryPartial",
    "NetworkPartial",
    "OsPartial",
    "PlatformPartial",
    "SessionPartial",
    "Volume",
]

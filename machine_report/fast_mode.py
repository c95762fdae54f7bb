"""Which strategies a ``--fast`` run leaves out, per platform and field.

The table is consulted once, before the collectors are dispatched. A value of
``SKIP_ALL`` drops the whole field; otherwise only the named strategies are
passed over and the rest of the chain still runs.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Mapping, Tuple

from .providers import SKIP_ALL

ALL_PLATFORMS = "*"

FAST_SKIPS: Mapping[Tuple[str, str], FrozenSet[str]] = {
    (ALL_PLATFORMS, "cpu.usage"): frozenset({SKIP_ALL}),
    (ALL_PLATFORMS, "cpu.processor"): frozenset({"py-cpuinfo"}),
    ("linux", "cpu.sockets"): frozenset({"lscpu"}),
    ("darwin", "cpu.sockets"): frozenset({"sysctl hw.packages"}),
    ("windows", "cpu.sockets"): frozenset({"cim Win32_Processor"}),
    ("windows", "cpu.load"): frozenset({SKIP_ALL}),
    ("windows", "session.last_login"): frozenset({SKIP_ALL}),
    ("windows", "session.shell"): frozenset({"powershell version"}),
    ("windows", "session.locale"): frozenset({"Get-Culture"}),
    ("windows", "network.machine_ip"): frozenset({"Get-NetIPAddress"}),
    ("windows", "network.dns_servers"): frozenset({"Get-DnsClientServerAddress"}),
    ("windows", "platform.gpus"): frozenset({SKIP_ALL}),
    ("windows", "platform.virtualization"): frozenset({SKIP_ALL}),
    ("windows", "platform.windows_edition"): frozenset({SKIP_ALL}),
    ("windows", "platform.boot_mode"): frozenset({SKIP_ALL}),
    ("windows", "platform.battery"): frozenset({"cim Win32_Battery"}),
    ("darwin", "platform.gpus"): frozenset({"system_profiler SPDisplaysDataType"}),
    ("darwin", "platform.virtualization"): frozenset({"system_profiler SPHardwareDataType"}),
    ("linux", "platform.gpus"): frozenset({"lspci", "pynvml", "nvidia-smi"}),
}


def skips_for(system: str) -> Dict[str, FrozenSet[str]]:
    """Collapse the table into ``field -> skipped strategies`` for one platform."""
    skips: Dict[str, FrozenSet[str]] = {}
    for (platform_id, field_name), names in FAST_SKIPS.items():
        if platform_id in (ALL_PLATFORMS, system):
            skips[field_name] = skips.get(field_name, frozenset()) | names
    return skips


def policy(system: str, fast: bool) -> Dict[str, FrozenSet[str]]:
    return skips_for(system) if fast else {}

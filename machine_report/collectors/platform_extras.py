"""Facts that only some platforms expose: virtualization, GPUs, firmware, desktop."""

from __future__ import annotations

import platform
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Mapping, Optional, Sequence, Tuple

import psutil
import pynvml

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, constant, first_line

VM_MARKERS: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("virtualbox", "vbox"), "VirtualBox"),
    (("vmware",), "VMware"),
    (("qemu", "kvm"), "QEMU/KVM"),
    (("hyper-v",), "Hyper-V"),
    (("xen",), "Xen"),
    (("parallels",), "Parallels"),
)
MACOS_CODENAMES = {
    26: "Tahoe",
    15: "Sequoia",
    14: "Sonoma",
    13: "Ventura",
    12: "Monterey",
    11: "Big Sur",
    10: "Catalina",
}
BATTERY_STATUS = {
    "1": "Discharging",
    "2": "AC Power",
    "3": "Charging",
    "4": "Low",
    "5": "Critical",
    "6": "Charging",
    "7": "Charging High",
    "8": "Charging Low",
    "9": "Charging Critical",
}
GPU_CLASSES = ("VGA compatible controller", "3D controller", "Display controller")
WINDOWS_VERSION_KEY = r"SOFTWARE\Microsoft\Windows NT\CurrentVersion"


@dataclass(frozen=True)
class PlatformPartial:
    virtualization: Optional[str] = None
    gpus: Tuple[str, ...] = ()
    boot_mode: Optional[str] = None
    desktop_environment: Optional[str] = None
    display_server: Optional[str] = None
    windows_edition: Optional[str] = None
    macos_codename: Optional[str] = None
    battery: Optional[str] = None
    skipped: FrozenSet[str] = frozenset()
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> PlatformPartial:
    sources = Sources()
    system = ctx.system
    chains = {
        "virtualization": virtualization_chain(system),
        "gpus": gpu_chain(system),
        "boot_mode": boot_mode_chain(system),
        "desktop_environment": desktop_chain(system),
        "display_server": display_server_chain(system),
        "windows_edition": windows_edition_chain(system),
        "macos_codename": macos_codename_chain(system),
        "battery": battery_chain(system),
    }
    values = {name: sources.take(chain.field, ctx.resolve(chain)) for name, chain in chains.items()}
    values["gpus"] = tuple(values["gpus"] or ())
    skipped = frozenset(chain.field for chain in chains.values() if ctx.is_skipped(chain.field))
    return PlatformPartial(skipped=skipped, sources=dict(sources), **values)


def virtualization_chain(system: str) -> ProviderChain[str]:
    """Firmware table, then the hypervisor CPU flag or platform property."""
    if system == "linux":
        strategies = [
            Strategy("dmi", _dmi_virtualization),
            Strategy("/proc/cpuinfo", lambda host: "Virtual Machine" if _has_hypervisor_flag(host.read_text("/proc/cpuinfo")) else None),
        ]
    elif system == "darwin":
        strategies = [
            Strategy("system_profiler SPHardwareDataType", lambda host: match_vm_vendor(host.run("system_profiler", "SPHardwareDataType"))),
            Strategy(
                "sysctl kern.hv_vmm_present",
                lambda host: "Virtual Machine" if first_line(host.run("sysctl", "-n", "kern.hv_vmm_present")) == "1" else None,
            ),
        ]
    elif system == "windows":
        strategies = [
            Strategy("cim Win32_ComputerSystem", _windows_computer_system),
            Strategy(
                "HypervisorPresent",
                lambda host: "Hypervisor Present"
                if (first_line(host.powershell("(Get-CimInstance Win32_ComputerSystem).HypervisorPresent")) or "").lower() == "true"
                else None,
            ),
        ]
    else:
        strategies = []
    return ProviderChain("platform.virtualization", strategies)


def gpu_chain(system: str) -> ProviderChain[List[str]]:
    if system == "linux":
        strategies = [
            Strategy("lspci", lambda host: parse_lspci(host.run("lspci"))),
            Strategy("pynvml", _nvml_gpus),
            Strategy("nvidia-smi", lambda host: _lines(host.run("nvidia-smi", "--query-gpu=name", "--format=csv,noheader"))),
        ]
    elif system == "darwin":
        strategies = [Strategy("system_profiler SPDisplaysDataType", lambda host: parse_chipset_models(host.run("system_profiler", "SPDisplaysDataType")))]
    elif system == "windows":
        strategies = [
            Strategy("cim Win32_VideoController", lambda host: _lines(host.powershell("(Get-CimInstance Win32_VideoController).Name -join \"`n\""))),
            Strategy("wmic", lambda host: _lines(host.run("wmic", "path", "win32_VideoController", "get", "name"))[1:]),
        ]
    else:
        strategies = []
    return ProviderChain("platform.gpus", strategies)


def boot_mode_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [Strategy("/sys/firmware/efi", lambda host: "UEFI" if host.exists("/sys/firmware/efi") else "Legacy BIOS")]
    elif system == "darwin":
        strategies = [Strategy("platform.machine", lambda host: "Apple Silicon" if platform.machine() == "arm64" else "UEFI")]
    elif system == "windows":
        strategies = [
            Strategy("firmware_type", lambda host: _firmware_label(host.getenv("firmware_type"))),
            Strategy("bcdedit", _bcdedit_boot_mode),
        ]
    else:
        strategies = []
    return ProviderChain("platform.boot_mode", strategies)


def desktop_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [
            Strategy("XDG_CURRENT_DESKTOP", lambda host: host.getenv("XDG_CURRENT_DESKTOP")),
            Strategy("DESKTOP_SESSION", lambda host: host.getenv("DESKTOP_SESSION")),
            Strategy("GNOME_DESKTOP_SESSION_ID", lambda host: "GNOME" if host.getenv("GNOME_DESKTOP_SESSION_ID") else None),
            Strategy("KDE_FULL_SESSION", lambda host: "KDE" if host.getenv("KDE_FULL_SESSION") else None),
        ]
    elif system == "darwin":
        strategies = [constant("default", "Aqua")]
    elif system == "windows":
        strategies = [constant("default", "Windows Shell")]
    else:
        strategies = []
    return ProviderChain("platform.desktop_environment", strategies)


def display_server_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [
            Strategy("XDG_SESSION_TYPE", lambda host: host.getenv("XDG_SESSION_TYPE")),
            Strategy("WAYLAND_DISPLAY", lambda host: "wayland" if host.getenv("WAYLAND_DISPLAY") else None),
            Strategy("DISPLAY", lambda host: "x11" if host.getenv("DISPLAY") else None),
        ]
    elif system == "darwin":
        strategies = [constant("default", "Quartz")]
    elif system == "windows":
        strategies = [constant("default", "DWM")]
    else:
        strategies = []
    return ProviderChain("platform.display_server", strategies)


def windows_edition_chain(system: str) -> ProviderChain[str]:
    strategies = []
    if system == "windows":
        strategies = [
            Strategy("cim Win32_OperatingSystem", lambda host: first_line(host.powershell("(Get-CimInstance Win32_OperatingSystem).Caption"))),
            Strategy("registry ProductName", lambda host: host.registry_value(WINDOWS_VERSION_KEY, "ProductName")),
        ]
    return ProviderChain("platform.windows_edition", strategies)


def macos_codename_chain(system: str) -> ProviderChain[str]:
    strategies = []
    if system == "darwin":
        strategies = [
            Strategy("platform.mac_ver", lambda host: macos_codename(platform.mac_ver()[0])),
            Strategy("sw_vers", lambda host: macos_codename(first_line(host.run("sw_vers", "-productVersion")))),
        ]
    return ProviderChain("platform.macos_codename", strategies)


def battery_chain(system: str) -> ProviderChain[str]:
    strategies = [Strategy("psutil.sensors_battery", _psutil_battery)]
    if system == "windows":
        strategies.append(Strategy("cim Win32_Battery", _windows_battery))
    return ProviderChain("platform.battery", strategies)


def match_vm_vendor(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    for markers, label in VM_MARKERS:
        if any(marker in lowered for marker in markers):
            return label
    return None


def _nvml_gpus(host: Host) -> List[str]:
    """Every device NVML can see; raises NVMLError without a driver."""
    pynvml.nvmlInit()
    try:
        names = []
        for index in range(pynvml.nvmlDeviceGetCount()):
            name = pynvml.nvmlDeviceGetName(pynvml.nvmlDeviceGetHandleByIndex(index))
            names.append(name.decode("utf-8") if isinstance(name, bytes) else name)
        return names
    finally:
        pynvml.nvmlShutdown()


def parse_lspci(output: Optional[str]) -> List[str]:
    """``00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620 (rev 07)``."""
    gpus: List[str] = []
    if not output:
        return gpus
    for line in output.splitlines():
        for gpu_class in GPU_CLASSES:
            marker = f"{gpu_class}: "
            if marker in line:
                name = line.split(marker, 1)[1]
                gpus.append(re.sub(r"\s*\(rev [0-9a-fA-F]+\)$", "", name).strip())
                break
    return gpus


def parse_chipset_models(output: Optional[str]) -> List[str]:
    if not output:
        return []
    return [line.split(":", 1)[1].strip() for line in output.splitlines() if line.strip().startswith("Chipset Model:")]


def macos_codename(version: Optional[str]) -> Optional[str]:
    if not version:
        return None
    major = version.split(".")[0]
    return MACOS_CODENAMES.get(int(major)) if major.isdigit() else None


def format_battery(percent: float, status: str) -> str:
    return f"{percent:.0f}% ({status})"


def _dmi_virtualization(host: Host) -> Optional[str]:
    text = " ".join(
        value for value in (host.read_text("/sys/class/dmi/id/sys_vendor"), host.read_text("/sys/class/dmi/id/product_name")) if value
    )
    if "microsoft" in text.lower() and "virtual" in text.lower():
        return "Hyper-V"
    return match_vm_vendor(text)


def _has_hypervisor_flag(cpuinfo: Optional[str]) -> bool:
    if not cpuinfo:
        return False
    for line in cpuinfo.splitlines():
        name, _, value = line.partition(":")
        if name.strip() in ("flags", "Features") and "hypervisor" in value.split():
            return True
    return False


def _windows_computer_system(host: Host) -> Optional[str]:
    text = host.powershell(
        "(Get-CimInstance Win32_ComputerSystem).Manufacturer + '|' + (Get-CimInstance Win32_ComputerSystem).Model"
    )
    if not text:
        return None
    if "microsoft" in text.lower() and "virtual" in text.lower():
        return "Hyper-V"
    return match_vm_vendor(text)


def _firmware_label(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.upper()
    if "UEFI" in value:
        return "UEFI"
    if "LEGACY" in value or "BIOS" in value:
        return "Legacy BIOS"
    return None


def _bcdedit_boot_mode(host: Host) -> Optional[str]:
    output = host.run("cmd", "/c", "bcdedit", "/enum", "{current}")
    if not output:
        return None
    return "UEFI" if "winload.efi" in output.lower() else "Legacy BIOS"


def _psutil_battery(host: Host) -> Optional[str]:
    battery = psutil.sensors_battery()
    if battery is None:
        return None
    if battery.power_plugged:
        status = "Charging" if battery.percent < 100 else "AC Power"
    else:
        status = "Discharging"
    return format_battery(battery.percent, status)


def _windows_battery(host: Host) -> Optional[str]:
    line = first_line(host.powershell("$b = Get-CimInstance Win32_Battery; if ($b) { \"$($b.EstimatedChargeRemaining)|$($b.BatteryStatus)\" }"))
    if not line or "|" not in line:
        return None
    percent, code = line.split("|", 1)
    if not percent.strip().isdigit():
        return None
    return format_battery(float(percent), BATTERY_STATUS.get(code.strip(), "Unknown"))


def _lines(output: Optional[str]) -> List[str]:
    if not output:
        return []
    return [line.strip() for line in output.splitlines() if line.strip()]

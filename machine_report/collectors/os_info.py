"""Operating system identity: name, version, kernel and architecture."""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, constant, first_line

OS_RELEASE_FILES = ("/etc/os-release", "/usr/lib/os-release")


@dataclass(frozen=True)
class OsPartial:
    name: Optional[str] = None
    version: Optional[str] = None
    kernel: Optional[str] = None
    architecture: Optional[str] = None
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> OsPartial:
    """Resolve the OS identity chains for the host platform."""
    sources = Sources()
    system = ctx.system
    return OsPartial(
        name=sources.take("os.name", ctx.resolve(name_chain(system))),
        version=sources.take("os.version", ctx.resolve(version_chain(system))),
        kernel=sources.take("os.kernel", ctx.resolve(kernel_chain(system))),
        architecture=sources.take("os.architecture", ctx.resolve(architecture_chain(system))),
        sources=dict(sources),
    )


def name_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [
            Strategy("os-release", lambda host: _os_release(host).get("NAME")),
            Strategy("lsb_release", lambda host: first_line(host.run("lsb_release", "-si"))),
            constant("default", "Linux"),
        ]
    elif system == "darwin":
        strategies = [
            Strategy("sw_vers", lambda host: first_line(host.run("sw_vers", "-productName"))),
            constant("default", "macOS"),
        ]
    elif system == "windows":
        strategies = [constant("default", "Windows")]
    else:
        strategies = [Strategy("platform.system", lambda host: platform.system())]
    return ProviderChain("os.name", strategies)


def version_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [
            Strategy("os-release", _os_release_version),
            Strategy("lsb_release", lambda host: first_line(host.run("lsb_release", "-sr"))),
        ]
    elif system == "darwin":
        strategies = [
            Strategy("platform.mac_ver", lambda host: platform.mac_ver()[0]),
            Strategy("sw_vers", lambda host: first_line(host.run("sw_vers", "-productVersion"))),
        ]
    elif system == "windows":
        strategies = [
            Strategy("platform.win32_ver", _windows_version),
            Strategy("ver", lambda host: _parse_ver(host.run("cmd", "/c", "ver"))),
        ]
    else:
        strategies = [Strategy("platform.version", lambda host: platform.version())]
    return ProviderChain("os.version", strategies)


def kernel_chain(system: str) -> ProviderChain[str]:
    if system == "windows":
        strategies = [Strategy("platform.version", lambda host: platform.version())]
    else:
        strategies = [
            Strategy("platform.release", lambda host: platform.release()),
            Strategy("uname", lambda host: first_line(host.run("uname", "-r"))),
        ]
    return ProviderChain("os.kernel", strategies)


def architecture_chain(system: str) -> ProviderChain[str]:
    strategies = [Strategy("platform.machine", lambda host: platform.machine())]
    if system == "windows":
        strategies.append(Strategy("PROCESSOR_ARCHITECTURE", lambda host: host.getenv("PROCESSOR_ARCHITECTURE")))
    else:
        strategies.append(Strategy("uname", lambda host: first_line(host.run("uname", "-m"))))
    return ProviderChain("os.architecture", strategies)


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip("\"'")
    return values


def _os_release(host: Host) -> Dict[str, str]:
    for path in OS_RELEASE_FILES:
        text = host.read_text(path)
        if text:
            return parse_os_release(text)
    return {}


def _os_release_version(host: Host) -> Optional[str]:
    values = _os_release(host)
    return values.get("VERSION_ID") or values.get("VERSION") or values.get("BUILD_ID")


def _windows_version(host: Host) -> Optional[str]:
    release, version, _, _ = platform.win32_ver()
    if not release:
        return None
    build = version.split(".")[-1] if version else ""
    if release == "10" and build.isdigit() and int(build) >= 22000:
        release = "11"
    return f"{release} ({build})" if build else release


def _parse_ver(output: Optional[str]) -> Optional[str]:
    # "Microsoft Windows [Version 10.0.22631.4317]"
    line = first_line(output)
    if not line or "Version" not in line:
        return None
    return line.split("Version", 1)[1].strip(" ]")

"""Hostname, primary address, SSH client address and DNS resolvers."""

from __future__ import annotations

import json
import platform
import socket
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, first_line, unique, usable_ipv4

MAX_DNS_SERVERS = 5
STUB_RESOLVERS = ("127.0.0.53", "127.0.0.54")
VIRTUAL_INTERFACES = ("lo", "docker", "veth", "br-", "virbr", "cni", "flannel", "lxc")
INTERFACES_KEY = r"SYSTEM\CurrentControlSet\Services\Tcpip\Parameters\Interfaces"

GET_NET_IP_ADDRESS = (
    "(Get-NetIPAddress -AddressFamily IPv4 | Where-Object { $_.InterfaceAlias -notmatch 'Loopback' "
    "-and $_.PrefixOrigin -ne 'WellKnown' } | Select-Object -First 1).IPAddress"
)
GET_DNS_CLIENT_SERVER_ADDRESS = (
    "(Get-DnsClientServerAddress -AddressFamily IPv4 | Where-Object { $_.ServerAddresses } "
    "| Select-Object -ExpandProperty ServerAddresses) -join \"`n\""
)


@dataclass(frozen=True)
class NetworkPartial:
    hostname: Optional[str] = None
    machine_ip: Optional[str] = None
    client_ip: Optional[str] = None
    dns_servers: Tuple[str, ...] = ()
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> NetworkPartial:
    sources = Sources()
    dns = sources.take("network.dns_servers", ctx.resolve(dns_chain(ctx.system))) or ()
    return NetworkPartial(
        hostname=sources.take("network.hostname", ctx.resolve(hostname_chain())),
        machine_ip=sources.take("network.machine_ip", ctx.resolve(machine_ip_chain(ctx.system))),
        client_ip=sources.take("network.client_ip", ctx.resolve(client_ip_chain())),
        dns_servers=tuple(unique(dns, MAX_DNS_SERVERS)),
        sources=dict(sources),
    )


def hostname_chain() -> ProviderChain[str]:
    return ProviderChain(
        "network.hostname",
        [
            Strategy("platform.node", lambda host: platform.node()),
            Strategy("socket.gethostname", lambda host: socket.gethostname()),
            Strategy("hostname", lambda host: first_line(host.run("hostname"))),
        ],
    )


def client_ip_chain() -> ProviderChain[str]:
    """The first token of SSH_CLIENT ("ip port port") or SSH_CONNECTION."""
    return ProviderChain(
        "network.client_ip",
        [
            Strategy("SSH_CLIENT", lambda host: _first_token(host.getenv("SSH_CLIENT"))),
            Strategy("SSH_CONNECTION", lambda host: _first_token(host.getenv("SSH_CONNECTION"))),
        ],
    )


def machine_ip_chain(system: str) -> ProviderChain[str]:
    if system == "linux":
        strategies = [
            Strategy("ip -j addr", lambda host: parse_ip_json(host.run("ip", "-j", "-4", "addr", "show", "scope", "global"))),
            Strategy("hostname -I", lambda host: _first_usable((host.run("hostname", "-I") or "").split())),
            Strategy("ip route get", lambda host: parse_route_src(host.run("ip", "route", "get", "1"))),
        ]
    elif system == "darwin":
        strategies = [
            Strategy("ipconfig getifaddr", _darwin_getifaddr),
            Strategy("ifconfig", lambda host: parse_ifconfig(host.run("ifconfig"))),
            Strategy("route get default", _darwin_route_interface),
        ]
    elif system == "windows":
        strategies = [
            Strategy("Get-NetIPAddress", lambda host: _first_usable([first_line(host.powershell(GET_NET_IP_ADDRESS)) or ""])),
            Strategy("ipconfig", lambda host: parse_ipconfig(host.run("ipconfig"))),
            Strategy("route print", lambda host: parse_route_print(host.run("route", "print", "-4"))),
        ]
    else:
        strategies = []
    return ProviderChain("network.machine_ip", strategies)


def dns_chain(system: str) -> ProviderChain[List[str]]:
    if system == "linux":
        strategies = [
            Strategy("resolvectl dns", lambda host: parse_resolvectl(host.run("resolvectl", "dns"))),
            Strategy("/etc/resolv.conf", lambda host: parse_resolv_conf(host.read_text("/etc/resolv.conf"))),
            Strategy("nmcli", lambda host: parse_nmcli_dns(host.run("nmcli", "-t", "-f", "IP4.DNS", "dev", "show"))),
        ]
    elif system == "darwin":
        strategies = [
            Strategy("scutil --dns", lambda host: parse_scutil_dns(host.run("scutil", "--dns"))),
            Strategy("/etc/resolv.conf", lambda host: parse_resolv_conf(host.read_text("/etc/resolv.conf"))),
            Strategy("networksetup", lambda host: parse_address_lines(host.run("networksetup", "-getdnsservers", "Wi-Fi"))),
        ]
    elif system == "windows":
        strategies = [
            Strategy("Get-DnsClientServerAddress", lambda host: parse_address_lines(host.powershell(GET_DNS_CLIENT_SERVER_ADDRESS))),
            Strategy("registry NameServer", _registry_name_servers),
            Strategy("ipconfig /all", lambda host: parse_ipconfig_dns(host.run("ipconfig", "/all"))),
        ]
    else:
        strategies = [Strategy("/etc/resolv.conf", lambda host: parse_resolv_conf(host.read_text("/etc/resolv.conf")))]
    return ProviderChain("network.dns_servers", strategies)


def parse_ip_json(output: Optional[str]) -> Optional[str]:
    """First global IPv4 address of an interface that is up and not virtual."""
    if not output:
        return None
    try:
        interfaces = json.loads(output)
    except ValueError:
        return None
    for interface in interfaces:
        name = interface.get("ifname", "")
        if name.startswith(VIRTUAL_INTERFACES) or interface.get("operstate") == "DOWN":
            continue
        for info in interface.get("addr_info", []):
            if info.get("family") == "inet" and usable_ipv4(info.get("local")):
                return info["local"]
    return None


def parse_route_src(output: Optional[str]) -> Optional[str]:
    """``1.0.0.0 via 192.168.1.1 dev eth0 src 192.168.1.20 uid 1000``."""
    if not output:
        return None
    tokens = output.split()
    for index, token in enumerate(tokens[:-1]):
        if token == "src" and usable_ipv4(tokens[index + 1]):
            return tokens[index + 1]
    return None


def parse_ifconfig(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    candidates = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "inet":
            candidates.append(parts[1].replace("addr:", ""))
    return _first_usable(candidates)


def parse_ipconfig(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    candidates = []
    for line in output.splitlines():
        if "IPv4 Address" in line:
            candidates.append(line.rsplit(":", 1)[-1].replace("(Preferred)", "").strip())
    return _first_usable(candidates)


def parse_route_print(output: Optional[str]) -> Optional[str]:
    """Interface column of the ``0.0.0.0 0.0.0.0 <gateway> <interface> <metric>`` row."""
    if not output:
        return None
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 5 and parts[0] == "0.0.0.0" and parts[1] == "0.0.0.0" and usable_ipv4(parts[3]):
            return parts[3]
    return None


def parse_resolv_conf(text: Optional[str]) -> List[str]:
    """One ``nameserver <addr>`` per line; comments and other directives ignored."""
    servers: List[str] = []
    if not text:
        return servers
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", ";")):
            continue
        parts = line.split()
        if parts[0] == "nameserver" and len(parts) >= 2 and parts[1] not in STUB_RESOLVERS:
            servers.append(parts[1])
    return unique(servers, MAX_DNS_SERVERS)


def parse_resolvectl(output: Optional[str]) -> List[str]:
    """``Global: 1.1.1.1`` and ``Link 2 (eth0): 192.168.1.1 fe80::1`` lines."""
    servers: List[str] = []
    if not output:
        return servers
    for line in output.splitlines():
        _, sep, addresses = line.partition(": ")
        if not sep:
            continue
        servers.extend(address.split("#", 1)[0] for address in addresses.split())
    return unique(servers, MAX_DNS_SERVERS)


def parse_nmcli_dns(output: Optional[str]) -> List[str]:
    servers: List[str] = []
    if not output:
        return servers
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.startswith("IP4.DNS"):
            servers.append(value)
    return unique(servers, MAX_DNS_SERVERS)


def parse_scutil_dns(output: Optional[str]) -> List[str]:
    """``nameserver[0] : 192.168.1.1`` lines from every resolver block."""
    servers: List[str] = []
    if not output:
        return servers
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("nameserver["):
            servers.append(line.partition(":")[2])
    return unique(servers, MAX_DNS_SERVERS)


def parse_address_lines(output: Optional[str]) -> List[str]:
    """One address per line; anything with spaces is a message, not an address."""
    if not output:
        return []
    lines = [line.strip() for line in output.splitlines()]
    return unique((line for line in lines if line and " " not in line and ("." in line or ":" in line)), MAX_DNS_SERVERS)


def parse_ipconfig_dns(output: Optional[str]) -> List[str]:
    """``DNS Servers . . . : 1.1.1.1`` followed by continuation lines."""
    servers: List[str] = []
    if not output:
        return servers
    in_dns_section = False
    for line in output.splitlines():
        trimmed = line.strip()
        if "DNS Servers" in line:
            in_dns_section = True
            servers.append(line.split(" : ", 1)[-1].strip() if " : " in line else line.rsplit(":", 1)[-1].strip())
        elif in_dns_section:
            if trimmed and ":" not in trimmed.replace("::", "") and "." in trimmed:
                servers.append(trimmed)
            else:
                in_dns_section = False
    return unique(servers, MAX_DNS_SERVERS)


def _registry_name_servers(host: Host) -> List[str]:
    servers: List[str] = []
    for interface in host.registry_subkeys(INTERFACES_KEY):
        key = f"{INTERFACES_KEY}\\{interface}"
        for name in ("NameServer", "DhcpNameServer"):
            value = host.registry_value(key, name) or ""
            servers.extend(value.replace(",", " ").split())
    return unique(servers, MAX_DNS_SERVERS)


def _darwin_getifaddr(host: Host) -> Optional[str]:
    for interface in ("en0", "en1", "en2"):
        address = first_line(host.run("ipconfig", "getifaddr", interface))
        if usable_ipv4(address):
            return address
    return None


def _darwin_route_interface(host: Host) -> Optional[str]:
    output = host.run("route", "-n", "get", "default")
    if not output:
        return None
    for line in output.splitlines():
        key, _, value = line.strip().partition(":")
        if key == "interface" and value.strip():
            address = first_line(host.run("ipconfig", "getifaddr", value.strip()))
            return address if usable_ipv4(address) else None
    return None


def _first_usable(candidates: Iterable[str]) -> Optional[str]:
    for candidate in candidates:
        candidate = candidate.strip()
        if usable_ipv4(candidate):
            return candidate
    return None


def _first_token(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parts = value.split()
    return parts[0] if parts else None

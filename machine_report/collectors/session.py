"""Who is logged in, since when, and from which shell and terminal."""

from __future__ import annotations

import getpass
import locale
import os
import time
from dataclasses import dataclass, field
from typing import List, Mapping, NamedTuple, Optional

import psutil

from ..providers import CollectContext, Host, ProviderChain, Sources, Strategy, constant, first_line

LOGIN_UNAVAILABLE = "Login tracking unavailable"
NEVER_LOGGED_IN = "Never logged in"
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
LOCAL_ORIGINS = (":", "pts", "tty", "console")

WINDOWS_TERMINALS = {
    "windowsterminal": "Windows Terminal",
    "code": "VS Code",
    "conhost": "Console Host",
    "cmd": "Command Prompt",
    "powershell": "PowerShell",
    "pwsh": "PowerShell",
}


class LastLogin(NamedTuple):
    when: str
    origin: Optional[str] = None


@dataclass(frozen=True)
class SessionPartial:
    username: Optional[str] = None
    last_login: Optional[str] = None
    last_login_ip: Optional[str] = None
    uptime_seconds: Optional[int] = None
    shell: Optional[str] = None
    terminal: Optional[str] = None
    locale: Optional[str] = None
    sources: Mapping[str, str] = field(default_factory=dict)


def collect(ctx: CollectContext) -> SessionPartial:
    sources = Sources()
    system = ctx.system
    username = sources.take("session.username", ctx.resolve(username_chain()))
    login = None
    if username:
        login = sources.take("session.last_login", ctx.resolve(last_login_chain(system, username)))
    return SessionPartial(
        username=username,
        last_login=login.when if login else None,
        last_login_ip=login.origin if login else None,
        uptime_seconds=sources.take("session.uptime", ctx.resolve(uptime_chain(system))),
        shell=sources.take("session.shell", ctx.resolve(shell_chain(system))),
        terminal=sources.take("session.terminal", ctx.resolve(terminal_chain(system))),
        locale=sources.take("session.locale", ctx.resolve(locale_chain(system))),
        sources=dict(sources),
    )


def username_chain() -> ProviderChain[str]:
    return ProviderChain(
        "session.username",
        [
            Strategy("getpass.getuser", lambda host: getpass.getuser()),
            Strategy("USER", lambda host: host.getenv("USER") or host.getenv("USERNAME")),
            Strategy("whoami", lambda host: first_line(host.run("whoami"))),
        ],
    )


def last_login_chain(system: str, username: str) -> ProviderChain[LastLogin]:
    """Newest login-database tool first, then older ones, then ``last``."""
    if system == "linux":
        strategies = [
            Strategy("lastlog2", lambda host: parse_lastlog(host.run("lastlog2", "--user", username))),
            Strategy("lastlog", lambda host: parse_lastlog(host.run("lastlog", "-u", username))),
            Strategy("last", lambda host: parse_last(host.run("last", "-1", username))),
        ]
    elif system == "darwin":
        strategies = [Strategy("last", lambda host: parse_last(host.run("last", "-1", username)))]
    elif system == "windows":
        strategies = [Strategy("net user", lambda host: parse_net_user(host.run("net", "user", username)))]
    else:
        strategies = [constant("unavailable", LastLogin(LOGIN_UNAVAILABLE))]
    return ProviderChain("session.last_login", strategies)


def uptime_chain(system: str) -> ProviderChain[int]:
    strategies = [Strategy("psutil.boot_time", lambda host: _seconds_since(psutil.boot_time()))]
    if system == "linux":
        strategies.append(Strategy("/proc/uptime", lambda host: parse_proc_uptime(host.read_text("/proc/uptime"))))
    elif system == "darwin":
        strategies.append(Strategy("sysctl kern.boottime", lambda host: _seconds_since(parse_boottime(host.run("sysctl", "-n", "kern.boottime")))))
    return ProviderChain("session.uptime", strategies)


def shell_chain(system: str) -> ProviderChain[str]:
    strategies = [Strategy("SHELL", lambda host: _basename(host.getenv("SHELL")))]
    if system == "windows":
        strategies.append(Strategy("powershell version", _powershell_version))
        strategies.append(Strategy("COMSPEC", lambda host: _basename(host.getenv("COMSPEC"))))
    return ProviderChain("session.shell", strategies)


def terminal_chain(system: str) -> ProviderChain[str]:
    strategies = [
        Strategy("TERM_PROGRAM", lambda host: host.getenv("TERM_PROGRAM")),
        Strategy("WT_SESSION", lambda host: "Windows Terminal" if host.getenv("WT_SESSION") else None),
        Strategy("TERM", lambda host: host.getenv("TERM")),
    ]
    if system == "windows":
        strategies.append(Strategy("parent process", _windows_parent_terminal))
        strategies.append(constant("default", "Console"))
    return ProviderChain("session.terminal", strategies)


def locale_chain(system: str) -> ProviderChain[str]:
    strategies = [
        Strategy("LC_ALL", lambda host: host.getenv("LC_ALL")),
        Strategy("LANG", lambda host: host.getenv("LANG")),
        Strategy("locale.getlocale", lambda host: locale.getlocale()[0]),
    ]
    if system == "windows":
        strategies.append(Strategy("Get-Culture", lambda host: first_line(host.powershell("(Get-Culture).Name"))))
    return ProviderChain("session.locale", strategies)


def parse_lastlog(output: Optional[str]) -> Optional[LastLogin]:
    """``lastlog``/``lastlog2``: a header, then ``user port [from] latest``."""
    if not output:
        return None
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    line = lines[1]
    if "Never logged in" in line:
        return LastLogin(NEVER_LOGGED_IN)
    parts = line.split()
    if len(parts) < 5:
        return None
    if parts[2] in WEEKDAYS:
        return LastLogin(" ".join(parts[2:]))
    return LastLogin(" ".join(parts[3:]), parts[2])


def parse_last(output: Optional[str]) -> Optional[LastLogin]:
    """``last -1 user``: ``user tty [from] Mon Jan  1 10:00 ...``."""
    line = first_line(output)
    if not line or "wtmp begins" in line or "utx.log begins" in line:
        return None
    parts = line.split()
    if len(parts) < 5:
        return None
    if parts[2] in WEEKDAYS:
        return LastLogin(" ".join(parts[2:6]))
    origin: Optional[str] = parts[2]
    if origin.startswith(LOCAL_ORIGINS):
        origin = None
    return LastLogin(" ".join(parts[3:7]), origin)


def parse_net_user(output: Optional[str]) -> Optional[LastLogin]:
    """``Last logon                   1/15/2024 9:30:12 AM``."""
    if not output:
        return None
    for line in output.splitlines():
        if line.startswith("Last logon"):
            when = " ".join(line.split()[2:])
            return LastLogin(when) if when else None
    return None


def parse_proc_uptime(text: Optional[str]) -> Optional[int]:
    if not text or not text.split():
        return None
    try:
        return int(float(text.split()[0]))
    except ValueError:
        return None


def parse_boottime(output: Optional[str]) -> Optional[float]:
    """``{ sec = 1700000000, usec = 123 } Tue Nov 14 22:13:20 2023``."""
    if not output or "sec =" not in output:
        return None
    value = output.split("sec =", 1)[1].split(",", 1)[0].strip()
    return float(value) if value.isdigit() else None


def _seconds_since(timestamp: Optional[float]) -> Optional[int]:
    if not timestamp:
        return None
    return max(int(time.time() - timestamp), 0)


def _basename(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    name = path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    return name[:-4] if name.lower().endswith(".exe") else name


def _powershell_version(host: Host) -> Optional[str]:
    version = first_line(host.powershell("$PSVersionTable.PSVersion.ToString()"))
    return f"PowerShell {version}" if version else None


def _windows_parent_terminal(host: Host) -> Optional[str]:
    names: List[str] = []
    for process in psutil.Process(os.getpid()).parents()[:3]:
        names.append(os.path.splitext(process.name())[0].lower())
    for name in names:
        if name in WINDOWS_TERMINALS:
            return WINDOWS_TERMINALS[name]
    return None

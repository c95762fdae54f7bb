"""Turn a snapshot into the finished document: the table or JSON."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from rich.text import Text

from .config import Config, OutputMode
from .formatting import ASCII, GB, UNICODE, TableBuilder, format_gb, format_uptime
from .system_state import Snapshot

NOT_CONNECTED = "Not connected"
UNKNOWN = "Unknown"
MAX_LISTED_GPUS = 3
MAX_DNS_ROWS = 5
DOMAINS = ("os", "network", "cpu", "disk", "memory", "session")

# (label, text or bar percent, is_bar)
Row = Tuple[str, Union[str, float], bool]


def render(snapshot: Snapshot, config: Config) -> Union[Text, str]:
    if config.mode is OutputMode.JSON:
        return to_json(snapshot)
    return render_table(snapshot, config)


def render_table(snapshot: Snapshot, config: Config) -> Text:
    builder = TableBuilder(glyphs=ASCII if config.ascii else UNICODE, color=config.color)
    builder.header(config.title_text, config.subtitle_text)
    sections = [rows for rows in (build(snapshot) for build in SECTIONS) if rows]
    for index, rows in enumerate(sections):
        if index:
            builder.divider()
        for label, value, is_bar in rows:
            if is_bar:
                builder.bar_row(label, value)
            else:
                builder.row(label, value)
    builder.footer()
    return builder.render()


def os_rows(snapshot: Snapshot) -> List[Row]:
    info = snapshot.os
    rows: List[Row] = []
    name = " ".join(part for part in (info.name, info.version) if part)
    _text(rows, "OS", name or None)
    _text(rows, "KERNEL", info.kernel)
    _text(rows, "ARCH", info.architecture)
    return rows


def network_rows(snapshot: Snapshot) -> List[Row]:
    net = snapshot.network
    rows: List[Row] = []
    _text(rows, "HOSTNAME", net.hostname)
    _text(rows, "MACHINE IP", net.machine_ip)
    _text(rows, "CLIENT  IP", net.client_ip or NOT_CONNECTED)
    for index, server in enumerate(net.dns_servers[:MAX_DNS_ROWS], start=1):
        _text(rows, f"DNS  IP {index}", server)
    _text(rows, "USER", snapshot.session.username)
    return rows


def cpu_rows(snapshot: Snapshot) -> List[Row]:
    cpu = snapshot.cpu
    rows: List[Row] = []
    _text(rows, "PROCESSOR", cpu.processor)
    if cpu.cores:
        cores = f"{cpu.cores} vCPU(s)"
        if cpu.sockets:
            cores += f" / {cpu.sockets} Socket(s)"
        _text(rows, "CORES", cores)
    rows.extend(gpu_rows(cpu.gpus))
    _text(rows, "HYPERVISOR", cpu.hypervisor)
    if cpu.frequency_ghz:
        _text(rows, "CPU FREQ", f"{cpu.frequency_ghz:.1f} GHz")
    _bar(rows, "LOAD  1m", cpu.load_1m)
    _bar(rows, "LOAD  5m", cpu.load_5m)
    _bar(rows, "LOAD 15m", cpu.load_15m)
    return rows


def gpu_rows(gpus: Sequence[str]) -> List[Row]:
    """One ``GPU`` row, numbered rows for two or three, one joined row beyond."""
    if not gpus:
        return []
    if len(gpus) == 1:
        return [("GPU", gpus[0], False)]
    if len(gpus) <= MAX_LISTED_GPUS:
        return [(f"GPU {index}", gpu, False) for index, gpu in enumerate(gpus, start=1)]
    return [("GPUs", ", ".join(gpus), False)]


def disk_rows(snapshot: Snapshot) -> List[Row]:
    disk = snapshot.disk
    rows: List[Row] = []
    if disk.total_bytes and disk.used_bytes is not None:
        volume = f"{format_gb(disk.used_bytes)}/{format_gb(disk.total_bytes)} GB"
        if disk.percent is not None:
            volume += f" [{disk.percent}%]"
        _text(rows, "VOLUME", volume)
    _bar(rows, "DISK USAGE", disk.percent)
    _text(rows, "ZFS HEALTH", disk.zfs_health)
    return rows


def memory_rows(snapshot: Snapshot) -> List[Row]:
    memory = snapshot.memory
    rows: List[Row] = []
    if memory.total_bytes and memory.used_bytes is not None:
        text = f"{memory.used_bytes / GB:.2f}/{memory.total_bytes / GB:.2f} GiB"
        if memory.percent is not None:
            text += f" [{memory.percent:.1f}%]"
        _text(rows, "MEMORY", text)
    _bar(rows, "USAGE", memory.percent)
    return rows


def session_rows(snapshot: Snapshot) -> List[Row]:
    session = snapshot.session
    rows: List[Row] = []
    _text(rows, "LAST LOGIN", session.last_login or UNKNOWN)
    _text(rows, "", session.last_login_ip)
    if session.uptime_seconds is not None:
        _text(rows, "UPTIME", format_uptime(session.uptime_seconds))
    _text(rows, "SHELL", session.shell)
    _text(rows, "TERMINAL", session.terminal)
    _text(rows, "LOCALE", session.locale)
    _text(rows, "BATTERY", session.battery)
    return rows


SECTIONS: Sequence[Callable[[Snapshot], List[Row]]] = (
    os_rows,
    network_rows,
    cpu_rows,
    disk_rows,
    memory_rows,
    session_rows,
)


def render_document(snapshot: Snapshot) -> Dict[str, Dict[str, Any]]:
    """Every domain key, every field; absent values are None and lists are lists."""
    document: Dict[str, Dict[str, Any]] = {}
    for domain in DOMAINS:
        section = asdict(getattr(snapshot, domain))
        document[domain] = {key: _plain_value(value) for key, value in section.items()}
    return document


def to_json(snapshot: Snapshot) -> str:
    return json.dumps(render_document(snapshot), ensure_ascii=False, indent=2)


def _plain_value(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 2)
    if isinstance(value, (list, tuple)):
        return [_plain_value(item) for item in value]
    return value


def _text(rows: List[Row], label: str, value: Optional[str]) -> None:
    if value:
        rows.append((label, value, False))


def _bar(rows: List[Row], label: str, percent: Optional[float]) -> None:
    if percent is not None:
        rows.append((label, percent, True))

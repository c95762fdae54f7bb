import json
from dataclasses import replace
from unittest.mock import patch

import pytest

from machine_report.collectors import DiskPartial, NetworkPartial, OsPartial, Volume, platform_extras
from machine_report.config import Config, OutputMode
from machine_report.fast_mode import policy
from machine_report.providers import CollectContext
from machine_report.report import DOMAINS, gpu_rows, render, render_document, render_table, to_json
from machine_report.system_state import (
    CpuInfo,
    DiskInfo,
    MemoryInfo,
    NetworkInfo,
    OsInfo,
    SessionInfo,
    Snapshot,
    aggregate,
)

GB = 1024**3
WIDTH = 51


def full_snapshot(**sections):
    snapshot = Snapshot(
        os=OsInfo(name="Ubuntu", version="24.04", kernel="6.8.0-45-generic", architecture="x86_64"),
        network=NetworkInfo(hostname="build-01", machine_ip="10.0.0.5", client_ip="203.0.113.9", dns_servers=("1.1.1.1", "8.8.8.8")),
        cpu=CpuInfo(
            processor="AMD EPYC 7763 64-Core Processor",
            cores=16,
            sockets=1,
            frequency_ghz=3.5,
            load_1m=50.0,
            load_5m=25.0,
            load_15m=12.5,
            hypervisor="KVM",
            gpus=("NVIDIA A100",),
        ),
        disk=DiskInfo(mount_point="/", used_bytes=50 * GB, total_bytes=100 * GB, percent=50),
        memory=MemoryInfo(used_bytes=8 * GB, total_bytes=32 * GB, percent=25.0),
        session=SessionInfo(
            username="dev",
            last_login="Mon Jan  1 10:00",
            last_login_ip="198.51.100.7",
            uptime_seconds=90061,
            shell="bash",
            terminal="xterm-256color",
            locale="en_US.UTF-8",
        ),
    )
    return replace(snapshot, **sections)


def table_rows(snapshot, config=None):
    text = render_table(snapshot, config or Config(color=False)).plain
    rows = []
    for line in text.splitlines():
        if line.startswith("│ ") and line[14:17] == " │ ":
            rows.append((line[2:14].rstrip(), line[17:49].rstrip()))
    return rows


def labels(snapshot):
    return [label for label, _ in table_rows(snapshot)]


def value_of(snapshot, label):
    return dict(table_rows(snapshot))[label]


def test_full_table_rows_in_order():
    assert labels(full_snapshot()) == [
        "OS",
        "KERNEL",
        "ARCH",
        "HOSTNAME",
        "MACHINE IP",
        "CLIENT  IP",
        "DNS  IP 1",
        "DNS  IP 2",
        "USER",
        "PROCESSOR",
        "CORES",
        "GPU",
        "HYPERVISOR",
        "CPU FREQ",
        "LOAD  1m",
        "LOAD  5m",
        "LOAD 15m",
        "VOLUME",
        "DISK USAGE",
        "MEMORY",
        "USAGE",
        "LAST LOGIN",
        "",
        "UPTIME",
        "SHELL",
        "TERMINAL",
        "LOCALE",
    ]


def test_formatted_values():
    snapshot = full_snapshot()

    assert value_of(snapshot, "OS") == "Ubuntu 24.04"
    assert value_of(snapshot, "CORES") == "16 vCPU(s) / 1 Socket(s)"
    assert value_of(snapshot, "CPU FREQ") == "3.5 GHz"
    assert value_of(snapshot, "VOLUME") == "50.00/100.00 GB [50%]"
    assert value_of(snapshot, "MEMORY") == "8.00/32.00 GiB [25.0%]"
    assert value_of(snapshot, "UPTIME") == "1d 1h 1m"
    assert value_of(snapshot, "") == "198.51.100.7"


@pytest.mark.parametrize("mode", [OutputMode.TABLE, OutputMode.ASCII])
def test_every_table_line_has_the_same_width(mode):
    snapshot = full_snapshot(cpu=replace(full_snapshot().cpu, processor="x" * 80))
    text = render_table(snapshot, Config(mode=mode, title="T" * 80)).plain

    assert {len(line) for line in text.splitlines()} == {WIDTH}


def test_ascii_table_contains_only_ascii():
    text = render_table(full_snapshot(), Config(mode=OutputMode.ASCII, color=False)).plain

    assert text.isascii()
    assert "#" * 16 + "." * 16 in text


def test_title_override_and_default():
    assert "CUSTOM TITLE" in render_table(full_snapshot(), Config(title="CUSTOM TITLE")).plain
    default = render_table(full_snapshot(), Config()).plain.splitlines()
    assert default[2].strip("│ ") == "MACHINE REPORT"
    assert default[3].strip("│ ") == "SYSTEM SNAPSHOT"


@pytest.mark.parametrize(
    "gpus, expected",
    [
        ((), []),
        (("A",), [("GPU", "A")]),
        (("A", "B"), [("GPU 1", "A"), ("GPU 2", "B")]),
        (("A", "B", "C"), [("GPU 1", "A"), ("GPU 2", "B"), ("GPU 3", "C")]),
        (("A", "B", "C", "D", "E"), [("GPUs", "A, B, C, D, E")]),
    ],
)
def test_gpu_row_rules(gpus, expected):
    assert [(label, value) for label, value, _ in gpu_rows(gpus)] == expected
    snapshot = full_snapshot(cpu=replace(full_snapshot().cpu, gpus=gpus))
    assert [row for row in table_rows(snapshot) if row[0].startswith("GPU")] == expected


def test_dns_rows_stop_at_five():
    servers = tuple(f"10.0.0.{n}" for n in range(1, 9))
    snapshot = aggregate({"network": NetworkPartial(hostname="box", dns_servers=servers)})

    dns = [(label, value) for label, value in table_rows(snapshot) if label.startswith("DNS")]

    assert dns == [(f"DNS  IP {n}", f"10.0.0.{n}") for n in range(1, 6)]


def test_empty_snapshot_keeps_only_placeholders():
    rows = table_rows(Snapshot())

    assert rows == [("CLIENT  IP", "Not connected"), ("LAST LOGIN", "Unknown")]


def test_absent_optional_fields_drop_their_rows():
    snapshot = full_snapshot(
        os=replace(full_snapshot().os, kernel=None),
        cpu=replace(full_snapshot().cpu, hypervisor=None, load_1m=None),
        session=replace(full_snapshot().session, last_login_ip=None, shell=""),
    )

    rows = labels(snapshot)

    assert "KERNEL" not in rows
    assert "HYPERVISOR" not in rows
    assert "LOAD  1m" not in rows
    assert "SHELL" not in rows
    assert "" not in rows
    assert "LOAD  5m" in rows


def test_color_is_carried_by_spans_only():
    colored = render_table(full_snapshot(), Config(color=True))
    plain = render_table(full_snapshot(), Config(color=False))

    assert colored.plain == plain.plain
    assert any(span.style == "bold cyan" for span in colored.spans)
    assert not any(span.style for span in plain.spans)


def test_render_dispatches_on_mode():
    assert isinstance(render(full_snapshot(), Config(mode=OutputMode.JSON)), str)
    assert render(full_snapshot(), Config()).plain == render_table(full_snapshot(), Config()).plain


def test_document_always_has_six_domains_with_nulls():
    document = json.loads(to_json(Snapshot()))

    assert tuple(document) == DOMAINS
    assert document["network"]["dns_servers"] == []
    assert document["cpu"]["gpus"] == []
    assert document["cpu"]["hypervisor"] is None
    assert document["session"]["last_login"] is None
    assert all(value in (None, []) for section in document.values() for value in section.values())


def test_document_fields():
    document = render_document(full_snapshot())

    assert document["os"]["name"] == "Ubuntu"
    assert document["network"]["dns_servers"] == ["1.1.1.1", "8.8.8.8"]
    assert document["cpu"]["gpus"] == ["NVIDIA A100"]
    assert document["cpu"]["frequency_ghz"] == 3.5
    assert document["disk"]["percent"] == 50
    assert document["memory"]["total_bytes"] == 32 * GB
    assert document["session"]["uptime_seconds"] == 90061


def test_json_escapes_quotes_and_control_characters():
    snapshot = full_snapshot(network=replace(full_snapshot().network, hostname='bad"host\nname\t'))

    output = to_json(snapshot)

    assert '"bad\\"host\\nname\\t"' in output
    assert json.loads(output)["network"]["hostname"] == 'bad"host\nname\t'


def test_scenario_disk_half_full_fills_half_the_bar():
    snapshot = aggregate(
        {"disk": DiskPartial(volumes=(Volume("/", 100 * GB, 50 * GB),))},
    )

    bar = value_of(snapshot, "DISK USAGE")

    assert bar.count("█") == 16
    assert bar.count("░") == 16


def test_scenario_no_dns_servers():
    snapshot = aggregate({"network": NetworkPartial(hostname="box", dns_servers=())})

    assert not any(label.startswith("DNS") for label in labels(snapshot))
    assert render_document(snapshot)["network"]["dns_servers"] == []


@patch("machine_report.collectors.platform_extras.psutil.sensors_battery", return_value=None)
def test_scenario_fast_mode_on_windows_drops_gpu_and_hypervisor(mock_battery, fake_host):
    host = fake_host(
        system="windows",
        commands={
            "powershell Win32_VideoController": "NVIDIA GeForce RTX 4070\n",
            "powershell Win32_ComputerSystem).Manufacturer": "Microsoft Corporation|Virtual Machine\n",
        },
    )
    others = {
        "os": OsPartial(name="Windows", version="11 (22631)", architecture="AMD64"),
        "disk": DiskPartial(volumes=(Volume("C:\\", 500 * GB, 250 * GB),)),
        "network": NetworkPartial(hostname="desk"),
    }

    normal = aggregate(dict(others, platform=platform_extras.collect(CollectContext(host))))
    fast = aggregate(dict(others, platform=platform_extras.collect(CollectContext(host, policy("windows", True)))))

    assert normal.cpu.gpus == ("NVIDIA GeForce RTX 4070",)
    assert normal.cpu.hypervisor == "Hyper-V"
    assert fast.cpu.gpus == ()
    assert fast.cpu.hypervisor is None
    assert fast.network == normal.network
    assert fast.disk == normal.disk
    assert fast.memory == normal.memory
    assert fast.session == normal.session
    assert fast.os.name == normal.os.name

    fast_labels = labels(fast)
    assert "HYPERVISOR" not in fast_labels
    assert not any(label.startswith("GPU") for label in fast_labels)
    assert "HYPERVISOR" in labels(normal)
    document = render_document(fast)
    assert document["cpu"]["gpus"] == []
    assert document["cpu"]["hypervisor"] is None

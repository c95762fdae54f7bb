import itertools
import random
import time
from dataclasses import FrozenInstanceError

import pytest

from machine_report.collectors import (
    CpuPartial,
    DiskPartial,
    MemoryPartial,
    NetworkPartial,
    OsPartial,
    PlatformPartial,
    SessionPartial,
    Volume,
)
from machine_report.errors import FatalStartupError
from machine_report.system_state import (
    BARE_METAL,
    Snapshot,
    aggregate,
    gather_snapshot,
    hypervisor_label,
    memory_percent,
    percent_of,
    select_volume,
)

GB = 1024**3


def make_partials():
    return {
        "os": OsPartial(name="Ubuntu", version="24.04", kernel="6.8.0", architecture="x86_64", sources={"os.name": "os-release"}),
        "cpu": CpuPartial(
            processor="AMD Ryzen 7 7840U",
            logical_cores=16,
            physical_cores=8,
            sockets=1,
            frequency_mhz=5100.0,
            usage_percent=12.5,
            per_core_percent=(10.0, 15.0),
            load_percent=(25.0, 12.5, 6.25),
            sources={"cpu.load": "/proc/loadavg"},
        ),
        "memory": MemoryPartial(total_bytes=32 * GB, used_bytes=8 * GB, available_bytes=24 * GB),
        "disk": DiskPartial(volumes=(Volume("/", 100 * GB, 50 * GB),)),
        "network": NetworkPartial(hostname="box", machine_ip="10.0.0.5", dns_servers=("1.1.1.1",)),
        "session": SessionPartial(username="dev", last_login="Mon Jan  1 10:00", uptime_seconds=3600),
        "platform": PlatformPartial(gpus=("Radeon 780M",), battery="80% (Charging)"),
    }


def test_aggregate_is_independent_of_completion_order():
    partials = make_partials()
    expected = aggregate(partials)

    for order in itertools.permutations(partials):
        assert aggregate({domain: partials[domain] for domain in order}) == expected


def test_aggregate_derives_cross_domain_values():
    snapshot = aggregate(make_partials())

    assert snapshot.disk.percent == 50
    assert snapshot.disk.mount_point == "/"
    assert snapshot.memory.percent == 25.0
    assert snapshot.cpu.frequency_ghz == 5.1
    assert snapshot.cpu.load_1m == 25.0
    assert snapshot.cpu.hypervisor == BARE_METAL
    assert snapshot.cpu.gpus == ("Radeon 780M",)
    assert snapshot.session.battery == "80% (Charging)"
    assert snapshot.sources == (("cpu.load", "/proc/loadavg"), ("os.name", "os-release"))


def test_aggregate_of_nothing_is_an_empty_snapshot():
    snapshot = aggregate({})

    assert snapshot.os.name is None
    assert snapshot.disk.percent is None
    assert snapshot.network.dns_servers == ()
    assert snapshot.cpu.hypervisor == BARE_METAL


def test_select_volume_prefers_root():
    volumes = (Volume("/home", 200 * GB, 10 * GB), Volume("/", 100 * GB, 40 * GB))

    assert select_volume(volumes) == ("/", 40 * GB, 100 * GB)


def test_select_volume_prefers_windows_system_drive():
    volumes = (Volume("D:\\", 500 * GB, 100 * GB), Volume("C:\\", 250 * GB, 200 * GB))

    assert select_volume(volumes) == ("C:\\", 200 * GB, 250 * GB)


def test_select_volume_sums_fixed_volumes_without_root():
    volumes = (
        Volume("/data", 100 * GB, 30 * GB),
        Volume("/srv", 100 * GB, 50 * GB),
        Volume("/media/usb", 64 * GB, 60 * GB, removable=True),
    )

    assert select_volume(volumes) == (None, 80 * GB, 200 * GB)


def test_select_volume_falls_back_to_first_volume():
    volumes = (Volume("/media/usb", 64 * GB, 32 * GB, removable=True),)

    assert select_volume(volumes) == ("/media/usb", 32 * GB, 64 * GB)
    assert select_volume(()) == (None, None, None)


@pytest.mark.parametrize(
    "used, total, expected",
    [(50, 100, 50), (1, 200, 1), (1, 201, 0), (0, 100, 0), (150, 100, 100), (5, 0, None), (None, 100, None)],
)
def test_percent_of_rounds_half_up_and_clamps(used, total, expected):
    assert percent_of(used, total) == expected


def test_memory_percent_of_physical_ram():
    assert memory_percent(8 * GB, 32 * GB) == 25.0
    assert memory_percent(1, 3) == 33.3
    assert memory_percent(None, 32 * GB) is None


def test_hypervisor_label_rules():
    assert hypervisor_label(PlatformPartial()) == BARE_METAL
    assert hypervisor_label(PlatformPartial(virtualization="VMware")) == "VMware"
    assert hypervisor_label(PlatformPartial(skipped=frozenset({"platform.virtualization"}))) is None


def test_gather_snapshot_joins_every_collector(fake_host):
    partials = make_partials()

    def delayed(domain):
        def collect(ctx):
            time.sleep(random.uniform(0, 0.02))
            return partials[domain]

        return collect

    collectors = {domain: delayed(domain) for domain in partials}

    first = gather_snapshot(host=fake_host(), collectors=collectors)
    second = gather_snapshot(host=fake_host(), collectors=collectors)

    assert first == second == aggregate(partials)


def test_gather_snapshot_replaces_a_crashed_collector(fake_host, caplog):
    partials = make_partials()
    collectors = {domain: (lambda ctx, partial=partial: partial) for domain, partial in partials.items()}

    def crash(ctx):
        raise RuntimeError("boom")

    collectors["network"] = crash

    snapshot = gather_snapshot(host=fake_host(), collectors=collectors)

    assert snapshot.network.hostname is None
    assert snapshot.os.name == "Ubuntu"
    assert "network collector failed" in caplog.text


def test_gather_snapshot_passes_fast_policy_to_collectors(fake_host):
    seen = {}

    def collect(ctx):
        seen["gpus"] = ctx.is_skipped("platform.gpus")
        return PlatformPartial()

    gather_snapshot(fast=True, host=fake_host(system="windows"), collectors={"platform": collect})

    assert seen["gpus"] is True


def test_gather_snapshot_requires_a_platform(fake_host):
    with pytest.raises(FatalStartupError):
        gather_snapshot(host=fake_host(system=""))


def test_snapshot_is_immutable():
    snapshot = Snapshot()

    with pytest.raises(FrozenInstanceError):
        snapshot.os = None

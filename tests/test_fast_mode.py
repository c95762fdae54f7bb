import pytest

from machine_report import fast_mode
from machine_report.collectors import cpu, network, platform_extras, session
from machine_report.providers import SKIP_ALL

CHAINS = {
    "cpu.processor": cpu.processor_chain,
    "cpu.sockets": cpu.sockets_chain,
    "platform.gpus": platform_extras.gpu_chain,
    "platform.virtualization": platform_extras.virtualization_chain,
    "platform.battery": platform_extras.battery_chain,
    "session.shell": session.shell_chain,
    "session.locale": session.locale_chain,
    "network.machine_ip": network.machine_ip_chain,
    "network.dns_servers": network.dns_chain,
}


def test_policy_is_empty_without_fast_flag():
    assert fast_mode.policy("windows", False) == {}
    assert fast_mode.policy("linux", False) == {}


def test_cpu_usage_sample_is_skipped_everywhere():
    for system in ("linux", "darwin", "windows"):
        assert fast_mode.skips_for(system)["cpu.usage"] == frozenset({SKIP_ALL})


def test_windows_drops_gpu_and_virtualization_probes():
    skips = fast_mode.policy("windows", True)

    assert skips["platform.gpus"] == frozenset({SKIP_ALL})
    assert skips["platform.virtualization"] == frozenset({SKIP_ALL})
    assert skips["session.last_login"] == frozenset({SKIP_ALL})


def test_other_platforms_keep_their_own_entries():
    linux = fast_mode.skips_for("linux")
    darwin = fast_mode.skips_for("darwin")

    assert linux["platform.gpus"] == frozenset({"lspci", "pynvml", "nvidia-smi"})
    assert linux["cpu.processor"] == frozenset({"py-cpuinfo"})
    assert "platform.virtualization" not in linux
    assert darwin["platform.gpus"] == frozenset({"system_profiler SPDisplaysDataType"})
    assert "session.last_login" not in darwin


@pytest.mark.parametrize("system", ["linux", "darwin", "windows"])
def test_named_skips_match_real_strategies(system):
    for field_name, names in fast_mode.skips_for(system).items():
        if SKIP_ALL in names or field_name not in CHAINS:
            continue
        chain = CHAINS[field_name](system)
        assert chain.field == field_name
        assert names <= set(chain.names), field_name


def test_sockets_still_fall_back_to_one_when_probe_is_skipped(fake_host):
    chain = cpu.sockets_chain("linux")
    host = fake_host(commands={"lscpu": "Socket(s):  2\n"})

    assert chain.resolve(host).value == 2
    assert chain.resolve(host, fast_mode.skips_for("linux")["cpu.sockets"]).value == 1

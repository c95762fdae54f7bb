from typing import Dict, List, Mapping, Optional, Tuple

import pytest

from machine_report.providers import CollectContext, Host


class FakeHost(Host):
    """Host with canned command output, files, environment and registry values."""

    def __init__(
        self,
        system: str = "linux",
        commands: Optional[Mapping[str, str]] = None,
        files: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        registry: Optional[Mapping[Tuple[str, str], str]] = None,
    ) -> None:
        super().__init__(system="linux", environ=environ or {})
        self.system = system
        self.commands: Dict[str, str] = dict(commands or {})
        self.files: Dict[str, str] = dict(files or {})
        self.registry: Dict[Tuple[str, str], str] = dict(registry or {})
        self.calls: List[str] = []

    def run(self, *argv: str, timeout: Optional[float] = None) -> Optional[str]:
        command = " ".join(argv)
        self.calls.append(command)
        return self.commands.get(command)

    def powershell(self, command: str) -> Optional[str]:
        # keys look like "powershell <fragment of the script>"
        self.calls.append(f"powershell {command}")
        for key, output in self.commands.items():
            if key.startswith("powershell ") and key[len("powershell "):] in command:
                return output
        return None

    def read_text(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def exists(self, path: str) -> bool:
        return path in self.files

    def registry_value(self, key: str, name: str) -> Optional[str]:
        return self.registry.get((key, name))

    def registry_subkeys(self, key: str) -> List[str]:
        prefix = key + "\\"
        return sorted({k[len(prefix):] for k, _ in self.registry if k.startswith(prefix)})

    def which(self, name: str) -> bool:
        return any(command.split()[0] == name for command in self.commands)


@pytest.fixture
def fake_host():
    return FakeHost


@pytest.fixture
def make_ctx():
    def factory(host: Host, skips=None) -> CollectContext:
        return CollectContext(host=host, skips=skips or {})

    return factory

"""Shared test fixtures."""

from pathlib import Path

import pytest

from envmirror.adapters.base import Availability, DetectResult, Environment
from envmirror.config import (
    Config,
    EnvironmentRef,
    EnvKind,
    FileMapping,
    SshConnection,
)
from envmirror.errors import EnvironmentUnavailableError, TransferError
from envmirror.paths import PathTranslator


class FakeEnvironment(Environment):
    """In-memory remote: files are kept in ``self.files`` keyed by path."""

    kind = EnvKind.WSL

    def __init__(self, available=True, failing=(), unreachable_after=None, resolved=None):
        self.files = {}
        self.writes = []
        self.removed = []
        self.identities = set()
        self.resolved = resolved
        self.available = available
        self.failing = set(failing)
        self.unreachable_after = unreachable_after

    def detect(self):
        return DetectResult(True, ["Ubuntu"])

    def check_availability(self, identity):
        if not self.available:
            return Availability(False, error=f"WSL distro '{identity}' not found")
        return Availability(True, running_state="Running")

    def command(self, identity, script):
        return ["fake", identity, script]

    def resolve_identity(self, identity):
        return self.resolved or identity

    def display_name(self, identity):
        return f"fake {identity}"

    def read_file(self, identity, path, timeout=None):
        self.identities.add(identity)
        return self.files.get(path)

    def write_file(self, identity, path, data, timeout=None):
        if self.unreachable_after is not None and len(self.writes) >= self.unreachable_after:
            raise EnvironmentUnavailableError("connection lost")
        if path in self.failing:
            raise TransferError(f"Writing {path} failed: permission denied")
        self.identities.add(identity)
        self.writes.append(path)
        self.files[path] = data

    def list_directory(self, identity, path, timeout=None):
        prefix = path.rstrip("/") + "/"
        return sorted({p[len(prefix):].split("/")[0] for p in self.files if p.startswith(prefix)})

    def remove_path(self, identity, path, timeout=None):
        self.removed.append(path)
        prefix = path.rstrip("/") + "/"
        for p in [p for p in self.files if p == path or p.startswith(prefix)]:
            del self.files[p]


@pytest.fixture
def tmp_config(tmp_path):
    """Return a path for a temporary config file."""
    return tmp_path / "config.json"


@pytest.fixture
def config_env(tmp_path, monkeypatch):
    """Point the default config path at a temporary file."""
    path = tmp_path / "cfg" / "config.json"
    monkeypatch.setenv("ENVMIRROR_CONFIG", str(path))
    return path


@pytest.fixture
def make_env():
    return FakeEnvironment


@pytest.fixture
def fake_env(make_env):
    return make_env()


@pytest.fixture
def wsl_target():
    return EnvironmentRef(EnvKind.WSL, "Ubuntu")


@pytest.fixture
def translator(tmp_path):
    """A POSIX host translator whose home is a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    return PathTranslator({"HOME": str(home)}, windows=False)


@pytest.fixture
def home(translator):
    return Path(translator.home())


@pytest.fixture
def sample_config():
    """Return a sample Config object."""
    return Config(
        environment=EnvironmentRef(EnvKind.SSH, "box"),
        sync_skills=False,
        transfer_timeout=30.0,
        file_mappings=[
            FileMapping(
                id="claude-settings",
                name="Claude Code settings",
                module="claude",
                local_path="~/.claude/settings.json",
                remote_path="~/.claude/settings.json",
            ),
            FileMapping(
                id="opencode-plugins",
                name="OpenCode plugins",
                module="opencode",
                local_path="~/.config/opencode/*.mjs",
                remote_path="~/.config/opencode/",
                is_pattern=True,
                enabled=False,
            ),
        ],
        connections={
            "box": SshConnection(
                id="box",
                host="box.example.com",
                name="Build box",
                port=2222,
                username="dev",
                private_key_path="~/.ssh/id_box",
            )
        },
    )

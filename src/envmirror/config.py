"""Configuration management for envmirror."""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from envmirror.errors import ValidationError

if TYPE_CHECKING:
    from envmirror.events import EventBus
    from envmirror.sync import SyncResult

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "envmirror"
CONFIG_FILE = CONFIG_DIR / "config.json"
CONFIG_VERSION = 1
DEFAULT_TRANSFER_TIMEOUT = 60.0


def default_config_path() -> Path:
    override = os.environ.get("ENVMIRROR_CONFIG")
    return Path(override).expanduser() if override else CONFIG_FILE


class EnvKind(str, enum.Enum):
    """Kinds of environment a path can live in."""

    LOCAL = "local"
    WSL = "wsl"
    SSH = "ssh"

    @property
    def is_remote(self) -> bool:
        return self is not EnvKind.LOCAL


class Module(str, enum.Enum):
    """The AI tool a mapping belongs to."""

    OPENCODE = "opencode"
    CLAUDE = "claude"
    CODEX = "codex"
    OPENCLAW = "openclaw"

    @classmethod
    def parse(cls, value: str | Module) -> Module:
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValidationError(
                f"Unknown module '{value}' (expected one of: {valid})"
            ) from None


@dataclass(frozen=True)
class EnvironmentRef:
    """Which environment a sync session targets."""

    kind: EnvKind
    identity: str = ""

    def __post_init__(self):
        object.__setattr__(self, "kind", EnvKind(self.kind))

    def __str__(self) -> str:
        if self.kind is EnvKind.LOCAL:
            return "local"
        return f"{self.kind.value}:{self.identity}"


LOCAL_HOST = EnvironmentRef(EnvKind.LOCAL, "host")


@dataclass
class FileMapping:
    """A local path mirrored to a remote path."""

    id: str
    name: str
    module: Module
    local_path: str
    remote_path: str
    enabled: bool = True
    is_pattern: bool = False
    is_directory: bool = False
    recursive: bool = False

    def __post_init__(self):
        self.module = Module.parse(self.module)
        if not self.id:
            raise ValidationError("Mapping id must not be empty")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "module": self.module.value,
            "local_path": self.local_path,
            "remote_path": self.remote_path,
            "enabled": self.enabled,
            "is_pattern": self.is_pattern,
            "is_directory": self.is_directory,
        }
        if self.recursive:
            d["recursive"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict) -> FileMapping:
        return cls(
            id=d["id"],
            name=d.get("name", d["id"]),
            module=d["module"],
            local_path=d["local_path"],
            remote_path=d["remote_path"],
            enabled=d.get("enabled", True),
            is_pattern=d.get("is_pattern", False),
            is_directory=d.get("is_directory", False),
            recursive=d.get("recursive", False),
        )


@dataclass
class SshConnection:
    """An SSH connection preset. Authentication is left to the ssh client."""

    id: str
    host: str
    name: str = ""
    port: int = 22
    username: str = ""
    private_key_path: str = ""

    @property
    def destination(self) -> str:
        return f"{self.username}@{self.host}" if self.username else self.host


@dataclass
class SyncStatus:
    """Outcome of the most recent sync pass."""

    last_sync_time: str | None = None
    last_sync_status: str = "never"
    last_sync_error: str | None = None


@dataclass
class Config:
    """Root configuration object."""

    version: int = CONFIG_VERSION
    environment: EnvironmentRef | None = None
    sync_mcp: bool = True
    sync_skills: bool = True
    transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT
    file_mappings: list[FileMapping] = field(default_factory=list)
    connections: dict[str, SshConnection] = field(default_factory=dict)
    status: SyncStatus = field(default_factory=SyncStatus)

    def get_mapping(self, mapping_id: str) -> FileMapping | None:
        for m in self.file_mappings:
            if m.id == mapping_id:
                return m
        return None

    def get_connection(self, connection_id: str) -> SshConnection | None:
        return self.connections.get(connection_id)


def _connection_from_dict(cid: str, d: dict) -> SshConnection:
    return SshConnection(
        id=cid,
        host=d["host"],
        name=d.get("name", ""),
        port=int(d.get("port", 22)),
        username=d.get("username", ""),
        private_key_path=d.get("private_key_path", ""),
    )


def load_config(path: Path | None = None) -> Config:
    """Load config from disk. Returns empty Config if file doesn't exist."""
    path = path or default_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e

    environment = None
    if data.get("environment"):
        env = data["environment"]
        environment = EnvironmentRef(EnvKind(env["kind"]), env.get("identity", ""))

    connections = {}
    for cid, cconf in data.get("connections", {}).items():
        connections[cid] = _connection_from_dict(cid, cconf)

    status = data.get("status", {})

    return Config(
        version=data.get("version", CONFIG_VERSION),
        environment=environment,
        sync_mcp=data.get("sync_mcp", True),
        sync_skills=data.get("sync_skills", True),
        transfer_timeout=float(
            data.get("transfer_timeout", DEFAULT_TRANSFER_TIMEOUT)
        ),
        file_mappings=[FileMapping.from_dict(m) for m in data.get("file_mappings", [])],
        connections=connections,
        status=SyncStatus(
            last_sync_time=status.get("last_sync_time"),
            last_sync_status=status.get("last_sync_status", "never"),
            last_sync_error=status.get("last_sync_error"),
        ),
    )


def save_config(config: Config, path: Path | None = None) -> None:
    """Save config to disk."""
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "version": config.version,
        "sync_mcp": config.sync_mcp,
        "sync_skills": config.sync_skills,
        "transfer_timeout": config.transfer_timeout,
        "file_mappings": [m.to_dict() for m in config.file_mappings],
        "connections": {},
        "status": {
            "last_sync_time": config.status.last_sync_time,
            "last_sync_status": config.status.last_sync_status,
            "last_sync_error": config.status.last_sync_error,
        },
    }
    if config.environment:
        data["environment"] = {
            "kind": config.environment.kind.value,
            "identity": config.environment.identity,
        }

    for cid, conn in config.connections.items():
        cd: dict[str, Any] = {"host": conn.host, "port": conn.port}
        if conn.name:
            cd["name"] = conn.name
        if conn.username:
            cd["username"] = conn.username
        if conn.private_key_path:
            cd["private_key_path"] = conn.private_key_path
        data["connections"][cid] = cd

    path.write_text(json.dumps(data, indent=2) + "\n")


class MappingStore:
    """CRUD over the persisted file mappings, keyed by id."""

    def __init__(self, path: Path | None = None):
        self.path = path or default_config_path()

    def list(self) -> list[FileMapping]:
        return list(load_config(self.path).file_mappings)

    def get(self, mapping_id: str) -> FileMapping | None:
        return load_config(self.path).get_mapping(mapping_id)

    def add(self, mapping: FileMapping) -> None:
        config = load_config(self.path)
        if config.get_mapping(mapping.id):
            raise ValueError(f"Mapping '{mapping.id}' already exists")
        config.file_mappings.append(mapping)
        save_config(config, self.path)

    def update(self, mapping_id: str, **changes: Any) -> FileMapping:
        config = load_config(self.path)
        for i, m in enumerate(config.file_mappings):
            if m.id == mapping_id:
                updated = replace(m, **changes)
                config.file_mappings[i] = updated
                save_config(config, self.path)
                return updated
        raise KeyError(mapping_id)

    def delete(self, mapping_id: str) -> None:
        config = load_config(self.path)
        remaining = [m for m in config.file_mappings if m.id != mapping_id]
        if len(remaining) == len(config.file_mappings):
            raise KeyError(mapping_id)
        config.file_mappings = remaining
        save_config(config, self.path)

    def reset(self) -> None:
        """Delete every mapping."""
        config = load_config(self.path)
        config.file_mappings = []
        save_config(config, self.path)


class StatusStore:
    """Persists the last sync time, status and error."""

    def __init__(self, path: Path | None = None):
        self.path = path or default_config_path()

    def get(self) -> SyncStatus:
        return load_config(self.path).status

    def record(self, result: SyncResult, now: datetime | None = None) -> SyncStatus:
        config = load_config(self.path)
        now = now or datetime.now().astimezone()
        if result.success:
            status = SyncStatus(now.isoformat(), "success", None)
        else:
            status = SyncStatus(now.isoformat(), "error", "; ".join(result.errors))
        config.status = status
        save_config(config, self.path)
        return status


class ConfigState(str, enum.Enum):
    IDLE = "idle"
    SAVING_DEFAULTS = "saving_defaults"


class ConfigManager:
    """Loads the config, seeding default mappings the first time.

    Seeding saves the config and emits ``config-changed``. Listeners that
    reload on that event would otherwise loop, so reloads requested while
    the manager is in ``SAVING_DEFAULTS`` return the config being written.
    """

    def __init__(
        self,
        path: Path | None = None,
        events: EventBus | None = None,
        defaults: Callable[[], list[FileMapping]] | None = None,
    ):
        self.path = path or default_config_path()
        self.events = events
        self.defaults = defaults
        self.state = ConfigState.IDLE
        self._pending: Config | None = None

    def load(self) -> Config:
        if self.state is ConfigState.SAVING_DEFAULTS:
            logger.debug("Reload requested while seeding defaults, ignoring")
            return self._pending

        config = load_config(self.path)
        if config.file_mappings:
            return config

        if self.defaults is None:
            from envmirror.profiles import default_mappings

            self.defaults = default_mappings

        self.state = ConfigState.SAVING_DEFAULTS
        self._pending = config
        try:
            config.file_mappings = self.defaults()
            save_config(config, self.path)
            logger.info("Seeded %d default mappings", len(config.file_mappings))
            self.notify_changed()
        finally:
            self.state = ConfigState.IDLE
            self._pending = None
        return config

    def save(self, config: Config) -> None:
        save_config(config, self.path)
        self.notify_changed()

    def notify_changed(self) -> None:
        if self.events is not None:
            from envmirror.events import CONFIG_CHANGED

            self.events.emit(CONFIG_CHANGED, {"path": str(self.path)})

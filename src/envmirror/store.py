"""JSON persistence for MCP servers and skills."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from envmirror.config import default_config_path

MCP = "mcpServers"
SKILLS = "skills"
KINDS = (MCP, SKILLS)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class McpServer:
    """An MCP server definition. ``server_config`` is kept as opaque JSON."""

    id: str
    name: str
    server_type: str
    server_config: dict[str, Any]
    enabled_tools: list[str] = field(default_factory=lambda: ["claude_code"])
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "server_type": self.server_type,
            "server_config": self.server_config,
            "enabled_tools": self.enabled_tools,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> McpServer:
        return cls(
            id=d["id"],
            name=d["name"],
            server_type=d.get("server_type", "stdio"),
            server_config=d.get("server_config", {}),
            enabled_tools=list(d.get("enabled_tools", ["claude_code"])),
            created_at=int(d.get("created_at", 0)),
        )


@dataclass
class Skill:
    """A managed skill whose files live in ``central_path`` on the host."""

    id: str
    name: str
    central_path: str
    source_type: str = "local"
    source_ref: str | None = None
    content_hash: str | None = None
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "central_path": self.central_path,
            "source_type": self.source_type,
            "source_ref": self.source_ref,
            "content_hash": self.content_hash,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Skill:
        return cls(
            id=d["id"],
            name=d["name"],
            central_path=d["central_path"],
            source_type=d.get("source_type", "local"),
            source_ref=d.get("source_ref"),
            content_hash=d.get("content_hash"),
            created_at=int(d.get("created_at", 0)),
        )


Entity = Union[McpServer, Skill]

_FACTORIES = {MCP: McpServer.from_dict, SKILLS: Skill.from_dict}


def default_store_path() -> Path:
    return default_config_path().parent / "entities.json"


class EntityStore:
    """Keeps MCP servers and skills in one JSON document."""

    def __init__(self, path: Path | None = None):
        self.path = path or default_store_path()
        self._entities: dict[str, list] = {kind: [] for kind in KINDS}
        if self.path.exists():
            data = json.loads(self.path.read_text())
            for kind in KINDS:
                self._entities[kind] = [_FACTORIES[kind](d) for d in data.get(kind, [])]

    def entities(self, kind: str) -> list:
        return list(self._entities[kind])

    @property
    def servers(self) -> list[McpServer]:
        return self.entities(MCP)

    @property
    def skills(self) -> list[Skill]:
        return self.entities(SKILLS)

    def add(self, kind: str, entity: Entity) -> None:
        self._entities[kind].append(entity)
        self.save()

    def delete(self, kind: str, entity_ids: set[str]) -> int:
        before = len(self._entities[kind])
        self._entities[kind] = [e for e in self._entities[kind] if e.id not in entity_ids]
        removed = before - len(self._entities[kind])
        if removed:
            self.save()
        return removed

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {kind: [e.to_dict() for e in self._entities[kind]] for kind in KINDS}
        self.path.write_text(json.dumps(data, indent=2) + "\n")


def servers_from_document(doc: dict) -> list[McpServer]:
    """Build McpServer candidates from a keyed JSON document.

    Accepts either ``{"mcpServers": {name: config}}`` or a bare
    ``{name: config}`` mapping. Ids and timestamps are assigned on import.
    """
    from envmirror.fingerprint import unwrap_cmd_c

    servers_doc = doc.get(MCP, doc)
    if not isinstance(servers_doc, dict):
        raise ValueError("Expected an object of MCP server definitions")

    servers = []
    for name, cfg in servers_doc.items():
        if not isinstance(cfg, dict):
            raise ValueError(f"Server '{name}' is not an object")
        server_type = cfg.get("type") or ("http" if "url" in cfg else "stdio")
        servers.append(
            McpServer(
                id="",
                name=name,
                server_type=server_type,
                server_config=unwrap_cmd_c(dict(cfg, type=server_type)),
            )
        )
    return servers


def skills_from_directory(path: Path) -> list[Skill]:
    """Every sub-directory of ``path`` holding a SKILL.md is a skill."""
    from envmirror.fingerprint import directory_fingerprint

    skills = []
    for d in sorted(path.iterdir()):
        if d.is_dir() and (d / "SKILL.md").is_file():
            skills.append(
                Skill(
                    id="",
                    name=d.name,
                    central_path=str(d.resolve()),
                    source_type="import",
                    source_ref=str(d),
                    content_hash=directory_fingerprint(d),
                )
            )
    return skills

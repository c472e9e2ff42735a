"""Stable fingerprints for detecting semantically duplicate entities.

A fingerprint describes what an entity *is*, not what it is called: two
MCP servers launching the same command with the same arguments share a
fingerprint whatever their names or ids. Fingerprints are compared with
entities loaded from disk by other processes, so they are built only from
hashlib digests and sorted JSON, never from ``hash()`` or dict order.
"""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable

from envmirror.config import FileMapping
from envmirror.store import McpServer, Skill

_CMD_SHELLS = ("cmd", "cmd.exe")
_WINDOWS_SUFFIXES = (".cmd", ".exe", ".bat")


def unwrap_cmd_c(server_config: dict[str, Any]) -> dict[str, Any]:
    """Remove a ``cmd /c`` wrapper from a stdio server config.

    ``{"command": "cmd", "args": ["/c", "npx", "-y", "foo"]}`` becomes
    ``{"command": "npx", "args": ["-y", "foo"]}``. Other types are returned
    unchanged.
    """
    if server_config.get("type", "stdio") != "stdio":
        return server_config
    command = str(server_config.get("command", ""))
    args = list(server_config.get("args") or [])
    if command.lower() not in _CMD_SHELLS or len(args) < 2:
        return server_config
    if str(args[0]).lower() != "/c":
        return server_config
    return dict(server_config, command=args[1], args=args[2:])


def content_fingerprint(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def directory_fingerprint(path: Path) -> str:
    """Digest of every file's relative path and bytes under ``path``."""
    h = hashlib.sha256()
    for f in sorted(p for p in path.rglob("*") if p.is_file()):
        h.update(f.relative_to(path).as_posix().encode())
        h.update(b"\0")
        h.update(f.read_bytes())
        h.update(b"\0")
    return "sha256:" + h.hexdigest()


def _canonical_command(command: str) -> str:
    cmd = command.strip().replace("\\", "/")
    lowered = cmd.lower()
    for suffix in _WINDOWS_SUFFIXES:
        if lowered.endswith(suffix):
            return cmd[: -len(suffix)]
    return cmd


def _canonical_url(url: str) -> str:
    return url.strip().rstrip("/")


def _server_fingerprint(server: McpServer) -> str:
    config = unwrap_cmd_c(dict(server.server_config, type=server.server_type))
    kind = server.server_type
    if kind == "stdio":
        command = _canonical_command(str(config.get("command", "")))
        args = sorted(str(a) for a in config.get("args") or [])
        return f"stdio:{command}|{json.dumps(args)}"
    if kind in ("http", "sse"):
        # Headers are not part of the identity
        return f"{kind}:{_canonical_url(str(config.get('url', '')))}"
    return f"{kind}:{json.dumps(config, sort_keys=True)}"


def _skill_fingerprint(skill: Skill) -> str:
    if skill.source_type == "git" and skill.source_ref:
        url = _canonical_url(skill.source_ref)
        if url.endswith(".git"):
            url = url[:-4]
        return f"skill-git:{url}"
    if skill.content_hash:
        return skill.content_hash
    return "skill-local:" + skill.central_path.replace("\\", "/").rstrip("/")


def fingerprint_of(entity: Any) -> str:
    """Return the fingerprint of a server, skill, mapping or file content."""
    if isinstance(entity, McpServer):
        return _server_fingerprint(entity)
    if isinstance(entity, Skill):
        return _skill_fingerprint(entity)
    if isinstance(entity, FileMapping):
        local = entity.local_path.replace("\\", "/")
        remote = entity.remote_path.replace("\\", "/")
        return f"mapping:{local}->{remote}"
    if isinstance(entity, (bytes, bytearray)):
        return content_fingerprint(bytes(entity))
    raise TypeError(f"Cannot fingerprint {type(entity).__name__}")


def find_duplicates(entities: Iterable[Any]) -> dict[str, list]:
    """Group entities by fingerprint, keeping only groups with 2+ members.

    Groups and their members are in first-seen order.
    """
    groups: dict[str, list] = defaultdict(list)
    for entity in entities:
        groups[fingerprint_of(entity)].append(entity)
    return {fp: members for fp, members in groups.items() if len(members) > 1}


class FingerprintIndex:
    """Mutable fingerprint index scoped to one sync or import session."""

    def __init__(self, entities: Iterable[Any] = ()):
        self._groups: dict[str, list] = defaultdict(list)
        for entity in entities:
            self.add(entity)

    def add(self, entity: Any) -> str:
        fp = fingerprint_of(entity)
        self._groups[fp].append(entity)
        return fp

    def lookup(self, fingerprint: str) -> list:
        return list(self._groups.get(fingerprint, []))

    def __contains__(self, entity: Any) -> bool:
        return fingerprint_of(entity) in self._groups

    def __len__(self) -> int:
        return sum(len(members) for members in self._groups.values())

    def duplicates(self) -> dict[str, list]:
        return {fp: list(m) for fp, m in self._groups.items() if len(m) > 1}

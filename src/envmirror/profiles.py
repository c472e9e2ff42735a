"""Built-in default mappings for common AI coding tools."""

from __future__ import annotations

from envmirror.config import FileMapping, Module

PROFILES = {
    Module.OPENCODE: [
        {
            "id": "opencode-main",
            "name": "OpenCode config",
            "local_path": "~/.config/opencode/opencode.jsonc",
            "remote_path": "~/.config/opencode/opencode.jsonc",
        },
        {
            "id": "opencode-oh-my",
            "name": "Oh My OpenCode config",
            "local_path": "~/.config/opencode/oh-my-opencode.jsonc",
            "remote_path": "~/.config/opencode/oh-my-opencode.jsonc",
        },
        {
            # Optional file, absent on most systems
            "id": "opencode-oh-my-slim",
            "name": "Oh My OpenCode Slim config",
            "local_path": "~/.config/opencode/oh-my-opencode-slim.json",
            "remote_path": "~/.config/opencode/oh-my-opencode-slim.json",
            "enabled": False,
        },
        {
            "id": "opencode-auth",
            "name": "OpenCode auth",
            "local_path": "~/.local/share/opencode/auth.json",
            "remote_path": "~/.local/share/opencode/auth.json",
        },
        {
            "id": "opencode-plugins",
            "name": "OpenCode plugins",
            "local_path": "~/.config/opencode/*.mjs",
            "remote_path": "~/.config/opencode/",
            "is_pattern": True,
        },
    ],
    Module.CLAUDE: [
        {
            "id": "claude-settings",
            "name": "Claude Code settings",
            "local_path": "~/.claude/settings.json",
            "remote_path": "~/.claude/settings.json",
        },
        {
            "id": "claude-config",
            "name": "Claude Code config",
            "local_path": "~/.claude/config.json",
            "remote_path": "~/.claude/config.json",
        },
    ],
    Module.CODEX: [
        {
            "id": "codex-auth",
            "name": "Codex auth",
            "local_path": "~/.codex/auth.json",
            "remote_path": "~/.codex/auth.json",
        },
        {
            "id": "codex-config",
            "name": "Codex config",
            "local_path": "~/.codex/config.toml",
            "remote_path": "~/.codex/config.toml",
        },
    ],
    Module.OPENCLAW: [
        {
            "id": "openclaw-config",
            "name": "OpenClaw config",
            "local_path": "~/.openclaw/openclaw.json",
            "remote_path": "~/.openclaw/openclaw.json",
        },
    ],
}


def default_mappings(module: Module | None = None) -> list[FileMapping]:
    """Fresh FileMapping objects for the built-in defaults."""
    mappings = []
    for mod, entries in PROFILES.items():
        if module is not None and mod is not module:
            continue
        for entry in entries:
            mappings.append(FileMapping(module=mod, **entry))
    return mappings

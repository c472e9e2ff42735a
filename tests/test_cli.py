"""Tests for the CLI interface."""

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from envmirror.cli import cli
from envmirror.config import (
    Config,
    EnvironmentRef,
    EnvKind,
    FileMapping,
    load_config,
    save_config,
)
from envmirror.store import EntityStore, McpServer


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def configured(config_env, tmp_path):
    """A saved config targeting WSL with one mapping to an existing file."""
    source = tmp_path / "settings.json"
    source.write_text("{}")
    config = Config(
        environment=EnvironmentRef(EnvKind.WSL, "Ubuntu"),
        sync_skills=False,
        file_mappings=[
            FileMapping(
                id="claude-settings",
                name="Claude Code settings",
                module="claude",
                local_path=str(source),
                remote_path="~/.claude/settings.json",
            )
        ],
    )
    save_config(config, config_env)
    return config_env


def write_servers(path, servers):
    path.write_text(json.dumps({"mcpServers": servers}))
    return path


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "envmirror" in result.output


class TestListDefaults:
    def test_lists_modules(self, runner):
        result = runner.invoke(cli, ["list-defaults"])
        assert result.exit_code == 0
        assert "opencode" in result.output
        assert "~/.codex/auth.json" in result.output
        assert "(disabled)" in result.output


class TestStatus:
    def test_no_environment(self, runner, config_env):
        result = runner.invoke(cli, ["status"])
        assert "No environment configured" in result.output

    def test_shows_last_error(self, runner, configured):
        config = load_config(configured)
        config.status.last_sync_status = "error"
        config.status.last_sync_time = "2026-01-01T00:00:00+00:00"
        config.status.last_sync_error = "a: boom; b: bust"
        save_config(config, configured)

        result = runner.invoke(cli, ["status"])
        assert "wsl:Ubuntu" in result.output
        assert "a: boom" in result.output
        assert "b: bust" in result.output


class TestTranslate:
    def test_remote_home_cannot_become_local(self, runner):
        result = runner.invoke(cli, ["translate", "~/.claude.json", "--from", "wsl", "--to", "local"])
        assert result.exit_code == 1
        assert "Cannot resolve '~'" in result.output

    def test_remote_to_remote(self, runner):
        result = runner.invoke(cli, ["translate", "~//x", "--from", "ssh", "--to", "ssh"])
        assert result.exit_code == 0
        assert result.output.strip() == "~/x"


class TestSync:
    def test_no_environment(self, runner, config_env):
        result = runner.invoke(cli, ["sync"])
        assert "No environment configured" in result.output

    @patch("envmirror.cli.create_adapter")
    def test_sync_success(self, mock_adapter, runner, configured, fake_env):
        mock_adapter.return_value = fake_env
        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 0, result.output
        assert "2 file(s) mirrored" in result.output
        assert fake_env.files["~/.claude/settings.json"] == b"{}"
        assert json.loads(fake_env.files["~/.claude.json"]) == {"mcpServers": {}}
        assert load_config(configured).status.last_sync_status == "success"
        assert not (configured.parent / "sync.lock").exists()

    @patch("envmirror.cli.create_adapter")
    def test_sync_failure_exits_nonzero(self, mock_adapter, runner, configured, make_env):
        mock_adapter.return_value = make_env(available=False)
        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 1
        assert "not found" in result.output
        assert load_config(configured).status.last_sync_status == "error"

    @patch("envmirror.cli.create_adapter")
    def test_refuses_concurrent_sync(self, mock_adapter, runner, configured, fake_env):
        mock_adapter.return_value = fake_env
        (configured.parent / "sync.lock").write_text("")
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code != 0
        assert "Another sync is running" in result.output
        assert fake_env.writes == []

    @patch("envmirror.cli.create_adapter")
    def test_no_mcp_flag(self, mock_adapter, runner, configured, fake_env):
        mock_adapter.return_value = fake_env
        store = EntityStore()
        store.add("mcpServers", McpServer(id="1", name="fs", server_type="stdio", server_config={"command": "npx"}))

        runner.invoke(cli, ["sync", "--no-mcp"])
        assert "~/.claude.json" not in fake_env.files

        runner.invoke(cli, ["sync"])
        assert "~/.claude.json" in fake_env.files


class TestMappings:
    def test_list_seeds_defaults(self, runner, config_env):
        result = runner.invoke(cli, ["mappings", "list"])
        assert result.exit_code == 0
        assert "claude-settings" in result.output
        assert load_config(config_env).file_mappings

    def test_add_enable_disable_remove(self, runner, configured):
        result = runner.invoke(
            cli,
            ["mappings", "add", "--id", "codex-rules", "--module", "codex", "--local", "~/.codex/rules", "--remote", "~/.codex/rules", "--directory"],
        )
        assert result.exit_code == 0
        assert load_config(configured).get_mapping("codex-rules").is_directory

        runner.invoke(cli, ["mappings", "disable", "codex-rules"])
        assert load_config(configured).get_mapping("codex-rules").enabled is False
        runner.invoke(cli, ["mappings", "enable", "codex-rules"])
        assert load_config(configured).get_mapping("codex-rules").enabled is True

        result = runner.invoke(cli, ["mappings", "remove", "codex-rules"])
        assert result.exit_code == 0
        assert load_config(configured).get_mapping("codex-rules") is None

    def test_add_duplicate_id_fails(self, runner, configured):
        result = runner.invoke(
            cli,
            ["mappings", "add", "--id", "claude-settings", "--module", "claude", "--local", "a", "--remote", "b"],
        )
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_add_warns_on_same_paths(self, runner, configured):
        existing = load_config(configured).file_mappings[0]
        result = runner.invoke(
            cli,
            ["mappings", "add", "--id", "copy", "--module", "claude", "--local", existing.local_path, "--remote", existing.remote_path],
        )
        assert "Same paths as existing mapping 'claude-settings'" in result.output

    def test_remove_missing(self, runner, configured):
        result = runner.invoke(cli, ["mappings", "remove", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_reset(self, runner, configured):
        result = runner.invoke(cli, ["mappings", "reset", "--yes"])
        assert result.exit_code == 0
        assert load_config(configured).file_mappings == []


class TestConnections:
    def test_add_list_remove(self, runner, config_env):
        runner.invoke(cli, ["connections", "add", "box", "--host", "box.example.com", "--user", "dev", "--port", "2222"])
        assert load_config(config_env).connections["box"].port == 2222

        result = runner.invoke(cli, ["connections", "list"])
        assert "dev@box.example.com:2222" in result.output

        runner.invoke(cli, ["connections", "remove", "box"])
        assert load_config(config_env).connections == {}


class TestDetect:
    @patch("envmirror.cli.WslEnvironment")
    def test_lists_distros(self, mock_wsl, runner, config_env):
        instance = MagicMock()
        instance.detect.return_value.available = True
        instance.detect.return_value.identities = ["Ubuntu", "Debian"]
        mock_wsl.return_value = instance

        result = runner.invoke(cli, ["detect", "--kind", "wsl"])
        assert "Ubuntu" in result.output
        assert "Debian" in result.output


class TestImport:
    def test_import_mcp(self, runner, config_env, tmp_path):
        doc = write_servers(tmp_path / "mcp.json", {"fs": {"command": "npx", "args": ["fs"]}})
        result = runner.invoke(cli, ["import-mcp", str(doc)])
        assert result.exit_code == 0
        assert "Imported 1 MCP server(s)" in result.output
        assert [s.name for s in EntityStore().servers] == ["fs"]

    def test_import_mcp_overwrite_duplicates(self, runner, config_env, tmp_path):
        doc = write_servers(tmp_path / "mcp.json", {"fs": {"command": "npx", "args": ["fs"]}})
        runner.invoke(cli, ["import-mcp", str(doc)])
        again = write_servers(tmp_path / "again.json", {"files": {"command": "cmd", "args": ["/c", "npx", "fs"]}})

        result = runner.invoke(cli, ["import-mcp", str(again), "--on-duplicate", "overwrite"])

        assert "Removed 1 duplicate(s)" in result.output
        assert [s.name for s in EntityStore().servers] == ["fs"]

    def test_import_mcp_asks(self, runner, config_env, tmp_path):
        doc = write_servers(tmp_path / "mcp.json", {"fs": {"command": "npx", "args": ["fs"]}})
        runner.invoke(cli, ["import-mcp", str(doc)])

        result = runner.invoke(cli, ["import-mcp", str(doc)], input="cancel\n")

        assert "overlaps 1 existing definition" in result.output
        assert "Import cancelled" in result.output
        assert len(EntityStore().servers) == 1

    def test_import_mcp_asks_labels_existing_entry_as_kept(self, runner, config_env, tmp_path):
        doc = write_servers(tmp_path / "mcp.json", {"fs": {"command": "npx", "args": ["fs"]}})
        runner.invoke(cli, ["import-mcp", str(doc)])
        copy = write_servers(tmp_path / "copy.json", {"copy-fs": {"command": "npx", "args": ["fs"]}})

        result = runner.invoke(cli, ["import-mcp", str(copy)], input="cancel\n")

        lines = result.output.splitlines()
        kept = next(line for line in lines if " fs [" in line)
        incoming = next(line for line in lines if "copy-fs [new]" in line)
        assert "KEEP (oldest)" in kept
        assert "duplicate" in incoming
        assert "KEEP" not in incoming

    def test_import_mcp_bad_json(self, runner, config_env, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")
        result = runner.invoke(cli, ["import-mcp", str(bad)])
        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_import_skills_and_list_duplicates(self, runner, config_env, tmp_path):
        for root in ("one", "two"):
            skill = tmp_path / root / "review"
            skill.mkdir(parents=True)
            (skill / "SKILL.md").write_text("# review\n")

        runner.invoke(cli, ["import-skills", str(tmp_path / "one")])
        result = runner.invoke(cli, ["import-skills", str(tmp_path / "two"), "--on-duplicate", "keep-both"])
        assert "Imported 1 skill(s)" in result.output

        result = runner.invoke(cli, ["duplicates"])
        assert "KEEP (oldest)" in result.output
        assert "duplicate" in result.output

    def test_import_skills_empty_dir(self, runner, config_env, tmp_path):
        result = runner.invoke(cli, ["import-skills", str(tmp_path)])
        assert "No skills found" in result.output

    def test_no_duplicates(self, runner, config_env):
        result = runner.invoke(cli, ["duplicates"])
        assert "No duplicates found" in result.output


class TestInit:
    @patch("envmirror.cli.WslEnvironment")
    def test_init_wsl(self, mock_wsl, runner, config_env):
        mock_wsl.return_value.detect.return_value.identities = ["Ubuntu-22.04"]
        result = runner.invoke(cli, ["init"], input="wsl\n\n")

        assert result.exit_code == 0, result.output
        config = load_config(config_env)
        assert config.environment == EnvironmentRef(EnvKind.WSL, "Ubuntu-22.04")
        assert config.file_mappings

    def test_init_ssh(self, runner, config_env):
        result = runner.invoke(cli, ["init"], input="ssh\nbox\nbox.example.com\n22\ndev\n\n")

        assert result.exit_code == 0, result.output
        config = load_config(config_env)
        assert config.environment == EnvironmentRef(EnvKind.SSH, "box")
        assert config.connections["box"].destination == "dev@box.example.com"

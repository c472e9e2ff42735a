"""Tests for mapping resolution."""

import pytest

from envmirror.config import FileMapping
from envmirror.errors import PathResolutionError, ValidationError
from envmirror.mappings import ItemKind, MappingResolver
from envmirror.paths import PathTranslator


def mapping(**kwargs):
    defaults = dict(id="m", name="m", module="claude", local_path="~/a", remote_path="~/a")
    defaults.update(kwargs)
    return FileMapping(**defaults)


@pytest.fixture
def resolver(translator):
    return MappingResolver(translator)


class TestResolve:
    def test_plain_file_is_one_item_even_if_missing(self, resolver, home, wsl_target):
        items = resolver.resolve([mapping(local_path="~/.claude/settings.json")], wsl_target)
        assert len(items) == 1
        assert items[0].local_path == f"{home}/.claude/settings.json"
        assert items[0].remote_path == "~/a"
        assert items[0].kind is ItemKind.FILE
        assert items[0].error is None

    def test_disabled_mappings_are_skipped(self, resolver, wsl_target):
        assert resolver.resolve([mapping(enabled=False)], wsl_target) == []

    def test_module_filter(self, resolver, wsl_target):
        mappings = [
            mapping(id="a", name="a", module="claude"),
            mapping(id="b", name="b", module="codex"),
        ]
        items = resolver.resolve(mappings, wsl_target, module="codex")
        assert [i.name for i in items] == ["b"]

    def test_unknown_module_filter_raises(self, resolver, wsl_target):
        with pytest.raises(ValidationError):
            resolver.resolve([mapping()], wsl_target, module="vim")

    def test_unresolvable_local_path_becomes_error_item(self, resolver, wsl_target):
        items = resolver.resolve([mapping(local_path="$MISSING/x")], wsl_target)
        assert len(items) == 1
        assert isinstance(items[0].error, PathResolutionError)

    def test_empty_path_becomes_error_item(self, resolver, wsl_target):
        items = resolver.resolve([mapping(remote_path="  ")], wsl_target)
        assert isinstance(items[0].error, ValidationError)

    def test_one_bad_mapping_does_not_hide_the_rest(self, resolver, wsl_target):
        items = resolver.resolve(
            [mapping(id="a", name="a", local_path="%NOPE%"), mapping(id="b", name="b")],
            wsl_target,
        )
        assert [i.name for i in items] == ["a", "b"]
        assert items[1].error is None


class TestDirectory:
    def test_expands_files_only(self, resolver, home, wsl_target):
        d = home / "skills"
        (d / "nested").mkdir(parents=True)
        (d / "b.md").write_text("b")
        (d / "a.md").write_text("a")
        (d / "nested" / "c.md").write_text("c")

        items = resolver.resolve(
            [mapping(local_path="~/skills", remote_path="~/remote/skills", is_directory=True)],
            wsl_target,
        )
        assert [i.remote_path for i in items] == ["~/remote/skills/a.md", "~/remote/skills/b.md"]
        assert all(i.kind is ItemKind.DIRECTORY for i in items)

    def test_recursive_descends(self, resolver, home, wsl_target):
        d = home / "skills"
        (d / "nested").mkdir(parents=True)
        (d / "nested" / "c.md").write_text("c")

        items = resolver.resolve(
            [mapping(local_path="~/skills", remote_path="~/r", is_directory=True, recursive=True)],
            wsl_target,
        )
        assert [i.remote_path for i in items] == ["~/r/nested/c.md"]

    def test_missing_directory_yields_nothing(self, resolver, wsl_target):
        items = resolver.resolve(
            [mapping(local_path="~/nope", is_directory=True)], wsl_target
        )
        assert items == []


class TestPattern:
    def test_glob_into_remote_directory(self, resolver, home, wsl_target):
        d = home / ".config" / "opencode"
        d.mkdir(parents=True)
        (d / "one.mjs").write_text("1")
        (d / "two.mjs").write_text("2")
        (d / "opencode.jsonc").write_text("{}")

        items = resolver.resolve(
            [
                mapping(
                    local_path="~/.config/opencode/*.mjs",
                    remote_path="~/.config/opencode/",
                    is_pattern=True,
                )
            ],
            wsl_target,
        )
        assert [i.remote_path for i in items] == [
            "~/.config/opencode/one.mjs",
            "~/.config/opencode/two.mjs",
        ]

    def test_no_matches_yields_nothing(self, resolver, home, wsl_target):
        (home / "empty").mkdir()
        items = resolver.resolve(
            [mapping(local_path="~/empty/*.mjs", is_pattern=True)], wsl_target
        )
        assert items == []


class TestWindowsHost:
    def test_local_side_only_is_translated(self, wsl_target):
        translator = PathTranslator({"USERPROFILE": "C:\\Users\\me"}, windows=True)
        items = MappingResolver(translator).resolve(
            [mapping(local_path="%USERPROFILE%\\.claude\\settings.json", remote_path="~/.claude/settings.json")],
            wsl_target,
        )
        assert items[0].local_path == "C:\\Users\\me\\.claude\\settings.json"
        assert items[0].remote_path == "~/.claude/settings.json"

"""Expansion of file mappings into concrete work items."""

from __future__ import annotations

import enum
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path, PurePath

from envmirror.config import LOCAL_HOST, EnvironmentRef, FileMapping, Module
from envmirror.errors import PathResolutionError, SyncError, ValidationError
from envmirror.paths import PathTranslator

logger = logging.getLogger(__name__)

_GLOB_CHARS = ("*", "?", "[")


class ItemKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class WorkItem:
    """One file-level transfer derived from a mapping at sync time.

    ``kind`` is DIRECTORY for files found by expanding a directory mapping.
    An item with ``error`` set stands for a mapping that could not be
    resolved; it is reported rather than transferred.
    """

    name: str
    local_path: str
    remote_path: str
    kind: ItemKind = ItemKind.FILE
    mapping: FileMapping | None = None
    error: SyncError | None = None

    @property
    def label(self) -> str:
        return f"{self.local_path} -> {self.remote_path}"


def _is_glob(segment: str) -> bool:
    return any(c in segment for c in _GLOB_CHARS)


def _split_glob(path: str) -> tuple[str, str]:
    """Split a path into the directory before the first glob segment and the rest."""
    parts = path.replace("\\", "/").split("/")
    for i, part in enumerate(parts):
        if _is_glob(part):
            root = "/".join(parts[:i])
            if not root and path.startswith(("/", "\\")):
                root = "/"
            return root or ".", "/".join(parts[i:])
    return path, ""


def _remote_join(remote_root: str, rel: str) -> str:
    if not remote_root:
        return rel
    return posixpath.join(remote_root.rstrip("/") or "/", rel)


class MappingResolver:
    """Turns declarative mappings into file-level work items.

    Resolution looks at the local filesystem only. Plain file mappings
    always produce one item; whether the file exists is decided when the
    item is transferred.
    """

    def __init__(self, translator: PathTranslator | None = None):
        self.translator = translator or PathTranslator()

    def resolve(
        self,
        mappings: list[FileMapping],
        env: EnvironmentRef,
        module: Module | str | None = None,
    ) -> list[WorkItem]:
        if module is not None:
            module = Module.parse(module)

        items: list[WorkItem] = []
        for mapping in mappings:
            if not mapping.enabled:
                continue
            if module is not None and mapping.module is not module:
                continue
            items.extend(self._resolve_one(mapping, env))
        return items

    def _resolve_one(self, mapping: FileMapping, env: EnvironmentRef) -> list[WorkItem]:
        try:
            local = self.translator.translate(mapping.local_path, LOCAL_HOST, LOCAL_HOST)
            remote = self.translator.translate(mapping.remote_path, env, env)
            if not local.strip() or not remote.strip():
                raise ValidationError("local and remote paths must not be empty")
        except (PathResolutionError, ValidationError) as e:
            logger.warning("Mapping '%s' could not be resolved: %s", mapping.name, e)
            return [
                WorkItem(
                    name=mapping.name,
                    local_path=mapping.local_path,
                    remote_path=mapping.remote_path,
                    mapping=mapping,
                    error=e,
                )
            ]

        if mapping.is_directory:
            return self.expand_directory(
                mapping.name, local, remote, mapping.recursive, mapping=mapping
            )
        if mapping.is_pattern:
            return self._expand_pattern(mapping, local, remote)
        return [WorkItem(mapping.name, local, remote, mapping=mapping)]

    def expand_directory(
        self,
        name: str,
        local_root: str,
        remote_root: str,
        recursive: bool = False,
        mapping: FileMapping | None = None,
    ) -> list[WorkItem]:
        """One item per regular file under local_root. Missing root yields none."""
        root = Path(local_root)
        if not root.is_dir():
            logger.debug("Directory %s does not exist, nothing to expand", root)
            return []

        candidates = root.rglob("*") if recursive else root.iterdir()
        items = []
        for f in sorted(candidates):
            if not f.is_file():
                continue
            rel = f.relative_to(root).as_posix()
            items.append(
                WorkItem(
                    name=name,
                    local_path=str(f),
                    remote_path=_remote_join(remote_root, rel),
                    kind=ItemKind.DIRECTORY,
                    mapping=mapping,
                )
            )
        return items

    def _expand_pattern(self, mapping: FileMapping, local: str, remote: str) -> list[WorkItem]:
        local_root, pattern = _split_glob(local)
        root = Path(local_root)
        if not pattern or not root.is_dir():
            return []

        remote_root, remote_pattern = _split_glob(remote)
        if not remote_pattern:
            remote_root = remote

        items = []
        for f in sorted(root.glob(pattern)):
            if not f.is_file():
                continue
            rel = PurePath(f.relative_to(root)).as_posix()
            items.append(
                WorkItem(
                    name=mapping.name,
                    local_path=str(f),
                    remote_path=_remote_join(remote_root, rel),
                    mapping=mapping,
                )
            )
        return items

"""Core sync engine: runs the files, mcp and skills phases of a sync pass."""

from __future__ import annotations

import enum
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from envmirror.adapters.base import Environment
from envmirror.config import LOCAL_HOST, EnvironmentRef, FileMapping, StatusStore
from envmirror.errors import EnvironmentUnavailableError, PathResolutionError, SyncError, TransferError
from envmirror.events import SYNC_COMPLETED, SYNC_PROGRESS, EventBus
from envmirror.fingerprint import unwrap_cmd_c
from envmirror.mappings import ItemKind, MappingResolver, WorkItem
from envmirror.paths import PathTranslator
from envmirror.store import McpServer, Skill

logger = logging.getLogger(__name__)

REMOTE_CLAUDE_JSON = "~/.claude.json"
REMOTE_SKILLS_DIR = "~/.ai-toolbox/skills"
CLAUDE_TOOL = "claude_code"
SYNCED_HASH_FILE = ".synced_hash"


class Phase(str, enum.Enum):
    FILES = "files"
    MCP = "mcp"
    SKILLS = "skills"


class Outcome(enum.Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class SyncProgress:
    phase: Phase
    current_item: str
    current: int
    total: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "currentItem": self.current_item,
            "current": self.current,
            "total": self.total,
            "message": self.message,
        }


@dataclass(frozen=True)
class SyncResult:
    synced_files: tuple[str, ...] = ()
    skipped_files: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "syncedFiles": list(self.synced_files),
            "skippedFiles": list(self.skipped_files),
            "errors": list(self.errors),
        }


@dataclass
class _Session:
    synced: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def result(self) -> SyncResult:
        return SyncResult(tuple(self.synced), tuple(self.skipped), tuple(self.errors))


def standard_server_config(server: McpServer) -> dict[str, Any]:
    """The server entry written into a Claude-style ``mcpServers`` object."""
    cfg = server.server_config
    if server.server_type == "stdio":
        result: dict[str, Any] = {
            "type": "stdio",
            "command": cfg.get("command", ""),
            "args": list(cfg.get("args") or []),
        }
        if cfg.get("env"):
            result["env"] = cfg["env"]
        return unwrap_cmd_c(result)
    if server.server_type in ("http", "sse"):
        result = {"type": server.server_type, "url": cfg.get("url", "")}
        if cfg.get("headers"):
            result["headers"] = cfg["headers"]
        return result
    return dict(cfg)


class SyncEngine:
    """Mirrors local files into one remote environment.

    Local is always the source of truth: remote files are overwritten,
    never merged. Items are transferred one at a time. A failing item is
    recorded and the pass moves on; only an unreachable environment ends
    the pass early.

    The mcp and skills phases run only when the caller hands over a server
    or skill list. An empty list still runs them, so entries removed
    locally are removed remotely too.
    """

    def __init__(
        self,
        environment: Environment,
        target: EnvironmentRef,
        translator: PathTranslator | None = None,
        events: EventBus | None = None,
        status_store: StatusStore | None = None,
        timeout: float | None = None,
    ):
        self.environment = environment
        self.target = target
        self.identity = target.identity
        self.translator = translator or PathTranslator()
        self.resolver = MappingResolver(self.translator)
        self.events = events
        self.status_store = status_store
        self.timeout = timeout

    def run(
        self,
        mappings: list[FileMapping] = (),
        servers: list[McpServer] | None = None,
        skills: list[Skill] | None = None,
        module: str | None = None,
        sync_mcp: bool = True,
        sync_skills: bool = True,
        cancel: threading.Event | None = None,
    ) -> SyncResult:
        """Run one sync pass and return its result."""
        session = _Session()
        plan = self.plan(mappings, servers, skills, module, sync_mcp, sync_skills)

        try:
            if plan:
                self._ensure_available()
            for phase, items, handler in plan:
                if cancel is not None and cancel.is_set():
                    break
                logger.info("Phase %s: %d item(s)", phase.value, len(items))
                self._run_phase(phase, items, handler, session, cancel)
        except EnvironmentUnavailableError as e:
            logger.error("Sync pass aborted: %s", e)
            session.errors = [str(e)]

        result = session.result()
        logger.info(
            "Sync finished: %d synced, %d skipped, %d error(s)",
            len(result.synced_files),
            len(result.skipped_files),
            len(result.errors),
        )
        if self.status_store is not None:
            self.status_store.record(result)
        self._emit(SYNC_COMPLETED, result)
        return result

    def plan(
        self,
        mappings: list[FileMapping],
        servers: list[McpServer] | None = None,
        skills: list[Skill] | None = None,
        module: str | None = None,
        sync_mcp: bool = True,
        sync_skills: bool = True,
    ) -> list[tuple[Phase, list[WorkItem], Callable[[WorkItem], Outcome]]]:
        """Work items per phase. Phases without items are left out."""
        plan = []

        files = self.resolver.resolve(list(mappings), self.target, module)
        if files:
            plan.append((Phase.FILES, files, self._transfer_file))

        if sync_mcp and servers is not None:
            claude_servers = [s for s in servers if CLAUDE_TOOL in s.enabled_tools]
            item = WorkItem("MCP servers", "mcpServers", REMOTE_CLAUDE_JSON)
            plan.append((Phase.MCP, [item], lambda i: self._merge_mcp_servers(i, claude_servers)))

        if sync_skills and skills is not None:
            by_name = {s.name: s for s in skills}
            prune = WorkItem("stale skills", "", REMOTE_SKILLS_DIR)
            items = [prune] + [self._skill_item(skill) for skill in skills]

            def handle(item: WorkItem) -> Outcome:
                if item is prune:
                    return self._prune_skills(item, set(by_name))
                return self._sync_skill(item, by_name[item.name])

            plan.append((Phase.SKILLS, items, handle))

        return plan

    def _skill_item(self, skill: Skill) -> WorkItem:
        remote_root = f"{REMOTE_SKILLS_DIR}/{skill.name}"
        try:
            local_root = self.translator.translate(skill.central_path, LOCAL_HOST, LOCAL_HOST)
        except PathResolutionError as e:
            return WorkItem(skill.name, skill.central_path, remote_root, error=e)
        return WorkItem(skill.name, local_root, remote_root, kind=ItemKind.DIRECTORY)

    def _ensure_available(self) -> None:
        self.identity = self.environment.resolve_identity(self.target.identity)
        availability = self.environment.check_availability(self.identity)
        if not availability.available:
            name = self.environment.display_name(self.identity)
            raise EnvironmentUnavailableError(availability.error or f"{name} is not available")

    def _run_phase(
        self,
        phase: Phase,
        items: list[WorkItem],
        handler: Callable[[WorkItem], Outcome],
        session: _Session,
        cancel: threading.Event | None,
    ) -> None:
        total = len(items)
        for current, item in enumerate(items, start=1):
            if cancel is not None and cancel.is_set():
                logger.info("Sync cancelled after %d/%d %s item(s)", current - 1, total, phase.value)
                return
            try:
                outcome = handler(item)
            except EnvironmentUnavailableError:
                raise
            except SyncError as e:
                logger.warning("%s: %s", item.name, e)
                session.errors.append(f"{item.name}: {e}")
            else:
                if outcome is Outcome.SYNCED:
                    logger.debug("Synced %s", item.label)
                    session.synced.append(item.label)
                elif outcome is Outcome.SKIPPED:
                    logger.debug("Skipped %s", item.label)
                    session.skipped.append(item.label)

            self._emit(
                SYNC_PROGRESS,
                SyncProgress(
                    phase=phase,
                    current_item=item.name,
                    current=current,
                    total=total,
                    message=f"{phase.value}: {current}/{total} - {item.name}",
                ),
            )

    def _transfer_file(self, item: WorkItem) -> Outcome:
        if item.error is not None:
            raise item.error
        src = Path(item.local_path)
        if not src.is_file():
            return Outcome.SKIPPED
        try:
            data = src.read_bytes()
        except OSError as e:
            raise TransferError(f"Cannot read {src}: {e}") from e
        self.environment.write_file(self.identity, item.remote_path, data, timeout=self.timeout)
        return Outcome.SYNCED

    def _merge_mcp_servers(self, item: WorkItem, servers: list[McpServer]) -> Outcome:
        """Replace only the ``mcpServers`` key of the remote JSON document."""
        raw = self.environment.read_file(self.identity, item.remote_path, timeout=self.timeout)
        try:
            text = raw.decode("utf-8") if raw else ""
            doc = json.loads(text) if text.strip() else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TransferError(f"Cannot parse {item.remote_path}: {e}") from e
        if not isinstance(doc, dict):
            raise TransferError(f"{item.remote_path} is not a JSON object")

        doc["mcpServers"] = {s.name: standard_server_config(s) for s in servers}
        data = (json.dumps(doc, indent=2) + "\n").encode("utf-8")
        self.environment.write_file(self.identity, item.remote_path, data, timeout=self.timeout)
        return Outcome.SYNCED

    def _prune_skills(self, item: WorkItem, managed: set[str]) -> Outcome:
        """Remove remote skill directories that are no longer managed."""
        existing = self.environment.list_directory(self.identity, item.remote_path, timeout=self.timeout)
        stale = [name for name in existing if name not in managed and not name.startswith(".")]
        for name in stale:
            logger.info("Removing unmanaged skill %s", name)
            self.environment.remove_path(self.identity, f"{item.remote_path}/{name}", timeout=self.timeout)
        return Outcome.UNCHANGED

    def _sync_skill(self, item: WorkItem, skill: Skill) -> Outcome:
        """Copy one skill tree unless the remote already holds its content hash."""
        if item.error is not None:
            raise item.error
        if not Path(item.local_path).is_dir():
            return Outcome.SKIPPED

        hash_path = f"{item.remote_path}/{SYNCED_HASH_FILE}"
        if skill.content_hash:
            remote_hash = self.environment.read_file(self.identity, hash_path, timeout=self.timeout)
            if remote_hash is not None and remote_hash.decode("utf-8", "replace").strip() == skill.content_hash:
                return Outcome.SKIPPED

        for f in self.resolver.expand_directory(item.name, item.local_path, item.remote_path, recursive=True):
            self._transfer_file(f)
        if skill.content_hash:
            self.environment.write_file(
                self.identity, hash_path, skill.content_hash.encode("utf-8"), timeout=self.timeout
            )
        return Outcome.SYNCED

    def _emit(self, name: str, payload: Any) -> None:
        if self.events is not None:
            self.events.emit(name, payload)

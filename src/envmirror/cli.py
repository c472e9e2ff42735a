"""CLI interface for envmirror."""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from pathlib import Path

import click
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from envmirror import __version__
from envmirror.adapters import SshEnvironment, WslEnvironment, create_adapter
from envmirror.config import (
    ConfigManager,
    EnvironmentRef,
    EnvKind,
    FileMapping,
    MappingStore,
    Module,
    SshConnection,
    StatusStore,
    default_config_path,
    load_config,
    save_config,
)
from envmirror.dedup import DuplicateChoice, import_entities
from envmirror.errors import PathResolutionError
from envmirror.events import SYNC_PROGRESS, EventBus
from envmirror.fingerprint import find_duplicates, fingerprint_of
from envmirror.paths import PathTranslator
from envmirror.profiles import PROFILES
from envmirror.store import KINDS, MCP, SKILLS, EntityStore, servers_from_document, skills_from_directory
from envmirror.sync import SyncEngine

MODULE_CHOICE = click.Choice([m.value for m in Module])
KIND_CHOICE = click.Choice([k.value for k in EnvKind])
ON_DUPLICATE_CHOICE = click.Choice(["ask"] + [c.value for c in DuplicateChoice])


def styled(text: str, **kwargs) -> str:
    return click.style(text, **kwargs)


def info(msg: str) -> None:
    click.echo(f"  {msg}")


def success(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='green')}")


def warn(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='yellow')}")


def error(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='red')}")


def heading(msg: str) -> None:
    click.echo(f"\n  {styled(msg, bold=True)}")


@click.group()
@click.version_option(version=__version__, prog_name="envmirror")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Mirror AI coding tool configs into WSL or over SSH."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def init() -> None:
    """Interactive setup: pick the target environment and seed mappings."""
    click.echo()
    info("Let's set up where your configs should be mirrored.")
    click.echo()

    config = ConfigManager().load()

    kind = click.prompt(
        "  Environment type", type=click.Choice(["wsl", "ssh"]), default="wsl"
    )
    if kind == "wsl":
        detected = WslEnvironment().detect()
        default_distro = detected.identities[0] if detected.identities else "Ubuntu"
        if detected.identities:
            info(f"Installed distros: {', '.join(detected.identities)}")
        identity = click.prompt("  WSL distro", default=default_distro)
    else:
        identity = click.prompt("  Connection name", default="my-server")
        host = click.prompt("  SSH host")
        port = click.prompt("  Port", type=int, default=22)
        username = click.prompt("  Username", default="", show_default=False)
        key = click.prompt("  Private key path", default="", show_default=False)
        config.connections[identity] = SshConnection(
            id=identity,
            host=host,
            name=identity,
            port=port,
            username=username,
            private_key_path=key,
        )

    config.environment = EnvironmentRef(EnvKind(kind), identity)
    save_config(config)
    click.echo()
    success(f"Config saved to {default_config_path()}")
    info(f"{len(config.file_mappings)} mapping(s) ready. Try: envmirror sync")
    click.echo()


@cli.command()
@click.option("--check", is_flag=True, help="Also check that the environment is reachable.")
def status(check: bool) -> None:
    """Show the target environment and the last sync outcome."""
    config = load_config()
    if not config.environment:
        warn("No environment configured. Run: envmirror init")
        return

    heading(f"Target: {config.environment}")
    enabled = [m for m in config.file_mappings if m.enabled]
    info(f"{len(enabled)}/{len(config.file_mappings)} mapping(s) enabled")

    st = config.status
    if st.last_sync_status == "never":
        info("Never synced.")
    elif st.last_sync_status == "success":
        info(f"Last sync: {styled('success', fg='green')} at {st.last_sync_time}")
    else:
        info(f"Last sync: {styled('error', fg='red')} at {st.last_sync_time}")
        for e in (st.last_sync_error or "").split("; "):
            error(f"  {e}")

    if check:
        adapter = create_adapter(config.environment, config)
        availability = adapter.check_availability(config.environment.identity)
        if availability.available:
            success(f"{adapter.display_name(config.environment.identity)} is reachable")
        else:
            error(f"Not reachable: {availability.error}")
    click.echo()


@cli.command()
@click.option("--kind", type=click.Choice(["wsl", "ssh"]), default=None)
def detect(kind: str | None) -> None:
    """List WSL distros and configured SSH connections."""
    config = load_config()
    adapters = {
        "wsl": WslEnvironment(),
        "ssh": SshEnvironment(config.connections),
    }
    for name, adapter in adapters.items():
        if kind and name != kind:
            continue
        heading(name.upper())
        result = adapter.detect()
        if not result.available:
            warn(f"  Not available: {result.error}")
            continue
        if not result.identities:
            info("  (none)")
        for identity in result.identities:
            info(f"  {identity}")
    click.echo()


@contextlib.contextmanager
def sync_lock():
    """Refuse to start while another pass holds the lock file."""
    lock = default_config_path().parent / "sync.lock"
    lock.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = lock.open("x")
    except FileExistsError:
        raise click.ClickException(
            f"Another sync is running (remove {lock} if it is stale)."
        ) from None
    fd.close()
    try:
        yield
    finally:
        lock.unlink()


@cli.command()
@click.option("--module", "-m", type=MODULE_CHOICE, default=None, help="Only sync one tool's mappings.")
@click.option("--no-mcp", is_flag=True, help="Skip the MCP server phase.")
@click.option("--no-skills", is_flag=True, help="Skip the skills phase.")
def sync(module: str | None, no_mcp: bool, no_skills: bool) -> None:
    """Mirror all enabled mappings, MCP servers and skills."""
    config = ConfigManager().load()
    if not config.environment:
        warn("No environment configured. Run: envmirror init")
        return

    adapter = create_adapter(config.environment, config)
    store = EntityStore()
    events = EventBus()
    engine = SyncEngine(
        adapter,
        config.environment,
        events=events,
        status_store=StatusStore(),
        timeout=config.transfer_timeout,
    )

    click.echo()
    info(f"Mirroring to {adapter.display_name(config.environment.identity)}...")

    with sync_lock():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            transient=True,
        ) as progress:
            task = progress.add_task("Preparing...", total=None)

            def on_progress(p) -> None:
                progress.update(task, description=p.message, completed=p.current, total=p.total)

            events.subscribe(SYNC_PROGRESS, on_progress)
            result = engine.run(
                config.file_mappings,
                servers=store.servers,
                skills=store.skills,
                module=module,
                sync_mcp=config.sync_mcp and not no_mcp,
                sync_skills=config.sync_skills and not no_skills,
            )

    for f in result.synced_files:
        info(f"Synced: {styled(f, fg='cyan')}")
    for f in result.skipped_files:
        info(f"Skipped: {f}")
    for e in result.errors:
        error(e)

    click.echo()
    if result.success:
        success(f"Done. {len(result.synced_files)} file(s) mirrored.")
    else:
        error(f"Finished with {len(result.errors)} error(s).")
        click.echo()
        sys.exit(1)
    click.echo()


@cli.command()
@click.argument("path")
@click.option("--from", "source", type=KIND_CHOICE, default="local")
@click.option("--to", "target", type=KIND_CHOICE, default="wsl")
def translate(path: str, source: str, target: str) -> None:
    """Show how PATH looks in another environment."""
    translator = PathTranslator()
    try:
        click.echo(
            translator.translate(path, EnvironmentRef(EnvKind(source)), EnvironmentRef(EnvKind(target)))
        )
    except PathResolutionError as e:
        error(str(e))
        sys.exit(1)


@cli.command("list-defaults")
def list_defaults_cmd() -> None:
    """Show the built-in default mappings."""
    for module, entries in PROFILES.items():
        heading(module.value)
        for entry in entries:
            flag = "" if entry.get("enabled", True) else styled(" (disabled)", fg="yellow")
            info(f"{entry['name']}{flag}")
            info(f"  {entry['local_path']} -> {entry['remote_path']}")
    click.echo()


@cli.group()
def mappings() -> None:
    """Manage file mappings."""


@mappings.command("list")
def mappings_list() -> None:
    config = ConfigManager().load()
    for m in config.file_mappings:
        state = styled("on ", fg="green") if m.enabled else styled("off", fg="red")
        kind = "pattern" if m.is_pattern else "dir" if m.is_directory else "file"
        info(f"[{state}] {styled(m.id, bold=True)} ({m.module.value}, {kind})")
        info(f"      {m.local_path} -> {m.remote_path}")


@mappings.command("add")
@click.option("--id", "mapping_id", required=True)
@click.option("--name", default=None)
@click.option("--module", "-m", type=MODULE_CHOICE, required=True)
@click.option("--local", "local_path", required=True)
@click.option("--remote", "remote_path", required=True)
@click.option("--pattern", is_flag=True, help="LOCAL is a glob pattern.")
@click.option("--directory", is_flag=True, help="LOCAL is a directory.")
@click.option("--recursive", is_flag=True, help="Descend into sub-directories.")
@click.option("--disabled", is_flag=True)
def mappings_add(mapping_id, name, module, local_path, remote_path, pattern, directory, recursive, disabled) -> None:
    mapping = FileMapping(
        id=mapping_id,
        name=name or mapping_id,
        module=module,
        local_path=local_path,
        remote_path=remote_path,
        enabled=not disabled,
        is_pattern=pattern,
        is_directory=directory,
        recursive=recursive,
    )
    store = MappingStore()
    fp = fingerprint_of(mapping)
    for existing in store.list():
        if fingerprint_of(existing) == fp:
            warn(f"Same paths as existing mapping '{existing.id}'.")
    try:
        store.add(mapping)
    except ValueError as e:
        error(str(e))
        sys.exit(1)
    success(f"Added mapping '{mapping_id}'.")


@mappings.command("remove")
@click.argument("mapping_id")
def mappings_remove(mapping_id: str) -> None:
    try:
        MappingStore().delete(mapping_id)
    except KeyError:
        error(f"Mapping '{mapping_id}' not found.")
        sys.exit(1)
    success(f"Removed mapping '{mapping_id}'.")


def _set_enabled(mapping_id: str, enabled: bool) -> None:
    try:
        MappingStore().update(mapping_id, enabled=enabled)
    except KeyError:
        error(f"Mapping '{mapping_id}' not found.")
        sys.exit(1)
    success(f"Mapping '{mapping_id}' {'enabled' if enabled else 'disabled'}.")


@mappings.command("enable")
@click.argument("mapping_id")
def mappings_enable(mapping_id: str) -> None:
    _set_enabled(mapping_id, True)


@mappings.command("disable")
@click.argument("mapping_id")
def mappings_disable(mapping_id: str) -> None:
    _set_enabled(mapping_id, False)


@mappings.command("reset")
@click.confirmation_option(prompt="Delete all mappings?")
def mappings_reset() -> None:
    MappingStore().reset()
    success("All mappings removed. Defaults are restored on next load.")


@cli.group()
def connections() -> None:
    """Manage SSH connection presets."""


@connections.command("list")
def connections_list() -> None:
    config = load_config()
    if not config.connections:
        info("No SSH connections.")
    for conn in config.connections.values():
        info(f"{styled(conn.id, bold=True)}  {conn.destination}:{conn.port}")


@connections.command("add")
@click.argument("connection_id")
@click.option("--host", required=True)
@click.option("--port", type=int, default=22)
@click.option("--user", "username", default="")
@click.option("--key", "private_key_path", default="")
def connections_add(connection_id, host, port, username, private_key_path) -> None:
    config = load_config()
    config.connections[connection_id] = SshConnection(
        id=connection_id,
        host=host,
        name=connection_id,
        port=port,
        username=username,
        private_key_path=private_key_path,
    )
    save_config(config)
    success(f"Saved connection '{connection_id}'.")


@connections.command("remove")
@click.argument("connection_id")
def connections_remove(connection_id: str) -> None:
    config = load_config()
    if config.connections.pop(connection_id, None) is None:
        error(f"Connection '{connection_id}' not found.")
        sys.exit(1)
    save_config(config)
    success(f"Removed connection '{connection_id}'.")


def _show_duplicate_groups(groups: dict[str, list]) -> None:
    for fp, members in groups.items():
        info(f"{styled(fp, fg='yellow')}")
        for i, entity in enumerate(sorted(members, key=lambda e: (not e.id, e.created_at))):
            label = "KEEP (oldest)" if i == 0 else "duplicate"
            origin = "new" if not entity.id else entity.id[:8]
            info(f"  {label:<14} {entity.name} [{origin}]")


def _confirm(on_duplicate: str):
    if on_duplicate != "ask":
        return lambda groups: DuplicateChoice(on_duplicate)

    def ask(groups: dict[str, list]) -> DuplicateChoice:
        warn(f"The import overlaps {len(groups)} existing definition(s):")
        _show_duplicate_groups(groups)
        choice = click.prompt(
            "  Remove duplicates (overwrite), keep both, or cancel?",
            type=click.Choice([c.value for c in DuplicateChoice]),
            default=DuplicateChoice.OVERWRITE.value,
        )
        return DuplicateChoice(choice)

    return ask


def _report_import(report, what: str) -> None:
    if report.cancelled:
        warn("Import cancelled. Nothing was written.")
        return
    success(f"Imported {report.imported} {what}.")
    if report.removed:
        info(f"Removed {report.removed} duplicate(s).")


@cli.command("import-mcp")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--on-duplicate", type=ON_DUPLICATE_CHOICE, default="ask", show_default=True)
def import_mcp(file: Path, on_duplicate: str) -> None:
    """Import MCP servers from a JSON document with an mcpServers object."""
    try:
        candidates = servers_from_document(json.loads(file.read_text()))
    except (json.JSONDecodeError, ValueError) as e:
        error(f"Cannot read {file}: {e}")
        sys.exit(1)
    report = import_entities(candidates, EntityStore(), MCP, confirm=_confirm(on_duplicate))
    _report_import(report, "MCP server(s)")


@cli.command("import-skills")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--on-duplicate", type=ON_DUPLICATE_CHOICE, default="ask", show_default=True)
def import_skills(directory: Path, on_duplicate: str) -> None:
    """Import every skill folder (one holding SKILL.md) under DIRECTORY."""
    candidates = skills_from_directory(directory)
    if not candidates:
        warn(f"No skills found in {directory}.")
        return
    report = import_entities(candidates, EntityStore(), SKILLS, confirm=_confirm(on_duplicate))
    _report_import(report, "skill(s)")


@cli.command()
def duplicates() -> None:
    """List stored MCP servers and skills that share a fingerprint."""
    store = EntityStore()
    found = False
    for kind in KINDS:
        groups = find_duplicates(store.entities(kind))
        if groups:
            found = True
            heading(kind)
            _show_duplicate_groups(groups)
    if not found:
        info("No duplicates found.")
    click.echo()


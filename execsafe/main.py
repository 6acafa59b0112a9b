"""
execsafe — CLI entrypoint.

Usage:
    execsafe --help
    execsafe check "rm -rf ./build"
    execsafe ensure "rg TODO src" --trust strict_verified
    execsafe file edit notes.txt --old draft --new final
    execsafe flags set container_execution=on
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from execsafe import __version__
from execsafe.core.config.loader import ConfigError, load_settings
from execsafe.core.models.capability import TRUST_POLICIES
from execsafe.core.observability.logging_config import resolve_level, setup_logging
from execsafe.core.services.capabilities.orchestration.services import (
    PlatformServices,
    create_platform_services,
)


def _services(ctx: click.Context) -> PlatformServices:
    """Platform services for this invocation (built once, on first use)."""
    services = ctx.obj.get("services")
    if services is not None:
        return services
    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    services = create_platform_services(settings)
    ctx.obj["services"] = services
    return services


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.version_option(version=__version__, prog_name="execsafe")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to execsafe.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """execsafe — capability and execution safety for agent commands."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None

    setup_logging(level=resolve_level(level), quiet_third_party=not debug)


# ── Policy ──────────────────────────────────────────────────────


@cli.command()
@click.argument("command")
@click.option("--cwd", default=None, help="Working directory the command would run in.")
@click.option(
    "--allow-root", "allow_roots", multiple=True,
    help="Allowed root for destructive operations (repeatable).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(
    ctx: click.Context,
    command: str,
    cwd: str | None,
    allow_roots: tuple[str, ...],
    as_json: bool,
) -> None:
    """Evaluate COMMAND against the execution policy."""
    services = _services(ctx)
    decision = services.evaluate(
        command, cwd=cwd or str(Path.cwd()), allowed_roots=allow_roots or None,
    )

    if as_json:
        _echo_json(decision.model_dump(mode="json"))
        sys.exit(1 if decision.denied else 0)

    if decision.action == "allow":
        click.secho("✅ allow", fg="green", bold=True)
    elif decision.action == "rewrite":
        click.secho("✏️  rewrite", fg="yellow", bold=True)
        click.echo(f"   → {decision.command}")
        click.echo(f"   Rewrites: {', '.join(decision.rewrites)}")
    else:
        label = "deny (hard violation)" if decision.hard_violation else "deny"
        click.secho(f"❌ {label}", fg="red", bold=True)
    click.echo(f"   {decision.reason}")
    if decision.detail:
        click.echo(f"   {decision.detail}")

    if decision.denied:
        sys.exit(1)


@cli.command()
@click.argument("command")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def resolve(ctx: click.Context, command: str, as_json: bool) -> None:
    """Show which capabilities COMMAND depends on."""
    resolution = _services(ctx).resolve_command(command)

    if as_json:
        _echo_json({
            "executables": resolution.executables,
            "known": [c.id for c in resolution.known_capabilities],
            "missing": resolution.missing_ids,
            "unknown": resolution.unknown_executables,
        })
        return

    click.secho(f"Executables: {', '.join(resolution.executables) or '(none)'}", bold=True)
    missing = set(resolution.missing_ids)
    for cap in resolution.known_capabilities:
        if cap.id in missing:
            click.secho(f"   ✗ {cap.id} (missing)", fg="yellow")
        else:
            click.secho(f"   ✓ {cap.id}", fg="green")
    for name in resolution.unknown_executables:
        click.echo(f"   ? {name} (not in catalog)")


@cli.command()
@click.argument("command")
@click.option(
    "--trust", "trust_policy", type=click.Choice(TRUST_POLICIES), default=None,
    help="Install trust policy (overrides the autonomy mode).",
)
@click.option(
    "--autonomy", default=None, type=click.Choice(["safe", "guided", "unrestricted"]),
    help="Agent autonomy mode used to pick the trust policy.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def ensure(
    ctx: click.Context,
    command: str,
    trust_policy: str | None,
    autonomy: str | None,
    as_json: bool,
) -> None:
    """Evaluate COMMAND, then install the capabilities it is missing."""
    from execsafe.core.services.capabilities.domain.trust import resolve_trust_policy

    services = _services(ctx)
    if autonomy and not trust_policy:
        trust_policy = resolve_trust_policy(autonomy)

    def _progress(event) -> None:
        if not as_json and not ctx.obj.get("quiet"):
            click.echo(f"   [{event.type}] {event.message}")

    prep = services.prepare_command(
        command, cwd=str(Path.cwd()), trust_policy=trust_policy, on_event=_progress,
    )

    if as_json:
        _echo_json(prep.model_dump(mode="json"))
        sys.exit(0 if prep.allowed else 1)

    if prep.decision.denied:
        click.secho(f"❌ Blocked by policy: {prep.decision.reason}", fg="red", bold=True)
        sys.exit(1)

    ensure_result = prep.ensure
    assert ensure_result is not None  # set whenever policy allows
    if ensure_result.skipped:
        click.secho(f"⏭️  {ensure_result.detail}", fg="yellow")
        return

    if ensure_result.installed:
        click.secho(f"✅ Installed: {', '.join(ensure_result.installed)}", fg="green")
    for failure in ensure_result.failed:
        click.secho(f"❌ {failure.capability_id}: {failure.detail}", fg="red")
    if ensure_result.ok and not ensure_result.installed:
        click.secho("✅ All known capabilities available", fg="green")
    if ensure_result.unknown_executables:
        click.echo(f"   Not in catalog: {', '.join(ensure_result.unknown_executables)}")

    if not ensure_result.ok:
        sys.exit(1)


def _adapter_registry(ctx: click.Context):
    """Guarded shell and file-mutation adapters over this invocation's services."""
    from execsafe.adapters.registry import AdapterRegistry
    from execsafe.adapters.shell.command import GuardedShellAdapter
    from execsafe.adapters.shell.filesystem import FileMutationAdapter

    services = _services(ctx)
    registry = AdapterRegistry()
    registry.register(GuardedShellAdapter(services))
    registry.register(FileMutationAdapter(services))
    return registry


def _finish(receipt) -> None:
    if receipt.output:
        click.echo(receipt.output)
    if receipt.failed:
        click.secho(f"❌ {receipt.error}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.argument("command")
@click.option("--cwd", default=None, help="Working directory (default: current).")
@click.option("--timeout", default=300, show_default=True, help="Timeout in seconds.")
@click.option("--no-install", is_flag=True, help="Do not auto-install missing capabilities.")
@click.option("--dry-run", is_flag=True, help="Check policy and installs, but do not run.")
@click.pass_context
def run(
    ctx: click.Context,
    command: str,
    cwd: str | None,
    timeout: int,
    no_install: bool,
    dry_run: bool,
) -> None:
    """Run COMMAND through the guarded shell adapter."""
    import uuid

    from execsafe.core.models.action import Action

    action = Action(
        id=uuid.uuid4().hex[:12],
        adapter="shell",
        params={"command": command, "timeout": timeout, "install": not no_install},
    )
    receipt = _adapter_registry(ctx).execute_action(action, cwd=cwd or str(Path.cwd()), dry_run=dry_run)
    _finish(receipt)


@cli.command("file")
@click.argument("operation", type=click.Choice(["read", "write", "edit", "append", "delete"]))
@click.argument("path")
@click.option("--content", default=None, help="Content for write and append.")
@click.option("--old", default=None, help="Text to replace (edit).")
@click.option("--new", default=None, help="Replacement text (edit).")
@click.option("--replace-all", is_flag=True, help="Replace every occurrence (edit).")
@click.option("--cwd", default=None, help="Base directory for a relative PATH (default: current).")
@click.option("--dry-run", is_flag=True, help="Report the change without touching the file.")
@click.pass_context
def file_cmd(
    ctx: click.Context,
    operation: str,
    path: str,
    content: str | None,
    old: str | None,
    new: str | None,
    replace_all: bool,
    cwd: str | None,
    dry_run: bool,
) -> None:
    """Apply a file OPERATION to PATH, rolling back on failure."""
    import uuid

    from execsafe.core.models.action import Action

    params: dict = {"operation": operation, "path": path, "replace_all": replace_all}
    for key, value in (("content", content), ("old", old), ("new", new)):
        if value is not None:
            params[key] = value
    action = Action(id=uuid.uuid4().hex[:12], adapter="filesystem", params=params)
    receipt = _adapter_registry(ctx).execute_action(action, cwd=cwd or str(Path.cwd()), dry_run=dry_run)
    _finish(receipt)


# ── Capabilities ────────────────────────────────────────────────


@cli.group()
def capabilities() -> None:
    """Capability catalog commands."""


@capabilities.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def capabilities_list(ctx: click.Context, as_json: bool) -> None:
    """List known capabilities and their install recipes."""
    caps = _services(ctx).registry.list()

    if as_json:
        _echo_json([c.model_dump(mode="json") for c in caps])
        return

    for cap in caps:
        aliases = f" (aka {', '.join(cap.aliases)})" if cap.aliases else ""
        click.secho(f"• {cap.id}{aliases}", bold=True)
        if cap.description:
            click.echo(f"    {cap.description}")
        for recipe in cap.install_recipes:
            marker = "verified" if recipe.verified else "community"
            click.echo(f"    - {recipe.id} [{recipe.method}, {marker}]")


# ── Flags ───────────────────────────────────────────────────────


@cli.group()
def flags() -> None:
    """Platform feature flags."""


@flags.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def flags_show(ctx: click.Context, as_json: bool) -> None:
    """Show current flag values."""
    current = _services(ctx).flags.get().model_dump(mode="json")

    if as_json:
        _echo_json(current)
        return

    for name, value in current.items():
        color = {True: "green", False: "white"}.get(value, "cyan")
        click.echo(f"   {name:<26} ", nl=False)
        click.secho(str(value).lower() if isinstance(value, bool) else str(value), fg=color)


@flags.command("set")
@click.argument("assignments", nargs=-1, required=True)
@click.pass_context
def flags_set(ctx: click.Context, assignments: tuple[str, ...]) -> None:
    """Set flags: KEY=VALUE [KEY=VALUE ...]."""
    from pydantic import ValidationError

    from execsafe.core.config.flags import parse_flag_value

    updates = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep:
            click.secho(f"❌ Expected KEY=VALUE, got '{item}'", fg="red", err=True)
            sys.exit(1)
        key = key.strip()
        try:
            updates[key] = parse_flag_value(key, raw)
        except (KeyError, ValueError) as e:
            click.secho(f"❌ {e.args[0] if e.args else e}", fg="red", err=True)
            sys.exit(1)

    try:
        result = _services(ctx).flags.set(**updates)
    except ValidationError as e:
        click.secho(f"❌ Invalid flag value: {e}", fg="red", err=True)
        sys.exit(1)

    for key in updates:
        click.secho(f"✅ {key} = {getattr(result, key)}", fg="green")


# ── Health & MCP ────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Check platform health."""
    from execsafe.core.observability.health import check_system_health

    result = check_system_health(_services(ctx))

    if as_json:
        _echo_json(result.to_dict())
        sys.exit(1 if result.status == "unhealthy" else 0)

    icons = {"healthy": "✅", "degraded": "⚠️ ", "unhealthy": "❌", "unknown": "❓"}
    colors = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}
    click.secho(
        f"{icons.get(result.status, '')} {result.status}",
        fg=colors.get(result.status, "white"), bold=True,
    )
    for comp in result.components:
        click.echo(f"   {icons.get(comp.status, '')} {comp.name}: {comp.message}")

    if result.status == "unhealthy":
        sys.exit(1)


@cli.group()
def mcp() -> None:
    """MCP server commands."""


@mcp.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def mcp_list(ctx: click.Context, as_json: bool) -> None:
    """List configured MCP servers."""
    from execsafe.core.services.capabilities.mcp.discovery import load_configured_mcp_servers

    services = _services(ctx)
    discovery = load_configured_mcp_servers(services.settings)

    if as_json:
        _echo_json({
            "servers": [s.model_dump(mode="json") for s in discovery.servers],
            "warnings": discovery.warnings,
            "runtime": [s.model_dump(mode="json") for s in services.mcp.list()],
        })
        return

    if not discovery.servers:
        click.echo("No MCP servers configured.")
    for server in discovery.servers:
        state = services.mcp.get(server.name)
        status = f" [{state.status}]" if state else ""
        click.secho(f"• {server.name}{status}", bold=True)
        click.echo(f"    {server.command} {' '.join(server.args)}".rstrip())
        click.echo(f"    tools: {len(server.tools)}  source: {server.source}")
    for warning in discovery.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

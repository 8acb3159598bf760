"""
nms-provision — CLI entrypoint.

Usage:
    nms-provision --help
    nms-provision run [--dry-run] [--force] [--quiet] [--no-rollback]
    nms-provision detect --json
    nms-provision config check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from src import __version__
from src.core.observability.logging_config import LOG_FILE_ENV, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="nms-provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the config file (default: /etc/nms-provision.conf).",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Run transcript (default: ${LOG_FILE_ENV} or /var/log/nms-provision.log).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    debug: bool,
    config_path: str | None,
    log_file: str | None,
) -> None:
    """Provision this host to run Node Media Server."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["log_file"] = log_file

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = None
    ctx.obj["level"] = level
    setup_logging(level=level, log_file="")


@cli.command(
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.option("--dry-run", is_flag=True, help="Show what would be done; change nothing.")
@click.option("--force", is_flag=True, help="Remove a previous installation without asking.")
@click.option("--quiet", is_flag=True, help="No narration; only the final summary.")
@click.option("--no-rollback", is_flag=True, help="Keep artifacts after a failure.")
@click.pass_context
def run(
    ctx: click.Context,
    dry_run: bool,
    force: bool,
    quiet: bool,
    no_rollback: bool,
) -> None:
    """Provision the host (unknown options are ignored)."""
    from src.core.use_cases.provision import format_summary, run_provisioning

    setup_logging(level=ctx.obj.get("level"), log_file=ctx.obj.get("log_file"), quiet=quiet)

    flags = [
        flag
        for flag, enabled in (
            ("--dry-run", dry_run),
            ("--force", force),
            ("--quiet", quiet),
            ("--no-rollback", no_rollback),
        )
        if enabled
    ]

    def quiet_from_config(config) -> None:
        # quiet=1 in the config file silences the console just like --quiet
        if config.quiet and not quiet:
            setup_logging(level=ctx.obj.get("level"), log_file=ctx.obj.get("log_file"), quiet=True)

    report = run_provisioning(
        [*flags, *ctx.args],
        config_path=ctx.obj.get("config_path"),
        confirm=_prompt if sys.stdin.isatty() else None,
        on_config=quiet_from_config,
    )

    # The summary is never suppressed, not even by --quiet.
    color = "green" if report.exit_code == 0 else "red"
    for line in format_summary(report):
        click.secho(line, fg=color if not line.startswith("- ") else None)
    sys.exit(report.exit_code)


def _prompt(message: str) -> bool:
    return click.confirm(message, default=False)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def detect(as_json: bool) -> None:
    """Detect the platform and the adapters a run would use."""
    from src.core.use_cases.detect import run_detect

    result = run_detect()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    profile = result.profile
    if result.error or profile is None:
        click.secho(f"❌ {result.error or 'platform not detected'}", fg="red")
        sys.exit(1)

    click.secho(f"\n🔍 Platform: {profile.distro_id} ({profile.family})", fg="cyan", bold=True)
    click.echo(f"   Package manager: {profile.package_commands.manager or 'none'}")
    click.echo(f"   Firewall:        {profile.firewall_backend.value}")
    click.echo(f"   SELinux:         {'enforcing' if profile.selinux_enabled else 'off'}")
    click.echo(f"   Init system:     {profile.init_system}")
    click.echo()
    for role, info in result.adapters.items():
        marker = "✓" if info["available"] else "✗"
        click.echo(f"   {marker} {role}: {info['name']}")
    click.echo()


@cli.group()
def config() -> None:
    """Configuration commands."""


def _resolve_readonly(ctx: click.Context):
    from src.core.config.loader import DEFAULT_CONFIG_PATH, resolve

    path = ctx.obj.get("config_path") or DEFAULT_CONFIG_PATH
    return path, resolve(None, path, (), privileged=False)


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate the config file."""
    from src.core.errors import ConfigError

    try:
        path, _ = _resolve_readonly(ctx)
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": str(e)}, indent=2))
        else:
            click.secho("❌ Configuration errors:", fg="red", bold=True)
            click.echo(f"   • {e}")
        sys.exit(1)

    exists = path.is_file()
    if as_json:
        click.echo(json.dumps({"valid": True, "path": str(path), "exists": exists}, indent=2))
        return
    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   File: {path}{'' if exists else ' (missing, defaults apply)'}")


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Print the effective configuration."""
    from src.core.errors import ConfigError

    try:
        _, resolved = _resolve_readonly(ctx)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(resolved.model_dump(mode="json"), indent=2))
        return
    for key, value in resolved.to_file_values().items():
        click.echo(f"{key}={value}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

"""
pwsh-provisioner — CLI entrypoint.

Usage:
    python -m pwsh_provisioner.main --help
    python -m pwsh_provisioner.main run --host 10.0.0.5 --user admin
    python -m pwsh_provisioner.main config check
"""

from __future__ import annotations

import json
import os
import signal
import sys
import threading
from pathlib import Path

import click

from pwsh_provisioner import __version__
from pwsh_provisioner.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    LOG_LEVEL_ENV,
    register_secret,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="pwsh-provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pwsh-provisioner — run PowerShell scripts on a machine being built."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(LOG_LEVEL_ENV, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
        quiet_third_party=not debug,
    )


def _parse_data(assignments: tuple[str, ...]) -> dict[str, str]:
    data: dict[str, str] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{assignment}'", param_hint="--data")
        data[key] = value
    return data


@cli.command()
@click.option("--host", default=None, help="Target host (SSH).")
@click.option("--user", default=None, help="SSH login user (default: current user).")
@click.option("--port", "-p", default=22, type=int, help="SSH port.")
@click.option(
    "--password",
    envvar="PWSH_PROVISIONER_SSH_PASSWORD",
    default=None,
    help="SSH password (or PWSH_PROVISIONER_SSH_PASSWORD).",
)
@click.option("--key", "key_path", type=click.Path(exists=True, dir_okay=False), help="SSH private key.")
@click.option("--local", is_flag=True, help="Provision the local machine instead of a remote host.")
@click.option(
    "--data",
    "data",
    multiple=True,
    metavar="KEY=VALUE",
    help="Build data available to templates as {{.KEY}}. Repeatable.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    host: str | None,
    user: str | None,
    port: int,
    password: str | None,
    key_path: str | None,
    local: bool,
    data: tuple[str, ...],
    as_json: bool,
) -> None:
    """Upload and run the configured PowerShell scripts on a target.

    Examples:

        pwsh-provisioner run --host 10.0.0.5 --user admin --key ~/.ssh/id_ed25519

        pwsh-provisioner run --local --data BuildName=web
    """
    from pwsh_provisioner.core.config.loader import load_config
    from pwsh_provisioner.core.errors import ConfigurationError
    from pwsh_provisioner.core.observability.reporter import ConsoleReporter, RecordingReporter
    from pwsh_provisioner.core.use_cases.provision import ProvisionResult, provision

    if local == bool(host):
        raise click.UsageError("Specify exactly one of --host or --local.")

    generated_data = _parse_data(data)

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _fail(ProvisionResult(error=str(e)), as_json)
        return

    if config.elevated_password:
        register_secret(config.elevated_password)
    if password:
        register_secret(password)

    if local:
        from pwsh_provisioner.adapters.shell.command import LocalExecutor

        executor = LocalExecutor()
    else:
        from pwsh_provisioner.adapters.ssh.executor import SSHExecutor

        executor = SSHExecutor(
            host=host,
            user=user or os.environ.get("USER", "root"),
            port=port,
            password=password,
            key_path=key_path,
        )

    reporter = RecordingReporter() if as_json or ctx.obj.get("quiet") else ConsoleReporter()

    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        with executor:
            result = provision(config, executor, reporter, generated_data, cancel)
    finally:
        signal.signal(signal.SIGINT, previous)

    if result.error:
        _fail(result, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not ctx.obj.get("quiet"):
        click.echo()
        click.secho(
            f"✅ Provisioned {len(result.scripts)} script(s) on {executor.name}"
            f" ({result.reboots} reboot(s))",
            fg="green",
            bold=True,
        )


def _fail(result, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.secho(f"❌ {result.error}", fg="red")
    sys.exit(1)


@cli.group()
def config() -> None:
    """Provisioner configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from pwsh_provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        cfg = result.config
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   OS type: {cfg.os_type.value}")
        if cfg.inline:
            click.echo(f"   Inline commands: {len(cfg.inline)}")
        else:
            click.echo(f"   Scripts: {len(cfg.scripts)}")
        click.echo(f"   Elevated: {'yes (' + cfg.elevated_user + ')' if cfg.is_elevated else 'no'}")
        click.echo(f"   Valid exit codes: {sorted(cfg.valid_exit_codes)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def platforms(as_json: bool) -> None:
    """List supported operating systems and their defaults."""
    from pwsh_provisioner.core.config.platforms import PLATFORMS

    if as_json:
        click.echo(json.dumps({t.value: p.to_dict() for t, p in PLATFORMS.items()}, indent=2))
        return

    for os_type, platform in PLATFORMS.items():
        click.secho(f"\n🖥  {os_type.value}", fg="cyan", bold=True)
        click.echo(f"   Remote directory: {platform.remote_directory}")
        click.echo(f"   Elevation: {platform.elevation_strategy}")
        click.echo(f"   Auto-update: {'yes' if platform.autoupdate_template else 'no'}")
        click.echo(f"   Reboot: {'yes' if platform.reboot_initiate_command else 'no'}")
    click.echo()


if __name__ == "__main__":
    cli()

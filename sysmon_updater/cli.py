"""sysmon-updater CLI — the scheduled entry point."""

from __future__ import annotations

import functools
import logging

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sysmon_updater import __version__
from sysmon_updater.config import UpdaterConfig, load_config
from sysmon_updater.errors import UpdaterError
from sysmon_updater.inspectors.installed import WindowsStateInspector
from sysmon_updater.log import configure_logging
from sysmon_updater.models import ActionKind, ReconcileRequest, RunReport
from sysmon_updater.orchestrator import Updater

console = Console()
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def main():
    """sysmon-updater — keep the monitoring agent current.

    Compares the installed agent against the source executable and config on
    a shared location and applies the smallest change needed: nothing, a
    config reload, or a full reinstall.
    """


def settings_options(fn):
    """Options shared by every command that needs an UpdaterConfig."""

    @click.option("--settings", "-s", type=click.Path(dir_okay=False), default=None,
                  help="YAML settings file")
    @click.option("--exe", "executable", default=None,
                  help="Agent executable (absolute, or relative to --source-dir)")
    @click.option("--config", "config_file", default=None,
                  help="Agent XML config (absolute, or relative to --source-dir)")
    @click.option("--source-dir", default=None, help="Directory holding the source artifacts")
    @click.option("--driver-name", default=None, help="Agent driver service name")
    @click.option("--log-dir", default=None, help="Also write a log file here")
    @click.option("--verbose", "-v", is_flag=True, help="Log agent output and debug detail")
    @functools.wraps(fn)
    def wrapper(settings, executable, config_file, source_dir, driver_name, log_dir, verbose, **kwargs):
        try:
            base = load_config(settings) if settings else UpdaterConfig()
        except UpdaterError as e:
            raise click.BadParameter(str(e), param_hint="--settings") from e

        config = base.with_overrides(
            executable=executable,
            config_file=config_file,
            source_dir=source_dir,
            driver_name=driver_name,
            log_dir=log_dir,
            log_level="DEBUG" if verbose else None,
        )
        configure_logging(config.log_level, config.log_dir, console=console)
        return fn(config=config, **kwargs)

    return wrapper


def _build_updater(config: UpdaterConfig) -> Updater:
    inspector = WindowsStateInspector(config.executable_name, config.driver_name)
    return Updater(config, inspector)


def _execute(config: UpdaterConfig, request: ReconcileRequest, dry_run: bool) -> None:
    try:
        report = _build_updater(config).run(request, dry_run=dry_run)
    except UpdaterError as e:
        logger.error("Run aborted: %s", e)
        console.print(f"[red]FAILED[/] {escape(str(e))}")
        raise SystemExit(1)

    _print_report(report)
    if report.config_verified is False:
        console.print("[yellow]Warning:[/] agent did not record the applied config hash")


def _print_report(report: RunReport) -> None:
    title = "Plan" if report.dry_run else "Result"
    style = "green" if report.action.kind == ActionKind.NOOP else "cyan"
    console.print(Panel(Text(report.summary()), title=title, border_style=style))


# ── Run ──────────────────────────────────────────────────────────────


@main.command()
@settings_options
@click.option("--uninstall", is_flag=True, help="Uninstall the agent and stop")
@click.option("--force-install", is_flag=True, help="Reinstall even if the executable is current")
@click.option("--force-config", is_flag=True, help="Reload config even if its hash matches")
@click.option("--dry-run", is_flag=True, help="Decide but do not touch the agent")
def run(config: UpdaterConfig, uninstall: bool, force_install: bool, force_config: bool, dry_run: bool):
    """Reconcile the installed agent with the source artifacts."""
    request = ReconcileRequest(
        uninstall=uninstall,
        force_install=force_install,
        force_config=force_config,
    )
    _execute(config, request, dry_run=dry_run)


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@settings_options
@click.option("--force-install", is_flag=True, help="Plan as if reinstall were forced")
@click.option("--force-config", is_flag=True, help="Plan as if a config reload were forced")
def plan(config: UpdaterConfig, force_install: bool, force_config: bool):
    """Show what 'run' would do, without doing it."""
    request = ReconcileRequest(force_install=force_install, force_config=force_config)
    _execute(config, request, dry_run=True)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@settings_options
def status(config: UpdaterConfig):
    """Show the installed agent as the OS reports it."""
    try:
        state = _build_updater(config).inspector.query()
    except UpdaterError as e:
        console.print(f"[red]FAILED[/] {escape(str(e))}")
        raise SystemExit(1)

    if not state.exists:
        console.print(f"[yellow]{config.executable_name} is not installed.[/]")
        return

    table = Table(title=f"Installed agent ({config.executable_name})")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Service status", state.service_status.value)
    table.add_row("Start type", state.start_type.value)
    table.add_row("Image path", state.image_path)
    table.add_row("Config hash", str(state.config_hash_record or "(none recorded)"))
    console.print(table)


if __name__ == "__main__":
    main()

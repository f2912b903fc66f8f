"""Typer CLI for the wakekeeper daemon."""
import asyncio
import json
import os
import signal as os_signal
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

import typer

from . import __version__
from .app import RUNTIME_STATUS_KEY, read_pid, run_daemon
from .config import settings
from .logging_setup import setup_logging
from .platform.alarm import SystemdAlarmTimer
from .scheduler.errors import ConfigError, ConfigReadError, InvalidInterval
from .scheduler.models import KEY_VIBRATE_ON_IDLE, SchedulerConfig
from .scheduler.schedule import interval_to_human
from .scheduler.service.store import DurableConfig
from .scheduler.types import RestartSignal, SignalKind

app = typer.Typer(help="Keep one application awake and in front, surviving restarts.")

T = TypeVar("T")


def _with_store(fn: Callable[[DurableConfig], Awaitable[T]]) -> T:
    async def _run() -> T:
        store = DurableConfig(settings.data_dir, settings.default_interval_ms)
        await store.initialize()
        try:
            return await fn(store)
        finally:
            await store.close()

    return asyncio.run(_run())


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


def _notify_daemon(sig: os_signal.Signals) -> bool:
    pid = read_pid(settings.pid_file)
    if not pid:
        return False
    try:
        os.kill(pid, sig)
    except OSError as e:
        typer.secho(f"Could not signal daemon {pid}: {e}", err=True, fg=typer.colors.YELLOW)
        return False
    return True


def _fmt_ms(epoch_ms: int | None) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version."
    ),
) -> None:
    setup_logging(settings, to_file=False, level="WARNING")


@app.command("run")
def run(
    boot: bool = typer.Option(False, "--boot", help="Started by a boot hook."),
    kind: SignalKind | None = typer.Option(
        None, "--signal", help="Lifecycle signal to start with (overrides --boot)."
    ),
    interval_ms: int | None = typer.Option(
        None, "--interval-ms", help="Interval carried by a fired watchdog."
    ),
) -> None:
    """Run the daemon in the foreground."""
    if interval_ms is not None and interval_ms <= 0:
        _fail(str(InvalidInterval(interval_ms)), 2)
    if read_pid(settings.pid_file):
        _fail("Daemon already running", 1)
    setup_logging(settings)
    if kind is None:
        kind = SignalKind.BOOT_COMPLETED if boot else SignalKind.EXPLICIT_RESTART_REQUEST
    try:
        run_daemon(settings, RestartSignal(kind=kind, interval_ms=interval_ms))
    except ConfigError as e:
        _fail(f"Cannot start: {e}", 2)


@app.command("enable")
def enable(
    interval_ms: int = typer.Option(
        settings.default_interval_ms, "--interval-ms", help="Milliseconds between firings."
    ),
    vibrate: bool | None = typer.Option(
        None, "--vibrate/--no-vibrate", help="Pulse haptics while the display is off."
    ),
) -> None:
    """Enable the scheduler (or change its interval)."""
    try:
        SchedulerConfig.validated(True, interval_ms, bool(vibrate))
    except InvalidInterval as e:
        _fail(str(e), 2)

    async def _save(store: DurableConfig) -> SchedulerConfig:
        keep = vibrate
        if keep is None:
            keep = bool(await store.get(KEY_VIBRATE_ON_IDLE))
        config = SchedulerConfig.validated(True, interval_ms, keep)
        await store.save_config(config)
        return config

    config = _with_store(_save)
    typer.echo(f"Enabled, {interval_to_human(config.interval_ms)}")
    if _notify_daemon(os_signal.SIGHUP):
        typer.echo("Daemon notified")
    else:
        typer.echo("Daemon not running; start it with `wakekeeper run`")


@app.command("disable")
def disable() -> None:
    """Disable the scheduler."""

    async def _save(store: DurableConfig) -> None:
        try:
            current = await store.load_config()
        except ConfigReadError:
            current = SchedulerConfig(interval_ms=settings.default_interval_ms)
        await store.save_config(current.model_copy(update={"enabled": False}))

    _with_store(_save)
    typer.echo("Disabled")
    if _notify_daemon(os_signal.SIGHUP):
        typer.echo("Daemon notified")


@app.command("status")
def status(
    as_json: bool = typer.Option(False, "--json", help="Render status as JSON."),
) -> None:
    """Show stored config, daemon liveness and today's runs."""
    pid = read_pid(settings.pid_file)

    async def _read(store: DurableConfig) -> dict[str, Any]:
        try:
            config: dict[str, Any] | None = (await store.load_config()).to_store()
        except ConfigReadError as e:
            config = None
            typer.secho(f"Stored config unreadable: {e}", err=True, fg=typer.colors.YELLOW)
        return {
            "config": config,
            "daemon_pid": pid or None,
            "runtime": await store.get(RUNTIME_STATUS_KEY) if pid else None,
            "today": await store.get_runs_stats_today(),
        }

    result = _with_store(_read)
    if as_json:
        typer.echo(json.dumps(result, indent=2, sort_keys=True))
        return

    config = result["config"]
    if config is None:
        typer.echo("Config: unreadable")
    else:
        state = "enabled" if config["enabled"] else "disabled"
        typer.echo(f"Config: {state}, {interval_to_human(config['interval_ms'])}, "
                   f"vibrate_on_idle={config['vibrate_on_idle']}")
    typer.echo(f"Daemon: {'running (pid ' + str(pid) + ')' if pid else 'not running'}")

    runtime = result["runtime"]
    if runtime:
        typer.echo(f"State: {runtime['state']}{' (paused)' if runtime['paused'] else ''}")
        typer.echo(f"Next firing: {_fmt_ms(runtime['next_fire_at_ms'])}")
        watchdog = runtime["watchdog"]
        typer.echo(f"Watchdog due: {_fmt_ms(watchdog['due_at_ms']) if watchdog else '-'}")
        typer.echo(f"Foreground: {runtime['foreground']['current_app'] or '-'}")
        if runtime["wake_degraded"]:
            typer.secho("Wake hold degraded", fg=typer.colors.YELLOW)

    today = result["today"]
    typer.echo(f"Today: {today['success']}/{today['total']} ok "
               f"({today['success_rate']:.0%})")


@app.command("signal")
def signal(
    kind: SignalKind = typer.Argument(..., help="Lifecycle signal kind."),
    interval_ms: int | None = typer.Option(
        None, "--interval-ms", help="Interval carried by a fired watchdog."
    ),
) -> None:
    """Deliver a lifecycle signal: to the live daemon, or by starting one.

    With the systemd backend the daemon is started as its own service unit,
    since this command often runs inside the unit of a fired timer.
    """
    if interval_ms is not None and interval_ms <= 0:
        _fail(str(InvalidInterval(interval_ms)), 2)

    if _notify_daemon(os_signal.SIGUSR1):
        typer.echo(f"Delivered {kind.value} to daemon")
        return

    async def _enabled(store: DurableConfig) -> bool | None:
        try:
            return (await store.load_config()).enabled
        except ConfigReadError:
            return None

    if _with_store(_enabled) is False:
        typer.echo("Scheduler disabled, nothing to do")
        return

    setup_logging(settings)
    if settings.watchdog_backend == "systemd":
        if SystemdAlarmTimer().start_daemon_unit(kind.value, interval_ms):
            typer.echo(f"Started daemon service for {kind.value}")
            return
        typer.secho("Could not start daemon service, running here", err=True, fg=typer.colors.YELLOW)
    try:
        run_daemon(settings, RestartSignal(kind=kind, interval_ms=interval_ms))
    except ConfigError as e:
        _fail(f"Cannot start: {e}", 2)


@app.command("history")
def history(
    limit: int = typer.Option(20, "--limit", min=1, help="Number of runs to show."),
    as_json: bool = typer.Option(False, "--json", help="Render runs as JSON."),
) -> None:
    """Show recent trigger runs."""

    async def _read(store: DurableConfig):
        return await store.get_runs(limit=limit), await store.get_runs_stats_today()

    runs, today = _with_store(_read)
    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in runs], indent=2))
        return
    if not runs:
        typer.echo("No runs recorded")
        return
    for run_ in runs:
        line = f"{_fmt_ms(run_.started_at_ms)}  {run_.status.value:<6}  {run_.duration_ms:>5}ms  "
        line += run_.error if run_.error else run_.action
        typer.echo(line)
    typer.echo(f"Today: {today['success']}/{today['total']} ok ({today['success_rate']:.0%})")


if __name__ == "__main__":
    app()

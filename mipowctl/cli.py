"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer

from mipowctl.core.bulb import Bulb
from mipowctl.core.errors import MipowctlError
from mipowctl.core.model import BatchResult
from mipowctl.core.service import BulbObserver, BulbService

app = typer.Typer(
    help="Control nearby MiPOW PLAYBULB lights over Bluetooth LE",
    add_completion=False,
)

USAGE = (
    'Expected a verb: "list", "allon", "alloff", "brightness", "color", '
    '"pulse", "rainbow-pulse" or "rainbow-fade".'
)
DEFAULT_SPEED = 20


def _byte_argument() -> Any:
    return typer.Argument(..., min=0, max=255)


def _speed_option() -> Any:
    return typer.Option(DEFAULT_SPEED, "--speed", min=0, max=255, help="Hold per animation step (0-255)")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    timeout: float | None = typer.Option(None, "--timeout", help="Discovery window in seconds"),
    config: Path | None = typer.Option(None, "--config", help="Path to a YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"timeout": timeout, "config": config}
    if ctx.invoked_subcommand is None:
        typer.echo(USAGE, err=True)
        typer.echo(ctx.get_usage(), err=True)
        raise typer.Exit(code=1)


def _build_service(ctx: typer.Context) -> BulbService:
    options = ctx.obj or {}
    service = BulbService(
        config_path=options.get("config"),
        scan_timeout_s=options.get("timeout"),
    )
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _run_batch(
    ctx: typer.Context,
    action: str,
    run: Callable[[BulbService, BulbObserver], BatchResult],
) -> None:
    def _announce(bulb: Bulb) -> None:
        typer.echo(f"{action} {bulb.address}.")

    try:
        service = _build_service(ctx)
        typer.echo("Connecting to all nearby MiPOW bulbs.")
        result = run(service, _announce)
    except MipowctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if result.scan_error:
        typer.echo(f"Warning: scan error: {result.scan_error}", err=True)
    if result.interrupted:
        typer.echo("Warning: discovery interrupted", err=True)
    for address, message in result.failed:
        typer.echo(f"Error: {address}: {message}", err=True)
    if result.attempted == 0:
        typer.echo("No MiPOW bulbs found")
    if result.failed:
        raise typer.Exit(code=1)


@app.command("list")
def list_bulbs(ctx: typer.Context) -> None:
    """Print every MiPOW bulb advertising during the discovery window."""
    try:
        service = _build_service(ctx)
        bulbs = service.list_bulbs(on_found=lambda b: typer.echo(f'"{b.name}" ({b.address})'))
        if not bulbs:
            typer.echo("No MiPOW bulbs found")
    except MipowctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("allon")
def all_on(ctx: typer.Context) -> None:
    """Set every discovered bulb to full white brightness."""
    _run_batch(ctx, "Turning on", lambda service, observer: service.all_on(on_bulb=observer))


@app.command("alloff")
def all_off(ctx: typer.Context) -> None:
    """Turn every discovered bulb off."""
    _run_batch(ctx, "Turning off", lambda service, observer: service.all_off(on_bulb=observer))


@app.command("brightness")
def brightness(ctx: typer.Context, level: int = _byte_argument()) -> None:
    """Set white brightness (0 is off, 255 is full) on every discovered bulb."""
    _run_batch(
        ctx,
        f"Setting brightness {level} on",
        lambda service, observer: service.set_white_brightness(level, on_bulb=observer),
    )


@app.command("color")
def color(
    ctx: typer.Context,
    red: int = _byte_argument(),
    green: int = _byte_argument(),
    blue: int = _byte_argument(),
) -> None:
    """Set an RGB color on every discovered bulb."""
    _run_batch(
        ctx,
        f"Setting color ({red}, {green}, {blue}) on",
        lambda service, observer: service.set_color(red, green, blue, on_bulb=observer),
    )


@app.command("pulse")
def pulse(
    ctx: typer.Context,
    red: int = _byte_argument(),
    green: int = _byte_argument(),
    blue: int = _byte_argument(),
    speed: int = _speed_option(),
) -> None:
    """Pulse an RGB color on every discovered bulb."""
    _run_batch(
        ctx,
        "Pulsing",
        lambda service, observer: service.set_pulse(red, green, blue, speed, on_bulb=observer),
    )


@app.command("rainbow-pulse")
def rainbow_pulse(ctx: typer.Context, speed: int = _speed_option()) -> None:
    """Start the built-in rainbow pulse effect on every discovered bulb."""
    _run_batch(
        ctx,
        "Starting rainbow pulse on",
        lambda service, observer: service.set_rainbow_pulse(speed, on_bulb=observer),
    )


@app.command("rainbow-fade")
def rainbow_fade(ctx: typer.Context, speed: int = _speed_option()) -> None:
    """Start the built-in rainbow fade effect on every discovered bulb."""
    _run_batch(
        ctx,
        "Starting rainbow fade on",
        lambda service, observer: service.set_rainbow_fade(speed, on_bulb=observer),
    )


def run() -> None:
    app()


if __name__ == "__main__":
    run()

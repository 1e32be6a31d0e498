"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import importlib.util
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from mipowctl.core.bulb import Bulb
from mipowctl.core.config import Settings, load_settings, with_overrides
from mipowctl.core.deadline import INTERRUPTED, interruptible_deadline
from mipowctl.core.errors import CommandArgumentError, MipowctlError
from mipowctl.core.model import Advertisement, BatchResult, DiscoveredBulb
from mipowctl.core.pipeline import close_quietly, run_for_each_discovered_bulb
from mipowctl.core.scan import scan_bulbs
from mipowctl.transports.base import Transport
from mipowctl.transports.ble_gatt import BleakTransport

LOGGER = logging.getLogger(__name__)

BulbCommand = Callable[[Bulb], Awaitable[None]]
BulbObserver = Callable[[Bulb], None]

FULL_BRIGHTNESS = 255


@dataclass
class _BatchCollector:
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    def freeze(self, *, scan_error: str | None, interrupted: bool) -> BatchResult:
        return BatchResult(
            succeeded=tuple(self.succeeded),
            failed=tuple(self.failed),
            scan_error=scan_error,
            interrupted=interrupted,
        )


class BulbService:
    def __init__(
        self,
        *,
        transport: Transport | None = None,
        settings: Settings | None = None,
        config_path: Path | None = None,
        scan_timeout_s: float | None = None,
    ) -> None:
        base = settings if settings is not None else load_settings(config_path)
        self.settings = with_overrides(base, scan_timeout_s=scan_timeout_s)
        self.transport = transport or BleakTransport()
        self.runtime_warnings = _runtime_warnings() if transport is None else ()

    def list_bulbs(self, on_found: Callable[[DiscoveredBulb], None] | None = None) -> list[DiscoveredBulb]:
        """Collect every bulb advertising during the discovery window."""
        return asyncio.run(self._list_bulbs(on_found))

    async def _list_bulbs(
        self,
        on_found: Callable[[DiscoveredBulb], None] | None,
    ) -> list[DiscoveredBulb]:
        found: list[DiscoveredBulb] = []

        def _record(advertisement: Advertisement) -> None:
            bulb = DiscoveredBulb(address=advertisement.address, name=advertisement.name or "")
            found.append(bulb)
            if on_found is not None:
                on_found(bulb)

        async with interruptible_deadline(self.settings.scan_timeout_s) as scope:
            await scan_bulbs(self.transport, scope, _record, active=self.settings.active_scan)
        return found

    def apply(self, command: BulbCommand, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        return asyncio.run(self.apply_async(command, on_bulb=on_bulb))

    async def apply_async(self, command: BulbCommand, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        """Run ``command`` on every bulb discovered in the window, one task per bulb.

        Each bulb's connection is closed after its command, whether it failed
        or not. Domain errors are recorded per bulb; anything else propagates
        once every dispatched connection has been closed. Returns once every
        spawned task has finished.
        """
        collector = _BatchCollector()
        dispatched: list[Bulb] = []

        async def _work(bulb: Bulb) -> None:
            try:
                await command(bulb)
                await asyncio.sleep(self.settings.settle_s)
            except MipowctlError as exc:
                LOGGER.warning("Command failed for %s: %s", bulb.address, exc)
                collector.failed.append((bulb.address, str(exc)))
            else:
                collector.succeeded.append(bulb.address)
            finally:
                await close_quietly(bulb)

        try:
            async with asyncio.TaskGroup() as workers:

                async def _dispatch(bulb: Bulb) -> None:
                    dispatched.append(bulb)
                    if on_bulb is not None:
                        on_bulb(bulb)
                    workers.create_task(_work(bulb), name=f"mipowctl-{bulb.address}")

                result = await run_for_each_discovered_bulb(
                    self.transport,
                    self.settings.scan_timeout_s,
                    _dispatch,
                    settings=self.settings,
                )
        finally:
            # Workers cancelled before their first step never reach their own close.
            for bulb in dispatched:
                if not bulb.closed:
                    await close_quietly(bulb)

        return collector.freeze(
            scan_error=str(result.scan_error) if result.scan_error is not None else None,
            interrupted=result.reason == INTERRUPTED,
        )

    def set_white_brightness(self, level: int, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        _check_bytes(level=level)
        return self.apply(lambda bulb: bulb.set_white_brightness(level), on_bulb=on_bulb)

    def all_on(self, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        return self.set_white_brightness(FULL_BRIGHTNESS, on_bulb=on_bulb)

    def all_off(self, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        return self.set_white_brightness(0, on_bulb=on_bulb)

    def set_color(self, r: int, g: int, b: int, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        _check_bytes(red=r, green=g, blue=b)
        return self.apply(lambda bulb: bulb.set_color(r, g, b), on_bulb=on_bulb)

    def set_pulse(
        self,
        r: int,
        g: int,
        b: int,
        speed: int,
        *,
        on_bulb: BulbObserver | None = None,
    ) -> BatchResult:
        _check_bytes(red=r, green=g, blue=b, speed=speed)
        return self.apply(lambda bulb: bulb.set_pulse(r, g, b, speed), on_bulb=on_bulb)

    def set_rainbow_pulse(self, speed: int, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        _check_bytes(speed=speed)
        return self.apply(lambda bulb: bulb.set_rainbow_pulse(speed), on_bulb=on_bulb)

    def set_rainbow_fade(self, speed: int, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        _check_bytes(speed=speed)
        return self.apply(lambda bulb: bulb.set_rainbow_fade(speed), on_bulb=on_bulb)


def _check_bytes(**values: int) -> None:
    for name, value in values.items():
        if not 0 <= value <= 255:
            raise CommandArgumentError(f"{name} must be between 0 and 255, got {value}")


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if importlib.util.find_spec("bleak") is None:
        warnings.append("Python package 'bleak' is not installed; BLE commands will fail.")
    return tuple(warnings)

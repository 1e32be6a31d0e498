"""Stable public API for building tooling on top of mipowctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from mipowctl.core.bulb import Bulb, discover_bulb
from mipowctl.core.config import Settings
from mipowctl.core.deadline import Scope, interruptible_deadline
from mipowctl.core.errors import (
    CharacteristicsNotFoundError,
    CommandArgumentError,
    ConfigError,
    DiscoveryError,
    MipowctlError,
    ScanError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from mipowctl.core.model import Advertisement, BatchResult, DiscoveredBulb, PipelineResult
from mipowctl.core.pipeline import for_each_discovered_bulb, run_for_each_discovered_bulb
from mipowctl.core.protocol import COLOR_UUID, EFFECT_UUID, SERVICE_UUID
from mipowctl.core.service import BulbCommand, BulbObserver, BulbService
from mipowctl.transports.base import Transport
from mipowctl.transports.ble_gatt import BleakTransport

__all__ = [
    "MipowctlError",
    "ConfigError",
    "CommandArgumentError",
    "DiscoveryError",
    "CharacteristicsNotFoundError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "ScanError",
    "Advertisement",
    "BatchResult",
    "DiscoveredBulb",
    "PipelineResult",
    "Settings",
    "Scope",
    "Bulb",
    "Transport",
    "BleakTransport",
    "SERVICE_UUID",
    "COLOR_UUID",
    "EFFECT_UUID",
    "discover_bulb",
    "for_each_discovered_bulb",
    "run_for_each_discovered_bulb",
    "interruptible_deadline",
    "Client",
]


class Client:
    """Public client for discovering and commanding nearby MiPOW bulbs.

    Every command scans for the configured window, connects to each bulb that
    shows up and applies the command to all of them. Byte arguments outside
    0-255 raise ``CommandArgumentError`` before any scan starts. Transport and
    discovery failures on a single bulb are reported in the returned
    ``BatchResult`` rather than raised.
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        settings: Settings | None = None,
        config_path: Path | None = None,
        scan_timeout_s: float | None = None,
    ) -> None:
        self._service = BulbService(
            transport=transport,
            settings=settings,
            config_path=config_path,
            scan_timeout_s=scan_timeout_s,
        )

    @property
    def settings(self) -> Settings:
        return self._service.settings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    def list_bulbs(self) -> list[DiscoveredBulb]:
        return self._service.list_bulbs()

    def apply(self, command: BulbCommand, *, on_bulb: BulbObserver | None = None) -> BatchResult:
        return self._service.apply(command, on_bulb=on_bulb)

    def all_on(self) -> BatchResult:
        return self._service.all_on()

    def all_off(self) -> BatchResult:
        return self._service.all_off()

    def set_white_brightness(self, level: int) -> BatchResult:
        return self._service.set_white_brightness(level)

    def set_color(self, r: int, g: int, b: int) -> BatchResult:
        return self._service.set_color(r, g, b)

    def set_pulse(self, r: int, g: int, b: int, speed: int) -> BatchResult:
        return self._service.set_pulse(r, g, b, speed)

    def set_rainbow_pulse(self, speed: int) -> BatchResult:
        return self._service.set_rainbow_pulse(speed)

    def set_rainbow_fade(self, speed: int) -> BatchResult:
        return self._service.set_rainbow_fade(speed)

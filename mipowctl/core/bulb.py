"""Device handle for a connected bulb and the discovery that produces it."""

from __future__ import annotations

import logging
from typing import Any

from mipowctl.core.errors import CharacteristicsNotFoundError, DiscoveryError, TransportError
from mipowctl.core.protocol import (
    COLOR_UUID,
    EFFECT_UUID,
    SERVICE_UUID,
    encode_color,
    encode_pulse,
    encode_rainbow_fade,
    encode_rainbow_pulse,
    encode_white_brightness,
    uuid_equal,
)
from mipowctl.transports.base import Connection

LOGGER = logging.getLogger(__name__)

DEFAULT_MTU = 500


class Bulb:
    """A live connection bound to the bulb's color and effect characteristics.

    Only bulb operations are exposed; the connection stays private. Closing
    tears the connection down once, later calls do nothing.
    """

    def __init__(
        self,
        connection: Connection,
        color: Any,
        effect: Any,
        *,
        name: str | None = None,
        write_with_response: bool = True,
    ) -> None:
        if color is None or effect is None:
            raise CharacteristicsNotFoundError(
                f"Bulb {connection.address} requires both color and effect characteristics"
            )
        self._connection = connection
        self._color = color
        self._effect = effect
        self._write_with_response = write_with_response
        self._closed = False
        self.name = name or ""

    @property
    def address(self) -> str:
        return self._connection.address

    @property
    def closed(self) -> bool:
        return self._closed

    async def set_color(self, r: int, g: int, b: int) -> None:
        await self._write(self._color, encode_color(r, g, b))

    async def set_white_brightness(self, level: int) -> None:
        await self._write(self._color, encode_white_brightness(level))

    async def set_rainbow_pulse(self, speed: int) -> None:
        await self._write(self._effect, encode_rainbow_pulse(speed))

    async def set_rainbow_fade(self, speed: int) -> None:
        await self._write(self._effect, encode_rainbow_fade(speed))

    async def set_pulse(self, r: int, g: int, b: int, speed: int) -> None:
        await self._write(self._effect, encode_pulse(r, g, b, speed))

    async def _write(self, characteristic: Any, frame: bytes) -> None:
        LOGGER.debug("Writing %s to %s on %s", frame.hex(), characteristic.uuid, self.address)
        await self._connection.write_characteristic(
            characteristic,
            frame,
            response=self._write_with_response,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._connection.close()

    async def __aenter__(self) -> Bulb:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Bulb(address={self.address!r}, name={self.name!r})"


async def discover_bulb(
    connection: Connection,
    *,
    name: str | None = None,
    mtu: int = DEFAULT_MTU,
    write_with_response: bool = True,
) -> Bulb:
    """Locate the bulb characteristics on ``connection`` and bind them.

    Services are examined in order and discovery stops as soon as both
    characteristics have been seen, even if they live in different services.
    The connection is left open on failure; the caller decides whether to
    close it.
    """
    try:
        await connection.exchange_mtu(mtu)
    except TransportError as exc:
        LOGGER.warning("MTU exchange with %s failed, continuing: %s", connection.address, exc)

    try:
        services = await connection.discover_services([SERVICE_UUID])
    except TransportError as exc:
        raise DiscoveryError(f"Failed to discover services on {connection.address}: {exc}") from exc

    color = effect = None
    for service in services:
        try:
            characteristics = await connection.discover_characteristics(
                [COLOR_UUID, EFFECT_UUID], service
            )
        except TransportError as exc:
            raise DiscoveryError(
                f"Failed to discover characteristics (service {service.uuid}) "
                f"on {connection.address}: {exc}"
            ) from exc

        for characteristic in characteristics:
            if uuid_equal(characteristic.uuid, COLOR_UUID):
                color = characteristic
            elif uuid_equal(characteristic.uuid, EFFECT_UUID):
                effect = characteristic

        if color is not None and effect is not None:
            return Bulb(
                connection,
                color,
                effect,
                name=name,
                write_with_response=write_with_response,
            )

    raise CharacteristicsNotFoundError(
        f"Color and effect characteristics not found on {connection.address}"
    )

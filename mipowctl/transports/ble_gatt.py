"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from mipowctl.core.deadline import Scope
from mipowctl.core.errors import (
    MipowctlError,
    ScanError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from mipowctl.core.model import Advertisement
from mipowctl.core.protocol import normalize_uuid

LOGGER = logging.getLogger(__name__)


def _bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportConnectError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BleakConnection:
    """Connection adapter over a connected ``BleakClient``."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    def address(self) -> str:
        return self._client.address

    async def exchange_mtu(self, mtu: int) -> int:
        # bleak negotiates on its own; BlueZ only reports it after an explicit acquire.
        acquire = getattr(getattr(self._client, "_backend", None), "_acquire_mtu", None)
        try:
            if acquire is not None:
                await acquire()
            size = int(self._client.mtu_size)
        except Exception as exc:
            raise TransportError(f"MTU exchange failed for {self.address}: {exc}") from exc
        if size < mtu:
            LOGGER.debug("Requested MTU %d from %s, peripheral uses %d", mtu, self.address, size)
        return size

    async def discover_services(self, uuids: Sequence[str]) -> list[Any]:
        wanted = {normalize_uuid(u) for u in uuids}
        try:
            services = list(self._client.services)
        except Exception as exc:
            raise TransportError(f"Service discovery failed for {self.address}: {exc}") from exc
        return [s for s in services if normalize_uuid(s.uuid) in wanted]

    async def discover_characteristics(self, uuids: Sequence[str], service: Any) -> list[Any]:
        wanted = {normalize_uuid(u) for u in uuids}
        try:
            characteristics = list(service.characteristics)
        except Exception as exc:
            raise TransportError(
                f"Characteristic discovery failed for {self.address} (service {service.uuid}): {exc}"
            ) from exc
        return [c for c in characteristics if normalize_uuid(c.uuid) in wanted]

    async def write_characteristic(self, characteristic: Any, data: bytes, *, response: bool = True) -> None:
        try:
            await self._client.write_gatt_char(characteristic, data, response=response)
        except Exception as exc:
            raise TransportSendError(
                f"BLE GATT write to {characteristic.uuid} on {self.address} failed: {exc}"
            ) from exc

    async def close(self) -> None:
        try:
            await self._client.disconnect()
        except Exception as exc:
            raise TransportError(f"BLE disconnect from {self.address} failed: {exc}") from exc


class BleakTransport:
    async def scan(
        self,
        scope: Scope,
        on_advertisement: Callable[[Advertisement], None],
        *,
        filter: Callable[[Advertisement], bool],
        active: bool = True,
    ) -> None:
        bleak = _bleak()

        def _on_detection(device: Any, adv: Any) -> None:
            advertisement = Advertisement(
                address=device.address,
                name=adv.local_name or device.name,
                service_uuids=tuple(normalize_uuid(u) for u in adv.service_uuids or ()),
            )
            if filter(advertisement):
                on_advertisement(advertisement)

        scanner = bleak.BleakScanner(
            detection_callback=_on_detection,
            scanning_mode="active" if active else "passive",
        )
        try:
            async with scanner:
                await scope.wait()
        except MipowctlError:
            raise
        except Exception as exc:
            raise ScanError(f"BLE scan failed: {exc}") from exc

    async def dial(self, address: str, *, timeout_s: float = 10.0) -> BleakConnection:
        bleak = _bleak()
        client = bleak.BleakClient(address, timeout=timeout_s)
        try:
            await client.connect()
        except asyncio.TimeoutError as exc:
            raise TransportTimeoutError(f"BLE connect timed out for {address}") from exc
        except Exception as exc:
            raise TransportConnectError(f"BLE connect failed for {address}: {exc}") from exc

        if not client.is_connected:
            try:
                await client.disconnect()
            except Exception as exc:
                LOGGER.debug("Disconnect after failed connect to %s failed: %s", address, exc)
            raise TransportConnectError(f"BLE connect failed for {address}")
        return BleakConnection(client)

"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from mipowctl.core.model import Advertisement

if TYPE_CHECKING:
    from mipowctl.core.deadline import Scope


class GattService(Protocol):
    uuid: str


class GattCharacteristic(Protocol):
    uuid: str


class Connection(Protocol):
    @property
    def address(self) -> str:
        """Address of the connected peripheral."""

    async def exchange_mtu(self, mtu: int) -> int:
        """Negotiate the transfer unit and return the size in effect."""

    async def discover_services(self, uuids: Sequence[str]) -> list[Any]:
        """Return services matching any of ``uuids``."""

    async def discover_characteristics(self, uuids: Sequence[str], service: Any) -> list[Any]:
        """Return characteristics of ``service`` matching any of ``uuids``."""

    async def write_characteristic(self, characteristic: Any, data: bytes, *, response: bool = True) -> None:
        """Write ``data`` to ``characteristic``."""

    async def close(self) -> None:
        """Tear down the connection."""


class Transport(Protocol):
    async def scan(
        self,
        scope: Scope,
        on_advertisement: Callable[[Advertisement], None],
        *,
        filter: Callable[[Advertisement], bool],
        active: bool = True,
    ) -> None:
        """Deliver filtered advertisements until ``scope`` is done."""

    async def dial(self, address: str, *, timeout_s: float = 10.0) -> Connection:
        """Open a connection to ``address``."""

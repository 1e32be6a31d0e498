"""Advertisement scanning narrowed to MiPOW bulbs."""

from __future__ import annotations

import threading
from collections.abc import Callable

from mipowctl.core.deadline import Scope
from mipowctl.core.model import Advertisement
from mipowctl.core.protocol import SERVICE_UUID, normalize_uuid
from mipowctl.transports.base import Transport


class BulbScanFilter:
    """Accepts each bulb address once per scan session."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    @property
    def seen(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._seen)

    def accepts(self, advertisement: Advertisement) -> bool:
        with self._lock:
            if advertisement.address in self._seen:
                return False
            if not any(normalize_uuid(u) == SERVICE_UUID for u in advertisement.service_uuids):
                return False
            self._seen.add(advertisement.address)
            return True


async def scan_bulbs(
    transport: Transport,
    scope: Scope,
    on_match: Callable[[Advertisement], None],
    *,
    active: bool = True,
) -> None:
    """Scan until ``scope`` is done, calling ``on_match`` once per bulb address.

    ``on_match`` runs on the transport's detection callback and must not block.
    Transport failures surface as ``ScanError``.
    """
    scan_filter = BulbScanFilter()
    await transport.scan(scope, on_match, filter=scan_filter.accepts, active=active)

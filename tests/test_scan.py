from __future__ import annotations

import asyncio

from mipowctl.core.deadline import Scope
from mipowctl.core.model import Advertisement
from mipowctl.core.protocol import SERVICE_UUID
from mipowctl.core.scan import BulbScanFilter, scan_bulbs

BULB_A = Advertisement(address="AA:BB:CC:00:00:01", name="PLAYBULB A", service_uuids=(SERVICE_UUID,))
BULB_B = Advertisement(address="AA:BB:CC:00:00:02", name="PLAYBULB B", service_uuids=("ff0d",))
OTHER = Advertisement(address="11:22:33:44:55:66", name="Headphones", service_uuids=("180f",))


class ReplayTransport:
    def __init__(self, advertisements: list[Advertisement]) -> None:
        self.advertisements = advertisements
        self.active: bool | None = None

    async def scan(self, scope, on_advertisement, *, filter, active=True) -> None:
        self.active = active
        for advertisement in self.advertisements:
            if filter(advertisement):
                on_advertisement(advertisement)
        scope.cancel()

    async def dial(self, address, *, timeout_s=10.0):
        raise AssertionError("scan tests never dial")


def test_filter_accepts_each_address_once() -> None:
    scan_filter = BulbScanFilter()
    assert scan_filter.accepts(BULB_A)
    assert not scan_filter.accepts(BULB_A)
    assert scan_filter.accepts(BULB_B)
    assert scan_filter.seen == frozenset({BULB_A.address, BULB_B.address})


def test_filter_rejects_other_devices_without_marking_them_seen() -> None:
    scan_filter = BulbScanFilter()
    assert not scan_filter.accepts(OTHER)
    assert scan_filter.seen == frozenset()


def test_address_seen_after_rejection_can_still_match() -> None:
    scan_filter = BulbScanFilter()
    bare = Advertisement(address=BULB_A.address, name=None, service_uuids=())
    assert not scan_filter.accepts(bare)
    assert scan_filter.accepts(BULB_A)


def test_filters_do_not_share_state() -> None:
    first = BulbScanFilter()
    second = BulbScanFilter()
    assert first.accepts(BULB_A)
    assert second.accepts(BULB_A)


def test_scan_bulbs_delivers_each_bulb_once() -> None:
    transport = ReplayTransport([BULB_A, OTHER, BULB_A, BULB_B, BULB_B, BULB_A])
    matches: list[str] = []

    async def _run() -> None:
        await scan_bulbs(transport, Scope(), lambda ad: matches.append(ad.address), active=False)

    asyncio.run(_run())
    assert matches == [BULB_A.address, BULB_B.address]
    assert transport.active is False


def test_each_scan_session_starts_fresh() -> None:
    transport = ReplayTransport([BULB_A])
    matches: list[str] = []

    async def _run() -> None:
        await scan_bulbs(transport, Scope(), lambda ad: matches.append(ad.address))
        await scan_bulbs(transport, Scope(), lambda ad: matches.append(ad.address))

    asyncio.run(_run())
    assert matches == [BULB_A.address, BULB_A.address]

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

import pytest

from mipowctl.core.bulb import Bulb
from mipowctl.core.config import Settings
from mipowctl.core.deadline import DEADLINE, interruptible_deadline
from mipowctl.core.errors import ScanError, TransportConnectError, TransportError, TransportSendError
from mipowctl.core.model import Advertisement, PipelineResult
from mipowctl.core.pipeline import for_each_discovered_bulb, run_for_each_discovered_bulb
from mipowctl.core.protocol import COLOR_UUID, EFFECT_UUID, SERVICE_UUID

SETTINGS = Settings(scan_timeout_s=0.3, settle_s=0.0)


@dataclass
class FakeCharacteristic:
    uuid: str


@dataclass
class FakeService:
    uuid: str
    characteristics: list[FakeCharacteristic] = field(default_factory=list)


class FakeConnection:
    def __init__(self, address: str, *, is_bulb: bool = True, fail_close: bool = False) -> None:
        self.address = address
        self.fail_close = fail_close
        chars = [FakeCharacteristic(COLOR_UUID), FakeCharacteristic(EFFECT_UUID)] if is_bulb else []
        self.services = [FakeService(SERVICE_UUID, chars)]
        self.close_calls = 0

    async def exchange_mtu(self, mtu: int) -> int:
        return mtu

    async def discover_services(self, uuids):
        return list(self.services)

    async def discover_characteristics(self, uuids, service):
        return list(service.characteristics)

    async def write_characteristic(self, characteristic, data: bytes, *, response: bool = True) -> None:
        pass

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise TransportError(f"BLE disconnect from {self.address} failed")


class FakeTransport:
    def __init__(
        self,
        addresses: list[str],
        *,
        not_bulbs: tuple[str, ...] = (),
        close_failures: tuple[str, ...] = (),
        dial_failures: tuple[str, ...] = (),
        dial_delays: dict[str, float] | None = None,
        scan_error: Exception | None = None,
        hold_scan: bool = True,
    ) -> None:
        self.advertisements = [
            Advertisement(address=a, name=f"bulb-{a[-2:]}", service_uuids=(SERVICE_UUID,)) for a in addresses
        ]
        self.connections = {
            a: FakeConnection(a, is_bulb=a not in not_bulbs, fail_close=a in close_failures) for a in addresses
        }
        self.dial_failures = dial_failures
        self.dial_delays = dial_delays or {}
        self.scan_error = scan_error
        self.hold_scan = hold_scan
        self.dialed: list[str] = []

    async def scan(self, scope, on_advertisement, *, filter, active=True) -> None:
        for advertisement in self.advertisements:
            if filter(advertisement):
                on_advertisement(advertisement)
            await asyncio.sleep(0)
        if self.scan_error is not None:
            raise self.scan_error
        if self.hold_scan:
            await scope.wait()

    async def dial(self, address: str, *, timeout_s: float = 10.0) -> FakeConnection:
        self.dialed.append(address)
        delay = self.dial_delays.get(address)
        if delay:
            await asyncio.sleep(delay)
        if address in self.dial_failures:
            raise TransportConnectError(f"BLE connect failed for {address}")
        return self.connections[address]


def _collecting(dispatched: list[Bulb]):
    async def _action(bulb: Bulb) -> None:
        dispatched.append(bulb)

    return _action


def test_failed_dial_does_not_abort_the_batch() -> None:
    transport = FakeTransport(["AA:00:01", "AA:00:02", "AA:00:03"], dial_failures=("AA:00:02",))
    dispatched: list[Bulb] = []

    result = asyncio.run(
        run_for_each_discovered_bulb(transport, 0.3, _collecting(dispatched), settings=SETTINGS)
    )

    assert [b.address for b in dispatched] == ["AA:00:01", "AA:00:03"]
    assert result == PipelineResult(dispatched=2, scan_error=None, reason=DEADLINE)
    assert transport.dialed == ["AA:00:01", "AA:00:02", "AA:00:03"]


def test_failed_discovery_closes_connection_and_continues() -> None:
    transport = FakeTransport(["AA:00:01", "AA:00:02"], not_bulbs=("AA:00:01",))
    dispatched: list[Bulb] = []

    asyncio.run(run_for_each_discovered_bulb(transport, 0.2, _collecting(dispatched), settings=SETTINGS))

    assert [b.address for b in dispatched] == ["AA:00:02"]
    assert transport.connections["AA:00:01"].close_calls == 1


def test_close_failure_after_failed_discovery_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    transport = FakeTransport(
        ["AA:00:01", "AA:00:02"], not_bulbs=("AA:00:01",), close_failures=("AA:00:01",)
    )
    dispatched: list[Bulb] = []

    with caplog.at_level(logging.WARNING, logger="mipowctl.core.pipeline"):
        result = asyncio.run(
            run_for_each_discovered_bulb(transport, 0.2, _collecting(dispatched), settings=SETTINGS)
        )

    assert [b.address for b in dispatched] == ["AA:00:02"]
    assert result.dispatched == 1
    assert transport.connections["AA:00:01"].close_calls == 1
    assert "Error closing connection to AA:00:01" in caplog.text


def test_dispatched_handles_are_left_open() -> None:
    transport = FakeTransport(["AA:00:01"])
    dispatched: list[Bulb] = []

    asyncio.run(run_for_each_discovered_bulb(transport, 0.2, _collecting(dispatched), settings=SETTINGS))

    assert len(dispatched) == 1
    assert not dispatched[0].closed
    assert transport.connections["AA:00:01"].close_calls == 0


def test_in_flight_dial_is_dropped_when_time_runs_out() -> None:
    transport = FakeTransport(["AA:00:01", "AA:00:02"], dial_delays={"AA:00:02": 5.0})
    dispatched: list[Bulb] = []

    started = time.monotonic()
    result = asyncio.run(
        run_for_each_discovered_bulb(transport, 0.2, _collecting(dispatched), settings=SETTINGS)
    )
    elapsed = time.monotonic() - started

    assert [b.address for b in dispatched] == ["AA:00:01"]
    assert result.dispatched == 1
    assert result.scan_error is None
    assert transport.dialed == ["AA:00:01", "AA:00:02"]
    assert elapsed < 3.0


def test_undispatched_handles_are_closed_at_scope_end() -> None:
    transport = FakeTransport(["AA:00:01", "AA:00:02"])
    dispatched: list[Bulb] = []

    async def _slow_action(bulb: Bulb) -> None:
        dispatched.append(bulb)
        await asyncio.sleep(0.3)

    asyncio.run(run_for_each_discovered_bulb(transport, 0.1, _slow_action, settings=SETTINGS))

    assert [b.address for b in dispatched] == ["AA:00:01"]
    assert transport.connections["AA:00:01"].close_calls == 0
    assert transport.connections["AA:00:02"].close_calls == 1


def test_scan_error_is_reported_not_raised() -> None:
    transport = FakeTransport(["AA:00:01"], scan_error=ScanError("adapter went away"), hold_scan=False)
    dispatched: list[Bulb] = []

    result = asyncio.run(
        run_for_each_discovered_bulb(transport, 5.0, _collecting(dispatched), settings=SETTINGS)
    )

    assert [b.address for b in dispatched] == ["AA:00:01"]
    assert isinstance(result.scan_error, ScanError)
    assert result.reason is None


def test_action_errors_do_not_stop_dispatch() -> None:
    transport = FakeTransport(["AA:00:01", "AA:00:02"])
    seen: list[str] = []

    async def _flaky(bulb: Bulb) -> None:
        seen.append(bulb.address)
        if bulb.address == "AA:00:01":
            raise TransportSendError("write rejected")

    result = asyncio.run(run_for_each_discovered_bulb(transport, 0.2, _flaky, settings=SETTINGS))

    assert seen == ["AA:00:01", "AA:00:02"]
    assert result.dispatched == 2


def test_cancelling_scope_stops_pipeline_early() -> None:
    transport = FakeTransport(["AA:00:01"])
    dispatched: list[Bulb] = []

    async def _run() -> PipelineResult:
        async with interruptible_deadline(10.0, signals=()) as scope:
            asyncio.get_running_loop().call_later(0.05, scope.cancel)
            return await for_each_discovered_bulb(
                transport, scope, _collecting(dispatched), settings=SETTINGS
            )

    started = time.monotonic()
    result = asyncio.run(_run())

    assert time.monotonic() - started < 5.0
    assert result.dispatched == 1
    assert result.reason == "cancelled"

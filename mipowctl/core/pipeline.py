"""Scan, dial, discover and dispatch bulbs within one time budget.

Three stages run concurrently:

* the scan task pushes each newly seen bulb advertisement onto a queue,
* the dial task connects to advertised addresses one at a time and runs
  discovery, pushing ready ``Bulb`` handles onto a second queue,
* the calling task dispatches handles to the per-bulb action until the scope
  ends or no more handles can arrive.

A failing address is logged and skipped. Handles that were discovered but not
dispatched before the scope ended are closed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from mipowctl.core.bulb import Bulb, discover_bulb
from mipowctl.core.config import Settings
from mipowctl.core.deadline import Scope, interruptible_deadline
from mipowctl.core.errors import MipowctlError
from mipowctl.core.model import Advertisement, PipelineResult
from mipowctl.core.scan import scan_bulbs
from mipowctl.transports.base import Connection, Transport

LOGGER = logging.getLogger(__name__)

PerBulbAction = Callable[[Bulb], Awaitable[None]]

_END = object()


async def close_quietly(bulb_or_connection: Bulb | Connection) -> None:
    """Close a handle or connection, logging instead of raising on failure."""
    address = bulb_or_connection.address
    try:
        await bulb_or_connection.close()
    except MipowctlError as exc:
        LOGGER.warning("Error closing connection to %s: %s", address, exc)


async def _connect(transport: Transport, advertisement: Advertisement, settings: Settings) -> Bulb | None:
    label = advertisement.name or advertisement.address
    try:
        connection = await transport.dial(advertisement.address, timeout_s=settings.dial_timeout_s)
    except MipowctlError as exc:
        LOGGER.warning("Error dialing %r: %s", label, exc)
        return None

    try:
        return await discover_bulb(
            connection,
            name=advertisement.name,
            mtu=settings.mtu,
            write_with_response=settings.write_with_response,
        )
    except MipowctlError as exc:
        LOGGER.warning("Error creating bulb from %r: %s", label, exc)
        await close_quietly(connection)
        return None
    except asyncio.CancelledError:
        await close_quietly(connection)
        raise


async def for_each_discovered_bulb(
    transport: Transport,
    scope: Scope,
    per_bulb_action: PerBulbAction,
    *,
    settings: Settings | None = None,
) -> PipelineResult:
    """Run ``per_bulb_action`` on every bulb discovered before ``scope`` ends.

    Actions run one at a time, in the order discovery completed. Callers that
    want actions to overlap should hand the bulb to their own task from inside
    the action. Already dispatched bulbs are never closed here.
    """
    settings = settings or Settings()
    advertisements: asyncio.Queue[object] = asyncio.Queue()
    bulbs: asyncio.Queue[object] = asyncio.Queue()
    scan_error: BaseException | None = None

    async def scan_stage() -> None:
        nonlocal scan_error
        try:
            await scan_bulbs(
                transport,
                scope,
                advertisements.put_nowait,
                active=settings.active_scan,
            )
        except MipowctlError as exc:
            scan_error = exc
        finally:
            advertisements.put_nowait(_END)

    async def dial_stage() -> None:
        try:
            while True:
                item = await advertisements.get()
                if item is _END:
                    return
                bulb = await _connect(transport, item, settings)
                if bulb is not None:
                    bulbs.put_nowait(bulb)
        finally:
            bulbs.put_nowait(_END)

    scan_task = asyncio.create_task(scan_stage(), name="mipowctl-scan")
    dial_task = asyncio.create_task(dial_stage(), name="mipowctl-dial")
    scope_waiter = asyncio.create_task(scope.wait(), name="mipowctl-scope")
    getter: asyncio.Task[object] | None = None
    dispatched = 0

    try:
        while True:
            getter = asyncio.create_task(bulbs.get())
            await asyncio.wait({getter, scope_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not getter.done():
                getter.cancel()
                break
            item = getter.result()
            getter = None
            if scope.done:
                bulbs.put_nowait(item)
                break
            if item is _END:
                break
            try:
                await per_bulb_action(item)
            except MipowctlError as exc:
                LOGGER.warning("Action failed for %s: %s", item.address, exc)
            dispatched += 1
    finally:
        tasks = [scan_task, dial_task, scope_waiter]
        if getter is not None:
            if getter.done() and not getter.cancelled():
                bulbs.put_nowait(getter.result())
            tasks.append(getter)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        while not bulbs.empty():
            leftover = bulbs.get_nowait()
            if isinstance(leftover, Bulb):
                LOGGER.debug("Dropping undispatched bulb %s", leftover.address)
                await close_quietly(leftover)

    if not dial_task.cancelled() and dial_task.exception() is not None:
        raise dial_task.exception()  # type: ignore[misc]

    if scan_error is not None:
        LOGGER.warning("Scan error: %s", scan_error)

    return PipelineResult(dispatched=dispatched, scan_error=scan_error, reason=scope.reason)


async def run_for_each_discovered_bulb(
    transport: Transport,
    timeout_s: float,
    per_bulb_action: PerBulbAction,
    *,
    settings: Settings | None = None,
) -> PipelineResult:
    """Same as ``for_each_discovered_bulb`` inside an interruptible deadline."""
    async with interruptible_deadline(timeout_s) as scope:
        return await for_each_discovered_bulb(
            transport,
            scope,
            per_bulb_action,
            settings=settings,
        )

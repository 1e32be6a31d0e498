"""Core data models used across scanning, pipeline, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Advertisement:
    address: str
    name: str | None = None
    service_uuids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiscoveredBulb:
    address: str
    name: str


@dataclass(frozen=True)
class PipelineResult:
    dispatched: int
    scan_error: BaseException | None = None
    reason: str | None = None


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one command applied to every bulb found in a discovery window."""

    succeeded: tuple[str, ...] = ()
    failed: tuple[tuple[str, str], ...] = ()
    scan_error: str | None = None
    interrupted: bool = False

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)


"""
Device Registry and Global Neighbor Index — the read-only world a trace runs in.

Build sequence:
    1. Parse every capture (one unit of work per device, in parallel)
    2. Barrier — wait for all of them
    3. Merge successful devices into the registry, in input order
    4. Index every device's interface addresses as /32s → (device, interface)
    5. Freeze both into a Snapshot

Nothing in a Snapshot changes after step 5. Tracers hold a Snapshot
reference; a data refresh builds a whole new Snapshot and swaps it in
through SnapshotStore, so a reader sees either the old world or the
new one, never a half-built mix.

Address collisions (two devices claiming one interface address) keep
the last claimant as the lookup answer, but every claimant is recorded
so the tracer can say the resolution was ambiguous.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from ipaddress import IPv4Address
from pathlib import Path as FilePath
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional
import logging
import threading

from .diagnostics import BuildDiagnostic, ConflictRecord, parse_with_diagnostics
from .lpm import LPMIndex, parse_address
from .models import Device, NeighborBinding
from .parsers import CiscoRouteTableParser
from .platforms import PlatformProfile

logger = logging.getLogger("ribtrace.registry")


# ============================================================
# Device Registry
# ============================================================

class DeviceRegistry:
    """device-id → Device, read-only, in the order devices were added."""

    def __init__(self, devices: Iterable[Device] = ()):
        table: dict[str, Device] = {}
        for device in devices:
            if device.device_id in table:
                logger.warning(f"Duplicate device id {device.device_id!r}, "
                               f"keeping the later one")
            table[device.device_id] = device
        self._devices = MappingProxyType(table)

    def get(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def __getitem__(self, device_id: str) -> Device:
        return self._devices[device_id]

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    @property
    def device_ids(self) -> tuple[str, ...]:
        return tuple(self._devices)

    def to_dict(self) -> dict:
        return {dev_id: dev.to_dict() for dev_id, dev in self._devices.items()}


# ============================================================
# Global Neighbor Index: ARP-like resolution across devices
# ============================================================

class NeighborIndex:
    """Interface address → owning (device, interface)."""

    def __init__(self, index: LPMIndex,
                 claims: Mapping[IPv4Address, tuple[NeighborBinding, ...]]):
        self._index = index
        self._conflicts = MappingProxyType({
            addr: owners for addr, owners in claims.items() if len(owners) > 1
        })

    def resolve(self, address) -> Optional[NeighborBinding]:
        return self._index.lookup(address)

    def claimants(self, address) -> tuple[NeighborBinding, ...]:
        """Every binding that claimed this address, in insertion order."""
        addr = parse_address(address)
        if addr in self._conflicts:
            return self._conflicts[addr]
        binding = self._index.get((addr, 32))
        return (binding,) if binding else ()

    def is_ambiguous(self, address) -> bool:
        return parse_address(address) in self._conflicts

    @property
    def conflicts(self) -> Mapping[IPv4Address, tuple[NeighborBinding, ...]]:
        return self._conflicts

    def __len__(self) -> int:
        return len(self._index)

    def to_dict(self) -> dict:
        return {str(net.network_address): str(b) for net, b in self._index.items()}


def build_neighbor_index(devices: Iterable[Device]) -> NeighborIndex:
    """
    Insert every interface address as a /32. Later insertions override
    earlier ones; every collision is logged and kept.
    """
    index: LPMIndex[NeighborBinding] = LPMIndex()
    claims: dict[IPv4Address, tuple[NeighborBinding, ...]] = {}

    for device in devices:
        for intf in device.interfaces:
            binding = NeighborBinding(device_id=device.device_id, interface=intf.name)
            previous = claims.get(intf.address, ())
            if previous and previous[-1] == binding:
                continue
            if previous:
                logger.warning(
                    f"Address {intf.address} claimed by {previous[-1]} and "
                    f"{binding} — using {binding}"
                )
            claims[intf.address] = previous + (binding,)
            index.insert((intf.address, 32), binding)

    return NeighborIndex(index, claims)


# ============================================================
# Snapshot
# ============================================================

@dataclass(frozen=True)
class Snapshot:
    """A registry and the neighbor index built from it. Immutable."""
    registry: DeviceRegistry
    neighbors: NeighborIndex
    diagnostics: BuildDiagnostic = field(default_factory=BuildDiagnostic, compare=False)
    built_at: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def from_devices(cls, devices: Iterable[Device]) -> Snapshot:
        registry = DeviceRegistry(devices)
        return cls(registry=registry, neighbors=build_neighbor_index(registry))

    def to_dict(self) -> dict:
        return {
            "built_at": self.built_at.isoformat(),
            "devices": self.registry.to_dict(),
            "neighbors": self.neighbors.to_dict(),
        }


def build_snapshot(
    captures: Optional[Mapping[str, str]] = None,
    devices: Iterable[Device] = (),
    profile: Optional[PlatformProfile] = None,
    workers: Optional[int] = None,
) -> Snapshot:
    """
    Parse captures (device-id → raw text) in parallel, add any
    pre-parsed devices, and publish the result as a Snapshot.

    A capture that fails to parse is excluded and recorded in
    snapshot.diagnostics; it never stops the build.
    """
    captures = captures or {}
    diag = BuildDiagnostic(started_at=datetime.now())
    parser = CiscoRouteTableParser(profile)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(parse_with_diagnostics, device_id, raw, parser, logger)
            for device_id, raw in captures.items()
        ]
        results = [f.result() for f in futures]

    # Barrier passed; shared structures are built only from here on
    parsed: list[Device] = []
    for table, record in results:
        diag.records.append(record)
        if table is not None:
            parsed.append(table.device)

    registry = DeviceRegistry(parsed + list(devices))
    neighbors = build_neighbor_index(registry)

    for addr, owners in neighbors.conflicts.items():
        diag.conflicts.append(ConflictRecord(
            address=str(addr),
            claimants=[str(o) for o in owners],
            winner=str(owners[-1]),
        ))

    diag.completed_at = datetime.now()
    logger.info(f"Snapshot built: {len(registry)} devices, "
                f"{len(neighbors)} interface addresses, "
                f"{len(diag.excluded())} excluded")
    return Snapshot(registry=registry, neighbors=neighbors, diagnostics=diag)


class SnapshotStore:
    """
    Holds the published Snapshot. Readers take `current` once per
    query; writers build a replacement and swap it in whole.
    """

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot or Snapshot.from_devices(())

    @property
    def current(self) -> Snapshot:
        return self._snapshot

    def publish(self, snapshot: Snapshot) -> Snapshot:
        """Swap in a new snapshot, returning the one it replaced."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(f"Published snapshot with {len(snapshot.registry)} devices")
        return previous

    def rebuild(self, captures: Mapping[str, str], **kwargs) -> Snapshot:
        """Build off to the side from fresh captures, then publish."""
        snapshot = build_snapshot(captures, **kwargs)
        self.publish(snapshot)
        return snapshot


# ============================================================
# Capture loading
# ============================================================

def load_captures(directory: str, pattern: str = "*.txt") -> dict[str, str]:
    """
    Read every capture file in a directory. The file stem is the
    device id: captures/core-rtr-1.txt → "core-rtr-1".
    """
    root = FilePath(directory)
    if not root.is_dir():
        raise NotADirectoryError(f"Capture directory not found: {directory}")

    captures: dict[str, str] = {}
    for path in sorted(root.glob(pattern)):
        if path.is_file():
            captures[path.stem] = path.read_text(encoding="utf-8", errors="replace")
    logger.debug(f"Loaded {len(captures)} captures from {directory}")
    return captures

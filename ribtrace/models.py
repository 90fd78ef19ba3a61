"""
Route-Table Tracer — Core Data Models
IPv4. Offline. Built from captured routing tables, not live devices.

The question at every hop:
  Is there a route? → Is it local? → Who owns the next-hop? → Have we been here?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from ipaddress import IPv4Address, IPv4Network
from typing import Iterable, Iterator, Optional

from .lpm import LPMIndex, parse_address, parse_prefix


# ============================================================
# Route entries
# ============================================================

@dataclass(frozen=True)
class RouteEntry:
    """
    One routing-table entry. Either local (terminal, egress interface)
    or remote (one or more next-hop addresses, in the order the device
    listed them).
    """
    prefix: IPv4Network
    next_hops: tuple[IPv4Address, ...] = ()
    interface: Optional[str] = None     # egress for local entries
    protocol: str = ""                  # route code as displayed: "C", "L", "S*", "O E2"
    descriptor: str = ""                # raw matched text, kept for output
    discard: bool = False               # local entry on a discard interface (Null0)

    @property
    def is_local(self) -> bool:
        return not self.next_hops

    @property
    def is_ecmp(self) -> bool:
        return len(self.next_hops) > 1

    def to_dict(self) -> dict:
        return {
            "prefix": str(self.prefix),
            "protocol": self.protocol,
            "next_hops": [str(nh) for nh in self.next_hops],
            "interface": self.interface,
            "descriptor": self.descriptor,
            "discard": self.discard,
        }

    @classmethod
    def local(cls, prefix, interface: str, protocol: str = "C",
              descriptor: str = "", discard: bool = False) -> RouteEntry:
        return cls(
            prefix=parse_prefix(prefix),
            interface=interface,
            protocol=protocol,
            discard=discard,
            descriptor=descriptor or f"{protocol} {parse_prefix(prefix)} "
                                     f"is directly connected, {interface}",
        )

    @classmethod
    def remote(cls, prefix, next_hops: Iterable, protocol: str = "S",
               descriptor: str = "") -> RouteEntry:
        hops = tuple(parse_address(nh) for nh in next_hops)
        if not hops:
            raise ValueError("Remote route needs at least one next-hop")
        network = parse_prefix(prefix)
        return cls(
            prefix=network,
            next_hops=hops,
            protocol=protocol,
            descriptor=descriptor or f"{protocol} {network} via "
                                     + ", ".join(str(h) for h in hops),
        )


# ============================================================
# Device: one parsed routing table
# ============================================================

@dataclass(frozen=True)
class InterfaceAddress:
    name: str
    address: IPv4Address


@dataclass(frozen=True)
class Device:
    """
    A device as seen through its routing table. Built once, then
    treated as read-only for the life of the snapshot it belongs to.
    """
    device_id: str
    routes: LPMIndex = field(repr=False, compare=False)
    interfaces: tuple[InterfaceAddress, ...] = ()
    platform: str = "unknown"

    @classmethod
    def from_entries(cls, device_id: str, entries: Iterable[RouteEntry],
                     interfaces: Iterable = (),
                     platform: str = "unknown") -> Device:
        """Build from pre-parsed entries. Later entries win on equal prefix."""
        index: LPMIndex[RouteEntry] = LPMIndex()
        for entry in entries:
            index.insert(entry.prefix, entry)

        addrs = []
        for item in interfaces:
            if isinstance(item, InterfaceAddress):
                addrs.append(item)
            else:
                name, address = item
                addrs.append(InterfaceAddress(name, parse_address(address)))

        return cls(device_id=device_id, routes=index,
                   interfaces=tuple(addrs), platform=platform)

    def lookup(self, destination) -> Optional[RouteEntry]:
        return self.routes.lookup(destination)

    @property
    def route_count(self) -> int:
        return len(self.routes)

    def entries(self) -> Iterator[RouteEntry]:
        return (entry for _, entry in self.routes.items())

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "platform": self.platform,
            "interfaces": [
                {"name": i.name, "address": str(i.address)}
                for i in self.interfaces
            ],
            "routes": [e.to_dict() for e in self.entries()],
        }


@dataclass(frozen=True)
class NeighborBinding:
    """Who owns an interface address."""
    device_id: str
    interface: str

    def __str__(self) -> str:
        return f"{self.device_id}/{self.interface}"


# ============================================================
# Hop & Path
# ============================================================

class HopState(Enum):
    FORWARD = "forward"                 # remote match, continues
    SUCCESS = "success"                 # local/connected match
    NO_ROUTE = "no-route"
    LOOP = "loop"                       # device already on this path
    UNRESOLVED_NEXT_HOP = "unresolved-next-hop"  # no device owns the address
    BLACKHOLE = "blackhole"             # local match on a discard interface

    @property
    def is_terminal(self) -> bool:
        return self is not HopState.FORWARD


@dataclass(frozen=True)
class Hop:
    device_id: Optional[str]            # None when no device owns `address`
    state: HopState
    descriptor: Optional[str] = None    # matched route text, None on markers
    prefix: Optional[IPv4Network] = None
    address: Optional[IPv4Address] = None  # unresolved next-hop
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "device": self.device_id,
            "state": self.state.value,
            "descriptor": self.descriptor,
            "prefix": str(self.prefix) if self.prefix else None,
            "address": str(self.address) if self.address else None,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class Path:
    """Ordered hops from the source to one terminal state."""
    hops: tuple[Hop, ...] = ()

    def extend(self, hop: Hop) -> Path:
        return Path(self.hops + (hop,))

    @property
    def last(self) -> Optional[Hop]:
        return self.hops[-1] if self.hops else None

    @property
    def status(self) -> Optional[HopState]:
        return self.last.state if self.hops else None

    @property
    def is_complete(self) -> bool:
        return self.status == HopState.SUCCESS

    @property
    def device_ids(self) -> tuple[str, ...]:
        return tuple(h.device_id for h in self.hops if h.device_id is not None)

    def visits(self, device_id: str) -> bool:
        return any(h.device_id == device_id for h in self.hops)

    def __len__(self) -> int:
        return len(self.hops)

    def __iter__(self) -> Iterator[Hop]:
        return iter(self.hops)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value if self.status else None,
            "hops": [h.to_dict() for h in self.hops],
        }


# ============================================================
# Trace result: every path for one (source, destination) query
# ============================================================

class ChainStatus(Enum):
    COMPLETE = "complete"               # every path reaches a local route
    PARTIAL = "partial"                 # some paths do, some don't
    BROKEN = "broken"                   # none do
    LOOP = "loop"                       # at least one path loops


@dataclass
class TraceResult:
    """
    All forwarding paths from one source to one destination.
    A tree flattened into root-to-leaf paths — ECMP branches share
    their leading hops.
    """
    source_device: str
    destination: IPv4Address
    paths: list[Path] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def status(self) -> ChainStatus:
        states = [p.status for p in self.paths]
        if any(s == HopState.LOOP for s in states):
            return ChainStatus.LOOP
        complete = sum(1 for s in states if s == HopState.SUCCESS)
        if states and complete == len(states):
            return ChainStatus.COMPLETE
        if complete:
            return ChainStatus.PARTIAL
        return ChainStatus.BROKEN

    @property
    def is_healthy(self) -> bool:
        return self.status == ChainStatus.COMPLETE

    @property
    def total_devices(self) -> int:
        return len({d for p in self.paths for d in p.device_ids})

    @property
    def ecmp_branch_points(self) -> int:
        """Forward hops whose next-hops lead to more than one continuation."""
        followers: dict[tuple[Hop, ...], set[Hop]] = {}
        for p in self.paths:
            for i, hop in enumerate(p.hops[:-1]):
                if hop.state == HopState.FORWARD:
                    followers.setdefault(p.hops[:i + 1], set()).add(p.hops[i + 1])
        return sum(1 for nxt in followers.values() if len(nxt) > 1)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        return {
            "source_device": self.source_device,
            "destination": str(self.destination),
            "status": self.status.value,
            "is_healthy": self.is_healthy,
            "total_devices": self.total_devices,
            "ecmp_branches": self.ecmp_branch_points,
            "duration_seconds": self.duration.total_seconds() if self.duration else None,
            "paths": [p.to_dict() for p in self.paths],
        }

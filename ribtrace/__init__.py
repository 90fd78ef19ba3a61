"""
ribtrace — Offline forwarding-path tracing over captured routing tables.

Parse, index, then ask every device in turn: who gets this packet next?
"""

__version__ = "0.1.0"

from .exceptions import RibTraceError, InvalidPrefix, ParseFailure
from .lpm import LPMIndex, parse_prefix, parse_address, mask_to_length
from .models import (
    RouteEntry, Device, InterfaceAddress, NeighborBinding,
    Hop, HopState, Path,
    TraceResult, ChainStatus,
)
from .platforms import Platform, PlatformProfile, PLATFORM_PROFILES, get_profile
from .parsers import CiscoRouteTableParser, parse_route_table
from .registry import (
    DeviceRegistry, NeighborIndex, Snapshot, SnapshotStore,
    build_neighbor_index, build_snapshot, load_captures,
)
from .tracer import PathTracer, TracerConfig, LoopPolicy
from .diagnostics import BuildDiagnostic, ParseRecord, ParseResult

"""
Route-Table Tracer — Path Tracer

Recursive, multi-path, loop-aware. At every device:

  1. Do we know this device?           no  → UNRESOLVED_NEXT_HOP, stop
  2. Longest-prefix match on its table no  → NO_ROUTE, stop
  3. Local match?                      yes → SUCCESS (BLACKHOLE on Null0), stop
  4. Remote match → FORWARD, then for each next-hop in recorded order:
       no owner in the neighbor index    → UNRESOLVED_NEXT_HOP
       owner already on this path        → LOOP
       otherwise                         → recurse from the owner

Each ECMP next-hop is its own branch; the result is every root-to-leaf
path, in next-hop order. Paths are immutable values: extending one
builds a new Path, so sibling branches never see each other's hops.

The tracer only reads the Snapshot. Any number of traces can run at
once; a snapshot swap in the SnapshotStore never affects a trace that
already started, since each trace takes the snapshot once up front.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from ipaddress import IPv4Address, IPv4Network
from typing import Iterable, Optional, Union
import logging
import sys

from .exceptions import InvalidPrefix
from .lpm import parse_address, parse_prefix
from .models import Hop, HopState, Path, TraceResult
from .registry import Snapshot, SnapshotStore

logger = logging.getLogger("ribtrace.tracer")


# ============================================================
# Configuration
# ============================================================

class LoopPolicy(Enum):
    HALT_HOP = "halt-hop"               # first loop ends the whole fan-out at that hop
    PER_BRANCH = "per-branch"           # only the looping next-hop ends; siblings continue


@dataclass
class TracerConfig:
    loop_policy: LoopPolicy = LoopPolicy.HALT_HOP

    # Annotate forward hops whose next-hop address is claimed by
    # more than one device
    note_ambiguous: bool = True

    # trace_many thread pool size (None = executor default)
    workers: Optional[int] = None


def parse_destination(destination) -> IPv4Address:
    """
    "10.1.1.5" → 10.1.1.5
    "10.1.1.0/24" → 10.1.1.0 (the network address is what gets looked up)

    Raises InvalidPrefix for anything else.
    """
    if isinstance(destination, IPv4Address):
        return destination
    if isinstance(destination, IPv4Network):
        return destination.network_address
    text = str(destination).strip()
    if "/" in text:
        return parse_prefix(text).network_address
    return parse_address(text)


# ============================================================
# Path Tracer
# ============================================================

class PathTracer:
    """
    Usage:
        tracer = PathTracer(build_snapshot(load_captures("captures/")))
        for path in tracer.trace("core-rtr-1", "192.168.204.204"):
            print(path.status, path.device_ids)
    """

    def __init__(self, snapshot: Union[Snapshot, SnapshotStore],
                 config: Optional[TracerConfig] = None):
        self._source = snapshot
        self.config = config or TracerConfig()

    @property
    def snapshot(self) -> Snapshot:
        if isinstance(self._source, SnapshotStore):
            return self._source.current
        return self._source

    def trace(self, source_device_id: str, destination,
              visited: Union[Path, Iterable[Hop]] = ()) -> list[Path]:
        """
        Every distinct forwarding path from source_device_id toward
        destination, each ending in a terminal hop.

        `visited` is the path already walked to reach this device, for
        callers resuming a trace part way; normally empty.

        Never raises for network conditions. Raises InvalidPrefix if
        destination cannot be parsed.
        """
        dest = parse_destination(destination)
        path = visited if isinstance(visited, Path) else Path(tuple(visited))
        snapshot = self.snapshot

        logger.debug(f"trace {source_device_id} → {dest}")
        paths = self._trace(snapshot, source_device_id, dest, path)

        # Reconverging ECMP branches can produce the same path twice
        unique: list[Path] = []
        seen: set[Path] = set()
        for p in paths:
            if p not in seen:
                seen.add(p)
                unique.append(p)
        return unique

    def _trace(self, snapshot: Snapshot, device_id: str,
               dest: IPv4Address, path: Path) -> list[Path]:
        device = snapshot.registry.get(device_id)
        if device is None:
            logger.debug(f"[{device_id}] not in registry")
            return [path.extend(Hop(
                device_id=device_id,
                state=HopState.UNRESOLVED_NEXT_HOP,
                notes=("no matching device",),
            ))]

        entry = device.lookup(dest)
        if entry is None:
            logger.debug(f"[{device_id}] no route to {dest}")
            return [path.extend(Hop(device_id=device_id, state=HopState.NO_ROUTE))]

        if entry.is_local:
            state = HopState.BLACKHOLE if entry.discard else HopState.SUCCESS
            logger.debug(f"[{device_id}] {dest} matches local {entry.prefix} "
                         f"→ {state.value}")
            return [path.extend(Hop(
                device_id=device_id,
                state=state,
                descriptor=entry.descriptor,
                prefix=entry.prefix,
            ))]

        here = path.extend(Hop(
            device_id=device_id,
            state=HopState.FORWARD,
            descriptor=entry.descriptor,
            prefix=entry.prefix,
            notes=self._ambiguity_notes(snapshot, entry.next_hops),
        ))
        logger.debug(f"[{device_id}] {dest} via {entry.prefix} → "
                     f"{', '.join(str(nh) for nh in entry.next_hops)}")

        results: list[Path] = []
        for nh in entry.next_hops:
            owner = snapshot.neighbors.resolve(nh)
            if owner is None:
                logger.debug(f"[{device_id}] next-hop {nh} has no owner")
                results.append(here.extend(Hop(
                    device_id=None,
                    state=HopState.UNRESOLVED_NEXT_HOP,
                    address=nh,
                )))
                continue

            if here.visits(owner.device_id):
                logger.debug(f"[{device_id}] next-hop {nh} → {owner} loops")
                results.append(here.extend(Hop(
                    device_id=owner.device_id,
                    state=HopState.LOOP,
                    address=nh,
                )))
                if self.config.loop_policy == LoopPolicy.HALT_HOP:
                    break
                continue

            results.extend(self._trace(snapshot, owner.device_id, dest, here))

        return results

    def _ambiguity_notes(self, snapshot: Snapshot,
                         next_hops: tuple[IPv4Address, ...]) -> tuple[str, ...]:
        if not self.config.note_ambiguous:
            return ()
        notes = []
        for nh in next_hops:
            owners = snapshot.neighbors.claimants(nh)
            if len(owners) > 1:
                notes.append(
                    f"next-hop {nh} claimed by "
                    f"{', '.join(str(o) for o in owners)}; using {owners[-1]}"
                )
        return tuple(notes)

    # ────────────────────────────────────────────
    # Batch and result wrappers
    # ────────────────────────────────────────────

    def run(self, source_device_id: str, destination) -> TraceResult:
        """trace() wrapped with timing and summary status."""
        dest = parse_destination(destination)
        started = datetime.now()
        paths = self.trace(source_device_id, dest)
        result = TraceResult(
            source_device=source_device_id,
            destination=dest,
            paths=paths,
            started_at=started,
            completed_at=datetime.now(),
        )
        logger.info(f"{source_device_id} → {dest}: {result.status.value}, "
                    f"{len(paths)} paths")
        return result

    def trace_many(self, source_device_id: str, destinations: Iterable,
                   workers: Optional[int] = None) -> dict:
        """
        Trace several destinations in parallel.

        Returns {destination as given: [Path, ...]}, in input order.
        Every destination is validated before any work starts.
        """
        destinations = list(destinations)
        parsed = [parse_destination(d) for d in destinations]

        with ThreadPoolExecutor(max_workers=workers or self.config.workers) as pool:
            futures = [pool.submit(self.trace, source_device_id, d) for d in parsed]
            return {d: f.result() for d, f in zip(destinations, futures)}

    def run_many(self, source_device_id: str, destinations: Iterable,
                 workers: Optional[int] = None) -> list[TraceResult]:
        destinations = list(destinations)
        for d in destinations:
            parse_destination(d)

        with ThreadPoolExecutor(max_workers=workers or self.config.workers) as pool:
            futures = [pool.submit(self.run, source_device_id, d) for d in destinations]
            return [f.result() for f in futures]


# ============================================================
# CLI
# ============================================================

def main(argv: Optional[list[str]] = None) -> int:
    """
    ribtrace captures/ -s core-rtr-1 -d 192.168.204.204
    ribtrace captures/ -s core-rtr-1 -d 10.1.1.5 -d 10.2.0.0/16 --json
    """
    import argparse
    import json as json_mod

    from rich.console import Console

    from .diagnostics import dump_build_summary, setup_logging
    from .events import result_tree, STATUS_STYLE
    from .platforms import Platform, PLATFORM_PROFILES, get_profile
    from .registry import build_snapshot, load_captures

    parser = argparse.ArgumentParser(
        prog="ribtrace",
        description="Trace forwarding paths through captured routing tables.",
        epilog=(
            "Examples:\n"
            "  ribtrace captures/ -s core-rtr-1 -d 192.168.204.204\n"
            "  ribtrace captures/ -s core-rtr-1 -d 10.1.1.5 -d 10.2.0.0/16 --json\n"
            "  ribtrace captures/ -s fw-1 -d 10.9.9.9 --platform cisco_asa -v\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("captures",
                        help="Directory of routing-table captures, one file per device")
    parser.add_argument("-s", "--source", required=True,
                        help="Device id to start from (capture file name without .txt)")
    parser.add_argument("-d", "--destination", action="append", required=True,
                        help="Destination address or prefix (repeatable)")

    parser.add_argument("--pattern", default="*.txt",
                        help="Capture file glob (default: *.txt)")
    parser.add_argument("--platform", default=None,
                        choices=[p.value for p in PLATFORM_PROFILES],
                        help="Force a parsing profile instead of detecting per capture")
    parser.add_argument("--interface-prefix", action="append", default=[],
                        metavar="PREFIX",
                        help="Extra interface-name prefix to recognise (repeatable)")
    parser.add_argument("--per-branch-loops", action="store_true",
                        help="Keep expanding sibling next-hops after a loop")
    parser.add_argument("--workers", type=int, default=None,
                        help="Thread pool size for parsing and batch tracing")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show build summary and matched route text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log", default=None,
                        help="Write debug log to file")
    parser.add_argument("--diagnostics", default=None,
                        help="Write per-device parse diagnostics JSON to file")
    parser.add_argument("--dump-snapshot", default=None,
                        help="Write the parsed registry and neighbor index as JSON")
    parser.add_argument("--json", action="store_true",
                        help="Output trace results as JSON")

    args = parser.parse_args(argv)

    # ── Validate inputs before parsing anything ──
    for dest in args.destination:
        try:
            parse_destination(dest)
        except InvalidPrefix as e:
            parser.error(f"Invalid destination '{dest}': {e}")

    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    setup_logging(log_file=args.log, debug=args.debug, verbose=args.verbose)

    profile = get_profile(Platform(args.platform)) if args.platform else None
    if args.interface_prefix:
        profile = (profile or get_profile(Platform.CISCO_IOS)).with_interface_prefixes(
            *args.interface_prefix)

    try:
        captures = load_captures(args.captures, args.pattern)
    except NotADirectoryError as e:
        parser.error(str(e))
    if not captures:
        parser.error(f"No captures matching '{args.pattern}' in {args.captures}")

    snapshot = build_snapshot(captures, profile=profile, workers=args.workers)

    if args.diagnostics:
        snapshot.diagnostics.dump_json(args.diagnostics)
    if args.dump_snapshot:
        with open(args.dump_snapshot, "w") as f:
            json_mod.dump(snapshot.to_dict(), f, indent=2, default=str)

    config = TracerConfig(
        loop_policy=LoopPolicy.PER_BRANCH if args.per_branch_loops else LoopPolicy.HALT_HOP,
        workers=args.workers,
    )
    tracer = PathTracer(snapshot, config)

    if args.source not in snapshot.registry:
        logger.warning(f"Source device {args.source!r} not in registry")

    results = tracer.run_many(args.source, args.destination)

    if args.json:
        # JSON output for scripting
        output = {
            "source_device": args.source,
            "build": snapshot.diagnostics.to_dict()["summary"],
            "results": [r.to_dict() for r in results],
        }
        print(json_mod.dumps(output, indent=2, default=str))
    else:
        console = Console()
        if args.verbose:
            console.print(dump_build_summary(snapshot.diagnostics), highlight=False)
            console.print()

        for result in results:
            console.print(result_tree(result, verbose=args.verbose))
            elapsed = (f"{result.duration.total_seconds() * 1000:.1f}ms"
                       if result.duration else "?")
            color = STATUS_STYLE[result.status]
            console.print(
                f"[{color}]Status: {result.status.value.upper()}[/] | "
                f"{len(result.paths)} paths | "
                f"{result.total_devices} devices | "
                f"{result.ecmp_branch_points} ECMP branches | "
                f"{elapsed}",
                highlight=False,
            )
            console.print()

    return 0 if all(r.is_healthy for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())

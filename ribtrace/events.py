"""
Shared presentation types for tracer ↔ CLI/TUI.

STATE_STYLE and the label builders are used by both the rich CLI
output and the textual app, so a hop looks the same everywhere.
TraceEvent is what the app's background threads hand to the UI loop.

Usage (worker side):
    queue.put(TraceEvent(event="trace_done", result=result))

Usage (CLI):
    console.print(result_tree(result, verbose=True))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.text import Text
from rich.tree import Tree

from .models import ChainStatus, Hop, HopState, Path, TraceResult


# State → (color, icon)
STATE_STYLE: dict[HopState, tuple[str, str]] = {
    HopState.FORWARD:             ("#00d4ff", "→"),
    HopState.SUCCESS:             ("#00ff88", "✓"),
    HopState.NO_ROUTE:            ("#ff4444", "✗"),
    HopState.LOOP:                ("#ff8800", "↺"),
    HopState.UNRESOLVED_NEXT_HOP: ("#ffcc00", "?"),
    HopState.BLACKHOLE:           ("#ff4444", "⊘"),
}

STATUS_STYLE: dict[ChainStatus, str] = {
    ChainStatus.COMPLETE: "#00ff88",
    ChainStatus.PARTIAL:  "#ffcc00",
    ChainStatus.BROKEN:   "#ff4444",
    ChainStatus.LOOP:     "#ff8800",
}


class LogLevel(Enum):
    BASIC = "basic"
    VERBOSE = "verbose"
    DEBUG = "debug"


@dataclass
class TraceEvent:
    """
    One event from the background worker to the UI.

    Events:
        build_done    snapshot parsed and published
        build_failed  capture directory unreadable; message in log_basic
        trace_done    one destination traced, result attached
        error         a trace or input failed; message in log_basic
    """
    event: str

    result: Optional[TraceResult] = None
    log_basic: list[str] = field(default_factory=list)
    log_verbose: list[str] = field(default_factory=list)
    log_debug: list[str] = field(default_factory=list)


# ============================================================
# Label builders
# ============================================================

def hop_label(hop: Hop) -> str:
    """Plain one-line description of a hop."""
    _, icon = STATE_STYLE[hop.state]
    if hop.state == HopState.UNRESOLVED_NEXT_HOP:
        who = str(hop.address) if hop.address else (hop.device_id or "?")
        return f"{icon} {who} (no owning device)"
    if hop.state == HopState.LOOP:
        return f"{icon} {hop.device_id} (loop)"
    if hop.state == HopState.NO_ROUTE:
        return f"{icon} {hop.device_id} (no route)"
    prefix = f" [{hop.prefix}]" if hop.prefix else ""
    return f"{icon} {hop.device_id}{prefix}"


def hop_text(hop: Hop, verbose: bool = False) -> Text:
    color, _ = STATE_STYLE[hop.state]
    text = Text(hop_label(hop), style=color)
    if verbose and hop.descriptor:
        first, *rest = hop.descriptor.splitlines()
        text.append(f"  {first}", style="#888888")
        for line in rest:
            text.append(f" | {line}", style="#888888")
    for note in hop.notes:
        text.append(f"  ⚠ {note}", style="#ffcc00 italic")
    return text


def path_text(path: Path) -> Text:
    """A whole path on one line: A → B → C ✓"""
    text = Text()
    for i, hop in enumerate(path.hops):
        color, icon = STATE_STYLE[hop.state]
        if i:
            text.append(" → ", style="#555555")
        name = hop.device_id or str(hop.address)
        text.append(name, style=color)
        if hop.state.is_terminal:
            text.append(f" {icon} {hop.state.value}", style=color)
    return text


def result_tree(result: TraceResult, verbose: bool = False) -> Tree:
    """
    Paths folded back into a tree: shared leading hops appear once,
    ECMP fan-out shows as sibling branches.
    """
    color = STATUS_STYLE[result.status]
    root = Tree(Text.assemble(
        (f"{result.destination}", "bold"),
        f" from {result.source_device}  ",
        (result.status.value.upper(), f"bold {color}"),
    ))

    nodes: dict[tuple[Hop, ...], Tree] = {(): root}
    for path in result.paths:
        for i, hop in enumerate(path.hops):
            key = path.hops[:i + 1]
            if key not in nodes:
                nodes[key] = nodes[path.hops[:i]].add(hop_text(hop, verbose))
    return root

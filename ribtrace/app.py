"""
Textual TUI for ribtrace — interactive path queries over a capture set.

  RibTraceApp(captures_dir="captures/", source_device="core-rtr-1",
              destinations=["192.168.204.204"])

Captures are parsed in a background thread; build and trace results
come back to the UI as TraceEvents through a queue. New destinations
can be typed into the input box once the snapshot is published.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Input, RichLog, Static, Tree
from textual.widgets.tree import TreeNode

from .diagnostics import dump_record_summary
from .events import (
    LogLevel, STATE_STYLE, STATUS_STYLE, TraceEvent, hop_text, path_text,
)
from .exceptions import InvalidPrefix
from .models import Hop, TraceResult
from .platforms import PlatformProfile
from .registry import SnapshotStore, build_snapshot, load_captures
from .tracer import PathTracer, TracerConfig, parse_destination

CSS_PATH = Path(__file__).parent / "theme.tcss"


class TitleBar(Static):
    pass

class StatusBar(Static):
    pass


class RibTraceApp(App):
    """ribtrace TUI — path trees per destination, build log alongside."""

    CSS_PATH = CSS_PATH
    TITLE = "ribtrace"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("f2", "log_basic", "Basic"),
        Binding("f3", "log_verbose", "Verbose"),
        Binding("f4", "log_debug", "Debug"),
        Binding("f5", "reload", "Reload"),
    ]

    def __init__(
        self,
        captures_dir: str,
        source_device: str,
        destinations: Optional[list[str]] = None,
        profile: Optional[PlatformProfile] = None,
        tracer_config: Optional[TracerConfig] = None,
        pattern: str = "*.txt",
    ):
        super().__init__()
        self.captures_dir = captures_dir
        self.source_device = source_device
        self._pending = list(destinations or [])
        self._profile = profile
        self._pattern = pattern

        self._store = SnapshotStore()
        self._tracer = PathTracer(self._store, tracer_config)
        self._building = False

        self._log_level = LogLevel.BASIC
        self._all_logs: list[tuple[TraceEvent, datetime]] = []
        self._results: list[TraceResult] = []
        self._event_queue: queue.Queue[TraceEvent] = queue.Queue()

    def compose(self) -> ComposeResult:
        yield TitleBar(
            f"  🔍 ribtrace: {self.source_device} ({self.captures_dir})",
            id="title-bar",
        )
        with Horizontal(id="main-split"):
            with Vertical(id="tree-pane"):
                tree: Tree[str] = Tree(f"🔍 {self.source_device}", id="path-tree")
                tree.show_root = True
                tree.root.expand()
                tree.guide_depth = 3
                yield tree
            with Vertical(id="log-pane"):
                yield RichLog(id="log-view", highlight=True, markup=True,
                              wrap=True, auto_scroll=True)
        yield Input(placeholder="destination address or prefix, Enter to trace",
                    id="dest-input")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self._update_status()
        self.run_worker(self._poll_events(), exclusive=True, group="events")
        self._start_build()

    # ── Background work ─────────────────────────────────────────────────

    def _start_build(self) -> None:
        """Parse captures off the UI thread and publish the snapshot."""
        self._building = True

        def _build_thread():
            try:
                captures = load_captures(self.captures_dir, self._pattern)
                snapshot = build_snapshot(captures, profile=self._profile)
                self._store.publish(snapshot)
                self._event_queue.put(_build_event(snapshot))
            except Exception as e:
                self._event_queue.put(TraceEvent(
                    event="build_failed",
                    log_basic=[f"[#ff4444]Build failed: {escape(str(e))}[/]"],
                ))

        threading.Thread(target=_build_thread, daemon=True).start()

    def _drain_pending(self) -> None:
        """Trace everything queued up while the snapshot was being built."""
        pending, self._pending = self._pending, []
        for dest in pending:
            self._start_trace(dest)

    def _start_trace(self, destination: str) -> None:
        def _trace_thread():
            try:
                self._event_queue.put(self._trace_event(destination))
            except Exception as e:
                self._event_queue.put(TraceEvent(
                    event="error",
                    log_basic=[f"[#ff4444]Trace failed: {escape(str(e))}[/]"],
                ))

        threading.Thread(target=_trace_thread, daemon=True).start()

    def _trace_event(self, destination: str) -> TraceEvent:
        result = self._tracer.run(self.source_device, destination)
        return _result_event(result)

    async def _poll_events(self) -> None:
        """Worker threads → queue → here, on the UI loop."""
        while True:
            try:
                evt = self._event_queue.get_nowait()
            except queue.Empty:
                await asyncio.sleep(0.05)
                continue
            self._process_event(evt)

    # ── Event processing ────────────────────────────────────────────────

    def _process_event(self, evt: TraceEvent) -> None:
        now = datetime.now()
        self._all_logs.append((evt, now))
        if evt.event in ("build_done", "build_failed"):
            self._building = False
            # a failed build keeps the queue for the next F5
            if evt.event == "build_done":
                self._drain_pending()
        elif evt.event == "trace_done" and evt.result is not None:
            self._results.append(evt.result)
            self._add_result(evt.result)
        self._write_log_lines(evt, now)
        self._update_status()

    # ── Tree management ─────────────────────────────────────────────────

    def _add_result(self, result: TraceResult) -> None:
        tree = self.query_one("#path-tree", Tree)
        color = STATUS_STYLE[result.status]
        label = Text()
        label.append(f"{result.destination}", style="bold")
        label.append(f"  {result.status.value.upper()}", style=f"bold {color}")
        label.append(f"  {len(result.paths)} paths", style="#555555")
        top = tree.root.add(label, expand=True)

        verbose = self._log_level != LogLevel.BASIC
        nodes: dict[tuple[Hop, ...], TreeNode] = {(): top}
        for path in result.paths:
            for i, hop in enumerate(path.hops):
                key = path.hops[:i + 1]
                if key not in nodes:
                    node = nodes[path.hops[:i]].add(hop_text(hop, verbose), expand=True)
                    nodes[key] = node
        tree.scroll_end(animate=False)

    # ── Log pane ────────────────────────────────────────────────────────

    def _write_log_lines(self, evt: TraceEvent, now: datetime) -> None:
        log = self.query_one("#log-view", RichLog)
        ts = now.strftime("%H:%M:%S")
        for line in self._get_lines_for_level(evt):
            log.write(Text.from_markup(f"[#555555]{ts}[/] {line}"))

    def _get_lines_for_level(self, evt: TraceEvent) -> list[str]:
        if self._log_level == LogLevel.DEBUG:
            return evt.log_debug or evt.log_verbose or evt.log_basic
        elif self._log_level == LogLevel.VERBOSE:
            return evt.log_verbose or evt.log_basic
        return evt.log_basic

    def _rebuild_log(self) -> None:
        log = self.query_one("#log-view", RichLog)
        log.clear()
        for evt, ts in self._all_logs:
            ts_str = ts.strftime("%H:%M:%S")
            for line in self._get_lines_for_level(evt):
                log.write(Text.from_markup(f"[#555555]{ts_str}[/] {line}"))

    # ── Status bar ──────────────────────────────────────────────────────

    def _update_status(self) -> None:
        bar = self.query_one("#status-bar", StatusBar)
        level_str = self._log_level.value
        parts = []
        for key, fkey in [("basic", "F2"), ("verbose", "F3"), ("debug", "F4")]:
            if level_str == key:
                parts.append(f"{fkey}:[bold]{key}[/bold]")
            else:
                parts.append(f"{fkey}:{key}")
        level_hints = "  ".join(parts)

        snapshot = self._store.current
        if self._building:
            state = "[#00d4ff]⟳ parsing captures[/]"
        else:
            healthy = sum(1 for r in self._results if r.is_healthy)
            state = (f"[#00ff88]{len(snapshot.registry)} devices[/] │ "
                     f"{len(snapshot.neighbors)} addresses │ "
                     f"{healthy}/{len(self._results)} traces complete")
        bar.update(Text.from_markup(
            f"  {state} │ {level_hints} │ F5:reload │ ^q:quit"
        ))

    # ── Input ───────────────────────────────────────────────────────────

    def on_input_submitted(self, message: Input.Submitted) -> None:
        dest = message.value.strip()
        if not dest:
            return
        try:
            parse_destination(dest)
        except InvalidPrefix as e:
            self._process_event(TraceEvent(
                event="error",
                log_basic=[f"[#ff4444]{escape(str(e))}[/]"],
            ))
            return
        message.input.value = ""
        if not self._building:
            self._start_trace(dest)
        else:
            self._pending.append(dest)

    # ── Key bindings ────────────────────────────────────────────────────

    def action_log_basic(self) -> None:
        self._log_level = LogLevel.BASIC
        self._rebuild_log()
        self._update_status()

    def action_log_verbose(self) -> None:
        self._log_level = LogLevel.VERBOSE
        self._rebuild_log()
        self._update_status()

    def action_log_debug(self) -> None:
        self._log_level = LogLevel.DEBUG
        self._rebuild_log()
        self._update_status()

    def action_reload(self) -> None:
        """Re-parse the capture directory and swap the snapshot in."""
        if self._building:
            return
        self._start_build()
        self._update_status()

    def action_quit(self) -> None:
        self.exit()


# ============================================================
# Event builders (worker threads)
# ============================================================

def _build_event(snapshot) -> TraceEvent:
    diag = snapshot.diagnostics
    s = diag.to_dict()["summary"]
    color = "#00ff88" if not s["excluded"] else "#ffcc00"
    summary = (f"[{color}]Snapshot: {s['included']}/{s['total_devices']} devices[/] │ "
               f"{len(snapshot.neighbors)} addresses │ "
               f"{s['address_conflicts']} conflicts")

    basic = [summary]
    basic += [f"  [#ff4444]✗ {escape(r.device)}: {escape(r.parse_detail)}[/]"
              for r in diag.excluded()]

    verbose = [summary]
    verbose += [f"  {escape(dump_record_summary(r))}" for r in diag.records]
    verbose += [f"  [#ffcc00]⚠ {c.address} claimed by {escape(', '.join(c.claimants))}"
                f" → {escape(c.winner)}[/]" for c in diag.conflicts]

    debug = list(verbose)
    for r in diag.records:
        for line in r.skipped_lines:
            debug.append(f"    [#444444]{escape(r.device)} skipped: {escape(line)}[/]")

    return TraceEvent(event="build_done", log_basic=basic,
                      log_verbose=verbose, log_debug=debug)


def _result_event(result: TraceResult) -> TraceEvent:
    color = STATUS_STYLE[result.status]
    elapsed = (f"{result.duration.total_seconds() * 1000:.1f}ms"
               if result.duration else "?")
    head = (f"[{color}]{result.destination}: {result.status.value.upper()}[/] │ "
            f"{len(result.paths)} paths │ {result.total_devices} devices │ "
            f"{result.ecmp_branch_points} ECMP │ {elapsed}")

    verbose = [head] + [f"  {path_text(p).markup}" for p in result.paths]

    debug = [head]
    for p in result.paths:
        debug.append(f"  {path_text(p).markup}")
        for hop in p.hops:
            hop_color, icon = STATE_STYLE[hop.state]
            who = escape(hop.device_id or str(hop.address))
            debug.append(f"    [{hop_color}]{icon} {who}[/] "
                         f"[#444444]{escape(hop.descriptor or '')}[/]")

    return TraceEvent(event="trace_done", result=result, log_basic=[head],
                      log_verbose=verbose, log_debug=debug)


def main():
    import argparse

    from .diagnostics import setup_logging
    from .platforms import Platform, PLATFORM_PROFILES, get_profile
    from .tracer import LoopPolicy

    parser = argparse.ArgumentParser(description="ribtrace TUI")
    parser.add_argument("captures", help="Directory of routing-table captures")
    parser.add_argument("-s", "--source", required=True)
    parser.add_argument("-d", "--destination", action="append", default=[])
    parser.add_argument("--pattern", default="*.txt")
    parser.add_argument("--platform", default=None,
                        choices=[p.value for p in PLATFORM_PROFILES])
    parser.add_argument("--interface-prefix", action="append", default=[])
    parser.add_argument("--per-branch-loops", action="store_true")
    parser.add_argument("--log", default=None)
    args = parser.parse_args()

    for dest in args.destination:
        try:
            parse_destination(dest)
        except InvalidPrefix as e:
            parser.error(f"Invalid destination '{dest}': {e}")

    if not Path(args.captures).is_dir():
        parser.error(f"Capture directory not found: {args.captures}")

    # Stderr would tear the screen; file only
    setup_logging(log_file=args.log)

    profile = get_profile(Platform(args.platform)) if args.platform else None
    if args.interface_prefix:
        profile = (profile or get_profile(Platform.CISCO_IOS)).with_interface_prefixes(
            *args.interface_prefix)

    config = TracerConfig(
        loop_policy=LoopPolicy.PER_BRANCH if args.per_branch_loops else LoopPolicy.HALT_HOP,
    )
    app = RibTraceApp(
        captures_dir=args.captures,
        source_device=args.source,
        destinations=args.destination,
        profile=profile,
        tracer_config=config,
        pattern=args.pattern,
    )
    app.run()


if __name__ == "__main__":
    main()

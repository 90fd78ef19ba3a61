"""
Route-Table Tracer — Diagnostic Framework

Every capture, every parse, every collision — traceable.
Two levels:
  1. Build summary (always, to stdout or the TUI log pane)
  2. Per-device records (--diagnostics FILE, full JSON)

Philosophy: if a device is missing from the registry, we need to know WHY.
  - Was the capture empty?
  - Did it parse but hold no connected routes (wrong command captured)?
  - Which lines did the parser skip?
  - Did two devices claim the same interface address?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import json
import logging
import time

from .exceptions import ParseFailure


# ============================================================
# Structured Diagnostic Records
# ============================================================

class ParseResult(Enum):
    OK = "ok"                       # parsed, nothing skipped
    PARTIAL = "partial"             # parsed, some lines skipped
    NO_ROUTES = "no-routes"         # no local/connected routes, device excluded
    EMPTY_INPUT = "empty-input"     # nothing to parse
    EXCEPTION = "exception"         # parser threw


@dataclass
class ParseRecord:
    """Complete record of parsing one device's capture."""
    device: str
    platform: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    parse_result: ParseResult = ParseResult.OK
    parse_detail: str = ""
    raw_lines: int = 0
    local_routes: int = 0
    remote_routes: int = 0
    interfaces: int = 0
    skipped_lines: list[str] = field(default_factory=list)
    duration_ms: Optional[float] = None

    @property
    def included(self) -> bool:
        return self.parse_result in (ParseResult.OK, ParseResult.PARTIAL)

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "platform": self.platform,
            "timestamp": self.timestamp.isoformat(),
            "parse_result": self.parse_result.value,
            "parse_detail": self.parse_detail,
            "raw_lines": self.raw_lines,
            "local_routes": self.local_routes,
            "remote_routes": self.remote_routes,
            "interfaces": self.interfaces,
            "skipped_lines": self.skipped_lines,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ConflictRecord:
    """Two or more devices advertise the same interface address."""
    address: str
    claimants: list[str]                # "device/interface", insertion order
    winner: str                         # last claimant, what lookups return

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "claimants": self.claimants,
            "winner": self.winner,
        }


@dataclass
class BuildDiagnostic:
    """Complete diagnostic record for one registry build."""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records: list[ParseRecord] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)

    def excluded(self) -> list[ParseRecord]:
        return [r for r in self.records if not r.included]

    def partial(self) -> list[ParseRecord]:
        return [r for r in self.records if r.parse_result == ParseResult.PARTIAL]

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": {
                "total_devices": len(self.records),
                "included": len(self.records) - len(self.excluded()),
                "excluded": len(self.excluded()),
                "partial": len(self.partial()),
                "address_conflicts": len(self.conflicts),
            },
            "devices": [r.to_dict() for r in self.records],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }

    def dump_json(self, path: str):
        """Write full diagnostic to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


# ============================================================
# Logger Setup
# ============================================================
#
#   default         : warnings and errors only, nothing on stderr
#   --verbose / -v  : per-device parse summaries to stderr
#   --debug         : every skipped line and lookup, to stderr
#   --log FILE      : debug level to file (TUI-safe)
#

def setup_logging(
    log_file: Optional[str] = None,
    debug: bool = False,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure the ribtrace logger tree.

    - log_file: write debug-level to file (TUI-safe)
    - debug: debug-level to stderr (non-TUI mode only)
    - verbose: info-level to stderr
    """
    logger = logging.getLogger("ribtrace")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if log_file:
        fh = logging.FileHandler(log_file, mode="w")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    if debug or verbose:
        sh = logging.StreamHandler()
        sh.setLevel(logging.DEBUG if debug else logging.INFO)
        sh.setFormatter(formatter)
        logger.addHandler(sh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


# ============================================================
# Diagnostic-Aware Parse Wrapper
# ============================================================
#
# Every capture goes through this. One bad capture never stops the
# batch: the failure becomes a record and the device is left out.
#

def parse_with_diagnostics(
    device_id: str,
    raw: str,
    parser,
    logger: Optional[logging.Logger] = None,
):
    """
    Run parser.parse_table(device_id, raw) and record what happened.

    Returns:
        (parsed_table, parse_record)
        parsed_table is None if the device must be excluded.
    """
    record = ParseRecord(device=device_id, raw_lines=len((raw or "").splitlines()))

    if not raw or not raw.strip():
        record.parse_result = ParseResult.EMPTY_INPUT
        record.parse_detail = "Empty or whitespace-only capture"
        if logger:
            logger.warning(f"[{device_id}] Empty capture, device excluded")
        return None, record

    start = time.perf_counter()
    try:
        table = parser.parse_table(device_id, raw)
    except ParseFailure as e:
        record.parse_result = ParseResult.NO_ROUTES
        record.parse_detail = str(e)
        if logger:
            logger.warning(f"{e} — device excluded")
        return None, record
    except Exception as e:
        record.parse_result = ParseResult.EXCEPTION
        record.parse_detail = f"{type(e).__name__}: {e}"
        if logger:
            logger.error(
                f"[{device_id}] Parser exception: {type(e).__name__}: {e}\n"
                f"  Capture:\n{_indent(raw[:500])}"
            )
        return None, record
    finally:
        record.duration_ms = (time.perf_counter() - start) * 1000

    record.platform = table.device.platform
    record.local_routes = table.local_count
    record.remote_routes = table.remote_count
    record.interfaces = len(table.device.interfaces)
    record.skipped_lines = list(table.skipped)
    if table.skipped:
        record.parse_result = ParseResult.PARTIAL
        record.parse_detail = f"{len(table.skipped)} lines skipped"
    return table, record


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line for line in text.splitlines())


# ============================================================
# Diagnostic Dump Formats
# ============================================================

def dump_record_summary(record: ParseRecord) -> str:
    """One-line summary per device."""
    mark = "✓" if record.included else "✗"
    if not record.included:
        return f"[{mark}] {record.device} | {record.parse_result.value}: {record.parse_detail}"
    line = (
        f"[{mark}] {record.device} | {record.platform} | "
        f"{record.local_routes} local, {record.remote_routes} remote, "
        f"{record.interfaces} interfaces"
    )
    if record.skipped_lines:
        line += f" | {len(record.skipped_lines)} skipped"
    return line


def dump_build_summary(diag: BuildDiagnostic) -> str:
    """Full build summary — suitable for terminal or report output."""
    lines = [f"Registry build", f"{'─' * 50}"]
    for record in diag.records:
        lines.append(dump_record_summary(record))

    for conflict in diag.conflicts:
        lines.append(
            f"⚠ {conflict.address} claimed by {', '.join(conflict.claimants)} "
            f"→ using {conflict.winner}"
        )

    s = diag.to_dict()["summary"]
    lines.append(f"{'─' * 50}")
    lines.append(
        f"Devices: {s['total_devices']} | "
        f"Included: {s['included']} | "
        f"Excluded: {s['excluded']} | "
        f"Conflicts: {s['address_conflicts']}"
    )
    return "\n".join(lines)

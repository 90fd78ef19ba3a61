"""Exceptions raised by the route-table tracer.

Only malformed input is raised. Network conditions (no route, loops,
unresolved next-hops) are returned as hop states, never thrown.
"""

from __future__ import annotations


class RibTraceError(Exception):
    """Base class for ribtrace errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidPrefix(RibTraceError, ValueError):
    """Malformed address, mask, or prefix length outside [0, 32]."""


class ParseFailure(RibTraceError):
    """A capture yielded no local/connected routes for a device."""

    def __init__(self, device_id: str, message: str) -> None:
        super().__init__(f"[{device_id}] {message}")
        self.device_id = device_id

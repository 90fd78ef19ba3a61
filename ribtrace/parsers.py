"""
Route-Table Tracer — Routing Table Parser

The middle layer: captured `show ip route` / `show route` text → Device.

Every line is classified before anything is extracted from it:

  noise         legend, prompt, "Gateway of last resort", blank
  classful      "10.0.0.0/8 is variably subnetted, 4 subnets, 2 masks"
  header        code + prefix:  "O E2  172.16.0.0/16 [110/20] via 10.0.12.2, ..."
  continuation  indented "[110/20] via 10.0.13.3, ..." belonging to the
                header above it (ECMP, or a prefix too long for one line)

A header opens a pending route; continuations attach to it; the next
non-continuation line closes it. Only a closed route is evaluated, so a
multi-line entry is judged on all of its text at once.

Local/connected entries are inserted before remote ones, so a remote
entry for the identical prefix wins. A table with no C/L line at all is
a ParseFailure — almost always the wrong file or an empty capture.

Samples:

  IOS / IOS-XE
    C        10.0.12.0/24 is directly connected, GigabitEthernet0/0
    L        10.0.12.1/32 is directly connected, GigabitEthernet0/0
    O        192.168.204.0/24 [110/3] via 10.0.12.2, 00:00:10, GigabitEthernet0/0
                              [110/3] via 10.0.13.3, 00:00:10, GigabitEthernet0/1
  ASA
    C        10.1.1.0 255.255.255.0 is directly connected, inside
    S        192.168.204.0 255.255.255.0 [1/0] via 10.1.1.2, inside
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from ipaddress import IPv4Address, IPv4Network
from typing import Optional
import logging
import re

from .exceptions import InvalidPrefix, ParseFailure
from .lpm import LPMIndex, parse_prefix, parse_address, mask_to_length
from .models import Device, InterfaceAddress, RouteEntry
from .platforms import PlatformProfile, detect_profile

logger = logging.getLogger("ribtrace.parsers")


# ============================================================
# Line classification
# ============================================================

class LineKind(Enum):
    NOISE = "noise"
    CLASSFUL = "classful"
    HEADER = "header"
    CONTINUATION = "continuation"


_IPV4 = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}(?:/\d{1,2})?$")
_VIA_IP = re.compile(r"\bvia\s+(\d{1,3}(?:\.\d{1,3}){3})\b")
_ROUTE_CODE = re.compile(r"^[A-Za-z*+%&]{1,3}\d?\*?$")
_PROMPT = re.compile(r"^[\w\-.]+[#>]")
# IOS CLI errors ("% Network not in table"); a bare "%" flag opens a route
_CLI_ERROR = re.compile(r"^%\s*[A-Z][a-z]")

_NOISE_STARTS = (
    "codes:",
    "gateway of last resort",
    "routing table:",
    "routing entry for",
)

# Words that can close a comma field but never name an interface
_NOT_INTERFACES = frozenset({"is", "a", "via", "directly", "connected", "summary"})


def _strip_comma(token: str) -> str:
    return token.rstrip(",")


def _is_ipv4_token(token: str) -> bool:
    return bool(_IPV4.match(_strip_comma(token)))


def classify_line(line: str) -> LineKind:
    """Decide what a single physical line is, without extracting from it."""
    text = line.strip()
    if not text:
        return LineKind.NOISE

    lowered = text.lower()
    if (lowered.startswith(_NOISE_STARTS) or _PROMPT.match(text)
            or _CLI_ERROR.match(text)):
        return LineKind.NOISE

    if "subnetted" in lowered:
        return LineKind.CLASSFUL

    tokens = text.split()
    indented = line[:1].isspace()

    if indented and (tokens[0].startswith("[") or tokens[0] in ("via", "is")):
        return LineKind.CONTINUATION

    if indented:
        # Legend continuation lines and stray indented text
        return LineKind.NOISE

    # Codes, then the prefix
    for i, token in enumerate(tokens):
        if _is_ipv4_token(token):
            return LineKind.HEADER if i > 0 else LineKind.NOISE
        if not _ROUTE_CODE.match(token):
            return LineKind.NOISE
    return LineKind.NOISE


# ============================================================
# Parse result
# ============================================================

@dataclass
class ParsedTable:
    """A parsed Device plus what the parser had to skip to get there."""
    device: Device
    local_count: int = 0
    remote_count: int = 0
    skipped: list[str] = field(default_factory=list)


@dataclass
class _PendingRoute:
    codes: list[str]
    network: IPv4Network
    lines: list[str]
    rest: list[str]                     # text after the prefix, per line


def _classful_length(address: IPv4Address) -> int:
    first = int(address) >> 24
    if first < 128:
        return 8
    if first < 192:
        return 16
    if first < 224:
        return 24
    return 32


# ============================================================
# Cisco IOS / IOS-XE / ASA
# ============================================================
# Same table layout on all three; the profile supplies what differs
# (interface naming, discard interfaces, local/connected codes).

class CiscoRouteTableParser:
    """Parse a full Cisco routing-table capture into a Device."""

    def __init__(self, profile: Optional[PlatformProfile] = None):
        self.profile = profile

    def parse(self, device_id: str, raw: str) -> Device:
        return self.parse_table(device_id, raw).device

    def parse_table(self, device_id: str, raw: str) -> ParsedTable:
        """
        Raises ParseFailure when the capture holds no local/connected
        routes. Individual bad lines are skipped and reported, not raised.
        """
        if not raw or not raw.strip():
            raise ParseFailure(device_id, "Empty capture")

        profile = self.profile or detect_profile(raw)
        logger.debug(f"[{device_id}] parsing with {profile.platform.value} profile")

        local_entries: list[RouteEntry] = []
        remote_entries: list[RouteEntry] = []
        interfaces: list[InterfaceAddress] = []
        skipped: list[str] = []
        connected_seen = False

        pending: Optional[_PendingRoute] = None
        subnetted: Optional[tuple[IPv4Network, int]] = None

        def close_pending() -> None:
            nonlocal pending, connected_seen
            if pending is None:
                return
            route = pending
            pending = None
            entry = self._evaluate(route, profile)
            if entry is None:
                skipped.append(route.lines[0].strip())
                logger.debug(f"[{device_id}] no next-hop or interface: "
                             f"{route.lines[0].strip()}")
                return

            if entry.is_local:
                local_entries.append(entry)
                base = self._base_code(route.codes)
                if base in profile.local_codes or base in profile.connected_codes:
                    connected_seen = True
                if base in profile.local_codes and entry.interface:
                    interfaces.append(InterfaceAddress(
                        name=entry.interface,
                        address=entry.prefix.network_address,
                    ))
            else:
                remote_entries.append(entry)

        for line in raw.splitlines():
            kind = classify_line(line)

            if kind == LineKind.CONTINUATION:
                if pending is None:
                    skipped.append(line.strip())
                    logger.debug(f"[{device_id}] orphan continuation: {line.strip()}")
                    continue
                pending.lines.append(line)
                pending.rest.append(line.strip())
                continue

            close_pending()

            if kind == LineKind.CLASSFUL:
                subnetted = self._classful_header_length(line)
            elif kind == LineKind.HEADER:
                try:
                    pending = self._open_route(line, subnetted)
                except InvalidPrefix as e:
                    skipped.append(line.strip())
                    logger.warning(f"[{device_id}] bad prefix, line skipped: "
                                   f"{line.strip()} ({e})")

        close_pending()

        if not connected_seen:
            raise ParseFailure(
                device_id,
                "No local/connected routes found — wrong file format "
                "or empty capture?",
            )

        index: LPMIndex[RouteEntry] = LPMIndex()
        for entry in local_entries + remote_entries:
            index.insert(entry.prefix, entry)

        logger.info(f"[{device_id}] {len(local_entries)} local, "
                    f"{len(remote_entries)} remote, "
                    f"{len(interfaces)} interfaces, {len(skipped)} skipped")

        device = Device(
            device_id=device_id,
            routes=index,
            interfaces=tuple(interfaces),
            platform=profile.platform.value,
        )
        return ParsedTable(
            device=device,
            local_count=len(local_entries),
            remote_count=len(remote_entries),
            skipped=skipped,
        )

    # ────────────────────────────────────────────
    # Line helpers
    # ────────────────────────────────────────────

    @staticmethod
    def _base_code(codes: list[str]) -> str:
        return codes[0].rstrip("*+%&") if codes else ""

    @staticmethod
    def _classful_header_length(line: str) -> Optional[tuple[IPv4Network, int]]:
        """
        "172.16.0.0/24 is subnetted, 2 subnets" → (172.16.0.0/16, 24):
        children of that major network without a length are /24.
        "10.0.0.0/8 is variably subnetted ..." → None, children carry /len.
        """
        if "variably" in line.lower():
            return None
        m = re.search(r"(\d+\.\d+\.\d+\.\d+)/(\d+)", line)
        if not m:
            return None
        try:
            address = parse_address(m.group(1))
            major = parse_prefix((address, _classful_length(address)))
        except InvalidPrefix:
            return None
        return major, int(m.group(2))

    @staticmethod
    def _open_route(line: str,
                    subnetted: Optional[tuple[IPv4Network, int]]) -> _PendingRoute:
        tokens = line.split()
        codes: list[str] = []
        i = 0
        while not _is_ipv4_token(tokens[i]):
            codes.append(tokens[i])
            i += 1

        prefix_token = _strip_comma(tokens[i])
        i += 1
        if "/" in prefix_token:
            network = parse_prefix(prefix_token)
        elif i < len(tokens) and _is_ipv4_token(tokens[i]):
            # dotted mask (ASA)
            network = parse_prefix((prefix_token, mask_to_length(_strip_comma(tokens[i]))))
            i += 1
        else:
            address = parse_address(prefix_token)
            if subnetted is not None and address in subnetted[0]:
                length = subnetted[1]
            else:
                length = _classful_length(address)
            network = parse_prefix((address, length))

        return _PendingRoute(
            codes=codes,
            network=network,
            lines=[line],
            rest=[" ".join(tokens[i:])],
        )

    def _evaluate(self, route: _PendingRoute,
                  profile: PlatformProfile) -> Optional[RouteEntry]:
        """Closed route → RouteEntry, or None if it leads nowhere."""
        text = ", ".join(part for part in route.rest if part)
        protocol = " ".join(route.codes)
        descriptor = "\n".join(line.strip() for line in route.lines)

        next_hops: list[IPv4Address] = []
        for m in _VIA_IP.finditer(text):
            addr = IPv4Address(m.group(1))
            if addr not in next_hops:
                next_hops.append(addr)

        if next_hops:
            return RouteEntry(
                prefix=route.network,
                next_hops=tuple(next_hops),
                protocol=protocol,
                descriptor=descriptor,
            )

        interface = self._egress_interface(text, profile)
        if interface or "directly connected" in text.lower():
            return RouteEntry(
                prefix=route.network,
                interface=interface,
                protocol=protocol,
                descriptor=descriptor,
                discard=profile.is_discard(interface),
            )
        return None

    @staticmethod
    def _egress_interface(text: str, profile: PlatformProfile) -> Optional[str]:
        """Last comma field that names an interface, per the profile."""
        for part in reversed(text.split(",")):
            words = part.split()
            if not words:
                continue
            token = words[-1]
            if token.lower() in _NOT_INTERFACES:
                continue
            if profile.is_interface_name(token):
                return token
        return None


def parse_route_table(device_id: str, raw: str,
                      profile: Optional[PlatformProfile] = None) -> Device:
    """Convenience wrapper: one capture → one Device (or ParseFailure)."""
    return CiscoRouteTableParser(profile).parse(device_id, raw)

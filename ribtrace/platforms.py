"""
Route-Table Tracer — Platform Fingerprint and Parsing Profiles

Fingerprint: decide from the capture text which CLI produced it.
Profiles: per-platform parsing rules — which tokens name interfaces,
which route codes are local, which interfaces discard traffic.

Adding a platform is a new PlatformProfile in PLATFORM_PROFILES.
The parser never hardcodes interface names.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional
import re


class Platform(Enum):
    CISCO_IOS = "cisco_ios"             # IOS and IOS-XE
    CISCO_ASA = "cisco_asa"
    UNKNOWN = "unknown"


# ============================================================
# Fingerprinting: which CLI wrote this capture?
# ============================================================
#
# Captures are files, not sessions, so there is no prompt or banner
# to lean on, only the table text itself:
#
#   IOS / IOS-XE:  "show ip route", CIDR lengths on route lines
#                  C        10.1.1.0/24 is directly connected, GigabitEthernet0/1
#   ASA:           "show route", dotted masks, nameif interface names
#                  C        10.1.1.0 255.255.255.0 is directly connected, inside
#

@dataclass
class FingerprintSignature:
    """Patterns to match against the capture text."""
    platform: Platform
    patterns: list[str]                 # any match = positive ID


FINGERPRINTS = [
    FingerprintSignature(
        platform=Platform.CISCO_ASA,
        patterns=[
            r"^\S*[#>]\s*show route\b",
            r"Cisco Adaptive Security Appliance",
            r"^[A-Z*]{1,2}[ \t\w*]*\s\d+\.\d+\.\d+\.\d+\s+255\.\d+\.\d+\.\d+\s",
            r"V - VPN",
        ],
    ),
    FingerprintSignature(
        platform=Platform.CISCO_IOS,
        patterns=[
            r"^\S*[#>]\s*show ip route\b",
            r"Cisco IOS",
            r"\d+\.\d+\.\d+\.\d+/\d+",
        ],
    ),
]


def fingerprint_capture(raw: str) -> Platform:
    """
    First match wins — ASA before IOS, since ASA captures can still
    contain CIDR-looking text in the gateway-of-last-resort line.
    """
    for sig in FINGERPRINTS:
        for pattern in sig.patterns:
            if re.search(pattern, raw, re.IGNORECASE | re.MULTILINE):
                return sig.platform
    return Platform.UNKNOWN


# ============================================================
# Parsing profiles
# ============================================================

_TIMER = re.compile(r"^(\d+:\d+:\d+|(\d+[ywdhms])+)$", re.IGNORECASE)
_NAMEIF = re.compile(r"^[A-Za-z][\w\-.]*$")


@dataclass(frozen=True)
class PlatformProfile:
    """How to read one platform's routing table."""
    platform: Platform
    interface_prefixes: tuple[str, ...] = ()
    accept_nameif: bool = False         # ASA: any bare name is an interface
    discard_interfaces: tuple[str, ...] = ("Null0",)
    local_codes: frozenset[str] = field(default_factory=lambda: frozenset({"L"}))
    connected_codes: frozenset[str] = field(default_factory=lambda: frozenset({"C"}))

    def is_interface_name(self, token: str) -> bool:
        token = token.strip().rstrip(",")
        if not token or _TIMER.match(token):
            return False
        lowered = token.lower()
        for prefix in self.interface_prefixes:
            if lowered.startswith(prefix.lower()):
                rest = token[len(prefix):]
                if rest[:1].isdigit():
                    return True
        return self.accept_nameif and bool(_NAMEIF.match(token))

    def is_discard(self, interface: Optional[str]) -> bool:
        if not interface:
            return False
        return interface.lower() in {d.lower() for d in self.discard_interfaces}

    def with_interface_prefixes(self, *prefixes: str) -> PlatformProfile:
        """Copy of this profile that also recognises the given prefixes."""
        merged = self.interface_prefixes + tuple(
            p for p in prefixes if p not in self.interface_prefixes
        )
        return replace(self, interface_prefixes=merged)


_IOS_INTERFACE_PREFIXES = (
    "GigabitEthernet", "Gi",
    "FastEthernet", "Fa",
    "TenGigabitEthernet", "Te",
    "TwentyFiveGigE", "Twe",
    "FortyGigabitEthernet", "Fo",
    "HundredGigE", "Hu",
    "Ethernet", "Et",
    "Serial", "Se",
    "Loopback", "Lo",
    "Tunnel", "Tu",
    "Vlan", "Vl",
    "Port-channel", "Po",
    "BDI", "Dialer", "Di",
    "Virtual-Access", "Virtual-Template",
    "Multilink", "Mu",
    "Cellular", "NVI",
    "Null",
)


PLATFORM_PROFILES: dict[Platform, PlatformProfile] = {
    Platform.CISCO_IOS: PlatformProfile(
        platform=Platform.CISCO_IOS,
        interface_prefixes=_IOS_INTERFACE_PREFIXES,
    ),
    Platform.CISCO_ASA: PlatformProfile(
        platform=Platform.CISCO_ASA,
        # nameif is free text ("inside", "dmz-web"), so prefixes alone
        # cannot identify it
        interface_prefixes=("Null", "Tunnel", "Management"),
        accept_nameif=True,
    ),
}


def get_profile(platform: Platform) -> PlatformProfile:
    """Profile for a platform. UNKNOWN falls back to IOS rules."""
    return PLATFORM_PROFILES.get(platform, PLATFORM_PROFILES[Platform.CISCO_IOS])


def detect_profile(raw: str) -> PlatformProfile:
    return get_profile(fingerprint_capture(raw))

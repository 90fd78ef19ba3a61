from __future__ import annotations

from pathlib import Path

import pytest

from ribtrace.models import Device, RouteEntry
from ribtrace.registry import Snapshot, build_snapshot


IOS_LEGEND = """\
Codes: L - local, C - connected, S - static, R - RIP, M - mobile, B - BGP
       D - EIGRP, EX - EIGRP external, O - OSPF, IA - OSPF inter area
       N1 - OSPF NSSA external type 1, N2 - OSPF NSSA external type 2
       E1 - OSPF external type 1, E2 - OSPF external type 2
       i - IS-IS, su - IS-IS summary, L1 - IS-IS level-1, L2 - IS-IS level-2
       ia - IS-IS inter area, * - candidate default, U - per-user static route
       o - ODR, P - periodic downloaded static route, H - NHRP, l - LISP
       + - replicated route, % - next hop override
"""

ASA_LEGEND = """\
Codes: L - local, C - connected, S - static, R - RIP, M - mobile, B - BGP
       D - EIGRP, EX - EIGRP external, O - OSPF, IA - OSPF inter area
       N1 - OSPF NSSA external type 1, N2 - OSPF NSSA external type 2
       E1 - OSPF external type 1, E2 - OSPF external type 2, V - VPN
       i - IS-IS, su - IS-IS summary, L1 - IS-IS level-1, L2 - IS-IS level-2
       ia - IS-IS inter area, * - candidate default, U - per-user static route
       o - ODR, P - periodic downloaded static route, + - replicated route
"""

# r1 ── r2 ── fw4 (192.168.204.0/24 inside)
#  └─── r3 ───┘
#
# r1 has ECMP to 192.168.204.0/24 via r2 and r3, a default via r2, and
# a Null0 summary. r2's default points back at r1, so anything without
# a specific route loops r1 → r2 → r1.

R1_CAPTURE = f"""\
r1#show ip route
{IOS_LEGEND}
Gateway of last resort is 10.0.12.2 to network 0.0.0.0

S*    0.0.0.0/0 [1/0] via 10.0.12.2
      10.0.0.0/8 is variably subnetted, 5 subnets, 2 masks
C        10.0.12.0/24 is directly connected, GigabitEthernet0/0
L        10.0.12.1/32 is directly connected, GigabitEthernet0/0
C        10.0.13.0/24 is directly connected, GigabitEthernet0/1
L        10.0.13.1/32 is directly connected, GigabitEthernet0/1
C        10.255.0.1/32 is directly connected, Loopback0
S     172.16.0.0/16 is directly connected, Null0
O     192.168.204.0/24 [110/3] via 10.0.12.2, 00:00:10, GigabitEthernet0/0
                       [110/3] via 10.0.13.3, 00:00:10, GigabitEthernet0/1
r1#
"""

R2_CAPTURE = f"""\
r2#show ip route
{IOS_LEGEND}
Gateway of last resort is 10.0.12.1 to network 0.0.0.0

S*    0.0.0.0/0 [1/0] via 10.0.12.1
      10.0.0.0/8 is variably subnetted, 4 subnets, 2 masks
C        10.0.12.0/24 is directly connected, GigabitEthernet0/0
L        10.0.12.2/32 is directly connected, GigabitEthernet0/0
C        10.0.24.0/24 is directly connected, GigabitEthernet0/1
L        10.0.24.2/32 is directly connected, GigabitEthernet0/1
O     192.168.204.0/24 [110/2] via 10.0.24.4, 00:00:12, GigabitEthernet0/1
"""

R3_CAPTURE = f"""\
r3#show ip route
{IOS_LEGEND}
Gateway of last resort is not set

      10.0.0.0/8 is variably subnetted, 4 subnets, 2 masks
C        10.0.13.0/24 is directly connected, GigabitEthernet0/0
L        10.0.13.3/32 is directly connected, GigabitEthernet0/0
C        10.0.34.0/24 is directly connected, GigabitEthernet0/1
L        10.0.34.3/32 is directly connected, GigabitEthernet0/1
O     192.168.204.0/24 [110/2] via 10.0.34.4, 00:00:12, GigabitEthernet0/1
"""

FW4_CAPTURE = f"""\
fw4# show route

{ASA_LEGEND}
Gateway of last resort is not set

C        10.0.24.0 255.255.255.0 is directly connected, outside
L        10.0.24.4 255.255.255.255 is directly connected, outside
C        10.0.34.0 255.255.255.0 is directly connected, outside2
L        10.0.34.4 255.255.255.255 is directly connected, outside2
C        192.168.204.0 255.255.255.0 is directly connected, inside
L        192.168.204.204 255.255.255.255 is directly connected, inside
S        10.99.0.0 255.255.0.0 [1/0] via 10.0.24.250, outside
"""

# Old IOS 12 layout: classful headers, no L routes, lengths implied
CLASSFUL_CAPTURE = """\
Gateway of last resort is not set

     172.16.0.0/24 is subnetted, 2 subnets
C       172.16.1.0 is directly connected, FastEthernet0/0
O       172.16.2.0 [110/2] via 172.16.1.2, 00:01:02, FastEthernet0/0
C    192.168.1.0/24 is directly connected, FastEthernet0/1
R    10.0.0.0/8 [120/1] via 172.16.1.2, 00:00:12, FastEthernet0/0
O    192.168.5.0 [110/2] via 172.16.1.2, 00:01:02, FastEthernet0/0
"""

REMOTE_ONLY_CAPTURE = """\
S     10.0.0.0/8 [1/0] via 10.1.1.1
O     192.168.0.0/16 [110/2] via 10.1.1.2, 00:00:05, GigabitEthernet0/0
"""


@pytest.fixture
def lab_captures() -> dict[str, str]:
    return {
        "r1": R1_CAPTURE,
        "r2": R2_CAPTURE,
        "r3": R3_CAPTURE,
        "fw4": FW4_CAPTURE,
    }


@pytest.fixture
def lab_snapshot(lab_captures) -> Snapshot:
    return build_snapshot(lab_captures, workers=2)


@pytest.fixture
def capture_dir(tmp_path: Path, lab_captures) -> Path:
    for device_id, text in lab_captures.items():
        (tmp_path / f"{device_id}.txt").write_text(text)
    return tmp_path


# ── Pre-parsed topologies ───────────────────────────────────────────────

@pytest.fixture
def ecmp_devices() -> list[Device]:
    """A fans out to B and C, both of which reach D's local /24."""
    return [
        Device.from_entries(
            "A",
            [RouteEntry.remote("192.168.204.0/24", ["10.0.1.2", "10.0.2.3"], protocol="O")],
            interfaces=[("eth1", "10.0.1.1"), ("eth2", "10.0.2.1")],
        ),
        Device.from_entries(
            "B",
            [RouteEntry.remote("192.168.204.0/24", ["10.0.3.4"], protocol="O")],
            interfaces=[("eth1", "10.0.1.2"), ("eth3", "10.0.3.2")],
        ),
        Device.from_entries(
            "C",
            [RouteEntry.remote("192.168.204.0/24", ["10.0.4.4"], protocol="O")],
            interfaces=[("eth2", "10.0.2.3"), ("eth4", "10.0.4.3")],
        ),
        Device.from_entries(
            "D",
            [RouteEntry.local("192.168.204.0/24", "vlan204")],
            interfaces=[("eth3", "10.0.3.4"), ("eth4", "10.0.4.4")],
        ),
    ]


@pytest.fixture
def loop_devices() -> list[Device]:
    """A and B point 10.0.0.0/8 at each other's tunnel address."""
    return [
        Device.from_entries(
            "A",
            [RouteEntry.remote("10.0.0.0/8", ["172.31.0.2"])],
            interfaces=[("Tunnel0", "172.31.0.1")],
        ),
        Device.from_entries(
            "B",
            [RouteEntry.remote("10.0.0.0/8", ["172.31.0.1"])],
            interfaces=[("Tunnel0", "172.31.0.2")],
        ),
    ]

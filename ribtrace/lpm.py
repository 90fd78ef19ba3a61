"""
Longest-Prefix-Match Index — binary trie over the 32 IPv4 address bits.

One node per prefix bit. A node carries a value only when a prefix ends
there, so each exact prefix holds at most one value and lookup walks at
most 32 nodes regardless of how many prefixes are stored.

    index = LPMIndex()
    index.insert("10.0.0.0/8", "coarse")
    index.insert("10.1.0.0 255.255.0.0", "fine")
    index.lookup("10.1.2.3")     → "fine"
    index.lookup("10.9.9.9")     → "coarse"
    index.lookup("192.0.2.1")    → None
"""

from __future__ import annotations

from ipaddress import IPv4Address, IPv4Network, AddressValueError
from typing import Any, Generic, Iterator, Optional, TypeVar, Union

from .exceptions import InvalidPrefix

V = TypeVar("V")

ADDRESS_BITS = 32
_ALL_ONES = (1 << ADDRESS_BITS) - 1

PrefixLike = Union[str, IPv4Network, tuple]
AddressLike = Union[str, int, IPv4Address]


# ============================================================
# Address & prefix normalisation
# ============================================================

def parse_address(address: AddressLike) -> IPv4Address:
    """Parse an IPv4 address. Raises InvalidPrefix on failure."""
    if isinstance(address, IPv4Address):
        return address
    try:
        if isinstance(address, str):
            return IPv4Address(address.strip())
        return IPv4Address(address)
    except (AddressValueError, ValueError, TypeError) as e:
        raise InvalidPrefix(f"Invalid IPv4 address {address!r}: {e}") from e


def mask_to_length(mask: Union[str, IPv4Address]) -> int:
    """
    Dotted mask → prefix length by population count.

    '255.255.255.0' → 24. Non-contiguous masks ('255.0.255.0') are
    rejected: they have a population count but no prefix meaning.
    """
    mask_int = int(parse_address(mask))
    length = bin(mask_int).count("1")
    if mask_int != _length_to_mask(length):
        raise InvalidPrefix(f"Non-contiguous netmask {mask}")
    return length


def _length_to_mask(length: int) -> int:
    return _ALL_ONES ^ ((1 << (ADDRESS_BITS - length)) - 1)


def _parse_length(token: Any) -> int:
    """Prefix length from '24', 24 or '255.255.255.0'."""
    if isinstance(token, int) and not isinstance(token, bool):
        length = token
    elif isinstance(token, str) and token.strip().isascii() and token.strip().isdigit():
        length = int(token.strip())
    elif isinstance(token, (str, IPv4Address)):
        return mask_to_length(token)
    else:
        raise InvalidPrefix(f"Invalid prefix length {token!r}")

    if not 0 <= length <= ADDRESS_BITS:
        raise InvalidPrefix(f"Prefix length {length} outside [0, {ADDRESS_BITS}]")
    return length


def parse_prefix(prefix: PrefixLike) -> IPv4Network:
    """
    Normalise any accepted prefix form to an IPv4Network.

    Accepted: '10.0.0.0/24', '10.0.0.0/255.255.255.0', '10.0.0.0 255.255.255.0',
    ('10.0.0.0', 24), ('10.0.0.0', '255.255.255.0'), a bare address (/32),
    or an IPv4Network. Host bits are cleared, not rejected, the same way
    a router displays a network.
    """
    if isinstance(prefix, IPv4Network):
        return prefix

    if isinstance(prefix, tuple):
        if len(prefix) != 2:
            raise InvalidPrefix(f"Invalid prefix tuple {prefix!r}")
        address, length = prefix
    elif isinstance(prefix, str):
        text = prefix.strip()
        if "/" in text:
            address, _, length = text.partition("/")
        elif " " in text:
            address, length = text.split(None, 1)
        else:
            address, length = text, ADDRESS_BITS
    else:
        raise InvalidPrefix(f"Invalid prefix {prefix!r}")

    network_int = int(parse_address(address))
    plen = _parse_length(length)
    return IPv4Network((network_int & _length_to_mask(plen), plen))


# ============================================================
# Trie
# ============================================================

class _Node:
    __slots__ = ("children", "network", "value", "occupied")

    def __init__(self) -> None:
        self.children: list[Optional[_Node]] = [None, None]
        self.network: Optional[IPv4Network] = None
        self.value: Any = None
        self.occupied = False


class LPMIndex(Generic[V]):
    """IPv4 prefix → value, answering longest-prefix-match lookups."""

    def __init__(self) -> None:
        self._root = _Node()
        self._size = 0

    def insert(self, prefix: PrefixLike, value: V) -> IPv4Network:
        """Bind value to the exact prefix, replacing any prior binding."""
        network = parse_prefix(prefix)
        bits = int(network.network_address)

        node = self._root
        for depth in range(network.prefixlen):
            bit = (bits >> (ADDRESS_BITS - 1 - depth)) & 1
            child = node.children[bit]
            if child is None:
                child = _Node()
                node.children[bit] = child
            node = child

        if not node.occupied:
            self._size += 1
        node.network = network
        node.value = value
        node.occupied = True
        return network

    def lookup_prefix(self, address: AddressLike) -> Optional[tuple[IPv4Network, V]]:
        """(matched network, value) for the most specific match, or None."""
        bits = int(parse_address(address))

        node = self._root
        best = node if node.occupied else None
        for depth in range(ADDRESS_BITS):
            node = node.children[(bits >> (ADDRESS_BITS - 1 - depth)) & 1]
            if node is None:
                break
            if node.occupied:
                best = node

        if best is None:
            return None
        return best.network, best.value

    def lookup(self, address: AddressLike) -> Optional[V]:
        """Value of the most specific prefix containing address, or None."""
        match = self.lookup_prefix(address)
        return match[1] if match else None

    def contains(self, address: AddressLike) -> bool:
        return self.lookup_prefix(address) is not None

    def get(self, prefix: PrefixLike) -> Optional[V]:
        """Exact-prefix fetch (no longest-match fallback)."""
        network = parse_prefix(prefix)
        bits = int(network.network_address)
        node = self._root
        for depth in range(network.prefixlen):
            node = node.children[(bits >> (ADDRESS_BITS - 1 - depth)) & 1]
            if node is None:
                return None
        return node.value if node.occupied else None

    def items(self) -> Iterator[tuple[IPv4Network, V]]:
        """Stored (network, value) pairs in address order, shorter prefixes first."""
        stack = [self._root]
        while stack:
            node = stack.pop()
            if node.occupied:
                yield node.network, node.value
            # push 1 before 0 so the 0 branch is visited first
            for child in (node.children[1], node.children[0]):
                if child is not None:
                    stack.append(child)

    def __contains__(self, address: AddressLike) -> bool:
        return self.contains(address)

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[IPv4Network]:
        return (network for network, _ in self.items())

    def __repr__(self) -> str:
        return f"LPMIndex({self._size} prefixes)"

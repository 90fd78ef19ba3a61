from __future__ import annotations

from ipaddress import IPv4Address, IPv4Network

import pytest

from ribtrace.exceptions import InvalidPrefix
from ribtrace.lpm import LPMIndex, mask_to_length, parse_address, parse_prefix


def test_mask_to_length_counts_contiguous_bits():
    assert mask_to_length("255.255.255.0") == 24
    assert mask_to_length("255.255.255.255") == 32
    assert mask_to_length("0.0.0.0") == 0
    assert mask_to_length("255.255.240.0") == 20


def test_mask_to_length_rejects_non_contiguous_mask():
    with pytest.raises(InvalidPrefix):
        mask_to_length("255.0.255.0")


def test_parse_prefix_accepts_every_notation():
    expected = IPv4Network("10.1.0.0/16")
    assert parse_prefix("10.1.0.0/16") == expected
    assert parse_prefix("10.1.0.0/255.255.0.0") == expected
    assert parse_prefix("10.1.0.0 255.255.0.0") == expected
    assert parse_prefix(("10.1.0.0", 16)) == expected
    assert parse_prefix(("10.1.0.0", "255.255.0.0")) == expected
    assert parse_prefix(expected) is expected


def test_parse_prefix_clears_host_bits_and_defaults_to_host_route():
    assert parse_prefix("10.1.2.3/16") == IPv4Network("10.1.0.0/16")
    assert parse_prefix("10.1.2.3") == IPv4Network("10.1.2.3/32")


@pytest.mark.parametrize("bad", ["10.0.0.0/33", "10.0.0.256/8", "bogus", "10.0.0.0/", ("10.0.0.0",)])
def test_parse_prefix_rejects_malformed_input(bad):
    with pytest.raises(InvalidPrefix):
        parse_prefix(bad)


@pytest.mark.parametrize("bad", ["10.0.0.0/٣", "10.0.0.0/２４", ("10.0.0.0", "٢٤")])
def test_prefix_length_must_be_ascii_digits(bad):
    with pytest.raises(InvalidPrefix):
        parse_prefix(bad)


def test_invalid_prefix_is_a_value_error():
    with pytest.raises(ValueError):
        parse_address("300.1.1.1")


def test_lookup_returns_most_specific_match():
    index = LPMIndex()
    index.insert("0.0.0.0/0", "default")
    index.insert("10.0.0.0/8", "coarse")
    index.insert("10.1.0.0/16", "fine")
    index.insert("10.1.2.3/32", "host")

    assert index.lookup("10.1.2.3") == "host"
    assert index.lookup("10.1.2.4") == "fine"
    assert index.lookup("10.200.0.1") == "coarse"
    assert index.lookup("192.0.2.1") == "default"


def test_lookup_without_match_returns_none():
    index = LPMIndex()
    index.insert("10.0.0.0/8", "coarse")

    assert index.lookup("11.0.0.1") is None
    assert index.lookup_prefix("11.0.0.1") is None
    assert "11.0.0.1" not in index
    assert "10.9.9.9" in index


def test_every_address_in_a_prefix_hits_it_when_nothing_more_specific_exists():
    index = LPMIndex()
    index.insert("192.168.10.0/29", "lan")
    index.insert("192.168.10.4/30", "half")

    for host in range(0, 4):
        assert index.lookup(f"192.168.10.{host}") == "lan"
    for host in range(4, 8):
        assert index.lookup(f"192.168.10.{host}") == "half"
    assert index.lookup("192.168.10.8") is None


def test_insert_same_prefix_replaces_value():
    index = LPMIndex()
    index.insert("10.0.0.0/24", "first")
    index.insert("10.0.0.0 255.255.255.0", "second")

    assert len(index) == 1
    assert index.lookup("10.0.0.7") == "second"


def test_lookup_prefix_reports_matched_network():
    index = LPMIndex()
    index.insert("10.0.0.0/8", "coarse")

    network, value = index.lookup_prefix(IPv4Address("10.2.3.4"))
    assert network == IPv4Network("10.0.0.0/8")
    assert value == "coarse"


def test_get_is_exact_match_only():
    index = LPMIndex()
    index.insert("10.0.0.0/8", "coarse")

    assert index.get("10.0.0.0/8") == "coarse"
    assert index.get("10.0.0.0/16") is None


def test_items_are_in_address_order_shorter_first():
    index = LPMIndex()
    for prefix in ["10.1.0.0/16", "192.168.0.0/24", "10.0.0.0/8", "0.0.0.0/0"]:
        index.insert(prefix, prefix)

    assert [str(n) for n in index] == [
        "0.0.0.0/0", "10.0.0.0/8", "10.1.0.0/16", "192.168.0.0/24",
    ]

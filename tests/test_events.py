from __future__ import annotations

from ipaddress import IPv4Address

from rich.console import Console

from ribtrace.events import STATE_STYLE, hop_label, hop_text, path_text, result_tree
from ribtrace.models import Hop, HopState, Path
from ribtrace.registry import Snapshot
from ribtrace.tracer import PathTracer


def _render(renderable) -> str:
    console = Console(width=200, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


def test_every_hop_state_has_a_style():
    assert set(STATE_STYLE) == set(HopState)


def test_hop_labels_name_the_terminal_state():
    assert hop_label(Hop("r1", HopState.NO_ROUTE)) == "✗ r1 (no route)"
    assert hop_label(Hop("r1", HopState.LOOP)) == "↺ r1 (loop)"
    assert hop_label(Hop(None, HopState.UNRESOLVED_NEXT_HOP,
                         address=IPv4Address("10.9.9.9"))) == "? 10.9.9.9 (no owning device)"


def test_hop_text_shows_notes_and_descriptor_when_verbose():
    hop = Hop("r1", HopState.FORWARD, descriptor="O 10.0.0.0/8 via 1.1.1.1",
              notes=("next-hop 1.1.1.1 claimed by a/e0, b/e0; using b/e0",))

    assert "claimed by" in hop_text(hop).plain
    assert "O 10.0.0.0/8" not in hop_text(hop).plain
    assert "O 10.0.0.0/8" in hop_text(hop, verbose=True).plain


def test_path_text_reads_left_to_right():
    path = Path((Hop("A", HopState.FORWARD), Hop("B", HopState.FORWARD),
                 Hop("A", HopState.LOOP)))

    assert path_text(path).plain == "A → B → A ↺ loop"


def test_result_tree_folds_shared_hops(ecmp_devices):
    result = PathTracer(Snapshot.from_devices(ecmp_devices)).run("A", "192.168.204.204")
    tree = result_tree(result)

    [a_node] = tree.children
    assert len(a_node.children) == 2
    text = _render(tree)
    assert "COMPLETE" in text
    assert text.count("D") >= 2

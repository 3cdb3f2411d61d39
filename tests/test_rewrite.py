"""
Tests for the rewrite engine: instantiation and seam splicing.
"""

import pytest

from cyclegen.core.graph import DungeonGraph, GraphIntegrityError, NodeKind, NodeTagKind
from cyclegen.core.ids import (
    CycleId, EdgeId, IdAllocator, NodeId, TEdgeId, TInsertionId, TNodeId,
)
from cyclegen.core.keys import KeyIdentityPolicy, KeyRegistry
from cyclegen.generation.rewrite import GraphRewriteEngine
from cyclegen.generation.templates import (
    CycleTemplate, CycleTemplateBuilder, CycleType, TArc, TEdge, TInsertion,
    TNode, TNodeKind, TemplateError,
)
from cyclegen.utils.graph_utils import is_reachable


class TestInstantiate:
    """Fresh ids, markers, seams and arcs."""

    def test_root_instantiation(self, engine, library):
        fragment = engine.instantiate(library.get(CycleType.TWO_ALTERNATIVE_PATHS), depth=0)
        assert len(fragment.nodes) == 4
        assert len(fragment.edges) == 4
        assert len(fragment.insertions) == 2

        # Nodes are allocated before edges.
        assert [n.id for n in fragment.nodes] == [NodeId(i) for i in range(1, 5)]
        assert [e.id for e in fragment.edges] == [EdgeId(i) for i in range(1, 5)]

        nodes = {n.id: n for n in fragment.nodes}
        assert nodes[fragment.entry].kind == NodeKind.ENTRANCE
        assert nodes[fragment.exit].kind == NodeKind.EXIT
        assert nodes[fragment.entry].has_tag(NodeTagKind.CYCLE_START)
        assert nodes[fragment.exit].has_tag(NodeTagKind.CYCLE_GOAL)
        assert fragment.cycle.id == CycleId(1)
        assert fragment.cycle.parent_cycle is None

    def test_nested_instantiation_keeps_normal_kind(self, engine, library):
        fragment = engine.instantiate(library.get(CycleType.TWO_ALTERNATIVE_PATHS), depth=1,
                                      parent_cycle=CycleId(9))
        assert all(n.kind == NodeKind.NORMAL for n in fragment.nodes)
        entry = next(n for n in fragment.nodes if n.id == fragment.entry)
        assert entry.has_tag(NodeTagKind.CYCLE_START)
        assert fragment.cycle.depth == 1
        assert fragment.cycle.parent_cycle == CycleId(9)

    def test_seams_anchor_to_new_edges(self, engine, library):
        fragment = engine.instantiate(library.get(CycleType.TWO_ALTERNATIVE_PATHS), depth=2)
        edge_ids = set(fragment.edge_ids)
        for point in fragment.insertions:
            assert point.seam_edge in edge_ids
            assert point.depth == 2
            assert point.owner_cycle == fragment.cycle.id
        assert len({p.id for p in fragment.insertions}) == 2

    def test_arc_membership(self, engine, library):
        fragment = engine.instantiate(library.get(CycleType.LOCK_AND_KEY_CYCLE), depth=0)
        record = fragment.cycle
        assert len(record.arc_a) == 1
        assert len(record.arc_b) == 3
        for eid in record.arc_a:
            assert fragment.edge_arcs[eid] == 0
        for eid in record.arc_b:
            assert fragment.edge_arcs[eid] == 1
        # The one-way return edge belongs to neither arc.
        assert len(fragment.edge_arcs) == 4
        assert len(fragment.edges) == 5

    def test_repeated_instantiation_never_aliases(self, engine, library):
        template = library.get(CycleType.GAMBIT)
        first = engine.instantiate(template, depth=0)
        second = engine.instantiate(template, depth=0)
        assert not set(first.node_ids) & set(second.node_ids)
        assert not set(first.edge_ids) & set(second.edge_ids)
        first.nodes[0].add_tag(NodeTagKind.SECRET)
        assert not second.nodes[0].has_tag(NodeTagKind.SECRET)
        assert NodeTagKind.SECRET not in {tag.kind for n in template.nodes.values() for tag in n.tags}

    def test_seam_on_missing_edge_is_fatal(self, engine):
        template = CycleTemplate(
            CycleType.GAMBIT, "Broken",
            [TNode(TNodeId(1), TNodeKind.START), TNode(TNodeId(2), TNodeKind.GOAL)],
            [TEdge(TEdgeId(1), TNodeId(1), TNodeId(2))],
            TNodeId(1), TNodeId(2),
            TArc("A", (TEdgeId(1),)), TArc("B", ()),
            insertions=[TInsertion(TInsertionId(1), TEdgeId(99))],
            validate=False,
        )
        with pytest.raises(TemplateError):
            engine.instantiate(template, depth=0)

    def test_template_without_endpoints_is_fatal(self, engine):
        b = CycleTemplateBuilder(CycleType.GAMBIT)
        b.edge(b.node("X"), b.node("Y"))
        with pytest.raises(TemplateError):
            engine.instantiate(b.build(), depth=0)


class TestKeyRemapping:
    """Template keys and locks resolve to the same global key."""

    def _gated_edges(self, fragment):
        return [e for e in fragment.edges if e.locks]

    def test_lock_references_granted_key(self, engine, library):
        fragment = engine.instantiate(library.get(CycleType.SIMPLE_LOCK_AND_KEY), depth=0)
        granted = [k for n in fragment.nodes for k in n.granted_keys]
        assert len(granted) == 1
        key_id = granted[0]

        locked = self._gated_edges(fragment)
        assert len(locked) == 2
        for edge in locked:
            assert [lock.required_key_id for lock in edge.locks] == [key_id]
            assert edge.gate.required_keys == (key_id,)
        key_node = next(n for n in fragment.nodes if n.granted_keys)
        assert any(t.kind == NodeTagKind.KEY and t.data == key_id.value for t in key_node.tags)

    def test_per_instance_policy_gives_fresh_keys(self, library):
        keys = KeyRegistry()
        engine = GraphRewriteEngine(IdAllocator(), keys, KeyIdentityPolicy.PER_INSTANCE)
        template = library.get(CycleType.SIMPLE_LOCK_AND_KEY)
        a = engine.instantiate(template, depth=0)
        b = engine.instantiate(template, depth=1)
        assert len(keys) == 2
        key_a = self._gated_edges(a)[0].locks[0].required_key_id
        key_b = self._gated_edges(b)[0].locks[0].required_key_id
        assert key_a != key_b

    def test_per_template_policy_merges_keys(self, library):
        keys = KeyRegistry()
        engine = GraphRewriteEngine(IdAllocator(), keys, KeyIdentityPolicy.PER_TEMPLATE)
        template = library.get(CycleType.SIMPLE_LOCK_AND_KEY)
        engine.instantiate(template, depth=0)
        engine.instantiate(template, depth=1)
        assert len(keys) == 1

    def test_shared_key_merges_under_per_instance(self):
        b = CycleTemplateBuilder(CycleType.GAMBIT, name="SharedVault")
        s, g, k = b.start(), b.goal(), b.node("Key")
        locked = b.edge(s, g)
        path = b.chain(s, k, g)
        key = b.key("Master Key", shared=True)
        b.grant(k, key).lock(locked, key)
        b.arc("A", [locked]).arc("B", path)
        template = b.build()

        keys = KeyRegistry()
        engine = GraphRewriteEngine(IdAllocator(), keys, KeyIdentityPolicy.PER_INSTANCE)
        engine.instantiate(template, depth=0)
        engine.instantiate(template, depth=1)
        assert len(keys) == 1
        assert keys.all_keys()[0].global_id == "SharedVault_k1_1"


class TestSplice:
    """Seam replacement preserves connectivity and consumes the seam once."""

    def _root(self, engine, library):
        graph = DungeonGraph()
        root = engine.instantiate(library.get(CycleType.TWO_ALTERNATIVE_PATHS), depth=0)
        engine.add_fragment(graph, root)
        return graph, root

    def test_splice_replaces_seam(self, engine, library):
        graph, root = self._root(engine, library)
        seam = root.insertions[0].seam_edge
        a, b = graph.get_edge(seam).from_node, graph.get_edge(seam).to_node

        sub = engine.instantiate(library.get(CycleType.TWO_ALTERNATIVE_PATHS), depth=1)
        bridge_in, bridge_out = engine.splice_replace_edge(graph, seam, sub)

        assert seam not in graph.edges
        assert seam not in graph.out_edges(a)
        assert graph.node_count == 8
        assert graph.edge_count == 4 - 1 + 4 + 2
        assert graph.get_edge(bridge_in).from_node == a
        assert graph.get_edge(bridge_in).to_node == sub.entry
        assert graph.get_edge(bridge_out).from_node == sub.exit
        assert graph.get_edge(bridge_out).to_node == b

    def test_splice_preserves_reachability(self, engine, library):
        graph, root = self._root(engine, library)
        seam = root.insertions[0].seam_edge
        a, b = graph.get_edge(seam).from_node, graph.get_edge(seam).to_node
        assert is_reachable(graph, a, b)

        sub = engine.instantiate(library.get(CycleType.HIDDEN_SHORTCUT), depth=1)
        engine.splice_replace_edge(graph, seam, sub)

        assert is_reachable(graph, a, sub.entry)
        assert is_reachable(graph, sub.entry, sub.exit)
        assert is_reachable(graph, a, b)
        assert is_reachable(graph, root.entry, root.exit)

    def test_missing_seam_is_fatal(self, engine, library):
        graph, _ = self._root(engine, library)
        sub = engine.instantiate(library.get(CycleType.GAMBIT), depth=1)
        with pytest.raises(GraphIntegrityError):
            engine.splice_replace_edge(graph, EdgeId(999), sub)

    def test_seam_spliced_at_most_once(self, engine, library):
        graph, root = self._root(engine, library)
        seam = root.insertions[0].seam_edge
        engine.splice_replace_edge(
            graph, seam, engine.instantiate(library.get(CycleType.GAMBIT), depth=1)
        )
        with pytest.raises(GraphIntegrityError):
            engine.splice_replace_edge(
                graph, seam, engine.instantiate(library.get(CycleType.GAMBIT), depth=1)
            )

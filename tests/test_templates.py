"""
Tests for cycle templates, the builder and the built-in library.
"""

import pytest

from cyclegen.core.graph import EdgeTraversal
from cyclegen.core.ids import TEdgeId, TInsertionId, TNodeId
from cyclegen.generation.templates import (
    CycleTemplate, CycleTemplateBuilder, CycleTemplateLibrary, CycleType, TArc,
    TEdge, TInsertion, TNode, TNodeKind, TemplateError, build_default_library,
)


def _arc_is_chain(template, arc):
    """Arc edges form a path from start to goal."""
    if not arc.edges:
        return False
    current = template.start
    for eid in arc.edges:
        edge = template.edges[eid]
        if edge.from_node != current:
            return False
        current = edge.to_node
    return current == template.goal


class TestBuiltinLibrary:
    """Every cycle type ships a well-formed template."""

    def test_all_twelve_types_registered(self, library):
        assert len(library) == 12
        assert set(library.types()) == set(CycleType)

    @pytest.mark.parametrize("cycle_type", list(CycleType))
    def test_template_shape(self, library, cycle_type):
        template = library.get(cycle_type)
        assert template.cycle_type == cycle_type
        assert template.has_endpoints
        assert template.description
        assert _arc_is_chain(template, template.arc_a)
        assert _arc_is_chain(template, template.arc_b)
        for ins in template.insertions:
            assert template.arc_index_of(ins.seam_edge) in (0, 1)

    def test_two_alternative_paths_layout(self, library):
        template = library.get(CycleType.TWO_ALTERNATIVE_PATHS)
        assert len(template.nodes) == 4
        assert len(template.edges) == 4
        assert len(template.insertions) == 2
        assert len(template.arc_a.edges) == 2
        assert len(template.arc_b.edges) == 2

    def test_lock_templates_declare_keys(self, library):
        for cycle_type in (CycleType.SIMPLE_LOCK_AND_KEY, CycleType.LOCK_AND_KEY_CYCLE):
            template = library.get(cycle_type)
            assert len(template.keys) == 1
            granters = [n for n in template.nodes.values() if n.grants]
            locked = [e for e in template.edges.values() if e.locks]
            assert len(granters) == 1
            assert locked

    def test_foreshadowing_has_sightline(self, library):
        template = library.get(CycleType.FORESHADOWING_LOOP)
        traversals = {e.traversal for e in template.edges.values()}
        assert EdgeTraversal.SIGHTLINE in traversals


class TestTemplateValidation:
    """Malformed templates are rejected at construction."""

    def _nodes(self):
        return [TNode(TNodeId(1), TNodeKind.START), TNode(TNodeId(2), TNodeKind.GOAL)]

    def test_seam_on_missing_edge(self):
        with pytest.raises(TemplateError):
            CycleTemplate(
                CycleType.GAMBIT, "Broken", self._nodes(),
                [TEdge(TEdgeId(1), TNodeId(1), TNodeId(2))],
                TNodeId(1), TNodeId(2),
                TArc("A", (TEdgeId(1),)), TArc("B", ()),
                insertions=[TInsertion(TInsertionId(1), TEdgeId(99))],
            )

    def test_arc_on_missing_edge(self):
        with pytest.raises(TemplateError):
            CycleTemplate(
                CycleType.GAMBIT, "Broken", self._nodes(),
                [TEdge(TEdgeId(1), TNodeId(1), TNodeId(2))],
                TNodeId(1), TNodeId(2),
                TArc("A", (TEdgeId(1), TEdgeId(2))), TArc("B", ()),
            )

    def test_edge_to_missing_node(self):
        with pytest.raises(TemplateError):
            CycleTemplate(
                CycleType.GAMBIT, "Broken", self._nodes(),
                [TEdge(TEdgeId(1), TNodeId(1), TNodeId(7))],
                TNodeId(1), TNodeId(2),
                TArc("A", ()), TArc("B", ()),
            )

    def test_lock_on_unknown_key(self):
        b = CycleTemplateBuilder(CycleType.GAMBIT)
        s, g = b.start(), b.goal()
        e = b.edge(s, g)
        b.lock(e, 5)
        with pytest.raises(TemplateError):
            b.build()

    def test_unvalidated_template_allowed(self):
        template = CycleTemplate(
            CycleType.GAMBIT, "Broken", self._nodes(),
            [TEdge(TEdgeId(1), TNodeId(1), TNodeId(2))],
            TNodeId(1), TNodeId(2),
            TArc("A", (TEdgeId(1),)), TArc("B", ()),
            insertions=[TInsertion(TInsertionId(1), TEdgeId(99))],
            validate=False,
        )
        assert len(template.insertions) == 1

    def test_template_without_endpoints(self):
        b = CycleTemplateBuilder(CycleType.GAMBIT)
        x, y = b.node("X"), b.node("Y")
        b.edge(x, y)
        template = b.build()
        assert not template.has_endpoints

    def test_template_is_read_only(self, library):
        template = library.get(CycleType.TWO_KEYS)
        with pytest.raises(TypeError):
            template.nodes[TNodeId(99)] = TNode(TNodeId(99))
        with pytest.raises(AttributeError):
            template.start = TNodeId(2)


class TestLibrary:
    """Lookup semantics."""

    def test_get_missing_raises(self):
        library = CycleTemplateLibrary()
        with pytest.raises(KeyError):
            library.get(CycleType.GAMBIT)
        assert library.find(CycleType.GAMBIT) is None
        assert library.find(None) is None

    def test_duplicate_registration(self):
        library = build_default_library()
        template = library.get(CycleType.GAMBIT)
        with pytest.raises(TemplateError):
            library.register(template)
        library.register(template, replace=True)
        assert CycleType.GAMBIT in library

    def test_parse_cycle_type(self):
        assert CycleType.parse("TwoKeys") == CycleType.TWO_KEYS
        assert CycleType.parse("TWO_KEYS") == CycleType.TWO_KEYS
        assert CycleType.parse("twoalternativepaths") == CycleType.TWO_ALTERNATIVE_PATHS
        with pytest.raises(ValueError):
            CycleType.parse("Nope")

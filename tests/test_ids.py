"""
Tests for strongly typed identifiers and the id allocator.
"""

import pytest

from cyclegen.core.ids import (
    CycleId, EdgeId, GateId, IdAllocator, InsertionId, NodeId, TEdgeId, TNodeId,
    require_id,
)


class TestIdentifiers:
    """Ids of different kinds never compare equal."""

    def test_same_kind_equal_by_value(self):
        assert NodeId(3) == NodeId(3)
        assert hash(NodeId(3)) == hash(NodeId(3))
        assert NodeId(3) != NodeId(4)

    def test_different_kinds_not_equal(self):
        assert NodeId(1) != EdgeId(1)
        assert NodeId(1) != TNodeId(1)
        assert EdgeId(1) != TEdgeId(1)

    def test_kinds_coexist_as_dict_keys(self):
        table = {NodeId(1): "node", EdgeId(1): "edge", CycleId(1): "cycle"}
        assert len(table) == 3
        assert table[EdgeId(1)] == "edge"

    def test_str_has_kind_prefix(self):
        assert str(NodeId(7)) == "N7"
        assert str(EdgeId(2)) == "E2"
        assert str(TNodeId(1)) == "TN1"
        assert str(GateId(5)) == "G5"

    def test_require_id_rejects_other_kind(self):
        require_id(EdgeId(1), EdgeId)
        with pytest.raises(TypeError):
            require_id(NodeId(1), EdgeId)
        with pytest.raises(TypeError):
            require_id(1, NodeId)


class TestIdAllocator:
    """Monotonic per-kind counters starting at 1."""

    def test_counters_start_at_one(self):
        ids = IdAllocator()
        assert ids.new_node() == NodeId(1)
        assert ids.new_edge() == EdgeId(1)
        assert ids.new_insertion() == InsertionId(1)
        assert ids.new_cycle() == CycleId(1)
        assert ids.new_gate() == GateId(1)

    def test_strictly_increasing_and_never_reused(self):
        ids = IdAllocator()
        issued = [ids.new_node() for _ in range(50)]
        values = [n.value for n in issued]
        assert values == sorted(values)
        assert len(set(values)) == 50

    def test_kinds_are_independent(self):
        ids = IdAllocator()
        for _ in range(5):
            ids.new_node()
        assert ids.new_edge() == EdgeId(1)
        assert ids.issued()['node'] == 5
        assert ids.issued()['edge'] == 1

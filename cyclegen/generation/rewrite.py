"""
Graph Rewrite Engine
====================

Two operations drive all generation:

    instantiate(template, depth)       -> Fragment
        Fresh output ids for every template node and edge (nodes first),
        Start/Goal markers, arc membership, seam instances, and template
        keys/locks flattened through the KeyRegistry.

    splice_replace_edge(graph, seam, fragment)
        a ──seam──► b   becomes   a ──► entry ... exit ──► b

Fragments hold freshly constructed RoomNode/RoomEdge objects and never
reference template objects, so a template can be instantiated any number
of times without aliasing the live graph.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from cyclegen.core.graph import (
    DungeonGraph, EdgeGate, GateKind, GateStrength, GraphIntegrityError,
    NodeKind, NodeTagKind, RoomEdge, RoomNode,
)
from cyclegen.core.ids import (
    CycleId, EdgeId, IdAllocator, InsertionId, KeyId, NodeId, TInsertionId,
)
from cyclegen.core.keys import (
    KeyIdentity, KeyIdentityPolicy, KeyRegistry, LockRequirement, TemplateKeyRef,
)
from cyclegen.generation.templates import CycleTemplate, CycleType, TemplateError

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class InsertionPoint:
    """A seam instance in the output graph, anchored to a live edge id."""
    id: InsertionId
    seam_edge: EdgeId
    depth: int
    owner_cycle: CycleId
    template_insertion: Optional[TInsertionId] = None
    replacement: Optional[CycleType] = None


@dataclass(frozen=True)
class CycleRecord:
    """
    Provenance of one cycle instance. Created at instantiation, never
    modified. parent_cycle/parent_insertion are None only for the root.
    """
    id: CycleId
    cycle_type: CycleType
    depth: int
    entry: NodeId
    exit: NodeId
    arc_a: Tuple[EdgeId, ...]
    arc_b: Tuple[EdgeId, ...]
    insertion_points: Tuple[InsertionPoint, ...] = ()
    parent_cycle: Optional[CycleId] = None
    parent_insertion: Optional[InsertionId] = None
    template_name: str = ""

    @property
    def is_root(self) -> bool:
        return self.parent_cycle is None

    def arc_index_of(self, edge_id: EdgeId) -> Optional[int]:
        if edge_id in self.arc_a:
            return 0
        if edge_id in self.arc_b:
            return 1
        return None


@dataclass
class Fragment:
    """Transient output of instantiate(); consumed by a splice."""
    entry: NodeId
    exit: NodeId
    nodes: List[RoomNode] = field(default_factory=list)
    edges: List[RoomEdge] = field(default_factory=list)
    insertions: List[InsertionPoint] = field(default_factory=list)
    cycle: Optional[CycleRecord] = None
    edge_arcs: Dict[EdgeId, int] = field(default_factory=dict)

    @property
    def node_ids(self) -> List[NodeId]:
        return [n.id for n in self.nodes]

    @property
    def edge_ids(self) -> List[EdgeId]:
        return [e.id for e in self.edges]


# ============================================================================
# ENGINE
# ============================================================================

class GraphRewriteEngine:
    """
    Instantiates templates and splices fragments for one generation run.

    Args:
        ids: Allocator owned by the run
        keys: Key registry owned by the run
        key_policy: How template keys map to global keys across instantiations
    """

    def __init__(self, ids: IdAllocator, keys: KeyRegistry,
                 key_policy: KeyIdentityPolicy = KeyIdentityPolicy.PER_INSTANCE):
        self.ids = ids
        self.keys = keys
        self.key_policy = key_policy

    # ------------------------------------------------------------------
    # Instantiate
    # ------------------------------------------------------------------

    def instantiate(
        self,
        template: CycleTemplate,
        depth: int,
        parent_cycle: Optional[CycleId] = None,
        parent_insertion: Optional[InsertionId] = None,
    ) -> Fragment:
        if not template.has_endpoints:
            raise TemplateError(f"template '{template.name}' has no start/goal node")
        for ins in template.insertions:
            if ins.seam_edge not in template.edges:
                raise TemplateError(
                    f"template '{template.name}': seam {ins.id} references missing edge {ins.seam_edge}"
                )

        cycle_id = self.ids.new_cycle()

        # Nodes first, so edges can look up their endpoints.
        node_map: Dict = {tnid: self.ids.new_node() for tnid in template.nodes}
        edge_map: Dict = {teid: self.ids.new_edge() for teid in template.edges}

        entry = node_map[template.start]
        exit_ = node_map[template.goal]

        nodes: List[RoomNode] = []
        for tnid, tnode in template.nodes.items():
            node = RoomNode(id=node_map[tnid], tags=list(tnode.tags), debug_label=tnode.label)
            if tnid == template.start:
                node.add_tag(NodeTagKind.CYCLE_START, cycle_id.value)
                if depth == 0:
                    node.kind = NodeKind.ENTRANCE
            if tnid == template.goal:
                node.add_tag(NodeTagKind.CYCLE_GOAL, cycle_id.value)
                if depth == 0:
                    node.kind = NodeKind.EXIT
            for ref in tnode.grants:
                identity = self._resolve_key(template, ref, cycle_id)
                if identity.key_id not in node.granted_keys:
                    node.granted_keys.append(identity.key_id)
                node.add_tag(NodeTagKind.KEY, identity.key_id.value)
            nodes.append(node)

        edges: List[RoomEdge] = []
        edge_arcs: Dict[EdgeId, int] = {}
        for teid, tedge in template.edges.items():
            edge = RoomEdge(
                id=edge_map[teid],
                from_node=node_map[tedge.from_node],
                to_node=node_map[tedge.to_node],
                traversal=tedge.traversal,
            )
            if tedge.locks:
                required: List[KeyId] = []
                for tlock in tedge.locks:
                    identity = self._resolve_key(template, tlock.key_ref, cycle_id)
                    edge.locks.append(LockRequirement(
                        identity.key_id, tlock.lock_type, {'global_id': identity.global_id}
                    ))
                    if identity.key_id not in required:
                        required.append(identity.key_id)
                edge.gate = EdgeGate(self.ids.new_gate(), GateKind.LOCK, GateStrength.HARD,
                                     tuple(required))
            arc = template.arc_index_of(teid)
            if arc is not None:
                edge_arcs[edge.id] = arc
            edges.append(edge)

        insertions = [
            InsertionPoint(
                id=self.ids.new_insertion(),
                seam_edge=edge_map[ins.seam_edge],
                depth=depth,
                owner_cycle=cycle_id,
                template_insertion=ins.id,
                replacement=ins.replacement,
            )
            for ins in template.insertions
        ]

        record = CycleRecord(
            id=cycle_id,
            cycle_type=template.cycle_type,
            depth=depth,
            entry=entry,
            exit=exit_,
            arc_a=tuple(edge_map[e] for e in template.arc_a.edges),
            arc_b=tuple(edge_map[e] for e in template.arc_b.edges),
            insertion_points=tuple(insertions),
            parent_cycle=parent_cycle,
            parent_insertion=parent_insertion,
            template_name=template.name,
        )

        logger.debug(
            f"Instantiated {template.name} as {cycle_id} at depth {depth}: "
            f"{len(nodes)} nodes, {len(edges)} edges, {len(insertions)} seams"
        )
        return Fragment(entry, exit_, nodes, edges, insertions, record, edge_arcs)

    def _resolve_key(self, template: CycleTemplate, ref: int, cycle_id: CycleId) -> KeyIdentity:
        tkey = template.keys[ref]
        merged = tkey.shared or self.key_policy == KeyIdentityPolicy.PER_TEMPLATE
        handle = TemplateKeyRef(template.name, ref, None if merged else cycle_id.value)
        return self.keys.register_key(handle, template.name, tkey.key_type, tkey.display_name)

    # ------------------------------------------------------------------
    # Graph insertion
    # ------------------------------------------------------------------

    def add_fragment(self, graph: DungeonGraph, fragment: Fragment) -> None:
        """Add a fragment's nodes and edges as-is (used for the root cycle)."""
        for node in fragment.nodes:
            graph.add_node(node)
        for edge in fragment.edges:
            graph.add_edge(edge)

    def splice_replace_edge(self, graph: DungeonGraph, seam_edge_id: EdgeId,
                            fragment: Fragment) -> Tuple[EdgeId, EdgeId]:
        """
        Replace a seam edge a->b with a->entry, fragment, exit->b.

        The incoming bridge keeps the seam's traversal kind, gate and locks;
        the outgoing bridge keeps its traversal kind.

        Returns:
            (incoming bridge id, outgoing bridge id)

        Raises:
            GraphIntegrityError: seam edge is not in the graph
        """
        seam = graph.find_edge(seam_edge_id)
        if seam is None:
            raise GraphIntegrityError(f"Seam edge {seam_edge_id} not found in graph")

        a, b = seam.from_node, seam.to_node
        graph.remove_edge(seam_edge_id)
        self.add_fragment(graph, fragment)

        bridge_in = graph.add_edge(RoomEdge(
            id=self.ids.new_edge(), from_node=a, to_node=fragment.entry,
            traversal=seam.traversal, gate=seam.gate, locks=list(seam.locks),
        ))
        bridge_out = graph.add_edge(RoomEdge(
            id=self.ids.new_edge(), from_node=fragment.exit, to_node=b,
            traversal=seam.traversal,
        ))
        logger.debug(f"Spliced {fragment.cycle.id if fragment.cycle else '?'} into {seam_edge_id} "
                     f"({a} -> {b}) via {bridge_in.id}, {bridge_out.id}")
        return bridge_in.id, bridge_out.id

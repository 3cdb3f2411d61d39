"""
Dungeon Graph: Output Connectivity Model
========================================

Flat directed graph of rooms (RoomNode) and passages (RoomEdge) produced by
the rewrite engine. Rooms and passages are owned by the graph and keyed by
their output identifiers; fragments and provenance records only ever hold
ids.

Structure:
    RoomNode  - kind (NORMAL / ENTRANCE / EXIT), tag list, granted keys
    RoomEdge  - directed From -> To, traversal kind, optional gate, locks
    DungeonGraph - nodes, edges, and an outgoing-edge adjacency index

Integrity rules (violations raise GraphIntegrityError):
    - node and edge ids are unique
    - edges reference existing nodes
    - no self-loops
    - removing an edge also removes it from the adjacency index
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Set, Tuple

import networkx as nx

from cyclegen.core.ids import EdgeId, GateId, KeyId, NodeId, require_id
from cyclegen.core.keys import LockRequirement

logger = logging.getLogger(__name__)


class GraphIntegrityError(ValueError):
    """Structural violation of the dungeon graph (duplicate id, self-loop, missing endpoint)."""


# ============================================================================
# ENUMS
# ============================================================================

class NodeKind(Enum):
    """Structural role of a room. ENTRANCE/EXIT only exist on the root cycle."""
    NORMAL = auto()
    ENTRANCE = auto()
    EXIT = auto()


class NodeTagKind(Enum):
    """Annotation kinds attached to rooms."""
    KEY = auto()               # grants a key; data = KeyId value
    LOCK_HINT = auto()         # room is behind a lock
    CYCLE_START = auto()       # data = CycleId value
    CYCLE_GOAL = auto()        # data = CycleId value
    REWARD = auto()
    DANGER = auto()
    SECRET = auto()
    BARRIER = auto()
    PATROL = auto()
    FALSE_GOAL = auto()
    SIGHTLINE_SOURCE = auto()
    SIGHTLINE_TARGET = auto()


class EdgeTraversal(Enum):
    """How a passage may be traversed."""
    NORMAL = auto()     # both directions
    ONE_WAY = auto()    # From -> To only
    SIGHTLINE = auto()  # visible, not walkable
    BLOCKED = auto()


class GateKind(Enum):
    LOCK = auto()
    BARRIER = auto()


class GateStrength(Enum):
    SOFT = auto()
    HARD = auto()


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class NodeTag:
    """Tag on a room. `data` carries an integer payload (key id, cycle id, ...)."""
    kind: NodeTagKind
    data: int = 0


@dataclass(frozen=True)
class EdgeGate:
    """Traversal restriction on an edge, satisfied by holding every required key."""
    gate_id: GateId
    kind: GateKind = GateKind.LOCK
    strength: GateStrength = GateStrength.HARD
    required_keys: Tuple[KeyId, ...] = ()

    def is_satisfied_by(self, held: Set[KeyId]) -> bool:
        return all(k in held for k in self.required_keys)


@dataclass
class RoomNode:
    """A room in the output graph."""
    id: NodeId
    kind: NodeKind = NodeKind.NORMAL
    tags: List[NodeTag] = field(default_factory=list)
    debug_label: Optional[str] = None
    granted_keys: List[KeyId] = field(default_factory=list)

    def has_tag(self, kind: NodeTagKind) -> bool:
        return any(t.kind == kind for t in self.tags)

    def tags_of(self, kind: NodeTagKind) -> List[NodeTag]:
        return [t for t in self.tags if t.kind == kind]

    def add_tag(self, kind: NodeTagKind, data: int = 0) -> bool:
        """Add a tag unless an identical one is present. Returns True if added."""
        tag = NodeTag(kind, data)
        if tag in self.tags:
            return False
        self.tags.append(tag)
        return True


@dataclass
class RoomEdge:
    """A directed passage between two rooms."""
    id: EdgeId
    from_node: NodeId
    to_node: NodeId
    traversal: EdgeTraversal = EdgeTraversal.NORMAL
    gate: Optional[EdgeGate] = None
    locks: List[LockRequirement] = field(default_factory=list)

    @property
    def is_gated(self) -> bool:
        return self.gate is not None or bool(self.locks)


# ============================================================================
# GRAPH
# ============================================================================

class DungeonGraph:
    """
    Owns all rooms and passages of one generated dungeon.

    The outgoing adjacency index is maintained on every add/remove so that
    out_edges() never needs a full scan.
    """

    def __init__(self):
        self.nodes: Dict[NodeId, RoomNode] = {}
        self.edges: Dict[EdgeId, RoomEdge] = {}
        self._out_edges: Dict[NodeId, List[EdgeId]] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, item) -> bool:
        if isinstance(item, NodeId):
            return item in self.nodes
        if isinstance(item, EdgeId):
            return item in self.edges
        return False

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, node: RoomNode) -> RoomNode:
        require_id(node.id, NodeId, "node.id")
        if node.id in self.nodes:
            raise GraphIntegrityError(f"Duplicate node id {node.id}")
        self.nodes[node.id] = node
        self._out_edges[node.id] = []
        return node

    def add_edge(self, edge: RoomEdge) -> RoomEdge:
        require_id(edge.id, EdgeId, "edge.id")
        require_id(edge.from_node, NodeId, "edge.from_node")
        require_id(edge.to_node, NodeId, "edge.to_node")
        if edge.id in self.edges:
            raise GraphIntegrityError(f"Duplicate edge id {edge.id}")
        if edge.from_node == edge.to_node:
            raise GraphIntegrityError(f"Self-loop rejected on {edge.from_node} ({edge.id})")
        if edge.from_node not in self.nodes or edge.to_node not in self.nodes:
            raise GraphIntegrityError(
                f"Edge {edge.id} references missing node(s): {edge.from_node} -> {edge.to_node}"
            )
        self.edges[edge.id] = edge
        self._out_edges[edge.from_node].append(edge.id)
        return edge

    def remove_edge(self, edge_id: EdgeId) -> RoomEdge:
        """Remove an edge and its adjacency entry. Raises GraphIntegrityError if unknown."""
        require_id(edge_id, EdgeId, "edge_id")
        edge = self.edges.pop(edge_id, None)
        if edge is None:
            raise GraphIntegrityError(f"Edge {edge_id} does not exist")
        out = self._out_edges.get(edge.from_node)
        if out is not None and edge_id in out:
            out.remove(edge_id)
        return edge

    def remove_node(self, node_id: NodeId) -> RoomNode:
        """Remove a node only. Incident edges are left for prune_dangling_edges()."""
        require_id(node_id, NodeId, "node_id")
        node = self.nodes.pop(node_id, None)
        if node is None:
            raise GraphIntegrityError(f"Node {node_id} does not exist")
        self._out_edges.pop(node_id, None)
        return node

    def prune_dangling_edges(self) -> List[EdgeId]:
        """Drop every edge whose endpoints are not both present. Returns removed ids."""
        dangling = [
            eid for eid, e in self.edges.items()
            if e.from_node not in self.nodes or e.to_node not in self.nodes
        ]
        for eid in dangling:
            edge = self.edges.pop(eid)
            out = self._out_edges.get(edge.from_node)
            if out is not None and eid in out:
                out.remove(eid)
        return dangling

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: NodeId) -> RoomNode:
        require_id(node_id, NodeId, "node_id")
        return self.nodes[node_id]

    def get_edge(self, edge_id: EdgeId) -> RoomEdge:
        require_id(edge_id, EdgeId, "edge_id")
        return self.edges[edge_id]

    def find_edge(self, edge_id: EdgeId) -> Optional[RoomEdge]:
        require_id(edge_id, EdgeId, "edge_id")
        return self.edges.get(edge_id)

    def out_edges(self, node_id: NodeId) -> List[EdgeId]:
        require_id(node_id, NodeId, "node_id")
        return list(self._out_edges.get(node_id, ()))

    def in_edges(self, node_id: NodeId) -> List[EdgeId]:
        require_id(node_id, NodeId, "node_id")
        return [eid for eid, e in self.edges.items() if e.to_node == node_id]

    def successors(self, node_id: NodeId) -> Iterator[NodeId]:
        for eid in self.out_edges(node_id):
            yield self.edges[eid].to_node

    def nodes_with_tag(self, kind: NodeTagKind) -> List[RoomNode]:
        return [n for n in self.nodes.values() if n.has_tag(kind)]

    def nodes_of_kind(self, kind: NodeKind) -> List[RoomNode]:
        return [n for n in self.nodes.values() if n.kind == kind]

    def adjacency_snapshot(self) -> Dict[NodeId, List[EdgeId]]:
        return {nid: list(eids) for nid, eids in self._out_edges.items()}

    def to_networkx(self) -> nx.MultiDiGraph:
        """Structural copy as a networkx MultiDiGraph keyed by raw id values."""
        G = nx.MultiDiGraph()
        for nid, node in self.nodes.items():
            G.add_node(nid.value, kind=node.kind.name, label=node.debug_label)
        for eid, edge in self.edges.items():
            G.add_edge(edge.from_node.value, edge.to_node.value, key=eid.value,
                       traversal=edge.traversal.name)
        return G

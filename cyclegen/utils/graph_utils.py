"""
Dungeon Graph Utilities
=======================

networkx bridge and structural checks for generated dungeons.

This module provides:
- Export of a DungeonGraph / GenerationResult to a networkx MultiDiGraph
  with render-ready attributes (kind, tags, depth, cycle, arc, gate)
- Walkable reachability queries
- Structural validation (dangling edges, adjacency index, entrance/exit,
  unreachable rooms, locks without a granting room)

Usage:
    from cyclegen.utils.graph_utils import to_networkx, validate_dungeon_graph

    G = to_networkx(result)
    is_valid, errors = validate_dungeon_graph(result.graph)
    if not is_valid:
        print(f"Validation failed: {errors}")
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import networkx as nx

from cyclegen.core.graph import DungeonGraph, EdgeTraversal, NodeKind
from cyclegen.core.ids import KeyId, NodeId
from cyclegen.generation.generator import GenerationResult

logger = logging.getLogger(__name__)

WALKABLE = (EdgeTraversal.NORMAL, EdgeTraversal.ONE_WAY)


# ==========================================
# NETWORKX EXPORT
# ==========================================

def to_networkx(source: Union[DungeonGraph, GenerationResult],
                walkable_only: bool = False) -> nx.MultiDiGraph:
    """
    Convert a dungeon graph to a networkx MultiDiGraph.

    Node keys and edge keys are the raw integer id values. When a
    GenerationResult is given, nodes also carry 'cycle' and 'depth', and
    edges carry 'cycle' and 'arc' where known.

    Args:
        source: DungeonGraph or GenerationResult
        walkable_only: Skip SIGHTLINE and BLOCKED edges

    Returns:
        MultiDiGraph with attributes:
            nodes: kind, label, tags, granted_keys[, cycle, depth]
            edges: id, traversal, gate, required_keys[, cycle, arc]
    """
    result = source if isinstance(source, GenerationResult) else None
    graph = result.graph if result is not None else source

    G = nx.MultiDiGraph()
    for nid, node in graph.nodes.items():
        attrs: Dict[str, Any] = {
            'kind': node.kind.name,
            'label': node.debug_label or str(nid),
            'tags': [t.kind.name for t in node.tags],
            'granted_keys': [k.value for k in node.granted_keys],
        }
        if result is not None:
            cycle_id = result.node_to_cycle.get(nid)
            attrs['cycle'] = cycle_id.value if cycle_id is not None else None
            attrs['depth'] = result.node_depth(nid)
        G.add_node(nid.value, **attrs)

    for eid, edge in graph.edges.items():
        if walkable_only and edge.traversal not in WALKABLE:
            continue
        attrs = {
            'id': eid.value,
            'traversal': edge.traversal.name,
            'gate': edge.gate.gate_id.value if edge.gate is not None else None,
            'required_keys': [k.value for k in edge.gate.required_keys] if edge.gate else [],
        }
        if result is not None and eid in result.edge_to_arc:
            cycle_id, arc = result.edge_to_arc[eid]
            attrs['cycle'] = cycle_id.value
            attrs['arc'] = arc
        G.add_edge(edge.from_node.value, edge.to_node.value, key=eid.value, **attrs)
    return G


# ==========================================
# REACHABILITY
# ==========================================

def is_reachable(graph: DungeonGraph, src: NodeId, dst: NodeId,
                 walkable_only: bool = True) -> bool:
    """Directed path check; gates are ignored."""
    if src not in graph.nodes or dst not in graph.nodes:
        return False
    G = to_networkx(graph, walkable_only=walkable_only)
    return nx.has_path(G, src.value, dst.value)


def reachable_from(graph: DungeonGraph, src: NodeId, walkable_only: bool = True) -> Set[NodeId]:
    if src not in graph.nodes:
        return set()
    G = to_networkx(graph, walkable_only=walkable_only)
    return {NodeId(v) for v in nx.descendants(G, src.value)} | {src}


def find_entrance(graph: DungeonGraph) -> Optional[NodeId]:
    entrances = graph.nodes_of_kind(NodeKind.ENTRANCE)
    return entrances[0].id if entrances else None


def find_exit(graph: DungeonGraph) -> Optional[NodeId]:
    exits = graph.nodes_of_kind(NodeKind.EXIT)
    return exits[0].id if exits else None


# ==========================================
# VALIDATION
# ==========================================

def validate_dungeon_graph(graph: DungeonGraph) -> Tuple[bool, List[str]]:
    """
    Check structural soundness of a generated dungeon.

    Returns:
        (is_valid, errors)
    """
    errors: List[str] = []

    for eid, edge in graph.edges.items():
        if edge.from_node not in graph.nodes or edge.to_node not in graph.nodes:
            errors.append(f"Dangling edge {eid}: {edge.from_node} -> {edge.to_node}")

    expected: Dict[NodeId, List] = {nid: [] for nid in graph.nodes}
    for eid, edge in graph.edges.items():
        if edge.from_node in expected:
            expected[edge.from_node].append(eid)
    snapshot = graph.adjacency_snapshot()
    for nid, eids in expected.items():
        if sorted(snapshot.get(nid, [])) != sorted(eids):
            errors.append(f"Adjacency index out of sync at {nid}")

    entrances = graph.nodes_of_kind(NodeKind.ENTRANCE)
    exits = graph.nodes_of_kind(NodeKind.EXIT)
    if len(entrances) != 1:
        errors.append(f"Expected exactly 1 entrance, found {len(entrances)}")
    if len(exits) != 1:
        errors.append(f"Expected exactly 1 exit, found {len(exits)}")

    if len(entrances) == 1 and not errors:
        seen = reachable_from(graph, entrances[0].id)
        unreachable = sorted(set(graph.nodes) - seen)
        if unreachable:
            errors.append(f"Unreachable from entrance: {[str(n) for n in unreachable]}")

    errors.extend(find_orphan_locks(graph))

    is_valid = len(errors) == 0
    if not is_valid:
        logger.debug(f"Dungeon graph validation failed with {len(errors)} error(s)")
    return is_valid, errors


def find_orphan_locks(graph: DungeonGraph) -> List[str]:
    """Locks or gate keys that no room grants."""
    granted: Set[KeyId] = set()
    for node in graph.nodes.values():
        granted.update(node.granted_keys)

    errors = []
    for eid, edge in graph.edges.items():
        required = {lock.required_key_id for lock in edge.locks}
        if edge.gate is not None:
            required.update(edge.gate.required_keys)
        for key_id in sorted(required - granted):
            errors.append(f"Edge {eid} requires {key_id} which no room grants")
    return errors


def graph_summary(graph: DungeonGraph) -> Dict[str, Any]:
    """Counts by node kind, tag kind and traversal kind."""
    tag_counts: Dict[str, int] = {}
    for node in graph.nodes.values():
        for tag in node.tags:
            tag_counts[tag.kind.name] = tag_counts.get(tag.kind.name, 0) + 1
    traversal_counts: Dict[str, int] = {}
    for edge in graph.edges.values():
        traversal_counts[edge.traversal.name] = traversal_counts.get(edge.traversal.name, 0) + 1

    G = to_networkx(graph)
    return {
        'nodes': graph.node_count,
        'edges': graph.edge_count,
        'node_kinds': {k.name: len(graph.nodes_of_kind(k)) for k in NodeKind},
        'tags': tag_counts,
        'traversal': traversal_counts,
        'gated_edges': sum(1 for e in graph.edges.values() if e.is_gated),
        'weakly_connected': nx.is_weakly_connected(G) if graph.node_count else False,
    }

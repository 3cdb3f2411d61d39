"""
Core data model: identifiers, dungeon graph, keys and locks.
"""

from cyclegen.core.ids import (
    CycleId, EdgeId, GateId, IdAllocator, InsertionId, KeyId, NodeId,
    TEdgeId, TInsertionId, TNodeId,
)
from cyclegen.core.keys import (
    KeyIdentity, KeyIdentityPolicy, KeyRegistry, KeyType, LockRequirement,
    LockType, TemplateKeyRef,
)
from cyclegen.core.graph import (
    DungeonGraph, EdgeGate, EdgeTraversal, GateKind, GateStrength,
    GraphIntegrityError, NodeKind, NodeTag, NodeTagKind, RoomEdge, RoomNode,
)

__all__ = [
    'CycleId', 'EdgeId', 'GateId', 'IdAllocator', 'InsertionId', 'KeyId',
    'NodeId', 'TEdgeId', 'TInsertionId', 'TNodeId',
    'KeyIdentity', 'KeyIdentityPolicy', 'KeyRegistry', 'KeyType',
    'LockRequirement', 'LockType', 'TemplateKeyRef',
    'DungeonGraph', 'EdgeGate', 'EdgeTraversal', 'GateKind', 'GateStrength',
    'GraphIntegrityError', 'NodeKind', 'NodeTag', 'NodeTagKind', 'RoomEdge',
    'RoomNode',
]

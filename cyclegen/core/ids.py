"""
Strongly Typed Identifiers
==========================

Output-graph identifiers (NodeId, EdgeId, InsertionId, CycleId, KeyId,
GateId) and template-local identifiers (TNodeId, TEdgeId, TInsertionId).

Every identifier is a frozen wrapper around an int. Equality and hashing
include the wrapper class, so NodeId(1) != EdgeId(1) and the two can live
in the same dict without colliding.

IdAllocator issues fresh output ids for one generation run. Counters start
at 1 and only ever grow; an id handed out for a fragment that is later
discarded is never reissued.
"""

import logging
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)


# ============================================================================
# IDENTIFIER TYPES
# ============================================================================

@dataclass(frozen=True, order=True)
class _Id:
    value: int

    PREFIX = "?"

    def __str__(self) -> str:
        return f"{self.PREFIX}{self.value}"


@dataclass(frozen=True, order=True)
class NodeId(_Id):
    PREFIX = "N"


@dataclass(frozen=True, order=True)
class EdgeId(_Id):
    PREFIX = "E"


@dataclass(frozen=True, order=True)
class InsertionId(_Id):
    PREFIX = "I"


@dataclass(frozen=True, order=True)
class CycleId(_Id):
    PREFIX = "C"


@dataclass(frozen=True, order=True)
class KeyId(_Id):
    PREFIX = "K"


@dataclass(frozen=True, order=True)
class GateId(_Id):
    PREFIX = "G"


# Template-local namespace. Only meaningful inside one CycleTemplate.

@dataclass(frozen=True, order=True)
class TNodeId(_Id):
    PREFIX = "TN"


@dataclass(frozen=True, order=True)
class TEdgeId(_Id):
    PREFIX = "TE"


@dataclass(frozen=True, order=True)
class TInsertionId(_Id):
    PREFIX = "TI"


def require_id(value, expected: type, name: str = "id") -> None:
    """Raise TypeError unless value is exactly of the expected id kind."""
    if type(value) is not expected:
        raise TypeError(
            f"{name} must be {expected.__name__}, got {type(value).__name__} ({value!r})"
        )


# ============================================================================
# ALLOCATOR
# ============================================================================

class IdAllocator:
    """
    Issues monotonically increasing output identifiers.

    One allocator belongs to exactly one generation run. Key ids are issued
    by the KeyRegistry, not here.
    """

    def __init__(self):
        self._next: Dict[str, int] = {
            'node': 1,
            'edge': 1,
            'insertion': 1,
            'cycle': 1,
            'gate': 1,
        }

    def _take(self, kind: str) -> int:
        value = self._next[kind]
        self._next[kind] = value + 1
        return value

    def new_node(self) -> NodeId:
        return NodeId(self._take('node'))

    def new_edge(self) -> EdgeId:
        return EdgeId(self._take('edge'))

    def new_insertion(self) -> InsertionId:
        return InsertionId(self._take('insertion'))

    def new_cycle(self) -> CycleId:
        return CycleId(self._take('cycle'))

    def new_gate(self) -> GateId:
        return GateId(self._take('gate'))

    def issued(self) -> Dict[str, int]:
        """Number of ids issued so far, per kind."""
        return {kind: nxt - 1 for kind, nxt in self._next.items()}

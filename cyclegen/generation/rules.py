"""
Cycle Rules: Per-Type Semantics
===============================

The generator knows nothing about specific cycle types. Type-specific
annotation (key placement, locks, patrol tagging) lives in rules looked up
through a closed CycleType -> rule class table.

Hook contract (one rule instance per governed cycle instance):

    on_root_instantiated(graph, cycle)
        The governed cycle has just been added to the graph.

    on_subcycle_inserted(graph, replaced_insertion, inserted_cycle, rng)
        A sub-cycle was spliced into one of the governed cycle's seams.
        Rules must not assume how many times this fires.

    on_generation_finished(graph)
        Called once at the end of the run. Must be idempotent.

A cycle type with no registered rule is pure structural rewriting.
"""

import logging
import random
from typing import Dict, List, Optional, Type

from cyclegen.core.graph import (
    DungeonGraph, EdgeGate, GateKind, GateStrength, NodeTagKind,
)
from cyclegen.core.ids import KeyId, NodeId
from cyclegen.core.keys import KeyType, LockRequirement, LockType, TemplateKeyRef
from cyclegen.generation.context import GenerationContext
from cyclegen.generation.rewrite import CycleRecord, InsertionPoint
from cyclegen.generation.templates import CycleType

logger = logging.getLogger(__name__)


# ============================================================================
# BASE
# ============================================================================

class CycleRule:
    """Base rule: every hook is a no-op."""

    cycle_type: Optional[CycleType] = None

    def __init__(self, context: GenerationContext, cycle: CycleRecord):
        self.context = context
        self.cycle = cycle

    def on_root_instantiated(self, graph: DungeonGraph, cycle: CycleRecord) -> None:
        pass

    def on_subcycle_inserted(self, graph: DungeonGraph, replaced_insertion: InsertionPoint,
                             inserted_cycle: CycleRecord, rng: random.Random) -> None:
        pass

    def on_generation_finished(self, graph: DungeonGraph) -> None:
        pass


# ============================================================================
# TWO KEYS
# ============================================================================

class TwoKeysRule(CycleRule):
    """
    Goal locked behind two keys.

    - governed exit is tagged LOCK_HINT
    - the first two inserted sub-cycles each get a KEY grant on their exit
    - at the end, if both keys exist, every edge into the governed exit
      carries one multi-key gate plus a lock requirement per key
    """

    cycle_type = CycleType.TWO_KEYS
    KEY_COUNT = 2

    def __init__(self, context: GenerationContext, cycle: CycleRecord):
        super().__init__(context, cycle)
        self.placed_keys: List[KeyId] = []
        self.key_nodes: List[NodeId] = []
        self.gate: Optional[EdgeGate] = None

    def on_root_instantiated(self, graph: DungeonGraph, cycle: CycleRecord) -> None:
        graph.get_node(cycle.exit).add_tag(NodeTagKind.LOCK_HINT)

    def on_subcycle_inserted(self, graph: DungeonGraph, replaced_insertion: InsertionPoint,
                             inserted_cycle: CycleRecord, rng: random.Random) -> None:
        if len(self.placed_keys) >= self.KEY_COUNT:
            return

        n = len(self.placed_keys) + 1
        ref = TemplateKeyRef(f"{self.cycle.template_name}Rule", n, self.cycle.id.value)
        identity = self.context.keys.register_key(
            ref, self.cycle.template_name, KeyType.HARD, f"Key {n}"
        )

        node = graph.get_node(inserted_cycle.exit)
        node.add_tag(NodeTagKind.KEY, identity.key_id.value)
        if identity.key_id not in node.granted_keys:
            node.granted_keys.append(identity.key_id)
        node.debug_label = identity.display_name

        self.placed_keys.append(identity.key_id)
        self.key_nodes.append(node.id)
        logger.debug(f"{self.cycle.id}: placed {identity.global_id} at {node.id}")

    def on_generation_finished(self, graph: DungeonGraph) -> None:
        if len(self.placed_keys) != self.KEY_COUNT:
            logger.debug(f"{self.cycle.id}: only {len(self.placed_keys)} key(s) placed, no gate")
            return

        if self.gate is None:
            self.gate = EdgeGate(self.context.ids.new_gate(), GateKind.LOCK,
                                 GateStrength.HARD, tuple(self.placed_keys))

        for edge in graph.edges.values():
            if edge.to_node != self.cycle.exit:
                continue
            current = edge.gate
            if current is None:
                edge.gate = self.gate
            else:
                missing = tuple(k for k in self.placed_keys if k not in current.required_keys)
                if missing:
                    edge.gate = EdgeGate(current.gate_id, current.kind, current.strength,
                                         current.required_keys + missing)
            for key_id in self.placed_keys:
                if not any(lock.required_key_id == key_id for lock in edge.locks):
                    edge.locks.append(LockRequirement(key_id, LockType.STANDARD))


# ============================================================================
# MONSTER PATROL
# ============================================================================

class MonsterPatrolRule(CycleRule):
    """Sub-cycles spliced into the patrolled arc (arc A) inherit the patrol."""

    cycle_type = CycleType.MONSTER_PATROL

    def on_subcycle_inserted(self, graph: DungeonGraph, replaced_insertion: InsertionPoint,
                             inserted_cycle: CycleRecord, rng: random.Random) -> None:
        if self.cycle.arc_index_of(replaced_insertion.seam_edge) == 0:
            graph.get_node(inserted_cycle.entry).add_tag(NodeTagKind.PATROL)


# ============================================================================
# REGISTRY
# ============================================================================

class CycleRuleRegistry:
    """CycleType -> rule class. Absence of a rule is valid."""

    def __init__(self):
        self._rules: Dict[CycleType, Type[CycleRule]] = {}

    def register(self, rule_cls: Type[CycleRule],
                 cycle_type: Optional[CycleType] = None) -> None:
        target = cycle_type if cycle_type is not None else rule_cls.cycle_type
        if target is None:
            raise ValueError(f"{rule_cls.__name__} has no cycle_type; pass one explicitly")
        self._rules[target] = rule_cls

    def unregister(self, cycle_type: CycleType) -> None:
        self._rules.pop(cycle_type, None)

    def get(self, cycle_type: CycleType) -> Optional[Type[CycleRule]]:
        return self._rules.get(cycle_type)

    def create(self, cycle_type: CycleType, context: GenerationContext,
               cycle: CycleRecord) -> Optional[CycleRule]:
        rule_cls = self._rules.get(cycle_type)
        if rule_cls is None:
            return None
        return rule_cls(context, cycle)

    def __contains__(self, cycle_type) -> bool:
        return cycle_type in self._rules

    def __len__(self) -> int:
        return len(self._rules)


def build_default_rule_registry() -> CycleRuleRegistry:
    registry = CycleRuleRegistry()
    registry.register(TwoKeysRule)
    registry.register(MonsterPatrolRule)
    return registry

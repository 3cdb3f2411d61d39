"""
Cycle Templates: Immutable Grammar Blueprints
==============================================

A cycle template describes one loop of the grammar:

    Start ──arc A──► Goal
      └────arc B─────┘

Nodes and edges use template-local ids (TNodeId, TEdgeId). A subset of arc
edges are marked as insertion seams; during generation each seam may be
replaced by a nested instance of another template.

Templates are frozen once built. They are read by every generation run that
uses the library, so nothing in this module mutates a template after
construction.

Built-in templates (one per CycleType):
    TWO_ALTERNATIVE_PATHS  S→P1→G | S→P2→G
    TWO_KEYS               S→K1→G | S→K2→G      (keys placed by TwoKeysRule)
    HIDDEN_SHORTCUT        S→L1→L2→G | S→H→G    (H secret)
    DANGEROUS_ROUTE        S→L1→L2→G | S→D→G    (D dangerous)
    FORESHADOWING_LOOP     S→L1→L2→G | S⇢G      (sightline)
    LOCK_AND_KEY_CYCLE     S→G locked | S→L1→K→G, K→S one-way
    BLOCKED_RETREAT        S→G | S→R1→R2→Bar→G  (one-way into barrier)
    MONSTER_PATROL         S→P→G | S→Q→G        (P patrolled)
    ALTERED_RETURN         S→X→G | S→Y→G        (X→G one-way)
    FALSE_GOAL             S→F→L1→G | S→H→G
    SIMPLE_LOCK_AND_KEY    S→M→G | S→K→G        (both entries to G locked)
    GAMBIT                 S→M→G | S→D→R→G      (danger then reward)
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from cyclegen.core.graph import EdgeTraversal, NodeTag, NodeTagKind
from cyclegen.core.ids import TEdgeId, TInsertionId, TNodeId
from cyclegen.core.keys import KeyType, LockType

logger = logging.getLogger(__name__)


class TemplateError(ValueError):
    """Malformed cycle template (dangling seam, unknown arc edge, missing key)."""


# ============================================================================
# CYCLE TYPES
# ============================================================================

class CycleType(Enum):
    TWO_ALTERNATIVE_PATHS = "TwoAlternativePaths"
    TWO_KEYS = "TwoKeys"
    HIDDEN_SHORTCUT = "HiddenShortcut"
    DANGEROUS_ROUTE = "DangerousRoute"
    FORESHADOWING_LOOP = "ForeshadowingLoop"
    LOCK_AND_KEY_CYCLE = "LockAndKeyCycle"
    BLOCKED_RETREAT = "BlockedRetreat"
    MONSTER_PATROL = "MonsterPatrol"
    ALTERED_RETURN = "AlteredReturn"
    FALSE_GOAL = "FalseGoal"
    SIMPLE_LOCK_AND_KEY = "SimpleLockAndKey"
    GAMBIT = "Gambit"

    @classmethod
    def parse(cls, name: str) -> 'CycleType':
        """Accept either the enum name (TWO_KEYS) or its value (TwoKeys)."""
        for member in cls:
            if name in (member.name, member.value) or name.lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown cycle type: {name}")


CYCLE_TYPE_DESCRIPTIONS: Dict[CycleType, str] = {
    CycleType.TWO_ALTERNATIVE_PATHS: "Two different paths lead to the goal.",
    CycleType.TWO_KEYS: "The goal is locked behind two keys, one placed on each path.",
    CycleType.HIDDEN_SHORTCUT: "A long obvious route and a short secret one.",
    CycleType.DANGEROUS_ROUTE: "A long safe route and a short dangerous one.",
    CycleType.FORESHADOWING_LOOP: "The goal is visible early but reached by the long way around.",
    CycleType.LOCK_AND_KEY_CYCLE: "A locked shortcut opens once the key on the long path is found.",
    CycleType.BLOCKED_RETREAT: "A one-way passage prevents retreat; the barrier opens from the far side.",
    CycleType.MONSTER_PATROL: "One path is patrolled by a monster.",
    CycleType.ALTERED_RETURN: "The way back differs from the way in.",
    CycleType.FALSE_GOAL: "An apparent goal turns out to be a detour.",
    CycleType.SIMPLE_LOCK_AND_KEY: "A key on one path unlocks the goal.",
    CycleType.GAMBIT: "A risky path offers a reward.",
}


# ============================================================================
# TEMPLATE ELEMENTS
# ============================================================================

class TNodeKind(Enum):
    NORMAL = auto()
    START = auto()
    GOAL = auto()


@dataclass(frozen=True)
class TKey:
    """A key authored in a template. `shared` keys merge across instantiations."""
    local_id: int
    key_type: KeyType = KeyType.HARD
    display_name: str = "Key"
    shared: bool = False


@dataclass(frozen=True)
class TLock:
    key_ref: int
    lock_type: LockType = LockType.STANDARD


@dataclass(frozen=True)
class TNode:
    id: TNodeId
    kind: TNodeKind = TNodeKind.NORMAL
    label: Optional[str] = None
    tags: Tuple[NodeTag, ...] = ()
    grants: Tuple[int, ...] = ()


@dataclass(frozen=True)
class TEdge:
    id: TEdgeId
    from_node: TNodeId
    to_node: TNodeId
    traversal: EdgeTraversal = EdgeTraversal.NORMAL
    locks: Tuple[TLock, ...] = ()


@dataclass(frozen=True)
class TArc:
    name: str
    edges: Tuple[TEdgeId, ...]
    length_hint: int = 0


@dataclass(frozen=True)
class TInsertion:
    """Seam marker. `replacement` optionally pins the sub-cycle type."""
    id: TInsertionId
    seam_edge: TEdgeId
    replacement: Optional[CycleType] = None


# ============================================================================
# CYCLE TEMPLATE
# ============================================================================

class CycleTemplate:
    """
    Immutable blueprint for one cycle.

    Validation runs on construction. `validate=False` exists only so that
    deliberately malformed templates can be handed to the rewrite engine,
    which re-checks seams itself.
    """

    def __init__(
        self,
        cycle_type: CycleType,
        name: str,
        nodes: Iterable[TNode],
        edges: Iterable[TEdge],
        start: Optional[TNodeId],
        goal: Optional[TNodeId],
        arc_a: TArc,
        arc_b: TArc,
        insertions: Iterable[TInsertion] = (),
        keys: Iterable[TKey] = (),
        description: str = "",
        validate: bool = True,
    ):
        self._cycle_type = cycle_type
        self._name = name
        self._description = description or CYCLE_TYPE_DESCRIPTIONS.get(cycle_type, "")
        self._nodes: Mapping[TNodeId, TNode] = MappingProxyType({n.id: n for n in nodes})
        self._edges: Mapping[TEdgeId, TEdge] = MappingProxyType({e.id: e for e in edges})
        self._keys: Mapping[int, TKey] = MappingProxyType({k.local_id: k for k in keys})
        self._start = start
        self._goal = goal
        self._arcs: Tuple[TArc, TArc] = (arc_a, arc_b)
        self._insertions: Tuple[TInsertion, ...] = tuple(insertions)

        self._arc_of: Dict[TEdgeId, int] = {}
        for index, arc in enumerate(self._arcs):
            for eid in arc.edges:
                self._arc_of.setdefault(eid, index)

        if validate:
            self.validate()

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def cycle_type(self) -> CycleType:
        return self._cycle_type

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def nodes(self) -> Mapping[TNodeId, TNode]:
        return self._nodes

    @property
    def edges(self) -> Mapping[TEdgeId, TEdge]:
        return self._edges

    @property
    def keys(self) -> Mapping[int, TKey]:
        return self._keys

    @property
    def start(self) -> Optional[TNodeId]:
        return self._start

    @property
    def goal(self) -> Optional[TNodeId]:
        return self._goal

    @property
    def has_endpoints(self) -> bool:
        return (self._start is not None and self._goal is not None
                and self._start in self._nodes and self._goal in self._nodes)

    @property
    def arc_a(self) -> TArc:
        return self._arcs[0]

    @property
    def arc_b(self) -> TArc:
        return self._arcs[1]

    @property
    def arcs(self) -> Tuple[TArc, TArc]:
        return self._arcs

    @property
    def insertions(self) -> Tuple[TInsertion, ...]:
        return self._insertions

    def arc_index_of(self, edge_id: TEdgeId) -> Optional[int]:
        """0 for arc A, 1 for arc B, None if the edge is on neither."""
        return self._arc_of.get(edge_id)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Raise TemplateError on the first structural problem found."""
        where = f"template '{self._name}'"

        for eid, edge in self._edges.items():
            if edge.from_node not in self._nodes or edge.to_node not in self._nodes:
                raise TemplateError(f"{where}: edge {eid} references a missing node")
            if edge.from_node == edge.to_node:
                raise TemplateError(f"{where}: edge {eid} is a self-loop")
            for lock in edge.locks:
                if lock.key_ref not in self._keys:
                    raise TemplateError(f"{where}: edge {eid} locks unknown key {lock.key_ref}")

        for nid, node in self._nodes.items():
            for ref in node.grants:
                if ref not in self._keys:
                    raise TemplateError(f"{where}: node {nid} grants unknown key {ref}")

        for endpoint, label in ((self._start, "start"), (self._goal, "goal")):
            if endpoint is not None and endpoint not in self._nodes:
                raise TemplateError(f"{where}: {label} node {endpoint} does not exist")

        for arc in self._arcs:
            for eid in arc.edges:
                if eid not in self._edges:
                    raise TemplateError(f"{where}: arc '{arc.name}' references missing edge {eid}")

        seen = set()
        for ins in self._insertions:
            if ins.seam_edge not in self._edges:
                raise TemplateError(f"{where}: seam {ins.id} references missing edge {ins.seam_edge}")
            if ins.id in seen:
                raise TemplateError(f"{where}: duplicate insertion id {ins.id}")
            seen.add(ins.id)

    def __repr__(self) -> str:
        return (f"CycleTemplate({self._cycle_type.value}, nodes={len(self._nodes)}, "
                f"edges={len(self._edges)}, seams={len(self._insertions)})")


# ============================================================================
# BUILDER
# ============================================================================

class CycleTemplateBuilder:
    """
    Fluent helper for authoring templates with sequential local ids.

    Example:
        b = CycleTemplateBuilder(CycleType.GAMBIT)
        s, g = b.start(), b.goal()
        m = b.node("Middle")
        e1, e2 = b.edge(s, m), b.edge(m, g)
        ...
        template = b.build()
    """

    def __init__(self, cycle_type: CycleType, name: Optional[str] = None, description: str = ""):
        self.cycle_type = cycle_type
        self.name = name or cycle_type.value
        self.description = description
        self._nodes: Dict[TNodeId, TNode] = {}
        self._edges: Dict[TEdgeId, TEdge] = {}
        self._keys: Dict[int, TKey] = {}
        self._arcs: List[TArc] = []
        self._insertions: List[TInsertion] = []
        self._start: Optional[TNodeId] = None
        self._goal: Optional[TNodeId] = None

    def node(self, label: Optional[str] = None, *tags: NodeTagKind,
             kind: TNodeKind = TNodeKind.NORMAL) -> TNodeId:
        nid = TNodeId(len(self._nodes) + 1)
        self._nodes[nid] = TNode(nid, kind, label, tuple(NodeTag(t) for t in tags))
        return nid

    def start(self, label: str = "Start", *tags: NodeTagKind) -> TNodeId:
        self._start = self.node(label, *tags, kind=TNodeKind.START)
        return self._start

    def goal(self, label: str = "Goal", *tags: NodeTagKind) -> TNodeId:
        self._goal = self.node(label, *tags, kind=TNodeKind.GOAL)
        return self._goal

    def edge(self, from_node: TNodeId, to_node: TNodeId,
             traversal: EdgeTraversal = EdgeTraversal.NORMAL) -> TEdgeId:
        eid = TEdgeId(len(self._edges) + 1)
        self._edges[eid] = TEdge(eid, from_node, to_node, traversal)
        return eid

    def chain(self, *nodes: TNodeId) -> List[TEdgeId]:
        """Connect consecutive nodes; returns the new edges in order."""
        return [self.edge(a, b) for a, b in zip(nodes, nodes[1:])]

    def arc(self, name: str, edges: List[TEdgeId]) -> 'CycleTemplateBuilder':
        if len(self._arcs) >= 2:
            raise TemplateError(f"template '{self.name}' already has two arcs")
        self._arcs.append(TArc(name, tuple(edges), len(edges)))
        return self

    def seam(self, edge: TEdgeId, replacement: Optional[CycleType] = None) -> TInsertionId:
        iid = TInsertionId(len(self._insertions) + 1)
        self._insertions.append(TInsertion(iid, edge, replacement))
        return iid

    def key(self, display_name: str = "Key", key_type: KeyType = KeyType.HARD,
            shared: bool = False) -> int:
        local_id = len(self._keys) + 1
        self._keys[local_id] = TKey(local_id, key_type, display_name, shared)
        return local_id

    def grant(self, node: TNodeId, key_ref: int) -> 'CycleTemplateBuilder':
        n = self._nodes[node]
        self._nodes[node] = TNode(n.id, n.kind, n.label, n.tags, n.grants + (key_ref,))
        return self

    def lock(self, edge: TEdgeId, key_ref: int,
             lock_type: LockType = LockType.STANDARD) -> 'CycleTemplateBuilder':
        e = self._edges[edge]
        self._edges[edge] = TEdge(e.id, e.from_node, e.to_node, e.traversal,
                                  e.locks + (TLock(key_ref, lock_type),))
        return self

    def build(self) -> CycleTemplate:
        while len(self._arcs) < 2:
            self._arcs.append(TArc("B" if self._arcs else "A", ()))
        return CycleTemplate(
            cycle_type=self.cycle_type,
            name=self.name,
            nodes=self._nodes.values(),
            edges=self._edges.values(),
            start=self._start,
            goal=self._goal,
            arc_a=self._arcs[0],
            arc_b=self._arcs[1],
            insertions=self._insertions,
            keys=self._keys.values(),
            description=self.description,
        )


# ============================================================================
# LIBRARY
# ============================================================================

class CycleTemplateLibrary:
    """Lookup table CycleType -> CycleTemplate. Read-only during generation."""

    def __init__(self, templates: Iterable[CycleTemplate] = ()):
        self._templates: Dict[CycleType, CycleTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: CycleTemplate, replace: bool = False) -> None:
        if template.cycle_type in self._templates and not replace:
            raise TemplateError(f"Template for {template.cycle_type.value} already registered")
        self._templates[template.cycle_type] = template

    def get(self, cycle_type: CycleType) -> CycleTemplate:
        try:
            return self._templates[cycle_type]
        except KeyError:
            raise KeyError(f"No template registered for {cycle_type}") from None

    def find(self, cycle_type: Optional[CycleType]) -> Optional[CycleTemplate]:
        if cycle_type is None:
            return None
        return self._templates.get(cycle_type)

    def types(self) -> List[CycleType]:
        return list(self._templates.keys())

    def __contains__(self, cycle_type) -> bool:
        return cycle_type in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self):
        return iter(self._templates.values())


# ============================================================================
# BUILT-IN TEMPLATES
# ============================================================================

def _two_alternative_paths() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.TWO_ALTERNATIVE_PATHS)
    s = b.start()
    p1 = b.node("Path 1")
    g = b.goal()
    p2 = b.node("Path 2")
    a = b.chain(s, p1, g)
    c = b.chain(s, p2, g)
    b.arc("A", a).arc("B", c)
    b.seam(a[0])
    b.seam(c[0])
    return b.build()


def _two_keys() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.TWO_KEYS)
    s = b.start()
    k1 = b.node("Key Path 1")
    g = b.goal()
    k2 = b.node("Key Path 2")
    a = b.chain(s, k1, g)
    c = b.chain(s, k2, g)
    b.arc("A", a).arc("B", c)
    b.seam(a[0])
    b.seam(c[0])
    return b.build()


def _hidden_shortcut() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.HIDDEN_SHORTCUT)
    s = b.start()
    l1, l2 = b.node("Long 1"), b.node("Long 2")
    g = b.goal()
    h = b.node("Hidden", NodeTagKind.SECRET)
    a = b.chain(s, l1, l2, g)
    c = b.chain(s, h, g)
    b.arc("Long", a).arc("Shortcut", c)
    b.seam(a[0])
    b.seam(a[1])
    return b.build()


def _dangerous_route() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.DANGEROUS_ROUTE)
    s = b.start()
    l1, l2 = b.node("Safe 1"), b.node("Safe 2")
    g = b.goal()
    d = b.node("Danger", NodeTagKind.DANGER)
    a = b.chain(s, l1, l2, g)
    c = b.chain(s, d, g)
    b.arc("Safe", a).arc("Dangerous", c)
    b.seam(a[1])
    return b.build()


def _foreshadowing_loop() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.FORESHADOWING_LOOP)
    s = b.start("Start", NodeTagKind.SIGHTLINE_SOURCE)
    l1, l2 = b.node("Around 1"), b.node("Around 2")
    g = b.goal("Goal", NodeTagKind.SIGHTLINE_TARGET)
    a = b.chain(s, l1, l2, g)
    view = b.edge(s, g, EdgeTraversal.SIGHTLINE)
    b.arc("Long way", a).arc("View", [view])
    b.seam(a[0])
    b.seam(a[2])
    return b.build()


def _lock_and_key_cycle() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.LOCK_AND_KEY_CYCLE)
    s = b.start()
    g = b.goal("Goal", NodeTagKind.LOCK_HINT)
    l1 = b.node("Detour")
    k = b.node("Key Room")
    locked = b.edge(s, g)
    d1 = b.edge(s, l1)
    d2 = b.edge(l1, k)
    d3 = b.edge(k, g, EdgeTraversal.ONE_WAY)
    b.edge(k, s, EdgeTraversal.ONE_WAY)
    key = b.key("Cycle Key")
    b.grant(k, key).lock(locked, key)
    b.arc("Locked", [locked]).arc("Key path", [d1, d2, d3])
    b.seam(d1)
    return b.build()


def _blocked_retreat() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.BLOCKED_RETREAT)
    s = b.start()
    g = b.goal()
    r1, r2 = b.node("Retreat 1"), b.node("Retreat 2")
    bar = b.node("Barrier", NodeTagKind.BARRIER)
    direct = b.edge(s, g)
    e1 = b.edge(s, r1)
    e2 = b.edge(r1, r2)
    e3 = b.edge(r2, bar, EdgeTraversal.ONE_WAY)
    e4 = b.edge(bar, g)
    b.arc("Direct", [direct]).arc("Retreat", [e1, e2, e3, e4])
    b.seam(e1)
    b.seam(e2)
    return b.build()


def _monster_patrol() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.MONSTER_PATROL)
    s = b.start()
    p = b.node("Patrolled", NodeTagKind.PATROL)
    g = b.goal()
    q = b.node("Quiet")
    a0 = b.edge(s, p)
    a1 = b.edge(p, g, EdgeTraversal.ONE_WAY)
    c = b.chain(s, q, g)
    b.arc("Patrol", [a0, a1]).arc("Quiet", c)
    b.seam(a0)
    b.seam(c[0])
    return b.build()


def _altered_return() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.ALTERED_RETURN)
    s = b.start("Start", NodeTagKind.DANGER)
    x = b.node("Outbound")
    g = b.goal()
    y = b.node("Return")
    a0 = b.edge(s, x)
    a1 = b.edge(x, g, EdgeTraversal.ONE_WAY)
    c = b.chain(s, y, g)
    b.arc("Out", [a0, a1]).arc("Back", c)
    b.seam(c[0])
    return b.build()


def _false_goal() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.FALSE_GOAL)
    s = b.start()
    f = b.node("False Goal", NodeTagKind.FALSE_GOAL)
    l1 = b.node("Onward")
    g = b.goal()
    h = b.node("Hidden", NodeTagKind.SECRET)
    a = b.chain(s, f, l1, g)
    c = b.chain(s, h, g)
    b.arc("Obvious", a).arc("Hidden", c)
    b.seam(a[1])
    return b.build()


def _simple_lock_and_key() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.SIMPLE_LOCK_AND_KEY)
    s = b.start()
    m = b.node("Main")
    g = b.goal("Goal", NodeTagKind.LOCK_HINT)
    k = b.node("Key Room")
    a = b.chain(s, m, g)
    c = b.chain(s, k, g)
    key = b.key("Door Key")
    b.grant(k, key).lock(a[1], key).lock(c[1], key)
    b.arc("Main", a).arc("Key", c)
    b.seam(a[0])
    return b.build()


def _gambit() -> CycleTemplate:
    b = CycleTemplateBuilder(CycleType.GAMBIT)
    s = b.start()
    m = b.node("Main")
    g = b.goal()
    d = b.node("Risk", NodeTagKind.DANGER)
    r = b.node("Reward", NodeTagKind.REWARD)
    a = b.chain(s, m, g)
    c = b.chain(s, d, r, g)
    b.arc("Safe", a).arc("Gamble", c)
    b.seam(a[0])
    return b.build()


BUILTIN_TEMPLATE_FACTORIES = {
    CycleType.TWO_ALTERNATIVE_PATHS: _two_alternative_paths,
    CycleType.TWO_KEYS: _two_keys,
    CycleType.HIDDEN_SHORTCUT: _hidden_shortcut,
    CycleType.DANGEROUS_ROUTE: _dangerous_route,
    CycleType.FORESHADOWING_LOOP: _foreshadowing_loop,
    CycleType.LOCK_AND_KEY_CYCLE: _lock_and_key_cycle,
    CycleType.BLOCKED_RETREAT: _blocked_retreat,
    CycleType.MONSTER_PATROL: _monster_patrol,
    CycleType.ALTERED_RETURN: _altered_return,
    CycleType.FALSE_GOAL: _false_goal,
    CycleType.SIMPLE_LOCK_AND_KEY: _simple_lock_and_key,
    CycleType.GAMBIT: _gambit,
}


def register_builtin_templates(library: CycleTemplateLibrary,
                               types: Optional[Iterable[CycleType]] = None) -> CycleTemplateLibrary:
    """Register the built-in template for each requested type (all by default)."""
    for cycle_type in (types or BUILTIN_TEMPLATE_FACTORIES.keys()):
        library.register(BUILTIN_TEMPLATE_FACTORIES[cycle_type]())
    logger.debug(f"Registered {len(library)} built-in cycle templates")
    return library


def build_default_library() -> CycleTemplateLibrary:
    return register_builtin_templates(CycleTemplateLibrary())

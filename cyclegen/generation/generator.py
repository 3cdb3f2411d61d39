"""
Cyclic Dungeon Generator
========================

Orchestrates one generation run:

    1. pick the overall cycle type and instantiate it at depth 0
    2. expand insertion seams with nested sub-cycles, bounded by depth and
       by the configured budget
    3. let per-type rules annotate the structure
    4. return the graph together with full provenance

Insertion point lifecycle:

    PENDING ──► EXPANDED   (sub-cycle spliced in place of the seam)
        └─────► PRUNED     (depth or budget exhausted; seam edge stays)

Two strategies share the same rewrite engine and provenance bookkeeping:

    BreadthFirstSpliceStrategy
        FIFO queue of seams; prune when depth+1 > max_depth or when the
        number of expansions reaches max_insertions_total.

    RecursiveTreeStrategy
        Compile a nested tree of templates first (shuffled seams, rewrite
        probability, per-cycle rewrite cap, node budget), then flatten it
        into the graph depth-first.

Usage:
    generator = build_default_generator()
    result = generator.generate(GenerationSettings(seed=7, max_depth=2))
    if result is not None:
        print(result.get_statistics())
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Deque, Dict, List, Optional, Tuple

import numpy as np

from cyclegen.core.graph import DungeonGraph, GraphIntegrityError
from cyclegen.core.ids import CycleId, EdgeId, InsertionId, NodeId, TInsertionId
from cyclegen.core.keys import KeyIdentity
from cyclegen.generation.context import (
    GenerationContext, GenerationSettings, GenerationStrategyKind, SettingsError,
)
from cyclegen.generation.rewrite import (
    CycleRecord, Fragment, GraphRewriteEngine, InsertionPoint,
)
from cyclegen.generation.rules import (
    CycleRule, CycleRuleRegistry, build_default_rule_registry,
)
from cyclegen.generation.selector import CycleSelector, DefaultCycleSelector
from cyclegen.generation.templates import (
    CycleTemplate, CycleTemplateLibrary, CycleType, TemplateError, TInsertion,
    build_default_library,
)

logger = logging.getLogger(__name__)


# ============================================================================
# RESULT TYPES
# ============================================================================

class InsertionState(Enum):
    PENDING = auto()
    EXPANDED = auto()
    PRUNED = auto()


@dataclass(frozen=True)
class InsertionEvent:
    """One expansion: which seam was replaced, where it was, and by what."""
    insertion: InsertionPoint
    parent_from: NodeId
    parent_to: NodeId
    inserted_cycle: CycleId
    inserted_type: CycleType
    inserted_node_ids: Tuple[NodeId, ...]
    bridge_edges: Tuple[EdgeId, EdgeId]


@dataclass
class GenerationResult:
    """
    Graph plus provenance bundle. Everything a renderer needs: nodes with
    tags and kind, edges with traversal and gate, and per-node/per-cycle
    depth.
    """
    graph: DungeonGraph
    overall_type: CycleType
    root_cycle: CycleId
    settings: GenerationSettings
    cycles: Dict[CycleId, CycleRecord] = field(default_factory=dict)
    node_to_cycle: Dict[NodeId, CycleId] = field(default_factory=dict)
    edge_to_arc: Dict[EdgeId, Tuple[CycleId, int]] = field(default_factory=dict)
    insertion_history: List[InsertionEvent] = field(default_factory=list)
    insertions: Dict[InsertionId, InsertionPoint] = field(default_factory=dict)
    insertion_states: Dict[InsertionId, InsertionState] = field(default_factory=dict)
    keys: List[KeyIdentity] = field(default_factory=list)

    @property
    def root(self) -> CycleRecord:
        return self.cycles[self.root_cycle]

    def get_cycle_for_node(self, node_id: NodeId) -> Optional[CycleRecord]:
        cycle_id = self.node_to_cycle.get(node_id)
        return self.cycles.get(cycle_id) if cycle_id is not None else None

    def get_child_cycles(self, cycle_id: CycleId) -> List[CycleRecord]:
        """Cycles spliced directly into `cycle_id`'s seams."""
        return [c for c in self.cycles.values() if c.parent_cycle == cycle_id]

    def get_sub_cycles(self, cycle_id: CycleId) -> List[CycleRecord]:
        """All descendants of `cycle_id`, breadth-first."""
        found: List[CycleRecord] = []
        frontier = [cycle_id]
        while frontier:
            children = [c for parent in frontier for c in self.get_child_cycles(parent)]
            found.extend(children)
            frontier = [c.id for c in children]
        return found

    def node_depth(self, node_id: NodeId) -> int:
        """Nesting depth of the cycle owning the node, -1 if unknown."""
        cycle = self.get_cycle_for_node(node_id)
        return cycle.depth if cycle is not None else -1

    def insertions_in_state(self, state: InsertionState) -> List[InsertionPoint]:
        return [self.insertions[iid] for iid, s in self.insertion_states.items() if s == state]

    def expanded_insertions(self) -> List[InsertionPoint]:
        return self.insertions_in_state(InsertionState.EXPANDED)

    def pruned_insertions(self) -> List[InsertionPoint]:
        return self.insertions_in_state(InsertionState.PRUNED)

    def get_statistics(self) -> Dict[str, Any]:
        """Summary counts and depth distribution for logging and comparison."""
        depths = np.array([c.depth for c in self.cycles.values()], dtype=int)
        per_cycle = np.bincount(
            np.array([cid.value for cid in self.node_to_cycle.values()], dtype=int)
        )
        sizes = per_cycle[per_cycle > 0]
        type_counts: Dict[str, int] = {}
        for c in self.cycles.values():
            type_counts[c.cycle_type.value] = type_counts.get(c.cycle_type.value, 0) + 1

        return {
            'overall_type': self.overall_type.value,
            'nodes': self.graph.node_count,
            'edges': self.graph.edge_count,
            'cycles': len(self.cycles),
            'max_depth': int(depths.max()) if depths.size else 0,
            'depth_histogram': np.bincount(depths).tolist() if depths.size else [],
            'mean_cycle_size': float(np.mean(sizes)) if sizes.size else 0.0,
            'insertions_expanded': len(self.expanded_insertions()),
            'insertions_pruned': len(self.pruned_insertions()),
            'keys': len(self.keys),
            'gated_edges': sum(1 for e in self.graph.edges.values() if e.is_gated),
            'cycle_types': type_counts,
        }


# ============================================================================
# RUN STATE
# ============================================================================

class _GenerationRun:
    """
    Mutable state of one generate() call, shared by both strategies.
    Owns the graph, provenance maps and rule instances.
    """

    def __init__(self, library: CycleTemplateLibrary, selector: CycleSelector,
                 rules: Optional[CycleRuleRegistry], context: GenerationContext):
        self.library = library
        self.selector = selector
        self.rules = rules
        self.context = context
        self.settings = context.settings
        self.engine = GraphRewriteEngine(context.ids, context.keys, self.settings.key_policy)

        self.graph = DungeonGraph()
        self.cycles: Dict[CycleId, CycleRecord] = {}
        self.node_to_cycle: Dict[NodeId, CycleId] = {}
        self.edge_to_arc: Dict[EdgeId, Tuple[CycleId, int]] = {}
        self.history: List[InsertionEvent] = []
        self.insertions: Dict[InsertionId, InsertionPoint] = {}
        self.states: Dict[InsertionId, InsertionState] = {}
        self.rule_instances: Dict[CycleId, CycleRule] = {}
        self.root: Optional[CycleRecord] = None
        self.expanded_count = 0

    def _register(self, fragment: Fragment) -> None:
        record = fragment.cycle
        self.cycles[record.id] = record
        for node in fragment.nodes:
            self.node_to_cycle[node.id] = record.id
        for edge_id, arc in fragment.edge_arcs.items():
            self.edge_to_arc[edge_id] = (record.id, arc)
        for point in fragment.insertions:
            self.insertions[point.id] = point
            self.states[point.id] = InsertionState.PENDING

        if self.rules is not None:
            rule = self.rules.create(record.cycle_type, self.context, record)
            if rule is not None:
                self.rule_instances[record.id] = rule
                rule.on_root_instantiated(self.graph, record)

    def instantiate_root(self, template: CycleTemplate) -> Fragment:
        fragment = self.engine.instantiate(template, depth=0)
        self.engine.add_fragment(self.graph, fragment)
        self.root = fragment.cycle
        self._register(fragment)
        return fragment

    def expand(self, insertion: InsertionPoint, template: CycleTemplate) -> Fragment:
        """Instantiate `template` one level deeper and splice it over the seam."""
        seam = self.graph.find_edge(insertion.seam_edge)
        if seam is None:
            raise GraphIntegrityError(
                f"Insertion {insertion.id}: seam edge {insertion.seam_edge} missing from graph"
            )
        parent_from, parent_to = seam.from_node, seam.to_node

        fragment = self.engine.instantiate(
            template, insertion.depth + 1,
            parent_cycle=insertion.owner_cycle, parent_insertion=insertion.id,
        )
        bridges = self.engine.splice_replace_edge(self.graph, insertion.seam_edge, fragment)

        # Bridges take over the seam's place on the parent's arc.
        seam_arc = self.edge_to_arc.pop(insertion.seam_edge, None)
        if seam_arc is not None:
            for bridge in bridges:
                self.edge_to_arc[bridge] = seam_arc

        self._register(fragment)
        self.states[insertion.id] = InsertionState.EXPANDED
        self.expanded_count += 1
        self.history.append(InsertionEvent(
            insertion=insertion,
            parent_from=parent_from,
            parent_to=parent_to,
            inserted_cycle=fragment.cycle.id,
            inserted_type=fragment.cycle.cycle_type,
            inserted_node_ids=tuple(fragment.node_ids),
            bridge_edges=bridges,
        ))

        parent_rule = self.rule_instances.get(insertion.owner_cycle)
        if parent_rule is not None:
            parent_rule.on_subcycle_inserted(self.graph, insertion, fragment.cycle, self.context.rng)
        return fragment

    def prune(self, insertion: InsertionPoint, reason: str) -> None:
        self.states[insertion.id] = InsertionState.PRUNED
        logger.debug(f"Pruned {insertion.id} at depth {insertion.depth}: {reason}")

    def finish(self, overall_type: CycleType) -> GenerationResult:
        for rule in self.rule_instances.values():
            rule.on_generation_finished(self.graph)

        dangling = self.graph.prune_dangling_edges()
        if dangling:
            logger.warning(f"Removed {len(dangling)} dangling edge(s): {[str(e) for e in dangling]}")
            for edge_id in dangling:
                self.edge_to_arc.pop(edge_id, None)

        for insertion_id, state in self.states.items():
            if state == InsertionState.PENDING:
                self.states[insertion_id] = InsertionState.PRUNED

        return GenerationResult(
            graph=self.graph,
            overall_type=overall_type,
            root_cycle=self.root.id,
            settings=self.settings,
            cycles=self.cycles,
            node_to_cycle=self.node_to_cycle,
            edge_to_arc=self.edge_to_arc,
            insertion_history=self.history,
            insertions=self.insertions,
            insertion_states=self.states,
            keys=self.context.keys.all_keys(),
        )


# ============================================================================
# STRATEGIES
# ============================================================================

class GenerationStrategy:
    """Drives a _GenerationRun; returns the overall cycle type used."""

    def run(self, run: _GenerationRun) -> CycleType:
        raise NotImplementedError


class BreadthFirstSpliceStrategy(GenerationStrategy):
    """Depth-and-count budgeted FIFO expansion of insertion seams."""

    def run(self, run: _GenerationRun) -> CycleType:
        settings = run.settings
        rng = run.context.rng

        overall_type = run.selector.select_overall(rng)
        root = run.instantiate_root(run.library.get(overall_type))

        queue: Deque[InsertionPoint] = deque(root.insertions)
        used = len(queue)

        while queue:
            insertion = queue.popleft()

            if insertion.depth + 1 > settings.max_depth:
                run.prune(insertion, f"max_depth {settings.max_depth}")
                continue
            if run.expanded_count >= settings.max_insertions_total:
                run.prune(insertion, f"budget {settings.max_insertions_total} exhausted")
                continue

            sub_type = run.selector.select_sub(rng, insertion.depth + 1)
            template = run.library.find(sub_type)
            if template is None:
                logger.warning(f"{insertion.id}: no template registered for {sub_type}, skipped")
                run.prune(insertion, f"unresolved sub type {sub_type}")
                continue
            fragment = run.expand(insertion, template)

            for child in fragment.insertions:
                if used >= settings.max_insertions_total:
                    run.prune(child, "budget exhausted while enqueueing")
                    continue
                queue.append(child)
                used += 1

        return overall_type


@dataclass
class CycleTreeNode:
    """Compiled nesting plan: a template and the sub-trees chosen per seam."""
    template: CycleTemplate
    depth: int
    children: Dict[TInsertionId, 'CycleTreeNode'] = field(default_factory=dict)

    def node_count(self) -> int:
        return len(self.template.nodes) + sum(c.node_count() for c in self.children.values())

    def cycle_count(self) -> int:
        return 1 + sum(c.cycle_count() for c in self.children.values())


class RecursiveTreeStrategy(GenerationStrategy):
    """
    Node-count and probability budgeted tree compilation followed by a
    depth-first flatten.

    Skipped (warning, placeholder seam left in place):
        - replacement type not resolvable to a library template
        - replacement template without start/goal
    """

    def __init__(self):
        self._projected_nodes = 0

    def run(self, run: _GenerationRun) -> CycleType:
        tree = self.compile(run)
        self.flatten(run, tree)
        if run.graph.node_count < run.settings.min_nodes:
            logger.warning(
                f"Generated {run.graph.node_count} rooms, below min_nodes={run.settings.min_nodes}"
            )
        return tree.template.cycle_type

    # ------------------------------------------------------------------
    # Compile
    # ------------------------------------------------------------------

    def compile(self, run: _GenerationRun) -> CycleTreeNode:
        overall_type = run.selector.select_overall(run.context.rng)
        template = run.library.get(overall_type)
        if not template.has_endpoints:
            raise TemplateError(f"root template '{template.name}' has no start/goal node")

        root = CycleTreeNode(template, depth=0)
        self._projected_nodes = len(template.nodes)
        self._grow(run, root)
        logger.debug(f"Compiled cycle tree: {root.cycle_count()} cycles, "
                     f"{root.node_count()} rooms projected")
        return root

    def _grow(self, run: _GenerationRun, node: CycleTreeNode) -> None:
        settings = run.settings
        rng = run.context.rng
        if node.depth >= settings.max_depth:
            return

        sites = list(node.template.insertions)
        rng.shuffle(sites)
        rewrites = 0
        for site in sites:
            if rewrites >= settings.max_rewrites_per_cycle:
                break
            if rng.random() >= settings.rewrite_probability:
                continue

            replacement = self._resolve(run, site, node.depth + 1)
            if replacement is None:
                logger.warning(f"{node.template.name}/{site.id}: no replacement template, skipped")
                continue
            if not replacement.has_endpoints:
                logger.warning(f"{node.template.name}/{site.id}: replacement "
                               f"'{replacement.name}' has no start/goal, skipped")
                continue
            if self._projected_nodes + len(replacement.nodes) > settings.max_nodes:
                logger.debug(f"{node.template.name}/{site.id}: node budget reached")
                continue

            node.children[site.id] = CycleTreeNode(replacement, node.depth + 1)
            self._projected_nodes += len(replacement.nodes)
            rewrites += 1

        for child in node.children.values():
            self._grow(run, child)

    @staticmethod
    def _resolve(run: _GenerationRun, site: TInsertion, depth: int) -> Optional[CycleTemplate]:
        preferred = run.library.find(site.replacement)
        if preferred is not None:
            return preferred
        return run.library.find(run.selector.select_sub(run.context.rng, depth))

    # ------------------------------------------------------------------
    # Flatten
    # ------------------------------------------------------------------

    def flatten(self, run: _GenerationRun, tree: CycleTreeNode) -> None:
        fragment = run.instantiate_root(tree.template)
        self._flatten_children(run, tree, fragment)

    def _flatten_children(self, run: _GenerationRun, node: CycleTreeNode,
                          fragment: Fragment) -> None:
        for insertion in fragment.insertions:
            child = node.children.get(insertion.template_insertion)
            if child is None:
                continue
            child_fragment = run.expand(insertion, child.template)
            self._flatten_children(run, child, child_fragment)


STRATEGIES = {
    GenerationStrategyKind.BREADTH_FIRST_SPLICE: BreadthFirstSpliceStrategy,
    GenerationStrategyKind.RECURSIVE_TREE: RecursiveTreeStrategy,
}


# ============================================================================
# GENERATOR
# ============================================================================

class CyclicDungeonGenerator:
    """
    Entry point for generation.

    Args:
        library: Template library (read-only during generation)
        selector: Cycle-type policy; uniform over the library by default
        rules: Rule registry; None for pure structural rewriting
    """

    def __init__(self, library: CycleTemplateLibrary,
                 selector: Optional[CycleSelector] = None,
                 rules: Optional[CycleRuleRegistry] = None):
        self.library = library
        self.selector = selector or DefaultCycleSelector(library)
        self.rules = rules

    def generate(self, settings: Optional[GenerationSettings] = None) -> Optional[GenerationResult]:
        """
        Run one generation.

        Returns:
            GenerationResult, or None if the settings are invalid

        Raises:
            TemplateError: malformed template (e.g. seam on a missing edge)
            GraphIntegrityError: bookkeeping error while splicing
        """
        settings = settings or GenerationSettings()
        try:
            settings.validate()
        except SettingsError as e:
            logger.error(f"Invalid generation settings: {e}")
            return None

        context = GenerationContext.create(settings)
        run = _GenerationRun(self.library, self.selector, self.rules, context)
        strategy = STRATEGIES[settings.strategy]()

        logger.info(f"Generating dungeon (seed={settings.seed}, strategy={settings.strategy.value}, "
                    f"max_depth={settings.max_depth})")
        overall_type = strategy.run(run)
        result = run.finish(overall_type)

        logger.info(f"Generated {overall_type.value}: {result.graph.node_count} rooms, "
                    f"{result.graph.edge_count} passages, {len(result.cycles)} cycles, "
                    f"{len(result.insertion_history)} insertions")
        return result


def build_default_generator(selector: Optional[CycleSelector] = None,
                            rules: Optional[CycleRuleRegistry] = None) -> CyclicDungeonGenerator:
    """Generator over the built-in library with the default rules."""
    library = build_default_library()
    return CyclicDungeonGenerator(
        library,
        selector or DefaultCycleSelector(library),
        rules if rules is not None else build_default_rule_registry(),
    )


__all__ = [
    'CyclicDungeonGenerator', 'GenerationResult', 'GenerationSettings',
    'GenerationStrategyKind', 'InsertionEvent', 'InsertionState', 'SettingsError',
    'BreadthFirstSpliceStrategy', 'RecursiveTreeStrategy', 'CycleTreeNode',
    'build_default_generator',
]

"""
Command-Line Dungeon Generation
===============================

Generate one cyclic dungeon graph and print its structure and statistics.

Usage:
    python -m cyclegen.generate --seed 42 --max-depth 2

    # Reproduce the reference scenario
    python -m cyclegen.generate --seed 12345 --max-depth 1 --max-insertions 2 \\
        --root TwoAlternativePaths --sub TwoAlternativePaths

    # Tree strategy with a node budget
    python -m cyclegen.generate --strategy tree --max-nodes 40 --rewrite-probability 0.8
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from cyclegen.core.keys import KeyIdentityPolicy
from cyclegen.generation.context import GenerationSettings, GenerationStrategyKind
from cyclegen.generation.generator import GenerationResult, build_default_generator
from cyclegen.generation.selector import DefaultCycleSelector, FixedCycleSelector
from cyclegen.generation.templates import CycleType, build_default_library
from cyclegen.utils.graph_utils import graph_summary, validate_dungeon_graph

logger = logging.getLogger(__name__)


def format_result(result: GenerationResult) -> str:
    """Indented cycle tree followed by every room and passage."""
    lines = []

    def walk(cycle, indent):
        lines.append(f"{'  ' * indent}{cycle.id} {cycle.cycle_type.value} "
                     f"(depth {cycle.depth}, {cycle.entry} -> {cycle.exit})")
        for child in result.get_child_cycles(cycle.id):
            walk(child, indent + 1)

    lines.append("Cycles:")
    walk(result.root, 1)

    lines.append("Rooms:")
    for nid, node in result.graph.nodes.items():
        tags = ",".join(t.kind.name for t in node.tags)
        lines.append(f"  {nid} [{node.kind.name}] {node.debug_label or ''} "
                     f"depth={result.node_depth(nid)} tags={tags}")

    lines.append("Passages:")
    for eid, edge in result.graph.edges.items():
        gate = f" gate={[str(k) for k in edge.gate.required_keys]}" if edge.gate else ""
        lines.append(f"  {eid} {edge.from_node} -> {edge.to_node} {edge.traversal.name}{gate}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Generate a cyclic dungeon connectivity graph',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('--seed', type=int, default=12345, help='Random seed')
    parser.add_argument('--max-depth', type=int, default=3, help='Maximum cycle nesting depth')
    parser.add_argument(
        '--max-insertions', type=int, default=32,
        help='Total sub-cycle insertion budget (breadth-first strategy)'
    )
    parser.add_argument(
        '--strategy', type=str, default='breadth_first',
        choices=[k.value for k in GenerationStrategyKind],
        help='Generation strategy'
    )
    parser.add_argument('--root', type=str, default=None, help='Force the overall cycle type')
    parser.add_argument('--sub', type=str, default=None, help='Force the sub-cycle type')
    parser.add_argument('--max-nodes', type=int, default=50, help='Room budget (tree strategy)')
    parser.add_argument('--min-nodes', type=int, default=5, help='Room floor (tree strategy)')
    parser.add_argument(
        '--max-rewrites-per-cycle', type=int, default=3,
        help='Rewrites per cycle (tree strategy)'
    )
    parser.add_argument(
        '--rewrite-probability', type=float, default=0.7,
        help='Chance each seam is rewritten (tree strategy)'
    )
    parser.add_argument(
        '--key-policy', type=str, default='per_instance',
        choices=['per_instance', 'per_template'],
        help='Key identity merging across template instances'
    )
    parser.add_argument('--json', action='store_true', help='Print statistics as JSON only')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S',
    )

    try:
        root_type = CycleType.parse(args.root) if args.root else None
        sub_type = CycleType.parse(args.sub) if args.sub else None
    except ValueError as e:
        parser.error(str(e))

    library = build_default_library()
    if root_type is not None or sub_type is not None:
        default = DefaultCycleSelector(library)
        selector = _MixedSelector(root_type, sub_type, default)
    else:
        selector = None

    settings = GenerationSettings(
        seed=args.seed,
        max_depth=args.max_depth,
        max_insertions_total=args.max_insertions,
        strategy=GenerationStrategyKind(args.strategy),
        max_nodes=args.max_nodes,
        min_nodes=args.min_nodes,
        max_rewrites_per_cycle=args.max_rewrites_per_cycle,
        rewrite_probability=args.rewrite_probability,
        key_policy=KeyIdentityPolicy[args.key_policy.upper()],
    )

    generator = build_default_generator(selector=selector)
    result = generator.generate(settings)
    if result is None:
        logger.error("Generation failed")
        return 1

    stats = result.get_statistics()
    if args.json:
        print(json.dumps(stats, indent=2))
        return 0

    is_valid, errors = validate_dungeon_graph(result.graph)
    print(format_result(result))
    print("\n" + "=" * 60)
    print("STATISTICS")
    print("=" * 60)
    for key, value in {**stats, **graph_summary(result.graph)}.items():
        print(f"  {key}: {value}")
    print(f"  valid: {is_valid}")
    for error in errors:
        print(f"    - {error}")
    return 0


class _MixedSelector(FixedCycleSelector):
    """Fixed types where given on the command line, random otherwise."""

    def __init__(self, overall, sub, fallback: DefaultCycleSelector):
        super().__init__(overall or CycleType.TWO_ALTERNATIVE_PATHS, sub)
        self._overall_given = overall is not None
        self._sub_given = sub is not None
        self.fallback = fallback

    def select_overall(self, rng):
        return self.overall if self._overall_given else self.fallback.select_overall(rng)

    def select_sub(self, rng, depth):
        return self.sub if self._sub_given else self.fallback.select_sub(rng, depth)


if __name__ == '__main__':
    sys.exit(main())

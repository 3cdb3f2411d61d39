"""
cyclegen - Cyclic Dungeon Graph Generator
==========================================

Recursive graph rewriting over a small grammar of "cycle" blueprints.
Each blueprint is a loop from a Start room to a Goal room along two arcs;
marked arc edges (seams) are later replaced by nested sub-cycles.

Submodules:
- core: Strongly typed identifiers, output graph model, key registry
- generation: Templates, selector, rewrite engine, rules, generator
- utils: networkx export and structural validation

Usage:
    from cyclegen import build_default_generator, GenerationSettings

    generator = build_default_generator()
    result = generator.generate(GenerationSettings(seed=42, max_depth=2))
"""

__version__ = "1.0.0"
__author__ = "cyclegen contributors"

from cyclegen.generation.context import GenerationSettings, GenerationStrategyKind
from cyclegen.generation.generator import (
    CyclicDungeonGenerator,
    GenerationResult,
    build_default_generator,
)
from cyclegen.generation.templates import CycleType

__all__ = [
    'core', 'generation', 'utils',
    'CyclicDungeonGenerator', 'GenerationResult', 'GenerationSettings',
    'GenerationStrategyKind', 'CycleType', 'build_default_generator',
]

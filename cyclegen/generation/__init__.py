"""
Generation: cycle templates, selectors, rewrite engine, rules and the
generator orchestrator.
"""

from cyclegen.generation.templates import (
    CycleTemplate, CycleTemplateBuilder, CycleTemplateLibrary, CycleType,
    TemplateError, build_default_library, register_builtin_templates,
)
from cyclegen.generation.context import (
    GenerationContext, GenerationSettings, GenerationStrategyKind, SettingsError,
)
from cyclegen.generation.rewrite import (
    CycleRecord, Fragment, GraphRewriteEngine, InsertionPoint,
)
from cyclegen.generation.selector import (
    CycleSelector, DefaultCycleSelector, FixedCycleSelector, WeightedCycleSelector,
)
from cyclegen.generation.rules import (
    CycleRule, CycleRuleRegistry, MonsterPatrolRule, TwoKeysRule,
    build_default_rule_registry,
)
from cyclegen.generation.generator import (
    CyclicDungeonGenerator, GenerationResult, InsertionEvent, InsertionState,
    build_default_generator,
)

__all__ = [
    'CycleTemplate', 'CycleTemplateBuilder', 'CycleTemplateLibrary', 'CycleType',
    'TemplateError', 'build_default_library', 'register_builtin_templates',
    'GenerationContext', 'GenerationSettings', 'GenerationStrategyKind', 'SettingsError',
    'CycleRecord', 'Fragment', 'GraphRewriteEngine', 'InsertionPoint',
    'CycleSelector', 'DefaultCycleSelector', 'FixedCycleSelector', 'WeightedCycleSelector',
    'CycleRule', 'CycleRuleRegistry', 'MonsterPatrolRule', 'TwoKeysRule',
    'build_default_rule_registry',
    'CyclicDungeonGenerator', 'GenerationResult', 'InsertionEvent', 'InsertionState',
    'build_default_generator',
]

"""
Generation Settings and Run Context
===================================

GenerationSettings is the single configuration record for a run. Two
budget styles are supported, selected by `strategy`:

    BREADTH_FIRST_SPLICE  - max_depth + max_insertions_total
    RECURSIVE_TREE        - max_depth + max_nodes / min_nodes +
                            max_rewrites_per_cycle + rewrite_probability

GenerationContext bundles everything one run owns exclusively: the
settings, the seeded random source, the id allocator and the key registry.
It is created fresh by every generate() call and passed to whatever needs
it; nothing here is process-global.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from cyclegen.core.ids import IdAllocator
from cyclegen.core.keys import KeyIdentityPolicy, KeyRegistry

logger = logging.getLogger(__name__)


class SettingsError(ValueError):
    """Generation settings failed validation."""


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class GenerationStrategyKind(Enum):
    BREADTH_FIRST_SPLICE = "breadth_first"
    RECURSIVE_TREE = "tree"


@dataclass
class GenerationSettings:
    """Configuration for one generation run."""
    seed: int = 12345
    max_depth: int = 3
    max_insertions_total: int = 32
    strategy: GenerationStrategyKind = GenerationStrategyKind.BREADTH_FIRST_SPLICE

    # Tree-strategy budget
    max_nodes: int = 50
    min_nodes: int = 5
    max_rewrites_per_cycle: int = 3
    rewrite_probability: float = 0.7

    key_policy: KeyIdentityPolicy = KeyIdentityPolicy.PER_INSTANCE

    def problems(self) -> List[str]:
        """All validation problems, empty when the settings are usable."""
        problems = []
        if not _is_int(self.seed):
            problems.append(f"seed must be an integer, got {self.seed!r}")
        for name in ('max_depth', 'max_insertions_total', 'max_nodes',
                     'min_nodes', 'max_rewrites_per_cycle'):
            value = getattr(self, name)
            if not _is_int(value) or value < 0:
                problems.append(f"{name} must be a non-negative integer, got {value!r}")
        probability = self.rewrite_probability
        if not isinstance(probability, (int, float)) or isinstance(probability, bool):
            problems.append(f"rewrite_probability must be a number, got {probability!r}")
        elif not 0.0 <= probability <= 1.0:
            problems.append(f"rewrite_probability must be in [0, 1], got {probability}")
        if (_is_int(self.min_nodes) and _is_int(self.max_nodes)
                and self.min_nodes > self.max_nodes):
            problems.append(f"min_nodes ({self.min_nodes}) exceeds max_nodes ({self.max_nodes})")
        if not isinstance(self.strategy, GenerationStrategyKind):
            problems.append(f"unknown strategy {self.strategy!r}")
        if not isinstance(self.key_policy, KeyIdentityPolicy):
            problems.append(f"unknown key policy {self.key_policy!r}")
        return problems

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise SettingsError("; ".join(problems))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'seed': self.seed,
            'max_depth': self.max_depth,
            'max_insertions_total': self.max_insertions_total,
            'strategy': getattr(self.strategy, 'value', self.strategy),
            'max_nodes': self.max_nodes,
            'min_nodes': self.min_nodes,
            'max_rewrites_per_cycle': self.max_rewrites_per_cycle,
            'rewrite_probability': self.rewrite_probability,
            'key_policy': getattr(self.key_policy, 'name', self.key_policy),
        }


@dataclass
class GenerationContext:
    """State owned by exactly one generation run."""
    settings: GenerationSettings
    rng: random.Random
    ids: IdAllocator = field(default_factory=IdAllocator)
    keys: KeyRegistry = field(default_factory=KeyRegistry)

    @classmethod
    def create(cls, settings: GenerationSettings) -> 'GenerationContext':
        return cls(settings=settings, rng=random.Random(settings.seed))

"""
Cycle Selectors
===============

Policies deciding which cycle type to use for the overall (root) cycle and
for each nested sub-cycle. Selectors draw only from the random source they
are handed, which keeps generation reproducible for a fixed seed.
"""

import logging
import random
from typing import Dict, List, Optional, Sequence

from cyclegen.generation.templates import CycleTemplateLibrary, CycleType

logger = logging.getLogger(__name__)


class CycleSelector:
    """Base policy. Subclasses override select_overall and select_sub."""

    def select_overall(self, rng: random.Random) -> CycleType:
        raise NotImplementedError

    def select_sub(self, rng: random.Random, depth: int) -> CycleType:
        raise NotImplementedError


class DefaultCycleSelector(CycleSelector):
    """Uniform choice over a fixed list of types (library order by default)."""

    def __init__(self, library: Optional[CycleTemplateLibrary] = None,
                 types: Optional[Sequence[CycleType]] = None):
        if types is None:
            types = library.types() if library is not None else list(CycleType)
        self.types: List[CycleType] = list(types)
        if not self.types:
            raise ValueError("DefaultCycleSelector needs at least one cycle type")

    def select_overall(self, rng: random.Random) -> CycleType:
        return rng.choice(self.types)

    def select_sub(self, rng: random.Random, depth: int) -> CycleType:
        return rng.choice(self.types)


class FixedCycleSelector(CycleSelector):
    """Always returns the same root type and the same sub-cycle type."""

    def __init__(self, overall: CycleType, sub: Optional[CycleType] = None):
        self.overall = overall
        self.sub = sub if sub is not None else overall

    def select_overall(self, rng: random.Random) -> CycleType:
        return self.overall

    def select_sub(self, rng: random.Random, depth: int) -> CycleType:
        return self.sub


class WeightedCycleSelector(CycleSelector):
    """
    Weighted choice. Sub-cycle weights may differ from root weights, and
    `depth_decay` scales down the weight of types with many seams as depth
    grows so deep levels favour small cycles.
    """

    def __init__(self, weights: Dict[CycleType, float],
                 sub_weights: Optional[Dict[CycleType, float]] = None,
                 library: Optional[CycleTemplateLibrary] = None,
                 depth_decay: float = 0.0):
        for table in (weights, sub_weights or {}):
            negative = [t.value for t, w in table.items() if w < 0]
            if negative:
                raise ValueError(f"Negative weights for {negative}")
        if not weights or all(w <= 0 for w in weights.values()):
            raise ValueError("WeightedCycleSelector needs at least one positive weight")
        if sub_weights and all(w <= 0 for w in sub_weights.values()):
            raise ValueError("WeightedCycleSelector needs at least one positive sub weight")
        self.weights = dict(weights)
        self.sub_weights = dict(sub_weights) if sub_weights else dict(weights)
        self.library = library
        self.depth_decay = depth_decay

    def select_overall(self, rng: random.Random) -> CycleType:
        types = list(self.weights.keys())
        return rng.choices(types, weights=[self.weights[t] for t in types], k=1)[0]

    def select_sub(self, rng: random.Random, depth: int) -> CycleType:
        types = list(self.sub_weights.keys())
        weights = []
        for t in types:
            w = self.sub_weights[t]
            if self.depth_decay > 0 and self.library is not None and t in self.library:
                seams = len(self.library.get(t).insertions)
                w = w / (1.0 + self.depth_decay * depth * seams)
            weights.append(w)
        return rng.choices(types, weights=weights, k=1)[0]

"""
Shared fixtures for cyclegen tests.
"""

import pytest

from cyclegen.core.ids import IdAllocator
from cyclegen.core.keys import KeyRegistry
from cyclegen.generation.generator import CyclicDungeonGenerator
from cyclegen.generation.rewrite import GraphRewriteEngine
from cyclegen.generation.rules import build_default_rule_registry
from cyclegen.generation.selector import FixedCycleSelector
from cyclegen.generation.templates import CycleType, build_default_library


@pytest.fixture
def library():
    return build_default_library()


@pytest.fixture
def engine():
    return GraphRewriteEngine(IdAllocator(), KeyRegistry())


@pytest.fixture
def fixed_generator(library):
    """Factory: generator that always picks the given root/sub types."""
    def make(root=CycleType.TWO_ALTERNATIVE_PATHS, sub=None, rules=None):
        return CyclicDungeonGenerator(
            library,
            FixedCycleSelector(root, sub),
            rules if rules is not None else build_default_rule_registry(),
        )
    return make

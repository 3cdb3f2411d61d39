"""
Utility functions for generated dungeon graphs.
"""

from cyclegen.utils.graph_utils import (
    find_entrance, find_exit, find_orphan_locks, graph_summary, is_reachable,
    reachable_from, to_networkx, validate_dungeon_graph,
)

__all__ = [
    'find_entrance', 'find_exit', 'find_orphan_locks', 'graph_summary',
    'is_reachable', 'reachable_from', 'to_networkx', 'validate_dungeon_graph',
]

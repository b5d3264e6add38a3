"""
Helpers for walking section parent pointers held in memory.

Parent pointers are loaded as a ``{section_id: parent_id}`` map of live
sections. Every walk keeps a visited set, so pre-existing cycles in stored
data terminate instead of looping.
"""

from collections import defaultdict
from collections.abc import Iterable


def load_parent_map(project_id) -> dict:
    """``{section_id: parent_id}`` for every live section in a project."""
    from casetreeserver.repository.models import Section

    return dict(Section.objects.in_project(project_id).values_list("id", "parent_id"))


def would_create_cycle(section_id, proposed_parent_id, parent_map: dict) -> bool:
    """
    True when making ``proposed_parent_id`` the parent of ``section_id``
    would put the section inside its own subtree.
    """
    seen = set()
    current = proposed_parent_id
    while current is not None and current not in seen:
        if current == section_id:
            return True
        seen.add(current)
        current = parent_map.get(current)
    return False


def collect_descendant_ids(root_ids: Iterable, parent_map: dict) -> set:
    """All section ids below ``root_ids`` (roots excluded unless re-reached)."""
    children_by_parent = defaultdict(list)
    for child_id, parent_id in parent_map.items():
        if parent_id is not None:
            children_by_parent[parent_id].append(child_id)

    descendants: set = set()
    stack = list(root_ids)
    while stack:
        for child_id in children_by_parent.get(stack.pop(), []):
            if child_id not in descendants:
                descendants.add(child_id)
                stack.append(child_id)
    return descendants

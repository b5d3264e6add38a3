"""
Assembles the nested test repository tree from three flat collections.

The builder is a pure transform: it receives live, same-project suites,
sections and cases (model instances or any objects exposing the same
attributes) and never touches the database.

Shape of the result:

    {
        "tree":     [suite, ..., top-level section, ...],
        "unfiled":  [case, ...],
        "orphaned": [section, ...],
    }

Ordering rules:
- every sibling bucket is sorted by ``(display_order, id)`` so identical
  inputs always produce identical output
- the project root lists suites first, then top-level sections; the two kinds
  do not share a display order sequence
- a section's children are its child sections followed by its cases

Parent pointers are not guaranteed to be acyclic. Sections that can not be
reached from a root (members of a parent cycle and anything below them) are
returned under ``orphaned`` instead of being expanded forever.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from casetreeserver.types.dicts import RepositoryTreePythonType, TreeNodePythonType
from casetreeserver.types.enums import NodeKind

logger = logging.getLogger(__name__)

ROOT_BUCKET = "root"


def sibling_sort_key(node) -> tuple[int, str]:
    return node.display_order, str(node.id)


class RepositoryTreeBuilder:
    """
    Usage:
        result = RepositoryTreeBuilder(suites, sections, cases).build()
    """

    def __init__(self, suites: Iterable, sections: Iterable, cases: Iterable):
        self.suites = sorted(suites, key=sibling_sort_key)
        self.sections = sorted(sections, key=sibling_sort_key)
        self.cases = sorted(cases, key=sibling_sort_key)

        suite_ids = {suite.id for suite in self.suites}
        self._sections_by_id = {section.id: section for section in self.sections}

        # Inputs are pre-sorted, so every bucket comes out sorted too
        self._sections_by_parent: dict = defaultdict(list)
        for section in self.sections:
            self._sections_by_parent[self._bucket_key(section, suite_ids)].append(
                section
            )

        self._cases_by_section: dict = defaultdict(list)
        for case in self.cases:
            # Cases pointing at a section we were not given are unfiled
            key = case.section_id if case.section_id in self._sections_by_id else None
            self._cases_by_section[key].append(case)

        self._placed: set = set()

    def _bucket_key(self, section, suite_ids: set):
        if section.parent_id is not None and section.parent_id in self._sections_by_id:
            return NodeKind.SECTION, section.parent_id
        if section.suite_id is not None and section.suite_id in suite_ids:
            return NodeKind.SUITE, section.suite_id
        return ROOT_BUCKET

    def build(self) -> RepositoryTreePythonType:
        self._placed = set()

        tree: list[TreeNodePythonType] = [
            self._suite_node(suite) for suite in self.suites
        ]
        tree.extend(
            self._section_node(section, frozenset())
            for section in self._sections_by_parent.get(ROOT_BUCKET, [])
        )

        orphaned = self._collect_orphans()
        unfiled = [
            self._case_node(case) for case in self._cases_by_section.get(None, [])
        ]

        return {"tree": tree, "unfiled": unfiled, "orphaned": orphaned}

    def _suite_node(self, suite) -> TreeNodePythonType:
        children = [
            self._section_node(section, frozenset())
            for section in self._sections_by_parent.get((NodeKind.SUITE, suite.id), [])
        ]
        return {
            "id": str(suite.id),
            "name": suite.name,
            "type": NodeKind.SUITE.value,
            "displayOrder": suite.display_order,
            "children": children,
        }

    def _section_node(self, section, path: frozenset) -> TreeNodePythonType:
        path = path | {section.id}
        self._placed.add(section.id)

        children: list[TreeNodePythonType] = []
        for child in self._sections_by_parent.get((NodeKind.SECTION, section.id), []):
            if child.id in path:
                logger.warning(
                    f"Section {child.id} is an ancestor of section {section.id}; "
                    f"not descending into parent cycle"
                )
                continue
            children.append(self._section_node(child, path))

        children.extend(
            self._case_node(case) for case in self._cases_by_section.get(section.id, [])
        )

        return {
            "id": str(section.id),
            "name": section.name,
            "type": NodeKind.SECTION.value,
            "displayOrder": section.display_order,
            "children": children,
        }

    def _case_node(self, case) -> TreeNodePythonType:
        return {
            "id": str(case.id),
            "name": case.title,
            "type": NodeKind.CASE.value,
            "displayOrder": case.display_order,
            "data": {
                "priority": case.priority,
                "status": case.status,
                "type": case.case_type,
                "caseKey": case.case_key,
            },
        }

    def _collect_orphans(self) -> list[TreeNodePythonType]:
        """Surface every section the root walk never reached."""
        orphaned: list[TreeNodePythonType] = []
        for section in self.sections:
            if section.id in self._placed:
                continue
            entry = self._cycle_entry(section)
            logger.warning(
                f"Section {entry.id} is part of a parent cycle; "
                "returning its subtree as orphaned"
            )
            orphaned.append(self._section_node(entry, frozenset()))
        return orphaned

    def _cycle_entry(self, section):
        """
        Follow parent pointers from an unreached section until a section
        repeats, and return the lowest-sorted member of that cycle.
        """
        chain: list = []
        position: dict = {}
        current = section
        while current is not None and current.id not in position:
            position[current.id] = len(chain)
            chain.append(current)
            parent = (
                self._sections_by_id.get(current.parent_id)
                if current.parent_id is not None
                else None
            )
            current = (
                parent
                if parent is not None and parent.id not in self._placed
                else None
            )

        if current is None:
            return chain[-1]
        return min(chain[position[current.id]:], key=sibling_sort_key)


def build_repository_tree(
    suites: Iterable, sections: Iterable, cases: Iterable
) -> RepositoryTreePythonType:
    """Convenience wrapper around :class:`RepositoryTreeBuilder`."""
    return RepositoryTreeBuilder(suites, sections, cases).build()

"""
Display order allocation for newly created repository nodes.

A new node is appended to the end of its sibling bucket:
``max(live display_order in bucket, or -1 when empty) + 1``.

The value is read at creation time without locking, so two concurrent
creators in the same bucket may both receive the same position. The
collision only affects presentation and disappears the next time the bucket
is resequenced by a reorder batch, so it is not treated as an error.
"""

from __future__ import annotations

from django.db.models import Max


class DisplayOrderAllocator:
    """
    Computes the next display order for each kind of sibling scope.

    Scopes:
    - suites: the project
    - sections: the parent section if set, else the suite (with no parent),
      else the project root (no suite, no parent)
    - cases: the section, or the unfiled bucket when ``section_id`` is None
    """

    @classmethod
    def _next_in(cls, queryset) -> int:
        current = queryset.aggregate(value=Max("display_order"))["value"]
        return (current if current is not None else -1) + 1

    @classmethod
    def next_suite_order(cls, project_id) -> int:
        from casetreeserver.repository.models import Suite

        return cls._next_in(Suite.objects.in_project(project_id))

    @classmethod
    def next_section_order(cls, project_id, suite_id=None, parent_id=None) -> int:
        from casetreeserver.repository.models import Section

        qs = Section.objects.in_project(project_id)
        if parent_id is not None:
            qs = qs.filter(parent_id=parent_id)
        elif suite_id is not None:
            qs = qs.filter(parent__isnull=True, suite_id=suite_id)
        else:
            qs = qs.filter(parent__isnull=True, suite__isnull=True)
        return cls._next_in(qs)

    @classmethod
    def next_case_order(cls, project_id, section_id=None) -> int:
        from casetreeserver.repository.models import Case

        qs = Case.objects.in_project(project_id)
        if section_id is not None:
            qs = qs.filter(section_id=section_id)
        else:
            qs = qs.filter(section__isnull=True)
        return cls._next_in(qs)

from django.db.models import QuerySet
from django.utils import timezone


class SoftDeleteQuerySet(QuerySet):
    """
    QuerySet for soft-deletable, project-scoped records.

    Soft-deleted rows keep their data but carry a ``deleted_at`` timestamp,
    and every read path in the repository goes through ``alive()`` or
    ``in_project()`` so they never leak back into trees or order lookups.
    """

    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def deleted(self):
        return self.filter(deleted_at__isnull=False)

    def in_project(self, project_id):
        """Live rows belonging to a single project."""
        return self.filter(project_id=project_id, deleted_at__isnull=True)

    def soft_delete(self, user=None) -> int:
        """Stamp every live row in the queryset as deleted. Returns row count."""
        now = timezone.now()
        return self.alive().update(
            deleted_at=now,
            deleted_by=user,
            modified=now,
            modified_by=user,
        )

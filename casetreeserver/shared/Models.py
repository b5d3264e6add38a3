import uuid

import django
from django.contrib.auth import get_user_model
from django.utils import timezone

from casetreeserver.shared.QuerySets import SoftDeleteQuerySet


class AuditedModel(django.db.models.Model):
    """
    Abstract base for every soft-deletable record.

    Carries the audit trail (who created, modified and deleted a row, and
    when). Rows are never physically removed by the application; a non-null
    ``deleted_at`` marks them inactive.
    """

    id = django.db.models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False
    )

    created = django.db.models.DateTimeField(default=timezone.now)
    modified = django.db.models.DateTimeField(default=timezone.now)
    creator = django.db.models.ForeignKey(
        get_user_model(),
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    modified_by = django.db.models.ForeignKey(
        get_user_model(),
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    deleted_at = django.db.models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = django.db.models.ForeignKey(
        get_user_model(),
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def save(self, *args, **kwargs):
        """On save, update timestamps"""
        if not self._state.adding:
            self.modified = timezone.now()
        return super().save(*args, **kwargs)


class ProjectScopedModel(AuditedModel):
    """Abstract base for records that live inside exactly one project."""

    project = django.db.models.ForeignKey(
        "projects.Project",
        on_delete=django.db.models.CASCADE,
        related_name="%(class)ss",
    )
    display_order = django.db.models.PositiveIntegerField(
        default=0,
        help_text="Presentation order within the sibling scope (advisory)",
    )

    class Meta:
        abstract = True

import django
from django.core.exceptions import ValidationError

from casetreeserver.shared.Models import ProjectScopedModel


class CasePriorityChoices(django.db.models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


class CaseTypeChoices(django.db.models.TextChoices):
    FUNCTIONAL = "functional", "Functional"
    SMOKE = "smoke", "Smoke"
    REGRESSION = "regression", "Regression"


class CaseStatusChoices(django.db.models.TextChoices):
    DRAFT = "draft", "Draft"
    ACTIVE = "active", "Active"
    DEPRECATED = "deprecated", "Deprecated"


class Suite(ProjectScopedModel):
    """
    Root-level grouping of the test repository. A suite never has a parent;
    it is always a root of the project's forest.
    """

    name = django.db.models.CharField(max_length=255)
    description = django.db.models.TextField(blank=True, default="")

    class Meta:
        ordering = ("display_order", "id")
        indexes = [
            django.db.models.Index(
                fields=["project", "display_order"], name="suite_project_order_idx"
            ),
        ]

    def __str__(self):
        return self.name


class Section(ProjectScopedModel):
    """
    Nestable folder inside a project.

    - parent set: nested under that section
    - suite set, no parent: directly under the suite
    - neither: top-level section, sibling of the suites

    Nesting is not checked for cycles at the storage layer. Consumers walk
    parent pointers with a visited set.
    """

    name = django.db.models.CharField(max_length=255)
    description = django.db.models.TextField(blank=True, default="")
    suite = django.db.models.ForeignKey(
        Suite,
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="sections",
    )
    parent = django.db.models.ForeignKey(
        "self",
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="children",
    )

    class Meta:
        ordering = ("display_order", "id")
        indexes = [
            django.db.models.Index(
                fields=["project", "suite"], name="section_project_suite_idx"
            ),
            django.db.models.Index(
                fields=["project", "parent"], name="section_project_parent_idx"
            ),
        ]

    def save(self, *args, **kwargs):
        """Validate parent linkage stays inside the project before saving"""
        if self.parent_id is not None:
            if self.parent_id == self.id:
                raise ValidationError("A section cannot be its own parent")
            if self.parent.project_id != self.project_id:
                raise ValidationError("Section parent must belong to the same project")
        if self.suite_id is not None and self.suite.project_id != self.project_id:
            raise ValidationError("Section suite must belong to the same project")

        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Case(ProjectScopedModel):
    """
    A test case. Filed under at most one section; a case with no section is
    unfiled. Cases never attach directly to a suite.
    """

    title = django.db.models.CharField(max_length=512)
    description = django.db.models.TextField(null=True, blank=True)
    preconditions = django.db.models.TextField(null=True, blank=True)
    case_type = django.db.models.CharField(
        max_length=32,
        choices=CaseTypeChoices.choices,
        default=CaseTypeChoices.FUNCTIONAL,
    )
    priority = django.db.models.CharField(
        max_length=16,
        choices=CasePriorityChoices.choices,
        default=CasePriorityChoices.MEDIUM,
    )
    status = django.db.models.CharField(
        max_length=16,
        choices=CaseStatusChoices.choices,
        default=CaseStatusChoices.DRAFT,
    )
    section = django.db.models.ForeignKey(
        Section,
        on_delete=django.db.models.SET_NULL,
        null=True,
        blank=True,
        related_name="cases",
    )
    case_number = django.db.models.PositiveIntegerField(null=True, blank=True)
    case_key = django.db.models.CharField(max_length=32, null=True, blank=True)

    class Meta:
        ordering = ("display_order", "id")
        indexes = [
            django.db.models.Index(
                fields=["project", "section"], name="case_project_section_idx"
            ),
            django.db.models.Index(fields=["case_key"], name="case_key_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.section_id is not None and self.section.project_id != self.project_id:
            raise ValidationError("Case section must belong to the same project")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.case_key or self.id}: {self.title}"

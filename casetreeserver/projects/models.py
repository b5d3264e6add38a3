import django
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from casetreeserver.shared.Models import AuditedModel
from casetreeserver.types.enums import MemberRole


class MemberRoleChoices(django.db.models.TextChoices):
    """Organization roles. Owners, admins and members may edit the repository."""

    OWNER = MemberRole.OWNER.value, "Owner"
    ADMIN = MemberRole.ADMIN.value, "Admin"
    MEMBER = MemberRole.MEMBER.value, "Member"
    VIEWER = MemberRole.VIEWER.value, "Viewer"


class Organization(django.db.models.Model):
    """
    Workspace that owns projects. Membership (and therefore access to every
    project's test repository) is granted at this level.
    """

    name = django.db.models.CharField(max_length=255)
    slug = django.db.models.SlugField(max_length=128, unique=True)
    created = django.db.models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("name",)

    def __str__(self):
        return self.name


class Project(AuditedModel):
    """
    Tenant boundary of the test repository. Every suite, section and case
    belongs to exactly one project and is never read or written across
    project boundaries.
    """

    organization = django.db.models.ForeignKey(
        Organization,
        on_delete=django.db.models.CASCADE,
        related_name="projects",
    )
    name = django.db.models.CharField(max_length=255)
    key = django.db.models.CharField(
        max_length=16,
        help_text="Short uppercase code used to build case keys (e.g. WEB-12)",
    )
    description = django.db.models.TextField(blank=True, default="")
    display_order = django.db.models.PositiveIntegerField(default=0)
    next_case_number = django.db.models.PositiveIntegerField(
        default=1,
        help_text="Counter used to number new test cases",
    )

    class Meta:
        ordering = ("display_order", "name")
        indexes = [
            django.db.models.Index(fields=["organization"], name="project_org_idx"),
        ]
        constraints = [
            django.db.models.UniqueConstraint(
                fields=["organization", "key"],
                condition=Q(deleted_at__isnull=True),
                name="unique_live_project_key_per_organization",
            ),
        ]

    def save(self, *args, **kwargs):
        self.key = (self.key or "").strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.organization.slug}/{self.key}"


class Membership(django.db.models.Model):
    """A user's role inside an organization."""

    organization = django.db.models.ForeignKey(
        Organization,
        on_delete=django.db.models.CASCADE,
        related_name="memberships",
    )
    user = django.db.models.ForeignKey(
        get_user_model(),
        on_delete=django.db.models.CASCADE,
        related_name="memberships",
    )
    role = django.db.models.CharField(
        max_length=16,
        choices=MemberRoleChoices.choices,
        default=MemberRoleChoices.MEMBER,
    )
    created = django.db.models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            django.db.models.UniqueConstraint(
                fields=["organization", "user"],
                name="unique_membership_per_organization",
            ),
        ]

    def __str__(self):
        return f"{self.user} ({self.role}) in {self.organization}"

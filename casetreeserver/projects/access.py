"""
ProjectAccessGuard - resolves caller identity into a per-project role.

Access to a project's test repository is derived from the caller's
membership in the organization that owns the project:

- Superusers are treated as owners of every project
- Anonymous users are always denied
- Any membership role grants READ access
- WRITE access (create, move, reorder, delete) requires owner, admin or member
- A project that does not exist or is soft-deleted is reported as not found
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from casetreeserver.shared.errors import AccessDeniedError, NotFoundError
from casetreeserver.types.enums import MemberRole

if TYPE_CHECKING:
    from casetreeserver.projects.models import Project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessGrant:
    project: Project
    granted: bool
    role: Optional[MemberRole] = None

    @property
    def can_write(self) -> bool:
        return self.granted and self.role in MemberRole.write_roles()


class ProjectAccessGuard:
    """
    Resolves ``(project_id, user)`` into an :class:`AccessGrant`.

    Usage:
        grant = ProjectAccessGuard.authorize(project_id, user)
        if grant.granted: ...

        # Or raise on failure
        project = ProjectAccessGuard.require(project_id, user, write=True).project
    """

    @classmethod
    def get_project(cls, project_id) -> Project:
        """Fetch a live project or raise NotFoundError."""
        from django.core.exceptions import ValidationError

        from casetreeserver.projects.models import Project

        try:
            return (
                Project.objects.alive()
                .select_related("organization")
                .get(pk=project_id)
            )
        except (Project.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError("Project not found")

    @classmethod
    def authorize(cls, project_id, user) -> AccessGrant:
        """
        Resolve the caller's role in a project.

        Args:
            project_id: Primary key of the project
            user: Requesting user (may be anonymous)

        Returns:
            AccessGrant with ``granted`` False when the user has no role

        Raises:
            NotFoundError: project does not exist or is soft-deleted
        """
        from casetreeserver.projects.models import Membership

        project = cls.get_project(project_id)

        if user is None or user.is_anonymous:
            return AccessGrant(project=project, granted=False)

        if user.is_superuser:
            return AccessGrant(project=project, granted=True, role=MemberRole.OWNER)

        role = (
            Membership.objects.filter(
                organization_id=project.organization_id,
                user_id=user.id,
            )
            .values_list("role", flat=True)
            .first()
        )
        if role is None:
            return AccessGrant(project=project, granted=False)

        return AccessGrant(project=project, granted=True, role=MemberRole(role))

    @classmethod
    def require(cls, project_id, user, write: bool = False) -> AccessGrant:
        """
        Authorize and raise unless the caller holds the needed role.

        Raises:
            NotFoundError: project does not exist
            AccessDeniedError: no membership, or read-only role for a write
        """
        grant = cls.authorize(project_id, user)

        if not grant.granted:
            logger.info(
                f"Denied access to project {project_id} "
                f"for user {getattr(user, 'id', None)}"
            )
            raise AccessDeniedError(
                "Permission denied: You do not have access to this project"
            )

        if write and not grant.can_write:
            logger.info(
                f"Denied write to project {project_id} for user {user.id} "
                f"with role {grant.role.value}"
            )
            raise AccessDeniedError(
                "Permission denied: You do not have write access to this project"
            )

        return grant

import uuid

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.utils import timezone

from casetreeserver.projects.access import ProjectAccessGuard
from casetreeserver.projects.models import Project
from casetreeserver.shared.errors import AccessDeniedError, NotFoundError
from casetreeserver.tests.base import RepositoryTestCase
from casetreeserver.types.enums import MemberRole

User = get_user_model()


class TestProjectAccessGuard(RepositoryTestCase):
    def test_member_roles_resolve(self):
        owner = ProjectAccessGuard.authorize(self.project.id, self.owner)
        viewer = ProjectAccessGuard.authorize(self.project.id, self.viewer)

        self.assertTrue(owner.granted)
        self.assertEqual(owner.role, MemberRole.OWNER)
        self.assertTrue(owner.can_write)
        self.assertTrue(viewer.granted)
        self.assertFalse(viewer.can_write)

    def test_viewer_can_read_but_not_write(self):
        grant = ProjectAccessGuard.require(self.project.id, self.viewer)
        self.assertEqual(grant.project, self.project)

        with self.assertRaises(AccessDeniedError):
            ProjectAccessGuard.require(self.project.id, self.viewer, write=True)

    def test_member_can_write(self):
        grant = ProjectAccessGuard.require(self.project.id, self.member, write=True)
        self.assertEqual(grant.role, MemberRole.MEMBER)

    def test_user_from_another_organization_is_denied(self):
        self.assertFalse(
            ProjectAccessGuard.authorize(self.project.id, self.outsider).granted
        )
        with self.assertRaises(AccessDeniedError):
            ProjectAccessGuard.require(self.project.id, self.outsider)

    def test_anonymous_is_denied(self):
        with self.assertRaises(AccessDeniedError):
            ProjectAccessGuard.require(self.project.id, AnonymousUser())

    def test_superuser_is_owner_everywhere(self):
        admin = User.objects.create_superuser(username="root", password="test")

        grant = ProjectAccessGuard.require(self.other_project.id, admin, write=True)

        self.assertEqual(grant.role, MemberRole.OWNER)

    def test_missing_or_deleted_project_is_not_found(self):
        with self.assertRaises(NotFoundError):
            ProjectAccessGuard.authorize(uuid.uuid4(), self.owner)
        with self.assertRaises(NotFoundError):
            ProjectAccessGuard.authorize("not-a-uuid", self.owner)

        Project.objects.filter(pk=self.project.pk).update(deleted_at=timezone.now())
        with self.assertRaises(NotFoundError):
            ProjectAccessGuard.require(self.project.id, self.owner)

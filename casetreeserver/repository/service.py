"""
CaseRepositoryService - Centralized service for the test repository tree.

Every outer surface (GraphQL mutations, JSON views) goes through this module,
which owns permission checks, validation and writes for suites, sections and
test cases.

Read Operations:
- get_repository_tree(): assemble the project's forest + unfiled cases
- aget_repository_tree(): same, with the three reads issued concurrently

Write Operations:
- create_suite(), create_section(), create_case()
- update_suite(), update_section(), update_case() (edit and/or move)
- delete_suite(), delete_section(), delete_case() (soft delete, cascading)
- reorder(): batched move/reorder via ReorderCoordinator

Permission Model:
- Reads require any membership role in the project's organization
- Writes require owner, admin or member
- Failures raise the errors in casetreeserver.shared.errors; nothing is
  written before every request-level check has passed

Consistency:
- Reads are recomputed from the database on every call; no tree state is
  cached between requests
- A read that runs while a non-atomic reorder batch is being applied may
  observe some items moved and others not
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from django.core.exceptions import ValidationError as ModelValidationError
from django.db import DatabaseError, transaction
from django.db.models import F

from casetreeserver.projects.access import ProjectAccessGuard
from casetreeserver.repository.hierarchy import (
    collect_descendant_ids,
    load_parent_map,
    would_create_cycle,
)
from casetreeserver.repository.ordering import DisplayOrderAllocator
from casetreeserver.repository.reorder import UNSET, ReorderCoordinator, ReorderOutcome
from casetreeserver.repository.tree_builder import build_repository_tree
from casetreeserver.shared.errors import (
    InputValidationError,
    NotFoundError,
    StorageError,
)
from casetreeserver.types.dicts import RepositoryTreePythonType
from config.telemetry import record_event

if TYPE_CHECKING:
    from django.contrib.auth import get_user_model

    from casetreeserver.repository.models import Case, Section, Suite

    User = get_user_model()

logger = logging.getLogger(__name__)


NAME_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 512


def _clean_name(value, label: str = "Name", max_length: int = NAME_MAX_LENGTH) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"{label} is required")
    value = value.strip()
    if len(value) > max_length:
        raise InputValidationError(f"{label} must be at most {max_length} characters")
    return value


def _validate_case_choices(priority, case_type) -> None:
    from casetreeserver.repository.models import CasePriorityChoices, CaseTypeChoices

    if priority and priority not in CasePriorityChoices.values:
        raise InputValidationError(
            f"Priority must be one of: {', '.join(CasePriorityChoices.values)}"
        )
    if case_type and case_type not in CaseTypeChoices.values:
        raise InputValidationError(
            f"Type must be one of: {', '.join(CaseTypeChoices.values)}"
        )


def _require_project_id(project_id) -> None:
    if not project_id:
        raise InputValidationError("Project ID is required")


class CaseRepositoryService:
    """
    Centralized, permission-aware operations on the test repository tree.

    Usage:
        tree = CaseRepositoryService.get_repository_tree(user, project_id)
        suite = CaseRepositoryService.create_suite(user, project_id, "Checkout")
        section = CaseRepositoryService.create_section(
            user, project_id, "Payments", suite_id=suite.id
        )
        outcome = CaseRepositoryService.reorder(user, project_id, items)
    """

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    @classmethod
    def _live_querysets(cls, project_id):
        from casetreeserver.repository.models import Case, Section, Suite

        return (
            Suite.objects.in_project(project_id),
            Section.objects.in_project(project_id),
            Case.objects.in_project(project_id),
        )

    @classmethod
    def get_repository_tree(cls, user: User, project_id) -> RepositoryTreePythonType:
        """
        Build the project's tree from a fresh read of suites, sections and cases.

        Returns:
            {"tree": [...], "unfiled": [...], "orphaned": [...]}

        Raises:
            InputValidationError, NotFoundError, AccessDeniedError
        """
        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user).project

        suites, sections, cases = cls._live_querysets(project.id)
        try:
            return build_repository_tree(list(suites), list(sections), list(cases))
        except DatabaseError as e:
            logger.exception(f"Failed to read repository tree for project {project.id}")
            raise StorageError("Failed to load test repository") from e

    @classmethod
    async def aget_repository_tree(
        cls, user: User, project_id
    ) -> RepositoryTreePythonType:
        """Async variant of get_repository_tree(); the three reads run concurrently."""
        from asgiref.sync import sync_to_async

        _require_project_id(project_id)
        grant = await sync_to_async(ProjectAccessGuard.require)(project_id, user)

        async def _fetch(queryset) -> list:
            return [obj async for obj in queryset]

        try:
            suites, sections, cases = await asyncio.gather(
                *(_fetch(qs) for qs in cls._live_querysets(grant.project.id))
            )
        except DatabaseError as e:
            logger.exception(
                f"Failed to read repository tree for project {grant.project.id}"
            )
            raise StorageError("Failed to load test repository") from e

        return build_repository_tree(suites, sections, cases)

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    @classmethod
    def _get_live(cls, model, project_id, pk, label: str):
        """Fetch a live row of ``model`` inside the project, or raise NotFoundError."""
        try:
            return model.objects.in_project(project_id).get(pk=pk)
        except (model.DoesNotExist, ModelValidationError, ValueError):
            raise NotFoundError(f"{label} not found")

    @classmethod
    def create_suite(
        cls,
        user: User,
        project_id,
        name: str,
        description: str = "",
    ) -> Suite:
        """
        Create a suite at the end of the project's suite list.

        Raises:
            InputValidationError: blank name or missing project id
            NotFoundError, AccessDeniedError
        """
        from casetreeserver.repository.models import Suite

        name = _clean_name(name)
        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user, write=True).project

        try:
            suite = Suite.objects.create(
                project=project,
                name=name,
                description=(description or "").strip(),
                display_order=DisplayOrderAllocator.next_suite_order(project.id),
                creator=user,
                modified_by=user,
            )
        except DatabaseError as e:
            logger.exception(f"Failed to create suite in project {project.id}")
            raise StorageError("Failed to create suite") from e

        logger.info(
            f"Created suite '{name}' (id={suite.id}) in project {project.id} "
            f"by user {user.id}"
        )
        record_event("suite_created")
        return suite

    @classmethod
    def create_section(
        cls,
        user: User,
        project_id,
        name: str,
        suite_id=None,
        parent_id=None,
        description: str = "",
    ) -> Section:
        """
        Create a section under a parent section, a suite, or the project root.

        Validations:
            - Name is not blank
            - Suite and parent (if provided) are live rows of the same project

        Raises:
            InputValidationError, NotFoundError, AccessDeniedError
        """
        from casetreeserver.repository.models import Section, Suite

        name = _clean_name(name)
        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user, write=True).project

        suite = None
        if suite_id:
            suite = cls._get_live(Suite, project.id, suite_id, "Suite")
        parent = None
        if parent_id:
            parent = cls._get_live(Section, project.id, parent_id, "Parent section")

        try:
            section = Section.objects.create(
                project=project,
                suite=suite,
                parent=parent,
                name=name,
                description=(description or "").strip(),
                display_order=DisplayOrderAllocator.next_section_order(
                    project.id,
                    suite_id=suite.id if suite else None,
                    parent_id=parent.id if parent else None,
                ),
                creator=user,
                modified_by=user,
            )
        except DatabaseError as e:
            logger.exception(f"Failed to create section in project {project.id}")
            raise StorageError("Failed to create section") from e

        logger.info(
            f"Created section '{name}' (id={section.id}) in project {project.id} "
            f"by user {user.id}"
        )
        record_event("section_created")
        return section

    @classmethod
    def create_case(
        cls,
        user: User,
        project_id,
        title: str,
        section_id=None,
        description: Optional[str] = None,
        preconditions: Optional[str] = None,
        priority: Optional[str] = None,
        case_type: Optional[str] = None,
    ) -> Case:
        """
        Create a test case in a section (or unfiled when ``section_id`` is None).

        The case number is taken from the project's counter inside the same
        transaction as the insert, so keys are never reused.

        Raises:
            InputValidationError: blank title, unknown priority or type
            NotFoundError, AccessDeniedError
        """
        from casetreeserver.projects.models import Project
        from casetreeserver.repository.models import (
            Case,
            CasePriorityChoices,
            CaseTypeChoices,
            Section,
        )

        title = _clean_name(title, "Title", TITLE_MAX_LENGTH)
        _require_project_id(project_id)
        _validate_case_choices(priority, case_type)

        project = ProjectAccessGuard.require(project_id, user, write=True).project

        section = None
        if section_id:
            section = cls._get_live(Section, project.id, section_id, "Section")

        try:
            with transaction.atomic():
                Project.objects.filter(pk=project.pk).update(
                    next_case_number=F("next_case_number") + 1
                )
                case_number = (
                    Project.objects.filter(pk=project.pk)
                    .values_list("next_case_number", flat=True)
                    .get()
                    - 1
                )
                case = Case.objects.create(
                    project=project,
                    section=section,
                    title=title,
                    description=(description or "").strip() or None,
                    preconditions=(preconditions or "").strip() or None,
                    priority=priority or CasePriorityChoices.MEDIUM,
                    case_type=case_type or CaseTypeChoices.FUNCTIONAL,
                    case_number=case_number,
                    case_key=f"{project.key}-{case_number}",
                    display_order=DisplayOrderAllocator.next_case_order(
                        project.id, section_id=section.id if section else None
                    ),
                    creator=user,
                    modified_by=user,
                )
        except DatabaseError as e:
            logger.exception(f"Failed to create case in project {project.id}")
            raise StorageError("Failed to create test case") from e

        logger.info(
            f"Created case {case.case_key} (id={case.id}) in project {project.id} "
            f"by user {user.id}"
        )
        record_event("case_created")
        return case

    # =========================================================================
    # UPDATE OPERATIONS
    # =========================================================================

    @classmethod
    def update_suite(
        cls,
        user: User,
        project_id,
        suite_id,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Suite:
        """Rename a suite and/or change its description."""
        from casetreeserver.repository.models import Suite

        _require_project_id(project_id)
        if name is not None:
            name = _clean_name(name)
        project = ProjectAccessGuard.require(project_id, user, write=True).project
        suite = cls._get_live(Suite, project.id, suite_id, "Suite")

        if name is not None:
            suite.name = name
        if description is not None:
            suite.description = description.strip()
        suite.modified_by = user

        try:
            suite.save()
        except DatabaseError as e:
            logger.exception(f"Failed to update suite {suite.id}")
            raise StorageError("Failed to update suite") from e

        logger.info(f"Updated suite {suite.id} by user {user.id}")
        return suite

    @classmethod
    def update_section(
        cls,
        user: User,
        project_id,
        section_id,
        name: Optional[str] = None,
        suite_id=UNSET,
        parent_id=UNSET,
    ) -> Section:
        """
        Rename and/or move a section.

        ``suite_id`` / ``parent_id`` left as UNSET keep their stored value;
        None (or "") detaches the section from its suite / parent.

        Validations:
            - Cannot set parent to the section itself
            - Cannot move the section into one of its descendants
            - New suite/parent must be live rows of the same project
        """
        from casetreeserver.repository.models import Section, Suite

        _require_project_id(project_id)
        if name is not None:
            name = _clean_name(name)
        project = ProjectAccessGuard.require(project_id, user, write=True).project
        section = cls._get_live(Section, project.id, section_id, "Section")

        if parent_id is not UNSET:
            if parent_id and str(parent_id) == str(section.id):
                raise InputValidationError("Cannot set parent to self")
            parent = (
                cls._get_live(Section, project.id, parent_id, "Parent section")
                if parent_id
                else None
            )
            if parent is not None and would_create_cycle(
                section.id, parent.id, load_parent_map(project.id)
            ):
                raise InputValidationError("Cannot move into own descendant")
            section.parent = parent

        if suite_id is not UNSET:
            section.suite = (
                cls._get_live(Suite, project.id, suite_id, "Suite")
                if suite_id
                else None
            )

        if name is not None:
            section.name = name
        section.modified_by = user

        try:
            section.save()
        except DatabaseError as e:
            logger.exception(f"Failed to update section {section.id}")
            raise StorageError("Failed to update section") from e

        logger.info(f"Updated section {section.id} by user {user.id}")
        return section

    @classmethod
    def update_case(
        cls,
        user: User,
        project_id,
        case_id,
        title: Optional[str] = None,
        section_id=UNSET,
        description=UNSET,
        preconditions=UNSET,
        priority: Optional[str] = None,
        case_type: Optional[str] = None,
    ) -> Case:
        """
        Edit a test case and/or move it to another section.

        ``section_id`` left as UNSET keeps the current section; None (or "")
        unfiles the case. ``description`` and ``preconditions`` follow the same
        rule: UNSET keeps, None or blank clears.

        Raises:
            InputValidationError: blank or oversized title, unknown priority or type
            NotFoundError: case or target section not live in this project
            AccessDeniedError
        """
        from casetreeserver.repository.models import Case, Section

        _require_project_id(project_id)
        if title is not None:
            title = _clean_name(title, "Title", TITLE_MAX_LENGTH)
        _validate_case_choices(priority, case_type)

        project = ProjectAccessGuard.require(project_id, user, write=True).project
        case = cls._get_live(Case, project.id, case_id, "Test case")

        if section_id is not UNSET:
            case.section = (
                cls._get_live(Section, project.id, section_id, "Section")
                if section_id
                else None
            )
        if title is not None:
            case.title = title
        if description is not UNSET:
            case.description = (description or "").strip() or None
        if preconditions is not UNSET:
            case.preconditions = (preconditions or "").strip() or None
        if priority:
            case.priority = priority
        if case_type:
            case.case_type = case_type
        case.modified_by = user

        try:
            case.save()
        except DatabaseError as e:
            logger.exception(f"Failed to update case {case.id}")
            raise StorageError("Failed to update test case") from e

        logger.info(f"Updated case {case.id} by user {user.id}")
        return case

    # =========================================================================
    # DELETE OPERATIONS (soft delete)
    # =========================================================================

    @classmethod
    def _soft_delete_sections(cls, user: User, project_id, section_ids: set) -> int:
        """Soft delete sections and every live case filed in them."""
        from casetreeserver.repository.models import Case, Section

        if not section_ids:
            return 0
        Case.objects.in_project(project_id).filter(
            section_id__in=section_ids
        ).soft_delete(user)
        return (
            Section.objects.in_project(project_id)
            .filter(pk__in=section_ids)
            .soft_delete(user)
        )

    @classmethod
    def delete_section(cls, user: User, project_id, section_id) -> int:
        """
        Soft delete a section, its descendant sections and all their cases.

        Returns:
            Number of sections deleted
        """
        from casetreeserver.repository.models import Section

        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user, write=True).project
        section = cls._get_live(Section, project.id, section_id, "Section")

        try:
            with transaction.atomic():
                section_ids = {section.id} | collect_descendant_ids(
                    [section.id], load_parent_map(project.id)
                )
                deleted = cls._soft_delete_sections(user, project.id, section_ids)
        except DatabaseError as e:
            logger.exception(f"Failed to delete section {section.id}")
            raise StorageError("Failed to delete section") from e

        logger.info(
            f"Deleted section {section.id} and {deleted - 1} descendants "
            f"by user {user.id}"
        )
        return deleted

    @classmethod
    def delete_suite(cls, user: User, project_id, suite_id) -> int:
        """
        Soft delete a suite, every section under it (at any depth) and their cases.

        Returns:
            Number of sections deleted along with the suite
        """
        from casetreeserver.repository.models import Section, Suite

        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user, write=True).project
        suite = cls._get_live(Suite, project.id, suite_id, "Suite")

        try:
            with transaction.atomic():
                top_level = set(
                    Section.objects.in_project(project.id)
                    .filter(suite_id=suite.id)
                    .values_list("id", flat=True)
                )
                section_ids = top_level | collect_descendant_ids(
                    top_level, load_parent_map(project.id)
                )
                deleted = cls._soft_delete_sections(user, project.id, section_ids)
                Suite.objects.filter(pk=suite.pk).soft_delete(user)
        except DatabaseError as e:
            logger.exception(f"Failed to delete suite {suite.id}")
            raise StorageError("Failed to delete suite") from e

        logger.info(
            f"Deleted suite {suite.id} with {deleted} sections by user {user.id}"
        )
        return deleted

    @classmethod
    def delete_case(cls, user: User, project_id, case_id) -> None:
        from casetreeserver.repository.models import Case

        _require_project_id(project_id)
        project = ProjectAccessGuard.require(project_id, user, write=True).project
        case = cls._get_live(Case, project.id, case_id, "Test case")

        try:
            Case.objects.filter(pk=case.pk).soft_delete(user)
        except DatabaseError as e:
            logger.exception(f"Failed to delete case {case.id}")
            raise StorageError("Failed to delete test case") from e

        logger.info(f"Deleted case {case.id} by user {user.id}")

    # =========================================================================
    # REORDER
    # =========================================================================

    @classmethod
    def reorder(cls, user: User, project_id, items, **options) -> ReorderOutcome:
        """
        Apply a batch of move/reorder items. See ReorderCoordinator for the
        wire format, policies and error behaviour.
        """
        return ReorderCoordinator(**options).reorder(user, project_id, items)

"""
GraphQL mutations for the test repository tree.

This module implements:
- Creating suites, sections and test cases
- Editing and moving suites, sections and test cases
- Soft deleting suites, sections and test cases
- Batched drag-and-drop reordering across all three kinds

All mutations delegate to CaseRepositoryService for business logic,
permission checks and validation. Failures are reported in the payload
(``ok=False`` plus ``message`` and ``errorCode``) instead of as GraphQL errors.
"""

import logging

import graphene
from django.contrib.auth import get_user_model
from graphql_jwt.decorators import login_required
from graphql_relay import to_global_id

from casetreeserver.repository.reorder import UNSET
from casetreeserver.repository.service import CaseRepositoryService
from casetreeserver.shared.errors import RepositoryError, StorageError
from config.graphql.graphene_types import (
    NODE_TYPE_NAMES,
    CaseType,
    ReorderItemInput,
    ReorderItemResultType,
    SectionType,
    SuiteType,
)
from config.graphql.queries import resolve_pk

User = get_user_model()
logger = logging.getLogger(__name__)


class RepositoryMutationPayload:
    """Fields shared by every repository mutation payload."""

    ok = graphene.Boolean()
    message = graphene.String()
    error_code = graphene.String(
        description="VALIDATION_ERROR, FORBIDDEN, NOT_FOUND or STORAGE_ERROR"
    )

    @classmethod
    def failure(cls, error: RepositoryError):
        return cls(ok=False, message=error.message, error_code=error.code)

    @classmethod
    def unexpected(cls, action: str, error: Exception):
        logger.exception(f"Error trying to {action}")
        return cls(
            ok=False,
            message=f"Failed to {action}: {str(error)}",
            error_code=StorageError.code,
        )


# =============================================================================
# CREATE
# =============================================================================


class CreateSuiteMutation(RepositoryMutationPayload, graphene.Mutation):
    """Create a suite at the end of the project's suite list."""

    class Arguments:
        project_id = graphene.ID(required=True, description="Project to add to")
        name = graphene.String(required=True, description="Suite name")
        description = graphene.String(required=False, description="Suite description")

    suite = graphene.Field(SuiteType)

    @login_required
    def mutate(root, info, project_id, name, description=""):
        try:
            suite = CaseRepositoryService.create_suite(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                name=name,
                description=description,
            )
            return CreateSuiteMutation(
                ok=True, message="Suite created successfully", suite=suite
            )
        except RepositoryError as e:
            return CreateSuiteMutation.failure(e)
        except Exception as e:
            return CreateSuiteMutation.unexpected("create suite", e)


class CreateSectionMutation(RepositoryMutationPayload, graphene.Mutation):
    """Create a section under a parent section, a suite, or the project root."""

    class Arguments:
        project_id = graphene.ID(required=True)
        name = graphene.String(required=True)
        suite_id = graphene.ID(required=False, description="Suite to file it in")
        parent_id = graphene.ID(
            required=False, description="Parent section (omit for top level)"
        )
        description = graphene.String(required=False)

    section = graphene.Field(SectionType)

    @login_required
    def mutate(
        root, info, project_id, name, suite_id=None, parent_id=None, description=""
    ):
        try:
            section = CaseRepositoryService.create_section(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                name=name,
                suite_id=resolve_pk(suite_id),
                parent_id=resolve_pk(parent_id),
                description=description,
            )
            return CreateSectionMutation(
                ok=True, message="Section created successfully", section=section
            )
        except RepositoryError as e:
            return CreateSectionMutation.failure(e)
        except Exception as e:
            return CreateSectionMutation.unexpected("create section", e)


class CreateCaseMutation(RepositoryMutationPayload, graphene.Mutation):
    """Create a test case, optionally filed in a section."""

    class Arguments:
        project_id = graphene.ID(required=True)
        title = graphene.String(required=True)
        section_id = graphene.ID(required=False, description="Omit for unfiled")
        description = graphene.String(required=False)
        preconditions = graphene.String(required=False)
        priority = graphene.String(required=False)
        case_type = graphene.String(required=False)

    case = graphene.Field(CaseType)

    @login_required
    def mutate(
        root,
        info,
        project_id,
        title,
        section_id=None,
        description=None,
        preconditions=None,
        priority=None,
        case_type=None,
    ):
        try:
            case = CaseRepositoryService.create_case(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                title=title,
                section_id=resolve_pk(section_id),
                description=description,
                preconditions=preconditions,
                priority=priority,
                case_type=case_type,
            )
            return CreateCaseMutation(
                ok=True, message="Test case created successfully", case=case
            )
        except RepositoryError as e:
            return CreateCaseMutation.failure(e)
        except Exception as e:
            return CreateCaseMutation.unexpected("create test case", e)


# =============================================================================
# UPDATE
# =============================================================================


class UpdateSuiteMutation(RepositoryMutationPayload, graphene.Mutation):
    class Arguments:
        project_id = graphene.ID(required=True)
        suite_id = graphene.ID(required=True)
        name = graphene.String(required=False)
        description = graphene.String(required=False)

    suite = graphene.Field(SuiteType)

    @login_required
    def mutate(root, info, project_id, suite_id, name=None, description=None):
        try:
            suite = CaseRepositoryService.update_suite(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                suite_id=resolve_pk(suite_id),
                name=name,
                description=description,
            )
            return UpdateSuiteMutation(
                ok=True, message="Suite updated successfully", suite=suite
            )
        except RepositoryError as e:
            return UpdateSuiteMutation.failure(e)
        except Exception as e:
            return UpdateSuiteMutation.unexpected("update suite", e)


class UpdateSectionMutation(RepositoryMutationPayload, graphene.Mutation):
    """Rename and/or move a section.

    Omit ``suiteId``/``parentId`` to keep the current linkage; pass null to
    detach. Moving a section into its own subtree is rejected.
    """

    class Arguments:
        project_id = graphene.ID(required=True)
        section_id = graphene.ID(required=True)
        name = graphene.String(required=False)
        suite_id = graphene.ID(required=False)
        parent_id = graphene.ID(required=False)

    section = graphene.Field(SectionType)

    @login_required
    def mutate(root, info, project_id, section_id, name=None, **linkage):
        try:
            section = CaseRepositoryService.update_section(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                section_id=resolve_pk(section_id),
                name=name,
                suite_id=resolve_pk(linkage["suite_id"])
                if "suite_id" in linkage
                else UNSET,
                parent_id=resolve_pk(linkage["parent_id"])
                if "parent_id" in linkage
                else UNSET,
            )
            return UpdateSectionMutation(
                ok=True, message="Section updated successfully", section=section
            )
        except RepositoryError as e:
            return UpdateSectionMutation.failure(e)
        except Exception as e:
            return UpdateSectionMutation.unexpected("update section", e)


class UpdateCaseMutation(RepositoryMutationPayload, graphene.Mutation):
    """Edit a test case and/or move it between sections.

    Omit ``sectionId`` to keep the current section; pass null to unfile it.
    Omitted ``description``/``preconditions`` are kept, null clears them.
    """

    class Arguments:
        project_id = graphene.ID(required=True)
        case_id = graphene.ID(required=True)
        title = graphene.String(required=False)
        section_id = graphene.ID(required=False)
        description = graphene.String(required=False)
        preconditions = graphene.String(required=False)
        priority = graphene.String(required=False)
        case_type = graphene.String(required=False)

    case = graphene.Field(CaseType)

    @login_required
    def mutate(
        root,
        info,
        project_id,
        case_id,
        title=None,
        priority=None,
        case_type=None,
        **fields,
    ):
        try:
            case = CaseRepositoryService.update_case(
                user=info.context.user,
                project_id=resolve_pk(project_id),
                case_id=resolve_pk(case_id),
                title=title,
                section_id=resolve_pk(fields["section_id"])
                if "section_id" in fields
                else UNSET,
                description=fields.get("description", UNSET),
                preconditions=fields.get("preconditions", UNSET),
                priority=priority,
                case_type=case_type,
            )
            return UpdateCaseMutation(
                ok=True, message="Test case updated successfully", case=case
            )
        except RepositoryError as e:
            return UpdateCaseMutation.failure(e)
        except Exception as e:
            return UpdateCaseMutation.unexpected("update test case", e)


# =============================================================================
# DELETE
# =============================================================================


class DeleteSuiteMutation(RepositoryMutationPayload, graphene.Mutation):
    """Soft delete a suite together with its sections and their cases."""

    class Arguments:
        project_id = graphene.ID(required=True)
        suite_id = graphene.ID(required=True)

    @login_required
    def mutate(root, info, project_id, suite_id):
        try:
            deleted = CaseRepositoryService.delete_suite(
                info.context.user, resolve_pk(project_id), resolve_pk(suite_id)
            )
            return DeleteSuiteMutation(
                ok=True, message=f"Suite deleted along with {deleted} section(s)"
            )
        except RepositoryError as e:
            return DeleteSuiteMutation.failure(e)
        except Exception as e:
            return DeleteSuiteMutation.unexpected("delete suite", e)


class DeleteSectionMutation(RepositoryMutationPayload, graphene.Mutation):
    """Soft delete a section, its subsections and every case filed in them."""

    class Arguments:
        project_id = graphene.ID(required=True)
        section_id = graphene.ID(required=True)

    @login_required
    def mutate(root, info, project_id, section_id):
        try:
            CaseRepositoryService.delete_section(
                info.context.user, resolve_pk(project_id), resolve_pk(section_id)
            )
            return DeleteSectionMutation(
                ok=True, message="Section deleted successfully"
            )
        except RepositoryError as e:
            return DeleteSectionMutation.failure(e)
        except Exception as e:
            return DeleteSectionMutation.unexpected("delete section", e)


class DeleteCaseMutation(RepositoryMutationPayload, graphene.Mutation):
    class Arguments:
        project_id = graphene.ID(required=True)
        case_id = graphene.ID(required=True)

    @login_required
    def mutate(root, info, project_id, case_id):
        try:
            CaseRepositoryService.delete_case(
                info.context.user, resolve_pk(project_id), resolve_pk(case_id)
            )
            return DeleteCaseMutation(ok=True, message="Test case deleted successfully")
        except RepositoryError as e:
            return DeleteCaseMutation.failure(e)
        except Exception as e:
            return DeleteCaseMutation.unexpected("delete test case", e)


# =============================================================================
# REORDER
# =============================================================================


def _to_wire_item(item) -> dict:
    """Map a ReorderItemInput onto the camelCase wire item.

    Keys absent from the input stay absent from the wire item.
    """
    wire = {
        "id": resolve_pk(item["id"]),
        "kind": item["kind"],
        "displayOrder": item["display_order"],
    }
    for field_name, wire_key in (
        ("suite_id", "suiteId"),
        ("parent_id", "parentId"),
        ("section_id", "sectionId"),
    ):
        if field_name in item:
            wire[wire_key] = resolve_pk(item[field_name])
    return wire


class ReorderRepositoryMutation(RepositoryMutationPayload, graphene.Mutation):
    """Apply a batch of suite, section and case moves in one request.

    Siblings not named in the batch keep their stored order, so send the full
    new order of every bucket the drag touched.
    """

    class Arguments:
        project_id = graphene.ID(required=True)
        items = graphene.List(graphene.NonNull(ReorderItemInput), required=True)

    results = graphene.List(ReorderItemResultType)

    @login_required
    def mutate(root, info, project_id, items):
        try:
            outcome = CaseRepositoryService.reorder(
                info.context.user,
                resolve_pk(project_id),
                [_to_wire_item(item) for item in items],
            )
        except RepositoryError as e:
            return ReorderRepositoryMutation.failure(e)
        except Exception as e:
            return ReorderRepositoryMutation.unexpected("reorder repository", e)

        results = [
            ReorderItemResultType(
                id=to_global_id(NODE_TYPE_NAMES[result.kind.value], str(result.id)),
                kind=result.kind.value,
                status=result.status.value,
                reason=result.reason,
            )
            for result in outcome.results
        ]
        return ReorderRepositoryMutation(
            ok=True,
            message=(
                f"Reordered {outcome.applied} item(s), "
                f"skipped {outcome.skipped}, failed {outcome.failed}"
            ),
            results=results,
        )


class Mutation(graphene.ObjectType):
    create_suite = CreateSuiteMutation.Field()
    create_section = CreateSectionMutation.Field()
    create_case = CreateCaseMutation.Field()
    update_suite = UpdateSuiteMutation.Field()
    update_section = UpdateSectionMutation.Field()
    update_case = UpdateCaseMutation.Field()
    delete_suite = DeleteSuiteMutation.Field()
    delete_section = DeleteSectionMutation.Field()
    delete_case = DeleteCaseMutation.Field()
    reorder_repository = ReorderRepositoryMutation.Field()

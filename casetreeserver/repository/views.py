"""
JSON endpoints for the test repository tree.

Every view resolves the session user, decodes the JSON body, delegates to
CaseRepositoryService and maps the error taxonomy onto HTTP statuses:

    InputValidationError -> 400    AccessDeniedError -> 403
    NotFoundError        -> 404    StorageError      -> 500

Requests without an authenticated user are answered with 401 before any
other check.
"""

import functools
import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from casetreeserver.repository.reorder import UNSET
from casetreeserver.repository.service import CaseRepositoryService
from casetreeserver.shared.errors import InputValidationError, RepositoryError

logger = logging.getLogger(__name__)


def json_api_view(view_func):
    """Authenticate the caller and turn repository errors into ``{error}`` responses."""

    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Unauthorized"}, status=401)
        try:
            return view_func(request, *args, **kwargs)
        except RepositoryError as e:
            if e.status_code >= 500:
                logger.error(f"{request.method} {request.path} failed: {e.message}")
            return JsonResponse({"error": e.message}, status=e.status_code)
        except Exception:
            logger.exception(f"Unhandled error in {request.method} {request.path}")
            return JsonResponse({"error": "Internal server error"}, status=500)

    return wrapper


def _read_json(request) -> dict:
    try:
        body = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InputValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise InputValidationError("Request body must be a JSON object")
    return body


def _optional(body: dict, key: str):
    """Body value for a PATCH field, or UNSET when the key is absent."""
    return body[key] if key in body else UNSET


def _suite_payload(suite) -> dict:
    return {
        "id": str(suite.id),
        "projectId": str(suite.project_id),
        "name": suite.name,
        "description": suite.description,
        "displayOrder": suite.display_order,
    }


def _section_payload(section) -> dict:
    return {
        "id": str(section.id),
        "projectId": str(section.project_id),
        "suiteId": str(section.suite_id) if section.suite_id else None,
        "parentId": str(section.parent_id) if section.parent_id else None,
        "name": section.name,
        "description": section.description,
        "displayOrder": section.display_order,
    }


def _case_payload(case) -> dict:
    return {
        "id": str(case.id),
        "projectId": str(case.project_id),
        "sectionId": str(case.section_id) if case.section_id else None,
        "title": case.title,
        "description": case.description,
        "preconditions": case.preconditions,
        "type": case.case_type,
        "priority": case.priority,
        "status": case.status,
        "caseNumber": case.case_number,
        "caseKey": case.case_key,
        "displayOrder": case.display_order,
    }


@require_http_methods(["GET"])
@json_api_view
def repository_tree(request):
    tree = CaseRepositoryService.get_repository_tree(
        request.user, request.GET.get("projectId")
    )
    return JsonResponse(tree)


@require_http_methods(["PUT"])
@json_api_view
def reorder_repository(request):
    body = _read_json(request)
    outcome = CaseRepositoryService.reorder(
        request.user, body.get("projectId"), body.get("items")
    )
    return JsonResponse(outcome.to_dict())


@require_http_methods(["POST"])
@json_api_view
def create_suite(request):
    body = _read_json(request)
    suite = CaseRepositoryService.create_suite(
        request.user,
        body.get("projectId"),
        body.get("name"),
        description=body.get("description") or "",
    )
    return JsonResponse(_suite_payload(suite), status=201)


@require_http_methods(["POST"])
@json_api_view
def create_section(request):
    body = _read_json(request)
    section = CaseRepositoryService.create_section(
        request.user,
        body.get("projectId"),
        body.get("name"),
        suite_id=body.get("suiteId"),
        parent_id=body.get("parentId"),
        description=body.get("description") or "",
    )
    return JsonResponse(_section_payload(section), status=201)


@require_http_methods(["POST"])
@json_api_view
def create_case(request):
    body = _read_json(request)
    case = CaseRepositoryService.create_case(
        request.user,
        body.get("projectId"),
        body.get("title"),
        section_id=body.get("sectionId"),
        description=body.get("description"),
        preconditions=body.get("preconditions"),
        priority=body.get("priority"),
        case_type=body.get("type"),
    )
    return JsonResponse(_case_payload(case), status=201)


@require_http_methods(["PATCH", "DELETE"])
@json_api_view
def suite_detail(request, suite_id):
    if request.method == "DELETE":
        CaseRepositoryService.delete_suite(
            request.user, request.GET.get("projectId"), suite_id
        )
        return JsonResponse({"success": True})

    body = _read_json(request)
    suite = CaseRepositoryService.update_suite(
        request.user,
        body.get("projectId"),
        suite_id,
        name=body.get("name"),
        description=body.get("description"),
    )
    return JsonResponse(_suite_payload(suite))


@require_http_methods(["PATCH", "DELETE"])
@json_api_view
def section_detail(request, section_id):
    if request.method == "DELETE":
        CaseRepositoryService.delete_section(
            request.user, request.GET.get("projectId"), section_id
        )
        return JsonResponse({"success": True})

    body = _read_json(request)
    section = CaseRepositoryService.update_section(
        request.user,
        body.get("projectId"),
        section_id,
        name=body.get("name"),
        suite_id=_optional(body, "suiteId"),
        parent_id=_optional(body, "parentId"),
    )
    return JsonResponse(_section_payload(section))


@require_http_methods(["PATCH", "DELETE"])
@json_api_view
def case_detail(request, case_id):
    if request.method == "DELETE":
        CaseRepositoryService.delete_case(
            request.user, request.GET.get("projectId"), case_id
        )
        return JsonResponse({"success": True})

    body = _read_json(request)
    case = CaseRepositoryService.update_case(
        request.user,
        body.get("projectId"),
        case_id,
        title=body.get("title"),
        section_id=_optional(body, "sectionId"),
        description=_optional(body, "description"),
        preconditions=_optional(body, "preconditions"),
        priority=body.get("priority"),
        case_type=body.get("type"),
    )
    return JsonResponse(_case_payload(case))

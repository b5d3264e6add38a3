"""
ReorderCoordinator - applies a batch of mixed-kind move/reorder operations.

A batch is an ordered list of items, each naming one suite, section or case,
its new display order and (for sections and cases) an optional new parent
linkage. Processing order:

1. Parse and validate the raw items (no I/O)
2. Authorize the caller once for the whole batch (write role required)
3. Validate linkage targets and reject any section move that would nest a
   section inside its own subtree (no writes yet)
4. Apply items in the supplied order, each write scoped to
   ``(id, project, kind)`` and to live rows only

Every item produces a tagged :class:`ItemResult` (applied / skipped /
failed). Siblings that are not part of the batch are never renumbered, so
callers send the complete, contiguous order for every bucket they touch.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from casetreeserver.projects.access import ProjectAccessGuard
from casetreeserver.repository.hierarchy import load_parent_map, would_create_cycle
from casetreeserver.shared.errors import (
    InputValidationError,
    NotFoundError,
    StorageError,
)
from casetreeserver.types.dicts import ItemResultPythonType
from casetreeserver.types.enums import ItemStatus, MissingItemPolicy, NodeKind
from config.telemetry import record_event

logger = logging.getLogger(__name__)


class _Unset:
    """Marks a linkage field the caller did not send (leave unchanged)."""

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()

# Upper bound of the display_order column (PositiveIntegerField)
MAX_DISPLAY_ORDER = 2_147_483_647


# =============================================================================
# BATCH ITEMS
# =============================================================================


@dataclass(frozen=True)
class SuiteMove:
    kind: ClassVar[NodeKind] = NodeKind.SUITE

    id: uuid.UUID
    display_order: int


@dataclass(frozen=True)
class SectionMove:
    kind: ClassVar[NodeKind] = NodeKind.SECTION

    id: uuid.UUID
    display_order: int
    suite_id: Union[uuid.UUID, None, _Unset] = UNSET
    parent_id: Union[uuid.UUID, None, _Unset] = UNSET


@dataclass(frozen=True)
class CaseMove:
    kind: ClassVar[NodeKind] = NodeKind.CASE

    id: uuid.UUID
    display_order: int
    section_id: Union[uuid.UUID, None, _Unset] = UNSET


ReorderItem = Union[SuiteMove, SectionMove, CaseMove]

# Wire key -> dataclass field, per kind
LINKAGE_FIELDS: dict[NodeKind, dict[str, str]] = {
    NodeKind.SUITE: {},
    NodeKind.SECTION: {"suiteId": "suite_id", "parentId": "parent_id"},
    NodeKind.CASE: {"sectionId": "section_id"},
}
ALL_LINKAGE_KEYS = {key for keys in LINKAGE_FIELDS.values() for key in keys}

ITEM_TYPES: dict[NodeKind, type] = {
    NodeKind.SUITE: SuiteMove,
    NodeKind.SECTION: SectionMove,
    NodeKind.CASE: CaseMove,
}


def _parse_uuid(value, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise InputValidationError(f"{label} must be a valid id")


def parse_reorder_items(
    raw_items, max_items: Optional[int] = None
) -> list[ReorderItem]:
    """
    Turn wire-format items into typed batch items.

    Wire format (camelCase, as sent by the tree UI):
        {"id": ..., "kind": "suite" | "section" | "case", "displayOrder": 0,
         "suiteId"?: ..., "parentId"?: ..., "sectionId"?: ...}

    An absent linkage key leaves the stored value alone; ``null`` clears it.

    Raises:
        InputValidationError: on any malformed item
    """
    if not isinstance(raw_items, Sequence) or isinstance(raw_items, (str, bytes)):
        raise InputValidationError("items must be an array")
    if len(raw_items) == 0:
        raise InputValidationError("items must not be empty")
    if max_items is not None and len(raw_items) > max_items:
        raise InputValidationError(
            f"A reorder batch may contain at most {max_items} items"
        )

    items: list[ReorderItem] = []
    for index, raw in enumerate(raw_items):
        label = f"items[{index}]"
        if not isinstance(raw, Mapping):
            raise InputValidationError(f"{label} must be an object")

        try:
            kind = NodeKind(raw.get("kind"))
        except ValueError:
            raise InputValidationError(
                f"{label}.kind must be one of: {', '.join(k.value for k in NodeKind)}"
            )

        display_order = raw.get("displayOrder")
        if (
            not isinstance(display_order, int)
            or isinstance(display_order, bool)
            or not 0 <= display_order <= MAX_DISPLAY_ORDER
        ):
            raise InputValidationError(
                f"{label}.displayOrder must be an integer between 0 and "
                f"{MAX_DISPLAY_ORDER}"
            )

        allowed = LINKAGE_FIELDS[kind]
        unexpected = sorted((ALL_LINKAGE_KEYS - set(allowed)) & set(raw.keys()))
        if unexpected:
            raise InputValidationError(
                f"{label}: {', '.join(unexpected)} not valid for kind '{kind.value}'"
            )

        linkage = {}
        for wire_key, field_name in allowed.items():
            if wire_key not in raw:
                continue
            value = raw[wire_key]
            linkage[field_name] = (
                None
                if value in (None, "")
                else _parse_uuid(value, f"{label}.{wire_key}")
            )

        items.append(
            ITEM_TYPES[kind](
                id=_parse_uuid(raw.get("id"), f"{label}.id"),
                display_order=display_order,
                **linkage,
            )
        )
    return items


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class ItemResult:
    id: uuid.UUID
    kind: NodeKind
    status: ItemStatus
    reason: str = ""

    def to_dict(self) -> ItemResultPythonType:
        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass
class ReorderOutcome:
    results: list[ItemResult] = field(default_factory=list)

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for result in self.results if result.status is status)

    @property
    def applied(self) -> int:
        return self._count(ItemStatus.APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(ItemStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ItemStatus.FAILED)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "results": [result.to_dict() for result in self.results],
        }


# =============================================================================
# COORDINATOR
# =============================================================================


class ReorderCoordinator:
    """
    Applies reorder batches.

    Args:
        missing_policy: SKIP reports unknown ids as skipped; REJECT raises
            NotFoundError (rolling back the batch when ``atomic``)
        atomic: run the whole batch in one transaction. When False each item
            gets its own savepoint and a storage failure marks only that item
            as failed.

    Defaults come from the ``CASETREE_REORDER_*`` settings.
    """

    def __init__(
        self,
        missing_policy: Optional[MissingItemPolicy] = None,
        atomic: Optional[bool] = None,
        max_items: Optional[int] = None,
    ):
        self.missing_policy = MissingItemPolicy(
            missing_policy
            or getattr(
                settings, "CASETREE_REORDER_MISSING_POLICY", MissingItemPolicy.SKIP
            )
        )
        self.atomic = (
            atomic
            if atomic is not None
            else getattr(settings, "CASETREE_REORDER_ATOMIC", True)
        )
        self.max_items = (
            max_items
            if max_items is not None
            else getattr(settings, "CASETREE_REORDER_MAX_ITEMS", 1000)
        )

    def reorder(self, user, project_id, raw_items) -> ReorderOutcome:
        """
        Validate, authorize and apply one batch.

        Raises:
            InputValidationError: malformed batch, bad linkage or a cycle
            AccessDeniedError: caller lacks a write role
            NotFoundError: unknown project (or unknown item under REJECT)
            StorageError: the store failed (nothing applied when atomic)
        """
        if not project_id or raw_items is None:
            raise InputValidationError("projectId and items array are required")

        items = parse_reorder_items(raw_items, max_items=self.max_items)
        project = ProjectAccessGuard.require(project_id, user, write=True).project

        self._validate_linkage(project.id, items)
        self._validate_no_cycles(project.id, items)

        try:
            if self.atomic:
                with transaction.atomic():
                    results = [
                        self._apply_item(project.id, user, item) for item in items
                    ]
            else:
                results = [
                    self._apply_in_savepoint(project.id, user, item) for item in items
                ]
        except DatabaseError as e:
            logger.exception(f"Reorder batch failed for project {project.id}")
            raise StorageError("Failed to apply reorder batch") from e

        outcome = ReorderOutcome(results=results)
        logger.info(
            f"Reordered project {project.id} by user {user.id}: "
            f"{outcome.applied} applied, {outcome.skipped} skipped, "
            f"{outcome.failed} failed"
        )
        record_event(
            "repository_reordered",
            {
                "items": len(items),
                "applied": outcome.applied,
                "skipped": outcome.skipped,
                "failed": outcome.failed,
            },
        )
        return outcome

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @classmethod
    def _validate_linkage(cls, project_id, items: list[ReorderItem]) -> None:
        """Every new parent/suite/section must be a live row of this project."""
        from casetreeserver.repository.models import Section, Suite

        suite_ids = set()
        section_ids = set()
        for item in items:
            if isinstance(item, SectionMove):
                if item.suite_id:
                    suite_ids.add(item.suite_id)
                if item.parent_id:
                    section_ids.add(item.parent_id)
            elif isinstance(item, CaseMove) and item.section_id:
                section_ids.add(item.section_id)

        if suite_ids:
            found = set(
                Suite.objects.in_project(project_id)
                .filter(pk__in=suite_ids)
                .values_list("id", flat=True)
            )
            missing = suite_ids - found
            if missing:
                raise InputValidationError(
                    "Suite not found in this project: "
                    + ", ".join(sorted(map(str, missing)))
                )

        if section_ids:
            found = set(
                Section.objects.in_project(project_id)
                .filter(pk__in=section_ids)
                .values_list("id", flat=True)
            )
            missing = section_ids - found
            if missing:
                raise InputValidationError(
                    "Section not found in this project: "
                    + ", ".join(sorted(map(str, missing)))
                )

    @classmethod
    def _validate_no_cycles(cls, project_id, items: list[ReorderItem]) -> None:
        """
        Replay the batch's parent changes over the stored parent pointers and
        reject any moved section that ends up inside its own subtree.
        """
        moves = [
            item
            for item in items
            if isinstance(item, SectionMove) and item.parent_id is not UNSET
        ]
        if not moves:
            return

        parent_map = load_parent_map(project_id)
        moved = []
        for item in moves:
            if item.id not in parent_map:
                continue  # skipped (or rejected) when applied
            if item.parent_id == item.id:
                raise InputValidationError("Cannot set a section's parent to itself")
            parent_map[item.id] = item.parent_id
            moved.append(item.id)

        for section_id in moved:
            if would_create_cycle(section_id, parent_map[section_id], parent_map):
                raise InputValidationError(
                    f"Cannot move section {section_id} into one of its own descendants"
                )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    @classmethod
    def _updates_for(cls, item: ReorderItem) -> tuple[type, dict]:
        from casetreeserver.repository.models import Case, Section, Suite

        if isinstance(item, SuiteMove):
            return Suite, {}
        if isinstance(item, SectionMove):
            updates = {}
            if item.suite_id is not UNSET:
                updates["suite_id"] = item.suite_id
            if item.parent_id is not UNSET:
                updates["parent_id"] = item.parent_id
            return Section, updates
        if isinstance(item, CaseMove):
            updates = {}
            if item.section_id is not UNSET:
                updates["section_id"] = item.section_id
            return Case, updates
        raise TypeError(f"Unhandled reorder item type: {type(item).__name__}")

    def _apply_item(self, project_id, user, item: ReorderItem) -> ItemResult:
        model, updates = self._updates_for(item)
        updated = (
            model.objects.in_project(project_id)
            .filter(pk=item.id)
            .update(
                display_order=item.display_order,
                modified=timezone.now(),
                modified_by=user,
                **updates,
            )
        )
        if updated:
            return ItemResult(id=item.id, kind=item.kind, status=ItemStatus.APPLIED)

        if self.missing_policy is MissingItemPolicy.REJECT:
            raise NotFoundError(
                f"{item.kind.value.capitalize()} {item.id} not found in this project"
            )

        logger.debug(
            f"Skipping {item.kind.value} {item.id}: not found in project {project_id}"
        )
        return ItemResult(
            id=item.id, kind=item.kind, status=ItemStatus.SKIPPED, reason="not_found"
        )

    def _apply_in_savepoint(self, project_id, user, item: ReorderItem) -> ItemResult:
        try:
            with transaction.atomic():
                return self._apply_item(project_id, user, item)
        except DatabaseError as e:
            logger.warning(f"Failed to apply {item.kind.value} {item.id}: {e}")
            return ItemResult(
                id=item.id, kind=item.kind, status=ItemStatus.FAILED, reason=str(e)
            )

"""
Tests for batched reordering.

Covers:
- Parsing the wire format into typed batch items
- Reordering siblings of every kind and moving between parents
- Project isolation and soft-deleted rows (skip vs reject policy)
- Cycle and linkage validation happening before any write
- Atomic vs per-item failure handling
"""

import uuid
from unittest.mock import patch

from django.db import DatabaseError
from django.test import SimpleTestCase

from casetreeserver.repository.models import Case, Section, Suite
from casetreeserver.repository.reorder import (
    MAX_DISPLAY_ORDER,
    UNSET,
    CaseMove,
    ReorderCoordinator,
    SectionMove,
    SuiteMove,
    parse_reorder_items,
)
from casetreeserver.repository.service import CaseRepositoryService
from casetreeserver.shared.errors import (
    AccessDeniedError,
    InputValidationError,
    NotFoundError,
    StorageError,
)
from casetreeserver.tests.base import RepositoryTestCase
from casetreeserver.types.enums import ItemStatus, MissingItemPolicy


def move(row, kind, order, **linkage):
    """Wire item for ``row`` (a model instance or an id)."""
    return {
        "id": str(getattr(row, "id", row)),
        "kind": kind,
        "displayOrder": order,
        **linkage,
    }


class TestParseReorderItems(SimpleTestCase):
    def test_items_become_typed_moves(self):
        suite_id, section_id, case_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        items = parse_reorder_items(
            [
                {"id": str(suite_id), "kind": "suite", "displayOrder": 0},
                {
                    "id": str(section_id),
                    "kind": "section",
                    "displayOrder": 1,
                    "parentId": None,
                },
                {
                    "id": str(case_id),
                    "kind": "case",
                    "displayOrder": 2,
                    "sectionId": str(section_id),
                },
            ]
        )

        self.assertEqual(items[0], SuiteMove(id=suite_id, display_order=0))
        self.assertIsInstance(items[1], SectionMove)
        self.assertIsNone(items[1].parent_id)
        self.assertIs(items[1].suite_id, UNSET)
        self.assertEqual(
            items[2], CaseMove(id=case_id, display_order=2, section_id=section_id)
        )

    def test_malformed_batches_are_rejected(self):
        valid_id = str(uuid.uuid4())
        bad_batches = [
            "not a list",
            [],
            [{"id": valid_id, "kind": "folder", "displayOrder": 0}],
            [{"id": valid_id, "kind": "suite", "displayOrder": -1}],
            [{"id": valid_id, "kind": "suite", "displayOrder": "1"}],
            [{"id": valid_id, "kind": "suite", "displayOrder": True}],
            [{"id": "nope", "kind": "suite", "displayOrder": 0}],
            [move(valid_id, "suite", 0, parentId=None)],
            [move(valid_id, "case", 0, parentId=valid_id)],
            [move(valid_id, "section", 0, sectionId=None)],
            ["not an object"],
        ]
        for batch in bad_batches:
            with self.subTest(batch=batch):
                with self.assertRaises(InputValidationError):
                    parse_reorder_items(batch)

    def test_batch_size_limit(self):
        items = [move(uuid.uuid4(), "suite", i) for i in range(3)]
        with self.assertRaises(InputValidationError):
            parse_reorder_items(items, max_items=2)

    def test_display_order_must_fit_the_column(self):
        for value in (MAX_DISPLAY_ORDER + 1, 2**70):
            with self.subTest(value=value):
                with self.assertRaises(InputValidationError) as ctx:
                    parse_reorder_items([move(uuid.uuid4(), "suite", value)])
                self.assertIn("displayOrder", ctx.exception.message)

        items = parse_reorder_items([move(uuid.uuid4(), "suite", MAX_DISPLAY_ORDER)])
        self.assertEqual(items[0].display_order, MAX_DISPLAY_ORDER)


class TestReorderCoordinator(RepositoryTestCase):
    def reorder(self, items, user=None, **options):
        return ReorderCoordinator(**options).reorder(
            user or self.owner, self.project.id, items
        )

    def test_reorders_siblings_of_each_kind(self):
        suites = [self.make_suite(f"S{i}", order=i) for i in range(3)]
        sections = [
            self.make_section(f"F{i}", order=i, suite=suites[0]) for i in range(3)
        ]
        cases = [
            self.make_case(f"C{i}", order=i, section=sections[0]) for i in range(3)
        ]

        items = []
        for kind, rows in (("suite", suites), ("section", sections), ("case", cases)):
            for position, row in enumerate(reversed(rows)):
                items.append(move(row, kind, position))

        outcome = self.reorder(items)

        self.assertEqual(outcome.applied, 9)
        for model, rows in ((Suite, suites), (Section, sections), (Case, cases)):
            stored = list(
                model.objects.filter(pk__in=[r.pk for r in rows])
                .order_by("display_order")
                .values_list("pk", flat=True)
            )
            self.assertEqual(stored, [r.pk for r in reversed(rows)])

        # Linkage left untouched when the keys are absent
        stored_sections = Section.objects.filter(pk__in=[s.pk for s in sections])
        self.assertTrue(all(s.suite_id == suites[0].id for s in stored_sections))

    def test_case_moves_between_sections_and_to_unfiled(self):
        first = self.make_section("First")
        second = self.make_section("Second", order=1)
        moving = self.make_case(section=first)
        unfiling = self.make_case(section=first, order=1)

        self.reorder(
            [
                move(moving, "case", 0, sectionId=str(second.id)),
                move(unfiling, "case", 0, sectionId=None),
            ]
        )

        moving.refresh_from_db()
        unfiling.refresh_from_db()
        self.assertEqual(moving.section_id, second.id)
        self.assertIsNone(unfiling.section_id)

    def test_foreign_and_deleted_rows_are_skipped(self):
        mine = self.make_suite("Mine", order=0)
        foreign = self.make_suite("Theirs", order=0, project=self.other_project)
        gone = self.make_suite("Gone", order=0)
        Suite.objects.filter(pk=gone.pk).soft_delete()

        outcome = self.reorder(
            [
                {"id": str(mine.id), "kind": "suite", "displayOrder": 3},
                {"id": str(foreign.id), "kind": "suite", "displayOrder": 5},
                {"id": str(gone.id), "kind": "suite", "displayOrder": 5},
                {"id": str(uuid.uuid4()), "kind": "suite", "displayOrder": 5},
            ]
        )

        statuses = [result.status for result in outcome.results]
        self.assertEqual(statuses, [ItemStatus.APPLIED] + [ItemStatus.SKIPPED] * 3)
        self.assertEqual(outcome.results[1].reason, "not_found")
        foreign.refresh_from_db()
        gone.refresh_from_db()
        self.assertEqual(foreign.display_order, 0)
        self.assertEqual(gone.display_order, 0)

    def test_kind_mismatch_is_skipped(self):
        section = self.make_section()

        outcome = self.reorder([move(section, "suite", 4)])

        self.assertEqual(outcome.skipped, 1)
        section.refresh_from_db()
        self.assertEqual(section.display_order, 0)

    def test_reject_policy_rolls_back_the_batch(self):
        suite = self.make_suite(order=0)

        with self.assertRaises(NotFoundError):
            self.reorder(
                [
                    {"id": str(suite.id), "kind": "suite", "displayOrder": 7},
                    {"id": str(uuid.uuid4()), "kind": "suite", "displayOrder": 8},
                ],
                missing_policy=MissingItemPolicy.REJECT,
            )

        suite.refresh_from_db()
        self.assertEqual(suite.display_order, 0)

    def test_moving_section_into_its_descendant_is_rejected_before_writes(self):
        top = self.make_section("Top")
        child = self.make_section("Child", parent=top)
        grandchild = self.make_section("Grandchild", parent=child)
        other = self.make_suite()

        with self.assertRaises(InputValidationError):
            self.reorder(
                [
                    {"id": str(other.id), "kind": "suite", "displayOrder": 9},
                    move(top, "section", 0, parentId=str(grandchild.id)),
                ]
            )

        top.refresh_from_db()
        other.refresh_from_db()
        self.assertIsNone(top.parent_id)
        self.assertEqual(other.display_order, 0)

    def test_self_parent_is_rejected(self):
        section = self.make_section()

        with self.assertRaises(InputValidationError):
            self.reorder(
                [move(section, "section", 0, parentId=str(section.id))]
            )

    def test_parent_swap_within_one_batch_is_allowed(self):
        top = self.make_section("Top")
        child = self.make_section("Child", parent=top)

        outcome = self.reorder(
            [
                move(child, "section", 0, parentId=None),
                move(top, "section", 0, parentId=str(child.id)),
            ]
        )

        self.assertEqual(outcome.applied, 2)
        top.refresh_from_db()
        child.refresh_from_db()
        self.assertEqual(top.parent_id, child.id)
        self.assertIsNone(child.parent_id)

    def test_linkage_must_stay_inside_the_project(self):
        section = self.make_section()
        foreign_section = self.make_section(project=self.other_project)
        foreign_suite = self.make_suite(project=self.other_project)
        case = self.make_case()

        batches = [
            [move(section, "section", 0, parentId=str(foreign_section.id))],
            [move(section, "section", 0, suiteId=str(foreign_suite.id))],
            [move(case, "case", 0, sectionId=str(foreign_section.id))],
        ]
        for batch in batches:
            with self.subTest(batch=batch):
                with self.assertRaises(InputValidationError):
                    self.reorder(batch)

        case.refresh_from_db()
        self.assertIsNone(case.section_id)

    def test_viewer_and_outsider_cannot_reorder(self):
        suite = self.make_suite()
        items = [{"id": str(suite.id), "kind": "suite", "displayOrder": 1}]

        for user in (self.viewer, self.outsider):
            with self.subTest(user=user.username):
                with self.assertRaises(AccessDeniedError):
                    self.reorder(items, user=user)

    def test_missing_project_or_items(self):
        with self.assertRaises(InputValidationError):
            ReorderCoordinator().reorder(self.owner, None, [])
        with self.assertRaises(InputValidationError):
            ReorderCoordinator().reorder(self.owner, self.project.id, None)

    def test_storage_failure_rolls_back_atomic_batch(self):
        first = self.make_suite("First", order=0)
        second = self.make_suite("Second", order=1)
        original_apply = ReorderCoordinator._apply_item

        def failing_apply(coordinator, project_id, user, item):
            if item.id == second.id:
                raise DatabaseError("disk full")
            return original_apply(coordinator, project_id, user, item)

        with patch.object(
            ReorderCoordinator, "_apply_item", autospec=True, side_effect=failing_apply
        ):
            with self.assertRaises(StorageError):
                self.reorder(
                    [
                        {"id": str(first.id), "kind": "suite", "displayOrder": 1},
                        {"id": str(second.id), "kind": "suite", "displayOrder": 0},
                    ],
                    atomic=True,
                )

        first.refresh_from_db()
        self.assertEqual(first.display_order, 0)

    def test_storage_failure_marks_single_item_when_not_atomic(self):
        first = self.make_suite("First", order=0)
        second = self.make_suite("Second", order=1)
        original_apply = ReorderCoordinator._apply_item

        def failing_apply(coordinator, project_id, user, item):
            if item.id == second.id:
                raise DatabaseError("disk full")
            return original_apply(coordinator, project_id, user, item)

        with patch.object(
            ReorderCoordinator, "_apply_item", autospec=True, side_effect=failing_apply
        ):
            outcome = self.reorder(
                [
                    {"id": str(first.id), "kind": "suite", "displayOrder": 1},
                    {"id": str(second.id), "kind": "suite", "displayOrder": 0},
                ],
                atomic=False,
            )

        self.assertEqual(
            [r.status for r in outcome.results], [ItemStatus.APPLIED, ItemStatus.FAILED]
        )
        self.assertIn("disk full", outcome.results[1].reason)
        first.refresh_from_db()
        self.assertEqual(first.display_order, 1)

    def test_oversized_display_order_fails_before_any_write(self):
        first = self.make_suite("First", order=0)
        second = self.make_suite("Second", order=1)

        with self.assertRaises(InputValidationError):
            self.reorder(
                [move(first, "suite", 5), move(second, "suite", 2**70)],
                atomic=False,
            )

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.display_order, 0)
        self.assertEqual(second.display_order, 1)

    def test_outcome_wire_format(self):
        suite = self.make_suite()

        payload = self.reorder([move(suite, "suite", 2)]).to_dict()

        self.assertEqual(
            payload,
            {
                "success": True,
                "results": [
                    {
                        "id": str(suite.id),
                        "kind": "suite",
                        "status": "applied",
                        "reason": "",
                    }
                ],
            },
        )


class TestRepositoryScenario(RepositoryTestCase):
    """Fetch, move an unfiled case into a section, fetch again."""

    def test_filing_an_unfiled_case(self):
        suite = self.make_suite("C1")
        folder = self.make_section("F1", suite=suite)
        filed = self.make_case("L1", section=folder)
        loose = self.make_case("L2")

        before = CaseRepositoryService.get_repository_tree(self.owner, self.project.id)

        self.assertEqual(len(before["tree"]), 1)
        suite_node = before["tree"][0]
        self.assertEqual(suite_node["id"], str(suite.id))
        self.assertEqual(suite_node["children"][0]["id"], str(folder.id))
        self.assertEqual(
            [c["id"] for c in suite_node["children"][0]["children"]], [str(filed.id)]
        )
        self.assertEqual([c["id"] for c in before["unfiled"]], [str(loose.id)])

        CaseRepositoryService.reorder(
            self.owner,
            self.project.id,
            [move(loose, "case", 1, sectionId=str(folder.id))],
        )

        after = CaseRepositoryService.get_repository_tree(self.owner, self.project.id)
        folder_children = after["tree"][0]["children"][0]["children"]
        self.assertEqual(
            [(c["id"], c["displayOrder"]) for c in folder_children],
            [(str(filed.id), 0), (str(loose.id), 1)],
        )
        self.assertEqual(after["unfiled"], [])

from casetreeserver.repository.models import Suite
from casetreeserver.repository.ordering import DisplayOrderAllocator
from casetreeserver.repository.service import CaseRepositoryService
from casetreeserver.tests.base import RepositoryTestCase


class TestDisplayOrderAllocator(RepositoryTestCase):
    def test_sections_in_empty_bucket_get_zero_one_two(self):
        suite = self.make_suite()

        orders = [
            CaseRepositoryService.create_section(
                self.owner, self.project.id, f"Section {i}", suite_id=suite.id
            ).display_order
            for i in range(3)
        ]

        self.assertEqual(orders, [0, 1, 2])

    def test_buckets_are_independent(self):
        suite = self.make_suite()
        parent = self.make_section(suite=suite, order=4)
        self.make_section(order=7)  # top level

        self.assertEqual(
            DisplayOrderAllocator.next_section_order(
                self.project.id, suite_id=suite.id
            ),
            5,
        )
        self.assertEqual(
            DisplayOrderAllocator.next_section_order(
                self.project.id, parent_id=parent.id
            ),
            0,
        )
        self.assertEqual(DisplayOrderAllocator.next_section_order(self.project.id), 8)

    def test_soft_deleted_and_foreign_rows_are_ignored(self):
        deleted = self.make_suite(order=3)
        Suite.objects.filter(pk=deleted.pk).soft_delete()
        self.make_suite(order=9, project=self.other_project)

        self.assertEqual(DisplayOrderAllocator.next_suite_order(self.project.id), 0)

    def test_case_buckets(self):
        section = self.make_section()
        self.make_case(section=section, order=2)
        self.make_case(order=0)

        self.assertEqual(
            DisplayOrderAllocator.next_case_order(
                self.project.id, section_id=section.id
            ),
            3,
        )
        self.assertEqual(DisplayOrderAllocator.next_case_order(self.project.id), 1)

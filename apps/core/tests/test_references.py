"""
Sequential reference numbers and the retry on a concurrent clash.
"""
from uuid import uuid4

from django.db import IntegrityError
from django.test import TestCase

from apps.core.references import MAX_REFERENCE_ATTEMPTS, next_sequence, create_with_reference
from apps.reviews.models import Review


class ReferenceTest(TestCase):
    def setUp(self):
        self.org_id = uuid4()
        Review.objects.create(host_org_id=self.org_id, reference_number="PR-2025-009")
        Review.objects.create(host_org_id=self.org_id, reference_number="PR-2025-DRAFT")

    def test_next_sequence_ignores_non_numeric_suffixes(self):
        self.assertEqual(next_sequence(Review, "PR-2025-"), "PR-2025-010")
        self.assertEqual(next_sequence(Review, "PR-2024-"), "PR-2024-001")
        self.assertEqual(next_sequence(Review, "PR-2024-", width=5), "PR-2024-00001")

    def test_clash_is_retried_with_a_fresh_reference(self):
        references = iter(["PR-2025-009", "PR-2025-010"])
        review = create_with_reference(Review, lambda: next(references), host_org_id=self.org_id)
        self.assertEqual(review.reference_number, "PR-2025-010")

    def test_gives_up_after_repeated_clashes(self):
        calls = []

        def generate():
            calls.append(1)
            return "PR-2025-009"

        with self.assertRaises(IntegrityError):
            create_with_reference(Review, generate, host_org_id=self.org_id)
        self.assertEqual(len(calls), MAX_REFERENCE_ATTEMPTS)
        self.assertEqual(Review.objects.filter(reference_number="PR-2025-009").count(), 1)

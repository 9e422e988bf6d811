"""
candidates/tests.py

Covers:
  - Candidate.as_payload : full-record serialisation used for enrichment
  - get_candidate        : entity store lookup and its not-found path
"""

import uuid

from django.test import TestCase

from candidates.models import Candidate
from candidates.services import CandidateNotFound, get_candidate


def _make_candidate(**kwargs) -> Candidate:
    defaults = dict(
        first_name="Ana",
        last_name="Pop",
        email="ana@example.com",
        title="Backend Engineer",
        skills=["Python", "Django"],
        experience_years=5,
    )
    defaults.update(kwargs)
    return Candidate.objects.create(**defaults)


class CandidatePayloadTests(TestCase):
    def test_payload_contains_full_record(self):
        candidate = _make_candidate()

        payload = candidate.as_payload()

        self.assertEqual(payload["id"], str(candidate.pk))
        self.assertEqual(payload["first_name"], "Ana")
        self.assertEqual(payload["email"], "ana@example.com")
        self.assertEqual(payload["skills"], ["Python", "Django"])
        self.assertEqual(payload["experience_years"], 5)
        self.assertIn("created_at", payload)
        self.assertIn("updated_at", payload)

    def test_full_name_joins_first_and_last(self):
        self.assertEqual(_make_candidate().full_name, "Ana Pop")

    def test_str_includes_name_and_email(self):
        text = str(_make_candidate())
        self.assertIn("Ana Pop", text)
        self.assertIn("ana@example.com", text)


class GetCandidateTests(TestCase):
    def test_returns_existing_candidate(self):
        candidate = _make_candidate()
        self.assertEqual(get_candidate(candidate.pk), candidate)

    def test_accepts_string_id(self):
        candidate = _make_candidate()
        self.assertEqual(get_candidate(str(candidate.pk)), candidate)

    def test_missing_candidate_raises_not_found(self):
        with self.assertRaises(CandidateNotFound):
            get_candidate(uuid.uuid4())

    def test_malformed_id_raises_not_found(self):
        with self.assertRaises(CandidateNotFound):
            get_candidate("not-a-uuid")
